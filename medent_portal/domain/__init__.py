"""
Portal logic that runs between the forms and the financing API.
"""
