"""
Formatting and validation helpers.
"""
