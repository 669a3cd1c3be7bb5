"""
Page and API routers of the portal.
"""

from . import applications, apply, auth, contracts, health, payments, postal, projects, settings

ROUTERS = (
    health.router,
    postal.router,
    auth.router,
    projects.router,
    contracts.router,
    applications.router,
    payments.router,
    apply.router,
    settings.router,
)

__all__ = ["ROUTERS"]
