"""
Typed wrappers over the financing API, one per resource.
"""

from .application_service import application_service
from .auth_service import auth_service
from .contract_service import contract_service
from .finance_company_service import finance_company_service
from .payment_service import payment_service
from .project_service import project_service
from .sms_service import sms_service

__all__ = [
    "application_service",
    "auth_service",
    "contract_service",
    "finance_company_service",
    "payment_service",
    "project_service",
    "sms_service",
]
