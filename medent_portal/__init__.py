"""
Medent Finance Portal Package.

This package provides the web portal for the Medent medical-equipment lease
and payment financing business. It includes the FastAPI application, the
financing API client, and configuration.
"""

__version__ = "1.0.0"
__author__ = "Medent Finance Team"
__description__ = "Lease and payment financing portal"

# Export main components
from .app import app
from .config import settings

__all__ = [
    "app",
    "settings",
    "__version__",
]
