"""
Custom exception classes for the portal.

Provides specific exceptions for the failure modes of talking to the
financing API and of validating the portal's forms.
"""

from typing import Any, Dict, Optional


class PortalException(Exception):
    """
    Base exception for all portal errors.

    All custom exceptions should inherit from this class
    for consistent error handling.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize portal exception.

        Args:
            message: Human-readable error message
            details: Additional context about the error
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ApiError(PortalException):
    """
    Raised when the financing API answers with a non-success status.

    ``message`` carries the backend's own message when it sent one, so it can
    be shown to the user as-is.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize API error.

        Args:
            message: Error message (backend message when available)
            status_code: HTTP status code returned by the API
            details: Response body or other context
        """
        self.status_code = status_code
        super().__init__(message, details)


class AuthenticationError(PortalException):
    """Raised when login credentials are rejected."""

    def __init__(
        self,
        message: str = "メールアドレスまたはパスワードが正しくありません",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)


class SessionExpiredError(PortalException):
    """
    Raised when the session cannot be kept alive.

    The refresh token is missing, expired, or every refresh attempt failed.
    The web layer turns this into a redirect to the login page.
    """

    def __init__(
        self,
        message: str = "セッションが期限切れです。再度ログインしてください。",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)


class InvalidSessionCookie(PortalException):
    """Raised when the persisted auth cookie cannot be decoded."""


class ServiceUnavailableException(PortalException):
    """
    Exception raised when a backend service is unavailable.

    Used when the financing API or a third-party lookup cannot be reached.
    """

    def __init__(
        self,
        service_name: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize service unavailable exception.

        Args:
            service_name: Name of the unavailable service
            message: Optional custom error message
            details: Additional context about the error
        """
        self.service_name = service_name
        default_message = f"Service '{service_name}' is currently unavailable"
        super().__init__(message or default_message, details)


class ValidationException(PortalException):
    """Exception raised when a single input value fails validation."""

    def __init__(
        self,
        field_name: str,
        value: Any,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize validation exception.

        Args:
            field_name: Name of the field that failed validation
            value: The invalid value
            reason: Explanation of why validation failed
            details: Additional context about the error
        """
        self.field_name = field_name
        self.value = value
        self.reason = reason
        message = f"Validation failed for '{field_name}': {reason}"
        super().__init__(message, details)


class FormValidationError(PortalException):
    """
    Raised when a submitted form has one or more invalid fields.

    Attributes:
        errors: Mapping of field name to user-facing message
    """

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = errors
        super().__init__(
            "入力エラーがあります。各項目を確認してください",
            details={"fields": sorted(errors)},
        )
