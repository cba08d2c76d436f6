from __future__ import annotations

from typing import Any, Dict, Optional


class BaseAPIException(Exception):
    """Base exception for all API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class APIError(BaseAPIException):
    """Generic API error."""
    def __init__(self, message: str = "An error occurred", status_code: int = 500, **kwargs):
        super().__init__(message, status_code=status_code, **kwargs)


class AuthenticationError(BaseAPIException):
    """Authentication failed.

    ``redirect_to`` is filled in on the client side with the login page of the
    audience whose session was cleared.
    """
    def __init__(self, message: str = "Authentication failed", redirect_to: Optional[str] = None, **kwargs):
        super().__init__(message, status_code=401, **kwargs)
        self.redirect_to = redirect_to


class AuthorizationError(BaseAPIException):
    """Authorization failed."""
    def __init__(self, message: str = "Authorization failed", redirect_to: Optional[str] = None, **kwargs):
        kwargs.setdefault("code", "forbidden")
        super().__init__(message, status_code=403, **kwargs)
        self.redirect_to = redirect_to


class AccountInactiveError(AuthorizationError):
    """Provider account has been deactivated by an admin."""
    def __init__(
        self,
        message: str = "Your account has been deactivated. Please contact admin to activate your account.",
        **kwargs,
    ):
        kwargs.setdefault("code", "account_inactive")
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["account_inactive"] = True
        return data


class SubscriptionInactiveError(AuthorizationError):
    """Provider has no active subscription, lead access is closed."""
    def __init__(self, message: str = "An active subscription is required", **kwargs):
        kwargs.setdefault("code", "subscription_inactive")
        kwargs.setdefault("redirect_to", "/provider/subscription")
        super().__init__(message, **kwargs)


class NotFoundError(BaseAPIException):
    """Resource not found."""
    def __init__(self, message: str = "Resource not found", **kwargs):
        kwargs.setdefault("code", "not_found")
        super().__init__(message, status_code=404, **kwargs)


class ValidationError(BaseAPIException):
    """Validation error."""
    def __init__(self, message: str = "Validation error", **kwargs):
        kwargs.setdefault("code", "validation_error")
        super().__init__(message, status_code=422, **kwargs)

    @property
    def field_errors(self) -> Dict[str, str]:
        return dict(self.details.get("errors") or {})


class InvalidTransitionError(ValidationError):
    """Lead status outside the allowed set."""
    def __init__(self, message: str = "Invalid lead status", **kwargs):
        kwargs.setdefault("code", "invalid_status")
        super().__init__(message, **kwargs)


class ConflictError(BaseAPIException):
    """Resource conflict."""
    def __init__(self, message: str = "Resource conflict", **kwargs):
        super().__init__(message, status_code=409, **kwargs)


class ServiceUnavailableError(BaseAPIException):
    """Service unavailable."""
    def __init__(self, message: str = "Service unavailable", **kwargs):
        super().__init__(message, status_code=503, **kwargs)


class RealtimeUnavailableError(ServiceUnavailableError):
    """Realtime channel could not be set up; callers fall back to polling."""
    def __init__(self, message: str = "Realtime channel unavailable", **kwargs):
        kwargs.setdefault("code", "realtime_unavailable")
        super().__init__(message, **kwargs)
