"""
HTTP middleware and request-scoped auth dependencies.
"""

from leadcrm.middleware.auth import AuthMiddleware, get_principal, require_admin, require_provider
from leadcrm.middleware.logging import LoggingMiddleware
from leadcrm.middleware.request_id import RequestIdMiddleware

__all__ = [
    "AuthMiddleware",
    "LoggingMiddleware",
    "RequestIdMiddleware",
    "get_principal",
    "require_admin",
    "require_provider",
]
