from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, Request, status
from fastapi.responses import JSONResponse
from jose import ExpiredSignatureError, JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from leadcrm.core.exceptions import AuthenticationError, AuthorizationError
from leadcrm.core.logging import bind_caller, get_structlog_logger
from leadcrm.core.security import TokenManager
from leadcrm.models.user import Principal, Role

logger = get_structlog_logger(__name__)


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolve the bearer token, when one is sent, into ``request.state.principal``.

    Requests without a token pass through with no principal; routes that
    need one reject them through the ``get_principal`` dependency. A token
    that is present but invalid or expired is rejected here.
    """

    async def dispatch(self, request: Request, call_next):
        request.state.principal = None

        token = extract_token(request.headers.get("Authorization"))
        if token is None:
            return await call_next(request)

        try:
            payload = TokenManager.decode_token(token)
            request.state.principal = principal_from_claims(payload)
        except ExpiredSignatureError:
            logger.warning("auth.expired_token", path=request.url.path)
            return _unauthorized("expired_token", "Token has expired")
        except (JWTError, ValueError) as e:
            logger.warning("auth.invalid_token", error=str(e), path=request.url.path)
            return _unauthorized("invalid_token", "Invalid authentication token")

        principal = request.state.principal
        bind_caller(principal.role.value, user_id=principal.user_id, provider_id=principal.provider_id)
        logger.debug("auth.authenticated", path=request.url.path)
        return await call_next(request)


def _unauthorized(code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"code": code, "message": message, "details": {}},
    )


def extract_token(auth_header: Optional[str]) -> Optional[str]:
    """Extract token from an Authorization header value."""
    if not auth_header:
        return None

    # Support both "Bearer <token>" and "Token <token>" formats
    parts = auth_header.split()
    if len(parts) != 2:
        return None

    scheme, token = parts
    if scheme.lower() not in ("bearer", "token"):
        return None

    return token


def principal_from_claims(payload: Dict[str, Any]) -> Principal:
    role = Role(payload.get("role"))
    sub = payload.get("sub")

    if role is Role.PROVIDER:
        provider_id = payload.get("provider_id", sub)
        if provider_id is None:
            raise ValueError("provider token without provider id")
        return Principal(role=role, provider_id=int(provider_id), name=payload.get("name"))

    return Principal(
        role=role,
        user_id=int(sub) if sub is not None else None,
        name=payload.get("name"),
    )


def issue_token(principal: Principal) -> str:
    """Access token carrying ``principal``; used by tests and local tooling."""
    claims: Dict[str, Any] = {"role": principal.role.value, "name": principal.name}
    if principal.is_provider:
        claims["sub"] = str(principal.provider_id)
        claims["provider_id"] = principal.provider_id
    elif principal.user_id is not None:
        claims["sub"] = str(principal.user_id)
    return TokenManager.create_access_token(claims)


# Helper functions for route dependencies
async def get_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise AuthenticationError(message="Authentication token is required", code="missing_token")
    return principal


async def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise AuthorizationError(
            message="Requires one of roles: admin",
            details={"user_role": principal.role.value, "allowed_roles": [Role.ADMIN.value]},
        )
    return principal


async def require_provider(request: Request, principal: Principal = Depends(get_principal)) -> Principal:
    """Provider principal whose account is active."""
    if not principal.is_provider:
        raise AuthorizationError(
            message="Requires one of roles: provider",
            details={"user_role": principal.role.value, "allowed_roles": [Role.PROVIDER.value]},
        )
    request.app.state.container.workflow.provider_for(principal)
    return principal


async def require_provider_lead_access(
    request: Request,
    principal: Principal = Depends(require_provider),
) -> Principal:
    """Provider principal that may work leads: active account and subscription."""
    request.app.state.container.workflow.provider_for(principal, require_subscription=True)
    return principal
