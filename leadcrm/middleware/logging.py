from __future__ import annotations

import time
from typing import Any, Dict, Mapping

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from leadcrm.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

_QUIET_PATHS = frozenset({"/health", "/api/health", "/metrics"})
_SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key", "secret", "token", "password")


class LoggingMiddleware(BaseHTTPMiddleware):
    """One ``request.received`` and one ``response.sent`` line per API call.

    The response line carries the caller resolved by ``AuthMiddleware`` so
    provider traffic can be followed per provider.
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        quiet = request.url.path in _QUIET_PATHS

        if not quiet:
            logger.info(
                "request.received",
                method=request.method,
                path=request.url.path,
                query_params=dict(request.query_params) or None,
                client_ip=request.client.host if request.client else "unknown",
                headers=filter_headers(request.headers),
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request.exception",
                method=request.method,
                path=request.url.path,
                response_time_ms=(time.perf_counter() - started) * 1000,
                exception_type=type(e).__name__,
                exception_message=str(e),
            )
            raise

        elapsed = time.perf_counter() - started
        response.headers["X-Response-Time"] = f"{elapsed:.3f}"

        if not quiet:
            fields = {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": elapsed * 1000,
                "request_id": response.headers.get("X-Request-ID"),
                **caller_fields(request),
            }
            if response.status_code >= 400:
                fields["error_type"] = "client_error" if response.status_code < 500 else "server_error"
                logger.warning("response.sent", **fields)
            else:
                logger.info("response.sent", **fields)

        return response


def caller_fields(request: Request) -> Dict[str, Any]:
    principal = getattr(request.state, "principal", None)
    if principal is None:
        return {"role": "anonymous"}
    return {"role": principal.role.value, "provider_id": principal.provider_id}


def filter_headers(headers: Mapping[str, str]) -> dict:
    """Copy of ``headers`` with credentials redacted."""
    return {
        key: "[REDACTED]" if any(s in key.lower() for s in _SENSITIVE_HEADERS) else value
        for key, value in headers.items()
    }
