"""
Async HTTP client for the lead API.

Every response passes through ``ApiClient._intercept``, which turns error
statuses into the exception taxonomy of ``leadcrm.core.exceptions``:
authentication and authorization failures are resolved there once, so call
sites only deal with validation and business errors.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import httpx

from leadcrm.client.session import Session
from leadcrm.core.config import settings
from leadcrm.core.exceptions import (
    AccountInactiveError,
    APIError,
    AuthenticationError,
    AuthorizationError,
    ServiceUnavailableError,
    SubscriptionInactiveError,
    ValidationError,
)
from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.lead import LeadStatus
from leadcrm.models.user import Role
from leadcrm.schemas.leads import LeadCreate, LeadNoteOut, LeadOut
from leadcrm.schemas.notifications import NotificationOut
from leadcrm.schemas.settings import (
    LocationOut,
    ProviderOut,
    RealtimeConfig,
    SubscriptionStatusResponse,
)

logger = get_structlog_logger(__name__)

_PROVIDER_LEAD_ROUTE = re.compile(r"^/provider/leads(/|$)")


class ApiClient:
    def __init__(
        self,
        session: Session,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.session = session
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=timeout or settings.http_timeout_seconds,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def prefix(self) -> str:
        return self.session.route_prefix

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        authenticated: bool = True,
    ) -> Any:
        headers = self.session.authorization_header() if authenticated else {}
        try:
            response = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.RequestError as e:
            logger.warning("api.transport_error", method=method, path=path, error=str(e))
            raise ServiceUnavailableError(
                message="API is unreachable",
                code="transport_error",
                details={"error": str(e)},
            ) from e

        return self._intercept(response, path)

    def _intercept(self, response: httpx.Response, path: str) -> Any:
        if response.is_success:
            if not response.content:
                return None
            return response.json()

        body = _json_body(response)
        code = body.get("code")
        message = body.get("message") or response.reason_phrase or "Request failed"
        details = body.get("details") or {}
        status_code = response.status_code

        logger.info("api.error_response", path=path, status_code=status_code, code=code)

        if status_code == 401:
            self.session.clear()
            raise AuthenticationError(
                message=message,
                redirect_to=self.session.login_path,
                code=code or "unauthenticated",
                details=details,
            )

        if status_code == 403:
            if body.get("account_inactive") or code == "account_inactive":
                raise AccountInactiveError(message=message, details=details)
            if code == "subscription_inactive" or (code is None and _PROVIDER_LEAD_ROUTE.match(path)):
                raise SubscriptionInactiveError(message=message, details=details)
            raise AuthorizationError(message=message, code=code or "forbidden", details=details)

        if status_code == 422:
            if "errors" not in details and isinstance(body.get("errors"), dict):
                details = {**details, "errors": body["errors"]}
            raise ValidationError(message=message, code=code or "validation_error", details=details)

        raise APIError(message=message, status_code=status_code, code=code, details=details)

    # Leads

    async def submit_lead(self, payload: Union[LeadCreate, Mapping[str, Any]]) -> LeadOut:
        if not isinstance(payload, LeadCreate):
            payload = LeadCreate.model_validate(payload)
        data = await self.request("POST", "/leads", json=payload.model_dump(mode="json"), authenticated=False)
        return LeadOut.model_validate(data)

    async def list_leads(
        self,
        status: Optional[Union[str, LeadStatus]] = None,
        location_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[LeadOut]:
        params: Dict[str, Any] = {}
        if status is not None:
            params["status"] = LeadStatus(status).value
        if self.session.audience is Role.ADMIN:
            if location_id is not None:
                params["location_id"] = location_id
            if date_from is not None:
                params["date_from"] = date_from.isoformat()
            if date_to is not None:
                params["date_to"] = date_to.isoformat()

        data = await self.request("GET", f"{self.prefix}/leads", params=params)
        return [LeadOut.model_validate(item) for item in data["data"]]

    async def get_lead(self, lead_id: int) -> LeadOut:
        data = await self.request("GET", f"{self.prefix}/leads/{lead_id}")
        return LeadOut.model_validate(data)

    async def update_lead(self, lead_id: int, status: Union[str, LeadStatus]) -> LeadOut:
        data = await self.request(
            "PUT",
            f"{self.prefix}/leads/{lead_id}",
            json={"status": LeadStatus(status).value},
        )
        return LeadOut.model_validate(data)

    async def reassign_lead(self, lead_id: int, service_provider_id: int) -> LeadOut:
        data = await self.request(
            "PUT",
            f"/admin/leads/{lead_id}/reassign",
            json={"service_provider_id": service_provider_id},
        )
        return LeadOut.model_validate(data)

    async def list_notes(self, lead_id: int) -> List[LeadNoteOut]:
        data = await self.request("GET", f"{self.prefix}/leads/{lead_id}/notes")
        return [LeadNoteOut.model_validate(item) for item in data["data"]]

    async def add_note(self, lead_id: int, note: str) -> LeadNoteOut:
        data = await self.request("POST", f"{self.prefix}/leads/{lead_id}/notes", json={"note": note})
        return LeadNoteOut.model_validate(data)

    # Notifications

    async def unread_count(self) -> int:
        data = await self.request("GET", f"{self.prefix}/notifications/unread")
        return int(data["count"])

    async def list_notifications(self, limit: Optional[int] = None) -> List[NotificationOut]:
        params = {"limit": limit} if limit else None
        data = await self.request("GET", f"{self.prefix}/notifications", params=params)
        return [NotificationOut.model_validate(item) for item in data["data"]]

    async def mark_notification_read(self, notification_id: str) -> NotificationOut:
        data = await self.request("POST", f"{self.prefix}/notifications/{notification_id}/read")
        return NotificationOut.model_validate(data)

    async def mark_all_notifications_read(self) -> int:
        data = await self.request("POST", f"{self.prefix}/notifications/read-all")
        return int(data.get("updated", 0))

    # Realtime

    async def realtime_config(self) -> RealtimeConfig:
        path = "/admin/settings/group/pusher" if self.session.audience is Role.ADMIN else "/provider/settings/pusher"
        return RealtimeConfig.model_validate(await self.request("GET", path))

    async def authorize_channel(self, socket_id: str, channel_name: str) -> str:
        data = await self.request(
            "POST",
            "/broadcasting/auth",
            json={"socket_id": socket_id, "channel_name": channel_name},
        )
        return data["auth"]

    # Providers and locations

    async def subscription_status(self) -> SubscriptionStatusResponse:
        data = await self.request("GET", "/provider/subscription/status")
        return SubscriptionStatusResponse.model_validate(data)

    async def set_provider_active(self, provider_id: int, is_active: bool) -> ProviderOut:
        action = "activate" if is_active else "deactivate"
        data = await self.request("POST", f"/admin/service-providers/{provider_id}/{action}")
        return ProviderOut.model_validate(data)

    async def assign_providers(self, location_id: int, provider_ids: Iterable[int]) -> LocationOut:
        data = await self.request(
            "POST",
            f"/admin/locations/{location_id}/assign-providers",
            json={"service_provider_ids": list(provider_ids)},
        )
        return LocationOut.model_validate(data)


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
