from __future__ import annotations

from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query

from leadcrm.middleware.auth import require_admin, require_provider
from leadcrm.models.user import Principal
from leadcrm.schemas.notifications import (
    NotificationListResponse,
    NotificationOut,
    UnreadCountResponse,
)
from leadcrm.services.container import ServiceContainer, get_container
from leadcrm.services.notifications import audience_for

admin_router = APIRouter(prefix="/admin/notifications", tags=["notifications"])
provider_router = APIRouter(prefix="/provider/notifications", tags=["notifications"])


def _register_notification_routes(target: APIRouter, principal_dependency: Callable) -> None:
    @target.get("", response_model=NotificationListResponse)
    async def list_notifications(
        limit: Optional[int] = Query(None, ge=1, le=200),
        principal: Principal = Depends(principal_dependency),
        container: ServiceContainer = Depends(get_container),
    ):
        items = container.inbox.list(audience_for(principal), limit=limit)
        return NotificationListResponse(data=[NotificationOut.from_notification(item) for item in items])

    @target.get("/unread", response_model=UnreadCountResponse)
    async def unread_count(
        principal: Principal = Depends(principal_dependency),
        container: ServiceContainer = Depends(get_container),
    ):
        return UnreadCountResponse(count=container.inbox.unread_count(audience_for(principal)))

    @target.post("/read-all")
    async def mark_all_read(
        principal: Principal = Depends(principal_dependency),
        container: ServiceContainer = Depends(get_container),
    ):
        updated = container.inbox.mark_all_read(audience_for(principal))
        return {"message": "All notifications marked as read", "updated": updated}

    @target.post("/{notification_id}/read", response_model=NotificationOut)
    async def mark_read(
        notification_id: str,
        principal: Principal = Depends(principal_dependency),
        container: ServiceContainer = Depends(get_container),
    ):
        return NotificationOut.from_notification(container.inbox.mark_read(audience_for(principal), notification_id))


_register_notification_routes(admin_router, require_admin)
_register_notification_routes(provider_router, require_provider)
