from __future__ import annotations

from fastapi import APIRouter, Depends

from leadcrm.core.config import Settings
from leadcrm.middleware.auth import require_admin, require_provider
from leadcrm.models.user import Principal
from leadcrm.schemas.settings import RealtimeConfig
from leadcrm.services.container import ServiceContainer, get_container

router = APIRouter(tags=["settings"])


def realtime_config(settings: Settings) -> RealtimeConfig:
    """Public half of the Pusher settings; the secret never leaves the server."""
    return RealtimeConfig(
        enabled=settings.realtime_configured,
        app_key=settings.pusher_app_key,
        app_cluster=settings.pusher_app_cluster,
        ws_url=settings.pusher_ws_url,
    )


@router.get("/admin/settings/group/pusher", response_model=RealtimeConfig)
async def admin_pusher_settings(
    principal: Principal = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
):
    return realtime_config(container.settings)


@router.get("/provider/settings/pusher", response_model=RealtimeConfig)
async def provider_pusher_settings(
    principal: Principal = Depends(require_provider),
    container: ServiceContainer = Depends(get_container),
):
    return realtime_config(container.settings)
