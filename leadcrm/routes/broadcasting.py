from __future__ import annotations

from fastapi import APIRouter, Depends

from leadcrm.middleware.auth import get_principal
from leadcrm.models.user import Principal
from leadcrm.schemas.settings import ChannelAuthRequest, ChannelAuthResponse
from leadcrm.services.broadcasting import require_authorizer
from leadcrm.services.container import ServiceContainer, get_container

router = APIRouter(prefix="/broadcasting", tags=["broadcasting"])


@router.post("/auth", response_model=ChannelAuthResponse)
async def authorize_channel(
    payload: ChannelAuthRequest,
    principal: Principal = Depends(get_principal),
    container: ServiceContainer = Depends(get_container),
):
    """Sign a private channel subscription for the calling session."""
    if principal.is_provider:
        container.workflow.provider_for(principal)

    authorizer = require_authorizer(container.authorizer)
    return ChannelAuthResponse(auth=authorizer.authorize(principal, payload.socket_id, payload.channel_name))
