from __future__ import annotations

from fastapi import APIRouter, Depends

from leadcrm.core.logging import get_structlog_logger
from leadcrm.middleware.auth import require_admin, require_provider
from leadcrm.models.user import Principal
from leadcrm.schemas.settings import (
    AssignProvidersRequest,
    LocationOut,
    ProviderOut,
    SubscriptionOut,
    SubscriptionStatusResponse,
)
from leadcrm.services.container import get_workflow
from leadcrm.services.lead_workflow import LeadWorkflow

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["providers"])


@router.get("/provider/subscription/status", response_model=SubscriptionStatusResponse)
async def subscription_status(
    principal: Principal = Depends(require_provider),
    workflow: LeadWorkflow = Depends(get_workflow),
):
    provider = workflow.provider_for(principal)
    subscription = None
    if provider.subscription is not None:
        subscription = SubscriptionOut(
            status=provider.subscription.status,
            plan_id=provider.subscription.plan_id,
            current_period_end=provider.subscription.current_period_end,
        )
    return SubscriptionStatusResponse(
        subscription=subscription,
        has_active_subscription=provider.has_active_subscription,
    )


@router.post("/admin/service-providers/{provider_id}/activate", response_model=ProviderOut)
async def activate_provider(
    provider_id: int,
    principal: Principal = Depends(require_admin),
    workflow: LeadWorkflow = Depends(get_workflow),
):
    return ProviderOut.from_provider(workflow.set_provider_active(provider_id, True))


@router.post("/admin/service-providers/{provider_id}/deactivate", response_model=ProviderOut)
async def deactivate_provider(
    provider_id: int,
    principal: Principal = Depends(require_admin),
    workflow: LeadWorkflow = Depends(get_workflow),
):
    return ProviderOut.from_provider(workflow.set_provider_active(provider_id, False))


@router.post("/admin/locations/{location_id}/assign-providers", response_model=LocationOut)
async def assign_providers(
    location_id: int,
    payload: AssignProvidersRequest,
    principal: Principal = Depends(require_admin),
    workflow: LeadWorkflow = Depends(get_workflow),
):
    """Replace the provider pool used by the location's assignment algorithm."""
    return LocationOut.from_location(workflow.assign_providers(location_id, payload.service_provider_ids))
