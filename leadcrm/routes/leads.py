from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query, status

from leadcrm.core.logging import get_structlog_logger
from leadcrm.middleware.auth import require_admin, require_provider_lead_access
from leadcrm.models.lead import LeadStatus
from leadcrm.models.user import Principal
from leadcrm.schemas.leads import (
    LeadCreate,
    LeadFilters,
    LeadListResponse,
    LeadNoteCreate,
    LeadNoteListResponse,
    LeadNoteOut,
    LeadOut,
    LeadReassign,
    LeadUpdate,
)
from leadcrm.services.container import get_workflow
from leadcrm.services.lead_workflow import LeadWorkflow

logger = get_structlog_logger(__name__)

# Public lead capture
router = APIRouter(prefix="/leads", tags=["leads"])

admin_router = APIRouter(prefix="/admin/leads", tags=["admin-leads"])
provider_router = APIRouter(prefix="/provider/leads", tags=["provider-leads"])


@router.post("", response_model=LeadOut, status_code=status.HTTP_201_CREATED)
async def submit_lead(
    payload: LeadCreate,
    workflow: LeadWorkflow = Depends(get_workflow),
):
    """Capture a lead from the public form and run assignment.

    An empty provider pool leaves the lead unassigned; the submitter never
    sees an assignment failure.
    """
    lead = await workflow.submit_lead(payload)
    return workflow.present(lead)


@admin_router.get("", response_model=LeadListResponse)
async def list_admin_leads(
    location_id: Optional[int] = Query(None, ge=1),
    status: Optional[LeadStatus] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    principal: Principal = Depends(require_admin),
    workflow: LeadWorkflow = Depends(get_workflow),
):
    filters = LeadFilters(location_id=location_id, status=status, date_from=date_from, date_to=date_to)
    leads = workflow.list_leads(principal, filters)
    return LeadListResponse(data=[workflow.present(lead) for lead in leads])


@provider_router.get("", response_model=LeadListResponse)
async def list_provider_leads(
    status: Optional[LeadStatus] = Query(None),
    principal: Principal = Depends(require_provider_lead_access),
    workflow: LeadWorkflow = Depends(get_workflow),
):
    leads = workflow.list_leads(principal, LeadFilters(status=status))
    return LeadListResponse(data=[workflow.present(lead) for lead in leads])


def _register_lead_routes(target: APIRouter, principal_dependency: Callable) -> None:
    """Detail, update and note routes shared by the admin and provider APIs."""

    @target.get("/{lead_id}", response_model=LeadOut)
    async def get_lead(
        lead_id: int,
        principal: Principal = Depends(principal_dependency),
        workflow: LeadWorkflow = Depends(get_workflow),
    ):
        return workflow.present(workflow.get_lead(principal, lead_id))

    @target.put("/{lead_id}", response_model=LeadOut)
    async def update_lead(
        lead_id: int,
        payload: LeadUpdate,
        principal: Principal = Depends(principal_dependency),
        workflow: LeadWorkflow = Depends(get_workflow),
    ):
        lead = await workflow.update_lead(principal, lead_id, payload.status)
        return workflow.present(lead)

    @target.get("/{lead_id}/notes", response_model=LeadNoteListResponse)
    async def list_notes(
        lead_id: int,
        principal: Principal = Depends(principal_dependency),
        workflow: LeadWorkflow = Depends(get_workflow),
    ):
        notes = workflow.list_notes(principal, lead_id)
        return LeadNoteListResponse(data=[LeadNoteOut.from_note(note) for note in notes])

    @target.post("/{lead_id}/notes", response_model=LeadNoteOut, status_code=status.HTTP_201_CREATED)
    async def add_note(
        lead_id: int,
        payload: LeadNoteCreate,
        principal: Principal = Depends(principal_dependency),
        workflow: LeadWorkflow = Depends(get_workflow),
    ):
        note = await workflow.add_note(principal, lead_id, payload.note)
        return LeadNoteOut.from_note(note)


@admin_router.put("/{lead_id}/reassign", response_model=LeadOut)
async def reassign_lead(
    lead_id: int,
    payload: LeadReassign,
    principal: Principal = Depends(require_admin),
    workflow: LeadWorkflow = Depends(get_workflow),
):
    """Assign the lead to a provider directly, bypassing the location's algorithm."""
    lead = await workflow.reassign_lead(principal, lead_id, payload.service_provider_id)
    return workflow.present(lead)


_register_lead_routes(admin_router, require_admin)
_register_lead_routes(provider_router, require_provider_lead_access)
