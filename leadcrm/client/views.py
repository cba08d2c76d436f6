from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from leadcrm.client.http import ApiClient
from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.lead import LeadStatus
from leadcrm.schemas.events import LeadEvent
from leadcrm.schemas.leads import LeadNoteOut, LeadOut

logger = get_structlog_logger(__name__)


class RefreshableView(Protocol):
    async def refetch(self) -> Any:
        ...

    async def handle_event(self, event: LeadEvent) -> bool:
        """Refetch if ``event`` concerns this view. Returns whether it did."""
        ...


class LeadListView:
    """A dashboard's lead list.

    The server is the source of truth: a refetch replaces the local list
    wholesale and event payloads never patch it.
    """

    def __init__(self, api: ApiClient, **filters: Any):
        self.api = api
        self.filters: Dict[str, Any] = filters
        self.leads: List[LeadOut] = []
        self.fetch_count = 0

    async def refetch(self) -> List[LeadOut]:
        self.leads = await self.api.list_leads(**self.filters)
        self.fetch_count += 1
        logger.debug("view.leads_fetched", count=len(self.leads), filters=self.filters)
        return self.leads

    async def handle_event(self, event: LeadEvent) -> bool:
        await self.refetch()
        return True

    def find(self, lead_id: int) -> Optional[LeadOut]:
        for lead in self.leads:
            if lead.id == lead_id:
                return lead
        return None

    def column(self, status: LeadStatus) -> List[LeadOut]:
        return [lead for lead in self.leads if lead.status is status]

    def board(self) -> Dict[LeadStatus, List[int]]:
        return {status: [lead.id for lead in self.column(status)] for status in LeadStatus}


class LeadNotesView:
    def __init__(self, api: ApiClient, lead_id: int):
        self.api = api
        self.lead_id = lead_id
        self.notes: List[LeadNoteOut] = []
        self.fetch_count = 0

    async def refetch(self) -> List[LeadNoteOut]:
        self.notes = await self.api.list_notes(self.lead_id)
        self.fetch_count += 1
        return self.notes

    async def handle_event(self, event: LeadEvent) -> bool:
        if event.lead_id != self.lead_id:
            return False
        await self.refetch()
        return True

    async def add(self, text: str) -> LeadNoteOut:
        note = await self.api.add_note(self.lead_id, text)
        await self.refetch()
        return note
