"""
Realtime event payloads.

The wire payload of every event is ``{"lead": {"id", "name", ...}, "message"?}``
and the Pusher event name carries the type. Here each event type is its own
model tagged by ``type`` so a handler only sees the fields that type carries.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from leadcrm.models.lead import LeadStatus
from leadcrm.models.notification import EventType


class LeadSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    status: Optional[LeadStatus] = None
    service_provider_id: Optional[int] = None


class _LeadEventBase(BaseModel):
    lead: LeadSummary
    message: Optional[str] = None

    @property
    def lead_id(self) -> int:
        return self.lead.id

    @property
    def event_type(self) -> EventType:
        return EventType(self.type)

    def display_message(self) -> str:
        return self.message or self._fallback_message()

    def _fallback_message(self) -> str:
        raise NotImplementedError

    def to_payload(self) -> Dict[str, Any]:
        """Wire payload without the ``type`` tag."""
        return self.model_dump(mode="json", exclude={"type"}, exclude_none=True)


class LeadAssignedEvent(_LeadEventBase):
    type: Literal["lead.assigned"] = "lead.assigned"
    service_provider_id: Optional[int] = None

    def _fallback_message(self) -> str:
        return f"New lead assigned: {self.lead.name}"


class LeadStatusUpdatedEvent(_LeadEventBase):
    type: Literal["lead.status.updated"] = "lead.status.updated"
    old_status: Optional[LeadStatus] = None
    new_status: Optional[LeadStatus] = None

    def _fallback_message(self) -> str:
        return f"Lead '{self.lead.name}' status changed"


class LeadNoteCreatedEvent(_LeadEventBase):
    type: Literal["lead.note.created"] = "lead.note.created"
    note_id: Optional[int] = None

    def _fallback_message(self) -> str:
        return f"New note added to lead '{self.lead.name}'"


LeadEvent = Annotated[
    Union[LeadAssignedEvent, LeadStatusUpdatedEvent, LeadNoteCreatedEvent],
    Field(discriminator="type"),
]

_lead_event_adapter = TypeAdapter(LeadEvent)


def parse_event(event_name: str, payload: Dict[str, Any]) -> LeadEvent:
    """Build the typed event for a wire payload received under ``event_name``.

    Raises ``ValueError`` for unknown event names and pydantic's
    ``ValidationError`` for payloads missing the lead reference.
    """
    event_type = EventType(event_name)
    return _lead_event_adapter.validate_python({**payload, "type": event_type.value})
