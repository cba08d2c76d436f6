from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    CLOSED = "closed"

    @property
    def is_open(self) -> bool:
        return self in (LeadStatus.NEW, LeadStatus.CONTACTED)


class ProjectType(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    RENOVATION = "renovation"
    NEW_CONSTRUCTION = "new-construction"
    OTHER = "other"


class Timing(str, Enum):
    IMMEDIATE = "immediate"
    ONE_TO_THREE_MONTHS = "1-3-months"
    THREE_TO_SIX_MONTHS = "3-6-months"
    SIX_TO_TWELVE_MONTHS = "6-12-months"
    PLANNING = "planning"


class NoteType(str, Enum):
    NOTE = "note"
    STATUS_CHANGE = "status_change"
    ASSIGNMENT = "assignment"

    @property
    def is_system(self) -> bool:
        return self is not NoteType.NOTE


@dataclass
class LeadNote:
    id: int
    lead_id: int
    note: str
    type: NoteType = NoteType.NOTE
    created_at: datetime = field(default_factory=utcnow)
    # Attribution is either an admin user or a provider, never both.
    # System notes may carry neither.
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    service_provider_id: Optional[int] = None
    service_provider_name: Optional[str] = None

    def __post_init__(self):
        if self.user_id is not None and self.service_provider_id is not None:
            raise ValueError("a note is authored by a user or a service provider, not both")


@dataclass
class Lead:
    """A captured lead.

    Contact fields, project details and ``created_at`` are fixed at capture
    time; only ``status`` and ``service_provider_id`` change afterwards.
    """

    id: int
    location_id: int
    name: str
    phone: str
    email: str
    zip_code: str
    project_type: ProjectType
    timing: Timing
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    status: LeadStatus = LeadStatus.NEW
    service_provider_id: Optional[int] = None
    note_log: List[LeadNote] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    @property
    def is_assigned(self) -> bool:
        return self.service_provider_id is not None
