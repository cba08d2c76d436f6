from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from leadcrm.models.lead import Lead, LeadNote, LeadStatus, NoteType, ProjectType, Timing
from leadcrm.models.location import Location
from leadcrm.models.provider import ServiceProvider

PHONE_PATTERN = r"^[\d\s\-\+\(\)]+$"


class LeadCreate(BaseModel):
    location_slug: str = Field(min_length=1, max_length=120)
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=1, max_length=32, pattern=PHONE_PATTERN)
    email: EmailStr
    zip_code: str = Field(min_length=1, max_length=10)
    project_type: ProjectType
    timing: Timing
    notes: Optional[str] = Field(default=None, max_length=5000)


class LeadUpdate(BaseModel):
    status: Optional[LeadStatus] = None


class LeadReassign(BaseModel):
    service_provider_id: int = Field(ge=1)


class LocationRef(BaseModel):
    id: int
    name: str
    slug: Optional[str] = None


class ProviderRef(BaseModel):
    id: int
    name: str


class UserRef(BaseModel):
    id: Optional[int] = None
    name: str


class LeadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    phone: str
    email: str
    zip_code: str
    project_type: ProjectType
    timing: Timing
    notes: Optional[str] = None
    status: LeadStatus
    created_at: datetime
    location: Optional[LocationRef] = None
    service_provider: Optional[ProviderRef] = None

    @classmethod
    def from_lead(
        cls,
        lead: Lead,
        location: Optional[Location] = None,
        provider: Optional[ServiceProvider] = None,
    ) -> "LeadOut":
        return cls(
            id=lead.id,
            name=lead.name,
            phone=lead.phone,
            email=lead.email,
            zip_code=lead.zip_code,
            project_type=lead.project_type,
            timing=lead.timing,
            notes=lead.notes,
            status=lead.status,
            created_at=lead.created_at,
            location=LocationRef(id=location.id, name=location.name, slug=location.slug) if location else None,
            service_provider=ProviderRef(id=provider.id, name=provider.name) if provider else None,
        )


class LeadListResponse(BaseModel):
    data: List[LeadOut]


class LeadNoteCreate(BaseModel):
    note: str = Field(min_length=1, max_length=5000)


class LeadNoteOut(BaseModel):
    id: int
    note: str
    type: NoteType
    created_at: datetime
    user: Optional[UserRef] = None
    service_provider: Optional[ProviderRef] = None

    @classmethod
    def from_note(cls, note: LeadNote) -> "LeadNoteOut":
        user = None
        if note.user_id is not None or note.user_name:
            user = UserRef(id=note.user_id, name=note.user_name or "Admin")
        provider = None
        if note.service_provider_id is not None:
            provider = ProviderRef(id=note.service_provider_id, name=note.service_provider_name or "")
        return cls(
            id=note.id,
            note=note.note,
            type=note.type,
            created_at=note.created_at,
            user=user,
            service_provider=provider,
        )


class LeadFilters(BaseModel):
    location_id: Optional[int] = None
    status: Optional[LeadStatus] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class LeadNoteListResponse(BaseModel):
    data: List[LeadNoteOut]
