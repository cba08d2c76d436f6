"""
Pydantic schemas for request/response validation and serialization.
"""

from leadcrm.schemas.events import (
    LeadAssignedEvent,
    LeadEvent,
    LeadNoteCreatedEvent,
    LeadStatusUpdatedEvent,
    LeadSummary,
    parse_event,
)
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
from leadcrm.schemas.notifications import (
    NotificationData,
    NotificationListResponse,
    NotificationOut,
    UnreadCountResponse,
)
from leadcrm.schemas.settings import (
    ChannelAuthRequest,
    ChannelAuthResponse,
    LocationOut,
    ProviderOut,
    RealtimeConfig,
    SubscriptionStatusResponse,
)

__all__ = [
    "ChannelAuthRequest",
    "ChannelAuthResponse",
    "LeadAssignedEvent",
    "LeadCreate",
    "LeadEvent",
    "LeadFilters",
    "LeadListResponse",
    "LeadNoteCreate",
    "LeadNoteListResponse",
    "LeadNoteCreatedEvent",
    "LeadNoteOut",
    "LeadOut",
    "LeadReassign",
    "LeadStatusUpdatedEvent",
    "LeadSummary",
    "LeadUpdate",
    "LocationOut",
    "NotificationData",
    "NotificationListResponse",
    "NotificationOut",
    "ProviderOut",
    "RealtimeConfig",
    "SubscriptionStatusResponse",
    "UnreadCountResponse",
    "parse_event",
]
