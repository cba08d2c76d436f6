"""
Business logic services organized by domain functionality.
"""

from leadcrm.services.assignment import (
    AssignmentResolver,
    AssignmentResult,
    MemoryCursorStore,
    RedisCursorStore,
    ZipPrefixDistance,
)
from leadcrm.services.broadcasting import ChannelAuthorizer, generate_channel_signature
from leadcrm.services.container import ServiceContainer, build_container
from leadcrm.services.events import ADMIN_CHANNEL, EventBus, provider_channel
from leadcrm.services.lead_status import LeadStatusMachine, StatusChange
from leadcrm.services.lead_workflow import LeadWorkflow
from leadcrm.services.notifications import NotificationInbox
from leadcrm.services.store import LeadStore

__all__ = [
    # Assignment
    "AssignmentResolver",
    "AssignmentResult",
    "MemoryCursorStore",
    "RedisCursorStore",
    "ZipPrefixDistance",
    # Realtime
    "ADMIN_CHANNEL",
    "ChannelAuthorizer",
    "EventBus",
    "generate_channel_signature",
    "provider_channel",
    # Lifecycle
    "LeadStatusMachine",
    "LeadStore",
    "LeadWorkflow",
    "NotificationInbox",
    "StatusChange",
    # Wiring
    "ServiceContainer",
    "build_container",
]
