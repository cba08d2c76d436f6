"""
Domain entities held by the in-memory lead store.
"""

from leadcrm.models.lead import Lead, LeadNote, LeadStatus, NoteType, ProjectType, Timing
from leadcrm.models.location import AssignmentAlgorithm, Location
from leadcrm.models.notification import EventType, Notification, NotificationType
from leadcrm.models.provider import (
    PlanInterval,
    ServiceProvider,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from leadcrm.models.user import Principal, Role

__all__ = [
    "AssignmentAlgorithm",
    "EventType",
    "Lead",
    "LeadNote",
    "LeadStatus",
    "Location",
    "NoteType",
    "Notification",
    "NotificationType",
    "PlanInterval",
    "Principal",
    "ProjectType",
    "Role",
    "ServiceProvider",
    "Subscription",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "Timing",
]
