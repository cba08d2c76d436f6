"""
Async client SDK for dashboards and tooling that talk to the lead API.
"""

from leadcrm.client.http import ApiClient
from leadcrm.client.notifications import NotificationCenter
from leadcrm.client.realtime import RealtimeClient
from leadcrm.client.reconciler import KanbanBoard, OptimisticReconciler, PendingMutation
from leadcrm.client.session import Session
from leadcrm.client.views import LeadListView, LeadNotesView

__all__ = [
    "ApiClient",
    "KanbanBoard",
    "LeadListView",
    "LeadNotesView",
    "NotificationCenter",
    "OptimisticReconciler",
    "PendingMutation",
    "RealtimeClient",
    "Session",
]
