from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from leadcrm.core.config import Settings
from leadcrm.core.logging import get_structlog_logger
from leadcrm.services.assignment import AssignmentResolver, CursorStore, MemoryCursorStore
from leadcrm.services.broadcasting import ChannelAuthorizer
from leadcrm.services.events import EventBus
from leadcrm.services.lead_status import LeadStatusMachine
from leadcrm.services.lead_workflow import LeadWorkflow
from leadcrm.services.notifications import NotificationInbox
from leadcrm.services.redis import RedisConnection
from leadcrm.services.store import LeadStore

logger = get_structlog_logger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler needs, built once per application."""

    settings: Settings
    store: LeadStore
    resolver: AssignmentResolver
    event_bus: EventBus
    inbox: NotificationInbox
    workflow: LeadWorkflow
    authorizer: Optional[ChannelAuthorizer]
    redis: Optional[RedisConnection] = None

    def use_cursor_store(self, cursor_store: CursorStore) -> None:
        self.resolver.cursor_store = cursor_store
        logger.info("assignment.cursor_store_set", backend=type(cursor_store).__name__)


def build_container(
    settings: Settings,
    store: Optional[LeadStore] = None,
    cursor_store: Optional[CursorStore] = None,
) -> ServiceContainer:
    if store is None:
        store = LeadStore()
        if settings.seed_file:
            store.load_seed(settings.seed_file)

    resolver = AssignmentResolver(
        cursor_store or MemoryCursorStore(),
        require_active_subscription=settings.assignment_require_active_subscription,
    )
    event_bus = EventBus()
    inbox = NotificationInbox()
    workflow = LeadWorkflow(
        store=store,
        resolver=resolver,
        event_bus=event_bus,
        inbox=inbox,
        status_machine=LeadStatusMachine(),
    )

    return ServiceContainer(
        settings=settings,
        store=store,
        resolver=resolver,
        event_bus=event_bus,
        inbox=inbox,
        workflow=workflow,
        authorizer=ChannelAuthorizer.from_settings(settings),
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_workflow(request: Request) -> LeadWorkflow:
    return request.app.state.container.workflow
