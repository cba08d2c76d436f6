"""
Lead lifecycle orchestration.

Ties together the store, the assignment resolver, the status machine, the
event bus and the notification inbox. Every state change follows the same
path: mutate, append a note, then fan the event out to the ``admin`` channel
and the owning provider's private channel.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from leadcrm.core.exceptions import (
    AccountInactiveError,
    AuthenticationError,
    AuthorizationError,
    SubscriptionInactiveError,
)
from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.lead import Lead, LeadNote, LeadStatus, NoteType
from leadcrm.models.location import Location
from leadcrm.models.provider import ServiceProvider
from leadcrm.models.user import Principal
from leadcrm.schemas.events import (
    LeadAssignedEvent,
    LeadEvent,
    LeadNoteCreatedEvent,
    LeadStatusUpdatedEvent,
    LeadSummary,
)
from leadcrm.schemas.leads import LeadCreate, LeadFilters, LeadOut
from leadcrm.services.assignment import AssignmentResolver, AssignmentResult
from leadcrm.services.events import ADMIN_CHANNEL, EventBus, provider_channel
from leadcrm.services.lead_status import LeadStatusMachine
from leadcrm.services.notifications import ADMIN_AUDIENCE, NotificationInbox, provider_audience
from leadcrm.services.store import LeadStore

logger = get_structlog_logger(__name__)


class LeadWorkflow:
    def __init__(
        self,
        store: LeadStore,
        resolver: AssignmentResolver,
        event_bus: EventBus,
        inbox: NotificationInbox,
        status_machine: Optional[LeadStatusMachine] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.event_bus = event_bus
        self.inbox = inbox
        self.status_machine = status_machine or LeadStatusMachine()

    # Provider gate

    def provider_for(self, principal: Principal, require_subscription: bool = False) -> ServiceProvider:
        """Resolve the provider behind ``principal`` and enforce access rules.

        An inactive account is rejected regardless of subscription state.
        """
        provider = self.store.providers.get(principal.provider_id)
        if provider is None:
            raise AuthenticationError(message="Unknown service provider", code="invalid_token")

        if not provider.is_active:
            logger.warning("provider.inactive_rejected", provider_id=provider.id)
            raise AccountInactiveError()

        if require_subscription and not provider.has_active_subscription:
            logger.info("provider.subscription_required", provider_id=provider.id)
            raise SubscriptionInactiveError()

        return provider

    def _ensure_lead_access(self, principal: Principal) -> None:
        if principal.is_provider:
            self.provider_for(principal, require_subscription=True)

    def _authorize(self, principal: Principal, lead: Lead) -> None:
        if principal.is_provider and lead.service_provider_id != principal.provider_id:
            logger.warning(
                "lead.access_denied",
                lead_id=lead.id,
                provider_id=principal.provider_id,
            )
            raise AuthorizationError(
                message="This lead is not assigned to you",
                code="lead_not_assigned",
                details={"lead_id": lead.id},
            )

    def _load(self, principal: Principal, lead_id: int) -> Lead:
        self._ensure_lead_access(principal)
        lead = self.store.get_lead(lead_id)
        self._authorize(principal, lead)
        return lead

    # Presentation

    def present(self, lead: Lead) -> LeadOut:
        location = self.store.locations.get(lead.location_id)
        provider = self.store.providers.get(lead.service_provider_id) if lead.service_provider_id else None
        return LeadOut.from_lead(lead, location=location, provider=provider)

    # Operations

    async def submit_lead(self, payload: LeadCreate) -> Lead:
        location = self.store.get_location_by_slug(payload.location_slug)
        lead = self.store.add_lead(
            location_id=location.id,
            name=payload.name,
            phone=payload.phone,
            email=str(payload.email),
            zip_code=payload.zip_code,
            project_type=payload.project_type,
            timing=payload.timing,
            notes=payload.notes,
        )
        logger.info("lead.submitted", lead_id=lead.id, location_id=location.id)

        result = await self._resolve(lead, location)
        if result.assigned:
            provider = self.store.get_provider(result.provider_id)
            await self._assign(lead, provider, f"Lead assigned to {provider.name} ({result.algorithm.value})")
        else:
            logger.info(
                "lead.left_unassigned",
                lead_id=lead.id,
                reason=result.no_assignment_reason,
            )

        return lead

    async def _resolve(self, lead: Lead, location: Location) -> AssignmentResult:
        pool = self.resolver.eligible_pool(location, self.store.providers)
        counts = self.store.open_lead_counts(provider.id for provider in pool)
        return await self.resolver.resolve(lead, location, pool, open_lead_counts=counts)

    async def _assign(self, lead: Lead, provider: ServiceProvider, note_text: str) -> None:
        lead.service_provider_id = provider.id
        self.store.append_note(lead, note_text, NoteType.ASSIGNMENT)
        await self._emit(
            lead,
            LeadAssignedEvent(
                lead=self._summary(lead),
                message=f"New lead assigned: {lead.name}",
                service_provider_id=provider.id,
            ),
        )

    def list_leads(self, principal: Principal, filters: Optional[LeadFilters] = None) -> List[Lead]:
        filters = filters or LeadFilters()
        if principal.is_provider:
            self._ensure_lead_access(principal)
            # Providers only ever see their own leads; location and date
            # filters belong to the admin listing
            return self.store.query_leads(provider_id=principal.provider_id, status=filters.status)

        return self.store.query_leads(
            location_id=filters.location_id,
            status=filters.status,
            date_from=filters.date_from,
            date_to=filters.date_to,
        )

    def get_lead(self, principal: Principal, lead_id: int) -> Lead:
        return self._load(principal, lead_id)

    async def update_lead(self, principal: Principal, lead_id: int, status: Optional[LeadStatus]) -> Lead:
        lead = self._load(principal, lead_id)
        if status is None:
            return lead

        change = self.status_machine.transition(lead, status)
        if change is None:
            return lead

        self.store.append_note(lead, change.note_text, NoteType.STATUS_CHANGE, **self._author(principal))
        await self._emit(
            lead,
            LeadStatusUpdatedEvent(
                lead=self._summary(lead),
                message=f"Lead '{lead.name}' status changed to {change.new_status.value}",
                old_status=change.old_status,
                new_status=change.new_status,
            ),
        )
        return lead

    async def reassign_lead(self, principal: Principal, lead_id: int, provider_id: int) -> Lead:
        if not principal.is_admin:
            raise AuthorizationError(message="Only admins can reassign leads")

        lead = self.store.get_lead(lead_id)
        provider = self.store.get_provider(provider_id)
        previous = lead.service_provider_id

        await self._assign(lead, provider, f"Lead reassigned to {provider.name}")
        logger.info(
            "lead.reassigned",
            lead_id=lead.id,
            from_provider_id=previous,
            to_provider_id=provider.id,
        )
        return lead

    def list_notes(self, principal: Principal, lead_id: int) -> List[LeadNote]:
        return list(self._load(principal, lead_id).note_log)

    async def add_note(self, principal: Principal, lead_id: int, text: str) -> LeadNote:
        lead = self._load(principal, lead_id)
        note = self.store.append_note(lead, text, NoteType.NOTE, **self._author(principal))
        logger.info("lead.note_added", lead_id=lead.id, note_id=note.id, role=principal.role.value)

        await self._emit(
            lead,
            LeadNoteCreatedEvent(
                lead=self._summary(lead),
                message=f"New note added to lead '{lead.name}'",
                note_id=note.id,
            ),
        )
        return note

    # Admin provider management

    def set_provider_active(self, provider_id: int, is_active: bool) -> ServiceProvider:
        return self.store.set_provider_active(provider_id, is_active)

    def assign_providers(self, location_id: int, provider_ids: Iterable[int]) -> Location:
        location = self.store.assign_providers(location_id, provider_ids)
        logger.info("location.providers_assigned", location_id=location.id, provider_ids=location.provider_ids)
        return location

    # Helpers

    def _author(self, principal: Principal) -> dict:
        if principal.is_provider:
            return {"provider": self.store.providers.get(principal.provider_id)}
        return {"user_id": principal.user_id, "user_name": principal.name}

    @staticmethod
    def _summary(lead: Lead) -> LeadSummary:
        return LeadSummary(
            id=lead.id,
            name=lead.name,
            status=lead.status,
            service_provider_id=lead.service_provider_id,
        )

    async def _emit(self, lead: Lead, event: LeadEvent) -> None:
        self.inbox.record(ADMIN_AUDIENCE, event)
        await self.event_bus.publish(ADMIN_CHANNEL, event)

        if lead.service_provider_id is not None:
            self.inbox.record(provider_audience(lead.service_provider_id), event)
            await self.event_bus.publish(provider_channel(lead.service_provider_id), event)
