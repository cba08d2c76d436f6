"""
In-memory entity store backing the lead service.

Persistence is outside this service's contract; the store keeps entities in
process memory and can be bootstrapped from a JSON seed file.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from itertools import count
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from leadcrm.core.exceptions import AuthenticationError, ConflictError, NotFoundError
from leadcrm.core.logging import get_structlog_logger
from leadcrm.core.security import TokenManager
from leadcrm.models.lead import Lead, LeadNote, LeadStatus, NoteType, ProjectType, Timing
from leadcrm.models.location import AssignmentAlgorithm, Location
from leadcrm.models.provider import (
    PlanInterval,
    ServiceProvider,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)

logger = get_structlog_logger(__name__)


class LeadStore:
    def __init__(self):
        self.locations: Dict[int, Location] = {}
        self.providers: Dict[int, ServiceProvider] = {}
        self.plans: Dict[int, SubscriptionPlan] = {}
        self.leads: Dict[int, Lead] = {}
        self._counters = {
            "location": count(1),
            "provider": count(1),
            "plan": count(1),
            "lead": count(1),
            "note": count(1),
        }

    def _next_id(self, kind: str) -> int:
        return next(self._counters[kind])

    # Locations

    def add_location(
        self,
        name: str,
        slug: str,
        address: Optional[str] = None,
        assignment_algorithm: Union[str, AssignmentAlgorithm] = AssignmentAlgorithm.ROUND_ROBIN,
        provider_ids: Iterable[int] = (),
    ) -> Location:
        if any(location.slug == slug for location in self.locations.values()):
            raise ConflictError(
                message=f"Location slug '{slug}' is already in use",
                code="slug_taken",
                details={"errors": {"slug": "The slug has already been taken."}},
            )

        location = Location(
            id=self._next_id("location"),
            name=name,
            slug=slug,
            address=address,
            assignment_algorithm=AssignmentAlgorithm(assignment_algorithm),
        )
        self.locations[location.id] = location
        if provider_ids:
            self.assign_providers(location.id, provider_ids)
        return location

    def get_location(self, location_id: int) -> Location:
        location = self.locations.get(location_id)
        if location is None:
            raise NotFoundError(message="Location not found", details={"location_id": location_id})
        return location

    def get_location_by_slug(self, slug: str) -> Location:
        for location in self.locations.values():
            if location.slug == slug:
                return location
        raise NotFoundError(message="Location not found", details={"location_slug": slug})

    def assign_providers(self, location_id: int, provider_ids: Iterable[int]) -> Location:
        """Replace the location's provider pool."""
        location = self.get_location(location_id)
        new_ids = []
        for provider_id in provider_ids:
            self.get_provider(provider_id)
            if provider_id not in new_ids:
                new_ids.append(provider_id)

        for provider_id in location.provider_ids:
            self.providers[provider_id].location_ids.discard(location.id)
        for provider_id in new_ids:
            self.providers[provider_id].location_ids.add(location.id)

        location.provider_ids = new_ids
        return location

    # Providers and plans

    def add_provider(
        self,
        name: str,
        email: str,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        password: Optional[str] = None,
        is_active: bool = True,
        subscription: Optional[Subscription] = None,
    ) -> ServiceProvider:
        provider = ServiceProvider(
            id=self._next_id("provider"),
            name=name,
            email=email,
            phone=phone,
            address=address,
            is_active=is_active,
            password_hash=TokenManager.hash_password(password) if password else None,
            subscription=subscription,
        )
        self.providers[provider.id] = provider
        return provider

    def get_provider(self, provider_id: int) -> ServiceProvider:
        provider = self.providers.get(provider_id)
        if provider is None:
            raise NotFoundError(message="Service provider not found", details={"service_provider_id": provider_id})
        return provider

    def authenticate_provider(self, email: str, password: str) -> ServiceProvider:
        """Provider owning ``email`` if ``password`` matches its stored hash."""
        wanted = email.strip().lower()
        provider = next((p for p in self.providers.values() if p.email.lower() == wanted), None)
        if provider is None or not TokenManager.verify_password(password, provider.password_hash):
            logger.warning("provider.login_failed", email=wanted)
            raise AuthenticationError(message="Invalid email or password", code="invalid_credentials")
        return provider

    def set_provider_active(self, provider_id: int, is_active: bool) -> ServiceProvider:
        provider = self.get_provider(provider_id)
        provider.is_active = is_active
        logger.info("provider.activation_changed", provider_id=provider_id, is_active=is_active)
        return provider

    def add_plan(
        self,
        name: str,
        stripe_price_id: str,
        price: Union[str, Decimal],
        interval: Union[str, PlanInterval] = PlanInterval.MONTHLY,
        trial_days: int = 0,
        features: Iterable[str] = (),
        is_active: bool = True,
        sort_order: int = 0,
    ) -> SubscriptionPlan:
        plan = SubscriptionPlan(
            id=self._next_id("plan"),
            name=name,
            stripe_price_id=stripe_price_id,
            price=Decimal(str(price)),
            interval=PlanInterval(interval),
            trial_days=trial_days,
            features=list(features),
            is_active=is_active,
            sort_order=sort_order,
        )
        self.plans[plan.id] = plan
        return plan

    # Leads and notes

    def add_lead(
        self,
        location_id: int,
        name: str,
        phone: str,
        email: str,
        zip_code: str,
        project_type: Union[str, ProjectType],
        timing: Union[str, Timing],
        notes: Optional[str] = None,
    ) -> Lead:
        lead = Lead(
            id=self._next_id("lead"),
            location_id=location_id,
            name=name,
            phone=phone,
            email=email,
            zip_code=zip_code,
            project_type=ProjectType(project_type),
            timing=Timing(timing),
            notes=notes,
        )
        self.leads[lead.id] = lead
        return lead

    def get_lead(self, lead_id: int) -> Lead:
        lead = self.leads.get(lead_id)
        if lead is None:
            raise NotFoundError(message="Lead not found", details={"lead_id": lead_id})
        return lead

    def append_note(
        self,
        lead: Lead,
        text: str,
        note_type: NoteType = NoteType.NOTE,
        user_id: Optional[int] = None,
        user_name: Optional[str] = None,
        provider: Optional[ServiceProvider] = None,
    ) -> LeadNote:
        note = LeadNote(
            id=self._next_id("note"),
            lead_id=lead.id,
            note=text,
            type=note_type,
            user_id=user_id,
            user_name=user_name,
            service_provider_id=provider.id if provider else None,
            service_provider_name=provider.name if provider else None,
        )
        lead.note_log.append(note)
        return note

    def query_leads(
        self,
        location_id: Optional[int] = None,
        status: Optional[LeadStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        provider_id: Optional[int] = None,
    ) -> List[Lead]:
        results = []
        for lead in self.leads.values():
            if location_id is not None and lead.location_id != location_id:
                continue
            if status is not None and lead.status is not status:
                continue
            if provider_id is not None and lead.service_provider_id != provider_id:
                continue
            if date_from is not None and lead.created_at < _aware(date_from, lead.created_at):
                continue
            if date_to is not None and lead.created_at > _aware(date_to, lead.created_at):
                continue
            results.append(lead)
        return sorted(results, key=lambda lead: (lead.created_at, lead.id), reverse=True)

    def open_lead_counts(self, provider_ids: Iterable[int]) -> Dict[int, int]:
        counts = {provider_id: 0 for provider_id in provider_ids}
        for lead in self.leads.values():
            if lead.service_provider_id in counts and lead.is_open:
                counts[lead.service_provider_id] += 1
        return counts

    # Bootstrap

    def load_seed(self, source: Union[str, Path, Dict[str, Any]]) -> None:
        """Load plans, providers and locations from a JSON file or dict.

        Provider references in ``locations[].provider_ids`` are 1-based
        positions in ``providers``.
        """
        data = source if isinstance(source, dict) else json.loads(Path(source).read_text(encoding="utf-8"))

        for plan in data.get("plans", []):
            self.add_plan(**plan)

        created: List[ServiceProvider] = []
        for raw in data.get("providers", []):
            raw = dict(raw)
            subscription = raw.pop("subscription", None)
            if subscription:
                subscription = Subscription(
                    status=SubscriptionStatus(subscription["status"]),
                    plan_id=subscription.get("plan_id"),
                )
            created.append(self.add_provider(subscription=subscription, **raw))

        for raw in data.get("locations", []):
            raw = dict(raw)
            positions = raw.pop("provider_ids", [])
            self.add_location(provider_ids=[created[position - 1].id for position in positions], **raw)

        logger.info(
            "store.seeded",
            plans=len(self.plans),
            providers=len(self.providers),
            locations=len(self.locations),
        )


def _aware(value: datetime, reference: datetime) -> datetime:
    if value.tzinfo is None and reference.tzinfo is not None:
        return value.replace(tzinfo=reference.tzinfo)
    return value
