from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

from redis.asyncio import Redis

from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.lead import Lead
from leadcrm.models.location import AssignmentAlgorithm, Location
from leadcrm.models.provider import ServiceProvider

logger = get_structlog_logger(__name__)

_ZIP_RE = re.compile(r"\b(\d{5})(?:-\d{4})?\b")


class CursorStore(Protocol):
    """Per-location round-robin cursor that survives between assignments."""

    async def take(self, location_id: int) -> int:
        """Return the current cursor value and advance it by one."""
        ...

    async def current(self, location_id: int) -> int:
        ...


class MemoryCursorStore:
    def __init__(self):
        self._cursors: Dict[int, int] = {}

    async def take(self, location_id: int) -> int:
        value = self._cursors.get(location_id, 0)
        self._cursors[location_id] = value + 1
        return value

    async def current(self, location_id: int) -> int:
        return self._cursors.get(location_id, 0)


class RedisCursorStore:
    """Cursor kept in Redis so every API process shares one rotation."""

    def __init__(self, redis_client: Redis, prefix: str = "assignment:cursor"):
        self.redis = redis_client
        self.prefix = prefix

    def _make_key(self, location_id: int) -> str:
        return f"{self.prefix}:{location_id}"

    async def take(self, location_id: int) -> int:
        # INCR is atomic and returns the post-increment value
        return int(await self.redis.incr(self._make_key(location_id))) - 1

    async def current(self, location_id: int) -> int:
        value = await self.redis.get(self._make_key(location_id))
        return int(value) if value is not None else 0


class DistancePolicy(Protocol):
    def distance(self, lead_zip: str, provider: ServiceProvider) -> Optional[float]:
        """Smaller is closer; None when the provider cannot be placed."""
        ...


class ZipPrefixDistance:
    """Rank providers by how many leading ZIP digits they share with the lead.

    Uses the first 5-digit ZIP found in the provider's address. This is a
    coarse placeholder; a geocoding policy can replace it without touching
    the resolver.
    """

    def distance(self, lead_zip: str, provider: ServiceProvider) -> Optional[float]:
        provider_zip = extract_zip(provider.address)
        lead_zip = (lead_zip or "").strip()[:5]
        if not provider_zip or not lead_zip:
            return None

        shared = 0
        for a, b in zip(lead_zip, provider_zip):
            if a != b:
                break
            shared += 1
        return float(len(provider_zip) - shared)


def extract_zip(address: Optional[str]) -> Optional[str]:
    if not address:
        return None
    match = _ZIP_RE.search(address)
    return match.group(1) if match else None


@dataclass(frozen=True)
class AssignmentResult:
    provider_id: Optional[int]
    algorithm: AssignmentAlgorithm
    pool_size: int
    tie_broken: bool = False
    no_assignment_reason: Optional[str] = None

    @property
    def assigned(self) -> bool:
        return self.provider_id is not None


class AssignmentResolver:
    def __init__(
        self,
        cursor_store: CursorStore,
        distance_policy: Optional[DistancePolicy] = None,
        require_active_subscription: bool = True,
    ):
        self.cursor_store = cursor_store
        self.distance_policy = distance_policy or ZipPrefixDistance()
        self.require_active_subscription = require_active_subscription
        self._strategy_handlers = {
            AssignmentAlgorithm.ROUND_ROBIN: self._round_robin_strategy,
            AssignmentAlgorithm.GEOGRAPHIC: self._geographic_strategy,
            AssignmentAlgorithm.LOAD_BALANCE: self._load_balance_strategy,
        }

    def eligible_pool(
        self,
        location: Location,
        providers: Mapping[int, ServiceProvider],
    ) -> List[ServiceProvider]:
        """Providers of the location that may take a new lead, in id order."""
        pool = []
        for provider_id in sorted(set(location.provider_ids)):
            provider = providers.get(provider_id)
            if provider is None or not provider.is_active:
                continue
            if self.require_active_subscription and not provider.has_active_subscription:
                continue
            pool.append(provider)
        return pool

    async def resolve(
        self,
        lead: Lead,
        location: Location,
        pool: Sequence[ServiceProvider],
        open_lead_counts: Optional[Mapping[int, int]] = None,
    ) -> AssignmentResult:
        algorithm = location.assignment_algorithm

        if not algorithm.is_automatic:
            logger.info("assignment.manual", lead_id=lead.id, location_id=location.id)
            return AssignmentResult(
                provider_id=None,
                algorithm=algorithm,
                pool_size=len(pool),
                no_assignment_reason="manual_assignment",
            )

        if not pool:
            logger.warning(
                "assignment.empty_pool",
                lead_id=lead.id,
                location_id=location.id,
                algorithm=algorithm.value,
            )
            return AssignmentResult(
                provider_id=None,
                algorithm=algorithm,
                pool_size=0,
                no_assignment_reason="no_eligible_providers",
            )

        handler = self._strategy_handlers[algorithm]
        provider_id, tie_broken = await handler(lead, location, list(pool), open_lead_counts or {})

        logger.info(
            "assignment.resolved",
            lead_id=lead.id,
            location_id=location.id,
            algorithm=algorithm.value,
            provider_id=provider_id,
            pool_size=len(pool),
            tie_broken=tie_broken,
        )

        return AssignmentResult(
            provider_id=provider_id,
            algorithm=algorithm,
            pool_size=len(pool),
            tie_broken=tie_broken,
        )

    async def _round_robin_strategy(self, lead, location, pool, open_lead_counts):
        cursor = await self.cursor_store.take(location.id)
        return pool[cursor % len(pool)].id, False

    async def _geographic_strategy(self, lead, location, pool, open_lead_counts):
        ranked = []
        for index, provider in enumerate(pool):
            distance = self.distance_policy.distance(lead.zip_code, provider)
            # Unplaceable providers sort after every placed one
            ranked.append(((1, 0.0) if distance is None else (0, distance), index))

        best = min(key for key, _ in ranked)
        tied = [index for key, index in ranked if key == best]
        return await self._break_tie(location, pool, tied)

    async def _load_balance_strategy(self, lead, location, pool, open_lead_counts):
        loads = [open_lead_counts.get(provider.id, 0) for provider in pool]
        lowest = min(loads)
        tied = [index for index, load in enumerate(loads) if load == lowest]
        return await self._break_tie(location, pool, tied)

    async def _break_tie(self, location, pool, tied_indexes):
        if len(tied_indexes) == 1:
            return pool[tied_indexes[0]].id, False

        # Walk the pool in round-robin order starting at the cursor
        cursor = await self.cursor_store.take(location.id)
        size = len(pool)
        winner = min(tied_indexes, key=lambda index: (index - cursor) % size)
        return pool[winner].id, True
