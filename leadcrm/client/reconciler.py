"""
Optimistic updates with ordered writes and exact rollback.

``OptimisticReconciler.begin`` returns a two-phase ``PendingMutation``:
``apply()`` changes local state immediately, ``commit()`` sends the write,
``rollback()`` undoes the local change. Writes for one entity go out in the
order their mutations were applied, so a later drag can never be overtaken
by an earlier one.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Tuple

from leadcrm.client.http import ApiClient
from leadcrm.client.views import LeadListView
from leadcrm.core.exceptions import BaseAPIException
from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.lead import LeadStatus

logger = get_structlog_logger(__name__)

ReadLocal = Callable[[Hashable, str], Any]
WriteLocal = Callable[[Hashable, str, Any], None]
WriteRemote = Callable[[Hashable, str, Any], Awaitable[Any]]


class MutationState(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class PendingMutation:
    def __init__(self, reconciler: "OptimisticReconciler", entity_id: Hashable, field: str, value: Any):
        self.reconciler = reconciler
        self.entity_id = entity_id
        self.field = field
        self.value = value
        self.previous: Any = None
        self.state = MutationState.PENDING
        self._prior: Optional[asyncio.Future] = None
        self._done: Optional[asyncio.Future] = None

    def apply(self) -> None:
        """Snapshot the current local value and show the new one."""
        if self.state is not MutationState.PENDING:
            raise RuntimeError(f"mutation is already {self.state.value}")

        # The snapshot includes earlier mutations that are still in flight
        self.previous = self.reconciler.read_local(self.entity_id, self.field)
        self.reconciler.write_local(self.entity_id, self.field, self.value)
        self._prior, self._done = self.reconciler._enqueue(self)
        self.state = MutationState.APPLIED

    async def commit(self) -> Any:
        """Send the write once every earlier write for the entity has settled.

        On failure the local change is rolled back and the error re-raised.
        """
        if self.state is MutationState.PENDING:
            self.apply()
        if self.state is not MutationState.APPLIED:
            raise RuntimeError(f"mutation is already {self.state.value}")

        try:
            if self._prior is not None:
                await asyncio.shield(self._prior)
            result = await self.reconciler.write_remote(self.entity_id, self.field, self.value)
        except BaseException:
            self.rollback()
            raise

        self.state = MutationState.COMMITTED
        self.reconciler._settle(self)
        return result

    def rollback(self) -> None:
        if self.state is not MutationState.APPLIED:
            return
        self.reconciler._revert(self)
        self.state = MutationState.ROLLED_BACK
        self.reconciler._settle(self)


class OptimisticReconciler:
    def __init__(self, read_local: ReadLocal, write_local: WriteLocal, write_remote: WriteRemote):
        self.read_local = read_local
        self.write_local = write_local
        self.write_remote = write_remote
        # Outstanding mutations per (entity, field), oldest first
        self._chains: Dict[Tuple[Hashable, str], List[PendingMutation]] = {}
        # Completion of the newest write per entity
        self._tails: Dict[Hashable, asyncio.Future] = {}

    def begin(self, entity_id: Hashable, field: str, value: Any) -> PendingMutation:
        return PendingMutation(self, entity_id, field, value)

    def pending(self, entity_id: Hashable) -> List[PendingMutation]:
        return [
            mutation
            for (entity, _), chain in self._chains.items()
            if entity == entity_id
            for mutation in chain
        ]

    def _enqueue(self, mutation: PendingMutation) -> Tuple[Optional[asyncio.Future], asyncio.Future]:
        prior = self._tails.get(mutation.entity_id)
        done = asyncio.get_running_loop().create_future()
        self._tails[mutation.entity_id] = done
        self._chains.setdefault((mutation.entity_id, mutation.field), []).append(mutation)
        return prior, done

    def _revert(self, mutation: PendingMutation) -> None:
        chain = self._chains[(mutation.entity_id, mutation.field)]
        index = chain.index(mutation)
        if index == len(chain) - 1:
            self.write_local(mutation.entity_id, mutation.field, mutation.previous)
        else:
            # A newer mutation is showing; it now falls back to what this one replaced
            chain[index + 1].previous = mutation.previous
        logger.info(
            "reconciler.rolled_back",
            entity_id=mutation.entity_id,
            field=mutation.field,
            value=_plain(mutation.value),
            restored=_plain(mutation.previous),
        )

    def _settle(self, mutation: PendingMutation) -> None:
        key = (mutation.entity_id, mutation.field)
        chain = self._chains.get(key, [])
        if mutation in chain:
            chain.remove(mutation)
        if not chain:
            self._chains.pop(key, None)

        if mutation._done is not None and not mutation._done.done():
            mutation._done.set_result(None)
        if self._tails.get(mutation.entity_id) is mutation._done:
            del self._tails[mutation.entity_id]


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class KanbanBoard:
    """Status columns over a ``LeadListView`` with drag-and-drop moves."""

    def __init__(
        self,
        api: ApiClient,
        view: LeadListView,
        toast: Optional[Callable[[str], None]] = None,
    ):
        self.api = api
        self.view = view
        self.toast = toast or (lambda message: logger.info("kanban.toast", message=message))
        self.reconciler = OptimisticReconciler(
            read_local=self._read_status,
            write_local=self._write_status,
            write_remote=self._send_status,
        )

    def columns(self):
        return self.view.board()

    def _read_status(self, lead_id: int, field: str) -> Optional[LeadStatus]:
        lead = self.view.find(lead_id)
        return lead.status if lead is not None else None

    def _write_status(self, lead_id: int, field: str, value: Any) -> None:
        lead = self.view.find(lead_id)
        if lead is not None and value is not None:
            lead.status = LeadStatus(value)

    async def _send_status(self, lead_id: int, field: str, value: Any) -> Any:
        return await self.api.update_lead(lead_id, value)

    async def drop(self, lead_id: int, column: str) -> bool:
        """Move a card to ``column``.

        Same column, an unknown column or an unknown card is a no-op.
        Returns True once the server accepted the move.
        """
        try:
            target = LeadStatus(column)
        except ValueError:
            return False

        lead = self.view.find(lead_id)
        if lead is None or lead.status is target:
            return False

        mutation = self.reconciler.begin(lead_id, "status", target)
        mutation.apply()
        try:
            await mutation.commit()
        except BaseAPIException as e:
            logger.warning("kanban.move_failed", lead_id=lead_id, status=target.value, code=e.code)
            self.toast(f"Failed to update lead status: {e.message}")
            return False

        logger.info("kanban.moved", lead_id=lead_id, status=target.value)
        return True
