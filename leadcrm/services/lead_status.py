from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Mapping, Optional, Union

from leadcrm.core.exceptions import InvalidTransitionError
from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.lead import Lead, LeadStatus

logger = get_structlog_logger(__name__)

# Any status may move to any other, including closed -> new (re-opening).
PERMISSIVE_TRANSITIONS: Mapping[LeadStatus, FrozenSet[LeadStatus]] = {
    status: frozenset(LeadStatus) for status in LeadStatus
}


@dataclass(frozen=True)
class StatusChange:
    lead_id: int
    old_status: LeadStatus
    new_status: LeadStatus

    @property
    def note_text(self) -> str:
        return f"Status changed from {self.old_status.value} to {self.new_status.value}"


def coerce_status(value: Union[str, LeadStatus]) -> LeadStatus:
    """Turn a raw value into a LeadStatus or raise InvalidTransitionError."""
    if isinstance(value, LeadStatus):
        return value
    try:
        return LeadStatus(value)
    except ValueError:
        allowed = [status.value for status in LeadStatus]
        raise InvalidTransitionError(
            message=f"Invalid status '{value}'",
            details={
                "errors": {"status": f"Status must be one of: {', '.join(allowed)}"},
                "allowed": allowed,
            },
        )


class LeadStatusMachine:
    initial = LeadStatus.NEW

    def __init__(self, transitions: Optional[Mapping[LeadStatus, FrozenSet[LeadStatus]]] = None):
        self._transitions: Dict[LeadStatus, FrozenSet[LeadStatus]] = dict(
            transitions if transitions is not None else PERMISSIVE_TRANSITIONS
        )

    def can_transition(self, current: LeadStatus, target: LeadStatus) -> bool:
        return target in self._transitions.get(current, frozenset())

    def transition(self, lead: Lead, target: Union[str, LeadStatus]) -> Optional[StatusChange]:
        """Move ``lead`` to ``target``.

        Returns the change, or None when the lead already has that status.
        The lead is left untouched when the move is rejected.
        """
        new_status = coerce_status(target)
        old_status = lead.status

        if new_status is old_status:
            return None

        if not self.can_transition(old_status, new_status):
            raise InvalidTransitionError(
                message=f"Cannot move lead from {old_status.value} to {new_status.value}",
                code="transition_not_allowed",
                details={"from": old_status.value, "to": new_status.value},
            )

        lead.status = new_status
        logger.info(
            "lead.status_changed",
            lead_id=lead.id,
            old_status=old_status.value,
            new_status=new_status.value,
        )
        return StatusChange(lead_id=lead.id, old_status=old_status, new_status=new_status)
