from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class AssignmentAlgorithm(str, Enum):
    ROUND_ROBIN = "round_robin"
    GEOGRAPHIC = "geographic"
    LOAD_BALANCE = "load_balance"
    MANUAL = "manual"

    @property
    def is_automatic(self) -> bool:
        return self is not AssignmentAlgorithm.MANUAL


@dataclass
class Location:
    id: int
    name: str
    slug: str
    address: Optional[str] = None
    assignment_algorithm: AssignmentAlgorithm = AssignmentAlgorithm.ROUND_ROBIN
    provider_ids: List[int] = field(default_factory=list)
