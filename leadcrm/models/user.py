from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    ADMIN = "admin"
    PROVIDER = "provider"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request."""

    role: Role
    user_id: Optional[int] = None
    name: Optional[str] = None
    provider_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_provider(self) -> bool:
        return self.role is Role.PROVIDER
