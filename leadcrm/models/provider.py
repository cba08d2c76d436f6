from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Set


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"
    TRIALING = "trialing"


class PlanInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass
class SubscriptionPlan:
    id: int
    name: str
    stripe_price_id: str
    price: Decimal
    interval: PlanInterval = PlanInterval.MONTHLY
    trial_days: int = 0
    features: List[str] = field(default_factory=list)
    is_active: bool = True
    sort_order: int = 0

    def __post_init__(self):
        if self.trial_days < 0:
            raise ValueError("trial_days must be >= 0")


@dataclass
class Subscription:
    status: SubscriptionStatus
    plan_id: Optional[int] = None
    current_period_end: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        # Trialing does not open lead access; only a paid, active subscription does.
        return self.status is SubscriptionStatus.ACTIVE


@dataclass
class ServiceProvider:
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: bool = True
    password_hash: Optional[str] = field(default=None, repr=False)
    location_ids: Set[int] = field(default_factory=set)
    subscription: Optional[Subscription] = None

    @property
    def has_active_subscription(self) -> bool:
        return self.subscription is not None and self.subscription.is_active
