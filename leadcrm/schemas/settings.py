from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field

from leadcrm.models.location import AssignmentAlgorithm, Location
from leadcrm.models.provider import ServiceProvider, SubscriptionStatus


class RealtimeConfig(BaseModel):
    # Older settings payloads use the pusher_* keys, the bare key/cluster
    # names are accepted as a last resort.
    enabled: bool = Field(default=False, validation_alias=AliasChoices("enabled", "pusher_enabled"))
    app_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("app_key", "pusher_app_key", "key"))
    app_cluster: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("app_cluster", "pusher_app_cluster", "cluster")
    )
    ws_url: Optional[str] = None

    @property
    def usable(self) -> bool:
        return bool(self.enabled and self.app_key and (self.app_cluster or self.ws_url))


class ChannelAuthRequest(BaseModel):
    socket_id: str = Field(min_length=1, max_length=64)
    channel_name: str = Field(min_length=1, max_length=164)


class ChannelAuthResponse(BaseModel):
    auth: str


class SubscriptionOut(BaseModel):
    status: SubscriptionStatus
    plan_id: Optional[int] = None
    current_period_end: Optional[datetime] = None


class SubscriptionStatusResponse(BaseModel):
    subscription: Optional[SubscriptionOut] = None
    has_active_subscription: bool


class ProviderOut(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    location_ids: List[int] = Field(default_factory=list)
    has_active_subscription: bool = False

    @classmethod
    def from_provider(cls, provider: ServiceProvider) -> "ProviderOut":
        return cls(
            id=provider.id,
            name=provider.name,
            email=provider.email,
            phone=provider.phone,
            address=provider.address,
            is_active=provider.is_active,
            location_ids=sorted(provider.location_ids),
            has_active_subscription=provider.has_active_subscription,
        )


class AssignProvidersRequest(BaseModel):
    service_provider_ids: List[int] = Field(default_factory=list)


class LocationOut(BaseModel):
    id: int
    name: str
    slug: str
    address: Optional[str] = None
    assignment_algorithm: AssignmentAlgorithm
    service_provider_ids: List[int] = Field(default_factory=list)

    @classmethod
    def from_location(cls, location: Location) -> "LocationOut":
        return cls(
            id=location.id,
            name=location.name,
            slug=location.slug,
            address=location.address,
            assignment_algorithm=location.assignment_algorithm,
            service_provider_ids=list(location.provider_ids),
        )
