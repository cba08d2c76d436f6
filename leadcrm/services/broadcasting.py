from __future__ import annotations

import hashlib
import hmac
import re
from typing import Optional

from leadcrm.core.config import Settings
from leadcrm.core.exceptions import AuthorizationError, ServiceUnavailableError, ValidationError
from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.user import Principal
from leadcrm.services.events import ADMIN_CHANNEL, parse_provider_channel

logger = get_structlog_logger(__name__)

_SOCKET_ID_RE = re.compile(r"^\d+\.\d+$")


def generate_channel_signature(secret: str, socket_id: str, channel_name: str) -> str:
    """HMAC-SHA256 over ``socket_id:channel_name`` (Pusher private channel auth)."""
    return hmac.new(
        secret.encode("utf-8"),
        f"{socket_id}:{channel_name}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class ChannelAuthorizer:
    def __init__(self, app_key: str, app_secret: str):
        self.app_key = app_key
        self.app_secret = app_secret

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["ChannelAuthorizer"]:
        if not (settings.pusher_app_key and settings.pusher_app_secret):
            return None
        return cls(settings.pusher_app_key, settings.pusher_app_secret)

    def can_access(self, principal: Principal, channel_name: str) -> bool:
        if channel_name == ADMIN_CHANNEL:
            return principal.is_admin
        provider_id = parse_provider_channel(channel_name)
        if provider_id is not None:
            return principal.is_provider and principal.provider_id == provider_id
        return False

    def authorize(self, principal: Principal, socket_id: str, channel_name: str) -> str:
        """Return the ``key:signature`` auth string for a channel subscription."""
        if not _SOCKET_ID_RE.match(socket_id):
            raise ValidationError(
                message="Invalid socket id",
                details={"errors": {"socket_id": "Socket id must look like '123.456'"}},
            )

        if not self.can_access(principal, channel_name):
            logger.warning(
                "broadcasting.denied",
                channel=channel_name,
                role=principal.role.value,
                provider_id=principal.provider_id,
            )
            raise AuthorizationError(
                message="Not allowed to subscribe to this channel",
                code="channel_forbidden",
                details={"channel_name": channel_name},
            )

        signature = generate_channel_signature(self.app_secret, socket_id, channel_name)
        logger.info("broadcasting.authorized", channel=channel_name, role=principal.role.value)
        return f"{self.app_key}:{signature}"

    def verify(self, socket_id: str, channel_name: str, auth: Optional[str]) -> bool:
        if not auth or ":" not in auth:
            return False
        key, signature = auth.split(":", 1)
        if key != self.app_key:
            return False
        expected = generate_channel_signature(self.app_secret, socket_id, channel_name)
        return hmac.compare_digest(expected, signature)


def require_authorizer(authorizer: Optional[ChannelAuthorizer]) -> ChannelAuthorizer:
    if authorizer is None:
        raise ServiceUnavailableError(
            message="Realtime broadcasting is not configured",
            code="broadcasting_disabled",
        )
    return authorizer
