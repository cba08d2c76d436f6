from __future__ import annotations

from typing import Callable, Dict, List, Optional, Union

from leadcrm.core.logging import get_structlog_logger
from leadcrm.models.user import Role

logger = get_structlog_logger(__name__)

LOGIN_PATHS = {
    Role.ADMIN: "/admin/login",
    Role.PROVIDER: "/provider/login",
}

SessionListener = Callable[["Session"], None]


class Session:
    """Credentials of one dashboard session.

    Passed explicitly to every request-issuing object; nothing reads a token
    from ambient storage and no shared client carries default auth headers.
    """

    def __init__(
        self,
        audience: Union[str, Role],
        token: Optional[str] = None,
        provider_id: Optional[int] = None,
    ):
        self.audience = Role(audience)
        self._token = token
        self.provider_id = provider_id
        self._listeners: List[SessionListener] = []

        if self.audience is Role.PROVIDER and provider_id is None:
            raise ValueError("a provider session needs the provider id")

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    @property
    def login_path(self) -> str:
        return LOGIN_PATHS[self.audience]

    @property
    def route_prefix(self) -> str:
        """``/admin`` or ``/provider``."""
        return f"/{self.audience.value}"

    def authorization_header(self) -> Dict[str, str]:
        if self._token is None:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    def set_token(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        if self._token is None:
            return
        self._token = None
        logger.info("session.cleared", audience=self.audience.value)
        for listener in list(self._listeners):
            listener(self)

    def on_clear(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove
