from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from leadcrm.core.config import Settings
from leadcrm.core.exceptions import ServiceUnavailableError
from leadcrm.core.logging import get_structlog_logger
from leadcrm.services.assignment import RedisCursorStore

logger = get_structlog_logger(__name__)


class RedisConnection:
    """Redis client backing the shared round-robin cursors.

    Owned by the application lifespan: ``open`` on startup, ``close`` on
    shutdown. Only created when ``ASSIGNMENT_CURSOR_BACKEND=redis``.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client: Optional[redis.Redis] = None

    @property
    def is_open(self) -> bool:
        return self.client is not None

    def _build_client(self) -> redis.Redis:
        return redis.Redis.from_url(
            self.settings.redis_url,
            max_connections=self.settings.redis_max_connections,
            socket_timeout=self.settings.redis_socket_timeout,
            socket_connect_timeout=self.settings.redis_socket_connect_timeout,
            retry=Retry(backoff=ExponentialBackoff(base=1), retries=3),
            retry_on_error=[redis.ConnectionError, redis.TimeoutError],
            health_check_interval=30,
            decode_responses=True,
        )

    async def open(self) -> redis.Redis:
        if self.client is not None:
            return self.client

        client = self._build_client()
        try:
            await client.ping()
        except Exception as e:
            await client.aclose()
            logger.error("redis.connection_failed", error=str(e))
            raise ServiceUnavailableError(
                message="Redis connection failed",
                details={"error": str(e)},
            ) from e

        self.client = client
        logger.info("redis.connected", max_connections=self.settings.redis_max_connections)
        return client

    async def cursor_store(self, prefix: str = "assignment:cursor") -> RedisCursorStore:
        return RedisCursorStore(await self.open(), prefix=prefix)

    async def close(self) -> None:
        if self.client is None:
            return
        await self.client.aclose()
        self.client = None
        logger.info("redis.connections_closed")

    async def health(self) -> Dict[str, Any]:
        if self.client is None:
            return {"status": "unhealthy", "error": "Not connected", "response_time_ms": None}

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            pong = await self.client.ping()
        except Exception as e:
            logger.error("redis.health_check_failed", error=str(e))
            return {"status": "unhealthy", "error": str(e), "response_time_ms": None}

        elapsed = (loop.time() - started) * 1000
        if not pong:
            return {"status": "unhealthy", "error": "Ping failed", "response_time_ms": elapsed}
        return {"status": "healthy", "response_time_ms": elapsed}
