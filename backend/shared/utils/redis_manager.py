"""
Redis access for the reconciler: minute fanout publishes and the phase-change
subscription.
"""
from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.asyncio.client import PubSub

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

MINUTE_CHANNEL = "fanout:match:{match_id}:minute"
PHASE_CHANGES_CHANNEL = "lifecycle:phase_changes"


def minute_channel(match_id: str) -> str:
    return MINUTE_CHANNEL.format(match_id=match_id)


class RedisManager:
    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._client: Optional[Redis] = None

    async def connect(self) -> None:
        client = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await client.ping()
        self._client = client
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._client

    async def publish_minute(self, match_id: str, payload: str) -> int:
        """Publish one minute change; returns the number of receivers."""
        return await self.client.publish(minute_channel(match_id), payload)

    async def subscribe(self, channel: str = PHASE_CHANGES_CHANNEL) -> PubSub:
        pubsub = self.client.pubsub()
        await pubsub.subscribe(channel)
        return pubsub
