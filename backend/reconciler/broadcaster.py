"""
Minute change notifications over Redis pub/sub.
Delivery is best effort: a failed publish is logged and counted, never raised.
"""
from __future__ import annotations

from typing import Optional, Protocol

from shared.models.domain import MinuteChange
from shared.utils.logging import get_logger
from shared.utils.metrics import MINUTE_BROADCASTS
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)


class ChangeBroadcaster(Protocol):
    async def publish(self, change: MinuteChange) -> bool: ...


class RedisChangeBroadcaster:
    """Publishes MinuteChange JSON on fanout:match:{match_id}:minute."""

    def __init__(self, redis: RedisManager) -> None:
        self._redis = redis

    async def publish(self, change: MinuteChange) -> bool:
        try:
            receivers = await self._redis.publish_minute(change.match_id, change.model_dump_json())
        except Exception as exc:
            MINUTE_BROADCASTS.labels(result="error").inc()
            logger.warning(
                "minute_broadcast_failed",
                match_id=change.match_id,
                minute=change.minute,
                error=str(exc),
            )
            return False
        MINUTE_BROADCASTS.labels(result="sent").inc()
        logger.debug("minute_broadcast", match_id=change.match_id, minute=change.minute, receivers=receivers)
        return True


class NullBroadcaster:
    """Used when no Redis is configured; records nothing."""

    async def publish(self, change: MinuteChange) -> bool:
        MINUTE_BROADCASTS.labels(result="disabled").inc()
        return False


def build_broadcaster(redis: Optional[RedisManager]) -> ChangeBroadcaster:
    return RedisChangeBroadcaster(redis) if redis is not None else NullBroadcaster()
