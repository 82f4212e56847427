"""
Phase-transition hook.
Half time triggers the first-half capture; the end of the match triggers the
second-half capture, preceded by a first-half repair if that was missed.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from pydantic import ValidationError

from shared.models.domain import CaptureResult, DomainModel
from shared.models.enums import MatchPhase
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

from reconciler.half_split import HalfSplitPersistence

logger = get_logger(__name__)


class PhaseTransition(DomainModel):
    match_id: str
    phase: str


class LifecycleListener:
    def __init__(
        self,
        half_split: HalfSplitPersistence,
        redis: Optional[RedisManager] = None,
        channel: str = "lifecycle:phase_changes",
    ) -> None:
        self._half_split = half_split
        self._redis = redis
        self._channel = channel
        self._tasks: set[asyncio.Task[Any]] = set()

    async def on_phase_transition(self, match_id: str, new_phase: Any) -> list[CaptureResult]:
        """Run the captures a transition into new_phase calls for."""
        phase = MatchPhase.parse(new_phase)
        results: list[CaptureResult] = []
        if phase == MatchPhase.HALF_TIME:
            results.append(await self._half_split.capture_first_half(match_id))
        elif phase == MatchPhase.ENDED:
            # No-op when half time was already observed.
            results.append(await self._half_split.capture_first_half(match_id))
            results.append(await self._half_split.capture_second_half(match_id))
        return results

    async def handle_message(self, data: str) -> None:
        try:
            transition = PhaseTransition.model_validate(json.loads(data))
        except (ValueError, ValidationError) as exc:
            logger.warning("phase_transition_malformed", error=str(exc), data=data[:200])
            return
        try:
            await self.on_phase_transition(transition.match_id, transition.phase)
        except Exception as exc:
            logger.exception(
                "phase_transition_failed",
                match_id=transition.match_id,
                phase=transition.phase,
                error=str(exc),
            )

    async def run(self, shutdown: asyncio.Event) -> None:
        """Consume phase-change messages until shutdown."""
        if self._redis is None:
            raise RuntimeError("LifecycleListener.run requires a RedisManager")
        pubsub = await self._redis.subscribe(self._channel)
        logger.info("subscribed_to_phase_changes", channel=self._channel)

        try:
            while not shutdown.is_set():
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message["type"] == "message":
                    data = message["data"]
                    if isinstance(data, bytes):
                        data = data.decode()
                    task = asyncio.create_task(self.handle_message(data))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
                else:
                    await asyncio.sleep(0.01)
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
