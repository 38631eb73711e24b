import asyncio
import logging
from typing import Set

from orderflow.models.events import FanoutEvent

logger = logging.getLogger(__name__)

class NotificationFanout:
    """
    Best-effort broadcast of order state changes to live subscribers over
    Redis pub/sub. Never blocks or fails the caller; subscribers that miss an
    event re-read the order from the API.
    """

    def __init__(self, redis_client, channel: str = "orders-updates", timeout: float = 2.0):
        self.redis = redis_client
        self.channel = channel
        self.timeout = timeout
        self._pending: Set[asyncio.Task] = set()

    def publish(self, entity_id: str, new_state: str, source: str) -> asyncio.Task:
        event = FanoutEvent(entity_id=entity_id, new_state=new_state, source=source)
        task = asyncio.create_task(self._send(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send(self, event: FanoutEvent):
        try:
            await asyncio.wait_for(
                self.redis.publish(self.channel, event.model_dump_json()),
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning(f"Fan-out publish failed for {event.entity_id} -> {event.new_state}: {e}")

    async def drain(self):
        """Wait for in-flight publishes (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
