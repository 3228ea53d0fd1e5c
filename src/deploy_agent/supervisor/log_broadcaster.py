"""Fan-out of child process output to log subscribers."""

import asyncio
from collections import deque
from typing import Deque, List, Optional, Set

import structlog

logger = structlog.get_logger()


class LogSubscription:
    """A bounded queue of output chunks for one observer."""

    def __init__(self, broadcaster: "LogBroadcaster", maxsize: int):
        self._broadcaster = broadcaster
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, chunk: bytes) -> None:
        try:
            self.queue.put_nowait(chunk)
        except asyncio.QueueFull:
            self.dropped += 1

    async def get(self) -> bytes:
        return await self.queue.get()

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)


class LogBroadcaster:
    """Broadcasts raw output bytes to zero or more subscribers.

    Publishing never blocks: each subscriber has its own bounded queue and a
    full queue drops the chunk for that subscriber only.
    """

    def __init__(self, history_size: int = 500, subscriber_queue_size: int = 1000):
        self.subscriber_queue_size = subscriber_queue_size
        self._subscribers: Set[LogSubscription] = set()
        self._history: Deque[bytes] = deque(maxlen=history_size)

    def subscribe(self, maxsize: Optional[int] = None) -> LogSubscription:
        subscription = LogSubscription(self, maxsize or self.subscriber_queue_size)
        self._subscribers.add(subscription)
        logger.debug("Log subscriber added", subscribers=len(self._subscribers))
        return subscription

    def unsubscribe(self, subscription: LogSubscription) -> None:
        self._subscribers.discard(subscription)
        if subscription.dropped:
            logger.warning("Log subscriber dropped chunks", dropped=subscription.dropped)

    def publish(self, chunk: bytes) -> None:
        if not chunk:
            return
        self._history.append(chunk)
        for subscription in list(self._subscribers):
            subscription.offer(chunk)

    def publish_line(self, message: str) -> None:
        """Publish a diagnostic line from the agent itself."""
        self.publish(f"[deploy-agent] {message}\n".encode("utf-8"))

    def recent(self, limit: Optional[int] = None) -> List[bytes]:
        chunks = list(self._history)
        if limit is not None:
            chunks = chunks[-limit:] if limit > 0 else []
        return chunks
