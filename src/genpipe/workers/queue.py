"""Job-start event bus using Redis or in-process fallback."""

import asyncio
import logging
from typing import Protocol

from genpipe.config import settings
from genpipe.models.generation import JobStartEvent
from genpipe.services.id_generator import EVENT_ID_PREFIX, generate_id

logger = logging.getLogger(__name__)


class EventBus(Protocol):
    """Transport for job-start events (at-least-once delivery)."""

    async def publish(self, event: JobStartEvent) -> str:
        """Send an event and return its event id."""
        ...

    async def receive(self, timeout: float = 1.0) -> JobStartEvent | None:
        """Wait up to ``timeout`` seconds for the next event."""
        ...


class InProcessEventBus:
    """asyncio.Queue-backed bus for local mode and tests."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[JobStartEvent] = asyncio.Queue()

    async def publish(self, event: JobStartEvent) -> str:
        event_id = event.event_id or generate_id(EVENT_ID_PREFIX)
        await self._queue.put(event.model_copy(update={"event_id": event_id}))
        return event_id

    async def receive(self, timeout: float = 1.0) -> JobStartEvent | None:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def qsize(self) -> int:
        return self._queue.qsize()


class RedisEventBus:
    """Redis list-backed bus shared by API processes and workers."""

    def __init__(self, redis, key: str | None = None) -> None:
        self._redis = redis
        self._key = key or settings.queue_key

    async def publish(self, event: JobStartEvent) -> str:
        event_id = event.event_id or generate_id(EVENT_ID_PREFIX)
        body = event.model_copy(update={"event_id": event_id}).model_dump_json()
        await self._redis.rpush(self._key, body)
        return event_id

    async def receive(self, timeout: float = 1.0) -> JobStartEvent | None:
        item = await self._redis.blpop([self._key], timeout=max(int(timeout), 1))
        if not item:
            return None
        _, body = item
        if isinstance(body, bytes):
            body = body.decode()
        try:
            return JobStartEvent.model_validate_json(body)
        except ValueError:
            logger.warning("Dropping malformed job-start event on %s: %r", self._key, body[:200])
            return None
