"""Streaming gateway: maps one client connection onto one bus subscription."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from .bus import ProgressBus, Subscription
from .types import ProgressEvent

logger = logging.getLogger(__name__)

StopCheck = Callable[[], Awaitable[bool]]


class StreamSession:
    def __init__(self, bus: ProgressBus, subscription: Subscription, poll_interval: float):
        self._bus = bus
        self.subscription = subscription
        self._poll_interval = poll_interval
        self._closed = False

    @property
    def task_id(self) -> str:
        return self.subscription.task_id

    async def events(self, should_stop: StopCheck | None = None) -> AsyncIterator[ProgressEvent]:
        """Yield events in arrival order until the task finishes.

        Raises ``SlowConsumer`` when the bus force-closed the subscription.
        Ends early when ``should_stop`` reports the client went away.
        """
        sub = self.subscription
        while True:
            for event in sub.drain():
                yield event
            if sub.exhausted:
                return
            if should_stop is not None and await should_stop():
                logger.info("Client of task %s went away", self.task_id)
                return
            await asyncio.sleep(self._poll_interval)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus.unsubscribe(self.subscription)
        logger.debug("Stream session for task %s closed", self.task_id)


class StreamingGateway:
    def __init__(self, bus: ProgressBus, poll_interval: float = 0.2):
        self._bus = bus
        self._poll_interval = poll_interval

    def connect(self, task_id: str) -> StreamSession:
        # raises NotFound before any subscription exists
        sub = self._bus.subscribe(task_id)
        return StreamSession(self._bus, sub, self._poll_interval)
