"""Progress event bus: applies worker events and fans them out to subscribers."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import ValidationError

from .errors import InvalidTransition, SlowConsumer
from .registry import TaskRegistry
from .types import ProgressEvent, Task

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """One consumer's bounded view of a task's event stream.

    The bus offers events without blocking. Once ``backlog`` events are
    waiting, the next offer force-closes the subscription with
    ``SlowConsumer`` and drops whatever was queued.
    """

    _ids = itertools.count(1)

    def __init__(self, task_id: str, backlog: int):
        self.id = next(self._ids)
        self.task_id = task_id
        self.backlog = backlog
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._exhausted = False
        self._error: SlowConsumer | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def exhausted(self) -> bool:
        """True once the consumer has read past the end of the stream."""
        return self._exhausted

    @property
    def error(self) -> SlowConsumer | None:
        return self._error

    def offer(self, event: ProgressEvent) -> bool:
        with self._lock:
            if self._closed:
                return False
            if self._queue.qsize() >= self.backlog:
                self._fail(SlowConsumer(self.task_id, self.backlog))
                return False
            self._queue.put_nowait(event)
            return True

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def _fail(self, error: SlowConsumer) -> None:
        self._error = error
        self._closed = True
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        self._queue.put_nowait(_CLOSED)

    def _take(self, item: Any) -> ProgressEvent | None:
        if item is _CLOSED:
            self._exhausted = True
            if self._error is not None:
                raise self._error
            return None
        return item

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Block for the next event; ``None`` means the stream ended.

        Raises ``queue.Empty`` on timeout and ``SlowConsumer`` if the
        subscription was force-closed.
        """
        if self._exhausted:
            if self._error is not None:
                raise self._error
            return None
        return self._take(self._queue.get(timeout=timeout))

    def drain(self) -> list[ProgressEvent]:
        """Pop every queued event without blocking."""
        if self._exhausted and self._error is not None:
            raise self._error
        events: list[ProgressEvent] = []
        while not self._exhausted:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            event = self._take(item)
            if event is not None:
                events.append(event)
        return events

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event


class ProgressBus:
    def __init__(self, registry: TaskRegistry, backlog: int = 256):
        self._registry = registry
        self._backlog = backlog
        self._subs: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    def publish(self, event: ProgressEvent) -> Task:
        lock = self._registry.lock_for(event.task_id)
        with lock:
            try:
                task = self._registry.apply_event(event.task_id, event)
            except InvalidTransition as exc:
                logger.warning("Dropped event for task %s: %s", event.task_id, exc.reason)
                raise
            # subscribers see the event as applied to the record
            event = event.model_copy(
                update={
                    "status": task.status,
                    "progress": task.progress,
                    "error": task.error if task.status == "failed" else None,
                    "details": task.details if task.status == "failed" else None,
                    "snapshot": False,
                    "timestamp": task.updated_at,
                }
            )
            with self._lock:
                subs = list(self._subs.get(event.task_id, ()))
            delivered = 0
            for sub in subs:
                if sub.offer(event):
                    delivered += 1
                elif sub.error is not None:
                    logger.warning("Closing slow subscriber %s of task %s", sub.id, event.task_id)
                    self._discard(sub)
            if event.terminal:
                self._close_all(event.task_id)
            logger.debug(
                "Task %s %s progress=%.1f delivered=%d",
                task.id,
                task.status,
                task.progress,
                delivered,
            )
            return task

    def publish_raw(self, payload: Mapping[str, Any]) -> Task:
        """Validate a worker payload and publish it."""
        try:
            event = ProgressEvent.model_validate(payload)
        except ValidationError as exc:
            task_id = str(payload.get("task_id", "?")) if isinstance(payload, Mapping) else "?"
            logger.warning("Dropped malformed event for task %s", task_id)
            raise InvalidTransition(task_id, f"malformed event: {exc.error_count()} error(s)") from exc
        return self.publish(event)

    def subscribe(self, task_id: str) -> Subscription:
        lock = self._registry.lock_for(task_id)
        with lock:
            task = self._registry.get(task_id)
            sub = Subscription(task_id, self._backlog)
            sub.offer(ProgressEvent.from_task(task, message="Connected to progress stream"))
            if task.terminal:
                sub.close()
            else:
                with self._lock:
                    self._subs.setdefault(task_id, []).append(sub)
        logger.info("Subscriber %s attached to task %s (%s)", sub.id, task_id, task.status)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._discard(sub)
        sub.close()

    def subscriber_count(self, task_id: str | None = None) -> int:
        with self._lock:
            if task_id is not None:
                return len(self._subs.get(task_id, ()))
            return sum(len(v) for v in self._subs.values())

    def _discard(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subs.get(sub.task_id)
            if not subs:
                return
            if sub in subs:
                subs.remove(sub)
            if not subs:
                del self._subs[sub.task_id]

    def _close_all(self, task_id: str) -> None:
        with self._lock:
            subs = self._subs.pop(task_id, [])
        for sub in subs:
            sub.close()
        if subs:
            logger.info("Task %s finished; closed %d subscriber(s)", task_id, len(subs))
