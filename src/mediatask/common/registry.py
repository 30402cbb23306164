"""Task registry: canonical task records and their lifecycle state machine."""

from __future__ import annotations

import logging
import math
import threading
import uuid
from collections.abc import Iterable, Iterator, Mapping
from datetime import UTC, datetime
from pathlib import Path

from .errors import InvalidSpec, InvalidTransition, NotFound
from .types import TASK_STATUSES, ProgressEvent, Task, TaskSpec, TaskStatus

logger = logging.getLogger(__name__)


class TaskListing:
    """Lazy view over the registry, newest first.

    Every iteration takes a fresh snapshot, so a listing can be iterated
    again after the registry changed.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        status: TaskStatus | None = None,
        offset: int = 0,
        limit: int | None = None,
    ):
        self._registry = registry
        self.status = status
        self.offset = max(offset, 0)
        self.limit = limit

    def _matching(self) -> list[Task]:
        with self._registry._lock:
            records = list(self._registry._tasks.values())
        if self.status is not None:
            records = [t for t in records if t.status == self.status]
        # insertion order breaks created_at ties, newest first
        records.reverse()
        records.sort(key=lambda t: t.created_at, reverse=True)
        return records

    @property
    def total(self) -> int:
        return len(self._matching())

    def __iter__(self) -> Iterator[Task]:
        records = self._matching()
        end = None if self.limit is None else self.offset + self.limit
        for rec in records[self.offset:end]:
            yield rec.model_copy(deep=True)

    def __len__(self) -> int:
        records = self._matching()[self.offset:]
        return len(records) if self.limit is None else min(len(records), self.limit)


class TaskRegistry:
    def __init__(self, storage_dir: Path | None = None, task_types: Iterable[str] | None = None):
        self._storage_dir = storage_dir
        if self._storage_dir is not None:
            self._storage_dir.mkdir(parents=True, exist_ok=True)
        self._task_types = frozenset(task_types or ())
        self._tasks: dict[str, Task] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._lock = threading.Lock()

    def create(self, spec: TaskSpec | Mapping) -> Task:
        if not isinstance(spec, TaskSpec):
            if not isinstance(spec, Mapping):
                raise InvalidSpec("task specification must be an object")
            params = spec.get("input_params", {})
            if params is None:
                params = {}
            if not isinstance(params, Mapping):
                raise InvalidSpec("input_params must be an object")
            spec = TaskSpec(type=str(spec.get("type") or ""), input_params=dict(params))

        kind = spec.type.strip()
        if not kind:
            raise InvalidSpec("type is required")
        if self._task_types and kind not in self._task_types:
            raise InvalidSpec(f"unsupported task type {kind!r}")

        now = datetime.now(UTC)
        rec = Task(
            id=uuid.uuid4().hex,
            type=kind,
            status="pending",
            progress=0.0,
            input_params=spec.input_params,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._tasks[rec.id] = rec
            self._locks[rec.id] = threading.RLock()
        self._persist(rec)
        logger.info("Task %s created type=%s", rec.id, kind)
        return rec.model_copy(deep=True)

    def get(self, task_id: str) -> Task:
        lock = self.lock_for(task_id)
        with lock:
            return self._tasks[task_id].model_copy(deep=True)

    def list(
        self,
        status: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> TaskListing:
        if status is not None and status not in TASK_STATUSES:
            raise InvalidSpec(f"Invalid status {status}")
        return TaskListing(self, status=status, offset=offset, limit=limit)

    def lock_for(self, task_id: str) -> threading.RLock:
        with self._lock:
            lock = self._locks.get(task_id)
        if lock is None:
            raise NotFound(task_id)
        return lock

    def apply_event(self, task_id: str, event: ProgressEvent) -> Task:
        """Apply a worker event to the task and return the updated record.

        Raises ``NotFound`` for unknown ids and ``InvalidTransition`` when the
        event contradicts the current state; in that case nothing changes.
        """
        lock = self.lock_for(task_id)
        with lock:
            live = self._tasks[task_id]
            updated = _transition(live, event)
            self._tasks[task_id] = updated
            self._persist(updated)
        return updated.model_copy(deep=True)

    def _persist(self, rec: Task) -> None:
        if self._storage_dir is None:
            return
        p = self._storage_dir / f"{rec.id}.json"
        try:
            p.write_text(rec.model_dump_json(indent=2), encoding="utf-8")
        except OSError:
            logger.exception("Failed to persist task %s to %s", rec.id, p)


def _transition(task: Task, event: ProgressEvent) -> Task:
    if task.terminal:
        raise InvalidTransition(task.id, f"task is already {task.status}")
    if event.status not in TASK_STATUSES:
        raise InvalidTransition(task.id, f"unknown status {event.status!r}")

    progress = task.progress
    if event.progress is not None:
        if not math.isfinite(event.progress) or not 0.0 <= event.progress <= 100.0:
            raise InvalidTransition(task.id, f"progress {event.progress!r} outside [0, 100]")
        # stale or duplicate progress never lowers the value
        progress = max(progress, event.progress)

    status = event.status
    if status == "pending":
        if task.status != "pending":
            raise InvalidTransition(task.id, f"cannot go back to pending from {task.status}")
        # the first event that moves progress starts the task
        if progress > task.progress:
            status = "running"

    changes: dict = {
        "status": status,
        "progress": progress,
        "updated_at": event.timestamp or datetime.now(UTC),
    }
    for field in ("current_frame", "total_frames", "eta", "message"):
        value = getattr(event, field)
        if value is not None:
            changes[field] = value

    if status == "completed":
        changes["progress"] = 100.0
        changes["result"] = event.result
        if task.total_frames is not None and event.current_frame is None:
            changes["current_frame"] = changes.get("total_frames", task.total_frames)
    elif status == "failed":
        changes["error"] = event.error or "task failed"
        changes["details"] = event.details

    return task.model_copy(update=changes)
