"""Task API surface: glue between request handlers, the registry and the workers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

from .bus import ProgressBus
from .config import Settings
from .gateway import StreamingGateway
from .registry import TaskListing, TaskRegistry
from .storage import LocalStorage
from .types import Task, TaskSpec
from .workers import WorkerPool

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class Dispatcher(Protocol):
    def dispatch(self, task: Task) -> Any: ...


class TaskService:
    def __init__(self, registry: TaskRegistry, bus: ProgressBus, dispatcher: Dispatcher | None = None):
        self.registry = registry
        self.bus = bus
        self.dispatcher = dispatcher

    def create_task(self, spec: TaskSpec | Mapping) -> Task:
        task = self.registry.create(spec)
        if self.dispatcher is not None:
            self.dispatcher.dispatch(task)
        return task

    def get_task(self, task_id: str) -> Task:
        return self.registry.get(task_id)

    def list_tasks(
        self,
        status: str | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[TaskListing, int, int]:
        """Return one page of tasks plus the normalized page and page size."""
        if page < 1:
            page = 1
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            page_size = DEFAULT_PAGE_SIZE
        listing = self.registry.list(status=status, offset=(page - 1) * page_size, limit=page_size)
        return listing, page, page_size

    def report(self, task_id: str, fields: Mapping[str, Any]) -> Task:
        """Ingest one worker-reported event for ``task_id``."""
        payload = dict(fields)
        payload["task_id"] = task_id
        payload.pop("snapshot", None)
        return self.bus.publish_raw(payload)


class Services:
    """Everything one running app instance needs, built from settings."""

    def __init__(self, settings: Settings):
        self.settings = settings
        tasks_dir = settings.tasks_dir if settings.persist_tasks else None
        self.registry = TaskRegistry(tasks_dir, task_types=settings.task_types)
        self.bus = ProgressBus(self.registry, backlog=settings.subscriber_backlog)
        self.workers = WorkerPool(self.bus, max_workers=settings.max_workers)
        self.tasks = TaskService(self.registry, self.bus, self.workers)
        self.gateway = StreamingGateway(self.bus, poll_interval=settings.stream_poll_interval)
        self.storage = LocalStorage(settings.upload_dir, url_prefix=f"{settings.api_prefix}/uploads")

    def shutdown(self) -> None:
        self.workers.shutdown(wait=False)
        logger.info("Services stopped")
