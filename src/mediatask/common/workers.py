"""In-process worker pool that runs task runners and reports into the bus."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from .bus import ProgressBus
from .errors import InvalidTransition, NotFound, RunnerError
from .types import ProgressEvent, Task

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Handed to a runner so it can report progress for its task."""

    def __init__(self, bus: ProgressBus, task_id: str):
        self._bus = bus
        self.task_id = task_id

    def progress(
        self,
        percent: float,
        message: str | None = None,
        current_frame: int | None = None,
        total_frames: int | None = None,
        eta: int | None = None,
    ) -> None:
        self._publish(
            ProgressEvent(
                task_id=self.task_id,
                status="running",
                progress=percent,
                message=message,
                current_frame=current_frame,
                total_frames=total_frames,
                eta=eta,
            )
        )

    def _publish(self, event: ProgressEvent) -> None:
        try:
            self._bus.publish(event)
        except InvalidTransition:
            # already logged by the bus; the runner keeps going
            pass


TaskRunner = Callable[[dict, ProgressReporter], Any]


class WorkerPool:
    def __init__(self, bus: ProgressBus, max_workers: int = 2):
        self._bus = bus
        self._runners: dict[str, TaskRunner] = {}
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mediatask-worker")

    def register(self, kind: str, runner: TaskRunner) -> None:
        self._runners[kind] = runner

    def dispatch(self, task: Task) -> Future | None:
        runner = self._runners.get(task.type)
        if runner is None:
            logger.info("No in-process runner for %s; task %s waits for an external worker", task.type, task.id)
            return None
        return self._executor.submit(self._run, task.id, dict(task.input_params), runner)

    def _run(self, task_id: str, request: dict, runner: TaskRunner) -> None:
        reporter = ProgressReporter(self._bus, task_id)
        try:
            self._bus.publish(ProgressEvent(task_id=task_id, status="running", progress=0.0, message="Task started"))
        except (InvalidTransition, NotFound):
            logger.warning("Task %s cannot start; skipping runner", task_id)
            return

        try:
            result = runner(request, reporter)
        except Exception as exc:
            logger.exception("Task %s failed", task_id)
            event = ProgressEvent(
                task_id=task_id,
                status="failed",
                error=str(exc) or type(exc).__name__,
                details=exc.details if isinstance(exc, RunnerError) else None,
            )
        else:
            event = ProgressEvent(task_id=task_id, status="completed", progress=100.0, result=result, message="Task completed")

        try:
            self._bus.publish(event)
        except InvalidTransition:
            pass
        else:
            logger.info("Task %s %s", task_id, event.status)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
