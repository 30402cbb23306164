"""Typed error conditions raised by the registry, bus and gateway."""

from __future__ import annotations


class TaskError(Exception):
    """Base class for every task-tracking error."""


class InvalidSpec(TaskError):
    """The create request (or list filter) is malformed."""


class NotFound(TaskError):
    def __init__(self, task_id: str):
        super().__init__(f"task {task_id} not found")
        self.task_id = task_id


class InvalidTransition(TaskError):
    """An event contradicts the current task state or is malformed."""

    def __init__(self, task_id: str, reason: str):
        super().__init__(f"task {task_id}: {reason}")
        self.task_id = task_id
        self.reason = reason


class SlowConsumer(TaskError):
    def __init__(self, task_id: str, backlog: int):
        super().__init__(f"subscriber of task {task_id} fell behind by {backlog} events")
        self.task_id = task_id
        self.backlog = backlog


class RunnerError(TaskError):
    """Raised by a task runner to fail its task with diagnostic details."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details
