from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

TaskStatus = Literal["pending", "running", "completed", "failed"]

TASK_STATUSES: tuple[str, ...] = ("pending", "running", "completed", "failed")
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class TaskSpec(BaseModel):
    type: str = ""
    input_params: dict[str, Any] = Field(default_factory=dict)


class Task(BaseModel):
    id: str
    type: str
    status: TaskStatus = "pending"
    progress: float = 0.0
    current_frame: int | None = None
    total_frames: int | None = None
    eta: int | None = None
    message: str | None = None
    input_params: dict[str, Any] = Field(default_factory=dict)
    result: Any | None = None
    error: str | None = None
    # failure diagnostics from the worker, e.g. the command line and stderr tail
    details: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ProgressEvent(BaseModel):
    """A status/progress update for one task, as reported by a worker.

    ``snapshot`` marks the synthetic baseline event a subscriber receives
    first; it mirrors the task record at subscribe time.
    """

    task_id: str
    status: TaskStatus
    progress: float | None = None
    message: str | None = None
    current_frame: int | None = None
    total_frames: int | None = None
    eta: int | None = None
    result: Any | None = None
    error: str | None = None
    details: dict[str, Any] | None = None
    snapshot: bool = False
    timestamp: datetime | None = None

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_task(cls, task: Task, message: str | None = None) -> ProgressEvent:
        return cls(
            task_id=task.id,
            status=task.status,
            progress=task.progress,
            message=message if message is not None else task.message,
            current_frame=task.current_frame,
            total_frames=task.total_frames,
            eta=task.eta,
            result=task.result,
            error=task.error,
            details=task.details,
            snapshot=True,
            timestamp=task.updated_at,
        )


class StoredFile(BaseModel):
    filename: str
    path: str
    url: str
