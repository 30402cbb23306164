from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..common.types import Task, TaskStatus


class CreateTaskRequest(BaseModel):
    type: str
    input_params: dict[str, Any] = Field(default_factory=dict)


class TaskListResponse(BaseModel):
    tasks: list[Task]
    total: int
    page: int
    page_size: int


class EventRequest(BaseModel):
    status: TaskStatus
    progress: float | None = None
    message: str | None = None
    current_frame: int | None = None
    total_frames: int | None = None
    eta: int | None = None
    result: Any | None = None
    error: str | None = None
    details: dict[str, Any] | None = None
