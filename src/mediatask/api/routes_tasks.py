"""Task API: create, list, get, worker event ingestion, and progress streams."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import StreamingResponse

from ..common.errors import NotFound, SlowConsumer
from ..common.service import DEFAULT_PAGE_SIZE, Services, TaskService
from ..common.types import ProgressEvent, Task
from .deps import get_services, get_tasks
from .models import CreateTaskRequest, EventRequest, TaskListResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tasks"])

# close code for a websocket handshake refused because the task is unknown
WS_TASK_NOT_FOUND = 4404

SLOW_CONSUMER_PAYLOAD = {"error": "slow consumer", "reconnect": True}


def _event_json(event: ProgressEvent) -> dict:
    return event.model_dump(mode="json")


@router.post("/tasks", response_model=Task, status_code=status.HTTP_201_CREATED)
def create_task(req: CreateTaskRequest, tasks: TaskService = Depends(get_tasks)) -> Task:
    return tasks.create_task(req.model_dump())


@router.get("/tasks", response_model=TaskListResponse)
def list_tasks(
    status: str | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    tasks: TaskService = Depends(get_tasks),
) -> TaskListResponse:
    listing, page, page_size = tasks.list_tasks(status=status, page=page, page_size=page_size)
    return TaskListResponse(tasks=list(listing), total=listing.total, page=page, page_size=page_size)


@router.get("/tasks/{task_id}", response_model=Task)
def get_task(task_id: str, tasks: TaskService = Depends(get_tasks)) -> Task:
    return tasks.get_task(task_id)


@router.post("/tasks/{task_id}/events", response_model=Task)
def post_event(task_id: str, req: EventRequest, tasks: TaskService = Depends(get_tasks)) -> Task:
    """Worker-facing ingestion of one progress/status event."""
    return tasks.report(task_id, req.model_dump(exclude_none=True))


@router.get("/tasks/{task_id}/stream")
def stream_task(task_id: str, request: Request, services: Services = Depends(get_services)) -> StreamingResponse:
    """Stream task progress via Server-Sent Events until the task finishes."""
    # NotFound propagates as a 404 before the stream starts
    services.tasks.get_task(task_id)

    async def event_generator():
        # subscribe only once the response is being sent
        session = services.gateway.connect(task_id)
        try:
            async for event in session.events(should_stop=request.is_disconnected):
                yield f"data: {json.dumps(_event_json(event))}\n\n"
        except SlowConsumer:
            logger.warning("SSE client of task %s fell behind", task_id)
            yield f"data: {json.dumps(SLOW_CONSUMER_PAYLOAD)}\n\n"
        finally:
            session.close()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.websocket("/tasks/{task_id}/progress")
async def watch_progress(websocket: WebSocket, task_id: str) -> None:
    """Push task progress over a websocket until the task finishes."""
    services = get_services(websocket)
    try:
        session = services.gateway.connect(task_id)
    except NotFound:
        logger.info("WebSocket: task %s not found", task_id)
        await websocket.close(code=WS_TASK_NOT_FOUND, reason="task not found")
        return

    await websocket.accept()
    logger.info("WebSocket: connection established for task %s", task_id)

    receiver = asyncio.create_task(websocket.receive())
    disconnected = False

    async def client_gone() -> bool:
        nonlocal receiver, disconnected
        if not receiver.done():
            return False
        if receiver.exception() is not None or receiver.result()["type"] == "websocket.disconnect":
            disconnected = True
            return True
        # clients have nothing to say on this channel; keep listening
        receiver = asyncio.create_task(websocket.receive())
        return False

    close_code = status.WS_1000_NORMAL_CLOSURE
    try:
        async for event in session.events(should_stop=client_gone):
            await websocket.send_json(_event_json(event))
    except SlowConsumer:
        logger.warning("WebSocket client of task %s fell behind", task_id)
        close_code = status.WS_1013_TRY_AGAIN_LATER
        await websocket.send_json(SLOW_CONSUMER_PAYLOAD)
    except WebSocketDisconnect:
        disconnected = True
    finally:
        session.close()
        if not receiver.done():
            receiver.cancel()
        logger.info("WebSocket: connection closed for task %s", task_id)

    if not disconnected:
        await websocket.close(code=close_code)
