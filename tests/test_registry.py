# tests/test_registry.py

from __future__ import annotations

import json
import math
from datetime import timedelta
from pathlib import Path

import pytest

from mediatask.common.errors import InvalidSpec, InvalidTransition, NotFound
from mediatask.common.registry import TaskRegistry
from mediatask.common.types import ProgressEvent, TaskSpec


def _event(task_id: str, status: str, progress: float | None = None, **kw) -> ProgressEvent:
    return ProgressEvent(task_id=task_id, status=status, progress=progress, **kw)


def test_create_starts_pending_at_zero(registry: TaskRegistry) -> None:
    task = registry.create(TaskSpec(type="image_slideshow", input_params={"image_duration": 3}))

    assert task.status == "pending"
    assert task.progress == 0.0
    assert task.result is None
    assert task.error is None
    assert task.input_params == {"image_duration": 3}
    assert registry.get(task.id) == task


def test_create_accepts_plain_mapping(registry: TaskRegistry) -> None:
    task = registry.create({"type": "image_audio_to_video", "input_params": None})
    assert task.type == "image_audio_to_video"
    assert task.input_params == {}


@pytest.mark.parametrize(
    "spec",
    [
        {},
        {"type": ""},
        {"type": "   "},
        {"type": "x", "input_params": ["not", "a", "mapping"]},
        "not a mapping",
    ],
)
def test_create_rejects_malformed_spec(registry: TaskRegistry, spec) -> None:
    with pytest.raises(InvalidSpec):
        registry.create(spec)
    assert registry.list().total == 0


def test_create_rejects_unsupported_type() -> None:
    registry = TaskRegistry(task_types=["image_slideshow"])
    registry.create({"type": "image_slideshow"})
    with pytest.raises(InvalidSpec):
        registry.create({"type": "transcode"})


def test_get_unknown_raises_not_found(registry: TaskRegistry) -> None:
    with pytest.raises(NotFound):
        registry.get("missing")


def test_reads_return_copies(registry: TaskRegistry) -> None:
    task = registry.create({"type": "t"})
    copy = registry.get(task.id)
    copy.progress = 55.0
    copy.input_params["x"] = 1
    assert registry.get(task.id).progress == 0.0
    assert registry.get(task.id).input_params == {}


def test_lifecycle_scenario(registry: TaskRegistry) -> None:
    task = registry.create({"type": "t"})

    t = registry.apply_event(task.id, _event(task.id, "running", 10))
    assert (t.status, t.progress) == ("running", 10.0)

    # stale progress is accepted but never lowers the value
    t = registry.apply_event(task.id, _event(task.id, "running", 5))
    assert (t.status, t.progress) == ("running", 10.0)

    t = registry.apply_event(task.id, _event(task.id, "completed", 100, result="x"))
    assert (t.status, t.progress, t.result) == ("completed", 100.0, "x")
    assert t.error is None

    with pytest.raises(InvalidTransition):
        registry.apply_event(task.id, _event(task.id, "running", 100))
    with pytest.raises(InvalidTransition):
        registry.apply_event(task.id, _event(task.id, "failed", error="late"))
    assert registry.get(task.id).status == "completed"


def test_completed_forces_full_progress(registry: TaskRegistry) -> None:
    task = registry.create({"type": "t"})
    registry.apply_event(task.id, _event(task.id, "running", 40, total_frames=250, current_frame=100))
    t = registry.apply_event(task.id, _event(task.id, "completed", result={"output_url": "/o.mp4"}))
    assert t.progress == 100.0
    assert t.current_frame == 250
    assert t.result == {"output_url": "/o.mp4"}


def test_failed_keeps_progress_and_defaults_error(registry: TaskRegistry) -> None:
    task = registry.create({"type": "t"})
    registry.apply_event(task.id, _event(task.id, "running", 30))
    t = registry.apply_event(task.id, _event(task.id, "failed"))
    assert t.status == "failed"
    assert t.progress == 30.0
    assert t.error == "task failed"
    assert t.result is None


def test_pending_straight_to_failed(registry: TaskRegistry) -> None:
    task = registry.create({"type": "t"})
    t = registry.apply_event(task.id, _event(task.id, "failed", error="input missing"))
    assert (t.status, t.error) == ("failed", "input missing")


def test_cannot_return_to_pending(registry: TaskRegistry) -> None:
    task = registry.create({"type": "t"})
    registry.apply_event(task.id, _event(task.id, "pending", 0))
    registry.apply_event(task.id, _event(task.id, "running", 1))
    with pytest.raises(InvalidTransition):
        registry.apply_event(task.id, _event(task.id, "pending"))
    assert registry.get(task.id).status == "running"


def test_pending_event_with_progress_starts_task(registry: TaskRegistry) -> None:
    task = registry.create({"type": "t"})
    t = registry.apply_event(task.id, _event(task.id, "pending", 30))
    assert (t.status, t.progress) == ("running", 30.0)
    with pytest.raises(InvalidTransition):
        registry.apply_event(task.id, _event(task.id, "pending", 40))


def test_pending_event_without_progress_stays_pending(registry: TaskRegistry) -> None:
    task = registry.create({"type": "t"})
    t = registry.apply_event(task.id, _event(task.id, "pending", message="Queued behind 3 tasks"))
    assert (t.status, t.progress, t.message) == ("pending", 0.0, "Queued behind 3 tasks")


def test_failed_keeps_diagnostic_details(registry: TaskRegistry) -> None:
    task = registry.create({"type": "t"})
    details = {"command": "ffmpeg -i in.png out.mp4", "stderr_tail": "Invalid data found"}
    t = registry.apply_event(task.id, _event(task.id, "failed", error="encoder exited 1", details=details))
    assert (t.error, t.details) == ("encoder exited 1", details)


@pytest.mark.parametrize("progress", [-1.0, 100.5, math.nan, math.inf])
def test_out_of_range_progress_is_invalid(registry: TaskRegistry, progress: float) -> None:
    task = registry.create({"type": "t"})
    with pytest.raises(InvalidTransition):
        registry.apply_event(task.id, _event(task.id, "running", progress))
    unchanged = registry.get(task.id)
    assert (unchanged.status, unchanged.progress) == ("pending", 0.0)


def test_apply_event_unknown_task(registry: TaskRegistry) -> None:
    with pytest.raises(NotFound):
        registry.apply_event("missing", _event("missing", "running", 1))


def test_list_newest_first_with_filter_and_paging(registry: TaskRegistry) -> None:
    ids = [registry.create({"type": "t"}).id for _ in range(5)]
    registry.apply_event(ids[1], _event(ids[1], "running", 5))
    registry.apply_event(ids[3], _event(ids[3], "running", 5))

    assert [t.id for t in registry.list()] == list(reversed(ids))
    assert [t.id for t in registry.list(status="running")] == [ids[3], ids[1]]
    assert registry.list(status="running").total == 2

    page = registry.list(offset=1, limit=2)
    assert [t.id for t in page] == [ids[3], ids[2]]
    assert len(page) == 2
    assert page.total == 5


def test_list_orders_by_created_at(registry: TaskRegistry) -> None:
    older = registry.create({"type": "t"})
    newer = registry.create({"type": "t"})
    # force a clock skew: the second record claims an earlier timestamp
    registry._tasks[newer.id] = registry._tasks[newer.id].model_copy(
        update={"created_at": older.created_at - timedelta(seconds=5)}
    )
    assert [t.id for t in registry.list()] == [older.id, newer.id]


def test_listing_is_restartable(registry: TaskRegistry) -> None:
    listing = registry.list()
    assert list(listing) == []
    task = registry.create({"type": "t"})
    assert [t.id for t in listing] == [task.id]
    assert [t.id for t in listing] == [task.id]


def test_list_rejects_unknown_status(registry: TaskRegistry) -> None:
    with pytest.raises(InvalidSpec):
        registry.list(status="processing")


def test_records_persisted_as_json(tmp_path: Path) -> None:
    registry = TaskRegistry(tmp_path / "tasks")
    task = registry.create({"type": "t"})
    registry.apply_event(task.id, _event(task.id, "running", 42, message="Processing"))

    stored = json.loads((tmp_path / "tasks" / f"{task.id}.json").read_text(encoding="utf-8"))
    assert stored["status"] == "running"
    assert stored["progress"] == 42.0
    assert stored["message"] == "Processing"
