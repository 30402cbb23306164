# tests/test_cli.py

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient
from typer.testing import CliRunner

from mediatask.cli import tasks as tasks_cli
from mediatask.cli.main import app
from mediatask.client import TaskClient

runner = CliRunner()


class _SharedClient(TaskClient):
    """TaskClient over the test app that survives the CLI's ``with`` block."""

    def close(self) -> None:
        return


@pytest.fixture()
def api(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> TaskClient:
    shared = _SharedClient("http://testserver/api", http=client)
    monkeypatch.setattr(tasks_cli, "_client", lambda server: shared)
    return shared


def test_submit_parses_params(api: TaskClient) -> None:
    result = runner.invoke(
        app,
        ["tasks", "submit", "image_slideshow", "-p", "image_duration=2.5", "-p", "transition_type=fade"],
    )
    assert result.exit_code == 0, result.output

    task = api.get_task(result.output.strip())
    assert task.input_params == {"image_duration": 2.5, "transition_type": "fade"}


def test_submit_rejects_bad_param(api: TaskClient) -> None:
    result = runner.invoke(app, ["tasks", "submit", "t", "-p", "novalue"])
    assert result.exit_code != 0


def test_get_prints_json(api: TaskClient) -> None:
    task = api.create_task("t")
    result = runner.invoke(app, ["tasks", "get", task.id])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["id"] == task.id


def test_get_unknown_task_fails(api: TaskClient) -> None:
    result = runner.invoke(app, ["tasks", "get", "missing"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_watch_failed_task_exits_nonzero(api: TaskClient) -> None:
    task = api.create_task("t")
    api.publish_event(task.id, "failed", error="unsupported codec")

    result = runner.invoke(app, ["tasks", "watch", task.id])
    assert result.exit_code == 1
    assert "unsupported codec" in result.output


def test_watch_completed_task(api: TaskClient) -> None:
    task = api.create_task("t")
    api.publish_event(task.id, "completed", result="ok")

    result = runner.invoke(app, ["tasks", "watch", task.id])
    assert result.exit_code == 0, result.output
    assert "completed" in result.output
