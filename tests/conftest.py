# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from mediatask.api.app import create_app
from mediatask.common.bus import ProgressBus
from mediatask.common.config import Settings
from mediatask.common.registry import TaskRegistry
from mediatask.common.service import Services


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a per-test directory with fast stream polling."""
    return Settings(
        storage_dir=tmp_path / "store",
        persist_tasks=True,
        max_workers=2,
        subscriber_backlog=8,
        stream_poll_interval=0.01,
    )


@pytest.fixture()
def registry() -> TaskRegistry:
    return TaskRegistry()


@pytest.fixture()
def bus(registry: TaskRegistry) -> ProgressBus:
    return ProgressBus(registry, backlog=8)


@pytest.fixture()
def services(settings: Settings) -> Services:
    svc = Services(settings)
    yield svc
    svc.shutdown()


@pytest.fixture()
def client(settings: Settings, services: Services) -> TestClient:
    app = create_app(settings, services)
    with TestClient(app) as c:
        yield c
