"""HTTP client for the mediatask API."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx

from .common.errors import InvalidSpec, InvalidTransition, NotFound, TaskError
from .common.types import StoredFile, Task

DEFAULT_TIMEOUT = 30.0


class TaskClient:
    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8008/api",
        timeout: float = DEFAULT_TIMEOUT,
        http: httpx.Client | None = None,
    ):
        self._prefix = ""
        if http is None:
            http = httpx.Client(base_url=base_url, timeout=timeout)
        else:
            # a preconfigured client (e.g. a test client) keeps its own base url
            self._prefix = httpx.URL(base_url).path.rstrip("/")
        self._http = http

    def __enter__(self) -> TaskClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def _url(self, path: str) -> str:
        return f"{self._prefix}{path}"

    @staticmethod
    def _check(resp: httpx.Response, task_id: str | None = None) -> httpx.Response:
        if resp.is_success:
            return resp
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        if resp.status_code == 404 and task_id is not None:
            raise NotFound(task_id)
        if resp.status_code in (400, 422):
            raise InvalidSpec(str(detail))
        if resp.status_code == 409 and task_id is not None:
            raise InvalidTransition(task_id, str(detail))
        raise TaskError(f"HTTP {resp.status_code}: {detail}")

    def create_task(self, task_type: str, input_params: dict[str, Any] | None = None) -> Task:
        resp = self._http.post(self._url("/tasks"), json={"type": task_type, "input_params": input_params or {}})
        return Task.model_validate(self._check(resp).json())

    def get_task(self, task_id: str) -> Task:
        resp = self._http.get(self._url(f"/tasks/{task_id}"))
        return Task.model_validate(self._check(resp, task_id).json())

    def list_tasks(self, status: str | None = None, page: int = 1, page_size: int = 20) -> dict:
        params: dict[str, Any] = {"page": page, "page_size": page_size}
        if status is not None:
            params["status"] = status
        body = self._check(self._http.get(self._url("/tasks"), params=params)).json()
        body["tasks"] = [Task.model_validate(t) for t in body["tasks"]]
        return body

    def upload_file(self, path: Path) -> StoredFile:
        with path.open("rb") as fh:
            resp = self._http.post(self._url("/upload"), files={"file": (path.name, fh)})
        return StoredFile.model_validate(self._check(resp).json())

    def publish_event(self, task_id: str, status: str, progress: float | None = None, **fields: Any) -> Task:
        payload = {"status": status, "progress": progress, **fields}
        payload = {k: v for k, v in payload.items() if v is not None}
        resp = self._http.post(self._url(f"/tasks/{task_id}/events"), json=payload)
        return Task.model_validate(self._check(resp, task_id).json())

    def watch(self, task_id: str) -> Iterator[dict]:
        """Yield progress events from the task's SSE stream until it ends."""
        with self._http.stream("GET", self._url(f"/tasks/{task_id}/stream"), timeout=None) as resp:
            if not resp.is_success:
                resp.read()
                self._check(resp, task_id)
            for line in resp.iter_lines():
                if line.startswith("data: "):
                    yield json.loads(line[len("data: "):])
