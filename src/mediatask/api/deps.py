from __future__ import annotations

from starlette.requests import HTTPConnection

from ..common.service import Services, TaskService


def get_services(conn: HTTPConnection) -> Services:
    return conn.app.state.services


def get_tasks(conn: HTTPConnection) -> TaskService:
    return get_services(conn).tasks
