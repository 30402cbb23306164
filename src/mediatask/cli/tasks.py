"""mediatask tasks – talk to a running mediatask server.

Commands:
    mediatask tasks submit image_slideshow --param image_duration=3
    mediatask tasks get <task-id>
    mediatask tasks list --status running
    mediatask tasks watch <task-id>
    mediatask tasks upload ./cover.png
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from ..client import TaskClient
from ..common.errors import TaskError

app = typer.Typer(add_completion=False, help="Create, inspect and watch tasks.")
console = Console()

ServerOption = Annotated[
    str,
    typer.Option("--server", envvar="MEDIATASK_SERVER", help="Base URL of the API."),
]


def _client(server: str) -> TaskClient:
    return TaskClient(server)


def _parse_params(params: list[str]) -> dict:
    out: dict = {}
    for item in params:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected key=value, got {item!r}")
        try:
            out[key] = json.loads(raw)
        except ValueError:
            # plain strings need no quoting on the command line
            out[key] = raw
    return out


@app.command()
def submit(
    task_type: Annotated[str, typer.Argument(help="Task type, e.g. image_audio_to_video.")],
    param: Annotated[
        Optional[list[str]],
        typer.Option("--param", "-p", help="Input parameter as key=value (value parsed as JSON if possible)."),
    ] = None,
    server: ServerOption = "http://127.0.0.1:8008/api",
) -> None:
    """Create a task and print its id."""
    with _client(server) as client:
        try:
            task = client.create_task(task_type, _parse_params(param or []))
        except TaskError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)
    typer.echo(task.id)


@app.command()
def get(
    task_id: str,
    server: ServerOption = "http://127.0.0.1:8008/api",
) -> None:
    """Print one task as JSON."""
    with _client(server) as client:
        try:
            task = client.get_task(task_id)
        except TaskError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)
    typer.echo(task.model_dump_json(indent=2))


@app.command("list")
def list_(
    status: Annotated[Optional[str], typer.Option(help="Only tasks in this status.")] = None,
    page: Annotated[int, typer.Option(min=1)] = 1,
    page_size: Annotated[int, typer.Option(min=1, max=100)] = 20,
    server: ServerOption = "http://127.0.0.1:8008/api",
) -> None:
    """List tasks, newest first."""
    with _client(server) as client:
        try:
            body = client.list_tasks(status=status, page=page, page_size=page_size)
        except TaskError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)

    table = Table(title=f"Tasks (page {body['page']}, {body['total']} total)")
    table.add_column("id")
    table.add_column("type")
    table.add_column("status")
    table.add_column("progress", justify="right")
    table.add_column("created")
    for task in body["tasks"]:
        table.add_row(task.id, task.type, task.status, f"{task.progress:.1f}%", task.created_at.isoformat())
    console.print(table)


@app.command()
def watch(
    task_id: str,
    server: ServerOption = "http://127.0.0.1:8008/api",
) -> None:
    """Follow a task's progress until it completes or fails."""
    last: dict = {}
    with _client(server) as client, Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.fields[message]}"),
        console=console,
    ) as bar:
        row = bar.add_task(task_id[:8], total=100, message="")
        try:
            for event in client.watch(task_id):
                if "error" in event and "status" not in event:
                    console.print("[yellow]Fell behind the stream; reconnect to resume.[/yellow]")
                    raise typer.Exit(code=2)
                last = event
                bar.update(row, completed=event.get("progress") or 0, message=event.get("message") or "")
        except TaskError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)

    if last.get("status") == "failed":
        console.print(f"[red]Task failed:[/red] {last.get('error')}")
        raise typer.Exit(code=1)
    console.print(f"Task {task_id} {last.get('status', 'unknown')}")


@app.command()
def upload(
    path: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
    server: ServerOption = "http://127.0.0.1:8008/api",
) -> None:
    """Upload an input file and print its stored reference."""
    with _client(server) as client:
        try:
            stored = client.upload_file(path)
        except TaskError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)
    typer.echo(stored.model_dump_json(indent=2))
