from __future__ import annotations

import typer

from .serve import app as serve_app
from .tasks import app as tasks_app

app = typer.Typer(add_completion=False, help="Media task tracking backend CLI")
app.add_typer(serve_app, name="serve")
app.add_typer(tasks_app, name="tasks")


if __name__ == "__main__":
    app()
