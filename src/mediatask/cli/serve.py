"""mediatask serve – run the HTTP API server."""

from __future__ import annotations

from typing import Annotated, Optional

import typer

from ..common.config import get_settings
from ..common.logging import setup_logging

app = typer.Typer(add_completion=False)


@app.callback(invoke_without_command=True)
def serve(
    dev: Annotated[
        bool,
        typer.Option("--dev", help="Enable uvicorn reload for development."),
    ] = False,
    host: Annotated[
        Optional[str],
        typer.Option(help="Bind address (default from MEDIATASK_HOST)."),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option(help="Port (default from MEDIATASK_PORT)."),
    ] = None,
) -> None:
    """Run the mediatask HTTP API server."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        "mediatask.api.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=dev,
    )
