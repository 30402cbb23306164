from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from ..common.config import Settings, get_settings
from ..common.errors import InvalidSpec, InvalidTransition, NotFound
from ..common.service import Services
from .routes_health import router as health_router
from .routes_tasks import router as tasks_router
from .routes_upload import router as upload_router

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    InvalidSpec: 400,
    NotFound: 404,
    InvalidTransition: 409,
}


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or get_settings()
    services = services or Services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("mediatask api ready (storage=%s)", settings.storage_dir)
        yield
        services.shutdown()

    app = FastAPI(title="mediatask api", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for exc_type, status_code in _STATUS_BY_ERROR.items():
        app.add_exception_handler(exc_type, _error_handler(status_code))

    app.include_router(health_router)
    app.include_router(tasks_router, prefix=settings.api_prefix)
    app.include_router(upload_router, prefix=settings.api_prefix)
    app.mount(
        f"{settings.api_prefix}/uploads",
        StaticFiles(directory=settings.upload_dir, check_dir=False),
        name="uploads",
    )
    return app


def main() -> None:
    import uvicorn

    from ..common.logging import setup_logging

    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
