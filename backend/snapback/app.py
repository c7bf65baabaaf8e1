"""FastAPI application setup for SnapBack."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from snapback.api.dependencies import build_container
from snapback.api.routes_admin import router as admin_router
from snapback.api.routes_decisions import router as decisions_router
from snapback.api.routes_snapshots import router as snapshots_router
from snapback.core.config import Settings, get_settings
from snapback.core.errors import (
    ContextValidationError,
    OperationBlockedError,
    SnapshotNotFoundError,
    WalkLimitExceeded,
    WorkspaceNotFoundError,
)
from snapback.core.logging import configure_logging

configure_logging()

_ERROR_STATUS: dict[type[Exception], int] = {
    ContextValidationError: 422,
    SnapshotNotFoundError: 404,
    WorkspaceNotFoundError: 409,
    OperationBlockedError: 409,
    WalkLimitExceeded: 413,
}


def create_app(settings: Settings | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        container = build_container(settings or get_settings())
        await container.start()
        app.state.container = container
        try:
            yield
        finally:
            await container.close()

    application = FastAPI(
        title="SnapBack",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["http://127.0.0.1:5174", "http://localhost:5174"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(decisions_router, prefix="", tags=["decisions"])
    application.include_router(snapshots_router, prefix="", tags=["snapshots"])
    application.include_router(admin_router, prefix="", tags=["admin"])

    for error_type, status_code in _ERROR_STATUS.items():
        application.add_exception_handler(error_type, _error_handler(status_code))

    @application.get("/health", tags=["admin"])
    def health() -> dict[str, bool]:
        """Simple liveness check."""
        return {"ok": True}

    return application


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


app = create_app()
