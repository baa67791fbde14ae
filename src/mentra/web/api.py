"""FastAPI application factory.

Main entry point for the Mentra Web API.
"""

import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mentra import __version__
from mentra.config import load_app_config
from mentra.config.logging_setup import configure_logging
from mentra.db.database import init_db, is_initialized
from mentra.web.routes import (
    auth_router,
    dashboard_router,
    goals_router,
    health_router,
    journal_router,
    notifications_router,
    notifications_ws_router,
    problems_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    config = load_app_config()
    configure_logging(config.logging)
    if not is_initialized():
        init_db(Path(config.database.path))
    logger.info("api_startup", version=__version__, database=config.database.path)
    yield
    logger.info("api_shutdown")


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Validation failed", "details": jsonable_errors(exc)},
    )


async def _integrity_error_handler(request: Request, exc: sqlite3.IntegrityError) -> JSONResponse:
    logger.warning("api.integrity_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"error": "Conflicts with existing data"},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw input (may hold passwords)."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Mentra API",
        description="Journal, scaffolded problems, dashboards and notifications",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=load_app_config().cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error bodies are {"error": ...}
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(sqlite3.IntegrityError, _integrity_error_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(journal_router)
    app.include_router(problems_router)
    app.include_router(goals_router)
    app.include_router(dashboard_router)
    app.include_router(notifications_router)
    app.include_router(notifications_ws_router)

    return app


# Default app instance for uvicorn
app = create_app()
