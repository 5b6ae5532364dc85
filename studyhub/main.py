"""Application entry point for the FastAPI backend."""
from __future__ import annotations

import asyncio
import logging
import os
from datetime import timedelta
from typing import Iterable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .database import create_session, init_db
from .errors import StudyHubError
from .migrations import run_migrations_if_needed
from .routers import (
    connections_router,
    groups_router,
    messages_router,
    notifications_router,
    posts_router,
    realtime_router,
    sessions_router,
)
from .services import change_feed, delete_old_notifications

logger = logging.getLogger(__name__)

settings = get_settings()
APP_NAME = settings.app_name
API_VERSION = settings.api_version
DISABLE_CLEANUP = os.getenv("DISABLE_CLEANUP", "").lower() == "true" or os.getenv("PYTEST_CURRENT_TEST") is not None

app = FastAPI(title=APP_NAME, version=API_VERSION)

cors_origins = os.getenv("CORS_ORIGINS")
if cors_origins:
    origins: Iterable[str] = [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
else:
    origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(posts_router)
app.include_router(sessions_router)
app.include_router(messages_router)
app.include_router(connections_router)
app.include_router(notifications_router)
app.include_router(groups_router)
app.include_router(realtime_router)


@app.exception_handler(StudyHubError)
async def _studyhub_error_handler(request: Request, exc: StudyHubError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


_CLEANUP_INTERVAL = timedelta(hours=24)
_cleanup_task: asyncio.Task[None] | None = None
_cleanup_stop = asyncio.Event()


def _cleanup_notifications() -> int:
    db = create_session()
    try:
        return delete_old_notifications(db, older_than=timedelta(days=settings.notification_retention_days))
    finally:
        db.close()


async def _run_cleanup_once() -> None:
    """Execute a single notification retention pass in a worker thread."""

    try:
        removed = await asyncio.to_thread(_cleanup_notifications)
        logger.info("Notification cleanup removed %d row(s)", removed)
    except Exception:  # pragma: no cover - best effort logging
        logger.exception("Unexpected error during cleanup run")


async def _cleanup_loop() -> None:
    while not _cleanup_stop.is_set():
        await _run_cleanup_once()
        try:
            await asyncio.wait_for(_cleanup_stop.wait(), timeout=_CLEANUP_INTERVAL.total_seconds())
        except asyncio.TimeoutError:
            continue


@app.on_event("startup")
async def _startup() -> None:
    """Ensure the database schema and background tasks are ready before serving."""

    try:
        if not run_migrations_if_needed(database_url=settings.database_url):
            init_db()
    except Exception:  # pragma: no cover - best effort logging
        logger.exception("Database initialisation failed")
        raise

    if DISABLE_CLEANUP:
        logger.info("Background cleanup disabled (testing mode)")
        return

    global _cleanup_task
    if _cleanup_task is None or _cleanup_task.done():
        _cleanup_stop.clear()
        _cleanup_task = asyncio.create_task(_cleanup_loop())


@app.on_event("shutdown")
async def _shutdown() -> None:
    if DISABLE_CLEANUP:
        return

    _cleanup_stop.set()
    if _cleanup_task is not None:
        try:
            await _cleanup_task
        except asyncio.CancelledError:  # pragma: no cover
            pass


@app.get("/api", tags=["system"])
def api_info() -> dict[str, str]:
    return {"service": APP_NAME, "version": API_VERSION}


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, str | int]:
    return {"status": "ok", "live_subscriptions": change_feed.subscriber_count}
