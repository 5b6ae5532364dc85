"""WebSocket endpoint multiplexing live resource views for one viewer."""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError

from ..database import create_session
from ..errors import StudyHubError
from ..services import ChannelSubscriptionManager, ResourceKey, ResourceKind, build_view, resolve_profile
from ..services.live_views import LiveView, NotificationFeedView

router = APIRouter()
logger = logging.getLogger(__name__)


def _authenticate(token: str) -> UUID:
    db = create_session()
    try:
        return resolve_profile(db, token).id
    finally:
        db.close()


@router.websocket("/ws/live")
async def live_socket(websocket: WebSocket, token: str = Query(..., alias="token")) -> None:
    """Keep one subscription per resource kind open and push a snapshot after every change.

    Client messages: ``{"type": "open", "resource": kind, "id": ident}``,
    ``{"type": "close", "resource": kind}``, ``{"type": "refresh", "resource": kind}``,
    ``{"type": "read_all"}`` and ``ping``.
    """

    try:
        viewer_id = await asyncio.to_thread(_authenticate, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    send_lock = asyncio.Lock()

    async def send(payload: dict[str, Any]) -> None:
        async with send_lock:
            await websocket.send_text(json.dumps(payload, default=str))

    async def push_snapshot(view: LiveView) -> None:
        await send({"type": "snapshot", **view.snapshot()})

    def view_factory(key: ResourceKey, viewer: Any) -> LiveView:
        view = build_view(key, viewer)
        view.add_listener(push_snapshot)
        return view

    manager = ChannelSubscriptionManager(viewer_id, view_factory=view_factory)
    # Opens and refreshes run beside the receive loop so a slow load never blocks close or ping.
    pending: dict[ResourceKind, set[asyncio.Task[None]]] = {}

    async def run_for(kind: ResourceKind, work: Callable[[], Awaitable[Any]]) -> None:
        try:
            await work()
        except StudyHubError as exc:
            await send({"type": "error", "resource": str(kind), "detail": exc.detail})
        except WebSocketDisconnect:
            logger.debug("Live socket for %s went away while %s was loading", viewer_id, kind)
        except SQLAlchemyError:
            logger.exception("Live %s work failed for %s", kind, viewer_id)
            await send({"type": "error", "resource": str(kind), "detail": "Failed to load data"})

    def track(kind: ResourceKind, work: Callable[[], Awaitable[Any]]) -> None:
        tasks = pending.setdefault(kind, set())
        task = asyncio.create_task(run_for(kind, work), name=f"live-{kind}-{viewer_id}")
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    async def cancel_pending(kind: ResourceKind) -> None:
        tasks = pending.pop(kind, set())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def open_resource(key: ResourceKey) -> None:
        current = manager.get(key.kind)
        handle = await manager.open(key)
        # A fresh handle already pushed its snapshot from the initial load.
        if handle is current:
            await push_snapshot(handle.view)

    await send({"type": "ready", "viewer_id": str(viewer_id)})
    logger.info("Live socket connected for %s", viewer_id)
    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                payload = {"type": raw}
            if not isinstance(payload, dict):
                payload = {}

            message_type = str(payload.get("type") or "").strip().lower()
            resource = payload.get("resource")
            try:
                if message_type == "ping":
                    await send({"type": "pong"})
                elif message_type == "open":
                    key = ResourceKey.for_viewer(str(resource), payload.get("id"), viewer_id)
                    track(key.kind, partial(open_resource, key))
                elif message_type == "close":
                    kind = ResourceKind(str(resource))
                    await cancel_pending(kind)
                    await manager.close(kind)
                    await send({"type": "closed", "resource": resource})
                elif message_type == "refresh":
                    handle = manager.get(str(resource))
                    if handle is not None:
                        track(handle.key.kind, handle.view.reload)
                elif message_type == "read_all":
                    handle = manager.get("notifications")
                    if handle is not None and isinstance(handle.view, NotificationFeedView):
                        await handle.view.mark_all_read_locally()
                else:
                    await send({"type": "error", "detail": f"Unknown message type: {message_type or 'empty'}"})
            except StudyHubError as exc:
                await send({"type": "error", "resource": resource, "detail": exc.detail})
            except ValueError:
                await send({"type": "error", "resource": resource, "detail": "Unknown resource kind"})
    finally:
        for kind in list(pending):
            await cancel_pending(kind)
        await manager.close_all()
        logger.info("Live socket disconnected for %s", viewer_id)


__all__ = ["router"]
