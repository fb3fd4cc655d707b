"""WebSocket endpoints pushing live feed and notification state."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from civicfeed.api.feed import origin_from_query
from civicfeed.core.deps import get_feed_client, get_store_client, viewer_from_token
from civicfeed.core.errors import FeedError
from civicfeed.core.visibility import ViewerContext
from civicfeed.services.change_feed import ChangeFeedClient
from civicfeed.services.feed_service import LiveView, subscribe_feed, subscribe_notifications
from civicfeed.services.geo_service import RankMode
from civicfeed.services.store_client import StoreClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _authenticate_ws(store: StoreClient, token: str | None) -> ViewerContext | None:
    db = store.session_factory()
    try:
        return viewer_from_token(db, token)
    finally:
        db.close()


async def _push_changes(websocket: WebSocket, view: LiveView, event: str, render) -> None:
    """Send the current state once, then again after every change."""
    changed = asyncio.Event()
    view.on_change(changed.set)
    await websocket.send_text(json.dumps({"event": event, "data": render()}, default=str))
    while True:
        await changed.wait()
        changed.clear()
        await websocket.send_text(json.dumps({"event": event, "data": render()}, default=str))


async def _serve(websocket: WebSocket, view: LiveView, event: str, render, on_message=None) -> None:
    sender = asyncio.create_task(_push_changes(websocket, view, event, render))
    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text('{"event":"pong"}')
            elif on_message is not None:
                await on_message(data)
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        view.close()


@router.websocket("/ws/feed")
async def feed_socket(
    websocket: WebSocket,
    feed: ChangeFeedClient = Depends(get_feed_client),
    store: StoreClient = Depends(get_store_client),
):
    """
    Live feed. Client connects with optional ?token=<jwt>&q=&mode=&lat=&lng=.
    Server pushes: feed.changed (ranked report list).
    """
    params = websocket.query_params
    viewer = _authenticate_ws(store, params.get("token"))
    if viewer is None:
        await websocket.close(code=4003, reason="Invalid or expired token")
        return
    try:
        mode = RankMode(params.get("mode", RankMode.ALL.value))
        lat = float(params["lat"]) if "lat" in params else None
        lng = float(params["lng"]) if "lng" in params else None
    except ValueError:
        await websocket.close(code=4000, reason="Invalid feed parameters")
        return
    query = params.get("q", "")

    await websocket.accept()
    view = await subscribe_feed(feed, store, viewer)
    view.set_origin(origin_from_query(lat, lng))
    if view.error is not None:
        await websocket.send_text(json.dumps({"event": "feed.error", "data": {"detail": str(view.error)}}))

    def render():
        return [r.model_dump(mode="json") for r in view.rank(query, mode)]

    await _serve(websocket, view, "feed.changed", render)


@router.websocket("/ws/notifications")
async def notifications_socket(
    websocket: WebSocket,
    feed: ChangeFeedClient = Depends(get_feed_client),
    store: StoreClient = Depends(get_store_client),
):
    """
    Live notifications for the token's user.
    Server pushes: notifications.changed ({items, unread_count}).
    Client may send {"action": "mark_read", "id": ...} or {"action": "mark_all_read"}.
    """
    viewer = _authenticate_ws(store, websocket.query_params.get("token"))
    if viewer is None or viewer.user_id is None:
        await websocket.close(code=4001, reason="Missing or invalid token")
        return

    await websocket.accept()
    view = await subscribe_notifications(feed, store, viewer.user_id)

    def render():
        return {
            "items": [n.model_dump(mode="json") for n in view.items()],
            "unread_count": view.unread_count,
        }

    async def on_message(data: str) -> None:
        try:
            message = json.loads(data)
            action = message.get("action")
            if action == "mark_read":
                await view.mark_read(str(message["id"]))
            elif action == "mark_all_read":
                await view.mark_all_read()
        except (ValueError, KeyError, AttributeError) as e:
            await websocket.send_text(json.dumps({"event": "error", "data": {"detail": f"Bad message: {e}"}}))
        except FeedError as e:
            await websocket.send_text(json.dumps({"event": "error", "data": {"detail": str(e)}}))

    await _serve(websocket, view, "notifications.changed", render, on_message)
