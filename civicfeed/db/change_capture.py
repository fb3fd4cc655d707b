"""Publish committed row changes onto change-feed channels."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, object_session

from civicfeed.core.change_hub import ChangeHub
from civicfeed.core.feed_policies import REPORTS_CHANNEL, comments_channel, notifications_channel

logger = logging.getLogger(__name__)

_PENDING_KEY = "civicfeed_pending_changes"

_hub: ChangeHub | None = None


def channel_for(table: str, row: Any) -> str | None:
    """Channel a row change belongs on, or None for tables with no feed."""
    if table == "reports":
        return REPORTS_CHANNEL
    if table == "report_comments":
        return comments_channel(row.report_id)
    if table == "notifications":
        return notifications_channel(row.user_id)
    return None


def row_to_dict(row: Any) -> dict[str, Any]:
    mapper = inspect(row).mapper
    return {attr.key: getattr(row, attr.key) for attr in mapper.column_attrs}


def _record(kind: str, target: Any) -> None:
    session = object_session(target)
    if session is None:
        return
    table = target.__tablename__
    channel = channel_for(table, target)
    if channel is None:
        return
    if kind == "DELETE":
        envelope = {"kind": kind, "table": table, "new": None, "old": {"id": target.id}}
    else:
        envelope = {"kind": kind, "table": table, "new": row_to_dict(target), "old": None}
    session.info.setdefault(_PENDING_KEY, []).append((channel, envelope))


def _on_insert(mapper, connection, target) -> None:
    _record("INSERT", target)


def _on_update(mapper, connection, target) -> None:
    _record("UPDATE", target)


def _on_delete(mapper, connection, target) -> None:
    _record("DELETE", target)


def _after_commit(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    if _hub is None:
        return
    for channel, envelope in pending:
        delivered = _hub.publish(channel, envelope)
        logger.debug(
            "Published %s %s on %s to %s subscriber(s)",
            envelope["kind"],
            envelope["table"],
            channel,
            delivered,
        )


def _after_rollback(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


def install_change_capture(hub: ChangeHub, models: list[type]) -> None:
    """Hook mapper and session events so every commit publishes its row changes."""
    global _hub
    _hub = hub
    for model in models:
        if event.contains(model, "after_insert", _on_insert):
            continue
        event.listen(model, "after_insert", _on_insert)
        event.listen(model, "after_update", _on_update)
        event.listen(model, "after_delete", _on_delete)
    if not event.contains(Session, "after_commit", _after_commit):
        event.listen(Session, "after_commit", _after_commit)
        event.listen(Session, "after_rollback", _after_rollback)
