"""Async facade over the storage collaborator's query operations.

Views run on the event loop; each call here opens its own session and runs the
blocking service function in a worker thread.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from civicfeed.core.visibility import ReportStatus, ViewerContext
from civicfeed.db.session import SessionLocal
from civicfeed.schemas.comment import CommentOut
from civicfeed.schemas.notification import NotificationCreate, NotificationOut
from civicfeed.schemas.report import ReportOut
from civicfeed.services import comment_service, notification_service, report_service

R = TypeVar("R")


class StoreClient:
    def __init__(self, session_factory: sessionmaker | Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def _call(self, fn: Callable[..., R], *args: Any) -> R:
        db = self.session_factory()
        try:
            return fn(db, *args)
        finally:
            db.close()

    async def _run(self, fn: Callable[..., R], *args: Any) -> R:
        return await asyncio.to_thread(self._call, fn, *args)

    # ---------- reports ----------

    async def get_approved_reports(self) -> list[ReportOut]:
        return await self._run(_reports, report_service.get_approved_reports)

    async def get_pending_reports(self) -> list[ReportOut]:
        return await self._run(_reports, report_service.get_pending_reports)

    async def get_all_reports(self) -> list[ReportOut]:
        return await self._run(_reports, report_service.get_all_reports)

    async def get_reports_owned_by(self, user_id: str) -> list[ReportOut]:
        return await self._run(_reports, report_service.get_reports_owned_by, user_id)

    async def update_report_status(self, report_id: str, status: ReportStatus | str, actor: ViewerContext) -> ReportOut:
        """Moderation action: mutation plus notification fanout."""

        def _review(db: Session) -> ReportOut:
            return ReportOut.model_validate(report_service.review_report(db, report_id, status, actor))

        return await self._run(_review)

    # ---------- comments ----------

    async def get_comments(self, report_id: str, viewer: ViewerContext) -> list[CommentOut]:
        def _fetch(db: Session) -> list[CommentOut]:
            return [CommentOut.model_validate(c) for c in comment_service.get_comments(db, report_id, viewer)]

        return await self._run(_fetch)

    # ---------- notifications ----------

    async def create_notification(self, payload: NotificationCreate) -> NotificationOut:
        def _create(db: Session) -> NotificationOut:
            return NotificationOut.model_validate(notification_service.create_notification(db, payload))

        return await self._run(_create)

    async def get_user_notifications(self, user_id: str, limit: int | None = None) -> list[NotificationOut]:
        def _fetch(db: Session) -> list[NotificationOut]:
            rows = notification_service.get_user_notifications(db, user_id, limit)
            return [NotificationOut.model_validate(n) for n in rows]

        return await self._run(_fetch)

    async def mark_notification_read(self, notification_id: str, user_id: str) -> None:
        await self._run(notification_service.mark_notification_read, notification_id, user_id)

    async def mark_all_notifications_read(self, user_id: str) -> None:
        await self._run(notification_service.mark_all_notifications_read, user_id)

    async def delete_notification(self, notification_id: str, user_id: str) -> None:
        await self._run(notification_service.delete_notification, notification_id, user_id)


def _reports(db: Session, query: Callable[..., list], *args: Any) -> list[ReportOut]:
    return [ReportOut.model_validate(r) for r in query(db, *args)]
