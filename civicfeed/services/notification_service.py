"""Notification storage operations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from civicfeed.core.config import settings
from civicfeed.core.errors import NotFoundError, PermissionDeniedError
from civicfeed.models.notification import Notification
from civicfeed.schemas.notification import NotificationCreate

logger = logging.getLogger(__name__)


def create_notification(db: Session, payload: NotificationCreate) -> Notification:
    """Insert one unread notification and commit it."""
    now = datetime.now(timezone.utc)
    notification = Notification(
        user_id=payload.user_id,
        title=payload.title,
        message=payload.message,
        type=payload.type,
        read=False,
        data=payload.data,
        created_at=now,
        updated_at=now,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    logger.info("Notification %s (%s) created for user %s", notification.id, notification.type, notification.user_id)
    return notification


def get_user_notifications(db: Session, user_id: str, limit: int | None = None) -> list[Notification]:
    """A user's notifications, newest first."""
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit or settings.notification_fetch_limit)
    )
    return list(db.execute(stmt).scalars().all())


def get_unread_count(db: Session, user_id: str) -> int:
    stmt = select(func.count()).select_from(Notification).where(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    )
    return int(db.execute(stmt).scalar_one())


def _get_owned(db: Session, notification_id: str, user_id: str) -> Notification:
    notification = db.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("Notification not found")
    if notification.user_id != user_id:
        raise PermissionDeniedError("Notification belongs to another user")
    return notification


def mark_notification_read(db: Session, notification_id: str, user_id: str) -> Notification:
    """Flip read=false -> true. Already-read notifications are left untouched."""
    notification = _get_owned(db, notification_id, user_id)
    if not notification.read:
        notification.read = True
        notification.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_notifications_read(db: Session, user_id: str) -> int:
    """Mark every unread notification of the user read. Returns how many changed."""
    unread = list(
        db.execute(
            select(Notification).where(Notification.user_id == user_id, Notification.read.is_(False))
        ).scalars().all()
    )
    now = datetime.now(timezone.utc)
    # ORM-level update so each row emits its own change event
    for notification in unread:
        notification.read = True
        notification.updated_at = now
    db.commit()
    return len(unread)


def delete_notification(db: Session, notification_id: str, user_id: str) -> None:
    notification = _get_owned(db, notification_id, user_id)
    db.delete(notification)
    db.commit()
