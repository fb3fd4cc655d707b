"""Notifications API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from civicfeed.core.deps import require_user
from civicfeed.core.errors import NotFoundError, PermissionDeniedError
from civicfeed.core.visibility import ViewerContext
from civicfeed.db.session import get_db
from civicfeed.schemas.notification import NotificationListResponse, NotificationOut
from civicfeed.services.notification_service import (
    delete_notification,
    get_unread_count,
    get_user_notifications,
    mark_all_notifications_read,
    mark_notification_read,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _listing(db: Session, user_id: str, limit: int | None = None) -> NotificationListResponse:
    items = get_user_notifications(db, user_id, limit)
    return NotificationListResponse(
        items=[NotificationOut.model_validate(n) for n in items],
        unread_count=get_unread_count(db, user_id),
    )


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_user),
):
    """Current user's notifications, newest first, with unread count."""
    return _listing(db, viewer.user_id, limit)


@router.post("/read-all", response_model=NotificationListResponse)
def read_all(
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_user),
):
    """Mark everything read and return the authoritative list."""
    mark_all_notifications_read(db, viewer.user_id)
    return _listing(db, viewer.user_id)


@router.post("/{notification_id}/read", response_model=NotificationListResponse)
def read_one(
    notification_id: str,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_user),
):
    """Mark one notification read and return the authoritative list."""
    try:
        mark_notification_read(db, notification_id, viewer.user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return _listing(db, viewer.user_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove(
    notification_id: str,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_user),
):
    try:
        delete_notification(db, notification_id, viewer.user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
