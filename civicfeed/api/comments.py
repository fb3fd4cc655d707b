"""Comments API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from civicfeed.core.deps import get_viewer, require_user
from civicfeed.core.errors import NotFoundError, PermissionDeniedError
from civicfeed.core.visibility import ViewerContext
from civicfeed.db.session import get_db
from civicfeed.schemas.comment import CommentCreate, CommentOut, CommentUpdate
from civicfeed.services.comment_service import create_comment, delete_comment, get_comments, update_comment

router = APIRouter(tags=["comments"])


@router.get("/reports/{report_id}/comments", response_model=list[CommentOut])
def list_comments(
    report_id: str,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(get_viewer),
):
    """Comments on a report, oldest first."""
    try:
        return get_comments(db, report_id, viewer)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/reports/{report_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
def post_comment(
    report_id: str,
    data: CommentCreate,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(get_viewer),
):
    """Post a comment; anonymous viewers may comment anonymously."""
    try:
        return create_comment(db, report_id, viewer, data.content, data.is_anonymous)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.patch("/comments/{comment_id}", response_model=CommentOut)
def edit_comment(
    comment_id: str,
    data: CommentUpdate,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_user),
):
    try:
        return update_comment(db, comment_id, viewer, data.content)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_comment(
    comment_id: str,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_user),
):
    try:
        delete_comment(db, comment_id, viewer)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
