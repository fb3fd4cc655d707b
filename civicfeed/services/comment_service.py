"""Report comment operations."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from civicfeed.core.errors import NotFoundError, PermissionDeniedError
from civicfeed.core.visibility import ViewerContext, is_visible
from civicfeed.models.report import Report
from civicfeed.models.report_comment import ReportComment


def _visible_report(db: Session, report_id: str, viewer: ViewerContext) -> Report:
    report = db.get(Report, report_id)
    # a report the viewer may not see is reported as missing
    if not report or not is_visible(report, viewer.role, viewer.owns(report)):
        raise NotFoundError("Report not found")
    return report


def get_comments(db: Session, report_id: str, viewer: ViewerContext) -> list[ReportComment]:
    """Comments on a report, oldest first."""
    _visible_report(db, report_id, viewer)
    stmt = (
        select(ReportComment)
        .where(ReportComment.report_id == report_id)
        .order_by(ReportComment.created_at.asc())
    )
    return list(db.execute(stmt).scalars().all())


def create_comment(
    db: Session,
    report_id: str,
    viewer: ViewerContext,
    content: str,
    is_anonymous: bool = False,
) -> ReportComment:
    """Post a comment. Anonymous viewers (or anonymous posts) store no user_id."""
    report = _visible_report(db, report_id, viewer)
    comment = ReportComment(
        report_id=report_id,
        user_id=None if is_anonymous else viewer.user_id,
        content=content,
        is_anonymous=is_anonymous or viewer.user_id is None,
        created_at=datetime.now(timezone.utc),
    )
    db.add(comment)
    report.comments_count += 1
    report.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(comment)
    return comment


def _get_comment(db: Session, comment_id: str) -> ReportComment:
    comment = db.get(ReportComment, comment_id)
    if not comment:
        raise NotFoundError("Comment not found")
    return comment


def update_comment(db: Session, comment_id: str, viewer: ViewerContext, content: str) -> ReportComment:
    """Content edit, author only."""
    comment = _get_comment(db, comment_id)
    if comment.user_id is None or comment.user_id != viewer.user_id:
        raise PermissionDeniedError("Only the author can edit this comment")
    comment.content = content
    db.commit()
    db.refresh(comment)
    return comment


def delete_comment(db: Session, comment_id: str, viewer: ViewerContext) -> None:
    """Author or admin."""
    comment = _get_comment(db, comment_id)
    is_author = comment.user_id is not None and comment.user_id == viewer.user_id
    if not (is_author or viewer.is_admin):
        raise PermissionDeniedError("Only the author or an admin can delete this comment")
    report = db.get(Report, comment.report_id)
    if report and report.comments_count > 0:
        report.comments_count -= 1
        report.updated_at = datetime.now(timezone.utc)
    db.delete(comment)
    db.commit()
