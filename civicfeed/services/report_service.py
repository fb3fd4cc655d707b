"""Report storage operations and moderation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from civicfeed.core.errors import FanoutPartialFailure, NotFoundError, PermissionDeniedError
from civicfeed.core.visibility import PUBLIC_STATUSES, ReportStatus, ViewerContext, ensure_transition
from civicfeed.models.report import Report
from civicfeed.schemas.report import ReportCreate, ReportSummary
from civicfeed.services.fanout_service import notify_report_reviewed, notify_report_submitted

logger = logging.getLogger(__name__)


def _newest_first(stmt):
    return stmt.order_by(Report.created_at.desc())


def get_approved_reports(db: Session) -> list[Report]:
    """Reports the community may see (approved or resolved), newest first."""
    stmt = select(Report).where(Report.status.in_([s.value for s in PUBLIC_STATUSES]))
    return list(db.execute(_newest_first(stmt)).scalars().all())


def get_pending_reports(db: Session) -> list[Report]:
    stmt = select(Report).where(Report.status == ReportStatus.PENDING.value)
    return list(db.execute(_newest_first(stmt)).scalars().all())


def get_all_reports(db: Session) -> list[Report]:
    return list(db.execute(_newest_first(select(Report))).scalars().all())


def get_reports_owned_by(db: Session, user_id: str) -> list[Report]:
    stmt = select(Report).where(Report.owner_id == user_id)
    return list(db.execute(_newest_first(stmt)).scalars().all())


def get_report(db: Session, report_id: str) -> Report:
    report = db.get(Report, report_id)
    if not report:
        raise NotFoundError("Report not found")
    return report


def count_reports_by_status(db: Session, user_id: str) -> ReportSummary:
    rows = db.execute(
        select(Report.status, func.count()).where(Report.owner_id == user_id).group_by(Report.status)
    ).all()
    counts = {status: count for status, count in rows}
    return ReportSummary(total=sum(counts.values()), **counts)


def submit_report(db: Session, owner_id: str, data: ReportCreate) -> Report:
    """Create a pending report, then notify every admin."""
    location = data.location
    now = datetime.now(timezone.utc)
    report = Report(
        owner_id=owner_id,
        title=data.title,
        description=data.description,
        latitude=location.lat if location else None,
        longitude=location.lng if location else None,
        address=location.address if location else None,
        image_url=data.image_url,
        status=ReportStatus.PENDING.value,
        category=data.category,
        priority=data.priority,
        votes=0,
        comments_count=0,
        is_anonymous=data.is_anonymous,
        created_at=now,
        updated_at=now,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("Report %s submitted by %s", report.id, owner_id)

    try:
        notify_report_submitted(db, report)
    except FanoutPartialFailure as e:
        logger.warning("%s", e)
    return report


def update_report_status(db: Session, report_id: str, status: ReportStatus | str, actor: ViewerContext) -> Report:
    """Admin-only lifecycle move, validated against the transition table."""
    if not actor.is_admin:
        raise PermissionDeniedError("Only admins can change report status")
    report = get_report(db, report_id)
    target = ensure_transition(report.status, status)
    report.status = target.value
    report.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(report)
    logger.info("Report %s moved to %s by %s", report.id, report.status, actor.user_id)
    return report


def review_report(db: Session, report_id: str, status: ReportStatus | str, actor: ViewerContext) -> Report:
    """
    Status mutation followed by the owner notification.

    A fanout failure is logged and never undoes the committed status change.
    """
    report = update_report_status(db, report_id, status, actor)
    try:
        notify_report_reviewed(db, report)
    except FanoutPartialFailure as e:
        logger.warning("%s", e)
    return report


def delete_report(db: Session, report_id: str, actor: ViewerContext) -> None:
    """Owner or admin only. Subscribers see a DELETE event."""
    report = get_report(db, report_id)
    if not (actor.is_admin or actor.owns(report)):
        raise PermissionDeniedError("Only the owner or an admin can delete this report")
    db.delete(report)
    db.commit()
    logger.info("Report %s deleted by %s", report_id, actor.user_id)
