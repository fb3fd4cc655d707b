"""Notification fanout on report lifecycle transitions.

Runs right after the status mutation it describes, in the same request, but
never inside its transaction: each notification commits on its own, so a
failed recipient cannot undo the mutation or the other recipients.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from civicfeed.core.errors import FanoutPartialFailure
from civicfeed.core.visibility import ReportStatus
from civicfeed.models.report import Report
from civicfeed.schemas.notification import NotificationCreate
from civicfeed.services.notification_service import create_notification
from civicfeed.services.profile_service import list_admin_ids

logger = logging.getLogger(__name__)


def _report_data(report: Report) -> dict:
    return {
        "report_id": report.id,
        "report_title": report.title,
        "category": report.category,
    }


def _deliver(db: Session, report: Report, payloads: list[NotificationCreate]) -> list[str]:
    """Create each notification independently. Raises FanoutPartialFailure if any failed."""
    created: list[str] = []
    failed: list[str] = []
    for payload in payloads:
        try:
            created.append(create_notification(db, payload).id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Notification for user %s on report %s failed: %s", payload.user_id, report.id, e)
            failed.append(payload.user_id)
    if failed:
        raise FanoutPartialFailure(report.id, created, failed)
    return created


def notify_report_submitted(db: Session, report: Report) -> list[str]:
    """One report_submitted notification per admin. The submitter is never a recipient."""
    data = _report_data(report)
    try:
        admin_ids = list_admin_ids(db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Could not list admins to notify about report %s: %s", report.id, e)
        raise FanoutPartialFailure(report.id, [], [], reason="admin lookup failed") from e
    recipients = [admin_id for admin_id in admin_ids if admin_id != report.owner_id]
    payloads = [
        NotificationCreate(
            user_id=admin_id,
            title="New report submitted",
            message=f'"{report.title}" is waiting for review.',
            type="report_submitted",
            data=data,
        )
        for admin_id in recipients
    ]
    return _deliver(db, report, payloads)


def notify_report_reviewed(db: Session, report: Report) -> list[str]:
    """Exactly one notification to the owner on approval or rejection; nothing otherwise."""
    status = ReportStatus(report.status)
    if status == ReportStatus.APPROVED:
        payload = NotificationCreate(
            user_id=report.owner_id,
            title="Report approved",
            message=f'Your report "{report.title}" was approved and is now visible to the community.',
            type="report_approved",
            data=_report_data(report),
        )
    elif status == ReportStatus.REJECTED:
        payload = NotificationCreate(
            user_id=report.owner_id,
            title="Report rejected",
            message=f'Your report "{report.title}" was not approved.',
            type="report_rejected",
            data=_report_data(report),
        )
    else:
        return []
    return _deliver(db, report, [payload])
