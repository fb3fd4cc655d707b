"""Reports API: submission, moderation, deletion."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from civicfeed.core.deps import get_viewer, require_admin, require_user
from civicfeed.core.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError
from civicfeed.core.visibility import ViewerContext, is_visible
from civicfeed.db.session import get_db
from civicfeed.schemas.report import ReportCreate, ReportOut, ReportStatusUpdate, ReportSummary
from civicfeed.services.report_service import (
    count_reports_by_status,
    delete_report,
    get_report,
    review_report,
    submit_report,
)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
def create(
    data: ReportCreate,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_user),
):
    """Submit a report. It starts pending and every admin is notified."""
    return ReportOut.model_validate(submit_report(db, viewer.user_id, data))


@router.get("/me/summary", response_model=ReportSummary)
def my_summary(
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_user),
):
    """Counts of the current user's reports by status."""
    return count_reports_by_status(db, viewer.user_id)


@router.get("/{report_id}", response_model=ReportOut)
def get_one(
    report_id: str,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(get_viewer),
):
    """Single report. Hidden statuses look like 404 to viewers who may not see them."""
    try:
        report = get_report(db, report_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if not is_visible(report, viewer.role, viewer.owns(report)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return ReportOut.model_validate(report)


@router.post("/{report_id}/status", response_model=ReportOut)
def moderate(
    report_id: str,
    data: ReportStatusUpdate,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_admin),
):
    """Approve, reject or resolve a report. The owner is notified on approve/reject."""
    try:
        report = review_report(db, report_id, data.status, viewer)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return ReportOut.model_validate(report)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove(
    report_id: str,
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(require_user),
):
    """Delete a report (owner or admin)."""
    try:
        delete_report(db, report_id, viewer)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
