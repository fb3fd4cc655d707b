"""One-shot ranked feed."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from civicfeed.core.deps import get_viewer
from civicfeed.core.visibility import ViewerContext, visibility_predicate
from civicfeed.db.session import get_db
from civicfeed.schemas.common import Location
from civicfeed.schemas.report import ReportOut
from civicfeed.services.geo_service import RankMode, rank_reports
from civicfeed.services.reconciler import StateReconciler
from civicfeed.services.report_service import get_all_reports, get_approved_reports, get_reports_owned_by

router = APIRouter(prefix="/feed", tags=["feed"])


def origin_from_query(lat: float | None, lng: float | None) -> Location | None:
    if lat is None or lng is None:
        return None
    return Location(lat=lat, lng=lng)


def load_feed(db: Session, viewer: ViewerContext) -> list[ReportOut]:
    """Current snapshot of the viewer's feed, newest first."""
    if viewer.is_admin:
        rows = get_all_reports(db)
    else:
        rows = get_approved_reports(db)
        if viewer.user_id:
            rows += get_reports_owned_by(db, viewer.user_id)
    reconciler = StateReconciler("reports", ReportOut, visibility_predicate(viewer))
    reconciler.load_snapshot(ReportOut.model_validate(r) for r in rows)
    return reconciler.items()


@router.get("", response_model=list[ReportOut])
def get_feed(
    q: str = Query(default="", max_length=200),
    mode: RankMode = Query(default=RankMode.ALL),
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    db: Session = Depends(get_db),
    viewer: ViewerContext = Depends(get_viewer),
):
    """Feed filtered by text and ordered by recency or by distance from (lat, lng)."""
    origin = origin_from_query(lat, lng)
    if mode == RankMode.CLOSEST and origin is None:
        mode = RankMode.ALL
    return rank_reports(load_feed(db, viewer), q, mode, origin)
