"""Geo distance and report ranking service."""

from __future__ import annotations

import asyncio
import enum
import logging
import math
from collections.abc import Awaitable, Callable, Sequence

from civicfeed.core.config import settings
from civicfeed.core.errors import LocationUnavailableError
from civicfeed.core.feed_policies import CLOSEST_LIMIT, EARTH_RADIUS_M
from civicfeed.schemas.common import Location
from civicfeed.schemas.report import ReportOut

logger = logging.getLogger(__name__)


class RankMode(str, enum.Enum):
    ALL = "all"
    CLOSEST = "closest"


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two lat/lng points in meters."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_m(report: ReportOut, origin: Location) -> float:
    """Distance from origin to the report; +inf when the report has no coordinates."""
    loc = report.location
    if loc is None or not loc.has_coordinates:
        return math.inf
    return haversine_m(origin.lat, origin.lng, loc.lat, loc.lng)


def matches_query(report: ReportOut, query: str) -> bool:
    """Case-insensitive substring match on title or description. Empty query matches all."""
    needle = query.strip().lower()
    if not needle:
        return True
    return needle in report.title.lower() or needle in (report.description or "").lower()


def rank_reports(
    reports: Sequence[ReportOut],
    query: str = "",
    mode: RankMode | str = RankMode.ALL,
    origin: Location | None = None,
    limit: int = CLOSEST_LIMIT,
) -> list[ReportOut]:
    """
    Filter reports by text, then order them:
      - all: keep the incoming (most-recent-first) order
      - closest: ascending distance from origin, unlocated reports last,
        truncated to the nearest ``limit``
    """
    filtered = [r for r in reports if matches_query(r, query)]
    if RankMode(mode) == RankMode.ALL:
        return filtered
    if origin is None:
        raise ValueError("closest mode requires an origin")
    # sorted() is stable, so equal distances keep most-recent-first order
    ranked = sorted(filtered, key=lambda r: distance_m(r, origin))
    return ranked[:limit]


async def locate_viewer(
    locate: Callable[[], Awaitable[Location]],
    timeout: float | None = None,
) -> Location:
    """
    Run a permission-gated position lookup with a timeout.

    Raises LocationUnavailableError on denial, failure or timeout.
    """
    limit = settings.geolocation_timeout_seconds if timeout is None else timeout
    try:
        return await asyncio.wait_for(locate(), timeout=limit)
    except asyncio.TimeoutError as exc:
        raise LocationUnavailableError(f"Location request timed out after {limit}s") from exc
    except PermissionError as exc:
        raise LocationUnavailableError("Location access denied by user") from exc
    except (OSError, ValueError) as exc:
        raise LocationUnavailableError(f"Location information is unavailable: {exc}") from exc
