"""Feed policy constants."""

from __future__ import annotations

# Mean Earth radius used by the haversine formula, in meters
EARTH_RADIUS_M = 6_371_000.0

# "closest" mode keeps only this many nearest reports
CLOSEST_LIMIT = 50

# Change-feed channel names
REPORTS_CHANNEL = "reports"
COMMENTS_CHANNEL_PREFIX = "report_comments"
NOTIFICATIONS_CHANNEL_PREFIX = "notifications"


def comments_channel(report_id: str) -> str:
    return f"{COMMENTS_CHANNEL_PREFIX}:{report_id}"


def notifications_channel(user_id: str) -> str:
    return f"{NOTIFICATIONS_CHANNEL_PREFIX}:{user_id}"
