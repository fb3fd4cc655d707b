"""SQLAlchemy models."""

from __future__ import annotations

from civicfeed.core.change_hub import change_hub
from civicfeed.db.change_capture import install_change_capture
from civicfeed.models.notification import Notification
from civicfeed.models.report import Report
from civicfeed.models.report_comment import ReportComment
from civicfeed.models.user_profile import UserProfile

install_change_capture(change_hub, [Report, ReportComment, Notification])

__all__ = [
    "Notification",
    "Report",
    "ReportComment",
    "UserProfile",
]
