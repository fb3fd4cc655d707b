"""Report lifecycle and role-gated visibility."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable

from civicfeed.core.errors import InvalidTransitionError


class ReportStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RESOLVED = "resolved"


class ViewerRole(str, enum.Enum):
    ANONYMOUS = "anonymous"
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"


# pending -> approved | rejected (admin), approved -> resolved (admin).
# rejected and resolved are terminal.
TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.PENDING: frozenset({ReportStatus.APPROVED, ReportStatus.REJECTED}),
    ReportStatus.APPROVED: frozenset({ReportStatus.RESOLVED}),
    ReportStatus.REJECTED: frozenset(),
    ReportStatus.RESOLVED: frozenset(),
}

# Statuses the community feed may show
PUBLIC_STATUSES: frozenset[ReportStatus] = frozenset({ReportStatus.APPROVED, ReportStatus.RESOLVED})


@dataclass(frozen=True)
class ViewerContext:
    """Who is looking at a view. Passed explicitly to every component."""

    user_id: str | None = None
    role: ViewerRole = ViewerRole.ANONYMOUS

    @property
    def is_admin(self) -> bool:
        return self.role == ViewerRole.ADMIN

    def owns(self, report: Any) -> bool:
        return self.user_id is not None and report.owner_id == self.user_id


ANONYMOUS_VIEWER = ViewerContext()


def can_transition(current: ReportStatus | str, target: ReportStatus | str) -> bool:
    return ReportStatus(target) in TRANSITIONS[ReportStatus(current)]


def ensure_transition(current: ReportStatus | str, target: ReportStatus | str) -> ReportStatus:
    """Return the target status, or raise if the lifecycle forbids the move."""
    try:
        current_status = ReportStatus(current)
        target_status = ReportStatus(target)
    except ValueError as exc:
        raise InvalidTransitionError(str(exc)) from exc
    if target_status not in TRANSITIONS[current_status]:
        raise InvalidTransitionError(
            f"Cannot move report from {current_status.value} to {target_status.value}"
        )
    return target_status


def is_visible(report: Any, viewer_role: ViewerRole | str, viewer_is_owner: bool) -> bool:
    """
    Visibility rule:
      - admin sees every status
      - the report's owner sees every status
      - everyone else sees only approved and resolved
    """
    if ViewerRole(viewer_role) == ViewerRole.ADMIN or viewer_is_owner:
        return True
    return ReportStatus(report.status) in PUBLIC_STATUSES


def visibility_predicate(viewer: ViewerContext) -> Callable[[Any], bool]:
    """Fixed inclusion predicate for one viewer's report reconciler."""

    def _predicate(report: Any) -> bool:
        return is_visible(report, viewer.role, viewer.owns(report))

    return _predicate
