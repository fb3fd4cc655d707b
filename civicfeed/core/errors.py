"""Error taxonomy for the feed engine and its storage collaborator."""

from __future__ import annotations


class FeedError(Exception):
    """Base class for all civicfeed errors."""


class TransientNetworkError(FeedError):
    """Change-feed connection dropped or could not be established."""


class EventValidationError(FeedError):
    """A change event is malformed and must be discarded."""


class NotFoundError(FeedError):
    """Referenced entity does not exist."""


class PermissionDeniedError(FeedError):
    """The storage collaborator rejected the operation for this viewer."""


class InvalidTransitionError(FeedError):
    """Requested report status change is not allowed by the lifecycle."""


class SnapshotUnavailableError(FeedError):
    """Initial snapshot could not be fetched after the configured retries."""


class LocationUnavailableError(FeedError):
    """Viewer position could not be acquired (denied, unavailable or timed out)."""


class FanoutPartialFailure(FeedError):
    """Some notifications could not be created after a committed status change."""

    def __init__(
        self,
        report_id: str,
        created: list[str],
        failed_recipients: list[str],
        reason: str | None = None,
    ) -> None:
        self.report_id = report_id
        self.created = created
        self.failed_recipients = failed_recipients
        self.reason = reason
        if reason:
            message = f"Fanout for report {report_id} failed: {reason}"
        else:
            message = (
                f"Fanout for report {report_id} failed for {len(failed_recipients)} "
                f"recipient(s): {failed_recipients}"
            )
        super().__init__(message)
