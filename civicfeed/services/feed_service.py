"""Live views: one change-feed subscription feeding one reconciler."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from civicfeed.core.config import settings
from civicfeed.core.errors import LocationUnavailableError, PermissionDeniedError, SnapshotUnavailableError
from civicfeed.core.feed_policies import REPORTS_CHANNEL, comments_channel, notifications_channel
from civicfeed.core.visibility import ViewerContext, visibility_predicate
from civicfeed.schemas.comment import CommentOut
from civicfeed.schemas.common import Location
from civicfeed.schemas.notification import NotificationOut
from civicfeed.schemas.report import ReportOut
from civicfeed.services.change_feed import ChangeFeedClient, SubscriptionHandle
from civicfeed.services.geo_service import RankMode, locate_viewer, rank_reports
from civicfeed.services.notification_store import NotificationStore
from civicfeed.services.reconciler import StateReconciler
from civicfeed.services.store_client import StoreClient

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ViewStatus(str, enum.Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


class LiveView(Generic[T]):
    """
    Owns a reconciler and its channel subscription.

    Lifecycle: subscribe (events buffer) -> snapshot with bounded retries ->
    ready. On reconnect the buffered state is discarded and the snapshot is
    fetched again. Results that resolve after close(), or after a newer
    snapshot was requested, are dropped.
    """

    def __init__(
        self,
        feed: ChangeFeedClient,
        channel: str,
        reconciler: StateReconciler[T],
        fetch_snapshot: Callable[[], Awaitable[list[Any]]],
        *,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        self.feed = feed
        self.channel = channel
        self.reconciler = reconciler
        self.fetch_snapshot = fetch_snapshot
        self.max_attempts = settings.snapshot_max_attempts if max_attempts is None else max_attempts
        self.retry_delay = settings.snapshot_retry_delay if retry_delay is None else retry_delay
        self.status = ViewStatus.LOADING
        self.error: Exception | None = None
        self.handle: SubscriptionHandle | None = None
        self._generation = 0
        self._snapshot_task: asyncio.Task | None = None
        self._on_change: list[Callable[[], None]] = []
        reconciler.add_listener(self._notify)

    # ---------- lifecycle ----------

    async def start(self) -> "LiveView[T]":
        self.handle = self.feed.subscribe(
            self.channel,
            self.reconciler.apply,
            on_error=self._on_feed_error,
            on_resync=self._on_resync,
        )
        await self._load_snapshot()
        return self

    def close(self) -> None:
        if self.status == ViewStatus.CLOSED:
            return
        self.status = ViewStatus.CLOSED
        self._generation += 1
        if self.handle is not None:
            self.handle.unsubscribe()
        if self._snapshot_task is not None and not self._snapshot_task.done():
            self._snapshot_task.cancel()
        self._on_change.clear()

    @property
    def closed(self) -> bool:
        return self.status == ViewStatus.CLOSED

    def items(self) -> list[T]:
        return self.reconciler.items()

    def on_change(self, listener: Callable[[], None]) -> None:
        self._on_change.append(listener)

    def _notify(self) -> None:
        if self.closed:
            return
        for listener in list(self._on_change):
            listener()

    # ---------- snapshot ----------

    async def _load_snapshot(self) -> None:
        self._generation += 1
        generation = self._generation
        token = self.reconciler.begin_snapshot()
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                initial = await self.fetch_snapshot()
            except PermissionDeniedError as e:
                self._fail(generation, token, e)
                return
            except Exception as e:
                last_error = e
                logger.warning(
                    "Snapshot for %s failed (attempt %s/%s): %s", self.channel, attempt, self.max_attempts, e
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
                continue
            if self._stale(generation):
                logger.debug("Discarding late snapshot for %s", self.channel)
                return
            self.reconciler.load_snapshot(initial, token)
            self.status = ViewStatus.READY
            self.error = None
            return
        self._fail(
            generation,
            token,
            SnapshotUnavailableError(f"Could not load {self.channel} after {self.max_attempts} attempts: {last_error}"),
        )

    def _fail(self, generation: int, token: int, error: Exception) -> None:
        if self._stale(generation):
            return
        if not self.reconciler.abort_snapshot(token):
            # a newer reload already owns the map
            return
        logger.error("View on %s failed: %s", self.channel, error)
        self.status = ViewStatus.ERROR
        self.error = error

    def _stale(self, generation: int) -> bool:
        return self.closed or generation != self._generation

    def _on_resync(self) -> None:
        if self.closed:
            return
        self.status = ViewStatus.LOADING
        if self._snapshot_task is not None and not self._snapshot_task.done():
            self._snapshot_task.cancel()
        self._snapshot_task = asyncio.get_running_loop().create_task(self._load_snapshot())

    def _on_feed_error(self, exc: Exception) -> None:
        logger.info("Feed error on %s: %s", self.channel, exc)


class FeedView(LiveView[ReportOut]):
    """Role-gated report feed with proximity ranking."""

    def __init__(self, feed: ChangeFeedClient, store: StoreClient, viewer: ViewerContext, **kwargs: Any) -> None:
        self.viewer = viewer
        self.store = store
        self.origin: Location | None = None
        self.closest_enabled = False
        reconciler = StateReconciler("reports", ReportOut, visibility_predicate(viewer))
        super().__init__(feed, REPORTS_CHANNEL, reconciler, self._fetch, **kwargs)

    async def _fetch(self) -> list[ReportOut]:
        if self.viewer.is_admin:
            return await self.store.get_all_reports()
        reports = await self.store.get_approved_reports()
        if self.viewer.user_id:
            reports += await self.store.get_reports_owned_by(self.viewer.user_id)
        return reports

    def set_origin(self, origin: Location | None) -> None:
        self.origin = origin
        self.closest_enabled = origin is not None

    async def acquire_origin(
        self,
        locate: Callable[[], Awaitable[Location]],
        timeout: float | None = None,
    ) -> Location | None:
        """Ask for the viewer's position; failure disables "closest" but never the feed."""
        try:
            origin = await locate_viewer(locate, timeout)
        except LocationUnavailableError as e:
            if not self.closed:
                logger.info("Closest mode disabled for %s: %s", self.viewer.user_id or "anonymous", e)
                self.set_origin(None)
            return None
        if self.closed:
            return None
        self.set_origin(origin)
        return origin

    def rank(
        self,
        query: str = "",
        mode: RankMode | str = RankMode.ALL,
        origin: Location | None = None,
    ) -> list[ReportOut]:
        origin = origin or self.origin
        if RankMode(mode) == RankMode.CLOSEST and origin is None:
            logger.info("No origin available; ranking feed in 'all' mode")
            mode = RankMode.ALL
        return rank_reports(self.items(), query, mode, origin)


class CommentThreadView(LiveView[CommentOut]):
    """Comments on one report, oldest first."""

    def __init__(self, feed: ChangeFeedClient, store: StoreClient, report_id: str, viewer: ViewerContext, **kwargs: Any) -> None:
        self.report_id = report_id
        reconciler = StateReconciler(
            "report_comments",
            CommentOut,
            lambda c: c.report_id == report_id,
            newest_first=False,
        )
        super().__init__(
            feed,
            comments_channel(report_id),
            reconciler,
            lambda: store.get_comments(report_id, viewer),
            **kwargs,
        )


class NotificationView(LiveView[NotificationOut]):
    """A recipient's notifications with unread count and read-marking."""

    reconciler: NotificationStore

    def __init__(self, feed: ChangeFeedClient, store: StoreClient, user_id: str, **kwargs: Any) -> None:
        notifications = NotificationStore(user_id, store)
        super().__init__(feed, notifications_channel(user_id), notifications, notifications.fetch, **kwargs)

    @property
    def unread_count(self) -> int:
        return self.reconciler.unread_count

    async def mark_read(self, notification_id: str) -> None:
        await self.reconciler.mark_as_read(notification_id)

    async def mark_all_read(self) -> None:
        await self.reconciler.mark_all_as_read()

    async def delete(self, notification_id: str) -> None:
        await self.reconciler.delete(notification_id)


async def subscribe_feed(feed: ChangeFeedClient, store: StoreClient, viewer: ViewerContext, **kwargs: Any) -> FeedView:
    view = FeedView(feed, store, viewer, **kwargs)
    await view.start()
    return view


async def subscribe_comments(
    feed: ChangeFeedClient,
    store: StoreClient,
    report_id: str,
    viewer: ViewerContext,
    **kwargs: Any,
) -> CommentThreadView:
    view = CommentThreadView(feed, store, report_id, viewer, **kwargs)
    await view.start()
    return view


async def subscribe_notifications(feed: ChangeFeedClient, store: StoreClient, user_id: str, **kwargs: Any) -> NotificationView:
    view = NotificationView(feed, store, user_id, **kwargs)
    await view.start()
    return view
