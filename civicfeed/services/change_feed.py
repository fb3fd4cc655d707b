"""Change-feed subscriptions with reconnect and resync signalling."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from pydantic import ValidationError

from civicfeed.core.config import settings
from civicfeed.core.errors import EventValidationError, TransientNetworkError
from civicfeed.schemas.events import ChangeEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[ChangeEvent], None]
ErrorHandler = Callable[[Exception], None]
ResyncHandler = Callable[[], None]


class FeedConnection(Protocol):
    async def receive(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


class FeedTransport(Protocol):
    async def connect(self, channel: str) -> FeedConnection: ...


class SubscriptionHandle:
    """Live subscription to one channel. ``unsubscribe()`` is idempotent."""

    def __init__(
        self,
        client: "ChangeFeedClient",
        channel: str,
        on_event: EventHandler,
        on_error: ErrorHandler | None,
        on_resync: ResyncHandler | None,
    ) -> None:
        self.client = client
        self.channel = channel
        self._on_event = on_event
        self._on_error = on_error
        self._on_resync = on_resync
        self._active = True
        self.connected = False
        self.reconnects = 0
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop delivery. Once this returns no further on_event call happens."""
        if not self._active:
            return
        self._active = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug("Unsubscribed from %s", self.channel)

    def _start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"feed:{self.channel}")

    def _report(self, exc: Exception) -> None:
        if self._on_error is not None and self._active:
            self._on_error(exc)

    async def _run(self) -> None:
        delay = self.client.initial_delay
        has_connected = False
        while self._active:
            try:
                conn = await self.client.transport.connect(self.channel)
            except TransientNetworkError as e:
                logger.info("Connect to %s failed (%s); retrying in %.2fs", self.channel, e, delay)
                self._report(e)
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.client.max_delay)
                continue

            if not self._active:
                await conn.close()
                return
            self.connected = True
            delay = self.client.initial_delay
            if has_connected:
                # anything emitted while we were away is gone; owner must resnapshot
                self.reconnects += 1
                logger.info("Reconnected to %s; requesting resync", self.channel)
                if self._on_resync is not None:
                    self._on_resync()
            has_connected = True

            try:
                await self._pump(conn)
            except TransientNetworkError as e:
                self.connected = False
                logger.warning("Lost connection to %s: %s", self.channel, e)
                self._report(e)
                await asyncio.sleep(delay)
            finally:
                self.connected = False
                await conn.close()

    async def _pump(self, conn: FeedConnection) -> None:
        while self._active:
            raw = await conn.receive()
            if not self._active:
                return
            try:
                event = parse_event(raw)
            except EventValidationError as e:
                logger.warning("Discarding malformed event on %s: %s", self.channel, e)
                continue
            try:
                self._on_event(event)
            except Exception:
                logger.exception("Handler for %s failed on %s %s", self.channel, event.kind, event.entity_id)


def parse_event(raw: Any) -> ChangeEvent:
    """Validate a raw envelope. Raises EventValidationError."""
    try:
        return ChangeEvent.model_validate(raw)
    except ValidationError as e:
        raise EventValidationError(str(e)) from e


class ChangeFeedClient:
    """Opens one independent subscription per channel on a shared transport."""

    def __init__(
        self,
        transport: FeedTransport,
        *,
        initial_delay: float | None = None,
        max_delay: float | None = None,
    ) -> None:
        self.transport = transport
        self.initial_delay = settings.reconnect_initial_delay if initial_delay is None else initial_delay
        self.max_delay = settings.reconnect_max_delay if max_delay is None else max_delay

    def subscribe(
        self,
        channel: str,
        on_event: EventHandler,
        on_error: ErrorHandler | None = None,
        on_resync: ResyncHandler | None = None,
    ) -> SubscriptionHandle:
        """Start delivering events for ``channel``. Must be called from a running loop."""
        handle = SubscriptionHandle(self, channel, on_event, on_error, on_resync)
        handle._start()
        return handle
