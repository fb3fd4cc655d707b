"""In-process change-feed transport.

Committed row changes are published onto named channels; each live connection
gets its own queue. Nothing is buffered for channels without a connection, so
events published during an outage are lost, the same as with the hosted
realtime service.
"""

import asyncio
import logging
from typing import Any

from civicfeed.core.errors import TransientNetworkError

logger = logging.getLogger(__name__)

_DROPPED = object()


class HubConnection:
    """One subscriber's connection to a channel."""

    def __init__(self, hub: "ChangeHub", channel: str, loop: asyncio.AbstractEventLoop) -> None:
        self.hub = hub
        self.channel = channel
        self.loop = loop
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def _deliver(self, message: Any) -> None:
        # Runs on the connection's own loop
        if not self.closed:
            self._queue.put_nowait(message)

    async def receive(self) -> dict[str, Any]:
        """Wait for the next raw event. Raises TransientNetworkError if dropped."""
        message = await self._queue.get()
        if message is _DROPPED:
            raise TransientNetworkError(f"Connection to channel {self.channel!r} lost")
        return message

    async def close(self) -> None:
        self.closed = True
        self.hub._remove(self)


class ChangeHub:
    """Tracks live connections keyed by channel name."""

    def __init__(self) -> None:
        # channel -> set of live connections
        self._connections: dict[str, set[HubConnection]] = {}
        self.available = True

    async def connect(self, channel: str) -> HubConnection:
        if not self.available:
            raise TransientNetworkError("Change feed unavailable")
        conn = HubConnection(self, channel, asyncio.get_running_loop())
        self._connections.setdefault(channel, set()).add(conn)
        logger.debug("Feed connected: channel=%s (total=%s)", channel, self.total_connections)
        return conn

    def _remove(self, conn: HubConnection) -> None:
        conns = self._connections.get(conn.channel)
        if conns:
            conns.discard(conn)
            if not conns:
                del self._connections[conn.channel]

    def publish(self, channel: str, message: dict[str, Any]) -> int:
        """Deliver a raw event to every live connection on the channel. Thread-safe."""
        return self._send(channel, message)

    def drop_connections(self, channel: str | None = None) -> None:
        """Simulate a transport drop for one channel, or for all of them."""
        channels = [channel] if channel is not None else list(self._connections)
        for name in channels:
            self._send(name, _DROPPED)
            for conn in list(self._connections.get(name, set())):
                self._remove(conn)

    def _send(self, channel: str, message: Any) -> int:
        conns = list(self._connections.get(channel, set()))
        dead: list[HubConnection] = []
        delivered = 0
        for conn in conns:
            try:
                conn.loop.call_soon_threadsafe(conn._deliver, message)
                delivered += 1
            except RuntimeError:
                # owning loop is closed
                dead.append(conn)
        for conn in dead:
            self._remove(conn)
        return delivered

    def subscriber_count(self, channel: str) -> int:
        return len(self._connections.get(channel, set()))

    @property
    def total_connections(self) -> int:
        return sum(len(c) for c in self._connections.values())


# Singleton instance used across the app
change_hub = ChangeHub()
