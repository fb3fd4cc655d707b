"""Per-user notification collection with unread tracking."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from civicfeed.schemas.notification import NotificationOut
from civicfeed.services.reconciler import StateReconciler

logger = logging.getLogger(__name__)


class NotificationGateway(Protocol):
    async def get_user_notifications(self, user_id: str, limit: int | None = None) -> list[NotificationOut]: ...

    async def mark_notification_read(self, notification_id: str, user_id: str) -> None: ...

    async def mark_all_notifications_read(self, user_id: str) -> None: ...

    async def delete_notification(self, notification_id: str, user_id: str) -> None: ...


class NotificationStore(StateReconciler[NotificationOut]):
    """
    Reconciler over one recipient's notifications.

    Read-state changes go to the backend first, then the authoritative list is
    fetched again whether or not the mutation succeeded; the local copy is
    never flipped optimistically.
    """

    def __init__(
        self,
        user_id: str,
        gateway: NotificationGateway,
        *,
        tombstone_grace: float | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        kwargs = {"clock": clock} if clock is not None else {}
        super().__init__(
            "notifications",
            NotificationOut,
            lambda n: n.user_id == user_id,
            tombstone_grace=tombstone_grace,
            **kwargs,
        )
        self.user_id = user_id
        self.gateway = gateway
        self.unread_count = 0
        self.add_listener(self._recount)

    def _recount(self) -> None:
        self.unread_count = sum(1 for n in self._entities.values() if not n.read)

    async def fetch(self) -> list[NotificationOut]:
        return await self.gateway.get_user_notifications(self.user_id)

    async def refresh(self) -> None:
        """Replace local state with the authoritative list."""
        await self.reload(self.fetch)

    async def mark_as_read(self, notification_id: str) -> None:
        try:
            await self.gateway.mark_notification_read(notification_id, self.user_id)
        finally:
            await self.refresh()

    async def mark_all_as_read(self) -> None:
        try:
            await self.gateway.mark_all_notifications_read(self.user_id)
        finally:
            await self.refresh()

    async def delete(self, notification_id: str) -> None:
        try:
            await self.gateway.delete_notification(notification_id, self.user_id)
        finally:
            await self.refresh()
