"""Snapshot + change-event reconciliation into one role-filtered collection."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from civicfeed.core.config import settings
from civicfeed.schemas.events import ChangeEvent

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _always(_: Any) -> bool:
    return True


class StateReconciler(Generic[T]):
    """
    Holds id -> entity for the entities that currently satisfy ``predicate``.

    The reconciler starts in the loading state: events applied before the first
    snapshot are queued and replayed once ``load_snapshot`` runs. Mutations only
    happen from one logical thread (the event loop), each event fully applied
    before the next one is looked at.
    """

    def __init__(
        self,
        table: str,
        schema: type[T],
        predicate: Callable[[T], bool] = _always,
        *,
        newest_first: bool = True,
        tombstone_grace: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.table = table
        self.schema = schema
        self.predicate = predicate
        self.newest_first = newest_first
        self.tombstone_grace = (
            settings.tombstone_grace_seconds if tombstone_grace is None else tombstone_grace
        )
        self._clock = clock
        self._entities: dict[str, T] = {}
        self._tombstones: dict[str, float] = {}  # id -> expiry on self._clock
        self._buffer: list[ChangeEvent] = []
        self._loading = True
        self._snapshot_token = 0
        self._listeners: list[Callable[[], None]] = []

    # ---------- read model ----------

    @property
    def is_loading(self) -> bool:
        return self._loading

    def items(self) -> list[T]:
        """Current entities ordered by created_at (newest first unless configured otherwise)."""
        return sorted(
            self._entities.values(),
            key=lambda e: e.created_at,
            reverse=self.newest_first,
        )

    def get(self, entity_id: str) -> T | None:
        return self._entities.get(entity_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Register a "state changed" callback."""
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ---------- snapshot ----------

    def begin_snapshot(self) -> int:
        """Enter the loading state, discard anything buffered so far and return the snapshot token."""
        self._snapshot_token += 1
        self._loading = True
        self._buffer.clear()
        return self._snapshot_token

    def _superseded(self, token: int | None) -> bool:
        if token is None or token == self._snapshot_token:
            return False
        logger.debug("Discarding superseded %s snapshot %s (latest %s)", self.table, token, self._snapshot_token)
        return True

    def load_snapshot(self, initial: Iterable[Any], token: int | None = None) -> bool:
        """
        Replace the map wholesale, then replay events that arrived meanwhile.

        A result for a token older than the latest ``begin_snapshot`` is dropped
        and False is returned.
        """
        if self._superseded(token):
            return False
        entities: dict[str, T] = {}
        for raw in initial:
            entity = self._coerce(raw)
            if entity is not None and self.predicate(entity):
                entities[entity.id] = entity
        self._entities = entities
        self._finish_loading()
        return True

    def abort_snapshot(self, token: int | None = None) -> bool:
        """Leave the loading state keeping the previous map, replaying buffered events."""
        if self._superseded(token):
            return False
        self._finish_loading()
        return True

    def _finish_loading(self) -> None:
        buffered, self._buffer = self._buffer, []
        self._loading = False
        for event in buffered:
            self._apply(event)
        self._changed()

    async def reload(self, fetch: Callable[[], Awaitable[Iterable[Any]]]) -> None:
        """Fetch a fresh snapshot, buffering live events for the duration."""
        token = self.begin_snapshot()
        try:
            initial = await fetch()
        except Exception:
            self.abort_snapshot(token)
            raise
        self.load_snapshot(initial, token)

    # ---------- live events ----------

    def apply(self, event: ChangeEvent) -> bool:
        """Apply one change event. Returns True if the collection changed. Never raises."""
        if self._loading:
            self._buffer.append(event)
            return False
        changed = self._apply(event)
        if changed:
            self._changed()
        return changed

    def _apply(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            logger.warning("Discarding %s event for table %s on %s reconciler", event.kind, event.table, self.table)
            return False
        self._prune_tombstones()
        entity_id = event.entity_id

        if event.kind == "DELETE":
            self._tombstones[entity_id] = self._clock() + self.tombstone_grace
            return self._entities.pop(entity_id, None) is not None

        if entity_id in self._tombstones:
            logger.info("Ignoring %s for recently deleted %s %s", event.kind, self.table, entity_id)
            return False

        entity = self._coerce(event.new)
        if entity is None:
            return False

        visible = self.predicate(entity)
        present = entity_id in self._entities
        if visible:
            if present and self._entities[entity_id] == entity:
                return False
            self._entities[entity_id] = entity
            return True
        if event.kind == "UPDATE" and present:
            # transitioned out of this view
            del self._entities[entity_id]
            return True
        return False

    def _coerce(self, raw: Any) -> T | None:
        if isinstance(raw, self.schema):
            return raw
        try:
            return self.schema.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding malformed %s payload: %s", self.table, exc.errors()[:3])
            return None

    def _prune_tombstones(self) -> None:
        now = self._clock()
        expired = [eid for eid, until in self._tombstones.items() if until <= now]
        for eid in expired:
            del self._tombstones[eid]
