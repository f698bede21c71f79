"""In-memory preference map with single-flight, write-behind persistence.

Mutations update the map synchronously and return. At most one flush task
exists per coordinator; it keeps draining until nothing is dirty, so a burst
of mutations collapses into a handful of backend writes. ``flush_now`` takes
the same lock, which is how shutdown waits for in-flight work.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import replace

from joinsounds.errors import BackendIOError
from joinsounds.shared.models import PreferenceRecord
from joinsounds.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class PersistenceCoordinator:
    """Owns the authoritative preference map and its durable mirror."""

    def __init__(self, backend: StorageBackend, clock: Callable[[], float] = time.time):
        self.backend = backend
        self._clock = clock
        self._records: dict[uuid.UUID, PreferenceRecord] = {}
        self._dirty_users: set[uuid.UUID] = set()
        self._deleted_users: set[uuid.UUID] = set()
        self._in_flight: set[uuid.UUID] = set()
        self._lock = asyncio.Lock()
        self._flush_task: asyncio.Task | None = None
        self.write_count = 0

    # ── Reads (memory only) ──────────────────────────────────────────────

    def get(self, user_id: uuid.UUID) -> str | None:
        record = self._records.get(user_id)
        return record.signal_id if record else None

    def record(self, user_id: uuid.UUID) -> PreferenceRecord | None:
        return self._records.get(user_id)

    def records(self) -> dict[uuid.UUID, PreferenceRecord]:
        return dict(self._records)

    def has_selection(self, user_id: uuid.UUID) -> bool:
        return self.get(user_id) is not None

    def __len__(self) -> int:
        return len(self._records)

    def _queued(self) -> bool:
        return bool(self._dirty_users or self._deleted_users)

    @property
    def is_dirty(self) -> bool:
        """True while any change is queued or still being written."""
        return bool(self._dirty_users or self._deleted_users or self._in_flight)

    @property
    def pending_count(self) -> int:
        return len(self._dirty_users | self._deleted_users | self._in_flight)

    # ── Mutations ────────────────────────────────────────────────────────

    def set(self, user_id: uuid.UUID, signal_id: str | None) -> None:
        """Select ``signal_id`` for the user; ``None`` removes the preference."""
        if signal_id is None:
            self.remove(user_id)
            return
        now = int(self._clock())
        existing = self._records.get(user_id)
        if existing is None:
            record = PreferenceRecord(user_id=user_id, signal_id=signal_id, last_change=now)
        else:
            record = replace(existing, signal_id=signal_id, last_change=now)
        self._records[user_id] = record
        self._deleted_users.discard(user_id)
        self._dirty_users.add(user_id)
        self._schedule_flush()

    def remove(self, user_id: uuid.UUID) -> bool:
        """Drop the user's preference. Returns False if there was none."""
        if self._records.pop(user_id, None) is None:
            return False
        self._dirty_users.discard(user_id)
        self._deleted_users.add(user_id)
        self._schedule_flush()
        return True

    def mark_triggered(self, user_id: uuid.UUID) -> None:
        existing = self._records.get(user_id)
        if existing is None:
            return
        self._records[user_id] = replace(existing, last_triggered=int(self._clock()))
        self._dirty_users.add(user_id)
        self._schedule_flush()

    # ── Loading ──────────────────────────────────────────────────────────

    async def load_from_backend(self) -> int:
        """Replace the map with the backend's contents.

        Returns the number of rows skipped because their user key is not a
        valid UUID. Raises BackendIOError if the backend cannot be read.
        """
        rows = await self.backend.load_all()
        records: dict[uuid.UUID, PreferenceRecord] = {}
        skipped = 0
        for row in rows:
            try:
                record = PreferenceRecord.from_stored(row)
            except ValueError:
                skipped += 1
                logger.warning("Invalid UUID in player data: %s", row.user_key)
                continue
            records[record.user_id] = record

        self._records = records
        self._dirty_users.clear()
        self._deleted_users.clear()
        logger.info(
            "Loaded %d player preferences from %s%s",
            len(records),
            self.backend.describe(),
            f" ({skipped} skipped)" if skipped else "",
        )
        return skipped

    def swap_backend(self, backend: StorageBackend) -> None:
        """Point future flushes at ``backend``. Callers flush the old one first."""
        logger.debug("Switching player data storage: %s -> %s", self.backend.describe(), backend.describe())
        self.backend = backend

    # ── Flushing ─────────────────────────────────────────────────────────

    def _schedule_flush(self) -> None:
        if self._flush_task is not None and not self._flush_task.done():
            return  # the running flush loops until clean
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, %d changes pending until next flush", self.pending_count)
            return
        self._flush_task = loop.create_task(self._flush_loop(), name="joinsounds-flush")
        self._flush_task.add_done_callback(self._flush_done)

    def _flush_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error("Background flush failed: %s", exc)

    async def _flush_loop(self) -> None:
        while self._queued():
            async with self._lock:
                try:
                    await self._flush_once()
                except BackendIOError as e:
                    # State is re-queued; the next mutation or flush_now retries.
                    logger.error("Failed to save player data: %s (%d changes kept)", e, self.pending_count)
                    return

    async def _flush_once(self) -> None:
        """Write one snapshot of the dirty set. Caller holds the lock."""
        dirty, self._dirty_users = self._dirty_users, set()
        deleted, self._deleted_users = self._deleted_users, set()
        upserts = [self._records[u].to_stored() for u in dirty if u in self._records]
        deletes = [str(u) for u in deleted]
        if not upserts and not deletes:
            return
        self.write_count += 1
        self._in_flight = dirty | deleted
        try:
            await self.backend.apply(upserts, deletes)
        except BaseException:
            self._requeue(dirty, deleted)
            raise
        finally:
            self._in_flight = set()
        logger.debug("Flushed %d updates and %d deletions", len(upserts), len(deletes))

    def _requeue(self, dirty: set[uuid.UUID], deleted: set[uuid.UUID]) -> None:
        for user_id in dirty:
            if user_id in self._records:
                self._dirty_users.add(user_id)
        for user_id in deleted:
            if user_id not in self._records:
                self._deleted_users.add(user_id)

    async def flush_now(self, timeout: float | None = None) -> bool:
        """Wait for every pending change to reach the backend.

        Returns True when nothing is left dirty. On timeout or backend
        failure the unsaved state is logged and False is returned.
        """
        try:
            await asyncio.wait_for(self._drain(), timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Timed out after %.1fs saving player data, %d unsaved changes", timeout, self.pending_count
            )
            return False
        except BackendIOError as e:
            logger.error("Failed to save player data: %s (%d unsaved changes)", e, self.pending_count)
            return False
        return not self.is_dirty

    async def _drain(self) -> None:
        async with self._lock:
            while self._queued():
                await self._flush_once()
