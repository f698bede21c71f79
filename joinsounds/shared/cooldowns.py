"""Per-user cooldown bookkeeping for selection changes and rejoin playback."""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable

from joinsounds.config import CooldownConfig
from joinsounds.shared.models import CooldownKind


class CooldownTracker:
    """Tracks the last event per (user, kind) and derives remaining wait time.

    Entries are never removed; a stale timestamp simply yields 0 remaining.
    """

    def __init__(self, config: CooldownConfig | None = None, clock: Callable[[], float] = time.time):
        self.config = config or CooldownConfig()
        self._clock = clock
        self._last: dict[tuple[uuid.UUID, CooldownKind], float] = {}

    def window(self, kind: CooldownKind) -> int:
        if kind is CooldownKind.CHANGE:
            return self.config.change_seconds
        return self.config.rejoin_seconds

    def record_event(self, user_id: uuid.UUID, kind: CooldownKind, at: float | None = None) -> None:
        self._last[(user_id, kind)] = self._clock() if at is None else at

    def seed(self, user_id: uuid.UUID, kind: CooldownKind, timestamp: float | None) -> None:
        """Restore a persisted timestamp without overwriting a newer one."""
        if not timestamp:
            return
        key = (user_id, kind)
        if timestamp > self._last.get(key, 0):
            self._last[key] = timestamp

    def last_event(self, user_id: uuid.UUID, kind: CooldownKind) -> float | None:
        return self._last.get((user_id, kind))

    def remaining_seconds(self, user_id: uuid.UUID, kind: CooldownKind) -> int:
        if not self.config.enabled:
            return 0
        last = self._last.get((user_id, kind))
        if last is None:
            return 0
        elapsed = max(0, int(self._clock() - last))
        return max(0, self.window(kind) - elapsed)

    def is_on_cooldown(self, user_id: uuid.UUID, kind: CooldownKind) -> bool:
        return self.remaining_seconds(user_id, kind) > 0

    def __len__(self) -> int:
        return len(self._last)
