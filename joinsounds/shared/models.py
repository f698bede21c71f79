"""Data models shared by the catalog, storage and hub layers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from joinsounds.errors import CatalogEntryError

VOLUME_RANGE = (0.0, 1.0)
PITCH_RANGE = (0.5, 2.0)
MIN_RADIUS = 1


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _field(raw: dict, key: str, default: Any = None) -> Any:
    if key in raw:
        return raw[key]
    return raw.get(key.replace("-", "_"), default)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class SeasonalWindow:
    """Month-day window in ``MM-DD`` text form; validity is checked lazily."""

    start: str
    end: str


@dataclass(frozen=True)
class SignalDefinition:
    """One selectable join signal. Numeric fields are already clamped."""

    id: str
    display_name: str
    audio_ref: str
    permission: str
    description: tuple[str, ...] = ()
    volume: float = 0.8
    pitch: float = 1.0
    radius: int = 16
    enabled: bool = True
    hidden: bool = False
    seasonal: SeasonalWindow | None = None

    @classmethod
    def from_config(
        cls,
        signal_id: str,
        raw: Any,
        *,
        default_volume: float = 0.8,
        default_pitch: float = 1.0,
        default_radius: int = 16,
        min_radius: int = MIN_RADIUS,
        max_radius: int | None = None,
    ) -> SignalDefinition:
        """Build a definition from a raw config mapping.

        Raises CatalogEntryError when the entry is not a mapping, lacks
        ``audio-ref`` or ``permission``, or carries non-numeric numbers.
        """
        if not isinstance(raw, dict):
            raise CatalogEntryError(signal_id, "definition is not a mapping")

        audio_ref = _field(raw, "audio-ref") or _field(raw, "nexo-sound-id")
        permission = _field(raw, "permission")
        if not audio_ref:
            raise CatalogEntryError(signal_id, "missing audio-ref")
        if not permission:
            raise CatalogEntryError(signal_id, "missing permission")

        description = _field(raw, "description", ())
        if isinstance(description, str):
            description = (description,)
        description = tuple(str(line) for line in (description or ()))

        try:
            volume = float(_field(raw, "volume", default_volume))
            pitch = float(_field(raw, "pitch", default_pitch))
            radius = int(_field(raw, "radius", default_radius))
        except (TypeError, ValueError) as e:
            raise CatalogEntryError(signal_id, f"invalid number ({e})") from e

        radius = max(MIN_RADIUS, min_radius, radius)
        if max_radius is not None:
            radius = min(radius, max(max_radius, MIN_RADIUS))

        seasonal = None
        season_raw = _field(raw, "seasonal")
        if isinstance(season_raw, dict):
            start = _field(season_raw, "start-date")
            end = _field(season_raw, "end-date")
            if start is not None and end is not None:
                seasonal = SeasonalWindow(start=str(start), end=str(end))

        return cls(
            id=signal_id,
            display_name=str(_field(raw, "display-name", signal_id)),
            audio_ref=str(audio_ref),
            permission=str(permission),
            description=description,
            volume=_clamp(volume, *VOLUME_RANGE),
            pitch=_clamp(pitch, *PITCH_RANGE),
            radius=radius,
            enabled=_flag(_field(raw, "enabled", True)),
            hidden=_flag(_field(raw, "hidden", False)),
            seasonal=seasonal,
        )


@dataclass(frozen=True)
class StoredPreference:
    """A preference row exactly as a backend stored it (user key unparsed)."""

    user_key: str
    signal_id: str | None = None
    last_change: int | None = None
    last_triggered: int | None = None


@dataclass(frozen=True)
class PreferenceRecord:
    """Durable per-user selection plus its timestamps (epoch seconds)."""

    user_id: uuid.UUID
    signal_id: str | None = None
    last_change: int | None = None
    last_triggered: int | None = None

    @classmethod
    def from_stored(cls, row: StoredPreference) -> PreferenceRecord:
        """Parse a stored row. Raises ValueError for an unparseable user key."""
        return cls(
            user_id=uuid.UUID(str(row.user_key)),
            signal_id=row.signal_id or None,
            last_change=row.last_change or None,
            last_triggered=row.last_triggered or None,
        )

    def to_stored(self) -> StoredPreference:
        return StoredPreference(
            user_key=str(self.user_id),
            signal_id=self.signal_id,
            last_change=self.last_change,
            last_triggered=self.last_triggered,
        )


class CooldownKind(str, Enum):
    CHANGE = "change"
    REJOIN = "rejoin"


class RejectReason(str, Enum):
    ON_COOLDOWN = "on_cooldown"
    UNKNOWN_SIGNAL = "unknown_signal"
    NOT_SELECTABLE = "not_selectable"
    PERMISSION_DENIED = "permission_denied"


@dataclass(frozen=True)
class SelectionResult:
    """Outcome of a selection attempt: accepted with a definition, or a reason."""

    accepted: bool
    definition: SignalDefinition | None = None
    reason: RejectReason | None = None
    remaining_seconds: int = 0
    detail: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def accept(cls, definition: SignalDefinition) -> SelectionResult:
        return cls(accepted=True, definition=definition)

    @classmethod
    def reject(cls, reason: RejectReason, **kwargs) -> SelectionResult:
        return cls(accepted=False, reason=reason, **kwargs)
