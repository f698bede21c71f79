"""Sound catalog: signal definitions, aliases and availability rules.

A catalog generation (definitions + alias index) is built off to the side
and published with a single attribute assignment, so readers only ever see
a complete old generation or a complete new one.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date

from joinsounds.config import SoundConfig
from joinsounds.errors import CatalogEntryError
from joinsounds.shared.models import SignalDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogGeneration:
    number: int = 0
    definitions: dict[str, SignalDefinition] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)  # lowercased alias -> id


@dataclass(frozen=True)
class CatalogLoadReport:
    loaded: int
    skipped: int
    aliases: int
    dropped_aliases: int
    skipped_ids: tuple[str, ...] = ()


def _month_day(text: str, year: int) -> date:
    month, day = text.strip().split("-")
    return date(year, int(month), int(day))


def is_in_season(definition: SignalDefinition, today: date | None = None) -> bool:
    """True when ``definition`` has no seasonal window or ``today`` falls in it.

    Windows whose start is after their end wrap around the new year
    (e.g. 12-20 -> 01-05). Both ends are inclusive. Unparseable dates,
    including 02-29 outside leap years, count as available.
    """
    window = definition.seasonal
    if window is None:
        return True
    today = today or date.today()
    try:
        start = _month_day(window.start, today.year)
        end = _month_day(window.end, today.year)
    except (ValueError, AttributeError):
        return True
    if start > end:
        return today >= start or today <= end
    return start <= today <= end


class SoundCatalog:
    """Resolves identifiers to signal definitions for the current generation."""

    def __init__(self, sounds: SoundConfig | None = None):
        self.sounds = sounds or SoundConfig()
        self._generation = CatalogGeneration()

    @property
    def generation(self) -> int:
        return self._generation.number

    def load(self, definitions: Mapping | None, aliases: Mapping | None = None) -> CatalogLoadReport:
        """Replace the catalog with a freshly parsed generation.

        Entries missing required fields are skipped and counted; aliases
        pointing at ids absent from the new generation are dropped.
        """
        parsed: dict[str, SignalDefinition] = {}
        skipped: list[str] = []

        for signal_id, raw in (definitions or {}).items():
            signal_id = str(signal_id)
            try:
                definition = SignalDefinition.from_config(
                    signal_id,
                    raw,
                    default_volume=self.sounds.volume,
                    default_pitch=self.sounds.pitch,
                    default_radius=self.sounds.default_radius,
                    min_radius=self.sounds.min_radius,
                    max_radius=self.sounds.max_radius,
                )
            except CatalogEntryError as e:
                logger.warning("Skipping sound %s", e)
                skipped.append(signal_id)
                continue
            parsed[signal_id] = definition
            logger.debug(
                "Loaded sound: %s (%s, enabled=%s, hidden=%s)",
                signal_id,
                definition.display_name,
                definition.enabled,
                definition.hidden,
            )

        alias_index: dict[str, str] = {}
        dropped = 0
        for alias, target in (aliases or {}).items():
            target = None if target is None else str(target)
            if target in parsed:
                alias_index[str(alias).lower()] = target
                logger.debug("Loaded alias: %s -> %s", alias, target)
            else:
                dropped += 1
                logger.warning("Invalid alias '%s': sound '%s' not found", alias, target)

        self._generation = CatalogGeneration(
            number=self._generation.number + 1,
            definitions=parsed,
            aliases=alias_index,
        )

        report = CatalogLoadReport(
            loaded=len(parsed),
            skipped=len(skipped),
            aliases=len(alias_index),
            dropped_aliases=dropped,
            skipped_ids=tuple(skipped),
        )
        logger.info(
            "Loaded %d sounds%s and %d aliases",
            report.loaded,
            f" ({report.skipped} skipped)" if report.skipped else "",
            report.aliases,
        )
        return report

    def resolve(self, identifier: str | None) -> SignalDefinition | None:
        """Exact (case-sensitive) id first, then case-insensitive alias."""
        if not identifier:
            return None
        generation = self._generation
        definition = generation.definitions.get(identifier)
        if definition is not None:
            return definition
        target = generation.aliases.get(identifier.lower())
        if target is not None:
            return generation.definitions.get(target)
        return None

    def has(self, identifier: str | None) -> bool:
        return self.resolve(identifier) is not None

    @staticmethod
    def is_in_season(definition: SignalDefinition, today: date | None = None) -> bool:
        return is_in_season(definition, today)

    def is_available_for_selection(self, definition: SignalDefinition, today: date | None = None) -> bool:
        return definition.enabled and not definition.hidden and is_in_season(definition, today)

    def available(self, today: date | None = None) -> dict[str, SignalDefinition]:
        return {
            signal_id: definition
            for signal_id, definition in self._generation.definitions.items()
            if self.is_available_for_selection(definition, today)
        }

    def accessible_to(
        self, capability_check: Callable[[str], bool], today: date | None = None
    ) -> dict[str, SignalDefinition]:
        """Available definitions the caller holds the permission for."""
        return {
            signal_id: definition
            for signal_id, definition in self.available(today).items()
            if capability_check(definition.permission)
        }

    def all(self) -> dict[str, SignalDefinition]:
        return dict(self._generation.definitions)

    def ids(self) -> list[str]:
        return sorted(self._generation.definitions)

    def enabled_count(self) -> int:
        return sum(1 for d in self._generation.definitions.values() if d.enabled)

    def __len__(self) -> int:
        return len(self._generation.definitions)
