"""Preference facade: selection rules on top of catalog, cooldowns and persistence."""

import logging
import uuid
from collections.abc import Callable
from datetime import date

from joinsounds.config import PermissionConfig
from joinsounds.shared.catalog import SoundCatalog
from joinsounds.shared.cooldowns import CooldownTracker
from joinsounds.shared.models import CooldownKind, RejectReason, SelectionResult, SignalDefinition
from joinsounds.storage.coordinator import PersistenceCoordinator

logger = logging.getLogger(__name__)

CapabilityCheck = Callable[[str], bool]


class PreferenceStore:
    """Validates selections and decides whether a connect should play a signal."""

    def __init__(
        self,
        catalog: SoundCatalog,
        coordinator: PersistenceCoordinator,
        cooldowns: CooldownTracker,
        permissions: PermissionConfig | None = None,
    ):
        self.catalog = catalog
        self.coordinator = coordinator
        self.cooldowns = cooldowns
        self.permissions = permissions or PermissionConfig()

    def try_select(
        self,
        user_id: uuid.UUID,
        signal_id: str | None,
        capability_check: CapabilityCheck,
        today: date | None = None,
    ) -> SelectionResult:
        """Attempt to set the user's signal.

        Checks run in order: change cooldown, catalog lookup (hidden signals
        are reported as unknown), availability, then the signal's permission.
        On success the canonical id is stored, never the alias that was typed.
        """
        remaining = self.cooldowns.remaining_seconds(user_id, CooldownKind.CHANGE)
        if remaining > 0:
            return SelectionResult.reject(RejectReason.ON_COOLDOWN, remaining_seconds=remaining)

        definition = self.catalog.resolve(signal_id)
        if definition is None or definition.hidden:
            return SelectionResult.reject(RejectReason.UNKNOWN_SIGNAL, detail={"requested": signal_id})

        if not self.catalog.is_available_for_selection(definition, today):
            cause = "disabled" if not definition.enabled else "out_of_season"
            return SelectionResult.reject(RejectReason.NOT_SELECTABLE, definition=definition, detail={"cause": cause})

        if not capability_check(definition.permission):
            return SelectionResult.reject(
                RejectReason.PERMISSION_DENIED,
                definition=definition,
                detail={"permission": definition.permission},
            )

        self.coordinator.set(user_id, definition.id)
        self.cooldowns.record_event(user_id, CooldownKind.CHANGE)
        logger.debug("User %s selected %s", user_id, definition.id)
        return SelectionResult.accept(definition)

    def current_selection(self, user_id: uuid.UUID) -> str | None:
        """The stored signal id, whether or not the catalog still has it."""
        return self.coordinator.get(user_id)

    def clear_selection(self, user_id: uuid.UUID) -> bool:
        return self.coordinator.remove(user_id)

    def should_trigger(
        self,
        user_id: uuid.UUID,
        world_enabled: bool,
        capability_check: CapabilityCheck,
        today: date | None = None,
    ) -> SignalDefinition | None:
        """Return the definition to play on connect, or None.

        A selection that no longer resolves is pruned. A positive answer
        starts the rejoin cooldown and stamps the record's trigger time.
        """
        signal_id = self.coordinator.get(user_id)
        if not signal_id:
            logger.debug("User %s has no join sound set", user_id)
            return None

        definition = self.catalog.resolve(signal_id)
        if definition is None:
            logger.warning("User %s has invalid sound %s, removing it", user_id, signal_id)
            self.coordinator.remove(user_id)
            return None

        if not self.catalog.is_available_for_selection(definition, today):
            logger.debug("Sound %s is not available", definition.id)
            return None

        if not capability_check(definition.permission):
            logger.debug("User %s lacks permission for sound %s", user_id, definition.id)
            return None

        if not world_enabled and not capability_check(self.permissions.bypass_world):
            logger.debug("Join sounds disabled in world for user %s", user_id)
            return None

        if self.cooldowns.is_on_cooldown(user_id, CooldownKind.REJOIN):
            logger.debug("User %s is on rejoin cooldown", user_id)
            return None

        self.cooldowns.record_event(user_id, CooldownKind.REJOIN)
        self.coordinator.mark_triggered(user_id)
        return definition
