"""Connect-event glue between the host session layer and the preference store."""

import logging
import uuid
from collections.abc import Callable
from typing import Protocol

from joinsounds.hub.core import JoinSoundsHub
from joinsounds.shared.models import SignalDefinition
from joinsounds.shared.scheduling import DelayedAction

logger = logging.getLogger(__name__)


class Playback(Protocol):
    """Emits a signal to clients near ``user_id``.

    Falling back to a built-in cue when ``definition.audio_ref`` does not
    resolve client-side is the implementation's job.
    """

    async def play(self, user_id: uuid.UUID, definition: SignalDefinition, to_self: bool) -> None: ...


class JoinHandler:
    """Decides on connect whether to play the user's signal, then plays it after a delay."""

    def __init__(
        self,
        hub: JoinSoundsHub,
        playback: Playback,
        is_connected: Callable[[uuid.UUID], bool],
    ):
        self.hub = hub
        self.playback = playback
        self.is_connected = is_connected
        self._pending: dict[uuid.UUID, DelayedAction] = {}

    def pending(self, user_id: uuid.UUID) -> DelayedAction | None:
        return self._pending.get(user_id)

    def on_connect(
        self,
        user_id: uuid.UUID,
        world: str | None,
        capability_check: Callable[[str], bool],
    ) -> DelayedAction | None:
        """Handle a connect event. Returns the scheduled playback, if any."""
        config = self.hub.config
        if not config.general.enabled:
            return None

        if not capability_check(config.permissions.use):
            logger.debug("User %s lacks basic use permission: %s", user_id, config.permissions.use)
            return None

        definition = self.hub.store.should_trigger(
            user_id,
            world_enabled=config.worlds.is_enabled(world),
            capability_check=capability_check,
        )
        if definition is None:
            return None

        self.on_disconnect(user_id)

        async def play():
            self._pending.pop(user_id, None)
            await self.playback.play(user_id, definition, config.sounds.play_to_self)
            logger.debug("Played join sound %s for %s", definition.id, user_id)

        action = DelayedAction(
            config.sounds.play_delay,
            play,
            still_valid=lambda: self.is_connected(user_id),
            name=f"join-sound-{user_id}",
        )
        self._pending[user_id] = action
        return action.start()

    def on_disconnect(self, user_id: uuid.UUID) -> bool:
        """Cancel a pending playback for the user. Returns True if one was cancelled."""
        action = self._pending.pop(user_id, None)
        if action is None:
            return False
        return action.cancel()
