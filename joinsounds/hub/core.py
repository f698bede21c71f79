"""JoinSounds hub - owns configuration, catalog, storage and cooldown state."""

import logging
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from joinsounds.config import JoinSoundsConfig
from joinsounds.errors import BackendIOError
from joinsounds.hub.store import PreferenceStore
from joinsounds.shared.catalog import CatalogLoadReport, SoundCatalog
from joinsounds.shared.cooldowns import CooldownTracker
from joinsounds.shared.models import CooldownKind
from joinsounds.storage.coordinator import PersistenceCoordinator
from joinsounds.storage.factory import OpenedBackend, build_backend, open_backend

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO", debug: bool = False):
    """Configure logging for the hub and its components."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if debug:
        logging.getLogger("joinsounds").setLevel(logging.DEBUG)


class JoinSoundsHub:
    """Context object built once from config and handed to every collaborator.

    Construction only wires components together; ``initialize()`` selects the
    storage backend (falling back to file storage if needed) and loads
    persisted preferences.
    """

    def __init__(self, config: JoinSoundsConfig | None = None, clock: Callable[[], float] = time.time):
        self.config = config or JoinSoundsConfig()
        self._clock = clock
        self.catalog = SoundCatalog(self.config.sounds)
        self.cooldowns = CooldownTracker(self.config.cooldowns, clock=clock)
        self.coordinator = PersistenceCoordinator(build_backend(self.config.storage), clock=clock)
        self.store = PreferenceStore(self.catalog, self.coordinator, self.cooldowns, self.config.permissions)
        self.opened: OpenedBackend | None = None
        self._running = False
        self._start_time: datetime | None = None
        self._apply_debug()

    def _apply_debug(self):
        if self.config.general.debug:
            logging.getLogger("joinsounds").setLevel(logging.DEBUG)

    @property
    def degraded(self) -> bool:
        return bool(self.opened and self.opened.degraded)

    def is_running(self) -> bool:
        return self._running

    async def initialize(self):
        """Open storage, load preferences and restore cooldowns."""
        logger.info("Initializing JoinSounds...")
        await self._open_storage()
        self._running = True
        self._start_time = datetime.now(tz=UTC)
        logger.info("JoinSounds initialized (%d players, storage: %s)", len(self.coordinator), self.storage_info())

    async def _open_storage(self):
        self.opened = await open_backend(self.config.storage)
        self.coordinator.swap_backend(self.opened.backend)
        try:
            await self.coordinator.load_from_backend()
        except BackendIOError as e:
            logger.error("Could not load player data, starting empty: %s", e)
        self._seed_cooldowns()

    def _seed_cooldowns(self):
        for user_id, record in self.coordinator.records().items():
            self.cooldowns.seed(user_id, CooldownKind.CHANGE, record.last_change)
            self.cooldowns.seed(user_id, CooldownKind.REJOIN, record.last_triggered)

    def load_catalog(self, definitions: Mapping | None, aliases: Mapping | None = None) -> CatalogLoadReport:
        return self.catalog.load(definitions, aliases)

    async def reload(
        self,
        config: JoinSoundsConfig | None = None,
        definitions: Mapping | None = None,
        aliases: Mapping | None = None,
    ) -> CatalogLoadReport | None:
        """Reload configuration and catalog.

        If the new config names different storage, pending changes are saved
        to the old backend first and the map is reloaded from the new one.
        """
        report = None
        if config is not None:
            storage_changed = config.storage != self.config.storage
            self.config = config
            self.catalog.sounds = config.sounds
            self.cooldowns.config = config.cooldowns
            self.store.permissions = config.permissions
            self._apply_debug()
            if storage_changed:
                await self.coordinator.flush_now(self.config.storage.shutdown_timeout)
                await self._open_storage()
        if definitions is not None:
            report = self.catalog.load(definitions, aliases)
        logger.info("Configuration reloaded")
        return report

    def storage_info(self) -> str:
        info = self.coordinator.backend.describe()
        if self.degraded:
            info += f" (fallback from {self.opened.requested.value})"
        return info

    def get_uptime_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return (datetime.now(tz=UTC) - self._start_time).total_seconds()

    def stats(self) -> dict[str, Any]:
        return {
            "sounds": len(self.catalog),
            "enabled_sounds": self.catalog.enabled_count(),
            "players": len(self.coordinator),
            "storage": self.storage_info(),
            "degraded": self.degraded,
            "pending_changes": self.coordinator.pending_count,
            "uptime_seconds": round(self.get_uptime_seconds()),
        }

    async def shutdown(self) -> bool:
        """Flush pending changes, bounded by ``storage.shutdown_timeout``."""
        logger.info("Shutting down JoinSounds...")
        self._running = False
        saved = await self.coordinator.flush_now(self.config.storage.shutdown_timeout)
        logger.info("JoinSounds shutdown complete%s", "" if saved else " (unsaved changes lost)")
        return saved
