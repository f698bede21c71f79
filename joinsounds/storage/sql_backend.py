"""SQL preference backend, parameterized by a dialect.

No connection outlives a call: every operation opens its own connection
through the dialect and closes it on every exit path.
"""

import logging
from collections.abc import Iterable, Sequence
from types import ModuleType

from joinsounds.errors import BackendInitError, BackendIOError
from joinsounds.shared.models import StoredPreference
from joinsounds.storage.base import StorageBackend
from joinsounds.storage.dialects import SQLDialect

logger = logging.getLogger(__name__)


def _row(record: StoredPreference) -> tuple:
    return (
        record.user_key,
        record.signal_id,
        int(record.last_change or 0),
        int(record.last_triggered or 0),
    )


class SQLBackend(StorageBackend):
    """Stores one row per user in ``<prefix>players``."""

    def __init__(self, dialect: SQLDialect):
        self.dialect = dialect
        self.name = dialect.name
        self._driver: ModuleType | None = None
        self._errors: tuple[type[BaseException], ...] = ()

    def describe(self) -> str:
        return f"{self.dialect.name} database ({self.dialect.dsn()})"

    async def initialize(self) -> None:
        driver = self.dialect.load_driver()
        errors = self.dialect.errors(driver)
        try:
            async with self.dialect.connect(driver) as session:
                async with session.transaction():
                    await session.execute(self.dialect.create_table_sql())
        except errors as e:
            raise BackendInitError(f"{self.dialect.name}: could not prepare {self.dialect.table}: {e}") from e
        self._driver = driver
        self._errors = errors
        logger.debug("Database table %s created/verified", self.dialect.table)

    def _require_driver(self) -> ModuleType:
        if self._driver is None:
            raise RuntimeError("SQLBackend not initialized. Call initialize() first.")
        return self._driver

    async def load_all(self) -> list[StoredPreference]:
        driver = self._require_driver()
        try:
            async with self.dialect.connect(driver) as session:
                rows = await session.fetchall(self.dialect.select_sql())
        except self._errors as e:
            raise BackendIOError(f"Failed to load player data from {self.dialect.name}: {e}") from e
        return [
            StoredPreference(
                user_key=str(user_key),
                signal_id=sound or None,
                last_change=int(last_change or 0) or None,
                last_triggered=int(last_join or 0) or None,
            )
            for user_key, sound, last_change, last_join in rows
        ]

    async def upsert_batch(self, records: Sequence[StoredPreference]) -> None:
        await self.apply(records, ())

    async def delete(self, user_key: str) -> None:
        await self.apply((), (user_key,))

    async def apply(self, upserts: Sequence[StoredPreference], deletes: Iterable[str]) -> None:
        """Run one flush (deletes, then upserts) in a single transaction."""
        driver = self._require_driver()
        deletes = list(deletes)
        if not upserts and not deletes:
            return
        keys = [r.user_key for r in upserts] + deletes
        try:
            async with self.dialect.connect(driver) as session:
                async with session.transaction():
                    if deletes:
                        await session.executemany(self.dialect.delete_sql(), [(key,) for key in deletes])
                    if upserts:
                        await session.executemany(self.dialect.upsert_sql(), [_row(r) for r in upserts])
        except self._errors as e:
            raise BackendIOError(f"Failed to save player data to {self.dialect.name}: {e}", keys) from e
        logger.debug("Saved %d rows, deleted %d rows (%s)", len(upserts), len(deletes), self.dialect.name)
