"""Backend selection with automatic fallback to the file backend."""

import logging
from dataclasses import dataclass

from joinsounds.config import StorageConfig, StorageKind
from joinsounds.errors import BackendInitError
from joinsounds.storage.base import StorageBackend
from joinsounds.storage.dialects import MariaDBDialect, MySQLDialect, PostgresDialect, SQLiteDialect
from joinsounds.storage.file_backend import FileBackend
from joinsounds.storage.sql_backend import SQLBackend

logger = logging.getLogger(__name__)


@dataclass
class OpenedBackend:
    backend: StorageBackend
    requested: StorageKind
    degraded: bool = False
    error: str | None = None


def build_backend(config: StorageConfig) -> StorageBackend:
    """Construct (but do not initialize) the backend for ``config.kind``."""
    builders = {
        StorageKind.FILE: lambda: FileBackend(config.file_path),
        StorageKind.SQLITE: lambda: SQLBackend(SQLiteDialect(config.sqlite_path, config.sqlite)),
        StorageKind.MYSQL: lambda: SQLBackend(MySQLDialect(config.mysql)),
        StorageKind.MARIADB: lambda: SQLBackend(MariaDBDialect(config.mariadb)),
        StorageKind.POSTGRESQL: lambda: SQLBackend(PostgresDialect(config.postgresql)),
    }
    return builders[config.kind]()


async def open_backend(config: StorageConfig) -> OpenedBackend:
    """Initialize the configured backend, degrading to the file backend on failure.

    Never raises for storage reasons: if even the file backend cannot be
    prepared it is returned anyway and its flushes will log their errors.
    """
    backend = build_backend(config)
    try:
        await backend.initialize()
        logger.info("Using %s storage for player data", backend.describe())
        return OpenedBackend(backend=backend, requested=config.kind)
    except BackendInitError as e:
        error = str(e)
    except Exception as e:
        logger.exception("Unexpected error initializing %s storage", config.kind.value)
        error = f"{type(e).__name__}: {e}"

    if config.kind is StorageKind.FILE:
        logger.error("File storage unavailable (%s); preferences will not persist until this is fixed", error)
        return OpenedBackend(backend=backend, requested=config.kind, degraded=True, error=error)

    fallback = FileBackend(config.file_path)
    logger.error(
        "DEGRADED MODE: %s storage failed to initialize (%s). Falling back to %s",
        config.kind.value,
        error,
        fallback.describe(),
    )
    try:
        await fallback.initialize()
    except BackendInitError as e:
        logger.error("Fallback file storage also unavailable: %s", e)
    return OpenedBackend(backend=fallback, requested=config.kind, degraded=True, error=error)
