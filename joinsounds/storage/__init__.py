"""Preference storage: backends, dialects, fallback selection and write-behind flushing."""

from joinsounds.storage.base import StorageBackend
from joinsounds.storage.coordinator import PersistenceCoordinator
from joinsounds.storage.factory import OpenedBackend, build_backend, open_backend
from joinsounds.storage.file_backend import FileBackend
from joinsounds.storage.sql_backend import SQLBackend

__all__ = [
    "FileBackend",
    "OpenedBackend",
    "PersistenceCoordinator",
    "SQLBackend",
    "StorageBackend",
    "build_backend",
    "open_backend",
]
