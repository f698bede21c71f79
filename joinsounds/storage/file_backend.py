"""Flat JSON document backend.

Layout, one entry per user::

    {"<uuid>": {"sound": "bell", "last-change": 1700000000, "last-join": 1700000100}}

Absent or zero timestamps mean "never". The document is rewritten
atomically (temp file + rename) and all file I/O runs off the event loop.
"""

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Iterable, Sequence
from pathlib import Path

from joinsounds.errors import BackendInitError, BackendIOError
from joinsounds.shared.models import StoredPreference
from joinsounds.storage.base import StorageBackend

logger = logging.getLogger(__name__)


def _atomic_write_json(path, data, **kwargs):
    """Write JSON atomically using temp file + rename."""
    path = Path(path)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, **kwargs)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _timestamp(value) -> int | None:
    try:
        value = int(value or 0)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def _entry(record: StoredPreference) -> dict:
    entry: dict = {}
    if record.signal_id:
        entry["sound"] = record.signal_id
    if record.last_change:
        entry["last-change"] = int(record.last_change)
    if record.last_triggered:
        entry["last-join"] = int(record.last_triggered)
    return entry


class FileBackend(StorageBackend):
    """Stores all preferences in one JSON document keyed by user id."""

    name = "file"

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def describe(self) -> str:
        return f"file ({self.path.name})"

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self._ensure_file)
        except OSError as e:
            raise BackendInitError(f"Could not create {self.path}: {e}") from e

    def _ensure_file(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            _atomic_write_json(self.path, {})
            logger.info("Created %s", self.path)

    def _read_document(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise BackendIOError(f"Could not read {self.path}: {e}") from e
        try:
            text = raw.decode("utf-8")
            if not text.strip():
                return {}
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BackendIOError(f"Corrupt preference file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise BackendIOError(f"Corrupt preference file {self.path}: top level is not an object")
        return data

    def _write_document(self, data: dict, user_keys: Iterable[str] = ()) -> None:
        try:
            _atomic_write_json(self.path, data, indent=2, sort_keys=True)
        except OSError as e:
            raise BackendIOError(f"Could not save {self.path}: {e}", user_keys) from e

    async def load_all(self) -> list[StoredPreference]:
        data = await asyncio.to_thread(self._read_document)
        rows = []
        for user_key, entry in data.items():
            if not isinstance(entry, dict):
                entry = {}
            sound = entry.get("sound")
            rows.append(
                StoredPreference(
                    user_key=str(user_key),
                    signal_id=str(sound) if sound else None,
                    last_change=_timestamp(entry.get("last-change")),
                    last_triggered=_timestamp(entry.get("last-join")),
                )
            )
        return rows

    async def upsert_batch(self, records: Sequence[StoredPreference]) -> None:
        await self.apply(records, ())

    async def delete(self, user_key: str) -> None:
        await self.apply((), (user_key,))

    async def apply(self, upserts: Sequence[StoredPreference], deletes: Iterable[str]) -> None:
        """Merge one flush into the document with a single rewrite."""
        deletes = list(deletes)
        await asyncio.to_thread(self._merge, list(upserts), deletes)

    def _merge(self, upserts: list[StoredPreference], deletes: list[str]) -> None:
        keys = [r.user_key for r in upserts] + deletes
        try:
            data = self._read_document()
        except BackendIOError as e:
            raise BackendIOError(str(e), keys) from e
        changed = False
        for user_key in deletes:
            if data.pop(user_key, None) is not None:
                changed = True
        for record in upserts:
            data[record.user_key] = _entry(record)
            changed = True
        if changed:
            self._write_document(data, keys)
            logger.debug("Saved %d preference rows to %s", len(data), self.path.name)
