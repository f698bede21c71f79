"""Tests for joinsounds.storage.sql_backend against a real SQLite database."""

import sqlite3

import aiosqlite
import pytest
import pytest_asyncio

from joinsounds.config import SQLiteConfig
from joinsounds.errors import BackendInitError, BackendIOError
from joinsounds.shared.models import StoredPreference
from joinsounds.storage.dialects import SQLiteDialect
from joinsounds.storage.sql_backend import SQLBackend

ALICE = "0f8fad5b-d9cb-469f-a165-70867728950e"
BOB = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


@pytest_asyncio.fixture
async def backend(tmp_path):
    sb = SQLBackend(SQLiteDialect(tmp_path / "joinsounds.db"))
    await sb.initialize()
    return sb


async def _table_names(path):
    async with aiosqlite.connect(path) as conn:
        cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        return {row[0] for row in await cursor.fetchall()}


class TestInitialize:
    async def test_creates_players_table(self, backend, tmp_path):
        assert "joinsounds_players" in await _table_names(tmp_path / "joinsounds.db")

    async def test_custom_prefix(self, tmp_path):
        sb = SQLBackend(SQLiteDialect(tmp_path / "x.db", SQLiteConfig(table_prefix="js_")))
        await sb.initialize()
        assert "js_players" in await _table_names(tmp_path / "x.db")

    async def test_initialize_is_idempotent(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell")])
        await backend.initialize()
        assert len(await backend.load_all()) == 1

    async def test_unusable_database_file(self, tmp_path):
        path = tmp_path / "broken.db"
        path.write_text("this is not a sqlite database, just text long enough to have a header")
        with pytest.raises(BackendInitError):
            await SQLBackend(SQLiteDialect(path)).initialize()

    async def test_operations_require_initialize(self, tmp_path):
        sb = SQLBackend(SQLiteDialect(tmp_path / "joinsounds.db"))
        with pytest.raises(RuntimeError):
            await sb.load_all()

    def test_describe(self, tmp_path):
        sb = SQLBackend(SQLiteDialect(tmp_path / "joinsounds.db"))
        assert sb.describe().startswith("sqlite database (sqlite:///")
        assert sb.name == "sqlite"


class TestReadWrite:
    async def test_round_trip(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell", 100, 200), StoredPreference(BOB, "horn")])
        rows = {row.user_key: row for row in await backend.load_all()}
        assert rows[ALICE] == StoredPreference(ALICE, "bell", 100, 200)
        assert rows[BOB] == StoredPreference(BOB, "horn", None, None)

    async def test_upsert_overwrites_existing_row(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell", 100)])
        await backend.upsert_batch([StoredPreference(ALICE, "horn", 150, 160)])
        assert await backend.load_all() == [StoredPreference(ALICE, "horn", 150, 160)]

    async def test_delete(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell"), StoredPreference(BOB, "horn")])
        await backend.delete(ALICE)
        await backend.delete(ALICE)
        assert [row.user_key for row in await backend.load_all()] == [BOB]

    async def test_apply_deletes_and_upserts_together(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell")])
        await backend.apply([StoredPreference(BOB, "gong")], [ALICE])
        assert await backend.load_all() == [StoredPreference(BOB, "gong", None, None)]

    async def test_empty_apply_is_noop(self, backend):
        await backend.apply([], [])
        assert await backend.load_all() == []

    async def test_failed_batch_is_rolled_back(self, backend, tmp_path):
        await backend.upsert_batch([StoredPreference(ALICE, "bell")])
        # Second row cannot be bound; the delete and first upsert must not survive.
        bad = StoredPreference("deadbeef-0000-0000-0000-000000000000", {"not": "bindable"})
        with pytest.raises(BackendIOError) as exc:
            await backend.apply([StoredPreference(BOB, "gong"), bad], [ALICE])
        assert BOB in exc.value.user_ids
        assert await backend.load_all() == [StoredPreference(ALICE, "bell", None, None)]

    async def test_io_error_wraps_driver_error(self, backend, tmp_path):
        (tmp_path / "joinsounds.db").unlink()
        (tmp_path / "joinsounds.db").mkdir()
        with pytest.raises(BackendIOError) as exc:
            await backend.load_all()
        assert isinstance(exc.value.__cause__, (sqlite3.Error, OSError))
