"""Tests for joinsounds.storage.file_backend: JSON document layout and atomic writes."""

import json

import pytest
import pytest_asyncio

from joinsounds.errors import BackendInitError, BackendIOError
from joinsounds.shared.models import StoredPreference
from joinsounds.storage.file_backend import FileBackend

ALICE = "0f8fad5b-d9cb-469f-a165-70867728950e"
BOB = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


@pytest_asyncio.fixture
async def backend(tmp_path):
    fb = FileBackend(tmp_path / "data" / "playerdata.json")
    await fb.initialize()
    return fb


class TestInitialize:
    async def test_creates_empty_document(self, backend):
        assert json.loads(backend.path.read_text()) == {}

    async def test_keeps_existing_document(self, tmp_path):
        path = tmp_path / "playerdata.json"
        path.write_text(json.dumps({ALICE: {"sound": "bell"}}))
        fb = FileBackend(path)
        await fb.initialize()
        assert json.loads(path.read_text()) == {ALICE: {"sound": "bell"}}

    async def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(BackendInitError):
            await FileBackend(blocker / "playerdata.json").initialize()

    def test_describe(self, tmp_path):
        assert FileBackend(tmp_path / "playerdata.json").describe() == "file (playerdata.json)"


class TestReadWrite:
    async def test_layout(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell", 100, 200)])
        assert json.loads(backend.path.read_text()) == {
            ALICE: {"sound": "bell", "last-change": 100, "last-join": 200}
        }

    async def test_missing_timestamps_omitted(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell")])
        assert json.loads(backend.path.read_text()) == {ALICE: {"sound": "bell"}}

    async def test_load_all(self, backend):
        backend.path.write_text(
            json.dumps(
                {
                    ALICE: {"sound": "bell", "last-change": 100, "last-join": 0},
                    BOB: {"sound": "horn"},
                }
            )
        )
        rows = {row.user_key: row for row in await backend.load_all()}
        assert rows[ALICE] == StoredPreference(ALICE, "bell", 100, None)
        assert rows[BOB] == StoredPreference(BOB, "horn", None, None)

    async def test_upsert_replaces_entry(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell", 100)])
        await backend.upsert_batch([StoredPreference(ALICE, "horn", 150)])
        rows = await backend.load_all()
        assert rows == [StoredPreference(ALICE, "horn", 150, None)]

    async def test_apply_merges_without_touching_others(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell"), StoredPreference(BOB, "horn")])
        await backend.apply([StoredPreference(BOB, "gong")], [ALICE])
        assert json.loads(backend.path.read_text()) == {BOB: {"sound": "gong"}}

    async def test_delete_absent_is_noop(self, backend):
        await backend.delete(ALICE)
        assert await backend.load_all() == []

    async def test_no_temp_files_left_behind(self, backend):
        await backend.upsert_batch([StoredPreference(ALICE, "bell")])
        assert [p.name for p in backend.path.parent.iterdir()] == ["playerdata.json"]

    async def test_empty_file_reads_as_empty(self, backend):
        backend.path.write_text("")
        assert await backend.load_all() == []


class TestCorruption:
    async def test_corrupt_document_raises(self, backend):
        backend.path.write_text("{not json")
        with pytest.raises(BackendIOError):
            await backend.load_all()

    async def test_invalid_utf8_raises(self, backend):
        backend.path.write_bytes(b'{"\xff\xfe": {"sound": "bell"}}')
        with pytest.raises(BackendIOError):
            await backend.load_all()

    async def test_invalid_utf8_not_overwritten_on_flush(self, backend):
        backend.path.write_bytes(b'{"\xff\xfe": {}}')
        with pytest.raises(BackendIOError):
            await backend.apply([StoredPreference(ALICE, "bell")], [])
        assert backend.path.read_bytes() == b'{"\xff\xfe": {}}'

    async def test_corrupt_document_not_overwritten(self, backend):
        backend.path.write_text("[1, 2, 3]")
        with pytest.raises(BackendIOError) as exc:
            await backend.upsert_batch([StoredPreference(ALICE, "bell")])
        assert exc.value.user_ids == (ALICE,)
        assert backend.path.read_text() == "[1, 2, 3]"

    async def test_malformed_entry_loads_as_empty(self, backend):
        backend.path.write_text(json.dumps({ALICE: "bell"}))
        assert await backend.load_all() == [StoredPreference(ALICE, None, None, None)]
