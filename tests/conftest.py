"""Shared fixtures: a controllable clock, an in-memory backend and a sample catalog."""

import asyncio
import uuid

import pytest

from joinsounds.errors import BackendInitError, BackendIOError
from joinsounds.storage.base import StorageBackend

START = 1_700_000_000.0


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeBackend(StorageBackend):
    """In-memory backend that records every flush and can be told to fail."""

    name = "fake"

    def __init__(self, rows=None, delay: float = 0.0):
        self.rows = {row.user_key: row for row in rows or []}
        self.delay = delay
        self.apply_calls: list[tuple[list, list]] = []
        self.fail_next = 0
        self.init_error: Exception | None = None
        self.initialized = False

    async def initialize(self):
        if self.init_error is not None:
            raise self.init_error
        self.initialized = True

    async def load_all(self):
        return list(self.rows.values())

    async def upsert_batch(self, records):
        for record in records:
            self.rows[record.user_key] = record

    async def delete(self, user_key):
        self.rows.pop(user_key, None)

    async def apply(self, upserts, deletes):
        upserts, deletes = list(upserts), list(deletes)
        self.apply_calls.append((upserts, deletes))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_next:
            self.fail_next -= 1
            raise BackendIOError("disk on fire", [r.user_key for r in upserts] + deletes)
        await super().apply(upserts, deletes)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def make_backend():
    """Factory for FakeBackend with preloaded rows or an artificial delay."""
    return FakeBackend


@pytest.fixture
def failing_init_backend():
    backend = FakeBackend()
    backend.init_error = BackendInitError("connection refused")
    return backend


@pytest.fixture
def user_id():
    return uuid.UUID("0f8fad5b-d9cb-469f-a165-70867728950e")


@pytest.fixture
def other_user():
    return uuid.UUID("7c9e6679-7425-40de-944b-e07fc1f90ae7")


@pytest.fixture
def sound_definitions():
    """Raw definitions as they would come out of a parsed sounds file."""
    return {
        "bell": {
            "display-name": "Bell",
            "audio-ref": "custom:bell",
            "permission": "joinsounds.sound.bell",
            "description": ["A gentle chime"],
            "volume": 0.5,
        },
        "horn": {
            "audio-ref": "custom:horn",
            "permission": "joinsounds.sound.horn",
            "volume": 4.0,
            "pitch": 0.1,
            "radius": 500,
        },
        "retired": {
            "audio-ref": "custom:retired",
            "permission": "joinsounds.sound.retired",
            "enabled": False,
        },
        "secret": {
            "audio-ref": "custom:secret",
            "permission": "joinsounds.sound.secret",
            "hidden": True,
        },
        "winter": {
            "audio-ref": "custom:sleigh",
            "permission": "joinsounds.sound.winter",
            "seasonal": {"start-date": "12-20", "end-date": "01-05"},
        },
        "broken": {"permission": "joinsounds.sound.broken"},
    }


@pytest.fixture
def sound_aliases():
    return {"Ding": "bell", "toot": "horn", "ghost": "missing"}


def allow_all(_permission: str) -> bool:
    return True


def deny_all(_permission: str) -> bool:
    return False


@pytest.fixture
def allow():
    return allow_all


@pytest.fixture
def deny():
    return deny_all
