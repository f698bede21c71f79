"""Storage backend interface.

Backends are stateless translators between preference rows and durable
storage: they cache nothing between calls and hold no open connection.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from joinsounds.shared.models import StoredPreference


class StorageBackend(ABC):
    """Async load-all / upsert / delete over one storage medium."""

    name = "storage"

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare storage. Raises BackendInitError if it is unusable."""

    @abstractmethod
    async def load_all(self) -> list[StoredPreference]:
        """Return every stored row. Raises BackendIOError on read failure."""

    @abstractmethod
    async def upsert_batch(self, records: Sequence[StoredPreference]) -> None:
        """Write-or-replace rows by user key, all or nothing.

        Raises BackendIOError carrying the user keys of the batch.
        """

    @abstractmethod
    async def delete(self, user_key: str) -> None:
        """Remove one row; absent rows are a no-op."""

    async def apply(self, upserts: Sequence[StoredPreference], deletes: Iterable[str]) -> None:
        """Apply one flush: deletions first, then the upsert batch."""
        for user_key in deletes:
            await self.delete(user_key)
        if upserts:
            await self.upsert_batch(upserts)

    def describe(self) -> str:
        return self.name
