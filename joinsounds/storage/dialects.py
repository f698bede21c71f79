"""SQL dialect strategies for SQLBackend.

Each dialect knows its async driver module, placeholder style, idempotent
upsert statement and how to open (and always close) a connection. Drivers
are imported lazily so a missing one surfaces as BackendInitError at
initialization time instead of an import failure at startup.
"""

import asyncio
import contextlib
import importlib
import sqlite3
import ssl
from collections.abc import AsyncIterator
from pathlib import Path
from types import ModuleType
from urllib.parse import quote

from joinsounds.config import ServerDatabaseConfig, SQLiteConfig
from joinsounds.errors import BackendInitError


COLUMNS = ("uuid", "sound", "last_change", "last_join")


class SQLSession:
    """Minimal uniform surface over one driver connection."""

    async def execute(self, sql: str, params: tuple = ()) -> None:
        raise NotImplementedError

    async def executemany(self, sql: str, rows: list[tuple]) -> None:
        raise NotImplementedError

    async def fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        raise NotImplementedError

    def transaction(self) -> contextlib.AbstractAsyncContextManager[None]:
        """Commit on success, roll back on any exception."""
        raise NotImplementedError


class SQLDialect:
    """Base dialect. Subclasses fill in driver and statement details."""

    name = "sql"
    driver_module = ""
    install_hint = ""

    def __init__(self, table_prefix: str = "joinsounds_"):
        self.table_prefix = table_prefix

    @property
    def table(self) -> str:
        return f"{self.table_prefix}players"

    def load_driver(self) -> ModuleType:
        try:
            return importlib.import_module(self.driver_module)
        except ImportError as e:
            raise BackendInitError(
                f"{self.name} driver '{self.driver_module}' not found ({e}). {self.install_hint}".strip()
            ) from e

    def errors(self, driver: ModuleType) -> tuple[type[BaseException], ...]:
        """Exception types that mean 'the database failed', for this driver."""
        return (OSError, asyncio.TimeoutError)

    def placeholders(self, count: int) -> list[str]:
        return ["?"] * count

    def create_table_sql(self) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {self.table} ("
            "uuid VARCHAR(36) PRIMARY KEY, "
            "sound VARCHAR(255), "
            "last_change BIGINT, "
            "last_join BIGINT"
            ")"
        )

    def select_sql(self) -> str:
        return f"SELECT {', '.join(COLUMNS)} FROM {self.table}"

    def delete_sql(self) -> str:
        return f"DELETE FROM {self.table} WHERE uuid = {self.placeholders(1)[0]}"

    def insert_prefix(self) -> str:
        values = ", ".join(self.placeholders(len(COLUMNS)))
        return f"INSERT INTO {self.table} ({', '.join(COLUMNS)}) VALUES ({values})"

    def upsert_sql(self) -> str:
        raise NotImplementedError

    def dsn(self) -> str:
        """Connection string with the password left out (safe to log)."""
        raise NotImplementedError

    def connect(self, driver: ModuleType) -> contextlib.AbstractAsyncContextManager[SQLSession]:
        raise NotImplementedError


# ── SQLite (embedded file database) ─────────────────────────────────────


class _SQLiteSession(SQLSession):
    def __init__(self, conn):
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> None:
        await self._conn.execute(sql, params)

    async def executemany(self, sql: str, rows: list[tuple]) -> None:
        await self._conn.executemany(sql, rows)

    async def fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        async with self._conn.execute(sql, params) as cursor:
            return [tuple(row) for row in await cursor.fetchall()]

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self._conn.commit()
        except BaseException:
            await self._conn.rollback()
            raise


class SQLiteDialect(SQLDialect):
    name = "sqlite"
    driver_module = "aiosqlite"
    install_hint = "Install with: pip install aiosqlite"

    def __init__(self, path: str | Path, config: SQLiteConfig | None = None):
        config = config or SQLiteConfig()
        super().__init__(config.table_prefix)
        self.path = Path(path)
        self.busy_timeout_ms = config.busy_timeout_ms

    def errors(self, driver: ModuleType) -> tuple[type[BaseException], ...]:
        return (sqlite3.Error, OSError)

    def upsert_sql(self) -> str:
        return (
            f"{self.insert_prefix()} ON CONFLICT(uuid) DO UPDATE SET "
            "sound = excluded.sound, last_change = excluded.last_change, last_join = excluded.last_join"
        )

    def dsn(self) -> str:
        return f"sqlite:///{self.path}"

    @contextlib.asynccontextmanager
    async def connect(self, driver: ModuleType) -> AsyncIterator[SQLSession]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = await driver.connect(str(self.path))
        try:
            await conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            yield _SQLiteSession(conn)
        finally:
            await conn.close()


# ── MySQL / MariaDB ─────────────────────────────────────────────────────


class _MySQLSession(SQLSession):
    def __init__(self, conn):
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> None:
        async with self._conn.cursor() as cur:
            await cur.execute(sql, params or None)

    async def executemany(self, sql: str, rows: list[tuple]) -> None:
        async with self._conn.cursor() as cur:
            await cur.executemany(sql, rows)

    async def fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        async with self._conn.cursor() as cur:
            await cur.execute(sql, params or None)
            return [tuple(row) for row in await cur.fetchall()]

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self._conn.commit()
        except BaseException:
            await self._conn.rollback()
            raise


class MySQLDialect(SQLDialect):
    name = "mysql"
    driver_module = "aiomysql"
    install_hint = "Install with: pip install 'joinsounds[mysql]'"
    scheme = "mysql"

    def __init__(self, config: ServerDatabaseConfig | None = None):
        self.config = config or ServerDatabaseConfig()
        super().__init__(self.config.table_prefix)

    def errors(self, driver: ModuleType) -> tuple[type[BaseException], ...]:
        driver_error = getattr(driver, "Error", None)
        base = super().errors(driver)
        return base + (driver_error,) if driver_error else base

    def placeholders(self, count: int) -> list[str]:
        return ["%s"] * count

    def upsert_sql(self) -> str:
        return (
            f"{self.insert_prefix()} ON DUPLICATE KEY UPDATE "
            "sound = VALUES(sound), last_change = VALUES(last_change), last_join = VALUES(last_join)"
        )

    def dsn(self) -> str:
        c = self.config
        return (
            f"{self.scheme}://{quote(c.username)}@{c.host}:{c.port}/{quote(c.database)}"
            f"?ssl={str(c.use_ssl).lower()}&connect_timeout={c.connect_timeout:g}"
        )

    @contextlib.asynccontextmanager
    async def connect(self, driver: ModuleType) -> AsyncIterator[SQLSession]:
        c = self.config
        conn = await driver.connect(
            host=c.host,
            port=c.port,
            user=c.username,
            password=c.password,
            db=c.database,
            connect_timeout=c.connect_timeout,
            ssl=ssl.create_default_context() if c.use_ssl else None,
            autocommit=False,
        )
        try:
            yield _MySQLSession(conn)
        finally:
            conn.close()


class MariaDBDialect(MySQLDialect):
    """MariaDB speaks the MySQL protocol; only naming differs."""

    name = "mariadb"
    install_hint = "Install with: pip install 'joinsounds[mysql]'"
    scheme = "mariadb"


# ── PostgreSQL ──────────────────────────────────────────────────────────


class _PostgresSession(SQLSession):
    def __init__(self, conn):
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> None:
        await self._conn.execute(sql, *params)

    async def executemany(self, sql: str, rows: list[tuple]) -> None:
        await self._conn.executemany(sql, rows)

    async def fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        return [tuple(row) for row in await self._conn.fetch(sql, *params)]

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with self._conn.transaction():
            yield


class PostgresDialect(SQLDialect):
    name = "postgresql"
    driver_module = "asyncpg"
    install_hint = "Install with: pip install 'joinsounds[postgres]'"

    def __init__(self, config: ServerDatabaseConfig | None = None):
        self.config = config or ServerDatabaseConfig(port=5432, username="postgres")
        super().__init__(self.config.table_prefix)

    def errors(self, driver: ModuleType) -> tuple[type[BaseException], ...]:
        extra = tuple(
            exc for exc in (getattr(driver, "PostgresError", None), getattr(driver, "InterfaceError", None)) if exc
        )
        return super().errors(driver) + extra

    def placeholders(self, count: int) -> list[str]:
        return [f"${i}" for i in range(1, count + 1)]

    def upsert_sql(self) -> str:
        return (
            f"{self.insert_prefix()} ON CONFLICT (uuid) DO UPDATE SET "
            "sound = EXCLUDED.sound, last_change = EXCLUDED.last_change, last_join = EXCLUDED.last_join"
        )

    def dsn(self) -> str:
        c = self.config
        return f"postgresql://{quote(c.username)}@{c.host}:{c.port}/{quote(c.database)}"

    @contextlib.asynccontextmanager
    async def connect(self, driver: ModuleType) -> AsyncIterator[SQLSession]:
        c = self.config
        conn = await driver.connect(
            dsn=self.dsn(),
            password=c.password or None,
            timeout=c.connect_timeout,
            ssl=ssl.create_default_context() if c.use_ssl else None,
        )
        try:
            yield _PostgresSession(conn)
        finally:
            await conn.close()
