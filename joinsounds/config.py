"""Configuration dataclasses for joinsounds.

Raw settings (already parsed from whatever file format the host uses) are
turned into a typed tree exactly once, in ``JoinSoundsConfig.from_dict``.
Out-of-range numbers are clamped to the nearest bound with a warning and bad
types fall back to the default, so nothing downstream re-validates.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from joinsounds.errors import ConfigValueError

logger = logging.getLogger(__name__)

_TABLE_PREFIX_RE = re.compile(r"^[A-Za-z0-9_]*$")
TICKS_PER_SECOND = 20


class StorageKind(str, Enum):
    FILE = "file"
    SQLITE = "sqlite"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    POSTGRESQL = "postgresql"

    @classmethod
    def parse(cls, value: Any) -> "StorageKind":
        """Map a configured storage type to a kind; unknown values mean FILE."""
        text = str(value or "").strip().lower()
        legacy = {"yaml": "file", "json": "file", "flat": "file", "h2": "sqlite", "postgres": "postgresql"}
        text = legacy.get(text, text)
        try:
            return cls(text)
        except ValueError:
            logger.warning("Invalid storage type %r, defaulting to %s", value, cls.FILE.value)
            return cls.FILE


# ── Coercion helpers ────────────────────────────────────────────────────


def _section(raw: dict | None, key: str) -> dict:
    value = (raw or {}).get(key)
    return value if isinstance(value, dict) else {}


def _pick(raw: dict, key: str, default: Any = None) -> Any:
    """Read ``key`` accepting both dashed and underscored spellings."""
    if key in raw:
        return raw[key]
    alt = key.replace("-", "_")
    if alt in raw:
        return raw[alt]
    return default


def _to_number(value: Any, kind: type) -> int | float:
    if isinstance(value, bool):
        raise ConfigValueError(f"Expected number, got boolean {value!r}")
    try:
        return kind(float(value)) if kind is int else kind(value)
    except (TypeError, ValueError):
        raise ConfigValueError(f"Expected number, got: {value!r}")


def _number(raw: dict, key: str, default, lo=None, hi=None, kind: type = int):
    """Read a numeric setting, clamping into [lo, hi] with a warning."""
    value = _pick(raw, key)
    if value is None:
        return default
    try:
        num = _to_number(value, kind)
    except ConfigValueError as e:
        logger.warning("Invalid value for %s (%s), using default %s", key, e, default)
        return default
    if lo is not None and num < lo:
        logger.warning("%s=%s below minimum %s, clamping", key, num, lo)
        num = kind(lo)
    if hi is not None and num > hi:
        logger.warning("%s=%s above maximum %s, clamping", key, num, hi)
        num = kind(hi)
    return num


def _flag(raw: dict, key: str, default: bool) -> bool:
    value = _pick(raw, key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def _text(raw: dict, key: str, default: str) -> str:
    value = _pick(raw, key)
    return default if value is None else str(value)


def _names(raw: dict, key: str) -> list[str]:
    value = _pick(raw, key)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _table_prefix(raw: dict, default: str) -> str:
    prefix = _text(raw, "table-prefix", default)
    if not _TABLE_PREFIX_RE.match(prefix):
        logger.warning("Invalid table-prefix %r (letters, digits, underscore only), using %r", prefix, default)
        return default
    return prefix


# ── Sections ────────────────────────────────────────────────────────────


@dataclass
class GeneralConfig:
    enabled: bool = True
    debug: bool = False

    @classmethod
    def from_dict(cls, raw: dict) -> "GeneralConfig":
        return cls(enabled=_flag(raw, "enabled", True), debug=_flag(raw, "debug", False))


@dataclass
class SoundConfig:
    """Defaults applied to signal definitions that omit a value."""
    default_radius: int = 16
    min_radius: int = 5
    max_radius: int = 32
    volume: float = 0.8
    pitch: float = 1.0
    play_delay_ticks: int = 20  # game ticks between connect and playback
    play_to_self: bool = True

    @property
    def play_delay(self) -> float:
        """Delay between connect and playback, in seconds."""
        return self.play_delay_ticks / TICKS_PER_SECOND

    @classmethod
    def from_dict(cls, raw: dict) -> "SoundConfig":
        default_radius = _number(raw, "default-radius", 16, lo=1)
        min_radius = _number(raw, "min-radius", 5, lo=1)
        max_radius = _number(raw, "max-radius", 32, lo=1)
        if max_radius < default_radius:
            logger.warning("max-radius %s below default-radius %s, raising it", max_radius, default_radius)
            max_radius = default_radius
        if min_radius > default_radius:
            logger.warning("min-radius %s above default-radius %s, lowering it", min_radius, default_radius)
            min_radius = default_radius
        return cls(
            default_radius=default_radius,
            min_radius=min_radius,
            max_radius=max_radius,
            volume=_number(raw, "volume", 0.8, lo=0.0, hi=1.0, kind=float),
            pitch=_number(raw, "pitch", 1.0, lo=0.5, hi=2.0, kind=float),
            play_delay_ticks=_number(raw, "play-delay", 20, lo=0, hi=1200),
            play_to_self=_flag(raw, "play-to-self", True),
        )


@dataclass
class WorldConfig:
    """World enablement. A non-empty allow-list takes precedence over the deny-list."""
    enabled_worlds: list[str] = field(default_factory=list)
    disabled_worlds: list[str] = field(default_factory=list)

    def is_enabled(self, world: str | None) -> bool:
        if self.enabled_worlds:
            return world in self.enabled_worlds
        return world not in self.disabled_worlds

    @classmethod
    def from_dict(cls, raw: dict) -> "WorldConfig":
        return cls(
            enabled_worlds=_names(raw, "enabled-worlds"),
            disabled_worlds=_names(raw, "disabled-worlds"),
        )


@dataclass
class PermissionConfig:
    use: str = "joinsounds.use"
    bypass_world: str = "joinsounds.bypass.world"

    @classmethod
    def from_dict(cls, raw: dict) -> "PermissionConfig":
        return cls(
            use=_text(raw, "use-permission", cls.use),
            bypass_world=_text(raw, "bypass-world-permission", cls.bypass_world),
        )


@dataclass
class CooldownConfig:
    enabled: bool = True
    change_seconds: int = 30
    rejoin_seconds: int = 5

    @classmethod
    def from_dict(cls, raw: dict) -> "CooldownConfig":
        return cls(
            enabled=_flag(raw, "enabled", True),
            change_seconds=_number(raw, "change-sound-cooldown", 30, lo=0),
            rejoin_seconds=_number(raw, "rejoin-cooldown", 5, lo=0),
        )


@dataclass
class FileStorageConfig:
    file_name: str = "playerdata.json"


@dataclass
class SQLiteConfig:
    file_name: str = "joinsounds.db"
    table_prefix: str = "joinsounds_"
    busy_timeout_ms: int = 5000


@dataclass
class ServerDatabaseConfig:
    """Connection settings for a networked SQL server."""
    host: str = "localhost"
    port: int = 3306
    database: str = "minecraft"
    username: str = "root"
    password: str = ""
    table_prefix: str = "joinsounds_"
    use_ssl: bool = False
    connect_timeout: float = 30.0  # seconds

    @classmethod
    def from_dict(cls, raw: dict, base: "ServerDatabaseConfig | None" = None) -> "ServerDatabaseConfig":
        """Build settings, inheriting anything unset from ``base``."""
        base = base or cls()
        return cls(
            host=_text(raw, "host", base.host),
            port=_number(raw, "port", base.port, lo=1, hi=65535),
            database=_text(raw, "database", base.database),
            username=_text(raw, "username", base.username),
            password=_text(raw, "password", base.password),
            table_prefix=_table_prefix(raw, base.table_prefix),
            use_ssl=_flag(raw, "use-ssl", base.use_ssl),
            connect_timeout=_number(raw, "connection-timeout", base.connect_timeout, lo=1.0, hi=300.0, kind=float),
        )


@dataclass
class StorageConfig:
    kind: StorageKind = StorageKind.FILE
    data_dir: Path = field(default_factory=lambda: Path.home() / ".joinsounds")
    shutdown_timeout: float = 10.0
    file: FileStorageConfig = field(default_factory=FileStorageConfig)
    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    mysql: ServerDatabaseConfig = field(default_factory=ServerDatabaseConfig)
    mariadb: ServerDatabaseConfig = field(default_factory=ServerDatabaseConfig)
    postgresql: ServerDatabaseConfig = field(
        default_factory=lambda: ServerDatabaseConfig(port=5432, username="postgres")
    )

    @property
    def file_path(self) -> Path:
        return Path(self.data_dir) / self.file.file_name

    @property
    def sqlite_path(self) -> Path:
        return Path(self.data_dir) / self.sqlite.file_name

    @classmethod
    def from_dict(cls, raw: dict) -> "StorageConfig":
        file_raw = _section(raw, "file") or _section(raw, "yaml")
        sqlite_raw = _section(raw, "sqlite") or _section(raw, "h2")
        mysql = ServerDatabaseConfig.from_dict(_section(raw, "mysql"))
        data_dir = _pick(raw, "data-dir")
        return cls(
            kind=StorageKind.parse(_pick(raw, "type", StorageKind.FILE.value)),
            data_dir=Path(data_dir).expanduser() if data_dir else Path.home() / ".joinsounds",
            shutdown_timeout=_number(raw, "shutdown-timeout", 10.0, lo=0.1, hi=300.0, kind=float),
            file=FileStorageConfig(file_name=_text(file_raw, "file-name", FileStorageConfig.file_name)),
            sqlite=SQLiteConfig(
                file_name=_text(sqlite_raw, "file-name", SQLiteConfig.file_name),
                table_prefix=_table_prefix(sqlite_raw, SQLiteConfig.table_prefix),
                busy_timeout_ms=_number(sqlite_raw, "busy-timeout-ms", 5000, lo=0, hi=60000),
            ),
            mysql=mysql,
            mariadb=ServerDatabaseConfig.from_dict(_section(raw, "mariadb"), base=mysql),
            postgresql=ServerDatabaseConfig.from_dict(
                _section(raw, "postgresql"),
                base=ServerDatabaseConfig(port=5432, username="postgres"),
            ),
        )


@dataclass
class JoinSoundsConfig:
    """Top-level config composing all sections."""
    general: GeneralConfig = field(default_factory=GeneralConfig)
    sounds: SoundConfig = field(default_factory=SoundConfig)
    worlds: WorldConfig = field(default_factory=WorldConfig)
    permissions: PermissionConfig = field(default_factory=PermissionConfig)
    cooldowns: CooldownConfig = field(default_factory=CooldownConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_dict(cls, raw: dict | None) -> "JoinSoundsConfig":
        """Build a validated config from an already-parsed settings mapping."""
        raw = raw or {}
        return cls(
            general=GeneralConfig.from_dict(_section(raw, "general")),
            sounds=SoundConfig.from_dict(_section(raw, "sounds")),
            worlds=WorldConfig.from_dict(_section(raw, "worlds")),
            permissions=PermissionConfig.from_dict(_section(raw, "permissions")),
            cooldowns=CooldownConfig.from_dict(_section(raw, "cooldowns")),
            storage=StorageConfig.from_dict(_section(raw, "storage")),
        )

    @classmethod
    def from_env(cls, raw: dict | None = None) -> "JoinSoundsConfig":
        """Like from_dict, with storage kind and data dir overridable from the environment."""
        config = cls.from_dict(raw)
        if os.environ.get("JOINSOUNDS_STORAGE"):
            config.storage.kind = StorageKind.parse(os.environ["JOINSOUNDS_STORAGE"])
        if os.environ.get("JOINSOUNDS_DATA_DIR"):
            config.storage.data_dir = Path(os.environ["JOINSOUNDS_DATA_DIR"]).expanduser()
        return config
