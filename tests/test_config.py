"""Tests for joinsounds.config: defaults, clamping, storage parsing, environment overrides."""

import logging
from pathlib import Path

import pytest

from joinsounds.config import (
    JoinSoundsConfig,
    PermissionConfig,
    SoundConfig,
    StorageConfig,
    StorageKind,
    WorldConfig,
)


class TestDefaults:
    def test_empty_config(self):
        config = JoinSoundsConfig.from_dict(None)
        assert config.general.enabled is True
        assert config.sounds == SoundConfig()
        assert config.cooldowns.change_seconds == 30
        assert config.cooldowns.rejoin_seconds == 5
        assert config.storage.kind is StorageKind.FILE
        assert config.permissions == PermissionConfig()

    def test_permission_keys(self):
        config = JoinSoundsConfig.from_dict(
            {"permissions": {"use-permission": "js.use", "bypass-world-permission": "js.bypass"}}
        )
        assert config.permissions.use == "js.use"
        assert config.permissions.bypass_world == "js.bypass"
        assert not hasattr(config.permissions, "admin")

    def test_play_delay_read_as_ticks(self):
        assert SoundConfig().play_delay == 1.0
        sounds = SoundConfig.from_dict({"play-delay": 10})
        assert sounds.play_delay_ticks == 10
        assert sounds.play_delay == 0.5


class TestClamping:
    def test_out_of_range_values_clamped_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="joinsounds.config"):
            sounds = SoundConfig.from_dict({"volume": 3, "pitch": 0.1, "play-delay": -1})
        assert sounds.volume == 1.0
        assert sounds.pitch == 0.5
        assert sounds.play_delay == 0.0
        assert "above maximum" in caplog.text
        assert "below minimum" in caplog.text

    def test_bad_type_falls_back_to_default(self, caplog):
        with caplog.at_level(logging.WARNING, logger="joinsounds.config"):
            config = JoinSoundsConfig.from_dict({"cooldowns": {"change-sound-cooldown": "soon"}})
        assert config.cooldowns.change_seconds == 30
        assert "Invalid value for change-sound-cooldown" in caplog.text

    def test_negative_cooldown_clamped_to_zero(self):
        config = JoinSoundsConfig.from_dict({"cooldowns": {"rejoin-cooldown": -10}})
        assert config.cooldowns.rejoin_seconds == 0

    def test_radius_bounds_kept_consistent(self):
        sounds = SoundConfig.from_dict({"default-radius": 40, "max-radius": 32, "min-radius": 50})
        assert sounds.max_radius == 40
        assert sounds.min_radius == 40

    def test_string_numbers_and_flags(self):
        config = JoinSoundsConfig.from_dict({"sounds": {"volume": "0.25", "play-to-self": "no"}})
        assert config.sounds.volume == 0.25
        assert config.sounds.play_to_self is False


class TestWorlds:
    def test_allow_list_wins(self):
        worlds = WorldConfig.from_dict({"enabled-worlds": ["lobby"], "disabled-worlds": ["lobby", "pvp"]})
        assert worlds.is_enabled("lobby")
        assert not worlds.is_enabled("survival")

    def test_deny_list(self):
        worlds = WorldConfig.from_dict({"disabled-worlds": ["pvp"]})
        assert worlds.is_enabled("lobby")
        assert not worlds.is_enabled("pvp")

    def test_single_world_string(self):
        assert WorldConfig.from_dict({"enabled-worlds": "lobby"}).enabled_worlds == ["lobby"]


class TestStorage:
    @pytest.mark.parametrize(
        "raw,kind",
        [
            ("file", StorageKind.FILE),
            ("YAML", StorageKind.FILE),
            ("h2", StorageKind.SQLITE),
            ("sqlite", StorageKind.SQLITE),
            ("MySQL", StorageKind.MYSQL),
            ("mariadb", StorageKind.MARIADB),
            ("postgres", StorageKind.POSTGRESQL),
            ("postgresql", StorageKind.POSTGRESQL),
            ("mongodb", StorageKind.FILE),
            (None, StorageKind.FILE),
        ],
    )
    def test_kind_parsing(self, raw, kind):
        assert StorageKind.parse(raw) is kind

    def test_mariadb_inherits_mysql_settings(self):
        storage = StorageConfig.from_dict(
            {
                "type": "mariadb",
                "mysql": {"host": "db.internal", "port": 3307, "username": "js", "password": "pw"},
                "mariadb": {"database": "sounds"},
            }
        )
        assert storage.mariadb.host == "db.internal"
        assert storage.mariadb.port == 3307
        assert storage.mariadb.username == "js"
        assert storage.mariadb.database == "sounds"
        assert storage.mysql.database == "minecraft"

    def test_postgres_defaults(self):
        storage = StorageConfig.from_dict({})
        assert storage.postgresql.port == 5432
        assert storage.postgresql.username == "postgres"

    def test_invalid_table_prefix_rejected(self, caplog):
        with caplog.at_level(logging.WARNING, logger="joinsounds.config"):
            storage = StorageConfig.from_dict({"mysql": {"table-prefix": "js; DROP TABLE x"}})
        assert storage.mysql.table_prefix == "joinsounds_"
        assert "Invalid table-prefix" in caplog.text

    def test_paths(self, tmp_path):
        storage = StorageConfig.from_dict({"data-dir": str(tmp_path), "sqlite": {"file-name": "prefs.db"}})
        assert storage.file_path == tmp_path / "playerdata.json"
        assert storage.sqlite_path == tmp_path / "prefs.db"

    def test_shutdown_timeout_clamped(self):
        assert StorageConfig.from_dict({"shutdown-timeout": 0}).shutdown_timeout == 0.1


class TestFromEnv:
    def test_env_overrides_storage(self, monkeypatch, tmp_path):
        monkeypatch.setenv("JOINSOUNDS_STORAGE", "sqlite")
        monkeypatch.setenv("JOINSOUNDS_DATA_DIR", str(tmp_path))
        config = JoinSoundsConfig.from_env({"storage": {"type": "mysql"}})
        assert config.storage.kind is StorageKind.SQLITE
        assert config.storage.data_dir == Path(tmp_path)

    def test_without_env_uses_dict(self, monkeypatch):
        monkeypatch.delenv("JOINSOUNDS_STORAGE", raising=False)
        monkeypatch.delenv("JOINSOUNDS_DATA_DIR", raising=False)
        config = JoinSoundsConfig.from_env({"storage": {"type": "mysql"}})
        assert config.storage.kind is StorageKind.MYSQL
