"""Settings loading: packaged defaults, file and environment overrides, validation."""

import logging

import pytest
import yaml

from stock_config import (
    DatabaseSettings,
    LedgerSettings,
    compute_checksum,
    load_settings,
    parse_settings,
)
from stock_config.loader import CONFIG_ENV_VAR, DATABASE_URL_ENV_VAR


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv(DATABASE_URL_ENV_VAR, raising=False)


def _write(tmp_path, data, name="settings.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_packaged_defaults(self):
        settings = load_settings()

        assert settings.database.url == "sqlite:///stock_ledger.db"
        assert settings.database.pool_size == 20
        assert settings.attribution.batch_limit is None
        assert settings.log_level == "INFO"
        assert settings.log_level_number == logging.INFO

    def test_packaged_defaults_match_dataclass_defaults(self):
        assert load_settings() == LedgerSettings()

    def test_empty_mapping_gives_defaults(self):
        assert parse_settings({}) == LedgerSettings()


class TestOverrides:
    def test_explicit_path(self, tmp_path):
        path = _write(tmp_path, {"attribution": {"batch_limit": 50}, "log_level": "debug"})

        settings = load_settings(path)

        assert settings.attribution.batch_limit == 50
        assert settings.log_level_number == logging.DEBUG
        # Sections left out keep their defaults.
        assert settings.database == DatabaseSettings()

    def test_config_env_var(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"database": {"url": "sqlite:///other.db"}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert load_settings().database.url == "sqlite:///other.db"

    def test_database_url_env_wins_over_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"database": {"url": "sqlite:///other.db"}})
        monkeypatch.setenv(DATABASE_URL_ENV_VAR, "postgresql://u:p@localhost/stock")

        assert load_settings(path).database.url == "postgresql://u:p@localhost/stock"

    def test_engine_kwargs(self):
        kwargs = DatabaseSettings(pool_size=5, echo=True).engine_kwargs()
        assert kwargs["pool_size"] == 5
        assert kwargs["echo"] is True
        assert "url" not in kwargs


class TestValidation:
    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="unknown top-level keys"):
            parse_settings({"databse": {}})

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="unknown keys in 'database'"):
            parse_settings({"database": {"pool": 3}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError):
            parse_settings({"attribution": [1, 2]})

    @pytest.mark.parametrize(
        "data",
        [
            {"database": {"pool_size": 0}},
            {"database": {"url": ""}},
            {"database": {"sqlite_busy_timeout": 0}},
            {"attribution": {"batch_limit": 0}},
            {"log_level": "LOUD"},
        ],
    )
    def test_invalid_values(self, data):
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="top level must be a mapping"):
            load_settings(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")


class TestChecksum:
    def test_deterministic(self):
        assert compute_checksum(LedgerSettings()) == compute_checksum(parse_settings({}))

    def test_changes_with_settings(self):
        base = compute_checksum(LedgerSettings())
        changed = compute_checksum(parse_settings({"attribution": {"batch_limit": 10}}))
        assert base != changed
        assert len(base) == 64
