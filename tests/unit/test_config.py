"""Unit tests for configuration loading and environment overrides."""

import json

import pytest

from custody_tracker.config import ConfigManager, CustodyConfig, LedgerConfig


@pytest.fixture
def manager(monkeypatch):
    for name in (
        "CUSTODY_CONFIG_FILE",
        "CUSTODY_DATABASE_URL",
        "CUSTODY_DEFAULT_LANG",
        "CUSTODY_DEBUG",
        "CUSTODY_LOG_TO_FILE",
        "CUSTODY_DEV_MODE",
    ):
        monkeypatch.delenv(name, raising=False)
    return ConfigManager()


@pytest.mark.unit
class TestConfigManager:

    def test_defaults(self, manager):
        config = manager.load_config()

        assert config.database.url == "sqlite:///custody_tracker.db"
        assert config.server.port == 8000
        assert config.ledger.default_lang_code == "en-US"
        assert config.ledger.default_page_size == 10
        assert config.ledger.max_page_size == 100

    def test_environment_overrides(self, manager, monkeypatch):
        monkeypatch.setenv("CUSTODY_DATABASE_URL", "sqlite:////tmp/other.db")
        monkeypatch.setenv("CUSTODY_DEFAULT_LANG", "de-DE")
        monkeypatch.setenv("CUSTODY_DEBUG", "true")
        monkeypatch.setenv("CUSTODY_LOG_TO_FILE", "0")

        config = manager.load_config()

        assert config.database.url == "sqlite:////tmp/other.db"
        assert config.ledger.default_lang_code == "de-DE"
        assert config.server.debug is True
        assert config.app.log_level == "DEBUG"
        assert config.app.log_to_file is False

    def test_file_round_trip(self, manager, monkeypatch, tmp_path):
        config_file = tmp_path / "custody.json"
        monkeypatch.setenv("CUSTODY_CONFIG_FILE", str(config_file))

        config = manager.load_config()
        config.ledger.statistics_top_n = 5
        assert manager.save_config(config) is True

        data = json.loads(config_file.read_text(encoding="utf-8"))
        assert data["ledger"]["statistics_top_n"] == 5

        reloaded = ConfigManager().load_config()
        assert reloaded.ledger.statistics_top_n == 5

    def test_corrupt_file_falls_back_to_defaults(self, manager, monkeypatch, tmp_path):
        config_file = tmp_path / "custody.json"
        config_file.write_text("{not json", encoding="utf-8")
        monkeypatch.setenv("CUSTODY_CONFIG_FILE", str(config_file))

        config = manager.load_config()

        assert config.ledger == LedgerConfig()

    def test_save_without_file(self, manager):
        manager.load_config()
        assert manager.save_config() is False

    def test_validate_config(self, manager):
        manager.load_config()
        assert manager.validate_config() == []

        manager.config.ledger.default_page_size = 500
        manager.config.ledger.statistics_trend_days = 0
        issues = manager.validate_config()
        assert len(issues) == 2

    def test_dict_round_trip(self, manager):
        config = manager.create_default_config()
        assert CustodyConfig.from_dict(config.to_dict()) == config
