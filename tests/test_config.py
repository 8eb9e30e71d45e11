"""Tests for configuration loading and validation."""

import json

from rpki_dash.utils.config import (
    ConcurrencyConfig, ConfigManager, FeedConfig, IngestionConfig, RPKIDashConfig,
    StoreConfig, ValidationConfig, get_config, get_config_manager, reset_config_manager,
)


def test_defaults():
    config = RPKIDashConfig()

    assert config.concurrency.max_workers == 20
    assert config.ingestion.min_peer_count == 5
    assert config.validation.reset_before_validation is True
    assert config.registry.ipv4_match_mode == "cidr"
    assert config.feeds.routes_v4_url.endswith("riswhoisdump.IPv4.gz")
    assert config.reports.output_dir is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("RPKI_DASH_MAX_WORKERS", "7")
    monkeypatch.setenv("RPKI_DASH_DB_PATH", "/tmp/other.db")
    monkeypatch.setenv("RPKI_DASH_VRP_URL", "file:///srv/export.csv")
    monkeypatch.setenv("RPKI_DASH_RESET_BEFORE_VALIDATION", "no")

    assert ConcurrencyConfig().max_workers == 7
    assert StoreConfig().db_path == "/tmp/other.db"
    assert FeedConfig().vrp_url == "file:///srv/export.csv"
    assert ValidationConfig().reset_before_validation is False


def test_invalid_numeric_environment_is_ignored(monkeypatch):
    monkeypatch.setenv("RPKI_DASH_MIN_PEER_COUNT", "lots")
    assert IngestionConfig().min_peer_count == 5


def test_system_mode_store_path(monkeypatch):
    monkeypatch.setenv("RPKI_DASH_MODE", "system")
    assert StoreConfig().db_path == "/var/lib/rpki-dash/rpki_dash.db"


def test_load_from_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "concurrency": {"max_workers": 8},
        "registry": {"ipv4_match_mode": "legacy"},
        "reports": {"output_dir": "/srv/reports"},
    }))

    config = ConfigManager(path).get_config()

    assert config.concurrency.max_workers == 8
    assert config.registry.ipv4_match_mode == "legacy"
    assert config.reports.output_dir == "/srv/reports"
    assert config.ingestion.min_peer_count == 5


def test_unreadable_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    assert ConfigManager(path).get_config().concurrency.max_workers == 20


def test_save_and_reload(tmp_path):
    manager = ConfigManager(tmp_path / "absent.json")
    manager.update_section("ingestion", min_peer_count=3)
    saved = manager.save_config(tmp_path / "saved" / "config.json")

    assert ConfigManager(saved).get_config().ingestion.min_peer_count == 3


def test_update_section_ignores_none_and_unknown_keys(tmp_path):
    manager = ConfigManager(tmp_path / "absent.json")
    manager.update_section("store", db_path=None, colour="blue")
    manager.update_section("concurrency", max_workers=4)

    assert manager.get_config().store.db_path == "./rpki_dash.db"
    assert manager.get_config().concurrency.max_workers == 4


def test_validate_config(tmp_path):
    manager = ConfigManager(tmp_path / "absent.json")
    assert manager.validate_config() == []

    manager.update_section("concurrency", max_workers=0)
    manager.update_section("registry", ipv4_match_mode="fuzzy")
    manager.update_section("logging", level="LOUD")
    issues = manager.validate_config()

    assert len(issues) == 3
    assert any("max_workers" in issue for issue in issues)
    assert any("ipv4_match_mode" in issue for issue in issues)


def test_global_manager_is_cached():
    assert get_config_manager() is get_config_manager()
    assert get_config() is get_config_manager().get_config()

    first = get_config_manager()
    reset_config_manager()
    assert get_config_manager() is not first
