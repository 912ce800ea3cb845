import logging

from stocktake.system_config import DEFAULT_SECTION_BANNERS, PROJECT_ROOT, SystemConfig, sys_config


def test_config_is_a_singleton():
    assert SystemConfig() is sys_config


def test_defaults(monkeypatch):
    for key in ["MAX_UPLOAD_BYTES", "STORAGE_RETRIES", "SECTION_BANNERS", "STOCKTAKE_DB_PATH", "LOG_LEVEL"]:
        monkeypatch.delenv(key, raising=False)

    assert sys_config.max_upload_bytes == 10 * 1024 * 1024
    assert sys_config.storage_retries == 3
    assert sys_config.section_banners == DEFAULT_SECTION_BANNERS
    assert sys_config.database_path == (PROJECT_ROOT / "database" / "stocktake.db").resolve()
    assert sys_config.log_level == logging.INFO


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "2048")
    monkeypatch.setenv("SECTION_BANNERS", "Dairy, Bakery ,")
    monkeypatch.setenv("STOCKTAKE_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("LOG_LEVEL", "debug")

    assert sys_config.max_upload_bytes == 2048
    assert sys_config.section_banners == ["Dairy", "Bakery"]
    assert sys_config.database_path == (tmp_path / "x.db").resolve()
    assert sys_config.log_level == logging.DEBUG


def test_relative_paths_resolve_against_project_root(monkeypatch):
    monkeypatch.setenv("STOCKTAKE_DB_PATH", "data/inv.db")
    assert sys_config.database_path == (PROJECT_ROOT / "data" / "inv.db").resolve()


def test_invalid_values_fall_back(monkeypatch):
    monkeypatch.setenv("STORAGE_RETRIES", "many")
    monkeypatch.setenv("HEADER_SCAN_ROWS", "-4")
    monkeypatch.setenv("LOG_LEVEL", "LOUD")

    assert sys_config.storage_retries == 3
    assert sys_config.header_scan_rows == 50
    assert sys_config.log_level == logging.INFO
