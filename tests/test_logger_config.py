import logging
from logging.handlers import RotatingFileHandler

import pytest

from stocktake import logger_config
from stocktake.system_config import sys_config


@pytest.fixture
def fresh_root(monkeypatch):
    """Lets setup_logging run again, then puts the root logger back."""
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    monkeypatch.setattr(logger_config, "_logging_initialized", False)
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_log_settings_defaults(monkeypatch):
    for key in ["LOG_FILENAME", "LOG_MAX_BYTES", "LOG_BACKUP_COUNT"]:
        monkeypatch.delenv(key, raising=False)

    assert sys_config.log_filename == "stocktake.log"
    assert sys_config.log_max_bytes == 5 * 1024 * 1024
    assert sys_config.log_backup_count == 3


def test_setup_logging_uses_configured_defaults(fresh_root, monkeypatch, tmp_path):
    monkeypatch.setenv("RUN_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("LOG_FILENAME", "ingest.log")
    monkeypatch.setenv("LOG_MAX_BYTES", "4096")
    monkeypatch.setenv("LOG_BACKUP_COUNT", "1")

    log_file = logger_config.setup_logging()

    assert log_file == (tmp_path / "logs" / "ingest.log").resolve()
    console, rotating = fresh_root.handlers
    assert console.level == logging.WARNING
    assert isinstance(rotating, RotatingFileHandler)
    assert (rotating.level, rotating.maxBytes, rotating.backupCount) == (logging.DEBUG, 4096, 1)
    assert "Logging to" in log_file.read_text(encoding="utf-8")


def test_setup_logging_runs_once(fresh_root, tmp_path):
    logger_config.setup_logging(log_dir=tmp_path, level=logging.INFO)
    handlers = list(fresh_root.handlers)

    logger_config.setup_logging(log_dir=tmp_path / "other", level=logging.DEBUG)

    assert fresh_root.handlers == handlers
    assert not (tmp_path / "other").exists()
