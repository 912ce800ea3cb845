# stocktake/logger_config.py
"""
Root logger setup for the stocktake service.

Everything not passed explicitly comes from `sys_config`, so the API only
needs `setup_logging()` at import time. The console handler follows
LOG_LEVEL; the rotating file under RUN_LOG_DIR keeps DEBUG records, which
is where the `@snitch` traces end up.
"""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .system_config import sys_config

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logging_initialized = False


def setup_logging(
    log_dir: Optional[Path] = None,
    level: Optional[int] = None,
    log_filename: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
) -> Path:
    """
    Install the console and file handlers on the root logger.

    Args:
        log_dir: defaults to `sys_config.run_log_dir`
        level: console level, defaults to `sys_config.log_level`
        log_filename: defaults to `sys_config.log_filename`
        max_bytes: rotation size, defaults to `sys_config.log_max_bytes`
        backup_count: rotated files kept, defaults to `sys_config.log_backup_count`

    Returns:
        The path of the log file. Later calls return it without touching handlers.
    """
    global _logging_initialized

    log_dir = Path(log_dir if log_dir is not None else sys_config.run_log_dir)
    log_file = log_dir / (log_filename or sys_config.log_filename)
    if _logging_initialized:
        logging.debug(f"Logging already set up, keeping existing handlers ({log_file})")
        return log_file

    console_level = level if level is not None else sys_config.log_level
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(console_level)

    rotating = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes if max_bytes is not None else sys_config.log_max_bytes,
        backupCount=backup_count if backup_count is not None else sys_config.log_backup_count,
        encoding="utf-8",
    )
    rotating.setFormatter(formatter)
    rotating.setLevel(logging.DEBUG)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    root.addHandler(console)
    root.addHandler(rotating)

    _logging_initialized = True
    logging.info(f"Logging to {log_file} (console level {logging.getLevelName(console_level)})")
    return log_file
