import logging
import os
from pathlib import Path
from typing import List, Optional

# Project root (this file lives in stocktake/system_config.py)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)

DEFAULT_SECTION_BANNERS = ["DODANE DO SPISU", "PÓŁPRODUKTY", "SUROWCE", "PRODUKCJA"]


class SystemConfig:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(SystemConfig, cls).__new__(cls)
            cls._instance._load_env_file()  # Load .env variables
        return cls._instance

    def _load_env_file(self):
        """Load the project .env file into os.environ without overriding existing variables."""
        env_path = PROJECT_ROOT / ".env"
        if env_path.exists():
            try:
                with open(env_path, "r", encoding="utf-8") as f:
                    for line in f:
                        line = line.strip()
                        if not line or line.startswith("#"):
                            continue
                        if "=" in line:
                            key, value = line.split("=", 1)
                            key = key.strip()
                            value = value.strip().strip("'").strip('"')
                            # OS env var takes precedence
                            if key and key not in os.environ:
                                os.environ[key] = value
                logger.info("Loaded .env file for environment configuration.")
            except OSError as e:
                logger.warning(f"Failed to read .env file: {e}")

    @property
    def database_path(self) -> Path:
        return self._resolve_path("database", "database/stocktake.db", env_key="STOCKTAKE_DB_PATH")

    @property
    def run_log_dir(self) -> Path:
        return self._resolve_path("run_log", "run_log", env_key="RUN_LOG_DIR")

    @property
    def log_level(self) -> int:
        name = os.getenv("LOG_LEVEL", "INFO").upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            logger.warning(f"Unknown LOG_LEVEL '{name}', using INFO.")
            return logging.INFO
        return level

    @property
    def log_filename(self) -> str:
        return os.getenv("LOG_FILENAME", "").strip() or "stocktake.log"

    @property
    def log_max_bytes(self) -> int:
        return self._resolve_int("LOG_MAX_BYTES", 5 * 1024 * 1024)

    @property
    def log_backup_count(self) -> int:
        return self._resolve_int("LOG_BACKUP_COUNT", 3)

    @property
    def max_upload_bytes(self) -> int:
        return self._resolve_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)

    @property
    def header_scan_rows(self) -> int:
        return self._resolve_int("HEADER_SCAN_ROWS", 50)

    @property
    def storage_retries(self) -> int:
        return self._resolve_int("STORAGE_RETRIES", 3)

    @property
    def slow_transaction_ms(self) -> int:
        return self._resolve_int("SLOW_TRANSACTION_MS", 1000)

    @property
    def section_banners(self) -> List[str]:
        """Known section banner labels, e.g. category names printed above a block of items."""
        env_val = os.getenv("SECTION_BANNERS")
        if env_val:
            labels = [label.strip() for label in env_val.split(",") if label.strip()]
            if labels:
                return labels
        return list(DEFAULT_SECTION_BANNERS)

    def _resolve_int(self, env_key: str, default: int) -> int:
        env_val = os.getenv(env_key)
        if env_val is None or not env_val.strip():
            return default
        try:
            value = int(env_val)
        except ValueError:
            logger.warning(f"Invalid integer for {env_key}='{env_val}', using default {default}.")
            return default
        if value < 0:
            logger.warning(f"Negative value for {env_key}={value}, using default {default}.")
            return default
        return value

    def _resolve_path(self, key: str, default_relative: str, env_key: Optional[str] = None) -> Path:
        # 1. Environment variable
        check_env = env_key if env_key else key.upper()
        env_val = os.getenv(check_env)

        if env_val:
            path_obj = Path(env_val).expanduser()
            if path_obj.is_absolute():
                return path_obj.resolve()
            return (PROJECT_ROOT / path_obj).resolve()

        # 2. Fallback default relative to the project root
        return (PROJECT_ROOT / default_relative).resolve()


# Singleton instance
sys_config = SystemConfig()
