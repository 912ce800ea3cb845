"""Database schema definitions and migration helpers."""

import logging
import sqlite3
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

# Quantities are decimal text so sums and retractions stay exact.
# The nullable item id is stored as '' in the key columns so that the
# UNIQUE constraint treats "no item id" as one value.
_DDL = """
CREATE TABLE IF NOT EXISTS uploaded_files (
    id TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    file_size INTEGER NOT NULL DEFAULT 0,
    row_count INTEGER NOT NULL DEFAULT 0,
    skipped_rows INTEGER NOT NULL DEFAULT 0,
    header_row_index INTEGER NOT NULL DEFAULT 0,
    role_map_json TEXT,
    headers_json TEXT,
    template_json TEXT NOT NULL DEFAULT '[]',
    upload_seq INTEGER NOT NULL,
    uploaded_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_files_upload_seq ON uploaded_files(upload_seq);

CREATE TABLE IF NOT EXISTS line_items (
    id TEXT PRIMARY KEY,
    file_id TEXT NOT NULL REFERENCES uploaded_files(id) ON DELETE CASCADE,
    item_id TEXT,
    name TEXT NOT NULL,
    quantity TEXT NOT NULL,
    unit TEXT NOT NULL,
    original_row_index INTEGER NOT NULL,
    line_number INTEGER
);

CREATE INDEX IF NOT EXISTS idx_line_items_file ON line_items(file_id, original_row_index);

CREATE TABLE IF NOT EXISTS aggregated_items (
    id TEXT PRIMARY KEY,
    item_key TEXT NOT NULL DEFAULT '',
    name_key TEXT NOT NULL,
    unit_key TEXT NOT NULL,
    item_id TEXT,
    name TEXT NOT NULL,
    unit TEXT NOT NULL,
    quantity TEXT NOT NULL,
    created_seq INTEGER NOT NULL,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    UNIQUE (item_key, name_key, unit_key)
);

CREATE INDEX IF NOT EXISTS idx_aggregates_created ON aggregated_items(created_seq);

CREATE TABLE IF NOT EXISTS contributions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    aggregate_id TEXT NOT NULL REFERENCES aggregated_items(id) ON DELETE CASCADE,
    file_id TEXT,
    line_item_id TEXT,
    quantity TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_contributions_aggregate ON contributions(aggregate_id);
CREATE INDEX IF NOT EXISTS idx_contributions_file ON contributions(file_id);

CREATE TABLE IF NOT EXISTS column_mappings (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    role_map_json TEXT NOT NULL,
    headers_json TEXT,
    is_default INTEGER NOT NULL DEFAULT 0,
    usage_count INTEGER NOT NULL DEFAULT 0,
    last_used TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);
"""


def ensure_schema(db_path: Union[str, Path]) -> sqlite3.Connection:
    """Open (or create) the database and ensure the schema is up to date.

    Args:
        db_path: Path to the SQLite database file, or ":memory:".

    Returns:
        An open sqlite3.Connection in autocommit mode with the schema applied.
        Transactions are started explicitly by the caller.
    """
    if str(db_path) == ":memory:":
        target = ":memory:"
    else:
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        target = str(path)

    conn = sqlite3.connect(target, isolation_level=None, check_same_thread=False, timeout=30.0)
    conn.row_factory = sqlite3.Row
    if target != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    # Check current schema version
    try:
        row = conn.execute("SELECT version FROM schema_version").fetchone()
        current_version = row["version"] if row else 0
    except sqlite3.OperationalError:
        current_version = 0

    if current_version < _SCHEMA_VERSION:
        logger.info(f"Migrating database {target} from schema v{current_version} to v{_SCHEMA_VERSION}")
        conn.executescript(_DDL)
        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (_SCHEMA_VERSION,),
        )

    return conn
