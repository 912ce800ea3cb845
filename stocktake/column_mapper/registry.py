import datetime
import json
import logging
import sqlite3
import uuid
from typing import Any, Dict, List, Optional, Sequence

from .rules import ColumnRules
from .validator import MappingValidator
from ..errors import NotFound, ProtectedResource, ValidationFailed
from ..models import ColumnMapping, RoleMap
from ..storage.store import Store

logger = logging.getLogger(__name__)

_MAPPING_KIND = "Column mapping"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime.datetime]:
    if not value:
        return None
    return datetime.datetime.fromisoformat(value)


def _now() -> str:
    # UTC, same clock as the SQLite column defaults
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None).isoformat(timespec="milliseconds")


class MappingRegistry:
    """Saved, reusable column mappings with usage statistics."""

    def __init__(self, store: Store, validator: Optional[MappingValidator] = None):
        self.store = store
        self.validator = validator or MappingValidator()

    def _row_to_mapping(self, row: sqlite3.Row) -> ColumnMapping:
        return ColumnMapping(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            role_map={role: int(index) for role, index in json.loads(row["role_map_json"]).items()},
            headers=json.loads(row["headers_json"]) if row["headers_json"] else None,
            is_default=bool(row["is_default"]),
            usage_count=row["usage_count"],
            last_used=_parse_timestamp(row["last_used"]),
            created_at=_parse_timestamp(row["created_at"]),
        )

    def _validate_or_raise(self, role_map: RoleMap, headers: Optional[Sequence[Any]]) -> None:
        result = self.validator.validate(role_map, headers)
        if not result.is_valid:
            raise ValidationFailed(result.errors, message="Invalid column mapping")

    def ensure_default(self) -> ColumnMapping:
        """Seed the default mapping when the registry has none."""
        with self.store.transaction("seed_default_mapping") as conn:
            row = conn.execute(
                "SELECT * FROM column_mappings WHERE is_default = 1 ORDER BY created_at LIMIT 1"
            ).fetchone()
            if row is not None:
                return self._row_to_mapping(row)
            mapping_id = str(uuid.uuid4())
            conn.execute(
                """INSERT INTO column_mappings (id, name, description, role_map_json, is_default)
                   VALUES (?, ?, ?, ?, 1)""",
                (
                    mapping_id,
                    ColumnRules.DEFAULT_MAPPING_NAME,
                    "L.p., Nr indeksu, Nazwa towaru, Ilość, JMZ",
                    json.dumps(ColumnRules.DEFAULT_ROLE_MAP),
                ),
            )
            logger.info(f"Seeded default column mapping {mapping_id}")
            row = conn.execute("SELECT * FROM column_mappings WHERE id = ?", (mapping_id,)).fetchone()
            return self._row_to_mapping(row)

    def save(self, name: str, role_map: RoleMap, description: Optional[str] = None,
             headers: Optional[List[str]] = None, is_default: bool = False) -> ColumnMapping:
        """Validate and store a new mapping."""
        if not name or not str(name).strip():
            raise ValidationFailed(["Mapping name is required"], message="Invalid column mapping")
        self._validate_or_raise(role_map, headers)

        mapping_id = str(uuid.uuid4())
        with self.store.transaction("save_mapping") as conn:
            if is_default:
                conn.execute("UPDATE column_mappings SET is_default = 0 WHERE is_default = 1")
            conn.execute(
                """INSERT INTO column_mappings
                   (id, name, description, role_map_json, headers_json, is_default)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    mapping_id,
                    str(name).strip(),
                    description,
                    json.dumps(dict(role_map)),
                    json.dumps(list(headers)) if headers is not None else None,
                    1 if is_default else 0,
                ),
            )
        logger.info(f"Saved column mapping '{name}' ({mapping_id}): {role_map}")
        return self.get(mapping_id)

    def get(self, mapping_id: str) -> ColumnMapping:
        with self.store.snapshot() as conn:
            row = conn.execute("SELECT * FROM column_mappings WHERE id = ?", (mapping_id,)).fetchone()
        if row is None:
            raise NotFound(_MAPPING_KIND, mapping_id)
        return self._row_to_mapping(row)

    def list(self) -> List[ColumnMapping]:
        """Default first, then most used, then most recently used."""
        with self.store.snapshot() as conn:
            rows = conn.execute(
                """SELECT * FROM column_mappings
                   ORDER BY is_default DESC,
                            usage_count DESC,
                            last_used IS NULL,
                            last_used DESC,
                            created_at ASC"""
            ).fetchall()
        return [self._row_to_mapping(r) for r in rows]

    def record_usage(self, mapping_id: str) -> ColumnMapping:
        """Atomic increment; never touches any other field."""
        with self.store.transaction("record_mapping_usage") as conn:
            cur = conn.execute(
                """UPDATE column_mappings
                   SET usage_count = usage_count + 1,
                       last_used = ?
                   WHERE id = ?""",
                (_now(), mapping_id),
            )
            if cur.rowcount == 0:
                raise NotFound(_MAPPING_KIND, mapping_id)
        return self.get(mapping_id)

    def update(self, mapping_id: str, name: Optional[str] = None, description: Optional[str] = None,
               role_map: Optional[RoleMap] = None, headers: Optional[List[str]] = None) -> ColumnMapping:
        """Update name/description/role map; a changed role map is re-validated."""
        current = self.get(mapping_id)

        if name is not None and not str(name).strip():
            raise ValidationFailed(["Mapping name is required"], message="Invalid column mapping")
        if role_map is not None:
            check_headers = headers if headers is not None else current.headers
            self._validate_or_raise(role_map, check_headers)

        assignments = []
        params: List[Any] = []
        if name is not None:
            assignments.append("name = ?")
            params.append(str(name).strip())
        if description is not None:
            assignments.append("description = ?")
            params.append(description)
        if role_map is not None:
            assignments.append("role_map_json = ?")
            params.append(json.dumps(dict(role_map)))
        if headers is not None:
            assignments.append("headers_json = ?")
            params.append(json.dumps(list(headers)))
        if not assignments:
            return current

        assignments.append("updated_at = ?")
        params.append(_now())
        params.append(mapping_id)
        with self.store.transaction("update_mapping") as conn:
            cur = conn.execute(f"UPDATE column_mappings SET {', '.join(assignments)} WHERE id = ?", params)
            if cur.rowcount == 0:
                raise NotFound(_MAPPING_KIND, mapping_id)
        logger.info(f"Updated column mapping {mapping_id}")
        return self.get(mapping_id)

    def delete(self, mapping_id: str) -> None:
        with self.store.transaction("delete_mapping") as conn:
            row = conn.execute("SELECT is_default FROM column_mappings WHERE id = ?", (mapping_id,)).fetchone()
            if row is None:
                raise NotFound(_MAPPING_KIND, mapping_id)
            if row["is_default"]:
                raise ProtectedResource(f"Default column mapping {mapping_id} cannot be deleted")
            conn.execute("DELETE FROM column_mappings WHERE id = ?", (mapping_id,))
        logger.info(f"Deleted column mapping {mapping_id}")
