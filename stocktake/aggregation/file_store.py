import decimal
import json
import logging
import sqlite3
import uuid
from typing import Any, List, Optional

from ..errors import NotFound, ValidationFailed
from ..models import LineItem, RoleMap, StoredFile, TemplateEntry, template_entry_from_dict
from ..storage.store import Store

logger = logging.getLogger(__name__)

_FILE_KIND = "File"


class FileStore:
    """Uploaded files with their line items and frozen structural templates."""

    def __init__(self, store: Store):
        self.store = store

    def _row_to_file(self, row: sqlite3.Row) -> StoredFile:
        return StoredFile(
            id=row["id"],
            file_name=row["file_name"],
            file_size=row["file_size"],
            row_count=row["row_count"],
            skipped_rows=row["skipped_rows"],
            uploaded_at=row["uploaded_at"],
            template=[template_entry_from_dict(e) for e in json.loads(row["template_json"] or "[]")],
            role_map=json.loads(row["role_map_json"]) if row["role_map_json"] else None,
            headers=json.loads(row["headers_json"]) if row["headers_json"] else None,
        )

    def _row_to_item(self, row: sqlite3.Row) -> LineItem:
        return LineItem(
            id=row["id"],
            file_id=row["file_id"],
            item_id=row["item_id"],
            name=row["name"],
            quantity=decimal.Decimal(row["quantity"]),
            unit=row["unit"],
            original_row_index=row["original_row_index"],
            line_number=row["line_number"],
        )

    def add_file(self, file_id: str, file_name: str, file_size: int, line_items: List[LineItem],
                 template: List[TemplateEntry], skipped_rows: int = 0, header_row_index: int = 0,
                 role_map: Optional[RoleMap] = None, headers: Optional[List[Any]] = None) -> List[LineItem]:
        """
        Store a file record and its line items.

        Line items get fresh ids and their `file_id`; the stored copies are returned.
        """
        stored_items = []
        with self.store.transaction("add_file") as conn:
            exists = conn.execute("SELECT 1 FROM uploaded_files WHERE id = ?", (file_id,)).fetchone()
            if exists:
                raise ValidationFailed([f"File id already exists: {file_id}"], message="Duplicate file")

            seq = conn.execute("SELECT COALESCE(MAX(upload_seq), 0) + 1 FROM uploaded_files").fetchone()[0]
            conn.execute(
                """INSERT INTO uploaded_files
                   (id, file_name, file_size, row_count, skipped_rows, header_row_index,
                    role_map_json, headers_json, template_json, upload_seq)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    file_id,
                    file_name,
                    int(file_size or 0),
                    len(line_items),
                    skipped_rows,
                    header_row_index,
                    json.dumps(dict(role_map)) if role_map is not None else None,
                    json.dumps([str(h) if h is not None else "" for h in headers]) if headers is not None else None,
                    json.dumps([entry.to_dict() for entry in template], ensure_ascii=False),
                    seq,
                ),
            )

            for item in line_items:
                stored = LineItem(
                    id=str(uuid.uuid4()),
                    file_id=file_id,
                    item_id=item.item_id,
                    name=item.name,
                    quantity=item.quantity,
                    unit=item.unit,
                    original_row_index=item.original_row_index,
                    line_number=item.line_number,
                )
                conn.execute(
                    """INSERT INTO line_items
                       (id, file_id, item_id, name, quantity, unit, original_row_index, line_number)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (stored.id, file_id, stored.item_id, stored.name, str(stored.quantity),
                     stored.unit, stored.original_row_index, stored.line_number),
                )
                stored_items.append(stored)

        logger.info(f"Stored file {file_id} ('{file_name}') with {len(stored_items)} line items")
        return stored_items

    def get_file(self, file_id: str, conn: Optional[sqlite3.Connection] = None) -> StoredFile:
        if conn is None:
            with self.store.snapshot() as snap:
                return self.get_file(file_id, conn=snap)
        row = conn.execute("SELECT * FROM uploaded_files WHERE id = ?", (file_id,)).fetchone()
        if row is None:
            raise NotFound(_FILE_KIND, file_id)
        return self._row_to_file(row)

    def list_files(self, conn: Optional[sqlite3.Connection] = None) -> List[StoredFile]:
        """Files in upload order."""
        if conn is None:
            with self.store.snapshot() as snap:
                return self.list_files(conn=snap)
        rows = conn.execute("SELECT * FROM uploaded_files ORDER BY upload_seq").fetchall()
        return [self._row_to_file(r) for r in rows]

    def list_line_items(self, file_id: Optional[str] = None,
                        conn: Optional[sqlite3.Connection] = None) -> List[LineItem]:
        """Line items ordered by file upload order, then original row position."""
        if conn is None:
            with self.store.snapshot() as snap:
                return self.list_line_items(file_id, conn=snap)
        sql = """SELECT li.* FROM line_items li
                 JOIN uploaded_files f ON f.id = li.file_id"""
        params = ()
        if file_id is not None:
            sql += " WHERE li.file_id = ?"
            params = (file_id,)
        sql += " ORDER BY f.upload_seq, li.original_row_index"
        return [self._row_to_item(r) for r in conn.execute(sql, params).fetchall()]

    def delete_file(self, file_id: str) -> int:
        """Delete a file record; its line items go with it. Returns the number of line items removed."""
        with self.store.transaction("delete_file") as conn:
            removed = conn.execute("SELECT COUNT(*) FROM line_items WHERE file_id = ?", (file_id,)).fetchone()[0]
            cur = conn.execute("DELETE FROM uploaded_files WHERE id = ?", (file_id,))
            if cur.rowcount == 0:
                raise NotFound(_FILE_KIND, file_id)
        logger.info(f"Deleted file {file_id} and {removed} line items")
        return removed
