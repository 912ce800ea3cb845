"""
Aggregation Engine - cross-file running totals per logical item.

State lives in two tables:
- `aggregated_items`: one row per aggregate key with its live quantity
- `contributions`: who contributed what (file + line item, or a manual entry)

`count` and `source_files` are always derived from `contributions`, so they
cannot drift from the stored quantity. Every mutation runs inside one
`Store.transaction()`, which serializes writers and makes each
read-increment-write per key atomic.
"""

import datetime
import decimal
import logging
import sqlite3
import uuid
from typing import Any, Dict, Iterable, List, Optional

from ..errors import NotFound, ValidationFailed
from ..models import AggregateKey, AggregatedItem, LineItem, make_aggregate_key
from ..storage.store import Store
from ..utils.text import cell_to_text, normalize, to_decimal

logger = logging.getLogger(__name__)

_AGGREGATE_KIND = "Aggregated item"


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None).isoformat(timespec="milliseconds")


def _key_columns(key: AggregateKey):
    item_key, name_key, unit_key = key
    return (item_key or "", name_key, unit_key)


class AggregationEngine:

    def __init__(self, store: Store):
        self.store = store

    # --- Reads ---

    def _load(self, conn: sqlite3.Connection, where: str = "", params: Iterable[Any] = ()) -> List[AggregatedItem]:
        params = tuple(params)
        rows = conn.execute(
            f"SELECT * FROM aggregated_items {where} ORDER BY created_seq", params
        ).fetchall()
        if not rows:
            return []

        counts: Dict[str, int] = {}
        sources: Dict[str, set] = {}
        # Only the contributions of the selected aggregates
        contributions = conn.execute(
            "SELECT aggregate_id, file_id FROM contributions "
            f"WHERE aggregate_id IN (SELECT id FROM aggregated_items {where})", params
        )
        for c in contributions:
            counts[c["aggregate_id"]] = counts.get(c["aggregate_id"], 0) + 1
            if c["file_id"] is not None:
                sources.setdefault(c["aggregate_id"], set()).add(c["file_id"])

        return [
            AggregatedItem(
                id=r["id"],
                item_id=r["item_id"],
                name=r["name"],
                unit=r["unit"],
                quantity=decimal.Decimal(r["quantity"]),
                count=counts.get(r["id"], 0),
                source_files=frozenset(sources.get(r["id"], set())),
            )
            for r in rows
        ]

    def get(self, aggregate_id: str) -> AggregatedItem:
        with self.store.snapshot() as conn:
            found = self._load(conn, "WHERE id = ?", (aggregate_id,))
        if not found:
            raise NotFound(_AGGREGATE_KIND, aggregate_id)
        return found[0]

    def find_by_key(self, key: AggregateKey) -> Optional[AggregatedItem]:
        with self.store.snapshot() as conn:
            found = self._load(conn, "WHERE item_key = ? AND name_key = ? AND unit_key = ?", _key_columns(key))
        return found[0] if found else None

    def list_aggregates(self, file_id: Optional[str] = None, query: Optional[str] = None,
                        conn: Optional[sqlite3.Connection] = None) -> List[AggregatedItem]:
        """
        Aggregates in creation order.

        Args:
            file_id: only aggregates this file currently contributes to.
            query: case- and diacritic-insensitive match on name or item id.
        """
        if conn is None:
            with self.store.snapshot() as snap:
                return self.list_aggregates(file_id, query, conn=snap)

        if file_id is not None:
            items = self._load(
                conn,
                "WHERE id IN (SELECT aggregate_id FROM contributions WHERE file_id = ?)",
                (file_id,),
            )
        else:
            items = self._load(conn)

        needle = normalize(query)
        if needle:
            items = [
                a for a in items
                if needle in normalize(a.name) or (a.item_id and needle in normalize(a.item_id))
            ]
        return items

    # --- Writes ---

    def _upsert(self, conn: sqlite3.Connection, key: AggregateKey, item_id: Optional[str], name: str,
                unit: str, quantity: decimal.Decimal, file_id: Optional[str],
                line_item_id: Optional[str]) -> str:
        """Fetch-and-add on one key plus its contribution record."""
        key_cols = _key_columns(key)
        row = conn.execute(
            "SELECT id, quantity FROM aggregated_items WHERE item_key = ? AND name_key = ? AND unit_key = ?",
            key_cols,
        ).fetchone()

        if row is None:
            aggregate_id = str(uuid.uuid4())
            seq = conn.execute("SELECT COALESCE(MAX(created_seq), 0) + 1 FROM aggregated_items").fetchone()[0]
            conn.execute(
                """INSERT INTO aggregated_items
                   (id, item_key, name_key, unit_key, item_id, name, unit, quantity, created_seq)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (aggregate_id, *key_cols, item_id, name, unit, str(quantity), seq),
            )
        else:
            aggregate_id = row["id"]
            new_quantity = decimal.Decimal(row["quantity"]) + quantity
            conn.execute(
                "UPDATE aggregated_items SET quantity = ?, updated_at = ? WHERE id = ?",
                (str(new_quantity), _now(), aggregate_id),
            )

        conn.execute(
            "INSERT INTO contributions (aggregate_id, file_id, line_item_id, quantity) VALUES (?, ?, ?, ?)",
            (aggregate_id, file_id, line_item_id, str(quantity)),
        )
        return aggregate_id

    def apply_file(self, file_id: str, line_items: List[LineItem]) -> int:
        """
        Fold every line item of a file into the totals, all or nothing.

        Returns the number of distinct aggregates touched.
        """
        touched = set()
        with self.store.transaction("apply_file") as conn:
            for item in line_items:
                aggregate_id = self._upsert(
                    conn, item.key, item.item_id, item.name, item.unit,
                    item.quantity, file_id, item.id,
                )
                touched.add(aggregate_id)
        logger.info(f"Applied file {file_id}: {len(line_items)} rows into {len(touched)} aggregates")
        return len(touched)

    def retract_file(self, file_id: str) -> Dict[str, int]:
        """
        Withdraw exactly the contributions recorded for `file_id`.

        Aggregates left without any contribution are deleted. A quantity that
        an edit pushed below the withdrawn amount is clamped at zero.
        """
        updated = 0
        deleted = 0
        with self.store.transaction("retract_file") as conn:
            withdrawn: Dict[str, decimal.Decimal] = {}
            for c in conn.execute("SELECT aggregate_id, quantity FROM contributions WHERE file_id = ?", (file_id,)):
                withdrawn[c["aggregate_id"]] = (withdrawn.get(c["aggregate_id"], decimal.Decimal(0))
                                                + decimal.Decimal(c["quantity"]))

            conn.execute("DELETE FROM contributions WHERE file_id = ?", (file_id,))

            for aggregate_id, amount in withdrawn.items():
                remaining = conn.execute(
                    "SELECT COUNT(*) FROM contributions WHERE aggregate_id = ?", (aggregate_id,)
                ).fetchone()[0]
                if remaining == 0:
                    conn.execute("DELETE FROM aggregated_items WHERE id = ?", (aggregate_id,))
                    deleted += 1
                    continue

                row = conn.execute("SELECT quantity FROM aggregated_items WHERE id = ?", (aggregate_id,)).fetchone()
                new_quantity = decimal.Decimal(row["quantity"]) - amount
                if new_quantity < 0:
                    logger.warning(f"Retracting file {file_id} drove aggregate {aggregate_id} "
                                   f"to {new_quantity}; clamped at 0")
                    new_quantity = decimal.Decimal(0)
                conn.execute(
                    "UPDATE aggregated_items SET quantity = ?, updated_at = ? WHERE id = ?",
                    (str(new_quantity), _now(), aggregate_id),
                )
                updated += 1

        logger.info(f"Retracted file {file_id}: {updated} aggregates updated, {deleted} deleted")
        return {"updated": updated, "deleted": deleted}

    def apply_manual_entry(self, name: Any, quantity: Any, unit: Any, item_id: Any = None) -> AggregatedItem:
        """Same upsert as a file row, but with no owning file."""
        name_text = cell_to_text(name)
        unit_text = cell_to_text(unit).lower()
        item_text = cell_to_text(item_id) or None
        amount = to_decimal(quantity, context="for manual entry")

        errors = []
        if not normalize(name_text):
            errors.append("Name is required")
        if not normalize(unit_text):
            errors.append("Unit is required")
        if amount is None:
            errors.append(f"Quantity must be a finite number, got {quantity!r}")
        elif amount < 0:
            errors.append(f"Quantity must not be negative, got {amount}")
        if errors:
            raise ValidationFailed(errors, message="Invalid manual entry")

        key = make_aggregate_key(item_text, name_text, unit_text)
        with self.store.transaction("apply_manual_entry") as conn:
            aggregate_id = self._upsert(conn, key, item_text, name_text, unit_text, amount, None, None)
        logger.info(f"Manual entry '{name_text}' {amount} {unit_text} -> aggregate {aggregate_id}")
        return self.get(aggregate_id)

    def edit_quantity(self, aggregate_id: str, new_quantity: Any) -> AggregatedItem:
        """Overwrite the quantity; count and source files are untouched."""
        amount = to_decimal(new_quantity, context=f"for aggregate {aggregate_id}")
        if amount is None:
            raise ValidationFailed([f"Quantity must be a finite number, got {new_quantity!r}"],
                                   message="Invalid quantity")
        if amount < 0:
            raise ValidationFailed([f"Quantity must not be negative, got {amount}"], message="Invalid quantity")

        with self.store.transaction("edit_quantity") as conn:
            cur = conn.execute(
                "UPDATE aggregated_items SET quantity = ?, updated_at = ? WHERE id = ?",
                (str(amount), _now(), aggregate_id),
            )
            if cur.rowcount == 0:
                raise NotFound(_AGGREGATE_KIND, aggregate_id)
        logger.info(f"Aggregate {aggregate_id} quantity set to {amount}")
        return self.get(aggregate_id)

    def delete_aggregate(self, aggregate_id: str) -> None:
        """Remove an aggregate and its contributions. Stored line items are kept."""
        with self.store.transaction("delete_aggregate") as conn:
            conn.execute("DELETE FROM contributions WHERE aggregate_id = ?", (aggregate_id,))
            cur = conn.execute("DELETE FROM aggregated_items WHERE id = ?", (aggregate_id,))
            if cur.rowcount == 0:
                raise NotFound(_AGGREGATE_KIND, aggregate_id)
        logger.info(f"Deleted aggregate {aggregate_id}")
