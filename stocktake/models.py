"""
Data model of the ingestion and aggregation engine.

Quantities are `decimal.Decimal` throughout so that retracting a file is an
exact inverse of applying it.
"""
import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from .utils.text import normalize

# Column role -> column index (0-based)
RoleMap = Dict[str, int]

# (normalized item id or None, normalized name, normalized unit)
AggregateKey = Tuple[Optional[str], str, str]


def make_aggregate_key(item_id: Optional[str], name: str, unit: str) -> AggregateKey:
    """Two rows with equal keys are the same logical item regardless of their file."""
    item_key = normalize(item_id) if item_id is not None else ""
    return (item_key or None, normalize(name), normalize(unit))


@dataclass
class LineItem:
    """One extracted row contributed by one file."""
    name: str
    quantity: Decimal
    unit: str
    original_row_index: int
    item_id: Optional[str] = None
    line_number: Optional[int] = None
    id: Optional[str] = None
    file_id: Optional[str] = None

    @property
    def key(self) -> AggregateKey:
        return make_aggregate_key(self.item_id, self.name, self.unit)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "file_id": self.file_id,
            "item_id": self.item_id,
            "name": self.name,
            "quantity": float(self.quantity),
            "unit": self.unit,
            "original_row_index": self.original_row_index,
            "line_number": self.line_number,
        }


@dataclass(frozen=True)
class HeaderEntry:
    """Section banner in a structural template."""
    label: str
    original_row_index: Optional[int] = None
    kind: str = field(default="header", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "label": self.label, "original_row_index": self.original_row_index}


@dataclass(frozen=True)
class ItemRef:
    """Placeholder pointing at an aggregate key. Never carries a quantity."""
    name: str
    unit: str
    item_id: Optional[str] = None
    original_row_index: Optional[int] = None
    kind: str = field(default="item", init=False)

    @property
    def key(self) -> AggregateKey:
        return make_aggregate_key(self.item_id, self.name, self.unit)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "item_id": self.item_id,
            "name": self.name,
            "unit": self.unit,
            "original_row_index": self.original_row_index,
        }


TemplateEntry = Union[HeaderEntry, ItemRef]


def template_entry_from_dict(data: Dict[str, Any]) -> TemplateEntry:
    if data.get("type") == "header":
        return HeaderEntry(label=data["label"], original_row_index=data.get("original_row_index"))
    return ItemRef(
        name=data["name"],
        unit=data["unit"],
        item_id=data.get("item_id"),
        original_row_index=data.get("original_row_index"),
    )


@dataclass
class ExtractionResult:
    line_items: List[LineItem]
    template: List[TemplateEntry]
    skipped_rows: int = 0
    header_row_index: int = 0

    @property
    def banner_count(self) -> int:
        return sum(1 for entry in self.template if isinstance(entry, HeaderEntry))


@dataclass(frozen=True)
class AggregatedItem:
    id: str
    name: str
    unit: str
    quantity: Decimal
    count: int
    source_files: FrozenSet[str]
    item_id: Optional[str] = None

    @property
    def key(self) -> AggregateKey:
        return make_aggregate_key(self.item_id, self.name, self.unit)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "name": self.name,
            "unit": self.unit,
            "quantity": float(self.quantity),
            "count": self.count,
            "source_files": sorted(self.source_files),
        }


@dataclass
class StoredFile:
    id: str
    file_name: str
    file_size: int
    row_count: int
    skipped_rows: int
    uploaded_at: str
    template: List[TemplateEntry] = field(default_factory=list)
    role_map: Optional[RoleMap] = None
    headers: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.file_name,
            "size": self.file_size,
            "row_count": self.row_count,
            "skipped_rows": self.skipped_rows,
            "upload_date": self.uploaded_at,
        }


@dataclass
class ColumnMapping:
    """A saved, reusable role map."""
    id: str
    name: str
    role_map: RoleMap
    description: Optional[str] = None
    headers: Optional[List[str]] = None
    is_default: bool = False
    usage_count: int = 0
    last_used: Optional[datetime.datetime] = None
    created_at: Optional[datetime.datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "role_map": dict(self.role_map),
            "headers": self.headers,
            "is_default": self.is_default,
            "usage_count": self.usage_count,
            "last_used": self.last_used.isoformat() if self.last_used else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class IngestResult:
    file_id: str
    line_item_count: int
    skipped_rows: int
    structural_template: List[TemplateEntry]
    role_map: RoleMap

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_id": self.file_id,
            "line_item_count": self.line_item_count,
            "skipped_rows": self.skipped_rows,
            "structural_template": [entry.to_dict() for entry in self.structural_template],
            "role_map": dict(self.role_map),
        }


# --- Export row sets ---

@dataclass(frozen=True)
class ExportHeaderRow:
    label: str
    kind: str = field(default="header", init=False)


@dataclass(frozen=True)
class AggregatedExportRow:
    line_number: int
    name: str
    quantity: Decimal
    unit: str
    item_id: Optional[str] = None
    aggregate_id: Optional[str] = None
    kind: str = field(default="item", init=False)


AggregatedExportEntry = Union[ExportHeaderRow, AggregatedExportRow]


@dataclass(frozen=True)
class RawExportRow:
    line_number: int
    name: str
    quantity: Decimal
    unit: str
    file_id: str
    file_name: str
    original_row_index: int
    item_id: Optional[str] = None
