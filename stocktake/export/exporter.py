"""
Structure-Preserving Exporter.

Both views are built from one read snapshot, so an export reflects every
total committed before it started and none committed after.
"""

import logging
from typing import List

from ..aggregation.engine import AggregationEngine
from ..aggregation.file_store import FileStore
from ..models import (
    AggregatedExportEntry,
    AggregatedExportRow,
    ExportHeaderRow,
    HeaderEntry,
    ItemRef,
    RawExportRow,
)
from ..storage.store import Store
from ..utils.operation_monitor import OperationMonitor
from ..utils.text import normalize

logger = logging.getLogger(__name__)


class StructurePreservingExporter:

    def __init__(self, store: Store, engine: AggregationEngine, files: FileStore):
        self.store = store
        self.engine = engine
        self.files = files

    def export_raw(self) -> List[RawExportRow]:
        """Every stored line item, by file upload order then original row position."""
        with OperationMonitor("export_raw") as monitor:
            with self.store.snapshot() as conn:
                names = {f.id: f.file_name for f in self.files.list_files(conn=conn)}
                items = self.files.list_line_items(conn=conn)
            monitor.checkpoint("snapshot_read")

            rows = [
                RawExportRow(
                    line_number=i,
                    name=item.name,
                    quantity=item.quantity,
                    unit=item.unit,
                    file_id=item.file_id,
                    file_name=names.get(item.file_id, ""),
                    original_row_index=item.original_row_index,
                    item_id=item.item_id,
                )
                for i, item in enumerate(items, start=1)
            ]
            monitor.count("rows", len(rows))
        return rows

    def export_aggregated(self) -> List[AggregatedExportEntry]:
        """
        Merged listing shaped by the stored templates, carrying live totals.

        Templates are walked in upload order. Each banner label is emitted once
        and each aggregate at most once, numbered in emission order. Aggregates
        no template references are appended in creation order.
        """
        with OperationMonitor("export_aggregated") as monitor:
            with self.store.snapshot() as conn:
                stored_files = self.files.list_files(conn=conn)
                aggregates = self.engine.list_aggregates(conn=conn)
            monitor.checkpoint("snapshot_read")

            by_key = {a.key: a for a in aggregates}
            emitted_keys = set()
            emitted_labels = set()
            entries: List[AggregatedExportEntry] = []
            line_number = 0

            for stored in stored_files:
                for entry in stored.template:
                    if isinstance(entry, HeaderEntry):
                        label_key = normalize(entry.label)
                        if label_key in emitted_labels:
                            continue
                        emitted_labels.add(label_key)
                        entries.append(ExportHeaderRow(label=entry.label))
                    elif isinstance(entry, ItemRef):
                        aggregate = by_key.get(entry.key)
                        if aggregate is None or entry.key in emitted_keys:
                            continue
                        emitted_keys.add(entry.key)
                        line_number += 1
                        entries.append(AggregatedExportRow(
                            line_number=line_number,
                            name=aggregate.name,
                            quantity=aggregate.quantity,
                            unit=aggregate.unit,
                            item_id=aggregate.item_id,
                            aggregate_id=aggregate.id,
                        ))
            monitor.checkpoint("templates_replayed")

            unreferenced = 0
            for aggregate in aggregates:
                if aggregate.key in emitted_keys:
                    continue
                emitted_keys.add(aggregate.key)
                line_number += 1
                unreferenced += 1
                entries.append(AggregatedExportRow(
                    line_number=line_number,
                    name=aggregate.name,
                    quantity=aggregate.quantity,
                    unit=aggregate.unit,
                    item_id=aggregate.item_id,
                    aggregate_id=aggregate.id,
                ))

            monitor.count("items", line_number)
            monitor.count("banners", len(emitted_labels))
            monitor.count("unreferenced", unreferenced)
        return entries
