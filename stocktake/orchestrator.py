# stocktake/orchestrator.py
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from .aggregation.engine import AggregationEngine
from .aggregation.file_store import FileStore
from .column_mapper.detector import ColumnRoleDetector, DetectionResult
from .column_mapper.header_locator import HeaderRowLocator
from .column_mapper.registry import MappingRegistry
from .column_mapper.validator import MappingValidator, ValidationResult
from .data_parser.file_validation import validate_upload
from .data_parser.row_extractor import RowExtractor
from .data_parser.sheet_reader import read_grid
from .errors import DetectionFailed, EmptyInput, StorageConflict, ValidationFailed
from .export import workbook_writer
from .export.exporter import StructurePreservingExporter
from .models import (
    AggregatedExportEntry,
    AggregatedItem,
    ColumnMapping,
    IngestResult,
    LineItem,
    RawExportRow,
    RoleMap,
    StoredFile,
)
from .storage.store import Store
from .system_config import SystemConfig, sys_config
from .utils.operation_monitor import OperationMonitor
from .utils.snitch import snitch

logger = logging.getLogger(__name__)

T = TypeVar("T")

PREVIEW_SAMPLE_ROWS = 5
DETECTION_SAMPLE_ROWS = 20

EXPORT_AGGREGATED = "aggregated"
EXPORT_RAW = "raw"


class InventoryOrchestrator:
    """
    Entry point of the engine for any caller (HTTP layer, scripts, tests).

    Composes detection, validation, extraction, aggregation and export, and
    retries whole operations when the store reports a StorageConflict.
    """

    def __init__(self, store: Optional[Store] = None, config: Optional[SystemConfig] = None):
        self.config = config or sys_config
        self.store = store or Store(self.config.database_path, self.config.slow_transaction_ms)

        self.detector = ColumnRoleDetector()
        self.validator = MappingValidator()
        self.locator = HeaderRowLocator(max_scan_rows=self.config.header_scan_rows)
        self.extractor = RowExtractor(banner_labels=self.config.section_banners)

        self.registry = MappingRegistry(self.store, self.validator)
        self.engine = AggregationEngine(self.store)
        self.files = FileStore(self.store)
        self.exporter = StructurePreservingExporter(self.store, self.engine, self.files)

        self.registry.ensure_default()

    def close(self) -> None:
        self.store.close()

    def _with_retries(self, name: str, operation: Callable[[], T]) -> T:
        """Run a whole operation again from scratch on StorageConflict."""
        attempts = max(1, self.config.storage_retries)
        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except StorageConflict as e:
                if attempt == attempts:
                    logger.error(f"{name}: giving up after {attempts} attempts: {e}")
                    raise
                logger.warning(f"{name}: storage conflict on attempt {attempt}/{attempts}, retrying: {e}")
        raise StorageConflict(f"{name}: no attempt was made")

    # --- Column mapping ---

    @snitch
    def detect_columns(self, headers: Sequence[Any], sample_rows: Optional[Sequence[Sequence[Any]]] = None) -> DetectionResult:
        return self.detector.detect(headers, sample_rows)

    @snitch
    def validate_mapping(self, role_map: RoleMap, headers: Optional[Sequence[Any]] = None) -> ValidationResult:
        return self.validator.validate(role_map, headers)

    @snitch
    def save_mapping(self, name: str, role_map: RoleMap, description: Optional[str] = None,
                     headers: Optional[List[str]] = None, is_default: bool = False) -> ColumnMapping:
        return self._with_retries("save_mapping", lambda: self.registry.save(
            name, role_map, description=description, headers=headers, is_default=is_default))

    @snitch
    def list_mappings(self) -> List[ColumnMapping]:
        return self.registry.list()

    @snitch
    def get_mapping(self, mapping_id: str) -> ColumnMapping:
        return self.registry.get(mapping_id)

    @snitch
    def use_mapping(self, mapping_id: str) -> ColumnMapping:
        return self._with_retries("use_mapping", lambda: self.registry.record_usage(mapping_id))

    @snitch
    def update_mapping(self, mapping_id: str, name: Optional[str] = None, description: Optional[str] = None,
                       role_map: Optional[RoleMap] = None, headers: Optional[List[str]] = None) -> ColumnMapping:
        return self._with_retries("update_mapping", lambda: self.registry.update(
            mapping_id, name=name, description=description, role_map=role_map, headers=headers))

    @snitch
    def delete_mapping(self, mapping_id: str) -> None:
        self._with_retries("delete_mapping", lambda: self.registry.delete(mapping_id))

    # --- Ingestion ---

    def _header_row(self, grid: Sequence[Sequence[Any]]) -> int:
        located = self.locator.locate(grid)
        if located is None:
            logger.warning("No header row found, assuming the first row")
            return 0
        return located

    @snitch
    def preview_file(self, file_name: str, content: bytes, sheet_name: Optional[str] = None) -> Dict[str, Any]:
        """Header row, sample rows and a detection attempt. Nothing is persisted."""
        check = validate_upload(file_name, content, self.config.max_upload_bytes)
        grid = read_grid(content, sheet_name)
        if not grid:
            raise EmptyInput("The worksheet is empty")

        header_row = self._header_row(grid)
        headers = list(grid[header_row])
        samples = [list(r) for r in grid[header_row + 1:header_row + 1 + DETECTION_SAMPLE_ROWS] if r]

        preview: Dict[str, Any] = {
            "file_name": check.file_name,
            "file_size": check.file_size,
            "warnings": check.warnings,
            "header_row_index": header_row,
            "headers": headers,
            "sample_rows": samples[:PREVIEW_SAMPLE_ROWS],
            "total_rows": len(grid),
            "detection": None,
            "detection_error": None,
        }
        try:
            preview["detection"] = self.detector.detect(headers, samples).to_dict()
        except DetectionFailed as e:
            # The caller offers manual mapping from the suggestions
            preview["detection_error"] = {"message": str(e), **e.to_details()}
        return preview

    @snitch
    def ingest_file(self, file_id: str, grid: Sequence[Sequence[Any]], role_map: RoleMap,
                    file_name: str = "", file_size: int = 0,
                    header_row_index: Optional[int] = None) -> IngestResult:
        """
        Extract a parsed grid and fold it into the totals as one unit.

        Raises:
            ValidationFailed: invalid role map or duplicate file id.
            EmptyInput: no usable rows.
            StorageConflict: the store kept failing after all retries.
        """
        with OperationMonitor("ingest_file") as monitor:
            if header_row_index is None:
                header_row_index = self._header_row(grid) if grid else 0
            headers = list(grid[header_row_index]) if header_row_index < len(grid) else []
            # Rows are trimmed, so the widest row bounds the valid column indices
            width = max((len(row) for row in grid), default=0)
            padded_headers = headers + [None] * (width - len(headers))

            validation = self.validator.validate(role_map, padded_headers if width else None)
            if not validation.is_valid:
                raise ValidationFailed(validation.errors, message="Invalid column mapping")
            monitor.checkpoint("mapping_validated")

            extraction = self.extractor.extract(grid, role_map, header_row_index)
            monitor.checkpoint("rows_extracted")
            monitor.count("line_items", len(extraction.line_items))
            monitor.count("skipped_rows", extraction.skipped_rows)
            if extraction.skipped_rows:
                monitor.log_warning(f"{extraction.skipped_rows} malformed rows skipped")

            if not extraction.line_items:
                raise EmptyInput(f"No usable rows found in '{file_name or file_id}'",
                                 skipped_rows=extraction.skipped_rows)

            def _persist() -> None:
                with self.store.transaction("ingest_file"):
                    stored = self.files.add_file(
                        file_id, file_name or file_id, file_size,
                        extraction.line_items, extraction.template,
                        skipped_rows=extraction.skipped_rows,
                        header_row_index=header_row_index,
                        role_map=role_map,
                        headers=headers,
                    )
                    self.engine.apply_file(file_id, stored)

            self._with_retries("ingest_file", _persist)
            monitor.checkpoint("aggregated")

        return IngestResult(
            file_id=file_id,
            line_item_count=len(extraction.line_items),
            skipped_rows=extraction.skipped_rows,
            structural_template=extraction.template,
            role_map=dict(role_map),
        )

    @snitch
    def ingest_upload(self, file_name: str, content: bytes, role_map: Optional[RoleMap] = None,
                      mapping_id: Optional[str] = None, sheet_name: Optional[str] = None) -> IngestResult:
        """
        Validate, parse and ingest uploaded workbook bytes.

        The role map comes from, in order: the explicit `role_map`, the saved
        mapping `mapping_id`, or detection. A saved mapping's usage is only
        recorded once the file has been ingested.
        """
        check = validate_upload(file_name, content, self.config.max_upload_bytes)
        grid = read_grid(content, sheet_name)
        if not grid:
            raise EmptyInput(f"The worksheet in '{check.file_name}' is empty")

        header_row = self._header_row(grid)
        saved_mapping_id = None
        if role_map is None and mapping_id is not None:
            role_map = self.registry.get(mapping_id).role_map
            saved_mapping_id = mapping_id
        if role_map is None:
            samples = grid[header_row + 1:header_row + 1 + DETECTION_SAMPLE_ROWS]
            role_map = self.detector.detect(grid[header_row], samples).role_map

        result = self.ingest_file(
            str(uuid.uuid4()), grid, role_map,
            file_name=check.file_name,
            file_size=check.file_size,
            header_row_index=header_row,
        )
        if saved_mapping_id is not None:
            self.use_mapping(saved_mapping_id)
        return result

    @snitch
    def remove_file(self, file_id: str) -> Dict[str, int]:
        """Retract the file's contributions, then delete its line items and template."""
        def _remove() -> Dict[str, int]:
            with self.store.transaction("remove_file"):
                self.files.get_file(file_id)
                summary = self.engine.retract_file(file_id)
                summary["line_items"] = self.files.delete_file(file_id)
            return summary

        with OperationMonitor("remove_file") as monitor:
            summary = self._with_retries("remove_file", _remove)
            for key, value in summary.items():
                monitor.count(key, value)
        return summary

    # --- Listings ---

    @snitch
    def list_files(self) -> List[StoredFile]:
        return self.files.list_files()

    @snitch
    def list_aggregates(self, file_id: Optional[str] = None, query: Optional[str] = None) -> List[AggregatedItem]:
        return self.engine.list_aggregates(file_id=file_id, query=query)

    @snitch
    def list_line_items(self, file_id: Optional[str] = None) -> List[LineItem]:
        return self.files.list_line_items(file_id)

    # --- Manual corrections ---

    @snitch
    def add_manual_entry(self, name: Any, quantity: Any, unit: Any, item_id: Any = None) -> AggregatedItem:
        return self._with_retries("add_manual_entry",
                                  lambda: self.engine.apply_manual_entry(name, quantity, unit, item_id=item_id))

    @snitch
    def edit_aggregate(self, aggregate_id: str, quantity: Any) -> AggregatedItem:
        return self._with_retries("edit_aggregate", lambda: self.engine.edit_quantity(aggregate_id, quantity))

    @snitch
    def delete_aggregate(self, aggregate_id: str) -> None:
        self._with_retries("delete_aggregate", lambda: self.engine.delete_aggregate(aggregate_id))

    # --- Export ---

    @snitch
    def export_raw(self) -> List[RawExportRow]:
        return self.exporter.export_raw()

    @snitch
    def export_aggregated(self) -> List[AggregatedExportEntry]:
        return self.exporter.export_aggregated()

    @snitch
    def export_workbook(self, kind: str = EXPORT_AGGREGATED) -> bytes:
        """Either export view rendered as .xlsx bytes."""
        if kind == EXPORT_AGGREGATED:
            return workbook_writer.write_aggregated(self.exporter.export_aggregated())
        if kind == EXPORT_RAW:
            return workbook_writer.write_raw(self.exporter.export_raw())
        raise ValidationFailed([f"Unknown export type '{kind}'. Use '{EXPORT_AGGREGATED}' or '{EXPORT_RAW}'"],
                               message="Invalid export request")
