import decimal
import io
import logging
from typing import Any, List, Sequence, Tuple

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from ..models import AggregatedExportEntry, ExportHeaderRow, RawExportRow

logger = logging.getLogger(__name__)

AGGREGATED_SHEET = "Aggregated Data"
RAW_SHEET = "Raw Data"

# (header, width)
AGGREGATED_COLUMNS: List[Tuple[str, float]] = [
    ("L.p.", 8),
    ("Nr indeksu", 15),
    ("Nazwa towaru", 40),
    ("Ilość", 12),
    ("JMZ", 10),
]
RAW_COLUMNS: List[Tuple[str, float]] = AGGREGATED_COLUMNS + [
    ("Plik źródłowy", 20),
    ("Pozycja w oryginalnym pliku", 15),
]

BANNER_FONT = Font(bold=True)
BANNER_FILL = PatternFill(fill_type="solid", start_color="E6E6E6", end_color="E6E6E6")
BANNER_ALIGNMENT = Alignment(horizontal="left")
HEADER_FONT = Font(bold=True)


def _excel_number(value: decimal.Decimal) -> Any:
    """Integral quantities are written as int, the rest as float."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _new_sheet(title: str, columns: Sequence[Tuple[str, float]]):
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = title
    worksheet.append([header for header, _ in columns])
    for c_idx, (_, width) in enumerate(columns, start=1):
        worksheet.cell(row=1, column=c_idx).font = HEADER_FONT
        worksheet.column_dimensions[get_column_letter(c_idx)].width = width
    worksheet.freeze_panes = "A2"
    return workbook, worksheet


def _to_bytes(workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def write_aggregated(entries: Sequence[AggregatedExportEntry]) -> bytes:
    """Render the aggregated view; banner rows carry the label in the first column."""
    workbook, worksheet = _new_sheet(AGGREGATED_SHEET, AGGREGATED_COLUMNS)

    for entry in entries:
        if isinstance(entry, ExportHeaderRow):
            worksheet.append([entry.label, "", "", "", ""])
            r_idx = worksheet.max_row
            for c_idx in range(1, len(AGGREGATED_COLUMNS) + 1):
                cell = worksheet.cell(row=r_idx, column=c_idx)
                cell.font = BANNER_FONT
                cell.fill = BANNER_FILL
                cell.alignment = BANNER_ALIGNMENT
        else:
            worksheet.append([
                entry.line_number,
                entry.item_id or "",
                entry.name,
                _excel_number(entry.quantity),
                entry.unit,
            ])

    data = _to_bytes(workbook)
    logger.info(f"Aggregated workbook written: {len(entries)} rows, {len(data)} bytes")
    if len(data) > 5 * 1024 * 1024:
        logger.warning(f"Large aggregated export: {len(data)} bytes")
    return data


def write_raw(rows: Sequence[RawExportRow]) -> bytes:
    workbook, worksheet = _new_sheet(RAW_SHEET, RAW_COLUMNS)

    for row in rows:
        worksheet.append([
            row.line_number,
            row.item_id or "",
            row.name,
            _excel_number(row.quantity),
            row.unit,
            row.file_name,
            row.original_row_index + 1,
        ])

    data = _to_bytes(workbook)
    logger.info(f"Raw workbook written: {len(rows)} rows, {len(data)} bytes")
    if len(data) > 5 * 1024 * 1024:
        logger.warning(f"Large raw export: {len(data)} bytes")
    return data
