import io
import logging
import zipfile
from typing import Any, List, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import ParseFailure

logger = logging.getLogger(__name__)

Grid = List[List[Any]]


def _trim_row(values) -> List[Any]:
    row = list(values)
    while row and (row[-1] is None or (isinstance(row[-1], str) and not row[-1].strip())):
        row.pop()
    return row


def read_grid(content: bytes, sheet_name: Optional[str] = None) -> Grid:
    """
    Turn workbook bytes into a 2-D list of cell values.

    Formulas are read as their cached values. Trailing empty cells are
    trimmed per row; fully empty rows are kept as [] so row positions
    match the original sheet.

    Raises:
        ParseFailure: the bytes are not a readable workbook, or the
            requested sheet does not exist.
    """
    prefix = "[read_grid]"
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        logger.error(f"{prefix} Could not open workbook: {type(e).__name__}: {e}")
        raise ParseFailure(f"Could not read the workbook: {e}") from e

    try:
        if sheet_name is not None:
            if sheet_name not in workbook.sheetnames:
                raise ParseFailure(f"Sheet '{sheet_name}' not found. Available: {workbook.sheetnames}")
            worksheet = workbook[sheet_name]
        else:
            worksheet = workbook.worksheets[0] if workbook.worksheets else None
            if worksheet is None:
                raise ParseFailure("The workbook contains no worksheets")

        grid = [_trim_row(values) for values in worksheet.iter_rows(values_only=True)]
    finally:
        workbook.close()

    # Drop trailing empty rows
    while grid and not grid[-1]:
        grid.pop()

    logger.info(f"{prefix} Read {len(grid)} rows from sheet '{worksheet.title}'")
    return grid
