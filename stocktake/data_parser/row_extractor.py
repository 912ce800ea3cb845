"""
Row Extractor - applies a resolved role map to a grid.

Every row below the header row becomes exactly one of:
- a line item (name, unit and a finite non-negative quantity present)
- a section banner (a non-item row naming a known section, or one short
  text cell on an otherwise empty row; recorded in the template only)
- a skipped row (blank, or malformed; counted, never raised)
"""

import logging
from typing import Any, List, Optional, Sequence

from ..column_mapper.rules import ROLE_ITEM_ID, ROLE_LINE_NUMBER, ROLE_NAME, ROLE_QUANTITY, ROLE_UNIT
from ..models import ExtractionResult, HeaderEntry, ItemRef, LineItem, RoleMap
from ..utils.text import cell_to_text, is_blank, is_numeric_cell, normalize, to_decimal

logger = logging.getLogger(__name__)


class RowExtractor:
    """Turns grid rows into line items and a structural template."""

    # Heuristic banners: one short text cell on an otherwise empty row
    BANNER_MAX_WORDS = 5

    def __init__(self, banner_labels: Optional[Sequence[str]] = None):
        self.banner_labels = [label.upper() for label in (banner_labels or [])]
        self._banner_keys = [normalize(label) for label in self.banner_labels]
        self.logger = logging.getLogger(self.__class__.__name__)

    def _cell(self, row: Sequence[Any], index: Optional[int]) -> Any:
        if index is None or index >= len(row):
            return None
        return row[index]

    def _known_banner(self, row: Sequence[Any]) -> Optional[str]:
        """Label of a known section banner in the first populated cell, if any."""
        first = next((cell for cell in row if not is_blank(cell)), None)
        if first is None or is_numeric_cell(first):
            return None
        first_key = normalize(first)
        for label_key in self._banner_keys:
            if label_key and label_key in first_key:
                return cell_to_text(first).upper()
        return None

    def _heuristic_banner(self, row: Sequence[Any]) -> Optional[str]:
        populated = [cell for cell in row if not is_blank(cell)]
        if len(populated) != 1:
            return None
        cell = populated[0]
        if not isinstance(cell, str) or is_numeric_cell(cell):
            return None
        text = cell_to_text(cell)
        if len(text.split()) > self.BANNER_MAX_WORDS:
            return None
        return text.upper()

    def _to_line_item(self, row: Sequence[Any], role_map: RoleMap, row_idx: int) -> Optional[LineItem]:
        name = cell_to_text(self._cell(row, role_map.get(ROLE_NAME)))
        unit = cell_to_text(self._cell(row, role_map.get(ROLE_UNIT))).lower()
        if not normalize(name) or not normalize(unit):
            return None

        quantity = to_decimal(self._cell(row, role_map.get(ROLE_QUANTITY)), context=f"at row {row_idx}")
        if quantity is None or quantity < 0:
            return None

        item_id = cell_to_text(self._cell(row, role_map.get(ROLE_ITEM_ID))) or None

        line_number = None
        raw_lp = to_decimal(self._cell(row, role_map.get(ROLE_LINE_NUMBER)))
        if raw_lp is not None and raw_lp == raw_lp.to_integral_value():
            line_number = int(raw_lp)

        return LineItem(
            name=name,
            quantity=quantity,
            unit=unit,
            original_row_index=row_idx,
            item_id=item_id,
            line_number=line_number,
        )

    def extract(self, grid: Sequence[Sequence[Any]], role_map: RoleMap, header_row_index: int = 0) -> ExtractionResult:
        """
        Extract line items from the rows after `header_row_index`.

        `original_row_index` is the 0-based position of the row in the grid.
        """
        prefix = "[RowExtractor.extract]"
        line_items: List[LineItem] = []
        template = []
        skipped = 0

        for row_idx in range(header_row_index + 1, len(grid)):
            row = grid[row_idx] or []
            if all(is_blank(cell) for cell in row):
                continue

            item = self._to_line_item(row, role_map, row_idx)
            if item is not None:
                line_items.append(item)
                template.append(ItemRef(name=item.name, unit=item.unit, item_id=item.item_id,
                                        original_row_index=row_idx))
                continue

            # Banner labels only apply to rows that are not items
            label = self._known_banner(row) or self._heuristic_banner(row)
            if label:
                template.append(HeaderEntry(label=label, original_row_index=row_idx))
                continue

            skipped += 1
            self.logger.debug(f"{prefix} Skipped malformed row {row_idx}: {list(row)}")

        result = ExtractionResult(
            line_items=line_items,
            template=template,
            skipped_rows=skipped,
            header_row_index=header_row_index,
        )
        self.logger.info(f"{prefix} Extracted {len(line_items)} items, "
                         f"{result.banner_count} banners, skipped {skipped} rows")
        return result
