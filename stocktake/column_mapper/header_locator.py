import logging
from typing import Any, List, Optional, Sequence

from .rules import ColumnRules
from ..utils.text import cell_to_text, is_blank, is_numeric_cell

logger = logging.getLogger(__name__)


class HeaderRowLocator:
    """Finds the header row of a grid that may carry titles or notes above it."""

    MIN_MATCHES = 2
    MAX_NUMERIC_SHARE = 0.3
    WIDTH_TOLERANCE = 2

    def __init__(self, max_scan_rows: int = 50, rules: type = ColumnRules):
        self.max_scan_rows = max_scan_rows
        self.rules = rules
        self.logger = logging.getLogger(self.__class__.__name__)

    def locate(self, grid: Sequence[Sequence[Any]]) -> Optional[int]:
        """
        Return the 0-based index of the header row, or None.

        Rows need at least MIN_MATCHES vocabulary hits. Among those, more
        populated cells win, then more matches, then the topmost row.
        Without any such row, the widest text-heavy row is used instead.
        """
        best_row = None
        best_score = (0, 0)

        for row_idx, row in enumerate(grid[:self.max_scan_rows]):
            texts = [cell_to_text(cell) for cell in row if not is_blank(cell)]
            if not texts:
                continue
            matches = sum(1 for text in texts if self.rules.get_role_by_keyword(text))
            if matches < self.MIN_MATCHES:
                continue

            score = (len(texts), matches)
            # Strict > keeps the topmost row on ties
            if best_row is None or score > best_score:
                best_row = row_idx
                best_score = score

        if best_row is not None:
            self.logger.info(f"Header detection: Found header at row {best_row} "
                             f"with Score(text={best_score[0]}, matches={best_score[1]}).")
            return best_row

        self.logger.warning(f"Header detection: No row with {self.MIN_MATCHES}+ keyword matches. "
                            f"Trying structural fallback...")
        return self._locate_structural(grid)

    def _is_potential_header_row(self, cells: List[Any]) -> bool:
        """Rejects rows that are primarily numeric."""
        numeric_count = sum(1 for cell in cells if is_numeric_cell(cell))
        return (numeric_count / len(cells)) <= self.MAX_NUMERIC_SHARE

    def _locate_structural(self, grid: Sequence[Sequence[Any]]) -> Optional[int]:
        """Widest text-heavy row; cell count then topmost break ties."""
        candidates = []
        for row_idx, row in enumerate(grid[:self.max_scan_rows]):
            cells = [cell for cell in row if not is_blank(cell)]
            if not cells or not self._is_potential_header_row(cells):
                continue
            max_col = max(col for col, cell in enumerate(row) if not is_blank(cell)) + 1
            candidates.append({"row": row_idx, "max_col": max_col, "cell_count": len(cells)})

        if not candidates:
            self.logger.warning("Structural fallback: no candidates found.")
            return None

        max_width = max(c["max_col"] for c in candidates)
        wide = [c for c in candidates if c["max_col"] >= max_width - self.WIDTH_TOLERANCE]
        wide.sort(key=lambda c: (-c["cell_count"], c["row"]))

        best = wide[0]
        self.logger.info(f"Structural fallback: selected row {best['row']} "
                         f"(cells={best['cell_count']}, max_col={best['max_col']})")
        return best["row"]
