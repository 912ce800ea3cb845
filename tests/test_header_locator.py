from stocktake.column_mapper.header_locator import HeaderRowLocator

from conftest import STANDARD_HEADERS


def test_header_below_title_rows(standard_grid):
    assert HeaderRowLocator().locate(standard_grid) == 2


def test_keyword_row_with_more_cells_wins():
    grid = [
        ["Nazwa", "Ilość"],
        STANDARD_HEADERS,
        [1, "A1", "Flour", 3, "kg"],
    ]
    assert HeaderRowLocator().locate(grid) == 1


def test_topmost_row_wins_ties():
    grid = [STANDARD_HEADERS, STANDARD_HEADERS, [1, "A1", "Flour", 3, "kg"]]
    assert HeaderRowLocator().locate(grid) == 0


def test_structural_fallback_picks_widest_text_row():
    """Without vocabulary hits, the widest mostly-text row is the header."""
    grid = [
        ["Report"],
        ["Alpha", "Beta", "Gamma"],
        ["x", 1, 2],
        ["y", 3, 4],
    ]
    assert HeaderRowLocator().locate(grid) == 1


def test_rows_beyond_scan_limit_are_ignored():
    grid = [["title"]] * 5 + [STANDARD_HEADERS]
    assert HeaderRowLocator(max_scan_rows=3).locate(grid) == 0


def test_empty_grid():
    assert HeaderRowLocator().locate([]) is None
    assert HeaderRowLocator().locate([[], [None, ""]]) is None
