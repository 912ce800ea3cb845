import io
import os
import tempfile

# Keep log files of the test run out of the project tree
os.environ.setdefault("RUN_LOG_DIR", tempfile.mkdtemp(prefix="stocktake-logs-"))

import openpyxl
import pytest

from stocktake.orchestrator import InventoryOrchestrator
from stocktake.storage.store import Store

STANDARD_HEADERS = ["L.p.", "Nr indeksu", "Nazwa towaru", "Ilość", "JMZ"]
STANDARD_MAP = {"line_number": 0, "item_id": 1, "name": 2, "quantity": 3, "unit": 4}


def build_workbook(rows, title="Spis"):
    """Serialize rows into .xlsx bytes."""
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = title
    for row in rows:
        worksheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def store(tmp_path):
    """A fresh SQLite store per test."""
    s = Store(tmp_path / "test.db")
    yield s
    s.close()


@pytest.fixture
def orchestrator(store):
    return InventoryOrchestrator(store=store)


@pytest.fixture
def make_workbook():
    return build_workbook


@pytest.fixture
def standard_grid():
    """A stocktake sheet with a title, two sections and one malformed row."""
    return [
        ["Spis z natury 2024"],
        [],
        STANDARD_HEADERS,
        ["SUROWCE"],
        [1, "RAW001", "Flour", 100, "kg"],
        [2, "RAW002", "Sugar", 25.5, "KG"],
        [3, "RAW003", "Salt", "n/a", "kg"],
        ["PÓŁPRODUKTY"],
        [4, "SEMI01", "Dough", 12, "szt"],
    ]
