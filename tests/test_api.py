import io

import openpyxl
import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_orchestrator
from api.main import XLSX_MEDIA_TYPE, app

from conftest import STANDARD_MAP


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def uploaded(client, make_workbook, standard_grid):
    """Upload the standard sheet and return the response body."""
    response = client.post(
        "/api/excel/upload",
        files={"file": ("spis.xlsx", make_workbook(standard_grid), XLSX_MEDIA_TYPE)},
    )
    assert response.status_code == 200
    return response.json()


def aggregates(client):
    return client.get("/api/excel/data").json()["aggregated"]


def test_health_echoes_trace_id(client):
    response = client.get("/api/health", headers={"X-Trace-Id": "req-42"})
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Trace-Id"] == "req-42"


def test_upload(uploaded):
    assert uploaded["status"] == "success"
    assert uploaded["file_name"] == "spis.xlsx"
    assert uploaded["line_item_count"] == 3
    assert uploaded["skipped_rows"] == 1
    assert uploaded["role_map"] == STANDARD_MAP
    assert [e["type"] for e in uploaded["structural_template"]] == ["header", "item", "item", "header", "item"]


def test_upload_with_explicit_role_map(client, make_workbook):
    content = make_workbook([["A", "B", "C"], ["kg", "Flour", 4]])
    response = client.post(
        "/api/excel/upload",
        files={"file": ("odd.xlsx", content, XLSX_MEDIA_TYPE)},
        data={"role_map": '{"unit": 0, "name": 1, "quantity": 2}'},
    )
    assert response.status_code == 200
    assert response.json()["line_item_count"] == 1


def test_upload_rejects_bad_role_map_json(client, make_workbook):
    response = client.post(
        "/api/excel/upload",
        files={"file": ("odd.xlsx", make_workbook([["A"]]), XLSX_MEDIA_TYPE)},
        data={"role_map": "{not json"},
    )
    assert response.status_code == 400
    assert response.json()["type"] == "ValidationFailed"


def test_upload_wrong_file_type(client):
    response = client.post("/api/excel/upload", files={"file": ("notes.txt", b"x" * 500, "text/plain")})
    assert response.status_code == 400
    assert response.json()["type"] == "ParseFailure"


def test_upload_undetectable_columns(client, make_workbook):
    content = make_workbook([["Foo", "Bar", "Baz"], ["x", "y", "z"]])
    response = client.post("/api/excel/upload", files={"file": ("odd.xlsx", content, XLSX_MEDIA_TYPE)})

    body = response.json()
    assert response.status_code == 422
    assert body["type"] == "DetectionFailed"
    assert len(body["details"]["suggestions"]) == 3


def test_preview(client, make_workbook, standard_grid):
    response = client.post(
        "/api/excel/preview",
        files={"file": ("spis.xlsx", make_workbook(standard_grid), XLSX_MEDIA_TYPE)},
    )
    body = response.json()
    assert response.status_code == 200
    assert body["detection"]["role_map"] == STANDARD_MAP
    assert client.get("/api/excel/files").json() == {"files": []}


def test_data_listing_and_filters(client, uploaded):
    data = client.get("/api/excel/data", params={"includeRaw": "true"}).json()
    assert [a["name"] for a in data["aggregated"]] == ["Flour", "Sugar", "Dough"]
    assert len(data["raw"]) == 3

    found = client.get("/api/excel/data", params={"search": "suga"}).json()["aggregated"]
    assert [a["name"] for a in found] == ["Sugar"]

    by_file = client.get("/api/excel/data", params={"fileId": uploaded["file_id"]}).json()["aggregated"]
    assert len(by_file) == 3


def test_edit_and_delete_aggregate(client, uploaded):
    flour = aggregates(client)[0]

    response = client.put("/api/excel/data", json={"id": flour["id"], "quantity": 42})
    assert response.status_code == 200
    assert response.json()["item"]["quantity"] == 42.0

    assert client.put("/api/excel/data", json={"id": flour["id"], "quantity": -1}).status_code == 400

    assert client.delete("/api/excel/data", params={"id": flour["id"]}).status_code == 200
    assert client.delete("/api/excel/data", params={"id": flour["id"]}).status_code == 404
    assert [a["name"] for a in aggregates(client)] == ["Sugar", "Dough"]


def test_manual_entry(client):
    response = client.post("/api/excel/manual", json={"name": "Yeast", "quantity": "2,5", "unit": "kg"})
    assert response.status_code == 201
    assert response.json()["item"]["quantity"] == 2.5
    assert response.json()["item"]["source_files"] == []

    bad = client.post("/api/excel/manual", json={"name": "", "quantity": 1, "unit": "kg"})
    assert bad.status_code == 400
    assert bad.json()["details"] == ["Name is required"]


def test_files_listing_and_removal(client, uploaded):
    files = client.get("/api/excel/files").json()["files"]
    assert [(f["id"], f["name"], f["row_count"]) for f in files] == [(uploaded["file_id"], "spis.xlsx", 3)]

    response = client.delete("/api/excel/files", params={"id": uploaded["file_id"]})
    assert response.json() == {
        "status": "deleted", "id": uploaded["file_id"], "updated": 0, "deleted": 3, "line_items": 3,
    }
    assert client.get("/api/excel/files").json() == {"files": []}
    assert aggregates(client) == []
    assert client.delete("/api/excel/files", params={"id": uploaded["file_id"]}).status_code == 404


def test_export(client, uploaded):
    response = client.get("/api/excel/export")
    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX_MEDIA_TYPE
    assert "aggregated_data.xlsx" in response.headers["content-disposition"]
    workbook = openpyxl.load_workbook(io.BytesIO(response.content))
    assert workbook.sheetnames == ["Aggregated Data"]

    raw = client.get("/api/excel/export", params={"type": "raw"})
    assert "raw_data.xlsx" in raw.headers["content-disposition"]

    assert client.get("/api/excel/export", params={"type": "pdf"}).status_code == 400


# --- Column mappings ---

def test_mapping_options(client):
    options = client.get("/api/excel/column-mapping/options").json()
    assert [o["id"] for o in options] == ["name", "quantity", "unit", "item_id", "line_number"]
    assert [o["required"] for o in options] == [True, True, True, False, False]


def test_mapping_detect(client):
    response = client.post("/api/excel/column-mapping", json={
        "action": "detect",
        "headers": ["Nazwa", "Ilość", "JM"],
        "sample_rows": [["Flour", 2, "kg"]],
    })
    body = response.json()
    assert body["detection"]["role_map"] == {"name": 0, "quantity": 1, "unit": 2}
    assert body["validation"] == {"is_valid": True, "errors": []}


def test_mapping_detect_failure_is_422(client):
    response = client.post("/api/excel/column-mapping", json={"action": "detect", "headers": ["Foo"]})
    assert response.status_code == 422


def test_mapping_lifecycle(client):
    [default] = client.get("/api/excel/column-mapping").json()["mappings"]
    assert default["is_default"]

    created = client.post("/api/excel/column-mapping", json={
        "action": "save", "name": "Short", "role_map": {"name": 0, "quantity": 1, "unit": 2},
    })
    assert created.status_code == 201
    mapping_id = created.json()["mapping"]["id"]

    used = client.put("/api/excel/column-mapping", json={"id": mapping_id, "action": "use"})
    assert used.json()["mapping"]["usage_count"] == 1

    renamed = client.put("/api/excel/column-mapping", json={"id": mapping_id, "action": "update", "name": "Shorter"})
    assert renamed.json()["mapping"]["name"] == "Shorter"

    assert client.delete("/api/excel/column-mapping", params={"id": default["id"]}).status_code == 403
    assert client.delete("/api/excel/column-mapping", params={"id": mapping_id}).status_code == 200
    assert client.delete("/api/excel/column-mapping", params={"id": mapping_id}).status_code == 404


def test_mapping_save_requires_name_and_map(client):
    response = client.post("/api/excel/column-mapping", json={"action": "save"})
    assert response.status_code == 400
    assert response.json()["details"] == ["Mapping name is required", "Role map is required"]


def test_mapping_unknown_action(client):
    assert client.post("/api/excel/column-mapping", json={"action": "guess"}).status_code == 400
    assert client.put("/api/excel/column-mapping", json={"id": "x", "action": "guess"}).status_code == 400
