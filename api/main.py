from fastapi import FastAPI, UploadFile, File, Form, Depends, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
import json
import logging
from typing import Any, Dict, Optional, Union

from stocktake.errors import (
    StocktakeError,
    ParseFailure,
    DetectionFailed,
    ValidationFailed,
    EmptyInput,
    NotFound,
    ProtectedResource,
    StorageConflict,
)
from stocktake.logger_config import setup_logging
from stocktake.orchestrator import InventoryOrchestrator, EXPORT_AGGREGATED
from stocktake.utils.snitch import start_trace
from api.dependencies import get_orchestrator

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Stocktake")

# Include Routers
from api.routers import column_mapping
app.include_router(column_mapping.router)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Error class -> HTTP status. Order matters: first isinstance match wins.
ERROR_STATUS = [
    (DetectionFailed, 422),
    (NotFound, 404),
    (ProtectedResource, 403),
    (StorageConflict, 409),
    (ParseFailure, 400),
    (ValidationFailed, 400),
    (EmptyInput, 400),
]


@app.middleware("http")
async def trace_requests(request: Request, call_next):
    tid = start_trace(request.headers.get("X-Trace-Id"))
    response = await call_next(request)
    response.headers["X-Trace-Id"] = tid
    return response


@app.exception_handler(StocktakeError)
async def stocktake_error_handler(request: Request, exc: StocktakeError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content={
        "error": str(exc),
        "type": type(exc).__name__,
        "details": exc.to_details(),
    })


class ManualEntryRequest(BaseModel):
    name: str
    quantity: Union[float, str]
    unit: str
    item_id: Optional[str] = None

class EditQuantityRequest(BaseModel):
    id: str
    quantity: Union[float, str]


def _parse_role_map(raw: Optional[str]) -> Optional[Dict[str, int]]:
    """Role map sent as a JSON form field next to the uploaded file."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationFailed([f"role_map is not valid JSON: {e}"], message="Invalid request") from e
    if not isinstance(value, dict):
        raise ValidationFailed(["role_map must be a JSON object"], message="Invalid request")
    return value


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


@app.post("/api/excel/preview")
async def preview_excel(file: UploadFile = File(...),
                        orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    """Header row, sample rows and a column detection attempt. Nothing is stored."""
    content = await file.read()
    preview = orchestrator.preview_file(file.filename or "", content)
    return json.loads(json.dumps(preview, default=str))


@app.post("/api/excel/upload")
async def upload_excel(file: UploadFile = File(...),
                       mapping_id: Optional[str] = Form(None),
                       role_map: Optional[str] = Form(None),
                       orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    """
    Uploads an Excel file and folds its rows into the aggregated totals.

    Column roles come from `role_map` (JSON), else the saved mapping
    `mapping_id`, else automatic detection.
    """
    content = await file.read()
    result = orchestrator.ingest_upload(
        file.filename or "",
        content,
        role_map=_parse_role_map(role_map),
        mapping_id=mapping_id or None,
    )
    logger.info(f"Upload '{file.filename}' stored as {result.file_id}: {result.line_item_count} rows")
    return {
        "status": "success",
        "file_name": file.filename,
        **result.to_dict(),
        "message": "File processed successfully",
    }


@app.get("/api/excel/files")
async def list_files(orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    return {"files": [f.to_dict() for f in orchestrator.list_files()]}


@app.delete("/api/excel/files")
async def delete_file(id: str = Query(...),
                      orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    summary = orchestrator.remove_file(id)
    return {"status": "deleted", "id": id, **summary}


@app.get("/api/excel/data")
async def get_data(file_id: Optional[str] = Query(None, alias="fileId"),
                   search: Optional[str] = None,
                   include_raw: bool = Query(False, alias="includeRaw"),
                   orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    aggregates = orchestrator.list_aggregates(file_id=file_id, query=search)
    payload: Dict[str, Any] = {"aggregated": [a.to_dict() for a in aggregates]}
    if include_raw:
        payload["raw"] = [item.to_dict() for item in orchestrator.list_line_items(file_id)]
    return payload


@app.put("/api/excel/data")
async def edit_quantity(request: EditQuantityRequest,
                        orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    item = orchestrator.edit_aggregate(request.id, request.quantity)
    return {"item": item.to_dict()}


@app.delete("/api/excel/data")
async def delete_aggregate(id: str = Query(...),
                           orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    orchestrator.delete_aggregate(id)
    return {"status": "deleted", "id": id}


@app.post("/api/excel/manual")
async def add_manual_entry(request: ManualEntryRequest,
                           orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    item = orchestrator.add_manual_entry(request.name, request.quantity, request.unit, item_id=request.item_id)
    return JSONResponse(status_code=201, content={"item": item.to_dict()})


@app.get("/api/excel/export")
async def export_excel(type: str = Query(EXPORT_AGGREGATED),
                       orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    """Download the aggregated (default) or raw view as .xlsx."""
    data = orchestrator.export_workbook(type)
    filename = "aggregated_data.xlsx" if type == EXPORT_AGGREGATED else "raw_data.xlsx"
    return Response(
        content=data,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
