from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
import logging

from stocktake.column_mapper.rules import ColumnRules
from stocktake.errors import ValidationFailed
from stocktake.orchestrator import InventoryOrchestrator
from api.dependencies import get_orchestrator

router = APIRouter(prefix="/api/excel/column-mapping", tags=["column-mapping"])
logger = logging.getLogger(__name__)

# --- Schemas ---

class MappingCreateRequest(BaseModel):
    action: str  # "detect" or "save"
    headers: List[Any] = []
    sample_rows: List[List[Any]] = []
    role_map: Optional[Dict[str, int]] = None
    name: Optional[str] = None
    description: Optional[str] = None
    is_default: bool = False

class MappingChangeRequest(BaseModel):
    id: str
    action: str  # "use" or "update"
    role_map: Optional[Dict[str, int]] = None
    name: Optional[str] = None
    description: Optional[str] = None
    headers: Optional[List[str]] = None

# --- Helper ---
def _format_label(role: str) -> str:
    """item_id -> Item Id"""
    return role.replace("_", " ").title()

# --- Endpoints ---

@router.get("")
async def list_mappings(orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    """Saved mappings, default first, then most used."""
    mappings = orchestrator.list_mappings()
    return {"mappings": [m.to_dict() for m in mappings]}


@router.get("/options")
async def get_role_options():
    """Valid roles for manual mapping; the frontend populates its dropdown from this."""
    options = []
    for role_def in sorted(ColumnRules.ROLES.values(), key=lambda r: r.priority):
        options.append({
            "id": role_def.id,
            "label": _format_label(role_def.id),
            "required": role_def.mandatory,
        })
    return options


@router.post("")
async def create_mapping(request: MappingCreateRequest,
                         orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    """
    action=detect: detect roles for headers (+ sample rows).
    action=save: validate and store a named role map.
    """
    if request.action == "detect":
        if not request.headers:
            raise ValidationFailed(["Headers are required for detection"], message="Invalid request")
        result = orchestrator.detect_columns(request.headers, request.sample_rows)
        validation = orchestrator.validate_mapping(result.role_map, request.headers)
        return {"detection": result.to_dict(), "validation": validation.to_dict()}

    if request.action == "save":
        errors = []
        if not request.name:
            errors.append("Mapping name is required")
        if request.role_map is None:
            errors.append("Role map is required")
        if errors:
            raise ValidationFailed(errors, message="Invalid request")
        mapping = orchestrator.save_mapping(
            request.name,
            request.role_map,
            description=request.description,
            headers=[str(h) for h in request.headers] if request.headers else None,
            is_default=request.is_default,
        )
        return JSONResponse(status_code=201, content={"mapping": mapping.to_dict()})

    raise ValidationFailed([f"Invalid action '{request.action}'. Use \"detect\" or \"save\""],
                           message="Invalid request")


@router.put("")
async def change_mapping(request: MappingChangeRequest,
                         orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    """action=use records a usage; action=update edits name/description/role map."""
    if request.action == "use":
        mapping = orchestrator.use_mapping(request.id)
        return {"mapping": mapping.to_dict()}

    if request.action == "update":
        mapping = orchestrator.update_mapping(
            request.id,
            name=request.name,
            description=request.description,
            role_map=request.role_map,
            headers=request.headers,
        )
        return {"mapping": mapping.to_dict()}

    raise ValidationFailed([f"Invalid action '{request.action}'. Use \"use\" or \"update\""],
                           message="Invalid request")


@router.delete("")
async def delete_mapping(id: str = Query(...),
                         orchestrator: InventoryOrchestrator = Depends(get_orchestrator)):
    orchestrator.delete_mapping(id)
    return {"status": "deleted", "id": id}
