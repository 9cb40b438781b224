"""Takeoff import routes.

Routes:
- POST /projects/{project_id}/imports/takeoff  - Structured JSON payload import
- POST /projects/{project_id}/imports/csv      - Upload and import a CSV/XLSX takeoff
- POST /projects/{project_id}/imports/preview  - Upload and preview without importing

Import routes always answer with an ImportResult body; the status code
reflects the failure family.
"""

from __future__ import annotations

from zipfile import BadZipFile

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff.config import get_config
from takeoff.db.connection import get_db
from takeoff.errors import TakeoffImportError
from takeoff.ingestion.metadata_analyzer import analyze_metadata, build_preview
from takeoff.ingestion.reader import read_takeoff
from takeoff.pipeline.orchestrator import TakeoffImportOrchestrator
from takeoff.pipeline.types import ErrorKind, ImportResult
from takeoff.web.dependencies import authorize_project, get_orchestrator

router = APIRouter(prefix="/projects/{project_id}/imports", tags=["imports"])

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.PAYLOAD: 400,
    ErrorKind.VALIDATION: 400,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.CONSISTENCY: 500,
    ErrorKind.PERSISTENCE: 500,
    ErrorKind.UNEXPECTED: 500,
}


def result_response(result: ImportResult) -> JSONResponse:
    status_code = 200 if result.success else STATUS_BY_KIND.get(result.error_kind, 500)
    return JSONResponse(status_code=status_code, content=result.to_dict())


@router.post("/takeoff")
async def import_takeoff(
    project_id: str,
    request: Request,
    authorized: bool = Depends(authorize_project),
    orchestrator: TakeoffImportOrchestrator = Depends(get_orchestrator),
):
    """Import a structured payload: projectId, rows, columnMappings, metadata."""
    body = await request.body()
    result = await orchestrator.run_payload(body, project_id=project_id, authorized=authorized)
    return result_response(result)


@router.post("/csv")
async def import_csv(
    project_id: str,
    file: UploadFile = File(...),
    authorized: bool = Depends(authorize_project),
    orchestrator: TakeoffImportOrchestrator = Depends(get_orchestrator),
):
    """Upload a takeoff file and import it (legacy raw-file path)."""
    content = await file.read()
    result = await orchestrator.import_file(
        project_id, content, file.filename or "upload.csv", authorized=authorized
    )
    return result_response(result)


@router.post("/preview")
async def preview_import(
    project_id: str,
    file: UploadFile = File(...),
    authorized: bool = Depends(authorize_project),
    db: AsyncSession = Depends(get_db),
):
    """Map columns, validate rows and check metadata without writing anything."""
    if not authorized:
        raise HTTPException(status_code=403, detail=f"Not authorized for project {project_id}")

    content = await file.read()
    file_name = file.filename or "upload.csv"
    limits = get_config().imports

    if len(content) > limits.max_file_size_bytes:
        max_mb = limits.max_file_size_bytes / (1024 * 1024)
        raise HTTPException(status_code=413, detail=f"File too large (max {max_mb:.2f}MB)")

    try:
        table = read_takeoff(content, file_name)
        preview = build_preview(table.headers, table.records, file_name, len(content), limits)
    except (ValueError, BadZipFile) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except TakeoffImportError as e:
        raise HTTPException(status_code=STATUS_BY_KIND[e.kind], detail=e.message) from e

    valid_rows = [row for _, row in preview.validation.valid_rows()]
    metadata = await analyze_metadata(db, project_id, valid_rows)

    body = preview.to_dict()
    body["metadata"] = metadata.to_dict()
    return body
