"""Data management router: spreadsheet export, import template and import."""
from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.db.config import get_session
from coursetrack.models.hierarchy import ImportResult
from coursetrack.repositories.hierarchy_repo import HierarchyRepository
from coursetrack.services import spreadsheet
from coursetrack.services.reconciler import HEADERS, TEMPLATE_HEADERS, TabularReconciler
from coursetrack.utils.feature_flags import is_feature_enabled, require_feature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/data", tags=["Data Management"])

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


async def _get_repo(
    session: AsyncSession = Depends(get_session),
) -> HierarchyRepository:
    return HierarchyRepository(session)


async def _reconciler(repo: HierarchyRepository) -> TabularReconciler:
    store = await repo.fetch_hierarchy()
    return TabularReconciler(store, await repo.status_vocabulary())


def _attachment(content: bytes, filename: str, media_type: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _read_upload(file: UploadFile) -> List[dict]:
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Uploaded file is too large")
    return spreadsheet.read_table(file.filename, data)


@router.get("/export")
async def export_courses(
    format: Literal["xlsx", "csv"] = Query("xlsx"),
    list_ids: Optional[List[int]] = Query(None),
    repo: HierarchyRepository = Depends(_get_repo),
):
    if format == "csv" and not is_feature_enabled("csv_export"):
        raise HTTPException(status_code=404, detail="Feature 'csv_export' is not available")
    reconciler = await _reconciler(repo)
    courses = reconciler.courses_in_scope(list_ids) if list_ids else None
    rows = reconciler.to_rows(courses)
    stamp = datetime.utcnow().date().isoformat()
    logger.info("Exporting %d course row(s) as %s", len(rows), format)
    if format == "csv":
        return _attachment(
            spreadsheet.write_csv(rows, HEADERS),
            f"courses_export_{stamp}.csv",
            spreadsheet.CSV_MEDIA_TYPE,
        )
    return _attachment(
        spreadsheet.write_xlsx(rows, HEADERS, sheet_name="Courses"),
        f"courses_export_{stamp}.xlsx",
        spreadsheet.XLSX_MEDIA_TYPE,
    )


@router.get("/import/template")
async def import_template(repo: HierarchyRepository = Depends(_get_repo)):
    reconciler = await _reconciler(repo)
    content = spreadsheet.write_xlsx(
        reconciler.template_rows(),
        TEMPLATE_HEADERS,
        sheet_name="Courses",
        instructions=reconciler.import_instructions(),
    )
    return _attachment(content, "course_import_template.xlsx", spreadsheet.XLSX_MEDIA_TYPE)


@router.post(
    "/import/preview",
    dependencies=[Depends(require_feature("spreadsheet_import"))],
)
async def preview_import(
    file: UploadFile = File(...),
    repo: HierarchyRepository = Depends(_get_repo),
):
    rows = await _read_upload(file)
    reconciler = await _reconciler(repo)
    return reconciler.from_rows(rows).to_dict()


@router.post(
    "/import",
    response_model=ImportResult,
    dependencies=[Depends(require_feature("spreadsheet_import"))],
)
async def import_courses(
    file: UploadFile = File(...),
    auto_create: bool = Form(False),
    repo: HierarchyRepository = Depends(_get_repo),
):
    if auto_create and not is_feature_enabled("auto_create_hierarchy"):
        raise HTTPException(
            status_code=403, detail="Feature 'auto_create_hierarchy' is not available"
        )
    rows = await _read_upload(file)
    reconciler = await _reconciler(repo)
    plan = reconciler.from_rows(rows)
    return await repo.apply_import_plan(plan, auto_create=auto_create)
