"""Bulk operations router: catalog, preview, execute and history."""
from __future__ import annotations
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.db.config import get_session
from coursetrack.models.hierarchy import BulkOperationRequest, BulkPreview, BulkResult
from coursetrack.repositories.hierarchy_repo import HierarchyRepository
from coursetrack.services.bulk_operations import BULK_OPERATIONS, BulkOperationEngine
from coursetrack.utils.feature_flags import require_feature

router = APIRouter(
    prefix="/bulk",
    tags=["Bulk Operations"],
    dependencies=[Depends(require_feature("bulk_operations"))],
)


class PreviewRequest(BulkOperationRequest):
    today: Optional[date] = None


class ExecuteResponse(BulkResult):
    operationId: int


async def _get_repo(
    session: AsyncSession = Depends(get_session),
) -> HierarchyRepository:
    return HierarchyRepository(session)


async def _engine(repo: HierarchyRepository) -> BulkOperationEngine:
    statuses = await repo.status_vocabulary()
    priorities = await repo.priority_vocabulary()
    return BulkOperationEngine(
        status_values=[s.value for s in statuses],
        priority_values=[p.value for p in priorities],
    )


@router.get("/operations")
async def list_operations():
    return BULK_OPERATIONS


@router.post("/preview", response_model=BulkPreview)
async def preview(payload: PreviewRequest, repo: HierarchyRepository = Depends(_get_repo)):
    engine = await _engine(repo)
    targets = await repo.get_courses(payload.course_ids)
    request = BulkOperationRequest(**payload.model_dump(exclude={"today"}))
    return engine.preview(request, targets, today=payload.today)


@router.post("/execute", response_model=ExecuteResponse)
async def execute(payload: BulkOperationRequest, repo: HierarchyRepository = Depends(_get_repo)):
    engine = await _engine(repo)
    targets = await repo.get_courses(payload.course_ids)
    mutations = engine.execute(payload, targets)
    result = await repo.apply_mutations(mutations)
    record = await repo.record_bulk_operation(payload, result)
    return ExecuteResponse(operationId=record.id, **result.model_dump())


@router.get("/history")
async def history(
    limit: int = Query(20, ge=1, le=100),
    repo: HierarchyRepository = Depends(_get_repo),
):
    return await repo.bulk_history(limit)
