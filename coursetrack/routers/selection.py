"""Selection router.

Selection is client-held state: every call carries the currently selected
leaf ids and gets back the new set plus the derived tri-state of each node.
"""
from __future__ import annotations
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.db.config import get_session
from coursetrack.models.hierarchy import NodeRef
from coursetrack.repositories.hierarchy_repo import HierarchyRepository, NodeNotFoundError
from coursetrack.services.selection import SelectionEngine

router = APIRouter(prefix="/selection", tags=["Selection"])


class NodeAddress(BaseModel):
    kind: Literal["program", "folder", "list", "course"]
    id: int


class SelectionRequest(BaseModel):
    selected: List[int] = Field(default_factory=list)
    leafKind: Literal["course", "list"] = "course"
    programId: Optional[int] = None


class ToggleRequest(SelectionRequest):
    node: NodeAddress


class SelectionResponse(BaseModel):
    selected: List[int]
    selectedCourses: List[int]
    states: Dict[str, str]


async def _get_repo(
    session: AsyncSession = Depends(get_session),
) -> HierarchyRepository:
    return HierarchyRepository(session)


async def _engine(repo: HierarchyRepository, payload: SelectionRequest) -> SelectionEngine:
    try:
        store = await repo.fetch_hierarchy(payload.programId)
    except NodeNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return SelectionEngine(store, payload.leafKind)


def _respond(engine: SelectionEngine, selection) -> SelectionResponse:
    selection = engine.prune(selection)
    return SelectionResponse(
        selected=sorted(selection),
        selectedCourses=engine.selected_courses(selection),
        states={str(ref): state.value for ref, state in engine.states(selection).items()},
    )


@router.post("/toggle", response_model=SelectionResponse)
async def toggle(payload: ToggleRequest, repo: HierarchyRepository = Depends(_get_repo)):
    engine = await _engine(repo, payload)
    ref = NodeRef(payload.node.kind, payload.node.id)
    if ref not in engine.store:
        raise HTTPException(status_code=404, detail=f"Unknown node {ref}")
    return _respond(engine, engine.toggle(payload.selected, ref))


@router.post("/states", response_model=SelectionResponse)
async def states(payload: SelectionRequest, repo: HierarchyRepository = Depends(_get_repo)):
    engine = await _engine(repo, payload)
    return _respond(engine, payload.selected)
