"""Hierarchy router: programs, folders and lists.

Folder and list moves load a snapshot, let the ordering engine compute the
full new sibling order and persist it as one reorder command.
"""
from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.db.config import get_session
from coursetrack.models.hierarchy import (
    CourseList,
    Folder,
    NodeRef,
    Program,
    ProgramStatus,
    ProgramType,
    VocabularyOption,
)
from coursetrack.repositories.hierarchy_repo import (
    HierarchyRepository,
    NodeNotFoundError,
    ReorderConflictError,
)
from coursetrack.services import ordering
from coursetrack.utils.errors import BoundaryReached, ValidationError

router = APIRouter(tags=["Hierarchy"])


class ProgramCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: ProgramType = "program"
    status: ProgramStatus = "active"
    description: Optional[str] = None


class ProgramUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[ProgramType] = None
    status: Optional[ProgramStatus] = None
    description: Optional[str] = None


class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    color: Optional[str] = Field(None, max_length=32)


class FolderUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    color: Optional[str] = Field(None, max_length=32)


class ListCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class MoveRequest(BaseModel):
    direction: Literal["up", "down"]


class RelocateRequest(BaseModel):
    folderId: int
    position: Optional[int] = Field(None, ge=0)


class ReorderRequest(BaseModel):
    orderedIds: List[int] = Field(..., min_length=1)


class MoveResponse(BaseModel):
    moved: bool
    siblings: List[Dict[str, Any]]


async def _get_repo(
    session: AsyncSession = Depends(get_session),
) -> HierarchyRepository:
    return HierarchyRepository(session)


def _not_found(exc: NodeNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


@router.get("/hierarchy")
async def get_hierarchy(
    program_id: Optional[int] = Query(None),
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        store = await repo.fetch_hierarchy(program_id)
    except NodeNotFoundError as exc:
        raise _not_found(exc)
    return store.to_dict()


@router.get("/vocabularies/statuses", response_model=List[VocabularyOption])
async def list_statuses(repo: HierarchyRepository = Depends(_get_repo)):
    return await repo.status_vocabulary()


@router.get("/vocabularies/priorities", response_model=List[VocabularyOption])
async def list_priorities(repo: HierarchyRepository = Depends(_get_repo)):
    return await repo.priority_vocabulary()


# Programs --------------------------------------------------------------------
@router.get("/programs", response_model=List[Program])
async def list_programs(repo: HierarchyRepository = Depends(_get_repo)):
    store = await repo.fetch_hierarchy()
    return store.programs


@router.post("/programs", response_model=Program, status_code=status.HTTP_201_CREATED)
async def create_program(
    payload: ProgramCreate, repo: HierarchyRepository = Depends(_get_repo)
):
    return await repo.create_program(
        payload.name, type=payload.type, status=payload.status, description=payload.description
    )


@router.get("/programs/{program_id}", response_model=Program)
async def get_program(program_id: int, repo: HierarchyRepository = Depends(_get_repo)):
    try:
        return await repo.get_program(program_id)
    except NodeNotFoundError as exc:
        raise _not_found(exc)


@router.patch("/programs/{program_id}", response_model=Program)
async def update_program(
    program_id: int,
    payload: ProgramUpdate,
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        return await repo.update_program(program_id, **payload.model_dump(exclude_unset=True))
    except NodeNotFoundError as exc:
        raise _not_found(exc)


@router.delete("/programs/{program_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_program(program_id: int, repo: HierarchyRepository = Depends(_get_repo)):
    try:
        await repo.delete_program(program_id)
    except NodeNotFoundError as exc:
        raise _not_found(exc)
    return None


# Folders ---------------------------------------------------------------------
@router.get("/programs/{program_id}/folders", response_model=List[Folder])
async def list_folders(program_id: int, repo: HierarchyRepository = Depends(_get_repo)):
    try:
        store = await repo.fetch_hierarchy(program_id)
    except NodeNotFoundError as exc:
        raise _not_found(exc)
    return store.folders_of(program_id)


@router.post(
    "/programs/{program_id}/folders",
    response_model=Folder,
    status_code=status.HTTP_201_CREATED,
)
async def create_folder(
    program_id: int,
    payload: FolderCreate,
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        return await repo.create_folder(
            program_id, payload.name, description=payload.description, color=payload.color
        )
    except NodeNotFoundError as exc:
        raise _not_found(exc)


@router.patch("/folders/{folder_id}", response_model=Folder)
async def rename_folder(
    folder_id: int,
    payload: FolderUpdate,
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        return await repo.rename_folder(
            folder_id, payload.name, description=payload.description, color=payload.color
        )
    except NodeNotFoundError as exc:
        raise _not_found(exc)


@router.delete("/folders/{folder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_folder(folder_id: int, repo: HierarchyRepository = Depends(_get_repo)):
    try:
        await repo.delete_folder(folder_id)
    except NodeNotFoundError as exc:
        raise _not_found(exc)
    return None


async def _move(repo: HierarchyRepository, ref: NodeRef, program_id: int, direction: str) -> MoveResponse:
    store = await repo.fetch_hierarchy(program_id)
    siblings = store.siblings_of(ref)
    try:
        result = ordering.move(siblings, ref.id, direction)
    except BoundaryReached as exc:
        return MoveResponse(
            moved=False, siblings=[s.model_dump(mode="json") for s in exc.siblings]
        )
    ordered = await repo.reorder_siblings(result.command)
    return MoveResponse(moved=True, siblings=[s.model_dump(mode="json") for s in ordered])


async def _reorder(repo: HierarchyRepository, siblings, ordered_ids: List[int]):
    try:
        result = ordering.reorder(siblings, ordered_ids)
        return await repo.reorder_siblings(result.command)
    except (ValidationError, ReorderConflictError) as exc:
        message = exc.message if isinstance(exc, ValidationError) else str(exc)
        raise HTTPException(status_code=400, detail=message)


@router.post("/folders/{folder_id}/move", response_model=MoveResponse)
async def move_folder(
    folder_id: int,
    payload: MoveRequest,
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        folder = await repo.get_folder(folder_id)
        return await _move(repo, NodeRef("folder", folder_id), folder.program_id, payload.direction)
    except NodeNotFoundError as exc:
        raise _not_found(exc)


@router.post("/programs/{program_id}/folders/reorder", response_model=List[Folder])
async def reorder_folders(
    program_id: int,
    payload: ReorderRequest,
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        store = await repo.fetch_hierarchy(program_id)
    except NodeNotFoundError as exc:
        raise _not_found(exc)
    return await _reorder(repo, store.folders_of(program_id), payload.orderedIds)


# Lists -----------------------------------------------------------------------
@router.get("/folders/{folder_id}/lists", response_model=List[CourseList])
async def list_lists(folder_id: int, repo: HierarchyRepository = Depends(_get_repo)):
    try:
        folder = await repo.get_folder(folder_id)
        store = await repo.fetch_hierarchy(folder.program_id)
    except NodeNotFoundError as exc:
        raise _not_found(exc)
    return store.lists_of(folder_id)


@router.post(
    "/folders/{folder_id}/lists",
    response_model=CourseList,
    status_code=status.HTTP_201_CREATED,
)
async def create_list(
    folder_id: int,
    payload: ListCreate,
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        return await repo.create_list(folder_id, payload.name, description=payload.description)
    except NodeNotFoundError as exc:
        raise _not_found(exc)


@router.patch("/lists/{list_id}", response_model=CourseList)
async def rename_list(
    list_id: int,
    payload: ListCreate,
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        return await repo.rename_list(list_id, payload.name, description=payload.description)
    except NodeNotFoundError as exc:
        raise _not_found(exc)


@router.delete("/lists/{list_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_list(list_id: int, repo: HierarchyRepository = Depends(_get_repo)):
    try:
        await repo.delete_list(list_id)
    except NodeNotFoundError as exc:
        raise _not_found(exc)
    return None


@router.post("/lists/{list_id}/move", response_model=MoveResponse)
async def move_list(
    list_id: int,
    payload: MoveRequest,
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        course_list = await repo.get_list(list_id)
        folder = await repo.get_folder(course_list.folder_id)
        return await _move(repo, NodeRef("list", list_id), folder.program_id, payload.direction)
    except NodeNotFoundError as exc:
        raise _not_found(exc)


@router.post("/folders/{folder_id}/lists/reorder", response_model=List[CourseList])
async def reorder_lists(
    folder_id: int,
    payload: ReorderRequest,
    repo: HierarchyRepository = Depends(_get_repo),
):
    try:
        folder = await repo.get_folder(folder_id)
        store = await repo.fetch_hierarchy(folder.program_id)
    except NodeNotFoundError as exc:
        raise _not_found(exc)
    return await _reorder(repo, store.lists_of(folder_id), payload.orderedIds)


@router.post("/lists/{list_id}/relocate", response_model=CourseList)
async def relocate_list(
    list_id: int,
    payload: RelocateRequest,
    repo: HierarchyRepository = Depends(_get_repo),
):
    """Move a list into another folder (or to a new slot in its own)."""
    try:
        return await repo.move_list_to_folder(list_id, payload.folderId, payload.position)
    except NodeNotFoundError as exc:
        raise _not_found(exc)
