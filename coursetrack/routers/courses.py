"""Courses router providing CRUD endpoints for the hierarchy's leaf items."""
from __future__ import annotations
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field

from coursetrack.db.config import get_session
from coursetrack.models.hierarchy import Course, PriorityType
from coursetrack.repositories.hierarchy_repo import HierarchyRepository, NodeNotFoundError

router = APIRouter(prefix="/courses", tags=["Courses"])


class CourseCreate(BaseModel):
    list_id: int
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority: PriorityType = "medium"
    status: Optional[str] = Field(None, max_length=50)
    modality: Optional[str] = Field(None, max_length=50)
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    deliverables: List[int] = Field(default_factory=list)
    assignee_ids: List[int] = Field(default_factory=list)
    owner_email: Optional[str] = None
    lead_email: Optional[str] = None


class CourseUpdate(BaseModel):
    list_id: Optional[int] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[PriorityType] = None
    status: Optional[str] = Field(None, max_length=50)
    modality: Optional[str] = Field(None, max_length=50)
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    deliverables: Optional[List[int]] = None
    assignee_ids: Optional[List[int]] = None
    owner_email: Optional[str] = None
    lead_email: Optional[str] = None


class CourseDuplicate(BaseModel):
    list_id: Optional[int] = None


async def _get_repo(
    session: AsyncSession = Depends(get_session),
) -> HierarchyRepository:
    return HierarchyRepository(session)


@router.get("", response_model=List[Course])
async def list_courses(
    list_id: Optional[int] = Query(None),
    repo: HierarchyRepository = Depends(_get_repo),
):
    return await repo.list_courses(list_id)


@router.post("", response_model=Course, status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseCreate, repo: HierarchyRepository = Depends(_get_repo)
):
    fields = payload.model_dump(exclude={"list_id", "title"})
    try:
        return await repo.create_course(payload.list_id, payload.title, **fields)
    except NodeNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/{course_id}", response_model=Course)
async def get_course(course_id: int, repo: HierarchyRepository = Depends(_get_repo)):
    try:
        return await repo.get_course(course_id)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail="Course not found")


@router.patch("/{course_id}", response_model=Course)
async def update_course(
    course_id: int,
    payload: CourseUpdate,
    repo: HierarchyRepository = Depends(_get_repo),
):
    partial = payload.model_dump(exclude_unset=True)
    try:
        return await repo.update_course(course_id, partial)
    except NodeNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(course_id: int, repo: HierarchyRepository = Depends(_get_repo)):
    try:
        await repo.delete_course(course_id)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail="Course not found")
    return None


@router.post(
    "/{course_id}/duplicate",
    response_model=Course,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_course(
    course_id: int,
    payload: Optional[CourseDuplicate] = None,
    repo: HierarchyRepository = Depends(_get_repo),
):
    list_id = payload.list_id if payload else None
    try:
        return await repo.duplicate_course(course_id, list_id=list_id)
    except NodeNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
