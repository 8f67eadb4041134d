"""SQLAlchemy ORM models for the persisted hierarchy.

Separate from the pydantic models in hierarchy.py, which are what the engines
operate on. ``to_model()`` converts a record into its pydantic counterpart.
"""
from __future__ import annotations
from datetime import date, datetime
from typing import List, Optional
from sqlalchemy.orm import Mapped, mapped_column, declarative_base
from sqlalchemy import String, Date, DateTime, JSON, Text, ForeignKey, Integer

from coursetrack.models.hierarchy import (
    Course,
    CourseList,
    Folder,
    Program,
    VocabularyOption,
)

Base = declarative_base()


class ProgramRecord(Base):
    __tablename__ = "programs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), index=True)
    type: Mapped[str] = mapped_column(String(32), default="program")
    status: Mapped[str] = mapped_column(String(32), default="active")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def to_model(self) -> Program:
        return Program(
            id=self.id,
            name=self.name,
            type=self.type,
            status=self.status,
            description=self.description,
        )


class FolderRecord(Base):
    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    program_id: Mapped[int] = mapped_column(
        ForeignKey("programs.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(200))
    position: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def to_model(self) -> Folder:
        return Folder(
            id=self.id,
            name=self.name,
            program_id=self.program_id,
            position=self.position,
            description=self.description,
            color=self.color,
        )


class ListRecord(Base):
    __tablename__ = "lists"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    folder_id: Mapped[int] = mapped_column(
        ForeignKey("folders.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(200))
    position: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def to_model(self) -> CourseList:
        return CourseList(
            id=self.id,
            name=self.name,
            folder_id=self.folder_id,
            position=self.position,
            description=self.description,
        )


class CourseRecord(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    list_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("lists.id", ondelete="CASCADE"), index=True, nullable=True
    )
    folder_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    program_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), default="medium")
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    modality: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    deliverables: Mapped[list] = mapped_column(JSON, default=list)
    assignee_ids: Mapped[list] = mapped_column(JSON, default=list)
    owner_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    lead_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def to_model(self) -> Course:
        return Course(
            id=self.id,
            title=self.title,
            description=self.description,
            list_id=self.list_id,
            folder_id=self.folder_id,
            program_id=self.program_id,
            priority=self.priority,
            status=self.status,
            modality=self.modality,
            start_date=self.start_date,
            due_date=self.due_date,
            deliverables=list(self.deliverables or []),
            assignee_ids=list(self.assignee_ids or []),
            owner_email=self.owner_email,
            lead_email=self.lead_email,
        )


class StatusRecord(Base):
    """Workflow status vocabulary entry."""

    __tablename__ = "statuses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    value: Mapped[str] = mapped_column(String(50), unique=True)
    label: Mapped[str] = mapped_column(String(100))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    def to_model(self) -> VocabularyOption:
        return VocabularyOption(value=self.value, label=self.label)


class PriorityRecord(Base):
    __tablename__ = "priorities"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    value: Mapped[str] = mapped_column(String(50), unique=True)
    label: Mapped[str] = mapped_column(String(100))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    def to_model(self) -> VocabularyOption:
        return VocabularyOption(value=self.value, label=self.label)


class BulkOperationRecord(Base):
    """History entry for an executed bulk operation."""

    __tablename__ = "bulk_operations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(50), index=True)
    params: Mapped[dict] = mapped_column(JSON, default=dict)
    course_ids: Mapped[List[int]] = mapped_column(JSON, default=list)
    successful_count: Mapped[int] = mapped_column(Integer, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "params": self.params,
            "courseIds": self.course_ids,
            "successfulCount": self.successful_count,
            "failedCount": self.failed_count,
            "createdAt": self.created_at.isoformat(),
        }
