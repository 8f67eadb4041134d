"""
Pydantic models for the Program → Folder → List → Course hierarchy.

These are the canonical entity shapes the engines operate on. Raw API or
database payloads are converted into them once, by
``coursetrack.services.hierarchy_store.normalize_hierarchy`` or by the
repository, so the engines never see loosely-shaped dictionaries.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ProgramType = Literal["program", "department"]
ProgramStatus = Literal["active", "inactive", "archived"]
PriorityType = Literal["low", "medium", "high", "critical"]
NodeKind = Literal["program", "folder", "list", "course"]
Direction = Literal["up", "down"]
BulkOperationKind = Literal[
    "assign_users",
    "update_due_dates",
    "change_priority",
    "workflow_transition",
    "archive_courses",
]

PRIORITIES = ("low", "medium", "high", "critical")
ARCHIVED_STATUS = "archived"

# Parent kind for every child kind; programs are roots.
PARENT_KIND: Dict[str, Optional[str]] = {
    "program": None,
    "folder": "program",
    "list": "folder",
    "course": "list",
}
CHILD_KIND: Dict[str, Optional[str]] = {
    "program": "folder",
    "folder": "list",
    "list": "course",
    "course": None,
}


class NodeRef(NamedTuple):
    """Address of a node in the hierarchy; ids are only unique per kind."""
    kind: str
    id: int

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


class TriState(str, Enum):
    UNCHECKED = "unchecked"
    CHECKED = "checked"
    INDETERMINATE = "indeterminate"


class Program(BaseModel):
    """Top-level organizational unit (client, department or project)."""
    id: int
    name: str = Field(..., min_length=1, max_length=200)
    type: ProgramType = "program"
    status: ProgramStatus = "active"
    description: Optional[str] = None


class Folder(BaseModel):
    """Second-level grouping within a Program."""
    id: int
    name: str = Field(..., min_length=1, max_length=200)
    program_id: int
    position: int = Field(0, ge=0)
    description: Optional[str] = None
    color: Optional[str] = None


class CourseList(BaseModel):
    """Third-level grouping within a Folder; the direct parent of Courses."""
    id: int
    name: str = Field(..., min_length=1, max_length=200)
    folder_id: int
    position: int = Field(0, ge=0)
    description: Optional[str] = None


class Course(BaseModel):
    """Leaf work-item tracked through production."""
    id: int
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    list_id: Optional[int] = None
    folder_id: Optional[int] = None
    program_id: Optional[int] = None
    priority: PriorityType = "medium"
    status: Optional[str] = None
    modality: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    deliverables: List[int] = Field(default_factory=list)
    assignee_ids: List[int] = Field(default_factory=list)
    owner_email: Optional[str] = None
    lead_email: Optional[str] = None

    @field_validator("deliverables", "assignee_ids")
    def dedupe_ids(cls, ids: List[int]):
        return sorted(set(ids))


class VocabularyOption(BaseModel):
    """Externally configured enumeration entry (status or priority)."""
    value: str = Field(..., min_length=1, max_length=50)
    label: str = Field(..., min_length=1, max_length=100)


class PositionUpdate(BaseModel):
    id: int
    position: int = Field(..., ge=0)


class ReorderCommand(BaseModel):
    """Single persistence command carrying the full new sibling order."""
    parent_kind: Literal["program", "folder"]
    parent_id: int
    orders: List[PositionUpdate]

    @property
    def child_kind(self) -> str:
        return CHILD_KIND[self.parent_kind]


class BulkOperationRequest(BaseModel):
    kind: BulkOperationKind
    course_ids: List[int] = Field(default_factory=list)
    params: Dict[str, Any] = Field(default_factory=dict)


class AppliedMutation(BaseModel):
    """One per-course change emitted by the bulk engine."""
    course_id: int
    changes: Dict[str, Any]


class CourseChangePreview(BaseModel):
    course_id: int
    title: str
    before: Dict[str, Any]
    after: Dict[str, Any]
    changed: bool


class BulkPreview(BaseModel):
    kind: BulkOperationKind
    total_courses: int
    changed_courses: int
    courses: List[CourseChangePreview]
    warnings: List[str] = Field(default_factory=list)


class BulkResult(BaseModel):
    """Outcome reported by the collaborator after applying mutations."""
    successful: List[int] = Field(default_factory=list)
    failed: List[Dict[str, Any]] = Field(default_factory=list)


class ImportResult(BaseModel):
    created_courses: List[int] = Field(default_factory=list)
    created_programs: List[int] = Field(default_factory=list)
    created_folders: List[int] = Field(default_factory=list)
    created_lists: List[int] = Field(default_factory=list)
    skipped_rows: List[int] = Field(default_factory=list)
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Current environment")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Check timestamp")
    uptime: Optional[float] = Field(None, description="Uptime in seconds")
