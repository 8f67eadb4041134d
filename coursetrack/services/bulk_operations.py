"""
Bulk operations over a set of selected courses.

The engine validates a ``BulkOperationRequest`` completely before emitting
anything, then expands it into one ``AppliedMutation`` per target course.
It performs no I/O and keeps no state: retry and rollback policy belongs to
whoever applies the mutations.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from coursetrack.models.hierarchy import (
    ARCHIVED_STATUS,
    PRIORITIES,
    AppliedMutation,
    BulkOperationRequest,
    BulkPreview,
    Course,
    CourseChangePreview,
)
from coursetrack.utils.errors import ValidationError
from coursetrack.utils.validation import parse_iso_date, require_member, validate_against_schema

logger = logging.getLogger(__name__)

MAX_BULK_COURSES = 100
LARGE_OPERATION_THRESHOLD = 50
DUE_SOON_DAYS = 7

BULK_OPERATIONS = [
    {
        "id": "assign_users",
        "name": "Assign Users",
        "description": "Assign selected courses to specific users",
    },
    {
        "id": "update_due_dates",
        "name": "Update Due Dates",
        "description": "Set or modify due dates for multiple courses",
    },
    {
        "id": "change_priority",
        "name": "Change Priority",
        "description": "Update priority levels for selected courses",
    },
    {
        "id": "workflow_transition",
        "name": "Workflow Transition",
        "description": "Move courses to another workflow status",
    },
    {
        "id": "archive_courses",
        "name": "Archive Courses",
        "description": "Archive completed or obsolete courses",
    },
]

# Parameter shapes per operation kind (JSON Schema draft 7).
OPERATION_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "assign_users": {
        "type": "object",
        "properties": {
            "userIds": {
                "type": "array",
                "items": {"type": "integer", "minimum": 1},
                "minItems": 1,
            }
        },
        "required": ["userIds"],
    },
    "update_due_dates": {
        "type": "object",
        "properties": {"dueDate": {"type": "string", "minLength": 1}},
        "required": ["dueDate"],
    },
    "change_priority": {
        "type": "object",
        "properties": {"priority": {"type": "string", "minLength": 1}},
        "required": ["priority"],
    },
    "workflow_transition": {
        "type": "object",
        "properties": {"status": {"type": "string", "minLength": 1}},
        "required": ["status"],
    },
    "archive_courses": {"type": "object"},
}


class BulkOperationEngine:
    """Validates and expands bulk requests against fixed vocabularies."""

    def __init__(
        self,
        status_values: Iterable[str],
        priority_values: Iterable[str] = PRIORITIES,
    ):
        self.status_values = list(status_values)
        self.priority_values = list(priority_values)

    # Validation ------------------------------------------------------------
    def _validate_params(self, request: BulkOperationRequest) -> Dict[str, Any]:
        params = dict(request.params)
        if isinstance(params.get("dueDate"), date):
            params["dueDate"] = params["dueDate"].isoformat()
        validate_against_schema(params, OPERATION_SCHEMAS[request.kind], "params")

        if request.kind == "update_due_dates":
            params["dueDate"] = parse_iso_date(params["dueDate"], "params.dueDate")
        elif request.kind == "change_priority":
            require_member(params["priority"], self.priority_values, "params.priority", "priority")
        elif request.kind == "workflow_transition":
            require_member(params["status"], self.status_values, "params.status", "status")
        return params

    def _resolve_targets(
        self, request: BulkOperationRequest, target_courses: Sequence[Course]
    ) -> List[Course]:
        if not request.course_ids or not target_courses:
            raise ValidationError("course_ids", "At least one course must be selected")
        requested = set(request.course_ids)
        if len(requested) > MAX_BULK_COURSES:
            raise ValidationError(
                "course_ids",
                f"Too many courses selected. Maximum {MAX_BULK_COURSES} courses allowed per operation.",
            )
        by_id = {course.id: course for course in target_courses if course.id in requested}
        missing = sorted(requested - set(by_id))
        if missing:
            raise ValidationError("course_ids", f"Unknown course ids: {missing}")
        return [by_id[course_id] for course_id in sorted(by_id)]

    def validate(
        self, request: BulkOperationRequest, target_courses: Sequence[Course]
    ) -> Tuple[List[Course], Dict[str, Any]]:
        """Check the whole request; returns the targets sorted by id and the parsed params."""
        targets = self._resolve_targets(request, target_courses)
        return targets, self._validate_params(request)

    # Expansion -------------------------------------------------------------
    def _changes_for(self, kind: str, params: Dict[str, Any], course: Course) -> Dict[str, Any]:
        if kind == "assign_users":
            return {"assignee_ids": sorted(set(course.assignee_ids) | set(params["userIds"]))}
        if kind == "update_due_dates":
            return {"due_date": params["dueDate"]}
        if kind == "change_priority":
            return {"priority": params["priority"]}
        if kind == "workflow_transition":
            return {"status": params["status"]}
        return {"status": ARCHIVED_STATUS}

    def execute(
        self, request: BulkOperationRequest, target_courses: Sequence[Course]
    ) -> List[AppliedMutation]:
        """Expand ``request`` into one mutation per target course.

        Raises ValidationError before producing anything if the request is
        invalid. Output is ordered by course id, so the same request and
        target set always produce the same list.
        """
        targets, params = self.validate(request, target_courses)
        mutations = [
            AppliedMutation(course_id=course.id, changes=self._changes_for(request.kind, params, course))
            for course in targets
        ]
        logger.info(
            "Bulk %s expanded to %d mutation(s)", request.kind, len(mutations)
        )
        return mutations

    def preview(
        self,
        request: BulkOperationRequest,
        target_courses: Sequence[Course],
        today: Optional[date] = None,
    ) -> BulkPreview:
        """Before/after view of ``execute`` plus advisory warnings."""
        targets, params = self.validate(request, target_courses)
        today = today or date.today()

        entries = []
        for course in targets:
            after = self._changes_for(request.kind, params, course)
            before = {field: getattr(course, field) for field in after}
            entries.append(
                CourseChangePreview(
                    course_id=course.id,
                    title=course.title,
                    before=before,
                    after=after,
                    changed=before != after,
                )
            )

        warnings = []
        if len(targets) > LARGE_OPERATION_THRESHOLD:
            warnings.append("Large bulk operation - consider splitting into smaller batches")
        critical = [c for c in targets if c.priority == "critical"]
        if critical:
            warnings.append(f"{len(critical)} critical priority courses will be affected")
        horizon = today + timedelta(days=DUE_SOON_DAYS)
        due_soon = [c for c in targets if c.due_date and today < c.due_date <= horizon]
        if due_soon:
            warnings.append(f"{len(due_soon)} courses are due within {DUE_SOON_DAYS} days")

        return BulkPreview(
            kind=request.kind,
            total_courses=len(entries),
            changed_courses=sum(1 for e in entries if e.changed),
            courses=entries,
            warnings=warnings,
        )
