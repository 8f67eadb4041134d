"""
Reconciles spreadsheet rows with the content hierarchy.

Export flattens courses into rows with Program/Folder/List names; import
reads rows back, resolving those names case-insensitively against a
``HierarchyStore`` snapshot and producing an ``ImportPlan`` for the
repository to apply.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from coursetrack.models.hierarchy import Course, NodeRef, VocabularyOption
from coursetrack.services.hierarchy_store import HierarchyStore
from coursetrack.services.selection import SelectionEngine
from coursetrack.utils.errors import RowError, UnresolvedReference, ValidationError
from coursetrack.utils.validation import parse_iso_date

logger = logging.getLogger(__name__)

Row = Dict[str, str]

HEADERS = [
    "Program",
    "Folder",
    "List",
    "Title",
    "Description",
    "Modality",
    "Priority",
    "Status",
    "Start Date",
    "Due Date",
    "Owner Email",
    "Lead Email",
]
REQUIRED_HEADERS = ("Program", "Folder", "List", "Title")
TEMPLATE_HEADERS = [f"{h} *" if h in REQUIRED_HEADERS else h for h in HEADERS]

UNASSIGNED = "Unassigned"
DEFAULT_IMPORT_STATUS = "inactive"
DEFAULT_PRIORITY = "medium"
MODALITIES = ["WBT", "ILT/VLT", "Micro Learning", "SIMS", "DAP"]

_CANONICAL = {h.lower(): h for h in HEADERS}


def normalize_header(name: Any) -> Optional[str]:
    """Map ``'Program *'``, ``'program'`` etc. to the canonical header."""
    if name is None:
        return None
    key = str(name).strip().rstrip("*").strip().lower()
    return _CANONICAL.get(key)


def _group_key(row: Row) -> Tuple[str, ...]:
    """Case-insensitive (Program, Folder, List) grouping, exact text as tiebreak."""
    names = (row["Program"], row["Folder"], row["List"])
    return tuple(n.casefold() for n in names) + names


def normalize_row(raw: Mapping[Any, Any]) -> Row:
    row: Row = {}
    for key, value in raw.items():
        header = normalize_header(key)
        if header is None:
            continue
        text = "" if value is None else str(value).strip()
        # A blank '*' column must not hide a filled plain one
        if text or header not in row:
            row[header] = text
    return row


@dataclass
class ImportPlanEntry:
    """One course to create, with whatever hierarchy ids resolved."""
    row: int
    title: str
    description: str = ""
    modality: str = ""
    priority: str = DEFAULT_PRIORITY
    status: str = DEFAULT_IMPORT_STATUS
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    owner_email: Optional[str] = None
    lead_email: Optional[str] = None
    program_id: Optional[int] = None
    folder_id: Optional[int] = None
    list_id: Optional[int] = None
    hierarchy_names: Dict[str, str] = field(default_factory=dict)

    @property
    def resolved(self) -> bool:
        return self.list_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "title": self.title,
            "description": self.description,
            "modality": self.modality,
            "priority": self.priority,
            "status": self.status,
            "start_date": self.start_date,
            "due_date": self.due_date,
            "owner_email": self.owner_email,
            "lead_email": self.lead_email,
            "program_id": self.program_id,
            "folder_id": self.folder_id,
            "list_id": self.list_id,
            "hierarchy_names": dict(self.hierarchy_names),
            "resolved": self.resolved,
        }


@dataclass
class ImportPlan:
    entries: List[ImportPlanEntry] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)
    unresolved: List[UnresolvedReference] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)

    @property
    def ambiguous_rows(self) -> List[int]:
        return sorted({ref.row for ref in self.unresolved if ref.ambiguous})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "entries": len(self.entries),
                "resolved": sum(1 for e in self.entries if e.resolved),
                "needs_creation": sum(1 for e in self.entries if not e.resolved),
                "errors": len(self.errors),
                "ambiguous": len(self.ambiguous_rows),
                "skipped": len(self.skipped),
            },
            "entries": [e.to_dict() for e in self.entries],
            "errors": [e.to_dict() for e in self.errors],
            "unresolved": [u.to_dict() for u in self.unresolved],
            "skipped": list(self.skipped),
        }


class TabularReconciler:
    """Row mapping for one hierarchy snapshot and status vocabulary."""

    def __init__(self, store: HierarchyStore, statuses: Iterable[VocabularyOption] = ()):
        self.store = store
        self.statuses = list(statuses)
        self._label_by_value = {s.value: s.label for s in self.statuses}
        self._value_by_label: Dict[str, str] = {}
        for option in self.statuses:
            self._value_by_label.setdefault(option.label.strip().lower(), option.value)

    def status_label(self, value: Optional[str]) -> str:
        if not value:
            return ""
        return self._label_by_value.get(value, value)

    def status_value(self, text: str) -> str:
        if not text:
            return DEFAULT_IMPORT_STATUS
        return self._value_by_label.get(text.strip().lower(), text)

    # Export ----------------------------------------------------------------
    def _row_for(self, course: Course) -> Row:
        program = self.store.program_for_course(course)
        folder = self.store.folder_for_course(course)
        course_list = self.store.list_for_course(course)
        return {
            "Program": program.name if program else UNASSIGNED,
            "Folder": folder.name if folder else UNASSIGNED,
            "List": course_list.name if course_list else UNASSIGNED,
            "Title": course.title,
            "Description": course.description or "",
            "Modality": course.modality or "",
            "Priority": (course.priority or "").capitalize(),
            "Status": self.status_label(course.status),
            "Start Date": course.start_date.isoformat() if course.start_date else "",
            "Due Date": course.due_date.isoformat() if course.due_date else "",
            "Owner Email": course.owner_email or "",
            "Lead Email": course.lead_email or "",
        }

    def to_rows(self, courses: Optional[Sequence[Course]] = None) -> List[Row]:
        """Flatten courses (all of the store's by default) into export rows."""
        source = self.store.courses if courses is None else list(courses)
        rows = [self._row_for(course) for course in source]
        rows.sort(key=_group_key)
        return rows

    def courses_in_scope(self, list_ids: Iterable[int]) -> List[Course]:
        """Courses under the given lists, for a list-level export selection."""
        engine = SelectionEngine(self.store, leaf_kind="list")
        course_ids = engine.selected_courses(list_ids)
        return [self.store.get(NodeRef("course", course_id)) for course_id in course_ids]

    # Import ----------------------------------------------------------------
    def _resolve(
        self, row_number: int, names: Dict[str, str]
    ) -> Tuple[Dict[str, Optional[int]], Optional[UnresolvedReference]]:
        ids: Dict[str, Optional[int]] = {"program": None, "folder": None, "list": None}

        programs = self.store.find_programs_by_name(names["program"])
        unresolved = self._check_matches(row_number, "program", names["program"], programs)
        if unresolved:
            return ids, unresolved
        ids["program"] = programs[0].id

        folders = self.store.find_folders_by_name(ids["program"], names["folder"])
        unresolved = self._check_matches(row_number, "folder", names["folder"], folders)
        if unresolved:
            return ids, unresolved
        ids["folder"] = folders[0].id

        lists = self.store.find_lists_by_name(ids["folder"], names["list"])
        unresolved = self._check_matches(row_number, "list", names["list"], lists)
        if unresolved:
            return ids, unresolved
        ids["list"] = lists[0].id
        return ids, None

    @staticmethod
    def _check_matches(row_number, level, name, matches) -> Optional[UnresolvedReference]:
        if not matches:
            return UnresolvedReference(row_number, level, name, "missing")
        if len(matches) > 1:
            return UnresolvedReference(
                row_number, level, name, "ambiguous", sorted(m.id for m in matches)
            )
        return None

    def from_rows(self, rows: Iterable[Mapping[Any, Any]], start_row: int = 2) -> ImportPlan:
        """Build an import plan; row numbers count the header as row 1.

        ``rows`` must include blank sheet rows in place: they are passed over
        silently but still advance the row counter.
        """
        plan = ImportPlan()
        for offset, raw in enumerate(rows):
            row_number = start_row + offset
            row = normalize_row(raw)
            if not any(row.values()):
                continue
            title = row.get("Title", "")
            if not title:
                plan.skipped.append(row_number)
                continue

            names = {
                "program": row.get("Program", ""),
                "folder": row.get("Folder", ""),
                "list": row.get("List", ""),
            }
            missing = [level for level, name in names.items() if not name]
            if missing:
                plan.errors.append(
                    RowError(
                        row_number,
                        missing[0].capitalize(),
                        "Missing required fields (Program, Folder, or List)",
                        title,
                    )
                )
                continue

            dates = {}
            bad_date = None
            for header in ("Start Date", "Due Date"):
                text = row.get(header, "")
                if not text:
                    dates[header] = None
                    continue
                try:
                    dates[header] = parse_iso_date(text, header).isoformat()
                except ValidationError as exc:
                    bad_date = RowError(row_number, header, exc.message, title)
                    break
            if bad_date is not None:
                plan.errors.append(bad_date)
                continue

            ids, unresolved = self._resolve(row_number, names)
            if unresolved is not None:
                plan.unresolved.append(unresolved)
                if unresolved.ambiguous:
                    continue

            plan.entries.append(
                ImportPlanEntry(
                    row=row_number,
                    title=title,
                    description=row.get("Description", ""),
                    modality=row.get("Modality", ""),
                    priority=(row.get("Priority") or DEFAULT_PRIORITY).lower(),
                    status=self.status_value(row.get("Status", "")),
                    start_date=dates["Start Date"],
                    due_date=dates["Due Date"],
                    owner_email=row.get("Owner Email") or None,
                    lead_email=row.get("Lead Email") or None,
                    program_id=ids["program"],
                    folder_id=ids["folder"],
                    list_id=ids["list"],
                    hierarchy_names=names,
                )
            )

        logger.info(
            "Import plan: %d entries, %d errors, %d unresolved, %d skipped",
            len(plan.entries),
            len(plan.errors),
            len(plan.unresolved),
            len(plan.skipped),
        )
        return plan

    # Template --------------------------------------------------------------
    def template_rows(self) -> List[Row]:
        labels = [s.label for s in self.statuses] or ["Pre-Development", "Development"]
        first, second = labels[0], labels[1] if len(labels) > 1 else labels[0]
        examples = [
            ("Acme Corp", "Course Development", "Development", "Example Course 1",
             "Course description goes here", "WBT", "Medium", first,
             "2024-01-01", "2024-03-01", "owner@example.com", "lead@example.com"),
            ("Acme Corp", "Course Development", "Review", "Example Course 2",
             "Another course description", "ILT/VLT", "High", second,
             "2024-02-01", "2024-04-01", "owner2@example.com", "lead2@example.com"),
        ]
        return [dict(zip(TEMPLATE_HEADERS, values)) for values in examples]

    def import_instructions(self) -> List[str]:
        status_text = ", ".join(s.label for s in self.statuses) or "see the status list"
        return [
            "INSTRUCTIONS FOR IMPORTING COURSES",
            "",
            "REQUIRED FIELDS (marked with * in template):",
            "   - Program: Name of the program/client",
            "   - Folder: Name of the folder within the program",
            "   - List: Name of the list within the folder",
            "   - Title: Name of the course",
            "",
            "OPTIONAL FIELDS:",
            "   - Description: Course description",
            f"   - Modality: {', '.join(MODALITIES[:-1])}, or {MODALITIES[-1]}",
            "   - Priority: Low, Medium, High, or Critical (case-insensitive)",
            f"   - Status: {status_text}",
            "   - Start Date: Format YYYY-MM-DD",
            "   - Due Date: Format YYYY-MM-DD",
            "   - Owner Email: Email of the course owner",
            "   - Lead Email: Email of the course lead",
            "",
            "NOTES:",
            "1. Programs, folders and lists that don't exist are created when auto-create is enabled",
            "2. Names are matched case-insensitively",
            "3. Rows without a Title are skipped",
        ]
