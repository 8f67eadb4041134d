"""Repository layer for the Program → Folder → List → Course hierarchy.

Performs every write the engines ask for: CRUD with cascading deletes,
position compaction, atomic sibling reorders, bulk mutation application and
import-plan application. Reads return pydantic models or a
``HierarchyStore`` snapshot, never ORM records.
"""
from __future__ import annotations
import asyncio
import weakref
from contextlib import AsyncExitStack
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.models.hierarchy import (
    PRIORITIES,
    AppliedMutation,
    BulkOperationRequest,
    BulkResult,
    Course,
    CourseList,
    Folder,
    ImportResult,
    Program,
    ReorderCommand,
    VocabularyOption,
)
from coursetrack.models.persisted import (
    BulkOperationRecord,
    CourseRecord,
    FolderRecord,
    ListRecord,
    PriorityRecord,
    ProgramRecord,
    StatusRecord,
)
from coursetrack.services import ordering
from coursetrack.services.hierarchy_store import HierarchyStore
from coursetrack.services.reconciler import ImportPlan, ImportPlanEntry
from coursetrack.utils.errors import ValidationError
from coursetrack.utils.validation import parse_iso_date

logger = logging.getLogger(__name__)


class NodeNotFoundError(Exception):
    """Raised when a program, folder, list or course could not be located."""


class ReorderConflictError(Exception):
    """Raised when a reorder command does not match the stored siblings."""


DEFAULT_STATUSES = [
    ("pre_development", "Pre-Development"),
    ("outlines", "Outlines"),
    ("storyboard", "Storyboard"),
    ("development", "Development"),
    ("on_hold", "On Hold"),
    ("paused", "Paused"),
    ("completed", "Completed"),
    ("inactive", "Inactive"),
    ("cancelled", "Cancelled"),
    ("archived", "Archived"),
]
DEFAULT_PRIORITIES = [(value, value.capitalize()) for value in PRIORITIES]
DUPLICATE_STATUS = "pre_development"
COPY_SUFFIX = " (copy)"
TITLE_MAX = 255

_RECORDS = {
    "program": ProgramRecord,
    "folder": FolderRecord,
    "list": ListRecord,
    "course": CourseRecord,
}
_COURSE_FIELDS = {
    "title",
    "description",
    "list_id",
    "priority",
    "status",
    "modality",
    "start_date",
    "due_date",
    "deliverables",
    "assignee_ids",
    "owner_email",
    "lead_email",
}
_DATE_FIELDS = ("start_date", "due_date")

# One lock per parent while in use; reorders of the same sibling set run one at a time.
_reorder_locks: "weakref.WeakValueDictionary[Tuple[str, int], asyncio.Lock]" = weakref.WeakValueDictionary()


def _reorder_lock(parent_kind: str, parent_id: int) -> asyncio.Lock:
    key = (parent_kind, parent_id)
    lock = _reorder_locks.get(key)
    if lock is None:
        lock = _reorder_locks[key] = asyncio.Lock()
    return lock


class HierarchyRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get(self, kind: str, node_id: int):
        record = await self.session.get(_RECORDS[kind], node_id)
        if record is None:
            raise NodeNotFoundError(f"{kind.capitalize()} {node_id} not found")
        return record

    async def _ids(self, stmt) -> List[int]:
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # READ -------------------------------------------------------------------
    async def fetch_hierarchy(self, program_id: Optional[int] = None) -> HierarchyStore:
        """Load a snapshot of the whole tree, or of one program's subtree."""
        program_stmt = select(ProgramRecord)
        if program_id is not None:
            await self._get("program", program_id)
            program_stmt = program_stmt.where(ProgramRecord.id == program_id)
        programs = (await self.session.execute(program_stmt)).scalars().all()

        folder_stmt = select(FolderRecord)
        list_stmt = select(ListRecord)
        course_stmt = select(CourseRecord)
        if program_id is not None:
            folder_stmt = folder_stmt.where(FolderRecord.program_id == program_id)
            folder_ids = select(FolderRecord.id).where(FolderRecord.program_id == program_id)
            list_stmt = list_stmt.where(ListRecord.folder_id.in_(folder_ids))
            list_ids = select(ListRecord.id).where(ListRecord.folder_id.in_(folder_ids))
            course_stmt = course_stmt.where(CourseRecord.list_id.in_(list_ids))
        folders = (await self.session.execute(folder_stmt)).scalars().all()
        lists = (await self.session.execute(list_stmt)).scalars().all()
        courses = (await self.session.execute(course_stmt)).scalars().all()

        return HierarchyStore.from_entities(
            [p.to_model() for p in programs],
            [f.to_model() for f in folders],
            [l.to_model() for l in lists],
            [c.to_model() for c in courses],
        )

    async def get_program(self, program_id: int) -> Program:
        return (await self._get("program", program_id)).to_model()

    async def get_folder(self, folder_id: int) -> Folder:
        return (await self._get("folder", folder_id)).to_model()

    async def get_list(self, list_id: int) -> CourseList:
        return (await self._get("list", list_id)).to_model()

    async def get_course(self, course_id: int) -> Course:
        return (await self._get("course", course_id)).to_model()

    async def list_courses(self, list_id: Optional[int] = None) -> List[Course]:
        stmt = select(CourseRecord).order_by(CourseRecord.id)
        if list_id is not None:
            stmt = stmt.where(CourseRecord.list_id == list_id)
        result = await self.session.execute(stmt)
        return [c.to_model() for c in result.scalars().all()]

    async def get_courses(self, course_ids: Iterable[int]) -> List[Course]:
        ids = sorted(set(course_ids))
        if not ids:
            return []
        result = await self.session.execute(
            select(CourseRecord).where(CourseRecord.id.in_(ids)).order_by(CourseRecord.id)
        )
        return [c.to_model() for c in result.scalars().all()]

    # CREATE -----------------------------------------------------------------
    async def _sibling_records(self, child_kind: str, parent_id: int) -> list:
        if child_kind == "folder":
            stmt = select(FolderRecord).where(FolderRecord.program_id == parent_id)
        else:
            stmt = select(ListRecord).where(ListRecord.folder_id == parent_id)
        return list((await self.session.execute(stmt)).scalars().all())

    async def _next_position(self, child_kind: str, parent_id: int) -> int:
        records = await self._sibling_records(child_kind, parent_id)
        return ordering.next_position([r.to_model() for r in records])

    async def _add_program(self, name: str, **fields) -> ProgramRecord:
        record = ProgramRecord(name=name, **fields)
        self.session.add(record)
        await self.session.flush()
        return record

    async def _add_folder(self, program_id: int, name: str, **fields) -> FolderRecord:
        await self._get("program", program_id)
        position = await self._next_position("folder", program_id)
        record = FolderRecord(program_id=program_id, name=name, position=position, **fields)
        self.session.add(record)
        await self.session.flush()
        return record

    async def _add_list(self, folder_id: int, name: str, **fields) -> ListRecord:
        await self._get("folder", folder_id)
        position = await self._next_position("list", folder_id)
        record = ListRecord(folder_id=folder_id, name=name, position=position, **fields)
        self.session.add(record)
        await self.session.flush()
        return record

    async def _add_course(self, list_id: int, title: str, **fields) -> CourseRecord:
        course_list = await self._get("list", list_id)
        folder = await self._get("folder", course_list.folder_id)
        values = self._checked_course_fields({"title": title, "list_id": list_id, **fields})
        record = CourseRecord(folder_id=folder.id, program_id=folder.program_id, **values)
        self.session.add(record)
        await self.session.flush()
        return record

    @staticmethod
    def _checked_course_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - _COURSE_FIELDS
        if unknown:
            raise ValidationError(sorted(unknown)[0], "Unknown course field")
        values = dict(fields)
        for name in _DATE_FIELDS:
            if values.get(name) is not None and not isinstance(values[name], date):
                values[name] = parse_iso_date(values[name], name)
        if "priority" in values and values["priority"] not in PRIORITIES:
            raise ValidationError(
                "priority", f"Invalid priority. Must be one of: {', '.join(PRIORITIES)}"
            )
        if "title" in values and not (values["title"] or "").strip():
            raise ValidationError("title", "Title is required")
        for name in ("deliverables", "assignee_ids"):
            if name in values:
                values[name] = sorted(set(values[name] or []))
        return values

    async def create_program(
        self,
        name: str,
        type: str = "program",
        status: str = "active",
        description: Optional[str] = None,
    ) -> Program:
        record = await self._add_program(name, type=type, status=status, description=description)
        await self.session.commit()
        logger.info("Created program %s (%s)", record.id, name)
        return record.to_model()

    async def create_folder(
        self,
        program_id: int,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Folder:
        record = await self._add_folder(program_id, name, description=description, color=color)
        await self.session.commit()
        return record.to_model()

    async def create_list(
        self, folder_id: int, name: str, description: Optional[str] = None
    ) -> CourseList:
        record = await self._add_list(folder_id, name, description=description)
        await self.session.commit()
        return record.to_model()

    async def create_course(self, list_id: int, title: str, **fields) -> Course:
        record = await self._add_course(list_id, title, **fields)
        await self.session.commit()
        return record.to_model()

    async def duplicate_course(self, course_id: int, list_id: Optional[int] = None) -> Course:
        """Copy a course as "<title> (copy)" into ``list_id`` or its own list.

        The copy restarts the workflow: status resets and dates are cleared.
        """
        original = await self._get("course", course_id)
        target_list = list_id if list_id is not None else original.list_id
        if target_list is None:
            raise ValidationError("list_id", "A course must belong to a list")
        record = await self._add_course(
            target_list,
            f"{original.title[:TITLE_MAX - len(COPY_SUFFIX)]}{COPY_SUFFIX}",
            description=original.description,
            modality=original.modality,
            priority=original.priority,
            status=DUPLICATE_STATUS,
            deliverables=list(original.deliverables or []),
            assignee_ids=list(original.assignee_ids or []),
            owner_email=original.owner_email,
            lead_email=original.lead_email,
        )
        await self.session.commit()
        logger.info("Duplicated course %s as %s", course_id, record.id)
        return record.to_model()

    # UPDATE -----------------------------------------------------------------
    async def update_program(self, program_id: int, **fields) -> Program:
        record = await self._get("program", program_id)
        for name, value in fields.items():
            if value is not None:
                setattr(record, name, value)
        await self.session.commit()
        return record.to_model()

    async def rename_folder(self, folder_id: int, name: str, **fields) -> Folder:
        record = await self._get("folder", folder_id)
        record.name = name
        for field_name in ("description", "color"):
            if fields.get(field_name) is not None:
                setattr(record, field_name, fields[field_name])
        await self.session.commit()
        return record.to_model()

    async def rename_list(self, list_id: int, name: str, description: Optional[str] = None) -> CourseList:
        record = await self._get("list", list_id)
        record.name = name
        if description is not None:
            record.description = description
        await self.session.commit()
        return record.to_model()

    async def update_course(self, course_id: int, partial: Dict[str, Any]) -> Course:
        """Apply a partial update; moving lists refreshes folder/program refs."""
        record = await self._get("course", course_id)
        values = self._checked_course_fields(partial)
        if values.get("list_id") is not None and values["list_id"] != record.list_id:
            course_list = await self._get("list", values["list_id"])
            folder = await self._get("folder", course_list.folder_id)
            record.folder_id = folder.id
            record.program_id = folder.program_id
        elif "list_id" in values and values["list_id"] is None:
            raise ValidationError("list_id", "A course must belong to a list")
        for name, value in values.items():
            setattr(record, name, value)
        await self.session.commit()
        return record.to_model()

    # DELETE -----------------------------------------------------------------
    async def _delete_lists(self, list_ids: Sequence[int]) -> None:
        if not list_ids:
            return
        await self.session.execute(delete(CourseRecord).where(CourseRecord.list_id.in_(list_ids)))
        await self.session.execute(delete(ListRecord).where(ListRecord.id.in_(list_ids)))

    async def _delete_folders(self, folder_ids: Sequence[int]) -> None:
        if not folder_ids:
            return
        list_ids = await self._ids(select(ListRecord.id).where(ListRecord.folder_id.in_(folder_ids)))
        await self._delete_lists(list_ids)
        await self.session.execute(delete(FolderRecord).where(FolderRecord.id.in_(folder_ids)))

    @staticmethod
    def _apply_orders(records, command: ReorderCommand) -> None:
        by_id = {r.id: r for r in records}
        for order in command.orders:
            by_id[order.id].position = order.position

    async def _compact(self, child_kind: str, parent_id: int) -> None:
        records = await self._sibling_records(child_kind, parent_id)
        if not records:
            return
        siblings = [r.to_model() for r in records]
        if not ordering.needs_compaction(siblings):
            return
        self._apply_orders(records, ordering.compact(siblings).command)

    async def delete_program(self, program_id: int) -> None:
        await self._get("program", program_id)
        try:
            folder_ids = await self._ids(
                select(FolderRecord.id).where(FolderRecord.program_id == program_id)
            )
            await self._delete_folders(folder_ids)
            await self.session.execute(delete(ProgramRecord).where(ProgramRecord.id == program_id))
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        logger.info("Deleted program %s with %d folder(s)", program_id, len(folder_ids))

    async def delete_folder(self, folder_id: int) -> None:
        folder = await self._get("folder", folder_id)
        program_id = folder.program_id
        try:
            await self._delete_folders([folder_id])
            await self._compact("folder", program_id)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def delete_list(self, list_id: int) -> None:
        course_list = await self._get("list", list_id)
        folder_id = course_list.folder_id
        try:
            await self._delete_lists([list_id])
            await self._compact("list", folder_id)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def delete_course(self, course_id: int) -> None:
        record = await self._get("course", course_id)
        await self.session.delete(record)
        await self.session.commit()

    # ORDER ------------------------------------------------------------------
    async def reorder_siblings(self, command: ReorderCommand) -> List[Any]:
        """Persist a full sibling order in one transaction."""
        async with _reorder_lock(command.parent_kind, command.parent_id):
            await self._get(command.parent_kind, command.parent_id)
            records = {r.id: r for r in await self._sibling_records(command.child_kind, command.parent_id)}

            ordered_ids = [order.id for order in command.orders]
            positions = sorted(order.position for order in command.orders)
            if len(set(ordered_ids)) != len(ordered_ids) or set(ordered_ids) != set(records):
                raise ReorderConflictError("Ordered IDs must match existing siblings exactly")
            if positions != list(range(len(records))):
                raise ReorderConflictError("Positions must be contiguous starting at 0")

            try:
                self._apply_orders(records.values(), command)
                await self.session.commit()
            except SQLAlchemyError:
                await self.session.rollback()
                raise
            logger.debug(
                "Reordered %d %s(s) under %s %s",
                len(records), command.child_kind, command.parent_kind, command.parent_id,
            )
            ordered = sorted(records.values(), key=lambda r: r.position)
            return [r.to_model() for r in ordered]

    async def move_list_to_folder(
        self, list_id: int, folder_id: int, position: Optional[int] = None
    ) -> CourseList:
        """Re-parent a list, placing it at ``position`` in the target folder.

        The list is appended when ``position`` is None. Both folders end up
        with contiguous positions and the list's courses follow it.
        """
        record = await self._get("list", list_id)
        target = await self._get("folder", folder_id)
        source_id = record.folder_id
        async with AsyncExitStack() as stack:
            for parent_id in sorted({source_id, folder_id}):
                await stack.enter_async_context(_reorder_lock("folder", parent_id))
            destination = await self._sibling_records("list", folder_id)
            moved = record.to_model().model_copy(update={"folder_id": folder_id})
            result = ordering.insert([r.to_model() for r in destination], moved, position)
            try:
                record.folder_id = folder_id
                await self.session.execute(
                    update(CourseRecord)
                    .where(CourseRecord.list_id == list_id)
                    .values(folder_id=folder_id, program_id=target.program_id)
                )
                self._apply_orders([r for r in destination if r.id != list_id] + [record], result.command)
                if source_id != folder_id:
                    await self._compact("list", source_id)
                await self.session.commit()
            except SQLAlchemyError:
                await self.session.rollback()
                raise
        logger.info("Moved list %s from folder %s to folder %s", list_id, source_id, folder_id)
        return record.to_model()

    # VOCABULARIES -----------------------------------------------------------
    async def _vocabulary(self, record_cls, defaults) -> List[VocabularyOption]:
        result = await self.session.execute(select(record_cls).order_by(record_cls.sort_order, record_cls.id))
        records = result.scalars().all()
        if not records:
            for index, (value, label) in enumerate(defaults):
                self.session.add(record_cls(value=value, label=label, sort_order=index))
            await self.session.commit()
            result = await self.session.execute(select(record_cls).order_by(record_cls.sort_order, record_cls.id))
            records = result.scalars().all()
        return [r.to_model() for r in records]

    async def status_vocabulary(self) -> List[VocabularyOption]:
        return await self._vocabulary(StatusRecord, DEFAULT_STATUSES)

    async def priority_vocabulary(self) -> List[VocabularyOption]:
        return await self._vocabulary(PriorityRecord, DEFAULT_PRIORITIES)

    # BULK -------------------------------------------------------------------
    async def apply_mutations(self, mutations: Sequence[AppliedMutation]) -> BulkResult:
        """Apply each mutation in its own commit; failures are reported per course."""
        result = BulkResult()
        for mutation in mutations:
            try:
                record = await self._get("course", mutation.course_id)
                values = self._checked_course_fields(mutation.changes)
                for name, value in values.items():
                    setattr(record, name, value)
                await self.session.commit()
                result.successful.append(mutation.course_id)
            except (NodeNotFoundError, ValidationError, SQLAlchemyError) as exc:
                await self.session.rollback()
                logger.warning("Bulk mutation failed for course %s: %s", mutation.course_id, exc)
                result.failed.append({"course_id": mutation.course_id, "error": str(exc)})
        return result

    async def record_bulk_operation(
        self, request: BulkOperationRequest, result: BulkResult
    ) -> BulkOperationRecord:
        record = BulkOperationRecord(
            kind=request.kind,
            params=request.params,
            course_ids=sorted(set(request.course_ids)),
            successful_count=len(result.successful),
            failed_count=len(result.failed),
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return record

    async def bulk_history(self, limit: int = 20) -> List[dict]:
        result = await self.session.execute(
            select(BulkOperationRecord)
            .order_by(BulkOperationRecord.created_at.desc(), BulkOperationRecord.id.desc())
            .limit(limit)
        )
        return [r.to_dict() for r in result.scalars().all()]

    # IMPORT -----------------------------------------------------------------
    async def _ensure_path(
        self, entry: ImportPlanEntry, created: Dict[Any, int], result: ImportResult
    ) -> int:
        """Resolve or create the entry's program, folder and list; returns list id."""
        names = entry.hierarchy_names
        program_id = entry.program_id
        if program_id is None:
            key = ("program", names["program"].lower())
            if key not in created:
                record = await self._add_program(names["program"])
                created[key] = record.id
                result.created_programs.append(record.id)
            program_id = created[key]

        folder_id = entry.folder_id
        if folder_id is None:
            key = ("folder", program_id, names["folder"].lower())
            if key not in created:
                record = await self._add_folder(program_id, names["folder"])
                created[key] = record.id
                result.created_folders.append(record.id)
            folder_id = created[key]

        key = ("list", folder_id, names["list"].lower())
        if key not in created:
            record = await self._add_list(folder_id, names["list"])
            created[key] = record.id
            result.created_lists.append(record.id)
        return created[key]

    async def apply_import_plan(self, plan: ImportPlan, auto_create: bool = False) -> ImportResult:
        """Create the plan's courses row by row, creating missing nodes once per name."""
        result = ImportResult(
            skipped_rows=list(plan.skipped),
            errors=[e.to_dict() for e in plan.errors],
        )
        for ref in plan.unresolved:
            if ref.ambiguous:
                result.errors.append(
                    {
                        "row": ref.row,
                        "field": ref.level.capitalize(),
                        "message": f"{ref.level.capitalize()} '{ref.name}' matches several existing entries",
                        "title": None,
                    }
                )

        created: Dict[Any, int] = {}
        for entry in plan.entries:
            if entry.list_id is None and not auto_create:
                level = next(
                    lvl for lvl, value in (("program", entry.program_id), ("folder", entry.folder_id), ("list", entry.list_id))
                    if value is None
                )
                result.skipped_rows.append(entry.row)
                result.errors.append(
                    {
                        "row": entry.row,
                        "field": level.capitalize(),
                        "message": f"{level.capitalize()} '{entry.hierarchy_names[level]}' not found",
                        "title": entry.title,
                    }
                )
                continue
            snapshot = dict(created)
            try:
                list_id = entry.list_id
                if list_id is None:
                    list_id = await self._ensure_path(entry, created, result)
                record = await self._add_course(
                    list_id,
                    entry.title,
                    description=entry.description or None,
                    modality=entry.modality or None,
                    priority=entry.priority,
                    status=entry.status,
                    start_date=entry.start_date,
                    due_date=entry.due_date,
                    owner_email=entry.owner_email,
                    lead_email=entry.lead_email,
                )
                await self.session.commit()
                result.created_courses.append(record.id)
            except (ValidationError, NodeNotFoundError, SQLAlchemyError) as exc:
                await self.session.rollback()
                self._forget_uncommitted(created, snapshot, result)
                field = exc.field if isinstance(exc, ValidationError) else "row"
                message = exc.message if isinstance(exc, ValidationError) else str(exc)
                result.errors.append(
                    {"row": entry.row, "field": field, "message": message, "title": entry.title}
                )

        result.skipped_rows.sort()
        result.errors.sort(key=lambda e: e["row"])
        logger.info(
            "Import applied: %d course(s) created, %d error(s)",
            len(result.created_courses),
            len(result.errors),
        )
        return result

    @staticmethod
    def _forget_uncommitted(created: Dict[Any, int], snapshot: Dict[Any, int], result: ImportResult) -> None:
        by_kind = {
            "program": result.created_programs,
            "folder": result.created_folders,
            "list": result.created_lists,
        }
        for key in [k for k in created if k not in snapshot]:
            node_id = created.pop(key)
            if node_id in by_kind[key[0]]:
                by_kind[key[0]].remove(node_id)
