"""
Tabular reconciler tests: export rows, import planning, template
"""

import io

import pytest
from openpyxl import Workbook

from coursetrack.models.hierarchy import Course, CourseList, Folder, Program, VocabularyOption
from coursetrack.services import spreadsheet
from coursetrack.services.hierarchy_store import HierarchyStore
from coursetrack.services.reconciler import (
    HEADERS,
    TEMPLATE_HEADERS,
    UNASSIGNED,
    TabularReconciler,
    normalize_header,
)

STATUSES = [
    VocabularyOption(value="development", label="Development"),
    VocabularyOption(value="storyboard", label="Storyboard"),
    VocabularyOption(value="inactive", label="Inactive"),
]


@pytest.fixture
def reconciler(sample_store):
    return TabularReconciler(sample_store, STATUSES)


def _row(program="Acme", folder="Design", list_name="Intro", title="New course", **extra):
    row = {"Program": program, "Folder": folder, "List": list_name, "Title": title}
    row.update(extra)
    return row


class TestExport:

    def test_rows_carry_names_and_labels(self, reconciler):
        rows = reconciler.to_rows()
        assert len(rows) == 4
        welcome = next(r for r in rows if r["Title"] == "Welcome")
        assert welcome["Program"] == "Acme"
        assert welcome["Folder"] == "Design"
        assert welcome["List"] == "Intro"
        assert welcome["Priority"] == "High"
        assert welcome["Status"] == "Development"
        assert set(welcome) == set(HEADERS)

    def test_rows_sorted_by_program_folder_list(self, reconciler):
        keys = [(r["Program"], r["Folder"], r["List"]) for r in reconciler.to_rows()]
        assert keys == sorted(keys, key=lambda k: tuple(n.casefold() for n in k))

    def test_grouping_ignores_case(self):
        store = HierarchyStore.from_entities(
            programs=[Program(id=1, name="Zeta"), Program(id=2, name="beta")],
            folders=[Folder(id=10, name="F", program_id=1), Folder(id=20, name="F", program_id=2)],
            lists=[CourseList(id=100, name="L", folder_id=10), CourseList(id=200, name="L", folder_id=20)],
            courses=[Course(id=1, title="Upper", list_id=100), Course(id=2, title="Lower", list_id=200)],
        )
        rows = TabularReconciler(store, STATUSES).to_rows()
        assert [r["Program"] for r in rows] == ["beta", "Zeta"]

    def test_unknown_status_rendered_raw(self, sample_store):
        store = sample_store.with_node(Course(id=7, title="Odd", list_id=100, status="mystery"))
        rows = TabularReconciler(store, STATUSES).to_rows()
        assert next(r for r in rows if r["Title"] == "Odd")["Status"] == "mystery"

    def test_unresolvable_names_are_unassigned(self, sample_store):
        orphan = Course(id=8, title="Orphan", list_id=999)
        row = TabularReconciler(sample_store, STATUSES).to_rows([orphan])[0]
        assert (row["Program"], row["Folder"], row["List"]) == (UNASSIGNED,) * 3

    def test_scope_by_lists(self, reconciler):
        scoped = reconciler.courses_in_scope([100, 102])
        assert [c.id for c in scoped] == [1000, 1001, 1003]


class TestImport:

    def test_existing_names_resolve_case_insensitively(self, reconciler):
        plan = reconciler.from_rows([_row(program="ACME", folder="design", list_name="INTRO")])
        entry = plan.entries[0]
        assert (entry.program_id, entry.folder_id, entry.list_id) == (1, 10, 100)
        assert entry.resolved
        assert plan.unresolved == []

    def test_rows_without_title_are_skipped(self, reconciler):
        plan = reconciler.from_rows([_row(title=""), _row()])
        assert plan.skipped == [2]
        assert [e.row for e in plan.entries] == [3]

    def test_missing_hierarchy_name_is_row_error(self, reconciler):
        plan = reconciler.from_rows([_row(folder="")])
        assert plan.entries == []
        assert plan.errors[0].row == 2
        assert plan.errors[0].field == "Folder"

    def test_missing_list_kept_for_creation(self, reconciler):
        plan = reconciler.from_rows([_row(list_name="Brand New")])
        entry = plan.entries[0]
        assert (entry.program_id, entry.folder_id, entry.list_id) == (1, 10, None)
        assert entry.hierarchy_names == {"program": "Acme", "folder": "Design", "list": "Brand New"}
        ref = plan.unresolved[0]
        assert (ref.level, ref.reason) == ("list", "missing")

    def test_folder_lookup_scoped_to_program(self, sample_store):
        store = sample_store.with_node(Program(id=3, name="Initech"))
        plan = TabularReconciler(store, STATUSES).from_rows([_row(program="Initech", folder="Design")])
        entry = plan.entries[0]
        assert entry.program_id == 3
        assert entry.folder_id is None
        assert plan.unresolved[0].level == "folder"

    def test_ambiguous_names_are_reported_not_guessed(self):
        store = HierarchyStore.from_entities(
            programs=[Program(id=1, name="Acme"), Program(id=2, name="ACME")],
        )
        plan = TabularReconciler(store, STATUSES).from_rows([_row()])
        assert plan.entries == []
        ref = plan.unresolved[0]
        assert ref.ambiguous
        assert ref.candidates == [1, 2]
        assert plan.ambiguous_rows == [2]

    def test_status_and_priority_mapping(self, reconciler):
        plan = reconciler.from_rows([
            _row(Status="storyboard", Priority="HIGH"),
            _row(title="Second", Status="Not A Label"),
            _row(title="Third"),
        ])
        first, second, third = plan.entries
        assert (first.status, first.priority) == ("storyboard", "high")
        assert second.status == "Not A Label"
        assert (third.status, third.priority) == ("inactive", "medium")

    def test_bad_date_is_row_error(self, reconciler):
        plan = reconciler.from_rows([_row(**{"Due Date": "31/12/2025"}), _row(**{"Start Date": "2025-01-02"})])
        assert [e.row for e in plan.errors] == [2]
        assert plan.errors[0].field == "Due Date"
        assert plan.entries[0].start_date == "2025-01-02"

    def test_template_headers_accepted(self, reconciler):
        raw = {"Program *": "Acme", "Folder *": "Design", "List *": "Intro", "Title *": "Starred"}
        plan = reconciler.from_rows([raw])
        assert plan.entries[0].title == "Starred"
        assert normalize_header(" due date ") == "Due Date"
        assert normalize_header("Unknown") is None

    def test_export_then_import_resolves_every_row(self, reconciler, sample_store):
        plan = reconciler.from_rows(reconciler.to_rows())
        assert plan.errors == [] and plan.unresolved == []
        imported = sorted((e.title, e.list_id) for e in plan.entries)
        original = sorted((c.title, c.list_id) for c in sample_store.courses)
        assert imported == original
        statuses = {e.title: e.status for e in plan.entries}
        assert statuses["Welcome"] == "development"

    def test_blank_sheet_rows_do_not_shift_row_numbers(self, reconciler):
        wb = Workbook()
        ws = wb.active
        ws.append(HEADERS[:4])
        ws.append(["Acme", "Design", "Intro", "Good"])
        ws.append([None, None, None, None])
        ws.append([None, "Design", "Intro", "No program"])
        ws.append(["Acme", "Design", "Intro", None])
        buffer = io.BytesIO()
        wb.save(buffer)
        plan = reconciler.from_rows(spreadsheet.read_xlsx(buffer.getvalue()))
        assert [e.row for e in plan.entries] == [2]
        assert [e.row for e in plan.errors] == [4]
        assert plan.errors[0].field == "Program"
        assert plan.skipped == [5]

    def test_plan_summary(self, reconciler):
        plan = reconciler.from_rows([_row(), _row(list_name="Other"), _row(title="")])
        summary = plan.to_dict()["summary"]
        assert summary == {
            "entries": 2,
            "resolved": 1,
            "needs_creation": 1,
            "errors": 0,
            "ambiguous": 0,
            "skipped": 1,
        }


class TestTemplate:

    def test_template_rows_use_starred_headers(self, reconciler):
        rows = reconciler.template_rows()
        assert len(rows) == 2
        assert list(rows[0]) == TEMPLATE_HEADERS
        assert rows[0]["Status"] == "Development"

    def test_template_rows_import_cleanly(self, reconciler):
        plan = reconciler.from_rows(reconciler.template_rows())
        assert plan.errors == []
        assert len(plan.entries) == 2

    def test_instructions_list_statuses(self, reconciler):
        lines = reconciler.import_instructions()
        assert lines[0] == "INSTRUCTIONS FOR IMPORTING COURSES"
        assert any("Development, Storyboard, Inactive" in line for line in lines)
