"""
HierarchyStore tests: walks, back-references, copy-on-write updates and
payload normalization.
"""

import pytest

from coursetrack.models.hierarchy import Course, Folder, NodeRef, PositionUpdate, ReorderCommand
from coursetrack.services.hierarchy_store import HierarchyStore, normalize_hierarchy
from coursetrack.utils.errors import ValidationError


class TestWalks:

    def test_children_follow_position_order(self, sample_store):
        children = sample_store.children(NodeRef("program", 1))
        assert children == [NodeRef("folder", 10), NodeRef("folder", 11), NodeRef("folder", 12)]

    def test_leaves_under_program(self, sample_store):
        assert sorted(sample_store.leaves(NodeRef("program", 1))) == [1000, 1001, 1002, 1003]
        assert sample_store.leaves(NodeRef("program", 2)) == []

    def test_leaves_at_list_level(self, sample_store):
        assert sorted(sample_store.leaves(NodeRef("program", 1), "list")) == [100, 101, 102]
        assert sample_store.leaves(NodeRef("course", 1000), "list") == []

    def test_ancestors_nearest_first(self, sample_store):
        assert sample_store.ancestors(NodeRef("course", 1002)) == [
            NodeRef("list", 101),
            NodeRef("folder", 10),
            NodeRef("program", 1),
        ]

    def test_descendants_pre_order(self, sample_store):
        assert sample_store.descendants(NodeRef("folder", 10)) == [
            NodeRef("list", 100),
            NodeRef("course", 1000),
            NodeRef("course", 1001),
            NodeRef("list", 101),
            NodeRef("course", 1002),
        ]

    def test_get_unknown_raises_key_error(self, sample_store):
        with pytest.raises(KeyError):
            sample_store.get(NodeRef("folder", 999))
        assert sample_store.find(NodeRef("folder", 999)) is None


class TestCourseBackReferences:

    def test_folder_and_program_resolved_through_list(self, sample_store):
        course = sample_store.get(NodeRef("course", 1000))
        assert sample_store.folder_for_course(course).id == 10
        assert sample_store.program_for_course(course).id == 1

    def test_stored_back_references_win(self, sample_store):
        course = Course(id=5, title="Moved", list_id=100, folder_id=11, program_id=1)
        store = sample_store.with_node(course)
        assert store.folder_for_course(course).id == 11

    def test_unresolvable_course(self, sample_store):
        orphan = Course(id=6, title="Orphan", list_id=999)
        assert sample_store.list_for_course(orphan) is None
        assert sample_store.folder_for_course(orphan) is None
        assert sample_store.program_for_course(orphan) is None


class TestNameLookups:

    def test_case_insensitive_and_scoped(self, sample_store):
        assert [p.id for p in sample_store.find_programs_by_name("  acme ")] == [1]
        assert [f.id for f in sample_store.find_folders_by_name(1, "DESIGN")] == [10]
        assert sample_store.find_folders_by_name(2, "design") == []
        assert [l.id for l in sample_store.find_lists_by_name(10, "advanced")] == [101]


class TestUpdates:

    def test_without_cascades_and_leaves_original_untouched(self, sample_store):
        pruned = sample_store.without(NodeRef("folder", 10))
        assert NodeRef("list", 100) not in pruned
        assert NodeRef("course", 1002) not in pruned
        assert NodeRef("course", 1003) in pruned
        assert NodeRef("course", 1000) in sample_store

    def test_with_positions(self, sample_store):
        command = ReorderCommand(
            parent_kind="program",
            parent_id=1,
            orders=[
                PositionUpdate(id=12, position=0),
                PositionUpdate(id=10, position=1),
                PositionUpdate(id=11, position=2),
            ],
        )
        store = sample_store.with_positions(command)
        assert [f.id for f in store.folders_of(1)] == [12, 10, 11]
        assert store.position_violations() == []

    def test_position_violations(self, sample_store):
        store = sample_store.with_node(Folder(id=13, name="Gap", program_id=1, position=7))
        assert store.position_violations() == [NodeRef("program", 1)]


class TestNormalize:

    def test_wrapped_camel_case_payload(self):
        payload = {
            "data": {
                "data": {
                    "programs": [{"id": 1, "name": "Acme"}],
                    "folders": [{"id": 2, "name": "F", "programId": 1, "position": 0}],
                    "lists": [{"id": 3, "name": "L", "folderId": 2}],
                    "courses": [{"id": 4, "title": "C", "listId": 3, "dueDate": "2025-01-31", "assigneeIds": [3, 1, 3]}],
                }
            }
        }
        store = normalize_hierarchy(payload)
        course = store.get(NodeRef("course", 4))
        assert course.list_id == 3
        assert course.assignee_ids == [1, 3]
        assert store.leaves(NodeRef("program", 1)) == [4]

    def test_plain_payload_equals_store(self, sample_store):
        store = normalize_hierarchy(sample_store.to_dict())
        assert store.to_dict() == sample_store.to_dict()

    def test_rejects_missing_collections(self):
        with pytest.raises(ValidationError) as exc:
            normalize_hierarchy({"data": {"items": []}})
        assert exc.value.field == "payload"

    def test_rejects_bad_entry(self):
        with pytest.raises(ValidationError) as exc:
            normalize_hierarchy({"courses": [{"id": 1, "title": "C", "priority": "urgent"}]})
        assert exc.value.field.startswith("courses[0]")
