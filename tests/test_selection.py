"""
Tri-state selection tests
"""

import pytest

from coursetrack.models.hierarchy import Course, CourseList, NodeRef, TriState
from coursetrack.services.selection import SelectionEngine, include_new_child
from coursetrack.utils.errors import ValidationError

PROGRAM = NodeRef("program", 1)
DESIGN = NodeRef("folder", 10)
INTRO = NodeRef("list", 100)


@pytest.fixture
def engine(sample_store):
    return SelectionEngine(sample_store)


class TestToggle:

    def test_toggle_leaf_flips(self, engine):
        selection = engine.toggle(frozenset(), NodeRef("course", 1000))
        assert selection == {1000}
        assert engine.toggle(selection, NodeRef("course", 1000)) == frozenset()

    def test_toggle_folder_selects_every_leaf(self, engine):
        selection = engine.toggle(frozenset(), DESIGN)
        assert selection == {1000, 1001, 1002}
        assert engine.compute_state(selection, DESIGN) == TriState.CHECKED
        assert engine.compute_state(selection, PROGRAM) == TriState.INDETERMINATE

    def test_toggle_indeterminate_parent_selects_all(self, engine):
        selection = engine.toggle(frozenset({1000}), DESIGN)
        assert selection == {1000, 1001, 1002}

    def test_toggle_checked_parent_clears_subtree_only(self, engine):
        selection = engine.toggle(frozenset({1000, 1001, 1002, 1003}), DESIGN)
        assert selection == {1003}

    def test_toggle_twice_restores(self, engine):
        start = frozenset({1003})
        assert engine.toggle(engine.toggle(start, PROGRAM), PROGRAM) == frozenset()
        assert engine.toggle(engine.toggle(start, DESIGN), DESIGN) == start

    def test_empty_node_stays_unchecked(self, engine):
        archive = NodeRef("folder", 12)
        assert engine.toggle(frozenset({1000}), archive) == {1000}
        assert engine.compute_state(frozenset({1000}), archive) == TriState.UNCHECKED

    def test_unknown_node_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.toggle(frozenset(), NodeRef("folder", 999))


class TestStates:

    def test_states_match_compute_state(self, engine, sample_store):
        selection = frozenset({1000, 1003})
        states = engine.states(selection)
        for ref in sample_store.iter_refs():
            assert states[ref] == engine.compute_state(selection, ref)
        assert states[INTRO] == TriState.INDETERMINATE
        assert states[NodeRef("list", 102)] == TriState.CHECKED
        assert states[NodeRef("program", 2)] == TriState.UNCHECKED

    def test_parent_checked_iff_all_leaves_selected(self, engine, sample_store):
        everything = frozenset(sample_store.leaves(PROGRAM))
        states = engine.states(everything)
        assert states[PROGRAM] == TriState.CHECKED
        assert states[DESIGN] == TriState.CHECKED


class TestListLevelSelection:

    def test_list_leaves(self, sample_store):
        engine = SelectionEngine(sample_store, leaf_kind="list")
        selection = engine.toggle(frozenset(), DESIGN)
        assert selection == {100, 101}
        assert engine.selected_courses(selection) == [1000, 1001, 1002]

    def test_course_nodes_below_selectable_level(self, sample_store):
        engine = SelectionEngine(sample_store, leaf_kind="list")
        with pytest.raises(ValidationError):
            engine.toggle(frozenset(), NodeRef("course", 1000))

    def test_bad_leaf_kind(self, sample_store):
        with pytest.raises(ValidationError):
            SelectionEngine(sample_store, leaf_kind="folder")


class TestChildChanges:

    def test_prune_drops_deleted_leaves(self, sample_store):
        after = SelectionEngine(sample_store.without(INTRO))
        assert after.prune({1000, 1002, 4242}) == {1002}

    def test_new_child_joins_checked_parent(self, sample_store):
        selection = frozenset({1000, 1001})
        after = sample_store.with_node(Course(id=2000, title="New", list_id=100))
        result = include_new_child(selection, sample_store, after, NodeRef("course", 2000))
        assert result == {1000, 1001, 2000}
        assert SelectionEngine(after).compute_state(result, INTRO) == TriState.CHECKED

    def test_new_child_degrades_partial_parent(self, sample_store):
        selection = frozenset({1000})
        after = sample_store.with_node(Course(id=2000, title="New", list_id=100))
        result = include_new_child(selection, sample_store, after, NodeRef("course", 2000))
        assert result == selection
        assert SelectionEngine(after).compute_state(result, INTRO) == TriState.INDETERMINATE

    def test_new_list_under_checked_folder_is_included(self, sample_store):
        selection = frozenset({1000, 1001, 1002})
        after = sample_store.with_node(CourseList(id=103, name="Extra", folder_id=10, position=2))
        after = after.with_node(Course(id=2001, title="Extra course", list_id=103))
        result = include_new_child(selection, sample_store, after, NodeRef("list", 103))
        assert result == {1000, 1001, 1002, 2001}
        assert SelectionEngine(after).compute_state(result, DESIGN) == TriState.CHECKED
