"""Tri-state selection over the content hierarchy.

Ground truth is a set of selected leaf ids. Checked/indeterminate flags for
programs, folders and lists are recomputed from that set and the hierarchy
shape on demand, so they can never drift from the leaves.
"""
from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, List

from coursetrack.models.hierarchy import NodeRef, TriState
from coursetrack.services.hierarchy_store import HierarchyStore
from coursetrack.utils.errors import ValidationError

logger = logging.getLogger(__name__)

Selection = FrozenSet[int]
LEAF_KINDS = ("list", "course")
_KINDS_ABOVE = {
    "list": ("program", "folder"),
    "course": ("program", "folder", "list"),
}


class SelectionEngine:
    """Selection rules for one hierarchy snapshot.

    ``leaf_kind`` is the user-selectable level: ``"course"`` for bulk
    operations, ``"list"`` for the export scope picker.
    """

    def __init__(self, store: HierarchyStore, leaf_kind: str = "course"):
        if leaf_kind not in LEAF_KINDS:
            raise ValidationError("leaf_kind", f"Must be one of: {', '.join(LEAF_KINDS)}")
        self.store = store
        self.leaf_kind = leaf_kind

    def _check_ref(self, ref: NodeRef) -> None:
        if ref not in self.store:
            raise ValidationError("node", f"Unknown node {ref}")
        if ref.kind != self.leaf_kind and ref.kind not in _KINDS_ABOVE[self.leaf_kind]:
            raise ValidationError(
                "node", f"{ref.kind} nodes are below the selectable level ({self.leaf_kind})"
            )

    def leaves(self, ref: NodeRef) -> List[int]:
        return self.store.leaves(ref, self.leaf_kind)

    def compute_state(self, selection: Iterable[int], ref: NodeRef) -> TriState:
        self._check_ref(ref)
        selected = selection if isinstance(selection, (set, frozenset)) else set(selection)
        leaves = self.leaves(ref)
        if not leaves:
            return TriState.UNCHECKED
        hits = sum(1 for leaf in leaves if leaf in selected)
        if hits == 0:
            return TriState.UNCHECKED
        if hits == len(leaves):
            return TriState.CHECKED
        return TriState.INDETERMINATE

    def set_checked(self, selection: Iterable[int], ref: NodeRef, checked: bool) -> Selection:
        self._check_ref(ref)
        leaves = self.leaves(ref)
        if checked:
            return frozenset(selection) | frozenset(leaves)
        return frozenset(selection) - frozenset(leaves)

    def toggle(self, selection: Iterable[int], ref: NodeRef) -> Selection:
        """Flip a leaf, or cascade a parent to all-selected / all-cleared.

        A parent that is not fully checked (unchecked or indeterminate) selects
        its whole subtree; a checked parent clears it. A node with no leaves
        stays unchecked and the selection is returned unchanged.
        """
        self._check_ref(ref)
        current = frozenset(selection)
        if ref.kind == self.leaf_kind:
            if ref.id in current:
                return current - {ref.id}
            return current | {ref.id}
        if not self.leaves(ref):
            logger.debug("Toggle on empty node %s ignored", ref)
            return current
        target = self.compute_state(current, ref) != TriState.CHECKED
        return self.set_checked(current, ref, target)

    def states(self, selection: Iterable[int]) -> Dict[NodeRef, TriState]:
        """State of every selectable node, computed bottom-up in one pass."""
        selected = frozenset(selection)
        counts: Dict[NodeRef, List[int]] = {}
        kinds = (*_KINDS_ABOVE[self.leaf_kind], self.leaf_kind)
        for kind in reversed(kinds):
            for ref in self.store.iter_refs_of(kind):
                if kind == self.leaf_kind:
                    counts[ref] = [1 if ref.id in selected else 0, 1]
                    continue
                hit = total = 0
                for child in self.store.children(ref):
                    child_hit, child_total = counts.get(child, (0, 0))
                    hit += child_hit
                    total += child_total
                counts[ref] = [hit, total]
        out: Dict[NodeRef, TriState] = {}
        for ref, (hit, total) in counts.items():
            if total == 0 or hit == 0:
                out[ref] = TriState.UNCHECKED
            elif hit == total:
                out[ref] = TriState.CHECKED
            else:
                out[ref] = TriState.INDETERMINATE
        return out

    def prune(self, selection: Iterable[int]) -> Selection:
        """Drop selected ids that no longer exist in the hierarchy."""
        return frozenset(
            leaf for leaf in selection if NodeRef(self.leaf_kind, leaf) in self.store
        )

    def selected_courses(self, selection: Iterable[int]) -> List[int]:
        """Course ids covered by the selection, ascending."""
        if self.leaf_kind == "course":
            return sorted(self.prune(selection))
        out = set()
        for leaf in self.prune(selection):
            out.update(self.store.leaves(NodeRef(self.leaf_kind, leaf), "course"))
        return sorted(out)


def include_new_child(
    selection: Iterable[int],
    before: HierarchyStore,
    after: HierarchyStore,
    child: NodeRef,
    leaf_kind: str = "course",
) -> Selection:
    """Carry a parent's checked state over to a newly created child.

    The nearest ancestor that had any leaves before the change decides: if it
    was checked, the child's leaves join the selection so the ancestor stays
    checked. Otherwise the selection is unchanged and the ancestor reports
    indeterminate once the child has leaves.
    """
    current = frozenset(selection)
    previous = SelectionEngine(before, leaf_kind)
    for ancestor in after.ancestors(child):
        if ancestor not in before or not previous.leaves(ancestor):
            continue
        if previous.compute_state(current, ancestor) == TriState.CHECKED:
            return current | frozenset(after.leaves(child, leaf_kind))
        break
    return current
