"""Sibling ordering for folders (within a program) and lists (within a folder).

Every operation returns the complete sibling set renumbered 0..n-1 together
with one ``ReorderCommand`` for the whole parent, never partial updates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from coursetrack.models.hierarchy import CourseList, Folder, PositionUpdate, ReorderCommand
from coursetrack.utils.errors import BoundaryReached, ValidationError

logger = logging.getLogger(__name__)

Sibling = Union[Folder, CourseList]


@dataclass
class ReorderResult:
    siblings: List[Sibling]
    command: ReorderCommand


def _parent_of(node: Sibling):
    if isinstance(node, Folder):
        return "program", node.program_id
    if isinstance(node, CourseList):
        return "folder", node.folder_id
    raise ValidationError("siblings", f"Cannot order {type(node).__name__} entities")


def _ordered(siblings: Sequence[Sibling]) -> List[Sibling]:
    if not siblings:
        raise ValidationError("siblings", "Sibling list is empty")
    parents = {_parent_of(node) for node in siblings}
    if len(parents) != 1:
        raise ValidationError("siblings", "Siblings must share a single parent")
    ids = [node.id for node in siblings]
    if len(ids) != len(set(ids)):
        raise ValidationError("siblings", "Sibling ids must be unique")
    return sorted(siblings, key=lambda node: (node.position, node.id))


def _package(ordered: List[Sibling]) -> ReorderResult:
    parent_kind, parent_id = _parent_of(ordered[0])
    renumbered = [
        node.model_copy(update={"position": index}) for index, node in enumerate(ordered)
    ]
    command = ReorderCommand(
        parent_kind=parent_kind,
        parent_id=parent_id,
        orders=[PositionUpdate(id=node.id, position=node.position) for node in renumbered],
    )
    return ReorderResult(siblings=renumbered, command=command)


def move(siblings: Sequence[Sibling], node_id: int, direction: str) -> ReorderResult:
    """Swap ``node_id`` with its neighbour above or below.

    Raises :class:`BoundaryReached` when the node is already first (up) or
    last (down); the exception carries the siblings unchanged.
    """
    if direction not in ("up", "down"):
        raise ValidationError("direction", "Direction must be 'up' or 'down'")
    ordered = _ordered(siblings)
    ids = [node.id for node in ordered]
    if node_id not in ids:
        raise ValidationError("node_id", f"Node {node_id} is not among the siblings")
    index = ids.index(node_id)
    target = index - 1 if direction == "up" else index + 1
    if target < 0 or target >= len(ordered):
        raise BoundaryReached(node_id, direction, list(siblings))
    ordered[index], ordered[target] = ordered[target], ordered[index]
    logger.debug("Moved node %s %s (%d -> %d)", node_id, direction, index, target)
    return _package(ordered)


def reorder(siblings: Sequence[Sibling], ordered_ids: Sequence[int]) -> ReorderResult:
    """Apply an explicit full ordering; ids must match the siblings exactly."""
    by_id = {node.id: node for node in _ordered(siblings)}
    if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(by_id):
        raise ValidationError("ordered_ids", "Ordered IDs must match existing siblings exactly")
    return _package([by_id[node_id] for node_id in ordered_ids])


def compact(siblings: Sequence[Sibling]) -> ReorderResult:
    """Renumber siblings 0..n-1 keeping their current relative order."""
    return _package(_ordered(siblings))


def needs_compaction(siblings: Sequence[Sibling]) -> bool:
    positions = sorted(node.position for node in siblings)
    return positions != list(range(len(positions)))


def next_position(siblings: Sequence[Sibling]) -> int:
    """Position for a child appended after the existing siblings."""
    if not siblings:
        return 0
    return max(node.position for node in siblings) + 1


def insert(
    siblings: Sequence[Sibling], node: Sibling, position: Optional[int] = None
) -> ReorderResult:
    """Place ``node`` among ``siblings`` at ``position`` (appended when None).

    ``node`` must already carry the new parent id; any copy of it in
    ``siblings`` is ignored, so this also repositions within one parent.
    Positions past the end clamp to the end.
    """
    others = [sibling for sibling in siblings if sibling.id != node.id]
    ordered = _ordered(others) if others else []
    if ordered and _parent_of(ordered[0]) != _parent_of(node):
        raise ValidationError("siblings", "Siblings must share a single parent")
    if position is None or position > len(ordered):
        position = len(ordered)
    if position < 0:
        raise ValidationError("position", "Position must be zero or greater")
    ordered.insert(position, node)
    return _package(ordered)
