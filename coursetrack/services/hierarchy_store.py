"""In-memory normalized representation of the content hierarchy.

The store is an arena: entities live in one dict per kind, keyed by id, and a
parent-indexed adjacency map (``NodeRef -> [child NodeRef]``) gives subtree
walks proportional to the subtree rather than the whole tree. Updates return
a new store; a store instance is never mutated after construction.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from coursetrack.models.hierarchy import (
    Course,
    CourseList,
    Folder,
    NodeRef,
    Program,
    ReorderCommand,
)
from coursetrack.utils.errors import ValidationError

logger = logging.getLogger(__name__)

Entity = Union[Program, Folder, CourseList, Course]

_KIND_BY_TYPE = {
    Program: "program",
    Folder: "folder",
    CourseList: "list",
    Course: "course",
}
_DEPTH = {"program": 0, "folder": 1, "list": 2, "course": 3}


def kind_of(entity: Entity) -> str:
    return _KIND_BY_TYPE[type(entity)]


def ref_of(entity: Entity) -> NodeRef:
    return NodeRef(kind_of(entity), entity.id)


def parent_ref_of(entity: Entity) -> Optional[NodeRef]:
    if isinstance(entity, Folder):
        return NodeRef("program", entity.program_id)
    if isinstance(entity, CourseList):
        return NodeRef("folder", entity.folder_id)
    if isinstance(entity, Course) and entity.list_id is not None:
        return NodeRef("list", entity.list_id)
    return None


class HierarchyStore:
    def __init__(
        self,
        programs: Iterable[Program] = (),
        folders: Iterable[Folder] = (),
        lists: Iterable[CourseList] = (),
        courses: Iterable[Course] = (),
    ):
        self._nodes: Dict[str, Dict[int, Entity]] = {
            "program": {p.id: p for p in programs},
            "folder": {f.id: f for f in folders},
            "list": {l.id: l for l in lists},
            "course": {c.id: c for c in courses},
        }
        self._children: Dict[NodeRef, List[NodeRef]] = {}
        for kind in ("folder", "list", "course"):
            for entity in self._nodes[kind].values():
                parent = parent_ref_of(entity)
                if parent is None or parent.id not in self._nodes[parent.kind]:
                    continue
                self._children.setdefault(parent, []).append(ref_of(entity))
        for parent, refs in self._children.items():
            refs.sort(key=self._sort_key)

    @classmethod
    def from_entities(cls, programs=(), folders=(), lists=(), courses=()) -> "HierarchyStore":
        return cls(programs, folders, lists, courses)

    def _sort_key(self, ref: NodeRef):
        entity = self._nodes[ref.kind][ref.id]
        return (getattr(entity, "position", 0), entity.id)

    # Lookups ---------------------------------------------------------------
    def __contains__(self, ref: NodeRef) -> bool:
        return ref.id in self._nodes.get(ref.kind, {})

    def get(self, ref: NodeRef) -> Entity:
        try:
            return self._nodes[ref.kind][ref.id]
        except KeyError:
            raise KeyError(f"Unknown node {ref}") from None

    def find(self, ref: NodeRef) -> Optional[Entity]:
        return self._nodes.get(ref.kind, {}).get(ref.id)

    @property
    def programs(self) -> List[Program]:
        return sorted(self._nodes["program"].values(), key=lambda p: p.id)

    @property
    def folders(self) -> List[Folder]:
        return sorted(self._nodes["folder"].values(), key=lambda f: (f.program_id, f.position, f.id))

    @property
    def lists(self) -> List[CourseList]:
        return sorted(self._nodes["list"].values(), key=lambda l: (l.folder_id, l.position, l.id))

    @property
    def courses(self) -> List[Course]:
        return sorted(self._nodes["course"].values(), key=lambda c: c.id)

    def iter_refs(self) -> Iterator[NodeRef]:
        for kind in ("program", "folder", "list", "course"):
            yield from self.iter_refs_of(kind)

    def iter_refs_of(self, kind: str) -> Iterator[NodeRef]:
        for node_id in sorted(self._nodes[kind]):
            yield NodeRef(kind, node_id)

    # Tree walks ------------------------------------------------------------
    def parent(self, ref: NodeRef) -> Optional[NodeRef]:
        parent = parent_ref_of(self.get(ref))
        if parent is None or parent not in self:
            return None
        return parent

    def ancestors(self, ref: NodeRef) -> List[NodeRef]:
        """Ancestors nearest-first."""
        chain = []
        parent = self.parent(ref)
        while parent is not None:
            chain.append(parent)
            parent = self.parent(parent)
        return chain

    def children(self, ref: NodeRef) -> List[NodeRef]:
        return list(self._children.get(ref, []))

    def descendants(self, ref: NodeRef) -> List[NodeRef]:
        """All descendants in pre-order, excluding ``ref`` itself."""
        out: List[NodeRef] = []
        stack = list(reversed(self._children.get(ref, [])))
        while stack:
            current = stack.pop()
            out.append(current)
            stack.extend(reversed(self._children.get(current, [])))
        return out

    def leaves(self, ref: NodeRef, leaf_kind: str = "course") -> List[int]:
        """Ids of ``leaf_kind`` nodes at or under ``ref``."""
        if ref.kind == leaf_kind:
            return [ref.id]
        if _DEPTH[ref.kind] > _DEPTH[leaf_kind]:
            return []
        out: List[int] = []
        stack = [ref]
        while stack:
            current = stack.pop()
            for child in self._children.get(current, []):
                if child.kind == leaf_kind:
                    out.append(child.id)
                else:
                    stack.append(child)
        return out

    def folders_of(self, program_id: int) -> List[Folder]:
        return [self._nodes["folder"][r.id] for r in self._children.get(NodeRef("program", program_id), [])]

    def lists_of(self, folder_id: int) -> List[CourseList]:
        return [self._nodes["list"][r.id] for r in self._children.get(NodeRef("folder", folder_id), [])]

    def courses_of(self, list_id: int) -> List[Course]:
        return [self._nodes["course"][r.id] for r in self._children.get(NodeRef("list", list_id), [])]

    def siblings_of(self, ref: NodeRef) -> List[Entity]:
        parent = self.parent(ref)
        if parent is None:
            return [self.get(ref)]
        return [self.get(r) for r in self._children.get(parent, [])]

    # Course back-references ------------------------------------------------
    def list_for_course(self, course: Course) -> Optional[CourseList]:
        if course.list_id is None:
            return None
        return self._nodes["list"].get(course.list_id)

    def folder_for_course(self, course: Course) -> Optional[Folder]:
        folder = None
        if course.folder_id is not None:
            folder = self._nodes["folder"].get(course.folder_id)
        if folder is None:
            course_list = self.list_for_course(course)
            if course_list is not None:
                folder = self._nodes["folder"].get(course_list.folder_id)
        return folder

    def program_for_course(self, course: Course) -> Optional[Program]:
        program = None
        if course.program_id is not None:
            program = self._nodes["program"].get(course.program_id)
        if program is None:
            folder = self.folder_for_course(course)
            if folder is not None:
                program = self._nodes["program"].get(folder.program_id)
        return program

    # Name lookups (case-insensitive, exact) --------------------------------
    def find_programs_by_name(self, name: str) -> List[Program]:
        key = name.strip().lower()
        return [p for p in self.programs if p.name.strip().lower() == key]

    def find_folders_by_name(self, program_id: int, name: str) -> List[Folder]:
        key = name.strip().lower()
        return [f for f in self.folders_of(program_id) if f.name.strip().lower() == key]

    def find_lists_by_name(self, folder_id: int, name: str) -> List[CourseList]:
        key = name.strip().lower()
        return [l for l in self.lists_of(folder_id) if l.name.strip().lower() == key]

    # Copy-on-write updates -------------------------------------------------
    def _rebuild(self, nodes: Dict[str, Dict[int, Entity]]) -> "HierarchyStore":
        return HierarchyStore(
            nodes["program"].values(),
            nodes["folder"].values(),
            nodes["list"].values(),
            nodes["course"].values(),
        )

    def _copy_nodes(self) -> Dict[str, Dict[int, Entity]]:
        return {kind: dict(by_id) for kind, by_id in self._nodes.items()}

    def with_node(self, entity: Entity) -> "HierarchyStore":
        """Return a store with ``entity`` inserted or replaced."""
        nodes = self._copy_nodes()
        nodes[kind_of(entity)][entity.id] = entity
        return self._rebuild(nodes)

    def without(self, ref: NodeRef) -> "HierarchyStore":
        """Return a store with ``ref`` and its whole subtree removed."""
        if ref not in self:
            return self
        nodes = self._copy_nodes()
        for doomed in [ref, *self.descendants(ref)]:
            nodes[doomed.kind].pop(doomed.id, None)
        return self._rebuild(nodes)

    def with_positions(self, command: ReorderCommand) -> "HierarchyStore":
        kind = command.child_kind
        nodes = self._copy_nodes()
        for update in command.orders:
            entity = nodes[kind].get(update.id)
            if entity is None:
                raise KeyError(f"Unknown node {kind}:{update.id}")
            nodes[kind][update.id] = entity.model_copy(update={"position": update.position})
        return self._rebuild(nodes)

    # Invariants ------------------------------------------------------------
    def position_violations(self) -> List[NodeRef]:
        """Parents whose folder/list children are not positioned 0..n-1."""
        bad = []
        for parent, refs in sorted(self._children.items()):
            if parent.kind not in ("program", "folder"):
                continue
            positions = sorted(self.get(r).position for r in refs)
            if positions != list(range(len(refs))):
                bad.append(parent)
        return bad

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "programs": [p.model_dump(mode="json") for p in self.programs],
            "folders": [f.model_dump(mode="json") for f in self.folders],
            "lists": [l.model_dump(mode="json") for l in self.lists],
            "courses": [c.model_dump(mode="json") for c in self.courses],
        }

    def __repr__(self) -> str:
        counts = ", ".join(f"{k}s={len(v)}" for k, v in self._nodes.items())
        return f"HierarchyStore({counts})"


# Normalization ---------------------------------------------------------------

_COLLECTIONS = {
    "programs": Program,
    "folders": Folder,
    "lists": CourseList,
    "courses": Course,
}
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _unwrap(payload: Any) -> Dict[str, Any]:
    # Responses arrive as {...}, {"data": {...}} or {"data": {"data": {...}}}
    for _ in range(3):
        if not isinstance(payload, dict):
            break
        if any(key in payload for key in _COLLECTIONS):
            return payload
        payload = payload.get("data")
    raise ValidationError("payload", "No hierarchy collections found in payload")


def _coerce(model: type, raw: Any, field: str) -> BaseModel:
    if not isinstance(raw, dict):
        raise ValidationError(field, "Entry must be an object")
    data = {_snake(k): v for k, v in raw.items()}
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"{field}.{loc}" if loc else field, first.get("msg", "Invalid value")) from exc


def normalize_hierarchy(payload: Any) -> HierarchyStore:
    """Convert a raw hierarchy payload into a :class:`HierarchyStore`.

    This is the only place that tolerates the wrapped and camelCase shapes
    produced by the HTTP layer; everything downstream sees canonical models.
    """
    body = _unwrap(payload)
    parsed: Dict[str, List[BaseModel]] = {}
    for key, model in _COLLECTIONS.items():
        items = body.get(key) or []
        if isinstance(items, dict) and key in items:
            items = items[key]
        if not isinstance(items, list):
            raise ValidationError(key, "Collection must be an array")
        parsed[key] = [_coerce(model, raw, f"{key}[{i}]") for i, raw in enumerate(items)]
    logger.debug(
        "Normalized hierarchy payload: %s",
        {key: len(items) for key, items in parsed.items()},
    )
    return HierarchyStore(
        parsed["programs"], parsed["folders"], parsed["lists"], parsed["courses"]
    )
