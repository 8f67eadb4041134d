"""
Error taxonomy shared by the hierarchy engines.

Engines fail closed: they raise (or collect) one of these types and never
emit a partial result alongside them.
"""

from typing import Any, Dict, List, Optional


class ValidationError(Exception):
    """Bad or missing input; nothing was applied."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


class BoundaryReached(Exception):
    """Reorder attempted past the first/last sibling.

    This is a no-op signal rather than a failure. ``siblings`` holds the
    unchanged sibling sequence so callers can render it as-is.
    """

    def __init__(self, node_id: int, direction: str, siblings: Optional[list] = None):
        super().__init__(f"node {node_id} cannot move {direction}")
        self.node_id = node_id
        self.direction = direction
        self.siblings = list(siblings or [])


class RowError:
    """Per-row import problem, collected into the batch report."""

    def __init__(self, row: int, field: str, message: str, title: Optional[str] = None):
        self.row = row
        self.field = field
        self.message = message
        self.title = title

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "field": self.field,
            "message": self.message,
            "title": self.title,
        }

    def __repr__(self) -> str:
        return f"RowError(row={self.row}, field={self.field!r}, message={self.message!r})"


class UnresolvedReference:
    """Import row whose Program/Folder/List name has no unique match.

    ``reason`` is ``"missing"`` when nothing matched and ``"ambiguous"`` when
    more than one existing node matched case-insensitively.
    """

    def __init__(
        self,
        row: int,
        level: str,
        name: str,
        reason: str = "missing",
        candidates: Optional[List[int]] = None,
    ):
        self.row = row
        self.level = level
        self.name = name
        self.reason = reason
        self.candidates = list(candidates or [])

    @property
    def ambiguous(self) -> bool:
        return self.reason == "ambiguous"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "level": self.level,
            "name": self.name,
            "reason": self.reason,
            "candidates": self.candidates,
        }

    def __repr__(self) -> str:
        return (
            f"UnresolvedReference(row={self.row}, level={self.level!r}, "
            f"name={self.name!r}, reason={self.reason!r})"
        )
