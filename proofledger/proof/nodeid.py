"""
Hierarchical node identifiers.

A node ID is a dotted sequence of positive integers rooted at ``1``
(``1``, ``1.2``, ``1.2.3``). The dotted text is the only form that
crosses the API boundary; internally IDs are immutable tuples.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import total_ordering

from .errors import InvalidNodeIDError


ROOT_SEGMENT = 1


@total_ordering
@dataclass(frozen=True)
class NodeID:
    """Immutable dotted identifier for a node in the proof tree."""

    parts: tuple[int, ...]

    def __post_init__(self) -> None:
        if not self.parts:
            raise InvalidNodeIDError("node ID must have at least one segment")
        if self.parts[0] != ROOT_SEGMENT:
            raise InvalidNodeIDError(f"node ID must start at root 1, got {self.parts[0]}")
        for part in self.parts:
            if isinstance(part, bool) or not isinstance(part, int) or part < 1:
                raise InvalidNodeIDError(f"node ID segments must be positive integers: {self.parts!r}")

    @classmethod
    def parse(cls, text: str) -> NodeID:
        """Parse the dotted form. Raises InvalidNodeIDError on malformed input."""
        if not isinstance(text, str) or text == "":
            raise InvalidNodeIDError("node ID cannot be empty")

        parts: list[int] = []
        for segment in text.split("."):
            if segment == "":
                raise InvalidNodeIDError(f"invalid node ID {text!r}: empty segment")
            # str.isdigit() accepts non-ASCII digits; keep to 0-9.
            if not (segment.isascii() and segment.isdigit()):
                raise InvalidNodeIDError(f"invalid node ID {text!r}: segment {segment!r} is not a number")
            # Leading zeros would make "1.01" and "1.1" the same node.
            if len(segment) > 1 and segment.startswith("0"):
                raise InvalidNodeIDError(f"invalid node ID {text!r}: segment {segment!r} has a leading zero")
            value = int(segment)
            if value < 1:
                raise InvalidNodeIDError(f"invalid node ID {text!r}: segments must be positive")
            parts.append(value)

        if parts[0] != ROOT_SEGMENT:
            raise InvalidNodeIDError(f"invalid node ID {text!r}: first segment must be 1")
        return cls(tuple(parts))

    @classmethod
    def root(cls) -> NodeID:
        return cls((ROOT_SEGMENT,))

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)

    def __repr__(self) -> str:
        return f"NodeID({str(self)!r})"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, NodeID):
            return NotImplemented
        return self.parts < other.parts

    @property
    def depth(self) -> int:
        return len(self.parts)

    @property
    def is_root(self) -> bool:
        return len(self.parts) == 1

    def child(self, n: int) -> NodeID:
        """Return the ID of this node's n-th child."""
        return NodeID(self.parts + (n,))

    def parent(self) -> NodeID | None:
        """Return the parent ID, or None for the root."""
        if self.is_root:
            return None
        return NodeID(self.parts[:-1])

    def is_ancestor_of(self, other: NodeID) -> bool:
        """True if this node is a strict ancestor of ``other``."""
        return len(self.parts) < len(other.parts) and other.parts[: len(self.parts)] == self.parts


def parse_node_id(value: NodeID | str) -> NodeID:
    """Accept either a NodeID or its dotted text form."""
    if isinstance(value, NodeID):
        return value
    return NodeID.parse(value)


def format_node_id(node_id: NodeID) -> str:
    return str(node_id)
