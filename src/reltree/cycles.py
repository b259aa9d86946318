"""Reference-cycle detection along a traversal path.

A path is the chain of records from the tree root down to the current node.
Descending into a record that already occurs anywhere on that chain would
loop forever, so the renderer stops there and draws a terminal marker.
Detection is per branch: sibling branches never share path state.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterator

from reltree.identity import RecordRef


class TraversalPath:
    """Immutable ordered chain of ``RecordRef`` with O(1) membership.

    Example:
        >>> path = TraversalPath.seed(RecordRef("Flight", 1))
        >>> path = path.extend(RecordRef("Aircraft", 3))
        >>> RecordRef("Flight", "1") in path
        True
    """

    __slots__ = ("_refs", "_members")

    def __init__(self, refs: tuple[RecordRef, ...] = ()) -> None:
        self._refs = refs
        self._members = frozenset(refs)

    @classmethod
    def seed(cls, root: RecordRef) -> TraversalPath:
        """Start a path at the tree root."""
        return cls((root,))

    def extend(self, ref: RecordRef) -> TraversalPath:
        """Return a new path with ``ref`` appended. The original is unchanged."""
        return TraversalPath((*self._refs, ref))

    @property
    def tail(self) -> RecordRef | None:
        return self._refs[-1] if self._refs else None

    def __contains__(self, ref: object) -> bool:
        return ref in self._members

    def __iter__(self) -> Iterator[RecordRef]:
        return iter(self._refs)

    def __len__(self) -> int:
        return len(self._refs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TraversalPath):
            return NotImplemented
        return self._refs == other._refs

    def __hash__(self) -> int:
        return hash(self._refs)

    def __repr__(self) -> str:
        return "TraversalPath(" + " > ".join(str(r) for r in self._refs) + ")"


def would_cycle(path: TraversalPath, candidate: RecordRef) -> bool:
    """True if ``candidate`` already occurs anywhere on ``path``."""
    return candidate in path


class CycleDecision(str, Enum):
    """What the renderer should do with a candidate node."""

    PROCEED = "proceed"  # not a cycle: render normally
    MARK = "mark"        # cycle: render a terminal marker
    OMIT = "omit"        # cycle: leave it out of the tree


class CycleGuard:
    """Applies the session's cycle display policy to ``would_cycle``.

    Args:
        show_cycles: If True, a detected cycle renders as a compact marker;
            otherwise it is omitted. Traversal stops there either way.
    """

    def __init__(self, show_cycles: bool = True) -> None:
        self.show_cycles = show_cycles

    def check(self, path: TraversalPath, candidate: RecordRef) -> CycleDecision:
        if not would_cycle(path, candidate):
            return CycleDecision.PROCEED
        return CycleDecision.MARK if self.show_cycles else CycleDecision.OMIT
