"""Cascading collapse: find every expansion opened beneath a node.

Two sources of structure are combined:

1. Structural edges. When a node is expanded through the tree, the keys of
   the tree nodes it was opened under are recorded as parent -> child edges
   in a ``networkx.DiGraph``. A key shown in several places keeps one edge
   per place.
2. The identity grammar. Every expanded key is matched by its anchor fields:
   an FK key opened *from* the anchor id, or a back-reference group/row key
   opened *in* the anchor record. This also covers keys expanded without a
   recorded parent (pre-expanded FK levels, keys set programmatically).

The grammar pass runs to a fixed point, since a removed child may itself
anchor grandchildren.
"""

from __future__ import annotations

from typing import Iterable

import networkx as nx

from reltree.identity import (
    BackrefGroupNode,
    BackrefRowNode,
    FkNode,
    NodeRef,
    RecordRef,
    try_parse_identifier,
)


def _is_direct_child(parent: NodeRef, child: NodeRef) -> bool:
    """Decide whether ``child`` was opened using ``parent`` as its anchor."""
    if isinstance(parent, BackrefGroupNode):
        # A group's children are exactly its own rows.
        return (
            isinstance(child, BackrefRowNode)
            and child.entity == parent.entity
            and child.parent == parent.parent
        )

    anchor: RecordRef = parent.target
    if isinstance(child, FkNode):
        return child.parent_id == anchor.id
    if isinstance(child, (BackrefRowNode, BackrefGroupNode)):
        return child.parent == anchor
    return False


class CascadeCollapse:
    """Computes the descendants of a collapsing node within an expanded set.

    Args:
        expanded: Currently expanded keys
        edges: Optional parent -> child graph of keys recorded at expand time

    Example:
        >>> cascade = CascadeCollapse({"Flight-1", "fk-Aircraft-3-from-1", "fk-Manufacturer-7-from-3"})
        >>> sorted(cascade.descendants("Flight-1"))
        ['fk-Aircraft-3-from-1', 'fk-Manufacturer-7-from-3']
    """

    def __init__(self, expanded: Iterable[str], edges: nx.DiGraph | None = None) -> None:
        self._expanded = set(expanded)
        self._edges = edges

    def _structural_descendants(self, key: str) -> set[str]:
        if self._edges is None or key not in self._edges:
            return set()
        return nx.descendants(self._edges, key) & self._expanded

    def _parsed(self) -> dict[str, NodeRef]:
        """Expanded keys, parsed. Malformed keys are skipped."""
        parsed: dict[str, NodeRef] = {}
        for key in self._expanded:
            node = try_parse_identifier(key)
            if node is not None:
                parsed[key] = node
        return parsed

    def descendants(self, key: str) -> set[str]:
        """All expanded keys opened beneath ``key`` (``key`` itself excluded)."""
        found = self._structural_descendants(key)

        candidates = self._parsed()
        candidates.pop(key, None)
        for k in found:
            candidates.pop(k, None)
        frontier = [key, *found]
        while frontier:
            current = try_parse_identifier(frontier.pop())
            if current is None:
                continue
            matched = [k for k, node in candidates.items() if _is_direct_child(current, node)]
            for child_key in matched:
                del candidates[child_key]
                found.add(child_key)
                frontier.append(child_key)
                for sub in self._structural_descendants(child_key) - found:
                    candidates.pop(sub, None)
                    found.add(sub)
                    frontier.append(sub)

        found.discard(key)
        return found


def collect_descendants(
    key: str,
    expanded: Iterable[str],
    edges: nx.DiGraph | None = None,
) -> set[str]:
    """Functional shortcut for ``CascadeCollapse(expanded, edges).descendants(key)``."""
    return CascadeCollapse(expanded, edges).descendants(key)
