"""Expansion and selection state for one tree.

Each tree view owns its own ``ExpansionState`` instance; there is no
module-level state, so two trees open at once never interfere.
"""

from __future__ import annotations

import logging
from typing import Iterable

import networkx as nx

from reltree.cascade import CascadeCollapse

logger = logging.getLogger(__name__)


class ExpansionState:
    """Which node keys are expanded, plus at most one selected key.

    Expanding with a ``parent`` records a parent -> child edge so a later
    collapse can remove the exact subtree. Collapse always cascades.

    Example:
        >>> state = ExpansionState()
        >>> state.expand("Flight-1")
        >>> state.expand("fk-Aircraft-3-from-1", parent="Flight-1")
        >>> sorted(state.collapse("Flight-1"))
        ['Flight-1', 'fk-Aircraft-3-from-1']
        >>> len(state)
        0
    """

    def __init__(self) -> None:
        # key -> expansion sequence number
        self._expanded: dict[str, int] = {}
        self._sequence = 0
        self._edges = nx.DiGraph()
        self._selected: str | None = None

    # === Queries ===

    def is_expanded(self, key: str) -> bool:
        return key in self._expanded

    @property
    def expanded(self) -> frozenset[str]:
        """Snapshot of the expanded keys."""
        return frozenset(self._expanded)

    @property
    def selected(self) -> str | None:
        return self._selected

    def is_selected(self, key: str) -> bool:
        return self._selected is not None and self._selected == key

    def parents_of(self, key: str) -> set[str]:
        """Every recorded structural parent of ``key``."""
        if key not in self._edges:
            return set()
        return set(self._edges.predecessors(key))

    def parent_of(self, key: str) -> str | None:
        """The first recorded structural parent of ``key``, if any."""
        if key not in self._edges:
            return None
        return next(iter(self._edges.predecessors(key)), None)

    def __contains__(self, key: object) -> bool:
        return key in self._expanded

    def __len__(self) -> int:
        return len(self._expanded)

    def __repr__(self) -> str:
        return f"ExpansionState(expanded={len(self._expanded)}, selected={self._selected!r})"

    # === Mutations ===

    def expand(self, key: str, parent: str | Iterable[str] | None = None) -> None:
        """Mark ``key`` expanded. Idempotent.

        ``parent`` is the key of the tree node ``key`` was opened under, or
        every such key when the same key is shown in several places. Edges
        accumulate; earlier parents are kept.
        """
        if key not in self._expanded:
            self._sequence += 1
            self._expanded[key] = self._sequence
        parents = [parent] if isinstance(parent, str) else list(parent or ())
        for p in parents:
            if p != key:
                self._edges.add_edge(p, key)

    def _remove(self, key: str, descendants: set[str]) -> set[str]:
        removed = {key} | descendants
        for k in removed:
            self._expanded.pop(k, None)
        self._edges.remove_nodes_from([k for k in removed if k in self._edges])
        self._prune_edges()
        logger.debug("Collapsed %s (%d keys removed)", key, len(removed))
        return removed

    def collapse(self, key: str, *, spare_earlier: bool = False) -> set[str]:
        """Collapse ``key`` and everything opened beneath it.

        Args:
            spare_earlier: Keep keys that were already expanded before ``key``
                was opened and hang under it only by identity match. Used by
                ``toggle`` so that toggling twice gives back the earlier set.

        Returns:
            The set of keys removed (empty if ``key`` was not expanded).
        """
        if key not in self._expanded:
            return set()

        candidates = set(self._expanded)
        if spare_earlier:
            opened = self._expanded[key]
            linked = nx.descendants(self._edges, key) if key in self._edges else set()
            candidates -= {k for k, seq in self._expanded.items() if seq < opened and k not in linked}
        return self._remove(key, CascadeCollapse(candidates, self._edges).descendants(key))

    def toggle(self, key: str, parent: str | Iterable[str] | None = None) -> bool:
        """Expand if collapsed, cascade-collapse if expanded.

        Returns:
            True if the node is now expanded.
        """
        if key in self._expanded:
            self.collapse(key, spare_earlier=True)
            return False
        self.expand(key, parent=parent)
        return True

    def select(self, key: str) -> bool:
        """Toggle selection of ``key``; selecting a new key replaces the old one.

        Returns:
            True if ``key`` is now selected, False if it was deselected.
        """
        if self._selected == key:
            self._selected = None
            return False
        self._selected = key
        return True

    def set_selection(self, key: str | None) -> None:
        """Set the selection without toggling."""
        self._selected = key

    def clear_selection(self) -> None:
        self._selected = None

    def clear(self) -> None:
        """Forget all expansions, edges and the selection."""
        self._expanded.clear()
        self._sequence = 0
        self._edges.clear()
        self._selected = None

    def _prune_edges(self) -> None:
        """Drop edge-graph nodes that are neither expanded nor anchor an expanded key."""
        stale = [
            k
            for k in self._edges.nodes
            if k not in self._expanded and not any(s in self._expanded for s in self._edges.successors(k))
        ]
        self._edges.remove_nodes_from(stale)
