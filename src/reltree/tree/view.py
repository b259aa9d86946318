"""View tree: the abstract output of a render pass.

A ``ViewTree`` is a nested structure of typed node descriptors. Hosts paint
it however they like; nothing here assumes a UI surface.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator

if TYPE_CHECKING:
    from reltree.tree.config import RenderConfig


class ViewNodeType(str, Enum):
    """Types of nodes in a view tree."""
    ROOT = "root"                    # Record from the root set
    FK = "fk"                        # Outbound foreign-key reference
    BACKREF_GROUP = "backref-group"  # Records pointing at the parent
    BACKREF_ROW = "backref-row"      # One record of a back-reference group
    ATTRIBUTE = "attribute"          # One attribute (list layout)
    ATTRIBUTE_ROW = "attribute-row"  # All attributes in one row (row layout)
    CYCLE = "cycle"                  # Reference back into the current path
    NULL_FK = "null-fk"              # FK column without a value
    MISSING = "missing"              # Referenced record vanished
    ERROR = "error"                  # Subtree failed to load
    MORE = "more"                    # Truncated back-reference group


# Node types that carry a node identity key
KEYED_TYPES = frozenset({ViewNodeType.ROOT, ViewNodeType.FK, ViewNodeType.BACKREF_GROUP, ViewNodeType.BACKREF_ROW})


@dataclass
class AttributeCell:
    """One named value in an attribute row or back-reference row."""
    name: str
    value: str
    header: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "header": self.header or self.name, "value": self.value}


@dataclass
class ViewNode:
    """A node in the view tree.

    Only fields relevant to the node's type are set; ``to_dict`` leaves out
    the unset ones.
    """
    type: ViewNodeType
    label: str
    key: str | None = None             # Node identity (ROOT/FK/BACKREF_*)
    entity: str | None = None
    record_id: str | None = None
    name: str | None = None            # Column name (ATTRIBUTE, FK, NULL_FK)
    value: str | None = None           # Display value (ATTRIBUTE)
    subtitle: str | None = None
    expandable: bool = False
    expanded: bool = False
    selected: bool = False
    area_color: str | None = None
    children: list[ViewNode] = field(default_factory=list)
    cells: list[AttributeCell] = field(default_factory=list)

    # BACKREF_GROUP / MORE fields
    total_count: int | None = None
    shown_count: int | None = None
    is_truncated: bool = False

    # MISSING / ERROR / CYCLE
    message: str | None = None

    def walk(self, depth: int = 0) -> Iterator[tuple[ViewNode, int]]:
        """Pre-order traversal yielding (node, depth)."""
        yield self, depth
        for child in self.children:
            yield from child.walk(depth + 1)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "label": self.label}
        for name in ("key", "entity", "record_id", "name", "value", "subtitle", "area_color",
                     "total_count", "shown_count", "message"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.type in KEYED_TYPES:
            data["expandable"] = self.expandable
            data["expanded"] = self.expanded
        if self.selected:
            data["selected"] = True
        if self.is_truncated:
            data["is_truncated"] = True
        if self.cells:
            data["cells"] = [c.to_dict() for c in self.cells]
        if self.children:
            data["children"] = [c.to_dict() for c in self.children]
        return data


@dataclass(frozen=True)
class FlatNode:
    """Depth-annotated line of a flattened tree (export feed)."""
    type: ViewNodeType
    depth: int
    label: str
    value: str | None = None
    color: str | None = None


@dataclass
class ViewTree:
    """Complete output of one render pass.

    Attributes:
        entity: Entity of the root set
        roots: Rendered root nodes, in root-set order
        generation: Render generation that produced this tree
        config: Configuration used for the pass
    """
    entity: str
    roots: list[ViewNode] = field(default_factory=list)
    generation: int = 0
    config: RenderConfig | None = None

    def walk(self) -> Iterator[tuple[ViewNode, int]]:
        for root in self.roots:
            yield from root.walk()

    def __len__(self) -> int:
        return sum(1 for _ in self.walk())

    def find(self, key: str) -> ViewNode | None:
        """First node carrying ``key`` (pre-order)."""
        for node, _ in self.walk():
            if node.key == key:
                return node
        return None

    def keys(self) -> list[str]:
        return [node.key for node, _ in self.walk() if node.key is not None]

    def parents(self) -> dict[str, list[str]]:
        """Map each keyed node to the keys of its nearest keyed ancestors.

        A key shown in several places lists one ancestor per place, in
        pre-order.
        """
        result: dict[str, list[str]] = {}

        def visit(node: ViewNode, parent_key: str | None) -> None:
            if node.key is not None and parent_key is not None:
                anchors = result.setdefault(node.key, [])
                if parent_key not in anchors:
                    anchors.append(parent_key)
            next_parent = node.key if node.key is not None else parent_key
            for child in node.children:
                visit(child, next_parent)

        for root in self.roots:
            visit(root, None)
        return result

    def flatten(self) -> list[FlatNode]:
        """Flatten to depth-annotated lines, e.g. for document export."""
        lines: list[FlatNode] = []
        for node, depth in self.walk():
            if node.type == ViewNodeType.ROOT:
                lines.append(FlatNode(node.type, depth, node.entity or "", _with_subtitle(node), node.area_color))
            elif node.type == ViewNodeType.ATTRIBUTE_ROW:
                value = ", ".join(f"{c.header or c.name}: {c.value}" for c in node.cells)
                lines.append(FlatNode(node.type, depth, node.label, value, None))
            elif node.type in (ViewNodeType.FK, ViewNodeType.ATTRIBUTE, ViewNodeType.NULL_FK):
                lines.append(FlatNode(node.type, depth, node.name or node.label, node.value or node.label, node.area_color))
            else:
                lines.append(FlatNode(node.type, depth, node.label, node.message, node.area_color))
        return lines

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "generation": self.generation,
            "config": self.config.to_dict() if self.config is not None else None,
            "roots": [r.to_dict() for r in self.roots],
        }


def _with_subtitle(node: ViewNode) -> str:
    if node.subtitle:
        return f"{node.label} ({node.subtitle})"
    return node.label
