"""Rich-based terminal rendering of a view tree."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from reltree.tree.view import ViewNodeType

if TYPE_CHECKING:
    from reltree.tree.view import ViewNode, ViewTree


def _require_rich() -> None:
    """Raise a clear error if rich is not installed."""
    try:
        import rich  # noqa: F401
    except ImportError:
        raise ImportError(
            "The 'rich' package is required for terminal output. Install it with: pip install 'reltree[cli]' or pip install rich"
        ) from None


# Marker glyphs per node type
_MARKERS = {
    ViewNodeType.FK: "→",
    ViewNodeType.BACKREF_GROUP: "←",
    ViewNodeType.CYCLE: "↻",
    ViewNodeType.MISSING: "∅",
    ViewNodeType.ERROR: "!",
    ViewNodeType.MORE: "…",
}

_STYLES = {
    ViewNodeType.ROOT: "bold",
    ViewNodeType.FK: "cyan",
    ViewNodeType.BACKREF_GROUP: "magenta",
    ViewNodeType.BACKREF_ROW: "",
    ViewNodeType.ATTRIBUTE: "",
    ViewNodeType.ATTRIBUTE_ROW: "",
    ViewNodeType.CYCLE: "yellow",
    ViewNodeType.NULL_FK: "dim",
    ViewNodeType.MISSING: "dim red",
    ViewNodeType.ERROR: "bold red",
    ViewNodeType.MORE: "dim italic",
}


def _toggle(node: ViewNode) -> str:
    if not node.expandable:
        return ""
    return "▾ " if node.expanded else "▸ "


def node_label(node: ViewNode) -> Any:
    """A ``rich.text.Text`` line for one node."""
    from rich.text import Text

    style = _STYLES.get(node.type, "")
    text = Text()
    marker = _MARKERS.get(node.type)
    if marker:
        text.append(f"{marker} ", style=style)
    text.append(_toggle(node), style="dim")

    if node.type == ViewNodeType.ATTRIBUTE:
        text.append(f"{node.label}: ", style="dim")
        text.append(node.value or "")
    elif node.type == ViewNodeType.ATTRIBUTE_ROW:
        for i, cell in enumerate(node.cells):
            if i:
                text.append(" │ ", style="dim")
            text.append(f"{cell.header or cell.name}: ", style="dim")
            text.append(cell.value)
    elif node.type in (ViewNodeType.FK, ViewNodeType.NULL_FK):
        text.append(f"{node.label if node.type == ViewNodeType.NULL_FK else node.name}: ", style="dim")
        text.append(node.value or "", style=style)
    elif node.type == ViewNodeType.BACKREF_GROUP:
        text.append(node.label, style=style)
        count = f"{node.shown_count} of {node.total_count}" if node.is_truncated else str(node.total_count)
        text.append(f" ({count})", style="dim")
    elif node.type == ViewNodeType.BACKREF_ROW:
        text.append(node.label, style=style)
        if node.cells:
            text.append("  " + ", ".join(c.value for c in node.cells if c.value), style="dim")
    else:
        text.append(node.label, style=style)
        if node.subtitle:
            text.append(f"  {node.subtitle}", style="dim")
        if node.message and node.type != ViewNodeType.MORE:
            text.append(f"  ({node.message})", style="dim")
    if node.selected:
        text.stylize("reverse")
    return text


def _add(branch: Any, node: ViewNode) -> None:
    child = branch.add(node_label(node))
    for grandchild in node.children:
        _add(child, grandchild)


def build_rich_tree(view_tree: ViewTree) -> Any:
    """Build a ``rich.tree.Tree`` with one branch per root."""
    _require_rich()
    from rich.tree import Tree

    tree = Tree(f"[bold]{view_tree.entity}[/bold] ({len(view_tree.roots)})", guide_style="dim")
    for root in view_tree.roots:
        _add(tree, root)
    return tree


def print_tree(view_tree: ViewTree, console: Any = None) -> None:
    """Print ``view_tree`` to ``console`` (stdout by default)."""
    _require_rich()
    from rich.console import Console

    (console or Console()).print(build_rich_tree(view_tree))
