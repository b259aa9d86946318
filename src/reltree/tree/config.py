"""Render configuration."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any, Literal

from reltree.backrefs import DEFAULT_PREVIEW_LIMIT

AttributeOrder = Literal["schema", "alpha"]
ReferencePosition = Literal["start", "end", "inline"]
AttributeLayout = Literal["row", "list"]

_ORDERS = ("schema", "alpha")
_POSITIONS = ("start", "end", "inline")
_LAYOUTS = ("row", "list")


@dataclass(frozen=True)
class RenderConfig:
    """Controls what a render pass draws and in which order.

    Attributes:
        attribute_order: "schema" keeps column order, "alpha" sorts by name.
        reference_position: Where FK and back-reference subtrees go.
            "start": FKs, back-references, then attributes.
            "end": attributes, FKs, then back-references (default).
            "inline": FKs at their column position, back-references last.
        attribute_layout: "list" (one line per attribute) or "row" (one
            multi-column row, always emitted before the references).
        show_cycles: Draw a marker for detected cycles instead of omitting them.
        show_system_columns: Include ``_version``/``_created_at``/... columns.
        show_null_fks: Draw a marker for FK columns with no value.
        back_ref_preview_limit: Maximum rows shown per back-reference group.
    """

    attribute_order: AttributeOrder = "schema"
    reference_position: ReferencePosition = "end"
    attribute_layout: AttributeLayout = "list"
    show_cycles: bool = True
    show_system_columns: bool = False
    show_null_fks: bool = False
    back_ref_preview_limit: int = DEFAULT_PREVIEW_LIMIT

    def __post_init__(self) -> None:
        if self.attribute_order not in _ORDERS:
            raise ValueError(f"attribute_order must be one of {_ORDERS}, got {self.attribute_order!r}")
        if self.reference_position not in _POSITIONS:
            raise ValueError(f"reference_position must be one of {_POSITIONS}, got {self.reference_position!r}")
        if self.attribute_layout not in _LAYOUTS:
            raise ValueError(f"attribute_layout must be one of {_LAYOUTS}, got {self.attribute_layout!r}")
        if self.back_ref_preview_limit < 1:
            raise ValueError(f"back_ref_preview_limit must be >= 1, got {self.back_ref_preview_limit}")

    @property
    def is_row_layout(self) -> bool:
        return self.attribute_layout == "row"

    def replace(self, **changes: Any) -> RenderConfig:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
