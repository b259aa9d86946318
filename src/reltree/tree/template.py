"""Detail templates: a fixed selection of attributes and references per level.

In template mode the tree shows only what the template names, in template
order, and FK children listed by the template open automatically.

Example::

    template = DetailTemplate.from_dict({
        "attributes": ["flight_number", "departure"],
        "children": [
            {"type": "fk", "field": "aircraft", "attributes": ["registration"]},
            {"type": "backref", "entity": "Booking", "attributes": ["passenger"],
             "params": "ORDER BY seat DESC LIMIT 5"},
        ],
    })
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal, Mapping

_ORDER_RE = re.compile(r"ORDER\s+BY\s+(\w+)(?:\s+(ASC|DESC))?", re.IGNORECASE)
_LIMIT_RE = re.compile(r"LIMIT\s+(\d+)", re.IGNORECASE)


def parse_params(params: str | None) -> tuple[str | None, bool, int | None]:
    """Parse ``"ORDER BY col [ASC|DESC] LIMIT n"`` into (order_by, descending, limit)."""
    if not params:
        return None, False, None
    order_by, descending, limit = None, False, None
    match = _ORDER_RE.search(params)
    if match:
        order_by = match.group(1)
        descending = (match.group(2) or "ASC").upper() == "DESC"
    match = _LIMIT_RE.search(params)
    if match:
        limit = int(match.group(1))
    return order_by, descending, limit


@dataclass(frozen=True)
class TemplateChild:
    """One FK or back-reference child of a template level."""

    type: Literal["fk", "backref"]
    field: str | None = None    # fk: column name, with or without ``_id``
    entity: str | None = None   # backref: referencing entity
    attributes: tuple[str, ...] = ()
    children: tuple[TemplateChild, ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.type not in ("fk", "backref"):
            raise ValueError(f"Template child type must be 'fk' or 'backref', got {self.type!r}")
        if self.type == "fk" and not self.field:
            raise ValueError("Template fk child requires 'field'")
        if self.type == "backref" and not self.entity:
            raise ValueError("Template backref child requires 'entity'")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TemplateChild:
        order_by, descending, limit = parse_params(data.get("params"))
        return cls(
            type=data["type"],
            field=data.get("field"),
            entity=data.get("entity"),
            attributes=tuple(data.get("attributes", ())),
            children=tuple(cls.from_dict(c) for c in data.get("children", ())),
            order_by=data.get("order_by", order_by),
            descending=data.get("descending", descending),
            limit=data.get("limit", limit),
        )


@dataclass(frozen=True)
class DetailTemplate:
    """Template for the root level: its attributes and children."""

    attributes: tuple[str, ...] = ()
    children: tuple[TemplateChild, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DetailTemplate:
        return cls(
            attributes=tuple(data.get("attributes", data.get("root_attributes", ()))),
            children=tuple(TemplateChild.from_dict(c) for c in data.get("children", ())),
        )
