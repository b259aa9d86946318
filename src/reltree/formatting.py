"""Display formatting for values, record labels and reference labels.

All functions here are pure: no I/O, no state.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Protocol

from reltree.schema import fk_base_name

if TYPE_CHECKING:
    from reltree.schema import BackReferenceDef, Column, Schema

# Fallback label columns, in order of preference
LABEL_CANDIDATES = ("name", "title", "designation", "code")

MAX_VALUE_CHARS = 120


class ValueFormatter(Protocol):
    """Turns a stored value into display text for one column."""

    def format(self, value: Any, column: Column, schema: Schema) -> str: ...


class DefaultValueFormatter:
    """Enum decoding, compact JSON for structured values, truncation for long text.

    Args:
        max_chars: Truncate longer text with an ellipsis. None disables truncation.
    """

    def __init__(self, max_chars: int | None = MAX_VALUE_CHARS) -> None:
        self.max_chars = max_chars

    def format(self, value: Any, column: Column, schema: Schema) -> str:
        if value is None:
            return ""
        if column.enum_values:
            decoded = column.enum_values.get(value)
            if decoded is None:
                decoded = column.enum_values.get(str(value))
            if decoded is not None:
                return str(decoded)
        if isinstance(value, bool):
            text = "yes" if value else "no"
        elif isinstance(value, (dict, list, tuple)):
            text = json.dumps(value, default=str, separators=(",", ":"))
        elif isinstance(value, float):
            text = f"{value:g}"
        else:
            text = str(value)
        return truncate(text, self.max_chars)


def truncate(text: str, max_chars: int | None) -> str:
    if max_chars is None or len(text) <= max_chars:
        return text
    return text[: max_chars - 1] + "…"


def humanize(name: str) -> str:
    """Column name to header text: ``flight_number`` -> ``flight number``."""
    return name.replace("_", " ")


@dataclass(frozen=True)
class RecordLabel:
    """Title plus optional subtitle for a record."""

    title: str
    subtitle: str | None = None

    def full(self, separator: str = " · ") -> str:
        if self.subtitle:
            return f"{self.title}{separator}{self.subtitle}"
        return self.title


def record_label(record: Mapping[str, Any], schema: Schema) -> RecordLabel:
    """Label a record from its schema's label rules.

    Preference: computed ``_label``/``_label2`` fields, then the schema's
    label fields, then common name-like columns, then ``#{id}``.
    """
    title = f"#{record.get('id')}"
    subtitle = None

    if schema.has_computed_label and record.get("_label"):
        label2 = record.get("_label2")
        return RecordLabel(str(record["_label"]), str(label2) if label2 else None)

    if schema.label_fields:
        primary = record.get(schema.label_fields[0])
        if primary:
            title = str(primary)
        if len(schema.label_fields) > 1:
            secondary = record.get(schema.label_fields[1])
            if secondary:
                subtitle = str(secondary)
    else:
        for name in LABEL_CANDIDATES:
            if record.get(name):
                title = str(record[name])
                break

    return RecordLabel(title, subtitle)


def full_label(record: Mapping[str, Any], schema: Schema, separator: str = " · ") -> str:
    return record_label(record, schema).full(separator)


def _snake(name: str) -> str:
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()


def backref_label(ref: BackReferenceDef, parent_entity: str) -> str:
    """Label for a back-reference group.

    The referencing entity name alone when the FK column is implied by the
    parent (``aircraft_type_id`` under ``AircraftType``), otherwise the role:
    ``is parent_type of EngineType``.
    """
    role = fk_base_name(ref.column)
    if _snake(parent_entity).endswith(role):
        return ref.entity
    return f"is {role} of {ref.entity}"


def fk_display_name(column: Column) -> str:
    """Display name of an FK column: ``aircraft_id`` -> ``aircraft``."""
    return fk_base_name(column.name)
