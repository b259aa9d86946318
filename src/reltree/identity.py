"""Path-scoped node identities.

Every visual occurrence of a record in the tree has a string key. The key
encodes *where* the record was opened (its parent anchor), not just which
record it is, so the same record reached from two parents gets two keys
with independent expansion state.

Four disjoint shapes, fixed field order:

    root            {entity}-{id}
    fk              fk-{targetEntity}-{targetId}-from-{parentId}
    backref group   backref-{refEntity}-to-{parentEntity}-{parentId}
    backref row     backref-row-{refEntity}-{rowId}-in-{parentEntity}-{parentId}

Keys are built once into tagged variants (``RootNode``, ``FkNode``,
``BackrefGroupNode``, ``BackrefRowNode``) and carried through the renderer;
``parse_identifier`` recovers the variant from a key coming back from the
host (e.g. a click).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from reltree.exceptions import MalformedIdentifier

# A single identifier field: no separator, no whitespace.
_FIELD = r"[^-\s]+"

_ROW_RE = re.compile(rf"^backref-row-(?P<entity>{_FIELD})-(?P<id>{_FIELD})-in-(?P<parent_entity>{_FIELD})-(?P<parent_id>{_FIELD})$")
_GROUP_RE = re.compile(rf"^backref-(?P<entity>{_FIELD})-to-(?P<parent_entity>{_FIELD})-(?P<parent_id>{_FIELD})$")
_FK_RE = re.compile(rf"^fk-(?P<entity>{_FIELD})-(?P<id>{_FIELD})-from-(?P<parent_id>{_FIELD})$")
_ROOT_RE = re.compile(rf"^(?P<entity>{_FIELD})-(?P<id>{_FIELD})$")
_FIELD_RE = re.compile(rf"^{_FIELD}$")


class NodeKind(str, Enum):
    """Kinds of identifiable tree nodes."""

    ROOT = "root"
    FK = "fk"
    BACKREF_GROUP = "backref-group"
    BACKREF_ROW = "backref-row"


def _field(value: Any, name: str) -> str:
    """Normalize an identifier field to str and check it against the grammar."""
    text = str(value)
    if not _FIELD_RE.match(text):
        raise MalformedIdentifier(text, f"invalid {name} field")
    return text


@dataclass(frozen=True)
class RecordRef:
    """An (entity, id) pair. Ids are normalized to str so ``1 == "1"``."""

    entity: str
    id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", str(self.id))

    def __str__(self) -> str:
        return f"{self.entity}#{self.id}"


@dataclass(frozen=True)
class RootNode:
    """A record from the root set."""

    entity: str
    id: str

    kind = NodeKind.ROOT

    @property
    def key(self) -> str:
        return f"{_field(self.entity, 'entity')}-{_field(self.id, 'id')}"

    @property
    def target(self) -> RecordRef:
        return RecordRef(self.entity, self.id)


@dataclass(frozen=True)
class FkNode:
    """The record an outbound foreign key points to, opened under ``parent_id``."""

    entity: str
    id: str
    parent_id: str

    kind = NodeKind.FK

    @property
    def key(self) -> str:
        return (
            f"fk-{_field(self.entity, 'entity')}-{_field(self.id, 'id')}"
            f"-from-{_field(self.parent_id, 'parent_id')}"
        )

    @property
    def target(self) -> RecordRef:
        return RecordRef(self.entity, self.id)


@dataclass(frozen=True)
class BackrefGroupNode:
    """All ``entity`` records pointing at the parent record."""

    entity: str
    parent_entity: str
    parent_id: str

    kind = NodeKind.BACKREF_GROUP

    @property
    def key(self) -> str:
        return (
            f"backref-{_field(self.entity, 'entity')}-to-{_field(self.parent_entity, 'parent_entity')}"
            f"-{_field(self.parent_id, 'parent_id')}"
        )

    @property
    def target(self) -> None:
        return None

    @property
    def parent(self) -> RecordRef:
        return RecordRef(self.parent_entity, self.parent_id)


@dataclass(frozen=True)
class BackrefRowNode:
    """One referencing record inside a back-reference group."""

    entity: str
    id: str
    parent_entity: str
    parent_id: str

    kind = NodeKind.BACKREF_ROW

    @property
    def key(self) -> str:
        return (
            f"backref-row-{_field(self.entity, 'entity')}-{_field(self.id, 'id')}"
            f"-in-{_field(self.parent_entity, 'parent_entity')}-{_field(self.parent_id, 'parent_id')}"
        )

    @property
    def target(self) -> RecordRef:
        return RecordRef(self.entity, self.id)

    @property
    def parent(self) -> RecordRef:
        return RecordRef(self.parent_entity, self.parent_id)


NodeRef = Union[RootNode, FkNode, BackrefGroupNode, BackrefRowNode]


def root_node(entity: str, record_id: Any) -> RootNode:
    return RootNode(entity, str(record_id))


def fk_node(target_entity: str, target_id: Any, parent_id: Any) -> FkNode:
    return FkNode(target_entity, str(target_id), str(parent_id))


def backref_group_node(ref_entity: str, parent_entity: str, parent_id: Any) -> BackrefGroupNode:
    return BackrefGroupNode(ref_entity, parent_entity, str(parent_id))


def backref_row_node(ref_entity: str, row_id: Any, parent_entity: str, parent_id: Any) -> BackrefRowNode:
    return BackrefRowNode(ref_entity, str(row_id), parent_entity, str(parent_id))


_BUILDERS = {
    NodeKind.ROOT: (RootNode, ("entity", "id")),
    NodeKind.FK: (FkNode, ("entity", "id", "parent_id")),
    NodeKind.BACKREF_GROUP: (BackrefGroupNode, ("entity", "parent_entity", "parent_id")),
    NodeKind.BACKREF_ROW: (BackrefRowNode, ("entity", "id", "parent_entity", "parent_id")),
}


def make_node(kind: NodeKind | str, **params: Any) -> NodeRef:
    """Build the tagged variant for ``kind`` from keyword fields.

    Raises:
        MalformedIdentifier: On unknown kind, missing/extra fields, or a field
            that violates the grammar.
    """
    try:
        kind = NodeKind(kind)
    except ValueError:
        raise MalformedIdentifier(str(kind), "unknown node kind") from None

    cls, fields = _BUILDERS[kind]
    missing = [f for f in fields if f not in params]
    extra = sorted(set(params) - set(fields))
    if missing or extra:
        raise MalformedIdentifier(
            kind.value,
            f"expected fields {', '.join(fields)}"
            + (f"; missing {', '.join(missing)}" if missing else "")
            + (f"; unexpected {', '.join(extra)}" if extra else ""),
        )
    node = cls(**{f: _field(params[f], f) for f in fields})
    return node


def build_identifier(kind: NodeKind | str, **params: Any) -> str:
    """Build the string key for a node of ``kind``.

    Example:
        >>> build_identifier("fk", entity="Aircraft", id=3, parent_id=1)
        'fk-Aircraft-3-from-1'
    """
    return make_node(kind, **params).key


def parse_identifier(key: str) -> NodeRef:
    """Parse a key back into its tagged variant.

    Raises:
        MalformedIdentifier: If the key matches none of the four shapes.

    Example:
        >>> parse_identifier("backref-row-Aircraft-3-in-Manufacturer-7")
        BackrefRowNode(entity='Aircraft', id='3', parent_entity='Manufacturer', parent_id='7')
    """
    if not isinstance(key, str):
        raise MalformedIdentifier(repr(key), "identifier must be a string")

    match = _ROW_RE.match(key)
    if match:
        return BackrefRowNode(**match.groupdict())
    match = _GROUP_RE.match(key)
    if match:
        return BackrefGroupNode(**match.groupdict())
    match = _FK_RE.match(key)
    if match:
        return FkNode(**match.groupdict())
    match = _ROOT_RE.match(key)
    if match:
        return RootNode(**match.groupdict())
    raise MalformedIdentifier(key, "does not match any node identity shape")


def try_parse_identifier(key: str) -> NodeRef | None:
    """Like ``parse_identifier`` but returns None for malformed keys."""
    try:
        return parse_identifier(key)
    except MalformedIdentifier:
        return None


def is_root_key(key: str) -> bool:
    """True if ``key`` is a well-formed root identifier."""
    return isinstance(try_parse_identifier(key), RootNode)
