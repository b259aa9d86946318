"""Exceptions for the relational tree engine."""

from __future__ import annotations


class ReltreeError(Exception):
    """Base class for all reltree errors."""


class MalformedIdentifier(ReltreeError, ValueError):
    """A node identifier does not match any of the four identity shapes.

    Raised when parsing a key that is not a root, FK, back-reference group
    or back-reference row identifier, or when building a key from fields
    that would break the grammar (empty, or containing the ``-`` separator).

    Attributes:
        key: The offending identifier (or field value)
        reason: Short description of what is wrong
        message: Human-readable error message
    """

    def __init__(self, key: str, reason: str | None = None) -> None:
        self.key = key
        self.reason = reason
        self.message = f"Malformed node identifier {key!r}"
        if reason:
            self.message += f": {reason}"
        super().__init__(self.message)


class RecordNotFound(ReltreeError, LookupError):
    """A record vanished between listing and fetch.

    Attributes:
        entity: Entity name that was queried
        record_id: Identifier that was not found
    """

    def __init__(self, entity: str, record_id: object) -> None:
        self.entity = entity
        self.record_id = record_id
        self.message = f"{entity} #{record_id} not found"
        super().__init__(self.message)


class SchemaNotFound(ReltreeError, LookupError):
    """The schema provider knows no entity with this name."""

    def __init__(self, entity: str) -> None:
        self.entity = entity
        self.message = f"Unknown entity '{entity}'"
        super().__init__(self.message)


class BackReferenceLoadError(ReltreeError):
    """Loading a back-reference group failed in the data service.

    Never raised out of the loader: it is carried inside the
    ``BackReferencePreview`` so the renderer can mark that group only.

    Attributes:
        entity: Parent entity whose back-references were requested
        record_id: Parent record identifier
        ref_entity: Referencing entity of the failed group
        cause: The underlying exception
    """

    def __init__(
        self,
        entity: str,
        record_id: object,
        ref_entity: str,
        cause: BaseException,
    ) -> None:
        self.entity = entity
        self.record_id = record_id
        self.ref_entity = ref_entity
        self.message = f"Failed to load {ref_entity} references to {entity} #{record_id}: {cause}"
        super().__init__(self.message)
        self.__cause__ = cause
