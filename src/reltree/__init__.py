"""reltree - Explore relational data as an expandable tree of references."""

from reltree.backrefs import BackReferenceLoader, BackReferencePreview
from reltree.cascade import CascadeCollapse, collect_descendants
from reltree.cycles import CycleDecision, CycleGuard, TraversalPath, would_cycle
from reltree.events import (
    AsyncEventProcessor,
    BaseEvent,
    Event,
    EventCollector,
    EventDispatcher,
    EventProcessor,
    NavigateEvent,
    NodeErrorEvent,
    RenderEndEvent,
    RenderStartEvent,
    SelectEvent,
    ToggleEvent,
    TypedEventProcessor,
)
from reltree.exceptions import (
    BackReferenceLoadError,
    MalformedIdentifier,
    RecordNotFound,
    ReltreeError,
    SchemaNotFound,
)
from reltree.expansion import ExpansionState
from reltree.formatting import DefaultValueFormatter, ValueFormatter, backref_label, full_label, record_label
from reltree.identity import (
    BackrefGroupNode,
    BackrefRowNode,
    FkNode,
    NodeKind,
    NodeRef,
    RecordRef,
    RootNode,
    build_identifier,
    make_node,
    parse_identifier,
    try_parse_identifier,
)
from reltree.records import (
    BackReferenceGroup,
    InMemoryRecordService,
    PagedRecordService,
    Record,
    RecordService,
    load_json_dataset,
)
from reltree.schema import (
    BackReferenceDef,
    Column,
    ForeignKey,
    Schema,
    SchemaCache,
    SchemaProvider,
    StaticSchemaProvider,
    build_reference_graph,
    reference_cycles,
)
from reltree.session import NavigationRequest, TreeSession
from reltree.tree import (
    DetailTemplate,
    GraphTreeRenderer,
    RenderConfig,
    TemplateChild,
    ViewNode,
    ViewNodeType,
    ViewTree,
)

__version__ = "0.1.0"

__all__ = [
    # Identity
    "BackrefGroupNode",
    "BackrefRowNode",
    "FkNode",
    "NodeKind",
    "NodeRef",
    "RecordRef",
    "RootNode",
    "build_identifier",
    "make_node",
    "parse_identifier",
    "try_parse_identifier",
    # State
    "CascadeCollapse",
    "ExpansionState",
    "collect_descendants",
    # Cycles
    "CycleDecision",
    "CycleGuard",
    "TraversalPath",
    "would_cycle",
    # Schema and records
    "BackReferenceDef",
    "BackReferenceGroup",
    "Column",
    "ForeignKey",
    "InMemoryRecordService",
    "PagedRecordService",
    "Record",
    "RecordService",
    "Schema",
    "SchemaCache",
    "SchemaProvider",
    "StaticSchemaProvider",
    "build_reference_graph",
    "load_json_dataset",
    "reference_cycles",
    # Back-references
    "BackReferenceLoader",
    "BackReferencePreview",
    # Rendering
    "DefaultValueFormatter",
    "DetailTemplate",
    "GraphTreeRenderer",
    "RenderConfig",
    "TemplateChild",
    "ValueFormatter",
    "ViewNode",
    "ViewNodeType",
    "ViewTree",
    "backref_label",
    "full_label",
    "record_label",
    # Session
    "NavigationRequest",
    "TreeSession",
    # Events
    "AsyncEventProcessor",
    "BaseEvent",
    "Event",
    "EventCollector",
    "EventDispatcher",
    "EventProcessor",
    "NavigateEvent",
    "NodeErrorEvent",
    "RenderEndEvent",
    "RenderStartEvent",
    "SelectEvent",
    "ToggleEvent",
    "TypedEventProcessor",
    # Errors
    "BackReferenceLoadError",
    "MalformedIdentifier",
    "RecordNotFound",
    "ReltreeError",
    "SchemaNotFound",
]
