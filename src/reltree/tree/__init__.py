"""Rendering of relational records into view trees."""

from reltree.tree.config import RenderConfig
from reltree.tree.renderer import GraphTreeRenderer
from reltree.tree.template import DetailTemplate, TemplateChild, parse_params
from reltree.tree.view import AttributeCell, FlatNode, ViewNode, ViewNodeType, ViewTree

__all__ = [
    "AttributeCell",
    "DetailTemplate",
    "FlatNode",
    "GraphTreeRenderer",
    "RenderConfig",
    "TemplateChild",
    "ViewNode",
    "ViewNodeType",
    "ViewTree",
    "parse_params",
]
