"""Document graph: node/edge model, factory and container.

The builder lives in ``docgraph.graph.builder``; it depends on
``docgraph.references``, which in turn imports from this package.
"""

from docgraph.graph.models import (
    CONTENT_NODE_KINDS,
    TEXT_NODE_KINDS,
    BoundingBox,
    EdgeKind,
    GraphEdge,
    GraphNode,
    NodeKind,
    Position,
)
from docgraph.graph.document_graph import DocumentGraph

__all__ = [
    "NodeKind",
    "EdgeKind",
    "BoundingBox",
    "Position",
    "GraphNode",
    "GraphEdge",
    "TEXT_NODE_KINDS",
    "CONTENT_NODE_KINDS",
    "DocumentGraph",
]
