"""Validated constructors for graph nodes and edges.

Every node and edge in a graph should come from these functions (or pass
``validate_node`` / ``validate_edge`` when loaded from a portable dict).
Constructors have no side effects beyond returning the new value.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Optional

from docgraph.graph.errors import (
    EmptyLabel,
    GraphError,
    InvalidConfidence,
    InvalidPosition,
    InvalidWeight,
    NullContent,
    SelfReference,
)
from docgraph.graph.models import (
    EdgeKind,
    GraphEdge,
    GraphNode,
    NodeKind,
    Position,
    coerce_edge_kind,
    coerce_node_kind,
)

MAX_PARAGRAPH_LABEL = 80


def _new_id() -> str:
    return uuid.uuid4().hex


def _check_position(position: Position) -> None:
    if not isinstance(position, Position):
        raise InvalidPosition(f"Position must be a Position, got {type(position).__name__}")
    if position.page < 1:
        raise InvalidPosition(f"Invalid position: page must be >= 1 (got {position.page})")
    if position.start < 0:
        raise InvalidPosition(f"Invalid position: start must be >= 0 (got {position.start})")
    if position.end <= position.start:
        raise InvalidPosition(
            f"Invalid position: end ({position.end}) must be greater than start ({position.start})"
        )


def _check_unit_interval(value: Optional[float], error: type[GraphError], name: str) -> None:
    if value is not None and not 0.0 <= value <= 1.0:
        raise error(f"Invalid {name}: must be between 0.0 and 1.0 (got {value})")


def validate_node(node: GraphNode) -> GraphNode:
    """Re-check an existing node against the construction rules.

    Returns:
        The same node, with ``kind`` normalized to ``NodeKind``
    """
    node.kind = coerce_node_kind(node.kind)
    if node.label is None or not str(node.label).strip():
        raise EmptyLabel("Node label cannot be empty")
    if node.content is None:
        raise NullContent("Node content cannot be None")
    _check_position(node.position)
    _check_unit_interval(node.confidence, InvalidConfidence, "confidence")
    return node


def validate_edge(edge: GraphEdge) -> GraphEdge:
    """Re-check an existing edge against the construction rules."""
    edge.kind = coerce_edge_kind(edge.kind)
    if not edge.source or not str(edge.source).strip():
        raise GraphError("Edge source ID cannot be empty")
    if not edge.target or not str(edge.target).strip():
        raise GraphError("Edge target ID cannot be empty")
    if edge.source == edge.target:
        raise SelfReference(f"Edge cannot connect node {edge.source} to itself")
    _check_unit_interval(edge.weight, InvalidWeight, "weight")
    return edge


# ========== Generic constructors ==========

def create_node(
    kind: NodeKind | str,
    label: str,
    content: Optional[str],
    position: Position,
    confidence: Optional[float] = None,
    properties: Optional[dict[str, Any]] = None,
) -> GraphNode:
    """Create a validated node with a fresh ID and timestamps.

    Raises:
        InvalidKind, EmptyLabel, NullContent, InvalidPosition, InvalidConfidence
    """
    now = datetime.now()
    node = GraphNode(
        id=_new_id(),
        kind=kind,  # normalized by validate_node
        label=label,
        content=content,
        position=position,
        confidence=confidence,
        properties=dict(properties or {}),
        created_at=now,
        updated_at=now,
    )
    return validate_node(node)


def create_edge(
    source: str,
    target: str,
    kind: EdgeKind | str,
    weight: float = 1.0,
    metadata: Optional[dict[str, Any]] = None,
) -> GraphEdge:
    """Create a validated edge with a fresh ID.

    Raises:
        SelfReference, InvalidEdgeKind, InvalidWeight
    """
    edge = GraphEdge(
        id=_new_id(),
        source=source,
        target=target,
        kind=kind,
        weight=weight,
        metadata=dict(metadata or {}),
    )
    return validate_edge(edge)


# ========== Per-kind node constructors ==========

def create_document_node(
    title: str,
    page_count: int,
    file_size: int,
    properties: Optional[dict[str, Any]] = None,
) -> GraphNode:
    """Create the document root node."""
    page_count = max(0, page_count)
    file_size = max(0, file_size)
    props = {"page_count": page_count, "file_size": file_size, "title": title}
    props.update(properties or {})
    return create_node(
        NodeKind.DOCUMENT,
        label=f"Document: {title}",
        content=f"Document: {title} ({page_count} pages, {file_size} bytes)",
        # File size stands in for the content length; keep the range non-empty
        position=Position(page=1, start=0, end=max(1, file_size)),
        confidence=1.0,
        properties=props,
    )


def create_section_node(
    title: str,
    level: int,
    position: Position,
    confidence: float = 0.9,
    section_number: Optional[str] = None,
    properties: Optional[dict[str, Any]] = None,
) -> GraphNode:
    """Create a section (heading) node."""
    props: dict[str, Any] = {"level": level}
    if section_number:
        props["section_number"] = section_number
    props.update(properties or {})
    return create_node(
        NodeKind.SECTION,
        label=f"Section: {title}",
        content=title,
        position=position,
        confidence=confidence,
        properties=props,
    )


def create_paragraph_node(
    content: str,
    position: Position,
    confidence: float = 0.8,
    properties: Optional[dict[str, Any]] = None,
) -> GraphNode:
    """Create a paragraph node; the label is the content, truncated."""
    prefix = "Paragraph: "
    available = MAX_PARAGRAPH_LABEL - len(prefix)
    text = " ".join((content or "").split())
    if len(text) > available:
        text = text[: available - 3] + "..."
    return create_node(
        NodeKind.PARAGRAPH,
        label=f"{prefix}{text}" if text else "Paragraph",
        content=content,
        position=position,
        confidence=confidence,
        properties=properties,
    )


def create_table_node(
    content: str,
    position: Position,
    row_count: int,
    col_count: int,
    confidence: float = 0.7,
    table_number: Optional[str] = None,
    properties: Optional[dict[str, Any]] = None,
) -> GraphNode:
    """Create a table node."""
    props: dict[str, Any] = {
        "row_count": row_count,
        "col_count": col_count,
        "cell_count": row_count * col_count,
    }
    if table_number:
        props["table_number"] = table_number
    props.update(properties or {})
    label = f"Table {table_number}: {row_count}x{col_count}" if table_number else f"Table: {row_count}x{col_count}"
    return create_node(
        NodeKind.TABLE,
        label=label,
        content=content,
        position=position,
        confidence=confidence,
        properties=props,
    )


def create_image_node(
    caption: str,
    position: Position,
    dimensions: Optional[tuple[int, int]] = None,
    confidence: float = 0.6,
    figure_number: Optional[str] = None,
    properties: Optional[dict[str, Any]] = None,
) -> GraphNode:
    """Create an image (figure) node."""
    props: dict[str, Any] = {"has_caption": bool(caption)}
    if dimensions:
        props["width"], props["height"] = dimensions
    if figure_number:
        props["figure_number"] = figure_number
    props.update(properties or {})
    name = caption or "Unnamed"
    label = f"Figure {figure_number}: {name}" if figure_number else f"Image: {name}"
    return create_node(
        NodeKind.IMAGE,
        label=label,
        content=caption or "[Image]",
        position=position,
        confidence=confidence,
        properties=props,
    )


def create_list_node(
    content: str,
    position: Position,
    item_count: int,
    ordered: bool = False,
    confidence: float = 0.8,
    properties: Optional[dict[str, Any]] = None,
) -> GraphNode:
    """Create a list node."""
    props: dict[str, Any] = {
        "item_count": item_count,
        "list_type": "ordered" if ordered else "unordered",
    }
    props.update(properties or {})
    return create_node(
        NodeKind.LIST,
        label=f"{'Ordered' if ordered else 'Unordered'} List ({item_count} items)",
        content=content,
        position=position,
        confidence=confidence,
        properties=props,
    )


def create_code_node(
    content: str,
    position: Position,
    language: Optional[str] = None,
    confidence: float = 0.9,
    properties: Optional[dict[str, Any]] = None,
) -> GraphNode:
    """Create a code block node."""
    props: dict[str, Any] = {"language": language, "line_count": len((content or "").split("\n"))}
    props.update(properties or {})
    return create_node(
        NodeKind.CODE,
        label=f"Code: {language}" if language else "Code Block",
        content=content,
        position=position,
        confidence=confidence,
        properties=props,
    )


def create_metadata_node(
    key: str,
    value: Any,
    position: Position,
    confidence: float = 1.0,
    properties: Optional[dict[str, Any]] = None,
) -> GraphNode:
    """Create a metadata node holding one key/value fact."""
    rendered = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
    props: dict[str, Any] = {"key": key, "value": value}
    props.update(properties or {})
    return create_node(
        NodeKind.METADATA,
        label=f"Metadata: {key}",
        content=f"{key}: {rendered}",
        position=position,
        confidence=confidence,
        properties=props,
    )


# ========== Edge helpers ==========

def create_contains_edge(parent_id: str, child_id: str, weight: float = 1.0) -> GraphEdge:
    """Hierarchical containment: parent contains child."""
    return create_edge(parent_id, child_id, EdgeKind.CONTAINS, weight)


def create_follows_edge(predecessor_id: str, successor_id: str, weight: float = 1.0) -> GraphEdge:
    """Reading order: successor follows predecessor."""
    return create_edge(predecessor_id, successor_id, EdgeKind.FOLLOWS, weight)


def create_references_edge(
    source_id: str,
    target_id: str,
    weight: float = 0.5,
    context: Optional[str] = None,
    properties: Optional[dict[str, Any]] = None,
) -> GraphEdge:
    """Cross-reference from citing content to referenced content."""
    metadata: dict[str, Any] = {"context": context}
    metadata.update(properties or {})
    return create_edge(source_id, target_id, EdgeKind.REFERENCES, weight, metadata)


def create_similarity_edge(
    source_id: str,
    target_id: str,
    similarity: float,
    context: Optional[str] = None,
) -> GraphEdge:
    """Similarity link; the weight is the similarity score."""
    return create_edge(
        source_id,
        target_id,
        EdgeKind.SIMILAR,
        similarity,
        {"context": context, "similarity_score": similarity},
    )
