"""Node and edge data models for the document graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from docgraph.graph.errors import InvalidEdgeKind, InvalidKind


class NodeKind(str, Enum):
    """Types of document content a node can represent."""
    DOCUMENT = "document"
    SECTION = "section"
    PARAGRAPH = "paragraph"
    TABLE = "table"
    IMAGE = "image"
    LIST = "list"
    CODE = "code"
    METADATA = "metadata"


class EdgeKind(str, Enum):
    """Types of relationships between nodes."""
    # Structure
    CONTAINS = "contains"
    PARENT = "parent"
    CHILD = "child"

    # Reading order
    FOLLOWS = "follows"
    NEXT = "next"
    PREVIOUS = "previous"

    # Content links
    REFERENCES = "references"
    SIMILAR = "similar"


def coerce_node_kind(kind: NodeKind | str) -> NodeKind:
    try:
        return NodeKind(kind)
    except ValueError:
        raise InvalidKind(f"Invalid node kind: {kind!r}") from None


def coerce_edge_kind(kind: EdgeKind | str) -> EdgeKind:
    try:
        return EdgeKind(kind)
    except ValueError:
        raise InvalidEdgeKind(f"Invalid edge kind: {kind!r}") from None


@dataclass
class BoundingBox:
    """Layout box of an element on its page."""

    x: float
    y: float
    width: float
    height: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict) -> "BoundingBox":
        return cls(
            x=data["x"],
            y=data["y"],
            width=data["width"],
            height=data["height"],
        )


@dataclass
class Position:
    """Location of a node within the document.

    Attributes:
        page: Page number (1-indexed)
        start: Character offset into the page text (0-indexed)
        end: Character offset where the element ends (exclusive)
        bbox: Optional layout box
    """

    page: int
    start: int
    end: int
    bbox: Optional[BoundingBox] = None

    def sort_key(self) -> tuple[int, int]:
        """Reading-order key: page first, then offset."""
        return (self.page, self.start)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"page": self.page, "start": self.start, "end": self.end}
        if self.bbox is not None:
            data["bbox"] = self.bbox.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        bbox = data.get("bbox")
        return cls(
            page=data["page"],
            start=data["start"],
            end=data["end"],
            bbox=BoundingBox.from_dict(bbox) if bbox else None,
        )


@dataclass
class GraphNode:
    """A typed unit of document content.

    Build nodes through ``docgraph.graph.factory`` so they are validated.
    """

    id: str
    kind: NodeKind
    label: str
    content: str
    position: Position
    confidence: Optional[float] = None
    properties: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def get_property(self, key: str, default: Any = None) -> Any:
        """Get a value from the properties bag."""
        return self.properties.get(key, default)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "content": self.content,
            "position": self.position.to_dict(),
            "confidence": self.confidence,
            "properties": self.properties,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GraphNode":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            kind=coerce_node_kind(data["kind"]),
            label=data["label"],
            content=data["content"],
            position=Position.from_dict(data["position"]),
            confidence=data.get("confidence"),
            properties=dict(data.get("properties") or {}),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else datetime.now(),
        )


@dataclass
class GraphEdge:
    """Typed, weighted relationship between two nodes (by ID)."""

    id: str
    source: str
    target: str
    kind: EdgeKind
    weight: float = 1.0
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def other_end(self, node_id: str) -> str:
        """Return the endpoint that is not ``node_id``."""
        return self.target if node_id == self.source else self.source

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "kind": self.kind.value,
            "weight": self.weight,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GraphEdge":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            source=data["source"],
            target=data["target"],
            kind=coerce_edge_kind(data["kind"]),
            weight=data.get("weight", 1.0),
            metadata=dict(data.get("metadata") or {}),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
        )


# Node kinds that carry narrative text worth scanning for references
TEXT_NODE_KINDS = frozenset({NodeKind.PARAGRAPH, NodeKind.SECTION, NodeKind.LIST, NodeKind.CODE})

# Node kinds that represent document content (as opposed to structure/metadata)
CONTENT_NODE_KINDS = frozenset({
    NodeKind.SECTION,
    NodeKind.PARAGRAPH,
    NodeKind.TABLE,
    NodeKind.IMAGE,
    NodeKind.LIST,
    NodeKind.CODE,
})
