"""Document graph container with indices, traversal and serialization."""

import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Iterable, Optional

from docgraph.graph.errors import DanglingReference, DuplicateId
from docgraph.graph.factory import validate_edge, validate_node
from docgraph.graph.models import EdgeKind, GraphEdge, GraphNode, NodeKind

logger = logging.getLogger(__name__)

GRAPH_VERSION = "1.0"

STATUS_BUILDING = "building"
STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"

DIRECTIONS = ("out", "in", "both")


class DocumentGraph:
    """
    Knowledge graph for a single document.

    Owns every node and edge and keeps eager indices:
    - nodes by kind
    - nodes by page
    - node and edge lookup by ID
    - adjacency: node ID -> IDs of incident edges (both directions)

    Indices are updated in the same call that appends to the node/edge lists,
    so a graph is never observable with stale indices.
    """

    def __init__(self, document_id: str, graph_id: Optional[str] = None):
        """Initialize an empty graph.

        Args:
            document_id: ID of the source document
            graph_id: Optional graph ID (generated when omitted)
        """
        self.id = graph_id or uuid.uuid4().hex
        self.document_id = document_id
        self.version = GRAPH_VERSION
        self.status = STATUS_BUILDING
        self.processing_time_ms: float = 0.0
        self.error_message: Optional[str] = None
        self.created_at = datetime.now()
        self.updated_at = self.created_at

        self.nodes: list[GraphNode] = []
        self.edges: list[GraphEdge] = []

        # Indices
        self.node_map: dict[str, GraphNode] = {}
        self.edge_map: dict[str, GraphEdge] = {}
        self.by_kind: dict[NodeKind, list[GraphNode]] = {kind: [] for kind in NodeKind}
        self.by_page: dict[int, list[GraphNode]] = {}
        self.adjacency: dict[str, list[str]] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.node_map

    # ========== Mutation ==========

    def add_node(self, node: GraphNode) -> GraphNode:
        """Add a node and index it.

        Raises:
            DuplicateId: If a node with the same ID is already present
        """
        if node.id in self.node_map:
            raise DuplicateId(f"Node {node.id} already exists in graph {self.id}")

        self.nodes.append(node)
        self.node_map[node.id] = node
        self.by_kind[node.kind].append(node)
        self.by_page.setdefault(node.position.page, []).append(node)
        self.adjacency[node.id] = []
        self.updated_at = datetime.now()
        return node

    def add_nodes(self, nodes: Iterable[GraphNode]) -> None:
        for node in nodes:
            self.add_node(node)

    def add_edge(self, edge: GraphEdge) -> GraphEdge:
        """Add an edge and record it on both endpoints' adjacency lists.

        Raises:
            DanglingReference: If either endpoint is not in the graph
            DuplicateId: If an edge with the same ID is already present
        """
        if edge.source not in self.node_map:
            raise DanglingReference(f"Edge source {edge.source} not found in graph")
        if edge.target not in self.node_map:
            raise DanglingReference(f"Edge target {edge.target} not found in graph")
        if edge.id in self.edge_map:
            raise DuplicateId(f"Edge {edge.id} already exists in graph {self.id}")

        self.edges.append(edge)
        self.edge_map[edge.id] = edge
        self.adjacency[edge.source].append(edge.id)
        self.adjacency[edge.target].append(edge.id)
        self.updated_at = datetime.now()
        return edge

    def add_edges(self, edges: Iterable[GraphEdge]) -> None:
        for edge in edges:
            self.add_edge(edge)

    def mark_complete(self, processing_time_ms: float) -> None:
        """Mark the build as finished."""
        self.status = STATUS_COMPLETE
        self.processing_time_ms = processing_time_ms
        self.error_message = None
        self.updated_at = datetime.now()

    def mark_error(self, message: str) -> None:
        """Mark the build as failed, keeping whatever was built."""
        self.status = STATUS_ERROR
        self.error_message = message
        self.updated_at = datetime.now()

    # ========== Lookup ==========

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        """Get node by ID."""
        return self.node_map.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[GraphEdge]:
        """Get edge by ID."""
        return self.edge_map.get(edge_id)

    def get_nodes_by_kind(self, kind: NodeKind | str) -> list[GraphNode]:
        return list(self.by_kind.get(NodeKind(kind), []))

    def get_nodes_by_page(self, page: int) -> list[GraphNode]:
        return list(self.by_page.get(page, []))

    def get_edges_for_node(
        self,
        node_id: str,
        kind: Optional[EdgeKind | str] = None,
    ) -> list[GraphEdge]:
        """Get edges incident to a node (either direction).

        Args:
            node_id: Node ID
            kind: Optional edge kind filter

        Returns:
            Edges in insertion order; empty for unknown nodes
        """
        edges = [self.edge_map[edge_id] for edge_id in self.adjacency.get(node_id, [])]
        if kind is not None:
            kind = EdgeKind(kind)
            edges = [edge for edge in edges if edge.kind == kind]
        return edges

    def get_outgoing_edges(self, node_id: str, kind: Optional[EdgeKind | str] = None) -> list[GraphEdge]:
        return [e for e in self.get_edges_for_node(node_id, kind) if e.source == node_id]

    def get_incoming_edges(self, node_id: str, kind: Optional[EdgeKind | str] = None) -> list[GraphEdge]:
        return [e for e in self.get_edges_for_node(node_id, kind) if e.target == node_id]

    def get_parent(self, node_id: str) -> Optional[GraphNode]:
        """Return the node that ``contains`` this one, if any."""
        for edge in self.get_incoming_edges(node_id, EdgeKind.CONTAINS):
            return self.node_map[edge.source]
        return None

    def get_root(self) -> Optional[GraphNode]:
        documents = self.by_kind[NodeKind.DOCUMENT]
        return documents[0] if documents else None

    def degree(self, node_id: str) -> int:
        return len(self.adjacency.get(node_id, []))

    def nodes_in_reading_order(self, kinds: Optional[Iterable[NodeKind | str]] = None) -> list[GraphNode]:
        """Nodes sorted by (page, start offset), optionally filtered by kind.

        The sort is stable, so ties keep insertion order.
        """
        if kinds is None:
            nodes = self.nodes
        else:
            wanted = {NodeKind(kind) for kind in kinds}
            nodes = [node for node in self.nodes if node.kind in wanted]
        return sorted(nodes, key=lambda node: node.position.sort_key())

    # ========== Traversal ==========

    def get_neighbors(self, node_id: str, depth: int = 1, direction: str = "out") -> list[GraphNode]:
        """Breadth-first neighbours up to ``depth`` hops away.

        Args:
            node_id: Start node
            depth: Maximum number of hops (values < 1 return nothing)
            direction: "out" follows source->target, "in" target->source,
                "both" ignores direction

        Returns:
            Each reachable node once, nearest first, start node excluded
        """
        if direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}, got {direction!r}")
        if node_id not in self.node_map or depth < 1:
            return []

        visited = {node_id}
        result: list[GraphNode] = []
        queue: deque[tuple[str, int]] = deque([(node_id, 0)])

        while queue:
            current, hops = queue.popleft()
            if hops >= depth:
                continue
            for edge_id in self.adjacency[current]:
                edge = self.edge_map[edge_id]
                if direction == "out" and edge.source != current:
                    continue
                if direction == "in" and edge.target != current:
                    continue
                neighbor = edge.other_end(current)
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                result.append(self.node_map[neighbor])
                queue.append((neighbor, hops + 1))

        return result

    def get_connected_component(self, node_id: str) -> list[GraphNode]:
        """All nodes reachable from ``node_id`` ignoring edge direction.

        Includes the start node; empty for an unknown ID.
        """
        if node_id not in self.node_map:
            return []

        visited: set[str] = set()
        component: list[GraphNode] = []
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            component.append(self.node_map[current])
            for edge_id in self.adjacency[current]:
                neighbor = self.edge_map[edge_id].other_end(current)
                if neighbor not in visited:
                    stack.append(neighbor)
        return component

    def count_components(self) -> int:
        seen: set[str] = set()
        count = 0
        for node in self.nodes:
            if node.id in seen:
                continue
            count += 1
            seen.update(n.id for n in self.get_connected_component(node.id))
        return count

    # ========== Statistics & integrity ==========

    def get_statistics(self) -> dict[str, Any]:
        """Summary counts for the graph.

        Every node kind and edge kind appears in the breakdowns, zero or not.
        """
        node_count = len(self.nodes)
        edge_count = len(self.edges)
        degrees = [len(edge_ids) for edge_ids in self.adjacency.values()]

        edges_by_kind = {kind.value: 0 for kind in EdgeKind}
        for edge in self.edges:
            edges_by_kind[edge.kind.value] += 1

        return {
            "node_count": node_count,
            "edge_count": edge_count,
            "nodes_by_kind": {kind.value: len(nodes) for kind, nodes in self.by_kind.items()},
            "edges_by_kind": edges_by_kind,
            "average_degree": sum(degrees) / node_count if node_count else 0.0,
            "max_degree": max(degrees, default=0),
            "density": edge_count / (node_count * (node_count - 1)) if node_count > 1 else 0.0,
            "connected_components": self.count_components(),
            "pages": sorted(self.by_page),
        }

    def validate(self) -> dict[str, Any]:
        """Check graph integrity.

        Returns:
            Dict with ``valid`` flag, ``errors`` (dangling edges, self loops,
            duplicate IDs, index drift) and ``warnings`` (orphaned nodes)
        """
        errors: list[str] = []
        warnings: list[str] = []

        seen_nodes: set[str] = set()
        for node in self.nodes:
            if node.id in seen_nodes:
                errors.append(f"Duplicate node ID: {node.id}")
            seen_nodes.add(node.id)

        seen_edges: set[str] = set()
        for edge in self.edges:
            if edge.id in seen_edges:
                errors.append(f"Duplicate edge ID: {edge.id}")
            seen_edges.add(edge.id)
            if edge.source not in self.node_map:
                errors.append(f"Edge {edge.id} has dangling source {edge.source}")
            if edge.target not in self.node_map:
                errors.append(f"Edge {edge.id} has dangling target {edge.target}")
            if edge.source == edge.target:
                errors.append(f"Edge {edge.id} is a self loop on {edge.source}")

        if len(self.node_map) != len(seen_nodes) or len(self.edge_map) != len(seen_edges):
            errors.append("Indices out of sync with node/edge lists")

        if len(self.nodes) > 1:
            for node in self.nodes:
                if not self.adjacency.get(node.id):
                    warnings.append(f"Orphaned node: {node.id} ({node.kind.value})")

        return {"valid": not errors, "errors": errors, "warnings": warnings}

    # ========== Serialization ==========

    def to_portable(self) -> dict[str, Any]:
        """Index-free, JSON-compatible representation of the graph."""
        return {
            "id": self.id,
            "document_id": self.document_id,
            "metadata": {
                "version": self.version,
                "status": self.status,
                "processing_time_ms": self.processing_time_ms,
                "error_message": self.error_message,
                "created_at": self.created_at.isoformat(),
                "updated_at": self.updated_at.isoformat(),
            },
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "statistics": self.get_statistics(),
        }

    @classmethod
    def from_portable(cls, data: dict[str, Any]) -> "DocumentGraph":
        """Rebuild a graph (with all indices) from ``to_portable`` output.

        Every node and edge is validated; construction errors propagate.
        """
        graph = cls(document_id=data["document_id"], graph_id=data.get("id"))

        for node_data in data.get("nodes", []):
            graph.add_node(validate_node(GraphNode.from_dict(node_data)))
        for edge_data in data.get("edges", []):
            graph.add_edge(validate_edge(GraphEdge.from_dict(edge_data)))

        metadata = data.get("metadata") or {}
        graph.version = metadata.get("version", GRAPH_VERSION)
        graph.status = metadata.get("status", STATUS_BUILDING)
        graph.processing_time_ms = metadata.get("processing_time_ms", 0.0)
        graph.error_message = metadata.get("error_message")
        if metadata.get("created_at"):
            graph.created_at = datetime.fromisoformat(metadata["created_at"])
        if metadata.get("updated_at"):
            graph.updated_at = datetime.fromisoformat(metadata["updated_at"])

        logger.debug(f"Loaded graph {graph.id}: {len(graph.nodes)} nodes, {len(graph.edges)} edges")
        return graph
