"""Construction-time errors for graph nodes and edges."""


class GraphError(ValueError):
    """Base class for graph construction errors."""


class InvalidKind(GraphError):
    """Node kind is not one of the supported node kinds."""


class EmptyLabel(GraphError):
    """Node label is empty or whitespace."""


class NullContent(GraphError):
    """Node content is None (an empty string is allowed)."""


class InvalidPosition(GraphError):
    """Position has page < 1, negative start, or start >= end."""


class InvalidConfidence(GraphError):
    """Confidence outside [0.0, 1.0]."""


class InvalidWeight(GraphError):
    """Edge weight outside [0.0, 1.0]."""


class SelfReference(GraphError):
    """Edge source and target are the same node."""


class InvalidEdgeKind(GraphError):
    """Edge kind is not one of the supported edge kinds."""


class DanglingReference(GraphError):
    """Edge endpoint does not exist in the graph."""


class DuplicateId(GraphError):
    """Node or edge ID already present in the graph."""


class NotTextNode(GraphError):
    """Reference detection was requested on a node without narrative text."""
