"""Tests for node and edge factory functions."""

import pytest

from docgraph.graph.errors import (
    EmptyLabel,
    GraphError,
    InvalidConfidence,
    InvalidEdgeKind,
    InvalidKind,
    InvalidPosition,
    InvalidWeight,
    NullContent,
    SelfReference,
)
from docgraph.graph.factory import (
    create_code_node,
    create_contains_edge,
    create_document_node,
    create_edge,
    create_image_node,
    create_list_node,
    create_metadata_node,
    create_node,
    create_paragraph_node,
    create_references_edge,
    create_section_node,
    create_similarity_edge,
    create_table_node,
    validate_node,
)
from docgraph.graph.models import EdgeKind, NodeKind, Position


def pos(page: int = 1, start: int = 0, end: int = 10) -> Position:
    return Position(page=page, start=start, end=end)


def test_create_node_basic():
    """Test creating a valid node."""
    node = create_node("paragraph", "Paragraph: hi", "hi", pos(), confidence=0.8)
    assert node.kind == NodeKind.PARAGRAPH
    assert node.content == "hi"
    assert len(node.id) == 32
    assert node.created_at == node.updated_at


def test_ids_are_unique():
    """Test that IDs are fresh on every call."""
    ids = {create_node(NodeKind.PARAGRAPH, "p", "", pos()).id for _ in range(50)}
    assert len(ids) == 50


def test_empty_content_allowed():
    """Test that empty content is accepted but None is not."""
    assert create_node(NodeKind.PARAGRAPH, "p", "", pos()).content == ""
    with pytest.raises(NullContent):
        create_node(NodeKind.PARAGRAPH, "p", None, pos())


@pytest.mark.parametrize(
    "kwargs,error",
    [
        ({"kind": "chapter"}, InvalidKind),
        ({"label": "   "}, EmptyLabel),
        ({"position": Position(page=0, start=0, end=1)}, InvalidPosition),
        ({"position": Position(page=1, start=-1, end=1)}, InvalidPosition),
        ({"position": Position(page=1, start=5, end=5)}, InvalidPosition),
        ({"confidence": 1.01}, InvalidConfidence),
        ({"confidence": -0.1}, InvalidConfidence),
    ],
)
def test_create_node_rejects_invalid_input(kwargs, error):
    """Test each construction rule."""
    params = {"kind": NodeKind.PARAGRAPH, "label": "p", "content": "x", "position": pos()}
    params.update(kwargs)
    with pytest.raises(error):
        create_node(**params)


def test_errors_are_value_errors():
    """Test that construction errors share a ValueError base."""
    assert issubclass(InvalidKind, GraphError)
    assert issubclass(GraphError, ValueError)


def test_document_node():
    """Test document root construction."""
    node = create_document_node("Annual Report", page_count=3, file_size=0)
    assert node.label == "Document: Annual Report"
    assert node.content == "Document: Annual Report (3 pages, 0 bytes)"
    assert node.position.end == 1
    assert node.get_property("page_count") == 3


def test_section_node_number():
    """Test section nodes keep level and number."""
    node = create_section_node("3.2 Methods", level=2, position=pos(), section_number="3.2")
    assert node.kind == NodeKind.SECTION
    assert node.get_property("section_number") == "3.2"
    assert node.get_property("level") == 2


def test_paragraph_label_truncated():
    """Test long paragraph labels are truncated."""
    node = create_paragraph_node("word " * 100, pos())
    assert len(node.label) <= 80
    assert node.label.endswith("...")


def test_table_and_image_nodes():
    """Test table and image labels and properties."""
    table = create_table_node("a | b", pos(), row_count=2, col_count=3, table_number="4")
    assert table.label == "Table 4: 2x3"
    assert table.get_property("cell_count") == 6

    image = create_image_node("", pos(), dimensions=(100, 50))
    assert image.content == "[Image]"
    assert image.get_property("width") == 100


def test_list_code_metadata_nodes():
    """Test the remaining per-kind constructors."""
    assert create_list_node("- a\n- b", pos(), item_count=2, ordered=True).get_property("list_type") == "ordered"
    assert create_code_node("x = 1\ny = 2", pos(), language="python").get_property("line_count") == 2
    meta = create_metadata_node("author", "Jane", pos())
    assert meta.content == "author: Jane"
    assert meta.kind == NodeKind.METADATA


def test_create_edge_rules():
    """Test edge validation."""
    edge = create_edge("a", "b", "contains")
    assert edge.kind == EdgeKind.CONTAINS
    assert edge.weight == 1.0

    with pytest.raises(SelfReference):
        create_edge("a", "a", EdgeKind.FOLLOWS)
    with pytest.raises(InvalidEdgeKind):
        create_edge("a", "b", "cites")
    with pytest.raises(InvalidWeight):
        create_edge("a", "b", EdgeKind.SIMILAR, weight=1.5)
    with pytest.raises(GraphError):
        create_edge("", "b", EdgeKind.CONTAINS)


def test_edge_helpers():
    """Test typed edge helpers."""
    assert create_contains_edge("a", "b").kind == EdgeKind.CONTAINS
    ref = create_references_edge("a", "b", weight=0.9, context="see section 1", properties={"pattern_id": "x"})
    assert ref.metadata == {"context": "see section 1", "pattern_id": "x"}
    sim = create_similarity_edge("a", "b", 0.42)
    assert sim.weight == 0.42
    assert sim.metadata["similarity_score"] == 0.42


def test_validate_node_roundtrip():
    """Test validate_node accepts a node rebuilt from its dict."""
    node = create_section_node("Intro", level=1, position=pos(), section_number="1")
    rebuilt = validate_node(type(node).from_dict(node.to_dict()))
    assert rebuilt.id == node.id
    assert rebuilt.kind == NodeKind.SECTION
    assert rebuilt.position == node.position
