"""Tests for GraphBuilder."""

import pytest
from pydantic import ValidationError

from docgraph.config_loader import Settings
from docgraph.graph.builder import EMPTY_PAGE_TEXT, GraphBuilder, build_graph
from docgraph.graph.document_graph import STATUS_COMPLETE, STATUS_ERROR, DocumentGraph
from docgraph.graph.models import EdgeKind, NodeKind
from docgraph.schema import DocumentMetadata, ParsedDocument, ParsedPage, ParsedParagraph, TextRun


def _sections_by_number(graph):
    return {node.get_property("section_number"): node for node in graph.get_nodes_by_kind(NodeKind.SECTION)}


def _paragraph(graph, prefix):
    return next(node for node in graph.get_nodes_by_kind(NodeKind.PARAGRAPH) if node.content.startswith(prefix))


def _reference_edges(graph):
    return [edge for edge in graph.edges if edge.kind == EdgeKind.REFERENCES]


def test_two_page_document(two_page_document):
    """Test paragraphs without layout data hang off the root in reading order."""
    result = GraphBuilder().build(two_page_document)
    graph = result.graph

    assert result.success
    assert graph.status == STATUS_COMPLETE
    root = graph.get_root()
    assert root.label == "Document: Two Pages"
    assert root.get_property("author") == "A. Author"
    assert root.get_property("page_count") == 2

    paragraphs = graph.nodes_in_reading_order([NodeKind.PARAGRAPH])
    assert [p.content for p in paragraphs] == ["Alpha paragraph.", "Beta paragraph.", "Gamma paragraph."]
    assert all(graph.get_parent(p.id) is root for p in paragraphs)
    assert [p.position.page for p in paragraphs] == [1, 1, 2]

    follows = [edge for edge in graph.edges if edge.kind == EdgeKind.FOLLOWS]
    assert [(e.source, e.target) for e in follows] == [
        (paragraphs[0].id, paragraphs[1].id),
        (paragraphs[1].id, paragraphs[2].id),
    ]
    assert all(edge.weight == 0.8 for edge in follows)

    pages = graph.get_nodes_by_kind(NodeKind.METADATA)
    assert [p.get_property("page_number") for p in pages] == [1, 2]
    assert pages[0].label == "Metadata: Page 1"

    assert result.metadata.paragraph_count == 3
    assert result.metadata.section_count == 0
    assert _reference_edges(graph) == []
    assert graph.validate()["valid"]


def test_build_from_dict(two_page_document):
    """Test a plain dict input is validated into a ParsedDocument."""
    result = build_graph(two_page_document.model_dump())
    assert result.success
    assert len(result.graph.get_nodes_by_kind(NodeKind.PARAGRAPH)) == 3


def test_build_rejects_invalid_dict():
    """Test that schema violations surface as validation errors."""
    with pytest.raises(ValidationError):
        GraphBuilder().build({"document_id": "bad", "pages": [{"page_number": 0}]})


def test_zero_page_document():
    """Test a document with no pages yields just the root."""
    document = ParsedDocument(document_id="empty", metadata=DocumentMetadata(page_count=0))
    result = GraphBuilder().build(document)

    assert result.success
    assert len(result.graph) == 1
    assert result.graph.get_root().label == "Document: Untitled Document"
    assert result.graph.edges == []


def test_page_without_paragraphs_uses_text():
    """Test a page with text but no paragraphs gets one fallback paragraph."""
    document = ParsedDocument(
        document_id="fallback",
        pages=[ParsedPage(page_number=1, text="Line one\n\nLine two")],
    )
    graph = GraphBuilder().build(document).graph

    paragraphs = graph.get_nodes_by_kind(NodeKind.PARAGRAPH)
    assert len(paragraphs) == 1
    assert paragraphs[0].content == "Line one Line two"
    assert paragraphs[0].confidence == 0.5
    assert paragraphs[0].get_property("fallback") is True


def test_empty_page_placeholder():
    """Test an empty page still gets a low-confidence placeholder paragraph."""
    document = ParsedDocument(document_id="blank", pages=[ParsedPage(page_number=1, text="")])
    graph = GraphBuilder().build(document).graph

    paragraphs = graph.get_nodes_by_kind(NodeKind.PARAGRAPH)
    assert len(paragraphs) == 1
    assert paragraphs[0].content == EMPTY_PAGE_TEXT
    assert paragraphs[0].confidence == 0.1
    assert paragraphs[0].get_property("empty_page") is True


def test_heading_hierarchy(layout_document):
    """Test headings become nested sections that contain their paragraphs."""
    result = GraphBuilder().build(layout_document)
    graph = result.graph
    root = graph.get_root()
    sections = _sections_by_number(graph)

    assert set(sections) == {"1", "1.1", "2"}
    intro, background, results = sections["1"], sections["1.1"], sections["2"]
    assert intro.content == "1 Introduction"
    assert intro.get_property("level") == 1
    assert background.get_property("level") == 2
    assert results.get_property("level") == 1

    assert graph.get_parent(intro.id) is root
    assert graph.get_parent(background.id) is intro
    assert graph.get_parent(results.id) is root

    assert graph.get_parent(_paragraph(graph, "This document").id) is intro
    assert graph.get_parent(_paragraph(graph, "Earlier work").id) is background
    assert graph.get_parent(_paragraph(graph, "The findings").id) is results
    assert graph.get_parent(_paragraph(graph, "Smith, A.").id) is results

    assert result.metadata.section_count == 3
    assert result.metadata.paragraph_count == 4


def test_located_paragraph_offsets(layout_document):
    """Test paragraphs without offsets are located in the page text."""
    graph = GraphBuilder().build(layout_document).graph
    paragraph = _paragraph(graph, "This document")
    page_text = layout_document.pages[0].text
    assert page_text[paragraph.position.start:paragraph.position.end] == paragraph.content


def test_tables_and_images(layout_document):
    """Test tables and images are numbered from captions and placed in sections."""
    graph = GraphBuilder().build(layout_document).graph
    background = _sections_by_number(graph)["1.1"]

    (table,) = graph.get_nodes_by_kind(NodeKind.TABLE)
    assert table.get_property("table_number") == "1"
    assert table.get_property("number_inferred") is False
    assert table.get_property("extraction_method") == "lattice"
    assert graph.get_parent(table.id) is background

    (image,) = graph.get_nodes_by_kind(NodeKind.IMAGE)
    assert image.get_property("figure_number") == "1"
    assert image.get_property("width") == 640
    assert graph.get_parent(image.id) is background


def test_reference_edges(layout_document):
    """Test detected references become weighted edges to their targets."""
    result = GraphBuilder().build(layout_document)
    graph = result.graph
    sections = _sections_by_number(graph)
    table = graph.get_nodes_by_kind(NodeKind.TABLE)[0]
    image = graph.get_nodes_by_kind(NodeKind.IMAGE)[0]
    intro_para = _paragraph(graph, "This document")
    background_para = _paragraph(graph, "Earlier work")
    results_para = _paragraph(graph, "The findings")
    bibliography = _paragraph(graph, "Smith, A.")

    edges = {(e.source, e.target): e for e in _reference_edges(graph)}

    to_background = edges[(intro_para.id, sections["1.1"].id)]
    assert to_background.weight == 0.95
    assert to_background.metadata["strategy"] == "exact"
    assert to_background.metadata["reference_kind"] == "section"
    assert "section 1.1" in to_background.metadata["context"]

    assert edges[(background_para.id, table.id)].weight == 0.9
    assert edges[(background_para.id, image.id)].weight == 0.9

    above = edges[(results_para.id, sections["2"].id)]
    assert above.metadata["strategy"] == "spatial"
    assert above.weight == 0.85
    assert (results_para.id, bibliography.id) in edges

    # The citation and "below" both land on the bibliography entry; one edge only
    pairs = [(e.source, e.target) for e in _reference_edges(graph)]
    assert len(pairs) == len(set(pairs))
    assert result.metadata.references_detected == 6
    assert result.metadata.references_resolved == 6


def test_heading_naming_its_own_number_gets_no_edge():
    """Test "Section 3 Overview" is not linked to its own subsection."""
    lines = [
        ("Section 3 Overview", 50, 18),
        ("The overview body text runs here.", 80, 10),
        ("3.1 Details", 110, 14),
        ("The details body text runs here.", 140, 10),
    ]
    document = ParsedDocument(
        document_id="doc-self",
        metadata=DocumentMetadata(title="Self", page_count=1),
        pages=[
            ParsedPage(
                page_number=1,
                text="\n".join(line for line, _, _ in lines),
                paragraphs=[ParsedParagraph(page_number=1, content=lines[i][0]) for i in (1, 3)],
                text_runs=[TextRun(text=line, x=50, y=y, width=400, height=h) for line, y, h in lines],
            )
        ],
    )

    result = GraphBuilder().build(document)
    sections = _sections_by_number(result.graph)
    assert set(sections) == {"3", "3.1"}
    assert result.graph.get_parent(sections["3.1"].id) is sections["3"]
    assert _reference_edges(result.graph) == []
    assert result.metadata.references_resolved == 0


def test_reference_detection_can_be_disabled(layout_document):
    """Test the builder skips references when configured to."""
    settings = Settings(builder={"detect_references": False})
    result = GraphBuilder(settings).build(layout_document)
    assert result.success
    assert _reference_edges(result.graph) == []
    assert result.metadata.references_detected == 0


def test_build_failure_keeps_partial_graph(layout_document, monkeypatch):
    """Test an unexpected fault marks the build as failed without raising."""

    def explode(*args, **kwargs):
        raise RuntimeError("table extraction broke")

    monkeypatch.setattr(GraphBuilder, "_add_tables", explode)
    result = GraphBuilder().build(layout_document)

    assert not result.success
    assert result.metadata.status == STATUS_ERROR
    assert result.metadata.error_message == "table extraction broke"
    assert result.graph.status == STATUS_ERROR
    assert result.graph.get_root() is not None
    assert result.graph.get_nodes_by_kind(NodeKind.TABLE) == []


def test_portable_output_roundtrips(layout_document):
    """Test a built graph survives serialisation."""
    graph = GraphBuilder().build(layout_document).graph
    restored = DocumentGraph.from_portable(graph.to_portable())
    assert len(restored) == len(graph)
    assert restored.get_statistics()["edges_by_kind"] == graph.get_statistics()["edges_by_kind"]
    assert restored.status == STATUS_COMPLETE
