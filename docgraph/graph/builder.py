"""Build a document graph from parsed pages.

Structure first (root, pages, sections, paragraphs, tables, images,
containment and reading order), then reference detection and resolution
over every text node.
"""

import logging
import re
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from docgraph.config_loader import Settings
from docgraph.graph.document_graph import STATUS_COMPLETE, STATUS_ERROR, DocumentGraph
from docgraph.graph.factory import (
    create_contains_edge,
    create_document_node,
    create_follows_edge,
    create_image_node,
    create_metadata_node,
    create_paragraph_node,
    create_references_edge,
    create_section_node,
    create_table_node,
)
from docgraph.graph.layout import HeadingCandidate, detect_headings, height_ranks, locate, normalize_text
from docgraph.graph.models import TEXT_NODE_KINDS, GraphNode, Position
from docgraph.references.detection import analyze_node
from docgraph.references.resolution import ResolutionContext, reference_edge_metadata, resolve_references
from docgraph.schema import ImageCandidate, ParsedDocument, ParsedPage, TableCandidate

logger = logging.getLogger(__name__)

_TABLE_NUMBER_RE = re.compile(r"\bTable\s+(\d+(?:\.\d+)*)", re.IGNORECASE)
_FIGURE_NUMBER_RE = re.compile(r"\b(?:Figure|Fig\.?)\s*(\d+(?:\.\d+)*)", re.IGNORECASE)

EMPTY_PAGE_TEXT = "[Empty page]"


@dataclass
class BuildMetadata:
    """Outcome and counts for one build."""

    status: str = STATUS_COMPLETE
    processing_time_ms: float = 0.0
    error_message: Optional[str] = None
    page_count: int = 0
    paragraph_count: int = 0
    section_count: int = 0
    table_count: int = 0
    image_count: int = 0
    references_detected: int = 0
    references_resolved: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BuildResult:
    """Graph plus build metadata. The graph is partial when status is error."""

    graph: DocumentGraph
    metadata: BuildMetadata = field(default_factory=BuildMetadata)

    @property
    def success(self) -> bool:
        return self.metadata.status == STATUS_COMPLETE


@dataclass
class _OpenSection:
    node: GraphNode
    key: tuple[int, int]


def _repair_offsets(start: int, end: int) -> tuple[int, int]:
    start = max(0, start)
    return start, max(end, start + 1)


class GraphBuilder:
    """
    Turns a ParsedDocument into a DocumentGraph.

    One builder can be reused; all per-build state lives in local variables
    of ``build``.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.config = self.settings.builder

    def build(self, document: ParsedDocument | dict) -> BuildResult:
        """Build the graph.

        Args:
            document: Parsed document (a dict is validated into ParsedDocument)

        Returns:
            BuildResult; status is error if an unexpected fault stopped the
            build, with the partially built graph attached

        Raises:
            pydantic.ValidationError: If a dict input does not match the schema
        """
        if not isinstance(document, ParsedDocument):
            document = ParsedDocument.model_validate(document)

        started = time.perf_counter()
        graph = DocumentGraph(document_id=document.document_id)
        metadata = BuildMetadata(page_count=len(document.pages))

        logger.info(f"Building graph for {document.document_id}: {len(document.pages)} pages")
        try:
            root = self._add_root(graph, document)
            sections = self._add_structure(graph, root, document, metadata)
            self._add_tables(graph, root, sections, document.tables, metadata)
            self._add_images(graph, root, sections, document.images, metadata)
            if self.config.detect_references:
                self._add_references(graph, metadata)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(f"Graph build failed for {document.document_id}: {str(e)}", exc_info=True)
            graph.mark_error(str(e))
            metadata.status = STATUS_ERROR
            metadata.error_message = str(e)
            metadata.processing_time_ms = elapsed_ms
            return BuildResult(graph=graph, metadata=metadata)

        elapsed_ms = (time.perf_counter() - started) * 1000
        graph.mark_complete(elapsed_ms)
        metadata.processing_time_ms = elapsed_ms
        logger.info(
            f"Built graph for {document.document_id}: {len(graph.nodes)} nodes, {len(graph.edges)} edges, "
            f"{metadata.references_resolved}/{metadata.references_detected} references resolved "
            f"in {elapsed_ms:.1f}ms"
        )
        return BuildResult(graph=graph, metadata=metadata)

    # ========== Structure ==========

    def _add_root(self, graph: DocumentGraph, document: ParsedDocument) -> GraphNode:
        info = document.metadata
        title = (info.title or "").strip() or self.config.default_title
        properties = {
            "author": info.author,
            "subject": info.subject,
            "keywords": list(info.keywords),
            "language": info.language,
        }
        root = create_document_node(
            title,
            page_count=document.page_count,
            file_size=info.file_size,
            properties={key: value for key, value in properties.items() if value},
        )
        return graph.add_node(root)

    def _add_page_node(self, graph: DocumentGraph, root: GraphNode, page: ParsedPage) -> None:
        facts = {
            "page_number": page.page_number,
            "char_count": len(page.text),
            "paragraph_count": len(page.paragraphs),
            "run_count": len(page.text_runs),
        }
        node = create_metadata_node(
            f"Page {page.page_number}",
            facts,
            Position(page=page.page_number, start=0, end=max(1, len(page.text))),
            properties=facts,
        )
        graph.add_node(node)
        graph.add_edge(create_contains_edge(root.id, node.id))

    def _page_headings(self, pages: list[ParsedPage]) -> tuple[dict[int, list[HeadingCandidate]], dict[float, int]]:
        headings = {page.page_number: detect_headings(page.text_runs, self.config) for page in pages if page.text_runs}
        ranks = height_ranks(
            [heading.height for found in headings.values() for heading in found],
            self.config.heading_height_tolerance,
        )
        return headings, ranks

    def _add_structure(
        self,
        graph: DocumentGraph,
        root: GraphNode,
        document: ParsedDocument,
        metadata: BuildMetadata,
    ) -> list[GraphNode]:
        """Pages, sections and paragraphs with containment and reading order.

        Returns:
            Section nodes in reading order
        """
        pages = sorted(document.pages, key=lambda page: page.page_number)
        headings_by_page, ranks = self._page_headings(pages)

        stack: list[_OpenSection] = []
        sections: list[GraphNode] = []
        paragraphs: list[GraphNode] = []

        for page in pages:
            self._add_page_node(graph, root, page)

            # (start, order, kind, payload); headings sort before paragraphs at equal offsets
            events: list[tuple[int, int, str, Any]] = []
            heading_texts: set[str] = set()
            cursor = 0
            for heading in headings_by_page.get(page.page_number, []):
                span = locate(page.text, heading.text, cursor)
                start, end = span if span else (cursor, cursor + max(1, len(heading.text)))
                cursor = end
                events.append((start, 0, "heading", (heading, end)))
                heading_texts.add(normalize_text(heading.text))

            candidates = [p for p in page.paragraphs if p.content.strip()]
            cursor = 0
            for paragraph in candidates:
                start, end = paragraph.start, paragraph.end
                if end <= start or start < 0:
                    span = locate(page.text, paragraph.content, cursor)
                    if span:
                        start, end = span
                    else:
                        logger.warning(
                            f"Repairing offsets ({paragraph.start}, {paragraph.end}) "
                            f"on page {page.page_number}"
                        )
                start, end = _repair_offsets(start, end)
                cursor = end
                events.append((start, 1, "paragraph", (paragraph, end)))

            if not candidates:
                events.append((0, 1, "fallback", None))

            events.sort(key=lambda event: (event[0], event[1]))

            for start, _, kind, payload in events:
                parent = stack[-1].node if stack else root

                if kind == "heading":
                    heading, end = payload
                    key = (ranks.get(heading.height, 0), heading.depth)
                    while stack and stack[-1].key >= key:
                        stack.pop()
                    parent = stack[-1].node if stack else root
                    section = create_section_node(
                        heading.text,
                        level=len(stack) + 1,
                        position=Position(page.page_number, *_repair_offsets(start, end)),
                        confidence=self.config.section_confidence,
                        section_number=heading.section_number,
                        properties={"height": heading.height, "height_rank": key[0]},
                    )
                    graph.add_node(section)
                    graph.add_edge(create_contains_edge(parent.id, section.id))
                    stack.append(_OpenSection(node=section, key=key))
                    sections.append(section)
                    continue

                if kind == "paragraph":
                    paragraph, end = payload
                    if normalize_text(paragraph.content) in heading_texts:
                        logger.debug(f"Paragraph absorbed by heading on page {page.page_number}")
                        continue
                    properties = {"line_count": paragraph.line_count}
                    if paragraph.id:
                        properties["source_id"] = paragraph.id
                    node = create_paragraph_node(
                        paragraph.content,
                        Position(page.page_number, start, end),
                        confidence=paragraph.confidence,
                        properties=properties,
                    )
                else:
                    node = self._fallback_paragraph(page)

                graph.add_node(node)
                graph.add_edge(create_contains_edge(parent.id, node.id))
                paragraphs.append(node)

        # Reading order over all pages
        ordered = sorted(paragraphs, key=lambda node: node.position.sort_key())
        for previous, current in zip(ordered, ordered[1:]):
            graph.add_edge(create_follows_edge(previous.id, current.id, self.config.follows_weight))

        metadata.paragraph_count = len(paragraphs)
        metadata.section_count = len(sections)
        return sections

    def _fallback_paragraph(self, page: ParsedPage) -> GraphNode:
        lines = [line.strip() for line in page.text.splitlines() if line.strip()]
        if lines:
            logger.warning(f"Page {page.page_number} has no paragraphs; using raw page text")
            return create_paragraph_node(
                " ".join(lines),
                Position(page.page_number, 0, max(1, len(page.text))),
                confidence=self.config.fallback_confidence,
                properties={"fallback": True},
            )

        logger.warning(f"Page {page.page_number} is empty")
        return create_paragraph_node(
            EMPTY_PAGE_TEXT,
            Position(page.page_number, 0, 1),
            confidence=self.config.empty_page_confidence,
            properties={"fallback": True, "empty_page": True},
        )

    # ========== Tables & images ==========

    @staticmethod
    def _container(root: GraphNode, sections: list[GraphNode], page: int, start: int) -> GraphNode:
        """Last section started at or before (page, start), else the root."""
        container = root
        for section in sections:
            if section.position.sort_key() <= (page, start):
                container = section
            else:
                break
        return container

    @staticmethod
    def _spans_pages(page: int, end_page: Optional[int]) -> Optional[list[int]]:
        if end_page is not None and end_page > page:
            return list(range(page, end_page + 1))
        return None

    def _add_tables(
        self,
        graph: DocumentGraph,
        root: GraphNode,
        sections: list[GraphNode],
        tables: list[TableCandidate],
        metadata: BuildMetadata,
    ) -> None:
        for ordinal, table in enumerate(tables, start=1):
            number = table.number
            if not number:
                for text in (table.caption, table.content):
                    match = _TABLE_NUMBER_RE.search(text or "")
                    if match:
                        number = match.group(1)
                        break
            inferred = not number
            if inferred:
                number = str(ordinal)

            properties: dict[str, Any] = {
                "extraction_method": table.extraction_method,
                "number_inferred": inferred,
            }
            if table.caption:
                properties["caption"] = table.caption
            spans = self._spans_pages(table.page, table.end_page)
            if spans:
                properties["spans_pages"] = spans

            start, end = _repair_offsets(table.start, table.end)
            node = create_table_node(
                table.content,
                Position(table.page, start, end),
                row_count=table.row_count,
                col_count=table.col_count,
                confidence=table.confidence,
                table_number=number,
                properties=properties,
            )
            graph.add_node(node)
            container = self._container(root, sections, table.page, start)
            graph.add_edge(create_contains_edge(container.id, node.id))

        metadata.table_count = len(tables)

    def _add_images(
        self,
        graph: DocumentGraph,
        root: GraphNode,
        sections: list[GraphNode],
        images: list[ImageCandidate],
        metadata: BuildMetadata,
    ) -> None:
        for ordinal, image in enumerate(images, start=1):
            number = image.number
            if not number:
                match = _FIGURE_NUMBER_RE.search(image.caption or "")
                number = match.group(1) if match else None
            inferred = not number
            if inferred:
                number = str(ordinal)

            properties: dict[str, Any] = {
                "extraction_method": image.extraction_method,
                "number_inferred": inferred,
            }
            spans = self._spans_pages(image.page, image.end_page)
            if spans:
                properties["spans_pages"] = spans

            start, end = _repair_offsets(image.start, image.end)
            node = create_image_node(
                image.caption,
                Position(image.page, start, end),
                dimensions=(image.width, image.height) if image.width and image.height else None,
                confidence=image.confidence,
                figure_number=number,
                properties=properties,
            )
            graph.add_node(node)
            container = self._container(root, sections, image.page, start)
            graph.add_edge(create_contains_edge(container.id, node.id))

        metadata.image_count = len(images)

    # ========== References ==========

    def _add_references(self, graph: DocumentGraph, metadata: BuildMetadata) -> None:
        """Detect and resolve references in every text node, adding edges."""
        linked: set[tuple[str, str]] = set()

        for node in graph.nodes_in_reading_order(TEXT_NODE_KINDS):
            analysis = analyze_node(node, config=self.settings.detection)
            if not analysis.references:
                continue
            metadata.references_detected += len(analysis.references)

            context = ResolutionContext(graph=graph, source=node)
            for resolution in resolve_references(analysis.references, context, self.settings.resolution):
                if not resolution.resolved:
                    logger.debug(f"Unresolved reference in {node.id}: {resolution.reason}")
                    continue
                metadata.references_resolved += 1

                pair = (node.id, resolution.target_node.id)
                if pair in linked:
                    continue
                linked.add(pair)
                graph.add_edge(
                    create_references_edge(
                        node.id,
                        resolution.target_node.id,
                        weight=resolution.confidence,
                        context=resolution.reference.context,
                        properties=reference_edge_metadata(resolution),
                    )
                )


def build_graph(document: ParsedDocument | dict, settings: Optional[Settings] = None) -> BuildResult:
    """Convenience wrapper around ``GraphBuilder(settings).build(document)``."""
    return GraphBuilder(settings).build(document)
