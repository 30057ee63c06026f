"""Reference detection over graph nodes.

Module-level functions wrapping ``ReferenceMatcher`` with per-node
analysis and simple aggregate statistics.
"""

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from docgraph.config_loader import DetectionConfig
from docgraph.graph.errors import NotTextNode
from docgraph.graph.models import TEXT_NODE_KINDS, GraphNode, NodeKind
from docgraph.references.matcher import ReferenceMatcher, describe_reference
from docgraph.references.models import DetectedReference, ReferenceKind, empty_kind_counts

logger = logging.getLogger(__name__)

_matcher = ReferenceMatcher()

# Which reference kinds can point at which node kinds
_TARGET_KINDS: dict[NodeKind, frozenset[ReferenceKind]] = {
    NodeKind.SECTION: frozenset({ReferenceKind.SECTION, ReferenceKind.CROSS_REFERENCE, ReferenceKind.PAGE}),
    NodeKind.IMAGE: frozenset({ReferenceKind.FIGURE, ReferenceKind.CROSS_REFERENCE}),
    NodeKind.TABLE: frozenset({ReferenceKind.TABLE, ReferenceKind.CROSS_REFERENCE}),
    NodeKind.PARAGRAPH: frozenset({ReferenceKind.CITATION, ReferenceKind.CROSS_REFERENCE, ReferenceKind.PAGE}),
    NodeKind.LIST: frozenset({ReferenceKind.CROSS_REFERENCE, ReferenceKind.PAGE}),
    NodeKind.CODE: frozenset({ReferenceKind.CROSS_REFERENCE, ReferenceKind.PAGE}),
}


@dataclass
class ReferenceAnalysis:
    """References found in one node (or one piece of raw text).

    Attributes:
        source: Analysed node, None for raw text
        references: Detected references sorted by start offset
        references_by_kind: References grouped by kind (every kind present)
        stats: Totals, unique targets and confidence summaries
        text_length: Length of the analysed text
        processing_time_ms: Wall time spent matching
    """

    source: Optional[GraphNode]
    references: list[DetectedReference]
    references_by_kind: dict[str, list[DetectedReference]]
    stats: dict[str, Any]
    text_length: int
    processing_time_ms: float = 0.0
    cleaned_text: str = field(default="", repr=False)

    @property
    def average_confidence(self) -> float:
        return self.stats["confidence"]["avg"]


def is_text_node(node: GraphNode) -> bool:
    """True for node kinds that carry narrative text."""
    return node.kind in TEXT_NODE_KINDS


def _confidence_summary(references: list[DetectedReference]) -> dict[str, float]:
    if not references:
        return {"min": 0.0, "avg": 0.0, "max": 0.0}
    values = [reference.confidence for reference in references]
    return {"min": min(values), "avg": sum(values) / len(values), "max": max(values)}


def _analyze(text: str, source: Optional[GraphNode], context_window: int) -> ReferenceAnalysis:
    started = time.perf_counter()
    result = _matcher.find_references(text, context_window=context_window)
    elapsed_ms = (time.perf_counter() - started) * 1000

    by_kind: dict[str, list[DetectedReference]] = {kind: [] for kind in empty_kind_counts()}
    for reference in result.references:
        by_kind[reference.kind.value].append(reference)

    stats = {
        "total": len(result.references),
        "unique_targets": len({(r.kind, r.target.lower()) for r in result.references}),
        "by_kind": {kind: len(refs) for kind, refs in by_kind.items()},
        "confidence": _confidence_summary(result.references),
        "confidence_by_kind": {kind: _confidence_summary(refs) for kind, refs in by_kind.items()},
        "raw_matches": result.stats["raw_matches"],
    }

    return ReferenceAnalysis(
        source=source,
        references=result.references,
        references_by_kind=by_kind,
        stats=stats,
        text_length=len(text),
        processing_time_ms=elapsed_ms,
        cleaned_text=result.cleaned_text,
    )


def analyze_node(node: GraphNode, context_window: Optional[int] = None,
                 config: Optional[DetectionConfig] = None) -> ReferenceAnalysis:
    """Detect references in a text node.

    Args:
        node: Paragraph, section, list or code node
        context_window: Characters of context per reference (default from config)
        config: Detection settings

    Raises:
        NotTextNode: If the node kind does not carry narrative text
    """
    if not is_text_node(node):
        raise NotTextNode(f"Node {node.id} has kind {node.kind.value}, which is not a text node")

    config = config or DetectionConfig()
    window = config.context_window if context_window is None else context_window
    analysis = _analyze(node.content or "", node, window)

    if analysis.references:
        logger.debug(
            f"Node {node.id}: {len(analysis.references)} references "
            f"[{'; '.join(describe_reference(r) for r in analysis.references)}]"
        )
    return analysis


def analyze_nodes(nodes: Iterable[GraphNode], context_window: Optional[int] = None,
                  config: Optional[DetectionConfig] = None) -> list[ReferenceAnalysis]:
    """Analyze many nodes, skipping (not failing on) non-text nodes."""
    analyses = []
    skipped = 0
    for node in nodes:
        if not is_text_node(node):
            skipped += 1
            continue
        analyses.append(analyze_node(node, context_window, config))
    if skipped:
        logger.debug(f"Skipped {skipped} non-text nodes during reference detection")
    return analyses


def analyze_text(text: str, context_window: Optional[int] = None,
                 config: Optional[DetectionConfig] = None) -> ReferenceAnalysis:
    """Detect references in raw text not attached to a node."""
    config = config or DetectionConfig()
    window = config.context_window if context_window is None else context_window
    return _analyze(text or "", None, window)


def filter_references_by_target_kind(
    references: Iterable[DetectedReference],
    node_kind: NodeKind | str,
) -> list[DetectedReference]:
    """Keep references whose kind can point at nodes of ``node_kind``."""
    allowed = _TARGET_KINDS.get(NodeKind(node_kind), frozenset())
    return [reference for reference in references if reference.kind in allowed]


def summarize_analyses(analyses: list[ReferenceAnalysis]) -> dict[str, Any]:
    """Aggregate figures over a batch of analyses.

    The average confidence is taken per node, over nodes that have at least
    one reference, so nodes without references do not drag it to zero.
    """
    total_references = sum(len(a.references) for a in analyses)
    with_references = [a for a in analyses if a.references]

    kind_counter: Counter[str] = Counter()
    for analysis in analyses:
        kind_counter.update(reference.kind.value for reference in analysis.references)

    return {
        "nodes_analyzed": len(analyses),
        "nodes_with_references": len(with_references),
        "total_references": total_references,
        "average_references_per_node": total_references / len(analyses) if analyses else 0.0,
        "average_confidence": (
            sum(a.average_confidence for a in with_references) / len(with_references)
            if with_references else 0.0
        ),
        "most_common_kind": kind_counter.most_common(1)[0][0] if kind_counter else None,
        "references_by_kind": {kind: kind_counter.get(kind, 0) for kind in empty_kind_counts()},
        "total_processing_time_ms": sum(a.processing_time_ms for a in analyses),
    }
