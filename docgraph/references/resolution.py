"""Resolve detected references to target nodes in a document graph.

Each reference kind has a ladder of strategies that is walked in order
until one produces a result:

    section / figure / table -> exact number, fuzzy number
    page                     -> page lookup
    cross_reference          -> spatial (above/below), enclosing (this ...)
    citation                 -> bibliography entry

A strategy returns None when it has nothing to say, so the next one runs.
The source node is never a candidate, and a heading that names its own
number ("Section 3 Overview") is left unresolved. ``resolve_reference``
never raises; unexpected faults are logged and reported as zero-confidence
results.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from docgraph.config_loader import ResolutionConfig
from docgraph.graph.document_graph import DocumentGraph
from docgraph.graph.models import CONTENT_NODE_KINDS, GraphNode, NodeKind
from docgraph.references.models import DetectedReference, ReferenceKind, Resolution

logger = logging.getLogger(__name__)


@dataclass
class ResolutionContext:
    """Where a reference was found: the graph and the citing node."""

    graph: DocumentGraph
    source: GraphNode


Strategy = Callable[[DetectedReference, ResolutionContext, ResolutionConfig], Optional[Resolution]]

# Node kind and number property for each numbered reference kind
_NUMBERED_TARGETS: dict[ReferenceKind, tuple[NodeKind, str]] = {
    ReferenceKind.SECTION: (NodeKind.SECTION, "section_number"),
    ReferenceKind.FIGURE: (NodeKind.IMAGE, "figure_number"),
    ReferenceKind.TABLE: (NodeKind.TABLE, "table_number"),
}

_LEADING_INT_RE = re.compile(r"^\s*(\d+)")
_YEAR_RE = re.compile(r"\b(\d{4})[a-z]?\b")


def _normalize_number(value: Optional[str]) -> str:
    return str(value or "").strip().strip(".").lower()


def number_similarity(a: str, b: str) -> float:
    """Similarity of two dotted numbers.

    1.0 for identical numbers; for a prefix relation ("3" and "3.2") the
    shared leading segments over the longer segment count; otherwise 0.0.
    """
    a, b = _normalize_number(a), _normalize_number(b)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    segments_a, segments_b = a.split("."), b.split(".")
    shared = 0
    for left, right in zip(segments_a, segments_b):
        if left != right:
            break
        shared += 1

    if shared == min(len(segments_a), len(segments_b)):
        return shared / max(len(segments_a), len(segments_b))
    return 0.0


def _candidates(context: ResolutionContext, kind: NodeKind) -> list[GraphNode]:
    """Nodes of a kind in reading order, source excluded."""
    return [
        node for node in context.graph.nodes_in_reading_order([kind])
        if node.id != context.source.id
    ]


def _unresolved(reference: DetectedReference, reason: str, strategy: Optional[str] = None) -> Resolution:
    return Resolution(reference=reference, target_node=None, confidence=0.0, reason=reason, strategy=strategy)


def _names_source(reference: DetectedReference, context: ResolutionContext) -> bool:
    """True when a numbered reference carries the source node's own number."""
    target = _NUMBERED_TARGETS.get(reference.kind)
    if target is None or context.source.kind != target[0]:
        return False
    own_number = _normalize_number(context.source.get_property(target[1]))
    return bool(own_number) and own_number == _normalize_number(reference.target)


# ========== Numbered targets ==========

def resolve_exact(reference: DetectedReference, context: ResolutionContext,
                  config: ResolutionConfig) -> Optional[Resolution]:
    """Match the target against explicit section/figure/table numbers."""
    node_kind, number_key = _NUMBERED_TARGETS[reference.kind]
    target = _normalize_number(reference.target)

    matches = [
        node for node in _candidates(context, node_kind)
        if _normalize_number(node.get_property(number_key)) == target
        and not node.get_property("number_inferred", False)
    ]
    if not matches:
        return None

    confidence = (
        config.exact_section_confidence
        if reference.kind == ReferenceKind.SECTION
        else config.exact_number_confidence
    )
    return Resolution(
        reference=reference,
        target_node=matches[0],
        confidence=confidence,
        reason=f"Exact match: {reference.kind.value} {reference.target}",
        strategy="exact",
        candidates=matches[1:],
    )


def resolve_fuzzy(reference: DetectedReference, context: ResolutionContext,
                  config: ResolutionConfig) -> Optional[Resolution]:
    """Best partial number match (includes inferred numbers)."""
    node_kind, number_key = _NUMBERED_TARGETS[reference.kind]

    scored: list[tuple[float, int, GraphNode]] = []
    for order, node in enumerate(_candidates(context, node_kind)):
        number = node.get_property(number_key)
        if not number:
            continue
        score = number_similarity(reference.target, number)
        if score >= config.min_fuzzy_score:
            scored.append((score, order, node))

    if not scored:
        return None

    # Highest score first, reading order breaks ties
    scored.sort(key=lambda item: (-item[0], item[1]))
    best_score, _, best = scored[0]
    return Resolution(
        reference=reference,
        target_node=best,
        confidence=round(best_score * config.fuzzy_confidence_cap, 4),
        reason=(
            f"Fuzzy match: {reference.kind.value} {best.get_property(number_key)} "
            f"for {reference.target} (score {best_score:.2f})"
        ),
        strategy="fuzzy",
        candidates=[node for _, _, node in scored[1:]],
    )


# ========== Pages ==========

def resolve_page(reference: DetectedReference, context: ResolutionContext,
                 config: ResolutionConfig) -> Optional[Resolution]:
    """First content node on the referenced page, sections/paragraphs first."""
    match = _LEADING_INT_RE.match(reference.target or "")
    if not match:
        return _unresolved(reference, f"Invalid page number: {reference.target}", "page")
    page = int(match.group(1))

    on_page = sorted(
        (
            node for node in context.graph.get_nodes_by_page(page)
            if node.kind in CONTENT_NODE_KINDS and node.id != context.source.id
        ),
        key=lambda node: node.position.start,
    )
    if not on_page:
        return _unresolved(reference, f"No content found on page {page}", "page")

    preferred = [node for node in on_page if node.kind in (NodeKind.SECTION, NodeKind.PARAGRAPH)]
    ranked = preferred + [node for node in on_page if node.kind not in (NodeKind.SECTION, NodeKind.PARAGRAPH)]
    return Resolution(
        reference=reference,
        target_node=ranked[0],
        confidence=config.page_confidence,
        reason=f"Page match: page {page}",
        strategy="page",
        candidates=ranked[1:],
    )


# ========== Cross-references ==========

def resolve_spatial(reference: DetectedReference, context: ResolutionContext,
                    config: ResolutionConfig) -> Optional[Resolution]:
    """Nearest content node before ("above") or after ("below") the source."""
    direction = reference.target.lower()
    if direction not in ("above", "below"):
        return None

    source_key = context.source.position.sort_key()
    content = [
        node for node in context.graph.nodes_in_reading_order(CONTENT_NODE_KINDS)
        if node.id != context.source.id
    ]
    if direction == "above":
        ordered = [node for node in content if node.position.sort_key() < source_key]
        ordered.reverse()
    else:
        ordered = [node for node in content if node.position.sort_key() > source_key]

    if not ordered:
        return _unresolved(reference, f"No content found {direction} the source", "spatial")

    nearest = ordered[0]
    distance = (
        config.spatial_distance_scale * abs(context.source.position.page - nearest.position.page)
        + abs(context.source.position.start - nearest.position.start)
    )
    confidence = 1.0 - distance / config.spatial_distance_scale
    confidence = min(config.spatial_max_confidence, max(config.spatial_min_confidence, confidence))
    return Resolution(
        reference=reference,
        target_node=nearest,
        confidence=round(confidence, 4),
        reason=f"Spatial match: nearest content {direction} (distance {distance:.0f})",
        strategy="spatial",
        candidates=ordered[1:3],
    )


def resolve_enclosing(reference: DetectedReference, context: ResolutionContext,
                      config: ResolutionConfig) -> Optional[Resolution]:
    """The section containing the source, or a figure/table on its page."""
    target = reference.target.lower()

    if target in ("section", "chapter"):
        seen = {context.source.id}
        parent = context.graph.get_parent(context.source.id)
        while parent is not None and parent.id not in seen:
            if parent.kind == NodeKind.SECTION:
                return Resolution(
                    reference=reference,
                    target_node=parent,
                    confidence=config.enclosing_confidence,
                    reason=f"Enclosing section: {parent.content}",
                    strategy="enclosing",
                )
            seen.add(parent.id)
            parent = context.graph.get_parent(parent.id)
        return _unresolved(reference, f"No enclosing {target} found", "enclosing")

    if target in ("figure", "table"):
        node_kind = NodeKind.IMAGE if target == "figure" else NodeKind.TABLE
        page = context.source.position.page
        nearby = sorted(
            (
                node for node in context.graph.get_nodes_by_page(page)
                if node.kind == node_kind and node.id != context.source.id
            ),
            key=lambda node: abs(node.position.start - context.source.position.start),
        )
        if not nearby:
            return _unresolved(reference, f"No {target} found on page {page}", "enclosing")
        return Resolution(
            reference=reference,
            target_node=nearby[0],
            confidence=config.enclosing_confidence,
            reason=f"Nearest {target} on page {page}",
            strategy="enclosing",
            candidates=nearby[1:],
        )

    return None


# ========== Citations ==========

def resolve_bibliography(reference: DetectedReference, context: ResolutionContext,
                         config: ResolutionConfig) -> Optional[Resolution]:
    """Paragraph that looks like the cited bibliography entry."""
    target = reference.target.strip()
    paragraphs = _candidates(context, NodeKind.PARAGRAPH)

    number = _LEADING_INT_RE.match(target)
    if number:
        marker = number.group(1)
        entry_re = re.compile(rf"^\s*(?:\[{marker}\]|{marker}\.\s)")
        label = f"[{marker}]"
    else:
        surname = target.split()[0].rstrip(",")
        year = _YEAR_RE.search(target)
        if not year:
            return None
        entry_re = re.compile(rf"^\s*{re.escape(surname)}\b(?=.*\b{year.group(1)})", re.IGNORECASE | re.DOTALL)
        label = f"{surname} {year.group(1)}"

    entries = [node for node in paragraphs if entry_re.match(node.content or "")]
    if not entries:
        return _unresolved(reference, f"No bibliography entry found for {label}", "bibliography")

    return Resolution(
        reference=reference,
        target_node=entries[0],
        confidence=config.bibliography_confidence,
        reason=f"Bibliography entry for {label}",
        strategy="bibliography",
        candidates=entries[1:],
    )


_LADDERS: dict[ReferenceKind, tuple[Strategy, ...]] = {
    ReferenceKind.SECTION: (resolve_exact, resolve_fuzzy),
    ReferenceKind.FIGURE: (resolve_exact, resolve_fuzzy),
    ReferenceKind.TABLE: (resolve_exact, resolve_fuzzy),
    ReferenceKind.PAGE: (resolve_page,),
    ReferenceKind.CROSS_REFERENCE: (resolve_spatial, resolve_enclosing),
    ReferenceKind.CITATION: (resolve_bibliography,),
}


def _failure_reason(reference: DetectedReference) -> str:
    if reference.kind in _NUMBERED_TARGETS:
        return f"No {reference.kind.value} found matching {reference.target}"
    if reference.kind == ReferenceKind.CROSS_REFERENCE:
        return f"Unsupported cross-reference target: {reference.target}"
    return f"No {reference.kind.value} target found for {reference.target}"


def resolve_reference(
    reference: DetectedReference,
    context: ResolutionContext,
    config: Optional[ResolutionConfig] = None,
) -> Resolution:
    """Resolve one reference.

    Returns:
        Exactly one Resolution; unresolved results have confidence 0.0 and a
        reason naming what was searched for
    """
    config = config or ResolutionConfig()
    try:
        if _names_source(reference, context):
            return _unresolved(
                reference, f"Self reference: {reference.kind.value} {reference.target} names its source", "self"
            )
        for strategy in _LADDERS[reference.kind]:
            resolution = strategy(reference, context, config)
            if resolution is not None:
                return resolution
        return _unresolved(reference, _failure_reason(reference))
    except Exception as e:
        logger.warning(
            f"Resolution failed for {reference.kind.value} reference {reference.target!r} "
            f"in node {context.source.id}: {e}",
            exc_info=True,
        )
        return _unresolved(reference, f"Resolution failed: {e}")


def resolve_references(
    references: Iterable[DetectedReference],
    context: ResolutionContext,
    config: Optional[ResolutionConfig] = None,
) -> list[Resolution]:
    """Resolve references in order; one Resolution per input."""
    config = config or ResolutionConfig()
    return [resolve_reference(reference, context, config) for reference in references]


def reference_edge_metadata(resolution: Resolution) -> dict:
    """Metadata stored on the ``references`` edge built from a resolution."""
    reference = resolution.reference
    return {
        "reference_text": reference.text,
        "reference_kind": reference.kind.value,
        "target": reference.target,
        "pattern_id": reference.pattern_id,
        "strategy": resolution.strategy,
        "detection_confidence": reference.confidence,
        "reason": resolution.reason,
    }
