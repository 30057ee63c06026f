"""Accuracy metrics and sanity checks for reference detection.

Implements:
- Detection precision / recall / F1 against labelled expectations
- Match-result validation (empty input, overlaps, noisy patterns, low confidence)
- Resolution accuracy against expected targets, and resolution-rate checks
- Graph-level reference validation
- Suite aggregation and text reports
"""

import statistics
from dataclasses import dataclass, field
from typing import Any, Optional

from docgraph.config_loader import ResolutionConfig, ValidationConfig
from docgraph.graph.document_graph import DocumentGraph
from docgraph.graph.models import TEXT_NODE_KINDS, EdgeKind
from docgraph.references.matcher import ReferenceMatcher
from docgraph.references.models import DetectedReference, MatchResult, ReferenceKind, Resolution
from docgraph.references.resolution import ResolutionContext, resolve_references


@dataclass
class ExpectedReference:
    """A labelled reference that detection should find.

    Attributes:
        kind: Expected reference kind
        target: Expected target ("3.2", "below", "Jones 2019")
        text: Optional matched text, for reports only
    """

    kind: ReferenceKind
    target: str
    text: Optional[str] = None


@dataclass
class ExpectedResolution:
    """Where a detected reference should resolve to.

    Attributes:
        reference_text: Text of the reference (matched by containment either way)
        target_id: Expected target node ID
        should_resolve: False when the reference must stay unresolved
        min_confidence: Lowest acceptable resolution confidence
    """

    reference_text: str
    target_id: Optional[str] = None
    should_resolve: bool = True
    min_confidence: Optional[float] = None


@dataclass
class DetectionAccuracy:
    """Detection accuracy for one text.

    Attributes:
        true_positives: Detected references matching an expectation
        false_positives: Detected references matching no expectation
        missed: Expectations no detected reference claimed
        precision: TP / detected
        recall: TP / expected
        f1: Harmonic mean of precision and recall
    """

    true_positives: list[DetectedReference]
    false_positives: list[DetectedReference]
    missed: list[ExpectedReference]
    precision: float
    recall: float
    f1: float


@dataclass
class ResolutionAccuracy:
    """Resolution accuracy for one text.

    Attributes:
        correct: Expectations met
        incorrect: Expectations with a resolution that was wrong or too weak
        failed: Expectations that should resolve but had no matching reference
        accuracy: correct / expectations
        average_confidence: Mean confidence over all resolutions
        details: One entry per expectation
    """

    correct: int
    incorrect: int
    failed: int
    accuracy: float
    average_confidence: float
    details: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ValidationReport:
    """Outcome of a validation pass. ``valid`` is False when any issue is found."""

    valid: bool = True
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)

    def add_issue(self, message: str) -> None:
        self.issues.append(message)
        self.valid = False

    def merge(self, other: "ValidationReport", prefix: str = "") -> None:
        for message in other.issues:
            self.add_issue(f"{prefix}{message}")
        self.warnings.extend(f"{prefix}{message}" for message in other.warnings)
        self.suggestions.extend(f"{prefix}{message}" for message in other.suggestions)


def _normalize_target(target: str) -> str:
    return " ".join((target or "").split()).lower().strip(".")


def compute_detection_accuracy(
    detected: list[DetectedReference], expected: list[ExpectedReference]
) -> DetectionAccuracy:
    """Compare detected references with labelled expectations.

    A detected reference is a true positive when its kind and target match
    an expectation not yet claimed by an earlier detection.

    Args:
        detected: References from the matcher
        expected: Labelled expectations

    Returns:
        DetectionAccuracy; empty vs empty scores 1.0 throughout
    """
    if not detected and not expected:
        return DetectionAccuracy([], [], [], 1.0, 1.0, 1.0)

    unclaimed = list(expected)
    true_positives: list[DetectedReference] = []
    false_positives: list[DetectedReference] = []

    for reference in detected:
        match = next(
            (
                exp for exp in unclaimed
                if exp.kind == reference.kind
                and _normalize_target(exp.target) == _normalize_target(reference.target)
            ),
            None,
        )
        if match is None:
            false_positives.append(reference)
        else:
            unclaimed.remove(match)
            true_positives.append(reference)

    precision = len(true_positives) / len(detected) if detected else 0.0
    recall = len(true_positives) / len(expected) if expected else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

    return DetectionAccuracy(
        true_positives=true_positives,
        false_positives=false_positives,
        missed=unclaimed,
        precision=precision,
        recall=recall,
        f1=f1,
    )


def compute_resolution_accuracy(
    resolutions: list[Resolution], expected: list[ExpectedResolution]
) -> ResolutionAccuracy:
    """Compare resolutions with expected targets.

    Each expectation claims the first unclaimed resolution whose reference
    text contains its text (or is contained in it). An expectation that must
    stay unresolved is met when nothing matching resolved.

    Args:
        resolutions: Resolutions for the references detected in a text
        expected: Expected targets

    Returns:
        ResolutionAccuracy; no expectations scores 1.0
    """
    unclaimed = list(resolutions)
    correct = incorrect = failed = 0
    details: list[dict[str, Any]] = []

    for exp in expected:
        wanted = exp.reference_text.lower()
        resolution = next(
            (
                r for r in unclaimed
                if wanted in r.reference.text.lower() or r.reference.text.lower() in wanted
            ),
            None,
        )

        if resolution is None:
            met = not exp.should_resolve
            if exp.should_resolve:
                failed += 1
            details.append({
                "reference_text": exp.reference_text,
                "expected_target_id": exp.target_id,
                "actual_target_id": None,
                "confidence": 0.0,
                "correct": met,
            })
        else:
            unclaimed.remove(resolution)
            actual_id = resolution.target_node.id if resolution.target_node else None
            met = (
                exp.should_resolve == (actual_id is not None)
                and (not exp.should_resolve or actual_id == exp.target_id)
                and (exp.min_confidence is None or resolution.confidence >= exp.min_confidence)
            )
            if not met:
                incorrect += 1
            details.append({
                "reference_text": exp.reference_text,
                "expected_target_id": exp.target_id,
                "actual_target_id": actual_id,
                "confidence": resolution.confidence,
                "correct": met,
            })

        if met:
            correct += 1

    average_confidence = statistics.mean(r.confidence for r in resolutions) if resolutions else 0.0
    return ResolutionAccuracy(
        correct=correct,
        incorrect=incorrect,
        failed=failed,
        accuracy=correct / len(expected) if expected else 1.0,
        average_confidence=average_confidence,
        details=details,
    )


def validate_match_result(
    result: MatchResult, text_length: int, config: Optional[ValidationConfig] = None
) -> ValidationReport:
    """Sanity-check one matcher result.

    Args:
        result: Matcher output
        text_length: Length of the text that was scanned
        config: Validation thresholds

    Returns:
        ValidationReport with issues, warnings and suggestions
    """
    config = config or ValidationConfig()
    report = ValidationReport(stats=dict(result.stats))
    references = result.references

    if text_length == 0:
        report.add_issue("Empty text provided")
        return report

    for reference in references:
        if not 0 <= reference.start < reference.end <= text_length:
            report.add_issue(
                f"Reference {reference.text!r} has offsets ({reference.start}, {reference.end}) "
                f"outside text of length {text_length}"
            )

    ordered = sorted(references, key=lambda r: r.start)
    for previous, current in zip(ordered, ordered[1:]):
        if current.start < previous.end:
            report.add_issue(
                f"Overlapping references: {previous.text!r} ({previous.start}-{previous.end}) "
                f"and {current.text!r} ({current.start}-{current.end})"
            )

    patterns_used = result.stats.get("patterns_used") or {r.pattern_id for r in references}
    if len(references) > config.max_matches and len(patterns_used) <= config.noise_pattern_floor:
        report.warnings.append(
            f"High reference density: {len(references)} matches from only "
            f"{len(patterns_used)} patterns; a pattern may be too broad"
        )

    if references:
        low = [r for r in references if r.confidence < config.low_confidence_threshold]
        if len(low) / len(references) > config.low_confidence_ratio:
            report.suggestions.append(
                f"{len(low)} of {len(references)} references have confidence below "
                f"{config.low_confidence_threshold}; consider reviewing patterns"
            )

    return report


def validate_resolutions(
    resolutions: list[Resolution], config: Optional[ValidationConfig] = None
) -> ValidationReport:
    """Check how many references resolved and how confidently.

    Unresolved and weak (below ``min_resolution_confidence``) resolutions are
    warnings; they never make the report invalid.
    """
    config = config or ValidationConfig()
    report = ValidationReport()

    resolved = [r for r in resolutions if r.resolved]
    for resolution in resolutions:
        text = resolution.reference.text
        if not resolution.resolved:
            report.warnings.append(f"Reference {text!r} could not be resolved: {resolution.reason}")
        elif resolution.confidence < config.min_resolution_confidence:
            report.warnings.append(
                f"Low confidence resolution for {text!r} ({resolution.confidence:.2f})"
            )

    report.stats = {
        "resolutions": len(resolutions),
        "resolved": len(resolved),
        "resolution_rate": len(resolved) / len(resolutions) if resolutions else 0.0,
        "average_confidence": (
            statistics.mean(r.confidence for r in resolutions) if resolutions else 0.0
        ),
    }
    if report.warnings:
        report.suggestions.append("Check reference patterns or target availability")
    return report


def validate_graph_references(
    graph: DocumentGraph,
    config: Optional[ValidationConfig] = None,
    resolution_config: Optional[ResolutionConfig] = None,
) -> ValidationReport:
    """Re-run detection and resolution over a graph's text nodes and check its reference edges."""
    config = config or ValidationConfig()
    resolution_config = resolution_config or ResolutionConfig()
    report = ValidationReport()

    if not graph.nodes:
        report.add_issue("Graph has no nodes")
        return report

    text_nodes = graph.nodes_in_reading_order(TEXT_NODE_KINDS)
    if not text_nodes:
        report.add_issue("Graph has no text nodes to analyse")
        return report

    matcher = ReferenceMatcher()
    references_found = 0
    resolutions: list[Resolution] = []
    for node in text_nodes:
        text = node.content or ""
        if not text.strip():
            continue
        result = matcher.find_references(text)
        references_found += len(result.references)
        node_report = validate_match_result(result, len(text), config)
        report.merge(node_report, prefix=f"[{node.id}] ")
        context = ResolutionContext(graph=graph, source=node)
        resolutions.extend(resolve_references(result.references, context, resolution_config))

    resolution_report = validate_resolutions(resolutions, config)
    report.merge(resolution_report)

    reference_edges = [edge for edge in graph.edges if edge.kind == EdgeKind.REFERENCES]
    for edge in reference_edges:
        if not 0.0 <= edge.weight <= 1.0:
            report.add_issue(f"Reference edge {edge.id} has weight {edge.weight} outside [0, 1]")
        if edge.source not in graph or edge.target not in graph:
            report.add_issue(f"Reference edge {edge.id} points outside the graph")

    report.stats = {
        "text_nodes": len(text_nodes),
        "references_found": references_found,
        "reference_edges": len(reference_edges),
        **resolution_report.stats,
    }
    return report


# ========== Suite aggregation ==========

@dataclass
class CaseResult:
    """Accuracy for one labelled case."""

    case_id: str
    name: str
    accuracy: DetectionAccuracy
    detected_count: int
    expected_count: int
    processing_time_ms: float
    error: Optional[str] = None
    resolution: Optional[ResolutionAccuracy] = None

    def passed(self, min_score: float) -> bool:
        """Detection F1 (and resolution accuracy, when scored) at or above ``min_score``."""
        if self.error is not None or self.accuracy.f1 < min_score:
            return False
        return self.resolution is None or self.resolution.accuracy >= min_score


@dataclass
class AccuracyReport:
    """Aggregated accuracy over a suite of cases."""

    num_cases: int
    precision: float
    recall: float
    f1: float
    passed_cases: int
    by_kind: dict[str, dict[str, int]]
    results: list[CaseResult]
    total_time_ms: float
    resolution_accuracy: Optional[float] = None


def aggregate_accuracy(results: list[CaseResult], min_f1: float = 0.7) -> AccuracyReport:
    """Average per-case precision/recall/F1 and count correct detections per kind.

    Resolution accuracy is averaged over the cases that scored it.

    Args:
        results: Per-case results
        min_f1: Score at or above which a case counts as passed

    Returns:
        AccuracyReport
    """
    by_kind = {kind.value: {"correct": 0, "expected": 0} for kind in ReferenceKind}
    for result in results:
        for reference in result.accuracy.true_positives:
            by_kind[reference.kind.value]["correct"] += 1
            by_kind[reference.kind.value]["expected"] += 1
        for missed in result.accuracy.missed:
            by_kind[missed.kind.value]["expected"] += 1

    if not results:
        return AccuracyReport(0, 0.0, 0.0, 0.0, 0, by_kind, [], 0.0)

    scored = [r.resolution.accuracy for r in results if r.resolution is not None]

    return AccuracyReport(
        num_cases=len(results),
        precision=statistics.mean(r.accuracy.precision for r in results),
        recall=statistics.mean(r.accuracy.recall for r in results),
        f1=statistics.mean(r.accuracy.f1 for r in results),
        passed_cases=sum(1 for r in results if r.passed(min_f1)),
        by_kind=by_kind,
        results=results,
        total_time_ms=sum(r.processing_time_ms for r in results),
        resolution_accuracy=statistics.mean(scored) if scored else None,
    )


def format_accuracy_report(report: AccuracyReport) -> str:
    """Format an accuracy report as human-readable text.

    Args:
        report: AccuracyReport to format

    Returns:
        Formatted report string
    """
    report_lines = [
        "=" * 60,
        "Reference Detection Accuracy Report",
        "=" * 60,
        "",
        f"Number of Cases: {report.num_cases}",
        f"Passed: {report.passed_cases}/{report.num_cases}",
        "",
        "Detection Metrics:",
        f"  Precision: {report.precision:.3f}",
        f"  Recall: {report.recall:.3f}",
        f"  F1: {report.f1:.3f}",
        "",
        "By Kind (correct/expected):",
    ]
    for kind, counts in report.by_kind.items():
        if counts["expected"]:
            report_lines.append(f"  {kind}: {counts['correct']}/{counts['expected']}")

    if report.resolution_accuracy is not None:
        report_lines.extend(["", f"Resolution Accuracy: {report.resolution_accuracy:.3f}"])

    failures = [
        r for r in report.results
        if r.error or r.accuracy.missed or r.accuracy.false_positives
        or (r.resolution is not None and r.resolution.correct < len(r.resolution.details))
    ]
    if failures:
        report_lines.extend(["", "Cases With Differences:"])
        for result in failures:
            report_lines.append(f"  {result.case_id} ({result.name}): F1 {result.accuracy.f1:.3f}")
            if result.error:
                report_lines.append(f"    error: {result.error}")
            for missed in result.accuracy.missed:
                report_lines.append(f"    missed {missed.kind.value} {missed.target!r}")
            for extra in result.accuracy.false_positives:
                report_lines.append(f"    unexpected {extra.kind.value} {extra.target!r} ({extra.text!r})")
            if result.resolution is not None:
                for detail in result.resolution.details:
                    if not detail["correct"]:
                        report_lines.append(
                            f"    resolved {detail['reference_text']!r} to {detail['actual_target_id']} "
                            f"(expected {detail['expected_target_id']}, confidence {detail['confidence']:.2f})"
                        )

    report_lines.extend(["", f"Total Time: {report.total_time_ms:.1f} ms", "", "=" * 60])
    return "\n".join(report_lines)
