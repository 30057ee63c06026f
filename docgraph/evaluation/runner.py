"""Accuracy runner for reference detection.

Runs labelled cases through the matcher, collects per-case accuracy and
aggregates a report. Cases with expected resolutions are also resolved
against the runner's graph and scored.
"""

import json
import logging
import time
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from docgraph.config_loader import Settings, get_settings
from docgraph.evaluation.dataset import ReferenceTestCase, create_reference_dataset
from docgraph.evaluation.metrics import (
    AccuracyReport,
    CaseResult,
    DetectionAccuracy,
    aggregate_accuracy,
    compute_detection_accuracy,
    compute_resolution_accuracy,
)
from docgraph.graph.document_graph import DocumentGraph
from docgraph.graph.factory import create_paragraph_node
from docgraph.graph.models import Position
from docgraph.references.matcher import ReferenceMatcher
from docgraph.references.resolution import ResolutionContext, resolve_references

logger = logging.getLogger(__name__)


class AccuracyRunner:
    """Runner for labelled detection cases."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        min_f1: float = 0.7,
        graph: Optional[DocumentGraph] = None,
    ):
        """Initialize the runner.

        Args:
            settings: Settings instance. If None, loads from config.
            min_f1: Score at or above which a case counts as passed
            graph: Graph that expected resolutions refer to
        """
        self.settings = settings or get_settings()
        self.min_f1 = min_f1
        self.graph = graph
        self.matcher = ReferenceMatcher()

    def evaluate_case(self, case: ReferenceTestCase) -> CaseResult:
        """Run detection (and resolution, when expected) on one case and score it.

        Raises:
            ValueError: If the case expects resolutions but the runner has no graph
        """
        start_time = time.perf_counter()
        result = self.matcher.find_references(
            case.text, context_window=self.settings.detection.matcher_context_window
        )
        accuracy = compute_detection_accuracy(result.references, case.expected)

        resolution = None
        if case.expected_resolutions:
            if self.graph is None:
                raise ValueError(f"Case {case.case_id} expects resolutions but no graph was given")
            # The scanned text stands in for a paragraph at the top of page 1
            source = create_paragraph_node(case.text, Position(1, 0, max(1, len(case.text))))
            context = ResolutionContext(graph=self.graph, source=source)
            resolutions = resolve_references(result.references, context, self.settings.resolution)
            resolution = compute_resolution_accuracy(resolutions, case.expected_resolutions)

        return CaseResult(
            case_id=case.case_id,
            name=case.name,
            accuracy=accuracy,
            detected_count=len(result.references),
            expected_count=len(case.expected),
            processing_time_ms=(time.perf_counter() - start_time) * 1000,
            resolution=resolution,
        )

    def run(self, cases: list[ReferenceTestCase]) -> AccuracyReport:
        """Evaluate every case; a case that raises is recorded as failed."""
        results = []
        for i, case in enumerate(cases, 1):
            logger.debug(f"Evaluating case {i}/{len(cases)}: {case.case_id}")
            try:
                results.append(self.evaluate_case(case))
            except Exception as e:
                logger.error(f"Case {case.case_id} failed: {str(e)}", exc_info=True)
                results.append(
                    CaseResult(
                        case_id=case.case_id,
                        name=case.name,
                        accuracy=DetectionAccuracy([], [], list(case.expected), 0.0, 0.0, 0.0),
                        detected_count=0,
                        expected_count=len(case.expected),
                        processing_time_ms=0.0,
                        error=str(e),
                    )
                )

        report = aggregate_accuracy(results, min_f1=self.min_f1)
        logger.info(
            f"Accuracy suite: {report.passed_cases}/{report.num_cases} passed, "
            f"precision {report.precision:.3f}, recall {report.recall:.3f}, F1 {report.f1:.3f}"
        )
        return report

    def save_results(self, report: AccuracyReport, output_path: Path) -> None:
        """Save an accuracy report as JSON.

        Args:
            report: Aggregated report
            output_path: Path to save results
        """
        output_data = {
            "metrics": {
                "num_cases": report.num_cases,
                "passed_cases": report.passed_cases,
                "precision": report.precision,
                "recall": report.recall,
                "f1": report.f1,
                "by_kind": report.by_kind,
                "total_time_ms": report.total_time_ms,
                "resolution_accuracy": report.resolution_accuracy,
            },
            "results": [
                {
                    "case_id": r.case_id,
                    "name": r.name,
                    "precision": r.accuracy.precision,
                    "recall": r.accuracy.recall,
                    "f1": r.accuracy.f1,
                    "detected": r.detected_count,
                    "expected": r.expected_count,
                    "missed": [{"kind": m.kind.value, "target": m.target} for m in r.accuracy.missed],
                    "false_positives": [ref.to_dict() for ref in r.accuracy.false_positives],
                    "error": r.error,
                    "resolution": asdict(r.resolution) if r.resolution is not None else None,
                }
                for r in report.results
            ],
        }

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as f:
            json.dump(output_data, f, indent=2, ensure_ascii=False)


def run_accuracy_suite(
    cases: Optional[list[ReferenceTestCase]] = None,
    settings: Optional[Settings] = None,
    graph: Optional[DocumentGraph] = None,
) -> AccuracyReport:
    """Run labelled cases (the built-in suite by default) and aggregate."""
    runner = AccuracyRunner(settings=settings or Settings(), graph=graph)
    return runner.run(cases if cases is not None else create_reference_dataset())
