"""Evaluation harness for reference detection accuracy and validation."""

from docgraph.evaluation.metrics import (
    AccuracyReport,
    CaseResult,
    DetectionAccuracy,
    ExpectedReference,
    ExpectedResolution,
    ResolutionAccuracy,
    ValidationReport,
    aggregate_accuracy,
    compute_detection_accuracy,
    compute_resolution_accuracy,
    format_accuracy_report,
    validate_graph_references,
    validate_match_result,
    validate_resolutions,
)
from docgraph.evaluation.dataset import (
    ReferenceTestCase,
    create_reference_dataset,
    create_resolution_suite,
    load_cases_from_json,
)
from docgraph.evaluation.runner import AccuracyRunner, run_accuracy_suite

__all__ = [
    "AccuracyRunner",
    "ReferenceTestCase",
    "ExpectedReference",
    "ExpectedResolution",
    "DetectionAccuracy",
    "ResolutionAccuracy",
    "CaseResult",
    "AccuracyReport",
    "ValidationReport",
    "create_reference_dataset",
    "create_resolution_suite",
    "load_cases_from_json",
    "compute_detection_accuracy",
    "compute_resolution_accuracy",
    "aggregate_accuracy",
    "validate_match_result",
    "validate_resolutions",
    "validate_graph_references",
    "format_accuracy_report",
    "run_accuracy_suite",
]
