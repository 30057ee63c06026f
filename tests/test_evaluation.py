"""Tests for evaluation metrics and runner."""

import json

import pytest

from docgraph.config_loader import Settings, ValidationConfig
from docgraph.evaluation.dataset import (
    ReferenceTestCase,
    create_reference_dataset,
    create_resolution_suite,
    load_cases_from_json,
)
from docgraph.evaluation.metrics import (
    CaseResult,
    ExpectedReference,
    ExpectedResolution,
    aggregate_accuracy,
    compute_detection_accuracy,
    compute_resolution_accuracy,
    format_accuracy_report,
    validate_graph_references,
    validate_match_result,
    validate_resolutions,
)
from docgraph.evaluation.runner import AccuracyRunner, run_accuracy_suite
from docgraph.graph.builder import GraphBuilder
from docgraph.graph.document_graph import DocumentGraph
from docgraph.graph.factory import create_document_node, create_paragraph_node, create_table_node
from docgraph.graph.models import NodeKind, Position
from docgraph.references.matcher import ReferenceMatcher
from docgraph.references.models import DetectedReference, MatchResult, ReferenceKind, Resolution
from docgraph.references.resolution import ResolutionContext, resolve_references


def _ref(start, end, kind=ReferenceKind.SECTION, target="1", confidence=0.9, pattern_id="section_explicit"):
    return DetectedReference(
        text="x" * (end - start), start=start, end=end, kind=kind,
        target=target, pattern_id=pattern_id, confidence=confidence,
    )


def test_compute_detection_accuracy():
    """Test precision, recall and F1 against labelled expectations."""
    detected = ReferenceMatcher().find_references("See section 3.2 and Figure 1 on page 9.").references
    expected = [
        ExpectedReference(ReferenceKind.SECTION, "3.2"),
        ExpectedReference(ReferenceKind.FIGURE, "1"),
        ExpectedReference(ReferenceKind.TABLE, "4"),
    ]

    accuracy = compute_detection_accuracy(detected, expected)
    assert len(accuracy.true_positives) == 2
    assert [r.kind for r in accuracy.false_positives] == [ReferenceKind.PAGE]
    assert [m.target for m in accuracy.missed] == ["4"]
    assert accuracy.precision == pytest.approx(2 / 3)
    assert accuracy.recall == pytest.approx(2 / 3)
    assert accuracy.f1 == pytest.approx(2 / 3)


def test_accuracy_edge_cases():
    """Test empty inputs."""
    perfect = compute_detection_accuracy([], [])
    assert (perfect.precision, perfect.recall, perfect.f1) == (1.0, 1.0, 1.0)

    nothing_found = compute_detection_accuracy([], [ExpectedReference(ReferenceKind.PAGE, "3")])
    assert nothing_found.recall == 0.0
    assert nothing_found.f1 == 0.0

    unexpected = compute_detection_accuracy([_ref(0, 5)], [])
    assert unexpected.precision == 0.0
    assert len(unexpected.false_positives) == 1


def test_duplicate_detections_count_once():
    """Test one expectation cannot be claimed twice."""
    detected = [_ref(0, 5), _ref(10, 15)]
    accuracy = compute_detection_accuracy(detected, [ExpectedReference(ReferenceKind.SECTION, "1")])
    assert len(accuracy.true_positives) == 1
    assert len(accuracy.false_positives) == 1


def test_validate_match_result_clean():
    """Test a normal matcher result validates."""
    text = "See section 3.2 and Table 4."
    result = ReferenceMatcher().find_references(text)
    report = validate_match_result(result, len(text))
    assert report.valid
    assert report.issues == []
    assert report.stats["total"] == 2


def test_validate_match_result_flags_problems():
    """Test empty text, bad offsets and overlaps are issues."""
    empty = validate_match_result(MatchResult([], "", {}), 0)
    assert not empty.valid
    assert empty.issues == ["Empty text provided"]

    broken = MatchResult([_ref(0, 10), _ref(5, 12), _ref(18, 30)], "", {})
    report = validate_match_result(broken, 20)
    assert not report.valid
    assert any("outside text" in issue for issue in report.issues)
    assert any("Overlapping" in issue for issue in report.issues)


def test_validate_match_result_density_and_confidence():
    """Test noisy single-pattern output warns and weak matches are flagged."""
    references = [_ref(i * 2, i * 2 + 1, confidence=0.3) for i in range(6)]
    result = MatchResult(references, "", {"patterns_used": ["section_explicit"]})
    config = ValidationConfig(max_matches=5)

    report = validate_match_result(result, 100, config)
    assert report.valid
    assert any("High reference density" in warning for warning in report.warnings)
    assert any("confidence below" in suggestion for suggestion in report.suggestions)


def test_validate_graph_references(layout_document):
    """Test graph validation over a built graph."""
    graph = GraphBuilder().build(layout_document).graph
    report = validate_graph_references(graph)
    assert report.valid
    assert report.stats["text_nodes"] == 7
    assert report.stats["references_found"] == 6
    assert report.stats["reference_edges"] == 5
    assert report.stats["resolved"] == 6
    assert report.stats["resolution_rate"] == 1.0


def test_validate_graph_without_text():
    """Test graphs with no nodes or no text nodes are issues."""
    assert validate_graph_references(DocumentGraph("empty")).issues == ["Graph has no nodes"]

    graph = DocumentGraph("tables-only")
    graph.add_node(create_document_node("Doc", page_count=1, file_size=10))
    graph.add_node(create_table_node("a | b", Position(1, 0, 5), row_count=1, col_count=2))
    report = validate_graph_references(graph)
    assert not report.valid
    assert report.issues == ["Graph has no text nodes to analyse"]


def test_builtin_dataset():
    """Test the built-in suite is well formed."""
    cases = create_reference_dataset()
    assert len(cases) == 7
    assert len({case.case_id for case in cases}) == len(cases)
    covered = {exp.kind for case in cases for exp in case.expected}
    assert covered == set(ReferenceKind)


def test_builtin_dataset_passes():
    """Test the matcher gets every built-in case right."""
    report = run_accuracy_suite(settings=Settings())
    assert report.num_cases == 7
    assert report.passed_cases == 7
    assert report.f1 == pytest.approx(1.0)
    assert report.by_kind["citation"] == {"correct": 3, "expected": 3}


def test_runner_records_failures(monkeypatch):
    """Test a case that raises is recorded rather than aborting the run."""
    runner = AccuracyRunner(settings=Settings())

    def explode(text, context_window=50):
        raise RuntimeError("matcher broke")

    monkeypatch.setattr(runner.matcher, "find_references", explode)
    case = ReferenceTestCase("c1", "Broken", "Table 1", [ExpectedReference(ReferenceKind.TABLE, "1")])
    report = runner.run([case])

    assert report.passed_cases == 0
    assert report.results[0].error == "matcher broke"
    assert "error: matcher broke" in format_accuracy_report(report)


def test_save_results(tmp_path):
    """Test results are written as JSON."""
    runner = AccuracyRunner(settings=Settings())
    report = runner.run(create_reference_dataset()[:2])
    output = tmp_path / "out" / "results.json"
    runner.save_results(report, output)

    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["metrics"]["num_cases"] == 2
    assert [r["case_id"] for r in data["results"]] == ["basic-section-references", "figure-references"]


def test_load_cases_from_json(tmp_path):
    """Test loading labelled cases from disk."""
    path = tmp_path / "cases.json"
    path.write_text(
        json.dumps(
            {
                "cases": [
                    {
                        "case_id": "custom",
                        "text": "See Table 2.",
                        "expected": [{"kind": "table", "target": "2"}],
                        "tags": ["table"],
                        "expected_resolutions": [
                            {"reference_text": "Table 2", "target_id": "node-7", "min_confidence": 0.5}
                        ],
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    (case,) = load_cases_from_json(path)
    assert case.case_id == "custom"
    assert case.name == "custom"
    assert case.expected[0].kind == ReferenceKind.TABLE
    assert case.expected_resolutions == [ExpectedResolution("Table 2", "node-7", min_confidence=0.5)]

    with pytest.raises(FileNotFoundError):
        load_cases_from_json(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps([{"text": "x", "expected": [{"kind": "chapter", "target": "1"}]}]), encoding="utf-8")
    with pytest.raises(ValueError):
        load_cases_from_json(bad)


def test_format_accuracy_report():
    """Test the text report lists metrics and differences."""
    detected = ReferenceMatcher().find_references("See page 9.").references
    accuracy = compute_detection_accuracy(detected, [ExpectedReference(ReferenceKind.TABLE, "4")])

    report = aggregate_accuracy([CaseResult("c1", "Case one", accuracy, 1, 1, 1.5)])
    text = format_accuracy_report(report)
    assert "Reference Detection Accuracy Report" in text
    assert "Passed: 0/1" in text
    assert "missed table '4'" in text
    assert "unexpected page '9'" in text


def _resolve(graph, text):
    source = create_paragraph_node(text, Position(1, 0, len(text)))
    references = ReferenceMatcher().find_references(text).references
    return resolve_references(references, ResolutionContext(graph=graph, source=source))


def test_validate_resolutions():
    """Test resolution rate, average confidence and flagged resolutions."""
    graph, _ = create_resolution_suite()
    resolutions = _resolve(graph, "Section 2.1 and Section 9.")
    table = graph.get_nodes_by_kind(NodeKind.TABLE)[0]
    weak = Resolution(_ref(0, 5), target_node=table, confidence=0.2, reason="weak match", strategy="fuzzy")

    report = validate_resolutions(resolutions + [weak])
    assert report.valid
    assert report.stats["resolutions"] == 3
    assert report.stats["resolved"] == 2
    assert report.stats["resolution_rate"] == pytest.approx(2 / 3)
    assert report.stats["average_confidence"] == pytest.approx((0.95 + 0.0 + 0.2) / 3)
    assert any("'Section 9' could not be resolved" in w for w in report.warnings)
    assert any("Low confidence resolution" in w and "(0.20)" in w for w in report.warnings)
    assert report.suggestions == ["Check reference patterns or target availability"]

    lenient = validate_resolutions([weak], ValidationConfig(min_resolution_confidence=0.1))
    assert lenient.warnings == []
    assert lenient.suggestions == []


def test_validate_resolutions_empty():
    """Test no resolutions gives zero rates and no warnings."""
    report = validate_resolutions([])
    assert report.valid
    assert report.stats["resolution_rate"] == 0.0
    assert report.stats["average_confidence"] == 0.0
    assert report.warnings == []


def test_compute_resolution_accuracy():
    """Test expected targets are scored against resolutions."""
    graph, _ = create_resolution_suite()
    table = graph.get_nodes_by_kind(NodeKind.TABLE)[0]
    resolutions = _resolve(graph, "Table 3 and Section 9.")

    accuracy = compute_resolution_accuracy(
        resolutions,
        [
            ExpectedResolution("Table 3", table.id),
            ExpectedResolution("Section 9", should_resolve=False),
        ],
    )
    assert (accuracy.correct, accuracy.incorrect, accuracy.failed) == (2, 0, 0)
    assert accuracy.accuracy == 1.0
    assert accuracy.average_confidence == pytest.approx(0.45)

    wrong = compute_resolution_accuracy(
        resolutions,
        [
            ExpectedResolution("Table 3", "another-node"),
            ExpectedResolution("Section 9", "some-section"),
            ExpectedResolution("Figure 8", "some-figure"),
        ],
    )
    assert (wrong.correct, wrong.incorrect, wrong.failed) == (0, 2, 1)
    assert wrong.accuracy == 0.0
    assert wrong.details[0]["actual_target_id"] == table.id

    too_weak = compute_resolution_accuracy(resolutions, [ExpectedResolution("Table 3", table.id, min_confidence=0.95)])
    assert too_weak.incorrect == 1

    assert compute_resolution_accuracy(resolutions, []).accuracy == 1.0


def test_resolution_suite_passes():
    """Test the built-in resolution cases resolve to their expected nodes."""
    graph, cases = create_resolution_suite()
    report = run_accuracy_suite(cases, settings=Settings(), graph=graph)

    assert report.passed_cases == len(cases) == 3
    assert report.f1 == pytest.approx(1.0)
    assert report.resolution_accuracy == pytest.approx(1.0)
    for result in report.results:
        assert result.resolution.correct == len(result.resolution.details)
    assert "Resolution Accuracy: 1.000" in format_accuracy_report(report)


def test_resolution_failures_are_reported():
    """Test wrong targets fail the case and appear in the text report."""
    graph, (case, *_) = create_resolution_suite()
    case.expected_resolutions = [ExpectedResolution("Table 3", "another-node")]

    report = AccuracyRunner(settings=Settings(), graph=graph).run([case])
    assert report.passed_cases == 0
    assert report.resolution_accuracy == 0.0
    assert "expected another-node" in format_accuracy_report(report)


def test_resolution_cases_need_a_graph(tmp_path):
    """Test expected resolutions without a graph are recorded as an error."""
    _, cases = create_resolution_suite()
    runner = AccuracyRunner(settings=Settings())
    report = runner.run(cases[:1])
    assert "no graph" in report.results[0].error

    graph, cases = create_resolution_suite()
    runner = AccuracyRunner(settings=Settings(), graph=graph)
    output = tmp_path / "results.json"
    runner.save_results(runner.run(cases), output)
    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["metrics"]["resolution_accuracy"] == 1.0
    assert data["results"][0]["resolution"]["correct"] == 2
