"""Labelled reference detection cases.

Each case pairs a piece of text with the references detection should find
in it (kind and target) and, optionally, the graph nodes they should resolve
to. ``create_reference_dataset`` returns the built-in detection suite,
``create_resolution_suite`` a small graph with cases resolved against it, and
``load_cases_from_json`` reads more from disk.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from docgraph.evaluation.metrics import ExpectedReference, ExpectedResolution
from docgraph.graph.document_graph import DocumentGraph
from docgraph.graph.factory import (
    create_contains_edge,
    create_document_node,
    create_image_node,
    create_paragraph_node,
    create_section_node,
    create_table_node,
)
from docgraph.graph.models import Position
from docgraph.references.models import ReferenceKind


@dataclass
class ReferenceTestCase:
    """A single labelled detection case.

    Attributes:
        case_id: Unique identifier
        name: Human-readable name
        text: Text to scan
        expected: References detection should find
        difficulty: easy / medium / hard
        tags: Free-form tags
        expected_resolutions: Targets the detected references should resolve to
    """

    case_id: str
    name: str
    text: str
    expected: list[ExpectedReference]
    difficulty: str = "medium"
    tags: list[str] = field(default_factory=list)
    expected_resolutions: list[ExpectedResolution] = field(default_factory=list)


def _expect(kind: ReferenceKind, target: str, text: str | None = None) -> ExpectedReference:
    return ExpectedReference(kind=kind, target=target, text=text)


def create_reference_dataset() -> list[ReferenceTestCase]:
    """Built-in labelled cases covering every reference kind.

    Returns:
        List of ReferenceTestCase
    """
    return [
        ReferenceTestCase(
            case_id="basic-section-references",
            name="Basic Section References",
            text=(
                "For more information, see section 3.2. The details are in section 5, "
                "and the methodology is described in section 1.4."
            ),
            expected=[
                _expect(ReferenceKind.SECTION, "3.2", "see section 3.2"),
                _expect(ReferenceKind.SECTION, "5", "section 5"),
                _expect(ReferenceKind.SECTION, "1.4", "section 1.4"),
            ],
            difficulty="easy",
            tags=["section", "basic"],
        ),
        ReferenceTestCase(
            case_id="figure-references",
            name="Figure References",
            text=(
                "As shown in Figure 1, the results indicate a clear trend. See Figure 2.3 for the "
                "detailed analysis. The diagram in fig. 4 illustrates this concept."
            ),
            expected=[
                _expect(ReferenceKind.FIGURE, "1", "Figure 1"),
                _expect(ReferenceKind.FIGURE, "2.3", "See Figure 2.3"),
                _expect(ReferenceKind.FIGURE, "4", "fig. 4"),
            ],
            difficulty="easy",
            tags=["figure", "basic"],
        ),
        ReferenceTestCase(
            case_id="mixed-references",
            name="Mixed Reference Types",
            text=(
                "According to the methodology in section 2.1 and as shown in Figure 3, the data "
                "from Table 4 supports this conclusion. See page 15 for additional details."
            ),
            expected=[
                _expect(ReferenceKind.SECTION, "2.1", "section 2.1"),
                _expect(ReferenceKind.FIGURE, "3", "Figure 3"),
                _expect(ReferenceKind.TABLE, "4", "Table 4"),
                _expect(ReferenceKind.PAGE, "15", "See page 15"),
            ],
            difficulty="medium",
            tags=["mixed", "comprehensive"],
        ),
        ReferenceTestCase(
            case_id="cross-references",
            name="Cross References",
            text=(
                "See below for the implementation details. As mentioned earlier, this approach "
                "is effective. The rest of this section covers edge cases."
            ),
            expected=[
                _expect(ReferenceKind.CROSS_REFERENCE, "below", "See below"),
                _expect(ReferenceKind.CROSS_REFERENCE, "above", "mentioned earlier"),
                _expect(ReferenceKind.CROSS_REFERENCE, "section", "this section"),
            ],
            difficulty="medium",
            tags=["cross-reference", "spatial"],
        ),
        ReferenceTestCase(
            case_id="citations",
            name="Academic Citations",
            text=(
                "Several studies have shown this effect [1, 2]. Follow-up work "
                "(Smith et al. 2023) confirmed it, as did [Jones 2019]."
            ),
            expected=[
                _expect(ReferenceKind.CITATION, "1, 2", "[1, 2]"),
                _expect(ReferenceKind.CITATION, "Smith et al. 2023", "(Smith et al. 2023)"),
                _expect(ReferenceKind.CITATION, "Jones 2019", "[Jones 2019]"),
            ],
            difficulty="hard",
            tags=["citation", "academic"],
        ),
        ReferenceTestCase(
            case_id="abbreviations",
            name="Symbols and Abbreviations",
            text="Under § 4.1 the rule applies; see pp. 10-12 and Chapter 7.",
            expected=[
                _expect(ReferenceKind.SECTION, "4.1", "§ 4.1"),
                _expect(ReferenceKind.PAGE, "10-12", "see pp. 10-12"),
                _expect(ReferenceKind.SECTION, "7", "Chapter 7"),
            ],
            difficulty="medium",
            tags=["section", "page", "abbreviation"],
        ),
        ReferenceTestCase(
            case_id="no-references",
            name="Plain Prose",
            text="The 3 results gathered in 2021 were strong and the team was pleased.",
            expected=[],
            difficulty="easy",
            tags=["negative"],
        ),
    ]


def create_resolution_suite() -> tuple[DocumentGraph, list[ReferenceTestCase]]:
    """A small report graph and cases whose references resolve against it.

    Returns:
        (graph, cases); expected target IDs refer to nodes of this graph
    """
    graph = DocumentGraph(document_id="resolution-suite")
    root = graph.add_node(create_document_node("Field Study", page_count=6, file_size=0))
    methods = graph.add_node(
        create_section_node("2 Methods", level=1, position=Position(1, 0, 9), section_number="2")
    )
    setup = graph.add_node(
        create_section_node("2.1 Setup", level=2, position=Position(1, 40, 49), section_number="2.1")
    )
    table = graph.add_node(
        create_table_node("Parameter | Value", Position(2, 0, 17), row_count=1, col_count=2, table_number="3")
    )
    figure = graph.add_node(create_image_node("Figure 1: Site map", Position(2, 30, 48), figure_number="1"))
    discussion = graph.add_node(create_paragraph_node("The sites differ in altitude.", Position(5, 0, 29)))
    entry = graph.add_node(create_paragraph_node("[4] Lee, K. Field notes. 2018.", Position(6, 0, 30)))

    graph.add_edge(create_contains_edge(root.id, methods.id))
    graph.add_edge(create_contains_edge(methods.id, setup.id))
    for node in (table, figure):
        graph.add_edge(create_contains_edge(setup.id, node.id))
    for node in (discussion, entry):
        graph.add_edge(create_contains_edge(root.id, node.id))

    cases = [
        ReferenceTestCase(
            case_id="resolve-numbered",
            name="Numbered Targets",
            text="Section 2.1 describes the setup; Table 3 lists the parameters.",
            expected=[
                _expect(ReferenceKind.SECTION, "2.1", "Section 2.1"),
                _expect(ReferenceKind.TABLE, "3", "Table 3"),
            ],
            difficulty="easy",
            tags=["resolution", "section", "table"],
            expected_resolutions=[
                ExpectedResolution("Section 2.1", setup.id, min_confidence=0.9),
                ExpectedResolution("Table 3", table.id, min_confidence=0.9),
            ],
        ),
        ReferenceTestCase(
            case_id="resolve-pages-and-citations",
            name="Figures, Pages and Citations",
            text="See Figure 1 on page 5 and the study in [4].",
            expected=[
                _expect(ReferenceKind.FIGURE, "1", "See Figure 1"),
                _expect(ReferenceKind.PAGE, "5", "page 5"),
                _expect(ReferenceKind.CITATION, "4", "[4]"),
            ],
            difficulty="medium",
            tags=["resolution", "figure", "page", "citation"],
            expected_resolutions=[
                ExpectedResolution("Figure 1", figure.id),
                ExpectedResolution("page 5", discussion.id),
                ExpectedResolution("[4]", entry.id),
            ],
        ),
        ReferenceTestCase(
            case_id="resolve-missing-target",
            name="Missing Target",
            text="Section 9 is not part of this report.",
            expected=[_expect(ReferenceKind.SECTION, "9", "Section 9")],
            difficulty="easy",
            tags=["resolution", "negative"],
            expected_resolutions=[ExpectedResolution("Section 9", should_resolve=False)],
        ),
    ]
    return graph, cases


def load_cases_from_json(json_path: str | Path) -> list[ReferenceTestCase]:
    """Load labelled cases from a JSON file.

    Expected format::

        {"cases": [{"case_id": "...", "name": "...", "text": "...",
                    "expected": [{"kind": "section", "target": "3.2"}],
                    "expected_resolutions": [{"reference_text": "section 3.2",
                                              "target_id": "<node id>"}]}]}

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is invalid
    """
    path = Path(json_path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset file not found: {json_path}")

    with path.open("r", encoding="utf-8") as f:
        data: Any = json.load(f)

    raw_cases = data.get("cases") if isinstance(data, dict) else data
    if not isinstance(raw_cases, list):
        raise ValueError(f"Dataset {json_path} must contain a list of cases")

    cases = []
    for index, case_data in enumerate(raw_cases):
        try:
            expected = [
                ExpectedReference(
                    kind=ReferenceKind(exp["kind"]),
                    target=str(exp["target"]),
                    text=exp.get("text"),
                )
                for exp in case_data.get("expected", [])
            ]
            expected_resolutions = [
                ExpectedResolution(
                    reference_text=str(exp["reference_text"]),
                    target_id=exp.get("target_id"),
                    should_resolve=bool(exp.get("should_resolve", True)),
                    min_confidence=exp.get("min_confidence"),
                )
                for exp in case_data.get("expected_resolutions", [])
            ]
            cases.append(
                ReferenceTestCase(
                    case_id=case_data.get("case_id", f"case-{index + 1}"),
                    name=case_data.get("name", case_data.get("case_id", f"Case {index + 1}")),
                    text=case_data["text"],
                    expected=expected,
                    difficulty=case_data.get("difficulty", "medium"),
                    tags=list(case_data.get("tags", [])),
                    expected_resolutions=expected_resolutions,
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid case at index {index} in {json_path}: {e}") from e

    return cases
