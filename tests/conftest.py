"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from docgraph.config_loader import Settings
from docgraph.schema import (
    DocumentMetadata,
    ImageCandidate,
    ParsedDocument,
    ParsedPage,
    ParsedParagraph,
    TableCandidate,
    TextRun,
)

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def project_root() -> Path:
    """Return project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def config_path(project_root: Path) -> Path:
    """Return path to config.yaml."""
    return project_root / "config" / "config.yaml"


@pytest.fixture
def settings() -> Settings:
    """Default settings (no config file)."""
    return Settings()


@pytest.fixture
def two_page_document() -> ParsedDocument:
    """Two pages with two and one paragraphs, no layout data."""
    return ParsedDocument(
        document_id="doc-two-pages",
        metadata=DocumentMetadata(title="Two Pages", author="A. Author", page_count=2, file_size=2048),
        pages=[
            ParsedPage(
                page_number=1,
                text="Alpha paragraph.\n\nBeta paragraph.",
                paragraphs=[
                    ParsedParagraph(page_number=1, content="Alpha paragraph.", start=0, end=16),
                    ParsedParagraph(page_number=1, content="Beta paragraph.", start=18, end=33),
                ],
            ),
            ParsedPage(
                page_number=2,
                text="Gamma paragraph.",
                paragraphs=[
                    ParsedParagraph(page_number=2, content="Gamma paragraph.", start=0, end=16),
                ],
            ),
        ],
    )


PAGE_1_LINES = [
    ("1 Introduction", 50, 18),
    ("This document explains the approach. See section 1.1 for background.", 80, 10),
    ("1.1 Background", 110, 14),
    ("Earlier work is summarised in Table 1 and Figure 1.", 140, 10),
]

PAGE_2_LINES = [
    ("2 Results", 50, 18),
    ("The findings are discussed below. As described earlier, the method works (Smith et al. 2023).", 80, 10),
    ("Smith, A. et al. Reproducible methods. 2023.", 95, 10),
]


def _page(page_number: int, lines: list[tuple[str, float, float]], body: list[str]) -> ParsedPage:
    text = "\n".join(line for line, _, _ in lines)
    return ParsedPage(
        page_number=page_number,
        text=text,
        # Offsets left unset so the builder locates each paragraph in the page text
        paragraphs=[ParsedParagraph(page_number=page_number, content=content) for content in body],
        text_runs=[TextRun(text=line, x=50, y=y, width=400, height=height) for line, y, height in lines],
    )


@pytest.fixture
def layout_document() -> ParsedDocument:
    """Two pages with headings in the layout runs, a table, a figure and references."""
    return ParsedDocument(
        document_id="doc-layout",
        metadata=DocumentMetadata(title="Layout Report", page_count=2, file_size=4096),
        pages=[
            _page(1, PAGE_1_LINES, [PAGE_1_LINES[1][0], PAGE_1_LINES[3][0]]),
            _page(2, PAGE_2_LINES, [PAGE_2_LINES[1][0], PAGE_2_LINES[2][0]]),
        ],
        tables=[
            TableCandidate(
                content="Metric | Value\nA | 1",
                page=1,
                start=200,
                end=220,
                row_count=2,
                col_count=2,
                caption="Table 1: Metrics",
                extraction_method="lattice",
            )
        ],
        images=[
            ImageCandidate(
                caption="Figure 1: Architecture",
                page=1,
                start=230,
                end=240,
                width=640,
                height=480,
                extraction_method="xobject",
            )
        ],
    )
