"""Layout heuristics: group positioned text runs into lines and find headings.

Only used when the parser supplied text runs. Heights stand in for font
size; ``y`` grows down the page.
"""

import re
from dataclasses import dataclass
from statistics import median
from typing import Optional

from docgraph.config_loader import BuilderConfig
from docgraph.schema import TextRun

_SECTION_NUMBER_RE = re.compile(
    r"^\s*(?:(?:section|chapter|part)\s+)?(\d{1,3}(?:\.\d+)*)\.?(?=\s|$)",
    re.IGNORECASE,
)
_TRAILING_PUNCTUATION = (".", ";", ",", ":")


@dataclass
class Line:
    """Runs sharing a baseline, left to right."""

    text: str
    top: float
    bottom: float
    height: float


@dataclass
class HeadingCandidate:
    """One detected heading (possibly folded from several lines)."""

    text: str
    height: float
    line_index: int
    section_number: Optional[str] = None

    @property
    def depth(self) -> int:
        return len(self.section_number.split(".")) if self.section_number else 0


def extract_section_number(text: str) -> Optional[str]:
    """Leading section number of a heading ("3.2 Methods" -> "3.2")."""
    match = _SECTION_NUMBER_RE.match(text)
    return match.group(1) if match else None


def median_run_height(runs: list[TextRun]) -> float:
    heights = [run.height for run in runs if run.height > 0 and run.text.strip()]
    return median(heights) if heights else 0.0


def group_lines(runs: list[TextRun], median_height: float) -> list[Line]:
    """Group runs into lines: same baseline within half the median height."""
    tolerance = median_height * 0.5
    ordered = sorted((run for run in runs if run.text.strip()), key=lambda run: (run.y, run.x))

    grouped: list[list[TextRun]] = []
    for run in ordered:
        if grouped and abs(run.y - grouped[-1][0].y) <= tolerance:
            grouped[-1].append(run)
        else:
            grouped.append([run])

    lines = []
    for members in grouped:
        members.sort(key=lambda run: run.x)
        lines.append(
            Line(
                text=" ".join(run.text.strip() for run in members),
                top=min(run.y for run in members),
                bottom=max(run.y + run.height for run in members),
                height=max(run.height for run in members),
            )
        )
    return lines


def _is_isolated_short(lines: list[Line], index: int, median_height: float, config: BuilderConfig) -> bool:
    line = lines[index]
    text = line.text.strip()
    if len(text) > config.heading_max_chars or not any(ch.isalpha() for ch in text):
        return False
    if text.endswith(_TRAILING_PUNCTUATION):
        return False
    # The last line on a page has no measurable gap below it
    if index == len(lines) - 1:
        return False

    min_gap = config.heading_isolation_gap * median_height
    gap_above = line.top - lines[index - 1].bottom if index > 0 else None
    gap_below = lines[index + 1].top - line.bottom
    return (gap_above is None or gap_above >= min_gap) and gap_below >= min_gap


def _similar_height(a: float, b: float, tolerance: float) -> bool:
    return abs(a - b) <= tolerance * max(a, b)


def detect_headings(runs: list[TextRun], config: Optional[BuilderConfig] = None) -> list[HeadingCandidate]:
    """Find heading lines on one page.

    A line is a candidate when it is markedly taller than the page median,
    or when it is short and set apart by vertical whitespace. Consecutive
    candidates of similar height fold into one heading.
    """
    config = config or BuilderConfig()
    median_height = median_run_height(runs)
    if median_height <= 0:
        return []

    lines = group_lines(runs, median_height)
    headings: list[HeadingCandidate] = []
    previous_index = -2

    for index, line in enumerate(lines):
        tall = line.height >= config.heading_height_ratio * median_height
        if not tall and not _is_isolated_short(lines, index, median_height, config):
            continue

        last = headings[-1] if headings else None
        if (
            last is not None
            and previous_index == index - 1
            and _similar_height(last.height, line.height, config.heading_height_tolerance)
        ):
            last.text = f"{last.text} {line.text.strip()}"
            last.height = max(last.height, line.height)
        else:
            headings.append(HeadingCandidate(text=line.text.strip(), height=line.height, line_index=index))
        previous_index = index

    for heading in headings:
        heading.section_number = extract_section_number(heading.text)
    return headings


def height_ranks(heights: list[float], tolerance: float) -> dict[float, int]:
    """Rank heading heights across a document: tallest group is rank 0.

    Heights within ``tolerance`` of a group's tallest member share its rank.
    """
    ranks: dict[float, int] = {}
    group_top: Optional[float] = None
    rank = -1
    for height in sorted(set(heights), reverse=True):
        if group_top is None or not _similar_height(group_top, height, tolerance):
            group_top = height
            rank += 1
        ranks[height] = rank
    return ranks


def normalize_text(text: str) -> str:
    """Lowercased, whitespace-collapsed text for heading/paragraph comparison."""
    return " ".join((text or "").split()).lower()


def locate(text: str, snippet: str, cursor: int = 0) -> Optional[tuple[int, int]]:
    """Find ``snippet`` in ``text`` at or after ``cursor``, tolerating whitespace.

    Text before ``cursor`` is never searched, so located spans keep reading order.
    """
    words = snippet.split()
    if not words:
        return None
    pattern = re.compile(r"\s+".join(re.escape(word) for word in words))
    match = pattern.search(text, cursor)
    return match.span() if match else None
