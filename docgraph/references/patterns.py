"""Catalog of regular expressions that recognise textual references.

Each pattern names the reference kind it produces and a priority used to
settle overlapping matches (higher wins). The target is taken from the
``target`` named group, else group 1, else the whole match; patterns with a
``fixed_target`` always report that target.

The catalog checks itself when the module is imported: a pattern that does
not compile, lacks examples, fails to match one of its own examples, or
reuses an ID raises ``CatalogError``.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from docgraph.references.models import ReferenceKind


class CatalogError(RuntimeError):
    """Reference pattern catalog is inconsistent."""


@dataclass(frozen=True)
class ReferencePattern:
    """A single recognisable reference idiom."""

    id: str
    name: str
    expression: str
    kind: ReferenceKind
    priority: int
    description: str
    examples: tuple[str, ...]
    base_confidence: float
    flags: int = 0
    fixed_target: Optional[str] = None
    regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        try:
            compiled = re.compile(self.expression, self.flags)
        except re.error as e:
            raise CatalogError(f"Pattern {self.id} does not compile: {e}") from e
        object.__setattr__(self, "regex", compiled)

    def extract_target(self, match: re.Match) -> str:
        """Pull the reference target out of a match."""
        if self.fixed_target is not None:
            return self.fixed_target
        if "target" in self.regex.groupindex and match.group("target") is not None:
            return match.group("target").strip()
        if self.regex.groups >= 1 and match.group(1) is not None:
            return match.group(1).strip()
        return match.group(0).strip()


_NUMBER = r"\d+(?:\.\d+)*"
_PAGE_RANGE = r"\d+(?:\s*[-–]\s*\d+)?"
_SURNAME = r"[A-Z][A-Za-z'\-]+"

CATALOG: tuple[ReferencePattern, ...] = (
    # Sections
    ReferencePattern(
        id="section_capitalized",
        name="Capitalized section reference",
        expression=rf"(?:\bSee\s+)?\b(?:Section|Chapter|Part)\s+(?P<target>{_NUMBER})\b",
        kind=ReferenceKind.SECTION,
        priority=10,
        description="Section, Chapter or Part followed by a dotted number",
        examples=("See Section 3.2", "Chapter 5 discusses", "Part 2"),
        base_confidence=0.9,
    ),
    ReferencePattern(
        id="section_explicit",
        name="Explicit section reference",
        expression=rf"(?:\bsee\s+)?\b(?:section|chapter|sect\.|chap\.|sec\.)\s*(?P<target>{_NUMBER})\b",
        kind=ReferenceKind.SECTION,
        priority=9,
        description="Section keyword or abbreviation in any case",
        examples=("see section 3.2", "chapter 5", "sect. 1.4.2"),
        base_confidence=0.85,
        flags=re.IGNORECASE,
    ),
    ReferencePattern(
        id="section_symbol",
        name="Section sign",
        expression=rf"§\s*(?P<target>{_NUMBER})",
        kind=ReferenceKind.SECTION,
        priority=9,
        description="Section sign followed by a number",
        examples=("§ 4.1", "§12"),
        base_confidence=0.85,
    ),
    # Figures
    ReferencePattern(
        id="figure_capitalized",
        name="Capitalized figure reference",
        expression=rf"(?:\bSee\s+)?\b(?:Figure|Fig\.|Diagram|Chart)\s*(?P<target>{_NUMBER})\b",
        kind=ReferenceKind.FIGURE,
        priority=8,
        description="Figure, Fig., Diagram or Chart followed by a number",
        examples=("Figure 1", "See Fig. 2.1", "Diagram 3"),
        base_confidence=0.9,
    ),
    ReferencePattern(
        id="figure_explicit",
        name="Explicit figure reference",
        expression=rf"(?:\bsee\s+)?\b(?:figure|fig\.|fig|diagram|chart|graph)\s*(?P<target>{_NUMBER})\b",
        kind=ReferenceKind.FIGURE,
        priority=7,
        description="Figure keyword or abbreviation in any case",
        examples=("see figure 4", "fig 2", "graph 1.2"),
        base_confidence=0.85,
        flags=re.IGNORECASE,
    ),
    # Tables
    ReferencePattern(
        id="table_capitalized",
        name="Capitalized table reference",
        expression=rf"(?:\bSee\s+)?\bTable\s+(?P<target>{_NUMBER})\b",
        kind=ReferenceKind.TABLE,
        priority=6,
        description="Table followed by a number",
        examples=("Table 4", "See Table 2.1"),
        base_confidence=0.9,
    ),
    ReferencePattern(
        id="table_explicit",
        name="Explicit table reference",
        expression=rf"(?:\bsee\s+)?\b(?:table|tab\.|tbl\.)\s*(?P<target>{_NUMBER})\b",
        kind=ReferenceKind.TABLE,
        priority=5,
        description="Table keyword or abbreviation in any case",
        examples=("see table 3", "tab. 5"),
        base_confidence=0.85,
        flags=re.IGNORECASE,
    ),
    # Pages
    ReferencePattern(
        id="page_capitalized",
        name="Capitalized page reference",
        expression=rf"(?:\bSee\s+)?\bPages?\s+(?P<target>{_PAGE_RANGE})\b",
        kind=ReferenceKind.PAGE,
        priority=4,
        description="Page or Pages followed by a number or range",
        examples=("Page 4", "Pages 10-12"),
        base_confidence=0.75,
    ),
    ReferencePattern(
        id="page_explicit",
        name="Explicit page reference",
        expression=rf"(?:\bsee\s+)?(?:\bpages?\s+|\bpp?\.\s*)(?P<target>{_PAGE_RANGE})\b",
        kind=ReferenceKind.PAGE,
        priority=3,
        description="page, pages, p. or pp. followed by a number or range",
        examples=("see page 12", "p. 45", "pp. 3-7"),
        base_confidence=0.7,
        flags=re.IGNORECASE,
    ),
    # Citations
    ReferencePattern(
        id="citation_numeric",
        name="Numeric citation",
        expression=r"\[(?P<target>\d+(?:\s*[,\-–]\s*\d+)*)\]",
        kind=ReferenceKind.CITATION,
        priority=2,
        description="Bracketed citation numbers, lists or ranges",
        examples=("[1]", "[1, 2, 5]", "[3-7]"),
        base_confidence=0.8,
    ),
    ReferencePattern(
        id="citation_author_bracket",
        name="Bracketed author-year citation",
        expression=rf"\[(?P<target>{_SURNAME}(?:\s+et\s+al\.?)?,?\s+\d{{4}}[a-z]?)\]",
        kind=ReferenceKind.CITATION,
        priority=2,
        description="Author surname and year in square brackets",
        examples=("[Smith et al., 2023]", "[Jones 2019]"),
        base_confidence=0.85,
    ),
    ReferencePattern(
        id="citation_parenthetical",
        name="Parenthetical author-year citation",
        expression=(
            rf"\((?P<target>{_SURNAME}(?:\s+et\s+al\.?|\s+(?:and|&)\s+{_SURNAME})?,?\s+\d{{4}}[a-z]?)\)"
        ),
        kind=ReferenceKind.CITATION,
        priority=1,
        description="Author surname(s) and year in parentheses",
        examples=("(Smith et al. 2023)", "(Johnson 2021)", "(Lee and Park, 2020)"),
        base_confidence=0.75,
    ),
    # Cross-references
    ReferencePattern(
        id="cross_above",
        name="Backward cross-reference",
        expression=(
            r"(?:\bsee\s+|\b(?:mentioned|described|shown|discussed|noted|stated|defined|explained)\s+)"
            r"(?:above|previously|earlier)\b"
        ),
        kind=ReferenceKind.CROSS_REFERENCE,
        priority=0,
        description="Pointer to earlier content",
        examples=("see above", "as described earlier"),
        base_confidence=0.4,
        flags=re.IGNORECASE,
        fixed_target="above",
    ),
    ReferencePattern(
        id="cross_below",
        name="Forward cross-reference",
        expression=(
            r"(?:\bsee\s+|\b(?:mentioned|described|shown|discussed|noted|stated|defined|explained)\s+)"
            r"(?:below|later)\b"
        ),
        kind=ReferenceKind.CROSS_REFERENCE,
        priority=0,
        description="Pointer to later content",
        examples=("see below", "discussed later"),
        base_confidence=0.4,
        flags=re.IGNORECASE,
        fixed_target="below",
    ),
    ReferencePattern(
        id="cross_this",
        name="Enclosing cross-reference",
        expression=r"\bthis\s+(?P<target>section|chapter|figure|table)\b",
        kind=ReferenceKind.CROSS_REFERENCE,
        priority=0,
        description="Pointer to the enclosing section or a nearby figure/table",
        examples=("this section", "This chapter"),
        base_confidence=0.5,
        flags=re.IGNORECASE,
    ),
)


def validate_catalog(patterns: Iterable[ReferencePattern]) -> None:
    """Check a pattern catalog for internal consistency.

    Raises:
        CatalogError: On duplicate IDs, missing examples, an example that its
            own expression does not match, or a base confidence outside [0, 1]
    """
    seen: set[str] = set()
    for pattern in patterns:
        if pattern.id in seen:
            raise CatalogError(f"Duplicate pattern ID: {pattern.id}")
        seen.add(pattern.id)

        if not pattern.examples:
            raise CatalogError(f"Pattern {pattern.id} has no examples")
        for example in pattern.examples:
            if not pattern.regex.search(example):
                raise CatalogError(f"Pattern {pattern.id} does not match its example {example!r}")

        if not 0.0 <= pattern.base_confidence <= 1.0:
            raise CatalogError(f"Pattern {pattern.id} has base confidence {pattern.base_confidence}")


validate_catalog(CATALOG)

# Priority-descending; ties keep catalog order
SORTED_PATTERNS: tuple[ReferencePattern, ...] = tuple(sorted(CATALOG, key=lambda p: -p.priority))

_BY_ID = {pattern.id: pattern for pattern in CATALOG}


def get_pattern_by_id(pattern_id: str) -> Optional[ReferencePattern]:
    return _BY_ID.get(pattern_id)


def get_patterns_by_kind(kind: ReferenceKind | str) -> list[ReferencePattern]:
    kind = ReferenceKind(kind)
    return [pattern for pattern in SORTED_PATTERNS if pattern.kind == kind]
