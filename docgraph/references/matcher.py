"""Run the pattern catalog over text and settle overlapping matches."""

import logging
import re
from typing import Iterable, Optional

from docgraph.references.models import (
    DetectedReference,
    MatchResult,
    ReferenceKind,
    empty_kind_counts,
)
from docgraph.references.patterns import SORTED_PATTERNS, ReferencePattern, get_pattern_by_id

logger = logging.getLogger(__name__)

SEE_BOOST = 0.05
DOTTED_BOOST = 0.05
LOW_SALIENCE_PENALTY = 0.15

_SEE_RE = re.compile(r"^\s*see\b", re.IGNORECASE)
_DOTTED_RE = re.compile(r"\d+\.\d+")
_ABBREVIATED_PAGE_RE = re.compile(r"\bpp?\.", re.IGNORECASE)


class ReferenceMatcher:
    """
    Stateless matcher over a fixed, priority-ordered pattern list.

    Overlaps are settled greedily: higher priority first, then the longer
    span, then the earlier start. A match that overlaps an accepted one is
    dropped. Output is deterministic for a given text.
    """

    def __init__(self, patterns: Optional[Iterable[ReferencePattern]] = None):
        self.patterns: tuple[ReferencePattern, ...] = (
            tuple(sorted(patterns, key=lambda p: -p.priority)) if patterns is not None else SORTED_PATTERNS
        )

    def find_references(self, text: str, context_window: int = 50) -> MatchResult:
        """Find all non-overlapping references in ``text``.

        Args:
            text: Text to scan
            context_window: Characters kept either side of each match

        Returns:
            MatchResult with references sorted by start offset
        """
        if not text:
            return MatchResult(references=[], cleaned_text="", stats=self._stats([], 0))

        raw = self._collect(text, self.patterns)
        accepted = self._resolve_overlaps(raw)

        for reference in accepted:
            reference.context = self._context(text, reference.start, reference.end, context_window)

        if len(raw) != len(accepted):
            logger.debug(f"Dropped {len(raw) - len(accepted)} overlapping matches of {len(raw)}")

        return MatchResult(
            references=accepted,
            cleaned_text=self._clean(text, accepted),
            stats=self._stats(accepted, len(raw)),
        )

    def find_references_by_kind(
        self,
        text: str,
        kind: ReferenceKind | str,
        context_window: int = 50,
    ) -> list[DetectedReference]:
        """Find references of one kind.

        Overlaps are settled across the full catalog first, so the result is
        the same as filtering ``find_references``.
        """
        kind = ReferenceKind(kind)
        result = self.find_references(text, context_window)
        return [reference for reference in result.references if reference.kind == kind]

    # ========== Internals ==========

    def _collect(self, text: str, patterns: Iterable[ReferencePattern]) -> list[tuple[DetectedReference, int]]:
        raw: list[tuple[DetectedReference, int]] = []
        for pattern in patterns:
            for match in pattern.regex.finditer(text):
                start, end = match.span()
                if end <= start:
                    continue
                target = pattern.extract_target(match)
                reference = DetectedReference(
                    text=match.group(0),
                    start=start,
                    end=end,
                    kind=pattern.kind,
                    target=target,
                    pattern_id=pattern.id,
                    confidence=self._confidence(pattern, match.group(0), target),
                )
                raw.append((reference, pattern.priority))
        return raw

    @staticmethod
    def _resolve_overlaps(raw: list[tuple[DetectedReference, int]]) -> list[DetectedReference]:
        ranked = sorted(raw, key=lambda item: (-item[1], -item[0].length, item[0].start))
        accepted: list[DetectedReference] = []
        for reference, _priority in ranked:
            if any(reference.overlaps(kept) for kept in accepted):
                continue
            accepted.append(reference)
        accepted.sort(key=lambda r: r.start)
        return accepted

    @staticmethod
    def _confidence(pattern: ReferencePattern, matched: str, target: str) -> float:
        confidence = pattern.base_confidence
        has_see = bool(_SEE_RE.match(matched))
        if has_see:
            confidence += SEE_BOOST
        if _DOTTED_RE.search(target):
            confidence += DOTTED_BOOST

        # Abbreviated page markers and unprompted "above"/"below" are weak signals
        if pattern.kind == ReferenceKind.PAGE and _ABBREVIATED_PAGE_RE.search(matched):
            confidence -= LOW_SALIENCE_PENALTY
        elif pattern.kind == ReferenceKind.CROSS_REFERENCE and not has_see:
            confidence -= LOW_SALIENCE_PENALTY

        return round(min(1.0, max(0.0, confidence)), 4)

    @staticmethod
    def _context(text: str, start: int, end: int, window: int) -> str:
        window = max(0, window)
        return text[max(0, start - window):min(len(text), end + window)]

    @staticmethod
    def _clean(text: str, references: list[DetectedReference]) -> str:
        pieces = []
        cursor = 0
        for reference in references:
            pieces.append(text[cursor:reference.start])
            cursor = reference.end
        pieces.append(text[cursor:])
        return " ".join("".join(pieces).split())

    @staticmethod
    def _stats(references: list[DetectedReference], raw_count: int) -> dict:
        by_kind = empty_kind_counts()
        for reference in references:
            by_kind[reference.kind.value] += 1
        return {
            "total": len(references),
            "by_kind": by_kind,
            "patterns_used": sorted({reference.pattern_id for reference in references}),
            "raw_matches": raw_count,
        }


def describe_reference(reference: DetectedReference) -> str:
    """Short human-readable description, used in logs and reports."""
    pattern = get_pattern_by_id(reference.pattern_id)
    name = pattern.name if pattern else reference.pattern_id
    return f"{reference.kind.value} -> {reference.target!r} ({name}, {reference.confidence:.2f})"
