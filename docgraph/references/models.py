"""Value types shared by reference matching, detection and resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from docgraph.graph.models import GraphNode


class ReferenceKind(str, Enum):
    """What a textual reference points at."""
    SECTION = "section"
    FIGURE = "figure"
    TABLE = "table"
    CITATION = "citation"
    CROSS_REFERENCE = "cross_reference"
    PAGE = "page"


def empty_kind_counts() -> dict[str, int]:
    """Per-kind counter with every reference kind present."""
    return {kind.value: 0 for kind in ReferenceKind}


@dataclass
class DetectedReference:
    """A reference found in a piece of text.

    Attributes:
        text: The matched text ("see section 3.2")
        start: Offset of the match in the analysed text
        end: End offset (exclusive)
        kind: Reference kind
        target: Extracted target ("3.2", "above", "Smith et al., 2023")
        pattern_id: ID of the catalog pattern that produced it
        confidence: Detection confidence (0.0-1.0)
        context: Surrounding text window
    """

    text: str
    start: int
    end: int
    kind: ReferenceKind
    target: str
    pattern_id: str
    confidence: float
    context: Optional[str] = None

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "DetectedReference") -> bool:
        return self.start < other.end and other.start < self.end

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "kind": self.kind.value,
            "target": self.target,
            "pattern_id": self.pattern_id,
            "confidence": self.confidence,
            "context": self.context,
        }


@dataclass
class MatchResult:
    """Output of one matcher pass over a text."""

    references: list[DetectedReference]
    cleaned_text: str
    stats: dict[str, Any]


@dataclass
class Resolution:
    """Outcome of resolving one reference against a graph.

    ``target_node`` is None and ``confidence`` is 0.0 when unresolved;
    ``reason`` always says what was found or searched for.
    """

    reference: DetectedReference
    target_node: Optional["GraphNode"]
    confidence: float
    reason: str
    strategy: Optional[str] = None
    candidates: list["GraphNode"] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.target_node is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference.to_dict(),
            "target_node_id": self.target_node.id if self.target_node else None,
            "confidence": self.confidence,
            "reason": self.reason,
            "strategy": self.strategy,
            "candidate_ids": [node.id for node in self.candidates],
        }
