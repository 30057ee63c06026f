"""Reference detection and resolution."""

from docgraph.references.models import DetectedReference, MatchResult, ReferenceKind, Resolution
from docgraph.references.patterns import CATALOG, CatalogError, ReferencePattern
from docgraph.references.matcher import ReferenceMatcher
from docgraph.references.detection import ReferenceAnalysis, analyze_node, analyze_nodes, analyze_text
from docgraph.references.resolution import ResolutionContext, resolve_reference, resolve_references

__all__ = [
    "ReferenceKind",
    "DetectedReference",
    "MatchResult",
    "Resolution",
    "ReferencePattern",
    "CatalogError",
    "CATALOG",
    "ReferenceMatcher",
    "ReferenceAnalysis",
    "analyze_node",
    "analyze_nodes",
    "analyze_text",
    "ResolutionContext",
    "resolve_reference",
    "resolve_references",
]
