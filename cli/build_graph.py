"""CLI utility to build a document graph from a parsed-document JSON file."""

import argparse
import json
import sys
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from docgraph.config_loader import get_settings
from docgraph.evaluation.metrics import validate_graph_references
from docgraph.graph.builder import GraphBuilder
from docgraph.logging_utils import configure_logging
from docgraph.schema import ParsedDocument


def main():
    """Main entry point for build_graph CLI."""
    parser = argparse.ArgumentParser(
        description="Build a document knowledge graph from parser output"
    )
    parser.add_argument(
        "input",
        type=str,
        help="Path to parsed document JSON",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Where to write the graph JSON (default: <input>.graph.json)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to config.yaml (default: config/config.yaml)",
    )
    parser.add_argument(
        "--no-references",
        action="store_true",
        help="Skip reference detection and resolution",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Run reference detection and resolution checks on the built graph",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose output",
    )

    args = parser.parse_args()

    settings = get_settings(args.config)
    configure_logging(settings.logging, verbose=args.verbose)
    if args.no_references:
        settings.builder.detect_references = False

    input_path = Path(args.input)
    if not input_path.exists():
        logger.error(f"Input file not found: {input_path}")
        sys.exit(1)

    try:
        with input_path.open("r", encoding="utf-8") as f:
            document = ParsedDocument.model_validate(json.load(f))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Invalid parsed document {input_path}: {str(e)}")
        sys.exit(1)

    result = GraphBuilder(settings).build(document)
    if not result.success:
        logger.error(f"Build failed: {result.metadata.error_message}")

    output_path = Path(args.output) if args.output else input_path.with_suffix(".graph.json")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(result.graph.to_portable(), f, indent=2, ensure_ascii=False)

    stats = result.graph.get_statistics()
    print("\n" + "=" * 60)
    print("Graph Summary")
    print("=" * 60)
    print(f"Status: {result.metadata.status}")
    print(f"Nodes: {stats['node_count']}  Edges: {stats['edge_count']}")
    print(
        f"Pages: {result.metadata.page_count}  Sections: {result.metadata.section_count}  "
        f"Paragraphs: {result.metadata.paragraph_count}"
    )
    print(f"Tables: {result.metadata.table_count}  Images: {result.metadata.image_count}")
    print(
        f"References: {result.metadata.references_resolved}/"
        f"{result.metadata.references_detected} resolved"
    )
    print(f"Time: {result.metadata.processing_time_ms:.1f} ms")
    print(f"Written to: {output_path}")

    if args.verbose:
        print("\nNodes by kind:")
        for kind, count in stats["nodes_by_kind"].items():
            if count:
                print(f"  {kind}: {count}")
        print("\nEdges by kind:")
        for kind, count in stats["edges_by_kind"].items():
            if count:
                print(f"  {kind}: {count}")

    if args.validate:
        report = validate_graph_references(result.graph, settings.validation, settings.resolution)
        print("\nValidation: " + ("OK" if report.valid else "FAILED"))
        if report.stats.get("resolutions"):
            print(
                f"  resolved {report.stats['resolved']}/{report.stats['resolutions']} "
                f"(rate {report.stats['resolution_rate']:.2f}, "
                f"average confidence {report.stats['average_confidence']:.2f})"
            )
        for message in report.issues:
            print(f"  issue: {message}")
        for message in report.warnings:
            print(f"  warning: {message}")
        for message in report.suggestions:
            print(f"  suggestion: {message}")

    sys.exit(0 if result.success else 2)


if __name__ == "__main__":
    main()
