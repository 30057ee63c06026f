"""CLI utility to measure reference detection and resolution accuracy on labelled cases."""

import argparse
import json
import sys
from pathlib import Path

from loguru import logger

from docgraph.config_loader import get_settings
from docgraph.evaluation.dataset import create_reference_dataset, create_resolution_suite, load_cases_from_json
from docgraph.evaluation.metrics import format_accuracy_report
from docgraph.evaluation.runner import AccuracyRunner
from docgraph.graph.document_graph import DocumentGraph
from docgraph.graph.errors import GraphError
from docgraph.logging_utils import configure_logging


def main():
    """Main entry point for evaluation CLI."""
    parser = argparse.ArgumentParser(description="Evaluate reference detection accuracy")
    parser.add_argument(
        "--dataset",
        type=str,
        default="builtin",
        help="Dataset to use ('builtin', 'resolution' or path to JSON file)",
    )
    parser.add_argument(
        "--graph",
        type=str,
        help="Graph JSON (from build_graph) that a dataset's expected resolutions refer to",
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Optional output file path for JSON results",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to config.yaml (default: config/config.yaml)",
    )
    parser.add_argument(
        "--min-f1",
        type=float,
        default=0.7,
        help="F1 at or above which a case passes",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Print verbose progress"
    )

    args = parser.parse_args()

    settings = get_settings(args.config)
    configure_logging(settings.logging, verbose=args.verbose)

    graph = None
    if args.dataset == "builtin":
        cases = create_reference_dataset()
    elif args.dataset == "resolution":
        graph, cases = create_resolution_suite()
    else:
        try:
            cases = load_cases_from_json(args.dataset)
        except (FileNotFoundError, ValueError) as e:
            logger.error(str(e))
            sys.exit(1)

    if args.graph:
        try:
            with open(args.graph, "r", encoding="utf-8") as f:
                graph = DocumentGraph.from_portable(json.load(f))
        except (OSError, json.JSONDecodeError, KeyError, GraphError) as e:
            logger.error(f"Could not load graph {args.graph}: {str(e)}")
            sys.exit(1)

    print(f"Evaluating {len(cases)} cases")
    runner = AccuracyRunner(settings=settings, min_f1=args.min_f1, graph=graph)
    report = runner.run(cases)
    print(format_accuracy_report(report))

    if args.output:
        runner.save_results(report, Path(args.output))
        print(f"\nResults saved to: {args.output}")

    sys.exit(0 if report.passed_cases == report.num_cases else 1)


if __name__ == "__main__":
    main()
