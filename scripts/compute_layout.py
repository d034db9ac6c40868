#!/usr/bin/env python3
"""CLI utility computing a settled graph layout from a JSON dataset."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from histonet.config import ConfigError, load_config
from histonet.contracts import FilterState, parse_graph_payload
from histonet.ui.service import LayoutRequestError, LayoutResult, LayoutService


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments for the layout utility.

    Returns:
        argparse.Namespace: Parsed command line arguments.
    """
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("graph", type=Path, help="JSON file with 'nodes' and 'links' arrays")
    parser.add_argument(
        "--filters",
        type=Path,
        default=None,
        help="Optional JSON file holding the filter state",
    )
    parser.add_argument("--dimensions", type=int, choices=(2, 3), default=2)
    parser.add_argument("--width", type=float, default=None)
    parser.add_argument("--height", type=float, default=None)
    parser.add_argument("--max-ticks", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="Alternative config.yaml")
    parser.add_argument("--output", type=Path, default=None, help="Write JSON here instead of stdout")
    return parser.parse_args(argv)


def format_summary(result: LayoutResult) -> str:
    """Return a one-line human-readable summary of a layout result."""

    return (
        f"Layout {result.status} after {result.ticks} ticks: "
        f"{result.node_count} nodes, {result.link_count} links "
        f"({result.dimensions}D, dropped_links={result.dropped_links})"
    )


def run(argv: Optional[List[str]] = None) -> int:
    """Compute a layout and write it as JSON.

    Returns:
        int: Exit status code where ``0`` indicates success.
    """
    args = parse_args(argv)
    try:
        raw_graph = json.loads(args.graph.read_text(encoding="utf-8"))
        raw_filters = json.loads(args.filters.read_text(encoding="utf-8")) if args.filters else {}
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Unable to read input: {exc}", file=sys.stderr)
        return 2
    if not isinstance(raw_graph, dict):
        print("Graph file must contain a JSON object", file=sys.stderr)
        return 2
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    try:
        filters = FilterState.model_validate(raw_filters)
    except ValidationError as exc:
        print(f"Invalid filter state: {exc}", file=sys.stderr)
        return 2

    service = LayoutService(config)
    try:
        result = service.compute(
            parse_graph_payload(raw_graph),
            filters,
            width=args.width,
            height=args.height,
            dimensions=args.dimensions,
            max_ticks=args.max_ticks,
        )
    except LayoutRequestError as exc:
        print(f"Layout rejected: {exc}", file=sys.stderr)
        return 1

    document = json.dumps(asdict(result), indent=2)
    if args.output is not None:
        args.output.write_text(document, encoding="utf-8")
    else:
        print(document)
    print(format_summary(result), file=sys.stderr)
    return 0


def main() -> int:
    """Entry point for the CLI layout utility."""

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    return run()


if __name__ == "__main__":
    sys.exit(main())
