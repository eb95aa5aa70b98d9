"""Command-line entry points for the analyzer."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .config import load_config
from .diagram import render_flowchart
from .flow_analyzer import FlowAnalyzer, component_tree, data_flow_summary
from .models import EndpointDescriptor
from .reporters import render_human, render_json, render_mermaid, render_summary

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mwflow",
        description="Middleware data-flow analyzer",
    )
    subparsers = parser.add_subparsers(dest="command")

    analyze_parser = subparsers.add_parser("analyze", help="Analyze one endpoint's middleware chain")
    analyze_parser.add_argument(
        "--workspace",
        default=".",
        help="Workspace root holding agl-<name>-middleware (defaults to cwd)",
    )
    analyze_parser.add_argument(
        "--name",
        required=True,
        help="Middleware package short name, e.g. 'content' for agl-content-middleware",
    )
    source = analyze_parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--middleware",
        action="append",
        help="Middleware specifier relative to the middleware root (repeatable, in order)",
    )
    source.add_argument(
        "--endpoint",
        help="JSON file holding one endpoint descriptor",
    )
    analyze_parser.add_argument(
        "--config",
        help="Path to configuration file (.mwflowrc.json by default)",
    )
    analyze_parser.add_argument(
        "--max-depth",
        type=int,
        help="Override the component recursion ceiling",
    )
    analyze_parser.add_argument(
        "--format",
        choices=["json", "human", "mermaid", "summary"],
        action="append",
        help="Report format(s) to emit (default: json)",
    )
    analyze_parser.add_argument(
        "--expand",
        action="append",
        default=[],
        metavar="NODE_ID",
        help="Diagram node to expand (e.g. MW1_c0) or MW<i>_collapsed to fold a middleware",
    )
    analyze_parser.add_argument(
        "--output",
        action="append",
        nargs=2,
        metavar=("FORMAT", "PATH"),
        help="Write report to file (e.g., --output mermaid flow.mmd)",
    )
    analyze_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def _config_overrides(ns: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if ns.max_depth is not None:
        overrides["max_depth"] = ns.max_depth
    return overrides


def _load_endpoint(ns: argparse.Namespace) -> EndpointDescriptor:
    if ns.endpoint:
        data = json.loads(Path(ns.endpoint).read_text())
        return EndpointDescriptor.from_dict(data)
    return EndpointDescriptor(middleware=list(ns.middleware))


def _handle_analyze(ns: argparse.Namespace) -> int:
    workspace = Path(ns.workspace)
    config = load_config(
        workspace_root=workspace,
        middleware_name=ns.name,
        config_path=Path(ns.config) if ns.config else None,
        overrides=_config_overrides(ns) or None,
    )
    endpoint = _load_endpoint(ns)
    result = FlowAnalyzer(config).analyze(endpoint)
    flowchart = render_flowchart(result, ns.expand)
    report: Dict[str, object] = {
        "config": config.to_dict(),
        **result.to_dict(),
        "dataFlowSummary": data_flow_summary(result),
        "componentTree": component_tree(result),
        "diagram": flowchart.text,
        "externalCallsMap": {node_id: call.to_dict() for node_id, call in flowchart.external_calls.items()},
    }
    formats = ns.format or ["json"]
    output_targets: List[Tuple[str, Path]] = []
    for spec in ns.output or []:
        fmt, path_str = spec
        output_targets.append((fmt, Path(path_str)))
    _print_report(report, formats, output_targets)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.command == "analyze":
        return _handle_analyze(args)
    parser.error(f"Unknown command: {args.command}")
    return 1


def _print_report(
    data: Dict[str, object],
    formats: List[str],
    output_targets: List[Tuple[str, Path]],
) -> None:
    formatters = {
        "json": render_json,
        "human": render_human,
        "mermaid": render_mermaid,
        "summary": render_summary,
    }
    outputs: Dict[str, str] = {}
    for fmt in formats:
        renderer = formatters.get(fmt)
        if not renderer:
            continue
        outputs[fmt] = renderer(data)
    for idx, (fmt, content) in enumerate(outputs.items(), start=1):
        if len(outputs) > 1:
            print(f"--- {fmt} report {idx}/{len(outputs)} ---")
        print(content)
    for fmt, path in output_targets:
        renderer = formatters.get(fmt)
        if not renderer:
            logger.warning("Unknown output format %s", fmt)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        content = outputs.get(fmt) or renderer(data)
        outputs.setdefault(fmt, content)
        path.write_text(content)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
