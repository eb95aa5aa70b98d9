"""Report renderers for the CLI output."""

from __future__ import annotations

import json
from typing import Dict, List


def render_json(report: Dict[str, object]) -> str:
    return json.dumps(report, indent=2)


def render_mermaid(report: Dict[str, object]) -> str:
    return str(report.get("diagram") or "")


def _names(entries: List[str]) -> str:
    return ", ".join(entries) if entries else "-"


def render_summary(report: Dict[str, object]) -> str:
    rows = report.get("dataFlowSummary") or []
    if not rows:
        return "No res.locals properties found."
    width = max(len("property"), *(len(row["property"]) for row in rows))
    lines = [f"{'property'.ljust(width)}  producers -> consumers"]
    for row in rows:
        lines.append(
            f"{row['property'].ljust(width)}  {_names(row['producers'])} -> {_names(row['consumers'])}"
        )
    return "\n".join(lines)


def _usage_line(label: str, entries: List[Dict[str, object]]) -> str | None:
    if not entries:
        return None
    props = sorted({str(entry["property"]) for entry in entries})
    return f"    {label}: {', '.join(props)}"


def render_human(report: Dict[str, object]) -> str:
    endpoint = report.get("endpoint", {})
    lines: List[str] = []
    title = f"{endpoint.get('method', '') or ''} {endpoint.get('endpointUri', '') or ''}".strip()
    lines.append(f"Endpoint: {title or '(unnamed)'}")
    if report.get("cancelled"):
        lines.append("Analysis cancelled; results are partial.")
    middlewares = report.get("middlewares", [])
    if not middlewares:
        lines.append("No middlewares analyzed.")
    for index, middleware in enumerate(middlewares, start=1):
        status = "" if middleware.get("exists") else " (file not found)"
        lines.append(f"{index}. {middleware['name']}{status}")
        for label, key in (
            ("res.locals reads", "allResLocalsReads"),
            ("res.locals writes", "allResLocalsWrites"),
            ("req.transaction reads", "allReqTransactionReads"),
            ("req.transaction writes", "allReqTransactionWrites"),
        ):
            line = _usage_line(label, middleware.get(key, []))
            if line:
                lines.append(line)
        for usage in middleware.get("allDataUsages", []):
            lines.append(f"    {usage['kind']} {usage['source']}.{usage['property']} (line {usage['lineNumber']})")
        for call in middleware.get("allExternalCalls", []):
            template = call.get("template") or "?"
            lines.append(f"    call {call['type']}: {template} ({call['sourcePath']}:{call['lineNumber']})")
        for dep in middleware.get("allConfigDeps", []):
            lines.append(f"    config {dep['source']}: {dep['key']}")
    edges = report.get("dataFlow", [])
    if edges:
        lines.append("Data flow:")
        for edge in edges:
            props = ", ".join(edge["properties"]) or "(no shared properties)"
            lines.append(f"    {edge['from']} -> {edge['to']}: {props}")
    return "\n".join(lines)
