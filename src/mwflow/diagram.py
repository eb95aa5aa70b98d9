"""Flowchart text for an analyzed endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from .models import ExternalCall, FlowAnalysisResult, MiddlewareAnalysis, ModuleRecord

MAX_EDGE_LABELS = 12
LABELS_PER_LINE = 3
MAX_CALL_NAME = 35

CLASS_DEFS = (
    "classDef default fill:#2d2d2d,stroke:#555,color:#fff",
    "classDef hasWrites fill:#1a472a,stroke:#2d5a3d,color:#90EE90",
    "classDef hasReads fill:#1a365d,stroke:#2a4a7f,color:#87CEEB",
    "classDef hasBoth fill:#4a3728,stroke:#6b4423,color:#DEB887",
    "classDef component fill:#3d3d3d,stroke:#666,color:#ccc",
    "classDef expandable fill:#3d3d3d,stroke:#888,color:#fff,stroke-width:2px,font-weight:bold",
    "classDef external fill:#4a1a2e,stroke:#6b2340,color:#FFB6C1,font-size:12px",
)


@dataclass(slots=True)
class Flowchart:
    text: str
    external_calls: Dict[str, ExternalCall] = field(default_factory=dict)


def _key(path) -> str:
    return str(path).lower().replace("\\", "/")


def _quote(label: str) -> str:
    return label.replace('"', "'")


def _usage_class(writes: bool, reads: bool, fallback: str = "") -> str:
    if writes and reads:
        return ":::hasBoth"
    if writes:
        return ":::hasWrites"
    if reads:
        return ":::hasReads"
    return fallback


def count_descendants(children: Iterable[ModuleRecord]) -> int:
    total = 0
    for child in children:
        total += 1 + count_descendants(child.children)
    return total


def call_label(call: ExternalCall) -> str:
    name = call.template or ""
    if len(name) > MAX_CALL_NAME:
        parts = [part for part in name.split("/") if part and not part.startswith("$")]
        name = ".../" + "/".join(parts[-2:]) if parts else name[:32] + "..."
    prefix = f"{call.family.upper()}: " if call.family else ""
    return _quote(prefix + name)


def edge_label(properties: List[str]) -> str:
    shown = list(properties)
    hidden = 0
    if len(shown) > MAX_EDGE_LABELS:
        hidden = len(shown) - (MAX_EDGE_LABELS - 1)
        shown = shown[: MAX_EDGE_LABELS - 1]
    lines = [", ".join(shown[i : i + LABELS_PER_LINE]) for i in range(0, len(shown), LABELS_PER_LINE)]
    if hidden:
        lines[-1] += f", +{hidden} more"
    return "\\n".join(lines)


class _Builder:
    def __init__(self, result: FlowAnalysisResult, expanded: Set[str]) -> None:
        self.result = result
        self.expanded = expanded
        self.lines: List[str] = ["flowchart TD"]
        self.lines.extend(f"    {definition}" for definition in CLASS_DEFS)
        self.lines.append("")
        self.external_calls: Dict[str, ExternalCall] = {}
        self.calls_by_node: Dict[str, List[ExternalCall]] = {}

    def middleware_id(self, index: int) -> str:
        return f"MW{index + 1}"

    def main_id(self, index: int, middleware: MiddlewareAnalysis) -> str:
        mw_id = self.middleware_id(index)
        return f"{mw_id}_main" if middleware.components else mw_id

    def is_expanded(self, index: int) -> bool:
        return f"{self.middleware_id(index)}_collapsed" not in self.expanded

    def assign_calls(self) -> None:
        """Attach every call to the deepest visible node that owns its file."""
        seen: Set[tuple] = set()
        for index, middleware in enumerate(self.result.middlewares):
            owner_id = self.main_id(index, middleware)
            node_by_path: Dict[str, str] = {}
            visible_ancestor: Dict[str, str] = {}
            if middleware.file_path is not None:
                node_by_path[_key(middleware.file_path)] = owner_id
                visible_ancestor[_key(middleware.file_path)] = owner_id
            self._map_components(
                middleware.components,
                self.middleware_id(index),
                self.is_expanded(index),
                owner_id,
                node_by_path,
                visible_ancestor,
            )
            for call in middleware.all_external_calls:
                if not call.template:
                    continue
                marker = (call.family, call.template, call.line, _key(call.source_path))
                if marker in seen:
                    continue
                seen.add(marker)
                node_id = visible_ancestor.get(_key(call.source_path), owner_id)
                self.calls_by_node.setdefault(node_id, []).append(call)

    def _map_components(
        self,
        components: List[ModuleRecord],
        prefix: str,
        visible: bool,
        last_visible: str,
        node_by_path: Dict[str, str],
        visible_ancestor: Dict[str, str],
    ) -> None:
        for position, component in enumerate(components):
            comp_id = f"{prefix}_c{position}"
            key = _key(component.file_path)
            current = comp_id if visible else last_visible
            if visible and key not in node_by_path:
                node_by_path[key] = comp_id
                visible_ancestor[key] = comp_id
            else:
                visible_ancestor.setdefault(key, current)
            self._map_components(
                component.children,
                comp_id,
                visible and comp_id in self.expanded,
                current,
                node_by_path,
                visible_ancestor,
            )

    def add_calls(self, parent_id: str, indent: str) -> None:
        for position, call in enumerate(self.calls_by_node.get(parent_id, [])):
            ext_id = f"{parent_id}_ext{position}"
            self.external_calls[ext_id] = call
            self.lines.append(f'{indent}{ext_id}(["{call_label(call)}"]):::external')
            self.lines.append(f"{indent}{parent_id} -.-> {ext_id}")

    def add_middleware(self, index: int, middleware: MiddlewareAnalysis) -> None:
        mw_id = self.middleware_id(index)
        name = middleware.short_name
        label = _quote(f"{index + 1}. {name}")
        node_class = _usage_class(
            bool(middleware.all_res_locals_writes), bool(middleware.all_res_locals_reads)
        )
        if not middleware.components:
            self.lines.append(f'    {mw_id}["{label}"]{node_class}')
            self.add_calls(mw_id, "    ")
            return
        expanded = self.is_expanded(index)
        if expanded:
            main_label = f"▼  {name}"
        else:
            main_label = f"▶  {name} ({count_descendants(middleware.components)})"
        main_id = f"{mw_id}_main"
        self.lines.append(f'    subgraph {mw_id}["{label}"]')
        self.lines.append(f'        {main_id}["{_quote(main_label)}"]:::expandable')
        self.add_calls(main_id, "        ")
        if expanded:
            self.add_components(middleware.components, mw_id, main_id, 0)
        self.lines.append("    end")

    def add_components(self, components: List[ModuleRecord], prefix: str, parent_id: str, depth: int) -> None:
        indent = "        " + "    " * depth
        for position, component in enumerate(components):
            comp_id = f"{prefix}_c{position}"
            node_class = _usage_class(
                bool(component.res_locals_writes), bool(component.res_locals_reads), ":::component"
            )
            label = component.display_name
            is_open = comp_id in self.expanded
            if component.children:
                if is_open:
                    label = f"▼  {label}"
                else:
                    label = f"▶  {label} ({count_descendants(component.children)})"
                node_class = ":::expandable"
            if component.children and is_open:
                self.lines.append(f'{indent}subgraph {comp_id}_sg[" "]')
                self.lines.append(f"{indent}    direction TB")
                self.lines.append(f'{indent}    {comp_id}["{_quote(label)}"]{node_class}')
                self.add_calls(comp_id, indent + "    ")
                self.add_components(component.children, comp_id, comp_id, depth + 1)
                self.lines.append(f"{indent}end")
                self.lines.append(f"{indent}{parent_id} --> {comp_id}")
            else:
                self.lines.append(f'{indent}{comp_id}["{_quote(label)}"]{node_class}')
                self.lines.append(f"{indent}{parent_id} --> {comp_id}")
                self.add_calls(comp_id, indent)

    def add_edges(self) -> None:
        positions: Dict[str, int] = {}
        for index, middleware in enumerate(self.result.middlewares):
            positions.setdefault(middleware.name, index)
        for edge in self.result.data_flow:
            if edge.source not in positions or edge.target not in positions:
                continue
            source_id = self.middleware_id(positions[edge.source])
            target_id = self.middleware_id(positions[edge.target])
            if edge.properties:
                self.lines.append(f'    {source_id} -->|"{edge_label(list(edge.properties))}"| {target_id}')
            else:
                self.lines.append(f"    {source_id} --> {target_id}")

    def build(self) -> Flowchart:
        self.assign_calls()
        for index, middleware in enumerate(self.result.middlewares):
            self.add_middleware(index, middleware)
        self.lines.append("")
        self.add_edges()
        return Flowchart(text="\n".join(self.lines) + "\n", external_calls=self.external_calls)


def render_flowchart(result: FlowAnalysisResult, expanded: Iterable[str] = ()) -> Flowchart:
    """Render ``result`` as flowchart text.

    ``expanded`` holds component ids (``MW1_c0``) whose children should be
    shown and ``MW<i>_collapsed`` markers for middlewares to fold away.
    """
    return _Builder(result, set(expanded)).build()
