"""Endpoint-level composition of module facts into a data-flow graph."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Set, Tuple

from .config import AnalyzerConfig
from .models import (
    ComponentDataFlowEdge,
    DataFlowEdge,
    EndpointDescriptor,
    FlowAnalysisResult,
    MiddlewareAnalysis,
    ModuleRecord,
    PropertyFlow,
    PropertyUsage,
)
from .module_analyzer import ModuleAnalyzer
from .path_resolver import short_path

logger = logging.getLogger(__name__)


def _unique(items: Iterable, key: Callable) -> List:
    seen: Set = set()
    kept = []
    for item in items:
        marker = key(item)
        if marker in seen:
            continue
        seen.add(marker)
        kept.append(item)
    return kept


def _usage_key(usage: PropertyUsage) -> Tuple[str, str]:
    return usage.property, str(usage.source_path)


class FlowAnalyzer:
    """Analyzes the ordered middleware chain of one endpoint."""

    def __init__(self, config: AnalyzerConfig, module_analyzer: ModuleAnalyzer | None = None) -> None:
        self.config = config
        self.modules = module_analyzer or ModuleAnalyzer(config)

    def analyze(
        self,
        endpoint: EndpointDescriptor | Dict[str, Any],
        should_cancel: Callable[[], bool] | None = None,
    ) -> FlowAnalysisResult:
        if isinstance(endpoint, dict):
            endpoint = EndpointDescriptor.from_dict(endpoint)
        self.modules.reset()
        result = FlowAnalysisResult(endpoint=endpoint)
        specifiers = endpoint.middleware
        if not isinstance(specifiers, list) or not all(isinstance(item, str) for item in specifiers):
            logger.warning("Invalid middleware list for endpoint %s", endpoint.endpoint_uri or "<unknown>")
            return result

        logger.info("Analyzing %d middlewares for %s", len(specifiers), endpoint.endpoint_uri or "<endpoint>")
        owners: Dict[Path, str] = {}
        for specifier in specifiers:
            if should_cancel is not None and should_cancel():
                logger.info("Analysis cancelled after %d middlewares", len(result.middlewares))
                result.cancelled = True
                break
            middleware = self.analyze_middleware(specifier)
            result.middlewares.append(middleware)
            self._track(middleware.all_res_locals_writes, middleware.all_res_locals_reads, specifier, owners, result.res_locals_properties)
            self._track(
                middleware.all_req_transaction_writes,
                middleware.all_req_transaction_reads,
                specifier,
                owners,
                result.req_transaction_properties,
            )

        result.data_flow = self.build_data_flow_edges(result.middlewares)
        result.component_data_flow = self.build_component_edges(result.middlewares)
        logger.info(
            "Finished %s: %d properties, %d edges",
            endpoint.endpoint_uri or "<endpoint>",
            len(result.res_locals_properties),
            len(result.data_flow),
        )
        return result

    def analyze_middleware(self, specifier: str) -> MiddlewareAnalysis:
        entry = self.modules.resolver.entry_path(specifier)
        record = self.modules.analyze(entry, 0, None) if entry is not None else None
        middleware = MiddlewareAnalysis(
            name=specifier,
            file_path=entry,
            exists=entry is not None and entry.is_file(),
            record=record,
        )
        if record is None:
            return middleware
        middleware.run_function_line = record.export_lines.get("run")
        middleware.panic_function_line = record.export_lines.get("panic")
        modules = self.modules.expand(record)
        middleware.all_res_locals_reads = _unique(
            (usage for module in modules for usage in module.res_locals_reads), _usage_key
        )
        middleware.all_res_locals_writes = _unique(
            (usage for module in modules for usage in module.res_locals_writes), _usage_key
        )
        middleware.all_req_transaction_reads = _unique(
            (usage for module in modules for usage in module.req_transaction_reads), _usage_key
        )
        middleware.all_req_transaction_writes = _unique(
            (usage for module in modules for usage in module.req_transaction_writes), _usage_key
        )
        middleware.all_data_usages = _unique(
            (usage for module in modules for usage in module.data_usages),
            lambda usage: (usage.source, usage.property, usage.kind, str(usage.source_path)),
        )
        middleware.all_external_calls = _unique(
            (call for module in modules for call in module.external_calls),
            lambda call: (call.family, call.template, call.line, str(call.source_path)),
        )
        middleware.all_config_deps = _unique(
            (dep for module in modules for dep in module.config_deps),
            lambda dep: (dep.source, dep.key, str(dep.source_path)),
        )
        return middleware

    def _track(
        self,
        writes: List[PropertyUsage],
        reads: List[PropertyUsage],
        specifier: str,
        owners: Dict[Path, str],
        properties: Dict[str, PropertyFlow],
    ) -> None:
        for usages, role in ((writes, "producers"), (reads, "consumers")):
            for usage in usages:
                owner = owners.setdefault(Path(usage.source_path), specifier)
                identifier = f"{owner}::{short_path(usage.source_path)}"
                flow = properties.setdefault(usage.property, PropertyFlow())
                members = getattr(flow, role)
                if identifier not in members:
                    members.append(identifier)

    def build_data_flow_edges(self, middlewares: List[MiddlewareAnalysis]) -> List[DataFlowEdge]:
        edges: List[DataFlowEdge] = []
        for current, following in zip(middlewares, middlewares[1:]):
            reads = {usage.property for usage in following.all_res_locals_reads}
            shared: List[str] = []
            for usage in current.all_res_locals_writes:
                if usage.property in reads and usage.property not in shared:
                    shared.append(usage.property)
            edges.append(DataFlowEdge(source=current.name, target=following.name, properties=tuple(shared)))
        return edges

    def build_component_edges(self, middlewares: List[MiddlewareAnalysis]) -> List[ComponentDataFlowEdge]:
        writes: Dict[str, List[Tuple[int, Path]]] = {}
        reads: Dict[str, List[Tuple[int, Path]]] = {}
        for index, middleware in enumerate(middlewares):
            if middleware.record is None:
                continue
            for module in self.modules.expand(middleware.record):
                for usage in module.res_locals_writes:
                    writes.setdefault(usage.property, []).append((index, module.file_path))
                for usage in module.res_locals_reads:
                    reads.setdefault(usage.property, []).append((index, module.file_path))

        edges: List[ComponentDataFlowEdge] = []
        seen: Set[Tuple[str, str, str]] = set()
        for prop, writers in writes.items():
            for write_index, write_path in writers:
                for read_index, read_path in reads.get(prop, []):
                    if write_index > read_index or write_path == read_path:
                        continue
                    key = (short_path(write_path), short_path(read_path), prop)
                    if key in seen:
                        continue
                    seen.add(key)
                    edges.append(ComponentDataFlowEdge(source=key[0], target=key[1], property=prop))
        return edges


def data_flow_summary(result: FlowAnalysisResult) -> List[Dict[str, object]]:
    """One row per shared-state property, most consumed first."""
    rows = [
        {"property": name, "producers": list(flow.producers), "consumers": list(flow.consumers)}
        for name, flow in result.res_locals_properties.items()
    ]
    rows.sort(key=lambda row: len(row["consumers"]), reverse=True)
    return rows


def _component_node(record: ModuleRecord) -> Dict[str, object]:
    return {
        "name": record.display_name,
        "path": str(record.file_path),
        "shallow": record.is_shallow_reference,
        "resLocals": {
            "reads": [{"property": usage.property, "line": usage.line} for usage in record.res_locals_reads],
            "writes": [{"property": usage.property, "line": usage.line} for usage in record.res_locals_writes],
        },
        "externalCalls": [
            {"type": call.family, "template": call.template, "line": call.line} for call in record.external_calls
        ],
        "configDeps": [{"source": dep.source, "key": dep.key, "line": dep.line} for dep in record.config_deps],
        "children": [_component_node(child) for child in record.children],
    }


def component_tree(result: FlowAnalysisResult) -> List[Dict[str, object]]:
    return [
        {
            "index": index,
            "name": middleware.name,
            "path": str(middleware.file_path) if middleware.file_path else None,
            "exists": middleware.exists,
            "components": [_component_node(child) for child in middleware.components],
        }
        for index, middleware in enumerate(result.middlewares, start=1)
    ]
