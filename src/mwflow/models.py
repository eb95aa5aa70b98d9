"""Result records produced by the module and flow analyzers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

READ = "read"
WRITE = "write"
DIRECT = "(direct)"


@dataclass(frozen=True, slots=True)
class PropertyUsage:
    """A read or write of a shared-state or transaction-state property."""

    property: str
    kind: str
    line: int
    snippet: str
    full_path: str
    source_path: Path
    is_library: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "property": self.property,
            "kind": self.kind,
            "lineNumber": self.line,
            "codeSnippet": self.snippet,
            "fullPath": self.full_path,
            "sourcePath": str(self.source_path),
            "isLibrary": self.is_library,
        }


@dataclass(frozen=True, slots=True)
class DataUsage:
    """A request input consumed or a response facet produced."""

    source: str
    property: str
    kind: str
    line: int
    snippet: str
    source_path: Path
    is_library: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "source": self.source,
            "property": self.property,
            "kind": self.kind,
            "lineNumber": self.line,
            "codeSnippet": self.snippet,
            "sourcePath": str(self.source_path),
            "isLibrary": self.is_library,
        }


@dataclass(frozen=True, slots=True)
class ExternalCall:
    family: str
    template: str | None
    line: int
    snippet: str
    source_path: Path
    is_library: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.family,
            "template": self.template,
            "lineNumber": self.line,
            "codeSnippet": self.snippet,
            "sourcePath": str(self.source_path),
            "isLibrary": self.is_library,
        }


@dataclass(frozen=True, slots=True)
class ConfigDependency:
    source: str
    key: str
    line: int
    snippet: str
    source_path: Path

    def to_dict(self) -> Dict[str, object]:
        return {
            "source": self.source,
            "key": self.key,
            "lineNumber": self.line,
            "codeSnippet": self.snippet,
            "sourcePath": str(self.source_path),
        }


@dataclass(frozen=True, slots=True)
class RequireInfo:
    specifier: str
    variable_name: str
    resolved_path: Path | None
    line: int
    is_local: bool
    is_namespaced: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "modulePath": self.specifier,
            "variableName": self.variable_name,
            "resolvedPath": str(self.resolved_path) if self.resolved_path else None,
            "lineNumber": self.line,
            "isLocal": self.is_local,
            "isAglModule": self.is_namespaced,
        }


@dataclass(slots=True)
class ModuleRecord:
    """Facts collected for one source file, plus its analyzed children."""

    name: str
    display_name: str
    file_path: Path
    exists: bool = True
    depth: int = 0
    parent_path: Path | None = None
    res_locals_reads: List[PropertyUsage] = field(default_factory=list)
    res_locals_writes: List[PropertyUsage] = field(default_factory=list)
    req_transaction_reads: List[PropertyUsage] = field(default_factory=list)
    req_transaction_writes: List[PropertyUsage] = field(default_factory=list)
    data_usages: List[DataUsage] = field(default_factory=list)
    external_calls: List[ExternalCall] = field(default_factory=list)
    config_deps: List[ConfigDependency] = field(default_factory=list)
    requires: List[RequireInfo] = field(default_factory=list)
    children: List["ModuleRecord"] = field(default_factory=list)
    exported_functions: List[str] = field(default_factory=list)
    export_lines: Dict[str, int] = field(default_factory=dict)
    main_function_line: int | None = None
    is_shallow_reference: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "filePath": str(self.file_path),
            "exists": self.exists,
            "depth": self.depth,
            "parentPath": str(self.parent_path) if self.parent_path else None,
            "resLocalsReads": [usage.to_dict() for usage in self.res_locals_reads],
            "resLocalsWrites": [usage.to_dict() for usage in self.res_locals_writes],
            "reqTransactionReads": [usage.to_dict() for usage in self.req_transaction_reads],
            "reqTransactionWrites": [usage.to_dict() for usage in self.req_transaction_writes],
            "dataUsages": [usage.to_dict() for usage in self.data_usages],
            "externalCalls": [call.to_dict() for call in self.external_calls],
            "configDeps": [dep.to_dict() for dep in self.config_deps],
            "requires": [info.to_dict() for info in self.requires],
            "children": [child.to_dict() for child in self.children],
            "exportedFunctions": list(self.exported_functions),
            "mainFunctionLine": self.main_function_line,
            "isShallowReference": self.is_shallow_reference,
        }


@dataclass(slots=True)
class MiddlewareAnalysis:
    """A middleware entry module together with its transitive roll-ups."""

    name: str
    file_path: Path | None
    exists: bool
    record: ModuleRecord | None = None
    run_function_line: int | None = None
    panic_function_line: int | None = None
    all_res_locals_reads: List[PropertyUsage] = field(default_factory=list)
    all_res_locals_writes: List[PropertyUsage] = field(default_factory=list)
    all_req_transaction_reads: List[PropertyUsage] = field(default_factory=list)
    all_req_transaction_writes: List[PropertyUsage] = field(default_factory=list)
    all_data_usages: List[DataUsage] = field(default_factory=list)
    all_external_calls: List[ExternalCall] = field(default_factory=list)
    all_config_deps: List[ConfigDependency] = field(default_factory=list)

    @property
    def components(self) -> List[ModuleRecord]:
        return self.record.children if self.record else []

    @property
    def short_name(self) -> str:
        return self.name.split("/")[-1]

    def to_dict(self) -> Dict[str, object]:
        record = self.record
        return {
            "name": self.name,
            "filePath": str(self.file_path) if self.file_path else None,
            "exists": self.exists,
            "runFunctionLine": self.run_function_line,
            "panicFunctionLine": self.panic_function_line,
            "resLocalsReads": [usage.to_dict() for usage in record.res_locals_reads] if record else [],
            "resLocalsWrites": [usage.to_dict() for usage in record.res_locals_writes] if record else [],
            "reqTransactionReads": [usage.to_dict() for usage in record.req_transaction_reads] if record else [],
            "reqTransactionWrites": [usage.to_dict() for usage in record.req_transaction_writes] if record else [],
            "dataUsages": [usage.to_dict() for usage in record.data_usages] if record else [],
            "externalCalls": [call.to_dict() for call in record.external_calls] if record else [],
            "configDeps": [dep.to_dict() for dep in record.config_deps] if record else [],
            "components": [child.to_dict() for child in self.components],
            "allResLocalsReads": [usage.to_dict() for usage in self.all_res_locals_reads],
            "allResLocalsWrites": [usage.to_dict() for usage in self.all_res_locals_writes],
            "allReqTransactionReads": [usage.to_dict() for usage in self.all_req_transaction_reads],
            "allReqTransactionWrites": [usage.to_dict() for usage in self.all_req_transaction_writes],
            "allDataUsages": [usage.to_dict() for usage in self.all_data_usages],
            "allExternalCalls": [call.to_dict() for call in self.all_external_calls],
            "allConfigDeps": [dep.to_dict() for dep in self.all_config_deps],
        }


@dataclass(slots=True)
class EndpointDescriptor:
    endpoint_uri: str = ""
    method: str = ""
    middleware: Any = field(default_factory=list)
    template: str | None = None
    panic: bool | str | None = None
    panic_config_key: str | None = None
    nano_config_key: str | None = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _KEYS = {
        "endpointUri": "endpoint_uri",
        "method": "method",
        "middleware": "middleware",
        "template": "template",
        "panic": "panic",
        "panicConfigKey": "panic_config_key",
        "nanoConfigKey": "nano_config_key",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EndpointDescriptor":
        known = {attr: data[key] for key, attr in cls._KEYS.items() if key in data}
        extra = {key: value for key, value in data.items() if key not in cls._KEYS}
        return cls(**known, extra=extra)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = dict(self.extra)
        payload["endpointUri"] = self.endpoint_uri
        payload["method"] = self.method
        payload["middleware"] = self.middleware
        for key, attr in self._KEYS.items():
            value = getattr(self, attr)
            if key not in payload and value is not None:
                payload[key] = value
        return payload


@dataclass(slots=True)
class PropertyFlow:
    producers: List[str] = field(default_factory=list)
    consumers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"producers": list(self.producers), "consumers": list(self.consumers)}


@dataclass(frozen=True, slots=True)
class DataFlowEdge:
    source: str
    target: str
    properties: tuple = ()

    def to_dict(self) -> Dict[str, object]:
        return {"from": self.source, "to": self.target, "properties": list(self.properties)}


@dataclass(frozen=True, slots=True)
class ComponentDataFlowEdge:
    source: str
    target: str
    property: str
    kind: str = "write-read"

    def to_dict(self) -> Dict[str, object]:
        return {"from": self.source, "to": self.target, "property": self.property, "type": self.kind}


@dataclass(slots=True)
class FlowAnalysisResult:
    endpoint: EndpointDescriptor
    middlewares: List[MiddlewareAnalysis] = field(default_factory=list)
    data_flow: List[DataFlowEdge] = field(default_factory=list)
    res_locals_properties: Dict[str, PropertyFlow] = field(default_factory=dict)
    req_transaction_properties: Dict[str, PropertyFlow] = field(default_factory=dict)
    component_data_flow: List[ComponentDataFlowEdge] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "endpoint": self.endpoint.to_dict(),
            "middlewares": [mw.to_dict() for mw in self.middlewares],
            "dataFlow": [edge.to_dict() for edge in self.data_flow],
            "allResLocalsProperties": {
                name: flow.to_dict() for name, flow in self.res_locals_properties.items()
            },
            "allReqTransactionProperties": {
                name: flow.to_dict() for name, flow in self.req_transaction_properties.items()
            },
            "componentDataFlow": [edge.to_dict() for edge in self.component_data_flow],
            "cancelled": self.cancelled,
        }
