"""Configuration lookups made through the application cache accessor."""

from __future__ import annotations

from typing import List, Set, Tuple

from .ast_utils import Ancestors, call_arguments, identifier_name, line_of, property_name, string_value, unwrap
from .models import ConfigDependency
from .source import SourceModule

CONFIG_ACCESSOR = "appCache"
CONFIG_METHODS = {
    "getMWareConfig": "mWareConfig",
    "getAppConfig": "appConfig",
    "getSysParameter": "sysParameter",
    "get": "appCache",
}
DEFAULT_KEY = "default"


class ConfigDependencyAnalyzer:
    def __init__(self, module: SourceModule) -> None:
        self.module = module
        self.dependencies: List[ConfigDependency] = []
        self._seen: Set[Tuple[str, str]] = set()

    def visit_call(self, node, ancestors: Ancestors) -> None:
        callee = unwrap(node.child_by_field_name("function"))
        if callee is None or callee.type != "member_expression":
            return
        if identifier_name(unwrap(callee.child_by_field_name("object")), self.module.source) != CONFIG_ACCESSOR:
            return
        bucket = CONFIG_METHODS.get(property_name(callee, self.module.source) or "")
        if bucket is None:
            return
        args = call_arguments(node)
        key = string_value(unwrap(args[0]), self.module.source) if args else None
        key = key or DEFAULT_KEY
        if (bucket, key) in self._seen:
            return
        self._seen.add((bucket, key))
        line = line_of(node)
        self.dependencies.append(
            ConfigDependency(
                source=bucket,
                key=key,
                line=line,
                snippet=self.module.line(line),
                source_path=self.module.path,
            )
        )
