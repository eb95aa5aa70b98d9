"""Require/import collection and export discovery."""

from __future__ import annotations

from typing import Dict, List, Set

from .ast_utils import (
    Ancestors,
    call_arguments,
    identifier_name,
    line_of,
    object_keys,
    pattern_bindings,
    property_name,
    string_value,
    unwrap,
)
from .models import RequireInfo
from .path_resolver import PathResolver, is_local_specifier
from .source import SourceModule

MAIN_EXPORTS = ("execute", "run")


def require_specifier(node, source: bytes) -> str | None:
    """Literal specifier of a ``require('...')`` call, if ``node`` is one."""
    callee = unwrap(node.child_by_field_name("function"))
    if callee is None or callee.type != "identifier" or identifier_name(callee, source) != "require":
        return None
    args = call_arguments(node)
    if not args:
        return None
    return string_value(unwrap(args[0]), source)


def import_specifier(node, source: bytes) -> str | None:
    return string_value(node.child_by_field_name("source"), source)


def binder_names(binder, source: bytes) -> List[str]:
    if binder is None:
        return []
    if binder.type == "identifier":
        return [identifier_name(binder, source)]
    if binder.type == "object_pattern":
        return [local for _, local in pattern_bindings(binder, source)]
    return []


def import_names(statement, source: bytes) -> List[str]:
    names: List[str] = []
    for clause in statement.named_children:
        if clause.type != "import_clause":
            continue
        for child in clause.named_children:
            if child.type == "identifier":
                names.append(identifier_name(child, source))
            elif child.type == "namespace_import":
                names.extend(
                    identifier_name(inner, source)
                    for inner in child.named_children
                    if inner.type == "identifier"
                )
            elif child.type == "named_imports":
                for spec in child.named_children:
                    if spec.type != "import_specifier":
                        continue
                    local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                    name = identifier_name(local, source)
                    if name:
                        names.append(name)
    return names


class RequireAnalyzer:
    """Records the modules a file pulls in, deduplicated by specifier."""

    def __init__(self, module: SourceModule, resolver: PathResolver) -> None:
        self.module = module
        self.resolver = resolver
        self.requires: List[RequireInfo] = []
        self._seen: Set[str] = set()

    def _record(self, specifier: str, variable_name: str, line: int) -> None:
        if specifier in self._seen:
            return
        self._seen.add(specifier)
        self.requires.append(
            RequireInfo(
                specifier=specifier,
                variable_name=variable_name,
                resolved_path=self.resolver.resolve(specifier, self.module.path),
                line=line,
                is_local=is_local_specifier(specifier),
                is_namespaced=specifier.startswith(self.resolver.config.namespace_prefix),
            )
        )

    def visit_require(self, specifier: str, node, ancestors: Ancestors) -> None:
        names: List[str] = []
        for ancestor in reversed(ancestors):
            if ancestor.type == "variable_declarator":
                names = binder_names(ancestor.child_by_field_name("name"), self.module.source)
                break
        self._record(specifier, ", ".join(names), line_of(node))

    def visit_import(self, specifier: str, node) -> None:
        self._record(specifier, ", ".join(import_names(node, self.module.source)), line_of(node))


class ExportCollector:
    """Collects CommonJS and ES export names with their lines."""

    def __init__(self, module: SourceModule) -> None:
        self.module = module
        self.exported_functions: List[str] = []
        self.export_lines: Dict[str, int] = {}
        self.main_function_line: int | None = None

    def _add(self, name: str, line: int) -> None:
        if name not in self.export_lines:
            self.export_lines[name] = line
            self.exported_functions.append(name)
        if name in MAIN_EXPORTS and self.main_function_line is None:
            self.main_function_line = line

    def _is_module_exports(self, node) -> bool:
        node = unwrap(node)
        if node is None or node.type != "member_expression":
            return False
        owner = identifier_name(unwrap(node.child_by_field_name("object")), self.module.source)
        return owner == "module" and property_name(node, self.module.source) == "exports"

    def visit_assignment(self, node, ancestors: Ancestors) -> None:
        left = unwrap(node.child_by_field_name("left"))
        if left is None or left.type != "member_expression":
            return
        source = self.module.source
        line = line_of(node)
        if self._is_module_exports(left):
            value = unwrap(node.child_by_field_name("right"))
            for key in object_keys(value, source):
                self._add(key, line)
            return
        owner = unwrap(left.child_by_field_name("object"))
        if self._is_module_exports(owner) or identifier_name(owner, source) == "exports":
            name = property_name(left, source)
            if name:
                self._add(name, line)

    def visit_export(self, node) -> None:
        declaration = node.child_by_field_name("declaration")
        if declaration is None:
            return
        source = self.module.source
        line = line_of(node)
        if declaration.type in {"function_declaration", "generator_function_declaration", "class_declaration"}:
            name = identifier_name(declaration.child_by_field_name("name"), source)
            if name:
                self._add(name, line)
        elif declaration.type in {"lexical_declaration", "variable_declaration"}:
            for child in declaration.named_children:
                if child.type == "variable_declarator":
                    name = identifier_name(child.child_by_field_name("name"), source)
                    if name:
                        self._add(name, line)
