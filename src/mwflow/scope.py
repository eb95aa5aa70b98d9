"""Scope lookup and constant string-value resolution."""

from __future__ import annotations

from typing import List

from .ast_utils import (
    ENTER,
    FUNCTION_TYPES,
    Ancestors,
    enclosing_scopes,
    identifier_name,
    string_value,
    traverse,
    unwrap,
)

VALUE_SEPARATOR = " | "


def string_values(node, source: bytes) -> List[str]:
    """Possible string values an expression may evaluate to, in source order."""
    values: List[str] = []
    stack = [node]
    while stack:
        current = unwrap(stack.pop())
        if current is None:
            continue
        literal = string_value(current, source)
        if literal is not None:
            values = _union(values, [literal])
        elif current.type == "ternary_expression":
            stack.append(current.child_by_field_name("alternative"))
            stack.append(current.child_by_field_name("consequence"))
        elif current.type == "binary_expression":
            if _is_logical(current):
                stack.append(current.child_by_field_name("right"))
                stack.append(current.child_by_field_name("left"))
        elif current.type == "array":
            items = [child for child in current.named_children if child.type != "comment"]
            parts = [string_value(unwrap(item), source) for item in items]
            if items and all(part is not None for part in parts):
                values = _union(values, [",".join(parts)])
    return values


def _is_logical(node) -> bool:
    operator = node.child_by_field_name("operator")
    return operator is not None and operator.type in {"||", "&&"}


def _union(left: List[str], right: List[str]) -> List[str]:
    merged = list(left)
    for value in right:
        if value not in merged:
            merged.append(value)
    return merged


def _skip_nested_functions(node, ancestors: Ancestors) -> bool:
    return node.type in FUNCTION_TYPES


def declarators_in_scope(name: str, scope, source: bytes) -> List:
    """Variable declarators binding ``name`` directly inside ``scope``."""
    found = []
    for event, node, _ in traverse(scope, prune=_skip_nested_functions):
        if event != ENTER or node.type != "variable_declarator":
            continue
        if identifier_name(node.child_by_field_name("name"), source) == name:
            found.append(node)
    return found


def find_variable_values(name: str, scope, source: bytes) -> List[str]:
    values: List[str] = []
    for declarator in declarators_in_scope(name, scope, source):
        values = _union(values, string_values(declarator.child_by_field_name("value"), source))
    return values


def resolve_variable(name: str, ancestors: Ancestors, source: bytes) -> List[str]:
    """Values of ``name`` from the innermost enclosing scope that yields any."""
    for scope in enclosing_scopes(ancestors):
        values = find_variable_values(name, scope, source)
        if values:
            return values
    return []


def find_declarator(name: str, ancestors: Ancestors, source: bytes, value_type: str | None = None):
    """Nearest declarator of ``name`` whose initializer matches ``value_type``."""
    for scope in enclosing_scopes(ancestors):
        for declarator in declarators_in_scope(name, scope, source):
            value = unwrap(declarator.child_by_field_name("value"))
            if value is None:
                continue
            if value_type is None or value.type == value_type:
                return declarator
    return None
