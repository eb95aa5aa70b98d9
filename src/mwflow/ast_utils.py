"""Shared tree-sitter helpers for the middleware analyzers."""

from __future__ import annotations

from typing import Callable, Iterator, List, Tuple

from tree_sitter import Language, Parser
from tree_sitter_javascript import language as javascript_language
from tree_sitter_typescript import language_tsx, language_typescript


_JS_LANGUAGE = Language(javascript_language())
_TS_LANGUAGE = Language(language_typescript())
_TSX_LANGUAGE = Language(language_tsx())

JS_PARSER = Parser()
JS_PARSER.language = _JS_LANGUAGE
TS_PARSER = Parser()
TS_PARSER.language = _TS_LANGUAGE
TSX_PARSER = Parser()
TSX_PARSER.language = _TSX_LANGUAGE

ENTER = "enter"
LEAVE = "leave"

FUNCTION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
}
SCOPE_TYPES = FUNCTION_TYPES | {"program"}

Ancestors = Tuple[object, ...]


def parser_for_extension(ext: str) -> Parser | None:
    if ext in {".ts", ".mts"}:
        return TS_PARSER
    if ext == ".tsx":
        return TSX_PARSER
    if ext in {".js", ".mjs", ".cjs", ".jsx"}:
        return JS_PARSER
    return None


def node_text(node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")


def line_of(node) -> int:
    return node.start_point[0] + 1


def unwrap(node):
    """Strip any number of enclosing parentheses."""
    while node is not None and node.type == "parenthesized_expression":
        inner = [child for child in node.named_children if child.type != "comment"]
        if not inner:
            return None
        node = inner[0]
    return node


def identifier_name(node, source: bytes) -> str | None:
    if node is None:
        return None
    if node.type in {
        "identifier",
        "property_identifier",
        "shorthand_property_identifier",
        "shorthand_property_identifier_pattern",
        "private_property_identifier",
    }:
        return node_text(node, source)
    if node.type == "this":
        return "this"
    return None


def string_value(node, source: bytes) -> str | None:
    """Value of a plain string literal (template literals without substitutions too)."""
    if node is None:
        return None
    if node.type == "string":
        text = node_text(node, source)
        if len(text) >= 2 and text[0] == text[-1] and text[0] in {"'", '"'}:
            return text[1:-1]
        return text
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.named_children):
            return None
        text = node_text(node, source)
        return text[1:-1] if len(text) >= 2 else text
    return None


def property_name(node, source: bytes) -> str | None:
    """Name of the property accessed by a member or subscript expression."""
    if node is None:
        return None
    if node.type == "member_expression":
        return identifier_name(node.child_by_field_name("property"), source)
    if node.type == "subscript_expression":
        index = unwrap(node.child_by_field_name("index"))
        literal = string_value(index, source)
        if literal is not None:
            return literal
        if index is not None and index.type == "number":
            return node_text(index, source)
    return None


def call_arguments(node) -> List:
    args = node.child_by_field_name("arguments")
    if args is None or args.type != "arguments":
        return []
    return [child for child in args.named_children if child.type != "comment"]


def object_property(node, key: str, source: bytes):
    """Return the value node for `key` inside an object literal, if present."""
    if node is None or node.type != "object":
        return None
    for child in node.named_children:
        if child.type == "pair":
            key_node = child.child_by_field_name("key")
            name = identifier_name(key_node, source) or string_value(key_node, source)
            if name == key:
                return child.child_by_field_name("value")
        elif child.type == "shorthand_property_identifier":
            if node_text(child, source) == key:
                return child
    return None


def object_keys(node, source: bytes) -> List[str]:
    keys: List[str] = []
    if node is None or node.type != "object":
        return keys
    for child in node.named_children:
        if child.type == "pair":
            key_node = child.child_by_field_name("key")
            name = identifier_name(key_node, source) or string_value(key_node, source)
            if name:
                keys.append(name)
        elif child.type in {"shorthand_property_identifier", "method_definition"}:
            name_node = child if child.type == "shorthand_property_identifier" else child.child_by_field_name("name")
            name = identifier_name(name_node, source)
            if name:
                keys.append(name)
    return keys


def pattern_bindings(node, source: bytes) -> List[Tuple[str, str]]:
    """(key, local) pairs bound by an object destructuring pattern."""
    pairs: List[Tuple[str, str]] = []
    if node is None or node.type != "object_pattern":
        return pairs
    for child in node.named_children:
        if child.type == "shorthand_property_identifier_pattern":
            name = node_text(child, source)
            pairs.append((name, name))
        elif child.type == "pair_pattern":
            key_node = child.child_by_field_name("key")
            key = identifier_name(key_node, source) or string_value(key_node, source)
            value = child.child_by_field_name("value")
            if value is not None and value.type in {"assignment_pattern", "object_assignment_pattern"}:
                value = value.child_by_field_name("left")
            local = identifier_name(value, source)
            if key and local:
                pairs.append((key, local))
        elif child.type == "object_assignment_pattern":
            left = child.child_by_field_name("left")
            name = identifier_name(left, source)
            if name:
                pairs.append((name, name))
    return pairs


def same_node(left, right) -> bool:
    if left is None or right is None:
        return False
    return (
        left.start_byte == right.start_byte
        and left.end_byte == right.end_byte
        and left.type == right.type
    )


def contains(outer, inner) -> bool:
    if outer is None or inner is None:
        return False
    return outer.start_byte <= inner.start_byte and inner.end_byte <= outer.end_byte


def traverse(
    root,
    prune: Callable[[object, Ancestors], bool] | None = None,
) -> Iterator[Tuple[str, object, Ancestors]]:
    """Depth-first pre-order walk yielding (event, node, ancestors).

    ``ancestors`` is ordered outermost first and excludes ``node`` itself.
    When ``prune`` returns true for a node below ``root`` the node and its
    subtree are skipped entirely. Iterative so deeply nested trees are safe.
    """
    stack: List[Tuple[object, bool]] = [(root, False)]
    ancestors: List[object] = []
    while stack:
        node, leaving = stack.pop()
        if leaving:
            ancestors.pop()
            yield LEAVE, node, tuple(ancestors)
            continue
        current = tuple(ancestors)
        if prune is not None and node is not root and prune(node, current):
            continue
        yield ENTER, node, current
        ancestors.append(node)
        stack.append((node, True))
        stack.extend((child, False) for child in reversed(node.children))


def enclosing_scopes(ancestors: Ancestors) -> List:
    return [node for node in reversed(ancestors) if node.type in SCOPE_TYPES]
