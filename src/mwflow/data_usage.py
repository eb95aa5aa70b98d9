"""Shared-state and request/response facet usage detection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Set, Tuple

from .ast_utils import (
    Ancestors,
    call_arguments,
    identifier_name,
    line_of,
    object_keys,
    property_name,
    same_node,
    string_value,
    unwrap,
)
from .models import DIRECT, READ, WRITE, DataUsage, PropertyUsage
from .source import SourceModule
from .write_context import MUTATION_METHODS, classify_write_context, is_object_assign

NATIVE_METHODS_AND_PROPS = frozenset(
    {
        "length",
        "indexOf",
        "find",
        "filter",
        "map",
        "reduce",
        "forEach",
        "some",
        "every",
        "includes",
        "slice",
        "concat",
        "join",
        "keys",
        "values",
        "entries",
        "at",
        "toString",
        "hasOwnProperty",
        "flat",
        "flatMap",
        "toLocaleString",
        "constructor",
        "isPrototypeOf",
        "propertyIsEnumerable",
        "valueOf",
        "reduceRight",
        "findIndex",
    }
)

MEMBER_TYPES = {"member_expression", "subscript_expression"}
REQUEST_ROOTS = frozenset({"req", "request"})
RESPONSE_ROOTS = frozenset({"res", "response"})


@dataclass(frozen=True, slots=True)
class StateBag:
    name: str
    roots: frozenset
    inner: str
    strip_native: bool = False
    allow_direct: bool = False


@dataclass(frozen=True, slots=True)
class Facet:
    name: str
    roots: frozenset
    inner: str


STATE_BAGS = (
    StateBag("res_locals", RESPONSE_ROOTS, "locals", strip_native=True),
    StateBag("req_transaction", REQUEST_ROOTS, "transaction", allow_direct=True),
)

FACETS = (
    Facet("req.query", REQUEST_ROOTS, "query"),
    Facet("req.body", REQUEST_ROOTS, "body"),
    Facet("req.params", REQUEST_ROOTS, "params"),
    Facet("req.headers", REQUEST_ROOTS, "headers"),
    Facet("req.cookies", REQUEST_ROOTS, "cookies"),
    Facet("res.cookie", RESPONSE_ROOTS, "cookies"),
    Facet("res.header", RESPONSE_ROOTS, "headers"),
)

RESPONSE_METHODS = {
    "cookie": "res.cookie",
    "setHeader": "res.header",
    "set": "res.header",
    "header": "res.header",
}


def member_chain(node, source: bytes) -> Tuple[str | None, List[str]]:
    """Leading identifier and the static property names of a member chain."""
    segments: List[str] = []
    current = unwrap(node)
    while current is not None and current.type in MEMBER_TYPES:
        name = property_name(current, source)
        if name:
            segments.insert(0, name)
        current = unwrap(current.child_by_field_name("object"))
    if current is None or current.type != "identifier":
        return None, segments
    return identifier_name(current, source), segments


def extract_property_path(node, roots, inner: str, source: bytes) -> str | None:
    root, segments = member_chain(node, source)
    if root in roots and len(segments) > 1 and segments[0] == inner:
        return ".".join(segments[1:])
    return None


def is_bag_itself(node, roots, inner: str, source: bytes) -> bool:
    root, segments = member_chain(node, source)
    return root in roots and segments == [inner]


def strip_native_segments(path: str) -> str | None:
    parts = path.split(".")
    while parts and parts[-1] in NATIVE_METHODS_AND_PROPS:
        parts.pop()
    return ".".join(parts) if parts else None


class DataUsageAnalyzer:
    """Collects shared-state usages and request/response facet usages for one file."""

    def __init__(self, module: SourceModule, is_library: bool = False, expand_object_literals: bool = True) -> None:
        self.module = module
        self.is_library = is_library
        self.expand_object_literals = expand_object_literals
        self.reads: Dict[str, List[PropertyUsage]] = {bag.name: [] for bag in STATE_BAGS}
        self.writes: Dict[str, List[PropertyUsage]] = {bag.name: [] for bag in STATE_BAGS}
        self.data_usages: List[DataUsage] = []
        self._seen: Dict[str, Set[tuple]] = {bag.name: set() for bag in STATE_BAGS}
        self._seen_data: Set[tuple] = set()

    @property
    def source(self) -> bytes:
        return self.module.source

    def _emit_state(self, bag: StateBag, prop: str, kind: str, line: int) -> None:
        key = (prop, line, str(self.module.path), kind)
        if key in self._seen[bag.name]:
            return
        self._seen[bag.name].add(key)
        usage = PropertyUsage(
            property=prop,
            kind=kind,
            line=line,
            snippet=self.module.line(line),
            full_path=prop,
            source_path=self.module.path,
            is_library=self.is_library,
        )
        target = self.writes if kind == WRITE else self.reads
        target[bag.name].append(usage)

    def _emit_data(self, facet: str, prop: str, kind: str, line: int) -> None:
        key = (facet, prop, line, kind)
        if key in self._seen_data:
            return
        self._seen_data.add(key)
        self.data_usages.append(
            DataUsage(
                source=facet,
                property=prop,
                kind=kind,
                line=line,
                snippet=self.module.line(line),
                source_path=self.module.path,
                is_library=self.is_library,
            )
        )

    def _state_path(self, bag: StateBag, node) -> str | None:
        prop = extract_property_path(node, bag.roots, bag.inner, self.source)
        if prop is None:
            if bag.allow_direct and is_bag_itself(node, bag.roots, bag.inner, self.source):
                return DIRECT
            return None
        if bag.strip_native:
            return strip_native_segments(prop)
        return prop

    def visit_member(self, node, ancestors: Ancestors) -> None:
        parent = ancestors[-1] if ancestors else None
        if parent is not None and parent.type in MEMBER_TYPES:
            if same_node(parent.child_by_field_name("object"), node):
                return
        target, chain = node, ancestors
        if parent is not None and parent.type == "call_expression":
            if same_node(unwrap(parent.child_by_field_name("function")), node):
                method = property_name(node, self.source)
                receiver = unwrap(node.child_by_field_name("object"))
                if (
                    (method in MUTATION_METHODS or method in NATIVE_METHODS_AND_PROPS)
                    and receiver is not None
                    and receiver.type in MEMBER_TYPES
                ):
                    target, chain = receiver, ancestors + (node,)
        context = classify_write_context(target, chain, self.source)
        kind = WRITE if context.is_write else READ
        line = line_of(node)
        for bag in STATE_BAGS:
            prop = self._state_path(bag, target)
            if prop:
                self._emit_state(bag, prop, kind, line)
        for facet in FACETS:
            prop = extract_property_path(target, facet.roots, facet.inner, self.source)
            if prop:
                self._emit_data(facet.name, prop, kind, line)
                break

    def visit_delete(self, node, ancestors: Ancestors) -> None:
        argument = unwrap(node.child_by_field_name("argument"))
        if argument is None or argument.type not in MEMBER_TYPES:
            return
        line = line_of(node)
        for bag in STATE_BAGS:
            prop = self._state_path(bag, argument)
            if prop:
                self._emit_state(bag, prop, WRITE, line)

    def visit_call(self, node, ancestors: Ancestors) -> None:
        callee = unwrap(node.child_by_field_name("function"))
        if callee is None or callee.type != "member_expression":
            return
        if self.expand_object_literals and is_object_assign(node, self.source):
            self._expand_merge(node)
            return
        receiver = identifier_name(callee.child_by_field_name("object"), self.source)
        method = property_name(callee, self.source)
        args = call_arguments(node)
        first = string_value(unwrap(args[0]), self.source) if args else None
        if first is None:
            return
        if receiver in RESPONSE_ROOTS and method in RESPONSE_METHODS:
            self._emit_data(RESPONSE_METHODS[method], first, WRITE, line_of(node))
        elif receiver in REQUEST_ROOTS and method == "header":
            self._emit_data("req.headers", first, READ, line_of(node))

    def visit_assignment(self, node, ancestors: Ancestors) -> None:
        """Treat top-level keys of an object literal initializer as writes too."""
        if not self.expand_object_literals:
            return
        value = unwrap(node.child_by_field_name("right"))
        if value is None or value.type != "object":
            return
        left = unwrap(node.child_by_field_name("left"))
        if left is None or left.type not in MEMBER_TYPES:
            return
        for bag in STATE_BAGS:
            prop = self._state_path(bag, left)
            if prop and prop != DIRECT:
                self._emit_state(bag, prop, WRITE, line_of(node))
                self._emit_keys(bag, prop, value, line_of(node))

    def _expand_merge(self, node) -> None:
        args = call_arguments(node)
        if len(args) < 2:
            return
        target = unwrap(args[0])
        for bag in STATE_BAGS:
            if is_bag_itself(target, bag.roots, bag.inner, self.source):
                prefix = ""
            else:
                prefix = self._state_path(bag, target)
                if not prefix or prefix == DIRECT:
                    continue
                self._emit_state(bag, prefix, WRITE, line_of(node))
            for extra in args[1:]:
                extra = unwrap(extra)
                if extra is not None and extra.type == "object":
                    self._emit_keys(bag, prefix, extra, line_of(node))

    def _emit_keys(self, bag: StateBag, prefix: str, literal, line: int) -> None:
        for key in object_keys(literal, self.source):
            self._emit_state(bag, f"{prefix}.{key}" if prefix else key, WRITE, line)
