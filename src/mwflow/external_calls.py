"""External service call detection for wrapper and http-client calls."""

from __future__ import annotations

import re
from typing import Dict, List, Set, Tuple

from .ast_utils import (
    Ancestors,
    call_arguments,
    identifier_name,
    line_of,
    node_text,
    object_property,
    pattern_bindings,
    property_name,
    string_value,
    unwrap,
)
from .models import ExternalCall
from .scope import VALUE_SEPARATOR, find_declarator, resolve_variable, string_values
from .source import SourceModule

WRAPPER_PATH_PATTERN = re.compile(r"/wrapper/request/(\w+)(?:\.js)?$")
WRAPPER_FAMILY_ALIASES = {"es": "elasticsearch"}
HTTP_UTILITY_PATTERN = re.compile(r"@opus/agl-utils")
HTTP_CLIENT_METHODS = {"httpClient", "forwardRequest"}
HTTP_VERBS = {"GET", "POST", "PUT", "DELETE"}

# (method-name pattern, template argument index); -1 means the call carries no template.
TEMPLATE_ARG_INDEX: Tuple[Tuple[re.Pattern, int], ...] = tuple(
    (re.compile(pattern), index)
    for pattern, index in (
        (r"^callAVSDCQTemplate$", 4),
        (r"^callDCQ$", 6),
        (r"^callAVS$", 4),
        (r"^callAVSB2C(WithFullResponse)?$", 2),
        (r"^callAVSB2B(WithFullResponse)?$", 3),
        (r"^callAVSB2BVersioned(WithFullResponse)?$", 4),
        (r"^callAVSESTemplate$", 2),
        (r"^callDcqDecoupledESTemplate$", 2),
        (r"^call(ES|ESTemplate)$", 3),
        (r"^callExternal$", 3),
        (r"^callDsf$", 2),
        (r"^callAVSDCQSearch$", -1),
        (r"^callAVSESSearch$", 2),
        (r"^callPinboard$", 3),
        (r"^callAVA$", 3),
        (
            r"^callGet(AggregatedContentDetail|Live(ContentMetadata|ChannelList|Info)"
            r"|VodContentMetadata|LauncherMetadata|Epg)$",
            -1,
        ),
        (r"^callSearch(Suggestions|VodEvents|Contents)$", -1),
    )
)

# Unlisted call* wrappers: the fifth argument names the template only when it is a constant string.
FALLBACK_TEMPLATE_PATTERN = re.compile(r"^call\w*$")
FALLBACK_TEMPLATE_INDEX = 4


def wrapper_family(specifier: str) -> str | None:
    """Backend family implied by a required module specifier."""
    if HTTP_UTILITY_PATTERN.search(specifier):
        return "http"
    match = WRAPPER_PATH_PATTERN.search(specifier)
    if match:
        raw = match.group(1)
        return WRAPPER_FAMILY_ALIASES.get(raw, raw)
    return None


def template_index(method: str) -> int | None:
    for pattern, index in TEMPLATE_ARG_INDEX:
        if pattern.search(method):
            return index
    return None


def short_method_name(method: str) -> str:
    return method[4:] if method.startswith("call") else method


class ExternalCallAnalyzer:
    """Tracks wrapper bindings in one file and reports the calls made through them."""

    def __init__(self, module: SourceModule, is_library: bool = False) -> None:
        self.module = module
        self.is_library = is_library
        self.bindings: Dict[str, str] = {}
        self.calls: List[ExternalCall] = []
        self._seen: Set[tuple] = set()

    @property
    def source(self) -> bytes:
        return self.module.source

    def register_binding(self, binder, family: str) -> None:
        if binder is None:
            return
        if binder.type == "identifier":
            self.bindings[identifier_name(binder, self.source)] = family
        elif binder.type == "object_pattern":
            for key, local in pattern_bindings(binder, self.source):
                self.bindings[key] = family
                self.bindings[local] = family

    def register_require(self, specifier: str, ancestors: Ancestors) -> None:
        family = wrapper_family(specifier)
        if family is None:
            return
        for ancestor in reversed(ancestors):
            if ancestor.type == "variable_declarator":
                self.register_binding(ancestor.child_by_field_name("name"), family)
                break

    def register_import(self, specifier: str, statement) -> None:
        family = wrapper_family(specifier)
        if family is None:
            return
        for clause in statement.named_children:
            if clause.type != "import_clause":
                continue
            for child in clause.named_children:
                if child.type == "identifier":
                    self.register_binding(child, family)
                elif child.type == "namespace_import":
                    for inner in child.named_children:
                        self.register_binding(inner, family)
                elif child.type == "named_imports":
                    for spec in child.named_children:
                        if spec.type != "import_specifier":
                            continue
                        name = identifier_name(spec.child_by_field_name("name"), self.source)
                        alias = identifier_name(spec.child_by_field_name("alias"), self.source)
                        for local in (name, alias):
                            if local:
                                self.bindings[local] = family

    def track_declarator(self, node, ancestors: Ancestors) -> None:
        binder = node.child_by_field_name("name")
        if binder is None or binder.type != "identifier":
            return
        family = self._family_of_expression(node.child_by_field_name("value"))
        if family:
            self.bindings[identifier_name(binder, self.source)] = family

    def _family_of_expression(self, node) -> str | None:
        stack = [node]
        while stack:
            current = unwrap(stack.pop())
            if current is None:
                continue
            if current.type == "member_expression":
                owner = identifier_name(current.child_by_field_name("object"), self.source)
                if owner and owner in self.bindings:
                    return self.bindings[owner]
            elif current.type == "ternary_expression":
                stack.append(current.child_by_field_name("alternative"))
                stack.append(current.child_by_field_name("consequence"))
            elif current.type == "binary_expression":
                operator = current.child_by_field_name("operator")
                if operator is not None and operator.type in {"||", "&&"}:
                    stack.append(current.child_by_field_name("right"))
                    stack.append(current.child_by_field_name("left"))
        return None

    def visit_call(self, node, ancestors: Ancestors) -> None:
        callee = unwrap(node.child_by_field_name("function"))
        if callee is None:
            return
        owner = None
        if callee.type == "identifier":
            method = identifier_name(callee, self.source)
        elif callee.type == "member_expression":
            method = property_name(callee, self.source)
            owner_node = unwrap(callee.child_by_field_name("object"))
            owner = identifier_name(owner_node, self.source)
        else:
            return
        if not method:
            return
        if method in HTTP_CLIENT_METHODS:
            self._add("http", self.http_url(node, ancestors) or method, node)
            return
        family = None
        if owner and owner in self.bindings:
            family = self.bindings[owner]
        elif method in self.bindings:
            family = self.bindings[method]
        if family is None:
            return
        template = self.template_argument(node, method, ancestors) or short_method_name(method)
        self._add(family, template, node)

    def _add(self, family: str, template: str | None, node) -> None:
        line = line_of(node)
        key = (family, template, line, str(self.module.path))
        if key in self._seen:
            return
        self._seen.add(key)
        self.calls.append(
            ExternalCall(
                family=family,
                template=template,
                line=line,
                snippet=self.module.line(line),
                source_path=self.module.path,
                is_library=self.is_library,
            )
        )

    def template_argument(self, node, method: str, ancestors: Ancestors) -> str | None:
        args = call_arguments(node)
        index = template_index(method)
        if index == -1:
            return None
        if index is not None and index < len(args):
            arg = unwrap(args[index])
            values = string_values(arg, self.source)
            if values:
                return VALUE_SEPARATOR.join(values)
            if arg is not None and arg.type == "identifier":
                name = identifier_name(arg, self.source)
                resolved = resolve_variable(name, ancestors, self.source)
                return VALUE_SEPARATOR.join(resolved) if resolved else name
        elif index is None and FALLBACK_TEMPLATE_PATTERN.search(method) and FALLBACK_TEMPLATE_INDEX < len(args):
            values = string_values(args[FALLBACK_TEMPLATE_INDEX], self.source)
            if values:
                return VALUE_SEPARATOR.join(values)
        for arg in reversed(args):
            values = [
                value
                for value in string_values(arg, self.source)
                if len(value) > 2 and "/" not in value and value.upper() not in HTTP_VERBS
            ]
            if values:
                return VALUE_SEPARATOR.join(values)
        return None

    def http_url(self, node, ancestors: Ancestors) -> str | None:
        args = call_arguments(node)
        for arg in args[1:3]:
            arg = unwrap(arg)
            if arg is None:
                continue
            if arg.type == "object":
                url = self._url_from_object(arg)
                if url:
                    return url
            elif arg.type == "identifier":
                name = identifier_name(arg, self.source)
                declarator = find_declarator(name, ancestors, self.source, value_type="object")
                if declarator is not None:
                    url = self._url_from_object(unwrap(declarator.child_by_field_name("value")))
                    if url:
                        return url
        return None

    def _url_from_object(self, literal) -> str | None:
        value = object_property(literal, "url", self.source)
        if value is None:
            return None
        if value.type == "shorthand_property_identifier":
            return node_text(value, self.source)
        return self._url_from_expression(unwrap(value))

    def _url_from_expression(self, node) -> str | None:
        if node is None:
            return None
        literal = string_value(node, self.source)
        if literal is not None:
            return literal
        if node.type == "identifier":
            return identifier_name(node, self.source)
        if node.type == "member_expression":
            return property_name(node, self.source)
        if node.type == "binary_expression":
            return self._url_from_concatenation(node)
        if node.type == "template_string":
            parts: List[str] = []
            for child in node.named_children:
                if child.type == "string_fragment":
                    text = node_text(child, self.source).strip()
                    if text:
                        parts.append(text)
                elif child.type == "template_substitution":
                    inner = [part for part in child.named_children if part.type != "comment"]
                    value = self._url_from_expression(unwrap(inner[0])) if inner else None
                    if value:
                        parts.append(value)
            result = None
            for part in parts:
                if result is None or (not part.startswith("/") and not part.startswith("http")):
                    result = part
            return result
        return None

    def _url_from_concatenation(self, node) -> str | None:
        # Left-associative `+` chains are walked along the left spine.
        operands = []
        current = node
        while current is not None and current.type == "binary_expression":
            operator = current.child_by_field_name("operator")
            if operator is None or operator.type != "+":
                break
            operands.append(current.child_by_field_name("right"))
            current = unwrap(current.child_by_field_name("left"))
        if current is None or current.type == "binary_expression":
            value = None
        else:
            value = self._url_from_expression(current)
        for operand in reversed(operands):
            part = self._url_from_expression(unwrap(operand))
            if part and not part.startswith("/") and not part.startswith("http"):
                value = part
            else:
                value = value or part
        return value
