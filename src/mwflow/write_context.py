"""Read/write classification for member accesses."""

from __future__ import annotations

from dataclasses import dataclass

from .ast_utils import Ancestors, call_arguments, contains, identifier_name, property_name, unwrap

MUTATION_METHODS = frozenset(
    {
        "push",
        "pop",
        "shift",
        "unshift",
        "splice",
        "sort",
        "reverse",
        "fill",
        "copyWithin",
        "set",
        "add",
        "delete",
        "clear",
    }
)

ASSIGNMENT_TYPES = {"assignment_expression", "augmented_assignment_expression"}


@dataclass(frozen=True, slots=True)
class WriteContext:
    is_assignment_target: bool = False
    is_delete_target: bool = False
    is_mutation_call: bool = False
    is_merge_target: bool = False

    @property
    def is_write(self) -> bool:
        return (
            self.is_assignment_target
            or self.is_delete_target
            or self.is_mutation_call
            or self.is_merge_target
        )


READ = WriteContext()


def _is_delete(node) -> bool:
    operator = node.child_by_field_name("operator")
    return operator is not None and operator.type == "delete"


def is_object_assign(call, source: bytes) -> bool:
    callee = unwrap(call.child_by_field_name("function"))
    if callee is None or callee.type != "member_expression":
        return False
    target = callee.child_by_field_name("object")
    return identifier_name(target, source) == "Object" and property_name(callee, source) == "assign"


def classify_write_context(node, ancestors: Ancestors, source: bytes) -> WriteContext:
    """Inspect ancestors innermost-first; the first matching rule decides."""
    for ancestor in reversed(ancestors):
        kind = ancestor.type
        if kind in ASSIGNMENT_TYPES:
            if contains(ancestor.child_by_field_name("left"), node):
                return WriteContext(is_assignment_target=True)
        elif kind == "update_expression":
            return WriteContext(is_assignment_target=True)
        elif kind == "unary_expression" and _is_delete(ancestor):
            return WriteContext(is_delete_target=True)
        elif kind == "call_expression":
            callee = unwrap(ancestor.child_by_field_name("function"))
            if callee is not None and callee.type in {"member_expression", "subscript_expression"}:
                method = property_name(callee, source)
                if method in MUTATION_METHODS and contains(callee.child_by_field_name("object"), node):
                    return WriteContext(is_mutation_call=True)
            if is_object_assign(ancestor, source):
                args = call_arguments(ancestor)
                if args and contains(args[0], node):
                    return WriteContext(is_merge_target=True)
    return READ
