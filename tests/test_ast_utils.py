from __future__ import annotations

from pathlib import Path
import unittest

from mwflow.ast_utils import ENTER, FUNCTION_TYPES, LEAVE, enclosing_scopes, node_text, traverse
from mwflow.scope import resolve_variable, string_values
from mwflow.source import ParseError, parse_source


def _parse(code: str):
    return parse_source(Path("sample.js"), code.encode("utf-8"))


def _find(module, node_type: str, text: str | None = None):
    for event, node, ancestors in traverse(module.root):
        if event != ENTER or node.type != node_type:
            continue
        if text is None or node_text(node, module.source) == text:
            return node, ancestors
    raise AssertionError(f"{node_type} {text!r} not found")


class TraverseTests(unittest.TestCase):
    def test_enter_and_leave_are_balanced(self) -> None:
        module = _parse("const a = 1;\nfunction f(x) { return x + a; }\n")
        depth = 0
        entered = 0
        for event, node, ancestors in traverse(module.root):
            if event == ENTER:
                self.assertEqual(len(ancestors), depth)
                depth += 1
                entered += 1
            else:
                self.assertEqual(event, LEAVE)
                depth -= 1
                self.assertEqual(len(ancestors), depth)
        self.assertEqual(depth, 0)
        self.assertGreater(entered, 5)

    def test_ancestors_are_outermost_first(self) -> None:
        module = _parse("function outer() { const value = 'x'; }\n")
        _, ancestors = _find(module, "string", "'x'")
        self.assertEqual(ancestors[0].type, "program")
        self.assertEqual(ancestors[-1].type, "variable_declarator")

    def test_prune_skips_nested_functions(self) -> None:
        module = _parse("const a = 1;\nfunction f() { const b = 2; }\nconst c = () => { const d = 3; };\n")
        names = [
            node_text(node.child_by_field_name("name"), module.source)
            for event, node, _ in traverse(module.root, prune=lambda n, _: n.type in FUNCTION_TYPES)
            if event == ENTER and node.type == "variable_declarator"
        ]
        self.assertEqual(names, ["a", "c"])

    def test_prune_never_applies_to_root(self) -> None:
        module = _parse("function f() { const inner = 1; }\n")
        function, _ = _find(module, "function_declaration")
        seen = [
            node.type
            for event, node, _ in traverse(function, prune=lambda n, _: n.type in FUNCTION_TYPES)
            if event == ENTER
        ]
        self.assertIn("variable_declarator", seen)

    def test_shebang_and_top_level_return_parse(self) -> None:
        module = _parse("#!/usr/bin/env node\nconst a = 1;\nreturn;\n")
        self.assertEqual(module.root.type, "program")

    def test_syntax_error_raises_parse_error(self) -> None:
        with self.assertRaises(ParseError):
            _parse("const = ;\nfunction (\n")


class ScopeTests(unittest.TestCase):
    def test_string_values_cover_literal_conditional_logical_and_array(self) -> None:
        module = _parse(
            "const a = 'one';\n"
            "const b = flag ? 'T_A' : 'T_B';\n"
            "const c = primary || 'fallback';\n"
            "const d = ['x', 'y', 'z'];\n"
            "const e = compute();\n"
            "const f = (cond ? 'p' : ('q'));\n"
        )
        values = {}
        for event, node, _ in traverse(module.root):
            if event == ENTER and node.type == "variable_declarator":
                name = node_text(node.child_by_field_name("name"), module.source)
                values[name] = string_values(node.child_by_field_name("value"), module.source)
        self.assertEqual(values["a"], ["one"])
        self.assertEqual(values["b"], ["T_A", "T_B"])
        self.assertEqual(values["c"], ["fallback"])
        self.assertEqual(values["d"], ["x,y,z"])
        self.assertEqual(values["e"], [])
        self.assertEqual(values["f"], ["p", "q"])

    def test_string_values_of_long_logical_chain(self) -> None:
        chain = " || ".join(f"'v{i}'" for i in range(1500))
        module = _parse(f"const picked = {chain};\n")
        node, _ = _find(module, "variable_declarator")
        values = string_values(node.child_by_field_name("value"), module.source)
        self.assertEqual(len(values), 1500)
        self.assertEqual(values[:2], ["v0", "v1"])
        self.assertEqual(values[-1], "v1499")

    def test_enclosing_scopes_innermost_first(self) -> None:
        module = _parse("function outer() { const inner = () => { use(target); }; }\n")
        _, ancestors = _find(module, "identifier", "target")
        scopes = [scope.type for scope in enclosing_scopes(ancestors)]
        self.assertEqual(scopes, ["arrow_function", "function_declaration", "program"])

    def test_resolve_variable_prefers_innermost_scope(self) -> None:
        module = _parse(
            "const template = 'GLOBAL';\n"
            "function handler(req) {\n"
            "  const template = req.flag ? 'LOCAL_A' : 'LOCAL_B';\n"
            "  send(template);\n"
            "}\n"
        )
        _, ancestors = _find(module, "call_expression", "send(template)")
        self.assertEqual(resolve_variable("template", ancestors, module.source), ["LOCAL_A", "LOCAL_B"])

    def test_resolve_variable_ignores_sibling_functions(self) -> None:
        module = _parse(
            "function other() { const name = 'HIDDEN'; }\n"
            "function handler() { send(name); }\n"
        )
        _, ancestors = _find(module, "call_expression", "send(name)")
        self.assertEqual(resolve_variable("name", ancestors, module.source), [])

    def test_resolve_variable_falls_back_to_outer_scope(self) -> None:
        module = _parse(
            "const name = 'OUTER';\n"
            "function handler() { const other = 1; send(name); }\n"
        )
        _, ancestors = _find(module, "call_expression", "send(name)")
        self.assertEqual(resolve_variable("name", ancestors, module.source), ["OUTER"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
