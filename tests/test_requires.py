from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from mwflow.config import AnalyzerConfig
from mwflow.module_analyzer import ModuleAnalyzer


class RequireAndExportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.config = AnalyzerConfig(workspace_root=self.root, middleware_name="content")
        self.middleware = self.root / "agl-content-middleware"

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _write(self, relative: str, contents: str) -> Path:
        path = self.middleware / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(contents))
        return path

    def _analyze(self, path: Path):
        record = ModuleAnalyzer(self.config).analyze(path)
        self.assertIsNotNone(record)
        return record

    def test_require_bindings_and_resolution(self) -> None:
        helper = self._write("lib/helper.js", "module.exports = {};\n")
        entry = self._write(
            "handler.js",
            """
            const helper = require('./lib/helper');
            const { a, b: renamed } = require('./lib/helper');
            const _ = require('lodash');
            require('@opus/agl-logger');
            import store, { load as loadStore } from './lib/store';
            """,
        )
        record = self._analyze(entry)
        infos = {info.specifier: info for info in record.requires}
        self.assertEqual(list(infos), ["./lib/helper", "lodash", "@opus/agl-logger", "./lib/store"])
        self.assertEqual(infos["./lib/helper"].variable_name, "helper")
        self.assertEqual(infos["./lib/helper"].resolved_path, helper)
        self.assertTrue(infos["./lib/helper"].is_local)
        self.assertEqual(infos["./lib/helper"].line, 2)
        self.assertFalse(infos["lodash"].is_local)
        self.assertFalse(infos["lodash"].is_namespaced)
        self.assertIsNone(infos["lodash"].resolved_path)
        self.assertTrue(infos["@opus/agl-logger"].is_namespaced)
        self.assertEqual(infos["@opus/agl-logger"].variable_name, "")
        self.assertEqual(infos["./lib/store"].variable_name, "store, loadStore")
        self.assertIsNone(infos["./lib/store"].resolved_path)

    def test_destructured_require_names(self) -> None:
        self._write("lib/helper.js", "module.exports = {};\n")
        entry = self._write("handler.js", "const { a, b: renamed } = require('./lib/helper');\n")
        record = self._analyze(entry)
        self.assertEqual(record.requires[0].variable_name, "a, renamed")

    def test_commonjs_exports_and_main_line(self) -> None:
        entry = self._write(
            "handler.js",
            """
            function helper() {}
            module.exports = { helper, panic: function () {} };
            module.exports.run = function (req, res, next) { next(); };
            exports.extra = 1;
            """,
        )
        record = self._analyze(entry)
        self.assertEqual(record.exported_functions, ["helper", "panic", "run", "extra"])
        self.assertEqual(record.export_lines, {"helper": 3, "panic": 3, "run": 4, "extra": 5})
        self.assertEqual(record.main_function_line, 4)

    def test_es_exports(self) -> None:
        entry = self._write(
            "handler.js",
            """
            export function execute(req, res) {}
            export const panic = () => {};
            """,
        )
        record = self._analyze(entry)
        self.assertEqual(record.exported_functions, ["execute", "panic"])
        self.assertEqual(record.main_function_line, 2)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
