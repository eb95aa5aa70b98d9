from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from mwflow.config import AnalyzerConfig
from mwflow.external_calls import short_method_name, template_index, wrapper_family
from mwflow.module_analyzer import ModuleAnalyzer


class WrapperTableTests(unittest.TestCase):
    def test_wrapper_family_from_specifier(self) -> None:
        self.assertEqual(wrapper_family("../utils/wrapper/request/dcq"), "dcq")
        self.assertEqual(wrapper_family("./wrapper/request/avs.js"), "avs")
        self.assertEqual(wrapper_family("./wrapper/request/es"), "elasticsearch")
        self.assertEqual(wrapper_family("@opus/agl-utils"), "http")
        self.assertIsNone(wrapper_family("lodash"))
        self.assertIsNone(wrapper_family("./wrapper/request/dcq/helpers"))

    def test_template_index_first_match_wins(self) -> None:
        self.assertEqual(template_index("callDCQ"), 6)
        self.assertEqual(template_index("callAVSB2CWithFullResponse"), 2)
        self.assertEqual(template_index("callESTemplate"), 3)
        self.assertEqual(template_index("callGetEpg"), -1)
        self.assertIsNone(template_index("callSomethingNew"))
        self.assertIsNone(template_index("fetchData"))

    def test_short_method_name(self) -> None:
        self.assertEqual(short_method_name("callDsf"), "Dsf")
        self.assertEqual(short_method_name("httpClient"), "httpClient")


class ExternalCallTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.config = AnalyzerConfig(workspace_root=self.root, middleware_name="content")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _analyze(self, contents: str):
        path = self.root / "agl-content-middleware" / "handler.js"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(contents))
        record = ModuleAnalyzer(self.config).analyze(path)
        self.assertIsNotNone(record)
        return [(call.family, call.template) for call in record.external_calls]

    def test_destructured_wrapper_import(self) -> None:
        calls = self._analyze(
            """
            const { callX, callY } = require('./wrapper/request/dcq');
            callX('T1');
            obj.callY(1, 2, 3, 4, 'T2');
            """
        )
        self.assertEqual(calls, [("dcq", "X"), ("dcq", "T2")])

    def test_conditional_template_is_pipe_joined(self) -> None:
        calls = self._analyze(
            """
            const { callESTemplate } = require('../wrapper/request/es');
            callESTemplate(req, res, cond ? 'T_A' : 'T_B');
            """
        )
        self.assertEqual(calls, [("elasticsearch", "T_A | T_B")])

    def test_whole_module_binding_and_table_index(self) -> None:
        calls = self._analyze(
            """
            const dcq = require('./wrapper/request/dcq.js');
            dcq.callDCQ(req, res, a, b, c, d, 'GetAssetDetail');
            dcq.callAVSDCQSearch(req, res, 'IgnoredTemplate');
            """
        )
        self.assertEqual(calls, [("dcq", "GetAssetDetail"), ("dcq", "AVSDCQSearch")])

    def test_renamed_destructured_binding(self) -> None:
        calls = self._analyze(
            """
            const { callAVSB2C: avsCall } = require('./wrapper/request/avs');
            avsCall(req, res, 'ProfileTemplate');
            """
        )
        self.assertEqual(calls, [("avs", "ProfileTemplate")])

    def test_identifier_template_resolved_in_scope(self) -> None:
        calls = self._analyze(
            """
            const wrapper = require('./wrapper/request/pinboard');
            function load(req, res) {
              const template = req.query.kids ? 'KidsBoard' : 'MainBoard';
              return wrapper.callPinboard(req, res, options, template);
            }
            function unresolved(req, res) {
              return wrapper.callPinboard(req, res, options, dynamicName);
            }
            """
        )
        self.assertEqual(calls, [("pinboard", "KidsBoard | MainBoard"), ("pinboard", "dynamicName")])

    def test_local_alias_of_wrapper_method(self) -> None:
        calls = self._analyze(
            """
            const avs = require('./wrapper/request/avs');
            const caller = useB2B ? avs.callAVSB2B : avs.callAVSB2C;
            caller(req, res, 'Entitlements');
            """
        )
        self.assertEqual(calls, [("avs", "Entitlements")])

    def test_es_module_import(self) -> None:
        calls = self._analyze(
            """
            import { callDsf } from './wrapper/request/dsf';
            callDsf(req, res, 'DsfTemplate');
            """
        )
        self.assertEqual(calls, [("dsf", "DsfTemplate")])

    def test_http_client_url_extraction(self) -> None:
        calls = self._analyze(
            """
            const aglUtils = require('@opus/agl-utils');
            aglUtils.httpClient(req, { url: 'https://svc/api/v1/items', method: 'GET' });
            aglUtils.v2.httpClient(req, { url: config.baseUrl + '/items' });
            forwardRequest(req, { url: baseUrl + itemsPath });
            function send(req) {
              const options = { url: endpointUrl, method: 'POST' };
              return httpClient(req, options);
            }
            httpClient(req, {});
            """
        )
        self.assertEqual(
            calls,
            [
                ("http", "https://svc/api/v1/items"),
                ("http", "baseUrl"),
                ("http", "itemsPath"),
                ("http", "endpointUrl"),
                ("http", "httpClient"),
            ],
        )

    def test_unlisted_wrapper_uses_fifth_argument_only_when_constant(self) -> None:
        calls = self._analyze(
            """
            const { callFoo, callBar } = require('./wrapper/request/dcq');
            callFoo(req, res, next, opts, 'FooTemplate');
            callBar(req, res, next, opts, templateName);
            """
        )
        self.assertEqual(calls, [("dcq", "FooTemplate"), ("dcq", "Bar")])

    def test_long_url_concatenation(self) -> None:
        parts = " + ".join(f"part{i}" for i in range(1500))
        calls = self._analyze(f"httpClient(req, {{ url: base + '/items' + {parts} }});\n")
        self.assertEqual(calls, [("http", "part1499")])

    def test_long_logical_chain_in_declarator(self) -> None:
        fallbacks = " || ".join(f"alias{i}" for i in range(1500))
        calls = self._analyze(
            "const dcq = require('./wrapper/request/dcq');\n"
            f"const pick = {fallbacks} || dcq.callDsf;\n"
            "pick(req, res, 'Chained');\n"
        )
        self.assertEqual(calls, [("dcq", "Chained")])

    def test_nested_http_client_namespace(self) -> None:
        calls = self._analyze(
            """
            const aglUtils = require('@opus/agl-utils');
            aglUtils.v2.httpClient(req, { url: 'https://svc/api/v2/items' });
            """
        )
        self.assertEqual(calls, [("http", "https://svc/api/v2/items")])

    def test_unregistered_calls_are_ignored(self) -> None:
        calls = self._analyze(
            """
            const helpers = require('./helpers');
            helpers.callDCQ(req, res, 'Nope');
            callAVS(req, res);
            """
        )
        self.assertEqual(calls, [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
