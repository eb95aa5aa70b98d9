from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from mwflow.config import AnalyzerConfig
from mwflow.data_usage import strip_native_segments
from mwflow.module_analyzer import ModuleAnalyzer


class DataUsageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.config = AnalyzerConfig(workspace_root=self.root, middleware_name="content")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _analyze(self, contents: str, **options):
        path = self.root / "agl-content-middleware" / "handler.js"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(contents))
        for key, value in options.items():
            setattr(self.config, key, value)
        record = ModuleAnalyzer(self.config).analyze(path)
        self.assertIsNotNone(record)
        return record

    def test_reads_and_writes_of_shared_state(self) -> None:
        record = self._analyze(
            """
            module.exports.run = function (req, res, next) {
              const user = res.locals.user;
              response.locals.profile.name = user.name;
              res.locals['session-id'] = req.cookies.sid;
              next();
            };
            """
        )
        self.assertEqual([usage.property for usage in record.res_locals_reads], ["user"])
        self.assertEqual(
            [usage.property for usage in record.res_locals_writes],
            ["profile.name", "session-id"],
        )
        write = record.res_locals_writes[0]
        self.assertEqual(write.kind, "write")
        self.assertEqual(write.line, 4)
        self.assertEqual(write.snippet, "response.locals.profile.name = user.name;")
        self.assertFalse(write.is_library)

    def test_mutation_method_reports_receiver_as_single_write(self) -> None:
        record = self._analyze("res.locals.items.push(1);\n")
        self.assertEqual([usage.property for usage in record.res_locals_writes], ["items"])
        self.assertEqual(record.res_locals_reads, [])

    def test_native_members_are_stripped(self) -> None:
        record = self._analyze(
            """
            if (res.locals.list.length > 0) {
              res.locals.list.map((item) => item.id);
              res.locals.assets.filter(Boolean).forEach(use);
            }
            const n = res.locals.length;
            """
        )
        props = [usage.property for usage in record.res_locals_reads]
        self.assertEqual(props, ["list", "list", "assets"])
        for usage in record.res_locals_reads:
            self.assertNotIn(usage.property.split(".")[-1], {"length", "map", "filter"})

    def test_duplicates_on_same_line_are_collapsed(self) -> None:
        record = self._analyze("use(res.locals.a, res.locals.a);\nuse(res.locals.a);\n")
        self.assertEqual([(usage.property, usage.line) for usage in record.res_locals_reads], [("a", 1), ("a", 2)])

    def test_transaction_bag_including_direct_access(self) -> None:
        record = self._analyze(
            """
            req.transaction.userId = 42;
            const tx = request.transaction;
            log(req.transaction.userId);
            delete req.transaction.tmp;
            """
        )
        self.assertEqual(
            [usage.property for usage in record.req_transaction_writes],
            ["userId", "tmp"],
        )
        self.assertEqual(
            [usage.property for usage in record.req_transaction_reads],
            ["(direct)", "userId"],
        )

    def test_request_facets(self) -> None:
        record = self._analyze(
            """
            const id = req.query.id;
            const name = request.body.user.name;
            const slug = req.params.slug;
            const agent = req.headers['user-agent'];
            const sid = req.cookies.sid;
            const lang = req.header('accept-language');
            """
        )
        usages = [(usage.source, usage.property, usage.kind) for usage in record.data_usages]
        self.assertEqual(
            usages,
            [
                ("req.query", "id", "read"),
                ("req.body", "user.name", "read"),
                ("req.params", "slug", "read"),
                ("req.headers", "user-agent", "read"),
                ("req.cookies", "sid", "read"),
                ("req.headers", "accept-language", "read"),
            ],
        )

    def test_response_facets(self) -> None:
        record = self._analyze(
            """
            res.cookie('token', value);
            res.setHeader('Cache-Control', 'no-cache');
            res.set('X-Trace', id);
            response.header('X-Other', id);
            res.headers.etag = tag;
            res.status(200);
            """
        )
        usages = [(usage.source, usage.property, usage.kind) for usage in record.data_usages]
        self.assertEqual(
            usages,
            [
                ("res.cookie", "token", "write"),
                ("res.header", "Cache-Control", "write"),
                ("res.header", "X-Trace", "write"),
                ("res.header", "X-Other", "write"),
                ("res.header", "etag", "write"),
            ],
        )

    def test_delete_of_shared_state(self) -> None:
        record = self._analyze("delete res.locals.cache.entry;\n")
        self.assertEqual([usage.property for usage in record.res_locals_writes], ["cache.entry"])

    def test_object_literal_initializers_expand_keys(self) -> None:
        record = self._analyze(
            """
            res.locals.seed = { a: 1, 'b': 2, c };
            Object.assign(res.locals, { d: 1 }, other);
            Object.assign(res.locals.meta, { e: 1 });
            """
        )
        props = [usage.property for usage in record.res_locals_writes]
        self.assertEqual(props, ["seed", "seed.a", "seed.b", "seed.c", "d", "meta", "meta.e"])

    def test_object_literal_expansion_can_be_disabled(self) -> None:
        record = self._analyze("res.locals.seed = { a: 1 };\n", expand_object_literals=False)
        self.assertEqual([usage.property for usage in record.res_locals_writes], ["seed"])

    def test_line_numbers_ignore_non_newline_separators(self) -> None:
        record = self._analyze("// page\x0cbreak \x1c group\nres.locals.x = 1;\n")
        write = record.res_locals_writes[0]
        self.assertEqual(write.line, 2)
        self.assertEqual(write.snippet, "res.locals.x = 1;")

    def test_strip_native_segments(self) -> None:
        self.assertEqual(strip_native_segments("items.length"), "items")
        self.assertEqual(strip_native_segments("a.b.keys.length"), "a.b")
        self.assertIsNone(strip_native_segments("length"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
