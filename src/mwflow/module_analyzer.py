"""Per-file analysis with caching, cycle breaking and depth limits."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Dict, List, Set, Tuple

from .ast_utils import ENTER, traverse
from .config import AnalyzerConfig
from .config_dependencies import ConfigDependencyAnalyzer
from .data_usage import MEMBER_TYPES, DataUsageAnalyzer
from .external_calls import ExternalCallAnalyzer
from .models import ModuleRecord
from .path_resolver import PathResolver, normalize_path
from .requires import ExportCollector, RequireAnalyzer, import_specifier, require_specifier
from .source import ParseError, SourceModule, load_source

logger = logging.getLogger(__name__)


class ModuleAnalyzer:
    """Analyzes a module and the local/namespaced modules it requires.

    The cache and the set of modules currently being analyzed live on the
    instance and are cleared by :meth:`reset` at the start of every endpoint
    analysis.
    """

    def __init__(self, config: AnalyzerConfig, resolver: PathResolver | None = None) -> None:
        self.config = config
        self.resolver = resolver or PathResolver(config)
        self._cache: Dict[Path, Tuple[ModuleRecord, float]] = {}
        self._active: Set[Path] = set()
        self._failed: Set[Path] = set()

    def reset(self) -> None:
        self._cache.clear()
        self._active.clear()
        self._failed.clear()

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> Dict[str, object]:
        return {"size": len(self._cache), "paths": sorted(str(path) for path in self._cache)}

    def cached_record(self, path: Path) -> ModuleRecord | None:
        """The full record analyzed for ``path`` in this run, if any."""
        cached = self._cache.get(Path(normalize_path(path)))
        return cached[0] if cached else None

    def analyze_middleware_entry(self, specifier: str) -> ModuleRecord | None:
        path = self.resolver.entry_path(specifier)
        if path is None:
            logger.debug("No entry file for middleware %s", specifier)
            return None
        return self.analyze(path, 0, None)

    def _shallow(self, path: Path, depth: int, parent: Path | None) -> ModuleRecord:
        return ModuleRecord(
            name=self.resolver.module_name(path),
            display_name=self.resolver.display_name(path),
            file_path=path,
            exists=True,
            depth=depth,
            parent_path=parent,
            is_shallow_reference=True,
        )

    def analyze(self, path: Path, depth: int = 0, parent: Path | None = None) -> ModuleRecord | None:
        path = Path(normalize_path(path))
        if not path.is_file():
            return None
        if path in self._active:
            logger.debug("Cycle detected at %s", path)
            return self._shallow(path, depth, parent)
        try:
            mtime = path.stat().st_mtime
        except OSError as exc:
            logger.warning("Cannot stat %s: %s", path, exc)
            return None
        cached = self._cache.get(path)
        if cached is not None and cached[1] == mtime:
            logger.debug("Cache hit for %s", path)
            return dataclasses.replace(
                cached[0],
                depth=depth,
                parent_path=parent,
                children=[],
                is_shallow_reference=True,
            )
        if depth >= self.config.max_depth:
            logger.debug("Depth limit %d reached at %s", self.config.max_depth, path)
            return self._shallow(path, depth, parent)
        if path in self._failed:
            return None

        self._active.add(path)
        try:
            try:
                module = load_source(path)
            except ParseError as exc:
                self._failed.add(path)
                logger.warning("%s", exc)
                return None
            except OSError as exc:
                self._failed.add(path)
                logger.warning("Cannot read %s: %s", path, exc)
                return None
            try:
                record = self._analyze_module(module, depth, parent)
            except Exception as exc:
                self._failed.add(path)
                logger.warning("Failed to analyze %s: %s", path, exc)
                return None
            for info in record.requires:
                if info.resolved_path is None or not (info.is_local or info.is_namespaced):
                    continue
                child = self.analyze(info.resolved_path, depth + 1, path)
                if child is not None:
                    record.children.append(child)
            self._cache[path] = (record, module.mtime)
            return record
        finally:
            self._active.discard(path)

    def _analyze_module(self, module: SourceModule, depth: int, parent: Path | None) -> ModuleRecord:
        is_library = self.resolver.is_library_path(module.path)
        data = DataUsageAnalyzer(module, is_library, self.config.expand_object_literals)
        calls = ExternalCallAnalyzer(module, is_library)
        configs = ConfigDependencyAnalyzer(module)
        requires = RequireAnalyzer(module, self.resolver)
        exports = ExportCollector(module)
        source = module.source

        for event, node, ancestors in traverse(module.root):
            if event != ENTER:
                continue
            kind = node.type
            if kind in MEMBER_TYPES:
                data.visit_member(node, ancestors)
            elif kind == "call_expression":
                specifier = require_specifier(node, source)
                if specifier is not None:
                    requires.visit_require(specifier, node, ancestors)
                    calls.register_require(specifier, ancestors)
                data.visit_call(node, ancestors)
                calls.visit_call(node, ancestors)
                configs.visit_call(node, ancestors)
            elif kind == "import_statement":
                specifier = import_specifier(node, source)
                if specifier is not None:
                    requires.visit_import(specifier, node)
                    calls.register_import(specifier, node)
            elif kind == "variable_declarator":
                calls.track_declarator(node, ancestors)
            elif kind == "assignment_expression":
                data.visit_assignment(node, ancestors)
                exports.visit_assignment(node, ancestors)
            elif kind == "unary_expression":
                operator = node.child_by_field_name("operator")
                if operator is not None and operator.type == "delete":
                    data.visit_delete(node, ancestors)
            elif kind == "export_statement":
                exports.visit_export(node)

        return ModuleRecord(
            name=self.resolver.module_name(module.path),
            display_name=self.resolver.display_name(module.path),
            file_path=module.path,
            exists=True,
            depth=depth,
            parent_path=parent,
            res_locals_reads=data.reads["res_locals"],
            res_locals_writes=data.writes["res_locals"],
            req_transaction_reads=data.reads["req_transaction"],
            req_transaction_writes=data.writes["req_transaction"],
            data_usages=data.data_usages,
            external_calls=calls.calls,
            config_deps=configs.dependencies,
            requires=requires.requires,
            children=[],
            exported_functions=exports.exported_functions,
            export_lines=exports.export_lines,
            main_function_line=exports.main_function_line,
        )

    def expand(self, record: ModuleRecord) -> List[ModuleRecord]:
        """Pre-order list of the full records reachable from ``record``.

        Shallow cache-hit references are swapped for the cached full record so
        their descendants are included; every path appears at most once.
        """
        ordered: List[ModuleRecord] = []
        visited: Set[Path] = set()
        stack = [record]
        while stack:
            current = stack.pop()
            if current.file_path in visited:
                continue
            if current.is_shallow_reference:
                current = self.cached_record(current.file_path) or current
            visited.add(current.file_path)
            ordered.append(current)
            stack.extend(reversed(current.children))
        return ordered
