"""Module specifier resolution for middleware packages."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import re
from typing import Iterable, List

from .config import AnalyzerConfig

logger = logging.getLogger(__name__)

_DRIVE_PREFIX = re.compile(r"^/([a-zA-Z])/")


def normalize_path(value: str | Path) -> str:
    """Turn a Git-Bash style ``/c/...`` path into ``C:/...``."""
    text = str(value)
    return _DRIVE_PREFIX.sub(lambda match: f"{match.group(1).upper()}:/", text, count=1)


def is_local_specifier(specifier: str) -> bool:
    return specifier.startswith("./") or specifier.startswith("../")


def short_path(path: str | Path, parts: int = 3) -> str:
    pieces = str(path).replace("\\", "/").split("/")
    return "/".join(pieces[-parts:])


class PathResolver:
    """Resolves relative and namespaced specifiers to files on disk."""

    def __init__(self, config: AnalyzerConfig) -> None:
        self.config = config
        self.workspace_root = Path(normalize_path(config.workspace_root))
        self.middleware_root = self.workspace_root / f"agl-{config.middleware_name}-middleware"
        self._library_patterns = [re.compile(pattern, re.IGNORECASE) for pattern in config.library_patterns]

    def is_namespaced(self, specifier: str) -> bool:
        return any(
            specifier == prefix or specifier.startswith(prefix + "/")
            for prefix in self.config.namespace_packages
        ) or specifier.startswith(self.config.namespace_prefix)

    def is_library_path(self, path: str | Path) -> bool:
        text = str(path)
        return any(pattern.search(text) for pattern in self._library_patterns)

    def candidates(self, base: Path) -> List[Path]:
        paths = [Path(f"{base}{ext}") for ext in self.config.extensions]
        paths.extend(base / f"index{ext}" for ext in self.config.extensions)
        return paths

    def _has_known_extension(self, specifier: str) -> bool:
        return any(specifier.endswith(ext) for ext in self.config.extensions)

    def _first_existing(self, paths: Iterable[Path]) -> Path | None:
        for path in paths:
            if path.is_file():
                return path
        return None

    def _locate(self, base: Path, specifier: str) -> Path | None:
        if self._has_known_extension(specifier):
            return base if base.is_file() else None
        return self._first_existing(self.candidates(base))

    def resolve_local(self, specifier: str, current_dir: Path) -> Path | None:
        base = Path(os.path.normpath(current_dir / specifier))
        return self._locate(base, specifier)

    def package_root(self, package: str) -> Path | None:
        for root in (
            self.workspace_root / package,
            self.middleware_root / "node_modules" / "@opus" / package,
        ):
            if root.exists():
                return root
        return None

    def resolve_namespaced(self, specifier: str) -> Path | None:
        packages = self.config.namespace_packages
        if specifier in packages:
            root = self.package_root(packages[specifier])
            if root is None:
                return None
            return self._first_existing(root / f"index{ext}" for ext in self.config.extensions)
        for prefix, package in packages.items():
            if not specifier.startswith(prefix + "/"):
                continue
            root = self.package_root(package)
            if root is None:
                continue
            remainder = specifier[len(prefix) + 1 :]
            resolved = self._locate(Path(os.path.normpath(root / remainder)), remainder)
            if resolved is not None:
                return resolved
        return None

    def resolve(self, specifier: str, current_file: Path) -> Path | None:
        if is_local_specifier(specifier):
            resolved = self.resolve_local(specifier, current_file.parent)
        elif self.is_namespaced(specifier):
            resolved = self.resolve_namespaced(specifier)
        else:
            return None
        if resolved is None:
            logger.debug("Unresolved specifier %s from %s", specifier, current_file)
        return resolved

    def entry_path(self, specifier: str) -> Path | None:
        """Locate a middleware entry file below the middleware root."""
        base = Path(os.path.normpath(self.middleware_root / specifier))
        return self._locate(base, specifier)

    def module_name(self, path: Path) -> str:
        try:
            relative = Path(path).relative_to(self.middleware_root).as_posix()
        except ValueError:
            relative = Path(path).as_posix()
        for ext in self.config.extensions:
            if relative.endswith(ext):
                return relative[: -len(ext)]
        return relative

    def display_name(self, path: Path) -> str:
        path = Path(path)
        if path.stem == "index":
            return path.parent.name
        return path.stem
