"""Configuration loading helpers for the analyzer."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
from typing import Any, Dict, Iterable


DEFAULT_NAMESPACE_PACKAGES: Dict[str, str] = {
    "@opus/agl-core": "agl-core",
    "@opus/agl-utils": "agl-utils",
    "@opus/agl-cache": "agl-cache",
    "@opus/agl-logger": "agl-logger",
}

DEFAULT_LIBRARY_PATTERNS = [
    r"[/\\]agl-utils[/\\]",
    r"[/\\]agl-core[/\\]",
    r"[/\\]agl-cache[/\\]",
    r"[/\\]agl-logger[/\\]",
    r"utils[/\\]wrapper[/\\]",
    r"shared[/\\].*[/\\](wrapper|request|http)",
]

DEFAULT_CONFIG: Dict[str, Any] = {
    "max_depth": 10,
    "extensions": [".js", ".ts"],
    "namespace_prefix": "@opus/agl-",
    "namespace_packages": dict(DEFAULT_NAMESPACE_PACKAGES),
    "library_patterns": list(DEFAULT_LIBRARY_PATTERNS),
    "expand_object_literals": True,
}

CONFIG_FILENAME = ".mwflowrc.json"


@dataclass(slots=True)
class AnalyzerConfig:
    """Flattened analyzer configuration for one workspace/middleware pair."""

    workspace_root: Path
    middleware_name: str
    max_depth: int = 10
    extensions: list[str] = field(default_factory=lambda: [".js", ".ts"])
    namespace_prefix: str = "@opus/agl-"
    namespace_packages: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_NAMESPACE_PACKAGES))
    library_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_LIBRARY_PATTERNS))
    expand_object_literals: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workspace_root": str(self.workspace_root),
            "middleware_name": self.middleware_name,
            "max_depth": self.max_depth,
            "extensions": list(self.extensions),
            "namespace_prefix": self.namespace_prefix,
            "namespace_packages": dict(self.namespace_packages),
            "library_patterns": list(self.library_patterns),
            "expand_object_literals": self.expand_object_literals,
        }


def _merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    merged = {**base}
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_json_file(path: Path) -> Dict[str, Any]:
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc


def _config_sources(workspace_root: Path, user_config: Path | None) -> Iterable[Path]:
    default_file = workspace_root / CONFIG_FILENAME
    if default_file.exists():
        yield default_file
    if user_config is not None:
        user_file = user_config
        if not user_file.is_absolute():
            user_file = workspace_root / user_file
        if user_file.exists():
            yield user_file


def load_config(
    workspace_root: Path,
    middleware_name: str,
    config_path: Path | None = None,
    overrides: Dict[str, Any] | None = None,
) -> AnalyzerConfig:
    """Load configuration from defaults, files, and CLI overrides."""

    root = Path(workspace_root).expanduser().resolve()
    config_data: Dict[str, Any] = {**DEFAULT_CONFIG}
    for path in _config_sources(root, config_path):
        config_data = _merge(config_data, _read_json_file(path))
    if overrides:
        config_data = _merge(config_data, overrides)
    return AnalyzerConfig(
        workspace_root=root,
        middleware_name=str(config_data.get("middleware_name") or middleware_name),
        max_depth=int(config_data.get("max_depth", DEFAULT_CONFIG["max_depth"])),
        extensions=list(config_data.get("extensions") or DEFAULT_CONFIG["extensions"]),
        namespace_prefix=str(config_data.get("namespace_prefix", DEFAULT_CONFIG["namespace_prefix"])),
        namespace_packages=dict(config_data.get("namespace_packages", {})),
        library_patterns=list(config_data.get("library_patterns", [])),
        expand_object_literals=bool(config_data.get("expand_object_literals", True)),
    )
