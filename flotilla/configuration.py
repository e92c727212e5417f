"""Workspace-aware configuration loading for Flotilla.

Repository defaults live in ``config/*.yml`` next to the package; a
workspace may override any of them from ``<workspace>/.flotilla/config``.
Both layers are merged key by key and then checked against
``CONFIG_SCHEMA``: bad values are reported as diagnostics and replaced by
their defaults so the rest of the program always sees well-typed sections.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Tuple, Union

import yaml

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = REPO_ROOT / "config"
STATE_DIR_NAME = ".flotilla"
CONFIG_PATTERNS = ("*.yml", "*.yaml")

DiagnosticLevel = Literal["info", "warning", "error"]
ConfigurationStatus = Literal["ready", "missing", "invalid"]

DEFAULT_CORE_DEPENDENCIES: List[str] = [
    "achillesAgentLib",
    "mcp-sdk",
    "flexsearch",
]


@dataclass(frozen=True)
class Setting:
    """Expected type and default of one key inside a configuration section."""

    kind: Union[type, Tuple[type, ...]]
    default: Any = None
    item_type: Optional[type] = None

    def fresh_default(self) -> Any:
        value = self.default() if callable(self.default) else self.default
        return deepcopy(value)

    @property
    def type_name(self) -> str:
        if isinstance(self.kind, tuple):
            return ", ".join(kind.__name__ for kind in self.kind)
        return self.kind.__name__

    def accepts(self, value: Any) -> bool:
        # bool is an int subclass; only bool settings take booleans
        if isinstance(value, bool) and self.kind is not bool:
            return False
        return isinstance(value, self.kind)


Number = (int, float)

CONFIG_SCHEMA: Dict[str, Dict[str, Setting]] = {
    "runtime": {
        "name": Setting(str, "Flotilla"),
        "engine": Setting(str, ""),
        "command_timeout": Setting(Number, 60),
    },
    "logging": {
        "level": Setting(str, "INFO"),
        "structured": Setting(bool, True),
    },
    "ui": {
        "verbose": Setting(bool, True),
    },
    "workspace": {
        "state_dir": Setting(str, STATE_DIR_NAME),
        "agents_dir": Setting(str, "agents"),
        "code_dir": Setting(str, "code"),
        "skills_dir": Setting(str, "skills"),
        "support_library": Setting(str, ""),
        "lock_timeout": Setting(Number, 10.0),
    },
    "naming": {
        "prefix": Setting(str, ""),
    },
    "hooks": {
        "timeout": Setting(Number, 300),
        "install_timeout": Setting(Number, 600),
        "container_workdir": Setting(str, "/code"),
    },
    "dependencies": {
        "core": Setting(list, lambda: list(DEFAULT_CORE_DEPENDENCIES), item_type=str),
        "marker": Setting(str, "mcp-sdk"),
        "template": Setting(str, ""),
        "source_node_modules": Setting(str, ""),
        "install_command": Setting(str, "npm install"),
    },
    "profiles": {
        "default": Setting(str, "dev"),
    },
    "fleet": {
        "default_image": Setting(str, "node:18-alpine"),
        "default_port": Setting(int, 7000),
    },
    "router": {
        "port": Setting(int, 8080),
    },
}


@dataclass
class Diagnostic:
    """Represents a configuration validation or loading issue."""

    level: DiagnosticLevel
    message: str
    source: Optional[Path] = None


@dataclass
class ConfigurationBundle:
    """All configuration data Flotilla needs at runtime."""

    workspace_dir: Path
    status: ConfigurationStatus
    merged: Dict[str, Any] = field(default_factory=dict)
    repo_defaults: Dict[str, Any] = field(default_factory=dict)
    workspace_overrides: Dict[str, Any] = field(default_factory=dict)
    files_loaded: List[Path] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    log_path: Optional[Path] = None

    def section(self, name: str) -> Dict[str, Any]:
        raw = self.merged.get(name, {}) if self.merged else {}
        return raw if isinstance(raw, dict) else {}

    @property
    def has_errors(self) -> bool:
        return any(diag.level == "error" for diag in self.diagnostics)


def resolve_workspace_dir(
    env: Optional[Mapping[str, str]] = None,
    default: Optional[str] = None,
) -> Path:
    """Resolve the workspace path from the environment."""

    env_source = env or os.environ
    raw = env_source.get("FLOTILLA_WORKSPACE") or default or os.getcwd()
    return Path(raw).expanduser()


def load_runtime_configuration(workspace_dir: Optional[Path] = None) -> ConfigurationBundle:
    """Load configuration defaults and workspace overrides."""

    workspace = workspace_dir or resolve_workspace_dir()
    bundle = ConfigurationBundle(workspace_dir=workspace, status="ready")
    report = bundle.diagnostics.append

    bundle.repo_defaults, repo_files = _read_layer(DEFAULT_CONFIG_DIR, "repo defaults", report)
    bundle.files_loaded.extend(repo_files)

    if not workspace.exists():
        report(Diagnostic("error", f"Workspace directory '{workspace}' does not exist."))
        bundle.status = "missing"
    elif not workspace.is_dir():
        report(Diagnostic("error", f"Workspace path '{workspace}' is not a directory."))
        bundle.status = "invalid"
    else:
        overrides_dir = workspace / _state_dir_name(bundle.repo_defaults) / "config"
        bundle.workspace_overrides, override_files = _read_layer(
            overrides_dir,
            "workspace overrides",
            report,
            absent_level="info",
        )
        bundle.files_loaded.extend(override_files)

    bundle.merged = merge_config(bundle.repo_defaults, bundle.workspace_overrides)
    apply_schema(bundle.merged, report)

    if bundle.status == "ready" and bundle.has_errors:
        bundle.status = "invalid"
    return bundle


def _state_dir_name(defaults: Mapping[str, Any]) -> str:
    workspace = defaults.get("workspace") if isinstance(defaults, Mapping) else None
    if isinstance(workspace, Mapping):
        candidate = str(workspace.get("state_dir") or "").strip()
        if candidate:
            return candidate
    return STATE_DIR_NAME


def _read_layer(
    directory: Path,
    label: str,
    report: Callable[[Diagnostic], None],
    absent_level: DiagnosticLevel = "warning",
) -> Tuple[Dict[str, Any], List[Path]]:
    """Merge every YAML file of one configuration directory in name order."""

    if not directory.exists():
        message = f"No configuration directory found at '{directory}' ({label})."
        report(Diagnostic(absent_level, message, directory))
        return {}, []
    if not directory.is_dir():
        message = f"Configuration path '{directory}' ({label}) is not a directory."
        report(Diagnostic("error", message, directory))
        return {}, []

    layer: Dict[str, Any] = {}
    used: List[Path] = []
    for pattern in CONFIG_PATTERNS:
        for path in sorted(directory.glob(pattern)):
            document = _read_yaml_mapping(path, report)
            if document is None:
                continue
            layer = merge_config(layer, document)
            used.append(path)

    if not used:
        report(Diagnostic("info", f"No YAML files found under '{directory}' ({label}).", directory))
    return layer, used


def _read_yaml_mapping(path: Path, report: Callable[[Diagnostic], None]) -> Optional[Dict[str, Any]]:
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        report(Diagnostic("error", f"Failed to parse '{path}': {exc}", path))
        return None
    except OSError as exc:
        report(Diagnostic("error", f"Unable to read '{path}': {exc}", path))
        return None
    if document is None:
        return {}
    if not isinstance(document, Mapping):
        report(Diagnostic("warning", f"Ignoring '{path}' because it does not contain a mapping.", path))
        return None
    return dict(document)


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of `base` with `override` merged in; nested mappings merge key by key."""

    merged = deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def apply_schema(config: Dict[str, Any], report: Callable[[Diagnostic], None]) -> None:
    """Fill defaults and replace ill-typed values in place, reporting each problem."""

    for key in config:
        if key not in CONFIG_SCHEMA:
            report(Diagnostic("warning", f"Unknown configuration key 'config.{key}'."))

    for name, settings in CONFIG_SCHEMA.items():
        path = f"config.{name}"
        section = config.get(name)
        if section is None:
            section = {}
        elif not isinstance(section, dict):
            report(Diagnostic("error", f"'{path}' must be a mapping."))
            section = {}
        config[name] = section

        for key in section:
            if key not in settings:
                report(Diagnostic("warning", f"Unknown configuration key '{path}.{key}'."))
        for key, setting in settings.items():
            if key not in section:
                section[key] = setting.fresh_default()
            else:
                section[key] = _checked_value(f"{path}.{key}", section[key], setting, report)


def _checked_value(path: str, value: Any, setting: Setting, report: Callable[[Diagnostic], None]) -> Any:
    if not setting.accepts(value):
        report(Diagnostic("error", f"'{path}' must be of type {setting.type_name}."))
        return setting.fresh_default()
    if setting.item_type is None:
        return value

    kept = []
    for index, item in enumerate(value):
        if isinstance(item, setting.item_type):
            kept.append(item)
        else:
            expected = setting.item_type.__name__
            report(Diagnostic("error", f"'{path}[{index}]' must be of type {expected}."))
    return kept


__all__ = [
    "CONFIG_SCHEMA",
    "ConfigurationBundle",
    "ConfigurationStatus",
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CORE_DEPENDENCIES",
    "Diagnostic",
    "STATE_DIR_NAME",
    "Setting",
    "apply_schema",
    "load_runtime_configuration",
    "merge_config",
    "resolve_workspace_dir",
]
