"""Agent manifest loading.

Manifests are JSON documents authored by agent developers. Several fields
accept more than one shape; every accepted shape is normalized here into one
dataclass so the rest of the orchestrator never inspects raw JSON. Shapes the
parser does not recognise raise `ManifestError` instead of being coerced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from ..errors import AmbiguousReferenceError, ManifestError, NotFoundError
from .naming import parse_reference
from .registry import PortBinding

logger = logging.getLogger("flotilla.manifest")

MANIFEST_FILENAME = "manifest.json"
TRUE_STRINGS = {"1", "true", "yes", "on"}


@dataclass
class EnvBinding:
    """One environment variable declared by a manifest or profile."""

    inside_name: str
    source_name: str
    required: bool = False
    default: Optional[str] = None
    has_default: bool = False


@dataclass
class ExposeBinding:
    """A value exported to the container, either literal or a `$` reference."""

    name: str
    value: Optional[str] = None
    ref: Optional[str] = None


@dataclass
class EnableDirective:
    reference: str
    alias: Optional[str] = None


@dataclass
class AgentManifest:
    path: Path
    repo: str
    name: str
    image: Optional[str] = None
    run: Optional[str] = None
    cli: Optional[str] = None
    install: Optional[str] = None
    enable: List[EnableDirective] = field(default_factory=list)
    env: List[EnvBinding] = field(default_factory=list)
    expose: List[ExposeBinding] = field(default_factory=list)
    ports: List[PortBinding] = field(default_factory=list)
    profiles: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def agent_dir(self) -> Path:
        return self.path.parent

    @property
    def qualified_name(self) -> str:
        return f"{self.repo}/{self.name}"


@dataclass
class ManifestLocation:
    repo: str
    short_name: str
    manifest_path: Path


@dataclass
class ResolvedEnv:
    values: Dict[str, str] = field(default_factory=dict)
    missing: List[EnvBinding] = field(default_factory=list)


def _to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if not normalized:
            return default
        return normalized in TRUE_STRINGS
    raise ManifestError(f"Expected a boolean-like value, got {type(value).__name__}.")


def _scalar_text(value: Any, where: str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ManifestError(f"{where} must be a string or number, got {type(value).__name__}.")


def parse_env(raw: Any, where: str = "env") -> List[EnvBinding]:
    """Normalize list-of-strings, list-of-objects and mapping env forms."""

    if raw is None:
        return []
    bindings: List[EnvBinding] = []
    if isinstance(raw, list):
        for idx, entry in enumerate(raw):
            label = f"{where}[{idx}]"
            if entry is None:
                continue
            if isinstance(entry, dict):
                inside = str(entry.get("name") or "").strip()
                if not inside:
                    raise ManifestError(f"{label} is missing 'name'.")
                source = str(entry.get("varName") or "").strip() or inside
                has_default = "value" in entry and entry["value"] is not None
                bindings.append(
                    EnvBinding(
                        inside_name=inside,
                        source_name=source,
                        required=_to_bool(entry.get("required")),
                        default=_scalar_text(entry["value"], label) if has_default else None,
                        has_default=has_default,
                    )
                )
                continue
            if isinstance(entry, str):
                text = entry.strip()
                if not text:
                    continue
                inside, sep, default = text.partition("=")
                inside = inside.strip()
                if not inside:
                    raise ManifestError(f"{label} has an empty variable name.")
                bindings.append(
                    EnvBinding(
                        inside_name=inside,
                        source_name=inside,
                        default=default if sep else None,
                        has_default=bool(sep),
                    )
                )
                continue
            raise ManifestError(f"{label} must be a string or an object, got {type(entry).__name__}.")
        return bindings

    if isinstance(raw, dict):
        for key, spec in raw.items():
            inside = str(key).strip()
            if not inside:
                continue
            label = f"{where}.{inside}"
            if isinstance(spec, dict):
                source = (
                    str(spec.get("varName") or "").strip()
                    or str(spec.get("name") or "").strip()
                    or inside
                )
                default_key = "default" if "default" in spec else ("value" if "value" in spec else None)
                has_default = default_key is not None and spec[default_key] is not None
                bindings.append(
                    EnvBinding(
                        inside_name=inside,
                        source_name=source,
                        required=_to_bool(spec.get("required")),
                        default=_scalar_text(spec[default_key], label) if has_default else None,
                        has_default=has_default,
                    )
                )
            elif spec is None:
                bindings.append(EnvBinding(inside_name=inside, source_name=inside))
            else:
                bindings.append(
                    EnvBinding(
                        inside_name=inside,
                        source_name=inside,
                        default=_scalar_text(spec, label),
                        has_default=True,
                    )
                )
        return bindings

    raise ManifestError(f"{where} must be a list or a mapping, got {type(raw).__name__}.")


def parse_expose(raw: Any) -> List[ExposeBinding]:
    if raw is None:
        return []
    exposed: List[ExposeBinding] = []
    if isinstance(raw, list):
        for idx, entry in enumerate(raw):
            if not isinstance(entry, dict) or not entry.get("name"):
                raise ManifestError(f"expose[{idx}] must be an object with a 'name'.")
            name = str(entry["name"])
            if "value" in entry:
                exposed.append(ExposeBinding(name=name, value=_scalar_text(entry["value"], f"expose[{idx}]")))
            elif entry.get("ref"):
                exposed.append(ExposeBinding(name=name, ref=str(entry["ref"]).lstrip("$")))
            else:
                raise ManifestError(f"expose[{idx}] needs either 'value' or 'ref'.")
        return exposed
    if isinstance(raw, dict):
        for name, value in raw.items():
            text = _scalar_text(value, f"expose.{name}")
            if text.startswith("$"):
                exposed.append(ExposeBinding(name=str(name), ref=text[1:]))
            else:
                exposed.append(ExposeBinding(name=str(name), value=text))
        return exposed
    raise ManifestError(f"expose must be a list or a mapping, got {type(raw).__name__}.")


def parse_ports(raw: Any) -> List[PortBinding]:
    """Accept `"7000"`, `"8080:7000"`, `"ip:8080:7000"`, ints and objects."""

    if raw is None:
        return []
    items = raw if isinstance(raw, list) else [raw]
    ports: List[PortBinding] = []
    for idx, item in enumerate(items):
        label = f"ports[{idx}]"
        if isinstance(item, bool):
            raise ManifestError(f"{label} must be a port, got a boolean.")
        if isinstance(item, int):
            ports.append(PortBinding(container_port=item, host_port=item))
            continue
        if isinstance(item, dict):
            try:
                container_port = int(item["containerPort"])
            except (KeyError, TypeError, ValueError) as exc:
                raise ManifestError(f"{label} needs an integer 'containerPort'.") from exc
            host_port = item.get("hostPort")
            ports.append(
                PortBinding(
                    container_port=container_port,
                    host_port=int(host_port) if host_port else None,
                    host_ip=item.get("hostIp") or None,
                )
            )
            continue
        if isinstance(item, str):
            text = item.strip()
            if not text:
                continue
            parts = text.split(":")
            try:
                if len(parts) == 1:
                    ports.append(PortBinding(container_port=int(parts[0]), host_port=int(parts[0])))
                elif len(parts) == 2:
                    ports.append(PortBinding(container_port=int(parts[1]), host_port=int(parts[0])))
                elif len(parts) == 3:
                    ports.append(
                        PortBinding(
                            container_port=int(parts[2]),
                            host_port=int(parts[1]),
                            host_ip=parts[0] or None,
                        )
                    )
                else:
                    raise ManifestError(f"{label} '{text}' has too many ':' separators.")
            except ValueError as exc:
                raise ManifestError(f"{label} '{text}' is not a valid port mapping.") from exc
            continue
        raise ManifestError(f"{label} has unsupported type {type(item).__name__}.")
    return ports


def parse_enable_directive(entry: Any) -> Optional[EnableDirective]:
    """Parse `"<ref>"` or `"<ref> as <alias>"`."""

    if entry is None:
        return None
    if not isinstance(entry, str):
        raise ManifestError(f"enable entry {entry!r} must be a string.")
    tokens = entry.split()
    if not tokens:
        return None
    alias = None
    lowered = [token.lower() for token in tokens]
    if "as" in lowered:
        index = lowered.index("as")
        if index + 1 >= len(tokens):
            raise ManifestError(f"enable entry '{entry}' is missing alias name after \"as\".")
        alias = tokens[index + 1]
        tokens = tokens[:index]
    reference = " ".join(tokens).strip()
    if not reference:
        raise ManifestError(f"enable entry '{entry}' is missing agent reference.")
    return EnableDirective(reference=reference, alias=alias)


def _optional_command(raw: Mapping[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, list):
        parts = [str(part).strip() for part in value if str(part).strip()]
        return " && ".join(parts) or None
    if isinstance(value, str):
        return value.strip() or None
    raise ManifestError(f"'{key}' must be a string or a list of strings.")


def load_manifest(path: Path, repo: Optional[str] = None) -> AgentManifest:
    manifest_path = Path(path)
    try:
        raw = json.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise NotFoundError(f"Manifest '{manifest_path}' not found.") from exc
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Manifest '{manifest_path}' is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ManifestError(f"Manifest '{manifest_path}' must contain a JSON object.")

    profiles = raw.get("profiles") or {}
    if not isinstance(profiles, dict):
        raise ManifestError(f"'profiles' in '{manifest_path}' must be a mapping.")

    enable_raw = raw.get("enable") or []
    if not isinstance(enable_raw, list):
        raise ManifestError(f"'enable' in '{manifest_path}' must be a list.")
    directives = [d for d in (parse_enable_directive(item) for item in enable_raw) if d]

    ports_raw = raw.get("ports")
    if ports_raw is None and isinstance(profiles.get("default"), dict):
        ports_raw = profiles["default"].get("ports")

    image = raw.get("container") or raw.get("image")
    return AgentManifest(
        path=manifest_path,
        repo=repo or manifest_path.parent.parent.name,
        name=manifest_path.parent.name,
        image=str(image) if image else None,
        run=_optional_command(raw, "agent") or _optional_command(raw, "run"),
        cli=_optional_command(raw, "cli"),
        install=_optional_command(raw, "install"),
        enable=directives,
        env=parse_env(raw.get("env")),
        expose=parse_expose(raw.get("expose")),
        ports=parse_ports(ports_raw),
        profiles=profiles,
        raw=raw,
    )


def find_manifest(repos_dir: Path, reference: str) -> ManifestLocation:
    """Locate `<repos_dir>/<repo>/<agent>/manifest.json` for a reference."""

    parsed = parse_reference(reference)
    if parsed.namespaced:
        candidate = repos_dir / parsed.repo / parsed.name / MANIFEST_FILENAME
        if not candidate.is_file():
            raise NotFoundError(f"No manifest for agent '{parsed}' under '{repos_dir}'.")
        return ManifestLocation(repo=parsed.repo, short_name=parsed.name, manifest_path=candidate)

    matches: List[ManifestLocation] = []
    if repos_dir.is_dir():
        for repo_dir in sorted(path for path in repos_dir.iterdir() if path.is_dir()):
            candidate = repo_dir / parsed.name / MANIFEST_FILENAME
            if candidate.is_file():
                matches.append(
                    ManifestLocation(repo=repo_dir.name, short_name=parsed.name, manifest_path=candidate)
                )
    if not matches:
        raise NotFoundError(f"Agent '{reference}' not found in any repository under '{repos_dir}'.")
    if len(matches) > 1:
        raise AmbiguousReferenceError(reference, [f"{m.repo}/{m.short_name}" for m in matches])
    return matches[0]


def resolve_variable(value: Optional[str], lookup: Callable[[str], Optional[str]]) -> str:
    """Follow `$NAME` references through `lookup`, stopping on cycles."""

    seen: Set[str] = set()
    current = value
    while isinstance(current, str) and current.startswith("$"):
        ref = current[1:]
        if not ref or ref in seen:
            return ""
        seen.add(ref)
        current = lookup(ref)
        if current is None:
            return ""
    return "" if current is None else str(current)


def resolve_env(bindings: List[EnvBinding], lookup: Callable[[str], Optional[str]]) -> ResolvedEnv:
    """Resolve bindings against a secrets lookup, then defaults."""

    resolved = ResolvedEnv()
    for binding in bindings:
        value = lookup(binding.source_name)
        if value is not None:
            value = resolve_variable(value, lookup)
        elif binding.has_default:
            value = binding.default
        if binding.required and not (value or "").strip():
            resolved.missing.append(binding)
        if value is not None:
            resolved.values[binding.inside_name] = value
    return resolved


def resolve_expose(exposed: List[ExposeBinding], lookup: Callable[[str], Optional[str]]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for binding in exposed:
        if binding.ref is not None:
            values[binding.name] = resolve_variable(f"${binding.ref}", lookup)
        else:
            values[binding.name] = binding.value or ""
    return values


__all__ = [
    "AgentManifest",
    "EnableDirective",
    "EnvBinding",
    "ExposeBinding",
    "MANIFEST_FILENAME",
    "ManifestLocation",
    "ResolvedEnv",
    "find_manifest",
    "load_manifest",
    "parse_enable_directive",
    "parse_env",
    "parse_expose",
    "parse_ports",
    "resolve_env",
    "resolve_expose",
    "resolve_variable",
]
