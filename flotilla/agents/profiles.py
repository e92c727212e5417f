"""Deployment profiles declared in agent manifests."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..errors import ManifestError, ValidationError
from .manifest import AgentManifest, EnvBinding, parse_env, parse_ports
from .registry import PortBinding

logger = logging.getLogger("flotilla.profiles")

VALID_PROFILES = ("default", "dev", "qa", "prod")
HOOK_NAMES = (
    "preinstall",
    "hosthook_aftercreation",
    "install",
    "postinstall",
    "hosthook_postinstall",
)
HOST_HOOKS = ("preinstall", "hosthook_aftercreation", "hosthook_postinstall")
DEFAULT_ACTIVE_PROFILE = "dev"
PROFILE_FILENAME = "profile"

_PROFILE_ENVIRONMENTS = {
    "default": "development",
    "dev": "development",
    "qa": "qa",
    "prod": "production",
}


@dataclass
class ProfileConfig:
    """Merged `default` + active profile for one agent."""

    name: str
    hooks: Dict[str, str] = field(default_factory=dict)
    secrets: List[str] = field(default_factory=list)
    env: List[EnvBinding] = field(default_factory=list)
    mounts: Dict[str, Any] = field(default_factory=dict)
    ports: List[PortBinding] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    def hook(self, name: str) -> Optional[str]:
        return self.hooks.get(name) or None

    def explicit_env(self) -> Dict[str, str]:
        """Env entries that carry a literal value in the profile."""

        return {b.inside_name: b.default or "" for b in self.env if b.has_default}

    def pulled_env(self) -> List[str]:
        """Env names whose values come from the secrets source."""

        return [b.source_name for b in self.env if not b.has_default]

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "ProfileConfig":
        hooks: Dict[str, str] = {}
        for hook in HOOK_NAMES:
            value = data.get(hook)
            if value is None or value == "":
                continue
            if not isinstance(value, str):
                raise ManifestError(
                    f"Hook '{hook}' must be a string command, not {type(value).__name__}."
                )
            hooks[hook] = value
        secrets = data.get("secrets") or []
        if not isinstance(secrets, list):
            raise ManifestError(f"Profile '{name}' secrets must be a list of names.")
        mounts = data.get("mounts") or {}
        if not isinstance(mounts, dict):
            raise ManifestError(f"Profile '{name}' mounts must be a mapping.")
        return cls(
            name=name,
            hooks=hooks,
            secrets=[str(item) for item in secrets if str(item).strip()],
            env=parse_env(data.get("env"), where=f"profiles.{name}.env"),
            mounts=dict(mounts),
            ports=parse_ports(data.get("ports")),
            raw=dict(data),
        )


def _env_var_name(entry: Any) -> str:
    if isinstance(entry, str):
        return entry.partition("=")[0]
    if isinstance(entry, dict):
        return str(entry.get("name") or "")
    return ""


def _env_as_list(env: Any) -> List[Any]:
    if isinstance(env, list):
        return env
    if not isinstance(env, dict):
        return []
    return [key if value in ("", None) else f"{key}={value}" for key, value in env.items()]


def merge_env(default_env: Any, active_env: Any) -> Any:
    """Lists merge by variable name (active first), mappings shallow-merge."""

    if isinstance(default_env, list) and isinstance(active_env, list):
        merged: List[Any] = []
        seen = set()
        for entry in active_env:
            name = _env_var_name(entry)
            if name:
                seen.add(name)
                merged.append(entry)
        for entry in default_env:
            name = _env_var_name(entry)
            if name and name not in seen:
                merged.append(entry)
        return merged
    if not isinstance(default_env, list) and not isinstance(active_env, list):
        return {**(default_env or {}), **(active_env or {})}
    return merge_env(_env_as_list(default_env), _env_as_list(active_env))


def merge_profiles(default: Mapping[str, Any], active: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not active or active is default:
        return dict(default)
    merged = dict(default)
    if "env" in active:
        merged["env"] = merge_env(default.get("env"), active.get("env"))
    for hook in HOOK_NAMES:
        if hook in active:
            merged[hook] = active[hook]
    if active.get("secrets") or default.get("secrets"):
        merged["secrets"] = list(default.get("secrets") or []) + list(active.get("secrets") or [])
    if active.get("mounts"):
        merged["mounts"] = {**(default.get("mounts") or {}), **active["mounts"]}
    if "ports" in active:
        merged["ports"] = active["ports"]
    return merged


def profile_config_for(manifest: AgentManifest, profile: str) -> Optional[ProfileConfig]:
    """Resolve a manifest's profile, `None` when it declares no profiles."""

    profiles = manifest.profiles
    if not profiles:
        return None
    default = profiles.get("default")
    if not isinstance(default, dict):
        raise ValidationError(
            f"Agent {manifest.qualified_name} missing required 'default' profile in manifest.json"
        )
    active = profiles.get(profile)
    if profile == "default" or not isinstance(active, dict):
        return ProfileConfig.from_dict("default", default)
    return ProfileConfig.from_dict(profile, merge_profiles(default, active))


def profile_file(state_dir: Path) -> Path:
    return Path(state_dir) / PROFILE_FILENAME


def get_active_profile(state_dir: Path, default: str = DEFAULT_ACTIVE_PROFILE) -> str:
    path = profile_file(state_dir)
    try:
        value = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return default
    except OSError as exc:
        logger.warning("Unable to read active profile from %s: %s", path, exc)
        return default
    return value if value in VALID_PROFILES else default


def set_active_profile(state_dir: Path, name: str) -> str:
    normalized = str(name or "").strip().lower()
    if normalized not in VALID_PROFILES:
        raise ValidationError(
            f"Invalid profile '{name}'. Valid profiles are: {', '.join(VALID_PROFILES)}"
        )
    path = profile_file(state_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(normalized, encoding="utf-8")
    logger.info("Active profile set to %s", normalized)
    return normalized


def profile_environment(profile: str) -> str:
    return _PROFILE_ENVIRONMENTS.get(profile, "development")


def profile_env_vars(
    agent_name: str,
    repo_name: str,
    profile: str,
    *,
    cwd: Optional[Path] = None,
    container_name: Optional[str] = None,
    container_id: Optional[str] = None,
) -> Dict[str, str]:
    values = {
        "FLOTILLA_PROFILE": profile,
        "FLOTILLA_PROFILE_ENV": profile_environment(profile),
        "FLOTILLA_AGENT_NAME": agent_name,
        "FLOTILLA_REPO_NAME": repo_name,
        "FLOTILLA_CWD": str(cwd or os.getcwd()),
    }
    if container_name:
        values["FLOTILLA_CONTAINER_NAME"] = container_name
    if container_id:
        values["FLOTILLA_CONTAINER_ID"] = container_id
    return values


__all__ = [
    "DEFAULT_ACTIVE_PROFILE",
    "HOOK_NAMES",
    "HOST_HOOKS",
    "ProfileConfig",
    "VALID_PROFILES",
    "get_active_profile",
    "merge_env",
    "merge_profiles",
    "profile_config_for",
    "profile_env_vars",
    "profile_environment",
    "set_active_profile",
]
