"""Agent registry backed by a JSON file in the workspace state directory."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
import fcntl
import json
import logging
import os
from pathlib import Path
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..errors import RegistryError

logger = logging.getLogger("flotilla.registry")

CONFIG_KEY = "_config"
RESERVED_KEYS = frozenset({CONFIG_KEY})
AGENT_TYPE = "agent"
RUN_MODES = ("isolated", "global", "devel")

RegistryMap = Dict[str, Any]
NameFunction = Callable[[str, str], str]

_KNOWN_FIELDS = {
    "agentName",
    "repoName",
    "alias",
    "containerImage",
    "createdAt",
    "projectPath",
    "runMode",
    "develRepo",
    "type",
    "config",
}


@dataclass
class Bind:
    source: str
    target: str
    read_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"source": self.source, "target": self.target}
        if self.read_only:
            data["ro"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bind":
        return cls(
            source=str(data.get("source", "")),
            target=str(data.get("target", "")),
            read_only=bool(data.get("ro", False)),
        )


@dataclass
class PortBinding:
    container_port: int
    host_port: Optional[int] = None
    host_ip: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"containerPort": self.container_port}
        if self.host_port:
            data["hostPort"] = self.host_port
        if self.host_ip:
            data["hostIp"] = self.host_ip
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortBinding":
        host_port = data.get("hostPort")
        return cls(
            container_port=int(data.get("containerPort", 0)),
            host_port=int(host_port) if host_port else None,
            host_ip=data.get("hostIp") or None,
        )

    def publish_flag(self) -> str:
        host_ip = self.host_ip or "127.0.0.1"
        host_port = str(self.host_port) if self.host_port else ""
        return f"{host_ip}:{host_port}:{self.container_port}"


@dataclass
class AgentConfig:
    binds: List[Bind] = field(default_factory=list)
    env: List[Any] = field(default_factory=list)
    ports: List[PortBinding] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "binds": [bind.to_dict() for bind in self.binds],
            "env": list(self.env),
            "ports": [port.to_dict() for port in self.ports],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "AgentConfig":
        if not isinstance(data, dict):
            return cls()
        return cls(
            binds=[Bind.from_dict(item) for item in data.get("binds") or [] if isinstance(item, dict)],
            env=list(data.get("env") or []),
            ports=[
                PortBinding.from_dict(item)
                for item in data.get("ports") or []
                if isinstance(item, dict) and item.get("containerPort")
            ],
        )


@dataclass
class AgentRecord:
    """One enabled agent instance; the registry key is its container name."""

    agent_name: str
    repo_name: str
    container_image: str
    project_path: str
    run_mode: str = "isolated"
    alias: Optional[str] = None
    devel_repo: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    config: AgentConfig = field(default_factory=AgentConfig)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        return f"{self.repo_name}/{self.agent_name}"

    @property
    def base_identity(self) -> str:
        return self.alias or self.agent_name

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data.update(
            {
                "agentName": self.agent_name,
                "repoName": self.repo_name,
                "containerImage": self.container_image,
                "createdAt": self.created_at,
                "projectPath": self.project_path,
                "runMode": self.run_mode,
                "type": AGENT_TYPE,
                "config": self.config.to_dict(),
            }
        )
        if self.alias:
            data["alias"] = self.alias
        if self.run_mode == "devel" and self.devel_repo:
            data["develRepo"] = self.devel_repo
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentRecord":
        return cls(
            agent_name=str(data.get("agentName", "")),
            repo_name=str(data.get("repoName", "")),
            container_image=str(data.get("containerImage", "")),
            project_path=str(data.get("projectPath", "")),
            run_mode=str(data.get("runMode") or "isolated"),
            alias=data.get("alias") or None,
            devel_repo=data.get("develRepo") or None,
            created_at=str(data.get("createdAt", "")),
            config=AgentConfig.from_dict(data.get("config")),
            extra={key: value for key, value in data.items() if key not in _KNOWN_FIELDS},
        )


def is_agent_entry(key: str, value: Any) -> bool:
    if key in RESERVED_KEYS:
        return False
    if isinstance(value, AgentRecord):
        return True
    return isinstance(value, dict) and value.get("type") == AGENT_TYPE and bool(value.get("agentName"))


def agent_entries(entries: RegistryMap) -> List[Tuple[str, AgentRecord]]:
    """Return `(container_name, record)` pairs, skipping opaque entries."""

    return [
        (key, value)
        for key, value in entries.items()
        if key not in RESERVED_KEYS and isinstance(value, AgentRecord)
    ]


def registry_config(entries: RegistryMap) -> Dict[str, Any]:
    """The reserved global settings mapping, created on first use."""

    cfg = entries.get(CONFIG_KEY)
    if not isinstance(cfg, dict):
        cfg = {}
        entries[CONFIG_KEY] = cfg
    return cfg


def dedup(entries: RegistryMap, name_fn: NameFunction) -> RegistryMap:
    """Collapse non-aliased records sharing `(agentName, repoName)`.

    The surviving record is the one already stored under the canonical key
    (first seen otherwise) and is written back under that key. Aliased
    records, opaque entries and `_config` pass through unchanged.
    """

    result: RegistryMap = {}
    canonical: Dict[Tuple[str, str], Tuple[str, AgentRecord]] = {}

    for key, value in entries.items():
        if key in RESERVED_KEYS:
            continue
        if not isinstance(value, AgentRecord):
            result[key] = value
            continue
        if value.alias:
            result[key] = value
            continue
        expected = name_fn(value.agent_name, value.repo_name)
        identity = (value.repo_name, value.agent_name)
        if identity not in canonical or key == expected:
            canonical[identity] = (expected, value)

    for expected, record in canonical.values():
        result[expected] = record

    if CONFIG_KEY in entries:
        result[CONFIG_KEY] = entries[CONFIG_KEY]
    return result


class AgentRegistry:
    """Load/save the registry map and serialize mutations with a file lock."""

    def __init__(self, path: Path, lock_timeout: float = 10.0) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout = lock_timeout

    def load(self) -> RegistryMap:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RegistryError(f"Unable to read registry '{self.path}': {exc}") from exc
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise RegistryError(f"Registry '{self.path}' is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise RegistryError(f"Registry '{self.path}' must contain a JSON object.")

        entries: RegistryMap = {}
        for key, value in data.items():
            if is_agent_entry(key, value):
                entries[key] = AgentRecord.from_dict(value)
            else:
                entries[key] = value
        return entries

    def save(self, entries: RegistryMap) -> None:
        payload: Dict[str, Any] = {}
        for key, value in entries.items():
            payload[key] = value.to_dict() if isinstance(value, AgentRecord) else value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_name(self.path.name + ".tmp")
            temp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            temp_path.replace(self.path)
        except OSError as exc:
            raise RegistryError(f"Unable to write registry '{self.path}': {exc}") from exc
        logger.debug("Saved registry with %d entries to %s", len(payload), self.path)

    @contextmanager
    def locked(self) -> Iterator[None]:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        start = time.monotonic()
        lock_file = open(self.lock_path, "w")
        try:
            while True:
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() - start > self.lock_timeout:
                        raise RegistryError(
                            f"Timed out after {self.lock_timeout}s waiting for registry lock '{self.lock_path}'."
                        )
                    time.sleep(0.05)
            lock_file.write(str(os.getpid()))
            lock_file.flush()
            yield
        finally:
            try:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            finally:
                lock_file.close()

    @contextmanager
    def transaction(self) -> Iterator[RegistryMap]:
        """Hold the lock, yield the loaded map, save it on a clean exit."""

        with self.locked():
            entries = self.load()
            yield entries
            self.save(entries)

    def with_registry(self, fn: Callable[[RegistryMap], Any]) -> Any:
        """Run `fn` against the locked map, save it, return `fn`'s result.

        `fn` mutates the map in place. Nothing is saved when it raises.
        """

        with self.transaction() as entries:
            return fn(entries)


__all__ = [
    "AGENT_TYPE",
    "AgentConfig",
    "AgentRecord",
    "AgentRegistry",
    "Bind",
    "CONFIG_KEY",
    "PortBinding",
    "RESERVED_KEYS",
    "RUN_MODES",
    "RegistryMap",
    "agent_entries",
    "dedup",
    "is_agent_entry",
    "registry_config",
]
