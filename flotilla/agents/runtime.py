"""Subprocess client for the container engine (podman or docker)."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import shutil
import subprocess
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..configuration import ConfigurationBundle
from ..errors import ContainerRuntimeError

logger = logging.getLogger("flotilla.runtime")

PREFERRED_ENGINES: Sequence[str] = ("podman", "docker")
DEFAULT_TIMEOUT = 60.0
# docker: "No such object" / "No such container"; podman: "no such container"
MISSING_OBJECT = "no such "


@dataclass
class CommandResult:
    """Outcome of one engine invocation."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return f"{self.stdout}{self.stderr}"


@dataclass
class Mount:
    source: str
    target: str
    read_only: bool = False

    def to_flag(self, relabel: bool = False) -> str:
        options = []
        if self.read_only:
            options.append("ro")
        if relabel:
            options.append("z")
        suffix = f":{','.join(options)}" if options else ""
        return f"{self.source}:{self.target}{suffix}"


@dataclass
class LiveContainer:
    """Container reported by the engine as running."""

    name: str
    agent_name: str = "-"
    image: str = "-"
    running: bool = False
    status: str = "-"
    env: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "agent": self.agent_name,
            "image": self.image,
            "running": self.running,
            "status": self.status,
        }


class ContainerRuntime:
    """Thin wrapper that always passes argument vectors to the engine."""

    def __init__(self, engine: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._engine = engine or None
        self.timeout = timeout

    @classmethod
    def from_bundle(cls, bundle: ConfigurationBundle) -> "ContainerRuntime":
        raw = bundle.section("runtime")
        engine = str(raw.get("engine") or "").strip() or None
        try:
            timeout = float(raw.get("command_timeout", DEFAULT_TIMEOUT))
        except (TypeError, ValueError):
            timeout = DEFAULT_TIMEOUT
        return cls(engine=engine, timeout=timeout if timeout > 0 else DEFAULT_TIMEOUT)

    @property
    def engine(self) -> str:
        if self._engine is None:
            for candidate in PREFERRED_ENGINES:
                if shutil.which(candidate):
                    self._engine = candidate
                    break
            else:
                raise ContainerRuntimeError(
                    "No container engine found (tried: " + ", ".join(PREFERRED_ENGINES) + ")."
                )
        return self._engine

    def call(self, args: Sequence[str], *, timeout: Optional[float] = None) -> CommandResult:
        command = [self.engine, *[str(arg) for arg in args]]
        limit = timeout if timeout is not None else self.timeout
        logger.debug("runtime: %s", " ".join(command))
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=limit,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ContainerRuntimeError(f"Container engine '{command[0]}' not found: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ContainerRuntimeError(
                f"'{' '.join(command[:3])}' timed out after {limit}s"
            ) from exc
        return CommandResult(
            args=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def exec(
        self,
        container: str,
        command: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        workdir: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        args: List[str] = ["exec"]
        for key, value in (env or {}).items():
            args.extend(["-e", f"{key}={'' if value is None else value}"])
        if workdir:
            args.extend(["-w", workdir])
        args.append(container)
        args.extend(command)
        return self.call(args, timeout=timeout)

    def run(
        self,
        image: str,
        *,
        name: str,
        mounts: Sequence[Mount] = (),
        env: Optional[Mapping[str, str]] = None,
        ports: Sequence[str] = (),
        workdir: Optional[str] = None,
        command: Sequence[str] = (),
        extra_args: Sequence[str] = (),
        timeout: Optional[float] = None,
    ) -> str:
        """Create and start a detached container, returning its name."""

        relabel = self.engine == "podman"
        args: List[str] = ["run", "-d", "--name", name]
        if workdir:
            args.extend(["-w", workdir])
        for mount in mounts:
            args.extend(["-v", mount.to_flag(relabel=relabel)])
        for key, value in (env or {}).items():
            args.extend(["-e", f"{key}={'' if value is None else value}"])
        for publish in ports:
            args.extend(["-p", publish])
        args.extend(extra_args)
        args.append(image)
        args.extend(command)
        result = self.call(args, timeout=timeout)
        if not result.ok:
            raise ContainerRuntimeError(
                f"Failed to start container '{name}' from '{image}': {result.stderr.strip() or result.returncode}"
            )
        logger.info("Started container %s from %s", name, image)
        return name

    def start(self, name: str) -> CommandResult:
        return self.call(["start", name])

    def stop(self, name: str, grace_seconds: Optional[int] = None) -> CommandResult:
        args = ["stop"]
        if grace_seconds is not None:
            args.extend(["-t", str(grace_seconds)])
        args.append(name)
        return self.call(args)

    def remove(self, name: str, force: bool = True) -> CommandResult:
        return self.call(["rm", "-f", name] if force else ["rm", name])

    def stop_and_remove(self, name: str) -> None:
        self.stop(name)
        self.remove(name)

    def exists(self, name: str) -> bool:
        """True when the engine knows the container; raises when it cannot answer."""

        result = self.call(["inspect", "--format", "{{.Name}}", name])
        if result.ok:
            return True
        if MISSING_OBJECT in result.output.lower():
            return False
        raise ContainerRuntimeError(
            f"Unable to inspect container '{name}': {result.stderr.strip() or result.returncode}"
        )

    def running_names(self) -> List[str]:
        result = self.call(["ps", "--format", "{{.Names}}"])
        if not result.ok:
            raise ContainerRuntimeError(f"Unable to list containers: {result.stderr.strip()}")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def is_running(self, name: str) -> bool:
        return name in self.running_names()

    def host_port(self, name: str, container_port: int) -> Optional[int]:
        result = self.call(["port", name, str(container_port)])
        if not result.ok:
            return None
        return _parse_host_port(result.stdout)

    def collect_live_containers(self, prefix: str = "") -> List[LiveContainer]:
        """Inspect every running container whose name starts with `prefix`."""

        try:
            names = [name for name in self.running_names() if name.startswith(prefix)]
        except ContainerRuntimeError as exc:
            logger.debug("collect_live_containers: %s", exc)
            return []

        results: List[LiveContainer] = []
        for name in names:
            try:
                inspected = self.call(["inspect", name])
            except ContainerRuntimeError as exc:
                logger.debug("collect_live_containers: %s %s", name, exc)
                continue
            if not inspected.ok:
                continue
            try:
                parsed = json.loads(inspected.stdout or "[]")
            except json.JSONDecodeError:
                continue
            if not isinstance(parsed, list) or not parsed:
                continue
            results.append(_live_container_from_inspect(name, parsed[0]))
        return results


def _live_container_from_inspect(name: str, data: Mapping[str, Any]) -> LiveContainer:
    config = data.get("Config") or {}
    state = data.get("State") or {}
    env: Dict[str, str] = {}
    for entry in config.get("Env") or []:
        key, _, value = str(entry).partition("=")
        env[key] = value
    return LiveContainer(
        name=name,
        agent_name=env.get("AGENT_NAME", "-"),
        image=str(config.get("Image") or "-"),
        running=bool(state.get("Running")),
        status=str(state.get("Status") or "-"),
        env=env,
    )


def _parse_host_port(output: str) -> Optional[int]:
    for line in (output or "").splitlines():
        _, _, port = line.strip().rpartition(":")
        if port.isdigit():
            return int(port)
    return None


__all__ = [
    "CommandResult",
    "ContainerRuntime",
    "LiveContainer",
    "Mount",
    "PREFERRED_ENGINES",
]
