"""Shared fixtures: a scripted container runtime and a scratch workspace."""

from __future__ import annotations

import json
from pathlib import Path
import re
from typing import Dict, List, Optional, Set

import pytest

from flotilla.agents.dependencies import DependencyInstaller, DependencySettings
from flotilla.agents.fleet import FleetManager, FleetSettings
from flotilla.agents.lifecycle import HookSettings, LifecycleEngine
from flotilla.agents.registry import AgentRegistry
from flotilla.agents.runtime import CommandResult, ContainerRuntime
from flotilla.agents.secrets import SecretResolver
from flotilla.agents.workspace import WorkspaceLayout
from flotilla.errors import ContainerRuntimeError

ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
DAEMON_DOWN = "Cannot connect to the Docker daemon at unix:///var/run/docker.sock."


class FakeRuntime(ContainerRuntime):
    """Answers engine calls from in-memory state and records every argv."""

    def __init__(self) -> None:
        super().__init__(engine="docker")
        self.calls: List[List[str]] = []
        self.execs: List[Dict[str, object]] = []
        self.running: Set[str] = set()
        self.existing: Set[str] = set()
        self.ports: Dict[str, int] = {}
        self.fail_run: Set[str] = set()
        self.exec_failures: Dict[str, int] = {}
        self.exists_error = False
        self.ps_error = False
        self.daemon_down = False

    def calls_for(self, verb: str) -> List[List[str]]:
        return [call for call in self.calls if call and call[0] == verb]

    def call(self, args, *, timeout: Optional[float] = None) -> CommandResult:
        argv = [str(arg) for arg in args]
        self.calls.append(argv)
        verb = argv[0]
        command = ["docker", *argv]

        if self.daemon_down and verb in ("ps", "inspect"):
            return CommandResult(command, 1, "", DAEMON_DOWN)
        if verb == "ps":
            if self.ps_error:
                return CommandResult(command, 1, "", "daemon unavailable")
            return CommandResult(command, 0, "\n".join(sorted(self.running)) + "\n")
        if verb == "inspect":
            name = argv[-1]
            if "--format" in argv:
                if self.exists_error:
                    raise ContainerRuntimeError("engine timed out")
                if name in self.existing or name in self.running:
                    return CommandResult(command, 0, name)
                return CommandResult(command, 1, "", f"Error: No such object: {name}")
            payload = [
                {
                    "Config": {"Env": [f"AGENT_NAME={name}"], "Image": "node:18-alpine"},
                    "State": {"Running": name in self.running, "Status": "running"},
                }
            ]
            return CommandResult(command, 0, json.dumps(payload))
        if verb == "run":
            name = argv[argv.index("--name") + 1]
            if name in self.fail_run:
                return CommandResult(command, 125, "", "image not found")
            self.running.add(name)
            self.existing.add(name)
            return CommandResult(command, 0, "abc123\n")
        if verb == "start":
            self.running.add(argv[-1])
            self.existing.add(argv[-1])
            return CommandResult(command, 0, argv[-1])
        if verb == "stop":
            self.running.discard(argv[-1])
            return CommandResult(command, 0, argv[-1])
        if verb == "rm":
            self.running.discard(argv[-1])
            self.existing.discard(argv[-1])
            return CommandResult(command, 0, argv[-1])
        if verb == "port":
            port = self.ports.get(argv[1])
            if port is None:
                return CommandResult(command, 1, "", "no public port")
            return CommandResult(command, 0, f"127.0.0.1:{port}\n")
        if verb == "exec":
            return self._exec(command, argv[1:])
        return CommandResult(command, 0)

    def _exec(self, command: List[str], rest: List[str]) -> CommandResult:
        env: Dict[str, str] = {}
        workdir = None
        index = 0
        while index < len(rest) and rest[index] in ("-e", "-w"):
            if rest[index] == "-e":
                key, _, value = rest[index + 1].partition("=")
                env[key] = value
            else:
                workdir = rest[index + 1]
            index += 2
        container, inner = rest[index], rest[index + 1:]
        self.execs.append({"container": container, "command": inner, "env": env, "workdir": workdir})
        joined = " ".join(inner)
        for needle, code in self.exec_failures.items():
            if needle in joined:
                return CommandResult(command, code, "", f"{needle} failed")
        return CommandResult(command, 0, "ok\n")


def write_manifest(root: Path, repo: str, agent: str, data: Optional[dict] = None) -> Path:
    agent_dir = root / ".flotilla" / "repos" / repo / agent
    agent_dir.mkdir(parents=True, exist_ok=True)
    path = agent_dir / "manifest.json"
    path.write_text(json.dumps(data or {"container": "node:18-alpine"}), encoding="utf-8")
    return path


@pytest.fixture
def strip_ansi():
    return lambda text: ANSI_PATTERN.sub("", text)


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    (root / ".flotilla" / "repos").mkdir(parents=True)
    return root.resolve()


@pytest.fixture
def manifest_writer(workspace: Path):
    def _write(repo: str, agent: str, data: Optional[dict] = None) -> Path:
        return write_manifest(workspace, repo, agent, data)

    return _write


@pytest.fixture
def layout(workspace: Path) -> WorkspaceLayout:
    return WorkspaceLayout(root=workspace)


@pytest.fixture
def secrets_env() -> Dict[str, str]:
    return {}


@pytest.fixture
def fleet(layout: WorkspaceLayout, fake_runtime: FakeRuntime, secrets_env: Dict[str, str]) -> FleetManager:
    registry = AgentRegistry(layout.registry_path, lock_timeout=1.0)
    secrets = SecretResolver(layout.secrets_path, env=secrets_env, search_dir=layout.root)
    installer = DependencyInstaller(fake_runtime, DependencySettings())
    engine = LifecycleEngine(layout, fake_runtime, installer, secrets, HookSettings(timeout=20))
    return FleetManager(layout, registry, fake_runtime, engine, FleetSettings())
