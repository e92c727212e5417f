"""Per-agent dependency installation into the agent working directory.

The installer keeps `<work_dir>/node_modules` populated with the core runtime
modules. Core modules are reconciled from a host `node_modules` tree on every
call; the install command itself only runs when the marker module is missing,
the agent ships its own `package.json`, or a reinstall is forced.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
import re
import shlex
import shutil
import time
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..configuration import DEFAULT_CORE_DEPENDENCIES, ConfigurationBundle
from ..errors import ContainerRuntimeError, InstallFailure
from .runtime import ContainerRuntime, Mount

logger = logging.getLogger("flotilla.dependencies")

PACKAGE_FILENAME = "package.json"
SYNC_SKIP = {"node_modules", "package-lock.json"}
GIT_INSTALLERS: Sequence[Tuple[str, str, str]] = (
    ("apk", "command -v apk", "apk add --no-cache git"),
    ("apt-get", "command -v apt-get", "apt-get update && apt-get install -y git"),
)

DEFAULT_BASE_PACKAGE: Dict[str, Any] = {
    "name": "flotilla-agent-runtime",
    "version": "1.0.0",
    "type": "module",
    "dependencies": {
        "achillesAgentLib": "github:OutfinityResearch/achillesAgentLib",
        "mcp-sdk": "github:PloinkyRepos/MCPSDK#main",
        "node-pty": "^1.0.0",
        "flexsearch": "github:PloinkyRepos/flexsearch#main",
    },
}


@dataclass
class DependencySettings:
    core: List[str] = field(default_factory=lambda: list(DEFAULT_CORE_DEPENDENCIES))
    marker: str = "mcp-sdk"
    template: Optional[Path] = None
    source_node_modules: Optional[Path] = None
    install_command: str = "npm install"
    install_timeout: float = 600.0
    container_prefix: str = ""

    @classmethod
    def from_bundle(cls, bundle: ConfigurationBundle) -> "DependencySettings":
        raw = bundle.section("dependencies")
        hooks = bundle.section("hooks")
        naming = bundle.section("naming")
        template = str(raw.get("template") or "").strip()
        source = str(raw.get("source_node_modules") or "").strip()
        return cls(
            core=list(raw.get("core") or DEFAULT_CORE_DEPENDENCIES),
            marker=str(raw.get("marker") or "mcp-sdk"),
            template=Path(template).expanduser() if template else None,
            source_node_modules=Path(source).expanduser() if source else None,
            install_command=str(raw.get("install_command") or "npm install"),
            install_timeout=float(hooks.get("install_timeout", 600)),
            container_prefix=str(naming.get("prefix") or ""),
        )


@dataclass
class DependencySyncResult:
    synced: bool = False
    modules: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"synced": self.synced, "modules": list(self.modules), "errors": list(self.errors)}


@dataclass
class InstallResult:
    success: bool
    message: str
    cached: bool = False
    sync: Optional[DependencySyncResult] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "cached": self.cached,
        }
        if self.sync is not None:
            data["sync"] = self.sync.to_dict()
        return data


def read_base_package(template: Optional[Path]) -> Dict[str, Any]:
    if template is not None and template.is_file():
        try:
            data = json.loads(template.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise InstallFailure(f"Base package template '{template}' is not valid JSON: {exc}") from exc
        if isinstance(data, dict):
            return data
        raise InstallFailure(f"Base package template '{template}' must contain a JSON object.")
    return json.loads(json.dumps(DEFAULT_BASE_PACKAGE))


def merge_package_manifests(
    core: Mapping[str, Any],
    agent: Mapping[str, Any],
    core_names: Sequence[str] = DEFAULT_CORE_DEPENDENCIES,
) -> Dict[str, Any]:
    """Overlay the agent's manifest on the core one; the core set always wins."""

    merged: Dict[str, Any] = dict(core)
    core_deps = dict(core.get("dependencies") or {})
    dependencies = {**core_deps, **dict(agent.get("dependencies") or {})}
    for name in core_names:
        if name in core_deps:
            dependencies[name] = core_deps[name]
    merged["dependencies"] = dependencies

    if agent.get("devDependencies"):
        merged["devDependencies"] = {
            **dict(core.get("devDependencies") or {}),
            **dict(agent["devDependencies"]),
        }
    if agent.get("scripts"):
        merged["scripts"] = agent["scripts"]
    if agent.get("name"):
        merged["name"] = agent["name"]
    return merged


def resolve_agent_package_path(source_dir: Optional[Path]) -> Optional[Path]:
    if source_dir is None:
        return None
    for candidate in (Path(source_dir) / "code" / PACKAGE_FILENAME, Path(source_dir) / PACKAGE_FILENAME):
        if candidate.is_file():
            return candidate
    return None


def sync_module_subdirectories(source: Path, target: Path) -> Tuple[List[str], List[str]]:
    """Copy directories present in `source` but missing in `target`.

    Existing destination content is never modified. Returns the relative
    paths that were copied and the per-entry errors encountered.
    """

    synced: List[str] = []
    errors: List[str] = []
    try:
        entries = sorted(Path(source).iterdir())
    except OSError as exc:
        return synced, [f"{source}: {exc}"]

    for entry in entries:
        if entry.name.startswith(".") or entry.name in SYNC_SKIP or not entry.is_dir():
            continue
        destination = Path(target) / entry.name
        try:
            if not destination.exists():
                shutil.copytree(entry, destination, symlinks=True)
                synced.append(entry.name)
                continue
        except OSError as exc:
            errors.append(f"{entry.name}: {exc}")
            continue
        nested, nested_errors = sync_module_subdirectories(entry, destination)
        synced.extend(f"{entry.name}/{name}" for name in nested)
        errors.extend(f"{entry.name}/{error}" for error in nested_errors)
    return synced, errors


def sync_core_dependencies(
    source_node_modules: Path,
    target_node_modules: Path,
    core: Sequence[str],
    force: bool = False,
) -> DependencySyncResult:
    result = DependencySyncResult()
    if not Path(source_node_modules).is_dir():
        result.errors.append(f"Source node_modules '{source_node_modules}' not found")
        return result
    target_node_modules.mkdir(parents=True, exist_ok=True)

    for name in core:
        source = Path(source_node_modules) / name
        target = target_node_modules / name
        if not source.is_dir():
            logger.debug("Core dependency %s not present in %s", name, source_node_modules)
            continue
        try:
            if force or not target.exists():
                if target.exists():
                    shutil.rmtree(target)
                shutil.copytree(source, target, symlinks=True)
                result.modules.append(name)
                continue
        except OSError as exc:
            result.errors.append(f"{name}: {exc}")
            continue
        synced, errors = sync_module_subdirectories(source, target)
        if synced:
            result.modules.append(f"{name}/{', '.join(synced)}")
        result.errors.extend(f"{name}/{error}" for error in errors)

    result.synced = bool(result.modules)
    return result


def _install_container_name(prefix: str, agent_name: str) -> str:
    slug = re.sub(r"[^a-z0-9_.-]", "-", str(agent_name or "agent").lower())
    return f"{prefix}install-{slug}-{int(time.time() * 1000)}"


class DependencyInstaller:
    """Installs runtime dependencies for one agent at a time."""

    def __init__(self, runtime: ContainerRuntime, settings: Optional[DependencySettings] = None) -> None:
        self.runtime = runtime
        self.settings = settings or DependencySettings()

    def install(
        self,
        container: str,
        agent_name: str,
        work_dir: Path,
        source_dir: Optional[Path] = None,
        force: bool = False,
    ) -> InstallResult:
        work_dir = Path(work_dir)
        node_modules = work_dir / "node_modules"

        sync: Optional[DependencySyncResult] = None
        if self.settings.source_node_modules is not None:
            sync = sync_core_dependencies(
                self.settings.source_node_modules,
                node_modules,
                self.settings.core,
                force=force,
            )
            if sync.synced:
                logger.info("%s: synced core modules %s", agent_name, ", ".join(sync.modules))
            for error in sync.errors:
                logger.warning("%s: core sync: %s", agent_name, error)

        agent_package = resolve_agent_package_path(source_dir)
        if not force and agent_package is None and (node_modules / self.settings.marker).exists():
            logger.debug("%s: using cached node_modules", agent_name)
            return InstallResult(True, "Using cached node_modules", cached=True, sync=sync)

        try:
            core = read_base_package(self.settings.template)
            if agent_package is not None:
                agent = json.loads(agent_package.read_text(encoding="utf-8"))
                if not isinstance(agent, dict):
                    raise InstallFailure(f"'{agent_package}' must contain a JSON object.")
                manifest = merge_package_manifests(core, agent, self.settings.core)
            else:
                manifest = core
            work_dir.mkdir(parents=True, exist_ok=True)
            (work_dir / PACKAGE_FILENAME).write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        except (OSError, json.JSONDecodeError, InstallFailure) as exc:
            logger.error("%s: unable to prepare package.json: %s", agent_name, exc)
            return InstallResult(False, f"Installation failed: {exc}", sync=sync)

        command = shlex.split(self.settings.install_command)
        logger.info("%s: running %s in %s", agent_name, self.settings.install_command, work_dir)
        try:
            result = self.runtime.exec(
                container,
                command,
                workdir=str(work_dir),
                timeout=self.settings.install_timeout,
            )
        except ContainerRuntimeError as exc:
            return InstallResult(False, f"{self.settings.install_command} failed: {exc}", sync=sync)
        if not result.ok:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            return InstallResult(False, f"{self.settings.install_command} failed: {detail}", sync=sync)
        return InstallResult(True, "Dependencies installed successfully", sync=sync)

    def ensure_git_available(self, container: str) -> Tuple[bool, str]:
        if self.runtime.exec(container, ["sh", "-c", "git --version"]).ok:
            return True, "git available"
        for name, check, command in GIT_INSTALLERS:
            if not self.runtime.exec(container, ["sh", "-c", check]).ok:
                continue
            logger.info("Installing git via %s in %s", name, container)
            if self.runtime.exec(
                container,
                ["sh", "-c", command],
                timeout=self.settings.install_timeout,
            ).ok:
                return True, f"git installed via {name}"
            logger.warning("git install via %s failed in %s", name, container)
        return False, "git is required to install dependencies but could not be installed"

    @contextmanager
    def install_container(
        self,
        agent_name: str,
        image: str,
        *,
        mounts: Sequence[Mount] = (),
        env: Optional[Mapping[str, str]] = None,
        workdir: Optional[str] = None,
    ) -> Iterator[str]:
        """Run a disposable container and always stop and remove it."""

        name = _install_container_name(self.settings.container_prefix, agent_name)
        self.runtime.run(
            image,
            name=name,
            mounts=mounts,
            env=env,
            workdir=workdir,
            command=["sh", "-c", "tail -f /dev/null"],
        )
        try:
            yield name
        finally:
            for args in (["stop", "-t", "2", name], ["rm", "-f", name]):
                try:
                    self.runtime.call(args, timeout=10)
                except ContainerRuntimeError as exc:
                    logger.warning("Cleanup of %s failed: %s", name, exc)

    def run_persistent_install(
        self,
        agent_name: str,
        image: str,
        command: Optional[str],
        source_dir: Path,
        work_dir: Path,
    ) -> InstallResult:
        """Run a manifest install command whose writes land on the host."""

        if not command or not command.strip():
            return InstallResult(True, "No install command")

        source = Path(source_dir)
        if source.is_symlink():
            source = source.resolve()
        work_dir = Path(work_dir)
        node_modules = work_dir / "node_modules"
        node_modules.mkdir(parents=True, exist_ok=True)

        mounts = [
            Mount(str(source), "/code"),
            Mount(str(node_modules), "/code/node_modules"),
            Mount(str(work_dir), str(work_dir)),
        ]
        try:
            with self.install_container(
                agent_name,
                image,
                mounts=mounts,
                env={"WORKSPACE_PATH": str(work_dir)},
                workdir=str(work_dir),
            ) as container:
                ok, message = self.ensure_git_available(container)
                if not ok:
                    logger.warning("%s: %s", agent_name, message)
                result = self.runtime.exec(
                    container,
                    ["sh", "-lc", command],
                    workdir=str(work_dir),
                    timeout=self.settings.install_timeout,
                )
        except ContainerRuntimeError as exc:
            return InstallResult(False, f"Install failed: {exc}")
        if not result.ok:
            return InstallResult(False, f"Install command failed with code {result.returncode}")
        logger.info("%s: install completed", agent_name)
        return InstallResult(True, "Install completed")


__all__ = [
    "DEFAULT_BASE_PACKAGE",
    "DependencyInstaller",
    "DependencySettings",
    "DependencySyncResult",
    "InstallResult",
    "merge_package_manifests",
    "read_base_package",
    "resolve_agent_package_path",
    "sync_core_dependencies",
    "sync_module_subdirectories",
]
