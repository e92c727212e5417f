"""Ordered lifecycle pipeline that brings one agent container to readiness."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import subprocess
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..configuration import ConfigurationBundle
from ..errors import ContainerRuntimeError, FleetError, HookExecutionError
from .dependencies import DependencyInstaller
from .naming import sanitize
from .profiles import ProfileConfig, profile_env_vars
from .runtime import ContainerRuntime
from .secrets import SecretResolver
from .workspace import (
    WorkspaceLayout,
    create_agent_symlinks,
    create_agent_work_dir,
    init_workspace_structure,
)

logger = logging.getLogger("flotilla.lifecycle")

STEP_NAMES = (
    "workspace_init",
    "symlinks",
    "preinstall",
    "container_creation",
    "hosthook_aftercreation",
    "container_start",
    "dependencies",
    "install",
    "postinstall",
    "hosthook_postinstall",
    "agent_ready",
)
STEP_NUMBERS = {name: index for index, name in enumerate(STEP_NAMES, start=1)}

SHELL_METACHARACTERS = frozenset("|&;<>()$`\\\"'*?[]{}~!\n")
KNOWN_COMMANDS = frozenset(
    {
        "apk", "apt-get", "bash", "cat", "cd", "chmod", "cp", "curl", "echo",
        "env", "export", "git", "make", "mkdir", "mv", "node", "npm", "npx",
        "pip", "pnpm", "printf", "python", "python3", "rm", "sh", "test",
        "touch", "true", "wget", "yarn",
    }
)
SCRIPT_EXTENSIONS = (".sh", ".bash", ".py", ".js", ".mjs", ".cjs", ".ts", ".rb", ".pl")

StepCallback = Callable[[], Optional[str]]


@dataclass
class HookSettings:
    timeout: float = 300.0
    install_timeout: float = 600.0
    container_workdir: str = "/code"

    @classmethod
    def from_bundle(cls, bundle: ConfigurationBundle) -> "HookSettings":
        raw = bundle.section("hooks")
        return cls(
            timeout=float(raw.get("timeout", 300)),
            install_timeout=float(raw.get("install_timeout", 600)),
            container_workdir=str(raw.get("container_workdir") or "/code"),
        )


def is_inline_command(hook: str) -> bool:
    """Heuristically tell an inline shell command from a script path."""

    text = str(hook or "").strip()
    if not text:
        return False
    if any(char in SHELL_METACHARACTERS for char in text):
        return True
    words = text.split()
    if words[0] in KNOWN_COMMANDS:
        return True
    return len(words) > 1 and not words[0].endswith(SCRIPT_EXTENSIONS)


def execute_host_hook(
    hook: str,
    env: Mapping[str, str],
    *,
    cwd: Path,
    timeout: float = 300.0,
) -> str:
    """Run a host hook and return its output; raise `HookExecutionError` on failure."""

    if is_inline_command(hook):
        argv = ["sh", "-c", hook]
        label = hook
    else:
        script = Path(hook)
        if not script.is_absolute():
            script = Path(cwd) / script
        if not script.is_file():
            raise HookExecutionError(hook, f"Hook script not found: {script}")
        try:
            script.chmod(0o755)
        except OSError as exc:
            logger.debug("chmod %s failed: %s", script, exc)
        argv = ["sh", "-c", 'exec "$0"', str(script)]
        label = str(script)

    hook_env = {**os.environ, **{k: str(v) for k, v in env.items()}, "FLOTILLA_HOOK_TYPE": "host"}
    logger.debug("Executing host hook %s", label)
    try:
        completed = subprocess.run(
            argv,
            cwd=str(cwd),
            env=hook_env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise HookExecutionError(hook, f"Hook execution failed: {exc}") from exc
    except subprocess.TimeoutExpired as exc:
        raise HookExecutionError(hook, f"Hook timed out after {timeout}s") from exc
    output = f"{completed.stdout or ''}{completed.stderr or ''}"
    if completed.returncode != 0:
        raise HookExecutionError(
            hook,
            f"Hook execution failed: exit code {completed.returncode}",
            output=output,
        )
    return output


def execute_container_hook(
    runtime: ContainerRuntime,
    container: str,
    script: str,
    env: Mapping[str, str],
    *,
    workdir: str = "/code",
    timeout: float = 300.0,
) -> str:
    try:
        result = runtime.exec(
            container,
            ["sh", "-c", script],
            env=env,
            workdir=workdir,
            timeout=timeout,
        )
    except ContainerRuntimeError as exc:
        raise HookExecutionError(script, f"Hook execution failed: {exc}") from exc
    if not result.ok:
        raise HookExecutionError(
            script,
            f"Hook execution failed: command exited with {result.returncode}",
            output=result.output,
        )
    return result.stdout


@dataclass
class LifecycleStepResult:
    step: int
    name: str
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "step": self.step,
            "name": self.name,
            "success": self.success,
            "skipped": self.skipped,
        }
        if self.output:
            data["output"] = self.output
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class LifecycleResult:
    success: bool
    steps: List[LifecycleStepResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def step(self, name: str) -> Optional[LifecycleStepResult]:
        for entry in self.steps:
            if entry.name == name:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "steps": [step.to_dict() for step in self.steps],
            "errors": list(self.errors),
        }


@dataclass
class LifecycleContext:
    """Everything the pipeline needs to know about one agent instance."""

    agent_name: str
    repo_name: str
    agent_path: Path
    work_dir: Path
    profile: str
    profile_config: Optional[ProfileConfig] = None
    container_name: Optional[str] = None
    link_name: Optional[str] = None
    skip_install_hooks: bool = False
    force_install: bool = False
    install_command: Optional[str] = None
    image: Optional[str] = None


def preinstall_marker(layout: WorkspaceLayout, agent_name: str, repo_name: str, profile: str) -> Path:
    return layout.markers_dir / f"{sanitize(repo_name)}-{sanitize(agent_name)}.{sanitize(profile)}.preinstall"


def clear_preinstall_markers(layout: WorkspaceLayout) -> int:
    removed = 0
    if not layout.markers_dir.is_dir():
        return removed
    for marker in layout.markers_dir.glob("*.preinstall"):
        try:
            marker.unlink()
            removed += 1
        except OSError as exc:
            logger.warning("Unable to remove preinstall marker %s: %s", marker, exc)
    return removed


class _Recorder:
    def __init__(self) -> None:
        self.steps: List[LifecycleStepResult] = []
        self.errors: List[str] = []

    def ok(self, name: str, output: Optional[str] = None) -> None:
        self.steps.append(LifecycleStepResult(STEP_NUMBERS[name], name, True, output=output or None))

    def skip(self, name: str, reason: str) -> None:
        self.steps.append(
            LifecycleStepResult(STEP_NUMBERS[name], name, True, output=reason, skipped=True)
        )

    def fail(self, name: str, error: str, output: Optional[str] = None) -> None:
        self.steps.append(
            LifecycleStepResult(STEP_NUMBERS[name], name, False, output=output or None, error=error)
        )
        self.errors.append(f"{name} failed: {error}")


class LifecycleEngine:
    """Runs the numbered lifecycle steps for one agent.

    Steps never abort the pipeline; failures are collected and reported in
    the returned `LifecycleResult`. The only early exit is a missing required
    secret, detected before any hook is spawned.
    """

    def __init__(
        self,
        layout: WorkspaceLayout,
        runtime: ContainerRuntime,
        installer: DependencyInstaller,
        secrets: SecretResolver,
        settings: Optional[HookSettings] = None,
    ) -> None:
        self.layout = layout
        self.runtime = runtime
        self.installer = installer
        self.secrets = secrets
        self.settings = settings or HookSettings()

    def hook_environment(self, ctx: LifecycleContext) -> Dict[str, str]:
        env = profile_env_vars(
            ctx.agent_name,
            ctx.repo_name,
            ctx.profile,
            cwd=self.layout.root,
            container_name=ctx.container_name,
            container_id=ctx.container_name,
        )
        config = ctx.profile_config
        if config is None:
            return env
        env.update(config.explicit_env())
        env.update(self.secrets.get_many(config.pulled_env()))
        env.update(self.secrets.get_many(config.secrets))
        return env

    def run(
        self,
        ctx: LifecycleContext,
        *,
        create_container: Optional[StepCallback] = None,
        start_container: Optional[StepCallback] = None,
    ) -> LifecycleResult:
        config = ctx.profile_config
        if config is not None and config.secrets:
            missing = self.secrets.missing(config.secrets)
            if missing:
                message = self.secrets.format_missing_error(missing, ctx.profile)
                logger.error("%s: %s", ctx.agent_name, message.splitlines()[0])
                return LifecycleResult(success=False, steps=[], errors=[message])

        rec = _Recorder()
        env = self.hook_environment(ctx)
        hook_cwd = Path(ctx.agent_path)

        try:
            init_workspace_structure(self.layout)
            rec.ok("workspace_init")
        except OSError as exc:
            rec.fail("workspace_init", str(exc))

        try:
            warnings = create_agent_symlinks(self.layout, ctx.link_name or ctx.agent_name, ctx.agent_path)
            create_agent_work_dir(self.layout, ctx.link_name or ctx.agent_name)
            Path(ctx.work_dir).mkdir(parents=True, exist_ok=True)
            rec.ok("symlinks", "\n".join(warnings))
        except OSError as exc:
            rec.fail("symlinks", str(exc))

        preinstall = config.hook("preinstall") if config else None
        if preinstall:
            marker = preinstall_marker(self.layout, ctx.agent_name, ctx.repo_name, ctx.profile)
            if marker.exists():
                rec.skip("preinstall", "already executed this session")
            else:
                if self._host_hook(rec, "preinstall", preinstall, env, hook_cwd):
                    marker.parent.mkdir(parents=True, exist_ok=True)
                    marker.write_text(ctx.profile, encoding="utf-8")

        container_ready = bool(ctx.container_name)
        if create_container is not None:
            container_ready = self._callback(rec, "container_creation", create_container) and container_ready

        aftercreation = config.hook("hosthook_aftercreation") if config else None
        if aftercreation:
            self._host_hook(rec, "hosthook_aftercreation", aftercreation, env, hook_cwd)

        if start_container is not None:
            container_ready = self._callback(rec, "container_start", start_container) and container_ready

        container = ctx.container_name if container_ready else None
        if ctx.skip_install_hooks:
            rec.skip("dependencies", "install hooks skipped")
        elif container is None:
            rec.skip("dependencies", "no container")
        else:
            result = self.installer.install(
                container,
                ctx.agent_name,
                Path(ctx.work_dir),
                Path(ctx.agent_path),
                force=ctx.force_install,
            )
            if result.success and ctx.install_command and ctx.image:
                result = self.installer.run_persistent_install(
                    ctx.agent_name,
                    ctx.image,
                    ctx.install_command,
                    Path(ctx.agent_path),
                    Path(ctx.work_dir),
                )
            if result.success:
                rec.ok("dependencies", result.message)
            else:
                rec.fail("dependencies", result.message)

        install = config.hook("install") if config else None
        if install:
            if ctx.skip_install_hooks:
                rec.skip("install", "install hooks skipped")
            elif container is None:
                rec.skip("install", "no container")
            else:
                self._container_hook(rec, "install", install, env, container, self.settings.install_timeout)

        postinstall = config.hook("postinstall") if config else None
        if postinstall:
            if container is None:
                rec.skip("postinstall", "no container")
            else:
                self._container_hook(rec, "postinstall", postinstall, env, container, self.settings.timeout)

        host_postinstall = config.hook("hosthook_postinstall") if config else None
        if host_postinstall:
            self._host_hook(rec, "hosthook_postinstall", host_postinstall, env, hook_cwd)

        ready = not rec.errors
        rec.steps.append(LifecycleStepResult(STEP_NUMBERS["agent_ready"], "agent_ready", ready))
        if ready:
            logger.info("Agent %s/%s ready", ctx.repo_name, ctx.agent_name)
        else:
            logger.warning(
                "Agent %s/%s finished lifecycle with %d error(s)",
                ctx.repo_name,
                ctx.agent_name,
                len(rec.errors),
            )
        return LifecycleResult(success=ready, steps=rec.steps, errors=rec.errors)

    def _host_hook(
        self,
        rec: _Recorder,
        name: str,
        hook: str,
        env: Mapping[str, str],
        cwd: Path,
    ) -> bool:
        try:
            output = execute_host_hook(hook, env, cwd=cwd, timeout=self.settings.timeout)
        except HookExecutionError as exc:
            rec.fail(name, str(exc), exc.output)
            return False
        rec.ok(name, output)
        return True

    def _container_hook(
        self,
        rec: _Recorder,
        name: str,
        script: str,
        env: Mapping[str, str],
        container: str,
        timeout: float,
    ) -> bool:
        try:
            output = execute_container_hook(
                self.runtime,
                container,
                script,
                env,
                workdir=self.settings.container_workdir,
                timeout=timeout,
            )
        except HookExecutionError as exc:
            rec.fail(name, str(exc), exc.output)
            return False
        rec.ok(name, output)
        return True

    def _callback(self, rec: _Recorder, name: str, callback: StepCallback) -> bool:
        try:
            output = callback()
        except (FleetError, OSError) as exc:
            rec.fail(name, str(exc))
            return False
        rec.ok(name, output)
        return True


__all__ = [
    "HookSettings",
    "LifecycleContext",
    "LifecycleEngine",
    "LifecycleResult",
    "LifecycleStepResult",
    "STEP_NAMES",
    "clear_preinstall_markers",
    "execute_container_hook",
    "execute_host_hook",
    "is_inline_command",
    "preinstall_marker",
]
