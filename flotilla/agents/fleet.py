"""Fleet manager: enable, disable, refresh and start agents in a workspace."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Set, Tuple

from ..configuration import ConfigurationBundle
from ..errors import (
    AmbiguousReferenceError,
    ConflictError,
    ContainerRuntimeError,
    FleetError,
    NotFoundError,
    ValidationError,
)
from .dependencies import DependencyInstaller, DependencySettings
from .lifecycle import (
    HookSettings,
    LifecycleContext,
    LifecycleEngine,
    LifecycleResult,
    clear_preinstall_markers,
)
from .manifest import AgentManifest, find_manifest, load_manifest, resolve_env, resolve_expose
from .naming import (
    candidate_hints,
    canonical_name,
    find_candidates,
    reject_alias_only_matches,
    resolve_reference,
    validate_alias,
)
from .profiles import ProfileConfig, get_active_profile, profile_config_for, profile_env_vars
from .registry import (
    CONFIG_KEY,
    AgentConfig,
    AgentRecord,
    AgentRegistry,
    Bind,
    PortBinding,
    RegistryMap,
    agent_entries,
    dedup,
    registry_config,
)
from .routing import load_routing, save_routing, set_static, update_route
from .runtime import ContainerRuntime, Mount
from .secrets import SecretResolver
from .workspace import (
    WorkspaceLayout,
    create_agent_symlinks,
    remove_agent_symlinks,
)

logger = logging.getLogger("flotilla.fleet")

RUN_MODE_ALIASES = {"": "isolated", "default": "isolated", "isolated": "isolated", "global": "global", "devel": "devel"}
DisableStatus = Literal["removed", "not-found", "static-removed", "ambiguous", "container-exists"]
IDLE_COMMAND = ["sh", "-c", "tail -f /dev/null"]


@dataclass
class FleetSettings:
    naming_prefix: str = ""
    default_image: str = "node:18-alpine"
    default_port: int = 7000
    router_port: int = 8080
    default_profile: str = "dev"
    container_workdir: str = "/code"

    @classmethod
    def from_bundle(cls, bundle: ConfigurationBundle) -> "FleetSettings":
        fleet = bundle.section("fleet")
        return cls(
            naming_prefix=str(bundle.section("naming").get("prefix") or ""),
            default_image=str(fleet.get("default_image") or "node:18-alpine"),
            default_port=int(fleet.get("default_port", 7000)),
            router_port=int(bundle.section("router").get("port", 8080)),
            default_profile=str(bundle.section("profiles").get("default") or "dev"),
            container_workdir=str(bundle.section("hooks").get("container_workdir") or "/code"),
        )


@dataclass
class EnableResult:
    container_name: str
    repo_name: str
    short_agent_name: str
    alias: Optional[str] = None
    run_mode: str = "isolated"
    project_path: str = ""
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "containerName": self.container_name,
            "repoName": self.repo_name,
            "shortAgentName": self.short_agent_name,
            "runMode": self.run_mode,
            "projectPath": self.project_path,
        }
        if self.alias:
            data["alias"] = self.alias
        return data


@dataclass
class DisableResult:
    status: DisableStatus
    reference: str
    container_name: Optional[str] = None
    agent_name: Optional[str] = None
    repo_name: Optional[str] = None
    candidates: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.status == "removed":
            return f"✓ Agent '{self.agent_name}' from repo '{self.repo_name}' disabled."
        if self.status == "static-removed":
            return f"✓ Static agent '{self.reference}' configuration cleared."
        if self.status == "ambiguous":
            lines = [f"Agent name '{self.reference}' is ambiguous. Please specify one of:"]
            lines.extend(f"  - {candidate}" for candidate in self.candidates)
            return "\n".join(lines)
        if self.status == "container-exists":
            return (
                f"Cannot disable agent '{self.agent_name}' because container '{self.container_name}' "
                "still exists. Please destroy the container before disabling the agent."
            )
        return f"Agent '{self.reference}' is not enabled in this workspace."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "reference": self.reference,
            "containerName": self.container_name,
            "agentName": self.agent_name,
            "repoName": self.repo_name,
            "candidates": list(self.candidates),
        }


@dataclass
class ServiceInfo:
    container_name: str
    host_port: Optional[int] = None
    created: bool = False
    lifecycle: Optional[LifecycleResult] = None

    @property
    def healthy(self) -> bool:
        return self.lifecycle is None or self.lifecycle.success


@dataclass
class RefreshResult:
    container_name: str
    agent_name: str
    repo_name: str
    service: ServiceInfo
    static_updated: bool = False


@dataclass
class StartResult:
    static_agent: str
    port: int
    order: List[str] = field(default_factory=list)
    services: Dict[str, ServiceInfo] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    routing_path: Optional[Path] = None

    @property
    def success(self) -> bool:
        return not self.failures


def split_enable_arguments(
    reference: str,
    mode: Optional[str] = None,
    devel_repo: Optional[str] = None,
) -> Tuple[str, Optional[str], Optional[str]]:
    """Accept `name global`, `name devel <repo>`, `name:global` and `name:devel <repo>`."""

    text = str(reference or "").strip()
    if mode or not text:
        return text, mode, devel_repo

    tokens = text.split()
    if len(tokens) > 1 and tokens[1].lower() in ("global", "devel"):
        parsed_mode = tokens[1].lower()
        repo = devel_repo
        if parsed_mode == "devel" and repo is None:
            repo = " ".join(tokens[2:]).strip() or None
        return tokens[0], parsed_mode, repo

    target, sep, remainder = text.partition(":")
    words = remainder.split()
    if sep and target.strip() and words and words[0].lower() in ("global", "devel"):
        parsed_mode = words[0].lower()
        repo = devel_repo
        if parsed_mode == "devel" and repo is None:
            repo = " ".join(words[1:]).strip() or None
        return target.strip(), parsed_mode, repo
    return text, mode, devel_repo


def static_match_set(record: AgentRecord) -> Set[str]:
    """References that designate `record` as the static agent."""

    names = {
        record.agent_name,
        f"{record.repo_name}/{record.agent_name}",
        f"{record.repo_name}:{record.agent_name}",
    }
    if record.alias:
        names.add(record.alias)
    return names


class FleetManager:
    """Keeps the registry, the containers and the routing file consistent."""

    def __init__(
        self,
        layout: WorkspaceLayout,
        registry: AgentRegistry,
        runtime: ContainerRuntime,
        lifecycle: LifecycleEngine,
        settings: Optional[FleetSettings] = None,
    ) -> None:
        self.layout = layout
        self.registry = registry
        self.runtime = runtime
        self.lifecycle = lifecycle
        self.settings = settings or FleetSettings()

    @property
    def secrets(self) -> SecretResolver:
        return self.lifecycle.secrets

    def container_name(self, base_identity: str, repo_name: str) -> str:
        return canonical_name(base_identity, repo_name, self.settings.naming_prefix)

    def _name_fn(self, agent_name: str, repo_name: str) -> str:
        return self.container_name(agent_name, repo_name)

    def active_profile(self) -> str:
        return get_active_profile(self.layout.state_dir, default=self.settings.default_profile)

    def load_manifest_for(self, record: AgentRecord) -> AgentManifest:
        location = find_manifest(self.layout.repos_dir, record.qualified_name)
        return load_manifest(location.manifest_path, repo=location.repo)

    def work_dir_for(self, record: AgentRecord) -> Path:
        if record.run_mode == "isolated" and record.project_path:
            return Path(record.project_path)
        return self.layout.agent_work_dir(record.base_identity)

    # enable -----------------------------------------------------------------

    def enable(
        self,
        reference: str,
        mode: Optional[str] = None,
        devel_repo: Optional[str] = None,
        alias: Optional[str] = None,
    ) -> EnableResult:
        ref, mode, devel_repo = split_enable_arguments(reference, mode, devel_repo)
        location = find_manifest(self.layout.repos_dir, ref)
        manifest = load_manifest(location.manifest_path, repo=location.repo)

        run_mode = RUN_MODE_ALIASES.get(str(mode or "").strip().lower())
        if run_mode is None:
            raise ValidationError(f"Unknown mode '{mode}'. Allowed: global | devel")
        devel_path: Optional[Path] = None
        if run_mode == "devel":
            repo_candidate = str(devel_repo or "").strip()
            if not repo_candidate:
                raise ValidationError(
                    "enable agent devel: missing repoName. Usage: enable agent <name> devel <repoName>"
                )
            devel_path = self.layout.repos_dir / repo_candidate
            if not devel_path.is_dir():
                raise NotFoundError(f"Repository '{repo_candidate}' not found in {self.layout.repos_dir}")
            devel_repo = repo_candidate

        ports = list(manifest.ports) or [PortBinding(container_port=self.settings.default_port)]
        image = manifest.image or self.settings.default_image

        def mutate(entries: RegistryMap) -> Tuple[str, AgentRecord]:
            cleaned_alias = validate_alias(alias, entries) if alias else None
            container = self.container_name(cleaned_alias or manifest.name, location.repo)
            existing = entries.get(container)
            if existing is not None and not (
                isinstance(existing, AgentRecord)
                and existing.alias == cleaned_alias
                and (existing.repo_name, existing.agent_name) == (location.repo, manifest.name)
            ):
                raise ConflictError(f"Container name '{container}' is already used by another registry entry.")

            if run_mode == "global":
                project_path = str(self.layout.root)
            elif run_mode == "devel":
                project_path = str(devel_path)
            else:
                project_path = self._reusable_project_path(entries, location.repo, manifest.name, cleaned_alias)
                if not project_path:
                    project_path = str(self.layout.agent_work_dir(cleaned_alias or manifest.name))

            record = AgentRecord(
                agent_name=manifest.name,
                repo_name=location.repo,
                container_image=image,
                project_path=project_path,
                run_mode=run_mode,
                alias=cleaned_alias,
                devel_repo=devel_repo if run_mode == "devel" else None,
                config=AgentConfig(
                    binds=[
                        Bind(project_path, project_path),
                        Bind(str(self.layout.support_library_path), "/Agent"),
                        Bind(str(manifest.agent_dir), "/code", read_only=True),
                    ],
                    env=[],
                    ports=ports,
                ),
            )
            if not cleaned_alias:
                for key, other in agent_entries(entries):
                    if (
                        key != container
                        and not other.alias
                        and (other.repo_name, other.agent_name) == (location.repo, manifest.name)
                    ):
                        del entries[key]
            entries[container] = record
            return container, record

        container, record = self.registry.with_registry(mutate)
        logger.info("Enabled %s as %s (%s)", record.qualified_name, container, record.run_mode)

        warnings: List[str] = []
        try:
            if record.run_mode == "isolated":
                Path(record.project_path).mkdir(parents=True, exist_ok=True)
            warnings.extend(create_agent_symlinks(self.layout, record.base_identity, manifest.agent_dir))
        except OSError as exc:
            logger.warning("Post-enable setup for %s failed: %s", container, exc)
            warnings.append(str(exc))

        return EnableResult(
            container_name=container,
            repo_name=record.repo_name,
            short_agent_name=record.agent_name,
            alias=record.alias,
            run_mode=record.run_mode,
            project_path=record.project_path,
            warnings=warnings,
        )

    def _reusable_project_path(
        self,
        entries: RegistryMap,
        repo_name: str,
        agent_name: str,
        alias: Optional[str],
    ) -> Optional[str]:
        if alias:
            return None
        for _, record in agent_entries(entries):
            if record.alias or (record.repo_name, record.agent_name) != (repo_name, agent_name):
                continue
            if record.run_mode != "isolated" or not record.project_path:
                continue
            path = Path(record.project_path)
            if path.is_dir() and self.layout.contains(path):
                return record.project_path
        return None

    # disable ----------------------------------------------------------------

    def is_active(self, container_name: str) -> bool:
        """Cheapest check first; an unanswerable existence check counts as active."""

        live = self.runtime.collect_live_containers()
        if any(container.name == container_name for container in live):
            return True
        try:
            if self.runtime.is_running(container_name):
                return True
        except ContainerRuntimeError as exc:
            logger.debug("is_running(%s) failed: %s", container_name, exc)
        try:
            return self.runtime.exists(container_name)
        except ContainerRuntimeError as exc:
            logger.warning("Unable to confirm that %s is gone, keeping it: %s", container_name, exc)
            return True

    def disable(self, reference: str) -> DisableResult:
        ref = str(reference or "").strip()
        removed: List[AgentRecord] = []

        def mutate(entries: RegistryMap) -> DisableResult:
            candidates = find_candidates(entries, ref)
            # read only; a missing _config section stays missing
            cfg = entries.get(CONFIG_KEY)
            static = cfg.get("static") if isinstance(cfg, dict) else None
            if not isinstance(static, dict):
                static = None

            if not candidates:
                if static and static.get("agent") == ref:
                    cfg.pop("static", None)
                    return DisableResult("static-removed", ref)
                return DisableResult("not-found", ref)
            reject_alias_only_matches(ref, candidates)
            if len(candidates) > 1:
                return DisableResult("ambiguous", ref, candidates=candidate_hints(candidates))

            key, record = candidates[0]
            if self.is_active(key):
                return DisableResult(
                    "container-exists",
                    ref,
                    container_name=key,
                    agent_name=record.agent_name,
                    repo_name=record.repo_name,
                )
            del entries[key]
            if static and static.get("agent") in static_match_set(record):
                cfg.pop("static", None)
            removed.append(record)
            return DisableResult(
                "removed",
                ref,
                container_name=key,
                agent_name=record.agent_name,
                repo_name=record.repo_name,
            )

        result = self.registry.with_registry(mutate)
        for record in removed:
            remove_agent_symlinks(self.layout, record.base_identity)
        logger.info("disable %s: %s", ref, result.status)
        return result

    # services ---------------------------------------------------------------

    def container_env(
        self,
        container_name: str,
        record: AgentRecord,
        manifest: AgentManifest,
        profile: str,
        profile_config: Optional[ProfileConfig],
    ) -> Tuple[Dict[str, str], List[str]]:
        """Environment for the agent container and the required names still missing."""

        lookup = self.secrets.get
        resolved = resolve_env(manifest.env, lookup)
        env: Dict[str, str] = {}
        env.update(resolve_expose(manifest.expose, lookup))
        env.update(resolved.values)
        if profile_config is not None:
            env.update(profile_config.explicit_env())
            env.update(self.secrets.get_many(profile_config.pulled_env()))
            env.update(self.secrets.get_many(profile_config.secrets))
        env.update(
            profile_env_vars(
                record.agent_name,
                record.repo_name,
                profile,
                cwd=self.layout.root,
                container_name=container_name,
            )
        )
        env["AGENT_NAME"] = record.agent_name
        env["WORKSPACE_PATH"] = str(self.work_dir_for(record))
        return env, [binding.source_name for binding in resolved.missing]

    def _mounts(self, record: AgentRecord) -> List[Mount]:
        mounts = [Mount(bind.source, bind.target, bind.read_only) for bind in record.config.binds]
        work_dir = str(self.work_dir_for(record))
        if not any(mount.source == work_dir for mount in mounts):
            mounts.append(Mount(work_dir, work_dir))
        return mounts

    def _host_port(self, container_name: str, record: AgentRecord) -> Optional[int]:
        if not record.config.ports:
            return None
        try:
            return self.runtime.host_port(container_name, record.config.ports[0].container_port)
        except ContainerRuntimeError as exc:
            logger.debug("host_port(%s) failed: %s", container_name, exc)
            return None

    def ensure_service(
        self,
        container_name: str,
        record: AgentRecord,
        manifest: AgentManifest,
        force_recreate: bool = False,
    ) -> ServiceInfo:
        if not force_recreate and self.runtime.is_running(container_name):
            return ServiceInfo(container_name, self._host_port(container_name, record), created=False)

        if self.runtime.exists(container_name):
            logger.info("Removing stale container %s", container_name)
            self.runtime.remove(container_name)

        profile = self.active_profile()
        profile_config = profile_config_for(manifest, profile)
        env, missing = self.container_env(container_name, record, manifest, profile, profile_config)
        if missing:
            message = self.secrets.format_missing_error(missing, profile)
            return ServiceInfo(container_name, created=False, lifecycle=LifecycleResult(False, [], [message]))

        command = ["sh", "-lc", manifest.run] if manifest.run else list(IDLE_COMMAND)

        def create() -> str:
            self.runtime.run(
                record.container_image or self.settings.default_image,
                name=container_name,
                mounts=self._mounts(record),
                env=env,
                ports=[port.publish_flag() for port in record.config.ports],
                workdir=self.settings.container_workdir,
                command=command,
            )
            return f"created {container_name}"

        def start() -> str:
            if self.runtime.is_running(container_name):
                return f"{container_name} running"
            result = self.runtime.start(container_name)
            if not result.ok:
                raise ContainerRuntimeError(
                    f"Failed to start '{container_name}': {result.stderr.strip() or result.returncode}"
                )
            return f"started {container_name}"

        ctx = LifecycleContext(
            agent_name=record.agent_name,
            repo_name=record.repo_name,
            agent_path=manifest.agent_dir,
            work_dir=self.work_dir_for(record),
            profile=profile,
            profile_config=profile_config,
            container_name=container_name,
            link_name=record.base_identity,
            install_command=manifest.install,
            image=record.container_image or self.settings.default_image,
        )
        result = self.lifecycle.run(ctx, create_container=create, start_container=start)
        return ServiceInfo(
            container_name,
            self._host_port(container_name, record),
            created=True,
            lifecycle=result,
        )

    # refresh ----------------------------------------------------------------

    def refresh(self, reference: str) -> RefreshResult:
        entries = self.registry.load()
        resolution = resolve_reference(entries, reference)
        container, record = resolution.container_name, resolution.record
        if not self.runtime.is_running(container):
            raise ConflictError(f"Agent '{reference}' is not running; start it before refreshing.")

        self.runtime.stop_and_remove(container)
        manifest = self.load_manifest_for(record)
        service = self.ensure_service(container, record, manifest, force_recreate=True)

        routing = load_routing(self.layout.routing_path)
        update_route(
            routing,
            agent=record.agent_name,
            repo=record.repo_name,
            container=container,
            host_path=str(manifest.agent_dir),
            alias=record.alias,
            host_port=service.host_port,
        )
        static = routing.get("static") if isinstance(routing.get("static"), dict) else None
        static_updated = False
        if static and static.get("agent") in static_match_set(record):
            set_static(
                routing,
                agent=str(static["agent"]),
                container=container,
                host_path=str(manifest.agent_dir),
                port=int(routing.get("port") or self.settings.router_port),
            )
            static_updated = True
        save_routing(self.layout.routing_path, routing)
        logger.info("Refreshed %s", container)
        return RefreshResult(container, record.agent_name, record.repo_name, service, static_updated)

    # start ------------------------------------------------------------------

    def start_order(self, entries: RegistryMap, static_key: Optional[str]) -> List[str]:
        """Dependencies first, the static agent (and its aliases) last."""

        records = agent_entries(entries)
        static_record = entries.get(static_key) if static_key else None
        if not isinstance(static_record, AgentRecord):
            return [key for key, _ in records]
        identity = (static_record.repo_name, static_record.agent_name)
        dependencies = [key for key, rec in records if (rec.repo_name, rec.agent_name) != identity]
        statics = [
            key
            for key, rec in records
            if (rec.repo_name, rec.agent_name) == identity and key != static_key
        ]
        return dependencies + statics + [static_key]

    def _resolve_static(self, entries: RegistryMap, reference: str) -> Tuple[str, AgentRecord]:
        candidates = find_candidates(entries, reference)
        if not candidates:
            raise NotFoundError(
                f"start: static agent '{reference}' not found. Use 'enable <repo/name>' first."
            )
        preferred = [item for item in candidates if not item[1].alias]
        if len(preferred) > 1:
            raise AmbiguousReferenceError(reference, candidate_hints(preferred))
        return (preferred or candidates)[0]

    def _apply_enable_directives(self, manifest: AgentManifest, failures: Dict[str, str]) -> None:
        for directive in manifest.enable:
            entries = self.registry.load()
            if directive.alias:
                already = any(rec.alias == directive.alias for _, rec in agent_entries(entries))
            else:
                already = bool(find_candidates(entries, directive.reference))
            if already:
                continue
            try:
                self.enable(directive.reference, alias=directive.alias)
            except FleetError as exc:
                logger.warning("enable directive '%s' failed: %s", directive.reference, exc)
                failures[directive.reference] = str(exc)

    def start(self, static_agent: Optional[str] = None, port: Optional[int] = None) -> StartResult:
        if static_agent:
            if not find_candidates(self.registry.load(), static_agent):
                self.enable(static_agent)

            def store_static(entries: RegistryMap) -> None:
                cfg = registry_config(entries)
                previous = cfg.get("static") if isinstance(cfg.get("static"), dict) else {}
                cfg["static"] = {
                    "agent": static_agent,
                    "port": int(port or previous.get("port") or self.settings.router_port),
                }

            self.registry.with_registry(store_static)

        cfg = registry_config(self.registry.load())
        static = cfg.get("static") if isinstance(cfg.get("static"), dict) else {}
        static_ref = str(static.get("agent") or "")
        if not static_ref or not static.get("port"):
            raise ValidationError("start: missing static agent or port. Usage: start <staticAgent> <port> (first time).")
        static_port = int(static["port"])

        clear_preinstall_markers(self.layout)
        result = StartResult(static_agent=static_ref, port=static_port, routing_path=self.layout.routing_path)

        def collapse(entries: RegistryMap) -> RegistryMap:
            collapsed = dedup(entries, self._name_fn)
            entries.clear()
            entries.update(collapsed)
            return collapsed

        _, static_record = self._resolve_static(self.registry.with_registry(collapse), static_ref)
        static_manifest = self.load_manifest_for(static_record)
        self._apply_enable_directives(static_manifest, result.failures)

        entries = self.registry.with_registry(collapse)
        static_key, static_record = self._resolve_static(entries, static_ref)
        result.order = self.start_order(entries, static_key)

        routing = load_routing(self.layout.routing_path)
        for key in result.order:
            record = entries[key]
            try:
                manifest = static_manifest if key == static_key else self.load_manifest_for(record)
                service = self.ensure_service(key, record, manifest)
            except FleetError as exc:
                logger.error("Failed to start agent '%s': %s", record.agent_name, exc)
                result.failures[key] = str(exc)
                continue
            result.services[key] = service
            if service.lifecycle is not None and not service.lifecycle.steps:
                result.failures[key] = "; ".join(service.lifecycle.errors)
                continue
            if not service.healthy:
                result.failures[key] = "; ".join(service.lifecycle.errors)
            update_route(
                routing,
                agent=record.agent_name,
                repo=record.repo_name,
                container=key,
                host_path=str(manifest.agent_dir),
                alias=record.alias,
                host_port=service.host_port,
            )

        set_static(
            routing,
            agent=static_ref,
            container=static_key,
            host_path=str(static_manifest.agent_dir),
            port=static_port,
        )
        save_routing(self.layout.routing_path, routing)
        if result.failures:
            logger.warning(
                "%d agent(s) failed to start: %s", len(result.failures), ", ".join(sorted(result.failures))
            )
        return result

    # inspection -------------------------------------------------------------

    def list_agents(self) -> List[Tuple[str, AgentRecord]]:
        return agent_entries(self.registry.load())

    def running_containers(self) -> Optional[Set[str]]:
        try:
            return set(self.runtime.running_names())
        except ContainerRuntimeError as exc:
            logger.debug("running_names failed: %s", exc)
            return None


def build_fleet(bundle: ConfigurationBundle, runtime: Optional[ContainerRuntime] = None) -> FleetManager:
    """Wire a `FleetManager` from a loaded configuration bundle."""

    layout = WorkspaceLayout.from_bundle(bundle)
    runtime = runtime or ContainerRuntime.from_bundle(bundle)
    lock_timeout = float(bundle.section("workspace").get("lock_timeout", 10.0))
    registry = AgentRegistry(layout.registry_path, lock_timeout=lock_timeout)
    secrets = SecretResolver(layout.secrets_path, search_dir=layout.root)
    installer = DependencyInstaller(runtime, DependencySettings.from_bundle(bundle))
    engine = LifecycleEngine(layout, runtime, installer, secrets, HookSettings.from_bundle(bundle))
    return FleetManager(layout, registry, runtime, engine, FleetSettings.from_bundle(bundle))


__all__ = [
    "DisableResult",
    "EnableResult",
    "FleetManager",
    "FleetSettings",
    "RefreshResult",
    "ServiceInfo",
    "StartResult",
    "build_fleet",
    "split_enable_arguments",
    "static_match_set",
]
