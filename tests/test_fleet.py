"""Fleet manager behaviour against a scripted container runtime."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from flotilla.agents.fleet import split_enable_arguments, static_match_set
from flotilla.agents.registry import AgentRecord, registry_config
from flotilla.errors import (
    AmbiguousReferenceError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


def _routes(fleet) -> dict:
    return json.loads(fleet.layout.routing_path.read_text(encoding="utf-8"))


def test_enable_registers_isolated_agent(fleet, manifest_writer, workspace: Path):
    manifest_path = manifest_writer("repoA", "demo")

    result = fleet.enable("demo")

    assert result.container_name == "repoA-demo"
    assert result.repo_name == "repoA"
    assert result.short_agent_name == "demo"
    assert result.run_mode == "isolated"
    assert result.project_path == str(workspace / "agents" / "demo")
    assert (workspace / "agents" / "demo").is_dir()
    assert (workspace / "code" / "demo").resolve() == manifest_path.parent

    entries = fleet.registry.load()
    record = entries["repoA-demo"]
    assert isinstance(record, AgentRecord)
    assert record.container_image == "node:18-alpine"
    assert [port.container_port for port in record.config.ports] == [7000]


def test_enable_twice_keeps_single_entry(fleet, manifest_writer):
    manifest_writer("repoA", "demo")

    fleet.enable("demo")
    fleet.enable("repoA/demo")

    keys = [key for key, _ in fleet.list_agents()]
    assert keys == ["repoA-demo"]


def test_enable_alias_coexists_with_plain_record(fleet, manifest_writer, workspace: Path):
    manifest_writer("repoA", "demo")

    fleet.enable("repoA/demo")
    aliased = fleet.enable("repoA/demo", alias="demo2")

    assert aliased.container_name == "repoA-demo2"
    assert aliased.project_path == str(workspace / "agents" / "demo2")
    keys = sorted(key for key, _ in fleet.list_agents())
    assert keys == ["repoA-demo", "repoA-demo2"]


def test_enable_rejects_duplicate_and_invalid_alias(fleet, manifest_writer):
    manifest_writer("repoA", "demo")
    fleet.enable("demo", alias="helper")

    with pytest.raises(ConflictError):
        fleet.enable("demo", alias="helper")
    with pytest.raises(ValidationError):
        fleet.enable("demo", alias="-bad")


def test_enable_global_and_devel_modes(fleet, manifest_writer, workspace: Path):
    manifest_writer("repoA", "demo")
    (workspace / ".flotilla" / "repos" / "tools").mkdir()

    assert fleet.enable("demo global").project_path == str(workspace)

    devel = fleet.enable("demo devel tools")
    assert devel.run_mode == "devel"
    assert devel.project_path == str(workspace / ".flotilla" / "repos" / "tools")
    assert fleet.registry.load()["repoA-demo"].devel_repo == "tools"

    with pytest.raises(NotFoundError):
        fleet.enable("demo devel missing")
    with pytest.raises(ValidationError):
        fleet.enable("demo", mode="sideways")


def test_enable_ambiguous_bare_name(fleet, manifest_writer):
    manifest_writer("repoA", "demo")
    manifest_writer("repoB", "demo")

    with pytest.raises(AmbiguousReferenceError) as excinfo:
        fleet.enable("demo")

    assert excinfo.value.candidates == ["repoA/demo", "repoB/demo"]


def test_enable_unknown_agent(fleet):
    with pytest.raises(NotFoundError):
        fleet.enable("ghost")


def test_disable_removes_stopped_agent(fleet, manifest_writer, workspace: Path):
    manifest_writer("repoA", "demo")
    fleet.enable("demo")

    result = fleet.disable("demo")

    assert result.status == "removed"
    assert result.message == "✓ Agent 'demo' from repo 'repoA' disabled."
    assert fleet.list_agents() == []
    assert not (workspace / "code" / "demo").is_symlink()


def test_disable_refuses_while_container_exists(fleet, fake_runtime, manifest_writer):
    manifest_writer("repoA", "demo")
    fleet.enable("demo")
    fake_runtime.existing.add("repoA-demo")

    result = fleet.disable("demo")

    assert result.status == "container-exists"
    assert "repoA-demo" in result.message
    assert [key for key, _ in fleet.list_agents()] == ["repoA-demo"]


def test_disable_keeps_entry_when_existence_is_unknown(fleet, fake_runtime, manifest_writer):
    manifest_writer("repoA", "demo")
    fleet.enable("demo")
    fake_runtime.exists_error = True

    assert fleet.disable("demo").status == "container-exists"


def test_disable_keeps_entry_when_engine_is_down(fleet, fake_runtime, manifest_writer):
    manifest_writer("repoA", "demo")
    fleet.enable("demo")
    fake_runtime.daemon_down = True

    result = fleet.disable("demo")

    assert result.status == "container-exists"
    assert [key for key, _ in fleet.list_agents()] == ["repoA-demo"]


def test_disable_refuses_while_container_runs(fleet, fake_runtime, manifest_writer):
    manifest_writer("repoA", "demo")
    fleet.enable("demo")
    fake_runtime.running.add("repoA-demo")

    result = fleet.disable("repoA/demo")

    assert result.status == "container-exists"
    assert result.container_name == "repoA-demo"
    assert [key for key, _ in fleet.list_agents()] == ["repoA-demo"]


def test_disable_leaves_registry_untouched_when_nothing_is_removed(fleet, manifest_writer, layout):
    manifest_writer("repoA", "demo")
    manifest_writer("repoB", "demo")
    fleet.enable("repoA/demo")
    fleet.enable("repoB/demo")
    before = json.loads(layout.registry_path.read_text(encoding="utf-8"))

    assert fleet.disable("nothing").status == "not-found"
    assert fleet.disable("demo").status == "ambiguous"

    after = json.loads(layout.registry_path.read_text(encoding="utf-8"))
    assert after == before
    assert "_config" not in after


def test_disable_namespaced_reference_with_only_aliases(fleet, manifest_writer):
    manifest_writer("repoA", "demo")
    fleet.enable("repoA/demo", alias="first")
    fleet.enable("repoA/demo", alias="second")

    with pytest.raises(ValidationError, match="only enabled under aliases: first, second"):
        fleet.disable("repoA/demo")

    assert fleet.disable("first").status == "removed"
    assert fleet.disable("repoA/demo").status == "removed"
    assert fleet.list_agents() == []


def test_disable_ambiguous_and_missing(fleet, manifest_writer):
    manifest_writer("repoA", "demo")
    manifest_writer("repoB", "demo")
    fleet.enable("repoA/demo")
    fleet.enable("repoB/demo")

    ambiguous = fleet.disable("demo")
    assert ambiguous.status == "ambiguous"
    assert ambiguous.candidates == ["repoA/demo", "repoB/demo"]
    assert "  - repoA/demo" in ambiguous.message

    assert fleet.disable("repoB/demo").status == "removed"
    assert fleet.disable("nothing").status == "not-found"


def test_disable_clears_dangling_static_pointer(fleet):
    def seed(entries):
        registry_config(entries)["static"] = {"agent": "ghost", "port": 8080}

    fleet.registry.with_registry(seed)

    result = fleet.disable("ghost")

    assert result.status == "static-removed"
    assert "static" not in registry_config(fleet.registry.load())


def test_start_requires_static_agent(fleet):
    with pytest.raises(ValidationError):
        fleet.start()


def test_start_enables_directives_and_orders_static_last(fleet, fake_runtime, manifest_writer):
    manifest_writer("repoA", "web", {"container": "node:20", "enable": ["repoA/db", "repoA/cache as cache2"]})
    manifest_writer("repoA", "db")
    manifest_writer("repoA", "cache")

    result = fleet.start("repoA/web", 9000)

    assert result.success, result.failures
    assert sorted(result.order) == ["repoA-cache2", "repoA-db", "repoA-web"]
    assert result.order[-1] == "repoA-web"
    assert all(service.created for service in result.services.values())
    assert [call[call.index("--name") + 1] for call in fake_runtime.calls_for("run")] == result.order

    routing = _routes(fleet)
    assert routing["port"] == 9000
    assert routing["static"]["container"] == "repoA-web"
    assert set(routing["routes"]) == {"web", "db", "cache2"}
    assert routing["routes"]["cache2"]["alias"] == "cache2"

    static = registry_config(fleet.registry.load())["static"]
    assert static == {"agent": "repoA/web", "port": 9000}


def test_second_start_reuses_running_containers(fleet, fake_runtime, manifest_writer):
    manifest_writer("repoA", "web")
    fleet.start("repoA/web", 9000)

    again = fleet.start()

    assert again.static_agent == "repoA/web"
    assert again.port == 9000
    assert not again.services["repoA-web"].created
    assert len(fake_runtime.calls_for("run")) == 1


def test_start_removes_stale_container_before_recreating(fleet, fake_runtime, manifest_writer):
    manifest_writer("repoA", "web")
    fake_runtime.existing.add("repoA-web")

    fleet.start("repoA/web", 9000)

    verbs = [call[0] for call in fake_runtime.calls]
    assert verbs.index("rm") < verbs.index("run")


def test_start_collapses_duplicate_records(fleet, manifest_writer):
    manifest_writer("repoA", "web")
    fleet.enable("repoA/web")

    def duplicate(entries):
        entries["stale-web"] = entries["repoA-web"]

    fleet.registry.with_registry(duplicate)

    result = fleet.start("repoA/web", 9000)

    assert result.order == ["repoA-web"]
    assert "stale-web" not in fleet.registry.load()


def test_start_reports_missing_required_env(fleet, manifest_writer):
    manifest_writer("repoA", "web", {"enable": ["repoA/db"]})
    manifest_writer("repoA", "db", {"env": [{"name": "API_KEY", "required": True}]})

    result = fleet.start("repoA/web", 9000)

    assert not result.success
    assert "Missing required secrets" in result.failures["repoA-db"]
    assert "API_KEY" in result.failures["repoA-db"]
    assert "repoA-web" in result.services


def test_start_passes_resolved_env_to_container(fleet, fake_runtime, manifest_writer, secrets_env):
    secrets_env["API_KEY"] = "s3cret"
    manifest_writer(
        "repoA",
        "web",
        {
            "env": [{"name": "API_KEY", "required": True}, "MODE=fast"],
            "expose": {"UPSTREAM": "$API_KEY"},
            "ports": ["8081:7000"],
        },
    )

    result = fleet.start("repoA/web", 9000)

    assert result.success, result.failures
    run_call = fake_runtime.calls_for("run")[0]
    assert "API_KEY=s3cret" in run_call
    assert "MODE=fast" in run_call
    assert "UPSTREAM=s3cret" in run_call
    assert "AGENT_NAME=web" in run_call
    assert "127.0.0.1:8081:7000" in run_call
    assert run_call[-3:] == ["sh", "-c", "tail -f /dev/null"]


def test_start_runs_profile_hooks(fleet, fake_runtime, manifest_writer):
    manifest_path = manifest_writer(
        "repoA",
        "web",
        {
            "profiles": {
                "default": {
                    "preinstall": "echo $FLOTILLA_PROFILE > pre.txt",
                    "install": "npm ci",
                }
            }
        },
    )

    result = fleet.start("repoA/web", 9000)

    lifecycle = result.services["repoA-web"].lifecycle
    assert lifecycle.success, lifecycle.errors
    assert lifecycle.step("preinstall").success
    assert (manifest_path.parent / "pre.txt").read_text().strip() == "dev"
    hook_execs = [entry for entry in fake_runtime.execs if entry["command"] == ["sh", "-c", "npm ci"]]
    assert hook_execs and hook_execs[0]["env"]["FLOTILLA_AGENT_NAME"] == "web"


def test_start_fails_agent_with_missing_profile_secret(fleet, manifest_writer):
    manifest_writer("repoA", "web", {"profiles": {"default": {"secrets": ["TOKEN"]}}})

    result = fleet.start("repoA/web", 9000)

    assert "Missing required secrets for profile 'dev'" in result.failures["repoA-web"]
    assert result.services["repoA-web"].lifecycle.steps == []


def test_refresh_requires_running_container(fleet, manifest_writer):
    manifest_writer("repoA", "web")
    fleet.enable("repoA/web")

    with pytest.raises(ConflictError):
        fleet.refresh("web")


def test_refresh_recreates_and_updates_static_route(fleet, fake_runtime, manifest_writer):
    manifest_writer(
        "repoA",
        "web",
        {"profiles": {"default": {"preinstall": "echo once"}}},
    )
    fleet.start("repoA/web", 9000)

    result = fleet.refresh("web")

    assert result.container_name == "repoA-web"
    assert result.static_updated
    assert result.service.created
    assert result.service.lifecycle.step("preinstall").skipped
    assert len(fake_runtime.calls_for("run")) == 2
    assert fake_runtime.calls_for("stop")
    assert _routes(fleet)["static"]["container"] == "repoA-web"


def test_start_order_places_static_identity_last(fleet, manifest_writer):
    manifest_writer("repoA", "web")
    manifest_writer("repoA", "db")
    fleet.enable("repoA/web")
    fleet.enable("repoA/web", alias="web2")
    fleet.enable("repoA/db")
    entries = fleet.registry.load()

    order = fleet.start_order(entries, "repoA-web")

    assert order == ["repoA-db", "repoA-web2", "repoA-web"]
    assert fleet.start_order(entries, None) == [key for key, _ in fleet.list_agents()]


def test_split_enable_arguments_forms():
    assert split_enable_arguments("demo") == ("demo", None, None)
    assert split_enable_arguments("demo global") == ("demo", "global", None)
    assert split_enable_arguments("demo devel tools") == ("demo", "devel", "tools")
    assert split_enable_arguments("demo:devel tools") == ("demo", "devel", "tools")
    assert split_enable_arguments("repoA:demo") == ("repoA:demo", None, None)


def test_static_match_set_includes_alias():
    record = AgentRecord("web", "repoA", "img", "/tmp", alias="front")

    assert static_match_set(record) == {"web", "repoA/web", "repoA:web", "front"}
