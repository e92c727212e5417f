"""Tests for the JSON agent registry."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from flotilla.agents.naming import canonical_name
from flotilla.agents.registry import (
    AgentConfig,
    AgentRecord,
    AgentRegistry,
    Bind,
    PortBinding,
    agent_entries,
    dedup,
    registry_config,
)
from flotilla.errors import RegistryError


def _record(agent: str = "demo", repo: str = "repoA", alias: str | None = None) -> AgentRecord:
    return AgentRecord(
        agent_name=agent,
        repo_name=repo,
        container_image="node:18-alpine",
        project_path=f"/ws/agents/{alias or agent}",
        alias=alias,
        config=AgentConfig(
            binds=[Bind("/ws/agents/demo", "/ws/agents/demo"), Bind("/src", "/code", read_only=True)],
            ports=[PortBinding(7000)],
        ),
    )


def test_load_missing_registry_is_empty(tmp_path: Path):
    assert AgentRegistry(tmp_path / "agents.json").load() == {}


def test_round_trip_preserves_opaque_entries(tmp_path: Path):
    path = tmp_path / "agents.json"
    path.write_text(
        json.dumps(
            {
                "repoA-demo": _record().to_dict(),
                "legacy": {"type": "service", "note": "keep me"},
                "_config": {"static": {"agent": "demo", "port": 8080}},
            }
        ),
        encoding="utf-8",
    )
    registry = AgentRegistry(path)

    entries = registry.load()
    registry.save(entries)
    raw = json.loads(path.read_text(encoding="utf-8"))

    assert isinstance(entries["repoA-demo"], AgentRecord)
    assert raw["legacy"] == {"type": "service", "note": "keep me"}
    assert raw["_config"]["static"]["port"] == 8080
    assert raw["repoA-demo"]["config"]["binds"][1] == {"source": "/src", "target": "/code", "ro": True}
    assert raw["repoA-demo"]["type"] == "agent"


def test_unknown_record_fields_survive(tmp_path: Path):
    data = _record().to_dict()
    data["labels"] = ["blue"]
    record = AgentRecord.from_dict(data)

    assert record.to_dict()["labels"] == ["blue"]


def test_invalid_json_raises_registry_error(tmp_path: Path):
    path = tmp_path / "agents.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(RegistryError):
        AgentRegistry(path).load()


def test_with_registry_saves_mutation(tmp_path: Path):
    registry = AgentRegistry(tmp_path / "state" / "agents.json")

    def mutate(entries):
        entries["repoA-demo"] = _record()
        registry_config(entries)["static"] = {"agent": "demo", "port": 9000}
        return "done"

    assert registry.with_registry(mutate) == "done"
    entries = registry.load()
    assert [key for key, _ in agent_entries(entries)] == ["repoA-demo"]
    assert entries["_config"]["static"]["port"] == 9000
    assert not (tmp_path / "state" / "agents.json.tmp").exists()


def test_with_registry_discards_failed_mutation(tmp_path: Path):
    registry = AgentRegistry(tmp_path / "agents.json")
    registry.save({"repoA-demo": _record()})

    def mutate(entries):
        entries.clear()
        raise ValueError("boom")

    with pytest.raises(ValueError):
        registry.with_registry(mutate)
    assert "repoA-demo" in registry.load()


def test_lock_times_out_when_held(tmp_path: Path):
    path = tmp_path / "agents.json"
    holder = AgentRegistry(path)
    contender = AgentRegistry(path, lock_timeout=0.2)

    with holder.locked():
        with pytest.raises(RegistryError):
            with contender.locked():
                pass


def test_dedup_collapses_plain_duplicates_to_canonical_key():
    canonical = _record()
    entries = {
        "old-demo": _record(),
        "repoA-demo": canonical,
        "repoA-helper": _record(alias="helper"),
        "opaque": {"type": "other"},
        "_config": {"static": {"agent": "demo"}},
    }

    result = dedup(entries, canonical_name)

    assert sorted(result) == ["_config", "opaque", "repoA-demo", "repoA-helper"]
    assert result["repoA-demo"] is canonical


def test_dedup_rekeys_single_record_under_canonical_name():
    record = _record(repo="repoB")

    result = dedup({"stale": record}, canonical_name)

    assert list(result) == ["repoB-demo"]


def test_dedup_is_idempotent():
    entries = {
        "old-demo": _record(),
        "repoA-demo": _record(),
        "stale": _record(repo="repoB"),
        "repoA-helper": _record(alias="helper"),
        "_config": {"static": {"agent": "demo"}},
    }

    once = dedup(entries, canonical_name)
    twice = dedup(once, canonical_name)

    assert twice == once
    assert list(twice) == list(once)
    assert sorted(once) == ["_config", "repoA-demo", "repoA-helper", "repoB-demo"]


def test_publish_flag_defaults_to_loopback():
    assert PortBinding(7000).publish_flag() == "127.0.0.1::7000"
    assert PortBinding(7000, 8080, "0.0.0.0").publish_flag() == "0.0.0.0:8080:7000"
