"""Tests for deployment profiles."""

from __future__ import annotations

from pathlib import Path

import pytest

from flotilla.agents.manifest import AgentManifest
from flotilla.agents.profiles import (
    ProfileConfig,
    get_active_profile,
    merge_env,
    merge_profiles,
    profile_config_for,
    profile_env_vars,
    set_active_profile,
)
from flotilla.errors import ManifestError, ValidationError


def _manifest(profiles: dict) -> AgentManifest:
    return AgentManifest(path=Path("/repos/repoA/demo/manifest.json"), repo="repoA", name="demo", profiles=profiles)


def test_merge_env_lists_by_name():
    merged = merge_env(["A=1", "B=2", {"name": "C", "value": "3"}], ["B=20", "D"])

    assert merged == ["B=20", "D", "A=1", {"name": "C", "value": "3"}]


def test_merge_env_mappings_and_mixed_forms():
    assert merge_env({"A": "1", "B": "2"}, {"B": "20"}) == {"A": "1", "B": "20"}
    assert merge_env({"A": "1"}, ["B=2"]) == ["B=2", "A=1"]


def test_merge_profiles_rules():
    default = {
        "preinstall": "echo default",
        "install": "npm ci",
        "secrets": ["A"],
        "mounts": {"data": "/data"},
        "ports": ["7000"],
    }
    active = {"install": "npm install", "secrets": ["B"], "mounts": {"cache": "/cache"}, "ports": ["8000"]}

    merged = merge_profiles(default, active)

    assert merged["preinstall"] == "echo default"
    assert merged["install"] == "npm install"
    assert merged["secrets"] == ["A", "B"]
    assert merged["mounts"] == {"data": "/data", "cache": "/cache"}
    assert merged["ports"] == ["8000"]


def test_profile_config_for_uses_active_profile():
    manifest = _manifest(
        {
            "default": {"env": ["LEVEL=info"], "install": "npm ci"},
            "prod": {"env": ["LEVEL=warn", "TOKEN"], "secrets": ["TOKEN"]},
        }
    )

    prod = profile_config_for(manifest, "prod")
    fallback = profile_config_for(manifest, "qa")

    assert prod.name == "prod"
    assert prod.hook("install") == "npm ci"
    assert prod.explicit_env() == {"LEVEL": "warn"}
    assert prod.pulled_env() == ["TOKEN"]
    assert prod.secrets == ["TOKEN"]
    assert fallback.name == "default"
    assert fallback.explicit_env() == {"LEVEL": "info"}


def test_profile_config_requires_default():
    assert profile_config_for(_manifest({}), "dev") is None
    with pytest.raises(ValidationError, match="missing required 'default' profile"):
        profile_config_for(_manifest({"dev": {}}), "dev")


def test_hook_must_be_a_string():
    with pytest.raises(ManifestError):
        ProfileConfig.from_dict("default", {"install": ["npm", "ci"]})


def test_active_profile_persistence(tmp_path: Path):
    assert get_active_profile(tmp_path) == "dev"

    assert set_active_profile(tmp_path, "QA") == "qa"
    assert get_active_profile(tmp_path) == "qa"

    with pytest.raises(ValidationError):
        set_active_profile(tmp_path, "staging")
    (tmp_path / "profile").write_text("garbage", encoding="utf-8")
    assert get_active_profile(tmp_path, default="prod") == "prod"


def test_profile_env_vars(tmp_path: Path):
    values = profile_env_vars("demo", "repoA", "prod", cwd=tmp_path, container_name="repoA-demo")

    assert values == {
        "FLOTILLA_PROFILE": "prod",
        "FLOTILLA_PROFILE_ENV": "production",
        "FLOTILLA_AGENT_NAME": "demo",
        "FLOTILLA_REPO_NAME": "repoA",
        "FLOTILLA_CWD": str(tmp_path),
        "FLOTILLA_CONTAINER_NAME": "repoA-demo",
    }
