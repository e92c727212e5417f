"""Tests for the workspace layout helpers."""

from __future__ import annotations

from pathlib import Path

from flotilla.agents.workspace import (
    WorkspaceLayout,
    create_agent_symlinks,
    create_agent_work_dir,
    init_workspace_structure,
    remove_agent_symlinks,
    remove_agent_work_dir,
    verify_workspace_structure,
)
from flotilla.configuration import load_runtime_configuration


def _agent_source(tmp_path: Path, with_code: bool = True, with_skills: bool = True) -> Path:
    source = tmp_path / "src" / "demo"
    source.mkdir(parents=True)
    if with_code:
        (source / "code").mkdir()
    if with_skills:
        (source / ".AchillesSkills").mkdir()
    return source


def test_layout_from_bundle(tmp_path: Path):
    bundle = load_runtime_configuration(tmp_path)

    layout = WorkspaceLayout.from_bundle(bundle)

    assert layout.root == tmp_path.resolve()
    assert layout.registry_path == tmp_path.resolve() / ".flotilla" / "agents.json"
    assert layout.support_library_path == tmp_path.resolve() / ".flotilla" / "Agent"
    assert layout.contains(tmp_path / "agents" / "x")
    assert not layout.contains(tmp_path.parent)


def test_init_and_verify_structure(tmp_path: Path):
    layout = WorkspaceLayout(root=tmp_path)

    assert "Missing directory: agents" in verify_workspace_structure(layout)

    init_workspace_structure(layout)
    assert verify_workspace_structure(layout) == []


def test_symlinks_point_at_code_and_skills(tmp_path: Path):
    layout = WorkspaceLayout(root=tmp_path / "ws")
    source = _agent_source(tmp_path)

    warnings = create_agent_symlinks(layout, "demo", source)

    assert warnings == []
    assert (layout.code_dir / "demo").resolve() == (source / "code").resolve()
    assert (layout.skills_dir / "demo").resolve() == (source / ".AchillesSkills").resolve()

    create_agent_symlinks(layout, "demo", source)
    remove_agent_symlinks(layout, "demo")
    assert not (layout.code_dir / "demo").exists()
    assert not (layout.skills_dir / "demo").exists()


def test_symlink_falls_back_to_agent_dir_and_skips_missing_skills(tmp_path: Path):
    layout = WorkspaceLayout(root=tmp_path / "ws")
    source = _agent_source(tmp_path, with_code=False, with_skills=False)

    create_agent_symlinks(layout, "demo", source)

    assert (layout.code_dir / "demo").resolve() == source.resolve()
    assert not (layout.skills_dir / "demo").exists()


def test_real_directory_blocks_symlink_with_warning(tmp_path: Path):
    layout = WorkspaceLayout(root=tmp_path / "ws")
    source = _agent_source(tmp_path)
    (layout.code_dir / "demo").mkdir(parents=True)

    warnings = create_agent_symlinks(layout, "demo", source)

    assert len(warnings) == 1
    assert "is not a symlink" in warnings[0]
    assert not (layout.code_dir / "demo").is_symlink()


def test_verify_reports_broken_symlink(tmp_path: Path):
    layout = WorkspaceLayout(root=tmp_path)
    init_workspace_structure(layout)
    (layout.code_dir / "gone").symlink_to(tmp_path / "nowhere")

    issues = verify_workspace_structure(layout)

    assert issues == [f"Broken symlink: code/gone -> {tmp_path / 'nowhere'}"]


def test_work_dir_lifecycle(tmp_path: Path):
    layout = WorkspaceLayout(root=tmp_path)
    work_dir = create_agent_work_dir(layout, "demo")
    (work_dir / "state.txt").write_text("x", encoding="utf-8")

    remove_agent_work_dir(layout, "demo")
    assert work_dir.exists()

    remove_agent_work_dir(layout, "demo", force=True)
    assert not work_dir.exists()
