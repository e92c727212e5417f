"""Workspace directory layout, per-agent working directories and symlinks."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shutil
from typing import List, Optional

from ..configuration import STATE_DIR_NAME, ConfigurationBundle

logger = logging.getLogger("flotilla.workspace")

SKILLS_DIRNAME = ".AchillesSkills"


@dataclass
class WorkspaceLayout:
    root: Path
    state_dir_name: str = STATE_DIR_NAME
    agents_dir_name: str = "agents"
    code_dir_name: str = "code"
    skills_dir_name: str = "skills"
    support_library: Optional[Path] = None

    @classmethod
    def from_bundle(cls, bundle: ConfigurationBundle) -> "WorkspaceLayout":
        raw = bundle.section("workspace")
        support = str(raw.get("support_library") or "").strip()
        return cls(
            root=Path(bundle.workspace_dir).resolve(),
            state_dir_name=str(raw.get("state_dir") or STATE_DIR_NAME),
            agents_dir_name=str(raw.get("agents_dir") or "agents"),
            code_dir_name=str(raw.get("code_dir") or "code"),
            skills_dir_name=str(raw.get("skills_dir") or "skills"),
            support_library=Path(support).expanduser() if support else None,
        )

    @property
    def state_dir(self) -> Path:
        return self.root / self.state_dir_name

    @property
    def agents_dir(self) -> Path:
        return self.root / self.agents_dir_name

    @property
    def code_dir(self) -> Path:
        return self.root / self.code_dir_name

    @property
    def skills_dir(self) -> Path:
        return self.root / self.skills_dir_name

    @property
    def repos_dir(self) -> Path:
        return self.state_dir / "repos"

    @property
    def registry_path(self) -> Path:
        return self.state_dir / "agents.json"

    @property
    def routing_path(self) -> Path:
        return self.state_dir / "routing.json"

    @property
    def secrets_path(self) -> Path:
        return self.state_dir / ".secrets"

    @property
    def markers_dir(self) -> Path:
        return self.state_dir / "markers"

    @property
    def support_library_path(self) -> Path:
        return self.support_library or (self.state_dir / "Agent")

    def agent_work_dir(self, agent_name: str) -> Path:
        return self.agents_dir / agent_name

    def agent_code_link(self, agent_name: str) -> Path:
        return self.code_dir / agent_name

    def agent_skills_link(self, agent_name: str) -> Path:
        return self.skills_dir / agent_name

    def contains(self, path: Path) -> bool:
        """True when `path` resolves inside the workspace root."""

        try:
            Path(path).resolve().relative_to(self.root)
        except ValueError:
            return False
        return True


def init_workspace_structure(layout: WorkspaceLayout) -> None:
    for directory in (layout.state_dir, layout.agents_dir, layout.code_dir, layout.skills_dir):
        directory.mkdir(parents=True, exist_ok=True)


def create_agent_work_dir(layout: WorkspaceLayout, agent_name: str) -> Path:
    work_dir = layout.agent_work_dir(agent_name)
    work_dir.mkdir(parents=True, exist_ok=True)
    return work_dir


def remove_agent_work_dir(layout: WorkspaceLayout, agent_name: str, force: bool = False) -> None:
    work_dir = layout.agent_work_dir(agent_name)
    if not work_dir.exists():
        return
    try:
        if force:
            shutil.rmtree(work_dir)
        else:
            work_dir.rmdir()
    except OSError as exc:
        logger.debug("Leaving working directory %s in place: %s", work_dir, exc)


def _replace_symlink(link: Path, target: Path, agent_name: str, kind: str) -> Optional[str]:
    if link.is_symlink():
        link.unlink()
    elif link.exists():
        message = f"{link} exists and is not a symlink. Skipping {kind} symlink for {agent_name}."
        logger.warning(message)
        return message
    try:
        link.symlink_to(target, target_is_directory=True)
    except FileExistsError:
        pass
    except OSError as exc:
        message = f"Failed to create {kind} symlink for {agent_name}: {exc}"
        logger.error(message)
        return message
    return None


def create_agent_symlinks(layout: WorkspaceLayout, agent_name: str, agent_path: Path) -> List[str]:
    """Link `code/<agent>` and `skills/<agent>` to the agent source.

    Returns the warnings raised for paths that could not be linked.
    """

    layout.code_dir.mkdir(parents=True, exist_ok=True)
    layout.skills_dir.mkdir(parents=True, exist_ok=True)
    agent_path = Path(agent_path)
    warnings: List[str] = []

    code_target = agent_path / "code"
    if not code_target.is_dir():
        code_target = agent_path
    warning = _replace_symlink(layout.agent_code_link(agent_name), code_target, agent_name, "code")
    if warning:
        warnings.append(warning)

    skills_target = agent_path / SKILLS_DIRNAME
    if skills_target.is_dir():
        warning = _replace_symlink(
            layout.agent_skills_link(agent_name), skills_target, agent_name, "skills"
        )
        if warning:
            warnings.append(warning)
    return warnings


def remove_agent_symlinks(layout: WorkspaceLayout, agent_name: str) -> None:
    for link in (layout.agent_code_link(agent_name), layout.agent_skills_link(agent_name)):
        try:
            if link.is_symlink():
                link.unlink()
        except OSError as exc:
            logger.debug("Unable to remove symlink %s: %s", link, exc)


def verify_workspace_structure(layout: WorkspaceLayout) -> List[str]:
    """Return integrity issues; an empty list means the layout is sound."""

    issues: List[str] = []
    for directory in (layout.state_dir, layout.agents_dir, layout.code_dir, layout.skills_dir):
        name = directory.name
        if not directory.exists():
            issues.append(f"Missing directory: {name}")
        elif not directory.is_dir():
            issues.append(f"{name} exists but is not a directory")

    for directory in (layout.code_dir, layout.skills_dir):
        if not directory.is_dir():
            continue
        for entry in sorted(directory.iterdir()):
            if entry.is_symlink() and not entry.exists():
                issues.append(f"Broken symlink: {directory.name}/{entry.name} -> {os.readlink(entry)}")
    return issues


__all__ = [
    "WorkspaceLayout",
    "create_agent_symlinks",
    "create_agent_work_dir",
    "init_workspace_structure",
    "remove_agent_symlinks",
    "remove_agent_work_dir",
    "verify_workspace_structure",
]
