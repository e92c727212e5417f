"""Unit tests for slash command registry."""

from __future__ import annotations

from pathlib import Path

from flotilla.agents.lifecycle import LifecycleResult, LifecycleStepResult
from flotilla.configuration import ConfigurationBundle
from flotilla.errors import NotFoundError
from flotilla.slash_commands import (
    CommandRouter,
    SlashCommand,
    SlashCommandContext,
    render_help_table,
    render_lifecycle_summary,
    render_rich,
)


def test_router_handles_registered_command(tmp_path: Path):
    config = ConfigurationBundle(workspace_dir=tmp_path, status="ready")
    router = CommandRouter(config)
    captured = {}

    def handler(context: SlashCommandContext, args: list) -> str:
        captured["context"] = context
        return f"echo:{' '.join(args)}"

    router.register(SlashCommand(name="Echo", description="Echo args", handler=handler))
    result = router.handle("ECHO", ["hello", "world"])

    assert result == "echo:hello world"
    assert captured["context"].config is config
    assert captured["context"].router is router
    assert "echo" in router.command_names


def test_router_reports_unknown_command(tmp_path: Path):
    router = CommandRouter(ConfigurationBundle(workspace_dir=tmp_path, status="ready"))

    assert router.handle("nope", []) == "[router] unknown command '/nope'. Try /help."


def test_router_formats_fleet_errors(tmp_path: Path):
    router = CommandRouter(ConfigurationBundle(workspace_dir=tmp_path, status="ready"))

    def handler(*_):
        raise NotFoundError("Agent 'ghost' not found.")

    router.register(SlashCommand(name="boom", description="Raise", handler=handler))

    assert router.handle("boom", []) == "[boom] Agent 'ghost' not found."


def test_router_uses_injected_fleet(tmp_path: Path, fleet):
    router = CommandRouter(ConfigurationBundle(workspace_dir=tmp_path, status="ready"), fleet=fleet)
    router.register(
        SlashCommand(
            name="which",
            description="Show fleet root",
            handler=lambda context, _: str(context.fleet.layout.root),
        )
    )

    assert router.handle("which", []) == str(fleet.layout.root)


def test_render_help_table_lists_commands(tmp_path: Path, strip_ansi):
    config = ConfigurationBundle(workspace_dir=tmp_path, status="ready")
    router = CommandRouter(config)
    router.register(SlashCommand(name="status", description="Show status", handler=lambda *_: ""))
    router.register(SlashCommand(name="help", description="Show help", handler=lambda *_: ""))

    output = strip_ansi(render_help_table(router.commands()))

    assert "/status" in output
    assert "Show status" in output
    assert output.index("/help") < output.index("/status")


def test_render_rich_produces_ansi():
    def _render(console):
        console.print("hello", style="bold red")

    ansi = render_rich(_render)

    assert "\x1b[" in ansi  # contains ANSI escape sequence


def test_render_lifecycle_summary_marks_steps(strip_ansi):
    result = LifecycleResult(
        success=False,
        steps=[
            LifecycleStepResult(1, "workspace_init", True),
            LifecycleStepResult(3, "preinstall", True, skipped=True),
            LifecycleStepResult(8, "install", False, error="exit code 2"),
        ],
        errors=["install failed: exit code 2"],
    )

    output = strip_ansi(render_lifecycle_summary(result))

    assert "✓ Step 1: workspace init" in output
    assert "Step 3: preinstall (skipped)" in output
    assert "✗ Step 8: install" in output
    assert "Error: exit code 2" in output
    assert "Lifecycle completed with errors:" in output
    assert "- install failed: exit code 2" in output


def test_requires_ready_guard(tmp_path: Path):
    config = ConfigurationBundle(workspace_dir=tmp_path, status="invalid")
    router = CommandRouter(config)
    router.register(
        SlashCommand(
            name="needs_ready",
            description="Needs ready config",
            handler=lambda *_: "ok",
            requires_ready=True,
        )
    )

    result = router.handle("needs_ready", [])

    assert "requires a ready configuration" in result
