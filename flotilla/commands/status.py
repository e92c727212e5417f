"""Slash command for workspace status."""

from __future__ import annotations

from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..agents.workspace import verify_workspace_structure
from ..errors import ContainerRuntimeError
from ..slash_commands import SlashCommand, SlashCommandContext, render_rich

DEFAULT_MAX_ROWS = 5


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    config = context.config
    fleet = context.fleet
    show_all = any(arg.strip().lower() in {"--all", "-a", "all"} for arg in args)
    issues = verify_workspace_structure(fleet.layout)
    running = fleet.running_containers()
    try:
        engine = fleet.runtime.engine
    except ContainerRuntimeError:
        engine = "(not found)"

    def _render(console: Console) -> None:
        info = Table.grid(padding=(0, 1))
        info.add_column("Key", style="bold", no_wrap=True)
        info.add_column("Value", overflow="fold")
        info.add_row("Workspace", str(config.workspace_dir))
        info.add_row("Status", config.status)
        info.add_row("Config files", str(len(config.files_loaded)))
        info.add_row("Log path", str(config.log_path or "(not initialized)"))
        info.add_row("Engine", engine)
        info.add_row("Profile", fleet.active_profile())
        info.add_row("Agents enabled", str(len(fleet.list_agents())))
        info.add_row("Containers running", "unknown" if running is None else str(len(running)))
        console.print(Panel(info, title="Workspace Status", border_style="green", padding=(0, 1)))

        rows = [(diag.level.upper(), diag.message) for diag in config.diagnostics]
        rows.extend(("LAYOUT", issue) for issue in issues)
        if not rows:
            console.print(Panel("[green]No diagnostics reported.", title="Diagnostics", border_style="red"))
            return

        table = Table(show_header=True, header_style="bold red", box=box.SIMPLE, pad_edge=False)
        table.add_column("Lvl", style="red", no_wrap=True)
        table.add_column("Message", overflow="fold")
        max_rows = len(rows) if show_all else DEFAULT_MAX_ROWS
        for row in rows[:max_rows]:
            table.add_row(*row)
        console.print(Panel(table, title="Diagnostics", border_style="red", padding=(0, 1)))
        if len(rows) > max_rows:
            console.print(
                f"[dim]Showing {max_rows}/{len(rows)}. Use '/status --all' for the full list.[/dim]"
            )

    return render_rich(_render)


COMMAND = SlashCommand(
    name="status",
    description="Show workspace, configuration and layout diagnostics.",
    handler=_handler,
    usage="/status [--all]",
)
