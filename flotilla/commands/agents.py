"""Slash command for listing enabled agents."""

from __future__ import annotations

from typing import List

from rich.table import Table

from ..slash_commands import SlashCommand, SlashCommandContext, render_rich


def _handler(context: SlashCommandContext, _: List[str]) -> str:
    fleet = context.fleet
    entries = fleet.list_agents()
    running = fleet.running_containers()

    table = Table(title="Enabled Agents", show_header=True, header_style="bold cyan")
    table.add_column("Container", style="green", no_wrap=True)
    table.add_column("Agent", no_wrap=True)
    table.add_column("Alias", style="magenta")
    table.add_column("Mode", no_wrap=True)
    table.add_column("State", style="yellow", no_wrap=True)
    table.add_column("Project path", overflow="fold")

    for key, record in sorted(entries, key=lambda item: item[0]):
        if running is None:
            state = "unknown"
        else:
            state = "running" if key in running else "stopped"
        table.add_row(
            key,
            record.qualified_name,
            record.alias or "",
            record.run_mode,
            state,
            record.project_path,
        )

    if not entries:
        return "No agents enabled. Use '/enable <agent>' first."
    return render_rich(lambda console: console.print(table))


COMMAND = SlashCommand(
    name="agents",
    description="Show enabled agents and whether their containers run.",
    handler=_handler,
)
