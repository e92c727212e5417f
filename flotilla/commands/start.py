"""Slash command for starting the whole fleet."""

from __future__ import annotations

from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..slash_commands import SlashCommand, SlashCommandContext, render_rich

USAGE = "/start [staticAgent] [port]"


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    if len(args) > 2:
        return f"[start] Usage: {USAGE}"
    static_agent = args[0] if args else None
    port = None
    if len(args) == 2:
        if not args[1].isdigit():
            return f"[start] port must be a number. Usage: {USAGE}"
        port = int(args[1])

    result = context.fleet.start(static_agent, port)

    def _render(console: Console) -> None:
        table = Table(show_header=True, header_style="bold cyan", box=box.SIMPLE, pad_edge=False)
        table.add_column("Container", style="green", no_wrap=True)
        table.add_column("Host port", no_wrap=True)
        table.add_column("Result", overflow="fold")
        for key in result.order:
            service = result.services.get(key)
            port_text = str(service.host_port) if service and service.host_port else "-"
            if key in result.failures:
                outcome = f"[red]failed[/red]: {result.failures[key]}"
            elif service is not None and not service.created:
                outcome = "[green]already running[/green]"
            else:
                outcome = "[green]ready[/green]"
            table.add_row(key, port_text, outcome)
        console.print(
            Panel(
                table,
                title=f"Static agent {result.static_agent} on port {result.port}",
                border_style="green" if result.success else "red",
                padding=(0, 1),
            )
        )
        extra = {ref: error for ref, error in result.failures.items() if ref not in result.order}
        for ref, error in extra.items():
            console.print(f"[yellow]enable {ref}[/yellow]: {error}")
        console.print(f"Routing file: {result.routing_path}")

    return render_rich(_render)


COMMAND = SlashCommand(
    name="start",
    description="Start every enabled agent, static agent last, and write routes.",
    handler=_handler,
    usage=USAGE,
)
