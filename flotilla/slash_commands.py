"""Shared slash command registry and helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from io import StringIO
import logging
import shutil
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from .configuration import ConfigurationBundle
from .errors import FleetError

if TYPE_CHECKING:
    from .agents.fleet import FleetManager
    from .agents.lifecycle import LifecycleResult

logger = logging.getLogger("flotilla.commands")

SlashCommandHandler = Callable[["SlashCommandContext", List[str]], str]


@dataclass
class SlashCommandContext:
    """Context passed into each slash command handler."""

    config: ConfigurationBundle
    router: "CommandRouter"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def fleet(self) -> "FleetManager":
        return self.router.fleet


@dataclass
class SlashCommand:
    """Metadata about a slash command."""

    name: str
    description: str
    handler: SlashCommandHandler
    usage: str = ""
    requires_ready: bool = False


class CommandRouter:
    """Registry + dispatcher for slash commands."""

    def __init__(
        self,
        config: ConfigurationBundle,
        metadata: Optional[Dict[str, Any]] = None,
        fleet: Optional["FleetManager"] = None,
    ) -> None:
        self.config = config
        self._commands: Dict[str, SlashCommand] = {}
        self.metadata = metadata or {}
        self._fleet = fleet

    @property
    def fleet(self) -> "FleetManager":
        if self._fleet is None:
            from .agents.fleet import build_fleet

            self._fleet = build_fleet(self.config)
        return self._fleet

    def register(self, command: SlashCommand) -> None:
        self._commands[command.name.lower()] = command

    def handle(self, command_name: str, args: List[str]) -> str:
        command = self._commands.get(command_name.lower())
        if command is None:
            return f"[router] unknown command '/{command_name}'. Try /help."
        if command.requires_ready and self.config.status != "ready":
            return (
                f"[router] '/{command_name}' requires a ready configuration "
                f"(current status: {self.config.status})."
            )
        context = SlashCommandContext(config=self.config, router=self, metadata=self.metadata)
        try:
            return command.handler(context, args)
        except FleetError as exc:
            logger.debug("/%s failed: %s", command.name, exc)
            return f"[{command.name}] {exc}"

    @property
    def command_names(self) -> Sequence[str]:
        return sorted(self._commands.keys())

    def commands(self) -> Sequence[SlashCommand]:
        return [self._commands[name] for name in self.command_names]

    def get(self, command_name: str) -> Optional[SlashCommand]:
        return self._commands.get(command_name.lower())


def render_help_table(commands: Sequence[SlashCommand]) -> str:
    """Render a help table listing slash commands."""

    def _render(console: Console) -> None:
        table = Table(title="Slash Commands", show_header=True, header_style="bold cyan")
        table.add_column("Command", style="green", no_wrap=True)
        table.add_column("Usage", style="magenta")
        table.add_column("Description")
        for cmd in commands:
            table.add_row(f"/{cmd.name}", cmd.usage, cmd.description)
        console.print(table)

    return render_rich(_render)


def render_lifecycle_summary(result: "LifecycleResult") -> str:
    """Render the step-by-step outcome of one lifecycle run."""

    def _render(console: Console) -> None:
        console.print("Lifecycle Summary:", style="bold")
        for step in result.steps:
            mark = "[green]✓[/green]" if step.success else "[red]✗[/red]"
            suffix = " [dim](skipped)[/dim]" if step.skipped else ""
            console.print(f"  {mark} Step {step.step}: {step.name.replace('_', ' ')}{suffix}")
            if step.error:
                console.print(f"      Error: {step.error}", markup=False)
        console.print()
        if result.success:
            console.print("All lifecycle steps completed successfully.")
        else:
            console.print("Lifecycle completed with errors:")
            for error in result.errors:
                console.print(f"  - {error}", markup=False)

    return render_rich(_render)


def render_rich(render_fn: Callable[[Console], None]) -> str:
    """Render a Rich layout to an ANSI string without printing live."""

    terminal_size = shutil.get_terminal_size(fallback=(80, 24))
    width = max(20, terminal_size.columns)
    height = max(10, terminal_size.lines)

    console = Console(
        record=True,
        force_terminal=True,
        color_system="auto",
        width=width,
        height=height,
        file=StringIO(),
    )
    render_fn(console)
    return console.export_text(clear=False, styles=True)


__all__ = [
    "CommandRouter",
    "SlashCommand",
    "SlashCommandContext",
    "render_help_table",
    "render_lifecycle_summary",
    "render_rich",
]
