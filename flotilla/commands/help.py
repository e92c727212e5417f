"""Slash command for listing available commands."""

from __future__ import annotations

from typing import List

from ..slash_commands import SlashCommand, SlashCommandContext, render_help_table


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    router = context.router
    if not args:
        return render_help_table(router.commands())

    name = args[0].lstrip("/")
    command = router.get(name)
    if command is None:
        return f"[help] unknown command '/{name}'."
    usage = command.usage or f"/{command.name}"
    return f"{usage}\n  {command.description}"


COMMAND = SlashCommand(
    name="help",
    description="List available slash commands, or show one command's usage.",
    handler=_handler,
    usage="/help [command]",
)
