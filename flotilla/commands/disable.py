"""Slash command for disabling agents."""

from __future__ import annotations

from typing import List

from ..slash_commands import SlashCommand, SlashCommandContext

USAGE = "/disable <agent|repo/agent|alias>"


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    tokens = list(args)
    if tokens and tokens[0].lower() == "agent":
        tokens = tokens[1:]
    if len(tokens) != 1:
        return f"[disable] Usage: {USAGE}"
    return context.fleet.disable(tokens[0]).message


COMMAND = SlashCommand(
    name="disable",
    description="Remove an agent from the registry once its container is gone.",
    handler=_handler,
    usage=USAGE,
)
