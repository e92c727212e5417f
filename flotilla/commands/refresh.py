"""Slash command for recreating a running agent container."""

from __future__ import annotations

from typing import List

from ..slash_commands import SlashCommand, SlashCommandContext, render_lifecycle_summary

USAGE = "/refresh <agent|repo/agent|alias>"


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    tokens = list(args)
    if tokens and tokens[0].lower() == "agent":
        tokens = tokens[1:]
    if len(tokens) != 1:
        return f"[refresh] Usage: {USAGE}"

    result = context.fleet.refresh(tokens[0])
    lines = [f"✓ Agent '{result.agent_name}' refreshed (container '{result.container_name}')."]
    if result.static_updated:
        lines.append("  static route updated")
    output = "\n".join(lines)
    if result.service.lifecycle is not None:
        output += "\n" + render_lifecycle_summary(result.service.lifecycle)
    return output


COMMAND = SlashCommand(
    name="refresh",
    description="Stop, remove and recreate a running agent, rerunning its lifecycle.",
    handler=_handler,
    usage=USAGE,
)
