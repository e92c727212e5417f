"""Slash command for reading or switching the active profile."""

from __future__ import annotations

from typing import List

from ..agents.profiles import VALID_PROFILES, set_active_profile
from ..slash_commands import SlashCommand, SlashCommandContext

USAGE = "/profile [" + " | ".join(VALID_PROFILES) + "]"


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    fleet = context.fleet
    if not args:
        return f"Active profile: {fleet.active_profile()}"
    if len(args) != 1:
        return f"[profile] Usage: {USAGE}"
    name = set_active_profile(fleet.layout.state_dir, args[0])
    return f"✓ Profile set to '{name}'."


COMMAND = SlashCommand(
    name="profile",
    description="Show or change the deployment profile used for hooks and secrets.",
    handler=_handler,
    usage=USAGE,
)
