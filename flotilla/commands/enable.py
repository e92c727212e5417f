"""Slash command for enabling agents in the workspace."""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..slash_commands import SlashCommand, SlashCommandContext

USAGE = "/enable <agent|repo/agent> [global | devel <repo>] [as <alias>]"


def parse_enable_args(args: List[str]) -> Tuple[str, Optional[str]]:
    """Split the argument vector into the enable reference and an alias."""

    tokens = list(args)
    if tokens and tokens[0].lower() == "agent":
        tokens = tokens[1:]
    alias = None
    lowered = [token.lower() for token in tokens]
    if "as" in lowered:
        index = lowered.index("as")
        if index + 1 >= len(tokens):
            raise ValueError("missing alias name after 'as'.")
        alias = tokens[index + 1]
        tokens = tokens[:index] + tokens[index + 2:]
    return " ".join(tokens).strip(), alias


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    try:
        reference, alias = parse_enable_args(args)
    except ValueError as exc:
        return f"[enable] {exc} Usage: {USAGE}"
    if not reference:
        return f"[enable] Usage: {USAGE}"

    result = context.fleet.enable(reference, alias=alias)
    label = f" as '{result.alias}'" if result.alias else ""
    lines = [
        f"✓ Agent '{result.short_agent_name}' from repo '{result.repo_name}' enabled{label} "
        f"(container '{result.container_name}', mode {result.run_mode}).",
        "Use '/start' to start all configured agents.",
    ]
    lines.extend(f"  warning: {warning}" for warning in result.warnings)
    return "\n".join(lines)


COMMAND = SlashCommand(
    name="enable",
    description="Register an agent from a repository in this workspace.",
    handler=_handler,
    usage=USAGE,
)
