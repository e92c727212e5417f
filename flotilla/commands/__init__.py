"""Slash command registry."""

from __future__ import annotations

from .agents import COMMAND as AGENTS_COMMAND
from .disable import COMMAND as DISABLE_COMMAND
from .enable import COMMAND as ENABLE_COMMAND
from .help import COMMAND as HELP_COMMAND
from .profile import COMMAND as PROFILE_COMMAND
from .refresh import COMMAND as REFRESH_COMMAND
from .start import COMMAND as START_COMMAND
from .status import COMMAND as STATUS_COMMAND

COMMANDS = [
    STATUS_COMMAND,
    HELP_COMMAND,
    AGENTS_COMMAND,
    ENABLE_COMMAND,
    DISABLE_COMMAND,
    START_COMMAND,
    REFRESH_COMMAND,
    PROFILE_COMMAND,
]

__all__ = ["COMMANDS"]
