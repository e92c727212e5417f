# flotilla/app.py
"""
Command-line entry point for the Flotilla agent fleet orchestrator.

Runs a single slash command when arguments are given, otherwise an
interactive prompt with readline completion.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
try:
    import readline
except ImportError:  # pragma: no cover
    readline = None
import shlex
import sys
from typing import List, Optional, Sequence

from .commands import COMMANDS
from .configuration import (
    ConfigurationBundle,
    Diagnostic,
    load_runtime_configuration,
    resolve_workspace_dir,
)
from .logging_utils import setup_logging
from .slash_commands import CommandRouter

FLOTILLA_MODE = os.environ.get("FLOTILLA_MODE", "local")
REPO_ROOT = Path(__file__).resolve().parent.parent
logger = logging.getLogger("flotilla")
TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off"}


def _log_path_within_workspace(log_path: Path, workspace_dir: Path) -> bool:
    try:
        log_path.relative_to(workspace_dir)
        return True
    except ValueError:
        return False


def _parse_env_flag(value: str, *, default: bool = True) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_STRINGS:
        return True
    if normalized in FALSE_STRINGS:
        return False
    return default


def _resolve_ui_verbose(config_bundle: ConfigurationBundle) -> bool:
    """Resolve whether the prompt prints the configuration report on startup."""

    env_value = os.environ.get("FLOTILLA_UI_VERBOSE")
    if env_value is not None:
        return _parse_env_flag(env_value)

    verbose_setting = config_bundle.section("ui").get("verbose")
    if verbose_setting is None:
        return True
    return bool(verbose_setting)


def _resolve_log_level(config_bundle: ConfigurationBundle) -> str:
    env_level = os.environ.get("FLOTILLA_LOG_LEVEL")
    configured_level = config_bundle.section("logging").get("level")
    return str(env_level or configured_level or "WARNING").upper()


def build_router(config: ConfigurationBundle) -> CommandRouter:
    """Create the router with every slash command registered."""

    router = CommandRouter(
        config,
        metadata={
            "mode": FLOTILLA_MODE,
            "repo_root": str(REPO_ROOT),
        },
    )
    for command in COMMANDS:
        router.register(command)
    return router


def emit_configuration_report(config: ConfigurationBundle) -> None:
    """Print diagnostics so operators can correct issues quickly."""

    if not config.diagnostics:
        print(
            f"[config] Loaded {len(config.files_loaded)} file(s) "
            f"from repo and workspace config directories."
        )
        return

    print("[config] Diagnostics:")
    for diag in config.diagnostics:
        prefix = diag.source or config.workspace_dir
        print(f"  - ({diag.level.upper()}) {diag.message} [{prefix}]")


def configure_autocomplete(router: CommandRouter) -> None:
    """Enable readline tab completion for slash commands."""

    if readline is None:
        return

    commands = list(router.command_names)

    def completer(text: str, state: int):
        buffer = readline.get_line_buffer()
        if not buffer.startswith("/"):
            return None
        fragment = text[1:] if text.startswith("/") else text
        matches = [f"/{cmd}" for cmd in commands if cmd.startswith(fragment)]
        if state < len(matches):
            return matches[state]
        return None

    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")
    readline.set_completer_delims(" \t")


def split_command_line(command_line: str) -> List[str]:
    stripped = command_line.strip()
    if stripped.startswith("/"):
        stripped = stripped[1:]
    try:
        return shlex.split(stripped)
    except ValueError:
        return stripped.split()


def execute_cli_command(
    command_line: str,
    router: CommandRouter,
    *,
    suppress_output: bool = False,
) -> str:
    """Run one slash command line through the router and print its output."""

    parts = split_command_line(command_line)
    if not parts:
        return ""

    command, args = parts[0], parts[1:]
    result = router.handle(command, args)
    if not suppress_output:
        print(result)
    logger.info("Executed CLI command: %s", " ".join(parts))
    return result


def prepare_configuration(workspace_dir: Optional[Path] = None) -> ConfigurationBundle:
    """Load configuration and initialize logging under the workspace."""

    config_bundle = load_runtime_configuration(workspace_dir or resolve_workspace_dir())
    log_level_name = _resolve_log_level(config_bundle)
    structured = bool(config_bundle.section("logging").get("structured", True))
    log_path = setup_logging(
        config_bundle.workspace_dir,
        log_level_name,
        structured=structured,
    )
    config_bundle.log_path = log_path
    if not _log_path_within_workspace(log_path, config_bundle.workspace_dir):
        config_bundle.diagnostics.append(
            Diagnostic(
                level="warning",
                message=(
                    "Workspace log directory is not writable; "
                    f"logging to fallback path '{log_path}'."
                ),
                source=log_path,
            )
        )
    logger.info("Logging initialized at %s", log_path)
    return config_bundle


def run_repl(router: CommandRouter, *, verbose: bool = True) -> int:
    configure_autocomplete(router)
    if verbose:
        print(f"[Flotilla] {FLOTILLA_MODE} ready. Type /help for commands.")

    while True:
        try:
            raw_line = input("> ")
        except (EOFError, KeyboardInterrupt):
            print("\n[Exiting Flotilla]")
            return 0

        line = raw_line.strip()
        if not line:
            continue
        if line.lstrip("/").lower() in {"quit", "exit"}:
            print("[Goodbye]")
            return 0
        execute_cli_command(line, router)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the `flotilla` console script."""

    args = list(sys.argv[1:] if argv is None else argv)
    config_bundle = prepare_configuration()
    router = build_router(config_bundle)
    ui_verbose = _resolve_ui_verbose(config_bundle)

    if args:
        output = execute_cli_command(" ".join(shlex.quote(arg) for arg in args), router)
        return 1 if output.startswith("[") else 0

    if ui_verbose:
        emit_configuration_report(config_bundle)
    return run_repl(router, verbose=ui_verbose)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
