"""Logging helpers for the Flotilla orchestrator."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
from typing import Any, Dict, Optional, Union

LOG_SUBPATH = Path(".flotilla") / "logs" / "flotilla.log"
STRUCTURED_LOG_SUBPATH = Path(".flotilla") / "logs" / "flotilla.jsonl"
MAX_BYTES = 5 * 1024 * 1024  # 5 MB per log segment
BACKUP_COUNT = 3
REPO_ROOT = Path(__file__).resolve().parent.parent
FALLBACK_ROOT = REPO_ROOT / ".flotilla_runtime"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
ROOT_LOGGER = "flotilla"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for the `.jsonl` log."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        # Fields passed through `extra={"extra": {...}}`
        extra = getattr(record, "extra", None)
        if extra:
            entry["extra"] = extra
        return json.dumps(entry, default=str)


def setup_logging(
    workspace_dir: Path,
    level: Union[str, int] = logging.WARNING,
    structured: bool = True,
    structured_path: Optional[str] = None,
    console: bool = True,
) -> Path:
    """Route the `flotilla` logger tree to rotating files under the workspace.

    Calling it again replaces the handlers of the previous call. The console
    handler never shows less than warnings so command output stays readable.
    Returns the path of the text log, which may sit under `FALLBACK_ROOT`
    when the workspace is not writable.
    """

    resolved_level = _resolve_level(level)
    logger = logging.getLogger(ROOT_LOGGER)
    _reset_handlers(logger)
    logger.setLevel(resolved_level)
    logger.propagate = False

    text_formatter = logging.Formatter(TEXT_FORMAT)
    log_path = _writable_log_path(workspace_dir, LOG_SUBPATH, "logs")
    logger.addHandler(_rotating_handler(log_path, text_formatter))

    if console:
        stream = logging.StreamHandler()
        stream.setFormatter(text_formatter)
        stream.setLevel(max(resolved_level, logging.WARNING))
        logger.addHandler(stream)

    if structured:
        subpath = Path(structured_path) if structured_path else STRUCTURED_LOG_SUBPATH
        json_path = _writable_log_path(workspace_dir, subpath, "structured logs")
        logger.addHandler(_rotating_handler(json_path, JSONFormatter()))

    return log_path


def _rotating_handler(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.WARNING)
    return int(level)


def _writable_log_path(workspace_dir: Path, subpath: Path, kind: str) -> Path:
    target = Path(workspace_dir) / subpath
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        return target
    except PermissionError:
        pass

    fallback = FALLBACK_ROOT / subpath
    fallback.parent.mkdir(parents=True, exist_ok=True)
    print(
        f"[config] Unable to write {kind} under '{workspace_dir}'; falling back to '{fallback.parent}'.",
        file=sys.stderr,
    )
    return fallback


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


__all__ = ["JSONFormatter", "setup_logging"]
