"""Secret lookup from the environment, `.flotilla/.secrets` and `.env` files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import re
from typing import Dict, List, Mapping, Optional, Sequence

from dotenv import dotenv_values

logger = logging.getLogger("flotilla.secrets")

SECRETS_FILENAME = ".secrets"
ENV_FILENAME = ".env"
_SPACE_SEPARATED = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s+(.*)$")


def parse_key_value_file(path: Path) -> Dict[str, str]:
    """Parse `KEY=VALUE` / `KEY VALUE` lines; comments and blanks are skipped."""

    values: Dict[str, str] = {}
    try:
        content = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return values
    except OSError as exc:
        logger.warning("Unable to read secrets file %s: %s", path, exc)
        return values

    for line in content.splitlines():
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        if text.startswith("export "):
            text = text[len("export "):].strip()
        if "=" in text:
            key, _, value = text.partition("=")
            key, value = key.strip(), value.strip()
        else:
            match = _SPACE_SEPARATED.match(text)
            if not match:
                continue
            key, value = match.group(1), match.group(2).strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        if key:
            values[key] = value
    return values


def read_env_file(path: Path) -> Dict[str, str]:
    """Values of a `.env` file in dotenv syntax; keys without a value are dropped."""

    values = dotenv_values(path, encoding="utf-8")
    return {key: value for key, value in values.items() if value is not None}


def find_env_file(start_dir: Optional[Path] = None) -> Optional[Path]:
    """Nearest `.env` walking from `start_dir` up to the filesystem root."""

    current = Path(start_dir or os.getcwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / ENV_FILENAME
        if candidate.is_file():
            return candidate
    return None


class SecretResolver:
    """First match wins: process environment, `.secrets`, then `.env`."""

    def __init__(
        self,
        secrets_file: Path,
        *,
        env: Optional[Mapping[str, str]] = None,
        search_dir: Optional[Path] = None,
    ) -> None:
        self.secrets_file = Path(secrets_file)
        self.env = os.environ if env is None else env
        self.search_dir = search_dir
        self._file_values: Optional[Dict[str, str]] = None
        self._env_file_values: Optional[Dict[str, str]] = None

    @property
    def env_file(self) -> Optional[Path]:
        return find_env_file(self.search_dir)

    def _secrets(self) -> Dict[str, str]:
        if self._file_values is None:
            self._file_values = parse_key_value_file(self.secrets_file)
        return self._file_values

    def _dotenv(self) -> Dict[str, str]:
        if self._env_file_values is None:
            env_file = self.env_file
            self._env_file_values = read_env_file(env_file) if env_file else {}
        return self._env_file_values

    def get(self, name: str) -> Optional[str]:
        if name in self.env:
            return self.env[name]
        if name in self._secrets():
            return self._secrets()[name]
        return self._dotenv().get(name)

    def source_of(self, name: str) -> str:
        if name in self.env:
            return "environment"
        if name in self._secrets():
            return ".secrets"
        if name in self._dotenv():
            return ".env"
        return "not found"

    def get_many(self, names: Sequence[str]) -> Dict[str, str]:
        found: Dict[str, str] = {}
        for name in names:
            value = self.get(name)
            if value is not None:
                found[name] = value
        return found

    def missing(self, names: Sequence[str]) -> List[str]:
        return [name for name in names if self.get(name) is None]

    def format_missing_error(self, missing: Sequence[str], profile: str) -> str:
        env_file = self.env_file or Path(self.search_dir or os.getcwd()) / ENV_FILENAME
        return format_missing_secrets_error(missing, profile, self.secrets_file, env_file)


def format_missing_secrets_error(
    missing: Sequence[str],
    profile: str,
    secrets_file: Path,
    env_file: Path,
) -> str:
    lines = [f"Missing required secrets for profile '{profile}':", ""]
    lines.extend(f"  - {name}" for name in missing)
    lines.extend(
        [
            "",
            "To provide secrets, either:",
            "  1. Set environment variables before running flotilla",
            f"  2. Add them to {secrets_file}",
            f"  3. Add them to {env_file}",
            "",
            "Example (.flotilla/.secrets):",
        ]
    )
    lines.extend(f"  {name}=your_value_here" for name in list(missing)[:2])
    return "\n".join(lines)


__all__ = [
    "SecretResolver",
    "find_env_file",
    "format_missing_secrets_error",
    "parse_key_value_file",
    "read_env_file",
]
