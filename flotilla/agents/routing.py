"""Routing file consumed by the external HTTP router."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import RegistryError

logger = logging.getLogger("flotilla.routing")


def load_routing(path: Path) -> Dict[str, Any]:
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return {"routes": {}}
    except OSError as exc:
        raise RegistryError(f"Unable to read routing file '{path}': {exc}") from exc
    try:
        data = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as exc:
        logger.warning("Routing file %s is not valid JSON, starting fresh: %s", path, exc)
        data = {}
    if not isinstance(data, dict):
        data = {}
    if not isinstance(data.get("routes"), dict):
        data["routes"] = {}
    return data


def save_routing(path: Path, data: Dict[str, Any]) -> None:
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_path = target.with_name(target.name + ".tmp")
        temp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        temp_path.replace(target)
    except OSError as exc:
        raise RegistryError(f"Unable to write routing file '{path}': {exc}") from exc


def update_route(
    data: Dict[str, Any],
    *,
    agent: str,
    repo: str,
    container: str,
    host_path: str,
    alias: Optional[str] = None,
    host_port: Optional[int] = None,
) -> Dict[str, Any]:
    """Upsert the route keyed by alias or short agent name."""

    key = alias or agent
    routes = data.setdefault("routes", {})
    route = routes.get(key)
    if not isinstance(route, dict):
        route = {}
    route.update({"container": container, "hostPath": host_path, "repo": repo, "agent": agent})
    if alias:
        route["alias"] = alias
    if host_port:
        route["hostPort"] = host_port
    routes[key] = route
    return route


def set_static(data: Dict[str, Any], *, agent: str, container: str, host_path: str, port: int) -> None:
    data["port"] = port
    data["static"] = {"agent": agent, "container": container, "hostPath": host_path}


__all__ = ["load_routing", "save_routing", "set_static", "update_route"]
