"""Agent registry, lifecycle and fleet management for Flotilla."""

from .fleet import (
    DisableResult,
    EnableResult,
    FleetManager,
    RefreshResult,
    ServiceInfo,
    StartResult,
    build_fleet,
)
from .lifecycle import LifecycleEngine, LifecycleResult, LifecycleStepResult
from .registry import AgentRecord, AgentRegistry
from .runtime import ContainerRuntime

__all__ = [
    "AgentRecord",
    "AgentRegistry",
    "ContainerRuntime",
    "DisableResult",
    "EnableResult",
    "FleetManager",
    "LifecycleEngine",
    "LifecycleResult",
    "LifecycleStepResult",
    "RefreshResult",
    "ServiceInfo",
    "StartResult",
    "build_fleet",
]
