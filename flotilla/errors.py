"""Error taxonomy shared by the orchestrator modules."""

from __future__ import annotations

from typing import List, Optional, Sequence


class FleetError(RuntimeError):
    """Base class for all orchestrator failures."""


class ValidationError(FleetError):
    """Malformed input detected before any side effect."""


class ManifestError(ValidationError):
    """A manifest field uses a shape the parser does not accept."""


class NotFoundError(FleetError):
    """Unknown agent, repository or registry entry."""


class ConflictError(FleetError):
    """The requested change collides with existing state."""


class AmbiguousReferenceError(FleetError):
    """A bare reference matched more than one registry record."""

    def __init__(self, reference: str, candidates: Sequence[str]) -> None:
        self.reference = reference
        self.candidates: List[str] = sorted(candidates)
        super().__init__(
            f"Agent name '{reference}' is ambiguous; use one of: "
            + ", ".join(self.candidates)
        )


class MissingSecretsError(FleetError):
    """Required secrets for the active profile are not available."""

    def __init__(self, missing: Sequence[str], profile: str, message: Optional[str] = None) -> None:
        self.missing = list(missing)
        self.profile = profile
        super().__init__(
            message
            or f"Missing required secrets for profile '{profile}': {', '.join(self.missing)}"
        )


class HookExecutionError(FleetError):
    """A lifecycle hook exited non-zero, timed out or could not be spawned."""

    def __init__(self, hook: str, message: str, output: str = "") -> None:
        self.hook = hook
        self.output = output
        super().__init__(message)


class InstallFailure(FleetError):
    """Dependency installation did not complete."""


class RegistryError(FleetError):
    """The registry file could not be read, locked or written."""


class ContainerRuntimeError(FleetError):
    """The container engine is unavailable or a call did not finish in time."""


__all__ = [
    "AmbiguousReferenceError",
    "ConflictError",
    "ContainerRuntimeError",
    "FleetError",
    "HookExecutionError",
    "InstallFailure",
    "ManifestError",
    "MissingSecretsError",
    "NotFoundError",
    "RegistryError",
    "ValidationError",
]
