"""Error types for the control-plane bootstrapper.

Configuration problems are raised to the caller of the affected call.
Runtime role failures are raised inside the role's task and turned into a
full shutdown by the supervisor. Cancellation is never an error.
"""

from dataclasses import dataclass


@dataclass
class ControlPlaneError(Exception):
    """Base error class for control-plane errors."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class ConfigurationError(ControlPlaneError):
    """Invalid configuration: unusable directories, socket URIs, overrides."""


@dataclass
class StoreError(ControlPlaneError):
    """The embedded store failed to start or become ready."""


@dataclass
class RoleExitError(ControlPlaneError):
    """A server role exited without being asked to stop."""

    role: str = ""
    returncode: int | None = None


@dataclass
class RoleAlreadyStartedError(ControlPlaneError):
    """A role was started twice."""

    role: str = ""


@dataclass
class StartupAbortedError(ControlPlaneError):
    """Startup was interrupted by the lifecycle signal."""

    message: str = "Startup aborted"


@dataclass
class HealthGateTimeoutError(ControlPlaneError):
    """A health endpoint did not become healthy before the deadline."""

    url: str = ""
    attempts: int = 0
