"""Shared enums for roles and lifecycle states."""

from enum import Enum


class Role(Enum):
    """Server roles launched by the orchestrator, in startup order."""

    STORE = "etcd"
    API_SERVER = "kube-apiserver"
    CONTROLLER_MANAGER = "kube-controller-manager"
    SCHEDULER = "kube-scheduler"


class RoleState(Enum):
    """State of one launched role."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"  # Clean exit or stopped by the lifecycle signal
    FAILED = "failed"  # Exited with an error


class OrchestratorState(Enum):
    """Overall control-plane state."""

    UNINITIALIZED = "uninitialized"
    DEFAULTS_APPLIED = "defaults_applied"
    STORE_READY = "store_ready"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
