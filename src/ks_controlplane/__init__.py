"""ks-controlplane - scratch single-node Kubernetes control plane bootstrapper."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ks-controlplane")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

from .args import args_to_command, build_args, merge_args
from .authz import resolve_authz_modes
from .bootstrap import BootstrapResult, run_control_plane
from .config import Arg, ControlPlaneConfig, load_config
from .controlplane import ControlPlane
from .engine import ProcessEngine, ServerEngine, initialize_engines
from .health import HealthCheckResult, HealthGate
from .main import main
from .store import EmbeddedStore
from .supervisor import LifecycleSignal, ProcessSupervisor, RunningTask
from .types import OrchestratorState, Role, RoleState

__all__ = [
    "main",
    "__version__",
    # Configuration
    "Arg",
    "ControlPlaneConfig",
    "load_config",
    # Arguments
    "build_args",
    "merge_args",
    "args_to_command",
    "resolve_authz_modes",
    # Lifecycle
    "ControlPlane",
    "EmbeddedStore",
    "HealthGate",
    "HealthCheckResult",
    "LifecycleSignal",
    "ProcessSupervisor",
    "RunningTask",
    "ProcessEngine",
    "ServerEngine",
    "initialize_engines",
    "run_control_plane",
    "BootstrapResult",
    # Types
    "Role",
    "RoleState",
    "OrchestratorState",
]
