"""ControlPlane - the control-plane orchestrator.

Applies configuration defaults, owns the embedded store and the process
supervisor, and exposes one start method per role plus shutdown. The caller
is responsible for the startup order:

    store -> API server -> controller manager -> (health gate) -> scheduler
"""

from __future__ import annotations

from collections.abc import Mapping

from .args import args_to_command, build_args
from .config import ControlPlaneConfig
from .engine import DEFAULT_GRACE_PERIOD, ServerEngine, default_engines
from .errors import RoleAlreadyStartedError, StartupAbortedError
from .shared.logging import get_logger
from .store import EmbeddedStore
from .supervisor import LifecycleSignal, ProcessSupervisor
from .types import OrchestratorState, Role, RoleState

logger = get_logger(__name__)


class ControlPlane:
    """Single-node control plane built from four server roles."""

    def __init__(
        self,
        config: ControlPlaneConfig,
        engines: Mapping[Role, ServerEngine] | None = None,
        store: EmbeddedStore | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ):
        """Initialize ControlPlane and apply configuration defaults.

        Args:
            config: Control-plane configuration; defaults are filled in place
            engines: Engines for the API server, controller manager and
                scheduler (default: the roles' binaries)
            store: Store manager (default: etcd child process)
            grace_period: Seconds each process gets to stop before SIGKILL
        """
        self._state = OrchestratorState.UNINITIALIZED
        self.config = config.apply_defaults()
        self._state = OrchestratorState.DEFAULTS_APPLIED

        self.lifecycle = LifecycleSignal()
        self._supervisor = ProcessSupervisor(self.lifecycle)
        self._engines = dict(engines) if engines is not None else None
        self._grace_period = grace_period
        self._store = store or EmbeddedStore(grace_period=grace_period)
        self._store.on_exit = self._on_store_exit
        self._store_failed = False

    @property
    def state(self) -> OrchestratorState:
        """Current orchestrator state."""
        return self._state

    @property
    def store(self) -> EmbeddedStore:
        """The embedded store manager."""
        return self._store

    @property
    def failed(self) -> bool:
        """Whether any role or the store exited with an error."""
        return self._store_failed or bool(self._supervisor.failures())

    def failures(self) -> list[str]:
        """Human-readable failure descriptions."""
        messages = [f"{role.value}: {error}" for role, error in self._supervisor.failures()]
        if self._store_failed:
            messages.insert(0, f"{Role.STORE.value}: exited unexpectedly")
        return messages

    def role_states(self) -> dict[Role, RoleState]:
        """Snapshot of every supervised role's state."""
        return self._supervisor.states()

    def command(self, role: Role) -> list[str]:
        """The command-line flags a role is (or would be) started with."""
        return args_to_command(build_args(role, self.config))

    async def start_store(self) -> None:
        """Start etcd and block until it is ready.

        Raises:
            ConfigurationError: If the data directory or socket is unusable
            StoreError: If etcd does not start or become ready
            StartupAbortedError: If the lifecycle signal fires first
        """
        if self._store.started:
            raise RoleAlreadyStartedError(f"{Role.STORE.value} already started", role="etcd")
        self._check_not_stopping(Role.STORE)

        await self._store.start(
            self.config.etcd_data_dir,
            self.config.etcd_socket_path,
            args=self.command(Role.STORE),
            stop=self.lifecycle,
        )
        self._state = OrchestratorState.STORE_READY

    def start_api_server(self) -> None:
        """Launch kube-apiserver and return immediately."""
        self._launch(Role.API_SERVER)

    def start_controller_manager(self) -> None:
        """Launch kube-controller-manager and return immediately."""
        self._launch(Role.CONTROLLER_MANAGER)

    def start_scheduler(self) -> None:
        """Launch kube-scheduler and return immediately.

        Call only after kube-controller-manager is observably healthy.
        """
        self._launch(Role.SCHEDULER)

    def _launch(self, role: Role) -> None:
        self._check_not_stopping(role)
        if self._engines is None:
            self._engines = default_engines(self._grace_period)
        self._supervisor.launch(role, self.command(role), self._engines[role])
        self._state = OrchestratorState.RUNNING

    def _check_not_stopping(self, role: Role) -> None:
        if self._state in (OrchestratorState.SHUTTING_DOWN, OrchestratorState.STOPPED):
            raise StartupAbortedError(f"Not starting {role.value}: control plane is shutting down")

    def _on_store_exit(self, returncode: int | None) -> None:
        self._store_failed = True
        self.lifecycle.cancel(f"{Role.STORE.value} exited with code {returncode}")

    async def shutdown(self) -> None:
        """Stop every role, then the store.

        Cancels the lifecycle signal, waits until every launched role has
        completed, and closes the store last. Later calls return immediately.
        """
        if self._state in (OrchestratorState.SHUTTING_DOWN, OrchestratorState.STOPPED):
            logger.debug("shutdown already in progress", state=self._state.value)
            return

        self._state = OrchestratorState.SHUTTING_DOWN
        logger.info("shutting down control plane")

        self.lifecycle.cancel("shutdown")
        await self._supervisor.wait()
        await self._store.close()

        self._state = OrchestratorState.STOPPED
        logger.info("control plane stopped")
