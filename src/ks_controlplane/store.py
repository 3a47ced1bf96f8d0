"""Embedded etcd store for the API server.

The store listens only on a local unix socket. Starting it blocks until etcd
answers its health endpoint, since nothing downstream may start before the
store accepts connections. Closing it is the last step of a shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from .args import args_to_command, build_args
from .config import ControlPlaneConfig
from .engine import DEFAULT_GRACE_PERIOD, initialize_engines, terminate_process
from .errors import ConfigurationError, StartupAbortedError, StoreError
from .shared.logging import get_logger
from .shared.paths import ensure_data_dir, parse_socket_path
from .types import Role

if TYPE_CHECKING:
    from .supervisor import LifecycleSignal

logger = get_logger(__name__)

DEFAULT_READY_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 0.2
DEFAULT_PROBE_TIMEOUT = 2.0


class EmbeddedStore:
    """Manage the etcd child process backing the API server."""

    def __init__(
        self,
        command: Sequence[str] | None = None,
        ready_timeout: float | None = DEFAULT_READY_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        on_exit: Callable[[int | None], None] | None = None,
    ):
        """Initialize store manager.

        Args:
            command: etcd executable and leading arguments
                (default: resolved from the engine registry)
            ready_timeout: Seconds to wait for readiness, None to wait forever
            poll_interval: Seconds between readiness probes
            grace_period: Seconds to wait after SIGTERM before SIGKILL
            on_exit: Called with the return code if etcd exits on its own
                after becoming ready
        """
        self.command = list(command) if command else None
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval
        self.grace_period = grace_period
        self.on_exit = on_exit

        self._process: asyncio.subprocess.Process | None = None
        self._watch_task: asyncio.Task | None = None
        self._socket_path: Path | None = None
        self._ready = False
        self._closed = False

    @property
    def started(self) -> bool:
        """Whether start() has launched etcd."""
        return self._process is not None

    @property
    def ready(self) -> bool:
        """Whether etcd has reported ready and is not closed."""
        return self._ready and not self._closed

    @property
    def socket_path(self) -> Path | None:
        """Path of the client socket, once started."""
        return self._socket_path

    async def start(
        self,
        data_dir: str | Path,
        socket_path: str | Path,
        args: Sequence[str] | None = None,
        stop: LifecycleSignal | None = None,
    ) -> EmbeddedStore:
        """Start etcd and block until it is ready.

        Args:
            data_dir: etcd data directory, created with mode 0700 if absent
            socket_path: Client socket path or unix:// URI
            args: Full etcd argument list; built from data_dir and
                socket_path when omitted
            stop: Lifecycle signal that aborts the wait when it fires

        Returns:
            This store, ready to serve

        Raises:
            ConfigurationError: If the data directory cannot be created, the
                socket path is malformed, or a stale socket cannot be removed
            StoreError: If etcd cannot start or does not become ready
            StartupAbortedError: If ``stop`` fires before etcd is ready
        """
        if self._process is not None:
            raise StoreError("etcd already started")

        socket = parse_socket_path(socket_path)
        try:
            ensure_data_dir(data_dir)
            socket.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"create etcd data directory failed: {e}") from e

        # The socket belongs to this store; a leftover file blocks the listener
        try:
            socket.unlink(missing_ok=True)
        except OSError as e:
            raise ConfigurationError(f"remove stale etcd socket {socket} failed: {e}") from e

        if stop is not None and stop.cancelled:
            raise StartupAbortedError(f"Not starting etcd: {stop.reason}")

        if args is None:
            cfg = ControlPlaneConfig(etcd_data_dir=str(data_dir), etcd_socket_path=str(socket))
            args = args_to_command(build_args(Role.STORE, cfg.apply_defaults()))

        command = self.command or initialize_engines()[Role.STORE]
        try:
            self._process = await asyncio.create_subprocess_exec(
                *command, *args, start_new_session=True
            )
        except OSError as e:
            raise StoreError(f"failed to start etcd: {e}") from e

        self._socket_path = socket
        logger.info("etcd started", pid=self._process.pid, socket=str(socket))

        await self._wait_ready(stop)

        self._ready = True
        self._watch_task = asyncio.get_running_loop().create_task(self._watch())
        logger.info("etcd ready", socket=str(socket))
        return self

    async def _wait_ready(self, stop: LifecycleSignal | None = None) -> None:
        """Poll etcd's health endpoint until it reports healthy."""
        loop = asyncio.get_running_loop()
        started_at = loop.time()

        while True:
            if stop is not None and stop.cancelled:
                await terminate_process(self._process, "etcd", self.grace_period)
                raise StartupAbortedError(f"Stopped waiting for etcd: {stop.reason}")

            if self._process.returncode is not None:
                raise StoreError(
                    f"etcd exited with code {self._process.returncode} before becoming ready"
                )

            if await self.probe():
                return

            if self.ready_timeout is not None and loop.time() - started_at >= self.ready_timeout:
                await terminate_process(self._process, "etcd", self.grace_period)
                raise StoreError(f"etcd did not become ready within {self.ready_timeout}s")

            await self._sleep(stop)

    async def _sleep(self, stop: LifecycleSignal | None) -> None:
        """Wait one poll interval, waking early if ``stop`` fires."""
        if stop is None:
            await asyncio.sleep(self.poll_interval)
            return
        try:
            await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    async def probe(self) -> bool:
        """Check etcd's /health over the client socket."""
        transport = httpx.AsyncHTTPTransport(uds=str(self._socket_path))
        try:
            async with httpx.AsyncClient(
                transport=transport, timeout=DEFAULT_PROBE_TIMEOUT
            ) as client:
                response = await client.get("http://localhost/health")
            return response.status_code == 200 and response.json().get("health") == "true"
        except (httpx.HTTPError, ValueError):
            return False

    async def _watch(self) -> None:
        """Report an exit that was not requested by close()."""
        returncode = await self._process.wait()
        if self._closed:
            return
        self._ready = False
        logger.error("etcd exited unexpectedly", returncode=returncode)
        if self.on_exit:
            self.on_exit(returncode)

    async def close(self) -> None:
        """Stop etcd. Only the first call has an effect."""
        if self._closed:
            return
        self._closed = True

        if self._watch_task is not None:
            self._watch_task.cancel()

        if self._process is None:
            return

        returncode = await terminate_process(self._process, "etcd", self.grace_period)
        logger.info("etcd stopped", returncode=returncode)
