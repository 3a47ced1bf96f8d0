"""Server engines for control-plane roles.

An engine runs one role's server with an argument list until the server
exits or the lifecycle signal fires. The default engine runs the upstream
binary as a child process; tests substitute in-memory engines.
"""

from __future__ import annotations

import asyncio
import os
import shlex
import shutil
import signal
import threading
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Protocol

from .errors import RoleExitError
from .shared.logging import get_logger
from .types import Role

if TYPE_CHECKING:
    from .supervisor import LifecycleSignal

logger = get_logger(__name__)

# Seconds between SIGTERM and SIGKILL
DEFAULT_GRACE_PERIOD = 10.0


class ServerEngine(Protocol):
    """Runs a server until it exits or ``stop`` fires.

    Returning means a clean stop; raising means the role failed.
    """

    async def run(self, args: Sequence[str], stop: LifecycleSignal) -> None: ...


async def terminate_process(
    process: asyncio.subprocess.Process,
    name: str,
    grace_period: float = DEFAULT_GRACE_PERIOD,
) -> int | None:
    """Stop a child process via SIGTERM.

    Waits up to ``grace_period`` seconds for a graceful exit, then
    force-kills.

    Returns:
        The process return code
    """
    if process.returncode is not None:
        return process.returncode

    try:
        process.send_signal(signal.SIGTERM)
    except ProcessLookupError:
        return await process.wait()

    try:
        return await asyncio.wait_for(process.wait(), timeout=grace_period)
    except asyncio.TimeoutError:
        logger.warning("process did not stop in time, killing", process=name, pid=process.pid)

    try:
        process.kill()
    except ProcessLookupError:
        pass  # Already dead
    return await process.wait()


class ProcessEngine:
    """Run a role's server binary as a child process."""

    def __init__(
        self,
        command: Sequence[str],
        name: str | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ):
        """Initialize ProcessEngine.

        Args:
            command: Executable and leading arguments, e.g. ["kube-apiserver"]
            name: Name used in logs and errors (defaults to the executable)
            grace_period: Seconds to wait after SIGTERM before SIGKILL
        """
        self.command = list(command)
        self.name = name or os.path.basename(self.command[0])
        self.grace_period = grace_period

    async def run(self, args: Sequence[str], stop: LifecycleSignal) -> None:
        """Run the server until it exits or ``stop`` fires.

        Raises:
            RoleExitError: If the binary cannot be started, or exits with a
                non-zero code while the signal has not fired
        """
        argv = [*self.command, *args]
        try:
            # New session: terminal signals go to the bootstrapper only
            process = await asyncio.create_subprocess_exec(*argv, start_new_session=True)
        except OSError as e:
            raise RoleExitError(f"failed to start {self.name}: {e}", role=self.name) from e

        logger.info("process started", process=self.name, pid=process.pid)

        exited = asyncio.ensure_future(process.wait())
        stopped = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({exited, stopped}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await terminate_process(process, self.name, self.grace_period)
            raise
        finally:
            stopped.cancel()
            if not exited.done():
                exited.cancel()

        if process.returncode is None:
            returncode = await terminate_process(process, self.name, self.grace_period)
            logger.info("process stopped", process=self.name, returncode=returncode)
            return

        returncode = process.returncode
        if stop.cancelled or returncode == 0:
            logger.info("process exited", process=self.name, returncode=returncode)
            return

        raise RoleExitError(
            f"{self.name} exited with code {returncode}",
            role=self.name,
            returncode=returncode,
        )


# Process-wide registry of role binaries, filled once by initialize_engines()
_ENGINE_COMMANDS: dict[Role, list[str]] = {}
_initialized = False
_lock = threading.Lock()


def binary_env_var(role: Role) -> str:
    """Environment variable overriding a role's binary, e.g. KS_API_SERVER_BINARY."""
    return f"KS_{role.name}_BINARY"


def resolve_command(role: Role, environ: Mapping[str, str] | None = None) -> list[str]:
    """Resolve the command for a role from the environment or PATH."""
    env = os.environ if environ is None else environ
    override = env.get(binary_env_var(role))
    if override:
        return shlex.split(override)
    return [shutil.which(role.value) or role.value]


def initialize_engines(environ: Mapping[str, str] | None = None) -> dict[Role, list[str]]:
    """Resolve every role's binary once per process.

    Later calls return the commands resolved by the first call.
    """
    global _initialized
    with _lock:
        if not _initialized:
            for role in Role:
                _ENGINE_COMMANDS[role] = resolve_command(role, environ)
                logger.debug("engine resolved", role=role.value, command=_ENGINE_COMMANDS[role])
            _initialized = True
    return {role: list(command) for role, command in _ENGINE_COMMANDS.items()}


def default_engines(grace_period: float = DEFAULT_GRACE_PERIOD) -> dict[Role, ProcessEngine]:
    """Process engines for the API server, controller manager and scheduler."""
    commands = initialize_engines()
    return {
        role: ProcessEngine(commands[role], name=role.value, grace_period=grace_period)
        for role in (Role.API_SERVER, Role.CONTROLLER_MANAGER, Role.SCHEDULER)
    }
