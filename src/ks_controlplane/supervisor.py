"""Process supervision for control-plane roles.

Handles:
- One asyncio task per launched role
- A shared, fire-once lifecycle signal observed by every role
- Fan-out: any role failing cancels the signal for all others
- Draining: waiting until every launched role has reported completion
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import RoleAlreadyStartedError, StartupAbortedError
from .shared.logging import get_logger
from .types import Role, RoleState

if TYPE_CHECKING:
    from .engine import ServerEngine

logger = get_logger(__name__)


class LifecycleSignal:
    """Shared cancellation token plus a completion counter.

    Cancelling is fire-once and irreversible: the first reason sticks and
    later calls are no-ops.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._launched = 0
        self._done = 0

    @property
    def cancelled(self) -> bool:
        """Whether the signal has fired."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Why the signal fired, if it has."""
        return self._reason

    @property
    def launched(self) -> int:
        """Number of tasks bound to this signal."""
        return self._launched

    @property
    def done_count(self) -> int:
        """Number of bound tasks that have completed."""
        return self._done

    def cancel(self, reason: str = "shutdown") -> bool:
        """Fire the signal.

        Returns:
            True if this call fired it, False if it had already fired.
        """
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        logger.info("lifecycle signal cancelled", reason=reason)
        return True

    async def wait(self) -> None:
        """Block until the signal fires."""
        await self._event.wait()

    def task_started(self) -> None:
        self._launched += 1

    def task_done(self) -> None:
        self._done += 1


@dataclass
class RunningTask:
    """One launched role."""

    role: Role
    args: tuple[str, ...]
    state: RoleState = RoleState.RUNNING
    error: BaseException | None = None
    task: asyncio.Task | None = field(default=None, repr=False)


class ProcessSupervisor:
    """Owns the running role tasks and propagates failures."""

    def __init__(self, lifecycle: LifecycleSignal | None = None):
        """Initialize supervisor.

        Args:
            lifecycle: Shared signal; a new one is created if omitted
        """
        self.lifecycle = lifecycle or LifecycleSignal()
        self._tasks: dict[Role, RunningTask] = {}

    def launch(self, role: Role, args: Sequence[str], engine: ServerEngine) -> None:
        """Start a role's engine in a new task and return immediately.

        The argument list is frozen at launch.

        Raises:
            RoleAlreadyStartedError: If the role was launched before
            StartupAbortedError: If the lifecycle signal has already fired
        """
        if role in self._tasks:
            raise RoleAlreadyStartedError(f"{role.value} already started", role=role.value)
        if self.lifecycle.cancelled:
            raise StartupAbortedError(f"Not starting {role.value}: {self.lifecycle.reason}")

        running = RunningTask(role=role, args=tuple(args))
        self._tasks[role] = running
        self.lifecycle.task_started()
        running.task = asyncio.get_running_loop().create_task(
            self._run(running, engine), name=role.value
        )
        logger.info("role launched", role=role.value)

    async def _run(self, running: RunningTask, engine: ServerEngine) -> None:
        """Run one role until its engine returns."""
        log = logger.bind(role=running.role.value)
        try:
            await engine.run(list(running.args), self.lifecycle)
        except asyncio.CancelledError:
            running.state = RoleState.STOPPED
            log.info("role task cancelled")
            raise
        except Exception as e:
            running.state = RoleState.FAILED
            running.error = e
            log.error("role exited", error=str(e))
            self.lifecycle.cancel(f"{running.role.value} exited: {e}")
        else:
            running.state = RoleState.STOPPED
            log.info("role stopped")
        finally:
            self.lifecycle.task_done()

    async def wait(self) -> None:
        """Block until every launched role has completed."""
        tasks = [r.task for r in self._tasks.values() if r.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug(
            "all roles drained",
            launched=self.lifecycle.launched,
            done=self.lifecycle.done_count,
        )

    def is_started(self, role: Role) -> bool:
        """Whether a role has been launched."""
        return role in self._tasks

    def states(self) -> dict[Role, RoleState]:
        """Snapshot of every role's state."""
        states = {}
        for role in Role:
            if role == Role.STORE:
                continue
            running = self._tasks.get(role)
            states[role] = running.state if running else RoleState.NOT_STARTED
        return states

    def failures(self) -> list[tuple[Role, BaseException]]:
        """Roles that exited with an error, with their errors."""
        return [
            (r.role, r.error)
            for r in self._tasks.values()
            if r.state == RoleState.FAILED and r.error is not None
        ]
