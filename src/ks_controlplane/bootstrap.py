"""Bootstrap driver for a scratch control plane.

Runs the ordered start sequence, waits for SIGINT/SIGTERM or a role failure,
and always finishes with a full shutdown.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Mapping
from dataclasses import dataclass, field

from .config import ControlPlaneConfig
from .controlplane import ControlPlane
from .engine import ServerEngine
from .errors import ConfigurationError, ControlPlaneError, StartupAbortedError
from .health import CONTROLLER_MANAGER_HEALTH_URL, HealthGate
from .shared.logging import get_logger
from .store import EmbeddedStore
from .types import Role

logger = get_logger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass
class BootstrapResult:
    """Result of a bootstrap run."""

    success: bool
    error: str | None = None
    failures: list[str] = field(default_factory=list)


async def run_control_plane(
    config: ControlPlaneConfig,
    health_url: str = CONTROLLER_MANAGER_HEALTH_URL,
    health_gate: HealthGate | None = None,
    engines: Mapping[Role, ServerEngine] | None = None,
    store: EmbeddedStore | None = None,
    handle_signals: bool = True,
) -> BootstrapResult:
    """Bootstrap the control plane and run it until stopped.

    Order: etcd (blocking) -> kube-apiserver -> kube-controller-manager ->
    health gate on the controller manager -> kube-scheduler.

    Args:
        config: Control-plane configuration
        health_url: Controller manager health endpoint
        health_gate: Gate used to wait for the controller manager
        engines: Engines override (tests)
        store: Store override (tests)
        handle_signals: Install SIGINT/SIGTERM handlers on the running loop

    Returns:
        BootstrapResult; success is False if anything failed
    """
    try:
        control_plane = ControlPlane(config, engines=engines, store=store)
    except ConfigurationError as e:
        logger.error("invalid configuration", error=str(e))
        return BootstrapResult(success=False, error=str(e))

    gate = health_gate or HealthGate()
    loop = asyncio.get_running_loop()

    if handle_signals:
        for sig in HANDLED_SIGNALS:
            loop.add_signal_handler(sig, _on_signal, control_plane, sig)

    error: str | None = None
    try:
        await control_plane.start_store()
        control_plane.start_api_server()
        control_plane.start_controller_manager()

        await gate.wait_healthy(health_url, stop=control_plane.lifecycle)
        control_plane.start_scheduler()
        logger.info("control plane running", advertise_address=config.advertise_address)

        await control_plane.lifecycle.wait()
    except StartupAbortedError as e:
        logger.warning("startup aborted", reason=str(e))
    except ControlPlaneError as e:
        logger.error("bootstrap failed", error=str(e))
        error = str(e)
    finally:
        await control_plane.shutdown()
        if handle_signals:
            for sig in HANDLED_SIGNALS:
                loop.remove_signal_handler(sig)

    failures = control_plane.failures()
    if error is None and failures:
        error = "; ".join(failures)

    return BootstrapResult(success=error is None, error=error, failures=failures)


def _on_signal(control_plane: ControlPlane, sig: signal.Signals) -> None:
    logger.info("received signal, shutting down", signal=sig.name)
    control_plane.lifecycle.cancel(f"received {sig.name}")
