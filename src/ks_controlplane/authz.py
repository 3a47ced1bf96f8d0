"""kube-apiserver authorization mode resolution.

Node,RBAC is the default mode list. User-provided modes override the default
as long as at least one of them is valid; unknown modes are dropped with a
warning and never fail the bootstrap.
"""

from __future__ import annotations

from .shared.logging import get_logger

logger = get_logger(__name__)

MODE_NODE = "Node"
MODE_RBAC = "RBAC"
MODE_WEBHOOK = "Webhook"
MODE_ABAC = "ABAC"
MODE_ALWAYS_ALLOW = "AlwaysAllow"
MODE_ALWAYS_DENY = "AlwaysDeny"

DEFAULT_MODES = (MODE_NODE, MODE_RBAC)

VALID_MODES = frozenset(
    {
        MODE_NODE,
        MODE_RBAC,
        MODE_WEBHOOK,
        MODE_ABAC,
        MODE_ALWAYS_ALLOW,
        MODE_ALWAYS_DENY,
    }
)


def is_valid_authz_mode(mode: str) -> bool:
    """Check whether a single authorization mode is known to kube-apiserver."""
    return mode in VALID_MODES


def resolve_authz_modes(requested: str | None) -> str:
    """Resolve the authorization-mode value for kube-apiserver.

    Args:
        requested: Comma-separated modes from the user, possibly empty

    Returns:
        Comma-joined modes: the valid requested modes in the given order,
        or the default when none are valid.
    """
    if requested:
        modes = []
        for mode in requested.split(","):
            if is_valid_authz_mode(mode):
                modes.append(mode)
            else:
                logger.warning("ignoring unknown kube-apiserver authorization-mode", mode=mode)

        # only return the user provided modes if at least one was valid
        if modes:
            if tuple(modes) != DEFAULT_MODES:
                logger.warning(
                    "overriding the default kube-apiserver authorization-mode",
                    default=",".join(DEFAULT_MODES),
                    using=",".join(modes),
                )
            return ",".join(modes)

    return ",".join(DEFAULT_MODES)
