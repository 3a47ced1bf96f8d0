"""Shared modules for ks-controlplane.

Logging setup and filesystem layout used by every component.
"""

from .logging import configure_logging, get_logger
from .paths import (
    ETCD_DATA_DIR,
    ETCD_SOCKET_PATH,
    KUBERNETES_DIR,
    certificates_dir,
    ensure_data_dir,
    parse_socket_path,
)

__all__ = [
    # Paths
    "KUBERNETES_DIR",
    "ETCD_DATA_DIR",
    "ETCD_SOCKET_PATH",
    "certificates_dir",
    "ensure_data_dir",
    "parse_socket_path",
    # Logging
    "configure_logging",
    "get_logger",
]
