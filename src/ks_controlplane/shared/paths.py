"""Filesystem layout of a scratch control plane.

Default directories and the well-known file names kubeadm places under
``<kubernetes_dir>`` and ``<kubernetes_dir>/pki``.
"""

from pathlib import Path
from urllib.parse import urlparse

from ..errors import ConfigurationError

# Base directory for kubeconfigs and certificates
KUBERNETES_DIR = Path("/etc/kubernetes")

# etcd data directory and client socket
ETCD_DATA_DIR = Path("/var/lib/etcd")
ETCD_SOCKET_PATH = Path("/tmp/etcd.sock")

# Certificates (relative to the certificates directory)
CA_CERT_NAME = "ca.crt"
CA_KEY_NAME = "ca.key"
APISERVER_CERT_NAME = "apiserver.crt"
APISERVER_KEY_NAME = "apiserver.key"
SERVICE_ACCOUNT_PUBLIC_KEY_NAME = "sa.pub"
SERVICE_ACCOUNT_PRIVATE_KEY_NAME = "sa.key"
FRONT_PROXY_CA_CERT_NAME = "front-proxy-ca.crt"
FRONT_PROXY_CLIENT_CERT_NAME = "front-proxy-client.crt"
FRONT_PROXY_CLIENT_KEY_NAME = "front-proxy-client.key"

# Kubeconfigs (relative to the kubernetes directory)
CONTROLLER_MANAGER_KUBECONFIG_NAME = "controller-manager.conf"
SCHEDULER_KUBECONFIG_NAME = "scheduler.conf"


def certificates_dir(kubernetes_dir: str | Path) -> Path:
    """Get the default certificates directory for a kubernetes directory.

    Args:
        kubernetes_dir: Directory holding kubeconfigs

    Returns:
        Path to ``<kubernetes_dir>/pki``
    """
    return Path(kubernetes_dir) / "pki"


def ensure_data_dir(path: str | Path) -> Path:
    """Create a data directory (and parents) with user-only access.

    Args:
        path: Directory to create

    Returns:
        The directory path

    Raises:
        OSError: If the directory cannot be created
    """
    data_dir = Path(path)
    data_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    return data_dir


def parse_socket_path(socket_path: str | Path) -> Path:
    """Normalize a socket path or ``unix://`` URI to a filesystem path.

    Raises:
        ConfigurationError: If the URI has another scheme or no path
    """
    text = str(socket_path).strip()
    if "://" in text:
        parsed = urlparse(text)
        if parsed.scheme != "unix":
            raise ConfigurationError(f"Invalid etcd socket URI {text!r}: scheme must be unix")
        text = parsed.netloc + parsed.path
    if not text:
        raise ConfigurationError("etcd socket path is empty")
    return Path(text)
