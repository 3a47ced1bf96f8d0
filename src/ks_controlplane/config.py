"""Control-plane configuration.

Holds the single ControlPlaneConfig value handed to the orchestrator.
Supports a YAML config file and environment variable overrides; CLI flags
are applied on top by the command layer.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError
from .shared import paths

# Default values
DEFAULT_ADVERTISE_ADDRESS = "0.0.0.0"
DEFAULT_BIND_PORT = 6443
DEFAULT_CLUSTER_NAME = "kubernetes"
DEFAULT_DNS_DOMAIN = "cluster.local"
DEFAULT_POD_SUBNET = "172.21.0.0/18"
DEFAULT_SERVICE_SUBNET = "172.18.0.0/21"

# Environment variable mappings
ENV_VARS = {
    "kubernetes_dir": "KS_KUBERNETES_DIR",
    "etcd_data_dir": "KS_ETCD_DATA_DIR",
    "etcd_socket_path": "KS_ETCD_SOCKET_PATH",
    "advertise_address": "KS_ADVERTISE_ADDRESS",
    "bind_port": "KS_BIND_PORT",
    "cluster_name": "KS_CLUSTER_NAME",
    "dns_domain": "KS_DNS_DOMAIN",
    "pod_subnet": "KS_POD_SUBNET",
    "service_subnet": "KS_SERVICE_SUBNET",
}

SCALAR_KEYS = (
    "advertise_address",
    "bind_port",
    "cluster_name",
    "dns_domain",
    "etcd_data_dir",
    "etcd_socket_path",
    "certificates_dir",
    "kubernetes_dir",
    "pod_subnet",
    "service_subnet",
)

EXTRA_ARGS_KEYS = (
    "apiserver_extra_args",
    "controller_manager_extra_args",
    "scheduler_extra_args",
)


@dataclass(frozen=True)
class Arg:
    """A single command-line argument (name without leading dashes)."""

    name: str
    value: str


@dataclass
class ControlPlaneConfig:
    """Configuration of a single-node control plane.

    Empty fields are filled by apply_defaults().
    """

    advertise_address: str = ""
    bind_port: int = 0
    cluster_name: str = ""
    dns_domain: str = ""
    etcd_data_dir: str = ""
    etcd_socket_path: str = ""
    certificates_dir: str = ""
    kubernetes_dir: str = ""
    pod_subnet: str = ""
    service_subnet: str = ""

    apiserver_extra_args: list[Arg] = field(default_factory=list)
    controller_manager_extra_args: list[Arg] = field(default_factory=list)
    scheduler_extra_args: list[Arg] = field(default_factory=list)

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, repr=False, compare=False)
    _defaults_applied: bool = field(default=False, repr=False, compare=False)

    @property
    def defaults_applied(self) -> bool:
        """Whether apply_defaults() has run."""
        return self._defaults_applied

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def apply_defaults(self) -> ControlPlaneConfig:
        """Fill every empty field with its default.

        Runs once; later calls are no-ops so the values a role was launched
        with never change underneath it. A ``unix://`` socket URI is reduced
        to its path.

        Raises:
            ConfigurationError: If the etcd socket URI has another scheme
        """
        if self._defaults_applied:
            return self

        if not self.advertise_address:
            self.advertise_address = DEFAULT_ADVERTISE_ADDRESS
        if not self.bind_port:
            self.bind_port = DEFAULT_BIND_PORT
        if not self.cluster_name:
            self.cluster_name = DEFAULT_CLUSTER_NAME
        if not self.dns_domain:
            self.dns_domain = DEFAULT_DNS_DOMAIN
        if not self.etcd_data_dir:
            self.etcd_data_dir = str(paths.ETCD_DATA_DIR)
        if not self.kubernetes_dir:
            self.kubernetes_dir = str(paths.KUBERNETES_DIR)
        if not self.certificates_dir:
            self.certificates_dir = str(paths.certificates_dir(self.kubernetes_dir))
        if not self.pod_subnet:
            self.pod_subnet = DEFAULT_POD_SUBNET
        if not self.service_subnet:
            self.service_subnet = DEFAULT_SERVICE_SUBNET
        if not self.etcd_socket_path:
            self.etcd_socket_path = str(paths.ETCD_SOCKET_PATH)
        # Roles build unix:// URLs from this, so keep it a plain path
        self.etcd_socket_path = str(paths.parse_socket_path(self.etcd_socket_path))

        self._defaults_applied = True
        return self

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for display (extra args as name/value maps)."""
        return {key: value for key, value in asdict(self).items() if not key.startswith("_")}


def get_config_path() -> Path:
    """Get the default config file path.

    Returns:
        Path to <kubernetes dir>/ks-controlplane.yaml
    """
    return paths.KUBERNETES_DIR / "ks-controlplane.yaml"


def parse_arg(text: str) -> Arg:
    """Parse a ``name=value`` override.

    Leading dashes on the name are accepted and stripped.

    Raises:
        ConfigurationError: If there is no '=' or the name is empty
    """
    name, sep, value = text.partition("=")
    name = name.strip().lstrip("-")
    if not sep or not name:
        raise ConfigurationError(f"Invalid argument {text!r}, expected NAME=VALUE")
    return Arg(name, value)


def _parse_extra_args(key: str, raw: Any) -> list[Arg]:
    """Parse extra args from YAML: a mapping or a list of {name, value}."""
    if raw is None:
        return []
    if isinstance(raw, dict):
        return [Arg(str(name), str(value)) for name, value in raw.items()]
    if isinstance(raw, list):
        args = []
        for item in raw:
            if isinstance(item, dict) and "name" in item:
                args.append(Arg(str(item["name"]), str(item.get("value", ""))))
            elif isinstance(item, str):
                args.append(parse_arg(item))
            else:
                raise ConfigurationError(f"Invalid entry in {key}: {item!r}")
        return args
    raise ConfigurationError(f"{key} must be a mapping or a list")


def _coerce(key: str, value: Any) -> Any:
    if key == "bind_port":
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"bind_port must be an integer, got {value!r}") from None
    return str(value)


def load_config(path: str | Path | None = None) -> ControlPlaneConfig:
    """Load control-plane configuration.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file (explicit path, or the default path if it exists)
    3. Defaults (filled later by apply_defaults)

    Args:
        path: Optional config file path. An explicit path must exist.

    Returns:
        ControlPlaneConfig with values and sources

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    config = ControlPlaneConfig()
    sources: dict[str, str] = {}

    config_path = Path(path) if path else get_config_path()
    if path and not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    if config_path.exists():
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read config file {config_path}: {e}") from e

        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")

        for key in SCALAR_KEYS:
            if file_config.get(key) not in (None, ""):
                setattr(config, key, _coerce(key, file_config[key]))
                sources[key] = "config file"
        for key in EXTRA_ARGS_KEYS:
            if key in file_config:
                setattr(config, key, _parse_extra_args(key, file_config[key]))
                sources[key] = "config file"

    # Override with environment variables
    for key, env_var in ENV_VARS.items():
        if os.environ.get(env_var):
            setattr(config, key, _coerce(key, os.environ[env_var]))
            sources[key] = "environment"

    config._sources = sources
    return config
