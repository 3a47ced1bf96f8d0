"""Command-line arguments for each control-plane role.

Every builder computes the role's default arguments from the configuration
and merges the user's overrides on top. Overrides win: an override replaces
the default of the same name in place, and overrides without a matching
default are appended in the order they were first given.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence

from .authz import resolve_authz_modes
from .config import Arg, ControlPlaneConfig
from .shared import paths
from .types import Role

AUTHORIZATION_MODE = "authorization-mode"
AUTHORIZATION_CONFIG = "authorization-config"

STORE_PEER_URL = "http://127.0.0.1:2380"


def socket_url(socket_path: str) -> str:
    """Local-socket URL for the etcd client endpoint."""
    return f"unix://{socket_path}"


def get_arg(args: Iterable[Arg], name: str) -> str | None:
    """Get the last value given for an argument, or None if absent."""
    value = None
    for arg in args:
        if arg.name == name:
            value = arg.value
    return value


def set_arg(args: list[Arg], name: str, value: str) -> list[Arg]:
    """Set an argument in place, appending it if it is not present yet."""
    for i, arg in enumerate(args):
        if arg.name == name:
            args[i] = Arg(name, value)
            return args
    args.append(Arg(name, value))
    return args


def merge_args(defaults: Sequence[Arg], overrides: Sequence[Arg]) -> list[Arg]:
    """Merge overrides on top of defaults.

    The result keeps the declared order of the defaults followed by any new
    override names in first-seen order. Each name appears once, carrying the
    last override value given for it.
    """
    merged = list(defaults)
    for arg in overrides:
        set_arg(merged, arg.name, arg.value)
    return merged


def args_to_command(args: Iterable[Arg]) -> list[str]:
    """Render arguments as ``--name=value`` flags."""
    return [f"--{arg.name}={arg.value}" for arg in args]


def _cert(cfg: ControlPlaneConfig, name: str) -> str:
    return os.path.join(cfg.certificates_dir, name)


def store_args(cfg: ControlPlaneConfig, overrides: Sequence[Arg] = ()) -> list[Arg]:
    """Build etcd arguments: client traffic only on the local socket."""
    client_url = socket_url(cfg.etcd_socket_path)
    defaults = [
        Arg("name", cfg.cluster_name),
        Arg("data-dir", cfg.etcd_data_dir),
        Arg("listen-client-urls", client_url),
        Arg("advertise-client-urls", client_url),
        Arg("listen-peer-urls", STORE_PEER_URL),
        Arg("initial-advertise-peer-urls", STORE_PEER_URL),
        Arg("initial-cluster", f"{cfg.cluster_name}={STORE_PEER_URL}"),
    ]
    return merge_args(defaults, overrides)


def apiserver_args(cfg: ControlPlaneConfig, overrides: Sequence[Arg] = ()) -> list[Arg]:
    """Build kube-apiserver arguments.

    The authorization mode is resolved from the user's authorization-mode
    override unless an authorization-config override is given, in which
    case the structured configuration takes over and no mode is set.
    """
    defaults = [
        Arg("advertise-address", cfg.advertise_address),
        Arg("cert-dir", cfg.certificates_dir),
        Arg("enable-admission-plugins", "NodeRestriction"),
        Arg("service-cluster-ip-range", cfg.service_subnet),
        Arg("service-account-key-file", _cert(cfg, paths.SERVICE_ACCOUNT_PUBLIC_KEY_NAME)),
        Arg(
            "service-account-signing-key-file",
            _cert(cfg, paths.SERVICE_ACCOUNT_PRIVATE_KEY_NAME),
        ),
        Arg("service-account-issuer", f"https://kubernetes.default.svc.{cfg.dns_domain}"),
        Arg("client-ca-file", _cert(cfg, paths.CA_CERT_NAME)),
        Arg("tls-cert-file", _cert(cfg, paths.APISERVER_CERT_NAME)),
        Arg("tls-private-key-file", _cert(cfg, paths.APISERVER_KEY_NAME)),
        Arg("secure-port", str(cfg.bind_port)),
        Arg("allow-privileged", "true"),
        Arg("requestheader-username-headers", "X-Remote-User"),
        Arg("requestheader-group-headers", "X-Remote-Group"),
        Arg("requestheader-extra-headers-prefix", "X-Remote-Extra-"),
        Arg("requestheader-client-ca-file", _cert(cfg, paths.FRONT_PROXY_CA_CERT_NAME)),
        Arg("requestheader-allowed-names", "front-proxy-client"),
        Arg("proxy-client-cert-file", _cert(cfg, paths.FRONT_PROXY_CLIENT_CERT_NAME)),
        Arg("proxy-client-key-file", _cert(cfg, paths.FRONT_PROXY_CLIENT_KEY_NAME)),
        Arg("etcd-servers", socket_url(cfg.etcd_socket_path)),
    ]

    overrides = list(overrides)
    if get_arg(overrides, AUTHORIZATION_CONFIG) is None:
        modes = resolve_authz_modes(get_arg(overrides, AUTHORIZATION_MODE))
        set_arg(defaults, AUTHORIZATION_MODE, modes)
        # the user's value has been validated into `modes`
        overrides = [
            Arg(arg.name, modes) if arg.name == AUTHORIZATION_MODE else arg for arg in overrides
        ]

    return merge_args(defaults, overrides)


def controller_manager_args(
    cfg: ControlPlaneConfig, overrides: Sequence[Arg] = ()
) -> list[Arg]:
    """Build kube-controller-manager arguments."""
    kubeconfig = os.path.join(cfg.kubernetes_dir, paths.CONTROLLER_MANAGER_KUBECONFIG_NAME)
    ca_file = _cert(cfg, paths.CA_CERT_NAME)

    defaults = [
        Arg("bind-address", "127.0.0.1"),
        Arg("cert-dir", cfg.certificates_dir),
        Arg("leader-elect", "false"),
        Arg("kubeconfig", kubeconfig),
        Arg("authentication-kubeconfig", kubeconfig),
        Arg("authorization-kubeconfig", kubeconfig),
        Arg("client-ca-file", ca_file),
        Arg("requestheader-client-ca-file", _cert(cfg, paths.FRONT_PROXY_CA_CERT_NAME)),
        Arg("root-ca-file", ca_file),
        Arg(
            "service-account-private-key-file",
            _cert(cfg, paths.SERVICE_ACCOUNT_PRIVATE_KEY_NAME),
        ),
        Arg("cluster-signing-cert-file", ca_file),
        Arg("cluster-signing-key-file", _cert(cfg, paths.CA_KEY_NAME)),
        Arg("use-service-account-credentials", "true"),
        Arg("controllers", "*,bootstrapsigner,tokencleaner"),
    ]

    # Let the controller-manager allocate node CIDRs for the pod network
    if cfg.pod_subnet:
        set_arg(defaults, "allocate-node-cidrs", "true")
        set_arg(defaults, "cluster-cidr", cfg.pod_subnet)
        if cfg.service_subnet:
            set_arg(defaults, "service-cluster-ip-range", cfg.service_subnet)

    if cfg.cluster_name:
        set_arg(defaults, "cluster-name", cfg.cluster_name)

    return merge_args(defaults, overrides)


def scheduler_args(cfg: ControlPlaneConfig, overrides: Sequence[Arg] = ()) -> list[Arg]:
    """Build kube-scheduler arguments."""
    kubeconfig = os.path.join(cfg.kubernetes_dir, paths.SCHEDULER_KUBECONFIG_NAME)
    defaults = [
        Arg("bind-address", "127.0.0.1"),
        Arg("cert-dir", cfg.certificates_dir),
        Arg("leader-elect", "false"),
        Arg("kubeconfig", kubeconfig),
        Arg("authentication-kubeconfig", kubeconfig),
        Arg("authorization-kubeconfig", kubeconfig),
    ]
    return merge_args(defaults, overrides)


_BUILDERS = {
    Role.STORE: store_args,
    Role.API_SERVER: apiserver_args,
    Role.CONTROLLER_MANAGER: controller_manager_args,
    Role.SCHEDULER: scheduler_args,
}


def role_overrides(role: Role, cfg: ControlPlaneConfig) -> list[Arg]:
    """Get the user overrides configured for a role."""
    if role == Role.API_SERVER:
        return list(cfg.apiserver_extra_args)
    if role == Role.CONTROLLER_MANAGER:
        return list(cfg.controller_manager_extra_args)
    if role == Role.SCHEDULER:
        return list(cfg.scheduler_extra_args)
    return []


def build_args(
    role: Role,
    cfg: ControlPlaneConfig,
    overrides: Sequence[Arg] | None = None,
) -> list[Arg]:
    """Build the merged argument list for a role.

    Args:
        role: Server role
        cfg: Configuration with defaults applied
        overrides: User overrides; defaults to the role's extra args in cfg

    Returns:
        Ordered, deduplicated arguments
    """
    if overrides is None:
        overrides = role_overrides(role, cfg)
    return _BUILDERS[role](cfg, overrides)
