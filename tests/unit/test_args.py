"""Unit tests for role argument building."""

from __future__ import annotations

import pytest

from ks_controlplane.args import (
    apiserver_args,
    args_to_command,
    build_args,
    controller_manager_args,
    get_arg,
    merge_args,
    scheduler_args,
    store_args,
)
from ks_controlplane.config import Arg, ControlPlaneConfig
from ks_controlplane.types import Role


@pytest.fixture
def config():
    return ControlPlaneConfig(
        kubernetes_dir="/tmp/kd",
        etcd_data_dir="/tmp/ed",
        etcd_socket_path="/tmp/ed/etcd.sock",
    ).apply_defaults()


def names(args: list[Arg]) -> list[str]:
    return [a.name for a in args]


class TestMergeArgs:
    """Tests for the override merge policy."""

    def test_override_replaces_default_in_place(self):
        """Test an override keeps the default's position."""
        defaults = [Arg("a", "1"), Arg("b", "2"), Arg("c", "3")]
        merged = merge_args(defaults, [Arg("b", "20")])
        assert merged == [Arg("a", "1"), Arg("b", "20"), Arg("c", "3")]

    def test_new_overrides_are_appended_in_given_order(self):
        """Test overrides without a default go after the defaults."""
        defaults = [Arg("a", "1")]
        merged = merge_args(defaults, [Arg("z", "26"), Arg("y", "25")])
        assert names(merged) == ["a", "z", "y"]

    def test_last_override_wins(self):
        """Test repeated override names collapse to the last value."""
        defaults = [Arg("a", "1")]
        merged = merge_args(defaults, [Arg("a", "2"), Arg("n", "x"), Arg("a", "3"), Arg("n", "y")])
        assert merged == [Arg("a", "3"), Arg("n", "y")]

    def test_defaults_untouched(self):
        """Test merging does not mutate the input lists."""
        defaults = [Arg("a", "1")]
        overrides = [Arg("a", "2")]
        merge_args(defaults, overrides)
        assert defaults == [Arg("a", "1")]
        assert overrides == [Arg("a", "2")]

    def test_no_overrides(self):
        """Test merging nothing returns the defaults."""
        defaults = [Arg("a", "1"), Arg("b", "2")]
        assert merge_args(defaults, []) == defaults


class TestArgsToCommand:
    """Tests for rendering flags."""

    def test_renders_flags(self):
        """Test arguments render as --name=value."""
        assert args_to_command([Arg("v", "2"), Arg("leader-elect", "false")]) == [
            "--v=2",
            "--leader-elect=false",
        ]

    def test_empty_value(self):
        """Test an empty value still renders."""
        assert args_to_command([Arg("feature-gates", "")]) == ["--feature-gates="]


class TestAPIServerArgs:
    """Tests for kube-apiserver arguments."""

    def test_defaults(self, config):
        """Test the computed defaults."""
        args = apiserver_args(config)
        assert get_arg(args, "advertise-address") == "0.0.0.0"
        assert get_arg(args, "secure-port") == "6443"
        assert get_arg(args, "cert-dir") == "/tmp/kd/pki"
        assert get_arg(args, "tls-cert-file") == "/tmp/kd/pki/apiserver.crt"
        assert get_arg(args, "tls-private-key-file") == "/tmp/kd/pki/apiserver.key"
        assert get_arg(args, "service-account-key-file") == "/tmp/kd/pki/sa.pub"
        assert get_arg(args, "service-account-signing-key-file") == "/tmp/kd/pki/sa.key"
        assert get_arg(args, "client-ca-file") == "/tmp/kd/pki/ca.crt"
        assert get_arg(args, "requestheader-client-ca-file") == "/tmp/kd/pki/front-proxy-ca.crt"
        assert get_arg(args, "allow-privileged") == "true"
        assert get_arg(args, "requestheader-username-headers") == "X-Remote-User"
        assert get_arg(args, "requestheader-group-headers") == "X-Remote-Group"
        assert get_arg(args, "requestheader-extra-headers-prefix") == "X-Remote-Extra-"
        assert get_arg(args, "service-cluster-ip-range") == "172.18.0.0/21"

    def test_issuer_uses_dns_domain(self, config):
        """Test the service account issuer is built from the DNS domain."""
        config.dns_domain = "example.test"
        args = apiserver_args(config)
        issuer = get_arg(args, "service-account-issuer")
        assert issuer == "https://kubernetes.default.svc.example.test"

    def test_single_etcd_server_on_socket(self, config):
        """Test etcd is reached only through the local socket."""
        args = apiserver_args(config)
        assert [a.value for a in args if a.name == "etcd-servers"] == ["unix:///tmp/ed/etcd.sock"]

    def test_default_authorization_mode(self, config):
        """Test Node,RBAC without overrides."""
        assert get_arg(apiserver_args(config), "authorization-mode") == "Node,RBAC"

    def test_authorization_mode_override_is_validated(self, config):
        """Test invalid modes are dropped from the override."""
        args = apiserver_args(config, [Arg("authorization-mode", "Webhook,bogus,RBAC")])
        assert [a.value for a in args if a.name == "authorization-mode"] == ["Webhook,RBAC"]

    def test_invalid_authorization_mode_override_falls_back(self, config):
        """Test an all-invalid override yields the default."""
        args = apiserver_args(config, [Arg("authorization-mode", "bogus")])
        assert get_arg(args, "authorization-mode") == "Node,RBAC"

    def test_authorization_config_skips_modes(self, config):
        """Test structured authorization replaces the mode list."""
        args = apiserver_args(config, [Arg("authorization-config", "/etc/authz.yaml")])
        assert get_arg(args, "authorization-mode") is None
        assert get_arg(args, "authorization-config") == "/etc/authz.yaml"

    def test_override_wins_once(self, config):
        """Test an override replaces the default exactly once."""
        args = apiserver_args(config, [Arg("secure-port", "7443")])
        assert [a.value for a in args if a.name == "secure-port"] == ["7443"]

    def test_unknown_override_appended(self, config):
        """Test a new argument goes at the end."""
        args = apiserver_args(config, [Arg("v", "4")])
        assert args[-1] == Arg("v", "4")


class TestControllerManagerArgs:
    """Tests for kube-controller-manager arguments."""

    def test_defaults(self, config):
        """Test the computed defaults."""
        args = controller_manager_args(config)
        kubeconfig = "/tmp/kd/controller-manager.conf"
        assert get_arg(args, "bind-address") == "127.0.0.1"
        assert get_arg(args, "leader-elect") == "false"
        assert get_arg(args, "kubeconfig") == kubeconfig
        assert get_arg(args, "authentication-kubeconfig") == kubeconfig
        assert get_arg(args, "authorization-kubeconfig") == kubeconfig
        assert get_arg(args, "cluster-signing-key-file") == "/tmp/kd/pki/ca.key"
        assert get_arg(args, "controllers") == "*,bootstrapsigner,tokencleaner"
        assert get_arg(args, "cluster-name") == "kubernetes"

    def test_cidr_allocation_with_subnets(self, config):
        """Test pod and service CIDRs are set when configured."""
        args = controller_manager_args(config)
        assert get_arg(args, "allocate-node-cidrs") == "true"
        assert get_arg(args, "cluster-cidr") == "172.21.0.0/18"
        assert get_arg(args, "service-cluster-ip-range") == "172.18.0.0/21"

    def test_no_cidr_allocation_without_pod_subnet(self, config):
        """Test CIDR flags are omitted without a pod subnet."""
        config.pod_subnet = ""
        args = controller_manager_args(config)
        assert get_arg(args, "allocate-node-cidrs") is None
        assert get_arg(args, "cluster-cidr") is None
        assert get_arg(args, "service-cluster-ip-range") is None

    def test_no_service_range_without_service_subnet(self, config):
        """Test the service range needs a service subnet."""
        config.service_subnet = ""
        args = controller_manager_args(config)
        assert get_arg(args, "cluster-cidr") == "172.21.0.0/18"
        assert get_arg(args, "service-cluster-ip-range") is None

    def test_no_cluster_name_when_empty(self, config):
        """Test cluster-name is omitted when empty."""
        config.cluster_name = ""
        assert get_arg(controller_manager_args(config), "cluster-name") is None


class TestSchedulerArgs:
    """Tests for kube-scheduler arguments."""

    def test_defaults(self, config):
        """Test the computed defaults in declared order."""
        args = scheduler_args(config)
        assert names(args) == [
            "bind-address",
            "cert-dir",
            "leader-elect",
            "kubeconfig",
            "authentication-kubeconfig",
            "authorization-kubeconfig",
        ]
        assert get_arg(args, "kubeconfig") == "/tmp/kd/scheduler.conf"

    def test_leader_elect_override(self, config):
        """Test an override replaces leader-elect in place."""
        args = scheduler_args(config, [Arg("leader-elect", "true")])
        assert args[2] == Arg("leader-elect", "true")


class TestStoreArgs:
    """Tests for etcd arguments."""

    def test_client_urls_on_socket(self, config):
        """Test client traffic is bound to the unix socket only."""
        args = store_args(config)
        assert get_arg(args, "listen-client-urls") == "unix:///tmp/ed/etcd.sock"
        assert get_arg(args, "advertise-client-urls") == "unix:///tmp/ed/etcd.sock"
        assert get_arg(args, "data-dir") == "/tmp/ed"

    def test_peer_urls_on_loopback(self, config):
        """Test the peer listener stays on loopback."""
        assert get_arg(store_args(config), "listen-peer-urls").startswith("http://127.0.0.1:")


class TestBuildArgs:
    """Tests for the role dispatcher."""

    def test_uses_config_extra_args(self, config):
        """Test the role's extra args from config are applied."""
        config.scheduler_extra_args = [Arg("v", "3")]
        assert get_arg(build_args(Role.SCHEDULER, config), "v") == "3"

    def test_explicit_overrides_replace_config_extra_args(self, config):
        """Test explicit overrides are used instead of config extra args."""
        config.scheduler_extra_args = [Arg("v", "3")]
        assert get_arg(build_args(Role.SCHEDULER, config, [Arg("v", "5")]), "v") == "5"

    @pytest.mark.parametrize("role", list(Role))
    def test_deterministic(self, config, role):
        """Test building twice gives the same result."""
        overrides = [Arg("v", "2"), Arg("bind-address", "10.0.0.1")]
        assert build_args(role, config, overrides) == build_args(role, config, overrides)

    @pytest.mark.parametrize("role", list(Role))
    def test_names_unique(self, config, role):
        """Test every argument name appears once."""
        overrides = [Arg("cert-dir", "/x"), Arg("v", "1"), Arg("v", "2")]
        built = names(build_args(role, config, overrides))
        assert len(built) == len(set(built))


class TestSocketURI:
    """Tests for a socket path given as a unix:// URI."""

    def test_store_and_apiserver_share_plain_socket(self):
        """Test the URI is reduced to a path before URLs are built."""
        cfg = ControlPlaneConfig(etcd_socket_path="unix:///tmp/ed/etcd.sock").apply_defaults()

        assert cfg.etcd_socket_path == "/tmp/ed/etcd.sock"
        assert get_arg(store_args(cfg), "listen-client-urls") == "unix:///tmp/ed/etcd.sock"
        assert get_arg(store_args(cfg), "advertise-client-urls") == "unix:///tmp/ed/etcd.sock"
        assert get_arg(apiserver_args(cfg), "etcd-servers") == "unix:///tmp/ed/etcd.sock"
