"""CLI main entry point."""

from __future__ import annotations

import asyncio
import functools
import sys
from collections.abc import Callable

import click
import yaml

from .args import args_to_command, build_args
from .bootstrap import run_control_plane
from .config import EXTRA_ARGS_KEYS, ControlPlaneConfig, load_config, parse_arg
from .errors import ConfigurationError
from .health import CONTROLLER_MANAGER_HEALTH_URL, HealthGate
from .shared.logging import configure_logging
from .types import Role

DEFAULT_HEALTH_TIMEOUT = 300.0

ROLE_NAMES = [role.value for role in Role]


def config_options(func: Callable) -> Callable:
    """Add the configuration flags shared by run, args and config."""
    options = [
        click.option("--kubernetes-dir", default=None, help="Kubeconfig and pki directory"),
        click.option("--etcd-data-dir", default=None, help="etcd data directory"),
        click.option("--etcd-socket-path", default=None, help="etcd client socket path"),
        click.option("--advertise-address", default=None, help="API server advertise address"),
        click.option("--bind-port", default=None, type=int, help="API server secure port"),
        click.option(
            "--apiserver-arg",
            "apiserver_extra_args",
            multiple=True,
            metavar="NAME=VALUE",
            help="Extra kube-apiserver argument (repeatable)",
        ),
        click.option(
            "--controller-manager-arg",
            "controller_manager_extra_args",
            multiple=True,
            metavar="NAME=VALUE",
            help="Extra kube-controller-manager argument (repeatable)",
        ),
        click.option(
            "--scheduler-arg",
            "scheduler_extra_args",
            multiple=True,
            metavar="NAME=VALUE",
            help="Extra kube-scheduler argument (repeatable)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def resolve_config(config_path: str | None, **flags) -> ControlPlaneConfig:
    """Load configuration and apply CLI flags on top.

    Extra arguments from flags are appended after those from the config
    file, so a flag wins over the file for the same name.

    Raises:
        click.ClickException: On any configuration error
    """
    try:
        config = load_config(config_path)
        for key in EXTRA_ARGS_KEYS:
            values = flags.pop(key, ())
            if values:
                getattr(config, key).extend(parse_arg(v) for v in values)
                config._sources[key] = "flag"

        for key, value in flags.items():
            if value is not None:
                setattr(config, key, value)
                config._sources[key] = "flag"

        return config.apply_defaults()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def pass_config(func: Callable) -> Callable:
    """Resolve the configuration from context and flags for a command."""

    @functools.wraps(func)
    @click.pass_context
    def wrapper(ctx: click.Context, *args, **kwargs):
        flag_keys = [
            "kubernetes_dir",
            "etcd_data_dir",
            "etcd_socket_path",
            "advertise_address",
            "bind_port",
            *EXTRA_ARGS_KEYS,
        ]
        flags = {key: kwargs.pop(key) for key in flag_keys}
        config = resolve_config(ctx.obj.get("config_path"), **flags)
        return func(config, *args, **kwargs)

    return wrapper


@click.group()
@click.option("-c", "--config", type=click.Path(), help="Config file path")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error", "critical"]),
    default="info",
    help="Log level",
)
@click.option("--json-logs", is_flag=True, help="Log as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str, json_logs: bool) -> None:
    """Bootstrap a single-node Kubernetes control plane from scratch."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    configure_logging(level=log_level, json_output=json_logs)


@cli.command()
@config_options
@click.option(
    "--health-url",
    default=CONTROLLER_MANAGER_HEALTH_URL,
    help="Controller manager health endpoint",
)
@click.option(
    "--health-timeout",
    default=DEFAULT_HEALTH_TIMEOUT,
    type=float,
    help="Seconds to wait for the controller manager (0 waits forever)",
)
@pass_config
def run(config: ControlPlaneConfig, health_url: str, health_timeout: float) -> None:
    """Start etcd, kube-apiserver, kube-controller-manager and kube-scheduler.

    Runs until SIGINT/SIGTERM or until any component fails, then stops
    every component and etcd last.

    Examples:

        # Defaults under /etc/kubernetes and /var/lib/etcd
        ks-controlplane run

        # Scratch directories and an extra API server flag
        ks-controlplane run --kubernetes-dir _tmp/etc/kubernetes \\
            --etcd-data-dir _tmp/etcd --apiserver-arg v=2
    """
    gate = HealthGate(deadline_seconds=health_timeout or None)
    result = asyncio.run(run_control_plane(config, health_url=health_url, health_gate=gate))

    if result.success:
        click.echo("✓ Control plane stopped.")
    else:
        click.echo(f"✗ {result.error}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("role", type=click.Choice(ROLE_NAMES))
@config_options
@pass_config
def args(config: ControlPlaneConfig, role: str) -> None:
    """Print the command line a role would be started with."""
    click.echo(role)
    for flag in args_to_command(build_args(Role(role), config)):
        click.echo(f"  {flag}")


@cli.command(name="config")
@config_options
@click.option("--sources", is_flag=True, help="Show where each value came from")
@pass_config
def show_config(config: ControlPlaneConfig, sources: bool) -> None:
    """Print the resolved configuration as YAML."""
    data = config.to_dict()
    click.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False), nl=False)

    if sources:
        click.echo("\nSources:")
        for key in data:
            click.echo(f"  {key}: {config.get_source(key)}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
