"""
Command-line interface for compose-harness

Brings a compose environment up, waits for its services, reports resolved
endpoints and tears it down again; useful for checking a manifest and its
readiness checks outside a test run.
"""

import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from . import __author__, __version__
from .composition import CompositionBuilder, DockerComposition
from .config import HarnessConfig, load_config
from .errors import HarnessError
from .logging_config import setup_logging
from .waiting import ReadinessCheck, to_have_all_ports_open, to_respond_over_http

compose_file_option = click.option(
    "--file",
    "-f",
    "compose_files",
    multiple=True,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Compose file (repeat to combine several files)",
)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--log-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory for harness log files",
)
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: Optional[str],
    verbose: bool,
    log_dir: Optional[Path],
) -> None:
    """
    compose-harness: docker-compose environments for integration tests
    """
    config = load_config(
        cli_overrides={
            k: v for k, v in {
                "log_level": log_level.upper() if log_level else None,
                "verbose": verbose or None,
                "log_dir": str(log_dir) if log_dir else None,
            }.items() if v is not None
        },
    )

    setup_logging(
        log_dir=config.log_dir,
        verbose=config.verbose,
        log_level="DEBUG" if config.verbose else config.log_level,
        enable_file_logging=config.enable_file_logging,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


def parse_http_wait(value: str) -> Tuple[str, int, str]:
    """
    Parse a SERVICE:PORT[:PATH] readiness option value.

    Raises:
        click.BadParameter: If the value is malformed
    """
    parts = value.split(":", 2)
    if len(parts) < 2 or not parts[0]:
        raise click.BadParameter(f"expected SERVICE:PORT[:PATH], got '{value}'")
    try:
        port = int(parts[1])
    except ValueError:
        raise click.BadParameter(f"port must be a number in '{value}'")
    path = parts[2] if len(parts) == 3 else "/"
    if not path.startswith("/"):
        path = "/" + path
    return parts[0], port, path


def http_check(port: int, path: str) -> ReadinessCheck:
    template = f"http://$HOST:$EXTERNAL_PORT{path}"
    return to_respond_over_http(port, lambda docker_port: docker_port.in_format(template))


def _builder(config: HarnessConfig, compose_files: Tuple[Path, ...]) -> CompositionBuilder:
    return DockerComposition.of(*compose_files, config=config)


@cli.command()
@compose_file_option
@click.option("--wait-ports", multiple=True, metavar="SERVICE", help="Wait until all ports of SERVICE are open")
@click.option("--wait-http", multiple=True, metavar="SERVICE:PORT[:PATH]", help="Wait until SERVICE answers HTTP GET with 2xx")
@click.option("--timeout", type=float, default=None, help="Per-service readiness timeout in seconds")
@click.option("--save-logs", type=click.Path(path_type=Path), default=None, help="Directory to archive service logs into")
@click.option("--parallel", is_flag=True, help="Wait for services concurrently")
@click.option("--keep", is_flag=True, help="Leave the environment running")
@click.pass_context
def up(
    ctx: click.Context,
    compose_files: Tuple[Path, ...],
    wait_ports: Tuple[str, ...],
    wait_http: Tuple[str, ...],
    timeout: Optional[float],
    save_logs: Optional[Path],
    parallel: bool,
    keep: bool,
) -> None:
    """Start an environment and wait for its services."""
    config = ctx.obj["config"]

    try:
        builder = _builder(config, compose_files)
        for service in wait_ports:
            builder = builder.waiting_for_service(service, to_have_all_ports_open())
        for value in wait_http:
            service, port, path = parse_http_wait(value)
            builder = builder.waiting_for_service(service, http_check(port, path))
        if timeout is not None:
            builder = builder.service_timeout(timeout)
        if save_logs is not None:
            builder = builder.save_logs_to(save_logs)
        composition = builder.parallel_waits(parallel).build()
    except HarnessError as e:
        click.echo(f"❌ Invalid configuration: {e}", err=True)
        sys.exit(1)

    click.echo(f"🚀 Starting environment from {', '.join(str(f) for f in compose_files)}")
    try:
        composition.before()
        click.echo("✅ Environment is ready")
        for container in composition.services_to_wait_for:
            for port in container.ports():
                click.echo(f"   {container.name}: {port.internal_port} -> {port}")
    except HarnessError as e:
        click.echo(f"❌ Failed to start environment: {e}", err=True)
        _tear_down(composition)
        sys.exit(1)

    if keep:
        click.echo("Environment left running; use 'down' to remove it")
        return

    if not _tear_down(composition):
        sys.exit(1)


def _tear_down(composition: DockerComposition) -> bool:
    click.echo("🛑 Tearing down environment")
    try:
        composition.after()
    except HarnessError as e:
        click.echo(f"❌ Teardown failed: {e}", err=True)
        return False
    click.echo("✅ Environment removed")
    return True


@cli.command()
@compose_file_option
@click.pass_context
def down(ctx: click.Context, compose_files: Tuple[Path, ...]) -> None:
    """Tear down an environment left running."""
    config = ctx.obj["config"]

    try:
        composition = _builder(config, compose_files).build()
    except HarnessError as e:
        click.echo(f"❌ Invalid configuration: {e}", err=True)
        sys.exit(1)

    if not _tear_down(composition):
        sys.exit(1)


@cli.command("port")
@compose_file_option
@click.argument("service")
@click.argument("port", type=int)
@click.option("--internal", is_flag=True, help="Print the address used from other containers")
@click.pass_context
def port_command(
    ctx: click.Context,
    compose_files: Tuple[Path, ...],
    service: str,
    port: int,
    internal: bool,
) -> None:
    """Print the resolved HOST:PORT of a running service port."""
    config = ctx.obj["config"]

    try:
        composition = _builder(config, compose_files).build()
        if internal:
            endpoint = composition.port_on_container_with_internal_mapping(service, port)
        else:
            endpoint = composition.port_on_container_with_external_mapping(service, port)
    except HarnessError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(str(endpoint))


@cli.command("config-show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Display current configuration."""
    config = ctx.obj["config"]

    click.echo("Current compose-harness Configuration:")
    click.echo("=" * 40)
    click.echo(f"Compose Command     : {config.docker_compose_command}")
    click.echo(f"Docker Command      : {config.docker_command}")
    click.echo(f"Project Name        : {config.project_name or '(default)'}")
    click.echo(f"Service Timeout     : {config.service_timeout:g}s")
    click.echo(f"Poll Interval       : {config.poll_interval:g}s")
    click.echo(f"Command Timeout     : {config.command_timeout}")
    click.echo(f"Log Level           : {config.log_level}")
    click.echo(f"Log Dir             : {config.log_dir}")
    click.echo(f"Verbose             : {config.verbose}")


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"compose-harness version {__version__}")
    click.echo(f"Author: {__author__}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
