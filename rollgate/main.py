#!/usr/bin/env python3
"""
Rollgate - Main Entry Point

This is the thin CLI layer that:
1. Loads configuration
2. Wires modules together
3. Reports outcomes and exit codes

All deployment logic is in the modules, following black box principles.
"""

import signal
import sys
from typing import List, Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from rollgate.config.provider import EnvConfigProvider, Settings
from rollgate.logging_config import configure_logging
from rollgate.modules.cluster import ClusterManager, ImagePublisher, RouteResolver
from rollgate.modules.diagnostics import DiagnosticsCollector
from rollgate.modules.errors import OperationCancelled, RollgateError
from rollgate.modules.executor import CommandExecutor, KubectlExecutor, RetryPolicy
from rollgate.modules.models import ResourceSpec, RunReport
from rollgate.modules.orchestrator import Orchestrator
from rollgate.modules.plan import default_plan, load_plan

load_dotenv()

console = Console()
err_console = Console(stderr=True)


def _kubectl(settings: Settings) -> KubectlExecutor:
    return KubectlExecutor(
        retry=RetryPolicy(
            attempts=settings.deploy.apply_retries, delay=settings.deploy.retry_delay
        ),
        timeout=settings.deploy.command_timeout,
    )


def _load_specs(settings: Settings, plan_file: Optional[str]) -> List[ResourceSpec]:
    if plan_file:
        return load_plan(plan_file, default_namespace=settings.deploy.namespace)
    return default_plan(settings)


def _exit_with_error(error: Exception) -> None:
    err_console.print(f"[red]Error:[/red] {escape(str(error))}", highlight=False)
    sys.exit(130 if isinstance(error, OperationCancelled) else 1)


def print_report(report: RunReport) -> None:
    """Render a run report as a table plus any diagnostics."""
    readiness = {result.resource: result for result in report.readiness}

    table = Table(title=f"Deployment {report.status.value}")
    table.add_column("Resource", style="cyan")
    table.add_column("Applied", style="green")
    table.add_column("Exit", style="yellow")
    table.add_column("Elapsed", style="yellow")
    table.add_column("Readiness", style="white")

    for result in report.results:
        ready = readiness.get(result.resource)
        table.add_row(
            result.resource,
            "yes" if result.succeeded else "no",
            str(result.exit_code),
            f"{result.elapsed:.1f}s",
            (ready.detail or "") if ready else "-",
        )
    console.print(table)

    if report.failed_at:
        err_console.print(
            f"[red]{report.status.value} at '{report.failed_at}':[/red] {escape(report.error or '')}",
            highlight=False,
        )
    if report.diagnostics is not None:
        err_console.print(report.diagnostics.render(), markup=False, highlight=False)


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]):
    """Ordered, readiness-gated deployments for a local k3d cluster."""
    try:
        settings = EnvConfigProvider().get_settings()
    except ValueError as e:
        raise click.ClickException(str(e))

    configure_logging((log_level or settings.log_level).upper())
    ctx.obj = settings


@cli.command()
@click.option(
    "--plan", "plan_file", type=click.Path(exists=True, dir_okay=False), default=None,
    help="YAML plan file; the built-in shopcarts plan is used when omitted",
)
@click.option("--skip-build", is_flag=True, help="Do not build and push the image first")
@click.pass_obj
def deploy(settings: Settings, plan_file: Optional[str], skip_build: bool):
    """Build, publish and deploy the service to the cluster."""
    kubectl = _kubectl(settings)
    orchestrator = Orchestrator(
        kubectl,
        collector=DiagnosticsCollector(kubectl, log_tail_lines=settings.deploy.log_tail_lines),
        namespace=settings.deploy.namespace,
    )

    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: orchestrator.cancel())
    try:
        specs = _load_specs(settings, plan_file)

        if not skip_build:
            docker = CommandExecutor("docker", cancel_event=orchestrator.cancel_event)
            publisher = ImagePublisher(settings.image, docker)
            publisher.build()
            publisher.push()

        console.print("Deploying and waiting for workloads...")
        report = orchestrator.run(specs)
    except RollgateError as e:
        _exit_with_error(e)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print_report(report)
    if report.succeeded:
        console.print(f"[green]Deploy complete.[/green] Access via {settings.deploy.base_url}")
    sys.exit(report.exit_code)


@cli.command("plan")
@click.option("--plan", "plan_file", type=click.Path(exists=True, dir_okay=False), default=None)
@click.pass_obj
def show_plan(settings: Settings, plan_file: Optional[str]):
    """Print the resolved apply order without touching the cluster."""
    try:
        orchestrator = Orchestrator(_kubectl(settings), namespace=settings.deploy.namespace)
        ordered = orchestrator.plan(_load_specs(settings, plan_file))
    except RollgateError as e:
        _exit_with_error(e)

    table = Table(title="Execution plan")
    table.add_column("#", style="yellow")
    table.add_column("Resource", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Manifest", style="white")
    table.add_column("Depends on", style="blue")
    table.add_column("Readiness", style="green")

    for index, spec in enumerate(ordered, start=1):
        table.add_row(
            str(index),
            spec.name,
            spec.kind.value,
            spec.manifest_path,
            ", ".join(spec.depends_on) or "-",
            f"{spec.readiness.kind.value} ({spec.timeout:g}s)" if spec.readiness else "-",
        )
    console.print(table)


@cli.command()
@click.pass_obj
def url(settings: Settings):
    """Show the ingress URL."""
    entry = RouteResolver(_kubectl(settings)).resolve(settings.deploy.namespace)
    if entry is None:
        err_console.print("No ingress found. Run 'rollgate deploy' first.")
        sys.exit(1)

    click.echo(entry.address)
    if entry.source == "hostname":
        err_console.print("[yellow]No load balancer IP assigned; showing the ingress host rule[/yellow]")


def _cluster_manager(settings: Settings) -> ClusterManager:
    return ClusterManager(
        settings.cluster,
        settings.image,
        k3d=CommandExecutor("k3d", timeout=settings.cluster.create_timeout),
        kubectl=_kubectl(settings),
    )


@cli.command()
@click.pass_obj
def cluster(settings: Settings):
    """Create a K3D Kubernetes cluster with load balancer and registry."""
    try:
        _cluster_manager(settings).create()
    except RollgateError as e:
        _exit_with_error(e)


def _remove_cluster(settings: Settings) -> None:
    try:
        _cluster_manager(settings).delete()
    except RollgateError as e:
        _exit_with_error(e)


@cli.command("cluster-rm")
@click.pass_obj
def cluster_rm(settings: Settings):
    """Remove the K3D Kubernetes cluster."""
    _remove_cluster(settings)


@cli.command()
@click.pass_obj
def teardown(settings: Settings):
    """Alias for cluster-rm."""
    _remove_cluster(settings)


@cli.command("import-image")
@click.pass_obj
def import_image(settings: Settings):
    """Import the locally built image into the cluster nodes."""
    try:
        _cluster_manager(settings).import_image()
    except RollgateError as e:
        _exit_with_error(e)


@cli.command()
@click.pass_obj
def build(settings: Settings):
    """Build the project container image for the local platform."""
    try:
        ImagePublisher(settings.image, CommandExecutor("docker")).build()
    except RollgateError as e:
        _exit_with_error(e)


@cli.command()
@click.pass_obj
def push(settings: Settings):
    """Push the image to the local registry."""
    try:
        target = ImagePublisher(settings.image, CommandExecutor("docker")).push()
    except RollgateError as e:
        _exit_with_error(e)
    console.print(f"Pushed {target}")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
