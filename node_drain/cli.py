import json
from pathlib import Path
from typing import Optional

import typer

from node_drain.client import ResourceClient, load_api_client
from node_drain.cordon import NodeCordoner
from node_drain.drain import DrainController
from node_drain.errors import DrainError
from node_drain.logger_config import configure_logging, setup_logger
from node_drain.session import DrainResult
from node_drain.settings import (
    DEFAULT_CONCURRENCY,
    DEFAULT_GRACE_PERIOD,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_TIMEOUT,
    TERMINAL_PHASE_ACCEPT,
    DrainConfig,
)

logger = setup_logger(__name__)

EXIT_OK = 0
EXIT_PODS_FAILED = 1
EXIT_NOT_STARTED = 2

app = typer.Typer(help="Safely evacuate pods from a Kubernetes node.", no_args_is_help=True)


def build_client(kubeconfig: Optional[str], context: Optional[str]) -> ResourceClient:
    return ResourceClient(load_api_client(kubeconfig, context))


def save_report(result: DrainResult, path: Path) -> None:
    with open(path, "w") as f:
        json.dump(result.to_dict(), f, indent=2, default=str)
    logger.info(f"Report saved to {path}")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    configure_logging("DEBUG" if verbose else "INFO")


@app.command()
def drain(
    node: str = typer.Argument(..., help="Name of the node to drain"),
    grace_period: Optional[int] = typer.Option(
        DEFAULT_GRACE_PERIOD, "--grace-period",
        help="Seconds each pod is given to terminate; defaults to the pod's own setting"),
    force: bool = typer.Option(False, "--force", help="Delete pods not managed by any controller"),
    ignore_daemonsets: bool = typer.Option(
        False, "--ignore-daemonsets", help="Delete DaemonSet and mirror pods instead of skipping them"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="Seconds before giving up, 0 waits forever"),
    poll_interval: float = typer.Option(
        DEFAULT_POLL_INTERVAL, "--poll-interval", help="Seconds between checks for pod removal"),
    skip_discovery: bool = typer.Option(
        False, "--skip-discovery", help="Assume policy/v1 evictions instead of asking the API server"),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency", help="Pods drained in parallel"),
    disable_eviction: bool = typer.Option(
        False, "--disable-eviction", help="Delete pods directly, bypassing disruption budgets"),
    pod_selector: Optional[str] = typer.Option(None, "--pod-selector", help="Only drain pods matching this label selector"),
    terminal_phase_policy: str = typer.Option(
        TERMINAL_PHASE_ACCEPT, "--terminal-phase-policy",
        help="What to do with pods that finish instead of disappearing: accept or delete"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would be done"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a JSON report to this file"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Path to the kubeconfig file"),
    context: Optional[str] = typer.Option(None, "--context", help="Kubeconfig context to use"),
):
    """Cordon NODE and evict every pod that can safely move elsewhere."""
    config = DrainConfig(
        grace_period=grace_period,
        force=force,
        ignore_local_workloads=ignore_daemonsets,
        timeout=timeout,
        poll_interval=poll_interval,
        skip_discovery=skip_discovery,
        concurrency=concurrency,
        disable_eviction=disable_eviction,
        dry_run=dry_run,
        pod_selector=pod_selector,
        terminal_phase_policy=terminal_phase_policy,
    )
    try:
        config.validate()
    except ValueError as e:
        logger.error(f"Invalid options: {e}")
        raise typer.Exit(code=EXIT_NOT_STARTED)

    try:
        controller = DrainController(build_client(kubeconfig, context))
        result = controller.drain(node, config)
    except DrainError as e:
        logger.error(f"Drain of node {node} could not start: {e}")
        raise typer.Exit(code=EXIT_NOT_STARTED)

    for key, outcome in sorted(result.outcomes.items()):
        reason = outcome.to_dict()["reason"]
        suffix = f" ({reason})" if reason else ""
        typer.echo(f"pod/{key} {outcome.status.value}{suffix}")

    if report:
        save_report(result, report)

    if not result.ok:
        typer.echo(f"node/{node} partially drained: {len(result.failed)} of {len(result.outcomes)} pods failed")
        raise typer.Exit(code=EXIT_PODS_FAILED)
    typer.echo(f"node/{node} drained")


@app.command()
def cordon(
    node: str = typer.Argument(..., help="Name of the node"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would be done"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Path to the kubeconfig file"),
    context: Optional[str] = typer.Option(None, "--context", help="Kubeconfig context to use"),
):
    """Mark NODE as unschedulable."""
    try:
        NodeCordoner(build_client(kubeconfig, context)).cordon(node, dry_run=dry_run)
    except DrainError as e:
        logger.error(f"Failed to cordon node {node}: {e}")
        raise typer.Exit(code=EXIT_NOT_STARTED)
    typer.echo(f"node/{node} cordoned")


@app.command()
def uncordon(
    node: str = typer.Argument(..., help="Name of the node"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would be done"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Path to the kubeconfig file"),
    context: Optional[str] = typer.Option(None, "--context", help="Kubeconfig context to use"),
):
    """Mark NODE as schedulable again."""
    try:
        NodeCordoner(build_client(kubeconfig, context)).uncordon(node, dry_run=dry_run)
    except DrainError as e:
        logger.error(f"Failed to uncordon node {node}: {e}")
        raise typer.Exit(code=EXIT_NOT_STARTED)
    typer.echo(f"node/{node} uncordoned")
