"""Portfolio monitor command-line interface."""

import json
import queue
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from portfolio_monitor import __version__
from portfolio_monitor.config import MonitorConfig
from portfolio_monitor.constants import HealthStatus, Priority
from portfolio_monitor.context import MonitorContext
from portfolio_monitor.coordinator import Coordinator
from portfolio_monitor.discovery import analyze_project, discover_projects
from portfolio_monitor.exceptions import ApplicationError
from portfolio_monitor.logging import get_logger, setup_logging
from portfolio_monitor.worker import ProjectWorker, scan_interval_for

console = Console()
logger = get_logger("cli")

STATUS_STYLES = {
    HealthStatus.HEALTHY.value: "green",
    HealthStatus.ATTENTION.value: "yellow",
    HealthStatus.CRITICAL.value: "red",
    HealthStatus.UNKNOWN.value: "dim",
}


def _load_config(ctx: click.Context) -> MonitorConfig:
    """Load configuration and apply logging settings.

    Exits non-zero with a readable message on failure.
    """
    try:
        config = MonitorConfig.load(ctx.obj.get("config_path"))
    except ApplicationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(e.message)}")
        raise SystemExit(1) from None

    level = ctx.obj.get("log_level") or config.logging.level
    setup_logging(
        level=level,
        log_dir=config.logging.directory,
        json_output=config.logging.json_output,
        console_output=config.logging.console,
    )
    return config


@click.group()
@click.version_option(version=__version__, prog_name="portfolio-monitor")
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="Configuration file")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warn", "error"]),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """Portfolio monitor - supervise a portfolio of repositories.

    Discovers projects, scans each on a cadence set by its priority and
    writes health snapshots and executive reports.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level


@cli.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """Start monitoring until interrupted.

    Examples:

        portfolio-monitor start

        portfolio-monitor --config portfolio-monitor.yml --log-level debug start
    """
    config = _load_config(ctx)
    coordinator = Coordinator(MonitorContext.from_config(config))

    try:
        coordinator.start()
    except ApplicationError as e:
        console.print(f"[red]Failed to start:[/red] {escape(str(e))}")
        raise SystemExit(1) from None

    console.print(
        f"[bold cyan]Portfolio monitor[/bold cyan] watching {len(coordinator.registry)} projects "
        f"({len(coordinator.pool)} workers, {len(coordinator.pool.pending())} queued)"
    )
    try:
        coordinator.wait()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted, shutting down...[/yellow]")
    finally:
        coordinator.stop()


@cli.command()
@click.pass_context
def discover(ctx: click.Context) -> None:
    """List the projects that would be monitored."""
    config = _load_config(ctx)
    projects = discover_projects(config)

    if not projects:
        console.print("[yellow]No projects found[/yellow]")
        return

    table = Table(title=f"Discovered Projects ({len(projects)})")
    table.add_column("Project", style="cyan")
    table.add_column("Type")
    table.add_column("Priority")
    table.add_column("Scan Every")
    table.add_column("Git")
    table.add_column("Path", style="dim")

    for project in projects:
        table.add_row(
            project.name,
            project.type,
            project.priority.value,
            f"{scan_interval_for(project.priority) / 60:.0f}m",
            "yes" if project.has_git else "no",
            str(project.path),
        )
    console.print(table)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the raw snapshot as JSON")
@click.pass_context
def scan(ctx: click.Context, path: Path, as_json: bool) -> None:
    """Scan a single project once and print its health."""
    config = _load_config(ctx)
    project = analyze_project(path.resolve(), config)
    if project is None:
        console.print(f"[yellow]{path} has opted out of monitoring[/yellow]")
        return

    worker = ProjectWorker(project, MonitorContext.from_config(config), outbox=queue.Queue())
    snapshot = worker.perform_scan()

    if as_json:
        click.echo(json.dumps(snapshot.to_dict(), indent=2, default=str))
        return

    status = snapshot.health.status.value
    console.print(
        f"\n[bold]{project.name}[/bold] ({project.type}, {project.priority.value}) "
        f"[{STATUS_STYLES[status]}]{status}[/{STATUS_STYLES[status]}] score {snapshot.health.score}"
    )

    table = Table(show_header=True)
    table.add_column("Finding")
    table.add_column("Recommendation")
    rows = max(len(snapshot.health.issues), len(snapshot.health.recommendations))
    for i in range(rows):
        table.add_row(
            snapshot.health.issues[i] if i < len(snapshot.health.issues) else "",
            snapshot.health.recommendations[i] if i < len(snapshot.health.recommendations) else "",
        )
    if rows:
        console.print(table)

    business = snapshot.business
    console.print(
        f"Revenue impact: {business.revenue_impact.value}  Velocity: {business.velocity.value}  "
        f"Risk: {business.business_risk.value}"
    )
    if project.priority is Priority.HIGH and status == HealthStatus.CRITICAL.value:
        logger.warning(f"High-priority project {project.name} is critical")


if __name__ == "__main__":
    cli()
