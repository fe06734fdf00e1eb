"""simcheck CLI - run a bot against the simulation server and check milestones.

Usage:
    simcheck                 # run until interrupted
    simcheck 1500            # run for 1500 ticks, then judge the milestones
    simcheck 1500 --config scenarios/rcl4.yaml --log-level DEBUG
"""

from __future__ import annotations

import asyncio
import math
import signal
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv

# Load .env before anything reads the environment
load_dotenv()
from rich.console import Console
from rich.panel import Panel

from simcheck.app.config import LOG_LEVELS, ConfigError, SimCheckConfig, parse_tick_budget
from simcheck.app.controller import MilestonesNotMetError, RunController, RunPhase, RunResult
from simcheck.infrastructure.feed import HttpEventFeed
from simcheck.infrastructure.report import (
    CompositeReportSink,
    ConsoleReportSink,
    HttpReportSink,
    ReportSink,
)
from simcheck.infrastructure.server_client import ProvisioningError, ServerClient
from simcheck.utils.logging import setup_logging

EXIT_CANCELLED = 130

app = typer.Typer(
    name="simcheck",
    help="Check that a bot reaches its milestones on a simulation server",
    add_completion=False,
)

console = Console()


def build_sink(config: SimCheckConfig) -> ReportSink:
    """Console output, plus the results collector when one is configured."""
    sinks: list[ReportSink] = [ConsoleReportSink(console)]
    if config.results_url:
        sinks.append(HttpReportSink(config.results_url, api_key=config.api_key))
    return CompositeReportSink(sinks)


def install_cancel_handlers(cancel: asyncio.Event) -> None:
    """Set ``cancel`` on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass


async def _run(config: SimCheckConfig, max_ticks: float) -> RunResult:
    if not config.feed_url:
        raise ConfigError("No event feed configured (feed_url / SIMCHECK_FEED_URL)")

    cancel = asyncio.Event()
    install_cancel_handlers(cancel)

    feed = HttpEventFeed(config.feed_url, api_key=config.api_key)
    async with ServerClient(config.server_url, api_key=config.api_key) as server:
        controller = RunController(
            config,
            server,
            feed,
            build_sink(config),
            max_ticks=max_ticks,
        )
        return await controller.run(cancel)


@app.command()
def run(
    ticks: Annotated[Optional[str], typer.Argument(help="Tick budget; omit to run until interrupted")] = None,
    config_path: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to JSON/YAML config")] = None,
    log_level: Annotated[Optional[str], typer.Option("--log-level", "-l", help="DEBUG, INFO, WARNING or ERROR")] = None,
    log_dir: Annotated[Optional[Path], typer.Option("--log-dir", help="Also write logs to simcheck.log in this directory")] = None,
) -> None:
    """Provision the server, follow the simulation, and judge the milestones."""
    try:
        config = SimCheckConfig.load(config_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if log_level:
        if log_level.upper() in LOG_LEVELS:
            config.log_level = log_level.upper()
        else:
            console.print(f"[yellow]Unknown log level {log_level!r}; using {config.log_level}[/yellow]")
    setup_logging(level=config.log_level, log_dir=log_dir)

    max_ticks = parse_tick_budget(ticks)
    console.print(Panel(
        f"[bold]Server:[/bold] {config.server_url}\n"
        f"[bold]Rooms:[/bold] {', '.join(config.tracked_rooms) or 'none'}\n"
        f"[bold]Milestones:[/bold] {len(config.milestones)}\n"
        f"[bold]Ticks:[/bold] {'unbounded' if max_ticks == math.inf else max_ticks}",
        title="Milestone Run",
        border_style="blue",
    ))

    try:
        result = asyncio.run(_run(config, max_ticks))
    except (ProvisioningError, ConfigError) as e:
        console.print(f"[red]Run aborted:[/red] {e}")
        raise typer.Exit(1)

    if result.phase is RunPhase.CANCELLED:
        raise typer.Exit(EXIT_CANCELLED)

    try:
        result.raise_for_verdict()
    except MilestonesNotMetError as e:
        console.print(Panel(str(e), title="Run Failed", border_style="red"))
        raise typer.Exit(1)

    console.print(Panel(
        f"All required milestones reached by tick {result.report.last_tick}",
        title="Run Passed",
        border_style="green",
    ))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
