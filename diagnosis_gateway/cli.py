"""Command Line Interface for the diagnosis ledger gateway.

This module provides a CLI using Typer for serving the HTTP API and running
benchmark rounds against the configured ledger.

Security Impact:
    - Identity material is read from the wallet only, never from arguments
    - Benchmark rounds write synthetic records only
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from diagnosis_gateway.api.dependencies import (
    get_connection_manager,
    get_settings,
    get_transaction_router,
)
from diagnosis_gateway.api.logging_config import setup_logging
from diagnosis_gateway.benchmark import (
    LedgerTransactionSink,
    RoundConfig,
    RoundReport,
    WorkloadSimulator,
    run_round,
)
from diagnosis_gateway.infrastructure.id_generator import IdGenerator

# Initialize Typer app and Rich console
app = typer.Typer(
    name="diagnosis-gateway",
    help="Medical diagnosis ledger gateway",
    add_completion=False
)
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(3000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes (development only)"),
) -> None:
    """Serve the HTTP API with uvicorn.

    Examples:
        diagnosis-gateway serve
        diagnosis-gateway serve --port 8080
    """
    import uvicorn

    settings = get_settings()
    console.print(f"[bold blue]{settings.app_name}[/bold blue] v{settings.version}")
    console.print(f"[dim]Environment:[/dim] {settings.environment}")
    console.print(f"[dim]Listening on:[/dim] http://{host}:{port}")
    uvicorn.run(
        "diagnosis_gateway.api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


def _summary_table(report: RoundReport) -> Table:
    summary_table = Table(show_header=False, box=None, padding=(0, 2))
    summary_table.add_row("Transactions:", f"{report.transactions:,}")
    summary_table.add_row("Writes:", f"{report.writes:,}")
    summary_table.add_row("Reads:", f"{report.reads:,}")
    summary_table.add_row("Failures:", f"{report.failures:,}")
    summary_table.add_row("Duration:", f"{report.duration_seconds:.2f}s")
    summary_table.add_row("Throughput:", f"{report.throughput:.1f} tx/s")
    summary_table.add_row("Mean latency:", f"{report.mean_latency_ms:.1f} ms")
    summary_table.add_row("P95 latency:", f"{report.p95_latency_ms:.1f} ms")
    return summary_table


@app.command()
def bench(
    transactions: int = typer.Option(100, "--transactions", "-n", help="Total transactions in the round"),
    clients: int = typer.Option(4, "--clients", "-c", help="Concurrent simulated clients"),
    write_ratio: float = typer.Option(0.6, "--write-ratio", "-w", min=0.0, max=1.0, help="Share of writes"),
    channel: str = typer.Option(RoundConfig.channel, "--channel", help="Target channel"),
    contract_id: str = typer.Option(RoundConfig.contract_id, "--contract", help="Target contract"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for a reproducible round"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run a mixed read/write benchmark round against the ledger.

    Examples:
        diagnosis-gateway bench --transactions 500 --clients 8
        diagnosis-gateway bench --write-ratio 1.0 --seed 42
    """
    settings = get_settings()
    setup_logging(use_json=settings.json_logs, log_level="DEBUG" if verbose else "WARNING")

    try:
        config = RoundConfig(write_ratio=write_ratio, channel=channel, contract_id=contract_id)
        manager = get_connection_manager()
        router = get_transaction_router()
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to initialize ledger connection: {str(e)}")
        raise typer.Exit(code=1)

    sink = LedgerTransactionSink(manager, router)
    simulators = [
        WorkloadSimulator(
            sink,
            router,
            IdGenerator(seed=None if seed is None else seed + index),
            config,
        )
        for index in range(max(1, clients))
    ]

    console.print("[bold blue]Diagnosis Workload Benchmark[/bold blue]")
    console.print(f"[dim]Target:[/dim] {config.channel}/{config.contract_id}")
    console.print(f"[dim]Write ratio:[/dim] {config.write_ratio:.0%}")
    console.print()

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task(f"Running {transactions} transactions...", total=None)
            report = asyncio.run(run_round(simulators, transactions))
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠[/yellow] Benchmark interrupted by user")
        raise typer.Exit(code=130)

    console.print("\n[bold]Benchmark Summary:[/bold]")
    console.print(_summary_table(report))
    logging.getLogger(__name__).debug(
        f"Connections acquired={manager.acquired} released={manager.released}"
    )

    if report.failures:
        console.print(f"\n[yellow]⚠[/yellow] Round completed with {report.failures} failures")
        raise typer.Exit(code=1)
    console.print("\n[green]✓[/green] Benchmark complete")


@app.command()
def info() -> None:
    """Display configuration."""
    settings = get_settings()
    console.print("[bold blue]Configuration[/bold blue]\n")

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", settings.app_name)
    info_table.add_row("Version:", settings.version)
    info_table.add_row("Environment:", settings.environment)
    try:
        ledger = settings.ledger
    except Exception as e:
        console.print(info_table)
        console.print(f"[red]✗[/red] Ledger configuration invalid: {str(e)}")
        raise typer.Exit(code=1)
    info_table.add_row("Connection profile:", str(ledger.connection_profile_path))
    info_table.add_row("Wallet:", str(ledger.wallet_path))
    info_table.add_row("Identity:", ledger.identity_label)
    info_table.add_row("Channel:", ledger.channel_name)
    info_table.add_row("Contract:", ledger.contract_id)
    info_table.add_row("Discovery:", str(ledger.discovery_enabled))
    info_table.add_row("Timeout:", f"{ledger.request_timeout_seconds}s")
    console.print(info_table)


if __name__ == "__main__":
    app()
