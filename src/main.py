"""Entry point for the keepalive scheduler."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.api.server import build_scheduler
from src.config import settings
from src.keepalive import CycleReport, ProjectRegistry

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server() -> None:
    """Start the FastAPI server (the timer is armed in its lifespan)."""
    console.print(Panel("Starting Keepalive Server", style="bold green"))
    uvicorn.run(
        "src.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def _print_report(report: CycleReport) -> None:
    table = Table(title=f"Ping cycle ({report.duration_ms:.0f}ms)")
    table.add_column("Project")
    table.add_column("Result")
    table.add_column("Latency", justify="right")
    table.add_column("Error")
    for r in report.results:
        table.add_row(
            r.name or r.project_id,
            "[green]ok[/green]" if r.success else "[red]error[/red]",
            f"{r.latency_ms:.0f}ms",
            r.error or "",
        )
    console.print(table)


def run_ping() -> int:
    """Run one ping cycle from the command line."""
    registry = ProjectRegistry(settings.keepalive_db_path or None)
    scheduler = build_scheduler(registry)
    try:
        with console.status("[bold green]Pinging projects..."):
            report = asyncio.run(scheduler.run_cycle("cli"))
    finally:
        registry.close()

    if not report.ok:
        console.print(f"[bold red]Ping cycle failed:[/bold red] {report.error}")
        return 1
    _print_report(report)
    return 0 if all(r.success for r in report.results) else 2


def show_status() -> None:
    """Print every registered project with its last ping outcome."""
    registry = ProjectRegistry(settings.keepalive_db_path or None)
    try:
        projects = registry.list()
    finally:
        registry.close()

    table = Table(title=f"Keepalive projects (every {settings.keepalive_interval_hours:g}h)")
    table.add_column("Name")
    table.add_column("URL")
    table.add_column("Active")
    table.add_column("Last ping")
    table.add_column("Status")
    for p in projects:
        if p.last_ping_success is None:
            status = "[dim]never[/dim]"
        elif p.last_ping_success:
            status = "[green]ok[/green]"
        else:
            status = f"[red]{p.last_ping_error}[/red]"
        table.add_row(p.name, p.connection_url, "yes" if p.is_active else "no", p.last_ping_at or "-", status)
    console.print(table)


def run_seed(path: str) -> None:
    registry = ProjectRegistry(settings.keepalive_db_path or None)
    try:
        added = registry.seed_from_yaml(path)
    finally:
        registry.close()
    console.print(f"Imported {len(added)} project(s) from {path}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Keepalive scheduler for hosted database projects")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server and the keepalive timer")
    sub.add_parser("ping", help="Run a single ping cycle now")
    sub.add_parser("status", help="Show registered projects and their last ping")

    seed_parser = sub.add_parser("seed", help="Import projects from a YAML file")
    seed_parser.add_argument("file", help="Path to a YAML file with a 'projects' list")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "ping":
        sys.exit(run_ping())
    elif args.command == "status":
        show_status()
    elif args.command == "seed":
        run_seed(args.file)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
