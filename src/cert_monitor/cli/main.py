"""CLI entry point for cert-monitor.

Invoked as::

    cert-monitor [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m cert_monitor.cli.main

Commands
--------
run      Renew due certificates once, or continuously on an interval
status   Show the renewal status of every managed certificate
version  Show version information
"""
from __future__ import annotations

import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cert_monitor import __version__
from cert_monitor.config import DEFAULT_CONFIG_PATH
from cert_monitor.controller.orchestrator import BatchResult
from cert_monitor.controller.service import exec_loop, exec_once, load_plan
from cert_monitor.controller.status import collect_status
from cert_monitor.errors import ConfigError

console = Console()

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=str(DEFAULT_CONFIG_PATH),
    show_default=True,
    help="Path to the main configuration file.",
)


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="cert-monitor")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging level.",
)
def cli(log_level: str) -> None:
    """Renew X.509 certificates ahead of expiry and reload dependent services"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    console.print(f"[bold]cert-monitor[/bold] v{__version__}")


# ------------------------------------------------------------------
# run
# ------------------------------------------------------------------


@cli.command(name="run")
@_config_option
@click.option(
    "--once",
    is_flag=True,
    default=False,
    help="Refresh certificates once instead of looping on the check interval.",
)
@click.option(
    "--no-reload",
    is_flag=True,
    default=False,
    help="Do not run the reload command associated with each certificate.",
)
@click.option(
    "--cert-config",
    "cert_config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Only process this certificate configuration file (requires --once).",
)
@click.option(
    "--fail-fast",
    is_flag=True,
    default=False,
    help="Stop at the first certificate that fails (implied by --cert-config).",
)
def run_command(
    config_path: str,
    once: bool,
    no_reload: bool,
    cert_config_path: Optional[str],
    fail_fast: bool,
) -> None:
    """Renew every certificate that is due."""
    if cert_config_path and not once:
        raise click.UsageError("--cert-config can only be used with --once")

    if not once:
        try:
            exec_loop(config_path, no_reload=no_reload)
        except ConfigError as exc:
            console.print(f"[red]Error:[/red] {escape(str(exc))}")
            sys.exit(1)
        return

    try:
        result = exec_once(
            config_path,
            no_reload=no_reload,
            cert_config_path=cert_config_path,
            fail_fast=True if fail_fast else None,
        )
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        sys.exit(1)

    _print_result(result)
    if not result.ok:
        sys.exit(1)


def _print_result(result: BatchResult) -> None:
    for name in result.renewed:
        console.print(f"  [green]RENEWED[/green]  {name}")
    for name in result.skipped:
        console.print(f"  [cyan]VALID[/cyan]    {name}")
    for name, error in result.errors:
        console.print(f"  [red]FAILED[/red]   {name}: {escape(str(error))}")
    if result.aborted:
        console.print("[yellow]Batch aborted after the first failure.[/yellow]")
    console.print(
        f"\nRenewed: {result.renewed_count}  Skipped: {result.skipped_count}  "
        f"Failed: {len(result.errors)}"
    )


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------


@cli.command(name="status")
@_config_option
def status_command(config_path: str) -> None:
    """Print the status of all certificates managed by cert-monitor."""
    try:
        plan = load_plan(config_path)
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        sys.exit(1)

    statuses = collect_status(plan.main_config, plan.cert_configs)
    if not statuses:
        console.print("[yellow]No certificates configured.[/yellow]")
        return

    table = Table(title="Managed Certificates", show_header=True)
    table.add_column("Common Name", style="cyan")
    table.add_column("Expires")
    table.add_column("Renew After")
    table.add_column("Due", justify="center")
    table.add_column("Output File")
    table.add_column("Reload Command")

    for status in statuses:
        due = "[red]Yes[/red]" if status.renewal_due else "[green]No[/green]"
        table.add_row(
            status.common_name,
            status.not_after.isoformat() if status.not_after else "(missing)",
            status.cutoff.isoformat() if status.cutoff else "-",
            due,
            status.output_file,
            status.reload_command or "(none)",
        )

    console.print(table)
    console.print(f"\nTotal: {len(statuses)} certificate(s)")


if __name__ == "__main__":
    cli()
