"""Main CLI entry point for AccessGap."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
import structlog
from rich.console import Console
from rich.panel import Panel

from accessgap import __version__
from accessgap.cli.commands.apps import apps
from accessgap.cli.commands.audit import audit
from accessgap.cli.commands.cases import cases
from accessgap.cli.commands.findings import findings
from accessgap.cli.commands.remediate import remediate
from accessgap.cli.commands.scan import scan
from accessgap.cli.commands.schedule import schedule
from accessgap.cli.commands.settings import settings
from accessgap.cli.commands.subject import subject

console = Console()

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    cache_logger_on_first_use=False,
)

logger = structlog.get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="accessgap")
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    envvar="ACCESSGAP_CONFIG",
    help="Path to configuration file (default: config.yaml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config: Optional[Path], verbose: bool, debug: bool) -> None:
    """AccessGap: find and remove access that outlives offboarding.

    Scans offboarded subjects for OAuth grants, app role assignments and
    licensed apps that are still live, tracks them as cases and findings,
    and revokes them on demand or on a schedule.
    """
    ctx.ensure_object(dict)

    ctx.obj["config_path"] = config or Path("config.yaml")
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug

    if debug:
        structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG))
    elif verbose:
        structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.INFO))

    logger.debug("cli_initialized", config=str(config), verbose=verbose, debug=debug)


@cli.command()
def version() -> None:
    """Show version information."""
    console.print(
        Panel(
            f"[bold cyan]AccessGap[/bold cyan] v{__version__}\n\n"
            f"Offboarding lingering-access discovery and remediation",
            title="Version Info",
            border_style="cyan",
        )
    )


cli.add_command(scan)
cli.add_command(remediate)
cli.add_command(cases)
cli.add_command(findings)
cli.add_command(apps)
cli.add_command(subject)
cli.add_command(audit)
cli.add_command(settings)
cli.add_command(schedule)


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        logger.exception("unhandled_exception")
        sys.exit(1)


if __name__ == "__main__":
    main()
