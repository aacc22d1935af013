"""Engine settings CLI commands."""

from dataclasses import fields
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from accessgap.cli.context import get_engine
from accessgap.core.models import EngineSettings

console = Console()

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def coerce_setting(key: str, value: str) -> Any:
    """Convert a command-line string to the type of an EngineSettings field.

    Raises:
        click.BadParameter: If the key is unknown or the value does not fit
    """
    defaults = EngineSettings()
    known = {f.name for f in fields(EngineSettings)}
    if key not in known:
        raise click.BadParameter(f"Unknown setting '{key}'. Valid settings: {', '.join(sorted(known))}")

    if isinstance(getattr(defaults, key), bool):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise click.BadParameter(f"{key} expects a boolean, got '{value}'")

    if value.strip().lower() in ("", "none", "null"):
        return None
    return value


@click.group()
def settings():
    """View and change engine settings."""
    pass


@settings.command(name="show")
@click.pass_context
def show_settings(ctx):
    """Show current settings."""
    current = get_engine(ctx).settings

    table = Table(title="Engine Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for key, value in current.to_dict().items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


@settings.command(name="set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def set_setting(ctx, key: str, value: str):
    """Change one setting.

    Example:
        accessgap settings set background_scan_interval "Every Hour"
    """
    coerced = coerce_setting(key, value)
    if key.endswith("_interval"):
        from accessgap.core.scheduler import parse_interval

        try:
            parse_interval(coerced)
        except ValueError as e:
            raise click.BadParameter(str(e))

    get_engine(ctx).store.update_settings(**{key: coerced})
    console.print(f"[green]✓[/green] {key} = {coerced}")
