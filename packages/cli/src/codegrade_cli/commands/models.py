"""models command: list allowlisted models."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


def _limit(value: int | None) -> str:
    return f"{value:,}" if value else "-"


@click.command("models")
@click.pass_context
def models_cmd(ctx):
    """List the models reviews can be routed to, with their published limits."""
    service = ctx.obj["service"]
    default = service.router.default_model

    table = Table(title="Models", show_header=True, header_style="bold cyan")
    table.add_column("Model", style="bold")
    table.add_column("Family")
    table.add_column("Name")
    table.add_column("RPM", justify="right")
    table.add_column("TPM", justify="right")
    table.add_column("RPD", justify="right")

    for d in service.router.descriptors():
        marker = " [green](default)[/green]" if d.id == default else ""
        table.add_row(
            f"{d.id}{marker}",
            d.provider_family,
            d.display_name,
            _limit(d.requests_per_minute),
            _limit(d.tokens_per_minute),
            _limit(d.requests_per_day),
        )

    console.print(table)
