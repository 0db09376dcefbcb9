"""quota command: show today's usage against the daily limits."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_SCOPES = {"file": "File reviews", "pr": "PR reviews"}


@click.command("quota")
@click.option("--user", "user_id", default=None, help="User to report on. Overrides config.")
@click.pass_context
def quota_cmd(ctx, user_id: str | None):
    """Show how many reviews the user has left in the current 24h window."""
    guard = ctx.obj["service"].quota
    user = user_id or ctx.obj["config"]["user_id"]

    table = Table(title=f"Daily quota: {user}", show_header=True, header_style="bold cyan")
    table.add_column("Scope", style="bold")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Resets", width=20)

    for scope, label in _SCOPES.items():
        window = guard.usage(user, scope)
        limit = guard.limits.get(scope)
        resets = window.expires_at(guard.window).isoformat()[:19].replace("T", " ") if window.call_count else "-"
        table.add_row(label, str(window.call_count), str(limit) if limit is not None else "unlimited", resets)

    console.print(table)
