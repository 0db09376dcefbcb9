"""history command: display past pull request reviews from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from codegrade_store.models import PR_REVIEWS_TABLE, PRReviewRecord

console = Console()

_GRADE_STYLE = {"A+": "green", "A": "green", "B": "cyan", "C": "yellow", "D": "red", "F": "bold red"}


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int | None, limit: int):
    """Show past pull request reviews for a repository.

    Only reviews made with a persistent store survive between runs. Add
    'store: sqlite' to .codegrade.yml to keep them.
    """
    store = ctx.obj["store"]

    filters: dict = {"repo_full_name": repo}
    if pr_number is not None:
        filters["pr_number"] = pr_number
    rows = store.list(PR_REVIEWS_TABLE, filters, order_by="created_at")
    if not rows:
        console.print("[yellow]No review records found.[/yellow]")
        return

    # Most recent first, capped at --limit.
    records = [PRReviewRecord.from_dict(r) for r in reversed(rows)][:limit]

    table = Table(title=f"Review History: {repo}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("SHA", width=8)
    table.add_column("Grade", width=6)
    table.add_column("Score", justify="right", width=6)
    table.add_column("Risk", width=9)
    table.add_column("Issues", justify="right", width=7)
    table.add_column("Reviewed At", width=20)

    for r in records:
        style = _GRADE_STYLE.get(r.grade, "white")
        table.add_row(
            f"#{r.pr_number}",
            r.pr_title[:40] if r.pr_title else "",
            r.head_sha[:7],
            f"[{style}]{r.grade}[/{style}]",
            str(r.overall_score),
            r.risk_level,
            str(r.total_issues),
            r.reviewed_at[:19].replace("T", " "),
        )

    console.print(table)
