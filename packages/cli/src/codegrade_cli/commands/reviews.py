"""reviews command group: browse and delete stored single-file reviews."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from codegrade_store.models import CODE_REVIEWS_TABLE, CodeReviewRecord

console = Console()

_GRADE_STYLE = {"A+": "green", "A": "green", "B": "cyan", "C": "yellow", "D": "red", "F": "bold red"}

_user_option = click.option("--user", "user_id", default=None, help="Owner of the reviews. Overrides config.")


def _owner(ctx: click.Context, user_id: str | None) -> str:
    return user_id or ctx.obj["config"]["user_id"]


@click.group("reviews")
def reviews_group():
    """Browse the archive of single-file reviews.

    Reviews are scoped to their owner: one user cannot see or delete
    another user's reviews.
    """


@reviews_group.command("list")
@_user_option
@click.option("--limit", default=20, show_default=True, help="Maximum number of reviews to show.")
@click.option("--offset", default=0, show_default=True, help="Number of most recent reviews to skip.")
@click.pass_context
def list_cmd(ctx, user_id: str | None, limit: int, offset: int):
    """List file reviews, most recent first."""
    owner = _owner(ctx, user_id)
    rows = ctx.obj["store"].list(CODE_REVIEWS_TABLE, {"owner": owner}, order_by="created_at")
    page = list(reversed(rows))[offset : offset + limit]
    if not page:
        console.print("[yellow]No file reviews found.[/yellow]")
        return

    table = Table(title=f"File Reviews: {owner}", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold", no_wrap=True)
    table.add_column("File", max_width=40)
    table.add_column("Grade", width=6)
    table.add_column("Score", justify="right", width=6)
    table.add_column("Issues", justify="right", width=7)
    table.add_column("Model")
    table.add_column("Reviewed At", width=20)

    for row in page:
        r = CodeReviewRecord.from_dict(row)
        grade = r.grade or "-"
        style = _GRADE_STYLE.get(grade, "white")
        table.add_row(
            row["id"],
            r.file_name,
            f"[{style}]{grade}[/{style}]",
            str(r.overall_score) if r.overall_score is not None else "-",
            str(r.total_issues),
            r.model,
            row.get("created_at", "")[:19].replace("T", " "),
        )

    console.print(table)
    if len(rows) > offset + limit:
        console.print(f"[dim]{len(rows) - offset - limit} older review(s); use --offset {offset + limit}.[/dim]")


@reviews_group.command("show")
@click.argument("review_id")
@_user_option
@click.pass_context
def show_cmd(ctx, review_id: str, user_id: str | None):
    """Print the stored report of one review."""
    row = ctx.obj["store"].get(CODE_REVIEWS_TABLE, {"id": review_id, "owner": _owner(ctx, user_id)})
    if row is None:
        raise click.ClickException(f"Review {review_id} not found.")

    r = CodeReviewRecord.from_dict(row)
    grade = f"Grade {r.grade}  score {r.overall_score}/100" if r.grade else "Unstructured response"
    console.print(f"[bold]{r.file_name}[/bold]  {grade}  [dim]{r.model}, {r.tokens} tokens[/dim]")
    console.print(Markdown(r.report_md))


@reviews_group.command("delete")
@click.argument("review_id")
@_user_option
@click.confirmation_option(prompt="Delete this review?")
@click.pass_context
def delete_cmd(ctx, review_id: str, user_id: str | None):
    """Delete one of your reviews."""
    removed = ctx.obj["store"].delete(CODE_REVIEWS_TABLE, {"id": review_id, "owner": _owner(ctx, user_id)})
    if not removed:
        raise click.ClickException(f"Review {review_id} not found.")
    console.print(f"Deleted review {review_id}.")
