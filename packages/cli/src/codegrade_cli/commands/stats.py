"""stats command: aggregate patterns across review history."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from codegrade_core.models import SEVERITIES
from codegrade_store.models import PR_REVIEWS_TABLE, PRReviewRecord

console = Console()

_SEV_STYLE = {"critical": "red", "high": "yellow", "medium": "blue", "low": "cyan", "info": "dim"}


@click.command("stats")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def stats_cmd(ctx, repo: str, top: int):
    """Show aggregated review statistics for a repository.

    Reports the severity distribution, the most common issue categories and
    the files flagged most often, which points at systemic problems.
    """
    store = ctx.obj["store"]

    records = [PRReviewRecord.from_dict(r) for r in store.list(PR_REVIEWS_TABLE, {"repo_full_name": repo})]
    if not records:
        console.print("[yellow]No review records found for this repository.[/yellow]")
        return

    total_reviews = len(records)
    severity_counter: Counter[str] = Counter()
    category_counter: Counter[str] = Counter()
    file_counter: Counter[str] = Counter()

    for record in records:
        for file_review in record.review_data.get("fileReviews", []):
            for issue in file_review.get("issues", []):
                severity_counter[issue.get("severity", "info")] += 1
                category_counter[issue.get("category", "")] += 1
                file_counter[file_review.get("filename", "")] += 1

    total_issues = sum(severity_counter.values())
    avg_score = sum(r.overall_score for r in records) / total_reviews

    console.print(f"\n[bold]Review stats for [cyan]{repo}[/cyan][/bold]")
    console.print(f"  Total reviews:  {total_reviews}")
    console.print(f"  Total issues:   {total_issues}")
    console.print(f"  Average score:  {avg_score:.1f}")

    if severity_counter:
        sev_table = Table(title="Severity Breakdown", show_header=True)
        sev_table.add_column("Severity", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of total", justify="right")
        for sev in SEVERITIES:
            count = severity_counter.get(sev, 0)
            pct = f"{count / total_issues * 100:.1f}%" if total_issues else "0%"
            style = _SEV_STYLE.get(sev, "white")
            sev_table.add_row(f"[{style}]{sev}[/{style}]", str(count), pct)
        console.print(sev_table)

    if category_counter:
        cat_table = Table(title=f"Top {top} Issue Categories", show_header=True)
        cat_table.add_column("Category")
        cat_table.add_column("Issues", justify="right")
        for category, count in category_counter.most_common(top):
            cat_table.add_row(category, str(count))
        console.print(cat_table)

    if file_counter:
        file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Issues", justify="right")
        for file_path, count in file_counter.most_common(top):
            file_table.add_row(file_path, str(count))
        console.print(file_table)
