"""review-pr command: review the code files of a GitHub pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from codegrade_core.errors import ReviewError

console = Console()

_RISK_STYLE = {"low": "green", "medium": "yellow", "high": "red", "critical": "bold red"}


@click.command("review-pr")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--model", default=None, help="Model id to use. Falls back to the default if not allowlisted.")
@click.option("--user", "user_id", default=None, help="User the daily quota is charged to. Overrides config.")
@click.pass_context
def review_pr_cmd(ctx, repo: str, pr_number: int, model: str | None, user_id: str | None):
    """Review every changed code file of a pull request.

    Files are reviewed one at a time with a pause between provider calls to
    stay under the model's requests-per-minute limit. A second run on the
    same head commit returns the stored result without calling the model.

    \b
    Required environment variables:
      GITHUB_TOKEN   GitHub personal access token (or use gh CLI)
      plus the API key of the chosen model family
    """
    if not ctx.obj["config"].get("github_token"):
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )

    service = ctx.obj["service"]
    user = user_id or ctx.obj["config"]["user_id"]

    try:
        with console.status(f"Reviewing {repo}#{pr_number}..."):
            result = service.review_pull_request(repo, pr_number, user, model_id=model)
    except ReviewError as e:
        raise click.ClickException(f"{e.message} [{e.kind}]") from e

    risk_style = _RISK_STYLE.get(result.risk_level, "white")
    console.print(f"\n[bold]PR #{result.pr_number}[/bold] {result.repo} @ {result.head_commit_id[:7]}")
    console.print(
        f"  Score: [bold]{result.overall_score}[/bold]/100  Grade: [bold]{result.grade}[/bold]  "
        f"Risk: [{risk_style}]{result.risk_level}[/{risk_style}]"
    )
    console.print(f"  {result.summary_text}")
    if result.cached:
        console.print("  [dim]Cached result for this head commit.[/dim]")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("File")
    table.add_column("Status", width=9)
    table.add_column("Score", justify="right", width=6)
    table.add_column("Issues", justify="right", width=7)
    for review in result.file_reviews:
        table.add_row(review.filename, review.file_status, str(review.score), str(len(review.issues)))
    console.print(table)

    if result.failed_files:
        console.print("[red]Failed:[/red]")
        for filename, reason in result.failed_files.items():
            console.print(f"  {filename}: {reason}")
    if result.skipped_files:
        console.print(f"[dim]Skipped: {', '.join(result.skipped_files)}[/dim]")
