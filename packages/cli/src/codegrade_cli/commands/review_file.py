"""review-file command: review one source file."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.markdown import Markdown

from codegrade_core.errors import ReviewError

console = Console()


@click.command("review-file")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--model", default=None, help="Model id to use. Falls back to the default if not allowlisted.")
@click.option("--user", "user_id", default=None, help="User the daily quota is charged to. Overrides config.")
@click.option("--context", default=None, help="Extra context for the reviewer, e.g. what the file is for.")
@click.pass_context
def review_file_cmd(ctx, path: Path, model: str | None, user_id: str | None, context: str | None):
    """Review a single source file and print the markdown report.

    \b
    Credentials are read from the environment for the chosen model family:
      GEMINI_API_KEY, OPENAI_API_KEY, ANTHROPIC_API_KEY
      OPENAI_LOCAL_BASE_URL for a self-hosted OpenAI-compatible server
    """
    service = ctx.obj["service"]
    user = user_id or ctx.obj["config"]["user_id"]

    try:
        source = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        raise click.UsageError(f"{path} is not a UTF-8 text file.")

    try:
        with console.status(f"Reviewing {path.name}..."):
            outcome = service.review_file(source, path.name, user, model_id=model, context=context)
    except ReviewError as e:
        raise click.ClickException(f"{e.message} [{e.kind}]") from e

    console.print(Markdown(outcome.markdown))
    console.print()

    origin = "cached" if outcome.cached else f"{outcome.tokens_consumed or 0} tokens"
    if outcome.structured is not None:
        summary = outcome.structured.summary
        console.print(
            f"[bold]Grade {summary.grade}[/bold]  score {summary.overall_score}/100  "
            f"{summary.total_issues} issue(s)  [dim]{outcome.provider_name}, {origin}[/dim]"
        )
    else:
        console.print(f"[yellow]Unstructured response[/yellow]  [dim]{outcome.provider_name}, {origin}[/dim]")
