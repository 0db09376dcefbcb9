"""CLI entry point for codegrade.

Commands:
  review-file  review one source file and print the markdown report
  review-pr    review the code files of a GitHub pull request
  history      display past pull request reviews from the configured store
  stats        aggregate severity and file patterns across review history
  models       list the allowlisted models and their published limits
  quota        show today's usage against the daily review limits
  reviews      list, show or delete stored single-file reviews
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from codegrade_cli.commands.history import history_cmd
from codegrade_cli.commands.models import models_cmd
from codegrade_cli.commands.quota import quota_cmd
from codegrade_cli.commands.review_file import review_file_cmd
from codegrade_cli.commands.review_pr import review_pr_cmd
from codegrade_cli.commands.reviews import reviews_group
from codegrade_cli.commands.stats import stats_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .codegrade.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path or .codegrade.db)
      (default)     → MemoryStore (nothing survives the process)

    This factory lives in cli.py so neither codegrade_core nor codegrade_store
    know about the CLI config format.
    """
    store_type = config.get("store", "memory")

    if store_type == "sqlite":
        from codegrade_store.sqlite import SQLiteStore

        db_path = config.get("store_path", ".codegrade.db")
        return SQLiteStore(db_path=db_path)

    if store_type != "memory":
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to the in-memory store.[/yellow]")

    from codegrade_store.memory import MemoryStore

    return MemoryStore()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("codegrade"),
    prog_name="codegrade",
)
@click.option(
    "--config",
    "config_path",
    default=".codegrade.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="CODEGRADE_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log retries, skipped files and cache hits.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """AI code review for single files and GitHub pull requests."""
    from codegrade_core.config import load_config
    from codegrade_core.gh.pull_request import GitHubSourceControl, resolve_token
    from codegrade_core.reviewer import CodeReviewService

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.call_on_close(store.close)

    try:
        service = CodeReviewService.from_config(
            config,
            store,
            source_control=GitHubSourceControl(token) if token else None,
        )
    except ValueError as e:
        raise click.UsageError(f"Invalid model configuration: {e}")

    ctx.obj["config"] = config
    ctx.obj["store"] = store
    ctx.obj["service"] = service


main.add_command(review_file_cmd)
main.add_command(review_pr_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
main.add_command(models_cmd)
main.add_command(quota_cmd)
main.add_command(reviews_group)
