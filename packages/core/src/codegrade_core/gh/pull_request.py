"""GitHub source-control collaborator: token discovery and PR access via PyGithub."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass

from github import Github, GithubException

from codegrade_core.errors import ReviewError

logger = logging.getLogger(__name__)

_GH_CLI_TIMEOUT = 5


@dataclass
class PullRequestInfo:
    number: int
    title: str
    head_sha: str
    base_sha: str
    body: str = ""


@dataclass
class ChangedFile:
    filename: str
    status: str
    patch: str


def resolve_token(env: dict | None = None) -> str | None:
    """Return a GitHub token from GITHUB_TOKEN or an authenticated gh CLI session.

    The environment wins so CI can override a developer's login. Returns None
    when neither source yields a token; single-file reviews need none.
    """
    env = os.environ if env is None else env
    token = (env.get("GITHUB_TOKEN") or "").strip()
    if token:
        return token

    try:
        completed = subprocess.run(
            ["gh", "auth", "token"], capture_output=True, text=True, timeout=_GH_CLI_TIMEOUT
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh CLI unavailable: %s", e)
        return None

    token = completed.stdout.strip() if completed.returncode == 0 else ""
    if token:
        logger.debug("Using the gh CLI session token.")
    return token or None


def _normalize_status(status: str | None) -> str:
    # GitHub also reports "renamed", "copied", "changed"; they review as modifications.
    if status in ("added", "removed"):
        return status
    return "modified"


class GitHubSourceControl:
    """Source-control collaborator backed by the GitHub REST API via PyGithub.

    Pass a token (see resolve_token) or a ready PyGithub client.
    """

    def __init__(self, token: str | None = None, client: Github | None = None):
        self._gh = client if client is not None else Github(token)

    def _pull(self, repo: str, number: int):
        try:
            return self._gh.get_repo(repo).get_pull(number)
        except GithubException as e:
            if e.status == 404:
                raise ReviewError(f"PR #{number} not found in {repo}.", kind="not_found") from e
            if e.status in (401, 403):
                raise ReviewError(f"GitHub rejected the token for {repo}.", kind="unauthorized") from e
            raise

    def fetch_pull_request(self, repo: str, number: int) -> PullRequestInfo:
        pr = self._pull(repo, number)
        return PullRequestInfo(
            number=pr.number,
            title=pr.title or "",
            head_sha=pr.head.sha,
            base_sha=pr.base.sha,
            body=pr.body or "",
        )

    def fetch_changed_files(self, repo: str, number: int) -> list[ChangedFile]:
        pr = self._pull(repo, number)
        return [ChangedFile(f.filename, _normalize_status(f.status), f.patch or "") for f in pr.get_files()]
