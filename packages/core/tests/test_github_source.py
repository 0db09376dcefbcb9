"""Tests for the PyGithub-backed source-control adapter."""

import subprocess
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from github import GithubException

from codegrade_core.errors import ReviewError
from codegrade_core.gh.pull_request import ChangedFile, GitHubSourceControl, PullRequestInfo, resolve_token

SHA = "a" * 40
BASE_SHA = "b" * 40


def _pull(files=()):
    pr = MagicMock()
    pr.number = 7
    pr.title = "Add payments"
    pr.body = None
    pr.head.sha = SHA
    pr.base.sha = BASE_SHA
    pr.get_files.return_value = list(files)
    return pr


def _client(pr=None, error=None):
    gh = MagicMock()
    if error is not None:
        gh.get_repo.return_value.get_pull.side_effect = error
    else:
        gh.get_repo.return_value.get_pull.return_value = pr
    return gh


class TestFetchPullRequest:
    def test_maps_fields(self):
        gh = _client(_pull())
        info = GitHubSourceControl(client=gh).fetch_pull_request("acme/api", 7)

        assert info == PullRequestInfo(number=7, title="Add payments", head_sha=SHA, base_sha=BASE_SHA, body="")
        gh.get_repo.assert_called_once_with("acme/api")
        gh.get_repo.return_value.get_pull.assert_called_once_with(7)

    def test_missing_pr_is_not_found(self):
        gh = _client(error=GithubException(404, {"message": "Not Found"}, None))
        with pytest.raises(ReviewError) as exc_info:
            GitHubSourceControl(client=gh).fetch_pull_request("acme/api", 999)
        assert exc_info.value.kind == "not_found"
        assert "#999" in exc_info.value.message

    @pytest.mark.parametrize("status", [401, 403])
    def test_rejected_token_is_unauthorized(self, status):
        gh = _client(error=GithubException(status, {"message": "Bad credentials"}, None))
        with pytest.raises(ReviewError) as exc_info:
            GitHubSourceControl(client=gh).fetch_pull_request("acme/api", 7)
        assert exc_info.value.kind == "unauthorized"

    def test_other_github_errors_propagate(self):
        gh = _client(error=GithubException(502, {"message": "Bad gateway"}, None))
        with pytest.raises(GithubException):
            GitHubSourceControl(client=gh).fetch_pull_request("acme/api", 7)


class TestFetchChangedFiles:
    def test_maps_files_in_order(self):
        files = [
            SimpleNamespace(filename="src/a.py", status="added", patch="+a = 1"),
            SimpleNamespace(filename="src/b.py", status="modified", patch="-b\n+b = 2"),
        ]
        result = GitHubSourceControl(client=_client(_pull(files))).fetch_changed_files("acme/api", 7)
        assert result == [
            ChangedFile("src/a.py", "added", "+a = 1"),
            ChangedFile("src/b.py", "modified", "-b\n+b = 2"),
        ]

    @pytest.mark.parametrize(
        "github_status,expected",
        [("added", "added"), ("removed", "removed"), ("modified", "modified"), ("renamed", "modified"), ("changed", "modified")],
    )
    def test_status_normalized(self, github_status, expected):
        files = [SimpleNamespace(filename="x.py", status=github_status, patch="+x")]
        result = GitHubSourceControl(client=_client(_pull(files))).fetch_changed_files("acme/api", 7)
        assert result[0].status == expected

    def test_binary_file_has_empty_patch(self):
        files = [SimpleNamespace(filename="logo.png", status="added", patch=None)]
        result = GitHubSourceControl(client=_client(_pull(files))).fetch_changed_files("acme/api", 7)
        assert result[0].patch == ""


class TestResolveToken:
    def test_env_token_wins(self):
        with patch("subprocess.run") as run:
            assert resolve_token({"GITHUB_TOKEN": " env-token\n"}) == "env-token"
        run.assert_not_called()

    def test_falls_back_to_gh_cli(self):
        completed = subprocess.CompletedProcess(["gh"], 0, stdout="gh-token\n", stderr="")
        with patch("subprocess.run", return_value=completed) as run:
            assert resolve_token({}) == "gh-token"
        assert run.call_args[0][0] == ["gh", "auth", "token"]

    def test_gh_not_installed(self):
        with patch("subprocess.run", side_effect=FileNotFoundError("gh")):
            assert resolve_token({}) is None

    def test_gh_timeout(self):
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(["gh"], 5)):
            assert resolve_token({}) is None

    def test_gh_not_logged_in(self):
        completed = subprocess.CompletedProcess(["gh"], 1, stdout="", stderr="not logged in")
        with patch("subprocess.run", return_value=completed):
            assert resolve_token({}) is None

    def test_blank_gh_output(self):
        completed = subprocess.CompletedProcess(["gh"], 0, stdout="  \n", stderr="")
        with patch("subprocess.run", return_value=completed):
            assert resolve_token({"GITHUB_TOKEN": "   "}) is None
