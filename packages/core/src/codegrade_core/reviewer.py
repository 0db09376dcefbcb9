"""Core review orchestration: single files and whole pull requests."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from codegrade_core.cache import CacheKey, ReviewCache, StoreReviewCache
from codegrade_core.config import DEFAULT_CONFIG
from codegrade_core.errors import NoReviewableFiles, ReviewCancelled, ReviewError, Unauthorized
from codegrade_core.models import (
    SEVERITIES,
    FileIssue,
    FileReviewResult,
    ModelDescriptor,
    PRReviewResult,
    ReviewOutcome,
    ReviewRequest,
)
from codegrade_core.prompt import build_prompt
from codegrade_core.quota import QuotaGuard
from codegrade_core.retry import invoke_with_retry, pause
from codegrade_core.router import ModelRouter
from codegrade_core.utils.code import is_code_file
from codegrade_store.models import CODE_REVIEWS_TABLE, PR_REVIEWS_TABLE, CodeReviewRecord, PRReviewRecord

if TYPE_CHECKING:
    from codegrade_core.gh.pull_request import ChangedFile, GitHubSourceControl, PullRequestInfo
    from codegrade_core.providers.base import BaseProvider
    from codegrade_store.base import BaseStore

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 70
# Spacing requests at 1/rpm minutes apart still trips limits on bursty
# providers; 12.5% headroom keeps a 15 RPM model at one call per 4.5s.
_THROTTLE_HEADROOM = 1.125
_SOURCE_PREVIEW_CHARS = 2000

_GRADE_THRESHOLDS = ((90, "A+"), (80, "A"), (70, "B"), (60, "C"), (50, "D"))


def score_to_grade(score: float) -> str:
    for threshold, grade in _GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def assess_risk(counts: dict[str, int]) -> str:
    if counts.get("critical", 0) > 0:
        return "critical"
    if counts.get("high", 0) > 2:
        return "high"
    if counts.get("medium", 0) > 5:
        return "medium"
    return "low"


def mean_score(scores: list[float]) -> int:
    """Mean rounded half-up, or DEFAULT_SCORE when nothing was scored."""
    if not scores:
        return DEFAULT_SCORE
    return int(math.floor(sum(scores) / len(scores) + 0.5))


def count_by_severity(file_reviews: list[FileReviewResult]) -> dict[str, int]:
    counts = {s: 0 for s in SEVERITIES}
    for review in file_reviews:
        for issue in review.issues:
            counts[issue.severity] = counts.get(issue.severity, 0) + 1
    return counts


def build_summary(file_reviews: list[FileReviewResult], counts: dict[str, int]) -> str:
    """One-line verdict shown above the per-file breakdown."""
    total = sum(counts.values())
    n = len(file_reviews)
    if n == 0:
        return "No code files were reviewed in this PR."
    if counts.get("critical"):
        return (
            f"Found {counts['critical']} critical issue(s) that need immediate attention. "
            f"{total} total issues across {n} files."
        )
    if counts.get("high"):
        return f"Found {counts['high']} high-priority issue(s) to address. {total} total issues across {n} files."
    if total:
        return f"Found {total} issue(s) across {n} files. Review the suggestions to improve code quality."
    return f"Great job! No significant issues found in {n} reviewed files."


def throttle_delay(descriptor: ModelDescriptor, configured: float | None = None) -> float:
    """Seconds to wait between provider calls of one PR review."""
    if configured is not None:
        return float(configured)
    if not descriptor.requests_per_minute:
        return 0.0
    return 60.0 / descriptor.requests_per_minute * _THROTTLE_HEADROOM


def to_file_result(file: ChangedFile, outcome: ReviewOutcome) -> FileReviewResult:
    if outcome.structured is None:
        return FileReviewResult(file.filename, file.status, [], DEFAULT_SCORE)
    issues = [
        FileIssue(
            severity=i.severity,
            category=i.category,
            title=i.title,
            description=i.description,
            suggestion=i.suggestion,
            line=i.line_number,
        )
        for i in outcome.structured.issues
    ]
    return FileReviewResult(file.filename, file.status, issues, outcome.structured.summary.overall_score)


@dataclass
class BatchOutcome:
    """Accumulated result of reviewing a PR's files one by one."""

    reviews: list[FileReviewResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    last_error: Exception | None = None
    provider_calls: int = 0
    degraded: int = 0


class CodeReviewService:
    """Entry point for callers: review_file() and review_pull_request().

    Shared state (cache, quota, store) is injected so several services, or
    several threads using one service, see the same counters and entries.
    """

    def __init__(
        self,
        router: ModelRouter,
        store: BaseStore,
        source_control: GitHubSourceControl | None = None,
        cache: ReviewCache | None = None,
        quota: QuotaGuard | None = None,
        config: dict | None = None,
    ):
        self.config = {**DEFAULT_CONFIG, **(config or {})}
        self.router = router
        self.store = store
        self.source_control = source_control
        self.cache = cache if cache is not None else StoreReviewCache(store)
        self.quota = (
            quota
            if quota is not None
            else QuotaGuard(
                store,
                {"file": self.config["daily_file_reviews"], "pr": self.config["daily_pr_reviews"]},
            )
        )

    @classmethod
    def from_config(
        cls, config: dict, store: BaseStore, source_control: GitHubSourceControl | None = None
    ) -> CodeReviewService:
        return cls(ModelRouter.from_config(config), store, source_control=source_control, config=config)

    # ------------------------------------------------------------------ #
    # Single file                                                          #
    # ------------------------------------------------------------------ #

    def review_file(
        self,
        source_text: str,
        filename: str,
        user_id: str,
        model_id: str | None = None,
        context: str | None = None,
        cancel: threading.Event | None = None,
    ) -> ReviewOutcome:
        if not source_text or not source_text.strip():
            raise ReviewError("Missing code.", kind="invalid_input")
        if not filename:
            raise ReviewError("Missing filename.", kind="invalid_input")
        max_chars = self.config["max_source_chars"]
        if max_chars and len(source_text) > max_chars:
            raise ReviewError(
                f"Code too long: {len(source_text):,} characters, limit is {max_chars:,}.",
                kind="code_too_long",
                upgrade=True,
            )

        self.quota.check(user_id, "file")

        request = ReviewRequest(source_text, filename, context, model_id)
        descriptor = self.router.resolve(model_id)
        key = CacheKey.for_content(source_text, descriptor.id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Cache hit for %s (%s)", filename, descriptor.id)
            return ReviewOutcome.from_dict(cached, cached=True)

        provider = self._provider_for(descriptor)
        self.quota.acquire(user_id, "file")
        outcome = self._invoke(provider, request, descriptor, cancel)
        if not outcome.degraded:
            self.cache.put(key, outcome.to_dict())
        self._persist_file_review(user_id, request, outcome)
        return outcome

    def _provider_for(self, descriptor: ModelDescriptor) -> BaseProvider:
        try:
            return self.router.provider_for(descriptor)
        except Unauthorized as e:
            raise ReviewError(e.message, kind="unauthorized") from e

    def _invoke(
        self,
        provider: BaseProvider,
        request: ReviewRequest,
        descriptor: ModelDescriptor,
        cancel: threading.Event | None,
    ) -> ReviewOutcome:
        prompt = build_prompt(request.source_text, request.filename, request.context, descriptor.provider_family)
        return invoke_with_retry(
            provider,
            prompt,
            descriptor,
            max_attempts=self.config["max_attempts"],
            base_delay=self.config["base_retry_delay"],
            min_delay=self.config["min_retry_delay"],
            max_delay=self.config["max_retry_delay"],
            cancel=cancel,
        )

    def _persist_file_review(self, user_id: str, request: ReviewRequest, outcome: ReviewOutcome) -> None:
        structured = outcome.structured
        counts = structured.summary.counts_by_severity if structured else {}
        record = CodeReviewRecord(
            owner=user_id,
            file_name=request.filename,
            report_md=outcome.markdown,
            model=outcome.provider_name,
            tokens=outcome.tokens_consumed or 0,
            source_preview=request.source_text[:_SOURCE_PREVIEW_CHARS],
            structured_data=structured.to_dict() if structured else None,
            overall_score=structured.summary.overall_score if structured else None,
            grade=structured.summary.grade if structured else None,
            critical_issues=counts.get("critical", 0),
            high_issues=counts.get("high", 0),
            medium_issues=counts.get("medium", 0),
            low_issues=counts.get("low", 0),
            total_issues=structured.summary.total_issues if structured else 0,
            security_score=structured.metrics.security if structured else None,
        )
        self.store.insert(CODE_REVIEWS_TABLE, record.to_dict())

    # ------------------------------------------------------------------ #
    # Pull request                                                         #
    # ------------------------------------------------------------------ #

    def review_pull_request(
        self,
        repo: str,
        pr_number: int,
        user_id: str,
        model_id: str | None = None,
        cancel: threading.Event | None = None,
    ) -> PRReviewResult:
        if self.source_control is None:
            raise ReviewError("No source-control client configured.", kind="unauthorized")

        self.quota.check(user_id, "pr")

        pr = self.source_control.fetch_pull_request(repo, pr_number)
        key = CacheKey.for_pull_request(repo, pr_number, pr.head_sha)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("PR %s#%d already reviewed at %s; returning cached result.", repo, pr_number, pr.head_sha[:7])
            return PRReviewResult.from_dict(cached, cached=True)

        changed = self.source_control.fetch_changed_files(repo, pr_number)
        code_files = [f for f in changed if is_code_file(f.filename)]
        limit = self.config["max_files_per_pr"]
        reviewable = code_files[:limit]
        not_reviewed = [f.filename for f in changed if not is_code_file(f.filename)]
        not_reviewed += [f.filename for f in code_files[limit:]]
        if not reviewable:
            raise NoReviewableFiles()
        if len(code_files) > limit:
            logger.info("Reviewing the first %d of %d code files.", limit, len(code_files))

        descriptor = self.router.resolve(model_id)
        provider = self._provider_for(descriptor)
        self.quota.acquire(user_id, "pr")

        delay = throttle_delay(descriptor, self.config.get("inter_file_delay"))
        batch = self._review_files(provider, reviewable, descriptor, delay, cancel)

        if not batch.reviews and batch.failures:
            last = batch.last_error
            if isinstance(last, ReviewError):
                raise last
            raise ReviewError(f"Every file in PR #{pr_number} failed to review: {last}", kind="unknown") from last

        counts = count_by_severity(batch.reviews)
        overall = mean_score([r.score for r in batch.reviews])
        result = PRReviewResult(
            pr_number=pr_number,
            repo=repo,
            head_commit_id=pr.head_sha,
            overall_score=overall,
            grade=score_to_grade(overall),
            risk_level=assess_risk(counts),
            summary_text=build_summary(batch.reviews, counts),
            provider_name=descriptor.id,
            file_reviews=batch.reviews,
            counts_by_severity=counts,
            skipped_files=not_reviewed + batch.skipped,
            failed_files=batch.failures,
        )

        self._persist_pr_review(user_id, pr, result)
        if batch.degraded:
            logger.info("Not caching PR %s#%d: %d file(s) got no usable answer.", repo, pr_number, batch.degraded)
        else:
            self.cache.put(key, result.to_dict())
        return result

    def _review_files(
        self,
        provider: BaseProvider,
        files: list[ChangedFile],
        descriptor: ModelDescriptor,
        delay: float,
        cancel: threading.Event | None,
    ) -> BatchOutcome:
        """Review files strictly in order, folding each result into a BatchOutcome.

        A file's failure is recorded and the fold moves on. Only cancellation
        stops the batch.
        """
        batch = BatchOutcome()
        min_chars = self.config["min_patch_chars"]

        for i, file in enumerate(files, 1):
            if len(file.patch.strip()) < min_chars:
                logger.info("Skipping %s: no meaningful changes.", file.filename)
                batch.skipped.append(file.filename)
                continue

            logger.info("[%d/%d] Reviewing: %s", i, len(files), file.filename)
            key = CacheKey.for_content(file.patch, descriptor.id)
            cached = self.cache.get(key)
            if cached is not None:
                batch.reviews.append(to_file_result(file, ReviewOutcome.from_dict(cached, cached=True)))
                continue

            if batch.provider_calls:
                pause(delay, cancel)
            batch.provider_calls += 1
            try:
                outcome = self._invoke(provider, ReviewRequest(file.patch, file.filename), descriptor, cancel)
            except ReviewCancelled:
                raise
            except Exception as e:
                logger.warning("Error reviewing %s: %s", file.filename, e)
                batch.failures[file.filename] = str(e)
                batch.last_error = e
                continue

            if outcome.degraded:
                batch.degraded += 1
            else:
                self.cache.put(key, outcome.to_dict())
            batch.reviews.append(to_file_result(file, outcome))

        return batch

    def _persist_pr_review(self, user_id: str, pr: PullRequestInfo, result: PRReviewResult) -> None:
        counts = result.counts_by_severity
        record = PRReviewRecord(
            user_id=user_id,
            repo_full_name=result.repo,
            pr_number=result.pr_number,
            pr_title=pr.title,
            head_sha=result.head_commit_id,
            base_sha=pr.base_sha,
            overall_score=result.overall_score,
            grade=result.grade,
            risk_level=result.risk_level,
            model=result.provider_name,
            total_issues=result.total_issues,
            critical_issues=counts.get("critical", 0),
            high_issues=counts.get("high", 0),
            medium_issues=counts.get("medium", 0),
            low_issues=counts.get("low", 0),
            reviewed_at=result.reviewed_at,
            review_data=result.to_dict(),
        )
        self.store.insert(PR_REVIEWS_TABLE, record.to_dict())
