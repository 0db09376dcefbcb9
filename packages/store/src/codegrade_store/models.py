"""Persisted review record models and table names.

Kept separate from codegrade_core's in-flight types: these are the flat rows
written once a review completes, shaped for listing and aggregation rather
than for the review pipeline itself.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

REVIEW_CACHE_TABLE = "review_cache"
QUOTA_TABLE = "quota_windows"
CODE_REVIEWS_TABLE = "code_reviews"
PR_REVIEWS_TABLE = "pr_reviews"


@dataclass
class CodeReviewRecord:
    """A completed single-file review."""

    owner: str
    file_name: str
    report_md: str
    model: str
    tokens: int = 0
    status: str = "completed"
    source_preview: str = ""
    structured_data: dict | None = None
    overall_score: int | None = None
    grade: str | None = None
    critical_issues: int = 0
    high_issues: int = 0
    medium_issues: int = 0
    low_issues: int = 0
    total_issues: int = 0
    security_score: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> CodeReviewRecord:
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in d.items() if k in known})


@dataclass
class PRReviewRecord:
    """A completed pull request review.

    ``review_data`` holds the full serialized PRReviewResult; `codegrade stats`
    reads per-file issues from it.
    """

    user_id: str
    repo_full_name: str
    pr_number: int
    pr_title: str
    head_sha: str
    base_sha: str
    overall_score: int
    grade: str
    risk_level: str
    model: str
    total_issues: int = 0
    critical_issues: int = 0
    high_issues: int = 0
    medium_issues: int = 0
    low_issues: int = 0
    reviewed_at: str = ""
    review_data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> PRReviewRecord:
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in d.items() if k in known})
