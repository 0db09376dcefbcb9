"""In-flight review data types.

StructuredReview and its parts mirror the JSON object the prompt asks the
provider for. ``to_dict`` emits that same camelCase wire shape so a cached or
persisted review reads exactly like a fresh provider answer; ``from_dict``
assumes the payload has already passed the parser's validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

SEVERITIES = ("critical", "high", "medium", "low", "info")
CATEGORIES = ("bug", "security", "performance", "maintainability", "style", "best-practice")
GRADES = ("A+", "A", "B", "C", "D", "F")
RISK_LEVELS = ("low", "medium", "high", "critical")
FILE_STATUSES = ("added", "modified", "removed")

# Wire name of each severity's counter inside ``summary``.
_COUNT_FIELDS = {
    "critical": "criticalCount",
    "high": "highCount",
    "medium": "mediumCount",
    "low": "lowCount",
    "info": "infoCount",
}


@dataclass(frozen=True)
class ReviewRequest:
    source_text: str
    filename: str
    context: str | None = None
    model_id: str | None = None


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    provider_family: str
    requests_per_minute: int | None
    tokens_per_minute: int | None
    requests_per_day: int | None
    display_name: str


@dataclass
class Issue:
    id: str
    severity: str
    category: str
    title: str
    description: str
    suggestion: str
    impact: str
    line_number: int | None = None
    code_snippet: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "severity": self.severity,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "lineNumber": self.line_number,
            "codeSnippet": self.code_snippet,
            "suggestion": self.suggestion,
            "impact": self.impact,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Issue:
        return cls(
            id=str(d.get("id", "")),
            severity=d["severity"],
            category=d["category"],
            title=d.get("title", ""),
            description=d.get("description", ""),
            suggestion=d.get("suggestion", ""),
            impact=d.get("impact", ""),
            line_number=d.get("lineNumber"),
            code_snippet=d.get("codeSnippet"),
        )


@dataclass
class ReviewSummary:
    overall_score: float
    grade: str
    total_issues: int
    counts_by_severity: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d: dict = {"overallScore": self.overall_score, "grade": self.grade, "totalIssues": self.total_issues}
        for severity, name in _COUNT_FIELDS.items():
            d[name] = self.counts_by_severity.get(severity, 0)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> ReviewSummary:
        return cls(
            overall_score=d["overallScore"],
            grade=d["grade"],
            total_issues=d["totalIssues"],
            counts_by_severity={sev: int(d.get(name) or 0) for sev, name in _COUNT_FIELDS.items()},
        )


@dataclass
class Metrics:
    complexity: float
    maintainability: float
    readability: float
    testability: float
    security: float

    def to_dict(self) -> dict:
        return {
            "complexity": self.complexity,
            "maintainability": self.maintainability,
            "readability": self.readability,
            "testability": self.testability,
            "security": self.security,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Metrics:
        return cls(
            complexity=d.get("complexity", 0),
            maintainability=d.get("maintainability", 0),
            readability=d.get("readability", 0),
            testability=d.get("testability", 0),
            security=d["security"],
        )


@dataclass
class StructuredReview:
    summary: ReviewSummary
    issues: list[Issue]
    metrics: Metrics
    strengths: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "summary": self.summary.to_dict(),
            "issues": [i.to_dict() for i in self.issues],
            "metrics": self.metrics.to_dict(),
            "strengths": list(self.strengths),
            "recommendations": list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, d: dict) -> StructuredReview:
        return cls(
            summary=ReviewSummary.from_dict(d["summary"]),
            issues=[Issue.from_dict(i) for i in d["issues"]],
            metrics=Metrics.from_dict(d["metrics"]),
            strengths=[str(s) for s in d.get("strengths") or []],
            recommendations=[str(r) for r in d.get("recommendations") or []],
        )


@dataclass
class ReviewOutcome:
    """Result of one file review.

    ``markdown`` is always populated. ``structured`` is None when the provider
    output could not be validated; the markdown then carries the raw text.
    ``degraded`` marks a placeholder built because the provider returned
    nothing usable; it is never cached. A cached outcome reports no token use.
    """

    markdown: str
    provider_name: str
    structured: StructuredReview | None = None
    tokens_consumed: int | None = None
    cached: bool = False
    degraded: bool = False

    def to_dict(self) -> dict:
        return {
            "structured": self.structured.to_dict() if self.structured else None,
            "markdown": self.markdown,
            "providerName": self.provider_name,
            "tokensConsumed": self.tokens_consumed,
        }

    @classmethod
    def from_dict(cls, d: dict, cached: bool = False) -> ReviewOutcome:
        structured = d.get("structured")
        return cls(
            markdown=d.get("markdown", ""),
            provider_name=d.get("providerName", ""),
            structured=StructuredReview.from_dict(structured) if structured else None,
            tokens_consumed=None if cached else d.get("tokensConsumed"),
            cached=cached,
        )


@dataclass
class FileIssue:
    severity: str
    category: str
    title: str
    description: str
    suggestion: str
    line: int | None = None

    def to_dict(self) -> dict:
        return {
            "severity": self.severity,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "line": self.line,
            "suggestion": self.suggestion,
        }

    @classmethod
    def from_dict(cls, d: dict) -> FileIssue:
        return cls(
            severity=d.get("severity", "info"),
            category=d.get("category", ""),
            title=d.get("title", ""),
            description=d.get("description", ""),
            suggestion=d.get("suggestion", ""),
            line=d.get("line"),
        )


@dataclass
class FileReviewResult:
    filename: str
    file_status: str
    issues: list[FileIssue]
    score: float

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "status": self.file_status,
            "issues": [i.to_dict() for i in self.issues],
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, d: dict) -> FileReviewResult:
        return cls(
            filename=d.get("filename", ""),
            file_status=d.get("status", "modified"),
            issues=[FileIssue.from_dict(i) for i in d.get("issues", [])],
            score=d.get("score", 0),
        )


@dataclass
class PRReviewResult:
    pr_number: int
    repo: str
    head_commit_id: str
    overall_score: int
    grade: str
    risk_level: str
    summary_text: str
    provider_name: str
    file_reviews: list[FileReviewResult] = field(default_factory=list)
    counts_by_severity: dict[str, int] = field(default_factory=dict)
    skipped_files: list[str] = field(default_factory=list)
    failed_files: dict[str, str] = field(default_factory=dict)
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    cached: bool = False

    @property
    def total_issues(self) -> int:
        return sum(self.counts_by_severity.values())

    def to_dict(self) -> dict:
        return {
            "prNumber": self.pr_number,
            "repo": self.repo,
            "headSha": self.head_commit_id,
            "overallScore": self.overall_score,
            "grade": self.grade,
            "riskLevel": self.risk_level,
            "summary": self.summary_text,
            "fileReviews": [f.to_dict() for f in self.file_reviews],
            "totalIssues": self.total_issues,
            "criticalCount": self.counts_by_severity.get("critical", 0),
            "highCount": self.counts_by_severity.get("high", 0),
            "mediumCount": self.counts_by_severity.get("medium", 0),
            "lowCount": self.counts_by_severity.get("low", 0),
            "infoCount": self.counts_by_severity.get("info", 0),
            "skippedFiles": list(self.skipped_files),
            "failedFiles": dict(self.failed_files),
            "reviewedAt": self.reviewed_at,
            "model": self.provider_name,
            "cached": self.cached,
        }

    @classmethod
    def from_dict(cls, d: dict, cached: bool = False) -> PRReviewResult:
        return cls(
            pr_number=d["prNumber"],
            repo=d["repo"],
            head_commit_id=d["headSha"],
            overall_score=d["overallScore"],
            grade=d["grade"],
            risk_level=d["riskLevel"],
            summary_text=d.get("summary", ""),
            provider_name=d.get("model", ""),
            file_reviews=[FileReviewResult.from_dict(f) for f in d.get("fileReviews", [])],
            counts_by_severity={sev: int(d.get(name) or 0) for sev, name in _COUNT_FIELDS.items()},
            skipped_files=list(d.get("skippedFiles", [])),
            failed_files=dict(d.get("failedFiles", {})),
            reviewed_at=d.get("reviewedAt", ""),
            cached=cached,
        )
