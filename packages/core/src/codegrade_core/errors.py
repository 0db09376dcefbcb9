"""Error taxonomy for the review core.

Two layers:

ProviderError and its subclasses are raised at the provider-client boundary.
Each adapter translates its SDK's exceptions into exactly one of these, so the
retry engine decides what to do from the class alone and never inspects
provider-specific fields.

ReviewError is what callers of the review service see. It always carries a
human-readable message and a machine-readable ``kind`` so a front end can
tell "try again later" from "upgrade your plan" from "nothing to review".
"""

from __future__ import annotations


class ProviderError(Exception):
    kind = "unknown"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class RateLimited(ProviderError):
    """429, RESOURCE_EXHAUSTED or a quota message. Retryable."""

    kind = "rate_limit"

    def __init__(self, message: str = "", retry_after: float | None = None, limits: dict | None = None):
        super().__init__(message)
        self.retry_after = retry_after
        self.limits = limits or {}


class Unauthorized(ProviderError):
    """Missing or rejected credential. Never retried."""

    kind = "unauthorized"


class Transient(ProviderError):
    """Network failure, timeout or 5xx. Retried like a rate limit."""

    kind = "transient"


class Malformed(ProviderError):
    """The provider answered, but not with anything usable. Never retried."""

    kind = "malformed"


class Rejected(ProviderError):
    """The provider refused this exact request (400, 404, 422). Never retried."""

    kind = "rejected"


class ReviewError(Exception):
    def __init__(
        self,
        message: str,
        kind: str = "unknown",
        limits: dict | None = None,
        retry_after: float | None = None,
        limit_type: str | None = None,
        upgrade: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.limits = limits or {}
        self.retry_after = retry_after
        self.limit_type = limit_type
        self.upgrade = upgrade

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "type": self.kind}
        if self.limit_type:
            payload["limitType"] = self.limit_type
        if self.limits:
            payload["limits"] = dict(self.limits)
        if self.retry_after is not None:
            payload["retryAfter"] = self.retry_after
        if self.upgrade:
            payload["upgrade"] = True
        return payload


class QuotaExceeded(ReviewError):
    def __init__(self, message: str, limit: int, used: int, retry_after: float | None = None):
        super().__init__(message, kind="rate_limit", retry_after=retry_after, limit_type="daily", upgrade=True)
        self.limit = limit
        self.used = used


class NoReviewableFiles(ReviewError):
    def __init__(self, message: str = "No code files to review in this pull request."):
        super().__init__(message, kind="no_code_files")


class ReviewCancelled(ReviewError):
    def __init__(self, message: str = "Review cancelled."):
        super().__init__(message, kind="cancelled")
