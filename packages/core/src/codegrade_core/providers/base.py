"""Base provider client implementing the Template Method pattern.

All providers share the same invocation contract:
    invoke() → _call_api()        ← only this differs per provider
             → on failure: _classify() → one ProviderError subclass

Subclasses implement:
  - __init__: resolve credentials and build the SDK client
  - _call_api: make one raw API call and return a ProviderResponse
  - _classify (optional): map SDK exception types before the generic rules run

Retry policy does not live here. A client makes exactly one attempt per
invoke(); the retry engine decides whether and when to call it again based
only on the ProviderError subclass it receives.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from codegrade_core.errors import Malformed, ProviderError, RateLimited, Rejected, Transient, Unauthorized

logger = logging.getLogger(__name__)

_RATE_LIMIT_MARKERS = ("quota", "rate limit", "rate_limit", "resource_exhausted", "resource exhausted", "429")

# Headers that tell us when the provider will accept requests again, in the
# order we trust them.
_RESET_HEADERS = (
    "retry-after",
    "x-ratelimit-reset-requests",
    "x-ratelimit-reset-tokens",
    "anthropic-ratelimit-requests-reset",
    "anthropic-ratelimit-tokens-reset",
)

_SNAPSHOT_HEADERS = (
    "x-ratelimit-remaining-requests",
    "x-ratelimit-remaining-tokens",
    "x-ratelimit-reset-requests",
    "x-ratelimit-reset-tokens",
    "anthropic-ratelimit-requests-remaining",
    "anthropic-ratelimit-requests-reset",
    "anthropic-ratelimit-tokens-remaining",
    "anthropic-ratelimit-tokens-reset",
    "retry-after",
)

# OpenAI reset header format: "1s", "6m0s", "20ms", "1h2m3.5s".
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
# Gemini puts its hint in the error body: "retryDelay": "23s" or "Please retry in 23.4s".
_MESSAGE_HINT_RE = re.compile(r"(?:retryDelay['\"]?\s*[:=]\s*['\"]?|retry in\s+)(\d+(?:\.\d+)?)\s*s", re.IGNORECASE)


@dataclass
class ProviderResponse:
    raw_text: str
    tokens_consumed: int | None = None


def header_get(headers, name: str) -> str | None:
    """Case-insensitive header lookup that accepts httpx.Headers or a plain dict."""
    if not headers:
        return None
    try:
        value = headers.get(name)
    except AttributeError:
        return None
    if value is None and isinstance(headers, dict):
        for key, candidate in headers.items():
            if key.lower() == name.lower():
                value = candidate
                break
    return None if value is None else str(value)


def parse_reset_hint(value: str | None, now: datetime | None = None) -> float | None:
    """Turn a reset header value into seconds from now.

    Accepts plain seconds ("12", "1.5"), Go-style durations ("6m0s", "20ms"),
    RFC 3339 timestamps and HTTP dates. Returns None when the value is absent
    or unparseable so the caller falls back to exponential backoff.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    parts = _DURATION_PART_RE.findall(value)
    if parts and "".join(n + u for n, u in parts) == value:
        scale = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}
        return sum(float(n) * scale[u] for n, u in parts)

    now = now or datetime.now(timezone.utc)
    moment = None
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            moment = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max(0.0, (moment - now).total_seconds())


def retry_hint(headers, message: str = "") -> float | None:
    for name in _RESET_HEADERS:
        seconds = parse_reset_hint(header_get(headers, name))
        if seconds is not None:
            return seconds
    match = _MESSAGE_HINT_RE.search(message or "")
    if match:
        return float(match.group(1))
    return None


def rate_limit_snapshot(headers) -> dict:
    snapshot = {}
    for name in _SNAPSHOT_HEADERS:
        value = header_get(headers, name)
        if value is not None:
            snapshot[name] = value
    return snapshot


def looks_rate_limited(message: str, code: str | None = None) -> bool:
    if code and code.upper() == "RESOURCE_EXHAUSTED":
        return True
    lowered = (message or "").lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


def classify_status(status: int | None, message: str, headers=None, code: str | None = None) -> ProviderError:
    """Map an HTTP status (plus provider code and message) to a ProviderError."""
    if status == 429 or looks_rate_limited(message, code):
        return RateLimited(message, retry_after=retry_hint(headers, message), limits=rate_limit_snapshot(headers))
    if status in (401, 403):
        return Unauthorized(message)
    if status is None or status in (408, 409) or status >= 500:
        return Transient(message)
    # Remaining 4xx: the provider refused this exact request; repeating it won't help.
    return Rejected(message)


class BaseProvider(ABC):
    MAX_TOKENS: int = 2048
    TEMPERATURE: float = 0.2
    FAMILY: str = ""

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def invoke(
        self,
        prompt: str,
        model_id: str,
        max_output_tokens: int | None = None,
        temperature: float | None = None,
    ) -> ProviderResponse:
        """Make one attempt and return the raw response, or raise a ProviderError."""
        max_tokens = max_output_tokens or self.MAX_TOKENS
        temp = self.TEMPERATURE if temperature is None else temperature
        try:
            response = self._call_api(prompt, model_id, max_tokens, temp)
        except ProviderError:
            raise
        except Exception as e:
            classified = self._classify(e)
            logger.debug("%s: %s classified as %s", self.__class__.__name__, type(e).__name__, classified.kind)
            raise classified from e
        if not response.raw_text or not response.raw_text.strip():
            raise Malformed(f"{self.__class__.__name__} returned an empty response")
        return response

    @property
    def name(self) -> str:
        return self.FAMILY or self.__class__.__name__

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, prompt: str, model_id: str, max_tokens: int, temperature: float) -> ProviderResponse:
        """Make a single API call. Raise on failure; invoke() classifies the error."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _classify(self, exc: Exception) -> ProviderError:
        """Fallback classification for exceptions no adapter recognised.

        Reads the duck-typed attributes most HTTP client errors expose so a
        rate limit surfaced by a proxy or an unfamiliar SDK still retries.
        """
        status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
        response = getattr(exc, "response", None)
        headers = getattr(exc, "headers", None) or getattr(response, "headers", None)
        code = getattr(exc, "code", None)
        if not isinstance(status, int):
            status = None
        return classify_status(status, str(exc), headers, code if isinstance(code, str) else None)
