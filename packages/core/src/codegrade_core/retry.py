"""Bounded retry around a single provider call.

Backoff prefers the provider's own reset hint, clamped to a sane window,
and falls back to ``base_delay * 2**attempt`` when there is none. Rate limits
and transient failures are retried; anything else ends the loop at once.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

from codegrade_core.errors import (
    Malformed,
    ProviderError,
    RateLimited,
    ReviewCancelled,
    ReviewError,
    Transient,
    Unauthorized,
)
from codegrade_core.parser import parse_review

if TYPE_CHECKING:
    from codegrade_core.models import ModelDescriptor, ReviewOutcome
    from codegrade_core.providers.base import BaseProvider

logger = logging.getLogger(__name__)

MIN_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = 60.0


def pause(seconds: float, cancel: threading.Event | None = None) -> None:
    """Sleep for seconds, waking early and raising ReviewCancelled if cancel is set."""
    if seconds <= 0:
        return
    if cancel is None:
        time.sleep(seconds)
        return
    if cancel.wait(seconds):
        raise ReviewCancelled()


def backoff_delay(
    error: ProviderError,
    attempt: int,
    base_delay: float,
    min_delay: float = MIN_RETRY_DELAY,
    max_delay: float = MAX_RETRY_DELAY,
) -> float:
    hint = error.retry_after if isinstance(error, RateLimited) else None
    if hint is not None:
        return min(max(hint, min_delay), max_delay)
    return base_delay * 2**attempt


def invoke_with_retry(
    provider: BaseProvider,
    prompt: str,
    descriptor: ModelDescriptor,
    max_attempts: int = 3,
    base_delay: float = 5.0,
    min_delay: float = MIN_RETRY_DELAY,
    max_delay: float = MAX_RETRY_DELAY,
    cancel: threading.Event | None = None,
) -> ReviewOutcome:
    """Call provider until it answers or max_attempts is used up.

    Returns a parsed ReviewOutcome. An empty or unusable answer degrades to
    the markdown fallback with ``degraded`` set, so callers must not cache it.
    Raises ReviewError classified as ``rate_limit``, ``unauthorized`` or
    ``unknown`` otherwise; a Rejected request is ``unknown`` and never retried.
    """
    name = provider.__class__.__name__
    last: ProviderError | None = None

    for attempt in range(max_attempts):
        if cancel is not None and cancel.is_set():
            raise ReviewCancelled()
        try:
            response = provider.invoke(prompt, descriptor.id)
        except Unauthorized as e:
            raise ReviewError(e.message or "Provider rejected the credential.", kind="unauthorized") from e
        except Malformed as e:
            logger.warning("%s returned an unusable response: %s", name, e.message)
            outcome = parse_review("", descriptor.id)
            outcome.degraded = True
            return outcome
        except (RateLimited, Transient) as e:
            last = e
            if attempt == max_attempts - 1:
                break
            delay = backoff_delay(e, attempt, base_delay, min_delay, max_delay)
            logger.warning(
                "%s %s (attempt %d/%d): %s. Retrying in %.1fs...",
                name,
                "rate limited" if isinstance(e, RateLimited) else "transient error",
                attempt + 1,
                max_attempts,
                e.message,
                delay,
            )
            pause(delay, cancel)
            continue
        except ProviderError as e:
            raise ReviewError(e.message or "LLM request failed", kind="unknown") from e
        return parse_review(response.raw_text, descriptor.id, response.tokens_consumed)

    logger.error("%s failed after %d attempts: %s", name, max_attempts, last.message if last else "")
    if isinstance(last, RateLimited):
        if last.limits:
            logger.warning("%s rate limit info: %s", name, last.limits)
        raise ReviewError(
            "LLM quota/rate limit reached. Try again shortly or reduce input size.",
            kind="rate_limit",
            limits=last.limits,
            retry_after=last.retry_after,
            limit_type="provider",
        ) from last
    raise ReviewError(
        (last.message if last and last.message else "LLM request failed"),
        kind="unknown",
    ) from last
