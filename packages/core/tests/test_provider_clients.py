"""Tests for provider clients and the error classification they share.

Classification rules live in providers/base.py and are tested once through
the plain helpers. Provider-specific tests cover only what differs: SDK
client setup, response unpacking and the SDK exception types each adapter
recognises. SDK exceptions are built from real httpx objects so the tests
exercise the same attributes a live failure carries.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import anthropic
import httpx
import openai
import pytest
from anthropic.types import TextBlock

from codegrade_core.errors import Malformed, RateLimited, Rejected, Transient, Unauthorized
from codegrade_core.providers.anthropic import AnthropicProvider
from codegrade_core.providers.base import (
    BaseProvider,
    ProviderResponse,
    classify_status,
    header_get,
    parse_reset_hint,
    rate_limit_snapshot,
    retry_hint,
)
from codegrade_core.providers.openai import GeminiProvider, LocalProvider, OpenAIProvider

REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _response(status, headers=None):
    return httpx.Response(status, headers=headers or {}, request=REQUEST)


def _openai_reply(text, total_tokens=42):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


class _StubProvider(BaseProvider):
    def __init__(self, outcome):
        self._outcome = outcome
        self.calls = []

    def _call_api(self, prompt, model_id, max_tokens, temperature):
        self.calls.append((prompt, model_id, max_tokens, temperature))
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome


# ---------------------------------------------------------------------------
# Reset hints and classification helpers
# ---------------------------------------------------------------------------


class TestParseResetHint:
    def test_plain_seconds(self):
        assert parse_reset_hint("12") == 12.0
        assert parse_reset_hint("1.5") == 1.5

    def test_go_durations(self):
        assert parse_reset_hint("6m0s") == 360.0
        assert parse_reset_hint("1s") == 1.0
        assert parse_reset_hint("20ms") == pytest.approx(0.02)

    def test_rfc3339_timestamp(self):
        assert parse_reset_hint("2025-01-01T00:00:30Z", now=NOW) == 30.0

    def test_http_date(self):
        assert parse_reset_hint("Wed, 01 Jan 2025 00:01:00 GMT", now=NOW) == 60.0

    def test_past_timestamp_clamps_to_zero(self):
        assert parse_reset_hint("2024-12-31T23:59:00Z", now=NOW) == 0.0

    def test_missing_or_garbage(self):
        assert parse_reset_hint(None) is None
        assert parse_reset_hint("") is None
        assert parse_reset_hint("soon") is None


class TestRetryHint:
    def test_retry_after_header_is_case_insensitive(self):
        assert retry_hint({"Retry-After": "7"}) == 7.0

    def test_openai_reset_header(self):
        assert retry_hint(httpx.Headers({"x-ratelimit-reset-requests": "6m0s"})) == 360.0

    def test_retry_after_wins_over_reset_headers(self):
        assert retry_hint({"retry-after": "3", "x-ratelimit-reset-requests": "6m0s"}) == 3.0

    def test_gemini_retry_delay_in_body(self):
        assert retry_hint(None, 'quota exceeded, "retryDelay": "23s"') == 23.0

    def test_gemini_retry_in_message(self):
        assert retry_hint({}, "Resource exhausted. Please retry in 23.4s.") == 23.4

    def test_no_hint(self):
        assert retry_hint({}, "something broke") is None


class TestHeaderHelpers:
    def test_header_get_handles_none(self):
        assert header_get(None, "retry-after") is None

    def test_snapshot_keeps_only_rate_limit_headers(self):
        snapshot = rate_limit_snapshot(
            {"x-ratelimit-remaining-requests": "0", "x-ratelimit-reset-tokens": "1s", "content-type": "json"}
        )
        assert snapshot == {"x-ratelimit-remaining-requests": "0", "x-ratelimit-reset-tokens": "1s"}


class TestClassifyStatus:
    def test_429_is_rate_limited_with_hint(self):
        err = classify_status(429, "Too many requests", {"retry-after": "5"})
        assert isinstance(err, RateLimited)
        assert err.retry_after == 5.0
        assert err.limits == {"retry-after": "5"}

    def test_quota_message_is_rate_limited(self):
        assert isinstance(classify_status(400, "You exceeded your current quota"), RateLimited)

    def test_resource_exhausted_code_is_rate_limited(self):
        assert isinstance(classify_status(400, "boom", code="RESOURCE_EXHAUSTED"), RateLimited)

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failures(self, status):
        assert isinstance(classify_status(status, "bad key"), Unauthorized)

    @pytest.mark.parametrize("status", [None, 408, 409, 500, 502, 503, 529])
    def test_transient(self, status):
        assert isinstance(classify_status(status, "try later"), Transient)

    @pytest.mark.parametrize("status", [400, 404, 422])
    def test_other_client_errors_are_rejected(self, status):
        assert isinstance(classify_status(status, "invalid request"), Rejected)


# ---------------------------------------------------------------------------
# Shared invoke() contract, tested once through the stub
# ---------------------------------------------------------------------------


class TestBaseProviderInvoke:
    def test_returns_response_and_uses_class_defaults(self):
        provider = _StubProvider(ProviderResponse("{}", 10))
        result = provider.invoke("prompt", "model-x")
        assert result.raw_text == "{}"
        assert provider.calls == [("prompt", "model-x", BaseProvider.MAX_TOKENS, 0.2)]

    def test_explicit_limits_override_defaults(self):
        provider = _StubProvider(ProviderResponse("{}"))
        provider.invoke("p", "m", max_output_tokens=100, temperature=0.0)
        assert provider.calls[0][2:] == (100, 0.0)

    def test_empty_text_is_malformed(self):
        with pytest.raises(Malformed):
            _StubProvider(ProviderResponse("   ")).invoke("p", "m")

    def test_unknown_exception_becomes_transient(self):
        with pytest.raises(Transient) as exc_info:
            _StubProvider(RuntimeError("network error")).invoke("p", "m")
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_duck_typed_status_is_read(self):
        class _HTTPError(Exception):
            status_code = 429
            headers = {"retry-after": "9"}

        with pytest.raises(RateLimited) as exc_info:
            _StubProvider(_HTTPError("slow down")).invoke("p", "m")
        assert exc_info.value.retry_after == 9.0

    def test_provider_errors_pass_through(self):
        with pytest.raises(Unauthorized):
            _StubProvider(Unauthorized("nope")).invoke("p", "m")


# ---------------------------------------------------------------------------
# OpenAI-protocol families
# ---------------------------------------------------------------------------


class TestOpenAIProvider:
    def test_missing_key_is_unauthorized(self):
        with pytest.raises(Unauthorized, match="OPENAI_API_KEY"):
            OpenAIProvider(api_key=None)

    def test_success_returns_text_and_tokens(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider.client = MagicMock()
        provider.client.chat.completions.create.return_value = _openai_reply('  {"ok": true}  ', 42)

        result = provider.invoke("review this", "gpt-4o-mini")

        assert result.raw_text == '{"ok": true}'
        assert result.tokens_consumed == 42
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == OpenAIProvider.MAX_TOKENS
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"][-1]["content"] == "review this"

    def test_empty_choice_is_malformed(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider.client = MagicMock()
        provider.client.chat.completions.create.return_value = _openai_reply(None)
        with pytest.raises(Malformed):
            provider.invoke("p", "gpt-4o-mini")

    def test_rate_limit_error_carries_reset_and_snapshot(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider.client = MagicMock()
        provider.client.chat.completions.create.side_effect = openai.RateLimitError(
            "Rate limit reached for requests",
            response=_response(429, {"x-ratelimit-reset-requests": "6m0s", "x-ratelimit-remaining-requests": "0"}),
            body=None,
        )
        with pytest.raises(RateLimited) as exc_info:
            provider.invoke("p", "gpt-4o-mini")
        assert exc_info.value.retry_after == 360.0
        assert exc_info.value.limits["x-ratelimit-remaining-requests"] == "0"

    def test_auth_error_is_unauthorized(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider.client = MagicMock()
        provider.client.chat.completions.create.side_effect = openai.AuthenticationError(
            "Incorrect API key provided", response=_response(401), body=None
        )
        with pytest.raises(Unauthorized):
            provider.invoke("p", "gpt-4o-mini")

    def test_bad_request_is_rejected(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider.client = MagicMock()
        provider.client.chat.completions.create.side_effect = openai.BadRequestError(
            "max_tokens is too large", response=_response(400), body=None
        )
        with pytest.raises(Rejected):
            provider.invoke("p", "gpt-4o-mini")

    def test_server_error_is_transient(self):
        provider = OpenAIProvider(api_key="sk-test")
        provider.client = MagicMock()
        provider.client.chat.completions.create.side_effect = openai.InternalServerError(
            "upstream failure", response=_response(502), body=None
        )
        with pytest.raises(Transient):
            provider.invoke("p", "gpt-4o-mini")

    @pytest.mark.parametrize("exc_type", [openai.APIConnectionError, openai.APITimeoutError])
    def test_connection_problems_are_transient(self, exc_type):
        provider = OpenAIProvider(api_key="sk-test")
        provider.client = MagicMock()
        provider.client.chat.completions.create.side_effect = exc_type(request=REQUEST)
        with pytest.raises(Transient):
            provider.invoke("p", "gpt-4o-mini")


class TestGeminiProvider:
    def test_missing_key_is_unauthorized(self):
        with pytest.raises(Unauthorized, match="GEMINI_API_KEY"):
            GeminiProvider(api_key="")

    def test_uses_openai_compatible_endpoint(self):
        provider = GeminiProvider(api_key="g-key")
        assert "generativelanguage.googleapis.com" in str(provider.client.base_url)
        assert provider.name == "gemini"

    def test_resource_exhausted_body_is_rate_limited(self):
        provider = GeminiProvider(api_key="g-key")
        provider.client = MagicMock()
        provider.client.chat.completions.create.side_effect = openai.APIStatusError(
            "Resource has been exhausted. Please retry in 17s.",
            response=_response(400),
            body=[{"error": {"code": 400, "status": "RESOURCE_EXHAUSTED"}}],
        )
        with pytest.raises(RateLimited) as exc_info:
            provider.invoke("p", "gemini-2.0-flash")
        assert exc_info.value.retry_after == 17.0


class TestLocalProvider:
    def test_needs_no_credential(self):
        provider = LocalProvider()
        assert "127.0.0.1:4000" in str(provider.client.base_url)

    def test_custom_base_url(self):
        provider = LocalProvider(base_url="http://localhost:11434/v1")
        assert "localhost:11434" in str(provider.client.base_url)


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


class TestAnthropicProvider:
    def test_missing_key_is_unauthorized(self):
        with pytest.raises(Unauthorized, match="ANTHROPIC_API_KEY"):
            AnthropicProvider(api_key=None)

    def test_success_joins_text_blocks_and_sums_tokens(self):
        provider = AnthropicProvider(api_key="ant")
        provider.client = MagicMock()
        provider.client.messages.create.return_value = SimpleNamespace(
            content=[TextBlock(type="text", text='{"a": '), TextBlock(type="text", text="1}")],
            usage=SimpleNamespace(input_tokens=100, output_tokens=20),
        )

        result = provider.invoke("p", "claude-sonnet-4-20250514")

        assert result.raw_text == '{"a": 1}'
        assert result.tokens_consumed == 120
        assert provider.client.messages.create.call_args.kwargs["max_tokens"] == AnthropicProvider.MAX_TOKENS

    def test_rate_limit_uses_retry_after(self):
        provider = AnthropicProvider(api_key="ant")
        provider.client = MagicMock()
        provider.client.messages.create.side_effect = anthropic.RateLimitError(
            "rate_limit_error", response=_response(429, {"retry-after": "12"}), body=None
        )
        with pytest.raises(RateLimited) as exc_info:
            provider.invoke("p", "claude-sonnet-4-20250514")
        assert exc_info.value.retry_after == 12.0

    def test_overloaded_is_transient(self):
        provider = AnthropicProvider(api_key="ant")
        provider.client = MagicMock()
        provider.client.messages.create.side_effect = anthropic.APIStatusError(
            "Overloaded", response=_response(529), body=None
        )
        with pytest.raises(Transient):
            provider.invoke("p", "claude-sonnet-4-20250514")

    def test_connection_error_is_transient(self):
        provider = AnthropicProvider(api_key="ant")
        provider.client = MagicMock()
        provider.client.messages.create.side_effect = anthropic.APIConnectionError(request=REQUEST)
        with pytest.raises(Transient):
            provider.invoke("p", "claude-sonnet-4-20250514")
