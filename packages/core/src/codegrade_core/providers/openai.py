"""OpenAI-protocol provider clients.

Three families speak the chat-completions protocol through the same SDK and
differ only in base URL and credential:
  - openai: the hosted OpenAI API
  - gemini: Google's OpenAI-compatible Gemini endpoint
  - local:  a self-hosted Ollama / LiteLLM server, no real credential needed
"""

from __future__ import annotations

import openai

from codegrade_core.errors import ProviderError, Transient, Unauthorized
from codegrade_core.providers.base import BaseProvider, ProviderResponse, classify_status

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
LOCAL_DEFAULT_BASE_URL = "http://127.0.0.1:4000/v1"
_LOCAL_PLACEHOLDER_KEY = "sk-local"


def _error_code(body) -> str | None:
    """Pull a provider status code such as RESOURCE_EXHAUSTED out of an error body."""
    if isinstance(body, list) and body:
        body = body[0]
    if not isinstance(body, dict):
        return None
    error = body.get("error", body)
    if isinstance(error, dict):
        code = error.get("status") or error.get("code")
        return code if isinstance(code, str) else None
    return None


class OpenAIProvider(BaseProvider):
    FAMILY = "openai"
    MAX_TOKENS = 1500
    # temperature=0.2 to lean toward deterministic, structured JSON output.
    TEMPERATURE = 0.2

    def __init__(self, api_key: str | None, base_url: str | None = None):
        if not api_key:
            raise Unauthorized("OPENAI_API_KEY is not set.")
        self.client = openai.OpenAI(api_key=api_key, base_url=base_url or None)

    def _call_api(self, prompt: str, model_id: str, max_tokens: int, temperature: float) -> ProviderResponse:
        response = self.client.chat.completions.create(
            model=model_id,
            messages=[
                {"role": "system", "content": "You are a senior software engineer performing code reviews."},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        text = response.choices[0].message.content if response.choices else ""
        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", None) if usage is not None else None
        return ProviderResponse(raw_text=(text or "").strip(), tokens_consumed=tokens or None)

    def _classify(self, exc: Exception) -> ProviderError:
        if isinstance(exc, openai.APIStatusError):
            return classify_status(exc.status_code, str(exc), exc.response.headers, _error_code(exc.body))
        if isinstance(exc, openai.APIConnectionError):
            # Also covers APITimeoutError, which subclasses it.
            return Transient(str(exc))
        return super()._classify(exc)


class GeminiProvider(OpenAIProvider):
    FAMILY = "gemini"
    MAX_TOKENS = 2500

    def __init__(self, api_key: str | None, base_url: str | None = None):
        if not api_key:
            raise Unauthorized("GEMINI_API_KEY is not set. Get one at https://aistudio.google.com/apikey")
        self.client = openai.OpenAI(api_key=api_key, base_url=base_url or GEMINI_BASE_URL)


class LocalProvider(OpenAIProvider):
    FAMILY = "local"
    MAX_TOKENS = 1500

    def __init__(self, base_url: str | None = None, api_key: str | None = None):
        self.client = openai.OpenAI(
            api_key=api_key or _LOCAL_PLACEHOLDER_KEY,
            base_url=base_url or LOCAL_DEFAULT_BASE_URL,
        )
