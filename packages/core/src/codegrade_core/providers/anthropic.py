from __future__ import annotations

import anthropic
from anthropic.types import TextBlock

from codegrade_core.errors import ProviderError, Transient, Unauthorized
from codegrade_core.providers.base import BaseProvider, ProviderResponse, classify_status


class AnthropicProvider(BaseProvider):
    FAMILY = "anthropic"
    MAX_TOKENS = 2500
    TEMPERATURE = 0.2

    def __init__(self, api_key: str | None):
        if not api_key:
            raise Unauthorized("ANTHROPIC_API_KEY is not set.")
        self.client = anthropic.Anthropic(api_key=api_key)

    def _call_api(self, prompt: str, model_id: str, max_tokens: int, temperature: float) -> ProviderResponse:
        response = self.client.messages.create(
            model=model_id,
            system="You are a senior software engineer performing code reviews.",
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        usage = getattr(response, "usage", None)
        tokens = None
        if usage is not None:
            tokens = (getattr(usage, "input_tokens", 0) or 0) + (getattr(usage, "output_tokens", 0) or 0)
        return ProviderResponse(raw_text="".join(text_blocks).strip(), tokens_consumed=tokens or None)

    def _classify(self, exc: Exception) -> ProviderError:
        if isinstance(exc, anthropic.APIStatusError):
            # 529 "overloaded" lands in the >= 500 branch and is retried as transient.
            return classify_status(exc.status_code, str(exc), exc.response.headers)
        if isinstance(exc, anthropic.APIConnectionError):
            return Transient(str(exc))
        return super()._classify(exc)
