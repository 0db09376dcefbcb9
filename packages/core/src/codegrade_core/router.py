"""Model catalog, allowlist routing and provider construction."""

from __future__ import annotations

import logging

from codegrade_core.models import ModelDescriptor
from codegrade_core.providers.anthropic import AnthropicProvider
from codegrade_core.providers.base import BaseProvider
from codegrade_core.providers.openai import GeminiProvider, LocalProvider, OpenAIProvider

logger = logging.getLogger(__name__)

# Free-tier published limits. requests_per_minute drives the inter-file throttle
# of PR reviews; None means the provider publishes no such limit.
MODEL_CATALOG: dict[str, ModelDescriptor] = {
    d.id: d
    for d in (
        ModelDescriptor("gemini-2.0-flash-lite", "gemini", 30, 1_000_000, 200, "Gemini 2.0 Flash-Lite"),
        ModelDescriptor("gemini-2.0-flash", "gemini", 15, 1_000_000, 200, "Gemini 2.0 Flash"),
        ModelDescriptor("gemini-2.5-flash-lite", "gemini", 15, 250_000, 1000, "Gemini 2.5 Flash-Lite"),
        ModelDescriptor("gemini-2.5-flash", "gemini", 10, 250_000, 250, "Gemini 2.5 Flash"),
        ModelDescriptor("gemini-2.5-pro", "gemini", 2, 125_000, 50, "Gemini 2.5 Pro"),
        ModelDescriptor("gpt-4o-mini", "openai", 3, 40_000, 200, "GPT-4o mini"),
        ModelDescriptor("gpt-4o-mini-2024-07-18", "openai", 3, 40_000, 200, "GPT-4o mini (2024-07-18)"),
        ModelDescriptor("claude-sonnet-4-20250514", "anthropic", 50, 30_000, None, "Claude Sonnet 4"),
        ModelDescriptor("llama3.1:8b", "local", 60, None, None, "Llama 3.1 8B (local)"),
        ModelDescriptor("llama3.2:3b", "local", 60, None, None, "Llama 3.2 3B (local)"),
        ModelDescriptor("qwen2.5-coder:7b", "local", 60, None, None, "Qwen 2.5 Coder 7B (local)"),
    )
}

FAMILY_PREFIXES: dict[str, tuple[str, ...]] = {
    "gemini": ("gemini-",),
    "openai": ("gpt-",),
    "anthropic": ("claude-",),
    "local": ("llama", "qwen"),
}

# Limits assumed for allowlisted ids that are not in the catalog.
_FAMILY_DEFAULT_LIMITS = {
    "gemini": (10, 250_000, 250),
    "openai": (3, 40_000, 200),
    "anthropic": (50, 30_000, None),
    "local": (60, None, None),
}


def _check_prefixes(prefixes: dict[str, tuple[str, ...]]) -> None:
    owners = [(prefix, family) for family, group in prefixes.items() for prefix in group]
    for prefix, family in owners:
        for other, other_family in owners:
            if family != other_family and other.startswith(prefix):
                raise ValueError(
                    f"Ambiguous model prefixes: {prefix!r} ({family}) overlaps {other!r} ({other_family})."
                )


class ModelRouter:
    """Resolves requested model ids against an allowlist and builds providers.

    Configuration problems (overlapping family prefixes, an allowlisted id
    that maps to no family, a default outside the allowlist) raise
    ValueError at construction, never at request time.
    """

    def __init__(
        self,
        default_model: str,
        allowlist: list[str] | None = None,
        credentials: dict | None = None,
        prefixes: dict[str, tuple[str, ...]] | None = None,
        catalog: dict[str, ModelDescriptor] | None = None,
    ):
        self.prefixes = prefixes or FAMILY_PREFIXES
        _check_prefixes(self.prefixes)
        self.catalog = dict(catalog or MODEL_CATALOG)
        self.allowlist = list(allowlist) if allowlist is not None else list(self.catalog)
        self.credentials = credentials or {}
        self._providers: dict[str, BaseProvider] = {}

        self._descriptors: dict[str, ModelDescriptor] = {}
        for model_id in self.allowlist:
            self._descriptors[model_id] = self._describe(model_id)

        if default_model not in self._descriptors:
            raise ValueError(f"Default model {default_model!r} is not in the model allowlist.")
        self.default_model = default_model

    @classmethod
    def from_config(cls, config: dict) -> ModelRouter:
        allowlist = list(MODEL_CATALOG) + [m for m in config.get("extra_models") or [] if m not in MODEL_CATALOG]
        return cls(default_model=config["default_model"], allowlist=allowlist, credentials=config)

    def family_of(self, model_id: str) -> str:
        families = [f for f, group in self.prefixes.items() if any(model_id.startswith(p) for p in group)]
        if len(families) != 1:
            raise ValueError(f"Model {model_id!r} matches {len(families)} provider families; expected exactly one.")
        return families[0]

    def _describe(self, model_id: str) -> ModelDescriptor:
        family = self.family_of(model_id)
        known = self.catalog.get(model_id)
        if known is not None:
            if known.provider_family != family:
                raise ValueError(f"Catalog lists {model_id!r} as {known.provider_family}, prefix says {family}.")
            return known
        rpm, tpm, rpd = _FAMILY_DEFAULT_LIMITS.get(family, (None, None, None))
        return ModelDescriptor(model_id, family, rpm, tpm, rpd, model_id)

    def resolve(self, requested_model_id: str | None = None) -> ModelDescriptor:
        if requested_model_id and requested_model_id in self._descriptors:
            return self._descriptors[requested_model_id]
        if requested_model_id:
            logger.info("Model %r is not allowlisted; using %s", requested_model_id, self.default_model)
        return self._descriptors[self.default_model]

    def descriptors(self) -> list[ModelDescriptor]:
        return list(self._descriptors.values())

    def provider_for(self, descriptor: ModelDescriptor) -> BaseProvider:
        """Return the (cached) provider client for a descriptor's family.

        Raises Unauthorized when the family's credential is missing.
        """
        family = descriptor.provider_family
        if family not in self._providers:
            self._providers[family] = self._build_provider(family)
        return self._providers[family]

    def _build_provider(self, family: str) -> BaseProvider:
        creds = self.credentials
        if family == "openai":
            return OpenAIProvider(api_key=creds.get("openai_api_key"), base_url=creds.get("openai_base_url"))
        if family == "gemini":
            return GeminiProvider(api_key=creds.get("gemini_api_key"))
        if family == "anthropic":
            return AnthropicProvider(api_key=creds.get("anthropic_api_key"))
        if family == "local":
            return LocalProvider(
                base_url=creds.get("local_base_url") or creds.get("openai_base_url"),
                api_key=creds.get("local_api_key"),
            )
        raise ValueError(f"Unknown provider family: {family!r}.")
