"""LLM provider factory/registry."""

from __future__ import annotations

from crewdispatch.config import AppConfig
from crewdispatch.infra.providers.anthropic import AnthropicProvider
from crewdispatch.infra.providers.base import LLMProvider
from crewdispatch.models.provider import ProviderType


def get_provider(provider_type: ProviderType | str, config: AppConfig) -> LLMProvider:
    """Get an LLM provider instance by type, configured from AppConfig."""
    if isinstance(provider_type, str):
        provider_type = ProviderType(provider_type)

    if provider_type == ProviderType.ANTHROPIC:
        prov_config = config.providers.get("anthropic")
        return AnthropicProvider(
            api_key=prov_config.api_key if prov_config else "",
            model=prov_config.default_model if prov_config else "",
        )
    raise ValueError(f"Unknown provider type: {provider_type}")
