"""Picks the configured LLM backend and builds it once."""

from __future__ import annotations

import importlib
import logging

from wallet_agent_bot.config import LLMConfig, LLMProviderConfig
from wallet_agent_bot.llm.base import BaseLLMProvider

logger = logging.getLogger(__name__)

# provider name -> (module, class); imported lazily so only one SDK loads.
PROVIDERS: dict[str, tuple[str, str]] = {
    "anthropic": ("wallet_agent_bot.llm.anthropic", "AnthropicProvider"),
    "openai": ("wallet_agent_bot.llm.openai", "OpenAIProvider"),
}


def _load_provider_class(name: str) -> type[BaseLLMProvider]:
    module_path, class_name = PROVIDERS[name]
    cls = getattr(importlib.import_module(module_path), class_name)
    if not (isinstance(cls, type) and issubclass(cls, BaseLLMProvider)):
        raise TypeError(f"{module_path}.{class_name} is not a BaseLLMProvider")
    return cls


class LLMRouter:
    """Resolves ``llm.default_provider`` (or an explicit name) to a provider.

    The instance is cached, so every user's session shares one client and
    its connection pool.
    """

    def __init__(self, llm_config: LLMConfig, temperature: float | None = None):
        self._config = llm_config
        self._temperature = temperature
        self._cache: dict[str, BaseLLMProvider] = {}

    def _settings_for(self, name: str) -> LLMProviderConfig:
        """Return the usable settings block for *name* or raise ``ValueError``."""
        if name not in PROVIDERS:
            raise ValueError(f"Unknown provider '{name}'. Supported providers: {sorted(PROVIDERS)}")
        settings: LLMProviderConfig | None = getattr(self._config, name, None)
        if settings is None:
            configured = [p for p in PROVIDERS if getattr(self._config, p, None) is not None]
            raise ValueError(
                f"Provider '{name}' is not configured (configured: {configured or 'none'}). "
                f"Add an 'llm.{name}' section to config.yaml."
            )
        if not settings.api_key or settings.api_key.startswith("${"):
            raise ValueError(
                f"API key for provider '{name}' is empty. Set llm.{name}.api_key "
                f"or export the environment variable it references."
            )
        if not settings.model:
            raise ValueError(f"No model specified for provider '{name}'.")
        return settings

    def get_provider(self, provider_name: str | None = None) -> BaseLLMProvider:
        name = provider_name or self._config.default_provider
        if name not in self._cache:
            settings = self._settings_for(name)
            self._cache[name] = _load_provider_class(name)(
                api_key=settings.api_key,
                model=settings.model,
                base_url=settings.base_url,
                max_tokens=settings.max_tokens,
                temperature=self._temperature,
            )
            logger.info("Using %s model %s (%s)", name, settings.model, settings.base_url or "default endpoint")
        return self._cache[name]
