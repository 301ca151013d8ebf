import os
from typing import TYPE_CHECKING, Any

from .base_model_provider import BaseModelProvider
from .ollama_provider import OllamaProvider
from .open_router_provider import OpenRouterProvider

if TYPE_CHECKING:
    from faultline.engine.config.settings import SystemConfig


class ProviderFactory:
    """Registry of the providers personas and the crystallizer can run on."""

    _providers: dict[str, type[BaseModelProvider]] = {
        "ollama": OllamaProvider,
        "openrouter": OpenRouterProvider,
    }

    @classmethod
    def create_provider(
        cls, provider_name: str, system_config: "SystemConfig"
    ) -> BaseModelProvider:
        try:
            provider_class = cls._providers[provider_name]
        except KeyError:
            raise ValueError(
                f"Unknown provider '{provider_name}', expected one of {sorted(cls._providers)}"
            ) from None
        return provider_class(system_config)

    @classmethod
    def get_available_providers(cls) -> list[str]:
        return list(cls._providers)

    @classmethod
    def describe_providers(cls, system_config: "SystemConfig") -> list[dict[str, Any]]:
        """Endpoint and credential status for each provider, without contacting it."""
        openrouter_key = system_config.openrouter.api_key or os.getenv("OPENROUTER_API_KEY")
        described = {
            "ollama": {
                "base_url": system_config.ollama_base_url,
                "requires_api_key": False,
                "configured": True,
            },
            "openrouter": {
                "base_url": system_config.openrouter.base_url,
                "requires_api_key": True,
                "configured": bool(openrouter_key),
            },
        }
        return [{"name": name, **described[name]} for name in cls._providers]
