"""Model manager routing persona and crystallizer calls to their providers."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TypeAlias

from faultline.engine.config.settings import ModelConfig, SystemConfig

from .providers.base_model_provider import BaseModelProvider, GenerationMetadata
from .providers.providers import ProviderFactory

MessageList: TypeAlias = list[dict[str, str]]
ModelCatalog: TypeAlias = dict[str, list[str]]

logger = logging.getLogger(__name__)


@dataclass
class ModelUsage:
    """Running totals for one registered model id."""

    calls: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0


class ModelManager:
    """Holds the registered model ids of a run and the providers serving them.

    Providers are created lazily, one per provider name, and shared by every
    model id registered against them.
    """

    def __init__(self, system_config: SystemConfig):
        self._system_config = system_config
        self._model_configs: dict[str, ModelConfig] = {}
        self._providers: dict[str, BaseModelProvider] = {}
        self._usage: dict[str, ModelUsage] = {}

    def _provider_for(self, provider_name: str) -> BaseModelProvider:
        provider = self._providers.get(provider_name)
        if provider is None:
            provider = ProviderFactory.create_provider(provider_name, self._system_config)
            self._providers[provider_name] = provider
        return provider

    def register_model(self, model_id: str, config: ModelConfig) -> None:
        """Bind a persona id (or the crystallizer id) to a model configuration."""
        provider = self._provider_for(config.provider)
        if not provider.validate_model_config(config):
            logger.error("Rejected model %s: %s is not a %s model", model_id, config.name, config.provider)
            raise ValueError(f"Model '{config.name}' is not valid for provider {config.provider}")

        self._model_configs[model_id] = config
        self._usage.setdefault(model_id, ModelUsage())
        logger.info("Registered %s -> %s (%s)", model_id, config.name, config.provider)

    def get_model_config(self, model_id: str) -> ModelConfig:
        try:
            return self._model_configs[model_id]
        except KeyError:
            raise ValueError(f"Model {model_id} not registered") from None

    @property
    def usage(self) -> dict[str, ModelUsage]:
        return dict(self._usage)

    async def generate_response_with_metadata(
        self, model_id: str, messages: MessageList, **overrides: object
    ) -> GenerationMetadata:
        config = self.get_model_config(model_id)
        provider = self._provider_for(config.provider)

        metadata = await provider.generate_response_with_metadata(config, messages, **overrides)

        usage = self._usage[model_id]
        usage.calls += 1
        usage.prompt_tokens += metadata.prompt_tokens or 0
        usage.completion_tokens += metadata.completion_tokens or 0
        logger.debug(
            "%s answered with %d chars (tokens in/out %s/%s)",
            model_id,
            len(metadata.content),
            metadata.prompt_tokens,
            metadata.completion_tokens,
        )
        return metadata

    @asynccontextmanager
    async def model_session(self, model_id: str) -> AsyncIterator[ModelManager]:
        self.get_model_config(model_id)
        logger.debug("Opening session for %s", model_id)
        try:
            yield self
        finally:
            logger.debug("Closed session for %s", model_id)

    async def get_available_models(self) -> ModelCatalog:
        """Model names per provider; an unreachable provider lists none."""
        catalog: ModelCatalog = {}
        for provider_name in ProviderFactory.get_available_providers():
            try:
                catalog[provider_name] = await self._provider_for(provider_name).get_available_models()
            except Exception as exc:  # noqa: BLE001
                logger.error("Could not list %s models: %s", provider_name, exc)
                catalog[provider_name] = []
        return catalog
