import logging
import time
from typing import TYPE_CHECKING, Any

import httpx
from openai import AsyncOpenAI

from .base_model_provider import BaseModelProvider, GenerationMetadata

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletion

    from faultline.engine.config.settings import ModelConfig, SystemConfig

logger = logging.getLogger(__name__)


class OllamaProvider(BaseModelProvider):
    """Ollama model provider using its OpenAI-compatible endpoint."""

    def __init__(self, system_config: "SystemConfig"):
        super().__init__(system_config)
        self._async_client = AsyncOpenAI(
            base_url=f"{system_config.ollama_base_url}/v1",
            api_key="ollama",  # Ollama doesn't require real API key
            timeout=system_config.ollama.timeout,
        )
        self._ollama_base_url = system_config.ollama_base_url

    @property
    def provider_name(self) -> str:
        return "ollama"

    async def is_running(self) -> bool:
        """Fast health check to see if Ollama server is running."""
        try:
            async with httpx.AsyncClient(timeout=1.0) as client:
                response = await client.get(f"{self._ollama_base_url}/api/tags")
                response.raise_for_status()
                return True
        except httpx.HTTPError as e:
            logger.debug(f"Ollama health check failed: {e}")
            return False

    async def get_available_models(self) -> list[str]:
        """Get list of available models from Ollama."""
        if not await self.is_running():
            logger.error("Failed to get Ollama models: Connection error.")
            return []

        try:
            models = await self._async_client.models.list()
            return [model.id for model in models.data]
        except Exception as e:
            logger.error(f"Failed to get Ollama models: {e}")
            return []

    async def generate_response_with_metadata(
        self, model_config: "ModelConfig", messages: list[dict[str, str]], **overrides
    ) -> GenerationMetadata:
        """Generate a response using Ollama."""
        params: dict[str, Any] = {
            "model": model_config.name,
            "messages": messages,
            "max_tokens": overrides.get("max_tokens", model_config.max_tokens),
            "temperature": overrides.get("temperature", model_config.temperature),
        }

        # Ollama-specific parameters travel in extra_body
        ollama_config = self.system_config.ollama
        extra_body: dict[str, Any] = {}
        if ollama_config.keep_alive is not None:
            extra_body["keep_alive"] = ollama_config.keep_alive
        if ollama_config.repeat_penalty is not None:
            extra_body["repeat_penalty"] = ollama_config.repeat_penalty
        if ollama_config.num_thread is not None:
            extra_body["num_thread"] = ollama_config.num_thread
        if extra_body:
            params["extra_body"] = extra_body

        start_time = time.time()
        try:
            response: "ChatCompletion" = await self._async_client.chat.completions.create(**params)
        except Exception as e:
            logger.error(f"Ollama generation failed for {model_config.name}: {e}")
            raise

        content = response.choices[0].message.content or ""
        if not content.strip():
            logger.warning(f"Ollama model {model_config.name} returned empty content")
        else:
            logger.debug(f"Generated {len(content)} chars from Ollama model {model_config.name}")

        usage = response.usage
        return GenerationMetadata(
            content=content.strip(),
            generation_id=response.id,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            total_tokens=usage.total_tokens if usage else None,
            generation_time_ms=int((time.time() - start_time) * 1000),
            model=model_config.name,
            provider="ollama",
        )

    def validate_model_config(self, model_config: "ModelConfig") -> bool:
        """Validate Ollama model configuration."""
        return model_config.provider == "ollama"
