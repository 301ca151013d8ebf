import asyncio
import logging
import os
import time
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from .base_model_provider import BaseModelProvider, GenerationMetadata

if TYPE_CHECKING:
    from faultline.engine.config.settings import ModelConfig, SystemConfig

logger = logging.getLogger(__name__)


class OpenRouterProvider(BaseModelProvider):
    """OpenRouter model provider implementation."""

    # Class-level rate limiting to prevent 429 errors
    _last_request_time: ClassVar[float | None] = None
    _request_lock: ClassVar[asyncio.Lock] = asyncio.Lock()
    _min_request_interval: ClassVar[float] = 1.0

    def __init__(self, system_config: "SystemConfig"):
        super().__init__(system_config)
        self._api_key = system_config.openrouter.api_key or os.getenv("OPENROUTER_API_KEY")
        if not self._api_key:
            logger.warning(
                "No OpenRouter API key found. Set OPENROUTER_API_KEY or configure in system settings."
            )

    @property
    def provider_name(self) -> str:
        return "openrouter"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self.system_config.openrouter.site_url:
            headers["HTTP-Referer"] = self.system_config.openrouter.site_url
        if self.system_config.openrouter.app_name:
            headers["X-Title"] = self.system_config.openrouter.app_name
        return headers

    async def _rate_limit_request(self) -> None:
        """Ensure minimum time between requests to avoid 429 errors."""
        async with self._request_lock:
            current_time = time.time()

            if self._last_request_time is not None:
                time_since_last = current_time - self._last_request_time
                if time_since_last < self._min_request_interval:
                    sleep_time = self._min_request_interval - time_since_last
                    logger.debug(
                        f"Rate limiting: waiting {sleep_time:.2f}s before next OpenRouter request"
                    )
                    await asyncio.sleep(sleep_time)

            OpenRouterProvider._last_request_time = time.time()

    async def get_available_models(self) -> list[str]:
        """Get the model ids OpenRouter currently serves."""
        if not self._api_key:
            logger.warning("OpenRouter client not initialized - no API key")
            return []

        await self._rate_limit_request()
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{self.system_config.openrouter.base_url}/models",
                    headers=self._headers(),
                    timeout=30.0,
                )
                response.raise_for_status()
                data = response.json().get("data", [])
        except httpx.HTTPError as e:
            logger.error(f"Failed to get OpenRouter models: {e}")
            return []

        return [model["id"] for model in data if "id" in model]

    async def generate_response_with_metadata(
        self, model_config: "ModelConfig", messages: list[dict[str, str]], **overrides
    ) -> GenerationMetadata:
        """Generate response with full metadata including token usage."""
        if not self._api_key:
            raise RuntimeError("OpenRouter client not initialized - check API key")

        payload: dict[str, Any] = {
            "model": model_config.name,
            "messages": messages,
            "max_tokens": overrides.get("max_tokens", model_config.max_tokens),
            "temperature": overrides.get("temperature", model_config.temperature),
            "reasoning": {"exclude": True},
        }

        settings = self.system_config.openrouter
        last_error: Exception | None = None
        for attempt in range(settings.max_retries + 1):
            await self._rate_limit_request()
            start_time = time.time()
            try:
                async with httpx.AsyncClient() as client:
                    http_response = await client.post(
                        f"{settings.base_url}/chat/completions",
                        json=payload,
                        headers=self._headers(),
                        timeout=settings.timeout,
                    )
                    http_response.raise_for_status()
                    response_data: dict[str, Any] = http_response.json()
                break
            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code != 429 and e.response.status_code < 500:
                    logger.error(f"OpenRouter generation failed for {model_config.name}: {e}")
                    raise
                logger.warning(
                    f"OpenRouter attempt {attempt + 1}/{settings.max_retries + 1} "
                    f"for {model_config.name} failed: {e}"
                )
            except httpx.TransportError as e:
                last_error = e
                logger.warning(
                    f"OpenRouter attempt {attempt + 1}/{settings.max_retries + 1} "
                    f"for {model_config.name} failed: {e}"
                )
        else:
            logger.error(f"OpenRouter generation failed for {model_config.name}: {last_error}")
            raise RuntimeError(
                f"OpenRouter generation failed after {settings.max_retries + 1} attempts"
            ) from last_error

        generation_time_ms = int((time.time() - start_time) * 1000)
        content = response_data["choices"][0]["message"]["content"] or ""
        usage = response_data.get("usage") or {}

        if not content.strip():
            logger.warning(
                f"OpenRouter model {model_config.name} returned empty content. "
                f"Response data: {response_data}"
            )
        else:
            logger.debug(
                f"Generated {len(content)} chars from OpenRouter {model_config.name}, "
                f"generation_id: {response_data.get('id')}, tokens: {usage.get('total_tokens')}"
            )

        return GenerationMetadata(
            content=content.strip(),
            generation_id=response_data.get("id"),
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
            generation_time_ms=generation_time_ms,
            model=model_config.name,
            provider="openrouter",
        )

    def validate_model_config(self, model_config: "ModelConfig") -> bool:
        """Validate OpenRouter model configuration."""
        return model_config.provider == "openrouter"
