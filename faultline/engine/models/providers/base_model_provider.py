from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from faultline.engine.config.settings import ModelConfig, SystemConfig


@dataclass
class GenerationMetadata:
    """A generated completion plus the accounting the provider reported."""

    content: str
    generation_id: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    generation_time_ms: int | None = None
    model: str | None = None
    provider: str | None = None


class BaseModelProvider(ABC):
    """Abstract base class for model providers."""

    def __init__(self, system_config: "SystemConfig"):
        self.system_config = system_config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of this provider."""
        pass

    @abstractmethod
    async def get_available_models(self) -> list[str]:
        """Get list of available models from this provider."""
        pass

    @abstractmethod
    async def generate_response_with_metadata(
        self, model_config: "ModelConfig", messages: list[dict[str, str]], **overrides
    ) -> GenerationMetadata:
        """Generate a response and report token usage."""
        pass

    @abstractmethod
    def validate_model_config(self, model_config: "ModelConfig") -> bool:
        """Validate that a model configuration is compatible with this provider."""
        pass
