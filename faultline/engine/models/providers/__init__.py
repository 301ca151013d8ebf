"""Model providers package."""

from .base_model_provider import BaseModelProvider, GenerationMetadata
from .ollama_provider import OllamaProvider
from .open_router_provider import OpenRouterProvider
from .providers import ProviderFactory

__all__ = [
    "ProviderFactory",
    "OllamaProvider",
    "OpenRouterProvider",
    "BaseModelProvider",
    "GenerationMetadata",
]
