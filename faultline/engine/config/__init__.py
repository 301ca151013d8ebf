"""Configuration package."""

from .settings import (
    AppConfig,
    DebateConfig,
    EngineConfig,
    ModelConfig,
    SystemConfig,
    get_default_config,
    get_template_config,
)

__all__ = [
    "AppConfig",
    "DebateConfig",
    "EngineConfig",
    "ModelConfig",
    "SystemConfig",
    "get_default_config",
    "get_template_config",
]
