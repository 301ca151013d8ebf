"""Configuration settings and data models."""

import json
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

VALID_PROVIDERS = {"ollama", "openrouter"}


class ModelConfig(BaseModel):
    """Configuration for a model backing a debate persona or the crystallizer."""

    name: str = Field(..., description="Model name (e.g., 'llama3.2:3b' for Ollama, 'openai/gpt-4' for OpenRouter)")
    provider: str = Field(default="ollama", description="Model provider (ollama, openrouter)")
    personality: str = Field(default="neutral", description="Persona voice injected into the system prompt")
    max_tokens: int = Field(default=400, description="Maximum tokens per response")
    temperature: float = Field(default=0.7, description="Model temperature")

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in VALID_PROVIDERS:
            raise ValueError(f"Provider must be one of: {VALID_PROVIDERS}")
        return v


class DebateConfig(BaseModel):
    """Main debate configuration."""

    topic: str = Field(..., description="Debate topic")
    max_turns: int = Field(default=30, ge=1, description="Global dialogue turn budget")


class EngineConfig(BaseModel):
    """Tunables for the dialogue controller and semantics search."""

    crystallization_window: int = Field(
        default=3, ge=1, description="Uncrystallized turns tolerated before a forced crystallization"
    )
    frontier_stable_turns: int = Field(
        default=3, ge=1, description="Consecutive non-increasing contested frontier turns that end the exchange phase"
    )
    circling_window: int = Field(
        default=4, ge=2, description="Turns inspected when looking for REFRAME/CLARIFY-only circling"
    )
    crux_turn_budget: int = Field(
        default=6, ge=1, description="Turns allowed for crux seeking before resolution is forced"
    )
    convergence_window: int = Field(
        default=4, ge=1, description="Recent turns (K) inspected by the convergence detector"
    )
    phase3_budget_fraction: float = Field(
        default=0.6, gt=0.0, le=1.0, description="Share of max_turns after which crux seeking starts regardless"
    )
    transcript_window: int = Field(
        default=8, ge=1, description="Recent turns quoted back to the turn generator"
    )
    max_extension_search_nodes: int = Field(
        default=50_000, ge=1, description="Node budget of the exact preferred-extension search"
    )


class OllamaConfig(BaseModel):
    """Ollama-specific configuration."""

    keep_alive: str | None = Field(
        default="5m", description="How long to keep models loaded (e.g., '5m', '1h', '0' for immediate unload)"
    )
    repeat_penalty: float | None = Field(
        default=1.1, description="Penalty for repetition in responses"
    )
    num_thread: int | None = Field(
        default=None, description="Number of CPU threads for processing"
    )
    timeout: float = Field(
        default=120.0, description="Request timeout in seconds, including model load time"
    )


class OpenRouterConfig(BaseModel):
    """OpenRouter-specific configuration."""

    api_key: str | None = Field(
        default=None, description="OpenRouter API key (can also be set via OPENROUTER_API_KEY env var)"
    )
    base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="OpenRouter API base URL"
    )
    site_url: str | None = Field(
        default=None, description="Your site URL for OpenRouter referrer tracking"
    )
    app_name: str | None = Field(
        default="Faultline Debate Engine", description="App name for OpenRouter tracking"
    )
    max_retries: int = Field(
        default=3, description="Maximum number of API call retries"
    )
    timeout: int = Field(
        default=60, description="API request timeout in seconds"
    )


class SystemConfig(BaseModel):
    """System-wide configuration."""

    ollama_base_url: str = Field(
        default="http://localhost:11434", description="Ollama API URL"
    )
    ollama: OllamaConfig = Field(
        default_factory=OllamaConfig, description="Ollama-specific settings"
    )
    openrouter: OpenRouterConfig = Field(
        default_factory=OpenRouterConfig, description="OpenRouter-specific settings"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


class AppConfig(BaseModel):
    """Complete application configuration."""

    debate: DebateConfig
    participants: dict[str, ModelConfig]
    crystallizer: ModelConfig
    engine: EngineConfig = Field(default_factory=EngineConfig)
    system: SystemConfig = Field(default_factory=SystemConfig)

    @model_validator(mode="after")
    def validate_participants(self) -> "AppConfig":
        if len(self.participants) < 2:
            raise ValueError("A debate needs at least two participants")
        return self

    @property
    def persona_ids(self) -> list[str]:
        return list(self.participants.keys())

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from a JSON or YAML file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.suffix in (".yaml", ".yml"):
                data: dict[str, Any] = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        # Validate required sections
        required_sections = ["debate", "participants", "crystallizer"]
        missing_sections = [
            section for section in required_sections if section not in data
        ]
        if missing_sections:
            raise ValueError(f"Missing required config sections: {missing_sections}")

        if not data.get("participants") or len(data["participants"]) < 2:
            raise ValueError(
                "Config must include at least two personas in 'participants' section"
            )

        return cls(**data)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )


def get_default_config() -> AppConfig:
    """Load default configuration from debate_config.json, creating it if needed."""
    config_path = Path("debate_config.json")
    if not config_path.exists():
        template_config = get_template_config()
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(template_config.model_dump(), f, indent=2)
    return AppConfig.load_from_file(config_path)


def get_template_config() -> AppConfig:
    """Get template configuration for config file generation."""
    return AppConfig(
        debate=DebateConfig(
            topic="Should central banks issue retail digital currencies?",
            max_turns=30,
        ),
        participants={
            "skeptic": ModelConfig(
                name="qwen2.5:7b",
                provider="ollama",
                personality="a cautious empiricist who demands evidence before accepting new claims",
                max_tokens=400,
                temperature=0.7,
            ),
            "advocate": ModelConfig(
                name="openai/gpt-4o-mini",
                provider="openrouter",
                personality="an optimistic technologist who argues from first principles",
                max_tokens=400,
                temperature=0.8,
            ),
        },
        crystallizer=ModelConfig(
            name="openai/gpt-4o-mini",
            provider="openrouter",
            personality="neutral",
            max_tokens=2000,
            temperature=0.2,
        ),
        engine=EngineConfig(),
        system=SystemConfig(
            ollama_base_url="http://localhost:11434",
            ollama=OllamaConfig(keep_alive="5m", repeat_penalty=1.1),
            openrouter=OpenRouterConfig(
                api_key=None,  # Set your OpenRouter API key here or use OPENROUTER_API_KEY env var
                base_url="https://openrouter.ai/api/v1",
                site_url=None,
                app_name="Faultline Debate Engine",
                max_retries=3,
                timeout=60,
            ),
            log_level="INFO",
        ),
    )
