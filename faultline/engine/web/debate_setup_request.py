from pydantic import BaseModel, Field, field_validator

from faultline.engine.config.settings import EngineConfig, ModelConfig


class DebateSetupRequest(BaseModel):
    """Request model for creating a new debate."""

    topic: str
    participants: dict[str, ModelConfig]
    crystallizer: ModelConfig | None = None
    max_turns: int = Field(default=30, ge=1)
    engine: EngineConfig | None = None

    @field_validator("topic")
    @classmethod
    def validate_topic(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Topic must not be empty")
        return v.strip()

    @field_validator("participants")
    @classmethod
    def validate_participants(cls, v: dict[str, ModelConfig]) -> dict[str, ModelConfig]:
        """A debate needs at least two distinct personas."""
        if len(v) < 2:
            raise ValueError("At least two participants are required")
        return v
