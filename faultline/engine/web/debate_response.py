from typing import Any

from pydantic import BaseModel

from faultline.engine.config.settings import ModelConfig


class DebateResponse(BaseModel):
    """Response model for debate information."""

    id: str
    topic: str
    status: str
    phase: int
    turn_count: int
    max_turns: int
    event_count: int
    participants: dict[str, ModelConfig] | None = None
    regime: str | None = None
    error: str | None = None


class DebateStateResponse(BaseModel):
    """Debate state rebuilt by replaying the recorded event stream."""

    id: str
    last_sequence: int
    status: str
    phase: int
    turn_count: int
    transcript: list[dict[str, Any]]
    graph: dict[str, Any]
    contested_frontier_history: list[int]
    concessions: list[dict[str, Any]]
    crux: dict[str, Any] | None = None
    malformed_crystallizations: int = 0
    error: str | None = None
