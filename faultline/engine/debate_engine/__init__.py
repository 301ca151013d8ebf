"""Dialectical debate orchestration: graph, semantics, controller and event stream."""

from .engine import DebateEngine
from .events import DebateEvent, ReplayedDebate, replay_events
from .exceptions import (
    DebateCancelled,
    DebateEngineError,
    GenerationFailure,
    InvariantViolation,
    MalformedCrystallization,
    TurnGenerationError,
)
from .graph import ArgumentGraph
from .models import (
    Argument,
    Attack,
    Camp,
    Concession,
    Crux,
    CrystallizationResult,
    DebateEngineOutput,
    DialogueTurn,
    GraphSnapshot,
)
from .types import ConcessionType, DebatePhase, DialogueMove, EventType, Label, Regime, RunStatus

__all__ = [
    "DebateEngine",
    "DebateEvent",
    "ReplayedDebate",
    "replay_events",
    "DebateCancelled",
    "DebateEngineError",
    "GenerationFailure",
    "InvariantViolation",
    "MalformedCrystallization",
    "TurnGenerationError",
    "ArgumentGraph",
    "Argument",
    "Attack",
    "Camp",
    "Concession",
    "Crux",
    "CrystallizationResult",
    "DebateEngineOutput",
    "DialogueTurn",
    "GraphSnapshot",
    "ConcessionType",
    "DebatePhase",
    "DialogueMove",
    "EventType",
    "Label",
    "Regime",
    "RunStatus",
]
