"""Contracts for the external natural-language capabilities.

The engine never writes prose or reads meaning out of prose itself. It asks a
``TurnGenerator`` for the next utterance and a ``CrystallizationExtractor``
for the graph diff an utterance implies.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

from .models import DialogueTurn, GraphSnapshot, TokenUsage
from .types import DebatePhase, DialogueMove


@dataclass(frozen=True)
class TurnRequest:
    """Everything a turn generator is given to produce one turn."""

    topic: str
    phase: DebatePhase
    transcript: tuple[DialogueTurn, ...]
    speaker_id: str
    steering_hint: str | None
    graph_summary: str
    persona_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class GeneratedTurn:
    """Structured result of a turn generation call."""

    dialogue: str
    move: DialogueMove
    concession_markers: tuple[str, ...] = ()
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class CrystallizationRequest:
    """The newest turn, the turns batched with it, and the current graph."""

    topic: str
    turn: DialogueTurn
    pending_turns: tuple[DialogueTurn, ...]
    graph: GraphSnapshot
    persona_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExtractedDiff:
    """Raw extraction payload; validated by the crystallizer, not here."""

    payload: Any
    usage: TokenUsage = field(default_factory=TokenUsage)


class TurnGenerator(Protocol):
    async def generate_turn(self, request: TurnRequest) -> GeneratedTurn: ...


class CrystallizationExtractor(Protocol):
    async def extract(self, request: CrystallizationRequest) -> ExtractedDiff: ...
