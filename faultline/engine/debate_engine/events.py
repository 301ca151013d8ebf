"""Tagged debate events and the replay fold that rebuilds run state from them."""

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from faultline.engine.config.settings import EngineConfig

from .controller import ControllerState
from .graph import ArgumentGraph
from .models import (
    Concession,
    Crux,
    CrystallizationResult,
    DebateEngineOutput,
    DialogueTurn,
    from_jsonable,
)
from .types import DebatePhase, EventType, RunStatus

logger = logging.getLogger(__name__)


class DebateEvent(BaseModel):
    """One entry of the ordered event stream of a debate run."""

    sequence: int
    type: EventType
    data: dict[str, Any] = Field(default_factory=dict)

    def to_sse(self) -> str:
        """Format as a Server-Sent Events frame."""
        payload = json.dumps({"sequence": self.sequence, **self.data})
        return f"id: {self.sequence}\nevent: {self.type.value}\ndata: {payload}\n\n"


@dataclass
class ReplayedDebate:
    """Run state reconstructed purely from events."""

    topic: str = ""
    persona_ids: list[str] = field(default_factory=list)
    max_turns: int = 0
    engine_config: EngineConfig = field(default_factory=EngineConfig)
    transcript: list[DialogueTurn] = field(default_factory=list)
    graph: ArgumentGraph = field(default_factory=ArgumentGraph)
    state: ControllerState = field(default_factory=ControllerState)
    crux: Crux | None = None
    status: RunStatus = RunStatus.RUNNING
    error: str | None = None
    malformed_crystallizations: int = 0
    last_convergence: dict[str, Any] | None = None
    output: DebateEngineOutput | None = None
    last_sequence: int = -1

    def apply(self, event: DebateEvent) -> None:
        """Fold one event into the state. Events already seen are ignored."""
        if event.sequence <= self.last_sequence:
            return
        self.last_sequence = event.sequence
        data = event.data

        match event.type:
            case EventType.ENGINE_START:
                self.topic = data["topic"]
                self.persona_ids = list(data["persona_ids"])
                self.max_turns = data["max_turns"]
                self.engine_config = EngineConfig.model_validate(data.get("engine_config", {}))
            case EventType.PHASE_TRANSITION:
                self.state.enter_phase(DebatePhase(data["to_phase"]), data["turn_index"])
            case EventType.DIALOGUE_TURN:
                turn = from_jsonable(DialogueTurn, data["turn"])
                self.transcript.append(turn)
                self.state.note_turn(turn, self.engine_config.circling_window)
            case EventType.CRYSTALLIZATION:
                result = from_jsonable(CrystallizationResult, data["result"])
                self.graph.apply_diff(result)
                self.graph.invariant_violations += data.get("dropped_attacks", 0)
                if data.get("malformed"):
                    self.malformed_crystallizations += 1
                if self.transcript:
                    self.state.note_crystallization(result, self.graph.snapshot(), self.transcript[-1])
            case EventType.GRAPH_UPDATED:
                self.state.note_frontier(data["contested_frontier"])
            case EventType.CONCESSION:
                self.state.note_concessions([from_jsonable(Concession, data["concession"])])
            case EventType.CRUX_PROPOSED:
                self.crux = Crux(
                    proposed_by=list(data["proposed_by"]),
                    statement=data["statement"],
                    assumptions=list(data["assumptions"]),
                    acknowledged=data["acknowledged"],
                )
            case EventType.CONVERGENCE_CHECK:
                self.last_convergence = dict(data)
            case EventType.ENGINE_COMPLETE:
                self.status = RunStatus.COMPLETE
                self.output = from_jsonable(DebateEngineOutput, data["output"])
            case EventType.ENGINE_ERROR:
                self.status = RunStatus.ERROR
                self.error = data["message"]
                if data.get("output") is not None:
                    self.output = from_jsonable(DebateEngineOutput, data["output"])
            case EventType.PHASE_START | EventType.STEERING:
                pass


def replay_events(events: Iterable[DebateEvent | dict[str, Any]]) -> ReplayedDebate:
    """Fold an ordered event sequence (models or their JSON dicts) into run state."""
    replayed = ReplayedDebate()
    for event in events:
        if not isinstance(event, DebateEvent):
            event = DebateEvent.model_validate(event)
        replayed.apply(event)
    logger.debug(
        f"Replayed {replayed.last_sequence + 1} events: {len(replayed.transcript)} turns, "
        f"{len(replayed.graph)} arguments, phase {replayed.state.phase.name}"
    )
    return replayed
