"""Shared types and enums for the debate engine."""

from collections.abc import Awaitable, Callable
from enum import Enum, IntEnum
from typing import Any, TypeAlias, TypedDict


class DebatePhase(IntEnum):
    """Phases of a dialectical debate, in the only order they may occur."""

    OPENING = 1
    EXCHANGE = 2
    CRUX_SEEKING = 3
    RESOLUTION = 4


class RunStatus(Enum):
    """Lifecycle status of a single debate run."""

    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


class DialogueMove(Enum):
    """Dialogue move attached to every turn."""

    CLAIM = "CLAIM"
    CHALLENGE = "CHALLENGE"
    CLARIFY = "CLARIFY"
    CONCEDE = "CONCEDE"
    REFRAME = "REFRAME"
    PROPOSE_CRUX = "PROPOSE_CRUX"


SUBSTANTIVE_MOVES = frozenset(
    {
        DialogueMove.CLAIM,
        DialogueMove.CHALLENGE,
        DialogueMove.CONCEDE,
        DialogueMove.REFRAME,
        DialogueMove.PROPOSE_CRUX,
    }
)
CIRCLING_MOVES = frozenset({DialogueMove.REFRAME, DialogueMove.CLARIFY})


class Label(Enum):
    """Grounded labelling of an argument."""

    IN = "IN"
    OUT = "OUT"
    UNDEC = "UNDEC"


class ConcessionType(Enum):
    """Kinds of concession recognised from crystallization diffs."""

    FULL = "full"
    PARTIAL = "partial"
    SCOPE_NARROWING = "scope_narrowing"


class Regime(Enum):
    """Final qualitative classification of a debate."""

    CONSENSUS = "consensus"
    POLARIZED = "polarized"
    PARTIAL = "partial"


class EventType(Enum):
    """Tags of the debate event stream."""

    ENGINE_START = "engine_start"
    PHASE_START = "phase_start"
    PHASE_TRANSITION = "phase_transition"
    DIALOGUE_TURN = "dialogue_turn"
    STEERING = "steering"
    CRYSTALLIZATION = "crystallization"
    GRAPH_UPDATED = "graph_updated"
    CONCESSION = "concession"
    CRUX_PROPOSED = "crux_proposed"
    CONVERGENCE_CHECK = "convergence_check"
    ENGINE_COMPLETE = "engine_complete"
    ENGINE_ERROR = "engine_error"


class EngineStartEventData(TypedDict):
    """Data structure for engine_start events."""

    topic: str
    persona_ids: list[str]
    max_turns: int
    engine_config: dict[str, Any]


class PhaseTransitionEventData(TypedDict):
    """Data structure for phase_transition events."""

    from_phase: int
    to_phase: int
    reason: str
    forced: bool
    turn_index: int


class SteeringEventData(TypedDict):
    """Data structure for steering events."""

    hint: str
    target_persona_id: str
    turn_index: int


class GraphUpdatedEventData(TypedDict):
    """Data structure for graph_updated events."""

    turn_index: int
    in_count: int
    out_count: int
    undec_count: int
    preferred_count: int
    contested_frontier: int


class CruxProposedEventData(TypedDict):
    """Data structure for crux_proposed events."""

    persona_id: str
    statement: str
    proposed_by: list[str]
    assumptions: list[str]
    acknowledged: bool


class ConvergenceCheckEventData(TypedDict):
    """Data structure for convergence_check events."""

    turn_index: int
    converged: bool
    reason: str | None


# Callback type alias for debate engine events
DebateEventCallback: TypeAlias = Callable[[str, dict[str, Any]], Awaitable[None]]
