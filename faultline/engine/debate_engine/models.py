"""Data models for the debate engine."""

from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Annotated, Any

from pydantic import PlainSerializer, TypeAdapter

from .types import (
    ConcessionType,
    DebatePhase,
    DialogueMove,
    Regime,
    RunStatus,
)

# JSON output lists set members sorted so payloads do not depend on hash order
AssumptionSet = Annotated[
    frozenset[str],
    PlainSerializer(lambda members: sorted(members), return_type=list[str], when_used="json"),
]


@dataclass(frozen=True)
class Argument:
    """A claim plus its supporting assumptions, attributed to one speaker."""

    id: str
    speaker_id: str
    claim: str
    assumptions: AssumptionSet = frozenset()
    created_at_turn: int = 0


@dataclass(frozen=True)
class Attack:
    """Directed edge: the source argument undermines the target argument."""

    id: str
    source_arg_id: str
    target_arg_id: str


@dataclass(frozen=True)
class ArgumentUpdate:
    """In-place edit of an argument's claim and/or assumptions."""

    id: str
    claim: str | None = None
    assumptions: AssumptionSet | None = None


@dataclass(frozen=True)
class CrystallizationResult:
    """Graph diff produced from one or more dialogue turns."""

    new_args: tuple[Argument, ...] = ()
    updated_args: tuple[ArgumentUpdate, ...] = ()
    removed_arg_ids: tuple[str, ...] = ()
    new_attacks: tuple[Attack, ...] = ()
    removed_attack_ids: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not (
            self.new_args
            or self.updated_args
            or self.removed_arg_ids
            or self.new_attacks
            or self.removed_attack_ids
        )


@dataclass(frozen=True)
class GraphSnapshot:
    """Immutable view of the argumentation graph.

    Arguments are kept in insertion order; semantics code indexes into this
    tuple rather than walking object references.
    """

    arguments: tuple[Argument, ...] = ()
    attacks: tuple[Attack, ...] = ()

    def argument_ids(self) -> list[str]:
        return [argument.id for argument in self.arguments]

    def argument_map(self) -> dict[str, Argument]:
        return {argument.id: argument for argument in self.arguments}

    def get_argument(self, arg_id: str) -> Argument | None:
        for argument in self.arguments:
            if argument.id == arg_id:
                return argument
        return None

    def speaker_of(self, arg_id: str) -> str | None:
        argument = self.get_argument(arg_id)
        return argument.speaker_id if argument else None


@dataclass(frozen=True)
class DialogueTurn:
    """A single transcript entry. Never mutated after creation."""

    turn_index: int
    phase: DebatePhase
    persona_id: str
    dialogue: str
    move: DialogueMove
    steering_hint: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    concession_markers: tuple[str, ...] = ()


@dataclass(frozen=True)
class Concession:
    """A recorded concession and the graph change that evidences it."""

    turn_index: int
    persona_id: str
    type: ConcessionType
    conceded_claim: str
    effect: str
    removed_arg_ids: tuple[str, ...] = ()
    updated_arg_ids: tuple[str, ...] = ()


@dataclass
class Crux:
    """The named root disagreement; at most one per run."""

    proposed_by: list[str]
    statement: str
    assumptions: list[str] = field(default_factory=list)
    acknowledged: bool = False


@dataclass(frozen=True)
class Camp:
    """Speakers grouped around one preferred extension."""

    extension_index: int
    argument_ids: tuple[str, ...]
    persona_ids: tuple[str, ...]
    argument_counts: dict[str, int] = field(default_factory=dict)


@dataclass
class TokenUsage:
    """Token accounting across every capability call of a run."""

    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, other: "TokenUsage | None") -> None:
        if other is None:
            return
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens


@dataclass
class DebateEngineOutput:
    """Final (or partial, on error) product of a debate run."""

    topic: str
    persona_ids: list[str]
    transcript: list[DialogueTurn]
    graph: GraphSnapshot
    crux: Crux | None
    common_ground: list[str]
    camps: list[Camp]
    concession_trail: list[Concession]
    regime: Regime
    regime_description: str
    token_usage: TokenUsage
    duration: float
    status: RunStatus = RunStatus.COMPLETE
    diagnostics: dict[str, Any] = field(default_factory=dict)


@lru_cache(maxsize=None)
def _adapter(tp: Any) -> TypeAdapter[Any]:
    return TypeAdapter(tp)


def to_jsonable(obj: Any) -> Any:
    """Serialize an engine dataclass into JSON-compatible primitives."""
    return _adapter(type(obj)).dump_python(obj, mode="json")


def from_jsonable(tp: Any, data: Any) -> Any:
    """Rebuild an engine dataclass (or container of them) from primitives."""
    return _adapter(tp).validate_python(data)
