"""Dialogue controller: phases, turn-taking, steering and crystallization policy."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from faultline.engine.config.settings import EngineConfig

from .models import Concession, Crux, CrystallizationResult, DialogueTurn, GraphSnapshot
from .types import CIRCLING_MOVES, SUBSTANTIVE_MOVES, DebatePhase, DialogueMove

logger = logging.getLogger(__name__)

SUBSTANTIVE_WINDOW_LIMIT = 10


@dataclass
class ControllerState:
    """Mutable per-run controller state.

    The engine and the event replay fold both drive it through the ``note_*``
    and ``enter_phase`` methods, which is what keeps a replayed state equal
    to the live one.
    """

    phase: DebatePhase = DebatePhase.OPENING
    turns_since_last_crystallization: int = 0
    substantive_moves_in_window: list[DialogueMove] = field(default_factory=list)
    contested_frontier_history: list[int] = field(default_factory=list)
    concessions: list[Concession] = field(default_factory=list)
    circling_detected: bool = False
    turn_count: int = 0
    phase_turns: int = 0
    recent_moves: list[DialogueMove] = field(default_factory=list)
    crux_proposers: list[str] = field(default_factory=list)
    last_speaker: str | None = None
    last_challenged: str | None = None
    phase3_started_at: int | None = None

    def note_turn(self, turn: DialogueTurn, circling_window: int) -> None:
        self.turn_count += 1
        self.phase_turns += 1
        self.turns_since_last_crystallization += 1

        if turn.move in SUBSTANTIVE_MOVES:
            self.substantive_moves_in_window.append(turn.move)
            del self.substantive_moves_in_window[:-SUBSTANTIVE_WINDOW_LIMIT]

        self.recent_moves.append(turn.move)
        del self.recent_moves[:-circling_window]
        self.circling_detected = len(self.recent_moves) >= circling_window and all(
            move in CIRCLING_MOVES for move in self.recent_moves
        )

        if turn.move is DialogueMove.PROPOSE_CRUX and turn.persona_id not in self.crux_proposers:
            self.crux_proposers.append(turn.persona_id)

        if turn.persona_id == self.last_challenged:
            self.last_challenged = None
        if (
            turn.move is DialogueMove.CHALLENGE
            and self.last_speaker is not None
            and self.last_speaker != turn.persona_id
        ):
            self.last_challenged = self.last_speaker
        self.last_speaker = turn.persona_id

    def note_crystallization(
        self, result: CrystallizationResult, graph: GraphSnapshot, turn: DialogueTurn
    ) -> None:
        self.turns_since_last_crystallization = 0
        self.substantive_moves_in_window = []

        if turn.move is not DialogueMove.CHALLENGE:
            return
        speakers = {argument.id: argument.speaker_id for argument in graph.arguments}
        for attack in result.new_attacks:
            source = speakers.get(attack.source_arg_id)
            target = speakers.get(attack.target_arg_id)
            if source == turn.persona_id and target is not None and target != turn.persona_id:
                self.last_challenged = target
                return

    def note_frontier(self, value: int) -> None:
        self.contested_frontier_history.append(value)

    def note_concessions(self, concessions: Sequence[Concession]) -> None:
        self.concessions.extend(concessions)

    def enter_phase(self, phase: DebatePhase, turn_index: int) -> None:
        if phase < self.phase:
            raise ValueError(f"Phase cannot move backwards from {self.phase.name} to {phase.name}")
        self.phase = phase
        self.phase_turns = 0
        self.recent_moves = []
        self.circling_detected = False
        if phase is DebatePhase.CRUX_SEEKING:
            self.phase3_started_at = turn_index


@dataclass(frozen=True)
class PhaseTransition:
    from_phase: DebatePhase
    to_phase: DebatePhase
    reason: str
    forced: bool = False


# Keyed on (phase, contested frontier trend); {other} is the persona being answered.
STEERING_RULES: dict[tuple[DebatePhase, str], str | None] = {
    (DebatePhase.EXCHANGE, "rising"): (
        "Several disagreements are open at once. Pick the one that matters most and press {other} on it."
    ),
    (DebatePhase.EXCHANGE, "flat"): (
        "You and {other} keep trading similar points. What specific evidence or scenario would change your mind?"
    ),
    (DebatePhase.EXCHANGE, "falling"): (
        "Some disagreements have been settled. Is there any part of {other}'s argument you now find compelling?"
    ),
    (DebatePhase.CRUX_SEEKING, "rising"): (
        "The disagreement is still widening. In one sentence, what is the core disagreement between you and {other}?"
    ),
    (DebatePhase.CRUX_SEEKING, "flat"): (
        "In one sentence, what do you think is the core disagreement between you and {other}?"
    ),
    (DebatePhase.CRUX_SEEKING, "falling"): (
        "The open questions are narrowing. Name the single assumption that separates you from {other}."
    ),
    (DebatePhase.RESOLUTION, "rising"): (
        "Do not open new fronts now. Say what you agree with {other} on and what remains unresolved."
    ),
    (DebatePhase.RESOLUTION, "flat"): None,
    (DebatePhase.RESOLUTION, "falling"): None,
}

CRUX_RESPONSE_HINT = (
    '{proposer} thinks the crux is: "{statement}". Do you agree, or is the real disagreement about something else?'
)


class DialogueController:
    """Decides who speaks, how they are steered, when to crystallize and when phases change.

    The controller reads the graph-derived history kept in its state but never
    touches the graph itself.
    """

    def __init__(
        self,
        persona_ids: Sequence[str],
        config: EngineConfig,
        max_turns: int,
        state: ControllerState | None = None,
    ):
        if len(persona_ids) < 2:
            raise ValueError("A debate needs at least two participants")
        self.persona_ids = list(persona_ids)
        self.config = config
        self.max_turns = max_turns
        self.state = state or ControllerState()

    def next_speaker(self, transcript: Sequence[DialogueTurn]) -> str:
        if self.state.phase is DebatePhase.OPENING:
            opened = {t.persona_id for t in transcript if t.phase is DebatePhase.OPENING}
            for persona_id in self.persona_ids:
                if persona_id not in opened:
                    return persona_id

        if not transcript:
            return self.persona_ids[0]

        last_speaker = transcript[-1].persona_id
        challenged = self.state.last_challenged
        if challenged in self.persona_ids and challenged != last_speaker:
            return challenged

        if last_speaker not in self.persona_ids:
            return self.persona_ids[0]
        return self.persona_ids[(self.persona_ids.index(last_speaker) + 1) % len(self.persona_ids)]

    def frontier_trend(self) -> str:
        history = self.state.contested_frontier_history
        if len(history) < 2 or history[-1] == history[-2]:
            return "flat"
        return "rising" if history[-1] > history[-2] else "falling"

    def steering_hint(self, speaker: str, crux: Crux | None = None) -> str | None:
        phase = self.state.phase
        if phase is DebatePhase.OPENING:
            return None

        other = self._other_persona(speaker)
        if (
            phase is DebatePhase.CRUX_SEEKING
            and crux is not None
            and speaker not in crux.proposed_by
        ):
            return CRUX_RESPONSE_HINT.format(
                proposer=", ".join(crux.proposed_by), statement=crux.statement[:150]
            )

        template = STEERING_RULES.get((phase, self.frontier_trend()))
        if template is None:
            return None
        return template.format(other=other)

    def should_crystallize(self, turn: DialogueTurn) -> bool:
        if turn.move is not DialogueMove.CLARIFY:
            return True
        return self.state.turns_since_last_crystallization > self.config.crystallization_window

    def next_transition(self, transcript: Sequence[DialogueTurn]) -> PhaseTransition | None:
        state = self.state
        phase = state.phase

        if phase is DebatePhase.OPENING:
            opened = {t.persona_id for t in transcript if t.phase is DebatePhase.OPENING}
            if opened >= set(self.persona_ids):
                return PhaseTransition(phase, DebatePhase.EXCHANGE, "Every participant has given an opening statement")

        elif phase is DebatePhase.EXCHANGE:
            stable_turns = self.config.frontier_stable_turns
            history = state.contested_frontier_history[-(stable_turns + 1):]
            if (
                state.phase_turns >= stable_turns
                and len(history) == stable_turns + 1
                and all(later <= earlier for earlier, later in zip(history, history[1:]))
            ):
                return PhaseTransition(
                    phase,
                    DebatePhase.CRUX_SEEKING,
                    f"Contested frontier non-increasing for {stable_turns} turns",
                )
            if state.circling_detected:
                return PhaseTransition(
                    phase, DebatePhase.CRUX_SEEKING, "Dialogue is circling on reframes and clarifications"
                )
            if state.turn_count / self.max_turns > self.config.phase3_budget_fraction:
                return PhaseTransition(
                    phase,
                    DebatePhase.CRUX_SEEKING,
                    f"Turn budget more than {int(self.config.phase3_budget_fraction * 100)}% consumed",
                )

        elif phase is DebatePhase.CRUX_SEEKING:
            if set(state.crux_proposers) >= set(self.persona_ids):
                return PhaseTransition(
                    phase, DebatePhase.RESOLUTION, "Crux proposed and acknowledged by every participant"
                )
            if state.phase_turns >= self.config.crux_turn_budget:
                return PhaseTransition(phase, DebatePhase.RESOLUTION, "Crux-seeking turn budget exhausted")
            if state.circling_detected:
                return PhaseTransition(
                    phase,
                    DebatePhase.RESOLUTION,
                    "Crux seeking is circling; forcing resolution",
                    forced=True,
                )

        return None

    def _other_persona(self, speaker: str) -> str:
        others = [p for p in self.persona_ids if p != speaker]
        if not others:
            return speaker
        if self.state.last_speaker in others:
            return self.state.last_speaker
        return others[0]
