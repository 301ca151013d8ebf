"""Core debate engine: the per-run turn loop."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Mapping, Sequence
from datetime import datetime
from typing import Any

from faultline.engine.config.settings import AppConfig, EngineConfig

from .capabilities import CrystallizationExtractor, GeneratedTurn, TurnGenerator, TurnRequest
from .concessions import ConcessionTracker
from .controller import ControllerState, DialogueController
from .convergence import ConvergenceDetector
from .crystallizer import Crystallizer
from .events import DebateEvent
from .exceptions import DebateCancelled, GenerationFailure
from .graph import ArgumentGraph
from .models import (
    Concession,
    Crux,
    DebateEngineOutput,
    DialogueTurn,
    TokenUsage,
    to_jsonable,
)
from .prompts import format_graph
from .regime import RegimeClassifier
from .semantics import (
    build_camps,
    contested_frontier,
    crux_assumptions,
    extensions,
    label,
    label_counts,
)
from .types import (
    ConvergenceCheckEventData,
    CruxProposedEventData,
    DebateEventCallback,
    DebatePhase,
    DialogueMove,
    EngineStartEventData,
    EventType,
    GraphUpdatedEventData,
    Label,
    PhaseTransitionEventData,
    RunStatus,
    SteeringEventData,
)

logger = logging.getLogger(__name__)


class DebateEngine:
    """Drives one dialectical debate from opening statements to a regime verdict.

    Every run owns its graph store, controller state and transcript. ``run()``
    is an async generator of ``DebateEvent``s; turns are processed strictly
    one after another and cancellation is only observed between turns.
    """

    def __init__(
        self,
        topic: str,
        persona_ids: Sequence[str],
        turn_generator: TurnGenerator,
        extractor: CrystallizationExtractor,
        config: EngineConfig | None = None,
        max_turns: int = 30,
    ):
        if len(persona_ids) < 2:
            raise ValueError("A debate needs at least two participants")
        if max_turns < 1:
            raise ValueError("max_turns must be positive")

        self.topic = topic
        self.persona_ids = list(persona_ids)
        self.turn_generator = turn_generator
        self.config = config or EngineConfig()
        self.max_turns = max_turns

        self.graph = ArgumentGraph()
        self.state = ControllerState()
        self.controller = DialogueController(self.persona_ids, self.config, max_turns, self.state)
        self.crystallizer = Crystallizer(extractor, topic, self.persona_ids)
        self.concession_tracker = ConcessionTracker()
        self.convergence = ConvergenceDetector(self.config.convergence_window)
        self.regime_classifier = RegimeClassifier()

        self.transcript: list[DialogueTurn] = []
        self.crux: Crux | None = None
        self.status = RunStatus.RUNNING
        self.output: DebateEngineOutput | None = None
        self.events: list[DebateEvent] = []

        self._labels: dict[str, Label] = {}
        self._preferred: list[frozenset[str]] = []
        self._pending: list[DialogueTurn] = []
        self._turn_usage = TokenUsage()
        self._cancel_requested = asyncio.Event()
        self._converged = False
        self._started = False
        self._start_time: float | None = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        turn_generator: TurnGenerator,
        extractor: CrystallizationExtractor,
    ) -> "DebateEngine":
        return cls(
            topic=config.debate.topic,
            persona_ids=config.persona_ids,
            turn_generator=turn_generator,
            extractor=extractor,
            config=config.engine,
            max_turns=config.debate.max_turns,
        )

    def cancel(self) -> None:
        """Request cancellation; honoured before the next turn starts."""
        logger.info(f"Cancellation requested for debate on '{self.topic}'")
        self._cancel_requested.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    async def run(self) -> AsyncIterator[DebateEvent]:
        """Run the debate, yielding events in order."""
        if self._started:
            raise RuntimeError("A DebateEngine instance can only run once")
        self._started = True
        self._start_time = time.time()

        logger.info(
            f"Starting debate on '{self.topic}' with {', '.join(self.persona_ids)} "
            f"(max {self.max_turns} turns)"
        )
        yield self._event(
            EventType.ENGINE_START,
            EngineStartEventData(
                topic=self.topic,
                persona_ids=list(self.persona_ids),
                max_turns=self.max_turns,
                engine_config=self.config.model_dump(),
            ),
        )
        yield self._event(EventType.PHASE_START, {"phase": int(self.state.phase), "turn_index": 0})

        try:
            while not self._converged:
                if self._cancel_requested.is_set():
                    raise DebateCancelled(
                        f"Debate cancelled after {self.state.turn_count} turn(s)"
                    )
                if self.state.turn_count >= self.max_turns:
                    logger.info(f"Turn budget of {self.max_turns} exhausted")
                    break
                async for event in self._play_turn():
                    yield event

            if self._pending:
                for event in await self._crystallize(self._pending[-1]):
                    yield event
        except (GenerationFailure, DebateCancelled) as e:
            self.status = RunStatus.ERROR
            logger.error(f"Debate on '{self.topic}' ended in error: {type(e).__name__}: {e}")
            self.output = self.build_output(error=str(e))
            yield self._event(
                EventType.ENGINE_ERROR,
                {
                    "message": str(e),
                    "error_type": type(e).__name__,
                    "output": to_jsonable(self.output),
                },
            )
            return

        self.status = RunStatus.COMPLETE
        self.output = self.build_output()
        logger.info(
            f"Debate complete after {len(self.transcript)} turns: {self.output.regime.value} "
            f"({self.output.duration:.1f}s)"
        )
        yield self._event(EventType.ENGINE_COMPLETE, {"output": to_jsonable(self.output)})

    async def run_to_completion(
        self, event_callback: DebateEventCallback | None = None
    ) -> DebateEngineOutput:
        """Consume ``run()`` and return the final (or partial) output."""
        async for event in self.run():
            if event_callback:
                await event_callback(event.type.value, event.data)
        if self.output is None:
            raise RuntimeError("Debate run ended without producing an output")
        return self.output

    async def _play_turn(self) -> AsyncIterator[DebateEvent]:
        turn_index = self.state.turn_count + 1
        phase = self.state.phase
        speaker = self.controller.next_speaker(self.transcript)

        hint = self.controller.steering_hint(speaker, self.crux)
        if hint:
            yield self._event(
                EventType.STEERING,
                SteeringEventData(hint=hint, target_persona_id=speaker, turn_index=turn_index),
            )

        request = TurnRequest(
            topic=self.topic,
            phase=phase,
            transcript=tuple(self.transcript[-self.config.transcript_window:]),
            speaker_id=speaker,
            steering_hint=hint,
            graph_summary=format_graph(self.graph.snapshot(), self._labels),
            persona_ids=tuple(self.persona_ids),
        )
        generated = await self._generate(request, turn_index)

        turn = DialogueTurn(
            turn_index=turn_index,
            phase=phase,
            persona_id=speaker,
            dialogue=generated.dialogue.strip(),
            move=generated.move,
            steering_hint=hint,
            timestamp=datetime.now(),
            concession_markers=tuple(generated.concession_markers),
        )
        self.transcript.append(turn)
        self.state.note_turn(turn, self.config.circling_window)
        logger.debug(f"Turn {turn_index} ({phase.name}) {speaker}: {turn.move.value}")
        yield self._event(EventType.DIALOGUE_TURN, {"turn": to_jsonable(turn)})

        if turn.move is DialogueMove.PROPOSE_CRUX:
            yield self._propose_crux(turn)

        self._pending.append(turn)
        if self.controller.should_crystallize(turn):
            for event in await self._crystallize(turn):
                yield event
        else:
            yield self._graph_updated(turn_index)

        if phase >= DebatePhase.EXCHANGE:
            check = self.convergence.check(
                self.state.contested_frontier_history, self.state.concessions, turn_index
            )
            yield self._event(
                EventType.CONVERGENCE_CHECK,
                ConvergenceCheckEventData(
                    turn_index=turn_index, converged=check.converged, reason=check.reason
                ),
            )
            if check.converged and phase is DebatePhase.RESOLUTION:
                logger.info(f"Converged at turn {turn_index}: {check.reason}")
                self._converged = True
                return

        transition = self.controller.next_transition(self.transcript)
        if transition:
            self.state.enter_phase(transition.to_phase, turn_index)
            logger.info(
                f"Phase {transition.from_phase.name} -> {transition.to_phase.name}: {transition.reason}"
            )
            yield self._event(
                EventType.PHASE_TRANSITION,
                PhaseTransitionEventData(
                    from_phase=int(transition.from_phase),
                    to_phase=int(transition.to_phase),
                    reason=transition.reason,
                    forced=transition.forced,
                    turn_index=turn_index,
                ),
            )
            yield self._event(
                EventType.PHASE_START,
                {"phase": int(transition.to_phase), "turn_index": turn_index},
            )

    async def _generate(self, request: TurnRequest, turn_index: int) -> GeneratedTurn:
        start_time = time.time()
        try:
            generated = await self.turn_generator.generate_turn(request)
        except Exception as e:
            error_msg = (
                f"Turn generation failed for {request.speaker_id} on turn {turn_index}: "
                f"{type(e).__name__}: {e}"
            )
            logger.error(error_msg)
            raise GenerationFailure(error_msg, request.speaker_id, turn_index) from e

        if not generated.dialogue or not generated.dialogue.strip():
            raise GenerationFailure(
                f"Turn generator returned empty dialogue for {request.speaker_id} on turn {turn_index}",
                request.speaker_id,
                turn_index,
            )

        self._turn_usage.add(generated.usage)
        logger.debug(
            f"Generated turn {turn_index} for {request.speaker_id} in "
            f"{int((time.time() - start_time) * 1000)}ms"
        )
        return generated

    async def _crystallize(self, turn: DialogueTurn) -> list[DebateEvent]:
        """Crystallize the pending turns, apply the diff and refresh semantics."""
        pending = list(self._pending)
        before = self.graph.snapshot()
        malformed_before = self.crystallizer.malformed_count

        diff = await self.crystallizer.crystallize(turn, pending, self.graph)
        applied = self.graph.apply_diff(diff)
        self._pending = []
        self.state.note_crystallization(applied.result, self.graph.snapshot(), turn)

        events = [
            self._event(
                EventType.CRYSTALLIZATION,
                {
                    "turn_index": turn.turn_index,
                    "turn_indices": [t.turn_index for t in pending],
                    "result": to_jsonable(applied.result),
                    "dropped_attacks": len(applied.dropped_attacks),
                    "malformed": self.crystallizer.malformed_count > malformed_before,
                },
            ),
            self._graph_updated(turn.turn_index),
        ]

        concessions = self.concession_tracker.inspect(pending, applied.result, before)
        events.extend(self._record_concessions(concessions))
        return events

    def _record_concessions(self, concessions: list[Concession]) -> list[DebateEvent]:
        events = []
        for concession in concessions:
            self.state.note_concessions([concession])
            events.append(
                self._event(EventType.CONCESSION, {"concession": to_jsonable(concession)})
            )
        return events

    def _graph_updated(self, turn_index: int) -> DebateEvent:
        snapshot = self.graph.snapshot()
        self._labels = label(snapshot)
        self._preferred = preferred = extensions(
            snapshot, self._labels, self.config.max_extension_search_nodes
        )
        frontier = contested_frontier(snapshot, self._labels)
        self.state.note_frontier(frontier)

        counts = label_counts(self._labels)
        return self._event(
            EventType.GRAPH_UPDATED,
            GraphUpdatedEventData(
                turn_index=turn_index,
                in_count=counts[Label.IN],
                out_count=counts[Label.OUT],
                undec_count=counts[Label.UNDEC],
                preferred_count=len(preferred),
                contested_frontier=frontier,
            ),
        )

    def _propose_crux(self, turn: DialogueTurn) -> DebateEvent:
        assumptions = crux_assumptions(self.graph.snapshot(), self._labels, self._preferred)
        if self.crux is None:
            self.crux = Crux(proposed_by=[turn.persona_id], statement=turn.dialogue)
        elif turn.persona_id not in self.crux.proposed_by:
            self.crux.proposed_by.append(turn.persona_id)
        self.crux.statement = turn.dialogue
        self.crux.assumptions = assumptions
        self.crux.acknowledged = set(self.crux.proposed_by) >= set(self.persona_ids)

        logger.info(
            f"Crux proposed by {turn.persona_id} (acknowledged: {self.crux.acknowledged})"
        )
        return self._event(
            EventType.CRUX_PROPOSED,
            CruxProposedEventData(
                persona_id=turn.persona_id,
                statement=self.crux.statement,
                proposed_by=list(self.crux.proposed_by),
                assumptions=list(self.crux.assumptions),
                acknowledged=self.crux.acknowledged,
            ),
        )

    def build_output(self, error: str | None = None) -> DebateEngineOutput:
        """Snapshot the run into a ``DebateEngineOutput`` (partial when ``error`` is set)."""
        snapshot = self.graph.snapshot()
        labels = label(snapshot)
        preferred = extensions(snapshot, labels, self.config.max_extension_search_nodes)
        camps = build_camps(snapshot, preferred, self.persona_ids)
        speakers = {argument.id: argument.speaker_id for argument in snapshot.arguments}
        regime, description = self.regime_classifier.classify(
            camps,
            preferred,
            self.persona_ids,
            self.state.concessions,
            self.state.phase3_started_at,
            self.crux,
            speakers,
        )

        usage = TokenUsage()
        usage.add(self._turn_usage)
        usage.add(self.crystallizer.usage)

        diagnostics: dict[str, Any] = {
            "invariant_violations": self.graph.invariant_violations,
            "malformed_crystallizations": self.crystallizer.malformed_count,
            "final_phase": int(self.state.phase),
            "error": error,
        }

        return DebateEngineOutput(
            topic=self.topic,
            persona_ids=list(self.persona_ids),
            transcript=list(self.transcript),
            graph=snapshot,
            crux=self.crux,
            common_ground=[a.id for a in snapshot.arguments if labels[a.id] is Label.IN],
            camps=camps,
            concession_trail=list(self.state.concessions),
            regime=regime,
            regime_description=description,
            token_usage=usage,
            duration=time.time() - self._start_time if self._start_time else 0.0,
            status=RunStatus.ERROR if error else RunStatus.COMPLETE,
            diagnostics=diagnostics,
        )

    def _event(self, event_type: EventType, data: Mapping[str, Any]) -> DebateEvent:
        event = DebateEvent(sequence=len(self.events), type=event_type, data=dict(data))
        self.events.append(event)
        return event
