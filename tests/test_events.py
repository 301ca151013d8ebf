"""Tests for the event envelope and replay/hydration of a debate from its events."""

import asyncio
import json

import pytest

from conftest import ScriptedExtractor, ScriptedTurnGenerator, scenario_c_engine, scripted_turn
from faultline.engine.debate_engine.engine import DebateEngine
from faultline.engine.debate_engine.events import DebateEvent, replay_events
from faultline.engine.debate_engine.models import (
    Argument,
    ArgumentUpdate,
    CrystallizationResult,
    from_jsonable,
    to_jsonable,
)
from faultline.engine.debate_engine.types import DialogueMove, EventType, RunStatus

pytestmark = pytest.mark.integration


def _run(engine: DebateEngine) -> list[DebateEvent]:
    async def consume() -> list[DebateEvent]:
        return [event async for event in engine.run()]

    return asyncio.run(consume())


def _assert_replay_matches(engine: DebateEngine, events: list) -> None:
    replayed = replay_events(events)

    assert replayed.topic == engine.topic
    assert replayed.persona_ids == engine.persona_ids
    assert replayed.transcript == engine.transcript
    assert replayed.graph.snapshot() == engine.graph.snapshot()
    assert replayed.graph.invariant_violations == engine.graph.invariant_violations
    assert replayed.state == engine.state
    assert replayed.crux == engine.crux
    assert replayed.status is engine.status
    assert replayed.output == engine.output


def test_to_sse_frames_type_and_payload() -> None:
    event = DebateEvent(sequence=3, type=EventType.STEERING, data={"hint": "Be specific", "turn_index": 4})

    frame = event.to_sse()

    lines = frame.splitlines()
    assert lines[0] == "id: 3"
    assert lines[1] == "event: steering"
    assert json.loads(lines[2].removeprefix("data: ")) == {
        "sequence": 3,
        "hint": "Be specific",
        "turn_index": 4,
    }
    assert frame.endswith("\n\n")


def test_replay_reproduces_engine_state() -> None:
    engine, _, _ = scenario_c_engine()
    events = _run(engine)

    _assert_replay_matches(engine, events)


def test_replay_survives_a_json_round_trip() -> None:
    engine, _, _ = scenario_c_engine()
    events = _run(engine)

    wire = json.loads(json.dumps([event.model_dump(mode="json") for event in events]))

    _assert_replay_matches(engine, wire)


def test_replay_of_a_failed_run_keeps_partial_state() -> None:
    generator = ScriptedTurnGenerator(
        [scripted_turn(DialogueMove.CLAIM), scripted_turn(DialogueMove.CLAIM), RuntimeError("boom")]
    )
    extractor = ScriptedExtractor(
        {1: {"newArgs": [{"speakerId": "skeptic", "claim": "Minimums raise rents"}]}, 2: "garbage"}
    )
    engine = DebateEngine("parking", ["skeptic", "advocate"], generator, extractor, max_turns=6)
    events = _run(engine)

    replayed = replay_events(events)

    assert replayed.status is RunStatus.ERROR
    assert "boom" in replayed.error
    assert len(replayed.transcript) == 2
    assert replayed.malformed_crystallizations == 1
    assert [a.id for a in replayed.graph.snapshot().arguments] == ["arg-0"]
    assert replayed.output is not None
    assert replayed.output.status is RunStatus.ERROR


def test_replay_ignores_events_already_applied() -> None:
    engine, _, _ = scenario_c_engine()
    events = _run(engine)

    replayed = replay_events(events)
    for event in events[:10]:
        replayed.apply(event)

    assert replayed.transcript == engine.transcript
    assert replayed.state == engine.state


def test_replay_of_a_prefix_matches_the_run_so_far() -> None:
    engine, _, _ = scenario_c_engine()
    events = _run(engine)
    cut = next(
        i
        for i, event in enumerate(events)
        if event.type is EventType.DIALOGUE_TURN and event.data["turn"]["turn_index"] == 4
    )

    replayed = replay_events(events[:cut])

    assert len(replayed.transcript) == 3
    assert replayed.status is RunStatus.RUNNING
    assert [a.id for a in replayed.graph.snapshot().arguments] == ["arg-0", "arg-1"]


def test_assumption_sets_serialize_sorted() -> None:
    assumptions = frozenset(f"assumption {letter}" for letter in "qwertyuiopasdfghjkl")
    result = CrystallizationResult(
        new_args=(Argument("arg-0", "skeptic", "Rents rise", assumptions),),
        updated_args=(ArgumentUpdate("arg-1", assumptions=assumptions),),
    )

    dumped = to_jsonable(result)

    assert dumped["new_args"][0]["assumptions"] == sorted(assumptions)
    assert dumped["updated_args"][0]["assumptions"] == sorted(assumptions)
    assert from_jsonable(CrystallizationResult, json.loads(json.dumps(dumped))) == result
