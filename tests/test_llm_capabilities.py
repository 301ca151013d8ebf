"""Tests for the model-backed turn generator and crystallization extractor."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest

from faultline.engine.config.settings import ModelConfig
from faultline.engine.debate_engine.capabilities import CrystallizationRequest, TurnRequest
from faultline.engine.debate_engine.exceptions import TurnGenerationError
from faultline.engine.debate_engine.llm_capabilities import (
    CRYSTALLIZER_MODEL_ID,
    LLMCrystallizationExtractor,
    LLMTurnGenerator,
    build_llm_capabilities,
    coerce_move,
    extract_json,
)
from faultline.engine.debate_engine.models import DialogueTurn, GraphSnapshot
from faultline.engine.debate_engine.types import DebatePhase, DialogueMove
from faultline.engine.models.providers.base_model_provider import GenerationMetadata

pytestmark = pytest.mark.unit

PARTICIPANTS = {
    "skeptic": ModelConfig(name="qwen2.5:7b", provider="ollama", personality="a cautious empiricist"),
    "advocate": ModelConfig(name="openai/gpt-4o-mini", provider="openrouter"),
}


class FakeModelManager:
    """Simplified ModelManager returning canned completions."""

    def __init__(self, *responses: str):
        self._responses = list(responses)
        self.calls: list[tuple[str, list[dict[str, str]]]] = []
        self.registered: dict[str, ModelConfig] = {}

    def register_model(self, model_id: str, config: ModelConfig) -> None:
        self.registered[model_id] = config

    @asynccontextmanager
    async def model_session(self, model_id: str) -> AsyncIterator["FakeModelManager"]:
        yield self

    async def generate_response_with_metadata(
        self, model_id: str, messages: list[dict[str, str]], **overrides: object
    ) -> GenerationMetadata:
        self.calls.append((model_id, messages))
        if not self._responses:
            raise AssertionError("No fake responses left")
        return GenerationMetadata(
            content=self._responses.pop(0),
            prompt_tokens=120,
            completion_tokens=40,
            provider="fake",
        )


def _turn_request(phase: DebatePhase = DebatePhase.EXCHANGE, speaker: str = "skeptic") -> TurnRequest:
    return TurnRequest(
        topic="Should cities replace parking minimums with congestion pricing?",
        phase=phase,
        transcript=(),
        speaker_id=speaker,
        steering_hint="Press advocate on transit capacity.",
        graph_summary="(empty graph)",
        persona_ids=("skeptic", "advocate"),
    )


def test_extract_json_handles_fences_and_trailing_commas() -> None:
    response = 'Sure!\n```json\n{"dialogue": "Hi", "move": "CLAIM",}\n```\nThanks'

    assert extract_json(response) == {"dialogue": "Hi", "move": "CLAIM"}


def test_extract_json_finds_embedded_objects_and_repairs_truncation() -> None:
    assert extract_json('The diff is {"newArgs": []} as requested.') == {"newArgs": []}
    assert extract_json('{"dialogue": "cut off') == {"dialogue": "cut off"}


def test_extract_json_raises_on_prose() -> None:
    with pytest.raises(ValueError):
        extract_json("I have no opinion on this.")


@pytest.mark.parametrize(
    ("raw", "phase", "expected"),
    [
        ("challenge", DebatePhase.EXCHANGE, DialogueMove.CHALLENGE),
        ("propose crux", DebatePhase.CRUX_SEEKING, DialogueMove.PROPOSE_CRUX),
        ("PROPOSE_CRUX", DebatePhase.EXCHANGE, DialogueMove.CLAIM),
        ("CONCEDE", DebatePhase.OPENING, DialogueMove.CLAIM),
        ("rebut", DebatePhase.EXCHANGE, DialogueMove.CLAIM),
        (None, DebatePhase.RESOLUTION, DialogueMove.CLAIM),
    ],
)
def test_coerce_move(raw: object, phase: DebatePhase, expected: DialogueMove) -> None:
    assert coerce_move(raw, phase) is expected


def test_turn_generator_parses_structured_turn() -> None:
    manager = FakeModelManager(
        '{"dialogue": "Transit is not there yet.", "move": "CONCEDE", "concessionMarkers": "fair point"}'
    )
    generator = LLMTurnGenerator(manager, PARTICIPANTS)

    turn = asyncio.run(generator.generate_turn(_turn_request()))

    assert turn.dialogue == "Transit is not there yet."
    assert turn.move is DialogueMove.CONCEDE
    assert turn.concession_markers == ("fair point",)
    assert turn.usage.input_tokens == 120
    assert turn.usage.output_tokens == 40

    model_id, messages = manager.calls[0]
    assert model_id == "skeptic"
    assert "a cautious empiricist" in messages[0]["content"]
    assert "Press advocate on transit capacity." in messages[1]["content"]


def test_turn_generator_rejects_unusable_output() -> None:
    generator = LLMTurnGenerator(FakeModelManager("no json here", '{"move": "CLAIM"}'), PARTICIPANTS)

    with pytest.raises(TurnGenerationError):
        asyncio.run(generator.generate_turn(_turn_request()))
    with pytest.raises(TurnGenerationError):
        asyncio.run(generator.generate_turn(_turn_request()))


def test_turn_generator_rejects_unknown_persona() -> None:
    generator = LLMTurnGenerator(FakeModelManager(), PARTICIPANTS)

    with pytest.raises(TurnGenerationError):
        asyncio.run(generator.generate_turn(_turn_request(speaker="moderator")))


def test_extractor_passes_payload_through_and_keeps_prose_as_malformed() -> None:
    manager = FakeModelManager(
        '```json\n{"newArgs": [{"speakerId": "skeptic", "claim": "Rents rise"}]}\n```',
        "Nothing to extract.",
    )
    extractor = LLMCrystallizationExtractor(manager)
    turn = DialogueTurn(3, DebatePhase.EXCHANGE, "skeptic", "Rents rise.", DialogueMove.CLAIM)
    request = CrystallizationRequest(
        topic="parking",
        turn=turn,
        pending_turns=(turn,),
        graph=GraphSnapshot(),
        persona_ids=("skeptic", "advocate"),
    )

    first = asyncio.run(extractor.extract(request))
    second = asyncio.run(extractor.extract(request))

    assert first.payload == {"newArgs": [{"speakerId": "skeptic", "claim": "Rents rise"}]}
    assert first.usage.input_tokens == 120
    assert second.payload == "Nothing to extract."
    assert manager.calls[0][0] == CRYSTALLIZER_MODEL_ID


def test_build_llm_capabilities_registers_every_model() -> None:
    manager = FakeModelManager()
    crystallizer = ModelConfig(name="openai/gpt-4o-mini", provider="openrouter", temperature=0.2)

    generator, extractor = build_llm_capabilities(manager, PARTICIPANTS, crystallizer)

    assert set(manager.registered) == {"skeptic", "advocate", CRYSTALLIZER_MODEL_ID}
    assert generator.participants == PARTICIPANTS
    assert extractor.model_id == CRYSTALLIZER_MODEL_ID
