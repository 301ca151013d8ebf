"""Pytest configuration and shared fixtures.

Provides scripted stand-ins for the two natural-language capabilities so the
engine can be driven deterministically, plus small graph builders shared by
the semantics and graph-store tests.
"""

from collections.abc import Iterable, Mapping
from typing import Any

import pytest

from faultline.engine.config.settings import EngineConfig
from faultline.engine.debate_engine.capabilities import (
    CrystallizationRequest,
    ExtractedDiff,
    GeneratedTurn,
    TurnRequest,
)
from faultline.engine.debate_engine.engine import DebateEngine
from faultline.engine.debate_engine.models import Argument, Attack, GraphSnapshot, TokenUsage
from faultline.engine.debate_engine.types import DialogueMove


# =============================================================================
# CAPABILITY FAKES
# =============================================================================


def scripted_turn(
    move: DialogueMove, dialogue: str = "", *markers: str
) -> GeneratedTurn:
    """Build a GeneratedTurn with a little token usage attached."""
    return GeneratedTurn(
        dialogue=dialogue or f"A {move.value.lower()} about the topic.",
        move=move,
        concession_markers=markers,
        usage=TokenUsage(input_tokens=10, output_tokens=5),
    )


class ScriptedTurnGenerator:
    """Plays back scripted turns in order; exceptions in the script are raised."""

    def __init__(
        self,
        script: Iterable[GeneratedTurn | Exception] = (),
        default: GeneratedTurn | None = None,
    ):
        self.script = list(script)
        self.default = default
        self.requests: list[TurnRequest] = []

    async def generate_turn(self, request: TurnRequest) -> GeneratedTurn:
        self.requests.append(request)
        if not self.script:
            if self.default is None:
                raise AssertionError("No scripted turns left")
            return self.default
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class ScriptedExtractor:
    """Returns the payload scripted for a turn index, or an empty diff."""

    def __init__(self, payloads: Mapping[int, Any] | None = None):
        self.payloads = dict(payloads or {})
        self.requests: list[CrystallizationRequest] = []

    async def extract(self, request: CrystallizationRequest) -> ExtractedDiff:
        self.requests.append(request)
        payload = self.payloads.get(request.turn.turn_index, {})
        if isinstance(payload, Exception):
            raise payload
        return ExtractedDiff(payload=payload, usage=TokenUsage(input_tokens=20, output_tokens=8))

    def graph_seen_at(self, turn_index: int) -> GraphSnapshot:
        for request in self.requests:
            if request.turn.turn_index == turn_index:
                return request.graph
        raise AssertionError(f"No crystallization request for turn {turn_index}")


def make_graph(
    arguments: Iterable[tuple[str, str]], attacks: Iterable[tuple[str, str]] = ()
) -> GraphSnapshot:
    """Snapshot from (id, speaker) pairs and (source, target) pairs."""
    return GraphSnapshot(
        arguments=tuple(
            Argument(id=arg_id, speaker_id=speaker, claim=f"claim {arg_id}")
            for arg_id, speaker in arguments
        ),
        attacks=tuple(
            Attack(id=f"atk-{i}", source_arg_id=source, target_arg_id=target)
            for i, (source, target) in enumerate(attacks)
        ),
    )


SCENARIO_TOPIC = "Should cities replace parking minimums with congestion pricing?"


def scenario_c_engine() -> tuple[DebateEngine, ScriptedTurnGenerator, ScriptedExtractor]:
    """Two openings, three exchanges building four arguments, then a concession."""
    generator = ScriptedTurnGenerator(
        [
            scripted_turn(DialogueMove.CLAIM, "Parking minimums distort housing costs."),
            scripted_turn(DialogueMove.CLAIM, "Congestion pricing is the fairer tool."),
            scripted_turn(DialogueMove.CHALLENGE, "Pricing hurts commuters without transit."),
            scripted_turn(DialogueMove.CLAIM, "Revenue can fund the transit they lack."),
            scripted_turn(DialogueMove.CLAIM, "Funding lags by years."),
            scripted_turn(DialogueMove.CONCEDE, "Fine, pricing alone does not help everywhere.", "fair point"),
        ]
    )
    extractor = ScriptedExtractor(
        {
            3: {
                "newArgs": [
                    {"speakerId": "advocate", "claim": "Pricing helps everyone", "assumptions": ["drivers respond to price"]},
                    {"speakerId": "skeptic", "claim": "Pricing hurts commuters without transit"},
                ],
                "newAttacks": [{"fromArgId": "arg-NEW-1", "toArgId": "arg-NEW-0"}],
            },
            4: {
                "newArgs": [{"speakerId": "advocate", "claim": "Revenue funds transit"}],
                "newAttacks": [{"fromArgId": "arg-NEW-0", "toArgId": "arg-1"}],
            },
            5: {"newArgs": [{"speakerId": "skeptic", "claim": "Transit funding lags by years"}]},
            6: {"removedArgIds": ["arg-0"]},
        }
    )
    engine = DebateEngine(SCENARIO_TOPIC, ["skeptic", "advocate"], generator, extractor, max_turns=6)
    return engine, generator, extractor


# =============================================================================
# SHARED FIXTURES - Available to all test modules
# =============================================================================


@pytest.fixture
def sample_debate_topic() -> str:
    """Provide a standard debate topic for testing."""
    return "Should cities replace parking minimums with congestion pricing?"


@pytest.fixture
def two_personas() -> list[str]:
    return ["skeptic", "advocate"]


@pytest.fixture
def three_personas() -> list[str]:
    return ["skeptic", "advocate", "economist"]


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


# =============================================================================
# PYTEST CONFIGURATION HOOKS
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
