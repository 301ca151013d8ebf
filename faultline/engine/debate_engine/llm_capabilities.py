"""LLM-backed implementations of the turn generation and crystallization capabilities."""

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

from faultline.engine.config.settings import ModelConfig
from faultline.engine.models.manager import ModelManager
from faultline.engine.models.providers.base_model_provider import GenerationMetadata

from .capabilities import (
    CrystallizationRequest,
    ExtractedDiff,
    GeneratedTurn,
    TurnRequest,
)
from .exceptions import TurnGenerationError
from .models import TokenUsage
from .prompts import (
    crystallization_prompt,
    dialogue_turn_prompt,
    opening_prompt,
    persona_system_prompt,
    resolution_prompt,
)
from .semantics import label
from .types import DebatePhase, DialogueMove

logger = logging.getLogger(__name__)

CRYSTALLIZER_MODEL_ID = "crystallizer"

CRYSTALLIZER_SYSTEM_PROMPT = (
    "You are a careful argument analyst. You turn debate dialogue into a formal "
    "argumentation graph and reply with JSON only."
)


def repair_json(json_text: str) -> str:
    """Attempt to repair common JSON issues from small models."""
    repaired = json_text.strip()

    # Remove any trailing comma before closing braces/brackets
    repaired = re.sub(r",(\s*[}\]])", r"\1", repaired)

    # Fix missing quotes around keys
    repaired = re.sub(r"([{,]\s*)([a-zA-Z_][a-zA-Z0-9_]*)\s*:", r'\1"\2":', repaired)

    # Handle truncated JSON
    if not repaired.endswith("}"):
        logger.warning("JSON appears truncated, attempting to complete it")

        open_quotes = repaired.count('"') - repaired.count('\\"')
        if open_quotes % 2 == 1:
            repaired += '"'

        repaired = repaired.rstrip().rstrip(",")

        open_braces = repaired.count("{") - repaired.count("}")
        open_brackets = repaired.count("[") - repaired.count("]")
        repaired += "]" * open_brackets
        repaired += "}" * open_braces

    # Remove any text after the final closing brace
    last_brace = repaired.rfind("}")
    if last_brace != -1:
        repaired = repaired[: last_brace + 1]

    if repaired != json_text:
        logger.debug(f"Repaired JSON text for parsing: {repaired}")
    return repaired


def extract_json(response: str) -> Any:
    """Pull a JSON object out of a model response (fenced, embedded or bare)."""
    markdown_match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", response, re.DOTALL)
    if markdown_match:
        json_text = markdown_match.group(1)
    else:
        json_match = re.search(r"\{.*\}", response, re.DOTALL)
        json_text = json_match.group() if json_match else response.strip()

    try:
        return json.loads(json_text)
    except json.JSONDecodeError:
        pass

    try:
        return json.loads(repair_json(json_text))
    except json.JSONDecodeError as e:
        raise ValueError(f"No parseable JSON in model response: {e}") from e


def coerce_move(raw_move: Any, phase: DebatePhase) -> DialogueMove:
    """Map a model-supplied move label onto a DialogueMove."""
    if phase is DebatePhase.OPENING:
        return DialogueMove.CLAIM
    normalized = str(raw_move or "").strip().upper().replace(" ", "_").replace("-", "_")
    try:
        move = DialogueMove(normalized)
    except ValueError:
        logger.warning(f"Unknown dialogue move {raw_move!r}; recording as CLAIM")
        return DialogueMove.CLAIM
    if move is DialogueMove.PROPOSE_CRUX and phase < DebatePhase.CRUX_SEEKING:
        return DialogueMove.CLAIM
    return move


def _usage(metadata: GenerationMetadata) -> TokenUsage:
    return TokenUsage(
        input_tokens=metadata.prompt_tokens or 0,
        output_tokens=metadata.completion_tokens or 0,
    )


class LLMTurnGenerator:
    """Generates persona turns through the model manager.

    Each persona id must be registered with the model manager under the same id.
    """

    def __init__(self, model_manager: ModelManager, participants: Mapping[str, ModelConfig]):
        self.model_manager = model_manager
        self.participants = dict(participants)

    async def generate_turn(self, request: TurnRequest) -> GeneratedTurn:
        config = self.participants.get(request.speaker_id)
        if config is None:
            raise TurnGenerationError(f"No model configured for persona {request.speaker_id}")

        if request.phase is DebatePhase.OPENING:
            prompt = opening_prompt(request.topic)
        elif request.phase is DebatePhase.RESOLUTION:
            prompt = resolution_prompt(request.topic, request.transcript, request.steering_hint)
        else:
            prompt = dialogue_turn_prompt(
                request.topic,
                request.transcript,
                request.steering_hint,
                request.phase,
                request.graph_summary,
            )

        messages = [
            {
                "role": "system",
                "content": persona_system_prompt(request.speaker_id, config.personality, request.topic),
            },
            {"role": "user", "content": prompt},
        ]

        async with self.model_manager.model_session(request.speaker_id):
            metadata = await self.model_manager.generate_response_with_metadata(
                request.speaker_id, messages
            )

        try:
            data = extract_json(metadata.content)
        except ValueError as e:
            raise TurnGenerationError(
                f"{request.speaker_id} returned an unparseable turn: {metadata.content[:200]!r}"
            ) from e

        if not isinstance(data, dict) or not str(data.get("dialogue") or "").strip():
            raise TurnGenerationError(f"{request.speaker_id} returned a turn without dialogue")

        raw_markers = data.get("concessionMarkers") or data.get("concession_markers") or []
        if isinstance(raw_markers, str):
            raw_markers = [raw_markers]
        markers = tuple(str(marker).strip() for marker in raw_markers if str(marker).strip())

        return GeneratedTurn(
            dialogue=str(data["dialogue"]).strip(),
            move=coerce_move(data.get("move"), request.phase),
            concession_markers=markers,
            usage=_usage(metadata),
        )


class LLMCrystallizationExtractor:
    """Asks a dedicated model for the graph diff implied by recent dialogue."""

    def __init__(self, model_manager: ModelManager, model_id: str = CRYSTALLIZER_MODEL_ID):
        self.model_manager = model_manager
        self.model_id = model_id

    async def extract(self, request: CrystallizationRequest) -> ExtractedDiff:
        prompt = crystallization_prompt(
            request.topic,
            request.pending_turns,
            request.graph,
            label(request.graph),
            request.persona_ids,
        )
        messages = [
            {"role": "system", "content": CRYSTALLIZER_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        async with self.model_manager.model_session(self.model_id):
            metadata = await self.model_manager.generate_response_with_metadata(
                self.model_id, messages
            )

        try:
            payload: Any = extract_json(metadata.content)
        except ValueError as e:
            logger.warning(f"Crystallizer output for turn {request.turn.turn_index} is not JSON: {e}")
            payload = metadata.content

        return ExtractedDiff(payload=payload, usage=_usage(metadata))


def build_llm_capabilities(
    model_manager: ModelManager,
    participants: Mapping[str, ModelConfig],
    crystallizer: ModelConfig,
) -> tuple[LLMTurnGenerator, LLMCrystallizationExtractor]:
    """Register persona and crystallizer models and return the two capabilities."""
    for persona_id, config in participants.items():
        model_manager.register_model(persona_id, config)
    model_manager.register_model(CRYSTALLIZER_MODEL_ID, crystallizer)
    return (
        LLMTurnGenerator(model_manager, participants),
        LLMCrystallizationExtractor(model_manager, CRYSTALLIZER_MODEL_ID),
    )
