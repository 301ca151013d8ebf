"""Turns dialogue into graph diffs through the crystallization capability."""

import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .capabilities import CrystallizationExtractor, CrystallizationRequest
from .exceptions import GenerationFailure, MalformedCrystallization
from .graph import ArgumentGraph
from .models import (
    Argument,
    ArgumentUpdate,
    Attack,
    CrystallizationResult,
    DialogueTurn,
    TokenUsage,
)

logger = logging.getLogger(__name__)

EMPTY_DIFF = CrystallizationResult()


class _RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RawArgument(_RawModel):
    id: str | None = None
    speaker_id: str = Field(validation_alias=AliasChoices("speakerId", "speaker_id"))
    claim: str = Field(min_length=1)
    assumptions: list[str] = Field(default_factory=list)


class RawArgumentUpdate(_RawModel):
    id: str
    claim: str | None = None
    assumptions: list[str] | None = None


class RawAttack(_RawModel):
    source: str = Field(
        validation_alias=AliasChoices("fromArgId", "sourceArgId", "source_arg_id", "from_arg_id")
    )
    target: str = Field(
        validation_alias=AliasChoices("toArgId", "targetArgId", "target_arg_id", "to_arg_id")
    )


class RawCrystallization(_RawModel):
    """Wire shape of a crystallization payload (camelCase or snake_case keys)."""

    new_args: list[RawArgument] = Field(
        default_factory=list, validation_alias=AliasChoices("newArgs", "new_args")
    )
    updated_args: list[RawArgumentUpdate] = Field(
        default_factory=list, validation_alias=AliasChoices("updatedArgs", "updated_args")
    )
    removed_arg_ids: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("removedArgIds", "removed_arg_ids")
    )
    new_attacks: list[RawAttack] = Field(
        default_factory=list, validation_alias=AliasChoices("newAttacks", "new_attacks")
    )
    removed_attack_ids: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("removedAttackIds", "removed_attack_ids"),
    )


def parse_payload(payload: Any, persona_ids: Sequence[str] = ()) -> RawCrystallization:
    """Validate the structure of a raw payload or raise MalformedCrystallization."""
    if not isinstance(payload, Mapping):
        raise MalformedCrystallization(
            f"Crystallization payload must be an object, got {type(payload).__name__}"
        )
    try:
        raw = RawCrystallization.model_validate(dict(payload))
    except ValidationError as e:
        raise MalformedCrystallization(f"Invalid crystallization payload: {e}") from e

    check_speakers((arg.speaker_id for arg in raw.new_args), persona_ids)
    return raw


def check_speakers(speaker_ids: Iterable[str], persona_ids: Sequence[str]) -> None:
    if not persona_ids:
        return
    unknown = sorted(set(speaker_ids) - set(persona_ids))
    if unknown:
        raise MalformedCrystallization(f"New arguments attributed to unknown speakers: {unknown}")


class Crystallizer:
    """Requests diffs from the extraction capability and resolves them against the graph."""

    def __init__(self, extractor: CrystallizationExtractor, topic: str, persona_ids: Sequence[str]):
        self.extractor = extractor
        self.topic = topic
        self.persona_ids = tuple(persona_ids)
        self.malformed_count = 0
        self.usage = TokenUsage()

    async def crystallize(
        self,
        turn: DialogueTurn,
        pending_turns: Sequence[DialogueTurn],
        graph: ArgumentGraph,
    ) -> CrystallizationResult:
        request = CrystallizationRequest(
            topic=self.topic,
            turn=turn,
            pending_turns=tuple(pending_turns) or (turn,),
            graph=graph.snapshot(),
            persona_ids=self.persona_ids,
        )

        start_time = time.time()
        try:
            extracted = await self.extractor.extract(request)
        except Exception as e:
            error_msg = (
                f"Crystallization of turn {turn.turn_index} failed: {type(e).__name__}: {e}"
            )
            logger.error(error_msg)
            raise GenerationFailure(error_msg, turn.persona_id, turn.turn_index) from e
        self.usage.add(extracted.usage)
        logger.debug(
            f"Crystallization for turn {turn.turn_index} took {int((time.time() - start_time) * 1000)}ms"
        )

        try:
            if isinstance(extracted.payload, CrystallizationResult):
                check_speakers((arg.speaker_id for arg in extracted.payload.new_args), self.persona_ids)
                return extracted.payload
            raw = parse_payload(extracted.payload, self.persona_ids)
        except MalformedCrystallization as e:
            self.malformed_count += 1
            logger.warning(f"Treating crystallization of turn {turn.turn_index} as empty: {e}")
            return EMPTY_DIFF

        return self._resolve(raw, turn, graph)

    def _resolve(
        self, raw: RawCrystallization, turn: DialogueTurn, graph: ArgumentGraph
    ) -> CrystallizationResult:
        """Allocate real ids for new arguments/attacks and map placeholders onto them.

        Positional placeholders (``arg-NEW-0``, ``arg-NEW-1``, ...) are filled first and
        explicit ids given in the payload override them. An explicit id naming a live
        argument is ignored so it cannot capture references to that argument.
        """
        allocated = [graph.next_argument_id() for _ in raw.new_args]
        placeholders = {f"arg-NEW-{i}": arg_id for i, arg_id in enumerate(allocated)}
        for raw_arg, arg_id in zip(raw.new_args, allocated):
            if not raw_arg.id:
                continue
            if raw_arg.id in graph:
                logger.warning(f"Ignoring new-argument id {raw_arg.id} that names a live argument")
                continue
            placeholders[raw_arg.id] = arg_id

        new_args: list[Argument] = []
        for raw_arg, arg_id in zip(raw.new_args, allocated):
            new_args.append(
                Argument(
                    id=arg_id,
                    speaker_id=raw_arg.speaker_id,
                    claim=raw_arg.claim.strip(),
                    assumptions=frozenset(a.strip() for a in raw_arg.assumptions if a.strip()),
                    created_at_turn=turn.turn_index,
                )
            )

        updates = [
            ArgumentUpdate(
                id=placeholders.get(update.id, update.id),
                claim=update.claim.strip() if update.claim else None,
                assumptions=(
                    frozenset(a.strip() for a in update.assumptions if a.strip())
                    if update.assumptions is not None
                    else None
                ),
            )
            for update in raw.updated_args
        ]

        new_attacks = [
            Attack(
                id=graph.next_attack_id(),
                source_arg_id=placeholders.get(raw_attack.source, raw_attack.source),
                target_arg_id=placeholders.get(raw_attack.target, raw_attack.target),
            )
            for raw_attack in raw.new_attacks
        ]

        return CrystallizationResult(
            new_args=tuple(new_args),
            updated_args=tuple(updates),
            removed_arg_ids=tuple(raw.removed_arg_ids),
            new_attacks=tuple(new_attacks),
            removed_attack_ids=tuple(raw.removed_attack_ids),
        )
