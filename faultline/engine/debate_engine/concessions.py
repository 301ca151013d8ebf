"""Concession detection from crystallization diffs and turn metadata."""

import logging
from collections.abc import Sequence

from .models import Concession, CrystallizationResult, DialogueTurn, GraphSnapshot
from .types import ConcessionType, DialogueMove

logger = logging.getLogger(__name__)


class ConcessionTracker:
    """Classifies concessions as a deterministic function of moves, markers and diff.

    A removed argument is a ``full`` concession when its speaker made a
    CONCEDE move among the crystallized turns. An update of a speaker's own
    argument is ``scope_narrowing`` when the claim changed under a REFRAME
    move carrying concession markers, and ``partial`` when the assumptions
    changed, or the claim changed under a CONCEDE move.
    """

    def inspect(
        self,
        turns: Sequence[DialogueTurn],
        diff: CrystallizationResult,
        before: GraphSnapshot,
    ) -> list[Concession]:
        if not turns or diff.is_empty():
            return []

        latest_turn: dict[str, DialogueTurn] = {}
        latest_concede: dict[str, DialogueTurn] = {}
        for turn in turns:
            latest_turn[turn.persona_id] = turn
            if turn.move is DialogueMove.CONCEDE:
                latest_concede[turn.persona_id] = turn

        previous = before.argument_map()
        concessions: list[Concession] = []

        for arg_id in diff.removed_arg_ids:
            argument = previous.get(arg_id)
            if argument is None:
                continue
            conceding_turn = latest_concede.get(argument.speaker_id)
            if conceding_turn is None:
                continue
            concessions.append(
                Concession(
                    turn_index=conceding_turn.turn_index,
                    persona_id=argument.speaker_id,
                    type=ConcessionType.FULL,
                    conceded_claim=argument.claim,
                    effect=f"{argument.speaker_id} withdrew {arg_id}; its attacks were removed with it",
                    removed_arg_ids=(arg_id,),
                )
            )

        removed = set(diff.removed_arg_ids)
        for update in diff.updated_args:
            argument = previous.get(update.id)
            if argument is None or update.id in removed:
                continue
            turn = latest_turn.get(argument.speaker_id)
            if turn is None:
                continue

            claim_changed = update.claim is not None and update.claim != argument.claim
            assumptions_changed = (
                update.assumptions is not None and update.assumptions != argument.assumptions
            )

            if claim_changed and turn.move is DialogueMove.REFRAME and turn.concession_markers:
                kind = ConcessionType.SCOPE_NARROWING
                effect = f"{argument.speaker_id} narrowed the claim of {update.id}"
            elif assumptions_changed or (claim_changed and turn.move is DialogueMove.CONCEDE):
                kind = ConcessionType.PARTIAL
                effect = f"{argument.speaker_id} qualified {update.id}"
                if assumptions_changed:
                    effect += " by revising its assumptions"
            else:
                continue

            concessions.append(
                Concession(
                    turn_index=turn.turn_index,
                    persona_id=argument.speaker_id,
                    type=kind,
                    conceded_claim=argument.claim,
                    effect=effect,
                    updated_arg_ids=(update.id,),
                )
            )

        if concessions:
            logger.info(
                f"Detected {len(concessions)} concession(s): "
                f"{', '.join(c.type.value for c in concessions)}"
            )
        return concessions
