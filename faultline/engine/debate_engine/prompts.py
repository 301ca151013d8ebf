"""Prompt templates for the LLM-backed turn generator and crystallizer."""

from collections.abc import Sequence

from .models import DialogueTurn, GraphSnapshot
from .types import DebatePhase, Label

MOVE_DESCRIPTIONS = {
    "CLAIM": "Assert a new position",
    "CHALLENGE": "Directly dispute what was just said",
    "CLARIFY": "Ask for or provide precision on a term or claim",
    "CONCEDE": "Grant a point you find compelling (partially or fully)",
    "REFRAME": "Redirect to what you think actually matters",
    "PROPOSE_CRUX": "Name what you believe the core disagreement is",
}


def format_graph(graph: GraphSnapshot, labels: dict[str, Label] | None = None) -> str:
    """Readable argument and attack tables."""
    labels = labels or {}
    if graph.arguments:
        argument_lines = []
        for argument in graph.arguments:
            label = labels.get(argument.id, Label.UNDEC).value
            line = f"  [{argument.id}] [{label}] ({argument.speaker_id}): {argument.claim}"
            if argument.assumptions:
                line += f" | Assumptions: {'; '.join(sorted(argument.assumptions))}"
            argument_lines.append(line)
        argument_table = "\n".join(argument_lines)
    else:
        argument_table = "  (no arguments yet)"

    if graph.attacks:
        attack_table = "\n".join(
            f"  [{attack.id}] {attack.source_arg_id} -> {attack.target_arg_id}"
            for attack in graph.attacks
        )
    else:
        attack_table = "  (no attacks yet)"

    return f"Arguments:\n{argument_table}\n\nAttacks:\n{attack_table}"


def format_dialogue(turns: Sequence[DialogueTurn]) -> str:
    return "\n".join(f"[{t.move.value}] {t.persona_id}: {t.dialogue}" for t in turns)


def persona_system_prompt(persona_id: str, personality: str, topic: str) -> str:
    return (
        f"You are {persona_id}, taking part in a structured debate on: \"{topic}\".\n"
        f"Your voice and outlook: {personality}.\n"
        "Argue honestly from that outlook. Keep every reply short and concrete."
    )


def opening_prompt(topic: str) -> str:
    return f"""You are participating in a structured debate on: "{topic}"

State your position on this topic. Be direct and concise, 4-6 sentences maximum.

Respond with ONLY valid JSON:
{{
  "dialogue": "Your opening position in your own voice. 4-6 sentences.",
  "move": "CLAIM"
}}

No text outside the JSON."""


def dialogue_turn_prompt(
    topic: str,
    recent: Sequence[DialogueTurn],
    steering_hint: str | None,
    phase: DebatePhase,
    graph_summary: str,
) -> str:
    moves = list(MOVE_DESCRIPTIONS)
    if phase < DebatePhase.CRUX_SEEKING:
        moves.remove("PROPOSE_CRUX")
    move_lines = "\n".join(f"- {move}: {MOVE_DESCRIPTIONS[move]}" for move in moves)
    steering_block = f"\n## Moderator Note\n{steering_hint}\n" if steering_hint else ""

    return f"""You are participating in a structured debate on: "{topic}"

## Positions So Far
{graph_summary}

## Recent Conversation
{format_dialogue(recent)}
{steering_block}
## Your Task
Respond naturally in your own voice. Keep it short, 2-4 sentences maximum. Respond directly to what was just said.

Available moves: {", ".join(moves)}
{move_lines}

You CAN and SHOULD concede points when the evidence or reasoning warrants it.
If you concede or narrow anything, list the exact conceding phrases you used in "concessionMarkers".

Respond with ONLY valid JSON:
{{
  "dialogue": "Your response in 2-4 sentences",
  "move": "CHALLENGE",
  "concessionMarkers": []
}}

No text outside the JSON."""


def resolution_prompt(topic: str, recent: Sequence[DialogueTurn], steering_hint: str | None) -> str:
    steering_block = f"\n## Moderator Note\n{steering_hint}\n" if steering_hint else ""
    return f"""You are wrapping up a structured debate on: "{topic}"

## Conversation
{format_dialogue(recent)}
{steering_block}
## Your Task
Summarize in 3-5 sentences:
1. What you agree with the other speakers on
2. What you still disagree about
3. What you think the core unresolved question is

Be honest and concise. If you changed your mind on anything during this debate, say so and use CONCEDE.

Respond with ONLY valid JSON:
{{
  "dialogue": "Your summary in 3-5 sentences",
  "move": "CLAIM",
  "concessionMarkers": []
}}

No text outside the JSON."""


def crystallization_prompt(
    topic: str,
    turns: Sequence[DialogueTurn],
    graph: GraphSnapshot,
    labels: dict[str, Label],
    persona_ids: Sequence[str],
) -> str:
    dialogue_block = "\n".join(
        f"  [Turn {t.turn_index}] {t.persona_id} ({t.move.value}): {t.dialogue}" for t in turns
    )
    return f"""You are analyzing a debate on "{topic}" to extract formal argument positions from recent conversation.

## Current Argument Graph
{format_graph(graph, labels)}

## Recent Dialogue (since last crystallization)
{dialogue_block}

## Instructions
Extract substantive positions from this dialogue into formal arguments.

Rules:
- Only create arguments for genuine positions with supporting reasoning, not for every sentence
- If a speaker conceded a point, list their argument in removedArgIds or narrow it in updatedArgs
- If a speaker narrowed or refined a claim, UPDATE the existing argument instead of creating a new one
- Do not duplicate a claim that already exists
- speakerId must be one of: {", ".join(persona_ids)}
- Add an attack when one argument undermines another; remove attacks that no longer hold
- Refer to existing arguments by their ids (e.g. "arg-0")
- Give new arguments the ids "arg-NEW-0", "arg-NEW-1", ... so attacks can reference them

Respond with ONLY valid JSON:
{{
  "newArgs": [
    {{"id": "arg-NEW-0", "speakerId": "persona-id", "claim": "the position", "assumptions": ["underlying assumption"]}}
  ],
  "updatedArgs": [
    {{"id": "arg-0", "claim": "updated claim if changed", "assumptions": ["updated assumptions if changed"]}}
  ],
  "removedArgIds": [],
  "newAttacks": [
    {{"fromArgId": "arg-NEW-0", "toArgId": "arg-0"}}
  ],
  "removedAttackIds": []
}}

If nothing substantive changed, return empty arrays for everything.

No text outside the JSON."""
