"""Acceptability semantics over an immutable graph snapshot.

Everything here is a pure function of a ``GraphSnapshot``. Arguments are
addressed by their position in ``graph.arguments`` and attacks are turned
into per-index attacker/target lists before any computation.
"""

import logging
from collections.abc import Iterable, Sequence

from .models import Argument, Camp, GraphSnapshot
from .types import Label

logger = logging.getLogger(__name__)

DEFAULT_MAX_SEARCH_NODES = 50_000


def _index(graph: GraphSnapshot) -> tuple[dict[str, int], list[list[int]], list[list[int]]]:
    """Return (id -> index, attackers per index, targets per index)."""
    positions = {argument.id: i for i, argument in enumerate(graph.arguments)}
    attackers: list[list[int]] = [[] for _ in graph.arguments]
    targets: list[list[int]] = [[] for _ in graph.arguments]
    for attack in graph.attacks:
        source = positions.get(attack.source_arg_id)
        target = positions.get(attack.target_arg_id)
        if source is None or target is None:
            continue
        attackers[target].append(source)
        targets[source].append(target)
    return positions, attackers, targets


def label(graph: GraphSnapshot, order: Sequence[str] | None = None) -> dict[str, Label]:
    """Grounded labelling by fixpoint iteration.

    Every argument starts UNDEC. A pass marks IN each UNDEC argument whose
    attackers are all OUT, and OUT each UNDEC argument with an IN attacker.
    Labels only ever leave UNDEC, so the fixpoint reached is the same for any
    ``order`` in which arguments are visited.
    """
    positions, attackers, _ = _index(graph)
    if order is None:
        visit = list(range(len(graph.arguments)))
    else:
        visit = [positions[arg_id] for arg_id in order if arg_id in positions]
        # arguments missing from ``order`` are visited after the listed ones
        listed = set(visit)
        visit += [i for i in range(len(graph.arguments)) if i not in listed]

    labels = [Label.UNDEC] * len(graph.arguments)
    changed = True
    while changed:
        changed = False
        for i in visit:
            if labels[i] is not Label.UNDEC:
                continue
            attacker_labels = [labels[a] for a in attackers[i]]
            if all(lbl is Label.OUT for lbl in attacker_labels):
                labels[i] = Label.IN
                changed = True
            elif any(lbl is Label.IN for lbl in attacker_labels):
                labels[i] = Label.OUT
                changed = True

    return {argument.id: labels[i] for i, argument in enumerate(graph.arguments)}


def grounded_extension(
    graph: GraphSnapshot, labels: dict[str, Label] | None = None
) -> frozenset[str]:
    labels = labels if labels is not None else label(graph)
    return frozenset(arg_id for arg_id, lbl in labels.items() if lbl is Label.IN)


def label_counts(labels: dict[str, Label]) -> dict[Label, int]:
    counts = {lbl: 0 for lbl in Label}
    for lbl in labels.values():
        counts[lbl] += 1
    return counts


def is_conflict_free(graph: GraphSnapshot, candidate: Iterable[str]) -> bool:
    members = set(candidate)
    return not any(
        attack.source_arg_id in members and attack.target_arg_id in members
        for attack in graph.attacks
    )


def is_admissible(graph: GraphSnapshot, candidate: Iterable[str]) -> bool:
    """Conflict-free and every attacker of a member is attacked by a member."""
    members = set(candidate)
    if not is_conflict_free(graph, members):
        return False
    attacked_by_members = {
        attack.target_arg_id for attack in graph.attacks if attack.source_arg_id in members
    }
    return all(
        attack.source_arg_id in attacked_by_members
        for attack in graph.attacks
        if attack.target_arg_id in members
    )


def extensions(
    graph: GraphSnapshot,
    labels: dict[str, Label] | None = None,
    max_nodes: int = DEFAULT_MAX_SEARCH_NODES,
) -> list[frozenset[str]]:
    """Preferred extensions (maximal admissible sets).

    IN arguments belong to every preferred extension and OUT arguments to
    none, so only the UNDEC part of the graph is searched. The search walks
    conflict-free subsets depth first and keeps the maximal admissible ones.
    If it exceeds ``max_nodes`` it falls back to greedy growth from singleton
    seeds. Results are deduplicated and sorted; there is always at least one.
    """
    labels = labels if labels is not None else label(graph)
    positions, attackers, targets = _index(graph)
    grounded = {positions[arg_id] for arg_id, lbl in labels.items() if lbl is Label.IN}
    undecided = [
        positions[argument.id]
        for argument in graph.arguments
        if labels.get(argument.id) is Label.UNDEC
    ]

    def admissible(members: set[int]) -> bool:
        defended = {t for m in members for t in targets[m]}
        for m in members:
            for a in attackers[m]:
                if a in members or a not in defended:
                    return False
        return True

    found = _exhaustive_search(undecided, grounded, attackers, admissible, max_nodes)
    if found is None:
        logger.warning(
            f"Preferred extension search exceeded {max_nodes} nodes over "
            f"{len(undecided)} undecided arguments; using greedy fallback"
        )
        found = _greedy_search(undecided, grounded, admissible)

    maximal = _maximal_sets(found)
    ids = [argument.id for argument in graph.arguments]
    result = {frozenset(ids[i] for i in members) for members in maximal}
    return sorted(result, key=lambda ext: (-len(ext), sorted(ext)))


def _exhaustive_search(
    undecided: list[int],
    grounded: set[int],
    attackers: list[list[int]],
    admissible,
    max_nodes: int,
) -> list[frozenset[int]] | None:
    found: list[frozenset[int]] = []
    nodes = 0
    chosen: set[int] = set(grounded)

    def conflicts(candidate: int) -> bool:
        if candidate in attackers[candidate]:
            return True
        return any(
            other in attackers[candidate] or candidate in attackers[other]
            for other in chosen
        )

    def walk(position: int) -> bool:
        nonlocal nodes
        nodes += 1
        if nodes > max_nodes:
            return False
        if position == len(undecided):
            if admissible(chosen):
                found.append(frozenset(chosen))
            return True
        candidate = undecided[position]
        if not conflicts(candidate):
            chosen.add(candidate)
            completed = walk(position + 1)
            chosen.discard(candidate)
            if not completed:
                return False
        return walk(position + 1)

    if not walk(0):
        return None
    return found


def _greedy_search(
    undecided: list[int], grounded: set[int], admissible
) -> list[frozenset[int]]:
    seeds = [set(grounded)] + [set(grounded) | {u} for u in undecided]
    found: list[frozenset[int]] = []
    for seed in seeds:
        if not admissible(seed):
            continue
        members = set(seed)
        for candidate in undecided:
            if candidate in members:
                continue
            members.add(candidate)
            if not admissible(members):
                members.discard(candidate)
        found.append(frozenset(members))
    return found


def _maximal_sets(sets: list[frozenset[int]]) -> list[frozenset[int]]:
    unique = set(sets)
    return [s for s in unique if not any(s < other for other in unique)]


def contested_frontier(graph: GraphSnapshot, labels: dict[str, Label]) -> int:
    """Count UNDEC arguments with an attack edge to or from an IN or another UNDEC argument."""
    live = {Label.IN, Label.UNDEC}
    contested: set[str] = set()
    for attack in graph.attacks:
        if attack.source_arg_id == attack.target_arg_id:
            continue
        source = labels.get(attack.source_arg_id)
        target = labels.get(attack.target_arg_id)
        if source is Label.UNDEC and target in live:
            contested.add(attack.source_arg_id)
        if target is Label.UNDEC and source in live:
            contested.add(attack.target_arg_id)
    return len(contested)


def build_camps(
    graph: GraphSnapshot,
    preferred: Sequence[frozenset[str]],
    persona_ids: Sequence[str],
) -> list[Camp]:
    """One camp per non-empty preferred extension, grouped by speaker."""
    speakers = {argument.id: argument.speaker_id for argument in graph.arguments}
    order = {argument.id: i for i, argument in enumerate(graph.arguments)}
    camps: list[Camp] = []
    for index, extension in enumerate(preferred):
        if not extension:
            continue
        argument_ids = tuple(sorted(extension, key=lambda arg_id: order.get(arg_id, 0)))
        counts: dict[str, int] = {}
        for arg_id in argument_ids:
            speaker = speakers[arg_id]
            counts[speaker] = counts.get(speaker, 0) + 1
        personas = tuple(p for p in persona_ids if p in counts) + tuple(
            sorted(p for p in counts if p not in persona_ids)
        )
        camps.append(
            Camp(
                extension_index=index,
                argument_ids=argument_ids,
                persona_ids=personas,
                argument_counts=counts,
            )
        )
    return camps


def _rank_assumptions(
    disputed: Iterable[Argument], degree: dict[str, int], limit: int
) -> list[str]:
    """Order assumptions by how many disputed arguments rest on them, then by attack degree."""
    dependents: dict[str, set[str]] = {}
    for argument in disputed:
        for assumption in argument.assumptions:
            dependents.setdefault(assumption, set()).add(argument.id)

    ranked = sorted(
        dependents.items(),
        key=lambda item: (
            -len(item[1]),
            -sum(degree.get(arg_id, 0) for arg_id in item[1]),
            item[0],
        ),
    )
    return [assumption for assumption, _ in ranked[:limit]]


def crux_assumptions(
    graph: GraphSnapshot,
    labels: dict[str, Label],
    preferred: Sequence[frozenset[str]] = (),
    limit: int = 5,
) -> list[str]:
    """Assumptions that separate the camps.

    Tried in order until one yields something:

    1. assumptions of arguments in exactly one of the first two preferred
       extensions;
    2. assumptions of UNDEC arguments;
    3. claims of attacked arguments, most attacking speakers first.
    """
    degree: dict[str, int] = {}
    for attack in graph.attacks:
        for endpoint in (attack.source_arg_id, attack.target_arg_id):
            degree[endpoint] = degree.get(endpoint, 0) + 1

    if len(preferred) >= 2:
        divided = preferred[0] ^ preferred[1]
        assumptions = _rank_assumptions(
            (argument for argument in graph.arguments if argument.id in divided), degree, limit
        )
        if assumptions:
            return assumptions

    assumptions = _rank_assumptions(
        (argument for argument in graph.arguments if labels.get(argument.id) is Label.UNDEC),
        degree,
        limit,
    )
    if assumptions:
        return assumptions

    speakers = graph.argument_map()
    attacking_speakers: dict[str, set[str]] = {}
    for attack in graph.attacks:
        source = speakers.get(attack.source_arg_id)
        if source is not None and attack.target_arg_id in speakers:
            attacking_speakers.setdefault(attack.target_arg_id, set()).add(source.speaker_id)
    targets = sorted(
        attacking_speakers,
        key=lambda arg_id: (-len(attacking_speakers[arg_id]), -degree.get(arg_id, 0), arg_id),
    )
    claims: list[str] = []
    for arg_id in targets:
        claim = speakers[arg_id].claim
        if claim not in claims:
            claims.append(claim)
    return claims[:limit]
