"""Argumentation graph store.

The store is owned by exactly one debate run. Arguments and attacks live in
insertion-ordered dicts; ``snapshot()`` hands out an immutable view for the
semantics engine and for output.
"""

import logging
from dataclasses import dataclass, replace

from .exceptions import InvariantViolation
from .models import (
    Argument,
    ArgumentUpdate,
    Attack,
    CrystallizationResult,
    GraphSnapshot,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedDiff:
    """What a diff actually changed, plus the edges that had to be dropped."""

    result: CrystallizationResult
    dropped_attacks: tuple[Attack, ...] = ()


class ArgumentGraph:
    """Mutable arguments-and-attacks store for one debate run."""

    def __init__(self) -> None:
        self._arguments: dict[str, Argument] = {}
        self._attacks: dict[str, Attack] = {}
        self._next_arg = 0
        self._next_attack = 0
        self.invariant_violations = 0

    def __len__(self) -> int:
        return len(self._arguments)

    def __contains__(self, arg_id: object) -> bool:
        return arg_id in self._arguments

    def get_argument(self, arg_id: str) -> Argument | None:
        return self._arguments.get(arg_id)

    def get_attack(self, attack_id: str) -> Attack | None:
        return self._attacks.get(attack_id)

    def next_argument_id(self) -> str:
        arg_id = f"arg-{self._next_arg}"
        self._next_arg += 1
        return arg_id

    def next_attack_id(self) -> str:
        attack_id = f"atk-{self._next_attack}"
        self._next_attack += 1
        return attack_id

    def add_argument(self, argument: Argument) -> None:
        if argument.id in self._arguments:
            raise ValueError(f"Argument {argument.id} already exists")
        self._arguments[argument.id] = argument
        self._bump_counters(argument.id)

    def update_argument(
        self,
        arg_id: str,
        claim: str | None = None,
        assumptions: frozenset[str] | None = None,
    ) -> Argument | None:
        """Edit an argument in place; identity (the id) is preserved."""
        current = self._arguments.get(arg_id)
        if current is None:
            return None
        updated = replace(
            current,
            claim=current.claim if claim is None else claim,
            assumptions=current.assumptions if assumptions is None else frozenset(assumptions),
        )
        self._arguments[arg_id] = updated
        return updated

    def remove_argument(self, arg_id: str) -> list[Attack]:
        """Remove an argument and every attack touching it. Unknown ids are ignored."""
        if self._arguments.pop(arg_id, None) is None:
            return []
        cascaded = [
            attack
            for attack in self._attacks.values()
            if attack.source_arg_id == arg_id or attack.target_arg_id == arg_id
        ]
        for attack in cascaded:
            del self._attacks[attack.id]
        return cascaded

    def add_attack(self, attack: Attack) -> None:
        missing = [
            endpoint
            for endpoint in (attack.source_arg_id, attack.target_arg_id)
            if endpoint not in self._arguments
        ]
        if missing:
            raise InvariantViolation(
                f"Attack {attack.id} references unknown argument(s): {missing}"
            )
        if attack.id in self._attacks:
            raise ValueError(f"Attack {attack.id} already exists")
        self._attacks[attack.id] = attack
        self._bump_counters(attack.id)

    def remove_attack(self, attack_id: str) -> Attack | None:
        return self._attacks.pop(attack_id, None)

    def has_edge(self, source_arg_id: str, target_arg_id: str) -> bool:
        return any(
            attack.source_arg_id == source_arg_id and attack.target_arg_id == target_arg_id
            for attack in self._attacks.values()
        )

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(
            arguments=tuple(self._arguments.values()),
            attacks=tuple(self._attacks.values()),
        )

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot) -> "ArgumentGraph":
        graph = cls()
        for argument in snapshot.arguments:
            graph.add_argument(argument)
        for attack in snapshot.attacks:
            graph.add_attack(attack)
        return graph

    def apply_diff(self, diff: CrystallizationResult) -> AppliedDiff:
        """Apply a crystallization diff as one unit.

        Order: remove arguments, update arguments, add arguments, remove
        attacks, add attacks. Attacks whose endpoints are gone by then are
        dropped and counted as invariant violations. The returned result
        holds only what was applied, so replaying it rebuilds this store.
        """
        removed_ids: list[str] = []
        for arg_id in diff.removed_arg_ids:
            if arg_id in self._arguments:
                self.remove_argument(arg_id)
                removed_ids.append(arg_id)

        updates: list[ArgumentUpdate] = []
        for update in diff.updated_args:
            if update.id not in self._arguments:
                logger.debug(f"Skipping update of unknown argument {update.id}")
                continue
            self.update_argument(update.id, update.claim, update.assumptions)
            updates.append(update)

        added_args: list[Argument] = []
        for argument in diff.new_args:
            if argument.id in self._arguments:
                logger.warning(f"Skipping duplicate argument id {argument.id}")
                continue
            self.add_argument(argument)
            added_args.append(argument)

        removed_attack_ids: list[str] = []
        for attack_id in diff.removed_attack_ids:
            if self.remove_attack(attack_id) is not None:
                removed_attack_ids.append(attack_id)

        added_attacks: list[Attack] = []
        dropped: list[Attack] = []
        for attack in diff.new_attacks:
            if self.has_edge(attack.source_arg_id, attack.target_arg_id):
                logger.debug(
                    f"Skipping duplicate attack {attack.source_arg_id} -> {attack.target_arg_id}"
                )
                continue
            try:
                self.add_attack(attack)
            except InvariantViolation as e:
                self.invariant_violations += 1
                dropped.append(attack)
                logger.warning(f"Dropped attack: {e}")
                continue
            added_attacks.append(attack)

        return AppliedDiff(
            result=CrystallizationResult(
                new_args=tuple(added_args),
                updated_args=tuple(updates),
                removed_arg_ids=tuple(removed_ids),
                new_attacks=tuple(added_attacks),
                removed_attack_ids=tuple(removed_attack_ids),
            ),
            dropped_attacks=tuple(dropped),
        )

    def _bump_counters(self, item_id: str) -> None:
        # Keep allocated ids ahead of anything inserted with an explicit id.
        prefix, _, number = item_id.rpartition("-")
        if not number.isdigit():
            return
        if prefix == "arg":
            self._next_arg = max(self._next_arg, int(number) + 1)
        elif prefix == "atk":
            self._next_attack = max(self._next_attack, int(number) + 1)
