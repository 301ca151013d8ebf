"""Convergence detection over the contested-frontier history."""

from collections.abc import Sequence
from dataclasses import dataclass

from .models import Concession


@dataclass(frozen=True)
class ConvergenceResult:
    converged: bool
    reason: str | None = None


class ConvergenceDetector:
    """Converged when, over the last K turns, the frontier never grew and nobody conceded."""

    def __init__(self, window: int = 4):
        if window < 1:
            raise ValueError("Convergence window must be at least 1")
        self.window = window

    def check(
        self,
        frontier_history: Sequence[int],
        concessions: Sequence[Concession],
        last_turn_index: int,
    ) -> ConvergenceResult:
        if len(frontier_history) < self.window:
            return ConvergenceResult(
                False, f"Only {len(frontier_history)} of {self.window} turns observed"
            )

        recent = list(frontier_history[-self.window:])
        for earlier, later in zip(recent, recent[1:]):
            if later > earlier:
                return ConvergenceResult(False, f"Contested frontier grew from {earlier} to {later}")

        cutoff = last_turn_index - self.window
        recent_concessions = [c for c in concessions if c.turn_index > cutoff]
        if recent_concessions:
            return ConvergenceResult(
                False, f"{len(recent_concessions)} concession(s) in the last {self.window} turns"
            )

        return ConvergenceResult(
            True,
            f"Contested frontier held at {recent[-1]} with no concessions for {self.window} turns",
        )
