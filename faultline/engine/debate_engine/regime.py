"""Post-run classification of the disagreement regime."""

from collections.abc import Sequence

from .models import Camp, Concession, Crux
from .types import Regime


class RegimeClassifier:
    """Reads the final camps and concession trail and yields a verdict plus a templated sentence."""

    def classify(
        self,
        camps: Sequence[Camp],
        preferred: Sequence[frozenset[str]],
        persona_ids: Sequence[str],
        concessions: Sequence[Concession],
        phase3_started_at: int | None,
        crux: Crux | None,
        speakers: dict[str, str],
    ) -> tuple[Regime, str]:
        regime = self._regime(camps, preferred, persona_ids, concessions, phase3_started_at, speakers)
        return regime, self.describe(regime, camps, crux)

    def _regime(
        self,
        camps: Sequence[Camp],
        preferred: Sequence[frozenset[str]],
        persona_ids: Sequence[str],
        concessions: Sequence[Concession],
        phase3_started_at: int | None,
        speakers: dict[str, str],
    ) -> Regime:
        if len(camps) == 1:
            return Regime.CONSENSUS

        everyone = set(persona_ids)
        if preferred and all(
            {speakers[arg_id] for arg_id in extension if arg_id in speakers} >= everyone
            for extension in preferred
        ):
            return Regime.CONSENSUS

        if len(camps) >= 2 and self._pairwise_disjoint(camps):
            if phase3_started_at is None:
                late_concessions = list(concessions)
            else:
                late_concessions = [c for c in concessions if c.turn_index > phase3_started_at]
            if not late_concessions:
                return Regime.POLARIZED

        return Regime.PARTIAL

    @staticmethod
    def _pairwise_disjoint(camps: Sequence[Camp]) -> bool:
        seen: set[str] = set()
        for camp in camps:
            personas = set(camp.persona_ids)
            if personas & seen:
                return False
            seen |= personas
        return True

    @staticmethod
    def describe(regime: Regime, camps: Sequence[Camp], crux: Crux | None) -> str:
        crux_text = f'the crux "{crux.statement}"' if crux else "no named crux"
        sizes = ", ".join(str(len(camp.argument_ids)) for camp in camps) or "0"

        if regime is Regime.CONSENSUS:
            if len(camps) == 1:
                personas = ", ".join(camps[0].persona_ids) or "nobody"
                return (
                    f"Consensus: a single camp of {len(camps[0].argument_ids)} argument(s) "
                    f"held by {personas}, with {crux_text}."
                )
            return f"Consensus: every participant appears in each of {len(camps)} camps (sizes {sizes}), with {crux_text}."

        if regime is Regime.POLARIZED:
            return (
                f"Polarized: {len(camps)} camps of sizes {sizes} share no speakers "
                f"and nobody conceded after crux seeking began; disagreement rests on {crux_text}."
            )

        return f"Partial agreement: {len(camps)} camp(s) of sizes {sizes} overlap in part, around {crux_text}."
