"""Error taxonomy of the debate engine."""


class DebateEngineError(Exception):
    """Base class for debate engine errors."""


class GenerationFailure(DebateEngineError):
    """An external turn or crystallization call errored or timed out. Fatal."""

    def __init__(self, message: str, persona_id: str | None = None, turn_index: int | None = None):
        super().__init__(message)
        self.persona_id = persona_id
        self.turn_index = turn_index


class TurnGenerationError(DebateEngineError):
    """A turn generator could not produce a usable turn."""


class MalformedCrystallization(DebateEngineError):
    """A crystallization payload failed structural validation."""


class InvariantViolation(DebateEngineError):
    """A graph mutation would break a graph invariant (e.g. a dangling attack)."""


class DebateCancelled(DebateEngineError):
    """The run observed an external cancellation request between turns."""
