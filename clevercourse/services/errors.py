"""Domain errors raised by the gamification engine.

The orchestrator turns these into structured results; they never reach the
HTTP layer as exceptions.
"""


class GamificationError(Exception):
    """Base class for gamification failures."""

    code = "gamification_error"


class InsufficientSparksError(GamificationError):
    """Raised when a Sparks spend exceeds the user's balance."""

    code = "insufficient_sparks"

    def __init__(self, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(f"Not enough Sparks: have {balance}, need {required}")


class MaxFreezesReachedError(GamificationError):
    """Raised when buying a freeze would exceed MAX_FREEZES."""

    code = "max_freezes_reached"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Already holding the maximum of {limit} streak freezes")


class InvalidRewardReasonError(GamificationError, ValueError):
    """Raised for reasons that are unknown or reserved for the engine."""

    code = "invalid_reason"
