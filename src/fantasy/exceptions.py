"""Custom exception hierarchy for the fantasy squad engine.

Every error here is an expected, caller-facing condition.  Raising one
inside a transaction rolls the transaction back, so state is unchanged.

Exception tree:
    FantasyError
    +-- SquadRuleError        (roster/transfer validation)
    |   +-- InvalidFormation  (unknown formation code)
    |   +-- BudgetExceeded    (price would exceed the starting budget)
    |   +-- SlotFull          (position has no free starter slot)
    |   +-- SlotViolation     (swap would break formation slot limits)
    |   +-- DuplicatePlayer   (player already in the squad)
    |   +-- SquadFull         (squad or bench at capacity)
    |   +-- NotAStarter       (captaincy requested for a bench player)
    |   +-- PlayerNotFound    (player not in squad / not in catalog)
    |   +-- DuplicateSquad    (user already owns a squad)
    |   +-- SquadNotFound     (no squad with that id / for that user)
    +-- MatchdayError
        +-- InvalidTransition (not the single legal next status)
        +-- MatchdayNotFound
        +-- MatchdayLocked    (raised by the calling-layer lock guard)
"""

from typing import Optional


class FantasyError(Exception):
    """Base exception for all fantasy engine errors."""

    def __init__(
        self,
        message: str,
        *,
        squad_id: Optional[int] = None,
        player_id: Optional[int] = None,
        matchday_id: Optional[int] = None,
    ):
        self.reason = message
        self.squad_id = squad_id
        self.player_id = player_id
        self.matchday_id = matchday_id
        super().__init__(message)


class SquadRuleError(FantasyError):
    """A roster or transfer operation would violate a squad rule."""

    pass


class InvalidFormation(SquadRuleError):
    pass


class BudgetExceeded(SquadRuleError):
    pass


class SlotFull(SquadRuleError):
    pass


class SlotViolation(SquadRuleError):
    """Post-swap validation failed; the swap is rolled back as a whole."""

    pass


class DuplicatePlayer(SquadRuleError):
    pass


class SquadFull(SquadRuleError):
    pass


class NotAStarter(SquadRuleError):
    pass


class PlayerNotFound(SquadRuleError):
    pass


class DuplicateSquad(SquadRuleError):
    pass


class SquadNotFound(SquadRuleError):
    pass


class MatchdayError(FantasyError):
    """Base for matchday lifecycle errors."""

    pass


class InvalidTransition(MatchdayError):
    pass


class MatchdayNotFound(MatchdayError):
    pass


class MatchdayLocked(MatchdayError):
    """Squad changes are closed for the current matchday.

    Raised by ``MatchdayService.ensure_unlocked()``, which the calling
    layer runs before every roster or transfer mutation.  The engines
    themselves do not check the lock.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[str] = None,
        matchday_name: Optional[str] = None,
        matchday_id: Optional[int] = None,
    ):
        self.status = status
        self.matchday_name = matchday_name
        super().__init__(message, matchday_id=matchday_id)
