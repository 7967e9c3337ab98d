"""
Error taxonomy shared by the repositories and services.
Services raise these synchronously and never retry; the API maps them to status codes.
"""
from __future__ import annotations


class EngineError(Exception):
    """Base for every error raised by the season-progression services."""


# ---------- Validation ----------


class ValidationError(EngineError, ValueError):
    """Malformed input (wrong team count, bad limit, ...)."""


class InvalidInputError(ValidationError):
    """Fixture generator given the wrong number of teams, or duplicate ids."""


# ---------- Not found ----------


class NotFoundError(EngineError, LookupError):
    """Missing save, match or matchday."""


# ---------- State conflicts ----------


class StateConflictError(EngineError):
    """The request is well-formed but the current state does not allow it."""


class SubBudgetExhaustedError(StateConflictError):
    """Side already made 3 substitutions."""


class InvalidOutPlayerError(StateConflictError):
    """Outgoing player is not in the side's lineup."""


class InvalidInPlayerError(StateConflictError):
    """Incoming player is not an available reserve (not on the bench, injured or sent off)."""


class SecondGoalkeeperError(StateConflictError):
    """Swap would leave two goalkeepers on the pitch."""


class GoalkeeperSwapError(StateConflictError):
    """A goalkeeper may only make way for another goalkeeper."""


class MatchdayNotInSaveError(StateConflictError):
    """Matchday belongs to a different save."""


class CupRoundIncompleteError(StateConflictError):
    """Cup round still has unplayed or drawn matches."""


# ---------- No live state ----------


class NoActiveStateError(EngineError):
    """Operation needs live state that does not exist."""


class NoActiveMatchStateError(NoActiveStateError):
    """No MatchState for the match (not kicked off, or already full time)."""
