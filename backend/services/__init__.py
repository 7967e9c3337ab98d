"""
Service layer: scheduling, live substitutions, stat projection and aggregation.
Pure generators in scheduling; the *_service modules orchestrate persistence.
"""
from backend.errors import (
    EngineError,
    ValidationError,
    InvalidInputError,
    NotFoundError,
    StateConflictError,
    SubBudgetExhaustedError,
    InvalidOutPlayerError,
    InvalidInPlayerError,
    SecondGoalkeeperError,
    GoalkeeperSwapError,
    MatchdayNotInSaveError,
    CupRoundIncompleteError,
    NoActiveStateError,
    NoActiveMatchStateError,
)
from .schedule_service import ScheduleService
from .substitution_service import SubstitutionService
from .stats_projector import StatsProjector
from .standings_service import StandingsService
from .golden_boot_service import GoldenBootService
from .matchday_service import MatchdayFinalizer

__all__ = [
    "EngineError",
    "ValidationError",
    "InvalidInputError",
    "NotFoundError",
    "StateConflictError",
    "SubBudgetExhaustedError",
    "InvalidOutPlayerError",
    "InvalidInPlayerError",
    "SecondGoalkeeperError",
    "GoalkeeperSwapError",
    "MatchdayNotInSaveError",
    "CupRoundIncompleteError",
    "NoActiveStateError",
    "NoActiveMatchStateError",
    "ScheduleService",
    "SubstitutionService",
    "StatsProjector",
    "StandingsService",
    "GoldenBootService",
    "MatchdayFinalizer",
]
