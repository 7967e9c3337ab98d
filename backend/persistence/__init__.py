"""
Persistence layer for save data.
No business logic, only read/write interfaces.
"""
from .db import get_connection, init_db, set_db_path, get_db_path
from .repositories import (
    SaveRepository,
    TeamRepository,
    PlayerRepository,
    MatchdayRepository,
    MatchRepository,
    MatchEventRepository,
    MatchStateRepository,
    PlayerMatchStatRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "set_db_path",
    "get_db_path",
    "SaveRepository",
    "TeamRepository",
    "PlayerRepository",
    "MatchdayRepository",
    "MatchRepository",
    "MatchEventRepository",
    "MatchStateRepository",
    "PlayerMatchStatRepository",
]
