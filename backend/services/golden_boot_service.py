"""
Golden Boot: top scorers of a save, per season or across all seasons.

Fast path sums projected PlayerMatchStat goals. When that yields nothing
(stats not projected yet) the same ranking is computed from raw GOAL events.
Both paths order by goals desc, then player id asc.
"""
from __future__ import annotations

import logging
import sqlite3

from backend.models import GoldenBootRow, Scope
from backend.persistence.repositories import (
    SaveRepository,
    TeamRepository,
    PlayerRepository,
    MatchdayRepository,
    MatchEventRepository,
    PlayerMatchStatRepository,
)
from backend.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_GOLDEN_BOOT_LIMIT = 10


def placeholder_name(player_id: str) -> str:
    return f"Player #{player_id}"


class GoldenBootService:
    def __init__(self) -> None:
        self._save_repo = SaveRepository()
        self._team_repo = TeamRepository()
        self._player_repo = PlayerRepository()
        self._matchday_repo = MatchdayRepository()
        self._event_repo = MatchEventRepository()
        self._stat_repo = PlayerMatchStatRepository()

    def _validate(self, conn: sqlite3.Connection, save_id: str, scope: Scope | str, limit: int) -> Scope:
        try:
            scope = Scope(scope)
        except ValueError:
            raise InvalidInputError(f"Unknown scope: {scope!r}") from None
        if limit < 1:
            raise InvalidInputError(f"limit must be >= 1, got {limit}")
        if self._save_repo.get(conn, save_id) is None:
            raise NotFoundError(f"Save not found: {save_id}")
        return scope

    def _rank(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        season: int | None,
        scope: Scope,
        limit: int,
    ) -> list[GoldenBootRow]:
        totals = self._stat_repo.sum_goals_by_player(
            conn, save_id, season=season, matchday_type=scope.matchday_type, limit=limit
        )
        if not totals:
            totals = self._event_repo.count_goals_by_player(
                conn, save_id, season=season, matchday_type=scope.matchday_type, limit=limit
            )
            if totals:
                logger.debug("Golden boot from raw events: save=%s season=%s scope=%s", save_id, season, scope.value)
        return self._decorate(conn, totals)

    def _decorate(self, conn: sqlite3.Connection, totals: list[tuple[str, int]]) -> list[GoldenBootRow]:
        """Join display metadata. Unknown players keep their rank under a placeholder name."""
        players = self._player_repo.get_many(conn, [pid for pid, _ in totals])
        teams = self._team_repo.get_many(
            conn, [p.team_id for p in players.values() if p.team_id is not None]
        )
        rows: list[GoldenBootRow] = []
        for rank, (pid, goals) in enumerate(totals, start=1):
            player = players.get(pid)
            team = teams.get(player.team_id) if player and player.team_id else None
            rows.append(
                GoldenBootRow(
                    rank=rank,
                    player_id=pid,
                    name=player.name if player else placeholder_name(pid),
                    team_id=player.team_id if player else None,
                    team_name=team.name if team else None,
                    position=player.position if player else None,
                    goals=goals,
                )
            )
        return rows

    def top_scorers(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        season: int | None = None,
        scope: Scope | str = Scope.ALL,
        limit: int = DEFAULT_GOLDEN_BOOT_LIMIT,
    ) -> list[GoldenBootRow]:
        """Season ranking. season=None resolves to the save's latest season (1 if none)."""
        scope = self._validate(conn, save_id, scope, limit)
        if season is None:
            season = self._matchday_repo.max_season(conn, save_id) or 1
        return self._rank(conn, save_id, season, scope, limit)

    def historical_top_scorers(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        scope: Scope | str = Scope.ALL,
        limit: int = DEFAULT_GOLDEN_BOOT_LIMIT,
    ) -> list[GoldenBootRow]:
        """All-time ranking across every season of the save."""
        scope = self._validate(conn, save_id, scope, limit)
        return self._rank(conn, save_id, None, scope, limit)
