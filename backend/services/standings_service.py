"""
League tables recomputed from played matchdays.

Only matchdays flagged played contribute, and they contribute every match;
a partially played round counts for nothing. Results are never cached.
Ordering: points desc, goal difference desc, goals for desc, team id asc.
"""
from __future__ import annotations

import logging
import sqlite3

from backend.models import DivisionTier, Match, MatchdayType, Scope, StandingRow
from backend.persistence.repositories import (
    SaveRepository,
    TeamRepository,
    MatchdayRepository,
    MatchRepository,
)
from backend.errors import InvalidInputError, MatchdayNotInSaveError, NotFoundError

logger = logging.getLogger(__name__)

POINTS_WIN = 3
POINTS_DRAW = 1
POINTS_LOSS = 0

LEAGUE_DIVISIONS = (DivisionTier.D1, DivisionTier.D2, DivisionTier.D3, DivisionTier.D4)


def standing_sort_key(row: StandingRow) -> tuple:
    return (-row.points, -row.goal_difference, -row.goals_for, row.team_id)


def _apply(row: StandingRow, scored: int, conceded: int) -> None:
    row.played += 1
    row.goals_for += scored
    row.goals_against += conceded
    if scored > conceded:
        row.won += 1
        row.points += POINTS_WIN
    elif scored == conceded:
        row.drawn += 1
        row.points += POINTS_DRAW
    else:
        row.lost += 1
        row.points += POINTS_LOSS


def fold_matches(matches: list[Match], rows: dict[str, StandingRow] | None = None) -> list[StandingRow]:
    """
    Fold match results into standing rows and sort them. Missing goals count
    as 0. Input order does not affect the output.
    """
    rows = dict(rows) if rows else {}
    for m in matches:
        home = rows.setdefault(m.home_team_id, StandingRow(team_id=m.home_team_id))
        away = rows.setdefault(m.away_team_id, StandingRow(team_id=m.away_team_id))
        hg = m.home_goals or 0
        ag = m.away_goals or 0
        _apply(home, hg, ag)
        _apply(away, ag, hg)
    return sorted(rows.values(), key=standing_sort_key)


def _parse_scope(scope: Scope | str) -> Scope:
    try:
        return Scope(scope)
    except ValueError:
        raise InvalidInputError(f"Unknown scope: {scope!r}") from None


class StandingsService:
    """Standings for a save, optionally narrowed by matchday type and season."""

    def __init__(self) -> None:
        self._save_repo = SaveRepository()
        self._team_repo = TeamRepository()
        self._matchday_repo = MatchdayRepository()
        self._match_repo = MatchRepository()

    def _played_matches(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        matchday_type: MatchdayType | None,
        season: int | None,
    ) -> list[Match]:
        played = self._matchday_repo.list_by_save(
            conn, save_id, type=matchday_type, season=season, played_only=True
        )
        return self._match_repo.list_by_matchdays(conn, [md.id for md in played])

    def compute_standings(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        scope: Scope | str = Scope.ALL,
        season: int | None = None,
    ) -> list[StandingRow]:
        """Rows for every team that appears in a played matchday's matches."""
        scope = _parse_scope(scope)
        if self._save_repo.get(conn, save_id) is None:
            raise NotFoundError(f"Save not found: {save_id}")
        return fold_matches(self._played_matches(conn, save_id, scope.matchday_type, season))

    def division_tables(
        self, conn: sqlite3.Connection, save_id: str, season: int | None = None
    ) -> dict[str, list[StandingRow]]:
        """
        League-only tables per division D1..D4. Every team of the division is
        listed; teams yet to play get a zero row.
        """
        if self._save_repo.get(conn, save_id) is None:
            raise NotFoundError(f"Save not found: {save_id}")
        matches = self._played_matches(conn, save_id, MatchdayType.LEAGUE, season)
        tables: dict[str, list[StandingRow]] = {}
        for division in LEAGUE_DIVISIONS:
            teams = self._team_repo.list_by_save(conn, save_id, division=division.value)
            team_ids = {t.id for t in teams}
            seed = {t.id: StandingRow(team_id=t.id) for t in teams}
            own = [m for m in matches if m.home_team_id in team_ids and m.away_team_id in team_ids]
            tables[division.value] = fold_matches(own, seed)
        return tables

    def finalize_matchday(
        self, conn: sqlite3.Connection, save_id: str, matchday_id: str
    ) -> tuple[list[StandingRow], int]:
        """
        Lock the matchday as played (one-way; a second call leaves the flag alone)
        and return a fresh standings preview with the round's match count.
        """
        md = self._matchday_repo.get(conn, matchday_id)
        if md is None:
            raise NotFoundError(f"Matchday not found: {matchday_id}")
        if md.save_id != save_id:
            raise MatchdayNotInSaveError(f"Matchday {matchday_id} does not belong to save {save_id}")
        if self._matchday_repo.mark_played(conn, matchday_id):
            logger.info("Matchday finalized: save=%s matchday=%s number=%d", save_id, matchday_id, md.number)
        else:
            logger.info("Matchday already finalized: save=%s matchday=%s", save_id, matchday_id)
        count = len(self._match_repo.list_by_matchday(conn, matchday_id))
        return self.compute_standings(conn, save_id), count
