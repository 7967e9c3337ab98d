"""
Schedule persistence: league matchdays/matches and the cup bracket.

League matchdays 1..14 of a season are shared by every division of the save;
each call adds one division's 56 matches. Cup rounds land on matchdays 3..21
and can be seeded eagerly (placeholder winners) or round by round from results.
cup_log reads the bracket back with results.
"""
from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict

from backend.models import CupLogMatch, CupRound, Match, Matchday, MatchdayType
from backend.persistence.repositories import (
    SaveRepository,
    TeamRepository,
    MatchdayRepository,
    MatchRepository,
)
from backend.rng import SeededRNG
from backend.errors import (
    CupRoundIncompleteError,
    InvalidInputError,
    MatchdayNotInSaveError,
    NotFoundError,
)
from backend.services.scheduling import (
    CUP_MATCHDAY_STEP,
    CUP_ROUND_LABELS,
    cup_round_index,
    cup_round_label,
    draw_cup_first_round,
    generate_balanced_league_fixtures,
    generate_cup_fixtures,
    generate_league_fixtures,
    pair_next_cup_round,
)

logger = logging.getLogger(__name__)


class ScheduleService:
    """Writes generated fixtures and drives cup progression from real results."""

    def __init__(self) -> None:
        self._save_repo = SaveRepository()
        self._team_repo = TeamRepository()
        self._matchday_repo = MatchdayRepository()
        self._match_repo = MatchRepository()

    def _require_save(self, conn: sqlite3.Connection, save_id: str) -> None:
        if self._save_repo.get(conn, save_id) is None:
            raise NotFoundError(f"Save not found: {save_id}")

    def _require_teams_in_save(self, conn: sqlite3.Connection, save_id: str, team_ids: list[str]):
        teams = self._team_repo.get_many(conn, team_ids)
        missing = [t for t in team_ids if t not in teams or teams[t].save_id != save_id]
        if missing:
            raise NotFoundError(f"Teams not found in save {save_id}: {missing[:5]}")
        return teams

    def _get_or_create_matchday(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        season: int,
        type: MatchdayType,
        number: int,
        round_label: str | None = None,
    ) -> Matchday:
        existing = self._matchday_repo.get_by_slot(conn, save_id, season, type, number)
        if existing is not None:
            return existing
        return self._matchday_repo.create(conn, save_id, number, type, season=season, round_label=round_label)

    # ---------- League ----------

    def create_league_schedule(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        team_ids: list[str],
        season: int = 1,
        rng: SeededRNG | None = None,
        balanced: bool = False,
    ) -> list[Match]:
        """
        Persist one division's double round-robin. Teams must all be in the save
        and share a division. Returns the created matches in matchday order.
        No-op (returns their existing matches) when any of the teams already has
        league matches that season.
        """
        self._require_save(conn, save_id)
        teams = self._require_teams_in_save(conn, save_id, team_ids)
        divisions = {teams[t].division for t in team_ids}
        if len(divisions) > 1:
            raise InvalidInputError(f"League teams must share a division, got {sorted(divisions)}")

        league_mds = self._matchday_repo.list_by_save(conn, save_id, type=MatchdayType.LEAGUE, season=season)
        if league_mds:
            wanted = set(team_ids)
            scheduled = [
                m for m in self._match_repo.list_by_matchdays(conn, [md.id for md in league_mds])
                if m.home_team_id in wanted or m.away_team_id in wanted
            ]
            if scheduled:
                logger.info(
                    "League already scheduled: save=%s season=%s division=%s",
                    save_id, season, next(iter(divisions)),
                )
                return scheduled

        if balanced:
            fixtures = generate_balanced_league_fixtures(team_ids)
        else:
            fixtures = generate_league_fixtures(team_ids, rng)

        matchdays: dict[int, Matchday] = {}
        created: list[Match] = []
        for f in fixtures:
            md = matchdays.get(f.matchday_number)
            if md is None:
                md = self._get_or_create_matchday(conn, save_id, season, MatchdayType.LEAGUE, f.matchday_number)
                matchdays[f.matchday_number] = md
            created.append(
                self._match_repo.create(
                    conn, save_id, md.id, f.home_team_id, f.away_team_id, commit=False
                )
            )
        conn.commit()
        logger.info(
            "League schedule created: save=%s season=%s division=%s matches=%d",
            save_id, season, next(iter(divisions)), len(created),
        )
        return created

    # ---------- Cup ----------

    def seed_cup(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        team_ids: list[str],
        season: int = 1,
        rng: SeededRNG | None = None,
        eager: bool = False,
    ) -> list[Match]:
        """
        Write the cup for a season. eager=True writes all 7 rounds with placeholder
        winners; otherwise only round 1. No-op (returns existing matches) when the
        season already has cup matchdays.
        """
        self._require_save(conn, save_id)
        existing = self._matchday_repo.list_by_save(conn, save_id, type=MatchdayType.CUP, season=season)
        if existing:
            logger.info("Cup already seeded: save=%s season=%s", save_id, season)
            return self._match_repo.list_by_matchdays(conn, [md.id for md in existing])

        self._require_teams_in_save(conn, save_id, team_ids)
        fixtures = generate_cup_fixtures(team_ids, rng) if eager else draw_cup_first_round(team_ids, rng)

        by_number: dict[int, list] = defaultdict(list)
        for f in fixtures:
            by_number[f.matchday_number].append(f)

        created: list[Match] = []
        for number in sorted(by_number):
            label = cup_round_label(cup_round_index(number))
            md = self._get_or_create_matchday(conn, save_id, season, MatchdayType.CUP, number, label)
            for f in by_number[number]:
                created.append(
                    self._match_repo.create(
                        conn, save_id, md.id, f.home_team_id, f.away_team_id, commit=False
                    )
                )
        conn.commit()
        logger.info(
            "Cup seeded: save=%s season=%s rounds=%d matches=%d eager=%s",
            save_id, season, len(by_number), len(created), eager,
        )
        return created

    def cup_round_winners(self, conn: sqlite3.Connection, matchday_id: str) -> list[str]:
        """Winners of a cup round in bracket order. Every match must be played and decisive."""
        md = self._matchday_repo.get(conn, matchday_id)
        if md is None:
            raise NotFoundError(f"Matchday not found: {matchday_id}")
        if md.type != MatchdayType.CUP:
            raise InvalidInputError(f"Matchday {matchday_id} is not a cup round")
        matches = self._match_repo.list_by_matchday(conn, matchday_id)
        if not matches:
            raise CupRoundIncompleteError(f"Cup round {matchday_id} has no matches")

        winners: list[str] = []
        for m in matches:
            if not m.played or m.home_goals is None or m.away_goals is None:
                raise CupRoundIncompleteError(f"Cup match {m.id} has not been played")
            if m.home_goals == m.away_goals:
                raise CupRoundIncompleteError(f"Cup match {m.id} ended level; a winner is required")
            winners.append(m.home_team_id if m.home_goals > m.away_goals else m.away_team_id)
        return winners

    def advance_cup_round(
        self, conn: sqlite3.Connection, save_id: str, matchday_id: str
    ) -> Matchday | None:
        """
        Build the next round from this round's real winners, 3 matchdays later.
        Idempotent: an existing next round is returned, and any unplayed
        placeholder pairings in it are corrected to the real winners.
        Returns None once the final has been decided.
        """
        md = self._matchday_repo.get(conn, matchday_id)
        if md is None:
            raise NotFoundError(f"Matchday not found: {matchday_id}")
        if md.save_id != save_id:
            raise MatchdayNotInSaveError(f"Matchday {matchday_id} does not belong to save {save_id}")

        winners = self.cup_round_winners(conn, matchday_id)
        if len(winners) == 1:
            logger.info("Cup decided: save=%s season=%s champion=%s", save_id, md.season, winners[0])
            return None

        next_number = md.number + CUP_MATCHDAY_STEP
        fixtures = pair_next_cup_round(winners, next_number)
        next_index = cup_round_index(next_number)
        label = CUP_ROUND_LABELS[next_index] if next_index < len(CUP_ROUND_LABELS) else None
        next_md = self._get_or_create_matchday(conn, save_id, md.season, MatchdayType.CUP, next_number, label)

        existing = self._match_repo.list_by_matchday(conn, next_md.id)
        if existing:
            corrected = 0
            for m, f in zip(existing, fixtures):
                if m.played:
                    continue
                if (m.home_team_id, m.away_team_id) != (f.home_team_id, f.away_team_id):
                    self._match_repo.update_teams(conn, m.id, f.home_team_id, f.away_team_id)
                    corrected += 1
            if corrected:
                logger.info("Cup round corrected from results: matchday=%s pairings=%d", next_md.id, corrected)
            return next_md

        for f in fixtures:
            self._match_repo.create(conn, save_id, next_md.id, f.home_team_id, f.away_team_id, commit=False)
        conn.commit()
        logger.info(
            "Cup round advanced: save=%s matchday=%d -> %d matches=%d",
            save_id, md.number, next_number, len(fixtures),
        )
        return next_md

    def cup_log(self, conn: sqlite3.Connection, save_id: str, season: int | None = None) -> list[CupRound]:
        """
        Cup rounds of a season in matchday order, each with its pairings in bracket
        order and results so far. season None means the save's latest season.
        """
        self._require_save(conn, save_id)
        if season is None:
            season = self._matchday_repo.max_season(conn, save_id) or 1
        rounds: list[CupRound] = []
        mds = self._matchday_repo.list_by_save(conn, save_id, type=MatchdayType.CUP, season=season)
        for md in mds:
            matches = self._match_repo.list_by_matchday(conn, md.id)
            teams = self._team_repo.get_many(
                conn, [m.home_team_id for m in matches] + [m.away_team_id for m in matches]
            )
            names = {tid: t.name for tid, t in teams.items()}
            rounds.append(
                CupRound(
                    matchday_id=md.id,
                    matchday_number=md.number,
                    round_label=md.round_label or cup_round_label(cup_round_index(md.number)),
                    matches=[
                        CupLogMatch(
                            match_id=m.id,
                            home_team_id=m.home_team_id,
                            away_team_id=m.away_team_id,
                            home_team_name=names.get(m.home_team_id, m.home_team_id),
                            away_team_name=names.get(m.away_team_id, m.away_team_id),
                            home_goals=m.home_goals,
                            away_goals=m.away_goals,
                            played=m.played,
                        )
                        for m in matches
                    ],
                )
            )
        return rounds
