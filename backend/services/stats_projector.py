"""
Project a match's event log into per-player match stats.

Full recomputation: every run overwrites the match's stat rows, so projecting
an unchanged log twice leaves identical rows. The event -> counter table must
name every MatchEventType; None means the event is deliberately not tallied.
"""
from __future__ import annotations

import logging
import sqlite3

from backend.models import MatchEvent, MatchEventType, PlayerMatchStat, PlayerTotals
from backend.persistence.repositories import (
    SaveRepository,
    PlayerRepository,
    MatchdayRepository,
    MatchRepository,
    MatchEventRepository,
    PlayerMatchStatRepository,
)
from backend.errors import NotFoundError

logger = logging.getLogger(__name__)

# YELLOW and SUB carry no counter.
EVENT_COUNTERS: dict[MatchEventType, str | None] = {
    MatchEventType.GOAL: "goals",
    MatchEventType.ASSIST: "assists",
    MatchEventType.YELLOW: None,
    MatchEventType.RED: "red",
    MatchEventType.INJURY: "injuries",
    MatchEventType.SUB: None,
}

_unmapped = set(MatchEventType) - set(EVENT_COUNTERS)
if _unmapped:
    raise RuntimeError(f"Event types without a stat mapping: {sorted(t.value for t in _unmapped)}")


def tally_events(match_id: str, events: list[MatchEvent]) -> list[PlayerMatchStat]:
    """
    Group events by player and count them per EVENT_COUNTERS. Events without a
    player are ignored. Every player with an event gets a row, all zeros when
    none of their events is tallied. Sorted by player id.
    """
    stats: dict[str, PlayerMatchStat] = {}
    for e in events:
        if e.player_id is None:
            continue
        row = stats.get(e.player_id)
        if row is None:
            row = PlayerMatchStat(player_id=e.player_id, match_id=match_id)
            stats[e.player_id] = row
        counter = EVENT_COUNTERS[MatchEventType(e.type)]
        if counter is None:
            continue
        setattr(row, counter, getattr(row, counter) + 1)
    return [stats[pid] for pid in sorted(stats)]


class StatsProjector:
    """Idempotent event -> PlayerMatchStat projection, per match or in bulk."""

    def __init__(self) -> None:
        self._save_repo = SaveRepository()
        self._player_repo = PlayerRepository()
        self._matchday_repo = MatchdayRepository()
        self._match_repo = MatchRepository()
        self._event_repo = MatchEventRepository()
        self._stat_repo = PlayerMatchStatRepository()

    def project_match(self, conn: sqlite3.Connection, match_id: str) -> list[PlayerMatchStat]:
        """Recompute and overwrite the match's stat rows. Returns the rows written."""
        if self._match_repo.get(conn, match_id) is None:
            raise NotFoundError(f"Match not found: {match_id}")
        events = self._event_repo.list_by_match(conn, match_id)
        stats = tally_events(match_id, events)
        self._stat_repo.replace_for_match(conn, match_id, stats)
        logger.debug("Projected match=%s events=%d players=%d", match_id, len(events), len(stats))
        return stats

    def project_matchday(self, conn: sqlite3.Connection, matchday_id: str) -> int:
        """Project every match of the matchday. Returns the number of matches projected."""
        if self._matchday_repo.get(conn, matchday_id) is None:
            raise NotFoundError(f"Matchday not found: {matchday_id}")
        matches = self._match_repo.list_by_matchday(conn, matchday_id)
        for m in matches:
            self.project_match(conn, m.id)
        logger.info("Projected matchday=%s matches=%d", matchday_id, len(matches))
        return len(matches)

    def project_save(self, conn: sqlite3.Connection, save_id: str) -> int:
        """Backfill: project every match of the save."""
        if self._save_repo.get(conn, save_id) is None:
            raise NotFoundError(f"Save not found: {save_id}")
        matches = self._match_repo.list_by_save(conn, save_id)
        for m in matches:
            self.project_match(conn, m.id)
        logger.info("Projected save=%s matches=%d", save_id, len(matches))
        return len(matches)

    def player_totals(
        self, conn: sqlite3.Connection, player_id: str, season: int | None = None
    ) -> PlayerTotals:
        """Sum of the player's projected stat rows, all-time or for one season."""
        if self._player_repo.get(conn, player_id) is None:
            raise NotFoundError(f"Player not found: {player_id}")
        return self._stat_repo.totals_for_player(conn, player_id, season=season)
