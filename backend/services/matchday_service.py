"""
Matchday finalization: lock a round as played and return a standings preview.
"""
from __future__ import annotations

import sqlite3

from backend.models import FinalizeSummary
from backend.services.standings_service import StandingsService


class MatchdayFinalizer:
    def __init__(self, standings: StandingsService | None = None) -> None:
        self._standings = standings or StandingsService()

    def finalize(self, conn: sqlite3.Connection, save_id: str, matchday_id: str) -> FinalizeSummary:
        preview, count = self._standings.finalize_matchday(conn, save_id, matchday_id)
        return FinalizeSummary(
            save_id=save_id,
            matchday_id=matchday_id,
            matches_finalized=count,
            standings_preview=preview,
        )
