"""
Repository interfaces for save data.
No business logic, only read/write operations.
"""
from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime
from enum import Enum
from typing import Iterable

from backend.errors import InvalidInputError
from backend.models import (
    Save,
    Team,
    Player,
    Matchday,
    Match,
    MatchEvent,
    MatchEventType,
    MatchState,
    PlayerMatchStat,
    PlayerTotals,
    Side,
)


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _now_iso() -> str:
    return datetime.utcnow().isoformat()


def _placeholders(values: Iterable) -> str:
    return ", ".join("?" for _ in values)


def _value(v) -> str:
    """Enum members are stored by value."""
    return v.value if isinstance(v, Enum) else v


# ---------- SaveRepository ----------


class SaveRepository:
    """CRUD for saves."""

    def create(self, conn: sqlite3.Connection, name: str, id: str | None = None) -> Save:
        sid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute("INSERT INTO saves (id, name, created_at) VALUES (?, ?, ?)", (sid, name, now))
        conn.commit()
        return Save(id=sid, name=name, created_at=datetime.fromisoformat(now))

    def get(self, conn: sqlite3.Connection, save_id: str) -> Save | None:
        row = conn.execute("SELECT id, name, created_at FROM saves WHERE id = ?", (save_id,)).fetchone()
        if row is None:
            return None
        return Save(id=row["id"], name=row["name"], created_at=_parse_datetime(row["created_at"]))


# ---------- TeamRepository ----------


def _row_to_team(r: sqlite3.Row) -> Team:
    return Team(
        id=r["id"],
        save_id=r["save_id"],
        name=r["name"],
        division=r["division"],
        rating=r["rating"],
        morale=r["morale"],
    )


class TeamRepository:
    """CRUD for teams. No business logic."""

    _COLS = "id, save_id, name, division, rating, morale"

    def create(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        name: str,
        division: str,
        rating: int = 50,
        morale: int = 50,
        id: str | None = None,
    ) -> Team:
        tid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO teams (id, save_id, name, division, rating, morale) VALUES (?, ?, ?, ?, ?, ?)",
            (tid, save_id, name, _value(division), rating, morale),
        )
        conn.commit()
        return Team(id=tid, save_id=save_id, name=name, division=_value(division), rating=rating, morale=morale)

    def get(self, conn: sqlite3.Connection, team_id: str) -> Team | None:
        row = conn.execute(f"SELECT {self._COLS} FROM teams WHERE id = ?", (team_id,)).fetchone()
        return _row_to_team(row) if row is not None else None

    def get_many(self, conn: sqlite3.Connection, team_ids: list[str]) -> dict[str, Team]:
        if not team_ids:
            return {}
        ids = list(dict.fromkeys(team_ids))
        rows = conn.execute(
            f"SELECT {self._COLS} FROM teams WHERE id IN ({_placeholders(ids)})", ids
        ).fetchall()
        return {r["id"]: _row_to_team(r) for r in rows}

    def list_by_save(
        self, conn: sqlite3.Connection, save_id: str, division: str | None = None
    ) -> list[Team]:
        if division is None:
            rows = conn.execute(
                f"SELECT {self._COLS} FROM teams WHERE save_id = ? ORDER BY id", (save_id,)
            ).fetchall()
        else:
            rows = conn.execute(
                f"SELECT {self._COLS} FROM teams WHERE save_id = ? AND division = ? ORDER BY id",
                (save_id, _value(division)),
            ).fetchall()
        return [_row_to_team(r) for r in rows]


# ---------- PlayerRepository ----------


def _row_to_player(r: sqlite3.Row) -> Player:
    return Player(
        id=r["id"],
        save_id=r["save_id"],
        name=r["name"],
        position=r["position"],
        rating=r["rating"],
        behavior=r["behavior"],
        salary=r["salary"],
        contract_until=r["contract_until"],
        team_id=r["team_id"],
    )


class PlayerRepository:
    """CRUD for players."""

    _COLS = "id, save_id, team_id, name, position, rating, behavior, salary, contract_until"

    def create(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        name: str,
        position: str,
        team_id: str | None = None,
        rating: int = 50,
        behavior: int = 3,
        salary: int = 0,
        contract_until: int | None = None,
        id: str | None = None,
    ) -> Player:
        pid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO players (id, save_id, team_id, name, position, rating, behavior, salary, contract_until)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (pid, save_id, team_id, name, _value(position), rating, behavior, salary, contract_until),
        )
        conn.commit()
        return Player(
            id=pid, save_id=save_id, name=name, position=_value(position), rating=rating,
            behavior=behavior, salary=salary, contract_until=contract_until, team_id=team_id,
        )

    def get(self, conn: sqlite3.Connection, player_id: str) -> Player | None:
        row = conn.execute(f"SELECT {self._COLS} FROM players WHERE id = ?", (player_id,)).fetchone()
        return _row_to_player(row) if row is not None else None

    def get_many(self, conn: sqlite3.Connection, player_ids: list[str]) -> dict[str, Player]:
        if not player_ids:
            return {}
        ids = list(dict.fromkeys(player_ids))
        rows = conn.execute(
            f"SELECT {self._COLS} FROM players WHERE id IN ({_placeholders(ids)})", ids
        ).fetchall()
        return {r["id"]: _row_to_player(r) for r in rows}

    def list_by_team(self, conn: sqlite3.Connection, team_id: str) -> list[Player]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM players WHERE team_id = ? ORDER BY id", (team_id,)
        ).fetchall()
        return [_row_to_player(r) for r in rows]


# ---------- MatchdayRepository ----------


def _row_to_matchday(r: sqlite3.Row) -> Matchday:
    return Matchday(
        id=r["id"],
        save_id=r["save_id"],
        number=r["number"],
        type=r["type"],
        season=r["season"],
        is_played=bool(r["is_played"]),
        round_label=r["round_label"],
    )


class MatchdayRepository:
    """CRUD for matchdays. is_played only ever moves to 1."""

    _COLS = "id, save_id, number, type, season, is_played, round_label"

    def create(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        number: int,
        type: str,
        season: int = 1,
        round_label: str | None = None,
        id: str | None = None,
    ) -> Matchday:
        mid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO matchdays (id, save_id, number, type, season, is_played, round_label, created_at)"
            " VALUES (?, ?, ?, ?, ?, 0, ?, ?)",
            (mid, save_id, number, _value(type), season, round_label, _now_iso()),
        )
        conn.commit()
        return Matchday(
            id=mid, save_id=save_id, number=number, type=_value(type), season=season,
            is_played=False, round_label=round_label,
        )

    def get(self, conn: sqlite3.Connection, matchday_id: str) -> Matchday | None:
        row = conn.execute(f"SELECT {self._COLS} FROM matchdays WHERE id = ?", (matchday_id,)).fetchone()
        return _row_to_matchday(row) if row is not None else None

    def get_by_slot(
        self, conn: sqlite3.Connection, save_id: str, season: int, type: str, number: int
    ) -> Matchday | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM matchdays WHERE save_id = ? AND season = ? AND type = ? AND number = ?",
            (save_id, season, _value(type), number),
        ).fetchone()
        return _row_to_matchday(row) if row is not None else None

    def list_by_save(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        type: str | None = None,
        season: int | None = None,
        played_only: bool = False,
    ) -> list[Matchday]:
        sql = f"SELECT {self._COLS} FROM matchdays WHERE save_id = ?"
        args: list = [save_id]
        if type is not None:
            sql += " AND type = ?"
            args.append(_value(type))
        if season is not None:
            sql += " AND season = ?"
            args.append(season)
        if played_only:
            sql += " AND is_played = 1"
        sql += " ORDER BY season, number, type"
        return [_row_to_matchday(r) for r in conn.execute(sql, args).fetchall()]

    def mark_played(self, conn: sqlite3.Connection, matchday_id: str) -> bool:
        """Flip is_played to 1. Returns False when it was already set (no-op)."""
        cur = conn.execute(
            "UPDATE matchdays SET is_played = 1 WHERE id = ? AND is_played = 0", (matchday_id,)
        )
        conn.commit()
        return cur.rowcount > 0

    def max_season(self, conn: sqlite3.Connection, save_id: str) -> int | None:
        row = conn.execute("SELECT MAX(season) AS s FROM matchdays WHERE save_id = ?", (save_id,)).fetchone()
        return row["s"] if row is not None else None


# ---------- MatchRepository ----------


def _row_to_match(r: sqlite3.Row) -> Match:
    return Match(
        id=r["id"],
        save_id=r["save_id"],
        matchday_id=r["matchday_id"],
        home_team_id=r["home_team_id"],
        away_team_id=r["away_team_id"],
        home_goals=r["home_goals"],
        away_goals=r["away_goals"],
        played=bool(r["played"]),
        match_date=r["match_date"],
    )


class MatchRepository:
    """CRUD for matches. Goals are written by the simulator collaborator via update_result."""

    _COLS = "id, save_id, matchday_id, home_team_id, away_team_id, home_goals, away_goals, played, match_date"

    def create(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        matchday_id: str,
        home_team_id: str,
        away_team_id: str,
        match_date: str | None = None,
        id: str | None = None,
        commit: bool = True,
    ) -> Match:
        mid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO matches (id, save_id, matchday_id, home_team_id, away_team_id, home_goals, away_goals,"
            " played, match_date, created_at) VALUES (?, ?, ?, ?, ?, NULL, NULL, 0, ?, ?)",
            (mid, save_id, matchday_id, home_team_id, away_team_id, match_date, _now_iso()),
        )
        if commit:
            conn.commit()
        return Match(
            id=mid, save_id=save_id, matchday_id=matchday_id, home_team_id=home_team_id,
            away_team_id=away_team_id, home_goals=None, away_goals=None, played=False,
            match_date=match_date,
        )

    def get(self, conn: sqlite3.Connection, match_id: str) -> Match | None:
        row = conn.execute(f"SELECT {self._COLS} FROM matches WHERE id = ?", (match_id,)).fetchone()
        return _row_to_match(row) if row is not None else None

    def list_by_matchday(self, conn: sqlite3.Connection, matchday_id: str) -> list[Match]:
        """Insertion order = bracket order for cup rounds."""
        rows = conn.execute(
            f"SELECT {self._COLS} FROM matches WHERE matchday_id = ? ORDER BY rowid", (matchday_id,)
        ).fetchall()
        return [_row_to_match(r) for r in rows]

    def list_by_matchdays(self, conn: sqlite3.Connection, matchday_ids: list[str]) -> list[Match]:
        if not matchday_ids:
            return []
        rows = conn.execute(
            f"SELECT {self._COLS} FROM matches WHERE matchday_id IN ({_placeholders(matchday_ids)}) ORDER BY rowid",
            list(matchday_ids),
        ).fetchall()
        return [_row_to_match(r) for r in rows]

    def list_by_save(self, conn: sqlite3.Connection, save_id: str) -> list[Match]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM matches WHERE save_id = ? ORDER BY rowid", (save_id,)
        ).fetchall()
        return [_row_to_match(r) for r in rows]

    def update_result(
        self, conn: sqlite3.Connection, match_id: str, home_goals: int, away_goals: int
    ) -> None:
        conn.execute(
            "UPDATE matches SET home_goals = ?, away_goals = ?, played = 1 WHERE id = ?",
            (home_goals, away_goals, match_id),
        )
        conn.commit()

    def update_teams(
        self, conn: sqlite3.Connection, match_id: str, home_team_id: str, away_team_id: str
    ) -> None:
        """Re-pair an unplayed match. Played matches are history and are left alone."""
        conn.execute(
            "UPDATE matches SET home_team_id = ?, away_team_id = ? WHERE id = ? AND played = 0",
            (home_team_id, away_team_id, match_id),
        )
        conn.commit()


# ---------- MatchEventRepository ----------


def _row_to_event(r: sqlite3.Row) -> MatchEvent:
    return MatchEvent(
        id=r["id"],
        match_id=r["match_id"],
        minute=r["minute"],
        type=r["type"],
        player_id=r["player_id"],
        team_id=r["team_id"],
        description=r["description"],
    )


def _season_scope_filter(season: int | None, matchday_type: str | None) -> tuple[str, list]:
    sql, args = "", []
    if season is not None:
        sql += " AND md.season = ?"
        args.append(season)
    if matchday_type is not None:
        sql += " AND md.type = ?"
        args.append(_value(matchday_type))
    return sql, args


class MatchEventRepository:
    """Append-only event log. No update or delete; unknown event types are rejected."""

    _COLS = "id, match_id, minute, type, player_id, team_id, description"

    def append(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        minute: int,
        type: str,
        player_id: str | None = None,
        team_id: str | None = None,
        description: str = "",
    ) -> MatchEvent:
        try:
            event_type = MatchEventType(type).value
        except ValueError:
            raise InvalidInputError(f"Unknown match event type: {type!r}") from None
        cur = conn.execute(
            "INSERT INTO match_events (match_id, minute, type, player_id, team_id, description)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (match_id, minute, event_type, player_id, team_id, description),
        )
        conn.commit()
        return MatchEvent(
            id=cur.lastrowid, match_id=match_id, minute=minute, type=event_type,
            player_id=player_id, team_id=team_id, description=description,
        )

    def list_by_match(
        self, conn: sqlite3.Connection, match_id: str, types: list[str] | None = None
    ) -> list[MatchEvent]:
        """Ordered by minute, then insertion."""
        sql = f"SELECT {self._COLS} FROM match_events WHERE match_id = ?"
        args: list = [match_id]
        if types:
            sql += f" AND type IN ({_placeholders(types)})"
            args.extend(_value(t) for t in types)
        sql += " ORDER BY minute, id"
        return [_row_to_event(r) for r in conn.execute(sql, args).fetchall()]

    def count_goals_by_player(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        season: int | None = None,
        matchday_type: str | None = None,
        limit: int = 10,
    ) -> list[tuple[str, int]]:
        """(player_id, goals) from raw GOAL events. Goals desc, player id asc."""
        extra, extra_args = _season_scope_filter(season, matchday_type)
        rows = conn.execute(
            "SELECT e.player_id AS player_id, COUNT(*) AS goals"
            " FROM match_events e"
            " JOIN matches m ON m.id = e.match_id"
            " JOIN matchdays md ON md.id = m.matchday_id"
            " WHERE m.save_id = ? AND e.type = 'GOAL' AND e.player_id IS NOT NULL" + extra +
            " GROUP BY e.player_id ORDER BY goals DESC, e.player_id ASC LIMIT ?",
            [save_id, *extra_args, limit],
        ).fetchall()
        return [(r["player_id"], r["goals"]) for r in rows]


# ---------- MatchStateRepository ----------


def _row_to_state(r: sqlite3.Row) -> MatchState:
    return MatchState(
        match_id=r["match_id"],
        home_lineup=json.loads(r["home_lineup"]),
        away_lineup=json.loads(r["away_lineup"]),
        home_reserves=json.loads(r["home_reserves"]),
        away_reserves=json.loads(r["away_reserves"]),
        home_subs_made=r["home_subs_made"],
        away_subs_made=r["away_subs_made"],
        is_paused=bool(r["is_paused"]),
    )


class MatchStateRepository:
    """Live match state rows. Each write is one statement, so a side is never half-updated."""

    _COLS = (
        "match_id, home_lineup, away_lineup, home_reserves, away_reserves,"
        " home_subs_made, away_subs_made, is_paused"
    )

    def create(self, conn: sqlite3.Connection, state: MatchState) -> MatchState:
        conn.execute(
            f"INSERT INTO match_states ({self._COLS}, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                state.match_id,
                json.dumps(state.home_lineup),
                json.dumps(state.away_lineup),
                json.dumps(state.home_reserves),
                json.dumps(state.away_reserves),
                state.home_subs_made,
                state.away_subs_made,
                1 if state.is_paused else 0,
                _now_iso(),
            ),
        )
        conn.commit()
        return state

    def get(self, conn: sqlite3.Connection, match_id: str) -> MatchState | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM match_states WHERE match_id = ?", (match_id,)
        ).fetchone()
        return _row_to_state(row) if row is not None else None

    def update_side(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        side: Side,
        lineup: list[str],
        reserves: list[str],
        subs_made: int,
    ) -> None:
        prefix = Side(side).value
        conn.execute(
            f"UPDATE match_states SET {prefix}_lineup = ?, {prefix}_reserves = ?, {prefix}_subs_made = ?,"
            " updated_at = ? WHERE match_id = ?",
            (json.dumps(lineup), json.dumps(reserves), subs_made, _now_iso(), match_id),
        )
        conn.commit()

    def set_paused(self, conn: sqlite3.Connection, match_id: str, paused: bool) -> None:
        conn.execute(
            "UPDATE match_states SET is_paused = ?, updated_at = ? WHERE match_id = ?",
            (1 if paused else 0, _now_iso(), match_id),
        )
        conn.commit()

    def delete(self, conn: sqlite3.Connection, match_id: str) -> None:
        conn.execute("DELETE FROM match_states WHERE match_id = ?", (match_id,))
        conn.commit()


# ---------- PlayerMatchStatRepository ----------


class PlayerMatchStatRepository:
    """Per-player, per-match stats. Written only by full replacement."""

    def replace_for_match(
        self, conn: sqlite3.Connection, match_id: str, stats: list[PlayerMatchStat]
    ) -> None:
        """
        Overwrite every stat row of the match in one transaction: upsert by
        (player_id, match_id), then drop rows for players no longer in the log.
        """
        keep = [s.player_id for s in stats]
        with conn:
            for s in stats:
                conn.execute(
                    "INSERT INTO player_match_stats (player_id, match_id, goals, assists, yellow, red, injuries)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?)"
                    " ON CONFLICT(player_id, match_id) DO UPDATE SET"
                    " goals = excluded.goals, assists = excluded.assists, yellow = excluded.yellow,"
                    " red = excluded.red, injuries = excluded.injuries",
                    (s.player_id, match_id, s.goals, s.assists, s.yellow, s.red, s.injuries),
                )
            if keep:
                conn.execute(
                    f"DELETE FROM player_match_stats WHERE match_id = ? AND player_id NOT IN ({_placeholders(keep)})",
                    [match_id, *keep],
                )
            else:
                conn.execute("DELETE FROM player_match_stats WHERE match_id = ?", (match_id,))

    def list_by_match(self, conn: sqlite3.Connection, match_id: str) -> list[PlayerMatchStat]:
        rows = conn.execute(
            "SELECT player_id, match_id, goals, assists, yellow, red, injuries"
            " FROM player_match_stats WHERE match_id = ? ORDER BY player_id",
            (match_id,),
        ).fetchall()
        return [
            PlayerMatchStat(
                player_id=r["player_id"],
                match_id=r["match_id"],
                goals=r["goals"],
                assists=r["assists"],
                yellow=r["yellow"],
                red=r["red"],
                injuries=r["injuries"],
            )
            for r in rows
        ]

    def sum_goals_by_player(
        self,
        conn: sqlite3.Connection,
        save_id: str,
        season: int | None = None,
        matchday_type: str | None = None,
        limit: int = 10,
    ) -> list[tuple[str, int]]:
        """(player_id, goals) summed over projected stats. Goals desc, player id asc."""
        extra, extra_args = _season_scope_filter(season, matchday_type)
        rows = conn.execute(
            "SELECT s.player_id AS player_id, SUM(s.goals) AS goals"
            " FROM player_match_stats s"
            " JOIN matches m ON m.id = s.match_id"
            " JOIN matchdays md ON md.id = m.matchday_id"
            " WHERE m.save_id = ? AND s.goals > 0" + extra +
            " GROUP BY s.player_id ORDER BY goals DESC, s.player_id ASC LIMIT ?",
            [save_id, *extra_args, limit],
        ).fetchall()
        return [(r["player_id"], r["goals"]) for r in rows]

    def totals_for_player(
        self, conn: sqlite3.Connection, player_id: str, season: int | None = None
    ) -> PlayerTotals:
        """Projected stats summed over every match of the player; games = stat rows."""
        extra, extra_args = _season_scope_filter(season, None)
        row = conn.execute(
            "SELECT COUNT(*) AS games, COALESCE(SUM(s.goals), 0) AS goals,"
            " COALESCE(SUM(s.assists), 0) AS assists, COALESCE(SUM(s.yellow), 0) AS yellow,"
            " COALESCE(SUM(s.red), 0) AS red, COALESCE(SUM(s.injuries), 0) AS injuries"
            " FROM player_match_stats s"
            " JOIN matches m ON m.id = s.match_id"
            " JOIN matchdays md ON md.id = m.matchday_id"
            " WHERE s.player_id = ?" + extra,
            [player_id, *extra_args],
        ).fetchone()
        return PlayerTotals(
            player_id=player_id,
            season=season,
            games=row["games"],
            goals=row["goals"],
            assists=row["assists"],
            yellow=row["yellow"],
            red=row["red"],
            injuries=row["injuries"],
        )
