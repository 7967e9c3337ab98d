"""
SQLite schema for save-scoped season data.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def saves_schema() -> str:
    """Tenancy boundary: every other row belongs to exactly one save."""
    return """
    CREATE TABLE IF NOT EXISTS saves (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    """


def teams_schema() -> str:
    """division: D1..D4 | Distrital. rating/morale change across seasons; identity does not."""
    return """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        save_id TEXT NOT NULL,
        name TEXT NOT NULL,
        division TEXT NOT NULL,
        rating INTEGER NOT NULL DEFAULT 50,
        morale INTEGER NOT NULL DEFAULT 50,
        FOREIGN KEY (save_id) REFERENCES saves(id)
    );
    CREATE INDEX IF NOT EXISTS ix_teams_save ON teams(save_id);
    CREATE INDEX IF NOT EXISTS ix_teams_save_division ON teams(save_id, division);
    """


def players_schema() -> str:
    """team_id NULL = free agent."""
    return """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        save_id TEXT NOT NULL,
        team_id TEXT,
        name TEXT NOT NULL,
        position TEXT NOT NULL,
        rating INTEGER NOT NULL DEFAULT 50,
        behavior INTEGER NOT NULL DEFAULT 3,
        salary INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY (save_id) REFERENCES saves(id),
        FOREIGN KEY (team_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_players_team ON players(team_id);
    CREATE INDEX IF NOT EXISTS ix_players_save ON players(save_id);
    """
    # contract_until added via migration


def matchdays_schema() -> str:
    """One round. type: LEAGUE | CUP. is_played flips once and is never reset."""
    return """
    CREATE TABLE IF NOT EXISTS matchdays (
        id TEXT PRIMARY KEY,
        save_id TEXT NOT NULL,
        number INTEGER NOT NULL,
        type TEXT NOT NULL,
        season INTEGER NOT NULL DEFAULT 1,
        is_played INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        FOREIGN KEY (save_id) REFERENCES saves(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_matchdays_slot ON matchdays(save_id, season, type, number);
    CREATE INDEX IF NOT EXISTS ix_matchdays_save_played ON matchdays(save_id, is_played);
    """
    # round_label added via migration


def matches_schema() -> str:
    """Fixture within a matchday. Goals NULL until the simulator records a result."""
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        save_id TEXT NOT NULL,
        matchday_id TEXT NOT NULL,
        home_team_id TEXT NOT NULL,
        away_team_id TEXT NOT NULL,
        home_goals INTEGER,
        away_goals INTEGER,
        played INTEGER NOT NULL DEFAULT 0,
        match_date TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (save_id) REFERENCES saves(id),
        FOREIGN KEY (matchday_id) REFERENCES matchdays(id),
        FOREIGN KEY (home_team_id) REFERENCES teams(id),
        FOREIGN KEY (away_team_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_matches_matchday ON matches(matchday_id);
    CREATE INDEX IF NOT EXISTS ix_matches_save ON matches(save_id);
    """


def match_events_schema() -> str:
    """Append-only. AUTOINCREMENT id is the insertion order."""
    return """
    CREATE TABLE IF NOT EXISTS match_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        match_id TEXT NOT NULL,
        minute INTEGER NOT NULL,
        type TEXT NOT NULL,
        player_id TEXT,
        team_id TEXT,
        description TEXT NOT NULL DEFAULT '',
        FOREIGN KEY (match_id) REFERENCES matches(id)
    );
    CREATE INDEX IF NOT EXISTS ix_match_events_match ON match_events(match_id);
    CREATE INDEX IF NOT EXISTS ix_match_events_type_player ON match_events(type, player_id);
    """


def match_states_schema() -> str:
    """Live lineup state, one row per match in progress. Lists stored as JSON arrays."""
    return """
    CREATE TABLE IF NOT EXISTS match_states (
        match_id TEXT PRIMARY KEY,
        home_lineup TEXT NOT NULL,
        away_lineup TEXT NOT NULL,
        home_reserves TEXT NOT NULL,
        away_reserves TEXT NOT NULL,
        home_subs_made INTEGER NOT NULL DEFAULT 0,
        away_subs_made INTEGER NOT NULL DEFAULT 0,
        is_paused INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (match_id) REFERENCES matches(id)
    );
    """


def player_match_stats_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS player_match_stats (
        player_id TEXT NOT NULL,
        match_id TEXT NOT NULL,
        goals INTEGER NOT NULL DEFAULT 0,
        assists INTEGER NOT NULL DEFAULT 0,
        yellow INTEGER NOT NULL DEFAULT 0,
        red INTEGER NOT NULL DEFAULT 0,
        injuries INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (player_id, match_id),
        FOREIGN KEY (match_id) REFERENCES matches(id)
    );
    CREATE INDEX IF NOT EXISTS ix_player_match_stats_match ON player_match_stats(match_id);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Order follows foreign keys."""
    return "\n".join([
        saves_schema(),
        teams_schema(),
        players_schema(),
        matchdays_schema(),
        matches_schema(),
        match_events_schema(),
        match_states_schema(),
        player_match_stats_schema(),
    ])
