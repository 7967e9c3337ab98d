"""
Database connection and initialization.
"""
from __future__ import annotations

import os
import sqlite3
from pathlib import Path

from .schema import all_schema_sql


def _run_phase_players_contract(conn: sqlite3.Connection) -> None:
    """Add contract_until (season number the contract runs out) to players."""
    cur = conn.execute("PRAGMA table_info(players)")
    cols = [row[1] for row in cur.fetchall()]
    if "contract_until" not in cols:
        conn.execute("ALTER TABLE players ADD COLUMN contract_until INTEGER")


def _run_phase_matchdays_round_label(conn: sqlite3.Connection) -> None:
    """Add round_label to matchdays. Cup stage name ("Round of 128" ... "Final"); NULL for league days."""
    cur = conn.execute("PRAGMA table_info(matchdays)")
    cols = [row[1] for row in cur.fetchall()]
    if "round_label" not in cols:
        conn.execute("ALTER TABLE matchdays ADD COLUMN round_label TEXT")


# Default DB path: FM_DB_PATH, else project root / data / app.db
def _default_db_path() -> Path:
    env = os.environ.get("FM_DB_PATH", "").strip()
    if env:
        return Path(env)
    return Path(__file__).resolve().parent.parent.parent / "data" / "app.db"


_db_path: Path | None = None


def set_db_path(path: str | Path) -> None:
    """Set the database path. Call before first get_connection if not using default."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    """Return the current database path."""
    if _db_path is not None:
        return _db_path
    return _default_db_path()


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection.
    Use as context manager or ensure close() is called.
    check_same_thread is off so the API can hand a connection to a worker thread.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist, then apply additive column migrations."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(all_schema_sql())
        _run_phase_players_contract(conn)
        _run_phase_matchdays_round_label(conn)
        conn.commit()
    finally:
        conn.close()
