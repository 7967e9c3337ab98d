"""
REST API for the season-progression engine.
Thin wrappers around the services; every read is scoped by save id.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Generator

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# Ensure project root on path
import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.models import Scope, Side
from backend.persistence import get_connection, init_db
from backend.persistence.db import get_db_path
from backend.rng import SeededRNG
from backend.errors import (
    EngineError,
    NoActiveStateError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from backend.services.golden_boot_service import DEFAULT_GOLDEN_BOOT_LIMIT, GoldenBootService
from backend.services.matchday_service import MatchdayFinalizer
from backend.services.schedule_service import ScheduleService
from backend.services.standings_service import StandingsService
from backend.services.stats_projector import StatsProjector
from backend.services.substitution_service import SubstitutionService

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db(db_path=get_db_path())
    logger.info("Database ready at %s", get_db_path())
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="Football Manager Season API",
    description="Schedules, live substitutions, stats and standings for a save",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Match state is guarded by per-match locks held in this one instance.
_substitutions = SubstitutionService()
_standings = StandingsService()
_golden_boot = GoldenBootService()
_finalizer = MatchdayFinalizer(_standings)
_projector = StatsProjector()
_schedules = ScheduleService()


# ---------- Error mapping ----------
_STATUS_BY_ERROR: list[tuple[type[EngineError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (NoActiveStateError, 404),
    (StateConflictError, 409),
]


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    return JSONResponse(
        status_code=status,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# ---------- Request models ----------
class SubstitutionRequest(BaseModel):
    side: Side
    out_player_id: str = Field(..., min_length=1)
    in_player_id: str = Field(..., min_length=1)


class AutoSubstitutionRequest(BaseModel):
    seed: int | None = None


# ---------- Standings ----------
@app.get("/saves/{save_id}/standings")
def get_standings(
    save_id: str,
    scope: Scope = Query(Scope.ALL),
    season: int | None = Query(None, ge=1),
) -> dict[str, Any]:
    with db_conn() as conn:
        rows = _standings.compute_standings(conn, save_id, scope=scope, season=season)
    return {"save_id": save_id, "standings": [r.to_dict() for r in rows]}


@app.get("/saves/{save_id}/standings/divisions")
def get_division_tables(save_id: str, season: int | None = Query(None, ge=1)) -> dict[str, Any]:
    with db_conn() as conn:
        tables = _standings.division_tables(conn, save_id, season=season)
    return {
        "save_id": save_id,
        "divisions": {div: [r.to_dict() for r in rows] for div, rows in tables.items()},
    }


# ---------- Golden Boot ----------
@app.get("/saves/{save_id}/golden-boot")
def get_golden_boot(
    save_id: str,
    season: int | None = Query(None, ge=1),
    scope: Scope = Query(Scope.ALL),
    limit: int = Query(DEFAULT_GOLDEN_BOOT_LIMIT),
) -> dict[str, Any]:
    with db_conn() as conn:
        rows = _golden_boot.top_scorers(conn, save_id, season=season, scope=scope, limit=limit)
    return {"save_id": save_id, "scorers": [r.to_dict() for r in rows]}


@app.get("/saves/{save_id}/golden-boot/history")
def get_golden_boot_history(
    save_id: str,
    scope: Scope = Query(Scope.ALL),
    limit: int = Query(DEFAULT_GOLDEN_BOOT_LIMIT),
) -> dict[str, Any]:
    with db_conn() as conn:
        rows = _golden_boot.historical_top_scorers(conn, save_id, scope=scope, limit=limit)
    return {"save_id": save_id, "scorers": [r.to_dict() for r in rows]}


# ---------- Matchdays ----------
@app.post("/saves/{save_id}/matchdays/{matchday_id}/finalize")
def finalize_matchday(save_id: str, matchday_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        summary = _finalizer.finalize(conn, save_id, matchday_id)
    return summary.to_dict()


@app.post("/saves/{save_id}/matchdays/{matchday_id}/advance-cup")
def advance_cup(save_id: str, matchday_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        next_md = _schedules.advance_cup_round(conn, save_id, matchday_id)
    return {"next_matchday": next_md.to_dict() if next_md else None}


@app.get("/saves/{save_id}/cup")
def get_cup_log(save_id: str, season: int | None = Query(None, ge=1)) -> dict[str, Any]:
    with db_conn() as conn:
        rounds = _schedules.cup_log(conn, save_id, season=season)
    return {"save_id": save_id, "rounds": [r.to_dict() for r in rounds]}


# ---------- Live match state ----------
@app.post("/matches/{match_id}/start")
def start_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        state = _substitutions.start_match(conn, match_id)
    return state.to_dict()


@app.get("/matches/{match_id}/state")
def get_match_state(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        state = _substitutions.get_state(conn, match_id)
    return state.to_dict()


@app.post("/matches/{match_id}/substitutions")
def substitute(match_id: str, req: SubstitutionRequest) -> dict[str, Any]:
    with db_conn() as conn:
        state = _substitutions.substitute(conn, match_id, req.side, req.out_player_id, req.in_player_id)
    return state.to_dict()


@app.post("/matches/{match_id}/auto-substitutions")
def auto_substitute(match_id: str, req: AutoSubstitutionRequest | None = None) -> dict[str, Any]:
    rng = SeededRNG(req.seed) if req is not None and req.seed is not None else None
    with db_conn() as conn:
        state = _substitutions.run_automatic_substitutions(conn, match_id, rng=rng)
    return state.to_dict()


@app.post("/matches/{match_id}/pause")
def pause_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        state = _substitutions.pause_match(conn, match_id)
    return state.to_dict()


@app.post("/matches/{match_id}/resume")
def resume_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        state = _substitutions.resume_match(conn, match_id)
    return state.to_dict()


@app.post("/matches/{match_id}/end")
def end_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        state = _substitutions.end_match(conn, match_id)
    return {"final_state": state.to_dict()}


# ---------- Stats projection ----------
@app.post("/matches/{match_id}/stats/sync")
def sync_match_stats(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        stats = _projector.project_match(conn, match_id)
    return {"match_id": match_id, "stats": [s.to_dict() for s in stats]}


@app.post("/matchdays/{matchday_id}/stats/sync")
def sync_matchday_stats(matchday_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        count = _projector.project_matchday(conn, matchday_id)
    return {"matchday_id": matchday_id, "matches_projected": count}


@app.post("/saves/{save_id}/stats/sync")
def sync_save_stats(save_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        count = _projector.project_save(conn, save_id)
    return {"save_id": save_id, "matches_projected": count}


@app.get("/players/{player_id}/totals")
def get_player_totals(player_id: str, season: int | None = Query(None, ge=1)) -> dict[str, Any]:
    with db_conn() as conn:
        totals = _projector.player_totals(conn, player_id, season=season)
    return totals.to_dict()
