"""
Live match state: kickoff lineups, manual and automatic substitutions, pause/resume.

Each match id has its own lock; every read-modify-write of a MatchState runs
under it, and each side is persisted with one UPDATE, so lineup, reserves and
counter always change together.

Rules enforced here:
- at most 3 substitutions per side
- lineup and reserves stay disjoint
- at most one goalkeeper on the pitch
- a goalkeeper only makes way for another goalkeeper
- players with an INJURY or RED event in the match never come on
"""
from __future__ import annotations

import logging
import sqlite3
import threading

from backend.models import MatchEventType, MatchState, Player, Side
from backend.persistence.repositories import (
    MatchRepository,
    PlayerRepository,
    MatchEventRepository,
    MatchStateRepository,
)
from backend.rng import SeededRNG
from backend.errors import (
    GoalkeeperSwapError,
    InvalidInPlayerError,
    InvalidInputError,
    InvalidOutPlayerError,
    NoActiveMatchStateError,
    NotFoundError,
    SecondGoalkeeperError,
    SubBudgetExhaustedError,
)

logger = logging.getLogger(__name__)

MAX_SUBSTITUTIONS = 3
LINEUP_SIZE = 11

_UNAVAILABLE_EVENTS = (MatchEventType.INJURY, MatchEventType.RED)


def _parse_side(side: Side | str) -> Side:
    try:
        return Side(side)
    except ValueError:
        raise InvalidInputError(f"Unknown side: {side!r}") from None


def pick_initial_lineup(players: list[Player]) -> tuple[list[str], list[str]]:
    """
    Best available XI: highest-rated goalkeeper first, then outfield players by
    rating desc (id asc on ties) up to 11. Everyone else goes to reserves.
    """
    by_quality = sorted(players, key=lambda p: (-p.rating, p.id))
    keepers = [p for p in by_quality if p.is_goalkeeper]
    outfield = [p for p in by_quality if not p.is_goalkeeper]

    lineup: list[str] = []
    if keepers:
        lineup.append(keepers[0].id)
    for p in outfield:
        if len(lineup) >= LINEUP_SIZE:
            break
        lineup.append(p.id)
    on_pitch = set(lineup)
    reserves = [p.id for p in by_quality if p.id not in on_pitch]
    return lineup, reserves


class SubstitutionService:
    """
    Owns the per-match lock arena. One instance should serve every caller that
    mutates match state (the API keeps a module-level one).
    """

    def __init__(self, rng: SeededRNG | None = None) -> None:
        self._match_repo = MatchRepository()
        self._player_repo = PlayerRepository()
        self._event_repo = MatchEventRepository()
        self._state_repo = MatchStateRepository()
        self._rng = rng or SeededRNG()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, match_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(match_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[match_id] = lock
            return lock

    def _require_state(self, conn: sqlite3.Connection, match_id: str) -> MatchState:
        state = self._state_repo.get(conn, match_id)
        if state is None:
            raise NoActiveMatchStateError(f"No active match state for match {match_id}")
        return state

    def _unavailable_players(self, conn: sqlite3.Connection, match_id: str) -> set[str]:
        events = self._event_repo.list_by_match(conn, match_id, types=list(_UNAVAILABLE_EVENTS))
        return {e.player_id for e in events if e.player_id is not None}

    def _goalkeepers(self, conn: sqlite3.Connection, player_ids: list[str]) -> set[str]:
        players = self._player_repo.get_many(conn, player_ids)
        return {pid for pid, p in players.items() if p.is_goalkeeper}

    # ---------- Lifecycle ----------

    def start_match(self, conn: sqlite3.Connection, match_id: str) -> MatchState:
        """Create the live state at kickoff. Returns the existing state if already started."""
        with self._lock_for(match_id):
            existing = self._state_repo.get(conn, match_id)
            if existing is not None:
                return existing
            match = self._match_repo.get(conn, match_id)
            if match is None:
                raise NotFoundError(f"Match not found: {match_id}")
            home_lineup, home_reserves = pick_initial_lineup(self._player_repo.list_by_team(conn, match.home_team_id))
            away_lineup, away_reserves = pick_initial_lineup(self._player_repo.list_by_team(conn, match.away_team_id))
            state = MatchState(
                match_id=match_id,
                home_lineup=home_lineup,
                away_lineup=away_lineup,
                home_reserves=home_reserves,
                away_reserves=away_reserves,
            )
            self._state_repo.create(conn, state)
            logger.info(
                "Match started: match=%s home_xi=%d away_xi=%d", match_id, len(home_lineup), len(away_lineup)
            )
            return state

    def get_state(self, conn: sqlite3.Connection, match_id: str) -> MatchState:
        return self._require_state(conn, match_id)

    def pause_match(self, conn: sqlite3.Connection, match_id: str) -> MatchState:
        with self._lock_for(match_id):
            state = self._require_state(conn, match_id)
            self._state_repo.set_paused(conn, match_id, True)
            state.is_paused = True
            return state

    def resume_match(self, conn: sqlite3.Connection, match_id: str) -> MatchState:
        """Clear the paused flag. Nothing else changes."""
        with self._lock_for(match_id):
            state = self._require_state(conn, match_id)
            self._state_repo.set_paused(conn, match_id, False)
            state.is_paused = False
            logger.info("Match resumed: match=%s", match_id)
            return state

    def end_match(self, conn: sqlite3.Connection, match_id: str) -> MatchState:
        """Discard the live state at full time. Returns the final state."""
        with self._lock_for(match_id):
            state = self._require_state(conn, match_id)
            self._state_repo.delete(conn, match_id)
            with self._locks_guard:
                self._locks.pop(match_id, None)
            logger.info("Match state discarded at full time: match=%s", match_id)
            return state

    # ---------- Manual ----------

    def substitute(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        side: Side | str,
        out_player_id: str,
        in_player_id: str,
    ) -> MatchState:
        """
        Swap out_player_id (lineup) for in_player_id (reserves) on one side.
        The incoming player takes the outgoing player's lineup slot; the outgoing
        player goes to the end of the reserves. All checks run before any write.
        """
        side = _parse_side(side)
        with self._lock_for(match_id):
            state = self._require_state(conn, match_id)
            lineup = list(state.lineup(side))
            reserves = list(state.reserves(side))
            made = state.subs_made(side)

            if made >= MAX_SUBSTITUTIONS:
                raise SubBudgetExhaustedError(f"{side.value} side already made {made} substitutions")
            if out_player_id not in lineup:
                raise InvalidOutPlayerError(f"Player {out_player_id} is not in the {side.value} lineup")
            if in_player_id not in reserves:
                raise InvalidInPlayerError(f"Player {in_player_id} is not in the {side.value} reserves")
            if in_player_id in self._unavailable_players(conn, match_id):
                raise InvalidInPlayerError(f"Player {in_player_id} is injured or sent off")

            keepers = self._goalkeepers(conn, lineup + [in_player_id])
            if out_player_id in keepers and in_player_id not in keepers:
                raise GoalkeeperSwapError(
                    f"Goalkeeper {out_player_id} can only be replaced by another goalkeeper"
                )
            lineup[lineup.index(out_player_id)] = in_player_id
            if in_player_id in keepers and any(p in keepers for p in lineup if p != in_player_id):
                raise SecondGoalkeeperError(
                    f"Bringing on {in_player_id} would put a second goalkeeper on the pitch"
                )
            reserves.remove(in_player_id)
            reserves.append(out_player_id)

            self._state_repo.update_side(conn, match_id, side, lineup, reserves, made + 1)
            logger.info(
                "Substitution: match=%s side=%s out=%s in=%s (%d/%d)",
                match_id, side.value, out_player_id, in_player_id, made + 1, MAX_SUBSTITUTIONS,
            )
            return self._require_state(conn, match_id)

    # ---------- Automatic ----------

    def run_automatic_substitutions(
        self, conn: sqlite3.Connection, match_id: str, rng: SeededRNG | None = None
    ) -> MatchState:
        """
        AI substitutions for both sides independently:
        1. replace injured lineup players (event order) with the first eligible reserve;
        2. then, while budget remains, bring on the first reserve that can legally
           replace someone, for a uniformly random player it can replace.
        Eligible = not injured or sent off, not a second goalkeeper on the pitch, and
        a goalkeeper only goes off for another goalkeeper.
        """
        rng = rng or self._rng
        with self._lock_for(match_id):
            state = self._require_state(conn, match_id)
            events = self._event_repo.list_by_match(conn, match_id, types=list(_UNAVAILABLE_EVENTS))
            unavailable = {e.player_id for e in events if e.player_id is not None}
            injured_order: list[str] = []
            for e in events:
                if e.type == MatchEventType.INJURY and e.player_id and e.player_id not in injured_order:
                    injured_order.append(e.player_id)
            keepers = self._goalkeepers(
                conn, state.home_lineup + state.home_reserves + state.away_lineup + state.away_reserves
            )

            for side in (Side.HOME, Side.AWAY):
                self._auto_substitute_side(conn, state, side, injured_order, unavailable, keepers, rng)
            return self._require_state(conn, match_id)

    def _auto_substitute_side(
        self,
        conn: sqlite3.Connection,
        state: MatchState,
        side: Side,
        injured_order: list[str],
        unavailable: set[str],
        keepers: set[str],
        rng: SeededRNG,
    ) -> None:
        lineup = list(state.lineup(side))
        reserves = list(state.reserves(side))
        made = state.subs_made(side)
        if made >= MAX_SUBSTITUTIONS or not reserves:
            return

        def keeper_on_pitch_after(out_id: str) -> bool:
            return any(p in keepers for p in lineup if p != out_id)

        def eligible(in_id: str, out_id: str) -> bool:
            if in_id in unavailable:
                return False
            if out_id in keepers and in_id not in keepers:
                return False
            return not (in_id in keepers and keeper_on_pitch_after(out_id))

        def swap(out_id: str, in_id: str) -> None:
            lineup[lineup.index(out_id)] = in_id
            reserves.remove(in_id)
            reserves.append(out_id)

        applied: list[tuple[str, str]] = []

        for injured in injured_order:
            if made >= MAX_SUBSTITUTIONS:
                break
            if injured not in lineup:
                continue
            candidate = next((r for r in reserves if eligible(r, injured)), None)
            if candidate is None:
                logger.warning(
                    "No eligible reserve for injured player: match=%s side=%s player=%s",
                    state.match_id, side.value, injured,
                )
                continue
            swap(injured, candidate)
            made += 1
            applied.append((injured, candidate))

        while made < MAX_SUBSTITUTIONS and lineup:
            incoming, candidates = None, []
            for r in reserves:
                candidates = [p for p in lineup if eligible(r, p)]
                if candidates:
                    incoming = r
                    break
            if incoming is None:
                break
            outgoing = rng.choice(candidates)
            swap(outgoing, incoming)
            made += 1
            applied.append((outgoing, incoming))

        skipped = [r for r in reserves if r in unavailable]
        if skipped and made < MAX_SUBSTITUTIONS:
            logger.warning(
                "Skipped unavailable reserves: match=%s side=%s players=%s",
                state.match_id, side.value, skipped,
            )
        if not applied:
            return
        self._state_repo.update_side(conn, state.match_id, side, lineup, reserves, made)
        logger.info(
            "Automatic substitutions: match=%s side=%s swaps=%s (%d/%d)",
            state.match_id, side.value, applied, made, MAX_SUBSTITUTIONS,
        )
