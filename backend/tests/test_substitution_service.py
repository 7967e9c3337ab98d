"""
Tests for live match state: kickoff lineups, manual and automatic substitutions,
goalkeeper rule, pause/resume, per-match locking.
"""
from __future__ import annotations

import threading
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from backend.models import MatchdayType, MatchEventType, Player, Position, Side
from backend.persistence.db import get_connection, init_db, set_db_path
from backend.persistence.repositories import (
    SaveRepository,
    TeamRepository,
    PlayerRepository,
    MatchdayRepository,
    MatchRepository,
    MatchEventRepository,
    MatchStateRepository,
)
from backend.rng import SeededRNG
from backend.errors import (
    GoalkeeperSwapError,
    InvalidInPlayerError,
    InvalidOutPlayerError,
    NoActiveMatchStateError,
    NoActiveStateError,
    NotFoundError,
    SecondGoalkeeperError,
    StateConflictError,
    SubBudgetExhaustedError,
)
from backend.services.substitution_service import (
    MAX_SUBSTITUTIONS,
    SubstitutionService,
    pick_initial_lineup,
)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "subs_test.db"
    set_db_path(path)
    init_db(db_path=path)
    return path


@pytest.fixture
def db_conn(db_path):
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def service():
    return SubstitutionService(rng=SeededRNG(11))


def _squad(conn, save_id, team_id, prefix, outfield=13, keepers=2):
    """GK ratings 80, 60, ...; outfield o01.. rated 89 downwards."""
    repo = PlayerRepository()
    for k in range(keepers):
        repo.create(conn, save_id, f"{prefix} keeper {k + 1}", Position.GK, team_id=team_id,
                    rating=80 - 20 * k, id=f"{prefix}-gk{k + 1}")
    for i in range(1, outfield + 1):
        pos = (Position.DF, Position.MF, Position.AT)[i % 3]
        repo.create(conn, save_id, f"{prefix} player {i}", pos, team_id=team_id,
                    rating=90 - i, id=f"{prefix}-o{i:02d}")


def _make_match(conn, home_outfield=13, away_outfield=13, home_keepers=2, away_keepers=2, tag="m1"):
    save = SaveRepository().create(conn, f"Save {tag}", id=f"save-{tag}")
    teams = TeamRepository()
    home = teams.create(conn, save.id, "Home FC", "D1", id=f"home-{tag}")
    away = teams.create(conn, save.id, "Away FC", "D1", id=f"away-{tag}")
    _squad(conn, save.id, home.id, f"h{tag}", home_outfield, home_keepers)
    _squad(conn, save.id, away.id, f"a{tag}", away_outfield, away_keepers)
    md = MatchdayRepository().create(conn, save.id, 1, MatchdayType.LEAGUE)
    match = MatchRepository().create(conn, save.id, md.id, home.id, away.id, id=f"match-{tag}")
    return match


def _injure(conn, match, player_id, minute=30, team_id=None):
    MatchEventRepository().append(conn, match.id, minute, MatchEventType.INJURY, player_id, team_id)


def _assert_invariants(state, keepers):
    for side in (Side.HOME, Side.AWAY):
        lineup, reserves = state.lineup(side), state.reserves(side)
        assert not set(lineup) & set(reserves)
        assert len(set(lineup)) == len(lineup)
        assert state.subs_made(side) <= MAX_SUBSTITUTIONS
        assert sum(1 for p in lineup if p in keepers) <= 1


def _keepers(conn):
    rows = conn.execute("SELECT id FROM players WHERE position = 'GK'").fetchall()
    return {r["id"] for r in rows}


# ---------- Kickoff ----------


def test_pick_initial_lineup_best_keeper_first(db_conn):
    match = _make_match(db_conn)
    players = PlayerRepository().list_by_team(db_conn, match.home_team_id)
    lineup, reserves = pick_initial_lineup(players)
    assert len(lineup) == 11
    assert lineup[0] == "hm1-gk1"
    assert lineup[1:] == [f"hm1-o{i:02d}" for i in range(1, 11)]
    assert reserves == ["hm1-o11", "hm1-o12", "hm1-o13", "hm1-gk2"]


def test_pick_initial_lineup_short_squad():
    """Fewer than 11 fit players: play short."""
    players = [
        Player(id=f"p{i}", save_id="s", name=f"P{i}", position="MF", rating=50, behavior=3,
               salary=0, contract_until=None)
        for i in range(8)
    ]
    lineup, reserves = pick_initial_lineup(players)
    assert len(lineup) == 8
    assert reserves == []


def test_start_match_creates_state_once(db_conn, service):
    match = _make_match(db_conn)
    state = service.start_match(db_conn, match.id)
    assert len(state.home_lineup) == 11
    assert len(state.away_lineup) == 11
    assert state.home_subs_made == 0
    assert not state.is_paused
    _assert_invariants(state, _keepers(db_conn))

    again = service.start_match(db_conn, match.id)
    assert again == state


def test_start_unknown_match(db_conn, service):
    with pytest.raises(NotFoundError):
        service.start_match(db_conn, "nope")


def test_get_state_without_kickoff(db_conn, service):
    match = _make_match(db_conn)
    with pytest.raises(NoActiveMatchStateError):
        service.get_state(db_conn, match.id)
    with pytest.raises(NoActiveStateError):
        service.substitute(db_conn, match.id, Side.HOME, "hm1-o01", "hm1-o11")


# ---------- Manual ----------


def test_substitute_keeps_slot_and_moves_out_to_reserves(db_conn, service):
    match = _make_match(db_conn)
    before = service.start_match(db_conn, match.id)
    slot = before.home_lineup.index("hm1-o05")

    after = service.substitute(db_conn, match.id, Side.HOME, "hm1-o05", "hm1-o12")
    assert after.home_lineup[slot] == "hm1-o12"
    assert "hm1-o05" not in after.home_lineup
    assert after.home_reserves[-1] == "hm1-o05"
    assert "hm1-o12" not in after.home_reserves
    assert after.home_subs_made == 1
    assert after.away_subs_made == 0
    assert after.away_lineup == before.away_lineup
    _assert_invariants(after, _keepers(db_conn))


def test_substitute_accepts_side_as_string(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    state = service.substitute(db_conn, match.id, "away", "am1-o01", "am1-o11")
    assert state.away_subs_made == 1


def test_fourth_substitution_fails_and_leaves_state(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    service.substitute(db_conn, match.id, Side.HOME, "hm1-o01", "hm1-o11")
    service.substitute(db_conn, match.id, Side.HOME, "hm1-o02", "hm1-o12")
    service.substitute(db_conn, match.id, Side.HOME, "hm1-o03", "hm1-o13")
    before = service.get_state(db_conn, match.id)
    assert before.home_subs_made == 3

    with pytest.raises(SubBudgetExhaustedError):
        service.substitute(db_conn, match.id, Side.HOME, "hm1-o04", "hm1-o01")
    with pytest.raises(StateConflictError):
        service.substitute(db_conn, match.id, Side.HOME, "hm1-o04", "hm1-o01")
    assert service.get_state(db_conn, match.id) == before


def test_invalid_out_and_in_players(db_conn, service):
    match = _make_match(db_conn)
    before = service.start_match(db_conn, match.id)
    with pytest.raises(InvalidOutPlayerError):
        service.substitute(db_conn, match.id, Side.HOME, "hm1-o11", "hm1-o12")
    with pytest.raises(InvalidOutPlayerError):
        service.substitute(db_conn, match.id, Side.HOME, "am1-o01", "hm1-o12")
    with pytest.raises(InvalidInPlayerError):
        service.substitute(db_conn, match.id, Side.HOME, "hm1-o01", "hm1-o02")
    with pytest.raises(InvalidInPlayerError):
        service.substitute(db_conn, match.id, Side.HOME, "hm1-o01", "am1-o11")
    assert service.get_state(db_conn, match.id) == before


def test_second_goalkeeper_rejected(db_conn, service):
    match = _make_match(db_conn)
    before = service.start_match(db_conn, match.id)
    with pytest.raises(SecondGoalkeeperError):
        service.substitute(db_conn, match.id, Side.HOME, "hm1-o01", "hm1-gk2")
    assert service.get_state(db_conn, match.id) == before

    state = service.substitute(db_conn, match.id, Side.HOME, "hm1-gk1", "hm1-gk2")
    assert state.home_lineup[0] == "hm1-gk2"
    _assert_invariants(state, _keepers(db_conn))


def test_injured_reserve_cannot_come_on(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    _injure(db_conn, match, "hm1-o01")
    state = service.substitute(db_conn, match.id, Side.HOME, "hm1-o01", "hm1-o11")
    assert "hm1-o01" in state.home_reserves
    with pytest.raises(InvalidInPlayerError):
        service.substitute(db_conn, match.id, Side.HOME, "hm1-o11", "hm1-o01")


# ---------- Automatic ----------


def test_auto_replaces_injured_player_with_only_reserve(db_conn, service):
    match = _make_match(db_conn, home_outfield=11, away_outfield=10, home_keepers=1, away_keepers=1)
    before = service.start_match(db_conn, match.id)
    assert before.home_reserves == ["hm1-o11"]
    assert before.away_reserves == []
    slot = before.home_lineup.index("hm1-o04")
    _injure(db_conn, match, "hm1-o04", minute=20)

    after = service.run_automatic_substitutions(db_conn, match.id)
    assert after.home_lineup[slot] == "hm1-o11"
    assert "hm1-o04" not in after.home_lineup
    assert after.home_reserves == ["hm1-o04"]
    assert after.home_subs_made == 1
    assert after.away_lineup == before.away_lineup
    assert after.away_subs_made == 0


def test_auto_injuries_in_event_order_then_random(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    _injure(db_conn, match, "hm1-o07", minute=40)
    _injure(db_conn, match, "hm1-o02", minute=10)

    state = service.run_automatic_substitutions(db_conn, match.id)
    assert "hm1-o02" not in state.home_lineup
    assert "hm1-o07" not in state.home_lineup
    assert state.home_subs_made == 3
    assert state.away_subs_made == 3
    _assert_invariants(state, _keepers(db_conn))


def test_auto_respects_budget_on_repeat(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    first = service.run_automatic_substitutions(db_conn, match.id)
    second = service.run_automatic_substitutions(db_conn, match.id)
    assert second == first
    assert first.home_subs_made == MAX_SUBSTITUTIONS


def test_auto_skips_side_with_budget_spent(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    for out_id, in_id in [("am1-o01", "am1-o11"), ("am1-o02", "am1-o12"), ("am1-o03", "am1-o13")]:
        service.substitute(db_conn, match.id, Side.AWAY, out_id, in_id)
    before = service.get_state(db_conn, match.id)
    after = service.run_automatic_substitutions(db_conn, match.id)
    assert after.away_lineup == before.away_lineup
    assert after.away_reserves == before.away_reserves


def test_auto_never_fields_two_keepers(db_conn):
    """Keeper-only bench: automatic swaps trade keeper for keeper."""
    match = _make_match(db_conn, home_outfield=10, away_outfield=10)
    for seed in range(5):
        svc = SubstitutionService(rng=SeededRNG(seed))
        MatchStateRepository().delete(db_conn, match.id)
        svc.start_match(db_conn, match.id)
        state = svc.run_automatic_substitutions(db_conn, match.id)
        _assert_invariants(state, _keepers(db_conn))
        assert state.home_subs_made == 3
        assert sum(1 for p in state.home_lineup if p in ("hm1-gk1", "hm1-gk2")) == 1


def test_auto_does_not_bring_on_sent_off_player(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    MatchEventRepository().append(db_conn, match.id, 5, MatchEventType.RED, "hm1-o11")
    state = service.run_automatic_substitutions(db_conn, match.id)
    assert "hm1-o11" not in state.home_lineup


def test_auto_is_reproducible_with_seed(db_conn):
    save = SaveRepository().create(db_conn, "Seeded", id="save-seed")
    teams = TeamRepository()
    home = teams.create(db_conn, save.id, "H", "D2", id="h-seed")
    away = teams.create(db_conn, save.id, "A", "D2", id="a-seed")
    _squad(db_conn, save.id, home.id, "hs")
    _squad(db_conn, save.id, away.id, "as")
    md = MatchdayRepository().create(db_conn, save.id, 1, MatchdayType.LEAGUE)
    m1 = MatchRepository().create(db_conn, save.id, md.id, home.id, away.id)
    m2 = MatchRepository().create(db_conn, save.id, md.id, home.id, away.id)

    svc = SubstitutionService()
    svc.start_match(db_conn, m1.id)
    svc.start_match(db_conn, m2.id)
    s1 = svc.run_automatic_substitutions(db_conn, m1.id, rng=SeededRNG(99))
    s2 = svc.run_automatic_substitutions(db_conn, m2.id, rng=SeededRNG(99))
    assert s1.home_lineup == s2.home_lineup
    assert s1.away_lineup == s2.away_lineup


def test_manual_then_auto_keeps_invariants(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    service.substitute(db_conn, match.id, Side.HOME, "hm1-o01", "hm1-o11")
    _injure(db_conn, match, "hm1-o11", minute=60)
    _injure(db_conn, match, "am1-gk1", minute=61)
    state = service.run_automatic_substitutions(db_conn, match.id)
    assert "hm1-o11" not in state.home_lineup
    assert state.home_subs_made == 3
    assert "am1-gk1" not in state.away_lineup
    _assert_invariants(state, _keepers(db_conn))


# ---------- Lifecycle ----------


def test_pause_and_resume(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    assert service.pause_match(db_conn, match.id).is_paused
    assert service.get_state(db_conn, match.id).is_paused
    before = service.get_state(db_conn, match.id)

    resumed = service.resume_match(db_conn, match.id)
    assert not resumed.is_paused
    assert resumed.home_lineup == before.home_lineup
    assert resumed.home_subs_made == before.home_subs_made


def test_resume_without_state(db_conn, service):
    with pytest.raises(NoActiveMatchStateError):
        service.resume_match(db_conn, "missing")


def test_end_match_discards_state(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    final = service.end_match(db_conn, match.id)
    assert len(final.home_lineup) == 11
    with pytest.raises(NoActiveMatchStateError):
        service.get_state(db_conn, match.id)


# ---------- Concurrency ----------


def test_concurrent_substitutions_never_exceed_budget(db_path, db_conn, service):
    match = _make_match(db_conn, home_outfield=17)
    service.start_match(db_conn, match.id)
    outs = [f"hm1-o{i:02d}" for i in range(1, 7)]
    ins = [f"hm1-o{i:02d}" for i in range(11, 17)]
    results: list[str] = []
    guard = threading.Lock()

    def worker(out_id, in_id):
        conn = get_connection(db_path)
        try:
            service.substitute(conn, match.id, Side.HOME, out_id, in_id)
            outcome = "ok"
        except SubBudgetExhaustedError:
            outcome = "budget"
        finally:
            conn.close()
        with guard:
            results.append(outcome)

    threads = [threading.Thread(target=worker, args=pair) for pair in zip(outs, ins)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("ok") == 3
    assert results.count("budget") == 3
    state = service.get_state(db_conn, match.id)
    assert state.home_subs_made == 3
    _assert_invariants(state, _keepers(db_conn))


# ---------- Goalkeeper replacement ----------


def test_keeper_cannot_go_off_for_outfield_player(db_conn, service):
    match = _make_match(db_conn)
    before = service.start_match(db_conn, match.id)
    with pytest.raises(GoalkeeperSwapError):
        service.substitute(db_conn, match.id, Side.HOME, "hm1-gk1", "hm1-o11")
    with pytest.raises(StateConflictError):
        service.substitute(db_conn, match.id, Side.AWAY, "am1-gk1", "am1-o12")
    assert service.get_state(db_conn, match.id) == before


def test_auto_never_leaves_side_without_keeper(db_conn):
    match = _make_match(db_conn, home_keepers=1, away_keepers=1)
    for seed in range(40):
        svc = SubstitutionService(rng=SeededRNG(seed))
        MatchStateRepository().delete(db_conn, match.id)
        svc.start_match(db_conn, match.id)
        state = svc.run_automatic_substitutions(db_conn, match.id)
        assert state.home_subs_made == 3
        assert state.away_subs_made == 3
        assert "hm1-gk1" in state.home_lineup
        assert "am1-gk1" in state.away_lineup
        _assert_invariants(state, _keepers(db_conn))


def test_auto_replaces_injured_keeper_with_bench_keeper(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    _injure(db_conn, match, "hm1-gk1", minute=15)
    state = service.run_automatic_substitutions(db_conn, match.id)
    assert state.home_lineup[0] == "hm1-gk2"
    assert "hm1-gk1" in state.home_reserves
    _assert_invariants(state, _keepers(db_conn))


def test_auto_leaves_injured_keeper_without_bench_keeper(db_conn, service):
    match = _make_match(db_conn, home_keepers=1, away_keepers=1)
    service.start_match(db_conn, match.id)
    _injure(db_conn, match, "hm1-gk1", minute=15)
    state = service.run_automatic_substitutions(db_conn, match.id)
    assert state.home_lineup[0] == "hm1-gk1"
    assert state.home_subs_made == 3
    assert not {"hm1-o11", "hm1-o12", "hm1-o13"} & set(state.home_reserves)


def test_end_match_releases_lock(db_conn, service):
    match = _make_match(db_conn)
    service.start_match(db_conn, match.id)
    assert match.id in service._locks
    service.end_match(db_conn, match.id)
    assert match.id not in service._locks

    restarted = service.start_match(db_conn, match.id)
    assert restarted.home_subs_made == 0
    assert match.id in service._locks
