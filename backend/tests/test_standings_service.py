"""
Tests for standings: scoring, tie-break order, played-matchday filter, division tables.
"""
from __future__ import annotations

import random
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from backend.models import Match, MatchdayType, Scope
from backend.persistence.db import get_connection, init_db, set_db_path
from backend.persistence.repositories import (
    SaveRepository,
    TeamRepository,
    MatchdayRepository,
    MatchRepository,
)
from backend.errors import InvalidInputError, NotFoundError
from backend.services.standings_service import StandingsService, fold_matches


@pytest.fixture
def db_conn(tmp_path):
    db_path = tmp_path / "standings_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def save(db_conn):
    save = SaveRepository().create(db_conn, "Standings", id="save-1")
    teams = TeamRepository()
    for tid, div in [("t-a", "D1"), ("t-b", "D1"), ("t-c", "D1"), ("t-d", "D2"), ("t-e", "D2")]:
        teams.create(db_conn, save.id, tid.upper(), div, id=tid)
    return save


def _played_matchday(conn, save_id, number, results, type_=MatchdayType.LEAGUE, season=1, played=True):
    """results: [(home, away, hg, ag)]."""
    md = MatchdayRepository().create(conn, save_id, number, type_, season=season)
    matches = MatchRepository()
    for home, away, hg, ag in results:
        m = matches.create(conn, save_id, md.id, home, away)
        if hg is not None:
            matches.update_result(conn, m.id, hg, ag)
    if played:
        MatchdayRepository().mark_played(conn, md.id)
    return md


def _m(home, away, hg, ag, mid="x"):
    return Match(id=mid, save_id="s", matchday_id="md", home_team_id=home, away_team_id=away,
                 home_goals=hg, away_goals=ag, played=hg is not None)


def test_two_team_scenario(db_conn, save):
    _played_matchday(db_conn, save.id, 1, [("t-a", "t-b", 2, 1)])
    rows = {r.team_id: r for r in StandingsService().compute_standings(db_conn, save.id)}
    home, away = rows["t-a"], rows["t-b"]
    assert (home.played, home.won, home.points, home.goals_for, home.goals_against) == (1, 1, 3, 2, 1)
    assert (away.played, away.lost, away.points, away.goals_for, away.goals_against) == (1, 1, 0, 1, 2)
    assert set(rows) == {"t-a", "t-b"}


def test_draw_gives_one_point_each():
    rows = {r.team_id: r for r in fold_matches([_m("a", "b", 1, 1)])}
    assert rows["a"].points == 1 and rows["a"].drawn == 1
    assert rows["b"].points == 1 and rows["b"].drawn == 1


def test_missing_goals_count_as_zero():
    rows = {r.team_id: r for r in fold_matches([_m("a", "b", None, None)])}
    assert rows["a"].played == 1
    assert rows["a"].drawn == 1
    assert rows["a"].goals_for == 0


def test_tie_break_order():
    matches = [
        _m("a", "x", 3, 0),  # a: 3 pts, GD +3, GF 3
        _m("b", "y", 4, 1),  # b: 3 pts, GD +3, GF 4
        _m("c", "z", 1, 0),  # c: 3 pts, GD +1
        _m("e", "w", 1, 0),  # e: same as c, later id
    ]
    order = [r.team_id for r in fold_matches(matches)]
    assert order[:4] == ["b", "a", "c", "e"]


def test_ordering_independent_of_input_order():
    matches = [
        _m("a", "b", 2, 2), _m("c", "d", 0, 1), _m("b", "c", 3, 1),
        _m("d", "a", 2, 2), _m("a", "c", 1, 0), _m("b", "d", 0, 0),
    ]
    expected = [r.to_dict() for r in fold_matches(matches)]
    rng = random.Random(4)
    for _ in range(10):
        shuffled = list(matches)
        rng.shuffle(shuffled)
        assert [r.to_dict() for r in fold_matches(shuffled)] == expected


def test_unplayed_matchday_excluded_wholesale(db_conn, save):
    _played_matchday(db_conn, save.id, 1, [("t-a", "t-b", 1, 0)])
    # Round 2 has a recorded result but is not flagged played
    _played_matchday(db_conn, save.id, 2, [("t-b", "t-a", 5, 0), ("t-c", "t-a", None, None)], played=False)
    rows = {r.team_id: r for r in StandingsService().compute_standings(db_conn, save.id)}
    assert rows["t-a"].points == 3
    assert rows["t-b"].points == 0
    assert "t-c" not in rows


def test_standings_are_deterministic(db_conn, save):
    _played_matchday(db_conn, save.id, 1, [("t-a", "t-b", 1, 1), ("t-c", "t-a", 0, 0)])
    _played_matchday(db_conn, save.id, 2, [("t-b", "t-c", 2, 2)])
    svc = StandingsService()
    first = [r.to_dict() for r in svc.compute_standings(db_conn, save.id)]
    assert first == [r.to_dict() for r in svc.compute_standings(db_conn, save.id)]
    # level on points and goal difference: goals for decides
    assert [r["team_id"] for r in first] == ["t-b", "t-c", "t-a"]


def test_scope_and_season_filters(db_conn, save):
    _played_matchday(db_conn, save.id, 1, [("t-a", "t-b", 1, 0)])
    _played_matchday(db_conn, save.id, 3, [("t-b", "t-a", 3, 0)], type_=MatchdayType.CUP)
    _played_matchday(db_conn, save.id, 1, [("t-c", "t-a", 2, 0)], season=2)
    svc = StandingsService()

    league = {r.team_id: r for r in svc.compute_standings(db_conn, save.id, scope=Scope.LEAGUE)}
    assert league["t-a"].played == 2
    cup = {r.team_id: r for r in svc.compute_standings(db_conn, save.id, scope="cup")}
    assert set(cup) == {"t-a", "t-b"}
    assert cup["t-b"].points == 3
    season2 = {r.team_id: r for r in svc.compute_standings(db_conn, save.id, season=2)}
    assert set(season2) == {"t-a", "t-c"}
    everything = {r.team_id: r for r in svc.compute_standings(db_conn, save.id)}
    assert everything["t-a"].played == 3


def test_standings_errors(db_conn, save):
    svc = StandingsService()
    with pytest.raises(NotFoundError):
        svc.compute_standings(db_conn, "missing")
    with pytest.raises(InvalidInputError):
        svc.compute_standings(db_conn, save.id, scope="friendly")


def test_division_tables_include_every_team(db_conn, save):
    _played_matchday(db_conn, save.id, 1, [("t-a", "t-b", 2, 0), ("t-d", "t-e", 1, 1)])
    _played_matchday(db_conn, save.id, 3, [("t-c", "t-a", 4, 0)], type_=MatchdayType.CUP)
    tables = StandingsService().division_tables(db_conn, save.id)
    assert list(tables) == ["D1", "D2", "D3", "D4"]
    d1 = [r.team_id for r in tables["D1"]]
    assert d1 == ["t-a", "t-c", "t-b"]
    assert tables["D1"][1].played == 0
    assert [r.points for r in tables["D2"]] == [1, 1]
    assert tables["D3"] == []
