"""
Fixture generation for the league and the knockout cup. Pure: no persistence.

League: exactly 8 teams play a double round-robin, 56 fixtures over matchdays
1..14. The default generator shuffles every ordered pair and pops 4 per matchday,
so a team can appear twice in one matchday. The balanced variant uses the circle
method (fix first slot, rotate others) so each team plays once per matchday.

Cup: exactly 128 teams, single elimination, 7 rounds on matchdays 3, 6, ..., 21.
The eager generator pre-builds every round by advancing the home slot of each
pairing as a placeholder winner. The results-driven pair draws round 1 only and
pairs each later round from the real winners.
"""
from __future__ import annotations

from backend.models import Fixture, MatchdayType
from backend.rng import SeededRNG
from backend.errors import InvalidInputError

LEAGUE_TEAMS = 8
LEAGUE_MATCHES_PER_MATCHDAY = 4
LEAGUE_MATCHDAYS = 14

CUP_TEAMS = 128
CUP_FIRST_MATCHDAY = 3
CUP_MATCHDAY_STEP = 3

CUP_ROUND_LABELS = (
    "Round of 128",
    "Round of 64",
    "Round of 32",
    "Round of 16",
    "Quarterfinal",
    "Semifinal",
    "Final",
)


def _validate_team_ids(team_ids: list[str], expected: int, what: str) -> list[str]:
    ids = list(team_ids)
    if len(ids) != expected:
        raise InvalidInputError(f"{what} needs exactly {expected} teams, got {len(ids)}")
    if len(set(ids)) != len(ids):
        raise InvalidInputError(f"{what} team ids must be distinct")
    return ids


# ---------- League ----------


def generate_league_fixtures(team_ids: list[str], rng: SeededRNG | None = None) -> list[Fixture]:
    """
    Double round-robin for 8 teams: every ordered pair once as (home, away).
    Shuffle the 56 fixtures, then pop 4 per matchday for matchdays 1..14.
    Returned in matchday order.
    """
    ids = _validate_team_ids(team_ids, LEAGUE_TEAMS, "League")
    rng = rng or SeededRNG()
    pairs: list[tuple[str, str]] = []
    for i in range(len(ids)):
        for j in range(i + 1, len(ids)):
            pairs.append((ids[i], ids[j]))
            pairs.append((ids[j], ids[i]))
    rng.shuffle(pairs)

    fixtures: list[Fixture] = []
    for number in range(1, LEAGUE_MATCHDAYS + 1):
        for _ in range(LEAGUE_MATCHES_PER_MATCHDAY):
            if not pairs:
                break
            home, away = pairs.pop()
            fixtures.append(Fixture(number, MatchdayType.LEAGUE, home, away))
    return fixtures


def round_robin_pairings(team_ids: list[str]) -> list[tuple[int, str, str]]:
    """
    Single round-robin via the circle method: (round_number, home, away).
    Even team count only. Deterministic: same team list => same pairings.
    """
    ids = list(team_ids)
    n = len(ids)
    if n < 2 or n % 2 == 1:
        raise InvalidInputError(f"Round-robin needs an even number of teams, got {n}")
    result: list[tuple[int, str, str]] = []
    order = list(range(n))
    for rnd in range(n - 1):
        for i in range(n // 2):
            a, b = order[i], order[n - 1 - i]
            # alternate the fixed team's venue so it is not always at home
            if i == 0 and rnd % 2 == 1:
                a, b = b, a
            result.append((rnd + 1, ids[a], ids[b]))
        # Rotate: keep slot 0, move the last slot to position 1
        order = [order[0]] + [order[n - 1]] + order[1 : n - 1]
    return result


def generate_balanced_league_fixtures(team_ids: list[str]) -> list[Fixture]:
    """
    Double round-robin where each team plays exactly once per matchday.
    Matchdays 1..7 are the first leg; 8..14 mirror them with venues swapped.
    """
    ids = _validate_team_ids(team_ids, LEAGUE_TEAMS, "League")
    first_leg = round_robin_pairings(ids)
    legs = len(ids) - 1
    fixtures = [Fixture(rnd, MatchdayType.LEAGUE, h, a) for rnd, h, a in first_leg]
    fixtures += [Fixture(rnd + legs, MatchdayType.LEAGUE, a, h) for rnd, h, a in first_leg]
    return fixtures


# ---------- Cup ----------


def cup_round_label(index: int) -> str:
    """Stage name for round index 0 (Round of 128) .. 6 (Final)."""
    if not 0 <= index < len(CUP_ROUND_LABELS):
        raise InvalidInputError(f"Cup round index out of range: {index}")
    return CUP_ROUND_LABELS[index]


def cup_matchday_number(index: int) -> int:
    return CUP_FIRST_MATCHDAY + index * CUP_MATCHDAY_STEP


def cup_round_index(matchday_number: int) -> int:
    """Inverse of cup_matchday_number."""
    offset = matchday_number - CUP_FIRST_MATCHDAY
    if offset < 0 or offset % CUP_MATCHDAY_STEP != 0:
        raise InvalidInputError(f"Matchday {matchday_number} is not a cup matchday")
    return offset // CUP_MATCHDAY_STEP


def _pair_consecutive(entries: list[str], matchday_number: int) -> list[Fixture]:
    return [
        Fixture(matchday_number, MatchdayType.CUP, entries[i], entries[i + 1])
        for i in range(0, len(entries) - 1, 2)
    ]


def draw_cup_first_round(team_ids: list[str], rng: SeededRNG | None = None) -> list[Fixture]:
    """Shuffle 128 teams once and pair them consecutively (0 vs 1, 2 vs 3, ...) on matchday 3."""
    ids = _validate_team_ids(team_ids, CUP_TEAMS, "Cup")
    rng = rng or SeededRNG()
    rng.shuffle(ids)
    return _pair_consecutive(ids, CUP_FIRST_MATCHDAY)


def pair_next_cup_round(winners: list[str], matchday_number: int) -> list[Fixture]:
    """Pair the real winners of the previous round consecutively, bracket order preserved."""
    if len(winners) < 2 or len(winners) % 2 == 1:
        raise InvalidInputError(f"Cannot pair {len(winners)} winners into a cup round")
    if len(set(winners)) != len(winners):
        raise InvalidInputError("Cup winners must be distinct")
    return _pair_consecutive(list(winners), matchday_number)


def generate_cup_fixtures(team_ids: list[str], rng: SeededRNG | None = None) -> list[Fixture]:
    """
    Eager bracket: all 127 fixtures over 7 rounds built before any match is played.
    The home slot of each pairing is advanced as the placeholder winner, so rounds
    after the first do not reflect results.
    """
    current = draw_cup_first_round(team_ids, rng)
    fixtures: list[Fixture] = list(current)
    matchday = CUP_FIRST_MATCHDAY
    while len(current) > 1:
        matchday += CUP_MATCHDAY_STEP
        advancing = [f.home_team_id for f in current]
        current = _pair_consecutive(advancing, matchday)
        fixtures.extend(current)
    return fixtures
