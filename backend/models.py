"""
Data models for the season-progression engine.
Domain objects only; no persistence or API logic.

Save-centric architecture: a save owns teams, players, matchdays and matches;
matchdays group matches into rounds; match state and per-player stats hang off
individual matches.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# ---------- Enums ----------
class DivisionTier(str, Enum):
    D1 = "D1"
    D2 = "D2"
    D3 = "D3"
    D4 = "D4"
    DISTRITAL = "Distrital"


class Position(str, Enum):
    GK = "GK"
    DF = "DF"
    MF = "MF"
    AT = "AT"


class MatchdayType(str, Enum):
    LEAGUE = "LEAGUE"
    CUP = "CUP"


class MatchEventType(str, Enum):
    GOAL = "GOAL"
    ASSIST = "ASSIST"
    YELLOW = "YELLOW"
    RED = "RED"
    INJURY = "INJURY"
    SUB = "SUB"


class Side(str, Enum):
    HOME = "home"
    AWAY = "away"


class Scope(str, Enum):
    """Filter over matchday type used by rankings and standings."""
    ALL = "all"
    LEAGUE = "league"
    CUP = "cup"

    @property
    def matchday_type(self) -> MatchdayType | None:
        if self is Scope.LEAGUE:
            return MatchdayType.LEAGUE
        if self is Scope.CUP:
            return MatchdayType.CUP
        return None


# ---------- Save ----------
@dataclass
class Save:
    """Tenancy boundary. Everything below is scoped to one save."""
    id: str
    name: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "created_at": self.created_at.isoformat()}


# ---------- Team ----------
@dataclass
class Team:
    id: str
    save_id: str
    name: str
    division: str  # DivisionTier value
    rating: int
    morale: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "save_id": self.save_id,
            "name": self.name,
            "division": self.division,
            "rating": self.rating,
            "morale": self.morale,
        }


# ---------- Player ----------
@dataclass
class Player:
    """
    A squad player. team_id None = free agent.
    behavior is 1-5 and feeds salary/price; contract_until is the season the contract runs out.
    """
    id: str
    save_id: str
    name: str
    position: str  # Position value
    rating: int
    behavior: int
    salary: int
    contract_until: int | None
    team_id: str | None = None

    @property
    def is_goalkeeper(self) -> bool:
        return self.position == Position.GK

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "save_id": self.save_id,
            "name": self.name,
            "position": self.position,
            "rating": self.rating,
            "behavior": self.behavior,
            "salary": self.salary,
            "contract_until": self.contract_until,
            "team_id": self.team_id,
        }


# ---------- Matchday ----------
@dataclass
class Matchday:
    """
    One scheduled round. is_played flips false -> true once and is never reset;
    matches under a played matchday are history.
    """
    id: str
    save_id: str
    number: int
    type: str  # MatchdayType value
    season: int
    is_played: bool
    round_label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "save_id": self.save_id,
            "number": self.number,
            "type": self.type,
            "season": self.season,
            "is_played": self.is_played,
        }
        if self.round_label is not None:
            d["round_label"] = self.round_label
        return d


# ---------- Match ----------
@dataclass
class Match:
    """Goals stay None until the (external) simulator records a result."""
    id: str
    save_id: str
    matchday_id: str
    home_team_id: str
    away_team_id: str
    home_goals: int | None
    away_goals: int | None
    played: bool
    match_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "save_id": self.save_id,
            "matchday_id": self.matchday_id,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "home_goals": self.home_goals,
            "away_goals": self.away_goals,
            "played": self.played,
            "match_date": self.match_date,
        }


# ---------- MatchEvent ----------
@dataclass
class MatchEvent:
    """Append-only log entry. id is the insertion sequence."""
    id: int
    match_id: str
    minute: int
    type: str  # MatchEventType value
    player_id: str | None = None
    team_id: str | None = None
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "match_id": self.match_id,
            "minute": self.minute,
            "type": self.type,
            "player_id": self.player_id,
            "team_id": self.team_id,
            "description": self.description,
        }


# ---------- MatchState ----------
@dataclass
class MatchState:
    """
    Live lineup/reserve sets for one match.
    Invariants: lineup and reserves are disjoint per side; subs made <= 3 per side.
    """
    match_id: str
    home_lineup: list[str] = field(default_factory=list)
    away_lineup: list[str] = field(default_factory=list)
    home_reserves: list[str] = field(default_factory=list)
    away_reserves: list[str] = field(default_factory=list)
    home_subs_made: int = 0
    away_subs_made: int = 0
    is_paused: bool = False

    def lineup(self, side: Side) -> list[str]:
        return self.home_lineup if Side(side) is Side.HOME else self.away_lineup

    def reserves(self, side: Side) -> list[str]:
        return self.home_reserves if Side(side) is Side.HOME else self.away_reserves

    def subs_made(self, side: Side) -> int:
        return self.home_subs_made if Side(side) is Side.HOME else self.away_subs_made

    def to_dict(self) -> dict[str, Any]:
        return {
            "match_id": self.match_id,
            "home_lineup": list(self.home_lineup),
            "away_lineup": list(self.away_lineup),
            "home_reserves": list(self.home_reserves),
            "away_reserves": list(self.away_reserves),
            "home_subs_made": self.home_subs_made,
            "away_subs_made": self.away_subs_made,
            "is_paused": self.is_paused,
        }


# ---------- PlayerMatchStat ----------
@dataclass
class PlayerMatchStat:
    """Derived from the event log only; always overwritten, never incremented."""
    player_id: str
    match_id: str
    goals: int = 0
    assists: int = 0
    yellow: int = 0
    red: int = 0
    injuries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "match_id": self.match_id,
            "goals": self.goals,
            "assists": self.assists,
            "yellow": self.yellow,
            "red": self.red,
            "injuries": self.injuries,
        }


@dataclass
class PlayerTotals:
    """PlayerMatchStat rows summed for one player; season None means all-time."""
    player_id: str
    season: int | None = None
    games: int = 0
    goals: int = 0
    assists: int = 0
    yellow: int = 0
    red: int = 0
    injuries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "season": self.season,
            "games": self.games,
            "goals": self.goals,
            "assists": self.assists,
            "yellow": self.yellow,
            "red": self.red,
            "injuries": self.injuries,
        }


# ---------- StandingRow ----------
@dataclass
class StandingRow:
    """League-table row. Recomputed on demand; never ground truth."""
    team_id: str
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    def to_dict(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "played": self.played,
            "won": self.won,
            "drawn": self.drawn,
            "lost": self.lost,
            "goals_for": self.goals_for,
            "goals_against": self.goals_against,
            "goal_difference": self.goal_difference,
            "points": self.points,
        }


# ---------- Fixture ----------
@dataclass(frozen=True)
class Fixture:
    """A generated (not yet persisted) pairing."""
    matchday_number: int
    matchday_type: MatchdayType
    home_team_id: str
    away_team_id: str


# ---------- Golden boot ----------
@dataclass
class GoldenBootRow:
    rank: int
    player_id: str
    name: str
    team_id: str | None
    team_name: str | None
    position: str | None
    goals: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "player_id": self.player_id,
            "name": self.name,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "position": self.position,
            "goals": self.goals,
        }


# ---------- Finalize summary ----------
@dataclass
class FinalizeSummary:
    save_id: str
    matchday_id: str
    matches_finalized: int
    standings_preview: list[StandingRow]

    def to_dict(self) -> dict[str, Any]:
        return {
            "save_id": self.save_id,
            "matchday_id": self.matchday_id,
            "matches_finalized": self.matches_finalized,
            "standings_preview": [r.to_dict() for r in self.standings_preview],
        }


# ---------- Cup log ----------
@dataclass
class CupLogMatch:
    match_id: str
    home_team_id: str
    away_team_id: str
    home_team_name: str
    away_team_name: str
    home_goals: int | None
    away_goals: int | None
    played: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "match_id": self.match_id,
            "home_team": {"id": self.home_team_id, "name": self.home_team_name, "goals": self.home_goals},
            "away_team": {"id": self.away_team_id, "name": self.away_team_name, "goals": self.away_goals},
            "played": self.played,
        }


@dataclass
class CupRound:
    """One cup matchday with its pairings in bracket order."""
    matchday_id: str
    matchday_number: int
    round_label: str
    matches: list[CupLogMatch] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matchday_id": self.matchday_id,
            "matchday_number": self.matchday_number,
            "round_label": self.round_label,
            "matches": [m.to_dict() for m in self.matches],
        }
