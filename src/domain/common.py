"""Shared types for the ranking engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from domain.errors import UnknownAgeDivision, UnknownMatchType, UnknownPlayFormat


class PlayFormat(str, Enum):
    """Match format; each format keeps its own leaderboard."""

    SINGLES = "singles"
    DOUBLES = "doubles"
    MIXED = "mixed"

    @property
    def players_per_side(self) -> int:
        return 1 if self is PlayFormat.SINGLES else 2

    @classmethod
    def parse(cls, value: object) -> PlayFormat:
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "").replace("-", "")
        aliases = {"mixeddoubles": "mixed"}
        normalized = aliases.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError as exc:
            raise UnknownPlayFormat(value) from exc


class AgeDivision(str, Enum):
    """Age division declared on a match, ordered by minimum age."""

    OPEN = "19plus"
    THIRTY_FIVE_PLUS = "35plus"
    FIFTY_PLUS = "50plus"
    SIXTY_PLUS = "60plus"
    SEVENTY_PLUS = "70plus"

    @classmethod
    def parse(cls, value: object) -> AgeDivision:
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("+", "plus").replace(" ", "")
        if normalized == "open":
            normalized = cls.OPEN.value
        try:
            return cls(normalized)
        except ValueError as exc:
            raise UnknownAgeDivision(value) from exc


class MatchType(str, Enum):
    CASUAL = "casual"
    TOURNAMENT = "tournament"

    @classmethod
    def parse(cls, value: object) -> MatchType:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise UnknownMatchType(value) from exc


class Gender(str, Enum):
    """Only consulted by the gender-balance bonus."""

    MALE = "male"
    FEMALE = "female"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value: object) -> Gender:
        if value is None:
            return cls.UNSPECIFIED
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNSPECIFIED


@dataclass(frozen=True)
class GameScore:
    team1_score: int
    team2_score: int

    @property
    def winning_side(self) -> int:
        return 1 if self.team1_score > self.team2_score else 2


@dataclass(frozen=True)
class MatchSide:
    """One or two players competing together."""

    player_ids: tuple[int, ...]

    def __contains__(self, player_id: object) -> bool:
        return player_id in self.player_ids


@dataclass(frozen=True)
class MatchSubmission:
    """Raw payload handed over by the match-entry boundary.

    Values are taken as submitted; nothing here is trusted until the
    normalizer has produced a ``MatchResult``.
    """

    match_id: int
    side1_player_ids: tuple[int, ...]
    side2_player_ids: tuple[int, ...]
    games: tuple[tuple[int, int], ...]
    play_format: str | PlayFormat
    age_division: str | AgeDivision
    match_type: str | MatchType = MatchType.CASUAL
    played_at: datetime | None = None


@dataclass(frozen=True)
class MatchResult:
    """Canonical, validated match outcome consumed by the allocator."""

    match_id: int
    side1: MatchSide
    side2: MatchSide
    games: tuple[GameScore, ...]
    winning_side: int
    side1_games_won: int
    side2_games_won: int
    play_format: PlayFormat
    age_division: AgeDivision
    match_type: MatchType
    played_at: datetime

    @property
    def winner(self) -> MatchSide:
        return self.side1 if self.winning_side == 1 else self.side2

    @property
    def loser(self) -> MatchSide:
        return self.side2 if self.winning_side == 1 else self.side1

    def participant_ids(self) -> tuple[int, ...]:
        return self.side1.player_ids + self.side2.player_ids

    def side_of(self, player_id: int) -> int:
        if player_id in self.side1:
            return 1
        if player_id in self.side2:
            return 2
        raise KeyError(f"player_id={player_id} did not play match_id={self.match_id}")

    def won(self, player_id: int) -> bool:
        return self.side_of(player_id) == self.winning_side


@dataclass(frozen=True)
class PlayerProfile:
    player_id: int
    rating: float
    gender: Gender = Gender.UNSPECIFIED
    display_name: str | None = None


@dataclass(frozen=True)
class ParticipantContext:
    """Everything the allocator needs to know about one participant.

    ``accumulated_points`` and ``win_streak`` are read from the aggregator
    before the match; ``recent_results`` (oldest first) and
    ``matches_in_window`` come from history.
    """

    profile: PlayerProfile
    accumulated_points: float = 0.0
    win_streak: int = 0
    matches_in_window: int = 0
    recent_results: tuple[bool, ...] = field(default_factory=tuple)

    @property
    def player_id(self) -> int:
        return self.profile.player_id


__all__ = [
    "AgeDivision",
    "GameScore",
    "Gender",
    "MatchResult",
    "MatchSide",
    "MatchSubmission",
    "MatchType",
    "ParticipantContext",
    "PlayFormat",
    "PlayerProfile",
]
