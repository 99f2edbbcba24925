"""Exceptions raised by the ranking engine, with user-facing messages."""

from __future__ import annotations


class RankingError(Exception):
    """Base class for ranking-engine errors."""

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class MatchValidationError(RankingError, ValueError):
    """A submission was rejected before any points were computed."""


class InvalidGameScore(MatchValidationError):
    def __init__(self, game_number: int, team1_score: int, team2_score: int, reason: str) -> None:
        super().__init__(
            f"Invalid score {team1_score}-{team2_score} in game {game_number}: {reason}",
            f"Game {game_number} has an invalid score ({team1_score}-{team2_score}): {reason}.",
        )
        self.game_number = game_number
        self.team1_score = team1_score
        self.team2_score = team2_score


class InvalidMatchResult(MatchValidationError):
    def __init__(self, match_id: int, reason: str) -> None:
        super().__init__(
            f"Invalid result for match_id={match_id}: {reason}",
            f"This match result cannot be recorded: {reason}.",
        )
        self.match_id = match_id


class UnknownAgeDivision(MatchValidationError):
    def __init__(self, value: object) -> None:
        super().__init__(
            f"Unknown age division {value!r}",
            f"'{value}' is not a recognised age division.",
        )
        self.value = value


class UnknownMatchType(MatchValidationError):
    def __init__(self, value: object) -> None:
        super().__init__(
            f"Unknown match type {value!r}",
            f"'{value}' is not a recognised match type (casual or tournament).",
        )
        self.value = value


class UnknownPlayFormat(MatchValidationError):
    def __init__(self, value: object) -> None:
        super().__init__(
            f"Unknown play format {value!r}",
            f"'{value}' is not a recognised format (singles, doubles or mixed).",
        )
        self.value = value


class DuplicateMatchSubmission(MatchValidationError):
    def __init__(self, match_id: int) -> None:
        super().__init__(
            f"match_id={match_id} has already been applied",
            "This match has already been recorded.",
        )
        self.match_id = match_id


class TierCatalogUnavailable(RankingError):
    def __init__(self) -> None:
        super().__init__(
            "No rating tier catalog is loaded",
            "Rating tiers are not configured. Please try again later.",
        )


class ConcurrentUpdateConflict(RankingError):
    """A compare-and-set on a ranking total lost a race; safe to retry."""

    def __init__(self, key: object, attempts: int | None = None) -> None:
        detail = f" after {attempts} attempts" if attempts is not None else ""
        super().__init__(
            f"Concurrent update conflict for {key}{detail}",
            "Failed to save ranking points. Please try again.",
        )
        self.key = key
        self.attempts = attempts


__all__ = [
    "ConcurrentUpdateConflict",
    "DuplicateMatchSubmission",
    "InvalidGameScore",
    "InvalidMatchResult",
    "MatchValidationError",
    "RankingError",
    "TierCatalogUnavailable",
    "UnknownAgeDivision",
    "UnknownMatchType",
    "UnknownPlayFormat",
]
