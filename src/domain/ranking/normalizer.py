"""Validate raw match submissions into canonical ``MatchResult`` payloads."""

from __future__ import annotations

from datetime import UTC, datetime

from domain.common import (
    AgeDivision,
    GameScore,
    MatchResult,
    MatchSide,
    MatchSubmission,
    MatchType,
    PlayFormat,
)
from domain.errors import InvalidGameScore, InvalidMatchResult


def normalize_match(
    submission: MatchSubmission,
    *,
    received_at: datetime | None = None,
) -> MatchResult:
    """Reject ties and malformed payloads, then record the decisive winner.

    Pure: nothing is read from or written to any store.
    """
    play_format = PlayFormat.parse(submission.play_format)
    age_division = AgeDivision.parse(submission.age_division)
    match_type = MatchType.parse(submission.match_type)

    side1 = _build_side(submission.match_id, submission.side1_player_ids, play_format, label="side 1")
    side2 = _build_side(submission.match_id, submission.side2_player_ids, play_format, label="side 2")
    overlap = set(side1.player_ids) & set(side2.player_ids)
    if overlap:
        raise InvalidMatchResult(
            submission.match_id,
            f"player(s) {sorted(overlap)} appear on both sides",
        )

    if not submission.games:
        raise InvalidMatchResult(submission.match_id, "no game scores were submitted")

    games: list[GameScore] = []
    for game_number, (raw_team1, raw_team2) in enumerate(submission.games, start=1):
        team1_score = _whole_score(game_number, raw_team1, raw_team2, raw_team1)
        team2_score = _whole_score(game_number, raw_team1, raw_team2, raw_team2)
        if team1_score < 0 or team2_score < 0:
            raise InvalidGameScore(game_number, team1_score, team2_score, "scores cannot be negative")
        if team1_score == team2_score:
            raise InvalidGameScore(game_number, team1_score, team2_score, "games cannot end in a tie")
        games.append(GameScore(team1_score=team1_score, team2_score=team2_score))

    side1_games_won = sum(1 for game in games if game.winning_side == 1)
    side2_games_won = len(games) - side1_games_won
    if side1_games_won == side2_games_won:
        raise InvalidMatchResult(
            submission.match_id,
            f"games are split {side1_games_won}-{side2_games_won}; a match needs a winner",
        )

    played_at = submission.played_at or received_at or datetime.now(UTC).replace(tzinfo=None)

    return MatchResult(
        match_id=submission.match_id,
        side1=side1,
        side2=side2,
        games=tuple(games),
        winning_side=1 if side1_games_won > side2_games_won else 2,
        side1_games_won=side1_games_won,
        side2_games_won=side2_games_won,
        play_format=play_format,
        age_division=age_division,
        match_type=match_type,
        played_at=played_at,
    )


def _whole_score(game_number: int, team1_raw: object, team2_raw: object, value: object) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise InvalidGameScore(game_number, team1_raw, team2_raw, "scores must be whole numbers")


def _build_side(
    match_id: int,
    player_ids: tuple[int, ...],
    play_format: PlayFormat,
    *,
    label: str,
) -> MatchSide:
    if not player_ids:
        raise InvalidMatchResult(match_id, f"{label} has no players")
    if len(set(player_ids)) != len(player_ids):
        raise InvalidMatchResult(match_id, f"{label} lists the same player twice")
    if len(player_ids) != play_format.players_per_side:
        raise InvalidMatchResult(
            match_id,
            f"{label} has {len(player_ids)} player(s) but {play_format.value} "
            f"needs {play_format.players_per_side}",
        )
    return MatchSide(player_ids=tuple(int(player_id) for player_id in player_ids))


__all__ = ["normalize_match"]
