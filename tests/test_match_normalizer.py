"""Unit tests for match result normalization."""

from __future__ import annotations

from datetime import datetime

import pytest

from domain.common import AgeDivision, MatchSubmission, MatchType, PlayFormat
from domain.errors import (
    InvalidGameScore,
    InvalidMatchResult,
    MatchValidationError,
    UnknownAgeDivision,
    UnknownMatchType,
    UnknownPlayFormat,
)
from domain.ranking.normalizer import normalize_match


def _submission(**overrides) -> MatchSubmission:
    values = {
        "match_id": 1,
        "side1_player_ids": (10,),
        "side2_player_ids": (20,),
        "games": ((11, 7), (11, 9)),
        "play_format": "singles",
        "age_division": "19plus",
        "match_type": "casual",
        "played_at": datetime(2026, 3, 1, 10, 0, 0),
    }
    values.update(overrides)
    return MatchSubmission(**values)


def test_decisive_singles_match_is_normalized() -> None:
    result = normalize_match(_submission())

    assert result.match_id == 1
    assert result.play_format is PlayFormat.SINGLES
    assert result.age_division is AgeDivision.OPEN
    assert result.match_type is MatchType.CASUAL
    assert result.winning_side == 1
    assert result.side1_games_won == 2
    assert result.side2_games_won == 0
    assert result.winner.player_ids == (10,)
    assert result.loser.player_ids == (20,)
    assert result.won(10) is True
    assert result.won(20) is False


def test_side_two_can_win_after_dropping_first_game() -> None:
    result = normalize_match(_submission(games=((11, 8), (6, 11), (9, 11))))

    assert result.winning_side == 2
    assert result.side1_games_won == 1
    assert result.side2_games_won == 2
    assert result.winner.player_ids == (20,)


def test_tied_game_is_rejected_before_scoring() -> None:
    with pytest.raises(InvalidGameScore) as excinfo:
        normalize_match(_submission(games=((11, 11),)))

    assert excinfo.value.game_number == 1
    assert excinfo.value.team1_score == 11
    assert excinfo.value.team2_score == 11
    assert "tie" in excinfo.value.user_message


def test_tie_in_later_game_reports_its_number() -> None:
    with pytest.raises(InvalidGameScore) as excinfo:
        normalize_match(_submission(games=((11, 4), (9, 9))))

    assert excinfo.value.game_number == 2


def test_negative_score_is_rejected() -> None:
    with pytest.raises(InvalidGameScore):
        normalize_match(_submission(games=((11, -2),)))


def test_split_games_have_no_winner() -> None:
    with pytest.raises(InvalidMatchResult, match="split 1-1"):
        normalize_match(_submission(games=((11, 4), (4, 11))))


def test_missing_games_are_rejected() -> None:
    with pytest.raises(InvalidMatchResult):
        normalize_match(_submission(games=()))


def test_empty_side_is_rejected() -> None:
    with pytest.raises(InvalidMatchResult, match="side 2 has no players"):
        normalize_match(_submission(side2_player_ids=()))


def test_player_on_both_sides_is_rejected() -> None:
    with pytest.raises(InvalidMatchResult, match="both sides"):
        normalize_match(
            _submission(
                play_format="doubles",
                side1_player_ids=(10, 11),
                side2_player_ids=(11, 20),
            )
        )


def test_side_size_must_match_format() -> None:
    with pytest.raises(InvalidMatchResult, match="needs 2"):
        normalize_match(_submission(play_format="doubles"))

    with pytest.raises(InvalidMatchResult, match="needs 1"):
        normalize_match(_submission(side1_player_ids=(10, 11)))


def test_duplicate_player_within_side_is_rejected() -> None:
    with pytest.raises(InvalidMatchResult, match="same player twice"):
        normalize_match(
            _submission(
                play_format="doubles",
                side1_player_ids=(10, 10),
                side2_player_ids=(20, 21),
            )
        )


def test_unknown_enumerations_are_rejected() -> None:
    with pytest.raises(UnknownAgeDivision):
        normalize_match(_submission(age_division="40plus"))
    with pytest.raises(UnknownPlayFormat):
        normalize_match(_submission(play_format="triples"))
    with pytest.raises(UnknownMatchType):
        normalize_match(_submission(match_type="exhibition"))


def test_validation_errors_share_a_value_error_base() -> None:
    with pytest.raises(ValueError):
        normalize_match(_submission(games=((5, 5),)))
    assert issubclass(InvalidGameScore, MatchValidationError)


def test_enum_aliases_are_accepted() -> None:
    result = normalize_match(
        _submission(
            play_format="mixed_doubles",
            age_division="50+",
            match_type="Tournament",
            side1_player_ids=(1, 2),
            side2_player_ids=(3, 4),
        )
    )

    assert result.play_format is PlayFormat.MIXED
    assert result.age_division is AgeDivision.FIFTY_PLUS
    assert result.match_type is MatchType.TOURNAMENT
    assert AgeDivision.parse("open") is AgeDivision.OPEN


def test_missing_played_at_falls_back_to_receive_time() -> None:
    received_at = datetime(2026, 5, 2, 18, 30, 0)
    result = normalize_match(_submission(played_at=None), received_at=received_at)

    assert result.played_at == received_at


def test_fractional_scores_are_rejected_before_tie_check() -> None:
    with pytest.raises(InvalidGameScore, match="whole numbers") as excinfo:
        normalize_match(_submission(games=((11.5, 11),)))

    assert excinfo.value.game_number == 1


def test_integral_float_scores_are_accepted() -> None:
    result = normalize_match(_submission(games=((11.0, 7.0), (11, 9))))

    assert result.games[0].team1_score == 11
    assert isinstance(result.games[0].team1_score, int)
    assert result.winning_side == 1
