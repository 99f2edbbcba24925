"""Unit tests for ranking points allocation."""

from __future__ import annotations

from datetime import datetime

import pytest

from domain.common import (
    AgeDivision,
    Gender,
    MatchSubmission,
    ParticipantContext,
    PlayerProfile,
)
from domain.errors import UnknownAgeDivision
from domain.ranking.allocator import (
    DEFAULT_AGE_MULTIPLIERS,
    PointsAllocator,
    PointsParameters,
    round_half_up,
)
from domain.ranking.normalizer import normalize_match
from domain.ranking.tiers import RatingTier, TierCatalog, TierCategory, TierRuleResolver

BEGINNER = 2.0
INTERMEDIATE = 5.0
ADVANCED = 7.5
ELITE = 8.5


def _resolver() -> TierRuleResolver:
    return TierRuleResolver(
        TierCatalog(
            [
                RatingTier("Rookie", 0.0, 4.5, "full", 1),
                RatingTier("Contender", 4.5, 8.1, "partial", 2),
                RatingTier("Champion", 8.1, 9.0, "none", 3),
            ]
        )
    )


def _singles(
    *,
    age_division: str = "19plus",
    match_type: str = "casual",
    winner: int = 1,
    loser: int = 2,
):
    return normalize_match(
        MatchSubmission(
            match_id=100,
            side1_player_ids=(winner,),
            side2_player_ids=(loser,),
            games=((11, 6), (11, 8)),
            play_format="singles",
            age_division=age_division,
            match_type=match_type,
            played_at=datetime(2026, 4, 1, 9, 0, 0),
        )
    )


def _context(
    player_id: int,
    rating: float,
    gender: Gender = Gender.MALE,
    **kwargs,
) -> ParticipantContext:
    return ParticipantContext(profile=PlayerProfile(player_id, rating, gender), **kwargs)


def _allocate(match, *contexts: ParticipantContext, params: PointsParameters | None = None):
    allocator = PointsAllocator(_resolver(), params)
    allocations = allocator.allocate(match, {context.player_id: context for context in contexts})
    return {allocation.player_id: allocation for allocation in allocations}


def test_round_half_up_rounds_halves_away_from_zero() -> None:
    assert round_half_up(2.5) == 3.0
    assert round_half_up(4.5) == 5.0
    assert round_half_up(1.005, 2) == pytest.approx(1.01)
    assert round_half_up(6.9) == 7.0


def test_default_parameters_carry_every_age_multiplier() -> None:
    params = PointsParameters()

    assert params.age_multipliers == DEFAULT_AGE_MULTIPLIERS
    assert [params.age_multiplier(division) for division in AgeDivision] == [1.0, 1.2, 1.3, 1.5, 1.6]
    assert PointsParameters() == params


def test_casual_intermediate_singles_win_and_protected_loss() -> None:
    allocations = _allocate(
        _singles(),
        _context(1, INTERMEDIATE),
        _context(2, INTERMEDIATE),
    )

    winner = allocations[1]
    assert winner.won is True
    assert winner.tier_category is TierCategory.INTERMEDIATE
    assert winner.base_points == 3
    assert winner.scaled_points == 3
    assert winner.final_points == pytest.approx(8.0)
    assert winner.tier_modifier_delta == pytest.approx(5.0)
    assert winner.rating_tier == "Contender"

    loser = allocations[2]
    assert loser.won is False
    assert loser.final_points == pytest.approx(1.0)
    assert any("no points lost" in reason for reason in loser.reason_trail)


def test_cross_gender_tournament_bonus_goes_to_female_player_only() -> None:
    allocations = _allocate(
        _singles(match_type="tournament"),
        _context(1, INTERMEDIATE, Gender.FEMALE),
        _context(2, INTERMEDIATE, Gender.MALE),
    )

    winner = allocations[1]
    assert winner.tournament_multiplier == pytest.approx(2.0)
    assert winner.gender_bonus_multiplier == pytest.approx(1.15)
    assert winner.scaled_points == 7
    assert winner.final_points == pytest.approx(12.0)

    loser = allocations[2]
    assert loser.gender_bonus_multiplier == pytest.approx(1.0)
    assert loser.scaled_points == 2
    assert loser.final_points == pytest.approx(2.0)


def test_male_player_facing_female_gets_no_singles_bonus() -> None:
    allocations = _allocate(
        _singles(match_type="tournament"),
        _context(1, INTERMEDIATE, Gender.MALE),
        _context(2, INTERMEDIATE, Gender.FEMALE),
    )

    assert allocations[1].gender_bonus_multiplier == pytest.approx(1.0)
    assert allocations[1].scaled_points == 6
    assert allocations[2].gender_bonus_multiplier == pytest.approx(1.15)


@pytest.mark.parametrize(
    ("accumulated", "expected_multiplier"),
    [(0.0, 1.15), (999.99, 1.15), (1000.0, 1.0), (1500.0, 1.0)],
)
def test_gender_bonus_stops_at_elite_threshold(accumulated: float, expected_multiplier: float) -> None:
    allocations = _allocate(
        _singles(match_type="tournament"),
        _context(1, INTERMEDIATE, Gender.FEMALE, accumulated_points=accumulated),
        _context(2, INTERMEDIATE, Gender.MALE),
    )

    assert allocations[1].gender_bonus_multiplier == pytest.approx(expected_multiplier)


def test_mixed_team_bonus_applies_to_both_members_of_mixed_side() -> None:
    match = normalize_match(
        MatchSubmission(
            match_id=200,
            side1_player_ids=(1, 2),
            side2_player_ids=(3, 4),
            games=((11, 3), (11, 5)),
            play_format="mixed",
            age_division="60plus",
            match_type="tournament",
            played_at=datetime(2026, 4, 1, 9, 0, 0),
        )
    )
    allocations = _allocate(
        match,
        _context(1, INTERMEDIATE, Gender.MALE),
        _context(2, INTERMEDIATE, Gender.FEMALE),
        _context(3, INTERMEDIATE, Gender.MALE),
        _context(4, INTERMEDIATE, Gender.MALE),
    )

    assert allocations[1].gender_bonus_multiplier == pytest.approx(1.075)
    assert allocations[2].gender_bonus_multiplier == pytest.approx(1.075)
    assert allocations[1].scaled_points == 10
    assert allocations[3].gender_bonus_multiplier == pytest.approx(1.0)
    assert allocations[3].scaled_points == 3


def test_elite_loss_in_senior_division_reduces_total() -> None:
    allocations = _allocate(
        _singles(age_division="60plus"),
        _context(1, ELITE),
        _context(2, ELITE, accumulated_points=100.0),
    )

    loser = allocations[2]
    assert loser.tier_category is TierCategory.ELITE
    assert loser.age_multiplier == pytest.approx(1.5)
    assert loser.final_points == pytest.approx(-1.5)
    assert loser.pickle_points == pytest.approx(0.0)

    winner = allocations[1]
    assert winner.scaled_points == 5
    assert winner.final_points == pytest.approx(5.0)


def test_advanced_loss_uses_half_multiplier() -> None:
    allocations = _allocate(
        _singles(match_type="tournament"),
        _context(1, ADVANCED),
        _context(2, ADVANCED, accumulated_points=50.0),
    )

    assert allocations[2].final_points == pytest.approx(-1.0)


def test_point_loss_is_capped_per_match() -> None:
    params = PointsParameters(win_points=60, loss_points=40)
    allocations = _allocate(
        _singles(age_division="70plus", match_type="tournament"),
        _context(1, ELITE),
        _context(2, ELITE, accumulated_points=500.0),
        params=params,
    )
    assert allocations[2].final_points == pytest.approx(-50.0)

    allocations = _allocate(
        _singles(age_division="70plus", match_type="tournament"),
        _context(1, ADVANCED),
        _context(2, ADVANCED, accumulated_points=500.0),
        params=params,
    )
    assert allocations[2].final_points == pytest.approx(-25.0)


def test_point_loss_never_takes_total_below_zero() -> None:
    allocations = _allocate(
        _singles(age_division="60plus"),
        _context(1, ELITE),
        _context(2, ELITE, accumulated_points=0.5),
    )
    assert allocations[2].final_points == pytest.approx(-0.5)

    allocations = _allocate(
        _singles(age_division="60plus"),
        _context(1, ELITE),
        _context(2, ELITE, accumulated_points=0.0),
    )
    assert allocations[2].final_points == pytest.approx(0.0)


def test_winner_always_outscores_loser() -> None:
    for rating in (BEGINNER, INTERMEDIATE, ADVANCED, ELITE):
        for division in ("19plus", "35plus", "50plus", "60plus", "70plus"):
            allocations = _allocate(
                _singles(age_division=division),
                _context(1, rating),
                _context(2, rating, accumulated_points=20.0),
            )
            assert allocations[1].final_points > allocations[2].final_points


def test_age_multiplier_scales_points_by_division() -> None:
    scaled = []
    for division in AgeDivision:
        allocations = _allocate(
            _singles(age_division=division.value),
            _context(1, INTERMEDIATE),
            _context(2, INTERMEDIATE),
        )
        scaled.append(allocations[1].scaled_points)

    assert scaled == [3, 4, 4, 5, 5]
    assert scaled == sorted(scaled)


def test_unknown_age_multiplier_is_rejected() -> None:
    params = PointsParameters(age_multipliers={AgeDivision.OPEN: 1.0})
    with pytest.raises(UnknownAgeDivision):
        _allocate(
            _singles(age_division="70plus"),
            _context(1, INTERMEDIATE),
            _context(2, INTERMEDIATE),
            params=params,
        )


def test_streak_bonus_applies_when_threshold_is_reached() -> None:
    without_streak = _allocate(_singles(), _context(1, BEGINNER), _context(2, BEGINNER))
    with_streak = _allocate(_singles(), _context(1, BEGINNER, win_streak=1), _context(2, BEGINNER))

    assert without_streak[1].final_points == pytest.approx(5.0)
    assert with_streak[1].final_points == pytest.approx(15.0)
    assert any("Win streak of 2" in reason for reason in with_streak[1].reason_trail)


def test_upset_win_over_higher_tier_multiplies_points() -> None:
    allocations = _allocate(
        _singles(),
        _context(1, BEGINNER),
        _context(2, ELITE, accumulated_points=10.0),
    )

    assert allocations[1].final_points == pytest.approx(6.0)
    assert any("Upset" in reason for reason in allocations[1].reason_trail)
    assert allocations[2].final_points == pytest.approx(-1.0)


def test_fast_track_bonus_for_underrated_winner() -> None:
    hot_streak = (True, True, False, True, True, True, True)
    allocations = _allocate(
        _singles(),
        _context(1, INTERMEDIATE, recent_results=hot_streak),
        _context(2, INTERMEDIATE),
    )
    assert allocations[1].final_points == pytest.approx(10.0)

    borderline = (True, False, True, True)
    allocations = _allocate(
        _singles(),
        _context(1, INTERMEDIATE, recent_results=borderline),
        _context(2, INTERMEDIATE),
    )
    assert allocations[1].final_points == pytest.approx(8.0)

    too_few = (True, True, True)
    allocations = _allocate(
        _singles(),
        _context(1, INTERMEDIATE, recent_results=too_few),
        _context(2, INTERMEDIATE),
    )
    assert allocations[1].final_points == pytest.approx(8.0)


def test_consistency_bonus_requires_activity_for_advanced_tier() -> None:
    inactive = _allocate(_singles(), _context(1, ADVANCED), _context(2, ADVANCED, accumulated_points=5.0))
    active = _allocate(
        _singles(),
        _context(1, ADVANCED, matches_in_window=4),
        _context(2, ADVANCED, accumulated_points=5.0),
    )

    assert inactive[1].final_points == pytest.approx(3.0)
    assert active[1].final_points == pytest.approx(10.0)


def test_pickle_points_are_one_and_a_half_times_final_points() -> None:
    allocations = _allocate(_singles(), _context(1, INTERMEDIATE), _context(2, INTERMEDIATE))

    assert allocations[1].pickle_points == pytest.approx(12.0)
    assert allocations[2].pickle_points == pytest.approx(1.5)


def test_missing_participant_context_is_rejected() -> None:
    allocator = PointsAllocator(_resolver())
    with pytest.raises(ValueError, match="missing participant context"):
        allocator.allocate(_singles(), {1: _context(1, INTERMEDIATE)})


def test_allocation_is_deterministic() -> None:
    match = _singles(match_type="tournament")
    contexts = (_context(1, ADVANCED, Gender.FEMALE), _context(2, ELITE, accumulated_points=40.0))

    assert _allocate(match, *contexts) == _allocate(match, *contexts)
