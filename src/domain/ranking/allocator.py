"""Convert a validated match result into per-player ranking-point deltas."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType

from domain.common import (
    AgeDivision,
    Gender,
    MatchResult,
    MatchType,
    ParticipantContext,
    PlayFormat,
)
from domain.errors import UnknownAgeDivision, UnknownMatchType
from domain.ranking.tiers import ResolvedTier, TierCategory, TierRuleResolver

DEFAULT_AGE_MULTIPLIERS: Mapping[AgeDivision, float] = MappingProxyType(
    {
        AgeDivision.OPEN: 1.0,
        AgeDivision.THIRTY_FIVE_PLUS: 1.2,
        AgeDivision.FIFTY_PLUS: 1.3,
        AgeDivision.SIXTY_PLUS: 1.5,
        AgeDivision.SEVENTY_PLUS: 1.6,
    }
)


def round_half_up(value: float, places: int = 0) -> float:
    """Round like a scorekeeper would (2.5 -> 3), free of binary float drift."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PointsParameters:
    win_points: int = 3
    loss_points: int = 1
    tournament_multiplier: float = 2.0
    elite_threshold: float = 1000.0
    singles_gender_bonus: float = 1.15
    mixed_gender_bonus: float = 1.075
    pickle_points_multiplier: float = 1.5
    fast_track_window: int = 8
    fast_track_min_matches: int = 4
    fast_track_win_ratio: float = 0.75
    age_multipliers: Mapping[AgeDivision, float] = field(default_factory=lambda: DEFAULT_AGE_MULTIPLIERS)

    def age_multiplier(self, division: AgeDivision) -> float:
        try:
            return self.age_multipliers[division]
        except KeyError as exc:
            raise UnknownAgeDivision(division) from exc

    def match_type_multiplier(self, match_type: MatchType) -> float:
        if match_type is MatchType.TOURNAMENT:
            return self.tournament_multiplier
        if match_type is MatchType.CASUAL:
            return 1.0
        raise UnknownMatchType(match_type)


@dataclass(frozen=True)
class PointsAllocation:
    """Immutable per-player outcome of one match."""

    match_id: int
    player_id: int
    won: bool
    play_format: PlayFormat
    age_division: AgeDivision
    tier_category: TierCategory
    rating_tier: str | None
    base_points: int
    age_multiplier: float
    tournament_multiplier: float
    gender_bonus_multiplier: float
    scaled_points: int
    tier_modifier_delta: float
    final_points: float
    pickle_points: float
    reason_trail: tuple[str, ...]


class PointsAllocator:
    """Stateless allocator; safe to share across threads."""

    def __init__(self, resolver: TierRuleResolver, params: PointsParameters | None = None) -> None:
        self.resolver = resolver
        self.params = params or PointsParameters()

    def allocate(
        self,
        match: MatchResult,
        contexts: Mapping[int, ParticipantContext],
    ) -> tuple[PointsAllocation, ...]:
        missing = [player_id for player_id in match.participant_ids() if player_id not in contexts]
        if missing:
            raise ValueError(f"match_id={match.match_id} is missing participant context for {missing}")

        age_multiplier = self.params.age_multiplier(match.age_division)
        tournament_multiplier = self.params.match_type_multiplier(match.match_type)
        resolved = {
            player_id: self.resolver.resolve(contexts[player_id].profile.rating)
            for player_id in match.participant_ids()
        }

        return tuple(
            self._allocate_participant(
                match,
                contexts[player_id],
                contexts,
                resolved,
                age_multiplier=age_multiplier,
                tournament_multiplier=tournament_multiplier,
            )
            for player_id in match.participant_ids()
        )

    def _allocate_participant(
        self,
        match: MatchResult,
        context: ParticipantContext,
        contexts: Mapping[int, ParticipantContext],
        resolved: Mapping[int, ResolvedTier],
        *,
        age_multiplier: float,
        tournament_multiplier: float,
    ) -> PointsAllocation:
        player_id = context.player_id
        won = match.won(player_id)
        tier = resolved[player_id]
        bundle = tier.bundle
        trail: list[str] = []

        base_points = self.params.win_points if won else self.params.loss_points
        trail.append(f"{'Win' if won else 'Loss'}: {base_points} base points")
        if age_multiplier != 1.0:
            trail.append(f"{match.age_division.value} division: x{age_multiplier}")
        if tournament_multiplier != 1.0:
            trail.append(f"Tournament match: x{tournament_multiplier}")

        gender_multiplier = self._gender_bonus_multiplier(match, context, contexts, trail)
        scaled_points = int(
            round_half_up(base_points * age_multiplier * tournament_multiplier * gender_multiplier)
        )

        if won:
            final_points = self._winner_points(match, context, resolved, scaled_points, trail)
        elif bundle.allow_point_loss:
            raw_loss = (
                base_points
                * bundle.point_loss_multiplier
                * age_multiplier
                * tournament_multiplier
                * gender_multiplier
            )
            loss = min(raw_loss, float(bundle.max_point_loss_per_match))
            if loss < raw_loss:
                trail.append(f"{tier.category.value} loss capped at {bundle.max_point_loss_per_match}")
            available = max(context.accumulated_points, 0.0)
            if loss > available:
                loss = available
                trail.append("Loss limited so the total stays at or above zero")
            final_points = -round_half_up(loss, 2) if loss > 0.0 else 0.0
            trail.append(f"{tier.category.value} tier point loss: {final_points:+g}")
        else:
            final_points = float(scaled_points)
            trail.append(f"{tier.category.value} tier protection: no points lost")

        final_points = round_half_up(final_points, 2)
        return PointsAllocation(
            match_id=match.match_id,
            player_id=player_id,
            won=won,
            play_format=match.play_format,
            age_division=match.age_division,
            tier_category=tier.category,
            rating_tier=tier.tier_name,
            base_points=base_points,
            age_multiplier=age_multiplier,
            tournament_multiplier=tournament_multiplier,
            gender_bonus_multiplier=gender_multiplier,
            scaled_points=scaled_points,
            tier_modifier_delta=round_half_up(final_points - scaled_points, 2),
            final_points=final_points,
            pickle_points=round_half_up(max(final_points, 0.0) * self.params.pickle_points_multiplier, 2),
            reason_trail=tuple(trail),
        )

    def _winner_points(
        self,
        match: MatchResult,
        context: ParticipantContext,
        resolved: Mapping[int, ResolvedTier],
        scaled_points: int,
        trail: list[str],
    ) -> float:
        tier = resolved[context.player_id]
        bundle = tier.bundle
        points = float(scaled_points)

        if not bundle.requires_minimum_matches or (
            context.matches_in_window >= bundle.minimum_matches_per_month
        ):
            points += bundle.bonus_points_for_consistency
            trail.append(f"Consistency bonus: +{bundle.bonus_points_for_consistency}")

        opponent_side = match.loser
        strongest_opponent = max(resolved[player_id].category.rank for player_id in opponent_side.player_ids)
        if tier.category.rank < strongest_opponent:
            points = round_half_up(points * bundle.bonus_multiplier_for_upsets)
            trail.append(f"Upset win over a higher tier: x{bundle.bonus_multiplier_for_upsets}")

        if bundle.fast_track_multiplier > 1.0 and self._is_underrated(context):
            fast_track_bonus = round_half_up(scaled_points * (bundle.fast_track_multiplier - 1.0))
            points += fast_track_bonus
            trail.append(f"Fast track bonus: +{fast_track_bonus:g}")

        if context.win_streak + 1 >= bundle.streak_bonus_threshold:
            points += bundle.streak_bonus_points
            trail.append(
                f"Win streak of {context.win_streak + 1}: +{bundle.streak_bonus_points}"
            )

        return points

    def _is_underrated(self, context: ParticipantContext) -> bool:
        window = context.recent_results[-self.params.fast_track_window :]
        if len(window) < self.params.fast_track_min_matches:
            return False
        return sum(1 for won in window if won) / len(window) > self.params.fast_track_win_ratio

    def _gender_bonus_multiplier(
        self,
        match: MatchResult,
        context: ParticipantContext,
        contexts: Mapping[int, ParticipantContext],
        trail: list[str],
    ) -> float:
        gender = context.profile.gender
        if gender is Gender.UNSPECIFIED:
            return 1.0

        if match.play_format is PlayFormat.SINGLES:
            opponent_id = match.loser.player_ids[0] if match.won(context.player_id) else match.winner.player_ids[0]
            opponent_gender = contexts[opponent_id].profile.gender
            eligible = gender is Gender.FEMALE and opponent_gender is Gender.MALE
            multiplier = self.params.singles_gender_bonus
            label = "Cross-gender singles bonus"
        else:
            own_side = match.side1 if match.side_of(context.player_id) == 1 else match.side2
            team_genders = {contexts[player_id].profile.gender for player_id in own_side.player_ids}
            eligible = {Gender.MALE, Gender.FEMALE} <= team_genders
            multiplier = self.params.mixed_gender_bonus
            label = "Mixed team bonus"

        if not eligible:
            return 1.0
        if context.accumulated_points >= self.params.elite_threshold:
            trail.append(
                f"{label} withheld: {context.accumulated_points:g} points is at or above "
                f"the {self.params.elite_threshold:g} elite threshold"
            )
            return 1.0

        trail.append(f"{label}: x{multiplier}")
        return multiplier


__all__ = [
    "DEFAULT_AGE_MULTIPLIERS",
    "PointsAllocation",
    "PointsAllocator",
    "PointsParameters",
    "round_half_up",
]
