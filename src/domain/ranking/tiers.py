"""Rating tiers and the rule bundle each tier category carries.

Ratings live on a continuous 0-9 scale. A configurable catalog splits that
scale into named display tiers; independently, four fixed breakpoints map a
rating onto a tier *category* whose modifier table drives point-loss
protection and bonuses.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from math import isclose
from types import MappingProxyType

from domain.errors import TierCatalogUnavailable

logger = logging.getLogger(__name__)

RATING_MIN = 0.0
RATING_MAX = 9.0

PROTECTION_LEVELS = ("full", "partial", "none")


class TierCategory(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    ELITE = "elite"

    @property
    def rank(self) -> int:
        return _CATEGORY_RANK[self]


_CATEGORY_RANK = {
    TierCategory.BEGINNER: 0,
    TierCategory.INTERMEDIATE: 1,
    TierCategory.ADVANCED: 2,
    TierCategory.ELITE: 3,
}

# Lower bound of each category, highest first.
CATEGORY_BREAKPOINTS: tuple[tuple[float, TierCategory], ...] = (
    (8.1, TierCategory.ELITE),
    (7.2, TierCategory.ADVANCED),
    (4.5, TierCategory.INTERMEDIATE),
    (RATING_MIN, TierCategory.BEGINNER),
)


@dataclass(frozen=True)
class TierRuleBundle:
    category: TierCategory
    allow_point_loss: bool
    point_loss_multiplier: float
    max_point_loss_per_match: int
    requires_minimum_matches: bool
    minimum_matches_per_month: int
    bonus_points_for_consistency: int
    bonus_multiplier_for_upsets: float
    fast_track_multiplier: float
    streak_bonus_threshold: int
    streak_bonus_points: int


TIER_RULE_BUNDLES: Mapping[TierCategory, TierRuleBundle] = MappingProxyType(
    {
        TierCategory.BEGINNER: TierRuleBundle(
            category=TierCategory.BEGINNER,
            allow_point_loss=False,
            point_loss_multiplier=0.0,
            max_point_loss_per_match=0,
            requires_minimum_matches=False,
            minimum_matches_per_month=0,
            bonus_points_for_consistency=2,
            bonus_multiplier_for_upsets=1.1,
            fast_track_multiplier=2.0,
            streak_bonus_threshold=2,
            streak_bonus_points=10,
        ),
        TierCategory.INTERMEDIATE: TierRuleBundle(
            category=TierCategory.INTERMEDIATE,
            allow_point_loss=False,
            point_loss_multiplier=0.0,
            max_point_loss_per_match=0,
            requires_minimum_matches=False,
            minimum_matches_per_month=0,
            bonus_points_for_consistency=5,
            bonus_multiplier_for_upsets=1.2,
            fast_track_multiplier=1.5,
            streak_bonus_threshold=3,
            streak_bonus_points=15,
        ),
        TierCategory.ADVANCED: TierRuleBundle(
            category=TierCategory.ADVANCED,
            allow_point_loss=True,
            point_loss_multiplier=0.5,
            max_point_loss_per_match=25,
            requires_minimum_matches=True,
            minimum_matches_per_month=4,
            bonus_points_for_consistency=7,
            bonus_multiplier_for_upsets=1.3,
            fast_track_multiplier=1.2,
            streak_bonus_threshold=5,
            streak_bonus_points=30,
        ),
        TierCategory.ELITE: TierRuleBundle(
            category=TierCategory.ELITE,
            allow_point_loss=True,
            point_loss_multiplier=1.0,
            max_point_loss_per_match=50,
            requires_minimum_matches=True,
            minimum_matches_per_month=8,
            bonus_points_for_consistency=10,
            bonus_multiplier_for_upsets=1.5,
            fast_track_multiplier=1.0,
            streak_bonus_threshold=7,
            streak_bonus_points=50,
        ),
    }
)


def validate_rating(rating: float) -> float:
    value = float(rating)
    if not RATING_MIN <= value <= RATING_MAX:
        raise ValueError(f"rating must be between {RATING_MIN} and {RATING_MAX}, got {rating}")
    return value


def category_for_rating(rating: float) -> TierCategory:
    value = validate_rating(rating)
    for lower_bound, category in CATEGORY_BREAKPOINTS:
        if value >= lower_bound:
            return category
    return TierCategory.BEGINNER


def bundle_for_category(category: TierCategory) -> TierRuleBundle:
    return TIER_RULE_BUNDLES[category]


@dataclass(frozen=True)
class RatingTier:
    """One display tier covering ``[min_rating, max_rating)``."""

    name: str
    min_rating: float
    max_rating: float
    protection_level: str
    display_order: int

    def as_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "minRating": self.min_rating,
            "maxRating": self.max_rating,
            "protectionLevel": self.protection_level,
            "displayOrder": self.display_order,
        }


class TierCatalog:
    """Ordered, gap-free set of rating tiers spanning the whole 0-9 scale."""

    def __init__(self, tiers: Iterable[RatingTier]) -> None:
        ordered = sorted(tiers, key=lambda tier: tier.min_rating)
        _validate_catalog(ordered)
        self._tiers = tuple(ordered)
        self._lower_bounds = [tier.min_rating for tier in self._tiers]
        self._by_name = {tier.name: tier for tier in self._tiers}

    def __iter__(self):
        return iter(sorted(self._tiers, key=lambda tier: tier.display_order))

    def __len__(self) -> int:
        return len(self._tiers)

    def tier_for(self, rating: float) -> RatingTier:
        value = validate_rating(rating)
        index = bisect_right(self._lower_bounds, value) - 1
        return self._tiers[max(0, min(index, len(self._tiers) - 1))]

    def get(self, name: str) -> RatingTier:
        try:
            return self._by_name[name]
        except KeyError as exc:
            raise KeyError(f"No rating tier named {name!r}") from exc

    def as_dicts(self) -> list[dict[str, object]]:
        return [tier.as_dict() for tier in self]


def _validate_catalog(tiers: list[RatingTier]) -> None:
    if not tiers:
        raise ValueError("tier catalog must contain at least one tier")

    names = [tier.name for tier in tiers]
    if len(names) != len(set(names)):
        raise ValueError(f"duplicate tier names in catalog: {names}")
    orders = [tier.display_order for tier in tiers]
    if len(orders) != len(set(orders)):
        raise ValueError(f"duplicate tier display orders in catalog: {orders}")

    for tier in tiers:
        if tier.protection_level not in PROTECTION_LEVELS:
            raise ValueError(
                f"tier {tier.name!r}: protection_level must be one of {PROTECTION_LEVELS}"
            )
        if tier.max_rating <= tier.min_rating:
            raise ValueError(f"tier {tier.name!r}: max_rating must be greater than min_rating")

    if not isclose(tiers[0].min_rating, RATING_MIN):
        raise ValueError(f"tier catalog must start at {RATING_MIN}, starts at {tiers[0].min_rating}")
    if not isclose(tiers[-1].max_rating, RATING_MAX):
        raise ValueError(f"tier catalog must end at {RATING_MAX}, ends at {tiers[-1].max_rating}")
    for previous, current in zip(tiers, tiers[1:]):
        if not isclose(previous.max_rating, current.min_rating):
            raise ValueError(
                f"tiers {previous.name!r} and {current.name!r} must be contiguous "
                f"({previous.max_rating} != {current.min_rating})"
            )


@dataclass(frozen=True)
class ResolvedTier:
    category: TierCategory
    bundle: TierRuleBundle
    tier: RatingTier | None
    fallback: bool = False

    @property
    def tier_name(self) -> str | None:
        return None if self.tier is None else self.tier.name


class TierRuleResolver:
    """Resolve a rating to its display tier and rule bundle."""

    def __init__(self, catalog: TierCatalog | None, *, missing_catalog: str = "fallback") -> None:
        if missing_catalog not in ("fallback", "fail"):
            raise ValueError("missing_catalog must be 'fallback' or 'fail'")
        self.catalog = catalog
        self.missing_catalog = missing_catalog

    def resolve(self, rating: float) -> ResolvedTier:
        if self.catalog is None:
            if self.missing_catalog == "fail":
                raise TierCatalogUnavailable()
            logger.warning(
                "No tier catalog loaded; using %s rules for rating=%s",
                TierCategory.INTERMEDIATE.value,
                rating,
            )
            return ResolvedTier(
                category=TierCategory.INTERMEDIATE,
                bundle=TIER_RULE_BUNDLES[TierCategory.INTERMEDIATE],
                tier=None,
                fallback=True,
            )

        tier = self.catalog.tier_for(rating)
        category = category_for_rating(rating)
        return ResolvedTier(category=category, bundle=TIER_RULE_BUNDLES[category], tier=tier)


__all__ = [
    "CATEGORY_BREAKPOINTS",
    "PROTECTION_LEVELS",
    "RATING_MAX",
    "RATING_MIN",
    "RatingTier",
    "ResolvedTier",
    "TIER_RULE_BUNDLES",
    "TierCatalog",
    "TierCategory",
    "TierRuleBundle",
    "TierRuleResolver",
    "bundle_for_category",
    "category_for_rating",
    "validate_rating",
]
