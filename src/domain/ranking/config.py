"""Load ranking system definitions from TOML files."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

from domain.common import AgeDivision
from domain.config_base import BaseSystemConfig, load_system_config, load_system_configs
from domain.errors import UnknownAgeDivision
from domain.ranking.aggregator import MAX_LEADERBOARD_LIMIT, LeaderboardPolicy
from domain.ranking.allocator import DEFAULT_AGE_MULTIPLIERS, PointsParameters
from domain.ranking.tiers import RatingTier, TierCatalog


@dataclass(frozen=True)
class RankingSystemConfig(BaseSystemConfig):
    """Configuration for one ranking system."""

    points: PointsParameters
    leaderboard: LeaderboardPolicy
    activity_window_days: int
    missing_catalog: str
    tiers: tuple[RatingTier, ...] | None

    def build_catalog(self) -> TierCatalog | None:
        return None if self.tiers is None else TierCatalog(self.tiers)

    def as_config_json(self) -> dict[str, Any]:
        return {
            "win_points": self.points.win_points,
            "loss_points": self.points.loss_points,
            "tournament_multiplier": self.points.tournament_multiplier,
            "elite_threshold": self.points.elite_threshold,
            "singles_gender_bonus": self.points.singles_gender_bonus,
            "mixed_gender_bonus": self.points.mixed_gender_bonus,
            "pickle_points_multiplier": self.points.pickle_points_multiplier,
            "age_multipliers": {
                division.value: multiplier
                for division, multiplier in self.points.age_multipliers.items()
            },
            "min_players": self.leaderboard.min_players,
            "min_matches_for_position": self.leaderboard.min_matches_for_position,
            "max_update_attempts": self.leaderboard.max_update_attempts,
            "default_limit": self.leaderboard.default_limit,
            "activity_window_days": self.activity_window_days,
            "missing_catalog": self.missing_catalog,
            "tiers": None if self.tiers is None else [tier.as_dict() for tier in self.tiers],
        }


def load_ranking_system_configs(config_dir: Path) -> list[RankingSystemConfig]:
    """Load and validate all ranking system TOML config files in a directory."""
    return load_system_configs(
        config_dir,
        _parse_ranking_system_config,
        duplicate_name_label="ranking",
    )


def load_ranking_system_config(file_path: Path) -> RankingSystemConfig:
    return load_system_config(file_path, _parse_ranking_system_config)


def _parse_ranking_system_config(raw: dict[str, Any], file_path: Path) -> RankingSystemConfig:
    system_raw = raw.get("system", {})
    points_raw = raw.get("points", {})
    leaderboard_raw = raw.get("leaderboard", {})
    tiers_raw = raw.get("tiers", {})

    name = str(system_raw.get("name", "")).strip()
    if not name:
        raise ValueError(f"{file_path}: [system].name is required")

    description_value = system_raw.get("description")
    description = None if description_value is None else str(description_value)

    points = PointsParameters(
        win_points=int(points_raw.get("win_points", 3)),
        loss_points=int(points_raw.get("loss_points", 1)),
        tournament_multiplier=float(points_raw.get("tournament_multiplier", 2.0)),
        elite_threshold=float(points_raw.get("elite_threshold", 1000.0)),
        singles_gender_bonus=float(points_raw.get("singles_gender_bonus", 1.15)),
        mixed_gender_bonus=float(points_raw.get("mixed_gender_bonus", 1.075)),
        pickle_points_multiplier=float(points_raw.get("pickle_points_multiplier", 1.5)),
        age_multipliers=_parse_age_multipliers(file_path, points_raw.get("age_multipliers")),
    )
    _validate_points(file_path=file_path, points=points)

    leaderboard = LeaderboardPolicy(
        min_players=int(leaderboard_raw.get("min_players", 3)),
        min_matches_for_position=int(leaderboard_raw.get("min_matches_for_position", 5)),
        max_update_attempts=int(leaderboard_raw.get("max_update_attempts", 16)),
        default_limit=int(leaderboard_raw.get("default_limit", 25)),
    )
    _validate_leaderboard(file_path=file_path, leaderboard=leaderboard)

    activity_window_days = int(leaderboard_raw.get("activity_window_days", 30))
    if activity_window_days <= 0:
        raise ValueError(f"{file_path}: [leaderboard].activity_window_days must be > 0")

    missing_catalog = str(tiers_raw.get("missing_catalog", "fallback")).strip().lower()
    if missing_catalog not in ("fallback", "fail"):
        raise ValueError(f"{file_path}: [tiers].missing_catalog must be 'fallback' or 'fail'")

    tiers = _parse_tiers(file_path, tiers_raw.get("catalog"))

    return RankingSystemConfig(
        name=name,
        description=description,
        file_path=file_path,
        points=points,
        leaderboard=leaderboard,
        activity_window_days=activity_window_days,
        missing_catalog=missing_catalog,
        tiers=tiers,
    )


def _parse_age_multipliers(file_path: Path, raw: Any) -> MappingProxyType[AgeDivision, float]:
    if raw is None:
        return MappingProxyType(dict(DEFAULT_AGE_MULTIPLIERS))
    if not isinstance(raw, dict):
        raise ValueError(f"{file_path}: [points.age_multipliers] must be a table")

    multipliers: dict[AgeDivision, float] = {}
    for key, value in raw.items():
        try:
            division = AgeDivision.parse(key)
        except UnknownAgeDivision as exc:
            raise ValueError(f"{file_path}: [points.age_multipliers] {exc}") from exc
        multipliers[division] = float(value)

    missing = [division.value for division in AgeDivision if division not in multipliers]
    if missing:
        raise ValueError(f"{file_path}: [points.age_multipliers] is missing {missing}")
    return MappingProxyType(multipliers)


def _parse_tiers(file_path: Path, raw: Any) -> tuple[RatingTier, ...] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValueError(f"{file_path}: [[tiers.catalog]] must be an array of tables")

    tiers: list[RatingTier] = []
    for index, item in enumerate(raw):
        tier_name = str(item.get("name", "")).strip()
        if not tier_name:
            raise ValueError(f"{file_path}: [[tiers.catalog]] entry {index} needs a name")
        tiers.append(
            RatingTier(
                name=tier_name,
                min_rating=float(item.get("min_rating", 0.0)),
                max_rating=float(item.get("max_rating", 0.0)),
                protection_level=str(item.get("protection_level", "full")),
                display_order=int(item.get("display_order", index + 1)),
            )
        )

    try:
        TierCatalog(tiers)
    except ValueError as exc:
        raise ValueError(f"{file_path}: [[tiers.catalog]] {exc}") from exc
    return tuple(tiers)


def _validate_points(*, file_path: Path, points: PointsParameters) -> None:
    if points.win_points <= points.loss_points:
        raise ValueError(f"{file_path}: [points].win_points must be greater than loss_points")
    if points.loss_points < 0:
        raise ValueError(f"{file_path}: [points].loss_points must be >= 0")
    if points.tournament_multiplier <= 0.0:
        raise ValueError(f"{file_path}: [points].tournament_multiplier must be > 0")
    if points.elite_threshold <= 0.0:
        raise ValueError(f"{file_path}: [points].elite_threshold must be > 0")
    if points.singles_gender_bonus <= 0.0:
        raise ValueError(f"{file_path}: [points].singles_gender_bonus must be > 0")
    if points.mixed_gender_bonus <= 0.0:
        raise ValueError(f"{file_path}: [points].mixed_gender_bonus must be > 0")
    if points.pickle_points_multiplier <= 0.0:
        raise ValueError(f"{file_path}: [points].pickle_points_multiplier must be > 0")
    for division, multiplier in points.age_multipliers.items():
        if multiplier <= 0.0:
            raise ValueError(
                f"{file_path}: [points.age_multipliers].{division.value} must be > 0"
            )


def leaderboard_policy_from_json(config_json: Mapping[str, Any] | None) -> LeaderboardPolicy:
    """Rebuild the leaderboard policy stored on a ranking system row."""
    raw = config_json or {}
    defaults = LeaderboardPolicy()
    policy = LeaderboardPolicy(
        min_players=int(raw.get("min_players", defaults.min_players)),
        min_matches_for_position=int(raw.get("min_matches_for_position", defaults.min_matches_for_position)),
        max_update_attempts=int(raw.get("max_update_attempts", defaults.max_update_attempts)),
        default_limit=int(raw.get("default_limit", defaults.default_limit)),
    )
    _validate_leaderboard(file_path="ranking_systems.config_json", leaderboard=policy)
    return policy


def _validate_leaderboard(*, file_path: Path | str, leaderboard: LeaderboardPolicy) -> None:
    if leaderboard.min_players < 1:
        raise ValueError(f"{file_path}: [leaderboard].min_players must be >= 1")
    if leaderboard.min_matches_for_position < 1:
        raise ValueError(f"{file_path}: [leaderboard].min_matches_for_position must be >= 1")
    if leaderboard.max_update_attempts < 1:
        raise ValueError(f"{file_path}: [leaderboard].max_update_attempts must be >= 1")
    if not 1 <= leaderboard.default_limit <= MAX_LEADERBOARD_LIMIT:
        raise ValueError(
            f"{file_path}: [leaderboard].default_limit must be between 1 and {MAX_LEADERBOARD_LIMIT}"
        )


__all__ = [
    "RankingSystemConfig",
    "leaderboard_policy_from_json",
    "load_ranking_system_config",
    "load_ranking_system_configs",
]
