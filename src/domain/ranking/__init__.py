"""Ranking points: normalize, resolve tiers, allocate, aggregate, record."""

from domain.ranking.aggregator import (
    LeaderboardPolicy,
    LeaderboardResponse,
    LeaderboardStatus,
    PositionResult,
    PositionStatus,
    RankingAggregator,
)
from domain.ranking.allocator import PointsAllocation, PointsAllocator, PointsParameters
from domain.ranking.config import (
    RankingSystemConfig,
    load_ranking_system_config,
    load_ranking_system_configs,
)
from domain.ranking.engine import MatchOutcome, PlayerOutcome, RankingEngine
from domain.ranking.history import RankingHistoryEntry, RankingHistoryTracker
from domain.ranking.normalizer import normalize_match
from domain.ranking.store import InMemoryRankingStore, RankingEntry, RankingKey, SliceKey
from domain.ranking.tiers import (
    RatingTier,
    TierCatalog,
    TierCategory,
    TierRuleBundle,
    TierRuleResolver,
)

__all__ = [
    "InMemoryRankingStore",
    "LeaderboardPolicy",
    "LeaderboardResponse",
    "LeaderboardStatus",
    "MatchOutcome",
    "PlayerOutcome",
    "PointsAllocation",
    "PointsAllocator",
    "PointsParameters",
    "PositionResult",
    "PositionStatus",
    "RankingAggregator",
    "RankingEngine",
    "RankingEntry",
    "RankingHistoryEntry",
    "RankingHistoryTracker",
    "RankingKey",
    "RankingSystemConfig",
    "RatingTier",
    "SliceKey",
    "TierCatalog",
    "TierCategory",
    "TierRuleBundle",
    "TierRuleResolver",
    "load_ranking_system_config",
    "load_ranking_system_configs",
    "normalize_match",
]
