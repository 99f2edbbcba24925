"""ORM models."""

from models.base import Base
from models.ranking_entry import OVERALL_TIER, RankingEntryRow
from models.ranking_history import RankingHistoryRow
from models.system import RankingSystem

__all__ = [
    "Base",
    "OVERALL_TIER",
    "RankingEntryRow",
    "RankingHistoryRow",
    "RankingSystem",
]
