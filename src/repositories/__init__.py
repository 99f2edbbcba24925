"""Database repository helpers."""

from repositories.history_repository import SqlRankingHistory
from repositories.ranking_repository import SqlRankingStore
from repositories.system_repository import (
    delete_rankings_for_system,
    ensure_schema,
    get_ranking_system,
    upsert_ranking_system,
)

__all__ = [
    "SqlRankingHistory",
    "SqlRankingStore",
    "delete_rankings_for_system",
    "ensure_schema",
    "get_ranking_system",
    "upsert_ranking_system",
]
