"""ranking_history table model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base
from models.mixins import RankingSliceMixin, TimestampMixin


class RankingHistoryRow(RankingSliceMixin, TimestampMixin, Base):
    """Append-only log of point changes (one row per player per match)."""

    __tablename__ = "ranking_history"
    __table_args__ = (
        UniqueConstraint(
            "ranking_system_id",
            "player_id",
            "match_id",
            name="uq_ranking_history_system_player_match",
        ),
        Index("idx_ranking_history_player_time", "ranking_system_id", "player_id", "recorded_at"),
        Index("idx_ranking_history_match", "ranking_system_id", "match_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(Integer, nullable=False)
    won: Mapped[bool] = mapped_column(Boolean, nullable=False)
    points_delta: Mapped[float] = mapped_column(Float, nullable=False)
    resulting_total: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
