"""ranking_entries table model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base
from models.mixins import RankingSliceMixin

OVERALL_TIER = ""


class RankingEntryRow(RankingSliceMixin, Base):
    """Current total for one player in one leaderboard slice.

    ``rating_tier`` is an empty string for the slice that spans every tier,
    so the unique constraint also covers it.
    """

    __tablename__ = "ranking_entries"
    __table_args__ = (
        UniqueConstraint(
            "ranking_system_id",
            "player_id",
            "play_format",
            "age_division",
            "rating_tier",
            name="uq_ranking_entries_system_player_slice",
        ),
        CheckConstraint("points >= 0.0", name="ck_ranking_entries_points"),
        CheckConstraint("version >= 1", name="ck_ranking_entries_version"),
        Index(
            "idx_ranking_entries_slice_points",
            "ranking_system_id",
            "play_format",
            "age_division",
            "rating_tier",
            "points",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    rating_tier: Mapped[str] = mapped_column(String(64), nullable=False, default=OVERALL_TIER)
    points: Mapped[float] = mapped_column(Float, nullable=False)
    matches_played: Mapped[int] = mapped_column(Integer, nullable=False)
    wins: Mapped[int] = mapped_column(Integer, nullable=False)
    losses: Mapped[int] = mapped_column(Integer, nullable=False)
    win_streak: Mapped[int] = mapped_column(Integer, nullable=False)
    achieved_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
