"""SQLAlchemy mixins for columns shared by ranking tables."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column


class RankingSliceMixin:
    """Player plus the (format, age division) slice a row belongs to."""

    player_id: Mapped[int] = mapped_column(Integer, nullable=False)
    play_format: Mapped[str] = mapped_column(String(16), nullable=False)
    age_division: Mapped[str] = mapped_column(String(16), nullable=False)

    @declared_attr
    def ranking_system_id(cls) -> Mapped[int]:
        return mapped_column(ForeignKey("ranking_systems.id"), nullable=False)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
        server_default=func.now(),
    )
