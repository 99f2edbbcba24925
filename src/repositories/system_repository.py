"""Schema management and system metadata rows."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from models import Base, RankingEntryRow, RankingHistoryRow, RankingSystem


def ensure_schema(engine: Engine) -> None:
    """Create ranking tables and indexes when missing."""
    with engine.begin() as connection:
        Base.metadata.create_all(
            bind=connection,
            tables=[
                RankingSystem.__table__,
                RankingEntryRow.__table__,
                RankingHistoryRow.__table__,
            ],
            checkfirst=True,
        )


def upsert_ranking_system(
    session: Session,
    *,
    name: str,
    description: str | None,
    config_json: dict[str, Any],
) -> RankingSystem:
    """Create or update the system metadata row."""
    system = session.execute(
        select(RankingSystem).where(RankingSystem.name == name)
    ).scalar_one_or_none()
    if system is None:
        system = RankingSystem(name=name, description=description, config_json=config_json)
        session.add(system)
    else:
        system.description = description
        system.config_json = config_json
        system.updated_at = datetime.now(UTC).replace(tzinfo=None)
    session.flush()
    return system


def get_ranking_system(session: Session, name: str) -> RankingSystem | None:
    return session.execute(
        select(RankingSystem).where(RankingSystem.name == name)
    ).scalar_one_or_none()


def delete_rankings_for_system(session: Session, system_id: int) -> None:
    """Delete totals and history for one system ahead of a full rebuild."""
    session.execute(delete(RankingHistoryRow).where(RankingHistoryRow.ranking_system_id == system_id))
    session.execute(delete(RankingEntryRow).where(RankingEntryRow.ranking_system_id == system_id))


__all__ = [
    "delete_rankings_for_system",
    "ensure_schema",
    "get_ranking_system",
    "upsert_ranking_system",
]
