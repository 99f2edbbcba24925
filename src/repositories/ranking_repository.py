"""SQL-backed ranking store with optimistic version checks."""

from __future__ import annotations

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from domain.common import AgeDivision, PlayFormat
from domain.errors import ConcurrentUpdateConflict
from domain.ranking.store import RankingEntry, RankingKey, SliceKey
from models import OVERALL_TIER, RankingEntryRow


def _tier_column_value(rating_tier: str | None) -> str:
    return OVERALL_TIER if rating_tier is None else rating_tier


def _row_to_entry(row: RankingEntryRow) -> RankingEntry:
    return RankingEntry(
        key=RankingKey(
            player_id=row.player_id,
            play_format=PlayFormat(row.play_format),
            age_division=AgeDivision(row.age_division),
            rating_tier=row.rating_tier or None,
        ),
        points=float(row.points),
        matches_played=row.matches_played,
        wins=row.wins,
        losses=row.losses,
        win_streak=row.win_streak,
        achieved_at=row.achieved_at,
        version=row.version,
    )


class SqlRankingStore:
    """``RankingStore`` over the ``ranking_entries`` table.

    Each write is its own short transaction. Updates carry
    ``WHERE version = :expected`` and first inserts lean on the unique
    constraint, so a concurrent writer in any process surfaces as
    ``ConcurrentUpdateConflict``.
    """

    def __init__(self, session_factory: sessionmaker[Session], *, system_id: int) -> None:
        self.session_factory = session_factory
        self.system_id = system_id

    def _key_filter(self, key: RankingKey):
        return (
            RankingEntryRow.ranking_system_id == self.system_id,
            RankingEntryRow.player_id == key.player_id,
            RankingEntryRow.play_format == key.play_format.value,
            RankingEntryRow.age_division == key.age_division.value,
            RankingEntryRow.rating_tier == _tier_column_value(key.rating_tier),
        )

    def get(self, key: RankingKey) -> RankingEntry | None:
        with self.session_factory() as session:
            row = session.execute(
                select(RankingEntryRow).where(*self._key_filter(key))
            ).scalar_one_or_none()
            return None if row is None else _row_to_entry(row)

    def compare_and_set(self, expected: RankingEntry | None, updated: RankingEntry) -> None:
        values = {
            "points": updated.points,
            "matches_played": updated.matches_played,
            "wins": updated.wins,
            "losses": updated.losses,
            "win_streak": updated.win_streak,
            "achieved_at": updated.achieved_at,
            "version": updated.version,
        }
        with self.session_factory() as session:
            if expected is None:
                try:
                    session.execute(
                        insert(RankingEntryRow).values(
                            ranking_system_id=self.system_id,
                            player_id=updated.key.player_id,
                            play_format=updated.key.play_format.value,
                            age_division=updated.key.age_division.value,
                            rating_tier=_tier_column_value(updated.key.rating_tier),
                            **values,
                        )
                    )
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    raise ConcurrentUpdateConflict(updated.key) from exc
                return

            result = session.execute(
                update(RankingEntryRow)
                .where(*self._key_filter(updated.key), RankingEntryRow.version == expected.version)
                .values(**values)
            )
            if result.rowcount != 1:
                session.rollback()
                raise ConcurrentUpdateConflict(updated.key)
            session.commit()

    def slice_entries(self, slice_key: SliceKey) -> list[RankingEntry]:
        with self.session_factory() as session:
            rows = session.execute(
                select(RankingEntryRow).where(
                    RankingEntryRow.ranking_system_id == self.system_id,
                    RankingEntryRow.play_format == slice_key.play_format.value,
                    RankingEntryRow.age_division == slice_key.age_division.value,
                    RankingEntryRow.rating_tier == _tier_column_value(slice_key.rating_tier),
                )
            ).scalars()
            return [_row_to_entry(row) for row in rows]

    def tracked_entity_count(self) -> int:
        with self.session_factory() as session:
            result = session.scalar(
                select(func.count(func.distinct(RankingEntryRow.player_id))).where(
                    RankingEntryRow.ranking_system_id == self.system_id
                )
            )
            return int(result or 0)


__all__ = ["SqlRankingStore"]
