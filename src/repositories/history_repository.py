"""SQL-backed append-only ranking history."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime

from sqlalchemy import exists, func, insert, select
from sqlalchemy.orm import Session, sessionmaker

from domain.common import AgeDivision, PlayFormat
from domain.ranking.history import HistoryView, RankingHistoryEntry
from models import RankingHistoryRow


def _row_to_entry(row: RankingHistoryRow) -> RankingHistoryEntry:
    return RankingHistoryEntry(
        player_id=row.player_id,
        match_id=row.match_id,
        recorded_at=row.recorded_at,
        points_delta=float(row.points_delta),
        resulting_total=float(row.resulting_total),
        play_format=PlayFormat(row.play_format),
        age_division=AgeDivision(row.age_division),
        won=bool(row.won),
        sequence=row.id,
    )


class SqlRankingHistory:
    """``HistoryStore`` over the ``ranking_history`` table (insert and select only)."""

    def __init__(self, session_factory: sessionmaker[Session], *, system_id: int) -> None:
        self.session_factory = session_factory
        self.system_id = system_id

    def record(
        self,
        player_id: int,
        match_id: int,
        delta: float,
        resulting_total: float,
        timestamp: datetime,
        *,
        play_format: PlayFormat,
        age_division: AgeDivision,
        won: bool,
    ) -> RankingHistoryEntry:
        with self.session_factory() as session:
            row_id = session.execute(
                insert(RankingHistoryRow)
                .values(
                    ranking_system_id=self.system_id,
                    player_id=player_id,
                    match_id=match_id,
                    play_format=play_format.value,
                    age_division=age_division.value,
                    won=won,
                    points_delta=delta,
                    resulting_total=resulting_total,
                    recorded_at=timestamp,
                )
                .returning(RankingHistoryRow.id)
            ).scalar_one()
            session.commit()

        return RankingHistoryEntry(
            player_id=player_id,
            match_id=match_id,
            recorded_at=timestamp,
            points_delta=delta,
            resulting_total=resulting_total,
            play_format=play_format,
            age_division=age_division,
            won=won,
            sequence=row_id,
        )

    def record_match(self, entries: Sequence[RankingHistoryEntry]) -> tuple[RankingHistoryEntry, ...]:
        """Insert all rows of one match in a single transaction."""
        recorded: list[RankingHistoryEntry] = []
        with self.session_factory() as session:
            try:
                for entry in entries:
                    row_id = session.execute(
                        insert(RankingHistoryRow)
                        .values(
                            ranking_system_id=self.system_id,
                            player_id=entry.player_id,
                            match_id=entry.match_id,
                            play_format=entry.play_format.value,
                            age_division=entry.age_division.value,
                            won=entry.won,
                            points_delta=entry.points_delta,
                            resulting_total=entry.resulting_total,
                            recorded_at=entry.recorded_at,
                        )
                        .returning(RankingHistoryRow.id)
                    ).scalar_one()
                    recorded.append(replace(entry, sequence=row_id))
                session.commit()
            except Exception:
                session.rollback()
                raise
        return tuple(recorded)

    def history(
        self,
        player_id: int,
        play_format: PlayFormat | None = None,
        age_division: AgeDivision | None = None,
    ) -> HistoryView:
        statement = select(RankingHistoryRow).where(
            RankingHistoryRow.ranking_system_id == self.system_id,
            RankingHistoryRow.player_id == player_id,
        )
        if play_format is not None:
            statement = statement.where(RankingHistoryRow.play_format == play_format.value)
        if age_division is not None:
            statement = statement.where(RankingHistoryRow.age_division == age_division.value)
        statement = statement.order_by(RankingHistoryRow.recorded_at, RankingHistoryRow.id)

        def snapshot() -> list[RankingHistoryEntry]:
            with self.session_factory() as session:
                return [_row_to_entry(row) for row in session.execute(statement).scalars()]

        return HistoryView(snapshot, player_id)

    def has_match(self, match_id: int) -> bool:
        with self.session_factory() as session:
            return bool(
                session.scalar(
                    select(
                        exists().where(
                            RankingHistoryRow.ranking_system_id == self.system_id,
                            RankingHistoryRow.match_id == match_id,
                        )
                    )
                )
            )

    def __len__(self) -> int:
        with self.session_factory() as session:
            result = session.scalar(
                select(func.count(RankingHistoryRow.id)).where(
                    RankingHistoryRow.ranking_system_id == self.system_id
                )
            )
            return int(result or 0)


__all__ = ["SqlRankingHistory"]
