"""Append-only record of every ranking-point change."""

from __future__ import annotations

import itertools
import threading
from bisect import insort
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol, runtime_checkable

from domain.common import AgeDivision, PlayFormat


@dataclass(frozen=True)
class RankingHistoryEntry:
    player_id: int
    match_id: int
    recorded_at: datetime
    points_delta: float
    resulting_total: float
    play_format: PlayFormat
    age_division: AgeDivision
    won: bool
    sequence: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "matchId": self.match_id,
            "delta": self.points_delta,
            "resultingTotal": self.resulting_total,
            "timestamp": self.recorded_at.isoformat(),
        }


def _matches_filters(
    entry: RankingHistoryEntry,
    play_format: PlayFormat | None,
    age_division: AgeDivision | None,
) -> bool:
    if play_format is not None and entry.play_format is not play_format:
        return False
    if age_division is not None and entry.age_division is not age_division:
        return False
    return True


@runtime_checkable
class HistoryStore(Protocol):
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
    ) -> RankingHistoryEntry: ...

    def record_match(self, entries: Sequence[RankingHistoryEntry]) -> tuple[RankingHistoryEntry, ...]:
        """Record every entry of one match together, or none of them."""
        ...

    def history(
        self,
        player_id: int,
        play_format: PlayFormat | None = None,
        age_division: AgeDivision | None = None,
    ) -> HistoryView: ...

    def has_match(self, match_id: int) -> bool: ...


class HistoryView:
    """Restartable, finite view over one player's history, oldest first.

    Each iteration starts from a fresh snapshot, so entries recorded after
    a loop begins show up on the next pass rather than mid-loop.
    """

    def __init__(self, snapshot_fn, player_id: int) -> None:
        self._snapshot_fn = snapshot_fn
        self.player_id = player_id

    def __iter__(self) -> Iterator[RankingHistoryEntry]:
        yield from self._snapshot_fn()

    def __len__(self) -> int:
        return len(self._snapshot_fn())

    def recent_results(self, limit: int) -> tuple[bool, ...]:
        """Win/loss flags of the last ``limit`` entries, oldest first."""
        if limit <= 0:
            return ()
        return tuple(entry.won for entry in self._snapshot_fn()[-limit:])

    def count_since(self, since: datetime) -> int:
        return sum(1 for entry in self._snapshot_fn() if entry.recorded_at >= since)


class RankingHistoryTracker:
    """Process-local history; entries are never mutated or removed."""

    def __init__(self) -> None:
        self._by_player: dict[int, list[RankingHistoryEntry]] = {}
        self._match_ids: set[int] = set()
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

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
        with self._lock:
            entry = RankingHistoryEntry(
                player_id=player_id,
                match_id=match_id,
                recorded_at=timestamp,
                points_delta=delta,
                resulting_total=resulting_total,
                play_format=play_format,
                age_division=age_division,
                won=won,
                sequence=next(self._sequence),
            )
            insort(
                self._by_player.setdefault(player_id, []),
                entry,
                key=lambda item: (item.recorded_at, item.sequence),
            )
            self._match_ids.add(match_id)
            return entry

    def record_match(self, entries: Sequence[RankingHistoryEntry]) -> tuple[RankingHistoryEntry, ...]:
        with self._lock:
            recorded = tuple(replace(entry, sequence=next(self._sequence)) for entry in entries)
            for entry in recorded:
                insort(
                    self._by_player.setdefault(entry.player_id, []),
                    entry,
                    key=lambda item: (item.recorded_at, item.sequence),
                )
                self._match_ids.add(entry.match_id)
            return recorded

    def history(
        self,
        player_id: int,
        play_format: PlayFormat | None = None,
        age_division: AgeDivision | None = None,
    ) -> HistoryView:
        def snapshot() -> list[RankingHistoryEntry]:
            with self._lock:
                entries = list(self._by_player.get(player_id, ()))
            return [entry for entry in entries if _matches_filters(entry, play_format, age_division)]

        return HistoryView(snapshot, player_id)

    def has_match(self, match_id: int) -> bool:
        with self._lock:
            return match_id in self._match_ids

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._by_player.values())


__all__ = [
    "HistoryStore",
    "HistoryView",
    "RankingHistoryEntry",
    "RankingHistoryTracker",
]
