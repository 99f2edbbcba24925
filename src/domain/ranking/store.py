"""Ranking totals keyed by player and leaderboard slice."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol, runtime_checkable

from domain.common import AgeDivision, PlayFormat
from domain.errors import ConcurrentUpdateConflict


@dataclass(frozen=True)
class SliceKey:
    """One leaderboard: format x age division, optionally narrowed to a tier."""

    play_format: PlayFormat
    age_division: AgeDivision
    rating_tier: str | None = None

    def __str__(self) -> str:
        tier = self.rating_tier or "all"
        return f"{self.play_format.value}/{self.age_division.value}/{tier}"


@dataclass(frozen=True)
class RankingKey:
    player_id: int
    play_format: PlayFormat
    age_division: AgeDivision
    rating_tier: str | None = None

    @property
    def slice(self) -> SliceKey:
        return SliceKey(self.play_format, self.age_division, self.rating_tier)

    def sort_key(self) -> tuple[int, str, str, str]:
        return (self.player_id, self.play_format.value, self.age_division.value, self.rating_tier or "")

    def __str__(self) -> str:
        return f"player_id={self.player_id} slice={self.slice}"


@dataclass(frozen=True)
class RankingEntry:
    """Running total for one key. ``version`` increases on every update."""

    key: RankingKey
    points: float
    matches_played: int
    wins: int
    losses: int
    win_streak: int
    achieved_at: datetime
    version: int

    @classmethod
    def empty(cls, key: RankingKey, created_at: datetime) -> RankingEntry:
        return cls(
            key=key,
            points=0.0,
            matches_played=0,
            wins=0,
            losses=0,
            win_streak=0,
            achieved_at=created_at,
            version=0,
        )

    def apply(self, delta: float, *, won: bool, occurred_at: datetime) -> RankingEntry:
        """Return the entry after adding ``delta``; totals never drop below zero."""
        points = round(max(self.points + delta, 0.0), 2)
        return replace(
            self,
            points=points,
            matches_played=self.matches_played + 1,
            wins=self.wins + (1 if won else 0),
            losses=self.losses + (0 if won else 1),
            win_streak=self.win_streak + 1 if won else 0,
            achieved_at=occurred_at if points != self.points else self.achieved_at,
            version=self.version + 1,
        )

    def revert(self, applied: RankingEntry, previous: RankingEntry | None) -> RankingEntry:
        """Undo ``applied`` (written over ``previous``) on top of this entry.

        If nothing was written since ``applied`` the prior state comes back
        exactly; otherwise only the applied delta and match are backed out.
        """
        if self.version == applied.version:
            restored = previous or RankingEntry.empty(self.key, applied.achieved_at)
            return replace(restored, version=self.version + 1)

        before = previous or RankingEntry.empty(self.key, applied.achieved_at)
        won = applied.wins > before.wins
        return replace(
            self,
            points=round(max(self.points - (applied.points - before.points), 0.0), 2),
            matches_played=max(self.matches_played - 1, 0),
            wins=max(self.wins - (1 if won else 0), 0),
            losses=max(self.losses - (0 if won else 1), 0),
            version=self.version + 1,
        )


def leaderboard_sort_key(entry: RankingEntry) -> tuple[float, datetime, int]:
    """Points descending, then whoever reached the total first, then player id."""
    return (-entry.points, entry.achieved_at, entry.key.player_id)


@runtime_checkable
class RankingStore(Protocol):
    """Storage contract the aggregator relies on."""

    def get(self, key: RankingKey) -> RankingEntry | None: ...

    def compare_and_set(self, expected: RankingEntry | None, updated: RankingEntry) -> None:
        """Persist ``updated`` only if the stored entry still matches ``expected``.

        Raises ``ConcurrentUpdateConflict`` otherwise.
        """
        ...

    def slice_entries(self, slice_key: SliceKey) -> list[RankingEntry]: ...


class InMemoryRankingStore:
    """Process-local store; every operation is atomic under one lock."""

    def __init__(self) -> None:
        self._entries: dict[RankingKey, RankingEntry] = {}
        self._slices: dict[SliceKey, set[RankingKey]] = {}
        self._lock = threading.Lock()

    def get(self, key: RankingKey) -> RankingEntry | None:
        with self._lock:
            return self._entries.get(key)

    def compare_and_set(self, expected: RankingEntry | None, updated: RankingEntry) -> None:
        with self._lock:
            current = self._entries.get(updated.key)
            current_version = None if current is None else current.version
            expected_version = None if expected is None else expected.version
            if current_version != expected_version:
                raise ConcurrentUpdateConflict(updated.key)
            self._entries[updated.key] = updated
            self._slices.setdefault(updated.key.slice, set()).add(updated.key)

    def slice_entries(self, slice_key: SliceKey) -> list[RankingEntry]:
        with self._lock:
            return [self._entries[key] for key in self._slices.get(slice_key, ())]

    def tracked_entity_count(self) -> int:
        with self._lock:
            return len({key.player_id for key in self._entries})


__all__ = [
    "InMemoryRankingStore",
    "RankingEntry",
    "RankingKey",
    "RankingStore",
    "SliceKey",
    "leaderboard_sort_key",
]
