"""Apply point allocations to running totals and answer leaderboard reads."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from domain.common import AgeDivision, PlayFormat
from domain.errors import ConcurrentUpdateConflict
from domain.ranking.allocator import PointsAllocation
from domain.ranking.store import (
    RankingEntry,
    RankingKey,
    RankingStore,
    SliceKey,
    leaderboard_sort_key,
)

logger = logging.getLogger(__name__)

MAX_LEADERBOARD_LIMIT = 100


@dataclass(frozen=True)
class LeaderboardPolicy:
    min_players: int = 3
    min_matches_for_position: int = 5
    max_update_attempts: int = 16
    default_limit: int = 25


class LeaderboardStatus(str, Enum):
    ACTIVE = "active"
    INSUFFICIENT_PLAYERS = "insufficient_players"


class PositionStatus(str, Enum):
    RANKED = "ranked"
    NOT_RANKED = "not_ranked"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class LeaderboardRow:
    player_id: int
    points: float
    rank: int
    matches_played: int
    wins: int
    losses: int


@dataclass(frozen=True)
class LeaderboardResponse:
    slice: SliceKey
    status: LeaderboardStatus
    player_count: int
    required_count: int
    rows: tuple[LeaderboardRow, ...] = ()
    limit: int = 0
    offset: int = 0
    guidance: str | None = None

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "format": self.slice.play_format.value,
            "ageDivision": self.slice.age_division.value,
            "ratingTier": self.slice.rating_tier,
            "status": self.status.value,
            "playerCount": self.player_count,
            "requiredCount": self.required_count,
            "rows": [
                {"player": row.player_id, "points": row.points, "rank": row.rank}
                for row in self.rows
            ],
        }
        if self.guidance is not None:
            payload["guidance"] = self.guidance
        return payload


@dataclass(frozen=True)
class PositionResult:
    status: PositionStatus
    player_id: int
    slice: SliceKey
    rank: int | None = None
    total_players: int = 0
    points: float = 0.0
    percentile: int | None = None
    required_matches: int = 0
    current_matches: int = 0

    @property
    def is_ranked(self) -> bool:
        return self.status is PositionStatus.RANKED

    def as_dict(self) -> dict[str, object]:
        if self.status is PositionStatus.RANKED:
            return {
                "status": self.status.value,
                "rank": self.rank,
                "totalPlayers": self.total_players,
                "points": self.points,
                "percentile": self.percentile,
            }
        return {
            "status": self.status.value,
            "requiredMatches": self.required_matches,
            "currentMatches": self.current_matches,
        }


@dataclass(frozen=True)
class AppliedRanking:
    """Entry state right after an allocation, with its freshly computed rank."""

    entry: RankingEntry
    delta: float
    rank: int
    total_players: int
    previous: RankingEntry | None = None


@dataclass
class _KeyLocks:
    _locks: dict[RankingKey, threading.Lock] = field(default_factory=dict)
    _registry_lock: threading.Lock = field(default_factory=threading.Lock)

    def lock_for(self, key: RankingKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


class RankingAggregator:
    """Maintain per-slice totals over a ``RankingStore``.

    Updates to the same key are serialised in-process with a per-key lock,
    and every write is a compare-and-set against the store so that writers
    in other processes are detected and retried. A batch of allocations is
    all-or-nothing: if any key cannot be written, keys already written for
    the batch are reverted before the error propagates.
    """

    def __init__(
        self,
        store: RankingStore,
        policy: LeaderboardPolicy | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.policy = policy or LeaderboardPolicy()
        self._clock = clock or (lambda: datetime.now(UTC).replace(tzinfo=None))
        self._locks = _KeyLocks()

    def keys_for(self, allocation: PointsAllocation) -> list[RankingKey]:
        keys = [RankingKey(allocation.player_id, allocation.play_format, allocation.age_division)]
        if allocation.rating_tier is not None:
            keys.append(
                RankingKey(
                    allocation.player_id,
                    allocation.play_format,
                    allocation.age_division,
                    allocation.rating_tier,
                )
            )
        return keys

    def apply_allocation(
        self,
        allocation: PointsAllocation,
        *,
        occurred_at: datetime | None = None,
    ) -> list[AppliedRanking]:
        """Add ``allocation.final_points`` to the overall slice and the tier slice."""
        return self.apply_allocations([allocation], occurred_at=occurred_at)[0]

    def apply_allocations(
        self,
        allocations: Sequence[PointsAllocation],
        *,
        occurred_at: datetime | None = None,
    ) -> list[list[AppliedRanking]]:
        """Apply every allocation of one match, or none of them.

        Locks for all touched keys are taken up front in sorted order.
        """
        occurred_at = occurred_at or self._clock()
        planned = [
            (allocation, sorted(self.keys_for(allocation), key=RankingKey.sort_key))
            for allocation in allocations
        ]
        all_keys = sorted({key for _, keys in planned for key in keys}, key=RankingKey.sort_key)

        written: list[tuple[RankingEntry | None, RankingEntry, float]] = []
        with ExitStack() as stack:
            for key in all_keys:
                stack.enter_context(self._locks.lock_for(key))
            try:
                for allocation, keys in planned:
                    for key in keys:
                        written.append(self._update_with_retry(key, allocation, occurred_at))
            except Exception:
                self._revert_written(written)
                raise

        results: list[list[AppliedRanking]] = []
        position = 0
        for allocation, keys in planned:
            applied: list[AppliedRanking] = []
            for previous, entry, delta in written[position : position + len(keys)]:
                rank, total = self._rank_of(entry)
                applied.append(
                    AppliedRanking(
                        entry=entry,
                        delta=delta,
                        rank=rank,
                        total_players=total,
                        previous=previous,
                    )
                )
            position += len(keys)
            results.append(applied)
            logger.debug(
                "Applied match_id=%s player_id=%s final_points=%s keys=%s",
                allocation.match_id,
                allocation.player_id,
                allocation.final_points,
                [str(key.slice) for key in keys],
            )
        return results

    def revert(self, applied: Iterable[AppliedRanking]) -> None:
        """Back out previously applied rankings, newest first."""
        items = list(applied)
        keys = sorted({item.entry.key for item in items}, key=RankingKey.sort_key)
        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self._locks.lock_for(key))
            self._revert_written([(item.previous, item.entry, item.delta) for item in items])

    def _revert_written(self, written: list[tuple[RankingEntry | None, RankingEntry, float]]) -> None:
        for previous, entry, _ in reversed(written):
            self._revert_with_retry(entry, previous)
        if written:
            logger.warning("Reverted %s ranking update(s) after a failed batch", len(written))

    def _update_with_retry(
        self,
        key: RankingKey,
        allocation: PointsAllocation,
        occurred_at: datetime,
    ) -> tuple[RankingEntry | None, RankingEntry, float]:
        attempts = self.policy.max_update_attempts
        for attempt in range(1, attempts + 1):
            current = self.store.get(key)
            base = current or RankingEntry.empty(key, occurred_at)
            updated = base.apply(allocation.final_points, won=allocation.won, occurred_at=occurred_at)
            try:
                self.store.compare_and_set(current, updated)
            except ConcurrentUpdateConflict:
                logger.debug("Update conflict for %s (attempt %s/%s)", key, attempt, attempts)
                continue
            return current, updated, round(updated.points - base.points, 2)

        logger.error("Giving up on %s after %s conflicting attempts", key, attempts)
        raise ConcurrentUpdateConflict(key, attempts)

    def _revert_with_retry(self, applied: RankingEntry, previous: RankingEntry | None) -> None:
        attempts = self.policy.max_update_attempts
        for attempt in range(1, attempts + 1):
            current = self.store.get(applied.key)
            if current is None:
                return
            try:
                self.store.compare_and_set(current, current.revert(applied, previous))
            except ConcurrentUpdateConflict:
                logger.debug("Revert conflict for %s (attempt %s/%s)", applied.key, attempt, attempts)
                continue
            return

        logger.error("Could not revert %s after %s conflicting attempts", applied.key, attempts)
        raise ConcurrentUpdateConflict(applied.key, attempts)

    def get_entry(
        self,
        player_id: int,
        play_format: PlayFormat,
        age_division: AgeDivision,
        rating_tier: str | None = None,
    ) -> RankingEntry | None:
        return self.store.get(RankingKey(player_id, play_format, age_division, rating_tier))

    def _ordered_slice(self, slice_key: SliceKey) -> list[RankingEntry]:
        entries = [entry for entry in self.store.slice_entries(slice_key) if entry.matches_played > 0]
        return sorted(entries, key=leaderboard_sort_key)

    def _rank_of(self, entry: RankingEntry) -> tuple[int, int]:
        entries = self.store.slice_entries(entry.key.slice)
        ranked = [other for other in entries if other.matches_played > 0]
        return 1 + sum(1 for other in ranked if other.points > entry.points), len(ranked)

    def get_leaderboard(
        self,
        play_format: PlayFormat,
        age_division: AgeDivision,
        rating_tier: str | None = None,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> LeaderboardResponse:
        """Ordered rows for one slice, or an ``insufficient_players`` status."""
        limit = self.policy.default_limit if limit is None else limit
        if limit < 1 or limit > MAX_LEADERBOARD_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LEADERBOARD_LIMIT}")
        if offset < 0:
            raise ValueError("offset must be >= 0")

        slice_key = SliceKey(play_format, age_division, rating_tier)
        ordered = self._ordered_slice(slice_key)
        player_count = len(ordered)
        required = self.policy.min_players

        if player_count < required:
            return LeaderboardResponse(
                slice=slice_key,
                status=LeaderboardStatus.INSUFFICIENT_PLAYERS,
                player_count=player_count,
                required_count=required,
                limit=limit,
                offset=offset,
                guidance=(
                    f"This leaderboard opens once {required} players have recorded matches "
                    f"({player_count} so far)."
                ),
            )

        rows: list[LeaderboardRow] = []
        rank = 0
        previous_points: float | None = None
        for index, entry in enumerate(ordered):
            if previous_points is None or entry.points != previous_points:
                rank = index + 1
                previous_points = entry.points
            if index < offset:
                continue
            if len(rows) >= limit:
                break
            rows.append(
                LeaderboardRow(
                    player_id=entry.key.player_id,
                    points=entry.points,
                    rank=rank,
                    matches_played=entry.matches_played,
                    wins=entry.wins,
                    losses=entry.losses,
                )
            )

        return LeaderboardResponse(
            slice=slice_key,
            status=LeaderboardStatus.ACTIVE,
            player_count=player_count,
            required_count=required,
            rows=tuple(rows),
            limit=limit,
            offset=offset,
        )

    def get_position(
        self,
        player_id: int,
        play_format: PlayFormat,
        age_division: AgeDivision,
        rating_tier: str | None = None,
    ) -> PositionResult:
        slice_key = SliceKey(play_format, age_division, rating_tier)
        required = self.policy.min_matches_for_position
        entry = self.store.get(RankingKey(player_id, play_format, age_division, rating_tier))

        if entry is None or entry.matches_played == 0:
            return PositionResult(
                status=PositionStatus.NOT_RANKED,
                player_id=player_id,
                slice=slice_key,
                required_matches=required,
            )
        if entry.matches_played < required:
            return PositionResult(
                status=PositionStatus.INSUFFICIENT_DATA,
                player_id=player_id,
                slice=slice_key,
                points=entry.points,
                required_matches=required,
                current_matches=entry.matches_played,
            )

        rank, total = self._rank_of(entry)
        return PositionResult(
            status=PositionStatus.RANKED,
            player_id=player_id,
            slice=slice_key,
            rank=rank,
            total_players=total,
            points=entry.points,
            percentile=round((total - rank) / total * 100),
            required_matches=required,
            current_matches=entry.matches_played,
        )


__all__ = [
    "AppliedRanking",
    "LeaderboardPolicy",
    "LeaderboardResponse",
    "LeaderboardRow",
    "LeaderboardStatus",
    "MAX_LEADERBOARD_LIMIT",
    "PositionResult",
    "PositionStatus",
    "RankingAggregator",
]
