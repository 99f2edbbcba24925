"""End-to-end processing of one match submission."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from domain.common import MatchResult, MatchSubmission, ParticipantContext, PlayerProfile
from domain.errors import DuplicateMatchSubmission, InvalidMatchResult, MatchValidationError
from domain.ranking.aggregator import AppliedRanking, RankingAggregator
from domain.ranking.allocator import PointsAllocation, PointsAllocator
from domain.ranking.config import RankingSystemConfig
from domain.ranking.history import HistoryStore, RankingHistoryEntry, RankingHistoryTracker
from domain.ranking.normalizer import normalize_match
from domain.ranking.store import InMemoryRankingStore, RankingStore
from domain.ranking.tiers import TierRuleResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayerOutcome:
    allocation: PointsAllocation
    applied: tuple[AppliedRanking, ...]
    history_entry: RankingHistoryEntry

    @property
    def overall(self) -> AppliedRanking:
        return next(item for item in self.applied if item.entry.key.rating_tier is None)


@dataclass(frozen=True)
class MatchOutcome:
    match: MatchResult
    players: tuple[PlayerOutcome, ...]

    @property
    def allocations(self) -> tuple[PointsAllocation, ...]:
        return tuple(player.allocation for player in self.players)

    def for_player(self, player_id: int) -> PlayerOutcome:
        for player in self.players:
            if player.allocation.player_id == player_id:
                return player
        raise KeyError(f"player_id={player_id} did not play match_id={self.match.match_id}")


class RankingEngine:
    """Normalize, allocate, apply, then record.

    Everything that can reject a submission runs before the first store
    write, so a rejected match leaves no trace.
    """

    def __init__(
        self,
        *,
        allocator: PointsAllocator,
        aggregator: RankingAggregator,
        history: HistoryStore,
        activity_window_days: int = 30,
    ) -> None:
        self.allocator = allocator
        self.aggregator = aggregator
        self.history = history
        self.activity_window = timedelta(days=activity_window_days)
        self._claimed_match_ids: set[int] = set()
        self._claim_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: RankingSystemConfig,
        *,
        store: RankingStore | None = None,
        history: HistoryStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> RankingEngine:
        resolver = TierRuleResolver(config.build_catalog(), missing_catalog=config.missing_catalog)
        return cls(
            allocator=PointsAllocator(resolver, config.points),
            aggregator=RankingAggregator(
                store if store is not None else InMemoryRankingStore(),
                config.leaderboard,
                clock=clock,
            ),
            history=history if history is not None else RankingHistoryTracker(),
            activity_window_days=config.activity_window_days,
        )

    def build_context(self, profile: PlayerProfile, match: MatchResult) -> ParticipantContext:
        entry = self.aggregator.get_entry(profile.player_id, match.play_format, match.age_division)
        player_history = self.history.history(profile.player_id, match.play_format, match.age_division)
        window_start = match.played_at - self.activity_window
        return ParticipantContext(
            profile=profile,
            accumulated_points=0.0 if entry is None else entry.points,
            win_streak=0 if entry is None else entry.win_streak,
            matches_in_window=player_history.count_since(window_start),
            recent_results=player_history.recent_results(self.allocator.params.fast_track_window),
        )

    def preview(
        self,
        submission: MatchSubmission,
        profiles: Mapping[int, PlayerProfile],
    ) -> tuple[MatchResult, tuple[PointsAllocation, ...]]:
        """Compute allocations against current totals without applying them."""
        try:
            match = normalize_match(submission)
            missing = [player_id for player_id in match.participant_ids() if player_id not in profiles]
            if missing:
                raise InvalidMatchResult(match.match_id, f"no player profile for {missing}")
            contexts = {
                player_id: self.build_context(profiles[player_id], match)
                for player_id in match.participant_ids()
            }
            return match, self.allocator.allocate(match, contexts)
        except MatchValidationError as exc:
            logger.info("Rejected match_id=%s: %s", submission.match_id, exc)
            raise

    def submit(
        self,
        submission: MatchSubmission,
        profiles: Mapping[int, PlayerProfile],
    ) -> MatchOutcome:
        """Apply one match to every participant, or to none of them.

        A failure while writing totals or history reverts whatever was
        already applied and frees the match id for resubmission.
        """
        self._claim(submission.match_id)
        try:
            match, allocations = self.preview(submission, profiles)
            applied_per_player = self.aggregator.apply_allocations(
                allocations, occurred_at=match.played_at
            )
        except Exception:
            self._release(submission.match_id)
            raise

        pending: list[RankingHistoryEntry] = []
        for allocation, applied in zip(allocations, applied_per_player):
            overall = next(item for item in applied if item.entry.key.rating_tier is None)
            pending.append(
                RankingHistoryEntry(
                    player_id=allocation.player_id,
                    match_id=match.match_id,
                    recorded_at=match.played_at,
                    points_delta=overall.delta,
                    resulting_total=overall.entry.points,
                    play_format=match.play_format,
                    age_division=match.age_division,
                    won=allocation.won,
                )
            )
        try:
            history_entries = self.history.record_match(pending)
        except Exception:
            logger.error("History write failed for match_id=%s; reverting totals", match.match_id)
            try:
                self.aggregator.revert(item for applied in applied_per_player for item in applied)
            finally:
                self._release(match.match_id)
            raise

        players = tuple(
            PlayerOutcome(allocation=allocation, applied=tuple(applied), history_entry=history_entry)
            for allocation, applied, history_entry in zip(
                allocations, applied_per_player, history_entries
            )
        )
        return MatchOutcome(match=match, players=players)

    def _claim(self, match_id: int) -> None:
        with self._claim_lock:
            if match_id in self._claimed_match_ids or self.history.has_match(match_id):
                logger.info("Rejected duplicate match_id=%s", match_id)
                raise DuplicateMatchSubmission(match_id)
            self._claimed_match_ids.add(match_id)

    def _release(self, match_id: int) -> None:
        with self._claim_lock:
            self._claimed_match_ids.discard(match_id)


__all__ = ["MatchOutcome", "PlayerOutcome", "RankingEngine"]
