"""Unit tests for ranking entries and the in-memory store."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from domain.common import AgeDivision, PlayFormat
from domain.errors import ConcurrentUpdateConflict
from domain.ranking.store import InMemoryRankingStore, RankingEntry, RankingKey, SliceKey

START = datetime(2026, 1, 1, 0, 0, 0)
KEY = RankingKey(1, PlayFormat.SINGLES, AgeDivision.OPEN)


def test_apply_tracks_record_and_streak() -> None:
    entry = RankingEntry.empty(KEY, START)
    entry = entry.apply(8.0, won=True, occurred_at=START)
    entry = entry.apply(8.0, won=True, occurred_at=START + timedelta(days=1))

    assert entry.points == pytest.approx(16.0)
    assert entry.wins == 2
    assert entry.win_streak == 2
    assert entry.version == 2

    entry = entry.apply(1.0, won=False, occurred_at=START + timedelta(days=2))
    assert entry.win_streak == 0
    assert entry.losses == 1


def test_achieved_at_only_moves_when_total_changes() -> None:
    entry = RankingEntry.empty(KEY, START).apply(5.0, won=True, occurred_at=START)
    unchanged = entry.apply(0.0, won=False, occurred_at=START + timedelta(days=1))

    assert unchanged.achieved_at == START
    assert unchanged.matches_played == 2


def test_apply_rounds_to_cents_and_floors_at_zero() -> None:
    entry = RankingEntry.empty(KEY, START).apply(0.1, won=True, occurred_at=START)
    entry = entry.apply(0.2, won=True, occurred_at=START)
    assert entry.points == 0.3

    assert entry.apply(-5.0, won=False, occurred_at=START).points == 0.0


def test_compare_and_set_detects_stale_writer() -> None:
    store = InMemoryRankingStore()
    first = RankingEntry.empty(KEY, START).apply(3.0, won=True, occurred_at=START)
    store.compare_and_set(None, first)

    with pytest.raises(ConcurrentUpdateConflict):
        store.compare_and_set(None, first)

    second = first.apply(3.0, won=True, occurred_at=START)
    store.compare_and_set(first, second)
    with pytest.raises(ConcurrentUpdateConflict):
        store.compare_and_set(first, second.apply(1.0, won=False, occurred_at=START))

    assert store.get(KEY) == second
    assert store.slice_entries(SliceKey(PlayFormat.SINGLES, AgeDivision.OPEN)) == [second]
    assert store.tracked_entity_count() == 1


def test_revert_restores_previous_entry_when_untouched() -> None:
    previous = RankingEntry.empty(KEY, START).apply(8.0, won=True, occurred_at=START)
    applied = previous.apply(3.0, won=True, occurred_at=START + timedelta(hours=1))

    reverted = applied.revert(applied, previous)

    assert reverted.points == pytest.approx(8.0)
    assert reverted.win_streak == 1
    assert reverted.achieved_at == START
    assert reverted.version == applied.version + 1


def test_revert_of_first_write_leaves_an_unplayed_entry() -> None:
    applied = RankingEntry.empty(KEY, START).apply(8.0, won=True, occurred_at=START)

    reverted = applied.revert(applied, None)

    assert reverted.points == 0.0
    assert reverted.matches_played == 0
    assert reverted.version == 2


def test_revert_backs_out_only_its_delta_after_a_later_write() -> None:
    previous = RankingEntry.empty(KEY, START).apply(8.0, won=True, occurred_at=START)
    applied = previous.apply(1.0, won=False, occurred_at=START + timedelta(hours=1))
    later = applied.apply(3.0, won=True, occurred_at=START + timedelta(hours=2))

    reverted = later.revert(applied, previous)

    assert reverted.points == pytest.approx(11.0)
    assert reverted.matches_played == 2
    assert reverted.wins == 2
    assert reverted.losses == 0
    assert reverted.version == later.version + 1
