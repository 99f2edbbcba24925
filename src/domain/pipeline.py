"""Batch replay of match submissions into a ranking system."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from domain.common import Gender, MatchSubmission, PlayerProfile
from domain.errors import MatchValidationError
from domain.ranking.aggregator import RankingAggregator
from domain.ranking.config import RankingSystemConfig, leaderboard_policy_from_json
from domain.ranking.engine import RankingEngine
from domain.ranking.store import InMemoryRankingStore
from domain.ranking.tiers import validate_rating
from repositories import (
    SqlRankingHistory,
    SqlRankingStore,
    delete_rankings_for_system,
    get_ranking_system,
    upsert_ranking_system,
)


@dataclass(frozen=True)
class MatchBatch:
    profiles: dict[int, PlayerProfile]
    submissions: tuple[MatchSubmission, ...]


@dataclass(frozen=True)
class RebuildSummary:
    """Outcome for one rebuilt system config."""

    system_name: str
    config_file: str
    system_id: int | None
    processed_matches: int
    rejected_matches: int
    history_entries: int
    tracked_players: int
    dry_run: bool


def load_match_batch(path: Path) -> MatchBatch:
    """Read ``{"players": [...], "matches": [...]}`` from a JSON file."""
    with path.open("r", encoding="utf-8") as file:
        raw = json.load(file)
    return parse_match_batch(raw, source=str(path))


def parse_match_batch(raw: Mapping[str, Any], *, source: str = "<batch>") -> MatchBatch:
    profiles: dict[int, PlayerProfile] = {}
    for item in raw.get("players", []):
        player_id = int(item["id"])
        if player_id in profiles:
            raise ValueError(f"{source}: duplicate player id {player_id}")
        profiles[player_id] = PlayerProfile(
            player_id=player_id,
            rating=validate_rating(item.get("rating", 0.0)),
            gender=Gender.parse(item.get("gender")),
            display_name=item.get("name"),
        )

    submissions: list[MatchSubmission] = []
    for item in raw.get("matches", []):
        played_at = item.get("playedAt")
        submissions.append(
            MatchSubmission(
                match_id=int(item["id"]),
                side1_player_ids=tuple(int(player_id) for player_id in item.get("side1", [])),
                side2_player_ids=tuple(int(player_id) for player_id in item.get("side2", [])),
                games=tuple((game[0], game[1]) for game in item.get("games", [])),
                play_format=item.get("format", "singles"),
                age_division=item.get("ageDivision", "19plus"),
                match_type=item.get("matchType", "casual"),
                played_at=None if played_at is None else datetime.fromisoformat(played_at),
            )
        )
    return MatchBatch(profiles=profiles, submissions=tuple(submissions))


def chronological(submissions: Iterable[MatchSubmission]) -> list[MatchSubmission]:
    """Order by ``played_at`` (undated last), then match id."""
    return sorted(
        submissions,
        key=lambda submission: (
            submission.played_at is None,
            submission.played_at or datetime.min,
            submission.match_id,
        ),
    )


def replay_matches(
    engine: RankingEngine,
    batch: MatchBatch,
    *,
    strict: bool = False,
    echo: Callable[[str], None] | None = None,
) -> tuple[int, int]:
    """Submit every match in order; returns ``(processed, rejected)``."""
    processed = 0
    rejected = 0
    ordered = chronological(batch.submissions)
    for index, submission in enumerate(ordered, start=1):
        try:
            engine.submit(submission, batch.profiles)
        except MatchValidationError as exc:
            if strict:
                raise
            rejected += 1
            if echo is not None:
                echo(f"rejected match_id={submission.match_id} reason={exc.user_message}")
            continue
        processed += 1

        if echo is not None and index % 1_000 == 0:
            echo(f"processed_matches={index}/{len(ordered)}")
    return processed, rejected


def rebuild_single_system(
    *,
    session_factory: sessionmaker[Session] | None,
    system_config: RankingSystemConfig,
    batch: MatchBatch,
    dry_run: bool = False,
    strict: bool = False,
    echo: Callable[[str], None] | None = None,
) -> RebuildSummary:
    """Recompute one system from scratch, in memory or into the database."""
    if dry_run or session_factory is None:
        store = InMemoryRankingStore()
        engine = RankingEngine.from_config(system_config, store=store)
        processed, rejected = replay_matches(engine, batch, strict=strict, echo=echo)
        summary = RebuildSummary(
            system_name=system_config.name,
            config_file=system_config.file_path.name,
            system_id=None,
            processed_matches=processed,
            rejected_matches=rejected,
            history_entries=len(engine.history),
            tracked_players=store.tracked_entity_count(),
            dry_run=True,
        )
        if echo is not None:
            echo(
                f"[dry-run] config={summary.config_file} "
                f"system={summary.system_name} "
                f"processed_matches={processed} "
                f"rejected_matches={rejected} "
                f"tracked_players={summary.tracked_players}"
            )
        return summary

    with session_factory() as session:
        try:
            system = upsert_ranking_system(
                session,
                name=system_config.name,
                description=system_config.description,
                config_json=system_config.as_config_json(),
            )
            system_id = int(system.id)
            delete_rankings_for_system(session, system_id)
            session.commit()
        except Exception:
            session.rollback()
            raise

    store = SqlRankingStore(session_factory, system_id=system_id)
    history = SqlRankingHistory(session_factory, system_id=system_id)
    engine = RankingEngine.from_config(system_config, store=store, history=history)
    processed, rejected = replay_matches(engine, batch, strict=strict, echo=echo)

    summary = RebuildSummary(
        system_name=system_config.name,
        config_file=system_config.file_path.name,
        system_id=system_id,
        processed_matches=processed,
        rejected_matches=rejected,
        history_entries=len(history),
        tracked_players=store.tracked_entity_count(),
        dry_run=False,
    )
    if echo is not None:
        echo(
            "completed "
            f"config={summary.config_file} "
            f"system={summary.system_name} "
            f"system_id={system_id} "
            f"processed_matches={processed} "
            f"rejected_matches={rejected} "
            f"history_entries={summary.history_entries} "
            f"tracked_players={summary.tracked_players}"
        )
    return summary


def stored_aggregator(session_factory: sessionmaker[Session], system_name: str) -> RankingAggregator | None:
    """Aggregator over a stored system, with the leaderboard policy it was built with."""
    with session_factory() as session:
        system = get_ranking_system(session, system_name)
        if system is None:
            return None
        system_id = int(system.id)
        policy = leaderboard_policy_from_json(system.config_json)
    return RankingAggregator(SqlRankingStore(session_factory, system_id=system_id), policy)


__all__ = [
    "MatchBatch",
    "RebuildSummary",
    "chronological",
    "load_match_batch",
    "parse_match_batch",
    "rebuild_single_system",
    "replay_matches",
    "stored_aggregator",
]
