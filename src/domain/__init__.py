"""Ranking-points domain modules."""

from domain.common import AgeDivision, MatchSubmission, MatchType, PlayerProfile, PlayFormat

__all__ = ["AgeDivision", "MatchSubmission", "MatchType", "PlayFormat", "PlayerProfile"]
