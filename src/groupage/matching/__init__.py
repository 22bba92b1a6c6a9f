"""Module de matching et de consolidation."""

from groupage.matching.aggregator import Aggregator, MatchRun, RunSummary
from groupage.matching.schema import MatchCandidate

__all__ = ["Aggregator", "MatchCandidate", "MatchRun", "RunSummary"]
