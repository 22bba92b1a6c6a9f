"""Calcul du score et classement des candidats."""

from __future__ import annotations

from collections.abc import Iterable

from groupage.config import ScoringWeights
from groupage.matching.schema import MatchCandidate, MatchDraft


def volume_utilization(requested: float, capacity: float) -> float:
    """Taux de remplissage borné à [0, 1]."""
    if capacity <= 0:
        return 0.0
    return min(max(requested / capacity, 0.0), 1.0)


def score_draft(draft: MatchDraft, weights: ScoringWeights) -> float:
    """
    Score d'un candidat (plus haut = meilleur).

    base - distance * poids - écart_jours * poids + remplissage * poids + bonus(type)

    Pas d'arrondi ni de plancher : le score reste strictement monotone en
    distance et en écart de dates. Il n'a de sens qu'à l'intérieur d'un run.
    """
    ev = draft.evaluation
    score = weights.base
    score -= ev.distance_km * weights.distance_weight
    score -= ev.date_diff_days * weights.date_weight
    score += volume_utilization(ev.requested_volume, ev.capacity_volume) * weights.volume_weight
    score += weights.bonuses.get(draft.match_type, 0.0)
    return score


def score_all(drafts: Iterable[MatchDraft], weights: ScoringWeights) -> list[MatchCandidate]:
    return [MatchCandidate.from_draft(d, score_draft(d, weights)) for d in drafts]


def rank(candidates: Iterable[MatchCandidate]) -> list[MatchCandidate]:
    """Tri par score décroissant, puis par référence pour un ordre déterministe."""
    return sorted(candidates, key=lambda c: (-c.score, c.reference))
