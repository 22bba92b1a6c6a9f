"""Remplissage glouton de la capacité d'un trajet."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from groupage.matching.schema import Evaluation
from groupage.records import CarrierTrip, ClientRequest


@dataclass(frozen=True)
class PackItem:
    """Client admissible pour un trajet, avec ses métriques d'évaluation."""

    client: ClientRequest
    evaluation: Evaluation

    @property
    def combined_distance_km(self) -> float:
        return sum(self.evaluation.leg_distances_km)


@dataclass(frozen=True)
class PackResult:
    """Sélection retenue pour un trajet et volume résiduel (non persisté)."""

    selected: tuple[PackItem, ...]
    used_volume: float
    residual_volume: float

    @property
    def clients(self) -> tuple[ClientRequest, ...]:
        return tuple(item.client for item in self.selected)


def pack(candidates: Sequence[PackItem], trip: CarrierTrip) -> PackResult:
    """
    Sélectionne gloutonnement les clients qui tiennent dans le volume disponible.

    Les candidats sont triés par distance cumulée croissante (tri stable :
    l'ordre d'entrée départage les égalités), puis acceptés tant que le volume
    cumulé ne dépasse pas ``trip.available_volume``. Un client trop volumineux
    est ignoré et le parcours continue ; pas de retour arrière.
    """
    available = trip.available_volume
    used = 0.0
    selected: list[PackItem] = []
    for item in sorted(candidates, key=lambda it: it.combined_distance_km):
        volume = item.client.volume_m3
        if used + volume <= available:
            selected.append(item)
            used += volume
    return PackResult(selected=tuple(selected), used_volume=used, residual_volume=available - used)
