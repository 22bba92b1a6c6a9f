"""Schémas et types pour le matching."""

from __future__ import annotations

from dataclasses import dataclass, field

from groupage.records import CarrierTrip, ClientRequest


@dataclass(frozen=True)
class Evaluation:
    """Métriques brutes d'une paire admissible."""

    leg_distances_km: tuple[float, ...]
    distance_km: float  # distance retenue pour le score
    date_diff_days: int
    requested_volume: float
    capacity_volume: float
    volume_compatible: bool
    variant: str = ""  # client_to_client : same_route ou complementary


@dataclass(frozen=True)
class MatchDraft:
    """Candidat non encore noté."""

    reference: str
    match_type: str
    clients: tuple[ClientRequest, ...]
    trip: CarrierTrip | None
    evaluation: Evaluation
    explanation: str = ""

    @property
    def available_volume_after(self) -> float:
        return self.evaluation.capacity_volume - self.evaluation.requested_volume

    @property
    def is_valid(self) -> bool:
        return self.evaluation.volume_compatible


@dataclass(frozen=True)
class MatchCandidate:
    """Proposition typée et notée. Immuable, jamais persistée par le moteur."""

    reference: str
    match_type: str
    clients: tuple[ClientRequest, ...]
    trip: CarrierTrip | None
    leg_distances_km: tuple[float, ...]
    distance_km: float
    date_diff_days: int
    requested_volume: float
    capacity_volume: float
    volume_compatible: bool
    available_volume_after: float
    is_valid: bool
    score: float
    explanation: str = ""
    variant: str = ""
    needs_dedicated_carrier: bool = field(default=False)

    @classmethod
    def from_draft(cls, draft: MatchDraft, score: float) -> MatchCandidate:
        ev = draft.evaluation
        return cls(
            reference=draft.reference,
            match_type=draft.match_type,
            clients=draft.clients,
            trip=draft.trip,
            leg_distances_km=ev.leg_distances_km,
            distance_km=ev.distance_km,
            date_diff_days=ev.date_diff_days,
            requested_volume=ev.requested_volume,
            capacity_volume=ev.capacity_volume,
            volume_compatible=ev.volume_compatible,
            available_volume_after=draft.available_volume_after,
            is_valid=draft.is_valid,
            score=score,
            explanation=draft.explanation,
            variant=ev.variant,
            needs_dedicated_carrier=draft.trip is None and not ev.volume_compatible,
        )

    @property
    def client(self) -> ClientRequest:
        """Premier client (unique pour les matchs client/trajet simples)."""
        return self.clients[0]

    @property
    def client_ids(self) -> tuple[str, ...]:
        return tuple(c.id for c in self.clients)

    def __repr__(self) -> str:
        return f"MatchCandidate({self.reference}, {self.match_type}, score={self.score:.1f})"
