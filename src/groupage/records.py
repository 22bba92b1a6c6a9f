"""Enregistrements typés : lieux, demandes clients et trajets transporteurs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class Location:
    """Lieu identifié par code postal et ville."""

    postal_code: str
    city: str = ""

    @property
    def key(self) -> str:
        """Identifiant stable utilisé comme clé de cache et requête fournisseur."""
        return f"{self.postal_code} {self.city}".strip()

    @property
    def department(self) -> str:
        """Préfixe départemental (2A/2B ramenés à 20)."""
        prefix = self.postal_code[:2].upper()
        if prefix in ("2A", "2B"):
            return "20"
        return prefix

    def __str__(self) -> str:
        return f"{self.city} ({self.postal_code})" if self.city else self.postal_code


@dataclass(frozen=True)
class ClientRequest:
    """Demande de transport d'un client, normalisée (valeurs par défaut résolues)."""

    id: str
    departure: Location
    arrival: Location
    desired_date: date
    volume_m3: float
    flexibility_days: int = 0
    status: str = "pending"
    name: str = ""
    volume_defaulted: bool = False

    def __repr__(self) -> str:
        return f"ClientRequest(id={self.id}, {self.departure} -> {self.arrival}, {self.desired_date})"


@dataclass(frozen=True)
class CarrierTrip:
    """Trajet programmé d'un transporteur. Jamais modifié par le moteur."""

    id: str
    departure: Location
    arrival: Location
    departure_date: date
    max_volume: float
    used_volume: float = 0.0
    status: str = "confirmed"
    company_name: str = ""
    route_type: str = ""

    @property
    def available_volume(self) -> float:
        return max(self.max_volume - self.used_volume, 0.0)

    @property
    def is_multi_stop(self) -> bool:
        return self.route_type == "multi_stop"

    def __repr__(self) -> str:
        return (
            f"CarrierTrip(id={self.id}, {self.departure} -> {self.arrival}, "
            f"{self.departure_date}, dispo={self.available_volume:.1f}m3)"
        )
