"""Fixtures partagées : fabriques de demandes, de trajets et fournisseurs factices."""

from collections.abc import Callable, Sequence
from datetime import date

import pytest

from groupage.config import Config
from groupage.providers import DistanceProviderError
from groupage.records import CarrierTrip, ClientRequest, Location

RUN_DATE = date(2030, 9, 1)
D = date(2030, 9, 15)

CITIES = {
    "75001": "Paris",
    "75002": "Paris",
    "75003": "Paris",
    "69001": "Lyon",
    "69002": "Lyon",
    "69003": "Lyon",
    "13001": "Marseille",
}


def loc(postal_code: str) -> Location:
    return Location(postal_code, CITIES.get(postal_code, ""))


def make_client(
    client_id: str = "A",
    dep: str = "75001",
    arr: str = "69001",
    desired: date = D,
    volume: float = 5.0,
    flexibility: int = 0,
    status: str = "pending",
) -> ClientRequest:
    return ClientRequest(
        id=client_id,
        departure=loc(dep),
        arrival=loc(arr),
        desired_date=desired,
        volume_m3=volume,
        flexibility_days=flexibility,
        status=status,
    )


def make_trip(
    trip_id: str = "T",
    dep: str = "75001",
    arr: str = "69001",
    departure: date = D,
    max_volume: float = 10.0,
    used: float = 0.0,
    status: str = "confirmed",
    route_type: str = "",
) -> CarrierTrip:
    return CarrierTrip(
        id=trip_id,
        departure=loc(dep),
        arrival=loc(arr),
        departure_date=departure,
        max_volume=max_volume,
        used_volume=used,
        status=status,
        route_type=route_type,
    )


class TableProvider:
    """Fournisseur factice : distance constante entre lieux distincts, paires sans résultat, appels enregistrés."""

    def __init__(
        self,
        km: float = 30.0,
        on_call: Callable[[], None] | None = None,
        missing: frozenset[tuple[str, str]] = frozenset(),
    ) -> None:
        self.km = km
        self.on_call = on_call
        self.missing = missing
        self.calls: list[tuple[int, int]] = []

    def distance_matrix(
        self,
        origins: Sequence[Location],
        destinations: Sequence[Location],
    ) -> list[list[float | None]]:
        self.calls.append((len(origins), len(destinations)))
        if self.on_call is not None:
            self.on_call()
        return [[self._km(o, d) for d in destinations] for o in origins]

    def _km(self, o: Location, d: Location) -> float | None:
        if (o.postal_code, d.postal_code) in self.missing:
            return None
        return 0.0 if o.key == d.key else self.km


class FailingProvider:
    """Fournisseur factice toujours en échec."""

    def __init__(self) -> None:
        self.calls = 0

    def distance_matrix(
        self,
        origins: Sequence[Location],
        destinations: Sequence[Location],
    ) -> list[list[float | None]]:
        self.calls += 1
        raise DistanceProviderError("quota dépassé")


@pytest.fixture
def config() -> Config:
    return Config(clients_file="clients.xlsx", trips_file="trips.xlsx", workers=2)
