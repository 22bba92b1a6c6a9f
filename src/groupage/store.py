"""Accès en lecture aux demandes clients et trajets transporteurs."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Protocol

import pandas as pd

from groupage.config import Config, GroupageError
from groupage.io_excel import ExcelFileError, load_clients_trips
from groupage.normalize import client_from_mapping, norm_text, safe_str, trip_from_mapping
from groupage.records import CarrierTrip, ClientRequest

logger = logging.getLogger(__name__)

REQUIRED_CLIENT_COLUMNS = ("id", "departure_postal_code", "arrival_postal_code", "desired_date")
REQUIRED_TRIP_COLUMNS = ("id", "departure_postal_code", "arrival_postal_code", "departure_date")

# En-têtes français courants → noms de colonnes internes
COLUMN_ALIASES = {
    "nom": "name",
    "client": "name",
    "societe": "company_name",
    "transporteur": "company_name",
    "code_postal_depart": "departure_postal_code",
    "cp_depart": "departure_postal_code",
    "ville_depart": "departure_city",
    "code_postal_arrivee": "arrival_postal_code",
    "cp_arrivee": "arrival_postal_code",
    "ville_arrivee": "arrival_city",
    "date_souhaitee": "desired_date",
    "date_depart": "departure_date",
    "volume": "estimated_volume",
    "volume_estime": "estimated_volume",
    "volume_max": "max_volume",
    "volume_utilise": "used_volume",
    "volume_disponible": "available_volume",
    "dates_flexibles": "flexible_dates",
    "flexibilite_jours": "flexibility_days",
    "statut": "status",
    "type_trajet": "route_type",
    "trajet_accepte": "accepted_trip_id",
}


class DataStoreError(GroupageError):
    """Lecture des demandes ou des trajets impossible : le run échoue."""


class DataStore(Protocol):
    """Source en lecture seule des demandes et trajets."""

    def fetch_client_requests(self) -> list[ClientRequest]: ...

    def fetch_carrier_trips(self) -> list[CarrierTrip]: ...

    def fetch_excluded_pairs(self) -> set[tuple[str, str]]:
        """Paires (client_id, trip_id) déjà acceptées."""
        ...


class InMemoryStore:
    """Stockage en mémoire (usage bibliothèque, tests)."""

    def __init__(
        self,
        clients: Iterable[ClientRequest] = (),
        trips: Iterable[CarrierTrip] = (),
        excluded_pairs: Iterable[tuple[str, str]] = (),
    ) -> None:
        self.clients = list(clients)
        self.trips = list(trips)
        self.excluded_pairs = set(excluded_pairs)

    def fetch_client_requests(self) -> list[ClientRequest]:
        return list(self.clients)

    def fetch_carrier_trips(self) -> list[CarrierTrip]:
        return list(self.trips)

    def fetch_excluded_pairs(self) -> set[tuple[str, str]]:
        return set(self.excluded_pairs)


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """En-têtes en snake_case sans accents, alias français résolus."""
    renamed = {}
    for col in df.columns:
        key = re.sub(r"[\s\-/]+", "_", norm_text(str(col), remove_diacritics=True))
        renamed[col] = COLUMN_ALIASES.get(key, key)
    return df.rename(columns=renamed)


def _check_columns(df: pd.DataFrame, required: Iterable[str], label: str) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise DataStoreError(f"Colonnes manquantes ({label}): {', '.join(missing)}")


class SpreadsheetStore:
    """Demandes et trajets lus depuis des tableurs (xlsx, xls, ods, csv)."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self._frames: tuple[pd.DataFrame, pd.DataFrame] | None = None
        self.n_dropped_clients = 0
        self.n_dropped_trips = 0

    def _load(self) -> tuple[pd.DataFrame, pd.DataFrame]:
        if self._frames is None:
            try:
                df_clients, df_trips = load_clients_trips(self.config)
            except ExcelFileError as e:
                raise DataStoreError(str(e)) from e
            df_clients = normalize_columns(df_clients)
            df_trips = normalize_columns(df_trips)
            _check_columns(df_clients, REQUIRED_CLIENT_COLUMNS, "clients")
            _check_columns(df_trips, REQUIRED_TRIP_COLUMNS, "trajets")
            if "max_volume" not in df_trips.columns and "available_volume" not in df_trips.columns:
                raise DataStoreError("Colonnes manquantes (trajets): max_volume ou available_volume")
            self._frames = (df_clients, df_trips)
        return self._frames

    def fetch_client_requests(self) -> list[ClientRequest]:
        df_clients, _ = self._load()
        clients: list[ClientRequest] = []
        for row in df_clients.to_dict(orient="records"):
            client = client_from_mapping(
                row,
                default_volume_m3=self.config.default_volume_m3,
                default_flexibility_days=self.config.default_flexibility_days,
            )
            if client is not None:
                clients.append(client)
        self.n_dropped_clients = len(df_clients) - len(clients)
        if self.n_dropped_clients:
            logger.info("%d demande(s) incomplète(s) ignorée(s)", self.n_dropped_clients)
        return clients

    def fetch_carrier_trips(self) -> list[CarrierTrip]:
        _, df_trips = self._load()
        trips: list[CarrierTrip] = []
        for row in df_trips.to_dict(orient="records"):
            trip = trip_from_mapping(row)
            if trip is not None:
                trips.append(trip)
        self.n_dropped_trips = len(df_trips) - len(trips)
        if self.n_dropped_trips:
            logger.info("%d trajet(s) incomplet(s) ignoré(s)", self.n_dropped_trips)
        return trips

    def fetch_excluded_pairs(self) -> set[tuple[str, str]]:
        df_clients, _ = self._load()
        if "accepted_trip_id" not in df_clients.columns:
            return set()
        pairs = set()
        for client_id, trip_id in zip(df_clients["id"], df_clients["accepted_trip_id"]):
            cid, tid = safe_str(client_id), safe_str(trip_id)
            if cid and tid:
                pairs.add((cid, tid))
        return pairs
