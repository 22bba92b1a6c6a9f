"""Fournisseurs de distances routières (collaborateurs externes du résolveur)."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

import requests

from groupage.config import GroupageError, ProviderConfig
from groupage.records import Location

logger = logging.getLogger(__name__)

# Limite de l'API Distance Matrix : 25 origines et 25 destinations par requête
MAX_ELEMENTS_PER_SIDE = 25


class DistanceProviderError(GroupageError):
    """Fournisseur indisponible (réseau, quota, timeout, réponse invalide)."""


class DistanceProvider(Protocol):
    """Calcule une matrice de distances routières en km."""

    def distance_matrix(
        self,
        origins: Sequence[Location],
        destinations: Sequence[Location],
    ) -> list[list[float | None]]:
        """
        Returns:
            Matrice [origine][destination] en km ; None si la paire n'a pas de résultat.

        Raises:
            DistanceProviderError: Si l'appel échoue dans son ensemble.
        """
        ...


def _element_km(element: object) -> float | None:
    """Distance en km d'un élément de réponse ; None si absent, en échec ou mal formé."""
    if not isinstance(element, dict) or element.get("status") != "OK":
        return None
    distance = element.get("distance")
    value = distance.get("value") if isinstance(distance, dict) else None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return round(value / 1000, 1)


class NullDistanceProvider:
    """Fournisseur hors-ligne : échoue toujours, ce qui force l'estimation de repli."""

    def distance_matrix(
        self,
        origins: Sequence[Location],
        destinations: Sequence[Location],
    ) -> list[list[float | None]]:
        raise DistanceProviderError("Aucun fournisseur de distances configuré")


class GoogleDistanceMatrixProvider:
    """Client de l'API Google Distance Matrix (mode voiture, unités métriques)."""

    MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 10.0,
        country: str = "France",
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise DistanceProviderError("Clé API Google Maps requise")
        self.api_key = api_key
        self.timeout = timeout
        self.country = country
        self.session = session or requests.Session()

    def _format(self, location: Location) -> str:
        parts = [location.postal_code]
        if location.city:
            parts.append(location.city)
        if self.country:
            parts.append(self.country)
        return ", ".join(parts)

    def distance_matrix(
        self,
        origins: Sequence[Location],
        destinations: Sequence[Location],
    ) -> list[list[float | None]]:
        if len(origins) > MAX_ELEMENTS_PER_SIDE or len(destinations) > MAX_ELEMENTS_PER_SIDE:
            raise DistanceProviderError(
                f"Lot trop grand ({len(origins)}x{len(destinations)}), max {MAX_ELEMENTS_PER_SIDE}"
            )
        params = {
            "origins": "|".join(self._format(o) for o in origins),
            "destinations": "|".join(self._format(d) for d in destinations),
            "mode": "driving",
            "units": "metric",
            "key": self.api_key,
        }
        try:
            response = self.session.get(self.MATRIX_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise DistanceProviderError(f"Erreur réseau Distance Matrix: {e}") from e
        except ValueError as e:
            raise DistanceProviderError(f"Réponse Distance Matrix illisible: {e}") from e

        if not isinstance(data, dict):
            raise DistanceProviderError(f"Réponse Distance Matrix inattendue: {type(data).__name__}")
        status = data.get("status")
        if status != "OK":
            raise DistanceProviderError(f"Distance Matrix a répondu {status}: {data.get('error_message', '')}")

        rows = data.get("rows")
        if not isinstance(rows, list):
            raise DistanceProviderError("Distance Matrix: champ rows absent ou invalide")
        if len(rows) != len(origins):
            raise DistanceProviderError(f"Distance Matrix: {len(rows)} lignes pour {len(origins)} origines")

        matrix: list[list[float | None]] = []
        for row in rows:
            elements = row.get("elements") if isinstance(row, dict) else None
            if not isinstance(elements, list):
                raise DistanceProviderError("Distance Matrix: ligne sans éléments")
            matrix.append([_element_km(elements[j]) if j < len(elements) else None for j in range(len(destinations))])
        return matrix


def build_provider(config: ProviderConfig) -> DistanceProvider:
    """Instancie le fournisseur décrit par la configuration (repli hors-ligne si pas de clé)."""
    if config.type == "google":
        api_key = config.api_key()
        if api_key:
            return GoogleDistanceMatrixProvider(api_key, timeout=config.timeout, country=config.country)
        logger.warning("Variable %s absente: distances estimées hors-ligne", config.api_key_env)
    return NullDistanceProvider()
