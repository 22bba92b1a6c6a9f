"""Résolution des distances routières : cache, appel fournisseur, estimation de repli."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from rapidfuzz import fuzz

from groupage.normalize import norm_city
from groupage.providers import DistanceProvider, DistanceProviderError, NullDistanceProvider
from groupage.records import Location

logger = logging.getLogger(__name__)

SAME_CITY_KM = 10.0
SAME_DEPARTMENT_KM = 25.0
ADJACENT_DEPARTMENT_KM = 60.0
FAR_BASE_KM = 120.0
FAR_KM_PER_DEPARTMENT = 5.0
FAR_MAX_KM = 600.0
CITY_SIMILARITY_MIN = 90.0


def _same_city(a: Location, b: Location) -> bool:
    ca, cb = norm_city(a.city), norm_city(b.city)
    if not ca or not cb:
        return False
    return fuzz.ratio(ca, cb) >= CITY_SIMILARITY_MIN


def fallback_distance(origin: Location, destination: Location) -> float:
    """
    Estimation déterministe (km) à partir des préfixes départementaux.

    - même code postal : 0
    - même département, même ville : SAME_CITY_KM
    - même département : SAME_DEPARTMENT_KM
    - départements voisins (numérotation) : ADJACENT_DEPARTMENT_KM
    - sinon : FAR_BASE_KM + FAR_KM_PER_DEPARTMENT par département d'écart, plafonné
    """
    if origin.postal_code == destination.postal_code:
        return 0.0
    d1, d2 = origin.department, destination.department
    if d1 == d2:
        return SAME_CITY_KM if _same_city(origin, destination) else SAME_DEPARTMENT_KM
    if not (d1.isdigit() and d2.isdigit()):
        return FAR_BASE_KM
    gap = abs(int(d1) - int(d2))
    if gap == 1:
        return ADJACENT_DEPARTMENT_KM
    return min(FAR_BASE_KM + FAR_KM_PER_DEPARTMENT * gap, FAR_MAX_KM)


class _Shard:
    __slots__ = ("lock", "values")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.values: dict[tuple[str, str], float] = {}


class DistanceCache:
    """Cache (origine, destination) → km, découpé en shards verrouillés indépendamment."""

    def __init__(self, n_shards: int = 16) -> None:
        if n_shards < 1:
            raise ValueError(f"n_shards doit être >= 1 (got {n_shards})")
        self._shards = [_Shard() for _ in range(n_shards)]

    def _shard(self, key: tuple[str, str]) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    def get(self, key: tuple[str, str]) -> float | None:
        shard = self._shard(key)
        with shard.lock:
            return shard.values.get(key)

    def set(self, key: tuple[str, str], value: float) -> None:
        shard = self._shard(key)
        with shard.lock:
            shard.values[key] = value

    def __contains__(self, key: tuple[str, str]) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.values)
        return total

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.values.clear()


class DistanceResolver:
    """
    Résout la distance routière orientée entre deux lieux.

    (from, to) et (to, from) sont mis en cache séparément. Le premier échec du
    fournisseur fait passer le résolveur en mode dégradé : plus aucun appel
    fournisseur, toutes les distances manquantes sont estimées par
    ``fallback_distance``. Aucune erreur fournisseur n'est propagée.
    """

    def __init__(
        self,
        provider: DistanceProvider | None = None,
        *,
        batch_size: int = 25,
        cache: DistanceCache | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size doit être >= 1 (got {batch_size})")
        self.provider = provider or NullDistanceProvider()
        self.batch_size = batch_size
        self.cache = cache if cache is not None else DistanceCache()
        self._stats_lock = threading.Lock()
        self.degraded = False
        self.provider_calls = 0
        self.fallback_count = 0

    def seed(self, origin: Location, destination: Location, distance_km: float) -> None:
        """Pré-remplit le cache (tests, distances connues)."""
        self.cache.set((origin.key, destination.key), float(distance_km))

    def clear(self) -> None:
        self.cache.clear()

    def _mark_degraded(self, error: Exception) -> None:
        with self._stats_lock:
            if not self.degraded:
                logger.warning("Fournisseur de distances indisponible, estimation de repli: %s", error)
            self.degraded = True

    def _fallback(self, origin: Location, destination: Location) -> float:
        value = fallback_distance(origin, destination)
        self.cache.set((origin.key, destination.key), value)
        with self._stats_lock:
            self.fallback_count += 1
        return value

    def _call_provider(
        self,
        origins: list[Location],
        destinations: list[Location],
    ) -> list[list[float | None]] | None:
        with self._stats_lock:
            if self.degraded:
                return None
            self.provider_calls += 1
        try:
            return self.provider.distance_matrix(origins, destinations)
        except DistanceProviderError as e:
            self._mark_degraded(e)
            return None

    def resolve(self, origin: Location, destination: Location) -> float:
        """Distance en km de ``origin`` vers ``destination``."""
        key = (origin.key, destination.key)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        if origin.key == destination.key:
            self.cache.set(key, 0.0)
            return 0.0

        matrix = self._call_provider([origin], [destination])
        if matrix and matrix[0] and matrix[0][0] is not None:
            value = float(matrix[0][0])
            self.cache.set(key, value)
            return value
        return self._fallback(origin, destination)

    def resolve_matrix(self, locations: Iterable[Location]) -> int:
        """
        Pré-chauffe le cache pour toutes les paires orientées d'un ensemble de lieux.

        Les lieux sont découpés en lots de ``batch_size`` ; chaque couple (lot
        origines, lot destinations) donne un appel fournisseur. Une paire sans
        résultat reçoit tout de suite l'estimation de repli : elle ne sera pas
        redemandée au fournisseur pendant l'évaluation.

        Returns:
            Nombre de distances fournisseur ajoutées au cache (hors estimations de repli).
        """
        unique: dict[str, Location] = {}
        for loc in locations:
            unique.setdefault(loc.key, loc)
        ordered = [unique[k] for k in sorted(unique)]
        batches = [ordered[i : i + self.batch_size] for i in range(0, len(ordered), self.batch_size)]

        added = 0
        for origins in batches:
            for destinations in batches:
                missing = [
                    (o, d) for o in origins for d in destinations if (o.key, d.key) not in self.cache
                ]
                if not missing:
                    continue
                if self.degraded:
                    return added
                logger.debug("Distance matrix: lot %dx%d", len(origins), len(destinations))
                matrix = self._call_provider(origins, destinations)
                if matrix is None:
                    return added
                for i, o in enumerate(origins):
                    for j, d in enumerate(destinations):
                        value = matrix[i][j] if i < len(matrix) and j < len(matrix[i]) else None
                        if (o.key, d.key) in self.cache:
                            continue
                        if value is None:
                            self._fallback(o, d)
                        else:
                            self.cache.set((o.key, d.key), float(value))
                            added += 1
        return added
