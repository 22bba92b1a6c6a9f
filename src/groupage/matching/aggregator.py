"""Moteur d'agrégation : filtrage, pré-calcul des distances, évaluation parallèle, classement."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import Counter
from collections.abc import Callable, Collection, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date

from groupage.config import CLIENT_TO_CLIENT, GROUPED_OUTBOUND, MATCH_TYPES, Config
from groupage.distance import DistanceResolver
from groupage.matching.schema import MatchCandidate, MatchDraft
from groupage.matching.scorers import rank, score_all
from groupage.matching.strategies import (
    client_to_client_match,
    grouped_outbound_items,
    grouped_outbound_match,
    pair_strategies,
)
from groupage.providers import DistanceProvider, build_provider
from groupage.records import CarrierTrip, ClientRequest, Location
from groupage.store import DataStore, DataStoreError

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Bilan d'un run : volumes traités, dégradations, annulation."""

    run_date: date
    n_clients_input: int = 0
    n_trips_input: int = 0
    n_clients_used: int = 0
    n_trips_used: int = 0
    n_pairs_excluded: int = 0
    counts_by_type: dict[str, int] = field(default_factory=lambda: {t: 0 for t in MATCH_TYPES})
    n_candidates: int = 0
    provider_calls: int = 0
    fallback_count: int = 0
    degraded: bool = False
    cancelled: bool = False
    warnings: list[str] = field(default_factory=list)
    duration_s: float = 0.0

    @property
    def n_clients_filtered(self) -> int:
        return self.n_clients_input - self.n_clients_used

    @property
    def n_trips_filtered(self) -> int:
        return self.n_trips_input - self.n_trips_used


@dataclass
class MatchRun:
    """Résultat d'un run : candidats classés et bilan."""

    candidates: list[MatchCandidate]
    summary: RunSummary

    def top(self, n: int) -> list[MatchCandidate]:
        return self.candidates[:n]


class Aggregator:
    """Croise demandes et trajets (et demandes entre elles), note et classe les candidats."""

    def __init__(
        self,
        config: Config,
        resolver: DistanceResolver | None = None,
        *,
        provider: DistanceProvider | None = None,
        today: date | None = None,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.provider = provider
        self.today = today
        self.workers = config.workers or os.cpu_count() or 1
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Demande l'annulation : plus aucune évaluation lancée, celles en cours se terminent."""
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def _run_date(self) -> date:
        return self.today or date.today()

    def _new_resolver(self) -> DistanceResolver:
        provider = self.provider or build_provider(self.config.provider)
        return DistanceResolver(provider, batch_size=self.config.provider_batch_size)

    def filter_clients(self, clients: Sequence[ClientRequest], run_date: date) -> list[ClientRequest]:
        """Demandes complètes, au statut actif et à date future."""
        statuses = set(self.config.client_statuses)
        return [
            c
            for c in clients
            if c.departure.postal_code
            and c.arrival.postal_code
            and c.status in statuses
            and c.volume_m3 >= 0
            and c.desired_date >= run_date
        ]

    def filter_trips(self, trips: Sequence[CarrierTrip], run_date: date) -> list[CarrierTrip]:
        """Trajets complets, confirmés ou en cours, avec du volume disponible et à date future."""
        statuses = set(self.config.trip_statuses)
        return [
            t
            for t in trips
            if t.departure.postal_code
            and t.arrival.postal_code
            and t.status in statuses
            and t.available_volume > 0
            and t.departure_date >= run_date
        ]

    def _guard(self, task: Callable[[], list[MatchDraft]]) -> Callable[[], list[MatchDraft]]:
        def wrapped() -> list[MatchDraft]:
            if self._cancel.is_set():
                return []
            return task()

        return wrapped

    def _build_tasks(
        self,
        clients: list[ClientRequest],
        trips: list[CarrierTrip],
        resolver: DistanceResolver,
        excluded: Collection[tuple[str, str]],
    ) -> list[Callable[[], list[MatchDraft]]]:
        config = self.config
        strategies = pair_strategies(config)
        tasks: list[Callable[[], list[MatchDraft]]] = []

        def client_trip_task(client: ClientRequest) -> Callable[[], list[MatchDraft]]:
            def run() -> list[MatchDraft]:
                drafts: list[MatchDraft] = []
                for trip in trips:
                    if (client.id, trip.id) in excluded:
                        continue
                    for _, strategy in strategies:
                        draft = strategy(client, trip, resolver, config)
                        if draft is not None:
                            drafts.append(draft)
                return drafts

            return run

        def grouped_task(trip: CarrierTrip) -> Callable[[], list[MatchDraft]]:
            def run() -> list[MatchDraft]:
                eligible = [c for c in clients if (c.id, trip.id) not in excluded]
                items = grouped_outbound_items(trip, eligible, resolver, config)
                draft, _ = grouped_outbound_match(trip, items, config)
                return [draft] if draft is not None else []

            return run

        def client_pair_task(i: int) -> Callable[[], list[MatchDraft]]:
            def run() -> list[MatchDraft]:
                a = clients[i]
                drafts: list[MatchDraft] = []
                for b in clients[i + 1 :]:
                    if a.id == b.id:
                        continue
                    draft = client_to_client_match(a, b, resolver, config)
                    if draft is not None:
                        drafts.append(draft)
                return drafts

            return run

        if strategies:
            tasks.extend(client_trip_task(c) for c in clients)
        if config.rule(GROUPED_OUTBOUND).enabled:
            # Un seul packing par trajet et par run
            tasks.extend(grouped_task(t) for t in trips)
        if config.rule(CLIENT_TO_CLIENT).enabled:
            tasks.extend(client_pair_task(i) for i in range(len(clients)))
        return [self._guard(t) for t in tasks]

    def _evaluate(self, tasks: list[Callable[[], list[MatchDraft]]]) -> list[MatchDraft]:
        if not tasks:
            return []
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [executor.submit(task) for task in tasks]
            # Ordre de soumission conservé : résultat indépendant de l'ordonnancement des threads
            return [draft for future in futures for draft in future.result()]

    def run(
        self,
        clients: Sequence[ClientRequest],
        trips: Sequence[CarrierTrip],
        *,
        excluded_pairs: Collection[tuple[str, str]] = (),
    ) -> MatchRun:
        """
        Exécute un run complet de matching.

        Args:
            clients: Demandes clients (normalisées).
            trips: Trajets transporteurs (normalisés, non modifiés).
            excluded_pairs: Paires (client_id, trip_id) déjà acceptées, à ignorer.

        Returns:
            MatchRun avec la liste complète classée et le bilan.
        """
        self._cancel.clear()
        start = time.perf_counter()
        run_date = self._run_date()
        resolver = self.resolver or self._new_resolver()
        calls_before, fallbacks_before = resolver.provider_calls, resolver.fallback_count
        summary = RunSummary(run_date=run_date, n_clients_input=len(clients), n_trips_input=len(trips))

        active_clients = self.filter_clients(clients, run_date)
        active_trips = self.filter_trips(trips, run_date)
        summary.n_clients_used = len(active_clients)
        summary.n_trips_used = len(active_trips)
        excluded = set(excluded_pairs)
        trip_ids = {t.id for t in active_trips}
        summary.n_pairs_excluded = sum(
            1 for c in active_clients for tid in trip_ids if (c.id, tid) in excluded
        )
        logger.info(
            "Matching: %d clients x %d trajets (%d clients et %d trajets écartés)",
            len(active_clients),
            len(active_trips),
            summary.n_clients_filtered,
            summary.n_trips_filtered,
        )

        locations: list[Location] = []
        for c in active_clients:
            locations.extend((c.departure, c.arrival))
        for t in active_trips:
            locations.extend((t.departure, t.arrival))
        resolver.resolve_matrix(locations)

        candidates: list[MatchCandidate] = []
        if self._cancel.is_set():
            summary.cancelled = True
            summary.warnings.append("Run annulé avant l'évaluation des paires")
            logger.warning("Run annulé avant l'évaluation des paires")
        else:
            tasks = self._build_tasks(active_clients, active_trips, resolver, excluded)
            drafts = self._evaluate(tasks)
            if self._cancel.is_set():
                summary.cancelled = True
                summary.warnings.append("Run annulé pendant l'évaluation: résultats partiels")
                logger.warning("Run annulé pendant l'évaluation: résultats partiels")
            candidates = rank(score_all(drafts, self.config.scoring))

        summary.counts_by_type.update(Counter(c.match_type for c in candidates))
        summary.n_candidates = len(candidates)
        summary.provider_calls = resolver.provider_calls - calls_before
        summary.fallback_count = resolver.fallback_count - fallbacks_before
        summary.degraded = resolver.degraded
        if summary.fallback_count:
            message = f"{summary.fallback_count} distance(s) estimée(s) sans fournisseur (mode dégradé)"
            summary.warnings.append(message)
            logger.warning(message)
        summary.duration_s = time.perf_counter() - start
        logger.info("Matching terminé en %.2fs: %d candidats", summary.duration_s, len(candidates))
        return MatchRun(candidates=candidates, summary=summary)

    def find_all_matches(
        self,
        clients: Sequence[ClientRequest],
        trips: Sequence[CarrierTrip],
        *,
        excluded_pairs: Collection[tuple[str, str]] = (),
    ) -> list[MatchCandidate]:
        """Liste complète des candidats, classés par score décroissant."""
        return self.run(clients, trips, excluded_pairs=excluded_pairs).candidates

    def run_from_store(self, store: DataStore) -> MatchRun:
        """
        Lit demandes et trajets depuis le stockage puis exécute le run.

        Raises:
            DataStoreError: Si la lecture échoue (jamais de liste vide silencieuse).
        """
        try:
            clients = store.fetch_client_requests()
            trips = store.fetch_carrier_trips()
            excluded = store.fetch_excluded_pairs()
        except DataStoreError:
            raise
        except Exception as e:
            raise DataStoreError(f"Lecture des demandes/trajets impossible: {e}") from e
        return self.run(clients, trips, excluded_pairs=excluded)
