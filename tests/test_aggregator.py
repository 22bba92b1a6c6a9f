"""Tests du moteur d'agrégation (run complet, sans réseau)."""

from dataclasses import replace
from datetime import timedelta

import pytest
from conftest import D, RUN_DATE, FailingProvider, TableProvider, make_client, make_trip

from groupage.config import CLIENT_TO_CLIENT, DIRECT, GROUPED_OUTBOUND, RETURN_TRIP, Config
from groupage.matching.aggregator import Aggregator
from groupage.providers import NullDistanceProvider
from groupage.store import DataStoreError, InMemoryStore


def _aggregator(config: Config, provider=None) -> Aggregator:
    return Aggregator(config, provider=provider or NullDistanceProvider(), today=RUN_DATE)


def _dataset() -> tuple[list, list]:
    clients = [
        make_client("A", "75001", "69001", volume=5.0),
        make_client("B", "69001", "75001", desired=D + timedelta(days=1), volume=6.0),
        make_client("C", "75002", "69002", volume=8.0, flexibility=3),
        make_client("E", "75003", "13001", volume=4.0),
        make_client("F", "69002", "75002", desired=D + timedelta(days=2), volume=30.0),
    ]
    trips = [
        make_trip("T", max_volume=20.0),
        make_trip("U", "69001", "75001", departure=D + timedelta(days=1), max_volume=40.0, used=10.0),
        make_trip("V", "75001", "69001", max_volume=30.0, route_type="multi_stop"),
    ]
    return clients, trips


def test_direct_example(config: Config) -> None:
    """Même trajet, même date : candidat direct à distance nulle."""
    client = make_client("A", "75001", "69001", volume=5.0)
    trip = make_trip("T", "75001", "69001", max_volume=10.0)
    candidates = _aggregator(config).find_all_matches([client], [trip])

    direct = [c for c in candidates if c.match_type == DIRECT]
    assert len(direct) == 1
    c = direct[0]
    assert c.reference == "C2M-DIR-A-T"
    assert c.leg_distances_km == (0.0, 0.0)
    assert c.date_diff_days == 0
    assert c.is_valid
    assert c.available_volume_after == 5.0


def test_return_trip_example(config: Config) -> None:
    client = make_client("B", "69001", "75001", desired=D + timedelta(days=1))
    trip = make_trip("T", "75001", "69001")
    candidates = _aggregator(config).find_all_matches([client], [trip])
    assert [c.reference for c in candidates] == ["C2M-RET-B-T"]
    assert candidates[0].match_type == RETURN_TRIP
    assert candidates[0].date_diff_days == 1


def test_volume_rejection_example(config: Config) -> None:
    """30 m3 contre 10 m3 disponibles : aucun candidat direct, même invalide."""
    client = make_client("C", "75001", "69001", volume=30.0)
    trip = make_trip("T", "75001", "69001", max_volume=10.0)
    candidates = _aggregator(config).find_all_matches([client], [trip])
    assert not any(c.match_type == DIRECT for c in candidates)


def test_past_date_excluded(config: Config) -> None:
    past = make_client("P", "75001", "69001", desired=RUN_DATE - timedelta(days=1))
    trip = make_trip("T", "75001", "69001", departure=RUN_DATE - timedelta(days=1))
    run = _aggregator(config).run([past], [trip])
    assert run.candidates == []
    assert run.summary.n_clients_filtered == 1
    assert run.summary.n_trips_filtered == 1

    current = make_trip("T2", "75001", "69001", departure=RUN_DATE)
    run = _aggregator(config).run([past], [current])
    assert not any("P" in c.client_ids for c in run.candidates)


def test_inactive_status_filtered(config: Config) -> None:
    client = make_client(status="rejected")
    trip = make_trip(status="cancelled")
    run = _aggregator(config).run([client, make_client("B")], [trip])
    assert run.summary.n_clients_used == 1
    assert run.summary.n_trips_used == 0


def test_full_trip_filtered(config: Config) -> None:
    trip = make_trip(max_volume=10.0, used=10.0)
    run = _aggregator(config).run([make_client()], [trip])
    assert run.summary.n_trips_used == 0


def test_all_types_on_dataset(config: Config) -> None:
    clients, trips = _dataset()
    run = _aggregator(config).run(clients, trips)
    refs = {c.reference for c in run.candidates}
    assert "C2M-DIR-A-T" in refs
    assert "C2M-RET-B-T" in refs
    assert "C2M-LOOP-E-V" in refs
    assert any(r.startswith("GRP-T-") for r in refs)
    assert "C2C-RET-A-B" in refs
    assert run.summary.counts_by_type[CLIENT_TO_CLIENT] >= 1
    assert run.summary.n_candidates == len(run.candidates)


def test_ranked_by_score(config: Config) -> None:
    clients, trips = _dataset()
    candidates = _aggregator(config).find_all_matches(clients, trips)
    keys = [(-c.score, c.reference) for c in candidates]
    assert keys == sorted(keys)


def test_references_unique(config: Config) -> None:
    clients, trips = _dataset()
    refs = [c.reference for c in _aggregator(config).find_all_matches(clients, trips)]
    assert len(refs) == len(set(refs))


def test_deterministic_across_workers(config: Config) -> None:
    """Même entrée, même sortie, quel que soit le nombre de workers."""
    clients, trips = _dataset()
    one = _aggregator(replace(config, workers=1)).find_all_matches(clients, trips)
    many = _aggregator(replace(config, workers=8)).find_all_matches(clients, trips)
    again = _aggregator(replace(config, workers=8)).find_all_matches(clients, trips)
    assert [(c.reference, c.score) for c in one] == [(c.reference, c.score) for c in many]
    assert [(c.reference, c.score) for c in many] == [(c.reference, c.score) for c in again]


def test_volume_invariant(config: Config) -> None:
    clients, trips = _dataset()
    for c in _aggregator(config).find_all_matches(clients, trips):
        assert c.date_diff_days >= 0
        assert c.distance_km >= 0
        if c.is_valid:
            assert 0 <= c.requested_volume <= c.capacity_volume
            assert c.available_volume_after >= 0


def test_one_grouped_selection_per_trip(config: Config) -> None:
    clients, trips = _dataset()
    grouped = [c for c in _aggregator(config).find_all_matches(clients, trips) if c.match_type == GROUPED_OUTBOUND]
    trip_ids = [c.trip.id for c in grouped if c.trip is not None]
    assert len(trip_ids) == len(set(trip_ids))


def test_trips_not_mutated(config: Config) -> None:
    clients, trips = _dataset()
    before = [(t.id, t.used_volume, t.available_volume) for t in trips]
    _aggregator(config).run(clients, trips)
    assert [(t.id, t.used_volume, t.available_volume) for t in trips] == before


def test_excluded_pairs(config: Config) -> None:
    client = make_client("A")
    trip = make_trip("T")
    run = _aggregator(config).run([client], [trip], excluded_pairs={("A", "T")})
    assert not any(c.trip is not None and c.trip.id == "T" for c in run.candidates)
    assert run.summary.n_pairs_excluded == 1


def test_disabled_strategy(config: Config) -> None:
    config.rules[DIRECT].enabled = False
    candidates = _aggregator(config).find_all_matches([make_client()], [make_trip()])
    assert not any(c.match_type == DIRECT for c in candidates)


def test_degraded_run_reports_warning(config: Config) -> None:
    provider = FailingProvider()
    clients, trips = _dataset()
    run = _aggregator(config, provider).run(clients, trips)
    assert run.summary.degraded
    assert run.summary.fallback_count > 0
    assert provider.calls == 1
    assert any("mode dégradé" in w for w in run.summary.warnings)


def test_provider_distances_used(config: Config) -> None:
    """Distances fournisseur pré-chargées : pas d'estimation de repli."""
    provider = TableProvider(km=30.0)
    client = make_client("A", "75002", "69002")
    run = _aggregator(config, provider).run([client], [make_trip("T")])
    direct = [c for c in run.candidates if c.match_type == DIRECT]
    assert direct[0].distance_km == 30.0
    assert run.summary.fallback_count == 0
    assert run.summary.provider_calls == 1
    assert not run.summary.degraded


def test_cancel_before_evaluation(config: Config) -> None:
    provider = TableProvider()
    aggregator = _aggregator(config, provider)
    provider.on_call = aggregator.cancel
    run = aggregator.run(*_dataset())
    assert run.summary.cancelled
    assert run.candidates == []
    assert run.summary.warnings


def test_cancel_reset_between_runs(config: Config) -> None:
    aggregator = _aggregator(config)
    aggregator.cancel()
    run = aggregator.run([make_client()], [make_trip()])
    assert not run.summary.cancelled
    assert run.candidates


def test_run_from_store(config: Config) -> None:
    store = InMemoryStore([make_client("A")], [make_trip("T")], excluded_pairs=[("A", "T")])
    run = _aggregator(config).run_from_store(store)
    assert run.summary.n_pairs_excluded == 1


class _BrokenStore(InMemoryStore):
    def fetch_carrier_trips(self) -> list:
        raise OSError("connexion perdue")


def test_run_from_store_failure_is_fatal(config: Config) -> None:
    with pytest.raises(DataStoreError, match="connexion perdue"):
        _aggregator(config).run_from_store(_BrokenStore([make_client()]))


def test_unanswered_pairs_not_requested_again(config: Config) -> None:
    """Les paires restées sans résultat au pré-chauffage ne déclenchent pas d'appel pendant l'évaluation."""
    provider = TableProvider(missing=frozenset({("75001", "69002"), ("69002", "69001")}))
    client = make_client("A", "75001", "69002")
    run = _aggregator(config, provider).run([client], [make_trip("T", "75001", "69001")])
    assert provider.calls == [(3, 3)]
    assert run.summary.provider_calls == 1
    assert run.summary.fallback_count == 2
    assert not run.summary.degraded
