"""Tests de l'évaluateur de compatibilité."""

from datetime import timedelta

import pytest
from conftest import D, FailingProvider, make_client, make_trip

from groupage.config import CLIENT_TO_CLIENT, DIRECT, GROUPED_OUTBOUND, LOOP, RETURN_TRIP, Config
from groupage.distance import DistanceResolver
from groupage.matching.evaluator import COMPLEMENTARY, SAME_ROUTE, date_diff_days, date_window, evaluate


@pytest.fixture
def resolver() -> DistanceResolver:
    return DistanceResolver(FailingProvider())


def test_date_diff_days() -> None:
    assert date_diff_days(D, D + timedelta(days=3)) == 3
    assert date_diff_days(D + timedelta(days=3), D) == 3


def test_direct_window_is_client_flexibility_capped(config: Config) -> None:
    assert date_window(DIRECT, make_client(flexibility=2), config) == 2
    assert date_window(DIRECT, make_client(flexibility=30), config) == 7
    assert date_window(RETURN_TRIP, make_client(flexibility=0), config) == 7


def test_direct_same_route(config: Config, resolver: DistanceResolver) -> None:
    ev = evaluate(DIRECT, (make_client(), make_trip()), resolver, config)
    assert ev is not None
    assert ev.leg_distances_km == (0.0, 0.0)
    assert ev.distance_km == 0.0
    assert ev.date_diff_days == 0
    assert ev.volume_compatible
    assert ev.capacity_volume == 10.0


def test_direct_outside_flexibility(config: Config, resolver: DistanceResolver) -> None:
    trip = make_trip(departure=D + timedelta(days=3))
    assert evaluate(DIRECT, (make_client(flexibility=2), trip), resolver, config) is None
    assert evaluate(DIRECT, (make_client(flexibility=3), trip), resolver, config) is not None


def test_direct_radius_uses_max_leg(config: Config, resolver: DistanceResolver) -> None:
    # Départ à 10 km (même ville), arrivée hors rayon (Marseille)
    client = make_client(dep="75002", arr="13001")
    assert evaluate(DIRECT, (client, make_trip()), resolver, config) is None
    near = make_client(dep="75002", arr="69002")
    ev = evaluate(DIRECT, (near, make_trip()), resolver, config)
    assert ev is not None
    assert ev.distance_km == 10.0


def test_volume_too_large_rejected(config: Config, resolver: DistanceResolver) -> None:
    client = make_client(volume=30.0)
    trip = make_trip(max_volume=10.0)
    for match_type in (DIRECT, RETURN_TRIP, LOOP, GROUPED_OUTBOUND):
        assert evaluate(match_type, (client, trip), resolver, config) is None


def test_return_trip_legs(config: Config, resolver: DistanceResolver) -> None:
    client = make_client(dep="69001", arr="75001", desired=D + timedelta(days=1))
    ev = evaluate(RETURN_TRIP, (client, make_trip()), resolver, config)
    assert ev is not None
    assert ev.leg_distances_km == (0.0, 0.0)
    assert ev.date_diff_days == 1
    assert evaluate(DIRECT, (client, make_trip()), resolver, config) is None


def test_loop_requires_multi_stop(config: Config, resolver: DistanceResolver) -> None:
    client = make_client(dep="75001", arr="13001")
    assert evaluate(LOOP, (client, make_trip()), resolver, config) is None
    ev = evaluate(LOOP, (client, make_trip(route_type="multi_stop")), resolver, config)
    assert ev is not None
    # Une seule extrémité proche suffit : la distance retenue est la plus courte
    assert ev.distance_km == 0.0
    assert ev.leg_distances_km[1] > config.rule(LOOP).radius_km


def test_loop_date_window(config: Config, resolver: DistanceResolver) -> None:
    trip = make_trip(route_type="multi_stop", departure=D + timedelta(days=6))
    assert evaluate(LOOP, (make_client(), trip), resolver, config) is None


def test_grouped_outbound_wider_window(config: Config, resolver: DistanceResolver) -> None:
    trip = make_trip(departure=D + timedelta(days=12))
    assert evaluate(DIRECT, (make_client(flexibility=7), trip), resolver, config) is None
    assert evaluate(GROUPED_OUTBOUND, (make_client(), trip), resolver, config) is not None


def test_client_to_client_same_route(config: Config, resolver: DistanceResolver) -> None:
    a = make_client("A", "75001", "69001", volume=20.0)
    b = make_client("B", "75002", "69002", volume=25.0)
    ev = evaluate(CLIENT_TO_CLIENT, (a, b), resolver, config)
    assert ev is not None
    assert ev.variant == SAME_ROUTE
    assert ev.requested_volume == 45.0
    assert ev.capacity_volume == config.standard_vehicle_capacity_m3
    assert ev.volume_compatible is False


def test_client_to_client_complementary(config: Config, resolver: DistanceResolver) -> None:
    a = make_client("A", "75001", "69001", volume=20.0)
    b = make_client("B", "69001", "75001", desired=D + timedelta(days=1), volume=12.0)
    ev = evaluate(CLIENT_TO_CLIENT, (a, b), resolver, config)
    assert ev is not None
    assert ev.variant == COMPLEMENTARY
    assert ev.distance_km == 0.0
    assert ev.requested_volume == 20.0
    assert ev.volume_compatible


def test_client_to_client_single_link_is_enough(config: Config, resolver: DistanceResolver) -> None:
    """Enchaînement accepté sur un seul lien, même si le retour vers le départ de A est lointain."""
    a = make_client("A", "75001", "69001")
    b = make_client("B", "69001", "13001", desired=D + timedelta(days=1))
    ev = evaluate(CLIENT_TO_CLIENT, (a, b), resolver, config)
    assert ev is not None
    assert ev.variant == COMPLEMENTARY
    assert ev.leg_distances_km == (0.0,)


def test_client_to_client_too_far_apart(config: Config, resolver: DistanceResolver) -> None:
    a = make_client("A", "75001", "69001")
    b = make_client("B", "13001", "06000")
    assert evaluate(CLIENT_TO_CLIENT, (a, b), resolver, config) is None
    late = make_client("B", "75001", "69001", desired=D + timedelta(days=8))
    assert evaluate(CLIENT_TO_CLIENT, (a, late), resolver, config) is None


def test_evaluate_invalid_arguments(config: Config, resolver: DistanceResolver) -> None:
    with pytest.raises(ValueError, match="type de match inconnu"):
        evaluate("teleport", (make_client(), make_trip()), resolver, config)
    with pytest.raises(TypeError):
        evaluate(CLIENT_TO_CLIENT, (make_client(), make_trip()), resolver, config)
    with pytest.raises(TypeError):
        evaluate(DIRECT, (make_client(), make_client("B")), resolver, config)
