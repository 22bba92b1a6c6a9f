"""Évaluation de compatibilité géographique, temporelle et volumétrique."""

from __future__ import annotations

from datetime import date

from groupage.config import CLIENT_TO_CLIENT, DIRECT, LOOP, MATCH_TYPES, RETURN_TRIP, Config
from groupage.distance import DistanceResolver
from groupage.matching.schema import Evaluation
from groupage.records import CarrierTrip, ClientRequest

SAME_ROUTE = "same_route"
COMPLEMENTARY = "complementary"


def date_diff_days(d1: date, d2: date) -> int:
    """Écart absolu en jours entiers."""
    return abs((d1 - d2).days)


def date_window(match_type: str, client: ClientRequest, config: Config) -> int:
    """Écart de dates admissible : flexibilité du client (plafonnée) pour direct, fixe sinon."""
    rule = config.rule(match_type)
    if match_type == DIRECT:
        return min(client.flexibility_days, rule.max_date_diff_days)
    return rule.max_date_diff_days


def _evaluate_client_trip(
    match_type: str,
    client: ClientRequest,
    trip: CarrierTrip,
    resolver: DistanceResolver,
    config: Config,
) -> Evaluation | None:
    rule = config.rule(match_type)
    if match_type == LOOP and not trip.is_multi_stop:
        return None

    days = date_diff_days(client.desired_date, trip.departure_date)
    if days > date_window(match_type, client, config):
        return None

    available = trip.available_volume
    if client.volume_m3 > available:
        return None

    if match_type == RETURN_TRIP:
        leg1 = resolver.resolve(client.departure, trip.arrival)
        leg2 = resolver.resolve(client.arrival, trip.departure)
    else:
        leg1 = resolver.resolve(client.departure, trip.departure)
        leg2 = resolver.resolve(client.arrival, trip.arrival)

    if match_type == LOOP:
        # Une seule extrémité proche suffit pour s'insérer dans la tournée
        distance = min(leg1, leg2)
        if distance > rule.radius_km:
            return None
    else:
        if leg1 > rule.radius_km or leg2 > rule.radius_km:
            return None
        distance = max(leg1, leg2)

    return Evaluation(
        leg_distances_km=(leg1, leg2),
        distance_km=distance,
        date_diff_days=days,
        requested_volume=client.volume_m3,
        capacity_volume=available,
        volume_compatible=True,
    )


def _evaluate_client_pair(
    a: ClientRequest,
    b: ClientRequest,
    resolver: DistanceResolver,
    config: Config,
) -> Evaluation | None:
    rule = config.rule(CLIENT_TO_CLIENT)
    days = date_diff_days(a.desired_date, b.desired_date)
    if days > rule.max_date_diff_days:
        return None
    capacity = config.standard_vehicle_capacity_m3

    departures = resolver.resolve(a.departure, b.departure)
    arrivals = resolver.resolve(a.arrival, b.arrival)
    if departures <= rule.radius_km and arrivals <= rule.radius_km:
        combined = a.volume_m3 + b.volume_m3
        return Evaluation(
            leg_distances_km=(departures, arrivals),
            distance_km=max(departures, arrivals),
            date_diff_days=days,
            requested_volume=combined,
            capacity_volume=capacity,
            volume_compatible=combined <= capacity,
            variant=SAME_ROUTE,
        )

    # Enchaînement : arrivée de l'un proche du départ de l'autre.
    # Un seul lien suffit, le trajet de bouclage n'est pas contrôlé.
    a_then_b = resolver.resolve(a.arrival, b.departure)
    b_then_a = resolver.resolve(b.arrival, a.departure)
    link = min(a_then_b, b_then_a)
    if link > rule.radius_km:
        return None
    largest = max(a.volume_m3, b.volume_m3)
    return Evaluation(
        leg_distances_km=(link,),
        distance_km=link,
        date_diff_days=days,
        requested_volume=largest,
        capacity_volume=capacity,
        volume_compatible=largest <= capacity,
        variant=COMPLEMENTARY,
    )


def evaluate(
    match_type: str,
    participants: tuple[ClientRequest, CarrierTrip] | tuple[ClientRequest, ClientRequest],
    resolver: DistanceResolver,
    config: Config,
) -> Evaluation | None:
    """
    Décide si une paire est admissible pour un type de match.

    Args:
        match_type: direct, return_trip, loop, grouped_outbound (évaluation
            par client, avant packing) ou client_to_client.
        participants: (client, trajet) ou (client A, client B).
        resolver: Résolveur de distances (seul état partagé).
        config: Seuils par type de match.

    Returns:
        Les métriques brutes, ou None si un seuil est dépassé ou si le volume ne tient pas.
    """
    if match_type not in MATCH_TYPES:
        raise ValueError(f"type de match inconnu: {match_type!r}")
    first, second = participants
    if match_type == CLIENT_TO_CLIENT:
        if not isinstance(second, ClientRequest):
            raise TypeError("client_to_client attend deux ClientRequest")
        return _evaluate_client_pair(first, second, resolver, config)
    if not isinstance(second, CarrierTrip):
        raise TypeError(f"{match_type} attend (ClientRequest, CarrierTrip)")
    return _evaluate_client_trip(match_type, first, second, resolver, config)
