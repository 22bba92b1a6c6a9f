"""Scénarios de matching : un par type de match, au-dessus de l'évaluateur."""

from __future__ import annotations

from collections.abc import Callable, Sequence

from groupage.config import CLIENT_TO_CLIENT, DIRECT, GROUPED_OUTBOUND, LOOP, RETURN_TRIP, Config
from groupage.distance import DistanceResolver
from groupage.matching.evaluator import SAME_ROUTE, evaluate
from groupage.matching.packer import PackItem, PackResult, pack
from groupage.matching.schema import Evaluation, MatchDraft
from groupage.records import CarrierTrip, ClientRequest

PairStrategy = Callable[[ClientRequest, CarrierTrip, DistanceResolver, Config], MatchDraft | None]

_PREFIXES = {DIRECT: "C2M-DIR", RETURN_TRIP: "C2M-RET", LOOP: "C2M-LOOP"}


def _client_trip_draft(
    match_type: str,
    client: ClientRequest,
    trip: CarrierTrip,
    evaluation: Evaluation,
    explanation: str,
) -> MatchDraft:
    return MatchDraft(
        reference=f"{_PREFIXES[match_type]}-{client.id}-{trip.id}",
        match_type=match_type,
        clients=(client,),
        trip=trip,
        evaluation=evaluation,
        explanation=explanation,
    )


def direct_match(
    client: ClientRequest,
    trip: CarrierTrip,
    resolver: DistanceResolver,
    config: Config,
) -> MatchDraft | None:
    """Le client fait le même trajet que le transporteur."""
    ev = evaluate(DIRECT, (client, trip), resolver, config)
    if ev is None:
        return None
    leg1, leg2 = ev.leg_distances_km
    return _client_trip_draft(
        DIRECT,
        client,
        trip,
        ev,
        f"Trajet identique au déménageur: {leg1:.0f}km (départ), {leg2:.0f}km (arrivée), ±{ev.date_diff_days}j",
    )


def return_trip_match(
    client: ClientRequest,
    trip: CarrierTrip,
    resolver: DistanceResolver,
    config: Config,
) -> MatchDraft | None:
    """Le client occupe le trajet retour (à vide) du transporteur."""
    ev = evaluate(RETURN_TRIP, (client, trip), resolver, config)
    if ev is None:
        return None
    leg1, leg2 = ev.leg_distances_km
    return _client_trip_draft(
        RETURN_TRIP,
        client,
        trip,
        ev,
        f"Trajet retour du déménageur: {leg1:.0f}km du point d'arrivée, {leg2:.0f}km du point de départ, "
        f"±{ev.date_diff_days}j",
    )


def loop_match(
    client: ClientRequest,
    trip: CarrierTrip,
    resolver: DistanceResolver,
    config: Config,
) -> MatchDraft | None:
    """Le client s'insère dans une tournée multi-arrêts."""
    ev = evaluate(LOOP, (client, trip), resolver, config)
    if ev is None:
        return None
    return _client_trip_draft(
        LOOP,
        client,
        trip,
        ev,
        f"Intégration dans la tournée: {ev.distance_km:.0f}km de détour, ±{ev.date_diff_days}j",
    )


def pair_strategies(config: Config) -> list[tuple[str, PairStrategy]]:
    """Stratégies (client, trajet) activées, dans l'ordre d'évaluation."""
    candidates: list[tuple[str, PairStrategy]] = [
        (DIRECT, direct_match),
        (RETURN_TRIP, return_trip_match),
        (LOOP, loop_match),
    ]
    return [(t, s) for t, s in candidates if config.rule(t).enabled]


def grouped_outbound_items(
    trip: CarrierTrip,
    clients: Sequence[ClientRequest],
    resolver: DistanceResolver,
    config: Config,
) -> list[PackItem]:
    """Clients admissibles pour l'aller groupé d'un trajet (seuils larges, avant packing)."""
    items: list[PackItem] = []
    for client in clients:
        ev = evaluate(GROUPED_OUTBOUND, (client, trip), resolver, config)
        if ev is not None:
            items.append(PackItem(client=client, evaluation=ev))
    return items


def grouped_outbound_match(
    trip: CarrierTrip,
    items: Sequence[PackItem],
    config: Config,
) -> tuple[MatchDraft | None, PackResult]:
    """
    Remplit le trajet avec les clients admissibles et produit un candidat multi-clients.

    Returns:
        (brouillon ou None si moins de ``min_group_size`` clients retenus, résultat du packing)
    """
    result = pack(items, trip)
    if len(result.selected) < config.min_group_size:
        return None, result

    legs = tuple(d for item in result.selected for d in item.evaluation.leg_distances_km)
    ev = Evaluation(
        leg_distances_km=legs,
        distance_km=max(item.evaluation.distance_km for item in result.selected),
        date_diff_days=max(item.evaluation.date_diff_days for item in result.selected),
        requested_volume=result.used_volume,
        capacity_volume=trip.available_volume,
        volume_compatible=result.used_volume <= trip.available_volume,
    )
    ids = "+".join(c.id for c in result.clients)
    draft = MatchDraft(
        reference=f"GRP-{trip.id}-{ids}",
        match_type=GROUPED_OUTBOUND,
        clients=result.clients,
        trip=trip,
        evaluation=ev,
        explanation=(
            f"Aller groupé: {len(result.selected)} clients, {result.used_volume:.1f}m3 "
            f"sur {trip.available_volume:.1f}m3 disponibles"
        ),
    )
    return draft, result


def client_to_client_match(
    a: ClientRequest,
    b: ClientRequest,
    resolver: DistanceResolver,
    config: Config,
) -> MatchDraft | None:
    """Deux demandes partagent un trajet (même route) ou s'enchaînent (complémentaires)."""
    ev = evaluate(CLIENT_TO_CLIENT, (a, b), resolver, config)
    if ev is None:
        return None
    if ev.variant == SAME_ROUTE:
        prefix = "C2C-DEP"
        explanation = f"Même trajet: départs à {ev.leg_distances_km[0]:.0f}km, arrivées à {ev.leg_distances_km[1]:.0f}km"
    else:
        prefix = "C2C-RET"
        explanation = f"Trajets complémentaires: {ev.distance_km:.0f}km entre une arrivée et l'autre départ"
    if not ev.volume_compatible:
        explanation += " (volume > véhicule standard: transporteur dédié nécessaire)"
    return MatchDraft(
        reference=f"{prefix}-{a.id}-{b.id}",
        match_type=CLIENT_TO_CLIENT,
        clients=(a, b),
        trip=None,
        evaluation=ev,
        explanation=explanation,
    )
