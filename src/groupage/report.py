"""Génération du rapport, de l'onglet REPORT et de l'export des candidats."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import pandas as pd

from groupage import __version__
from groupage.config import MATCH_TYPES, Config
from groupage.matching.aggregator import MatchRun
from groupage.matching.schema import MatchCandidate

CANDIDATE_COLUMNS = [
    "reference",
    "match_type",
    "score",
    "client_ids",
    "trip_id",
    "company_name",
    "departure",
    "arrival",
    "distance_km",
    "date_diff_days",
    "requested_volume",
    "capacity_volume",
    "available_volume_after",
    "is_valid",
    "needs_dedicated_carrier",
    "explanation",
]


def _candidate_row(c: MatchCandidate) -> dict[str, object]:
    first = c.client
    return {
        "reference": c.reference,
        "match_type": c.match_type,
        "score": round(c.score, 2),
        "client_ids": ", ".join(c.client_ids),
        "trip_id": c.trip.id if c.trip is not None else "",
        "company_name": c.trip.company_name if c.trip is not None else "",
        "departure": str(first.departure),
        "arrival": str(first.arrival),
        "distance_km": round(c.distance_km, 1),
        "date_diff_days": c.date_diff_days,
        "requested_volume": c.requested_volume,
        "capacity_volume": c.capacity_volume,
        "available_volume_after": c.available_volume_after,
        "is_valid": c.is_valid,
        "needs_dedicated_carrier": c.needs_dedicated_carrier,
        "explanation": c.explanation,
    }


def build_candidates_df(candidates: Sequence[MatchCandidate]) -> pd.DataFrame:
    """Une ligne par candidat, dans l'ordre du classement."""
    return pd.DataFrame([_candidate_row(c) for c in candidates], columns=CANDIDATE_COLUMNS)


def build_report_df(run: MatchRun, config: Config) -> pd.DataFrame:
    """
    Construit le DataFrame pour l'onglet REPORT.

    Contient : volumes en entrée et retenus, nb candidats par type, avertissements,
    paramètres, horodatage, version.
    """
    s = run.summary
    rows: list[tuple[str, object]] = [
        ("Metric", "Value"),
        ("run_date", s.run_date.isoformat()),
        ("nb_clients_input", s.n_clients_input),
        ("nb_clients_used", s.n_clients_used),
        ("nb_trips_input", s.n_trips_input),
        ("nb_trips_used", s.n_trips_used),
        ("nb_pairs_excluded", s.n_pairs_excluded),
        ("nb_candidates", s.n_candidates),
    ]
    for match_type in MATCH_TYPES:
        rows.append((f"nb_{match_type}", s.counts_by_type.get(match_type, 0)))
    rows.extend(
        [
            ("provider_calls", s.provider_calls),
            ("fallback_distances", s.fallback_count),
            ("degraded", s.degraded),
            ("cancelled", s.cancelled),
            ("", ""),
            ("Warnings", ""),
        ]
    )
    for i, w in enumerate(s.warnings):
        rows.append((f"warning_{i}", w))

    rows.extend(
        [
            ("", ""),
            ("Parameters", ""),
            ("provider", config.provider.type),
            ("default_volume_m3", config.default_volume_m3),
            ("default_flexibility_days", config.default_flexibility_days),
            ("standard_vehicle_capacity_m3", config.standard_vehicle_capacity_m3),
            ("min_group_size", config.min_group_size),
            ("", ""),
            ("Strategies", ""),
        ]
    )
    for match_type in MATCH_TYPES:
        r = config.rule(match_type)
        state = "on" if r.enabled else "off"
        rows.append(
            (
                f"strategy_{match_type}",
                f"{state} r={r.radius_km:g}km d={r.max_date_diff_days}j bonus={config.scoring.bonuses[match_type]:g}",
            )
        )
    rows.extend(
        [
            ("", ""),
            ("timestamp", datetime.now().isoformat()),
            ("version", __version__),
        ]
    )

    return pd.DataFrame(rows, columns=["Key", "Value"])


def print_report_console(run: MatchRun, *, top: int = 0) -> None:
    """Affiche un résumé du run en console (et les ``top`` meilleurs candidats)."""
    s = run.summary
    print("\n=== Groupage Report ===")
    print(f"  Date du run:      {s.run_date.isoformat()}")
    print(f"  Clients:          {s.n_clients_used}/{s.n_clients_input}")
    print(f"  Trajets:          {s.n_trips_used}/{s.n_trips_input}")
    print(f"  Candidats:        {s.n_candidates}")
    for match_type in MATCH_TYPES:
        print(f"    {match_type + ':':<18}{s.counts_by_type.get(match_type, 0)}")
    print(f"  Appels distance:  {s.provider_calls}")
    print(f"  Distances repli:  {s.fallback_count}")
    if s.cancelled:
        print("  Run annulé:       oui (résultats partiels)")
    for w in s.warnings:
        print(f"  Avertissement:    {w}")
    print(f"  Durée:            {s.duration_s:.2f}s")
    print(f"  Version:          {__version__}")
    print(f"  Timestamp:        {datetime.now().isoformat()}")
    print("=======================\n")

    for c in run.top(top):
        trip = c.trip.id if c.trip is not None else "-"
        print(f"  {c.score:7.1f}  {c.reference:<30} trajet={trip:<10} {c.explanation}")
    if top and run.candidates:
        print()


def build_matches_csv(candidates: Sequence[MatchCandidate], output_path: str) -> None:
    """Génère matches.csv : une ligne par candidat classé."""
    build_candidates_df(candidates).to_csv(output_path, index=False, encoding="utf-8")
