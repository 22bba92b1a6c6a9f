"""Normalisation des valeurs brutes et construction des enregistrements typés.

Toutes les valeurs par défaut (volume absent, flexibilité, statut) sont résolues
ici, une seule fois par enregistrement, avant toute stratégie de matching.
Un enregistrement incomplet (code postal ou date manquants) donne ``None`` :
il est écarté sans erreur.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

import pandas as pd

from groupage.records import CarrierTrip, ClientRequest, Location

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_TRUE_VALUES = frozenset({"1", "true", "vrai", "oui", "yes", "x"})


def _is_missing(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, float) and (val != val or val == float("inf")):
        return True
    if val is pd.NaT:
        return True
    return isinstance(val, str) and not val.strip()


def _remove_diacritics(s: str) -> str:
    """Retire les diacritiques (accents) d'une chaîne."""
    nfd = unicodedata.normalize("NFD", s)
    return "".join(c for c in nfd if unicodedata.category(c) != "Mn")


def norm_text(
    s: str | float | int | None,
    *,
    lower: bool = True,
    strip: bool = True,
    remove_diacritics: bool = False,
) -> str:
    """
    Normalise un texte : NFKC, espaces multiples → espace simple, lower, strip.

    Args:
        s: Valeur à normaliser (convertie en str si numérique).
        lower: Mettre en minuscules.
        strip: Supprimer espaces en début/fin.
        remove_diacritics: Supprimer les accents.

    Returns:
        Chaîne normalisée.
    """
    if _is_missing(s):
        return ""
    text = str(s).strip() if strip else str(s)
    text = unicodedata.normalize("NFKC", text)
    text = re.sub(r"\s+", " ", text)
    if strip:
        text = text.strip()
    if lower:
        text = text.lower()
    if remove_diacritics:
        text = _remove_diacritics(text)
    return text


def norm_city(s: str | float | None) -> str:
    """Nom de ville comparable : sans accents, tirets et apostrophes remplacés par des espaces."""
    text = norm_text(s, remove_diacritics=True)
    text = re.sub(r"[-'’]", " ", text)
    text = re.sub(r"\bst\b", "saint", text)
    return re.sub(r"\s+", " ", text).strip()


def norm_postal_code(s: str | float | int | None) -> str:
    """
    Normalise un code postal.

    Les tableurs convertissent souvent "01000" en nombre 1000 (voire 1000.0) :
    le zéro initial est restauré pour les codes numériques à 4 chiffres.
    """
    if _is_missing(s):
        return ""
    if isinstance(s, float) and s.is_integer():
        s = int(s)
    text = re.sub(r"\s+", "", str(s)).upper()
    if re.fullmatch(r"\d+\.0", text):
        text = text[:-2]
    if re.fullmatch(r"\d{4}", text):
        text = "0" + text
    return text


def parse_date(val: Any) -> date | None:
    """Convertit une date (ISO, JJ/MM/AAAA, datetime, Timestamp) ; None si invalide."""
    if _is_missing(val):
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    text = str(val).strip()
    ts = pd.to_datetime(text, errors="coerce", dayfirst=not _ISO_DATE.match(text))
    if pd.isna(ts):
        return None
    return ts.date()


def parse_float(val: Any) -> float | None:
    """Convertit un nombre (virgule décimale acceptée) ; None si absent ou invalide."""
    if _is_missing(val):
        return None
    if isinstance(val, (int, float)):
        return float(val)
    text = str(val).strip().replace(",", ".").replace(" ", "")
    text = re.sub(r"m3$|m³$", "", text, flags=re.IGNORECASE)
    try:
        return float(text)
    except ValueError:
        return None


def parse_bool(val: Any) -> bool:
    if _is_missing(val):
        return False
    if isinstance(val, bool):
        return val
    return norm_text(val, remove_diacritics=True) in _TRUE_VALUES


def norm_status(val: Any, default: str) -> str:
    """Statut en minuscules, espaces et tirets remplacés par '_' (ex. 'En cours' → 'en_cours')."""
    text = norm_text(val, remove_diacritics=True)
    if not text:
        return default
    return re.sub(r"[\s-]+", "_", text)


def safe_str(val: Any) -> str:
    """Convertit une valeur en chaîne pour affichage/stockage."""
    if _is_missing(val):
        return ""
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val).strip()


def _location(row: Mapping[str, Any], prefix: str) -> Location | None:
    postal_code = norm_postal_code(row.get(f"{prefix}_postal_code"))
    if not postal_code:
        return None
    return Location(postal_code=postal_code, city=safe_str(row.get(f"{prefix}_city")))


def client_from_mapping(
    row: Mapping[str, Any],
    *,
    default_volume_m3: float = 5.0,
    default_flexibility_days: int = 3,
) -> ClientRequest | None:
    """
    Construit une ClientRequest à partir d'une ligne brute (dict, ligne de DataFrame).

    Returns:
        La demande normalisée, ou None si l'enregistrement est incomplet.
    """
    client_id = safe_str(row.get("id"))
    departure = _location(row, "departure")
    arrival = _location(row, "arrival")
    desired_date = parse_date(row.get("desired_date"))
    if not client_id or departure is None or arrival is None or desired_date is None:
        return None

    volume = parse_float(row.get("estimated_volume", row.get("volume_m3")))
    volume_defaulted = volume is None
    if volume is None:
        volume = default_volume_m3
    if volume < 0:
        return None

    flexibility = parse_float(row.get("flexibility_days"))
    if flexibility is not None and flexibility >= 0:
        flexibility_days = int(flexibility)
    elif parse_bool(row.get("flexible_dates")):
        flexibility_days = default_flexibility_days
    else:
        flexibility_days = 0

    return ClientRequest(
        id=client_id,
        name=safe_str(row.get("name")),
        departure=departure,
        arrival=arrival,
        desired_date=desired_date,
        volume_m3=volume,
        flexibility_days=flexibility_days,
        status=norm_status(row.get("status"), "pending"),
        volume_defaulted=volume_defaulted,
    )


def trip_from_mapping(row: Mapping[str, Any]) -> CarrierTrip | None:
    """
    Construit un CarrierTrip à partir d'une ligne brute.

    Si max_volume est absent mais available_volume présent, max_volume = used + available.

    Returns:
        Le trajet normalisé, ou None si l'enregistrement est incomplet.
    """
    trip_id = safe_str(row.get("id"))
    departure = _location(row, "departure")
    arrival = _location(row, "arrival")
    departure_date = parse_date(row.get("departure_date"))
    if not trip_id or departure is None or arrival is None or departure_date is None:
        return None

    used = parse_float(row.get("used_volume")) or 0.0
    max_volume = parse_float(row.get("max_volume"))
    if max_volume is None:
        available = parse_float(row.get("available_volume"))
        if available is None:
            return None
        max_volume = used + available
    if max_volume < 0 or used < 0:
        return None

    return CarrierTrip(
        id=trip_id,
        company_name=safe_str(row.get("company_name")),
        departure=departure,
        arrival=arrival,
        departure_date=departure_date,
        max_volume=max_volume,
        used_volume=used,
        status=norm_status(row.get("status"), "confirmed"),
        route_type=norm_status(row.get("route_type"), ""),
    )
