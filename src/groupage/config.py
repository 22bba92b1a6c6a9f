"""Configuration et chargement du fichier config JSON."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DIRECT = "direct"
RETURN_TRIP = "return_trip"
LOOP = "loop"
GROUPED_OUTBOUND = "grouped_outbound"
CLIENT_TO_CLIENT = "client_to_client"

MATCH_TYPES = (DIRECT, RETURN_TRIP, LOOP, GROUPED_OUTBOUND, CLIENT_TO_CLIENT)
VALID_PROVIDERS = frozenset({"none", "google"})

# Seuils canoniques par type de match : (rayon km, écart de dates max en jours)
DEFAULT_THRESHOLDS: dict[str, tuple[float, int]] = {
    DIRECT: (50.0, 7),
    RETURN_TRIP: (100.0, 7),
    LOOP: (75.0, 5),
    GROUPED_OUTBOUND: (100.0, 15),
    CLIENT_TO_CLIENT: (50.0, 7),
}

DEFAULT_BONUSES: dict[str, float] = {
    LOOP: 20.0,
    RETURN_TRIP: 15.0,
    GROUPED_OUTBOUND: 12.0,
    DIRECT: 10.0,
    CLIENT_TO_CLIENT: 5.0,
}

DEFAULT_CLIENT_STATUSES = ("pending", "confirmed", "quoted")
DEFAULT_TRIP_STATUSES = ("confirmed", "en_cours")


class GroupageError(Exception):
    """Exception de base pour Groupage."""


class ConfigError(GroupageError, ValueError):
    """Erreur de validation de la configuration."""


class ConfigFileError(GroupageError):
    """Erreur de chargement du fichier de configuration (fichier absent, JSON invalide)."""


@dataclass
class StrategyRule:
    """Seuils d'admissibilité pour un type de match."""

    match_type: str
    radius_km: float
    max_date_diff_days: int
    enabled: bool = True

    @classmethod
    def default(cls, match_type: str) -> StrategyRule:
        radius, days = DEFAULT_THRESHOLDS[match_type]
        return cls(match_type=match_type, radius_km=radius, max_date_diff_days=days)

    @classmethod
    def from_dict(cls, match_type: str, d: dict[str, Any]) -> StrategyRule:
        if match_type not in MATCH_TYPES:
            raise ConfigError(f"type de match invalide: {match_type!r}. Valides: {list(MATCH_TYPES)}")
        radius, days = DEFAULT_THRESHOLDS[match_type]
        radius_km = float(d.get("radius_km", radius))
        max_date_diff_days = int(d.get("max_date_diff_days", days))

        if radius_km < 0:
            raise ConfigError(f"radius_km doit être >= 0 (got {radius_km}) pour {match_type}")
        if max_date_diff_days < 0:
            raise ConfigError(f"max_date_diff_days doit être >= 0 (got {max_date_diff_days}) pour {match_type}")

        return cls(
            match_type=match_type,
            radius_km=radius_km,
            max_date_diff_days=max_date_diff_days,
            enabled=bool(d.get("enabled", True)),
        )


def default_rules() -> dict[str, StrategyRule]:
    return {t: StrategyRule.default(t) for t in MATCH_TYPES}


@dataclass
class ScoringWeights:
    """Poids du score : pénalités distance/date, bonus volume et bonus par scénario."""

    base: float = 100.0
    distance_weight: float = 0.5
    date_weight: float = 2.0
    volume_weight: float = 20.0
    bonuses: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_BONUSES))

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ScoringWeights:
        bonuses = dict(DEFAULT_BONUSES)
        for match_type, value in d.get("bonuses", {}).items():
            if match_type not in MATCH_TYPES:
                raise ConfigError(f"bonus pour type de match inconnu: {match_type!r}")
            bonuses[match_type] = float(value)

        weights = cls(
            base=float(d.get("base", 100.0)),
            distance_weight=float(d.get("distance_weight", 0.5)),
            date_weight=float(d.get("date_weight", 2.0)),
            volume_weight=float(d.get("volume_weight", 20.0)),
            bonuses=bonuses,
        )
        weights.validate()
        return weights

    def validate(self) -> None:
        for name in ("distance_weight", "date_weight", "volume_weight"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigError(f"{name} doit être >= 0 (got {value})")
        b = self.bonuses
        if not b[LOOP] > b[RETURN_TRIP] > b[GROUPED_OUTBOUND] > b[DIRECT]:
            raise ConfigError("bonus incohérents: loop > return_trip > grouped_outbound > direct attendu")


@dataclass
class ProviderConfig:
    """Fournisseur de distances routières."""

    type: str = "none"  # none, google
    api_key_env: str = "GOOGLE_MAPS_API_KEY"
    timeout: float = 10.0
    country: str = "France"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ProviderConfig:
        provider_type = d.get("type", "none")
        timeout = float(d.get("timeout", 10.0))
        if provider_type not in VALID_PROVIDERS:
            raise ConfigError(f"provider invalide: {provider_type!r}. Valides: {sorted(VALID_PROVIDERS)}")
        if timeout <= 0:
            raise ConfigError(f"timeout doit être > 0 (got {timeout})")
        return cls(
            type=provider_type,
            api_key_env=d.get("api_key_env", "GOOGLE_MAPS_API_KEY"),
            timeout=timeout,
            country=d.get("country", "France"),
        )

    def api_key(self) -> str | None:
        return os.environ.get(self.api_key_env) or None


@dataclass
class Config:
    """Configuration principale de Groupage."""

    clients_file: str = ""
    trips_file: str = ""
    clients_sheet: str | None = None  # None = première feuille
    trips_sheet: str | None = None
    # Si un seul fichier avec deux feuilles
    single_file: str | None = None

    rules: dict[str, StrategyRule] = field(default_factory=default_rules)
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    provider: ProviderConfig = field(default_factory=ProviderConfig)

    default_volume_m3: float = 5.0
    default_flexibility_days: int = 3
    standard_vehicle_capacity_m3: float = 40.0
    min_group_size: int = 2
    max_candidates: int = 20
    workers: int | None = None  # None = nombre de coeurs
    provider_batch_size: int = 25
    client_statuses: tuple[str, ...] = DEFAULT_CLIENT_STATUSES
    trip_statuses: tuple[str, ...] = DEFAULT_TRIP_STATUSES

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Config:
        rules = default_rules()
        for match_type, rule_dict in d.get("strategies", {}).items():
            rules[match_type] = StrategyRule.from_dict(match_type, rule_dict)

        single_file = d.get("single_file")
        clients_file = d.get("clients_file", "")
        trips_file = d.get("trips_file", "")
        default_volume_m3 = float(d.get("default_volume_m3", 5.0))
        default_flexibility_days = int(d.get("default_flexibility_days", 3))
        capacity = float(d.get("standard_vehicle_capacity_m3", 40.0))
        min_group_size = int(d.get("min_group_size", 2))
        max_candidates = int(d.get("max_candidates", 20))
        workers = d.get("workers")
        batch_size = int(d.get("provider_batch_size", 25))

        if single_file:
            if not d.get("clients_sheet") or not d.get("trips_sheet"):
                raise ConfigError("single_file requis: clients_sheet et trips_sheet")
        else:
            if not clients_file or not trips_file:
                raise ConfigError("clients_file et trips_file requis (ou single_file avec feuilles)")

        if default_volume_m3 < 0:
            raise ConfigError(f"default_volume_m3 doit être >= 0 (got {default_volume_m3})")
        if default_flexibility_days < 0:
            raise ConfigError(f"default_flexibility_days doit être >= 0 (got {default_flexibility_days})")
        if capacity <= 0:
            raise ConfigError(f"standard_vehicle_capacity_m3 doit être > 0 (got {capacity})")
        if min_group_size < 1:
            raise ConfigError(f"min_group_size doit être >= 1 (got {min_group_size})")
        if max_candidates < 1:
            raise ConfigError(f"max_candidates doit être >= 1 (got {max_candidates})")
        if workers is not None:
            workers = int(workers)
            if workers < 1:
                raise ConfigError(f"workers doit être >= 1 (got {workers})")
        if not 1 <= batch_size <= 25:
            raise ConfigError(f"provider_batch_size doit être entre 1 et 25 (got {batch_size})")

        return cls(
            clients_file=clients_file,
            trips_file=trips_file,
            clients_sheet=d.get("clients_sheet"),
            trips_sheet=d.get("trips_sheet"),
            single_file=single_file,
            rules=rules,
            scoring=ScoringWeights.from_dict(d.get("scoring", {})),
            provider=ProviderConfig.from_dict(d.get("provider", {})),
            default_volume_m3=default_volume_m3,
            default_flexibility_days=default_flexibility_days,
            standard_vehicle_capacity_m3=capacity,
            min_group_size=min_group_size,
            max_candidates=max_candidates,
            workers=workers,
            provider_batch_size=batch_size,
            client_statuses=tuple(d.get("client_statuses", DEFAULT_CLIENT_STATUSES)),
            trip_statuses=tuple(d.get("trip_statuses", DEFAULT_TRIP_STATUSES)),
        )

    @classmethod
    def load(cls, path: str | Path) -> Config:
        """
        Charge la configuration depuis un fichier JSON.

        Raises:
            ConfigFileError: Si le fichier est absent ou le JSON invalide.
            ConfigError: Si la configuration est invalide.
        """
        path = Path(path).resolve()
        if not path.exists():
            raise ConfigFileError(f"Fichier de configuration introuvable: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                d = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigFileError(f"JSON invalide dans {path}: {e}") from e
        except OSError as e:
            raise ConfigFileError(f"Impossible de lire {path}: {e}") from e

        if not isinstance(d, dict):
            raise ConfigFileError(f"Fichier de configuration invalide: {path} doit contenir un objet JSON")

        config = cls.from_dict(d)
        config.resolve_paths(path.parent)
        return config

    def resolve_paths(self, base_dir: Path) -> None:
        """
        Résout les chemins relatifs par rapport au répertoire de base (ex. dossier du fichier config).

        Modifie clients_file, trips_file et single_file en place.
        """
        base = Path(base_dir)
        if self.clients_file and not Path(self.clients_file).is_absolute():
            self.clients_file = str((base / self.clients_file).resolve())
        if self.trips_file and not Path(self.trips_file).is_absolute():
            self.trips_file = str((base / self.trips_file).resolve())
        if self.single_file and not Path(self.single_file).is_absolute():
            self.single_file = str((base / self.single_file).resolve())

    def rule(self, match_type: str) -> StrategyRule:
        return self.rules[match_type]
