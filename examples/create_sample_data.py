"""Crée des fichiers Excel et une config de démonstration pour Groupage."""

import json
from pathlib import Path

import pandas as pd

DATA_DIR = Path(__file__).parent / "data"
DATA_DIR.mkdir(exist_ok=True)

clients = pd.DataFrame({
    "id": ["C1", "C2", "C3", "C4", "C5"],
    "nom": ["Dupont", "Martin", "Bernard", "Leroy", "Moreau"],
    "code_postal_depart": ["75001", "75011", "69001", "75015", "13001"],
    "ville_depart": ["Paris", "Paris", "Lyon", "Paris", "Marseille"],
    "code_postal_arrivee": ["69001", "69003", "75001", "69007", "6000"],
    "ville_arrivee": ["Lyon", "Lyon", "Paris", "Lyon", "Nice"],
    "date_souhaitee": ["15/09/2030", "17/09/2030", "16/09/2030", "20/09/2030", "15/09/2030"],
    "volume_estime": ["10", "8,5", "12", "", "20"],
    "dates_flexibles": ["oui", "non", "oui", "oui", "non"],
    "statut": ["pending", "confirmed", "pending", "quoted", "pending"],
})

trips = pd.DataFrame({
    "id": ["T1", "T2", "T3"],
    "transporteur": ["Transports Rhône", "Déménageurs du Sud", "Express Nord"],
    "code_postal_depart": ["75001", "13001", "59000"],
    "ville_depart": ["Paris", "Marseille", "Lille"],
    "code_postal_arrivee": ["69001", "6000", "75001"],
    "ville_arrivee": ["Lyon", "Nice", "Paris"],
    "date_depart": ["15/09/2030", "18/09/2030", "14/09/2030"],
    "volume_max": ["40", "30", "35"],
    "volume_utilise": ["15", "5", "0"],
    "statut": ["Confirmed", "En cours", "Confirmed"],
    "type_trajet": ["", "multi_stop", ""],
})

with pd.ExcelWriter(DATA_DIR / "groupage.xlsx", engine="openpyxl") as writer:
    clients.to_excel(writer, sheet_name="Clients", index=False)
    trips.to_excel(writer, sheet_name="Trajets", index=False)

config = {
    "single_file": "data/groupage.xlsx",
    "clients_sheet": "Clients",
    "trips_sheet": "Trajets",
    "provider": {"type": "none"},
    "max_candidates": 10,
}
(Path(__file__).parent / "config.json").write_text(json.dumps(config, indent=2), encoding="utf-8")
print(f"Fichiers créés dans {DATA_DIR}")
