"""Tests du rapport et de l'export des candidats."""

from datetime import timedelta
from pathlib import Path

import pandas as pd
import pytest
from conftest import D, RUN_DATE, make_client, make_trip

from groupage import __version__
from groupage.config import Config
from groupage.matching.aggregator import Aggregator, MatchRun
from groupage.providers import NullDistanceProvider
from groupage.report import (
    CANDIDATE_COLUMNS,
    build_candidates_df,
    build_matches_csv,
    build_report_df,
    print_report_console,
)


@pytest.fixture
def run(config: Config) -> MatchRun:
    clients = [
        make_client("A", "75001", "69001"),
        make_client("B", "69001", "75001", desired=D + timedelta(days=1)),
    ]
    trips = [make_trip("T")]
    return Aggregator(config, provider=NullDistanceProvider(), today=RUN_DATE).run(clients, trips)


def _report_dict(df: pd.DataFrame) -> dict:
    return dict(zip(df["Key"], df["Value"]))


def test_build_report_df(run: MatchRun, config: Config) -> None:
    df = build_report_df(run, config)
    assert list(df.columns) == ["Key", "Value"]
    values = _report_dict(df)
    assert values["nb_clients_input"] == 2
    assert values["nb_trips_used"] == 1
    assert values["nb_direct"] == 1
    assert values["nb_return_trip"] == 1
    assert values["nb_candidates"] == len(run.candidates)
    assert values["run_date"] == RUN_DATE.isoformat()
    assert values["version"] == __version__
    assert values["provider"] == "none"
    assert values["strategy_direct"].startswith("on r=50km d=7j")


def test_build_report_df_lists_warnings(run: MatchRun, config: Config) -> None:
    values = _report_dict(build_report_df(run, config))
    assert run.summary.warnings
    assert values["warning_0"] == run.summary.warnings[0]


def test_build_candidates_df(run: MatchRun) -> None:
    df = build_candidates_df(run.candidates)
    assert list(df.columns) == CANDIDATE_COLUMNS
    assert len(df) == len(run.candidates)
    direct = df[df["reference"] == "C2M-DIR-A-T"].iloc[0]
    assert direct["trip_id"] == "T"
    assert direct["client_ids"] == "A"
    assert direct["departure"] == "Paris (75001)"


def test_build_candidates_df_client_to_client(run: MatchRun) -> None:
    df = build_candidates_df(run.candidates)
    c2c = df[df["match_type"] == "client_to_client"].iloc[0]
    assert c2c["trip_id"] == ""
    assert c2c["client_ids"] == "A, B"


def test_build_candidates_df_empty() -> None:
    df = build_candidates_df([])
    assert df.empty
    assert list(df.columns) == CANDIDATE_COLUMNS


def test_build_matches_csv(run: MatchRun, tmp_path: Path) -> None:
    path = tmp_path / "matches.csv"
    build_matches_csv(run.candidates, str(path))
    df = pd.read_csv(path)
    assert list(df["reference"]) == [c.reference for c in run.candidates]


def test_print_report_console(run: MatchRun, capsys: pytest.CaptureFixture[str]) -> None:
    print_report_console(run, top=2)
    out = capsys.readouterr().out
    assert "=== Groupage Report ===" in out
    assert "Clients:          2/2" in out
    assert run.candidates[0].reference in out
