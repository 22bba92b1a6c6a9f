"""Interface en ligne de commande Groupage."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

from groupage import __version__
from groupage.config import Config, GroupageError
from groupage.io_excel import list_sheets, save_xlsx
from groupage.matching.aggregator import Aggregator
from groupage.report import build_candidates_df, build_matches_csv, build_report_df, print_report_console
from groupage.store import SpreadsheetStore


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_today(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"date invalide (AAAA-MM-JJ attendu): {value}") from e


def cmd_list_sheets(filepath: str) -> int:
    """Liste les feuilles d'un fichier tableur."""
    sheets = list_sheets(filepath)
    print(f"Feuilles dans {filepath}:")
    for s in sheets:
        print(f"  - {s}")
    return 0


def cmd_run(
    config_path: str,
    output_path: str | None,
    *,
    dry_run: bool = False,
    matches_path: str | None = None,
    top: int | None = None,
    today: date | None = None,
) -> int:
    """Exécute un run de matching complet."""
    config = Config.load(config_path)
    store = SpreadsheetStore(config)

    aggregator = Aggregator(config, today=today)
    run = aggregator.run_from_store(store)

    # matches.csv (--matches-csv prime s'il est fourni)
    csv_path = (
        Path(matches_path)
        if matches_path
        else (Path(output_path).parent / "matches.csv" if output_path else Path(config_path).parent / "matches.csv")
    )
    build_matches_csv(run.candidates, str(csv_path))
    print(f"Candidats écrits: {csv_path}")

    print_report_console(run, top=config.max_candidates if top is None else top)

    if dry_run:
        print("Mode dry-run: pas d'écriture du fichier de sortie.")
        return 0

    if not output_path:
        print("Erreur: --output requis en mode non dry-run.")
        return 1

    sheets = {
        "Matches": build_candidates_df(run.candidates),
        "REPORT": build_report_df(run, config),
    }
    save_xlsx(output_path, sheets)
    print(f"Fichier de sortie: {output_path}")

    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="groupage",
        description="Matching de demandes de déménagement avec des trajets transporteurs",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commandes")

    # list-sheets
    p_list = subparsers.add_parser("list-sheets", help="Lister les feuilles d'un tableur")
    p_list.add_argument("file", help="Fichier xlsx, xls, ods ou csv")

    # run
    p_run = subparsers.add_parser("run", help="Exécuter le matching")
    p_run.add_argument("--config", "-c", required=True, help="Fichier config JSON")
    p_run.add_argument("--output", "-o", help="Fichier xlsx de sortie")
    p_run.add_argument("--matches-csv", "-m", help="Chemin pour matches.csv")
    p_run.add_argument("--top", type=int, help="Nombre de candidats affichés (défaut: max_candidates)")
    p_run.add_argument("--today", type=_parse_today, help="Date de référence du run (AAAA-MM-JJ)")
    p_run.add_argument("--dry-run", action="store_true", help="Ne pas écrire le fichier de sortie")
    p_run.add_argument("--verbose", "-v", action="store_true", help="Logs détaillés (DEBUG)")

    args = parser.parse_args(argv)

    try:
        if args.command == "list-sheets":
            return cmd_list_sheets(args.file)

        if args.command == "run":
            if not args.dry_run and not args.output:
                parser.error("--output requis sauf en --dry-run")
            _setup_logging(args.verbose)
            return cmd_run(
                args.config,
                args.output,
                dry_run=args.dry_run,
                matches_path=args.matches_csv,
                top=args.top,
                today=args.today,
            )
    except GroupageError as e:
        print(f"Erreur: {e}")
        return 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
