#!/usr/bin/env python3
"""
Run instant-runoff tabulation for stored contests and write their reports.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from analysis.batch import tabulate_contests  # noqa: E402
from analysis.irv import IRVTabulator  # noqa: E402
from data.ballot_store import BallotStore  # noqa: E402
from data.database import ElectionDatabase  # noqa: E402
from data.report_store import ReportStore  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def print_rounds(tabulator: IRVTabulator):
    """Print a round-by-round table for one contest."""
    round_summary = tabulator.get_round_summary()

    for round_num in sorted(round_summary["round"].unique()):
        round_data = round_summary[round_summary["round"] == round_num]
        print(f"\nRound {round_num}:")

        for _, row in round_data.sort_values("votes", ascending=False).iterrows():
            status_symbol = {
                "elected": "🏆",
                "eliminated": "❌",
                "continuing": "  ",
            }.get(row["status"], "  ")
            print(
                f"  {status_symbol} {str(row['candidate']):25s}: {row['votes']:8d} votes ({row['percentage']:5.1f}%)"
            )

        if round_data.iloc[0]["exhausted"] > 0:
            print(f"     {'Exhausted':25s}: {round_data.iloc[0]['exhausted']:8d} ballots")


def main():
    parser = argparse.ArgumentParser(description="Tabulate RCV contests")
    parser.add_argument("--db", required=True, help="Path to ballots DuckDB file")
    parser.add_argument(
        "--reports-db", required=True, help="Path to reports DuckDB file to write"
    )
    parser.add_argument(
        "--contest", help='Only this contest path, e.g. "us/ny/nyc/2025/07/mayor"'
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker processes for multi-contest runs (default: CPU count, max 8)",
    )
    parser.add_argument(
        "--show-rounds", action="store_true", help="Print round-by-round tables"
    )
    parser.add_argument("--export", help="Export round summary of --contest to CSV")

    args = parser.parse_args()

    if not Path(args.db).exists():
        logger.error("Ballots database not found. Run load_ballots.py first.")
        sys.exit(1)

    try:
        with ElectionDatabase(args.db) as db:
            ballot_store = BallotStore(db)
            if not db.table_exists("contests"):
                logger.error("Required table 'contests' not found. Run load_ballots.py first.")
                sys.exit(1)

            contests = ballot_store.get_contests()
            if args.contest:
                contests = contests[contests["contest_path"] == args.contest.strip("/")]
                if contests.empty:
                    logger.error(f"Contest not found: {args.contest}")
                    sys.exit(1)

            contest_rows = contests.to_dict("records")
            inputs = []
            for contest in contest_rows:
                ballots, candidates = ballot_store.get_contest_input(contest["contest_id"])
                info = {
                    "name": contest["office_name"],
                    "date": contest["date"],
                    "dataFormat": contest["data_format"],
                    "jurisdictionPath": contest["jurisdiction_path"],
                    "electionPath": contest["election_path"],
                    "office": contest["office_id"],
                    "officeName": contest["office_name"],
                    "jurisdictionName": contest["jurisdiction_name"],
                    "electionName": contest["election_name"],
                }
                inputs.append((contest["contest_path"], ballots, candidates, info))

            if args.show_rounds or args.export:
                for contest in contest_rows:
                    print(f"\n=== {contest['contest_path']} ===")
                    tabulator = IRVTabulator(ballot_store, int(contest["contest_id"]))
                    tabulator.run_tabulation()
                    print_rounds(tabulator)
                    if args.export and args.contest:
                        export_path = Path(args.export).with_suffix(".csv")
                        tabulator.get_round_summary().to_csv(export_path, index=False)
                        print(f"\n✓ Round summary exported to: {export_path}")

        logger.info(f"=== Tabulating {len(inputs)} contests ===")
        results = tabulate_contests(inputs, workers=args.workers)

        failures = 0
        with ElectionDatabase(args.reports_db, read_only=False) as reports_db:
            report_store = ReportStore(reports_db)
            report_store.initialize()

            for contest, outcome in zip(contest_rows, results):
                if outcome["status"] != "success":
                    failures += 1
                    print(f"❌ {contest['contest_path']}: {outcome['error']}")
                    continue
                report = outcome["report"]
                report_store.save_contest_report(contest, report)
                print(
                    f"🏆 {contest['contest_path']}: {report['winner']} "
                    f"({report['totalRounds']} rounds, {report['totalBallots']} ballots)"
                )

        if failures:
            print(f"\n⚠️  {failures} contest(s) could not be tabulated")
            sys.exit(1)
        print("\n✓ Tabulation completed successfully")

    except Exception as e:
        logger.error(f"Error running tabulation: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
