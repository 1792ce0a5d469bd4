#!/usr/bin/env python3
"""
Verify a contest's tabulation with invariant checks and an independent
PyRankVote count.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from analysis.irv import IRVTabulator  # noqa: E402
from analysis.verification import (  # noqa: E402
    PyRankVoteCrossCheck,
    check_invariants,
    generate_verification_report,
)
from data.ballot_store import BallotStore  # noqa: E402
from data.database import ElectionDatabase  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Verify RCV tabulation results")
    parser.add_argument("--db", required=True, help="Path to ballots DuckDB file")
    parser.add_argument(
        "--contest", required=True, help='Contest path, e.g. "us/ny/nyc/2025/07/mayor"'
    )
    parser.add_argument("--export", help="Export verification report to file")

    args = parser.parse_args()

    if not Path(args.db).exists():
        logger.error("Ballots database not found. Run load_ballots.py first.")
        sys.exit(1)

    try:
        with ElectionDatabase(args.db) as db:
            store = BallotStore(db)
            contest_id = store.find_contest(args.contest)

            logger.info("=== Running Tabulation ===")
            tabulator = IRVTabulator(store, contest_id)
            tabulator.run_tabulation()

            logger.info("=== Checking Invariants ===")
            violations = check_invariants(tabulator.result, tabulator.candidates)

            logger.info("=== Cross-checking with PyRankVote ===")
            cross_check = PyRankVoteCrossCheck(tabulator.ballots, tabulator.candidates)
            verification_results = cross_check.compare(tabulator.result)

        report = generate_verification_report(verification_results, violations)
        print(report)

        if args.export:
            export_path = Path(args.export)
            with open(export_path, "w") as f:
                f.write(report)
            print(f"\n✓ Verification report exported to: {export_path}")

        if violations or verification_results["winners_match"] is False:
            print("\n⚠️  Verification FAILED - see report above for details")
            sys.exit(1)
        print("\n🎉 Verification PASSED!")

    except Exception as e:
        logger.error(f"Error during verification: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
