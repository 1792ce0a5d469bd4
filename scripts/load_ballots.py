#!/usr/bin/env python3
"""
Load normalized ballot files into the ballots database.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.ballot_store import BallotStore  # noqa: E402
from data.cvr_parser import NormalizedBallotParser  # noqa: E402
from data.database import ElectionDatabase  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Load normalized ballots")
    parser.add_argument("ballot_file", help="Path to JSON or CSV ballot file")
    parser.add_argument("--db", required=True, help="Path to ballots DuckDB file")
    parser.add_argument(
        "--jurisdiction", required=True, help='Jurisdiction path, e.g. "us/ny/nyc"'
    )
    parser.add_argument("--jurisdiction-name", help="Jurisdiction display name")
    parser.add_argument("--election", required=True, help='Election path, e.g. "2025/07"')
    parser.add_argument("--election-name", default="Election", help="Election name")
    parser.add_argument("--date", required=True, help="Election date (YYYY-MM-DD)")
    parser.add_argument(
        "--office", help="Office id for CSV input (JSON contests carry their own)"
    )
    parser.add_argument("--office-name", help="Office display name for CSV input")
    parser.add_argument(
        "--candidates",
        help="Comma-separated candidates in declaration order (CSV input)",
    )

    args = parser.parse_args()

    ballot_path = Path(args.ballot_file)
    if not ballot_path.exists():
        logger.error(f"Ballot file not found: {ballot_path}")
        sys.exit(1)

    try:
        declared = (
            [c.strip() for c in args.candidates.split(",") if c.strip()]
            if args.candidates
            else None
        )
        contests = NormalizedBallotParser(str(ballot_path)).parse(declared)

        with ElectionDatabase(args.db, read_only=False) as db:
            store = BallotStore(db)
            store.initialize()

            jurisdiction_id = store.add_jurisdiction(
                args.jurisdiction, args.jurisdiction_name or args.jurisdiction
            )
            election_id = store.add_election(
                jurisdiction_id, args.election, args.election_name, args.date
            )

            for position, contest in enumerate(contests, 1):
                info = contest["info"]
                office_id = info.get("office") or args.office or f"contest-{position}"
                office_name = info.get("officeName") or args.office_name or office_id

                logger.info(f"=== Loading contest: {office_name} ===")
                contest_id = store.add_contest(
                    election_id,
                    office_id,
                    office_name,
                    jurisdiction_name=info.get("jurisdictionName"),
                )

                # One at a time so write-ins keep their declared position
                for candidate in contest["candidates"]:
                    store.add_candidates(
                        contest_id,
                        [candidate],
                        candidate_type=(
                            "write_in" if candidate in contest["write_ins"] else "regular"
                        ),
                    )

                stats = store.add_ballots(contest_id, contest["ballots"])
                print(
                    f"✓ {office_name}: {stats['ballots']} ballots, "
                    f"{len(contest['candidates'])} candidates"
                )
                if stats["unknown_choices"]:
                    print(
                        f"⚠️  Warning: {stats['unknown_choices']} choices named undeclared candidates"
                    )

        print("✓ Ballot loading completed successfully")

    except Exception as e:
        logger.error(f"Error loading ballots: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
