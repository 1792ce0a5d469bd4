import json
import logging
from typing import Any, Dict, List

import pandas as pd

from data.database import ElectionDatabase
from data.schema import REPORTS_SCHEMA

logger = logging.getLogger(__name__)


class ReportNotFoundError(LookupError):
    """Raised when no report is stored for a contest path."""


class ReportStore:
    """
    Persists contest reports and the summary tables used by the web API.

    Saving a contest replaces everything previously stored for its path, so
    re-running tabulation is always safe.
    """

    def __init__(self, db: ElectionDatabase):
        self.db = db

    def initialize(self):
        """Create report tables if they do not exist."""
        self.db.execute_script(REPORTS_SCHEMA)

    def save_contest_report(self, contest: Dict[str, Any], report: Dict[str, Any]):
        """
        Store one contest's report and its derived rows.

        Args:
            contest: Contest metadata with contest_path, jurisdiction_path,
                election_path, office_id, office_name, election_name,
                jurisdiction_name_full and date
            report: Output of build_contest_report()
        """
        contest_path = contest["contest_path"]
        election_key = f"{contest['jurisdiction_path']}/{contest['election_path']}"
        winner = None if report["winner"] is None else str(report["winner"])

        round_rows = self._round_rows(contest_path, report)
        performance_rows = self._performance_rows(contest_path, report)

        with self.db.transaction():
            self.db.execute("DELETE FROM election_index WHERE path = ?", [election_key])
            self.db.execute(
                """
                INSERT INTO election_index (path, jurisdiction_name, election_name, date)
                VALUES (?, ?, ?, ?)
                """,
                [
                    election_key,
                    contest.get("jurisdiction_name_full") or contest["jurisdiction_path"],
                    contest.get("election_name") or contest["election_path"],
                    str(contest.get("date") or ""),
                ],
            )

            for table, column in (
                ("contest_summaries", "contest_path"),
                ("contest_reports", "path"),
                ("contest_rounds", "contest_path"),
                ("candidate_performance", "contest_path"),
            ):
                self.db.execute(f"DELETE FROM {table} WHERE {column} = ?", [contest_path])

            self.db.execute(
                """
                INSERT INTO contest_summaries
                    (contest_path, election_path, office, office_name, name, winner,
                     num_candidates, num_rounds, ballot_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    contest_path,
                    election_key,
                    contest["office_id"],
                    contest["office_name"],
                    contest["office_name"],
                    winner,
                    report["numCandidates"],
                    report["totalRounds"],
                    report["ballotCount"],
                ],
            )

            self.db.execute(
                """
                INSERT INTO contest_reports
                    (path, election_path, office, report_json, ballot_count, winner)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    contest_path,
                    election_key,
                    contest["office_id"],
                    json.dumps(report),
                    report["ballotCount"],
                    winner,
                ],
            )

            self.db.executemany(
                """
                INSERT INTO contest_rounds
                    (contest_path, round_number, candidate_name, votes, percentage, eliminated)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                round_rows,
            )
            self.db.executemany(
                """
                INSERT INTO candidate_performance
                    (contest_path, candidate_name, first_choice_votes, final_votes,
                     elimination_round, vote_transfers_in, vote_transfers_out, is_winner)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                performance_rows,
            )

        logger.info(f"Saved report for {contest_path} (winner: {winner})")

    @staticmethod
    def _round_rows(contest_path: str, report: Dict[str, Any]) -> List[tuple]:
        rows = []
        for round_data in report["rounds"]:
            total = sum(round_data["tally"].values())
            for candidate, votes in round_data["tally"].items():
                rows.append(
                    (
                        contest_path,
                        round_data["round"],
                        str(candidate),
                        votes,
                        round(100.0 * votes / total, 2) if total else 0.0,
                        candidate in round_data["eliminated"],
                    )
                )
        return rows

    @staticmethod
    def _performance_rows(contest_path: str, report: Dict[str, Any]) -> List[tuple]:
        transfers_out: Dict[str, int] = {}
        last_votes: Dict[str, int] = {}
        for round_data in report["rounds"]:
            for candidate, votes in round_data["tally"].items():
                last_votes[str(candidate)] = votes
            for transfer in round_data["transfers"]:
                if transfer["exhausted"]:
                    continue
                source = str(transfer["from"])
                transfers_out[source] = transfers_out.get(source, 0) + transfer["count"]

        rows = []
        for entry in report["candidateVotes"]:
            name = str(entry["candidate"])
            rows.append(
                (
                    contest_path,
                    name,
                    entry["firstRoundVotes"],
                    last_votes.get(name, 0),
                    entry["roundEliminated"],
                    entry["transferVotes"],
                    transfers_out.get(name, 0),
                    entry["winner"],
                )
            )
        return rows

    def get_index(self) -> Dict[str, Any]:
        """Election index with nested contest summaries, newest first."""
        elections = self.db.query_with_retry(
            """
            SELECT path, jurisdiction_name, election_name, date
            FROM election_index
            ORDER BY date DESC, path
            """
        )
        contests = self.db.query_with_retry(
            """
            SELECT contest_path, election_path, office, office_name, name, winner,
                   num_candidates, num_rounds, ballot_count
            FROM contest_summaries
            ORDER BY office_name
            """
        )

        result = {"elections": []}
        for election in elections.to_dict("records"):
            election_contests = contests[contests["election_path"] == election["path"]]
            result["elections"].append(
                {
                    "path": election["path"],
                    "jurisdictionName": election["jurisdiction_name"],
                    "electionName": election["election_name"],
                    "date": election["date"],
                    "contests": [
                        {
                            "path": contest["contest_path"],
                            "office": contest["office"],
                            "officeName": contest["office_name"],
                            "name": contest["name"],
                            "winner": contest["winner"],
                            "numCandidates": int(contest["num_candidates"]),
                            "numRounds": int(contest["num_rounds"]),
                            "ballotCount": int(contest["ballot_count"]),
                        }
                        for contest in election_contests.to_dict("records")
                    ],
                }
            )
        return result

    def get_report(self, contest_path: str) -> Dict[str, Any]:
        reports = self.db.query_with_retry(
            "SELECT report_json FROM contest_reports WHERE path = ?",
            [contest_path.strip("/")],
        )
        if reports.empty:
            raise ReportNotFoundError(f"Report not found for path: {contest_path}")
        return json.loads(reports.iloc[0]["report_json"])

    def get_rounds(self, contest_path: str) -> pd.DataFrame:
        rounds = self.db.query_with_retry(
            """
            SELECT round_number, candidate_name, votes, percentage, eliminated
            FROM contest_rounds
            WHERE contest_path = ?
            ORDER BY round_number, votes DESC, candidate_name
            """,
            [contest_path.strip("/")],
        )
        if rounds.empty:
            raise ReportNotFoundError(f"Report not found for path: {contest_path}")
        return rounds

    def get_candidate_performance(self, contest_path: str) -> pd.DataFrame:
        return self.db.query_with_retry(
            """
            SELECT candidate_name, first_choice_votes, final_votes, elimination_round,
                   vote_transfers_in, vote_transfers_out, is_winner
            FROM candidate_performance
            WHERE contest_path = ?
            ORDER BY first_choice_votes + vote_transfers_in DESC
            """,
            [contest_path.strip("/")],
        )
