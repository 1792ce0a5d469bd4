import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from analysis.irv import Ballot, coerce_ballots
from data.database import ElectionDatabase
from data.schema import BALLOTS_SCHEMA

logger = logging.getLogger(__name__)

UNDERVOTE_MARKER = "$UNDERVOTE"
OVERVOTE_MARKER = "$OVERVOTE"

_MARKER_TYPES = {UNDERVOTE_MARKER: "undervote", OVERVOTE_MARKER: "overvote"}
_TYPE_MARKERS = {v: k for k, v in _MARKER_TYPES.items()}


class ContestNotFoundError(LookupError):
    """Raised when a contest id or path is not in the ballots database."""


class BallotStore:
    """
    Reads and writes normalized ballot data.

    The store is the boundary between ingestion and tabulation: whatever
    format a jurisdiction exports, it ends up here as contests, candidates
    in declaration order, and ranked ballot choices.
    """

    def __init__(self, db: ElectionDatabase):
        self.db = db

    def initialize(self):
        """Create ballot tables if they do not exist."""
        self.db.execute_script(BALLOTS_SCHEMA)

    def _next_id(self, table: str) -> int:
        row = self.db.execute(f"SELECT COALESCE(MAX(id), 0) + 1 FROM {table}").fetchone()
        return int(row[0])

    def add_jurisdiction(self, path: str, name: str, kind: str = "city") -> int:
        existing = self.db.execute(
            "SELECT id FROM jurisdictions WHERE path = ?", [path]
        ).fetchone()
        if existing:
            return int(existing[0])

        jurisdiction_id = self._next_id("jurisdictions")
        self.db.execute(
            "INSERT INTO jurisdictions (id, path, name, kind) VALUES (?, ?, ?, ?)",
            [jurisdiction_id, path, name, kind],
        )
        return jurisdiction_id

    def add_election(
        self,
        jurisdiction_id: int,
        path: str,
        name: str,
        date: str,
        data_format: str = "normalized",
    ) -> int:
        existing = self.db.execute(
            "SELECT id FROM elections WHERE jurisdiction_id = ? AND path = ?",
            [jurisdiction_id, path],
        ).fetchone()
        if existing:
            return int(existing[0])

        election_id = self._next_id("elections")
        self.db.execute(
            """
            INSERT INTO elections (id, jurisdiction_id, path, name, date, data_format)
            VALUES (?, ?, ?, ?, CAST(? AS DATE), ?)
            """,
            [election_id, jurisdiction_id, path, name, date, data_format],
        )
        return election_id

    def add_contest(
        self,
        election_id: int,
        office_id: str,
        office_name: str,
        jurisdiction_name: Optional[str] = None,
        jurisdiction_code: Optional[str] = None,
    ) -> int:
        contest_id = self._next_id("contests")
        self.db.execute(
            """
            INSERT INTO contests
                (id, election_id, office_id, office_name, jurisdiction_name, jurisdiction_code)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                contest_id,
                election_id,
                office_id,
                office_name,
                jurisdiction_name,
                jurisdiction_code,
            ],
        )
        return contest_id

    def add_candidates(
        self,
        contest_id: int,
        names: Sequence[str],
        candidate_type: str = "regular",
    ) -> Dict[str, int]:
        """
        Declare candidates for a contest, in order.

        Returns:
            Mapping of candidate name to candidate id
        """
        start = self._next_id("candidates")
        rows = [
            (start + offset, contest_id, None, name, candidate_type)
            for offset, name in enumerate(names)
        ]
        self.db.executemany(
            """
            INSERT INTO candidates (id, contest_id, external_id, name, candidate_type)
            VALUES (?, ?, ?, ?, ?)
            """,
            rows,
        )
        return {name: candidate_id for candidate_id, _, _, name, _ in rows}

    def add_ballots(self, contest_id: int, ballots: Iterable[Any]) -> Dict[str, int]:
        """
        Store ranked ballots for a contest.

        Choices naming a declared candidate are stored as candidate ranks;
        undervote/overvote markers keep their rank position; anything else
        is dropped with a warning.

        Returns:
            Loading statistics
        """
        candidate_ids = dict(
            self.db.execute(
                "SELECT name, id FROM candidates WHERE contest_id = ?", [contest_id]
            ).fetchall()
        )

        ballot_rows = []
        choice_rows = []
        unknown_choices = 0
        next_ballot_id = self._next_id("ballots")

        for offset, ballot in enumerate(coerce_ballots(ballots)):
            row_id = next_ballot_id + offset
            external_id = ballot.id if ballot.id is not None else f"ballot-{row_id}"
            ballot_rows.append((row_id, contest_id, external_id, None))

            for rank_position, choice in enumerate(ballot.choices, 1):
                if choice in _MARKER_TYPES:
                    choice_rows.append((row_id, rank_position, _MARKER_TYPES[choice], None))
                elif choice in candidate_ids:
                    choice_rows.append(
                        (row_id, rank_position, "candidate", candidate_ids[choice])
                    )
                else:
                    unknown_choices += 1

        with self.db.transaction():
            self.db.executemany(
                "INSERT INTO ballots (id, contest_id, ballot_id, precinct_id) VALUES (?, ?, ?, ?)",
                ballot_rows,
            )
            self.db.executemany(
                """
                INSERT INTO ballot_choices (ballot_id, rank_position, choice_type, candidate_id)
                VALUES (?, ?, ?, ?)
                """,
                choice_rows,
            )

        if unknown_choices:
            logger.warning(
                f"Dropped {unknown_choices} choices naming undeclared candidates "
                f"in contest {contest_id}"
            )
        logger.info(f"Stored {len(ballot_rows)} ballots for contest {contest_id}")

        return {
            "ballots": len(ballot_rows),
            "choices": len(choice_rows),
            "unknown_choices": unknown_choices,
        }

    def get_contests(self) -> pd.DataFrame:
        """List every contest with its election and jurisdiction paths."""
        return self.db.query(
            """
            SELECT
                c.id AS contest_id,
                c.office_id,
                c.office_name,
                c.jurisdiction_name,
                e.path AS election_path,
                e.name AS election_name,
                CAST(e.date AS TEXT) AS date,
                e.data_format,
                j.path AS jurisdiction_path,
                j.name AS jurisdiction_name_full,
                j.path || '/' || e.path || '/' || c.office_id AS contest_path
            FROM contests c
            JOIN elections e ON c.election_id = e.id
            JOIN jurisdictions j ON e.jurisdiction_id = j.id
            ORDER BY c.id
            """
        )

    def get_contest(self, contest_id: int) -> Dict[str, Any]:
        contests = self.get_contests()
        match = contests[contests["contest_id"] == contest_id]
        if match.empty:
            raise ContestNotFoundError(f"Contest not found: {contest_id}")
        return match.iloc[0].to_dict()

    def find_contest(self, contest_path: str) -> int:
        """Resolve "<jurisdiction>/<election>/<office>" to a contest id."""
        contests = self.get_contests()
        match = contests[contests["contest_path"] == contest_path.strip("/")]
        if match.empty:
            raise ContestNotFoundError(f"Contest not found: {contest_path}")
        return int(match.iloc[0]["contest_id"])

    def get_candidates(self, contest_id: int) -> pd.DataFrame:
        """Candidates for a contest in declaration order."""
        return self.db.query(
            """
            SELECT id AS candidate_id, name, candidate_type
            FROM candidates
            WHERE contest_id = ?
            ORDER BY id
            """,
            [contest_id],
        )

    def get_contest_input(self, contest_id: int) -> Tuple[List[Ballot], List[str]]:
        """
        Build tabulation input for one contest.

        Returns:
            (ballots, candidate names in declaration order)
        """
        candidates = self.get_candidates(contest_id)
        if candidates.empty:
            self.get_contest(contest_id)  # raises if the contest is missing
        candidate_names = candidates["name"].tolist()

        choices = self.db.query(
            """
            SELECT
                b.id AS row_id,
                b.ballot_id,
                bc.rank_position,
                bc.choice_type,
                c.name AS candidate_name
            FROM ballots b
            LEFT JOIN ballot_choices bc ON bc.ballot_id = b.id
            LEFT JOIN candidates c ON bc.candidate_id = c.id
            WHERE b.contest_id = ?
            ORDER BY b.id, bc.rank_position
            """,
            [contest_id],
        )

        ballots = []
        for (_, ballot_id), group in choices.groupby(["row_id", "ballot_id"], sort=True):
            ranked = []
            for row in group.itertuples(index=False):
                if pd.isna(row.choice_type):
                    continue  # ballot with no marked ranks
                if row.choice_type == "candidate":
                    ranked.append(row.candidate_name)
                else:
                    ranked.append(_TYPE_MARKERS.get(row.choice_type, row.choice_type))
            ballots.append(Ballot(choices=tuple(ranked), id=str(ballot_id)))

        logger.info(
            f"Loaded {len(ballots)} ballots and {len(candidate_names)} candidates "
            f"for contest {contest_id}"
        )
        return ballots, candidate_names

    def get_write_ins(self, contest_id: int) -> List[str]:
        candidates = self.get_candidates(contest_id)
        return candidates[candidates["candidate_type"] == "write_in"]["name"].tolist()
