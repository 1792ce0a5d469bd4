import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from analysis.irv import Ballot, InvalidInputError, coerce_ballots
from data.ballot_store import OVERVOTE_MARKER, UNDERVOTE_MARKER

logger = logging.getLogger(__name__)

RANK_COLUMN_PATTERN = re.compile(r"^(?:choice|rank)[ _]?(\d+)$", re.IGNORECASE)

_MARKER_VALUES = {
    "undervote": UNDERVOTE_MARKER,
    "overvote": OVERVOTE_MARKER,
}


class NormalizedBallotParser:
    """
    Reads normalized contest files into tabulation input.

    Supported inputs:
    - JSON: {"candidates": [...], "ballots": [{"id": ..., "choices": [...]}], "info": {...}}
      or {"contests": [<contest>, ...]} for several contests in one file
    - CSV: one row per ballot with a BallotID column and rank columns
      named "Choice 1", "Choice 2", ... (or "Rank 1", ...)
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def parse(self, candidates: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """
        Parse the file.

        Args:
            candidates: Declared candidates for CSV input; derived from the
                ballots in order of first appearance when omitted

        Returns:
            List of contests, each with "info", "candidates" and "ballots"
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Ballot file not found: {self.path}")

        logger.info(f"Parsing ballots from: {self.path}")
        suffix = self.path.suffix.lower()
        if suffix == ".json":
            contests = self._parse_json()
        elif suffix == ".csv":
            contests = [self._parse_csv(candidates)]
        else:
            raise InvalidInputError(f"Unsupported ballot file type: {suffix}")

        for contest in contests:
            logger.info(
                f"Parsed {len(contest['ballots'])} ballots and "
                f"{len(contest['candidates'])} candidates"
            )
        return contests

    def _parse_json(self) -> List[Dict[str, Any]]:
        with open(self.path, "r") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise InvalidInputError(f"Invalid JSON in {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise InvalidInputError("Ballot file must contain a JSON object")

        raw_contests = data["contests"] if "contests" in data else [data]
        contests = []
        for position, raw in enumerate(raw_contests):
            if not isinstance(raw, dict) or "candidates" not in raw or "ballots" not in raw:
                raise InvalidInputError(
                    f"Contest {position} needs 'candidates' and 'ballots'"
                )
            contests.append(
                {
                    "info": dict(raw.get("info") or {}),
                    "candidates": list(raw["candidates"]),
                    "write_ins": list(raw.get("write_ins") or []),
                    "ballots": coerce_ballots(raw["ballots"]),
                }
            )
        return contests

    def _parse_csv(self, candidates: Optional[Sequence[str]]) -> Dict[str, Any]:
        df = pd.read_csv(self.path, dtype=str, keep_default_na=False)

        rank_columns = []
        for column in df.columns:
            match = RANK_COLUMN_PATTERN.match(column.strip())
            if match:
                rank_columns.append((int(match.group(1)), column))
        if not rank_columns:
            raise InvalidInputError(f"No rank columns found in {self.path}")
        rank_columns = [column for _, column in sorted(rank_columns)]

        id_column = next(
            (c for c in df.columns if c.strip().lower() in ("ballotid", "ballot_id", "id")),
            None,
        )

        ballots = []
        seen = []
        for position, record in enumerate(df.to_dict("records")):
            choices = []
            for column in rank_columns:
                value = str(record.get(column, "")).strip()
                if not value:
                    continue
                marker = _MARKER_VALUES.get(value.lower())
                if marker:
                    choices.append(marker)
                else:
                    choices.append(value)
                    if value not in seen:
                        seen.append(value)
            ballot_id = record.get(id_column) if id_column else None
            ballots.append(
                Ballot(
                    choices=tuple(choices),
                    id=str(ballot_id) if ballot_id else f"ballot-{position + 1}",
                )
            )

        return {
            "info": {},
            "candidates": list(candidates) if candidates else seen,
            "write_ins": [],
            "ballots": ballots,
        }
