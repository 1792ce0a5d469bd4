"""
Report projection for instant-runoff results.

Derives presentation aggregates (candidate performance, flow-diagram
allocations, transfer lists) from a TabulationResult without re-counting
ballots, and assembles the JSON report persisted for each contest.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Optional, Sequence

import numpy as np

from analysis.irv import EXHAUSTED_MARKER, Round, TabulationResult

logger = logging.getLogger(__name__)


def convert_numpy_types(obj: Any) -> Any:
    """Convert numpy types to native Python types for JSON serialization."""
    if isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {convert_numpy_types(k): convert_numpy_types(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy_types(item) for item in obj]
    else:
        return obj


@dataclass(frozen=True)
class CandidatePerformance:
    """How one candidate fared across the tabulation."""

    candidate: Hashable
    first_round_votes: int
    transfer_votes: int
    elimination_round: Optional[int]
    winner: bool

    @property
    def total_votes(self) -> int:
        return self.first_round_votes + self.transfer_votes


def project(
    result: TabulationResult, candidates: Sequence[Hashable]
) -> List[CandidatePerformance]:
    """
    Derive per-candidate performance from a tabulation result.

    Transfer votes are the gain between the first and final round, clamped
    at zero; a candidate eliminated before the final round is absent from
    the final tally and therefore gains nothing.

    Args:
        result: Output of tabulate()
        candidates: Candidate identifiers in declaration order

    Returns:
        Performances sorted by first-round plus transfer votes, descending
    """
    first_round = result.rounds[0]
    final_round = result.rounds[-1]

    performances = []
    for candidate in candidates:
        first_round_votes = first_round.tally.get(candidate, 0)
        final_votes = final_round.tally.get(candidate, 0)
        elimination_round = next(
            (
                index
                for index, round_obj in enumerate(result.rounds, 1)
                if candidate in round_obj.eliminated
            ),
            None,
        )
        performances.append(
            CandidatePerformance(
                candidate=candidate,
                first_round_votes=first_round_votes,
                transfer_votes=max(0, final_votes - first_round_votes),
                elimination_round=elimination_round,
                winner=candidate == result.winner,
            )
        )

    # sorted() is stable, so equal totals keep declaration order
    return sorted(performances, key=lambda p: p.total_votes, reverse=True)


def round_allocations(round_obj: Round) -> List[Dict[str, Any]]:
    """Flow-diagram allocations for one round, exhausted ballots last."""
    allocations = [
        {"allocatee": candidate, "votes": votes}
        for candidate, votes in round_obj.tally.items()
    ]
    if round_obj.exhausted > 0:
        allocations.append({"allocatee": EXHAUSTED_MARKER, "votes": round_obj.exhausted})
    return allocations


def round_transfers(round_obj: Round) -> List[Dict[str, Any]]:
    """
    Flatten a round's transfers into from/to/count records.

    Exhausted ballots are reported with ``to`` set to the exhausted marker
    and ``exhausted`` set, so a candidate named like the marker stays
    distinguishable.
    """
    return [
        {
            "from": source,
            "to": EXHAUSTED_MARKER if target is None else target,
            "count": count,
            "exhausted": target is None,
        }
        for source, flows in round_obj.transfers.items()
        for target, count in flows.items()
    ]


def candidate_votes_payload(
    performances: List[CandidatePerformance],
) -> List[Dict[str, Any]]:
    """Legacy JSON shape expected by the vote-count chart."""
    return [
        {
            "candidate": p.candidate,
            "name": p.candidate,
            "firstRoundVotes": p.first_round_votes,
            "transferVotes": p.transfer_votes,
            "votes": p.first_round_votes,
            "roundEliminated": p.elimination_round,
            "winner": p.winner,
        }
        for p in performances
    ]


def build_contest_report(
    result: TabulationResult,
    candidates: Sequence[Hashable],
    info: Optional[Dict[str, Any]] = None,
    write_ins: Sequence[Hashable] = (),
) -> Dict[str, Any]:
    """
    Assemble the persisted report for one contest.

    Args:
        result: Output of tabulate()
        candidates: Candidate identifiers in declaration order
        info: Contest metadata (office, election, jurisdiction, ...)
        write_ins: Candidates to flag as write-ins

    Returns:
        JSON-serializable report dictionary
    """
    performances = project(result, candidates)
    candidate_votes = candidate_votes_payload(performances)
    write_in_set = set(write_ins)

    report = {
        "info": dict(info or {}),
        "ballotCount": result.total_ballots,
        "numCandidates": len(candidates),
        "winner": result.winner,
        "candidates": {
            candidate: {"name": candidate, "writeIn": candidate in write_in_set}
            for candidate in candidates
        },
        "candidateVotes": candidate_votes,
        "totalVotes": candidate_votes,
        "rounds": [
            {
                "round": round_obj.round_number,
                "tally": dict(round_obj.tally),
                "eliminated": list(round_obj.eliminated),
                "exhausted": round_obj.exhausted,
                "allocations": round_allocations(round_obj),
                "transfers": round_transfers(round_obj),
                "winner": round_obj.winner,
            }
            for round_obj in result.rounds
        ],
        "totalRounds": result.total_rounds,
        "totalBallots": result.total_ballots,
        "finalTally": dict(result.final_tally),
        "summary": {
            "winner": result.winner,
            "totalRounds": result.total_rounds,
            "totalBallots": result.total_ballots,
        },
    }

    if result.tied_winner:
        logger.warning(
            f"Report winner {result.winner} was chosen by declaration order from a full tie"
        )

    return convert_numpy_types(report)
