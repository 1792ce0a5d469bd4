import logging
from typing import Any, Dict, Hashable, Iterable, List, Sequence

import pyrankvote
from pyrankvote import Ballot as PyRankVoteBallot
from pyrankvote import Candidate

from analysis.irv import TabulationResult, coerce_ballots
from analysis.report import project

logger = logging.getLogger(__name__)


def check_invariants(
    result: TabulationResult, candidates: Sequence[Hashable]
) -> List[str]:
    """
    Check a tabulation result for internal consistency.

    Args:
        result: Output of tabulate()
        candidates: Candidate identifiers in declaration order

    Returns:
        List of violation messages (empty when the result is consistent)
    """
    violations = []
    rounds = result.rounds

    if not rounds:
        return ["Result has no rounds"]

    if result.total_rounds != len(rounds):
        violations.append(
            f"total_rounds={result.total_rounds} but {len(rounds)} rounds recorded"
        )
    if len(rounds) > len(candidates):
        violations.append(
            f"{len(rounds)} rounds exceeds candidate count {len(candidates)}"
        )

    previous_active = None
    for index, round_obj in enumerate(rounds, 1):
        label = f"Round {round_obj.round_number}"

        if round_obj.round_number != index:
            violations.append(f"{label}: expected round number {index}")

        counted = sum(round_obj.tally.values())
        if counted + round_obj.exhausted != result.total_ballots:
            violations.append(
                f"{label}: {counted} counted + {round_obj.exhausted} exhausted "
                f"!= {result.total_ballots} ballots"
            )

        active = set(round_obj.tally)
        if previous_active is not None and not active < previous_active:
            violations.append(f"{label}: active set did not shrink")
        previous_active = active

        threshold = counted // 2 + 1
        has_majority = counted > 0 and max(round_obj.tally.values()) >= threshold
        is_last = index == len(rounds)

        if is_last:
            if round_obj.winner != result.winner:
                violations.append(f"{label}: final round winner differs from result")
            if round_obj.eliminated:
                violations.append(f"{label}: final round eliminated candidates")
            if not (has_majority or len(active) <= 1 or result.tied_winner):
                violations.append(f"{label}: concluded without a majority")
        else:
            if has_majority:
                violations.append(f"{label}: majority reached but count continued")
            if round_obj.winner is not None:
                violations.append(f"{label}: non-final round declares a winner")
            minimum = min(round_obj.tally.values())
            at_minimum = {c for c, v in round_obj.tally.items() if v == minimum}
            if set(round_obj.eliminated) != at_minimum:
                violations.append(
                    f"{label}: eliminated {sorted(map(str, round_obj.eliminated))} "
                    f"but last place was {sorted(map(str, at_minimum))}"
                )

    final_round = rounds[-1]
    for performance in project(result, candidates):
        if performance.transfer_votes < 0:
            violations.append(f"{performance.candidate}: negative transfer votes")
        if performance.candidate in final_round.tally:
            final_votes = final_round.tally[performance.candidate]
            if performance.total_votes != final_votes:
                violations.append(
                    f"{performance.candidate}: first round + transfers "
                    f"{performance.total_votes} != final votes {final_votes}"
                )

    return violations


class PyRankVoteCrossCheck:
    """
    Independently re-runs a contest with the PyRankVote library and
    compares the winner with ours.

    PyRankVote eliminates one candidate per round, so the comparison is only
    meaningful when our count never eliminated several candidates at once.
    """

    def __init__(self, ballots: Iterable[Any], candidates: Sequence[Hashable]):
        """
        Args:
            ballots: Ranked ballots in any shape accepted by tabulate()
            candidates: Candidate identifiers in declaration order
        """
        self.ballots = coerce_ballots(ballots)
        self.candidates = list(candidates)
        self.candidates_map: Dict[Hashable, Candidate] = {}
        self.ballots_data: List[PyRankVoteBallot] = []

    def _prepare_pyrankvote_data(self):
        """Convert ballots to PyRankVote format."""
        self.candidates_map = {
            candidate: Candidate(str(candidate)) for candidate in self.candidates
        }

        self.ballots_data = []
        for ballot in self.ballots:
            ranked_candidates = []
            seen_candidates = set()  # PyRankVote rejects repeated rankings

            for choice in ballot.choices:
                if choice in self.candidates_map and choice not in seen_candidates:
                    ranked_candidates.append(self.candidates_map[choice])
                    seen_candidates.add(choice)

            if ranked_candidates:
                self.ballots_data.append(
                    PyRankVoteBallot(ranked_candidates=ranked_candidates)
                )

        logger.info(
            f"Prepared {len(self.candidates_map)} candidates and "
            f"{len(self.ballots_data)} ballots for PyRankVote"
        )

    def compare(self, result: TabulationResult) -> Dict[str, Any]:
        """
        Compare our result with PyRankVote's instant-runoff winner.

        Returns:
            Verification report dictionary
        """
        batch_rounds = [
            r.round_number for r in result.rounds if len(r.eliminated) > 1
        ]
        comparable = not batch_rounds and not result.tied_winner

        report = {
            "our_winner": result.winner,
            "pyrankvote_winner": None,
            "comparable": comparable,
            "batch_elimination_rounds": batch_rounds,
            "tied_winner": result.tied_winner,
            "winners_match": None,
            "verification_passed": None,
        }

        if not comparable:
            logger.warning(
                "Skipping PyRankVote comparison: count used simultaneous "
                "eliminations or ended in a full tie"
            )
            return report

        self._prepare_pyrankvote_data()
        if not self.ballots_data:
            logger.warning("No ballots rank any candidate; nothing to compare")
            report["comparable"] = False
            return report

        election_result = pyrankvote.instant_runoff_voting(
            list(self.candidates_map.values()), self.ballots_data
        )
        names = {str(candidate): candidate for candidate in self.candidates}
        winners = [names[w.name] for w in election_result.get_winners()]
        pyrankvote_winner = winners[0] if winners else None

        report["pyrankvote_winner"] = pyrankvote_winner
        report["winners_match"] = pyrankvote_winner == result.winner
        report["verification_passed"] = report["winners_match"]
        report["pyrankvote_details"] = str(election_result)

        if report["winners_match"]:
            logger.info(f"PyRankVote agrees on winner {result.winner}")
        else:
            logger.error(
                f"Winner mismatch: ours={result.winner}, pyrankvote={pyrankvote_winner}"
            )
        return report


def generate_verification_report(
    verification_results: Dict[str, Any], violations: Sequence[str] = ()
) -> str:
    """
    Generate a human-readable verification report.

    Args:
        verification_results: Output of PyRankVoteCrossCheck.compare()
        violations: Output of check_invariants()

    Returns:
        Formatted report string
    """
    report = []
    report.append("=" * 60)
    report.append("TABULATION VERIFICATION REPORT")
    report.append("=" * 60)

    if violations:
        report.append("❌ INVARIANT CHECKS FAILED")
        for violation in violations:
            report.append(f"  - {violation}")
    else:
        report.append("✅ All invariant checks passed")

    report.append("")
    report.append("INDEPENDENT WINNER CHECK (PyRankVote):")
    if not verification_results["comparable"]:
        report.append("⚠️  Not comparable")
        if verification_results["batch_elimination_rounds"]:
            rounds = ", ".join(
                str(r) for r in verification_results["batch_elimination_rounds"]
            )
            report.append(f"  Simultaneous eliminations in round(s): {rounds}")
        if verification_results["tied_winner"]:
            report.append("  Winner chosen from a full tie by declaration order")
    elif verification_results["winners_match"]:
        report.append("✅ Winners match")
    else:
        report.append("❌ Winners do not match")

    report.append(f"Our winner: {verification_results['our_winner']}")
    if verification_results["pyrankvote_winner"] is not None:
        report.append(
            f"PyRankVote winner: {verification_results['pyrankvote_winner']}"
        )

    return "\n".join(report)
