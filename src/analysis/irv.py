"""
Instant-runoff (single-winner RCV) tabulation engine.

The core entry point is :func:`tabulate`, a pure function over in-memory
ballots and an ordered candidate list. Each round every ballot is counted
for its first-ranked choice that is still active; if nobody reaches a
majority of the active votes, every candidate tied for last place is
eliminated at once and the count is repeated.

:class:`IRVTabulator` wraps the engine for a contest stored in the ballots
database and adds pandas summaries for reporting and the CLI.
"""

import logging
from collections.abc import Hashable, Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

# Allocation target used for ballots with no active choice left
EXHAUSTED_MARKER = "X"


class InvalidInputError(ValueError):
    """Raised when ballots or candidates are rejected before tabulation."""


@dataclass(frozen=True)
class Ballot:
    """One voter's ranking for one contest, rank 1 first."""

    choices: tuple
    id: Optional[str] = None


@dataclass(frozen=True)
class Round:
    """
    Snapshot of a single tabulation round.

    Every round gets its own tally dict, eliminated list and transfers
    dict; nothing is shared with other rounds or with the final tally.
    Treat them as read-only.
    """

    round_number: int
    tally: Dict[Hashable, int]
    exhausted: int
    eliminated: List[Hashable]
    winner: Optional[Hashable]
    threshold: int
    total_votes: int
    transfers: Dict[Hashable, Dict[Hashable, int]] = field(default_factory=dict)

    @property
    def is_final(self) -> bool:
        return self.winner is not None


@dataclass(frozen=True)
class TabulationResult:
    """Complete record of one tabulation run."""

    rounds: List[Round]
    winner: Hashable
    total_rounds: int
    total_ballots: int
    final_tally: Dict[Hashable, int]
    tied_winner: bool = False


def _validate_candidates(candidates: Any) -> List[Hashable]:
    if isinstance(candidates, (str, bytes)) or not isinstance(
        candidates, (list, tuple)
    ):
        raise InvalidInputError("candidates must be a list of identifiers")
    if not candidates:
        raise InvalidInputError("candidates must not be empty")

    seen = set()
    for candidate in candidates:
        if candidate is None or candidate == "" or isinstance(candidate, bool):
            raise InvalidInputError(f"Invalid candidate identifier: {candidate!r}")
        if not isinstance(candidate, (str, int)):
            raise InvalidInputError(
                f"Candidate identifiers must be str or int, got {type(candidate).__name__}"
            )
        if candidate in seen:
            raise InvalidInputError(f"Duplicate candidate: {candidate!r}")
        seen.add(candidate)

    return list(candidates)


def _coerce_choices(choices: Any, position: int) -> tuple:
    if isinstance(choices, (str, bytes)) or not isinstance(choices, (list, tuple)):
        raise InvalidInputError(
            f"Ballot {position}: choices must be a list, got {type(choices).__name__}"
        )
    for choice in choices:
        # isinstance(..., Hashable) passes tuples that hold lists
        try:
            hash(choice)
        except TypeError:
            raise InvalidInputError(
                f"Ballot {position}: unhashable choice {choice!r}"
            ) from None
    return tuple(choices)


def coerce_ballots(ballots: Iterable[Any]) -> List[Ballot]:
    """
    Normalize ballot input into :class:`Ballot` objects.

    Accepts ``Ballot`` instances, mappings with a ``choices`` key (and
    optional ``id``), or bare lists/tuples of choices.

    Raises:
        InvalidInputError: If any ballot has an unusable shape
    """
    if ballots is None or isinstance(ballots, (str, bytes, Mapping)):
        raise InvalidInputError("ballots must be a list")

    normalized = []
    for position, ballot in enumerate(ballots):
        if isinstance(ballot, Ballot):
            normalized.append(
                Ballot(choices=_coerce_choices(ballot.choices, position), id=ballot.id)
            )
        elif isinstance(ballot, Mapping):
            if "choices" not in ballot:
                raise InvalidInputError(f"Ballot {position}: missing 'choices'")
            ballot_id = ballot.get("id")
            normalized.append(
                Ballot(
                    choices=_coerce_choices(ballot["choices"], position),
                    id=None if ballot_id is None else str(ballot_id),
                )
            )
        else:
            normalized.append(Ballot(choices=_coerce_choices(ballot, position)))
    return normalized


def _first_active_choice(choices: Sequence[Hashable], active: set) -> Optional[Hashable]:
    for choice in choices:
        if choice in active:
            return choice
    return None


def tabulate(
    ballots: Iterable[Any],
    candidates: Sequence[Hashable],
    on_round: Optional[Callable[[Round], None]] = None,
) -> TabulationResult:
    """
    Run an instant-runoff tabulation.

    Args:
        ballots: Ranked ballots (see :func:`coerce_ballots` for accepted shapes)
        candidates: Unique candidate identifiers in declaration order
        on_round: Optional callback invoked with each completed Round

    Returns:
        TabulationResult with every round up to and including the deciding one

    Raises:
        InvalidInputError: If the candidate list is empty or the input is malformed
    """
    declared = _validate_candidates(candidates)
    normalized = coerce_ballots(ballots)
    total_ballots = len(normalized)

    active = set(declared)
    rounds: List[Round] = []
    round_number = 1

    while True:
        # Declaration order keeps tally output and tie labels reproducible
        ordered_active = [c for c in declared if c in active]
        tally = {candidate: 0 for candidate in ordered_active}
        exhausted = 0
        allocated_to: List[Optional[Hashable]] = []

        for ballot in normalized:
            choice = _first_active_choice(ballot.choices, active)
            allocated_to.append(choice)
            if choice is None:
                exhausted += 1
            else:
                tally[choice] += 1

        total_votes = sum(tally.values())
        threshold = total_votes // 2 + 1
        max_votes = max(tally.values())
        min_votes = min(tally.values())
        leader = next(c for c in ordered_active if tally[c] == max_votes)

        concluded = max_votes >= threshold or len(active) <= 1
        to_eliminate = [c for c in ordered_active if tally[c] == min_votes]
        tied_winner = not concluded and len(to_eliminate) == len(ordered_active)

        if concluded or tied_winner:
            final_round = Round(
                round_number=round_number,
                tally=tally,
                exhausted=exhausted,
                eliminated=[],
                winner=leader,
                threshold=threshold,
                total_votes=total_votes,
            )
            rounds.append(final_round)
            if on_round is not None:
                on_round(final_round)
            return TabulationResult(
                rounds=rounds,
                winner=leader,
                total_rounds=round_number,
                total_ballots=total_ballots,
                final_tally=dict(tally),
                tied_winner=tied_winner,
            )

        for candidate in to_eliminate:
            active.discard(candidate)

        transfers = _compute_transfers(normalized, allocated_to, to_eliminate, active)

        round_record = Round(
            round_number=round_number,
            tally=tally,
            exhausted=exhausted,
            eliminated=to_eliminate,
            winner=None,
            threshold=threshold,
            total_votes=total_votes,
            transfers=transfers,
        )
        rounds.append(round_record)
        if on_round is not None:
            on_round(round_record)

        round_number += 1


def _compute_transfers(
    ballots: List[Ballot],
    allocated_to: List[Optional[Hashable]],
    eliminated: List[Hashable],
    remaining: set,
) -> Dict[Hashable, Dict[Hashable, int]]:
    """
    Where the ballots of this round's eliminated candidates land next.

    Exhausted ballots are keyed by None, which can never be a candidate.
    """
    transfers: Dict[Hashable, Dict[Hashable, int]] = {c: {} for c in eliminated}
    eliminated_set = set(eliminated)

    for ballot, holder in zip(ballots, allocated_to):
        if holder not in eliminated_set:
            continue
        target = _first_active_choice(ballot.choices, remaining)
        flows = transfers[holder]
        flows[target] = flows.get(target, 0) + 1

    return transfers


class IRVTabulator:
    """
    Instant-runoff tabulation for a contest held in the ballots database.
    """

    def __init__(self, store, contest_id: int):
        """
        Args:
            store: BallotStore over the normalized ballots database
            contest_id: Contest to tabulate
        """
        self.store = store
        self.contest_id = contest_id
        self.candidates: List[str] = []
        self.ballots: List[Ballot] = []
        self.result: Optional[TabulationResult] = None

    @property
    def rounds(self) -> List[Round]:
        return self.result.rounds if self.result else []

    @property
    def winner(self) -> Optional[str]:
        return self.result.winner if self.result else None

    def _log_round(self, round_record: Round):
        logger.info(
            f"Round {round_record.round_number}: {round_record.total_votes} active votes, "
            f"{round_record.exhausted} exhausted, threshold {round_record.threshold}"
        )
        counts = ", ".join(f"{c}: {v}" for c, v in round_record.tally.items())
        logger.debug(f"  Vote counts: {counts}")
        for candidate in round_record.eliminated:
            logger.info(
                f"  Eliminated: {candidate} ({round_record.tally[candidate]} votes)"
            )
        if round_record.winner is not None:
            logger.info(
                f"  Winner: {round_record.winner} with "
                f"{round_record.tally[round_record.winner]} votes"
            )

    def run_tabulation(self) -> List[Round]:
        """
        Load the contest and run the instant-runoff count.

        Returns:
            List of Round objects, last one carrying the winner
        """
        self.ballots, self.candidates = self.store.get_contest_input(self.contest_id)
        logger.info(
            f"Starting tabulation of contest {self.contest_id} with "
            f"{len(self.ballots)} ballots and {len(self.candidates)} candidates"
        )

        self.result = tabulate(self.ballots, self.candidates, on_round=self._log_round)

        if self.result.tied_winner:
            logger.warning(
                f"Contest {self.contest_id} ended in a full tie; "
                f"reporting {self.result.winner} by declaration order"
            )
        logger.info(f"Tabulation complete: {self.result.total_rounds} rounds")
        return self.result.rounds

    def get_round_summary(self) -> pd.DataFrame:
        """
        Get one row per candidate per round.

        Returns:
            DataFrame with round, candidate, votes, percentage, status, exhausted
        """
        if not self.rounds:
            return pd.DataFrame()

        summary_data = []
        for round_obj in self.rounds:
            for candidate, votes in round_obj.tally.items():
                summary_data.append(
                    {
                        "round": round_obj.round_number,
                        "candidate": candidate,
                        "votes": votes,
                        "percentage": (
                            round(100.0 * votes / round_obj.total_votes, 2)
                            if round_obj.total_votes
                            else 0.0
                        ),
                        "status": self._get_candidate_status(candidate, round_obj),
                        "exhausted": round_obj.exhausted,
                    }
                )

        return pd.DataFrame(summary_data)

    def _get_candidate_status(self, candidate: str, round_obj: Round) -> str:
        if candidate == round_obj.winner:
            return "elected"
        elif candidate in round_obj.eliminated:
            return "eliminated"
        else:
            return "continuing"

    def get_final_results(self) -> pd.DataFrame:
        """
        Get final standing of every declared candidate.

        Returns:
            DataFrame sorted by final votes, with the round each candidate left the count
        """
        if not self.rounds:
            return pd.DataFrame()

        final_round = self.rounds[-1]
        results_data = []
        for candidate in self.candidates:
            results_data.append(
                {
                    "candidate": candidate,
                    "first_round_votes": self.rounds[0].tally.get(candidate, 0),
                    "final_votes": final_round.tally.get(candidate, 0),
                    "status": "elected" if candidate == self.winner else "defeated",
                    "elimination_round": next(
                        (
                            r.round_number
                            for r in self.rounds
                            if candidate in r.eliminated
                        ),
                        None,
                    ),
                }
            )

        return pd.DataFrame(results_data).sort_values(
            "final_votes", ascending=False, kind="stable"
        )
