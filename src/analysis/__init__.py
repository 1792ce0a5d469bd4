"""
Analysis module for ranked-choice voting tabulation.

- tabulate / IRVTabulator: instant-runoff count with simultaneous
  elimination of every last-place candidate
- project / build_contest_report: candidate performance and report JSON
- check_invariants / PyRankVoteCrossCheck: result verification
"""

from .irv import (
    EXHAUSTED_MARKER,
    Ballot,
    InvalidInputError,
    IRVTabulator,
    Round,
    TabulationResult,
    tabulate,
)
from .report import CandidatePerformance, build_contest_report, project
from .verification import PyRankVoteCrossCheck, check_invariants

__all__ = [
    "EXHAUSTED_MARKER",
    "Ballot",
    "InvalidInputError",
    "IRVTabulator",
    "Round",
    "TabulationResult",
    "tabulate",
    "CandidatePerformance",
    "build_contest_report",
    "project",
    "PyRankVoteCrossCheck",
    "check_invariants",
]
