"""
Parallel tabulation of independent contests.

Each contest owns its own active set and result, so contests can be
counted in separate worker processes without any coordination.
"""

import logging
from multiprocessing import Pool, cpu_count
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

from analysis.irv import InvalidInputError, tabulate
from analysis.report import build_contest_report

logger = logging.getLogger(__name__)

ContestInput = Tuple[Hashable, Sequence[Any], Sequence[Hashable], Dict[str, Any]]


def _tabulate_contest(contest: ContestInput) -> Dict[str, Any]:
    key, ballots, candidates, info = contest
    try:
        result = tabulate(ballots, candidates)
    except InvalidInputError as e:
        return {"key": key, "status": "invalid", "error": str(e), "report": None}

    return {
        "key": key,
        "status": "success",
        "error": None,
        "report": build_contest_report(result, candidates, info),
    }


def tabulate_contests(
    contests: List[ContestInput], workers: Optional[int] = None
) -> List[Dict[str, Any]]:
    """
    Tabulate many contests, optionally across worker processes.

    Args:
        contests: (key, ballots, candidates, info) tuples
        workers: Number of processes; 1 runs inline, None picks from CPU count

    Returns:
        One status dictionary per contest, in input order
    """
    if not contests:
        return []

    if workers is None:
        workers = min(len(contests), cpu_count(), 8)

    if workers <= 1 or len(contests) == 1:
        results = [_tabulate_contest(contest) for contest in contests]
    else:
        logger.info(f"Tabulating {len(contests)} contests with {workers} workers")
        with Pool(workers) as pool:
            results = pool.map(_tabulate_contest, contests)

    for result in results:
        if result["status"] != "success":
            logger.error(f"Contest {result['key']} rejected: {result['error']}")

    return results
