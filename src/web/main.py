import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from analysis.irv import InvalidInputError, tabulate
from analysis.report import build_contest_report, convert_numpy_types
from data.database import ElectionDatabase
from data.report_store import ReportNotFoundError, ReportStore

logger = logging.getLogger(__name__)

REPORTS_DB_ENV = "RANKED_VOTE_REPORTS_DB"

app = FastAPI(
    title="Ranked Vote Reports",
    description="Instant-runoff tabulation reports",
)

# Reports database path; falls back to the environment when unset
db_path = None


class TabulationRequest(BaseModel):
    candidates: List[Any]
    ballots: List[Any]
    info: Optional[Dict[str, Any]] = None


def get_report_store() -> ReportStore:
    """
    Open the reports database read-only.
    """
    path = db_path or os.environ.get(REPORTS_DB_ENV)
    if not path:
        raise HTTPException(status_code=500, detail="Reports database not configured")
    return ReportStore(ElectionDatabase(path, read_only=True))


def set_database_path(path: str):
    """Set the reports database path for the application."""
    global db_path
    db_path = path
    os.environ[REPORTS_DB_ENV] = path
    logger.info(f"Reports database path set to: {path}")

    store = ReportStore(ElectionDatabase(path, read_only=True))
    try:
        if not store.db.table_exists("contest_reports"):
            logger.warning("Reports database has no contest_reports table yet")
    finally:
        store.db.close()


@app.on_event("startup")
async def startup_event():
    logger.info("Starting Ranked Vote Reports API")


@app.get("/api/elections")
async def get_elections():
    """Election index with contest summaries."""
    store = get_report_store()
    try:
        if not store.db.table_exists("election_index"):
            return {"elections": []}
        return store.get_index()
    finally:
        store.db.close()


@app.get("/api/reports/{contest_path:path}/rounds")
async def get_report_rounds(contest_path: str):
    """Round-by-round vote counts for a contest."""
    store = get_report_store()
    try:
        rounds = store.get_rounds(contest_path)
    except ReportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    finally:
        store.db.close()
    return convert_numpy_types(rounds.to_dict("records"))


@app.get("/api/reports/{contest_path:path}/candidates")
async def get_report_candidates(contest_path: str):
    """Candidate performance rows for a contest."""
    store = get_report_store()
    try:
        performance = store.get_candidate_performance(contest_path)
    finally:
        store.db.close()
    if performance.empty:
        raise HTTPException(
            status_code=404, detail=f"Report not found for path: {contest_path}"
        )
    # Nullable integer columns come back as floats with NaN
    records = performance.astype(object).where(performance.notna(), None)
    return convert_numpy_types(records.to_dict("records"))


@app.get("/api/reports/{contest_path:path}")
async def get_report(contest_path: str):
    """Full stored report for a contest."""
    store = get_report_store()
    try:
        return store.get_report(contest_path)
    except ReportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    finally:
        store.db.close()


@app.post("/api/tabulate")
async def tabulate_ballots(request: TabulationRequest):
    """Tabulate posted ballots without storing anything."""
    try:
        result = tabulate(request.ballots, request.candidates)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(
        f"Tabulated {result.total_ballots} posted ballots: "
        f"{result.winner} wins in {result.total_rounds} rounds"
    )
    return build_contest_report(result, request.candidates, request.info)
