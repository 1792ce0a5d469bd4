"""
Shared pytest configuration and fixtures for ranked-vote-reports.

This module provides common test fixtures and utilities used across
all test modules.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from analysis.irv import tabulate  # noqa: E402
from analysis.report import build_contest_report  # noqa: E402
from data.ballot_store import BallotStore  # noqa: E402
from data.database import ElectionDatabase  # noqa: E402
from data.report_store import ReportStore  # noqa: E402

CONTEST_PATH = "us/ca/alameda/2024/11/mayor"


@pytest.fixture
def temp_db():
    """Provide a temporary in-memory database for testing."""
    db = ElectionDatabase(":memory:", read_only=False)
    yield db
    db.close()


@pytest.fixture
def temp_db_file():
    """Provide a temporary database file path for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    os.unlink(db_path)  # Remove the empty file, let DuckDB create it

    try:
        yield db_path
    finally:
        for path in (db_path, db_path + ".wal"):
            if os.path.exists(path):
                os.unlink(path)


@pytest.fixture
def sample_candidates():
    """Candidates in declaration order."""
    return ["Alice", "Bob", "Charlie"]


@pytest.fixture
def sample_ballots():
    """
    Alice leads without a majority; Charlie is eliminated and the lone
    Charlie ballot exhausts, leaving Alice with a majority in round 2.
    """
    return (
        [{"id": f"A{i}", "choices": ["Alice", "Bob"]} for i in range(3)]
        + [{"id": f"B{i}", "choices": ["Bob", "Alice"]} for i in range(2)]
        + [{"id": "C0", "choices": ["Charlie"]}]
    )


@pytest.fixture
def ballot_store(temp_db):
    """Initialized ballot store over an in-memory database."""
    store = BallotStore(temp_db)
    store.initialize()
    return store


@pytest.fixture
def loaded_contest(ballot_store, sample_candidates, sample_ballots):
    """Ballot store holding one contest; yields (store, contest_id)."""
    jurisdiction_id = ballot_store.add_jurisdiction(
        "us/ca/alameda", "Alameda County", "county"
    )
    election_id = ballot_store.add_election(
        jurisdiction_id, "2024/11", "General Election", "2024-11-05"
    )
    contest_id = ballot_store.add_contest(election_id, "mayor", "Mayor")
    ballot_store.add_candidates(contest_id, sample_candidates)
    ballot_store.add_ballots(contest_id, sample_ballots)
    return ballot_store, contest_id


@pytest.fixture
def sample_contest_metadata():
    """Contest metadata as returned by BallotStore.get_contest()."""
    return {
        "contest_id": 1,
        "office_id": "mayor",
        "office_name": "Mayor",
        "election_path": "2024/11",
        "election_name": "General Election",
        "date": "2024-11-05",
        "jurisdiction_path": "us/ca/alameda",
        "jurisdiction_name_full": "Alameda County",
        "contest_path": CONTEST_PATH,
    }


@pytest.fixture
def reports_db_file(temp_db_file, sample_ballots, sample_candidates, sample_contest_metadata):
    """Reports database file holding one saved contest; writer closed."""
    result = tabulate(sample_ballots, sample_candidates)
    report = build_contest_report(
        result, sample_candidates, {"office": "mayor", "name": "Mayor"}
    )

    with ElectionDatabase(temp_db_file, read_only=False) as db:
        store = ReportStore(db)
        store.initialize()
        store.save_contest_report(sample_contest_metadata, report)

    return temp_db_file


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (medium speed, database required)",
    )
    config.addinivalue_line(
        "markers",
        "golden: marks tests as golden dataset validation (hand-computed results)",
    )
    config.addinivalue_line(
        "markers", "invariant: marks tests as tabulation invariant validation"
    )
    config.addinivalue_line(
        "markers", "smoke: marks tests as smoke tests (basic functionality check)"
    )
    config.addinivalue_line(
        "markers", "critical: marks tests whose failure means wrong election results"
    )
