"""
Test basic imports and module structure.

These tests ensure all core modules can be imported without errors
and basic functionality is available.
"""

import pytest


@pytest.mark.unit
@pytest.mark.smoke
def test_database_import():
    """Test that database module imports successfully."""
    from data.database import ElectionDatabase

    assert ElectionDatabase is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_store_imports():
    """Test that ballot and report stores import successfully."""
    from data.ballot_store import BallotStore
    from data.report_store import ReportStore

    assert BallotStore is not None
    assert ReportStore is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_parser_import():
    """Test that ballot file parser imports successfully."""
    from data.cvr_parser import NormalizedBallotParser

    assert NormalizedBallotParser is not None


@pytest.mark.unit
@pytest.mark.smoke
def test_tabulation_import():
    """Test that the tabulation engine imports successfully."""
    from analysis.irv import IRVTabulator, tabulate

    assert IRVTabulator is not None
    assert callable(tabulate)


@pytest.mark.unit
@pytest.mark.smoke
def test_package_exports():
    """Test the analysis package re-exports its public names."""
    import analysis

    for name in analysis.__all__:
        assert hasattr(analysis, name), f"analysis.{name} missing"


@pytest.mark.unit
@pytest.mark.smoke
def test_verification_import():
    """Test that verification module imports successfully."""
    from analysis.verification import PyRankVoteCrossCheck, check_invariants

    assert PyRankVoteCrossCheck is not None
    assert callable(check_invariants)


@pytest.mark.unit
@pytest.mark.smoke
def test_web_import():
    """Test that web application imports successfully."""
    from web.main import app

    assert app is not None
