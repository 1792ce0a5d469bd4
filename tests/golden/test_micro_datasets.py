"""
Golden dataset validation tests.

These tests run the instant-runoff count against hand-computed micro
datasets to ensure algorithmic correctness on known scenarios.
"""

import json
from pathlib import Path

import pytest

from analysis.irv import IRVTabulator, tabulate
from analysis.verification import check_invariants
from data.ballot_store import BallotStore
from data.database import ElectionDatabase

DATASETS = [
    "clear_winner",
    "comeback",
    "batch_elimination",
    "exhausted_ballots",
    "full_tie",
]


def load_golden_dataset(name):
    """Load a golden dataset from JSON file."""
    golden_dir = Path(__file__).parent / "micro"
    with open(golden_dir / f"{name}.json") as f:
        return json.load(f)


def dataset_ballots(dataset):
    return [{"id": b["id"], "choices": b["ranks"]} for b in dataset["ballots"]]


def setup_golden_database(dataset, db_path):
    """Store a golden dataset as a contest; returns the contest id."""
    with ElectionDatabase(db_path, read_only=False) as db:
        store = BallotStore(db)
        store.initialize()
        jurisdiction_id = store.add_jurisdiction("us/golden", "Golden City")
        election_id = store.add_election(
            jurisdiction_id, "2024/11", "Golden Election", "2024-11-05"
        )
        contest_id = store.add_contest(election_id, "mayor", "Mayor")
        store.add_candidates(contest_id, dataset["candidates"])
        store.add_ballots(contest_id, dataset_ballots(dataset))
    return contest_id


@pytest.mark.golden
@pytest.mark.parametrize("dataset_name", DATASETS)
def test_rounds_match_hand_count(dataset_name):
    """Every round's tally, exhausted count and eliminations match the hand count."""
    dataset = load_golden_dataset(dataset_name)
    expected = dataset["hand_computed_results"]

    result = tabulate(dataset_ballots(dataset), dataset["candidates"])

    assert result.winner == expected["winner"]
    assert result.tied_winner == expected["tied_winner"]
    assert result.total_rounds == expected["total_rounds"]
    assert result.total_ballots == len(dataset["ballots"])

    for actual, hand in zip(result.rounds, expected["rounds"]):
        label = f"{dataset_name} round {actual.round_number}"
        assert actual.tally == hand["tally"], f"Tally mismatch in {label}"
        assert actual.exhausted == hand["exhausted"], f"Exhausted mismatch in {label}"
        assert actual.eliminated == hand["eliminated"], f"Elimination mismatch in {label}"
        assert actual.threshold == hand["threshold"], f"Threshold mismatch in {label}"


@pytest.mark.golden
@pytest.mark.parametrize("dataset_name", DATASETS)
def test_stored_contest_matches_hand_count(dataset_name, temp_db_file):
    """The same result comes back after a round trip through the ballots database."""
    dataset = load_golden_dataset(dataset_name)
    contest_id = setup_golden_database(dataset, temp_db_file)

    with ElectionDatabase(temp_db_file) as db:
        tabulator = IRVTabulator(BallotStore(db), contest_id)
        rounds = tabulator.run_tabulation()

    expected = dataset["hand_computed_results"]
    assert tabulator.winner == expected["winner"]
    assert [r.tally for r in rounds] == [r["tally"] for r in expected["rounds"]]
    assert [r.exhausted for r in rounds] == [r["exhausted"] for r in expected["rounds"]]


@pytest.mark.golden
@pytest.mark.invariant
@pytest.mark.parametrize("dataset_name", DATASETS)
def test_hand_counts_are_consistent(dataset_name):
    """Hand-computed rounds conserve ballots and use the majority threshold."""
    dataset = load_golden_dataset(dataset_name)
    total_ballots = len(dataset["ballots"])

    for hand in dataset["hand_computed_results"]["rounds"]:
        counted = sum(hand["tally"].values())
        assert counted + hand["exhausted"] == total_ballots
        assert hand["threshold"] == counted // 2 + 1


@pytest.mark.golden
@pytest.mark.invariant
@pytest.mark.parametrize("dataset_name", DATASETS)
def test_golden_results_pass_invariant_checks(dataset_name):
    dataset = load_golden_dataset(dataset_name)

    result = tabulate(dataset_ballots(dataset), dataset["candidates"])

    assert check_invariants(result, dataset["candidates"]) == []
