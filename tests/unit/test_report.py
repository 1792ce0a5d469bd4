"""
Unit tests for report projection.
"""

import json

import numpy as np
import pytest

from analysis.irv import EXHAUSTED_MARKER, tabulate
from analysis.report import (
    CandidatePerformance,
    build_contest_report,
    candidate_votes_payload,
    convert_numpy_types,
    project,
    round_allocations,
    round_transfers,
)


@pytest.fixture
def four_way():
    ballots = (
        [["A"]] * 4 + [["B", "A"]] * 3 + [["C", "B"]] * 2 + [["D", "C"]]
    )
    candidates = ["A", "B", "C", "D"]
    return tabulate(ballots, candidates), candidates


@pytest.mark.unit
class TestProject:
    def test_sample_contest(self, sample_ballots, sample_candidates):
        result = tabulate(sample_ballots, sample_candidates)
        performances = project(result, sample_candidates)

        assert performances == [
            CandidatePerformance("Alice", 3, 0, None, True),
            CandidatePerformance("Bob", 2, 0, None, False),
            CandidatePerformance("Charlie", 1, 0, 1, False),
        ]

    def test_transfer_votes_for_winner(self, four_way):
        result, candidates = four_way
        by_candidate = {p.candidate: p for p in project(result, candidates)}

        assert by_candidate["A"].first_round_votes == 4
        assert by_candidate["A"].transfer_votes == 3
        assert by_candidate["A"].total_votes == 7
        assert by_candidate["A"].winner is True

    def test_eliminated_candidates_gain_nothing(self, four_way):
        result, candidates = four_way
        by_candidate = {p.candidate: p for p in project(result, candidates)}

        # C received D's ballot in round 2 but is absent from the final tally
        assert by_candidate["C"].transfer_votes == 0
        assert by_candidate["C"].elimination_round == 2
        assert by_candidate["B"].elimination_round == 2
        assert by_candidate["D"].elimination_round == 1

    def test_sorted_by_total_votes(self, four_way):
        result, candidates = four_way

        assert [p.candidate for p in project(result, candidates)] == ["A", "B", "C", "D"]

    def test_equal_totals_keep_declaration_order(self):
        candidates = ["B", "A"]
        result = tabulate([["A"], ["B"]], candidates)

        assert [p.candidate for p in project(result, candidates)] == ["B", "A"]

    def test_project_is_repeatable(self, four_way):
        result, candidates = four_way

        assert project(result, candidates) == project(result, candidates)


@pytest.mark.unit
class TestRoundPayloads:
    def test_allocations_without_exhausted(self, four_way):
        result, _ = four_way

        assert round_allocations(result.rounds[0]) == [
            {"allocatee": "A", "votes": 4},
            {"allocatee": "B", "votes": 3},
            {"allocatee": "C", "votes": 2},
            {"allocatee": "D", "votes": 1},
        ]

    def test_allocations_end_with_exhausted(self, four_way):
        result, _ = four_way

        assert round_allocations(result.rounds[-1]) == [
            {"allocatee": "A", "votes": 7},
            {"allocatee": EXHAUSTED_MARKER, "votes": 3},
        ]

    def test_transfer_records(self, four_way):
        result, _ = four_way

        assert round_transfers(result.rounds[0]) == [
            {"from": "D", "to": "C", "count": 1, "exhausted": False}
        ]
        assert round_transfers(result.rounds[1]) == [
            {"from": "B", "to": "A", "count": 3, "exhausted": False},
            {"from": "C", "to": EXHAUSTED_MARKER, "count": 3, "exhausted": True},
        ]
        assert round_transfers(result.rounds[2]) == []

    def test_transfer_records_flag_exhausted_for_candidate_x(self):
        ballots = [["A", "X"]] * 2 + [["X"]] * 4 + [["B"]] * 5 + [["A"]]
        result = tabulate(ballots, ["A", "B", "X"])

        assert round_transfers(result.rounds[0]) == [
            {"from": "A", "to": "X", "count": 2, "exhausted": False},
            {"from": "A", "to": "X", "count": 1, "exhausted": True},
        ]

    def test_candidate_votes_payload(self, sample_ballots, sample_candidates):
        result = tabulate(sample_ballots, sample_candidates)
        payload = candidate_votes_payload(project(result, sample_candidates))

        assert payload[0] == {
            "candidate": "Alice",
            "name": "Alice",
            "firstRoundVotes": 3,
            "transferVotes": 0,
            "votes": 3,
            "roundEliminated": None,
            "winner": True,
        }
        assert payload[-1]["roundEliminated"] == 1


@pytest.mark.unit
class TestBuildContestReport:
    def test_report_structure(self, four_way):
        result, candidates = four_way
        report = build_contest_report(
            result, candidates, info={"office": "mayor"}, write_ins=["D"]
        )

        assert report["info"] == {"office": "mayor"}
        assert report["winner"] == "A"
        assert report["ballotCount"] == 10
        assert report["numCandidates"] == 4
        assert report["totalRounds"] == 3
        assert report["totalBallots"] == 10
        assert report["finalTally"] == {"A": 7}
        assert report["summary"] == {"winner": "A", "totalRounds": 3, "totalBallots": 10}
        assert report["candidates"]["D"] == {"name": "D", "writeIn": True}
        assert report["candidates"]["A"]["writeIn"] is False
        assert report["candidateVotes"] == report["totalVotes"]

    def test_rounds_payload(self, four_way):
        result, candidates = four_way
        rounds = build_contest_report(result, candidates)["rounds"]

        assert [r["round"] for r in rounds] == [1, 2, 3]
        assert rounds[1]["eliminated"] == ["B", "C"]
        assert rounds[1]["winner"] is None
        assert rounds[2]["winner"] == "A"
        assert rounds[2]["exhausted"] == 3
        assert rounds[2]["allocations"][-1] == {"allocatee": "X", "votes": 3}

    def test_report_is_json_serializable(self, four_way):
        result, candidates = four_way
        report = build_contest_report(result, candidates)

        assert json.loads(json.dumps(report)) == report

    def test_tied_winner_report(self):
        candidates = ["A", "B"]
        report = build_contest_report(tabulate([["A"], ["B"]], candidates), candidates)

        assert report["winner"] == "A"
        assert report["rounds"][0]["eliminated"] == []


@pytest.mark.unit
class TestConvertNumpyTypes:
    def test_scalars(self):
        assert convert_numpy_types(np.int64(3)) == 3
        assert type(convert_numpy_types(np.int64(3))) is int
        assert type(convert_numpy_types(np.float64(1.5))) is float
        assert convert_numpy_types(np.bool_(True)) is True

    def test_nested_structures(self):
        data = {"votes": np.array([1, 2]), "rounds": (np.int32(1), {"x": np.int64(2)})}

        assert convert_numpy_types(data) == {"votes": [1, 2], "rounds": [1, {"x": 2}]}

    def test_plain_values_untouched(self):
        assert convert_numpy_types("Alice") == "Alice"
        assert convert_numpy_types(None) is None
