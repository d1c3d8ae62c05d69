"""
Trace oracle tests.

A faithful deferred-acceptance trace (from either side) replays to its
declared result; skipped proposals, proposals from matched agents and
declared results that disagree with the replay are rejected.
"""

from __future__ import annotations

import json
import pathlib
import sys

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
_SRC = _REPO_ROOT / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from matchbench.datasets import generate_preferences
from matchbench.validate import (
    UNMATCHED,
    Hire,
    Offer,
    OracleViolation,
    SimulationState,
    ViolationKind,
    check_trace,
    replay_trace,
    run_trace_oracle,
    verify_trace,
)

from reference_matchers import (
    FLAWED_TRACE_MATCHED_PROPOSER,
    FLAWED_TRACE_SKIPS_FIRST_CHOICE,
    FLAWED_TRACE_WRONG_OUT,
    gale_shapley_candidate_trace,
    gale_shapley_trace,
)


# Both companies want candidate 0; candidate 0 prefers company 1.
COMPANIES = [[0, 1], [0, 1]]
CANDIDATES = [[1, 0], [0, 1]]


# ------------------------- replay ------------------------- #

def test_fresh_state() -> None:
    s = SimulationState.fresh(3)
    assert s.n == 3
    assert s.company_match == [UNMATCHED] * 3
    assert s.candidate_match == [UNMATCHED] * 3
    assert s.company_cursor == [0, 0, 0]
    assert s.candidate_cursor == [0, 0, 0]


def test_replay_switch_and_reject() -> None:
    trace = [
        Offer(0, 0, True),   # accepted: candidate 0 was free
        Offer(1, 0, True),   # candidate 0 switches to company 1, company 0 freed
        Offer(0, 1, True),   # company 0 moves down its list
    ]
    state, v = replay_trace(COMPANIES, CANDIDATES, trace)
    assert v is None
    assert state.company_match == [1, 0]
    assert state.candidate_match == [1, 0]
    assert state.company_cursor == [2, 1]


def test_replay_rejected_offer_leaves_state_unchanged() -> None:
    trace = [Offer(1, 0, True), Offer(0, 0, True)]
    state, v = replay_trace(COMPANIES, CANDIDATES, trace)
    assert v is None
    assert state.company_match == [UNMATCHED, 0]
    assert state.candidate_match == [1, UNMATCHED]
    # cursor still advances on rejection
    assert state.company_cursor == [1, 1]


def test_replay_accepts_tuples_and_mappings() -> None:
    trace = [
        (0, 0, True),
        {"proposer": 1, "recipient": 0, "from_company": True},
        {"from": 0, "to": 1, "fromCompany": True},
    ]
    state, v = replay_trace(COMPANIES, CANDIDATES, trace)
    assert v is None
    assert state.company_match == [1, 0]


def test_replay_normalizes_numpy_ids() -> None:
    trace = [Offer(np.int64(0), np.int64(0), np.bool_(True)), (np.int32(1), np.int32(0), True)]
    state, v = replay_trace(COMPANIES, CANDIDATES, trace)
    assert v is None
    assert state.candidate_match == [1, UNMATCHED]

    _, v = replay_trace(COMPANIES, CANDIDATES, [Offer(np.int64(0), np.int64(1), True)])
    assert v is not None
    assert type(v.details["actual"]) is int and type(v.details["proposer"]) is int
    json.dumps(v.details)


def test_partial_trace_is_fine_until_compared() -> None:
    state, v = replay_trace(COMPANIES, CANDIDATES, [Offer(0, 0, True)])
    assert v is None
    assert state.company_match == [0, UNMATCHED]


@pytest.mark.parametrize(
    "trace, fragment, details",
    [
        ([Offer(0, 1, True)], "expected 0", {"step": 0, "expected": 0, "actual": 1}),
        ([Offer(0, 0, True), Offer(0, 1, True)], "proposed while matched", {"step": 1, "partner": 0}),
        ([Offer(2, 0, True)], "out of range", {"step": 0, "proposer": 2}),
        ([Offer(0, 0, False)], "expected 1", {"step": 0, "side": "candidate", "expected": 1, "actual": 0}),
        ([Offer(1, 0, False), Offer(1, 1, False)], "proposed while matched", {"step": 1, "side": "candidate"}),
        ([("x",)], "not an offer", {"step": 0}),
        ([(0.9, 0, True)], "not an offer", {"step": 0}),
        ([("0", "0", "False")], "not an offer", {"step": 0}),
        ([Offer(0.0, 0, True)], "not an offer", {"step": 0}),
        ([(0, 0, 1)], "not an offer", {"step": 0}),
        ([(True, 0, True)], "not an offer", {"step": 0}),
        ([Offer(0, 0, True), (1, None, True)], "not an offer", {"step": 1}),
        ([{"proposer": 0, "recipient": 0}], "not an offer", {"step": 0}),
        ([{"from": 0, "to": 0, "from_company": True}], "not an offer", {"step": 0}),
    ],
)
def test_replay_illegal_offers(trace, fragment, details) -> None:
    _, v = replay_trace(COMPANIES, CANDIDATES, trace)
    assert v is not None
    assert v.kind is ViolationKind.TRACE_LEGALITY
    assert fragment in v.message
    for key, value in details.items():
        assert v.details[key] == value


def test_replay_cursor_past_end() -> None:
    # Company 0 is rejected by candidate 0 and accepted by candidate 1.
    companies = [[0, 1], [0, 1]]
    candidates = [[1, 0], [1, 0]]
    trace = [
        Offer(1, 0, True),
        Offer(0, 0, True),  # rejected
        Offer(0, 1, True),  # accepted
    ]
    state, v = replay_trace(companies, candidates, trace)
    assert v is None and state.company_cursor[0] == 2

    # free company 0 by hand; its list is exhausted
    state.company_match[0] = UNMATCHED
    _, v = replay_trace(companies, candidates, [Offer(0, 0, True)], state=state)
    assert v is not None
    assert v.details["expected"] is None


# ------------------------- check_trace ------------------------- #

def test_check_trace_accepts_matching_result() -> None:
    trace = [Offer(0, 0, True), Offer(1, 0, True), Offer(0, 1, True)]
    assert check_trace(COMPANIES, CANDIDATES, trace, [Hire(0, 1), Hire(1, 0)]) is None


def test_check_trace_rejects_disagreeing_result() -> None:
    trace = [Offer(0, 0, True), Offer(1, 0, True), Offer(0, 1, True)]
    v = check_trace(COMPANIES, CANDIDATES, trace, [Hire(0, 0), Hire(1, 1)])
    assert v is not None
    assert v.kind is ViolationKind.TRACE_MISMATCH
    assert v.details == {"side": "company", "agent": 0, "simulated": 1, "declared": 0}


def test_check_trace_incomplete_replay_vs_complete_out() -> None:
    v = check_trace(COMPANIES, CANDIDATES, [Offer(1, 0, True)], [Hire(0, 1), Hire(1, 0)])
    assert v is not None
    assert v.kind is ViolationKind.TRACE_MISMATCH
    assert v.details["agent"] == 0 and v.details["simulated"] == UNMATCHED
    assert "partner none" in v.message


def test_check_trace_requires_complete_out() -> None:
    trace = [Offer(0, 0, True), Offer(1, 0, True), Offer(0, 1, True)]
    v = check_trace(COMPANIES, CANDIDATES, trace, [Hire(0, 1)])
    assert v is not None and v.kind is ViolationKind.STRUCTURE


def test_check_trace_duplicate_in_out() -> None:
    v = check_trace(COMPANIES, CANDIDATES, [], [Hire(0, 1), Hire(0, 0)])
    assert v is not None and v.kind is ViolationKind.STRUCTURE
    assert "company 0 already matched" in v.message


@pytest.mark.parametrize("trace", [None, 7, "abc"])
def test_check_trace_rejects_non_sequence_trace(trace) -> None:
    v = check_trace(COMPANIES, CANDIDATES, trace, [Hire(0, 1), Hire(1, 0)])
    assert v is not None and v.kind is ViolationKind.STRUCTURE
    assert "trace must be a sequence of offers" in v.message


@pytest.mark.parametrize(
    "result, fragment",
    [
        (None, "result must be a (trace, out) pair"),
        (42, "result must be a (trace, out) pair"),
        ("ab", "result must be a (trace, out) pair"),
        ({"out": []}, "result must be a (trace, out) pair"),
        ({"trace": []}, "result must be a (trace, out) pair"),
        (([], [], []), "result must be a (trace, out) pair"),
        ({"trace": None, "out": []}, "trace must be a sequence"),
        (([], None), "matching must be a sequence"),
    ],
)
def test_malformed_results_are_structural(result, fragment) -> None:
    report = run_trace_oracle(lambda a, b: result, trials=1, n=2, rng=np.random.default_rng(0))
    assert not report.ok
    assert report.trials_run == 1
    assert report.violation.kind is ViolationKind.STRUCTURE
    assert report.violation.trial == 0
    assert fragment in report.violation.message


# ------------------------- randomized oracle runs ------------------------- #

def test_accepts_company_proposing_trace() -> None:
    verify_trace(gale_shapley_trace)


def test_accepts_candidate_proposing_trace() -> None:
    verify_trace(gale_shapley_candidate_trace)


@pytest.mark.parametrize(
    "matcher, kind",
    [
        (FLAWED_TRACE_SKIPS_FIRST_CHOICE, ViolationKind.TRACE_LEGALITY),
        (FLAWED_TRACE_MATCHED_PROPOSER, ViolationKind.TRACE_LEGALITY),
        (FLAWED_TRACE_WRONG_OUT, ViolationKind.TRACE_MISMATCH),
    ],
)
def test_rejects_flawed_traces(matcher, kind) -> None:
    with pytest.raises(OracleViolation) as exc_info:
        verify_trace(matcher, rng=np.random.default_rng(11))
    v = exc_info.value.violation
    assert v.kind is kind
    assert v.trial == 0


def test_report_counts_trials() -> None:
    report = run_trace_oracle(gale_shapley_trace, trials=12, n=4, rng=np.random.default_rng(2))
    assert report.ok and report.trials_run == 12


@settings(deadline=None, max_examples=60)
@given(st.integers(min_value=0, max_value=20), st.integers(min_value=0, max_value=2**32 - 1))
def test_property_faithful_traces_replay_exactly(n: int, seed: int) -> None:
    rng = np.random.default_rng(seed)
    companies = generate_preferences(n, rng)
    candidates = generate_preferences(n, rng)
    for matcher in (gale_shapley_trace, gale_shapley_candidate_trace):
        run = matcher(companies, candidates)
        trace, out = (run["trace"], run["out"]) if isinstance(run, dict) else run
        assert check_trace(companies, candidates, trace, out) is None


@settings(deadline=None, max_examples=60)
@given(st.integers(min_value=2, max_value=12), st.integers(min_value=0, max_value=2**32 - 1))
def test_property_dropping_an_offer_is_detected(n: int, seed: int) -> None:
    rng = np.random.default_rng(seed)
    companies = generate_preferences(n, rng)
    candidates = generate_preferences(n, rng)
    run = gale_shapley_trace(companies, candidates)
    # Removing the last offer leaves its proposer unmatched in the replay.
    trace = list(run.trace)[:-1]
    assert check_trace(companies, candidates, trace, run.out) is not None
