"""
Validation utilities public API.

Re-exports:
    - Oracles:
        DEFAULT_TRIALS, DEFAULT_N
        check_outcome, check_trace
        run_outcome_oracle, run_trace_oracle
        verify_outcome, verify_trace

    - Results:
        Violation, ViolationKind, OracleReport, OracleViolation

    - Types:
        Hire, Offer, TraceRun, UNMATCHED

    - Property checks:
        build_rank_table
        check_bijection
        matching_arrays
        blocking_pairs
        first_blocking_pair
        is_stable_matching
        assert_no_mutation

    - Trace replay:
        SimulationState, replay_trace
"""

from .oracle import (
    DEFAULT_N,
    DEFAULT_TRIALS,
    check_outcome,
    check_trace,
    run_outcome_oracle,
    run_trace_oracle,
    verify_outcome,
    verify_trace,
)
from .properties import (
    assert_no_mutation,
    blocking_pairs,
    build_rank_table,
    check_bijection,
    first_blocking_pair,
    is_stable_matching,
    matching_arrays,
)
from .replay import SimulationState, replay_trace
from .types import UNMATCHED, Hire, Offer, TraceRun
from .violations import OracleReport, OracleViolation, Violation, ViolationKind

__all__ = [
    "DEFAULT_TRIALS",
    "DEFAULT_N",
    "check_outcome",
    "check_trace",
    "run_outcome_oracle",
    "run_trace_oracle",
    "verify_outcome",
    "verify_trace",
    "Violation",
    "ViolationKind",
    "OracleReport",
    "OracleViolation",
    "Hire",
    "Offer",
    "TraceRun",
    "UNMATCHED",
    "build_rank_table",
    "check_bijection",
    "matching_arrays",
    "blocking_pairs",
    "first_blocking_pair",
    "is_stable_matching",
    "assert_no_mutation",
    "SimulationState",
    "replay_trace",
]
