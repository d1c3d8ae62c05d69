"""
Oracles for stable-matching correctness.

Two oracles validate a third-party matcher against randomized complete
preference lists without knowing its internals:

- Outcome oracle: the returned matching must be a complete bijection with no
  blocking pair.
- Trace oracle: the declared proposal trace must be a legal run of deferred
  acceptance, and replaying it must end exactly at the declared matching.

Public API (stable):
    check_outcome(company_prefs, candidate_prefs, hires) -> Violation | None
    check_trace(company_prefs, candidate_prefs, trace, out) -> Violation | None
    run_outcome_oracle(matcher, trials=75, n=15, rng=None) -> OracleReport
    run_trace_oracle(matcher_with_trace, trials=75, n=15, rng=None) -> OracleReport
    verify_outcome(matcher, trials=75, n=15, rng=None) -> None   # raises OracleViolation
    verify_trace(matcher_with_trace, trials=75, n=15, rng=None) -> None

Conventions:
- `check_*` are pure and never mutate their arguments.
- `run_*` stop at the first violation (fail fast). Each trial draws fresh
  preferences from `rng`; nothing carries over between trials.
- Exceptions raised by the matcher itself propagate unchanged.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Sequence

import numpy as np

from matchbench.datasets.generators import is_preference_matrix, make_preference_pair

from .properties import build_rank_table, check_bijection, first_blocking_pair, matching_arrays
from .replay import replay_trace
from .types import UNMATCHED, Matching, StableMatcher, StableMatcherWithTrace, unpack_trace_run
from .violations import OracleReport, Violation, ViolationKind

DEFAULT_TRIALS: int = 75
DEFAULT_N: int = 15

__all__ = [
    "DEFAULT_TRIALS",
    "DEFAULT_N",
    "check_outcome",
    "check_trace",
    "run_outcome_oracle",
    "run_trace_oracle",
    "verify_outcome",
    "verify_trace",
]


def check_outcome(
    company_prefs: Sequence[Sequence[int]],
    candidate_prefs: Sequence[Sequence[int]],
    hires: Matching,
) -> Optional[Violation]:
    """
    Check that `hires` is a stable matching for the given preferences.

    Parameters
    ----------
    company_prefs, candidate_prefs : list[list[int]]
        Complete preference matrices of equal size n.
    hires : sequence of Hire
        The matching under test.

    Returns
    -------
    Violation | None
        The first STRUCTURE or STABILITY violation found, or None.

    Raises
    ------
    ValueError
        If the preference matrices themselves are malformed.
    """
    n = _validate_prefs(company_prefs, candidate_prefs)

    violation = check_bijection(hires, n)
    if violation is not None:
        return violation
    company_match, candidate_match = matching_arrays(hires, n)

    pair = first_blocking_pair(
        build_rank_table(company_prefs),
        build_rank_table(candidate_prefs),
        company_match,
        candidate_match,
    )
    if pair is None:
        return None
    co, ca = pair
    return Violation(
        ViolationKind.STABILITY,
        f"blocking pair (company {co}, candidate {ca}): company {co} is matched to "
        f"candidate {company_match[co]} and candidate {ca} is matched to company "
        f"{candidate_match[ca]}, but both prefer each other",
        {
            "company": co,
            "candidate": ca,
            "company_match": company_match[co],
            "candidate_match": candidate_match[ca],
        },
    )


def check_trace(
    company_prefs: Sequence[Sequence[int]],
    candidate_prefs: Sequence[Sequence[int]],
    trace: Sequence[Any],
    out: Matching,
) -> Optional[Violation]:
    """
    Replay `trace` with deferred acceptance and compare the end state to `out`.

    The trace may stop before everyone is matched; `out` must nevertheless be
    a complete bijection, and each agent's simulated partner must equal its
    declared partner.
    """
    n = _validate_prefs(company_prefs, candidate_prefs)

    if isinstance(trace, (str, bytes)) or not isinstance(trace, Iterable):
        return Violation(
            ViolationKind.STRUCTURE,
            f"trace must be a sequence of offers; got {type(trace).__name__}",
        )
    state, violation = replay_trace(company_prefs, candidate_prefs, trace)
    if violation is not None:
        return violation

    violation = check_bijection(out, n)
    if violation is not None:
        return violation
    out_company, out_candidate = matching_arrays(out, n)

    for side, simulated, declared in (
        ("company", state.company_match, out_company),
        ("candidate", state.candidate_match, out_candidate),
    ):
        for agent in range(n):
            if simulated[agent] != declared[agent]:
                return Violation(
                    ViolationKind.TRACE_MISMATCH,
                    f"{side} {agent}: replay ends with partner "
                    f"{_partner(simulated[agent])}, declared partner {declared[agent]}",
                    {
                        "side": side,
                        "agent": agent,
                        "simulated": simulated[agent],
                        "declared": declared[agent],
                    },
                )
    return None


def run_outcome_oracle(
    matcher: StableMatcher,
    trials: int = DEFAULT_TRIALS,
    n: int = DEFAULT_N,
    rng: Optional[np.random.Generator] = None,
) -> OracleReport:
    """Run `matcher` over `trials` random inputs of size `n` and check every result."""
    return _run_trials(
        trials,
        n,
        rng,
        lambda companies, candidates: check_outcome(
            companies, candidates, matcher(_copy(companies), _copy(candidates))
        ),
    )


def run_trace_oracle(
    matcher_with_trace: StableMatcherWithTrace,
    trials: int = DEFAULT_TRIALS,
    n: int = DEFAULT_N,
    rng: Optional[np.random.Generator] = None,
) -> OracleReport:
    """Run `matcher_with_trace` over random inputs and check each trace against its output."""

    def one_trial(companies, candidates):
        result = matcher_with_trace(_copy(companies), _copy(candidates))
        unpacked = unpack_trace_run(result)
        if unpacked is None:
            return Violation(
                ViolationKind.STRUCTURE,
                "result must be a (trace, out) pair or a mapping with 'trace' and 'out'; "
                f"got {type(result).__name__}",
            )
        trace, out = unpacked
        return check_trace(companies, candidates, trace, out)

    return _run_trials(trials, n, rng, one_trial)


def verify_outcome(
    matcher: StableMatcher,
    trials: int = DEFAULT_TRIALS,
    n: int = DEFAULT_N,
    rng: Optional[np.random.Generator] = None,
) -> None:
    """
    Assert that `matcher` solves the stable matching problem.

    Raises
    ------
    OracleViolation
        On the first violated invariant, carrying the structured Violation.
    """
    run_outcome_oracle(matcher, trials=trials, n=n, rng=rng).raise_for_violation()


def verify_trace(
    matcher_with_trace: StableMatcherWithTrace,
    trials: int = DEFAULT_TRIALS,
    n: int = DEFAULT_N,
    rng: Optional[np.random.Generator] = None,
) -> None:
    """
    Assert that `matcher_with_trace` follows deferred acceptance and that its
    trace agrees with its declared result.

    Raises
    ------
    OracleViolation
        On the first violated invariant, carrying the structured Violation.
    """
    run_trace_oracle(matcher_with_trace, trials=trials, n=n, rng=rng).raise_for_violation()


# ------------------------- helpers ------------------------- #


def _run_trials(
    trials: int,
    n: int,
    rng: Optional[np.random.Generator],
    one_trial: Callable[[Any, Any], Optional[Violation]],
) -> OracleReport:
    if not isinstance(trials, int) or isinstance(trials, bool) or trials < 0:
        raise ValueError("trials must be a nonnegative int")
    if not isinstance(n, int) or isinstance(n, bool) or n < 0:
        raise ValueError("n must be a nonnegative int")
    if rng is None:
        rng = np.random.default_rng()

    for t in range(trials):
        companies, candidates = make_preference_pair(n, rng)
        violation = one_trial(companies, candidates)
        if violation is not None:
            return OracleReport(trials_run=t + 1, violation=violation.in_trial(t))
    return OracleReport(trials_run=trials)


def _validate_prefs(
    company_prefs: Sequence[Sequence[int]], candidate_prefs: Sequence[Sequence[int]]
) -> int:
    n = len(company_prefs)
    if not is_preference_matrix(company_prefs):
        raise ValueError("company_prefs must be a square matrix of permutations of 0..n-1")
    if not is_preference_matrix(candidate_prefs, n):
        raise ValueError(
            f"candidate_prefs must be {n} rows, each a permutation of 0..{n - 1}"
        )
    return n


def _partner(agent: int) -> Any:
    return "none" if agent == UNMATCHED else agent


def _copy(prefs: Sequence[Sequence[int]]) -> list:
    # The matcher gets its own rows so the check always sees the generated input.
    return [list(row) for row in prefs]
