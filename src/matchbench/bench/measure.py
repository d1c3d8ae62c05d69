"""
Call instrumentation for matchers under test.

We wrap a matcher so every call made by an oracle is timed with a monotonic
high-resolution clock and checked for input mutation. Copying happens outside
the timed block to keep measurements clean.

Public API (stable):
    InstrumentedMatcher(fn, *, defensive_copy=True)
        __call__(company_prefs, candidate_prefs) -> whatever `fn` returns
        calls: int
        samples_ns: list[int]
        stats() -> dict

stats() schema:
    {
        "calls": int,
        "median_call_ns": int | None,   # None if never called
        "max_call_ns": int | None,
        "total_ns": int,
    }
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Sequence

import numpy as np

from matchbench.validate.properties import assert_no_mutation

__all__ = ["InstrumentedMatcher"]


class InstrumentedMatcher:
    """
    Callable wrapper around a matcher (`fn(company_prefs, candidate_prefs)`).

    Parameters
    ----------
    fn : Callable
        The matcher or matcher-with-trace under test.
    defensive_copy : bool
        If True, hand `fn` fresh row copies and, after the call, assert that
        `fn` left them unchanged (AssertionError otherwise).
    """

    def __init__(self, fn: Callable[..., Any], *, defensive_copy: bool = True) -> None:
        self.fn = fn
        self.defensive_copy = defensive_copy
        self.samples_ns: List[int] = []

    @property
    def calls(self) -> int:
        return len(self.samples_ns)

    def __call__(self, company_prefs: Sequence[Sequence[int]], candidate_prefs: Sequence[Sequence[int]]) -> Any:
        if self.defensive_copy:
            companies = _copy(company_prefs)
            candidates = _copy(candidate_prefs)
        else:
            companies, candidates = company_prefs, candidate_prefs

        t0 = time.perf_counter_ns()
        out = self.fn(companies, candidates)
        t1 = time.perf_counter_ns()
        self.samples_ns.append(int(t1 - t0))

        if self.defensive_copy:
            assert_no_mutation(company_prefs, companies, label="company_prefs")
            assert_no_mutation(candidate_prefs, candidates, label="candidate_prefs")
        return out

    def stats(self) -> Dict[str, Any]:
        if not self.samples_ns:
            return {"calls": 0, "median_call_ns": None, "max_call_ns": None, "total_ns": 0}
        arr = np.asarray(self.samples_ns, dtype=np.int64)
        return {
            "calls": int(arr.size),
            "median_call_ns": int(np.median(arr)),
            "max_call_ns": int(arr.max()),
            "total_ns": int(arr.sum()),
        }


def _copy(prefs: Sequence[Sequence[int]]) -> List[List[int]]:
    return [list(row) for row in prefs]
