"""
Property helpers for validating stable matchings.

These functions are the building blocks of the outcome and trace oracles and
are usable directly in tests for precise diagnostics.

Public API (stable):
    build_rank_table(prefs) -> list[list[int]]
    check_bijection(hires, n) -> Violation | None
    matching_arrays(hires, n) -> tuple[list[int], list[int]]
    blocking_pairs(company_ranks, candidate_ranks, company_match, candidate_match)
        -> Iterator[tuple[int, int]]
    first_blocking_pair(...) -> tuple[int, int] | None
    is_stable_matching(company_prefs, candidate_prefs, hires) -> bool
    assert_no_mutation(before, after, label="input") -> None

Notes
-----
- Match arrays use UNMATCHED (-1) for "no partner":
  company_match[co] is co's candidate, candidate_match[ca] is ca's company.
- Rank tables assume complete preference lists (every row a permutation).
"""

from __future__ import annotations

from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .types import UNMATCHED, Matching
from .violations import Violation, ViolationKind

__all__ = [
    "build_rank_table",
    "check_bijection",
    "matching_arrays",
    "blocking_pairs",
    "first_blocking_pair",
    "is_stable_matching",
    "assert_no_mutation",
]


def build_rank_table(prefs: Sequence[Sequence[int]]) -> List[List[int]]:
    """
    Invert a preference matrix: rank[a][c] is the position of c in row a.

    For a permutation row, argsort gives exactly the inverse permutation, so
    rank[a][prefs[a][r]] == r for every r.
    """
    if len(prefs) == 0:
        return []
    return np.argsort(np.asarray(prefs, dtype=np.int64), axis=1, kind="stable").tolist()


def check_bijection(hires: Matching, n: int) -> Optional[Violation]:
    """Return the first structural problem with `hires` as a complete n-matching, or None."""
    violation, _, _ = _index_matching(hires, n)
    return violation


def matching_arrays(hires: Matching, n: int) -> Tuple[List[int], List[int]]:
    """
    Return (company_match, candidate_match) for a complete matching.

    Raises ValueError if `hires` is not a perfect bijection on n agents.
    """
    violation, company_match, candidate_match = _index_matching(hires, n)
    if violation is not None:
        raise ValueError(violation.message)
    return company_match, candidate_match


def blocking_pairs(
    company_ranks: Sequence[Sequence[int]],
    candidate_ranks: Sequence[Sequence[int]],
    company_match: Sequence[int],
    candidate_match: Sequence[int],
) -> Iterator[Tuple[int, int]]:
    """Yield every (company, candidate) pair that would rather be matched to each other."""
    n = len(company_match)
    for co in range(n):
        curr_ca = company_match[co]
        for ca in range(n):
            if ca == curr_ca:
                continue
            if company_ranks[co][ca] < company_ranks[co][curr_ca]:
                curr_co = candidate_match[ca]
                if candidate_ranks[ca][co] < candidate_ranks[ca][curr_co]:
                    yield co, ca


def first_blocking_pair(
    company_ranks: Sequence[Sequence[int]],
    candidate_ranks: Sequence[Sequence[int]],
    company_match: Sequence[int],
    candidate_match: Sequence[int],
) -> Optional[Tuple[int, int]]:
    """
    Return the first blocking pair in (company, candidate) order, or None if stable.

    Useful for precise error messages:
        pair = first_blocking_pair(...)
        assert pair is None, f"blocking pair {pair}"
    """
    return next(
        blocking_pairs(company_ranks, candidate_ranks, company_match, candidate_match),
        None,
    )


def is_stable_matching(
    company_prefs: Sequence[Sequence[int]],
    candidate_prefs: Sequence[Sequence[int]],
    hires: Matching,
) -> bool:
    """Return True iff `hires` is a complete bijection with no blocking pair."""
    n = len(company_prefs)
    violation, company_match, candidate_match = _index_matching(hires, n)
    if violation is not None:
        return False
    pair = first_blocking_pair(
        build_rank_table(company_prefs),
        build_rank_table(candidate_prefs),
        company_match,
        candidate_match,
    )
    return pair is None


def assert_no_mutation(
    before: Sequence[Sequence[int]], after: Sequence[Sequence[int]], label: str = "input"
) -> None:
    """
    Assert that two preference matrices are exactly equal, used to ensure a
    matcher did not mutate the lists it was handed.

    Raises AssertionError with a concise message if they differ.
    """
    if len(before) != len(after):
        raise AssertionError(
            f"{label} mutated: row count changed from {len(before)} to {len(after)}"
        )
    for i, (x, y) in enumerate(zip(before, after)):
        if list(x) != list(y):
            raise AssertionError(f"{label} mutated at row {i}: before={list(x)}, after={list(y)}")


# ------------------------- helpers ------------------------- #


def _index_matching(hires: Matching, n: int) -> Tuple[Optional[Violation], List[int], List[int]]:
    company_match = [UNMATCHED] * n
    candidate_match = [UNMATCHED] * n

    def fail(message: str, **details: Any) -> Tuple[Violation, List[int], List[int]]:
        return (
            Violation(ViolationKind.STRUCTURE, message, details),
            company_match,
            candidate_match,
        )

    try:
        count = len(hires)
    except TypeError:
        return fail(f"matching must be a sequence of hires; got {type(hires).__name__}")
    if count != n:
        return fail(f"expected {n} hires, got {count}", expected=n, actual=count)

    for idx, hire in enumerate(hires):
        pair = _as_pair(hire)
        if pair is None:
            return fail(f"hire {idx} is not a (company, candidate) pair: {hire!r}", hire=idx)
        co, ca = pair
        if not 0 <= co < n:
            return fail(f"hire {idx}: company {co} out of range [0, {n})", hire=idx, company=co)
        if not 0 <= ca < n:
            return fail(f"hire {idx}: candidate {ca} out of range [0, {n})", hire=idx, candidate=ca)
        if company_match[co] != UNMATCHED:
            return fail(
                f"hire {idx}: company {co} already matched to candidate {company_match[co]}",
                hire=idx,
                company=co,
            )
        if candidate_match[ca] != UNMATCHED:
            return fail(
                f"hire {idx}: candidate {ca} already matched to company {candidate_match[ca]}",
                hire=idx,
                candidate=ca,
            )
        company_match[co] = ca
        candidate_match[ca] = co

    # Implied by the count and uniqueness checks above for well-formed input.
    for k in range(n):
        if company_match[k] == UNMATCHED:
            return fail(f"company {k} is unmatched", company=k)
        if candidate_match[k] == UNMATCHED:
            return fail(f"candidate {k} is unmatched", candidate=k)

    return None, company_match, candidate_match


def _as_pair(hire: Any) -> Optional[Tuple[int, int]]:
    # Hire, {"company": .., "candidate": ..}, an object with those attributes, or a 2-tuple.
    if isinstance(hire, Mapping):
        co, ca = hire.get("company"), hire.get("candidate")
    elif hasattr(hire, "company") and hasattr(hire, "candidate"):
        co, ca = hire.company, hire.candidate
    else:
        try:
            co, ca = hire
        except (TypeError, ValueError):
            return None
    if not all(isinstance(x, (int, np.integer)) and not isinstance(x, bool) for x in (co, ca)):
        return None
    return int(co), int(ca)
