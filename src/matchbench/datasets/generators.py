"""
Preference-list generators for stable-matching oracles.

Every agent ranks every counterpart, so one side's preferences form an N x N
matrix whose row i is a permutation of [0, 1, ..., n-1] (agent i's order,
most preferred first).

Public API (stable):
    generate_preferences(n: int, rng: numpy.random.Generator | None) -> list[list[int]]
    make_preference_pair(n: int, rng: numpy.random.Generator | None)
        -> tuple[list[list[int]], list[list[int]]]
    is_preference_matrix(prefs, n: int | None = None) -> bool

Conventions:
- Rows are produced by an unbiased Fisher-Yates shuffle of the identity
  permutation: for k from n-1 down to 1, draw j uniformly in [0, k] and swap
  positions k and j.
- Returns plain Python `list[list[int]]` (matchers stay NumPy-agnostic).
- The caller supplies the RNG (for reproducibility across runs). When `rng`
  is None a fresh, unseeded generator is used.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

PreferenceMatrix = List[List[int]]

__all__ = [
    "PreferenceMatrix",
    "generate_preferences",
    "make_preference_pair",
    "is_preference_matrix",
]


def generate_preferences(n: int, rng: Optional[np.random.Generator] = None) -> PreferenceMatrix:
    """
    Generate one side's preference matrix.

    Parameters
    ----------
    n : int
        Number of agents on each side. Must be >= 0.
    rng : numpy.random.Generator, optional
        Random number generator owned by the caller (seeded upstream).

    Returns
    -------
    list[list[int]]
        `n` rows, each a uniformly random permutation of 0..n-1.

    Raises
    ------
    ValueError
        If `n` is not a nonnegative int.
    """
    _validate_n(n)
    if n == 0:
        return []
    if rng is None:
        rng = np.random.default_rng()

    out: PreferenceMatrix = []
    for _ in range(n):
        row = list(range(n))
        for k in range(n - 1, 0, -1):
            # integers() is half-open, so k + 1 makes [0, k] inclusive.
            j = int(rng.integers(0, k + 1))
            row[k], row[j] = row[j], row[k]
        out.append(row)
    return out


def make_preference_pair(
    n: int, rng: Optional[np.random.Generator] = None
) -> Tuple[PreferenceMatrix, PreferenceMatrix]:
    """Return fresh (company_prefs, candidate_prefs) for one trial."""
    if rng is None:
        rng = np.random.default_rng()
    companies = generate_preferences(n, rng)
    candidates = generate_preferences(n, rng)
    return companies, candidates


def is_preference_matrix(prefs: Sequence[Sequence[Any]], n: Optional[int] = None) -> bool:
    """
    Return True iff `prefs` is square and every row is a permutation of 0..N-1.

    If `n` is given, the matrix must also have exactly `n` rows.
    """
    size = len(prefs)
    if n is not None and size != n:
        return False
    expected = list(range(size))
    for row in prefs:
        if len(row) != size:
            return False
        if not all(_is_int_like(x) for x in row):
            return False
        if sorted(int(x) for x in row) != expected:
            return False
    return True


# ------------------------- helpers ------------------------- #


def _validate_n(n: int) -> None:
    if not _is_int_like(n):
        raise ValueError("n must be an int")
    if n < 0:
        raise ValueError("n must be nonnegative")


def _is_int_like(x: Any) -> bool:
    # Accept Python ints and NumPy integer types
    return isinstance(x, (int, np.integer)) and not isinstance(x, bool)
