"""
Value types shared by the stable-matching oracles.

Public API (stable):
    Hire(company, candidate)                       # one matching edge
    Offer(proposer, recipient, from_company)       # one trace event
    TraceRun(trace, out)                           # matcher-with-trace result
    StableMatcher, StableMatcherWithTrace          # callable signatures
    UNMATCHED                                      # sentinel partner id

Conventions:
- A Matching is any sequence of hires. Plain 2-tuples `(company, candidate)`
  are accepted wherever a Hire is expected.
- `Offer.from_company` is True when a company proposes to a candidate and
  False when a candidate proposes to a company.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from matchbench.datasets.generators import PreferenceMatrix

UNMATCHED: int = -1


class Hire(NamedTuple):
    company: int
    candidate: int


class Offer(NamedTuple):
    proposer: int
    recipient: int
    from_company: bool


Matching = Sequence[Union[Hire, Tuple[int, int]]]


class TraceRun(NamedTuple):
    trace: Sequence[Offer]
    out: Matching


StableMatcher = Callable[[PreferenceMatrix, PreferenceMatrix], Matching]
StableMatcherWithTrace = Callable[[PreferenceMatrix, PreferenceMatrix], Any]

__all__ = [
    "UNMATCHED",
    "Hire",
    "Offer",
    "Matching",
    "TraceRun",
    "StableMatcher",
    "StableMatcherWithTrace",
    "unpack_trace_run",
]


def unpack_trace_run(result: Any) -> Optional[Tuple[Sequence[Offer], Matching]]:
    """
    Split a matcher-with-trace result into (trace, out).

    Accepts a TraceRun (or any 2-tuple) or a mapping with "trace" and "out".
    Returns None for anything else.
    """
    if isinstance(result, Mapping):
        if "trace" not in result or "out" not in result:
            return None
        return result["trace"], result["out"]
    if isinstance(result, (str, bytes)):
        return None
    try:
        trace, out = result
    except (TypeError, ValueError):
        return None
    return trace, out
