"""
Independent deferred-acceptance simulator driven by a declared trace.

Each agent is either unmatched or matched to one partner. An Offer moves the
simulation forward only if it is legal:

- the proposer is currently unmatched, and
- the recipient is the next entry of the proposer's own preference list
  (each agent has its own cursor; proposals never skip or repeat).

A legal offer always advances the proposer's cursor. An unmatched recipient
accepts; a matched recipient switches only if it strictly prefers the new
proposer, leaving its old partner unmatched. Otherwise nothing changes.

Public API (stable):
    SimulationState.fresh(n)
    replay_trace(company_prefs, candidate_prefs, trace, state=None)
        -> tuple[SimulationState, Violation | None]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .properties import build_rank_table
from .types import UNMATCHED, Offer
from .violations import Violation, ViolationKind

__all__ = ["SimulationState", "replay_trace"]

_OFFER_KEYS = ("proposer", "recipient", "from_company")
_OFFER_KEYS_SHORT = ("from", "to", "fromCompany")


@dataclass
class SimulationState:
    company_match: List[int]
    candidate_match: List[int]
    company_cursor: List[int]
    candidate_cursor: List[int]

    @classmethod
    def fresh(cls, n: int) -> "SimulationState":
        return cls(
            company_match=[UNMATCHED] * n,
            candidate_match=[UNMATCHED] * n,
            company_cursor=[0] * n,
            candidate_cursor=[0] * n,
        )

    @property
    def n(self) -> int:
        return len(self.company_match)


def replay_trace(
    company_prefs: Sequence[Sequence[int]],
    candidate_prefs: Sequence[Sequence[int]],
    trace: Sequence[Any],
    state: Optional[SimulationState] = None,
) -> Tuple[SimulationState, Optional[Violation]]:
    """
    Apply every offer in `trace` to `state` (a fresh state if None).

    Stops at the first illegal offer and returns it as a TRACE_LEGALITY
    violation together with the state reached just before it.
    """
    n = len(company_prefs)
    if state is None:
        state = SimulationState.fresh(n)
    company_ranks = build_rank_table(company_prefs)
    candidate_ranks = build_rank_table(candidate_prefs)

    for step, raw in enumerate(trace):
        offer = _as_offer(raw)
        if offer is None:
            return state, _illegal(step, f"step {step}: not an offer: {raw!r}")

        if offer.from_company:
            side, other = "company", "candidate"
            own_prefs = company_prefs
            own_match, other_match = state.company_match, state.candidate_match
            cursor = state.company_cursor
            recipient_ranks = candidate_ranks
        else:
            side, other = "candidate", "company"
            own_prefs = candidate_prefs
            own_match, other_match = state.candidate_match, state.company_match
            cursor = state.candidate_cursor
            recipient_ranks = company_ranks

        p, r = offer.proposer, offer.recipient
        if not 0 <= p < n:
            return state, _illegal(
                step, f"step {step}: {side} {p} out of range [0, {n})", proposer=p, side=side
            )
        if own_match[p] != UNMATCHED:
            return state, _illegal(
                step,
                f"step {step}: {side} {p} proposed while matched to {other} {own_match[p]}",
                proposer=p,
                side=side,
                partner=own_match[p],
            )
        pos = cursor[p]
        expected = own_prefs[p][pos] if pos < n else None
        if r != expected:
            return state, _illegal(
                step,
                f"step {step}: {side} {p} proposed to {other} {r}, expected {expected}",
                proposer=p,
                side=side,
                expected=expected,
                actual=r,
            )
        cursor[p] += 1

        held = other_match[r]
        if held == UNMATCHED or recipient_ranks[r][p] < recipient_ranks[r][held]:
            if held != UNMATCHED:
                own_match[held] = UNMATCHED
            own_match[p] = r
            other_match[r] = p
        # else: rejected

    return state, None


# ------------------------- helpers ------------------------- #


def _illegal(step: int, message: str, **details: Any) -> Violation:
    return Violation(ViolationKind.TRACE_LEGALITY, message, {"step": step, **details})


def _as_offer(raw: Any) -> Optional[Offer]:
    # Offer, a 3-tuple, or a mapping keyed proposer/recipient/from_company or from/to/fromCompany.
    if isinstance(raw, Mapping):
        keys = _OFFER_KEYS if "proposer" in raw else _OFFER_KEYS_SHORT
        if not all(k in raw for k in keys):
            return None
        proposer, recipient, from_company = (raw[k] for k in keys)
    else:
        try:
            proposer, recipient, from_company = raw
        except (TypeError, ValueError):
            return None
    if not (_is_agent_id(proposer) and _is_agent_id(recipient)):
        return None
    if not isinstance(from_company, (bool, np.bool_)):
        return None
    return Offer(int(proposer), int(recipient), bool(from_company))


def _is_agent_id(x: Any) -> bool:
    return isinstance(x, (int, np.integer)) and not isinstance(x, bool)
