"""
Violation records and the oracle's discriminated result.

The checks in this package are pure: they return `Violation | None`.
`OracleViolation` is only the signalling form used by `verify_outcome` /
`verify_trace`; it subclasses AssertionError so existing test suites treat
it as a failed assertion.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

__all__ = ["ViolationKind", "Violation", "OracleReport", "OracleViolation"]


class ViolationKind(str, Enum):
    STRUCTURE = "structure"
    STABILITY = "stability"
    TRACE_LEGALITY = "trace_legality"
    TRACE_MISMATCH = "trace_mismatch"


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    trial: Optional[int] = None

    def in_trial(self, trial: int) -> "Violation":
        return replace(self, trial=trial)

    def describe(self) -> str:
        prefix = f"[{self.kind.value}]"
        if self.trial is not None:
            prefix += f" trial {self.trial}:"
        return f"{prefix} {self.message}"


@dataclass(frozen=True)
class OracleReport:
    """Outcome of an oracle run: `violation` is None iff every trial passed."""

    trials_run: int
    violation: Optional[Violation] = None

    @property
    def ok(self) -> bool:
        return self.violation is None

    def raise_for_violation(self) -> None:
        if self.violation is not None:
            raise OracleViolation(self.violation)


class OracleViolation(AssertionError):
    def __init__(self, violation: Violation) -> None:
        super().__init__(violation.describe())
        self.violation = violation
