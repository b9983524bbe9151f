"""
Structured validation results.

Nothing in a suite run is thrown past the harness: numerical instability,
exhausted step budgets and out-of-tolerance values all end up as fields of
these records so that one report lists every failure.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from temporalart.integrator import IntegrationStatus


class RunState(Enum):
    """Life cycle of a scenario run."""

    INITIALIZED = "initialized"
    RUNNING = "running"
    CONVERGED = "converged"
    STEP_BUDGET_EXHAUSTED = "step_budget_exhausted"
    VALIDATED = "validated"
    REJECTED = "rejected"

    @property
    def terminal(self) -> bool:
        return self in (RunState.VALIDATED, RunState.REJECTED)


# Allowed transitions of the scenario state machine.
TRANSITIONS: Dict[RunState, Tuple[RunState, ...]] = {
    RunState.INITIALIZED: (RunState.RUNNING,),
    RunState.RUNNING: (RunState.CONVERGED, RunState.STEP_BUDGET_EXHAUSTED, RunState.REJECTED),
    RunState.CONVERGED: (RunState.VALIDATED, RunState.REJECTED),
    RunState.STEP_BUDGET_EXHAUSTED: (RunState.VALIDATED, RunState.REJECTED),
    RunState.VALIDATED: (),
    RunState.REJECTED: (),
}


def run_state_for(status: IntegrationStatus) -> RunState:
    if status is IntegrationStatus.CONVERGED:
        return RunState.CONVERGED
    return RunState.STEP_BUDGET_EXHAUSTED


@dataclass(frozen=True)
class ValidationMismatch:
    """
    A computed value outside tolerance, or a violated constraint.

    Attributes:
        name: Equation or scenario that failed
        magnitude: Size of the deviation (inf when not measurable)
        location: Index of the worst element, if the value was an array
        subsystem: Dynamics module involved, if known
        step: Integration step, if known
        message: Human-readable description
    """

    name: str
    magnitude: float
    location: Optional[Tuple[int, ...]] = None
    subsystem: Optional[str] = None
    step: Optional[int] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "magnitude": self.magnitude,
            "location": list(self.location) if self.location is not None else None,
            "subsystem": self.subsystem,
            "step": self.step,
            "message": self.message,
        }


@dataclass
class EquationResult:
    name: str
    passed: bool
    delta: float
    tolerance: float
    location: Optional[Tuple[int, ...]] = None
    error: Optional[str] = None

    @property
    def mismatch(self) -> Optional[ValidationMismatch]:
        if self.passed:
            return None
        return ValidationMismatch(
            name=self.name,
            magnitude=self.delta,
            location=self.location,
            message=self.error or f"|computed - expected| = {self.delta:.3g} > {self.tolerance:.3g}",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "delta": self.delta,
            "tolerance": self.tolerance,
            "location": list(self.location) if self.location is not None else None,
            "error": self.error,
        }


@dataclass
class ScenarioResult:
    """
    Outcome of one scenario run.

    Attributes:
        name: Scenario name
        subsystem: Subsystem the scenario exercises
        state: Terminal run state (VALIDATED or REJECTED)
        history: Every state the run passed through, in order
        reason: Why the scenario was accepted or rejected
        metrics: Measurements the scenario produced
        mismatches: Everything that went wrong
        elapsed: Wall-clock seconds
    """

    name: str
    subsystem: str
    state: RunState = RunState.INITIALIZED
    history: List[RunState] = field(default_factory=lambda: [RunState.INITIALIZED])
    reason: str = ""
    metrics: Dict[str, float] = field(default_factory=dict)
    mismatches: List[ValidationMismatch] = field(default_factory=list)
    elapsed: float = 0.0

    def transition(self, new_state: RunState):
        if new_state not in TRANSITIONS[self.state]:
            raise ValueError(f"Illegal transition {self.state.name} -> {new_state.name}")
        self.state = new_state
        self.history.append(new_state)

    @property
    def passed(self) -> bool:
        return self.state is RunState.VALIDATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "subsystem": self.subsystem,
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "reason": self.reason,
            "metrics": {k: _plain(v) for k, v in self.metrics.items()},
            "mismatches": [m.to_dict() for m in self.mismatches],
            "elapsed": self.elapsed,
        }


def _plain(value):
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    return value


@dataclass
class ValidationReport:
    """Aggregated results of a suite run."""

    title: str
    equation_results: List[EquationResult] = field(default_factory=list)
    scenario_results: List[ScenarioResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.equation_results) + len(self.scenario_results)

    @property
    def failures(self) -> List[str]:
        failed = [r.name for r in self.equation_results if not r.passed]
        failed += [r.name for r in self.scenario_results if not r.passed]
        return failed

    @property
    def passed(self) -> bool:
        return not self.failures

    def mismatches(self) -> List[ValidationMismatch]:
        found = [r.mismatch for r in self.equation_results if not r.passed]
        for result in self.scenario_results:
            found.extend(result.mismatches)
        return found

    def merge(self, other: "ValidationReport", title: Optional[str] = None) -> "ValidationReport":
        return ValidationReport(
            title=title or self.title,
            equation_results=self.equation_results + other.equation_results,
            scenario_results=self.scenario_results + other.scenario_results,
        )

    def summary(self) -> str:
        lines = [f"{self.title}: {self.total - len(self.failures)}/{self.total} passed"]
        for r in self.equation_results:
            mark = "PASS" if r.passed else "FAIL"
            lines.append(f"  [{mark}] {r.name} (delta={r.delta:.3g})")
        for r in self.scenario_results:
            mark = "PASS" if r.passed else "FAIL"
            lines.append(f"  [{mark}] {r.name}: {r.reason}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "passed": self.passed,
            "total": self.total,
            "failures": self.failures,
            "equations": [r.to_dict() for r in self.equation_results],
            "scenarios": [r.to_dict() for r in self.scenario_results],
        }
