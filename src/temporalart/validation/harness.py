"""
Validation harness.

Runs the equation suite and the scenario suite and collects every result in
a ValidationReport. A failing case never stops a suite: invalid parameters,
numerical instability and any other error inside a case are caught here
and recorded as a rejected result with the details of what went wrong.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from temporalart.config import HarnessConfig
from temporalart.errors import NumericalInstabilityError
from temporalart.integrator import IntegrationStatus
from temporalart.utils import largest_energy_increase, last_energy_change
from temporalart.validation.equations import EquationCase, equation_cases, validate_equation
from temporalart.validation.results import (
    EquationResult,
    RunState,
    ScenarioResult,
    ValidationMismatch,
    ValidationReport,
    run_state_for,
)
from temporalart.validation.scenarios import ValidationScenario, canonical_scenarios

logger = logging.getLogger(__name__)

# Energy increases below this are floating-point noise.
ENERGY_NOISE = 1e-12


class ValidationHarness:
    """
    Equation-level and scenario-level validation.

    Args:
        config: Tolerance, integrator settings and worker count
        cases: Equation checks; the standard suite if None
        scenarios: Behavioural scenarios; the canonical set if None
    """

    def __init__(self, config: Optional[HarnessConfig] = None,
                 cases: Optional[Sequence[EquationCase]] = None,
                 scenarios: Optional[Sequence[ValidationScenario]] = None):
        self.config = config or HarnessConfig()
        self.cases: List[EquationCase] = list(cases) if cases is not None else equation_cases()
        self.scenarios: List[ValidationScenario] = (
            list(scenarios) if scenarios is not None
            else canonical_scenarios(self.config.integrator_parameters(), seed=self.config.seed)
        )

    def validate_equation(self, name: str, computed, expected,
                          tolerance: Optional[float] = None) -> EquationResult:
        tol = self.config.tolerance if tolerance is None else tolerance
        result = validate_equation(name, computed, expected, tol)
        if result.passed:
            logger.info("Equation %s passed (delta=%.3g)", name, result.delta)
        else:
            logger.warning("Equation %s failed: delta=%.3g tolerance=%.3g", name, result.delta, tol)
        return result

    def _run_case(self, case: EquationCase) -> EquationResult:
        tolerance = max(case.tolerance, self.config.tolerance)
        try:
            computed, expected = case.compute()
        except Exception as e:
            logger.warning("Equation %s raised %s: %s", case.name, type(e).__name__, e)
            return EquationResult(case.name, False, float("inf"), tolerance,
                                  error=f"{type(e).__name__}: {e}")
        return self.validate_equation(case.name, computed, expected, tolerance)

    def validate_scenario(self, scenario: ValidationScenario) -> ScenarioResult:
        """
        Run one scenario through INITIALIZED -> RUNNING -> {CONVERGED,
        STEP_BUDGET_EXHAUSTED} -> VALIDATED | REJECTED.

        Any error raised by the scenario rejects that scenario only.
        """
        result = ScenarioResult(name=scenario.name, subsystem=scenario.subsystem)
        started = time.perf_counter()
        result.transition(RunState.RUNNING)
        logger.info("Scenario %s: %s", scenario.name, scenario.description)

        try:
            outcome = scenario.run()
        except NumericalInstabilityError as e:
            result.mismatches.append(ValidationMismatch(
                name=scenario.name, magnitude=e.magnitude,
                location=(e.index,) if e.index is not None else None,
                subsystem=e.subsystem, step=e.step, message=str(e),
            ))
            return self._reject(result, f"numerical instability: {e}", started)
        except Exception as e:
            logger.warning("Scenario %s raised %s: %s", scenario.name, type(e).__name__, e)
            result.mismatches.append(ValidationMismatch(
                name=scenario.name, magnitude=float("inf"),
                subsystem=scenario.subsystem, message=f"{type(e).__name__}: {e}",
            ))
            return self._reject(result, f"{type(e).__name__}: {e}", started)

        result.metrics = dict(outcome.metrics)
        result.transition(run_state_for(outcome.status))

        if scenario.convergent:
            if outcome.status is not IntegrationStatus.CONVERGED:
                result.mismatches.append(ValidationMismatch(
                    name=scenario.name, magnitude=last_energy_change(outcome.energies),
                    subsystem=scenario.subsystem, step=outcome.step,
                    message="step budget exhausted before convergence",
                ))
                return self._reject(result, "did not converge", started)
            rise, at = largest_energy_increase(outcome.energies, outcome.energy_steps)
            result.metrics["max_energy_increase"] = rise
            if rise > ENERGY_NOISE:
                result.mismatches.append(ValidationMismatch(
                    name=scenario.name, magnitude=rise, subsystem=scenario.subsystem,
                    step=at, message="Lyapunov energy increased",
                ))
                return self._reject(result, f"energy increased by {rise:.3g} at step {at}", started)

        try:
            verdict = scenario.check(outcome)
        except Exception as e:
            logger.warning("Check of scenario %s raised %s: %s", scenario.name, type(e).__name__, e)
            result.mismatches.append(ValidationMismatch(
                name=scenario.name, magnitude=float("inf"), subsystem=scenario.subsystem,
                step=outcome.step, message=f"{type(e).__name__}: {e}",
            ))
            return self._reject(result, f"check failed with {type(e).__name__}: {e}", started)

        if not verdict.passed:
            result.mismatches.append(ValidationMismatch(
                name=scenario.name,
                magnitude=verdict.magnitude if verdict.magnitude is not None else float("inf"),
                location=verdict.location,
                subsystem=scenario.subsystem,
                step=verdict.step if verdict.step is not None else outcome.step,
                message=verdict.reason,
            ))
            return self._reject(result, verdict.reason, started)

        result.reason = verdict.reason
        result.transition(RunState.VALIDATED)
        result.elapsed = time.perf_counter() - started
        logger.info("Scenario %s validated: %s", scenario.name, verdict.reason)
        return result

    @staticmethod
    def _reject(result: ScenarioResult, reason: str, started: float) -> ScenarioResult:
        result.reason = reason
        result.transition(RunState.REJECTED)
        result.elapsed = time.perf_counter() - started
        logger.warning("Scenario %s rejected: %s", result.name, reason)
        return result

    def run_equation_suite(self) -> ValidationReport:
        """Run every equation case; failures are collected, not raised."""
        results = [self._run_case(case) for case in self.cases]
        report = ValidationReport(title="Equation suite", equation_results=results)
        logger.info("Equation suite: %d/%d passed", report.total - len(report.failures), report.total)
        return report

    def run_scenario_suite(self, max_workers: Optional[int] = None) -> ValidationReport:
        """
        Run every scenario. With more than one worker the scenarios run on a
        thread pool; results keep the declaration order either way.
        """
        workers = self.config.max_workers if max_workers is None else max_workers
        if workers > 1 and len(self.scenarios) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(self.validate_scenario, self.scenarios))
        else:
            results = [self.validate_scenario(s) for s in self.scenarios]
        report = ValidationReport(title="Scenario suite", scenario_results=results)
        logger.info("Scenario suite: %d/%d validated", report.total - len(report.failures), report.total)
        return report

    def run_all(self, max_workers: Optional[int] = None) -> ValidationReport:
        return self.run_equation_suite().merge(self.run_scenario_suite(max_workers),
                                               title="Temporal ART validation")
