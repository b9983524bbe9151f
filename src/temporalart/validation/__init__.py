"""Numerical validation of the dynamics against published equations and phenomena."""

from temporalart.validation.equations import EquationCase, equation_cases, validate_equation
from temporalart.validation.harness import ValidationHarness
from temporalart.validation.results import (
    EquationResult,
    RunState,
    ScenarioResult,
    ValidationMismatch,
    ValidationReport,
)
from temporalart.validation.scenarios import (
    CheckResult,
    ScenarioOutcome,
    ValidationScenario,
    canonical_scenarios,
)

__all__ = [
    "ValidationHarness",
    "validate_equation",
    "EquationCase",
    "equation_cases",
    "ValidationScenario",
    "ScenarioOutcome",
    "CheckResult",
    "canonical_scenarios",
    "RunState",
    "EquationResult",
    "ScenarioResult",
    "ValidationMismatch",
    "ValidationReport",
]
