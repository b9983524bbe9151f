"""
Equation-level validation.

Each case computes a value with the dynamics engine and the value the
published equation (or its closed-form solution) says it should have.
"""

import math
from dataclasses import dataclass
from typing import Callable, List, Tuple

import numpy as np

from temporalart.dynamics.equations import (
    primacy_gradient,
    shunting_derivative,
    shunting_equilibrium,
    transmitter_derivative,
    transmitter_equilibrium,
    transmitter_trajectory,
)
from temporalart.dynamics.updates import euler_step
from temporalart.energy.functions import lyapunov_energy
from temporalart.validation.results import EquationResult

DEFAULT_TOLERANCE = 1e-6


def validate_equation(name: str, computed, expected, tolerance: float = DEFAULT_TOLERANCE) -> EquationResult:
    """
    Compare a computed value with its expected value.

    Works on scalars and arrays. A shape mismatch or a non-finite value
    fails with an infinite delta.

    Args:
        name: Name of the check
        computed: Value from the dynamics engine
        expected: Reference value
        tolerance: Largest allowed absolute deviation

    Returns:
        EquationResult with the largest deviation and where it occurred
    """
    c = np.asarray(computed, dtype=float)
    e = np.asarray(expected, dtype=float)
    if c.shape != e.shape:
        return EquationResult(name, False, math.inf, tolerance,
                              error=f"shape {c.shape} does not match expected {e.shape}")
    if c.size == 0:
        return EquationResult(name, True, 0.0, tolerance)

    diff = np.abs(c - e)
    if not np.all(np.isfinite(diff)):
        bad = np.unravel_index(int(np.argmin(np.isfinite(diff))), diff.shape)
        return EquationResult(name, False, math.inf, tolerance,
                              location=tuple(int(i) for i in bad) or None,
                              error="non-finite value")

    worst = np.unravel_index(int(np.argmax(diff)), diff.shape)
    delta = float(diff[worst])
    location = tuple(int(i) for i in worst) or None
    return EquationResult(name, delta <= tolerance, delta, tolerance, location=location)


@dataclass(frozen=True)
class EquationCase:
    """A named check producing (computed, expected)."""

    name: str
    compute: Callable[[], Tuple[object, object]]
    tolerance: float = DEFAULT_TOLERANCE


def _shunting_reference():
    computed = shunting_derivative(0.5, 1.0, 0.0, 0.3, 0.2, 0.1, 0.05)
    # -0.1 * 0.5 + (1 - 0.5)(0.3 + 0.2 + 0.05 * 0.5) - 0.5 * 0.1
    return computed, 0.1625


def _shunting_rest():
    return shunting_derivative(0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0), 0.0


def _shunting_equilibrium(dt: float = 0.01, steps: int = 3000):
    inputs, excitation, inhibition = 0.4, 0.1, 0.2
    x = 0.0
    for _ in range(steps):
        x = float(euler_step(x, shunting_derivative(x, 1.0, 0.0, inputs, excitation, inhibition, 0.0), dt))
    return x, shunting_equilibrium(1.0, 0.0, inputs, excitation, inhibition)


def _transmitter_equilibrium(dt: float = 0.01, steps: int = 4000):
    z = 1.0
    for _ in range(steps):
        z = float(euler_step(z, transmitter_derivative(z, 0.05, 0.8, 0.5, 0.25), dt))
    return z, transmitter_equilibrium(0.05, 0.8, 0.5, 0.25)


def _transmitter_recovered():
    return transmitter_derivative(1.0, 0.05, 0.0, 0.5, 0.25), 0.0


def _transmitter_exact(dt: float = 1e-4, duration: float = 1.0):
    signals = np.array([0.0, 0.25, 0.5, 1.0])
    z = np.full(signals.shape, 0.8)
    for _ in range(int(round(duration / dt))):
        z = euler_step(z, transmitter_derivative(z, 0.05, signals, 0.5, 0.25), dt)
    return z, transmitter_trajectory(0.8, duration, 0.05, signals, 0.5, 0.25)


def _primacy_reference():
    positions = np.arange(5)
    computed = primacy_gradient(positions, 1.0, 0.15, 0.1, list_length=5)
    expected = [math.exp(-0.15 * p) + 0.1 * math.exp(-0.15 * (4 - p)) for p in range(5)]
    return computed, expected


def _primacy_online():
    # Unknown list length: every item is the most recent one.
    computed = primacy_gradient(np.arange(3), 1.0, 0.15, 0.1)
    return computed, [1.1, math.exp(-0.15) + 0.1, math.exp(-0.3) + 0.1]


def _lyapunov_reference():
    x = np.array([0.5, 0.2])
    W = np.array([[0.0, 0.3], [0.3, 0.0]])
    # 0.5 * (0.25 + 0.04) - 0.5 * (2 * 0.5 * 0.2 * 0.3)
    return lyapunov_energy(x, W, 1.0), 0.115


def _lyapunov_empty():
    return lyapunov_energy(np.zeros(0), np.zeros((0, 0))), 0.0


def equation_cases() -> List[EquationCase]:
    """The standard equation suite."""
    return [
        EquationCase("shunting_reference_value", _shunting_reference),
        EquationCase("shunting_rest_is_fixed_point", _shunting_rest),
        EquationCase("shunting_equilibrium", _shunting_equilibrium),
        EquationCase("transmitter_equilibrium", _transmitter_equilibrium),
        EquationCase("transmitter_full_recovery_fixed_point", _transmitter_recovered),
        EquationCase("transmitter_exact_solution", _transmitter_exact, tolerance=1e-4),
        EquationCase("primacy_gradient_reference", _primacy_reference),
        EquationCase("primacy_gradient_online", _primacy_online),
        EquationCase("lyapunov_energy_reference", _lyapunov_reference),
        EquationCase("lyapunov_energy_empty_field", _lyapunov_empty),
    ]
