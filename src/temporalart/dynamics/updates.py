"""
Update rules for the temporal ART dynamics.

Forward Euler, matching the discretization of the papers:

x(t + dt) = x(t) + dt * dx/dt

followed by a bounds check. Overshoot within a small tolerance is clamped
(saturation); anything larger is reported to the caller as instability.

For the shunting equation the Euler update can be rewritten as

x' = (1 - dt (A + P + J)) x + dt P B + dt J D

with P = I + E + s x. When dt (A + P + J) <= 1 this is a convex
combination of x, 0, B and D, so the update cannot leave [D, B].
"""

from typing import Tuple

import numpy as np


def euler_step(values: np.ndarray, derivative: np.ndarray, dt: float) -> np.ndarray:
    """
    One forward Euler step. Returns a new array; the input is untouched.

    Args:
        values: Current state
        derivative: dx/dt evaluated at values
        dt: Step size

    Returns:
        np.ndarray: values + dt * derivative
    """
    return np.asarray(values, dtype=float) + dt * np.asarray(derivative, dtype=float)


def clamp(values: np.ndarray, lower: float, upper: float) -> np.ndarray:
    """Saturate values into [lower, upper]."""
    return np.clip(values, lower, upper)


def bound_violation(values: np.ndarray, lower: float, upper: float) -> Tuple[float, int]:
    """
    Largest distance outside [lower, upper].

    Returns:
        Tuple of (magnitude, flat index). Magnitude is 0.0 inside the bounds
        and inf for a non-finite value; the index is -1 when nothing escaped.
    """
    flat = np.asarray(values, dtype=float).ravel()
    if flat.size == 0:
        return 0.0, -1

    finite = np.isfinite(flat)
    if not np.all(finite):
        return float("inf"), int(np.argmin(finite))

    excess = np.maximum(flat - upper, lower - flat)
    idx = int(np.argmax(excess))
    if excess[idx] <= 0:
        return 0.0, -1
    return float(excess[idx]), idx


def max_stable_dt(decay_rate: float, excitatory_drive, inhibitory_drive) -> float:
    """
    Largest step for which the Euler shunting update stays within its bounds.

    dt_max = 1 / max_i (A + P_i + J_i)

    Args:
        decay_rate: Passive decay A
        excitatory_drive: P = I + E + s x, per unit (>= 0)
        inhibitory_drive: J, per unit (>= 0)

    Returns:
        float: dt_max, or inf if every unit is silent
    """
    rate = decay_rate + np.asarray(excitatory_drive, dtype=float) + np.asarray(inhibitory_drive, dtype=float)
    peak = float(np.max(rate)) if np.size(rate) else 0.0
    if peak <= 0:
        return float("inf")
    return 1.0 / peak
