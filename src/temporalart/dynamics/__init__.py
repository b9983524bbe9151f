"""Differential equations, interaction kernels and update rules."""

from temporalart.dynamics.equations import (
    DEFAULT_DECAY,
    gated_signal,
    instar_derivative,
    primacy_gradient,
    shunting_derivative,
    shunting_equilibrium,
    transmitter_derivative,
    transmitter_equilibrium,
    transmitter_trajectory,
)
from temporalart.dynamics.kernels import (
    gaussian_interaction_matrix,
    gaussian_kernel,
    match_ratio,
    mexican_hat,
    uniform_interaction_matrix,
)
from temporalart.dynamics.updates import bound_violation, clamp, euler_step, max_stable_dt

__all__ = [
    "DEFAULT_DECAY",
    "shunting_derivative",
    "shunting_equilibrium",
    "transmitter_derivative",
    "transmitter_equilibrium",
    "transmitter_trajectory",
    "primacy_gradient",
    "gated_signal",
    "instar_derivative",
    "gaussian_kernel",
    "mexican_hat",
    "gaussian_interaction_matrix",
    "uniform_interaction_matrix",
    "match_ratio",
    "euler_step",
    "clamp",
    "bound_violation",
    "max_stable_dt",
]
