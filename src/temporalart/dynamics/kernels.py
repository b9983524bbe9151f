"""
Lateral interaction kernels and pattern matching.

Distance-dependent connectivity for on-center off-surround fields:

g(d) = K exp(-d^2 / (2 sigma^2))                     (Gaussian)
h(d) = exp(-d^2 / (2 s_e^2)) - 0.5 exp(-d^2 / (2 s_i^2))   (Mexican hat)

Interaction matrices never connect a unit to itself; self-excitation is a
separate term of the shunting equation.
"""

import numpy as np


def gaussian_kernel(distance, strength: float, width: float):
    """
    Gaussian connection strength at a given distance.

    Args:
        distance: Distance(s) between units
        strength: Peak strength K
        width: Standard deviation sigma (> 0)

    Returns:
        Kernel value(s)
    """
    d = np.asarray(distance, dtype=float)
    return strength * np.exp(-d * d / (2.0 * width * width))


def mexican_hat(distance, excitation_range: float, inhibition_range: float):
    """
    Difference-of-Gaussians connectivity: narrow excitation, broad inhibition.

    Positive near the center and negative in the surround when
    inhibition_range > excitation_range.
    """
    d = np.asarray(distance, dtype=float)
    excitation = np.exp(-d * d / (2.0 * excitation_range * excitation_range))
    inhibition = 0.5 * np.exp(-d * d / (2.0 * inhibition_range * inhibition_range))
    return excitation - inhibition


def distance_matrix(n: int) -> np.ndarray:
    """|i - j| for all unit pairs of a one-dimensional field."""
    idx = np.arange(n)
    return np.abs(idx[:, None] - idx[None, :]).astype(float)


def gaussian_interaction_matrix(n: int, strength: float, width: float) -> np.ndarray:
    """
    Shape (n, n) Gaussian lateral connections with a zero diagonal.
    """
    W = gaussian_kernel(distance_matrix(n), strength, width)
    np.fill_diagonal(W, 0.0)
    return W


def uniform_interaction_matrix(n: int, strength: float) -> np.ndarray:
    """Every unit connected to every other with the same strength."""
    W = np.full((n, n), float(strength))
    np.fill_diagonal(W, 0.0)
    return W


def match_ratio(pattern: np.ndarray, template: np.ndarray) -> float:
    """
    ART match |min(I, w)| / |I| between an input pattern and a template.

    Args:
        pattern: Shape (d,) - non-negative input
        template: Shape (d,) - non-negative learned template

    Returns:
        float: Match in [0, 1]; 0.0 for an all-zero pattern
    """
    total = np.sum(np.abs(pattern))
    if total < 1e-10:
        return 0.0
    return float(np.sum(np.minimum(pattern, template)) / total)
