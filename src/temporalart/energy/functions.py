"""
Lyapunov energy of a recurrent shunting field.

E = (1/2) A sum_i x_i^2 - (1/2) sum_{i,j} x_i W_ij x_j

The first term penalises activity through passive decay; the second rewards
activity that is supported by the recurrent connections W. For symmetric W
the Cohen-Grossberg theorem guarantees that E is non-increasing along
trajectories of the field, so a vanishing change in E is used as the
convergence signal of the integrator. The value is diagnostic only and never
feeds back into the dynamics.
"""

import numpy as np

from temporalart.errors import InvalidParameterError


def lyapunov_energy(activations: np.ndarray, weights: np.ndarray,
                    decay_rate: float = 1.0) -> float:
    """
    Compute the Lyapunov energy of a field.

    Args:
        activations: Shape (n,) - current activity x
        weights: Shape (n, n) - recurrent connections W
        decay_rate: Passive decay A

    Returns:
        float: Energy; 0.0 for an empty field
    """
    x = np.asarray(activations, dtype=float).ravel()
    if x.size == 0:
        return 0.0

    W = np.asarray(weights, dtype=float)
    if W.ndim != 2 or W.shape[0] != W.shape[1]:
        raise InvalidParameterError("weights", W.shape, "a square matrix")
    if W.shape[0] != x.size:
        raise InvalidParameterError("weights", W.shape,
                                    f"of shape ({x.size}, {x.size}) to match the activations")

    decay_term = 0.5 * decay_rate * np.dot(x, x)
    interaction_term = -0.5 * x @ W @ x
    return float(decay_term + interaction_term)


def energy_change(previous: float, current: float) -> float:
    """Signed energy change between two evaluations."""
    return current - previous
