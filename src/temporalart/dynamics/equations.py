"""
Differential equations of the temporal ART subsystems.

Each function returns the instantaneous derivative (or a closed-form
solution used as a validation reference) and works elementwise on scalars
or numpy arrays.

1. Shunting on-center off-surround network (Grossberg 1973)
   dx/dt = -A x + (B - x)(I + E + s x) - (x - D) J

2. Habituative transmitter gate (Kazerounian & Grossberg 2014, Eq. 7)
   dz/dt = eps (1 - z) - z (lambda S + mu S^2)

3. Primacy gradient of item-order working memory (STORE 2)
   w(p) = gamma exp(-delta p) + rho exp(-delta (L - 1 - p))

4. Instar learning of list-chunk templates
   dW_j/dt = r y_j (x - W_j)
"""

from typing import Optional, Union

import numpy as np

from temporalart.errors import InvalidParameterError

ArrayLike = Union[float, np.ndarray]

# Passive decay A used when the caller does not give one (paper default).
DEFAULT_DECAY = 0.1


def _as_result(value: np.ndarray) -> ArrayLike:
    return float(value) if np.ndim(value) == 0 else value


def _non_negative(name: str, value) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if not np.all(np.isfinite(arr)):
        raise InvalidParameterError(name, value, "finite")
    if np.any(arr < 0):
        raise InvalidParameterError(name, value, ">= 0")
    return arr


def _check_bounds(ceiling: float, floor: float):
    if not np.isfinite(ceiling) or ceiling <= 0:
        raise InvalidParameterError("ceiling", ceiling, "> 0")
    if not np.isfinite(floor) or floor > 0:
        raise InvalidParameterError("floor", floor, "<= 0")


def shunting_derivative(activation: ArrayLike, ceiling: float, floor: float,
                        external_input: ArrayLike, excitation: ArrayLike,
                        inhibition: ArrayLike, self_excitation: float,
                        decay_rate: float = DEFAULT_DECAY) -> ArrayLike:
    """
    Compute dx/dt of a shunting network.

    dx/dt = -A x + (B - x)(I + E + s x) - (x - D) J

    The excitatory term vanishes as x approaches the ceiling B and the
    inhibitory term vanishes as x approaches the floor D, which is what keeps
    activity inside [D, B] for a small enough step.

    Args:
        activation: Current activity x
        ceiling: Upper bound B (> 0)
        floor: Lower bound D (<= 0)
        external_input: Bottom-up input I (>= 0)
        excitation: Lateral excitation E (>= 0)
        inhibition: Lateral inhibition J (>= 0)
        self_excitation: Recurrent gain s (>= 0)
        decay_rate: Passive decay A (>= 0)

    Returns:
        Derivative with the shape of the broadcast arguments
    """
    _check_bounds(ceiling, floor)
    x = np.asarray(activation, dtype=float)
    I = _non_negative("external_input", external_input)
    E = _non_negative("excitation", excitation)
    J = _non_negative("inhibition", inhibition)
    s = float(_non_negative("self_excitation", self_excitation))
    A = float(_non_negative("decay_rate", decay_rate))

    drive = I + E + s * x
    derivative = -A * x + (ceiling - x) * drive - (x - floor) * J
    return _as_result(derivative)


def shunting_equilibrium(ceiling: float, floor: float, external_input: ArrayLike,
                         excitation: ArrayLike, inhibition: ArrayLike,
                         decay_rate: float = DEFAULT_DECAY) -> ArrayLike:
    """
    Closed-form equilibrium of a shunting unit with constant inputs and no
    self-excitation.

    x* = (B (I + E) + D J) / (A + I + E + J)

    A fully silent unit (A = I = E = J = 0) has no unique equilibrium; its
    resting value 0 is returned instead of dividing by zero.
    """
    _check_bounds(ceiling, floor)
    P = _non_negative("external_input", external_input) + _non_negative("excitation", excitation)
    J = _non_negative("inhibition", inhibition)
    A = float(_non_negative("decay_rate", decay_rate))

    denominator = A + P + J
    numerator = ceiling * P + floor * J
    safe = np.where(denominator > 0, denominator, 1.0)
    return _as_result(np.where(denominator > 0, numerator / safe, 0.0))


def transmitter_derivative(level: ArrayLike, recovery_rate: float,
                           depletion_signal: ArrayLike, linear_depletion: float,
                           quadratic_depletion: float) -> ArrayLike:
    """
    Compute dz/dt of a habituative transmitter gate.

    dz/dt = eps (1 - z) - z (lambda S + mu S^2)

    The transmitter recovers toward 1 at rate eps and is depleted by the
    gated signal S; the quadratic term makes sustained strong signals
    habituate faster than weak ones.

    Args:
        level: Current transmitter level z
        recovery_rate: eps (>= 0)
        depletion_signal: Presynaptic signal S (>= 0)
        linear_depletion: lambda (>= 0)
        quadratic_depletion: mu (>= 0)

    Returns:
        Derivative with the shape of the broadcast arguments
    """
    z = np.asarray(level, dtype=float)
    S = _non_negative("depletion_signal", depletion_signal)
    eps = float(_non_negative("recovery_rate", recovery_rate))
    lam = float(_non_negative("linear_depletion", linear_depletion))
    mu = float(_non_negative("quadratic_depletion", quadratic_depletion))

    derivative = eps * (1.0 - z) - z * (lam * S + mu * S * S)
    return _as_result(derivative)


def transmitter_equilibrium(recovery_rate: float, depletion_signal: ArrayLike,
                            linear_depletion: float, quadratic_depletion: float) -> ArrayLike:
    """z* = eps / (eps + lambda S + mu S^2)."""
    S = _non_negative("depletion_signal", depletion_signal)
    eps = float(_non_negative("recovery_rate", recovery_rate))
    rate = eps + linear_depletion * S + quadratic_depletion * S * S
    safe = np.where(rate > 0, rate, 1.0)
    # With no recovery and no depletion the level never moves; report full stores.
    return _as_result(np.where(rate > 0, eps / safe, 1.0))


def transmitter_trajectory(initial_level: ArrayLike, elapsed: float, recovery_rate: float,
                           depletion_signal: ArrayLike, linear_depletion: float,
                           quadratic_depletion: float) -> ArrayLike:
    """
    Exact solution of the transmitter equation for a constant signal.

    z(t) = z* + (z0 - z*) exp(-(eps + lambda S + mu S^2) t)
    """
    S = _non_negative("depletion_signal", depletion_signal)
    z0 = np.asarray(initial_level, dtype=float)
    rate = recovery_rate + linear_depletion * S + quadratic_depletion * S * S
    z_star = transmitter_equilibrium(recovery_rate, S, linear_depletion, quadratic_depletion)
    return _as_result(z_star + (z0 - z_star) * np.exp(-rate * elapsed))


def primacy_gradient(position, gamma: float, delta: float, recency: float,
                     list_length: Optional[int] = None) -> ArrayLike:
    """
    Input weight of the item at a list position (0-based).

    w(p) = gamma exp(-delta p) + recency exp(-delta (L - 1 - p))

    The first term is the primacy gradient: early items are stored more
    strongly. The second term boosts items near the end of a list of length
    L. During online storage the list length is not known yet; the item
    being stored is then the most recent one and receives the full recency
    term.

    Args:
        position: Item position(s), non-negative integers
        gamma: Primacy strength (> 0)
        delta: Decay of the gradient per position (>= 0)
        recency: Recency boost (>= 0)
        list_length: Length of the complete list, if known

    Returns:
        Weight(s) for the given position(s)
    """
    p = np.asarray(position)
    if not np.issubdtype(p.dtype, np.integer) or np.any(p < 0):
        raise InvalidParameterError("position", position, "a non-negative integer")
    if not np.isfinite(gamma) or gamma <= 0:
        raise InvalidParameterError("gamma", gamma, "> 0")
    if not np.isfinite(delta) or delta < 0:
        raise InvalidParameterError("delta", delta, ">= 0")
    if not np.isfinite(recency) or recency < 0:
        raise InvalidParameterError("recency", recency, ">= 0")

    if list_length is None:
        distance_from_end = np.zeros_like(p, dtype=float)
    else:
        if list_length < 1 or np.any(p >= list_length):
            raise InvalidParameterError("list_length", list_length,
                                        "greater than every position")
        distance_from_end = (list_length - 1 - p).astype(float)

    weight = gamma * np.exp(-delta * p) + recency * np.exp(-delta * distance_from_end)
    return _as_result(weight)


def gated_signal(activation: ArrayLike, transmitter: ArrayLike) -> ArrayLike:
    """Output of a habituative gate: the signal times the transmitter left."""
    return _as_result(np.asarray(activation, dtype=float) * np.asarray(transmitter, dtype=float))


def instar_derivative(weights: np.ndarray, presynaptic: np.ndarray,
                      postsynaptic: np.ndarray, learning_rate: float) -> np.ndarray:
    """
    Instar learning: dW_j/dt = r y_j (x - W_j).

    Args:
        weights: Shape (m, n) - one template row per postsynaptic cell
        presynaptic: Shape (n,) or (m, n) - pattern each row tracks
        postsynaptic: Shape (m,) - gating activity y
        learning_rate: r (>= 0)

    Returns:
        np.ndarray: Shape (m, n)
    """
    rate = float(_non_negative("learning_rate", learning_rate))
    y = np.asarray(postsynaptic, dtype=float).reshape(-1, 1)
    return rate * y * (np.asarray(presynaptic, dtype=float) - weights)
