"""
Unit tests for the dynamics equations.

Verifies derivatives and closed forms against hand-computed values of the
published formulas.
"""

import math

import numpy as np
import pytest
from temporalart.dynamics.equations import (
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
    match_ratio,
    mexican_hat,
    uniform_interaction_matrix,
)
from temporalart.dynamics.updates import bound_violation, clamp, euler_step, max_stable_dt
from temporalart.errors import InvalidParameterError


class TestShuntingDerivative:
    """Test dx/dt = -A x + (B - x)(I + E + s x) - (x - D) J."""

    def test_reference_value(self):
        """Test the published reference input set."""
        d = shunting_derivative(0.5, 1.0, 0.0, 0.3, 0.2, 0.1, 0.05)
        assert abs(d - 0.1625) < 1e-6

    def test_explicit_decay_rate(self):
        """Test that the decay term scales with A."""
        d = shunting_derivative(0.5, 1.0, 0.0, 0.3, 0.2, 0.1, 0.05, decay_rate=1.0)
        assert np.isclose(d, 0.1625 - 0.45)

    def test_rest_is_fixed_point(self):
        """Test zero activity with zero input does not move."""
        assert shunting_derivative(0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0) == 0.0

    def test_excitation_vanishes_at_ceiling(self):
        """Test that excitatory input cannot push past the ceiling."""
        d = shunting_derivative(1.0, 1.0, 0.0, 5.0, 5.0, 0.0, 0.5, decay_rate=0.0)
        assert np.isclose(d, 0.0)

    def test_inhibition_vanishes_at_floor(self):
        """Test that inhibition cannot push below the floor."""
        d = shunting_derivative(-0.2, 1.0, -0.2, 0.0, 0.0, 3.0, 0.0, decay_rate=0.0)
        assert np.isclose(d, 0.0)

    def test_vectorized(self):
        """Test elementwise evaluation on arrays."""
        x = np.array([0.0, 0.5, 1.0])
        d = shunting_derivative(x, 1.0, 0.0, 0.3, 0.2, 0.1, 0.05)
        expected = [shunting_derivative(float(v), 1.0, 0.0, 0.3, 0.2, 0.1, 0.05) for v in x]
        assert d.shape == (3,)
        assert np.allclose(d, expected)

    @pytest.mark.parametrize("kwargs", [
        dict(ceiling=-1.0),
        dict(ceiling=0.0),
        dict(floor=0.5),
        dict(external_input=-0.1),
        dict(excitation=-0.1),
        dict(inhibition=-0.1),
        dict(self_excitation=-0.1),
        dict(decay_rate=-0.1),
        dict(external_input=float("nan")),
    ])
    def test_precondition_violations(self, kwargs):
        """Test that invalid arguments are rejected."""
        args = dict(activation=0.5, ceiling=1.0, floor=0.0, external_input=0.3,
                    excitation=0.2, inhibition=0.1, self_excitation=0.05)
        args.update(kwargs)
        with pytest.raises(InvalidParameterError):
            shunting_derivative(**args)

    def test_invalid_parameter_is_value_error(self):
        """Test that callers catching ValueError also catch parameter errors."""
        with pytest.raises(ValueError):
            shunting_derivative(0.5, -1.0, 0.0, 0.3, 0.2, 0.1, 0.05)


class TestShuntingEquilibrium:
    """Test x* = (B P + D J) / (A + P + J)."""

    def test_equilibrium_value(self):
        """Test the closed form."""
        x = shunting_equilibrium(1.0, 0.0, 0.4, 0.1, 0.2)
        assert np.isclose(x, 0.5 / 0.8)

    def test_derivative_zero_at_equilibrium(self):
        """Test that the derivative vanishes at the equilibrium."""
        x = shunting_equilibrium(1.0, -0.5, 0.4, 0.1, 0.2, decay_rate=0.3)
        d = shunting_derivative(x, 1.0, -0.5, 0.4, 0.1, 0.2, 0.0, decay_rate=0.3)
        assert abs(d) < 1e-12

    def test_silent_unit_does_not_divide_by_zero(self):
        """Test that A = I = E = J = 0 returns rest instead of NaN."""
        x = shunting_equilibrium(1.0, 0.0, 0.0, 0.0, 0.0, decay_rate=0.0)
        assert x == 0.0


class TestTransmitter:
    """Test dz/dt = eps (1 - z) - z (lambda S + mu S^2)."""

    def test_derivative_value(self):
        """Test a hand-computed value."""
        d = transmitter_derivative(0.8, 0.05, 1.0, 0.5, 0.25)
        assert np.isclose(d, 0.05 * 0.2 - 0.8 * 0.75)

    def test_full_stores_without_signal(self):
        """Test that a full transmitter with no signal stays full."""
        assert transmitter_derivative(1.0, 0.05, 0.0, 0.5, 0.25) == 0.0

    def test_depletion_under_signal(self):
        """Test that a signal depletes a full transmitter."""
        assert transmitter_derivative(1.0, 0.05, 0.5, 0.5, 0.25) < 0

    def test_quadratic_depletion_faster(self):
        """Test that strong signals deplete disproportionately."""
        weak = -transmitter_derivative(1.0, 0.0, 0.2, 0.5, 0.25)
        strong = -transmitter_derivative(1.0, 0.0, 0.4, 0.5, 0.25)
        assert strong > 2 * weak

    def test_equilibrium(self):
        """Test z* = eps / (eps + lambda S + mu S^2)."""
        z = transmitter_equilibrium(0.05, 1.0, 0.5, 0.25)
        assert np.isclose(z, 0.0625)
        assert abs(transmitter_derivative(z, 0.05, 1.0, 0.5, 0.25)) < 1e-12

    def test_exact_trajectory_limits(self):
        """Test the exact solution at t = 0 and t -> infinity."""
        assert np.isclose(transmitter_trajectory(0.7, 0.0, 0.05, 1.0, 0.5, 0.25), 0.7)
        assert np.isclose(transmitter_trajectory(0.7, 1e3, 0.05, 1.0, 0.5, 0.25), 0.0625)

    def test_exact_trajectory_time_scales(self):
        """Test depletion after 50 ms, 500 ms and 5 s with the paper defaults."""
        z = [transmitter_trajectory(1.0, t, 0.05, 1.0, 0.5, 0.25) for t in (0.05, 0.5, 5.0)]
        assert 1.0 - z[0] < 0.1
        assert 1.0 - z[1] > 0.2
        assert abs(z[2] - 0.0625) < 0.05

    def test_negative_signal_rejected(self):
        """Test that a negative signal is invalid."""
        with pytest.raises(InvalidParameterError):
            transmitter_derivative(1.0, 0.05, -0.1, 0.5, 0.25)

    def test_gated_signal(self):
        """Test that the output is signal times transmitter."""
        assert np.allclose(gated_signal(np.array([0.5, 1.0]), np.array([0.5, 0.2])), [0.25, 0.2])


class TestPrimacyGradient:
    """Test w(p) = gamma exp(-delta p) + rho exp(-delta (L - 1 - p))."""

    def test_reference_values(self):
        """Test against the formula with a known list length."""
        w = primacy_gradient(np.arange(5), 1.0, 0.15, 0.1, list_length=5)
        expected = [math.exp(-0.15 * p) + 0.1 * math.exp(-0.15 * (4 - p)) for p in range(5)]
        assert np.allclose(w, expected)

    def test_deterministic(self):
        """Test that the same arguments always give the same weight."""
        a = primacy_gradient(3, 1.0, 0.15, 0.1, list_length=9)
        b = primacy_gradient(3, 1.0, 0.15, 0.1, list_length=9)
        assert a == b

    def test_primacy_then_recency(self):
        """Test the gradient falls with position and rises again at the end."""
        w = primacy_gradient(np.arange(20), 1.0, 0.3, 0.5, list_length=20)
        trough = int(np.argmin(w))
        assert 0 < trough < 19
        assert w[0] > w[trough]
        assert w[-1] > w[trough]

    def test_online_storage_full_recency(self):
        """Test that without a list length every item gets the full recency term."""
        w = primacy_gradient(np.arange(4), 1.0, 0.15, 0.1)
        assert np.allclose(w, np.exp(-0.15 * np.arange(4)) + 0.1)

    def test_zero_delta_is_flat(self):
        """Test that no decay gives equal weights."""
        w = primacy_gradient(np.arange(5), 1.0, 0.0, 0.0, list_length=5)
        assert np.allclose(w, 1.0)

    @pytest.mark.parametrize("position", [-1, 1.5])
    def test_invalid_position(self, position):
        """Test that positions must be non-negative integers."""
        with pytest.raises(InvalidParameterError):
            primacy_gradient(position, 1.0, 0.15, 0.1)

    def test_position_beyond_list(self):
        """Test that positions must lie inside the list."""
        with pytest.raises(InvalidParameterError):
            primacy_gradient(5, 1.0, 0.15, 0.1, list_length=5)

    def test_invalid_gamma(self):
        """Test that a non-positive primacy strength is rejected."""
        with pytest.raises(InvalidParameterError):
            primacy_gradient(0, 0.0, 0.15, 0.1)


class TestInstar:
    """Test dW_j/dt = r y_j (x - W_j)."""

    def test_only_active_rows_learn(self):
        """Test that rows with zero postsynaptic activity do not change."""
        W = np.full((2, 3), 0.5)
        x = np.array([1.0, 0.0, 1.0])
        dW = instar_derivative(W, x, np.array([1.0, 0.0]), 0.5)
        assert np.allclose(dW[0], [0.25, -0.25, 0.25])
        assert np.allclose(dW[1], 0.0)

    def test_template_is_fixed_point(self):
        """Test that a learned template stops changing."""
        x = np.array([0.2, 0.8])
        dW = instar_derivative(x[None, :], x, np.array([1.0]), 1.0)
        assert np.allclose(dW, 0.0)


class TestKernels:
    """Test lateral interaction kernels."""

    def test_gaussian_matrix_zero_diagonal(self):
        """Test that units do not connect to themselves."""
        W = gaussian_interaction_matrix(6, 0.3, 2.0)
        assert np.allclose(np.diag(W), 0.0)
        assert np.allclose(W, W.T)

    def test_gaussian_matrix_decays_with_distance(self):
        """Test that nearer units are connected more strongly."""
        W = gaussian_interaction_matrix(6, 0.3, 2.0)
        assert W[0, 1] > W[0, 2] > W[0, 5]
        assert np.isclose(W[0, 1], 0.3 * np.exp(-1 / 8))

    def test_uniform_matrix(self):
        """Test all-to-all connections of equal strength."""
        W = uniform_interaction_matrix(3, 0.1)
        assert np.allclose(W, [[0, 0.1, 0.1], [0.1, 0, 0.1], [0.1, 0.1, 0]])

    def test_mexican_hat_shape(self):
        """Test center excitation and surround inhibition."""
        assert mexican_hat(0.0, 1.0, 3.0) > 0
        assert mexican_hat(3.0, 1.0, 3.0) < 0

    def test_match_ratio(self):
        """Test |min(I, w)| / |I|."""
        assert match_ratio(np.array([1.0, 0.0, 1.0]), np.array([1.0, 1.0, 0.0])) == 0.5
        assert match_ratio(np.array([0.5, 0.5]), np.array([1.0, 1.0])) == 1.0

    def test_match_ratio_zero_pattern(self):
        """Test that an empty input matches nothing instead of dividing by zero."""
        assert match_ratio(np.zeros(3), np.ones(3)) == 0.0


class TestUpdates:
    """Test forward Euler updates and bounds."""

    def test_euler_step(self):
        """Test x + dt * dx/dt without touching the input."""
        x = np.array([0.5, 0.2])
        new = euler_step(x, np.array([1.0, -1.0]), 0.1)
        assert np.allclose(new, [0.6, 0.1])
        assert np.allclose(x, [0.5, 0.2])

    def test_clamp(self):
        """Test saturation into the bounds."""
        assert np.allclose(clamp(np.array([-0.1, 0.5, 1.2]), 0.0, 1.0), [0.0, 0.5, 1.0])

    def test_bound_violation_inside(self):
        """Test that values inside the bounds report nothing."""
        assert bound_violation(np.array([0.0, 0.5, 1.0]), 0.0, 1.0) == (0.0, -1)

    def test_bound_violation_reports_worst(self):
        """Test magnitude and index of the largest escape."""
        magnitude, index = bound_violation(np.array([0.5, 1.1, -0.3]), 0.0, 1.0)
        assert np.isclose(magnitude, 0.3)
        assert index == 2

    def test_bound_violation_non_finite(self):
        """Test that NaN counts as an infinite violation."""
        magnitude, index = bound_violation(np.array([0.5, np.nan]), 0.0, 1.0)
        assert magnitude == float("inf")
        assert index == 1

    def test_max_stable_dt(self):
        """Test dt_max = 1 / max(A + P + J)."""
        assert np.isclose(max_stable_dt(0.1, [0.4, 0.9], [0.0, 0.0]), 1.0)
        assert max_stable_dt(0.0, [0.0], [0.0]) == float("inf")

    def test_stable_step_stays_in_bounds(self):
        """Test that a step at dt_max keeps activity inside [D, B]."""
        x = np.array([0.0, 0.5, 1.0])
        I, J = np.array([5.0, 5.0, 5.0]), np.array([2.0, 2.0, 2.0])
        P = I + 0.1 * x
        dt = max_stable_dt(0.1, P, J)
        new = euler_step(x, shunting_derivative(x, 1.0, -0.5, I, 0.0, J, 0.1), dt)
        assert np.all(new <= 1.0 + 1e-12) and np.all(new >= -0.5 - 1e-12)
