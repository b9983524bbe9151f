"""
Unit tests for the time-scale separated integrator.

Verifies purity, determinism, tier scheduling, convergence and the
instability policy.
"""

import numpy as np
import pytest
from temporalart.dynamics.kernels import uniform_interaction_matrix
from temporalart.errors import InvalidParameterError, NumericalInstabilityError
from temporalart.integrator import (
    DynamicsModule,
    IntegrationStatus,
    Integrator,
    InstarLearning,
    Scheduler,
    ShuntingField,
    TransmitterGate,
)
from temporalart.parameters import (
    IntegratorParameters,
    ShuntingParameters,
    TimeScaleParameters,
    TimeScaleTier,
    TransmitterParameters,
)
from temporalart.validation.scenarios import transmitter_time_scales
from temporalart.state import DynamicsState


def decaying_field(size=4, decay=1.0):
    return ShuntingField("field", size, ShuntingParameters(decay_rate=decay, self_excitation=0.1),
                         inhibition_matrix=uniform_interaction_matrix(size, 0.2))


class Exploding(DynamicsModule):
    """Module whose derivative pushes far past its bounds."""

    def __init__(self):
        super().__init__("exploding", "activation", TimeScaleTier.WORKING_MEMORY, 0.0, 1.0)

    def derivative(self, state):
        return np.full(state["activation"].shape, 1e4)


class Overshooting(DynamicsModule):
    """Module that overshoots its ceiling by a hair."""

    def __init__(self, amount):
        super().__init__("overshoot", "activation", TimeScaleTier.WORKING_MEMORY, 0.0, 1.0)
        self.amount = amount

    def derivative(self, state):
        return np.full(state["activation"].shape, self.amount / 0.001)


class TestScheduler:
    """Test tier firing."""

    def test_all_tiers_fire_at_zero(self):
        assert Scheduler().due(0) == list(TimeScaleTier)

    def test_fast_to_slow(self):
        due = Scheduler().due(250)
        assert due == [TimeScaleTier.WORKING_MEMORY, TimeScaleTier.MASKING_FIELD,
                       TimeScaleTier.TRANSMITTER, TimeScaleTier.WEIGHT]

    def test_only_working_memory(self):
        assert Scheduler().due(3) == [TimeScaleTier.WORKING_MEMORY]

    def test_expected_counts(self):
        counts = Scheduler().expected_counts(0, 1000)
        assert counts[TimeScaleTier.WORKING_MEMORY] == 1000
        assert counts[TimeScaleTier.MASKING_FIELD] == 200
        assert counts[TimeScaleTier.TRANSMITTER] == 20
        assert counts[TimeScaleTier.WEIGHT] == 4

    def test_expected_counts_offset(self):
        """Test counting from a step that is not a multiple of the ratio."""
        counts = Scheduler().expected_counts(1, 50)
        assert counts[TimeScaleTier.TRANSMITTER] == 1
        assert counts[TimeScaleTier.WEIGHT] == 0


class TestStep:
    """Test single steps."""

    def test_pure(self):
        """Test that step() never mutates its input."""
        integrator = Integrator([decaying_field()])
        state = DynamicsState.create(activation=np.array([0.5, 0.4, 0.3, 0.2]))
        before = state["activation"].copy()
        new = integrator.step(state)
        assert np.array_equal(state["activation"], before)
        assert new is not state
        assert new.step == 1
        assert np.isclose(new.time, 0.001)

    def test_deterministic(self):
        """Test identical inputs give identical outputs."""
        integrator = Integrator([decaying_field()])
        state = DynamicsState.create(activation=np.array([0.5, 0.4, 0.3, 0.2]))
        a = integrator.advance(state, 100)
        b = integrator.advance(state, 100)
        assert np.array_equal(a.values("activation"), b.values("activation"))

    def test_euler_update(self):
        """Test one step equals x + dt * dx/dt."""
        field = decaying_field()
        integrator = Integrator([field])
        state = DynamicsState.create(activation=np.array([0.5, 0.4, 0.3, 0.2]))
        expected = state["activation"] + 0.001 * field.derivative(state)
        assert np.allclose(integrator.step(state)["activation"], expected)

    def test_custom_dt(self):
        integrator = Integrator([decaying_field()])
        state = DynamicsState.create(activation=np.full(4, 0.5))
        assert np.isclose(integrator.step(state, dt=0.01).time, 0.01)
        with pytest.raises(InvalidParameterError):
            integrator.step(state, dt=-0.01)

    def test_slow_tier_waits(self):
        """Test that transmitters only move on their own steps."""
        gate = TransmitterGate("gate", 1, TransmitterParameters())
        integrator = Integrator([gate])
        state = DynamicsState.create(activation=np.array([1.0]), transmitter=np.array([1.0]))
        trajectory = integrator.advance(state, 60)
        z = trajectory.values("transmitter")[:, 0]
        assert z[1] < 1.0
        assert np.all(z[1:51] == z[1])
        assert z[51] < z[50]

    def test_slow_tier_sees_fast_update(self):
        """Test that a slower tier reads values written earlier in the same step."""
        field = ShuntingField("wm", 1, ShuntingParameters(decay_rate=0.1, self_excitation=0.0,
                                                          excitatory_strength=0.0,
                                                          inhibitory_strength=0.0),
                              input_fn=lambda s: 10.0)
        gate = TransmitterGate("gate", 1, TransmitterParameters())
        integrator = Integrator([gate, field])
        state = DynamicsState.create(activation=np.array([0.0]), transmitter=np.array([1.0]))
        new = integrator.step(state)
        # With the stale activation (0) the transmitter would not move.
        assert new["transmitter"][0] < 1.0

    def test_duplicate_owner_rejected(self):
        with pytest.raises(InvalidParameterError):
            Integrator([decaying_field(), decaying_field()])


class TestBounds:
    """Test the instability policy."""

    def test_instability_raised(self):
        integrator = Integrator([Exploding()])
        state = DynamicsState.create(activation=np.array([0.5, 0.5]))
        with pytest.raises(NumericalInstabilityError) as info:
            integrator.step(state)
        assert info.value.subsystem == "exploding"
        assert info.value.variable == "activation"
        assert info.value.step == 0
        assert info.value.magnitude > 1.0

    def test_tiny_overshoot_clamped(self):
        integrator = Integrator([Overshooting(1e-12)],
                                IntegratorParameters(bound_tolerance=1e-9))
        state = DynamicsState.create(activation=np.array([1.0]))
        assert integrator.step(state)["activation"][0] == 1.0

    def test_overshoot_beyond_tolerance(self):
        integrator = Integrator([Overshooting(1e-3)],
                                IntegratorParameters(bound_tolerance=1e-9))
        state = DynamicsState.create(activation=np.array([1.0]))
        with pytest.raises(NumericalInstabilityError):
            integrator.step(state)

    def test_activation_stays_bounded_under_strong_input(self):
        field = ShuntingField.from_parameters("driven", 6, ShuntingParameters(),
                                              input_fn=lambda s: np.linspace(0, 50, 6))
        integrator = Integrator([field])
        trajectory = integrator.advance(integrator.initial_state(), 2000, record_every=10)
        x = trajectory.values("activation")
        assert np.all(x >= 0.0) and np.all(x <= 1.0)


# Valid ratios with a 1000x transmitter tier and a 5000x weight tier.
SLOW_SCALES = TimeScaleParameters(working_memory_ratio=5, masking_field_ratio=50,
                                  transmitter_ratio=1000, weight_ratio=5000)


def fastest_gate():
    return TransmitterGate("gate", 1, TransmitterParameters(recovery_rate=1.0, linear_depletion=1.0,
                                                            quadratic_depletion=1.0))


class TestStepSize:
    """Test the stability limits checked when an integrator is built."""

    def test_shunting_limit(self):
        # 1 / (A + s B + sum_k J_ik) = 1 / (1 + 0.1 + 3 * 0.2)
        assert decaying_field().max_stable_step({}) == pytest.approx(1 / 1.7)

    def test_transmitter_limit_uses_signal_ceiling(self):
        gate = fastest_gate()
        assert gate.max_stable_step({}) == pytest.approx(1 / 3)
        assert gate.max_stable_step({"activation": (0.0, 2.0)}) == pytest.approx(1 / 7)

    def test_instar_limit(self):
        learning = InstarLearning("templates", 0.5, "pattern", "cells")
        assert learning.max_stable_step({"cells": (0.0, 1.0)}) == pytest.approx(2.0)

    def test_fastest_rates_accepted_at_default_scales(self):
        integrator = Integrator([fastest_gate()])
        state = DynamicsState.create(activation=np.array([1.0]), transmitter=np.array([1.0]))
        z = integrator.advance(state, 500).values("transmitter")
        assert np.all(z >= 0.0) and np.all(z <= 1.0)

    def test_slow_transmitter_tier_rejected(self):
        """Test that a 1 s transmitter step with rate 3 fails before running."""
        with pytest.raises(InvalidParameterError) as info:
            Integrator([fastest_gate()], time_scales=SLOW_SCALES)
        assert info.value.name == "dt"

    def test_slow_weight_tier_rejected(self):
        learning = InstarLearning("templates", 1.0, "pattern", "cells")
        with pytest.raises(InvalidParameterError):
            Integrator([learning], time_scales=SLOW_SCALES)

    def test_custom_step_checked(self):
        integrator = Integrator([fastest_gate()])
        state = DynamicsState.create(activation=np.array([1.0]), transmitter=np.array([1.0]))
        with pytest.raises(InvalidParameterError):
            integrator.step(state, dt=0.01)

    def test_base_step_capped(self):
        with pytest.raises(InvalidParameterError):
            IntegratorParameters(dt=0.03)

    def test_habituation_at_finer_step(self):
        """Test that a finer valid base step still meets the habituation time scales."""
        scenario = transmitter_time_scales(IntegratorParameters(dt=0.0005))
        outcome = scenario.run()
        assert scenario.check(outcome).passed


class TestIntegrate:
    """Test convergence and budget exhaustion."""

    def test_converges_to_rest(self):
        integrator = Integrator([decaying_field()])
        np.random.seed(42)
        state = DynamicsState.create(activation=np.random.uniform(0.2, 0.9, 4))
        result = integrator.integrate(state)
        assert result.status is IntegrationStatus.CONVERGED
        assert result.converged
        assert result.steps < 20000
        assert np.max(result.final_state["activation"]) < 1e-3

    def test_energy_non_increasing(self):
        integrator = Integrator([decaying_field()])
        state = DynamicsState.create(activation=np.array([0.9, 0.7, 0.5, 0.3]))
        result = integrator.integrate(state, max_steps=3000)
        E = result.trajectory.energy_array()
        assert np.all(np.diff(E) <= 1e-12)

    def test_budget_exhausted_is_not_an_error(self):
        integrator = Integrator([decaying_field()])
        state = DynamicsState.create(activation=np.full(4, 0.5))
        result = integrator.integrate(state, max_steps=10)
        assert result.status is IntegrationStatus.STEP_BUDGET_EXHAUSTED
        assert result.steps == 10
        assert result.final_state.step == 10

    def test_tier_counts(self):
        field = decaying_field()
        gate = TransmitterGate("gate", 4, TransmitterParameters(), signal_variable="activation")
        integrator = Integrator([field, gate])
        state = integrator.initial_state(activation=np.full(4, 0.5))
        result = integrator.integrate(state, max_steps=500)
        assert result.tier_counts[TimeScaleTier.WORKING_MEMORY] == result.steps
        expected = integrator.scheduler.expected_counts(0, result.steps)
        assert result.tier_counts[TimeScaleTier.TRANSMITTER] == expected[TimeScaleTier.TRANSMITTER]
        # Tiers without modules are not counted.
        assert result.tier_counts[TimeScaleTier.MASKING_FIELD] == 0

    def test_without_energy_uses_state_change(self):
        """Test that modules without energy can still converge."""
        gate = TransmitterGate("gate", 1, TransmitterParameters())
        integrator = Integrator([gate], IntegratorParameters(convergence_epsilon=1e-8))
        state = DynamicsState.create(activation=np.array([1.0]), transmitter=np.array([1.0]))
        result = integrator.integrate(state, max_steps=40000)
        assert result.converged
        assert np.isclose(result.final_state["transmitter"][0], 0.0625, atol=1e-6)

    def test_record_every(self):
        integrator = Integrator([decaying_field()])
        state = DynamicsState.create(activation=np.full(4, 0.5))
        trajectory = integrator.advance(state, 100, record_every=25)
        assert len(trajectory) == 5
        assert trajectory.final.step == 100


class TestInstarLearning:
    """Test learning on the weight tier."""

    def test_template_moves_toward_input(self):
        learning = InstarLearning("templates", 1.0, presynaptic_variable="pattern",
                                  postsynaptic_variable="cells")
        integrator = Integrator([learning])
        state = DynamicsState.create(pattern=np.array([1.0, 0.0]), cells=np.array([1.0]),
                                     weights=np.array([[0.5, 0.5]]))
        trajectory = integrator.advance(state, 1000)
        W = trajectory.final["weights"][0]
        assert W[0] > 0.5 and W[1] < 0.5
        assert trajectory.tier_counts[TimeScaleTier.WEIGHT] == 4

    def test_invalid_learning_rate(self):
        with pytest.raises(InvalidParameterError):
            InstarLearning("templates", 0.0, "pattern", "cells")
