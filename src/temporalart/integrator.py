"""
Time-scale separated forward Euler integrator.

Every state variable is owned by exactly one DynamicsModule, and every module
belongs to one TimeScaleTier. A tier with update ratio r is integrated once
every r base steps with step size r * dt, so slow processes (transmitter
habituation, weight learning) advance on their own clock while fast
working-memory activity is updated every step:

    base step k:  WM  (every step)
                  MF  (k % 5 == 0)
                  TR  (k % 50 == 0)
                  W   (k % 250 == 0)

Tiers fire fast to slow within a step, and a slower tier sees the variables
the faster tiers have just written. Modules within one tier all read the same
snapshot.

step() is a pure function of its input snapshot. Values that overshoot their
bounds by less than bound_tolerance are clamped (saturation); anything larger,
or a non-finite value, raises NumericalInstabilityError. A step size that
would carry any tier past its Euler stability limit is rejected when the
integrator is built.

integrate() stops when the Lyapunov energy changes by less than
convergence_epsilon on `patience` consecutive checks. A check only happens on
steps where a module carrying energy was updated; on other steps the energy
cannot move and would fake convergence.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from temporalart.dynamics.equations import (
    instar_derivative,
    shunting_derivative,
    transmitter_derivative,
)
from temporalart.dynamics.kernels import gaussian_interaction_matrix
from temporalart.dynamics.updates import bound_violation, clamp, euler_step, max_stable_dt
from temporalart.energy.functions import lyapunov_energy
from temporalart.errors import InvalidParameterError, NumericalInstabilityError
from temporalart.parameters import (
    IntegratorParameters,
    ShuntingParameters,
    TimeScaleParameters,
    TimeScaleTier,
    TransmitterParameters,
)
from temporalart.state import DynamicsState

logger = logging.getLogger(__name__)

InputFunction = Callable[[DynamicsState], np.ndarray]
SignalFunction = Callable[[np.ndarray], np.ndarray]

TIER_ORDER: Tuple[TimeScaleTier, ...] = tuple(TimeScaleTier)


def rectified(x: np.ndarray) -> np.ndarray:
    """Default output signal f(x) = max(x, 0)."""
    return np.maximum(x, 0.0)


class DynamicsModule:
    """
    A subsystem that owns one state variable.

    Subclasses implement derivative(); modules that define a Lyapunov
    function also implement energy().
    """

    def __init__(self, name: str, variable: str, tier: TimeScaleTier,
                 lower: float, upper: float):
        if lower > upper:
            raise InvalidParameterError("lower", lower, f"<= upper ({upper})")
        self.name = name
        self.variable = variable
        self.tier = tier
        self.lower = lower
        self.upper = upper

    def derivative(self, state: DynamicsState) -> np.ndarray:
        raise NotImplementedError

    def energy(self, state: DynamicsState) -> Optional[float]:
        return None

    def max_stable_step(self, bounds: Dict[str, Tuple[float, float]]) -> float:
        """
        Largest tier step for which one Euler update cannot leave [lower, upper].

        Args:
            bounds: (lower, upper) of every variable owned in the integrator

        Returns:
            float: Step limit in seconds; inf when no limit is known
        """
        return float("inf")

    @property
    def has_energy(self) -> bool:
        return type(self).energy is not DynamicsModule.energy

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, variable={self.variable!r}, tier={self.tier.name})"


class ShuntingField(DynamicsModule):
    """
    Recurrent shunting on-center off-surround field.

    dx_i/dt = -A x_i + (B - x_i)(I_i + sum_k E_ik f(x_k) + s x_i)
              - (x_i - D) sum_k J_ik f(x_k)

    Args:
        name: Module name used in logs and instability reports
        size: Number of units
        parameters: Shunting parameters (decay, bounds, self-excitation)
        input_fn: Maps the current snapshot to bottom-up input I (>= 0);
            None means no input
        excitation_matrix: Lateral excitation E, shape (size, size), >= 0
        inhibition_matrix: Lateral inhibition J, shape (size, size), >= 0
        signal_fn: Output signal f; rectified linear by default
        variable: State variable the field owns
        tier: Time-scale tier the field is integrated on
    """

    def __init__(self, name: str, size: int, parameters: ShuntingParameters,
                 input_fn: Optional[InputFunction] = None,
                 excitation_matrix: Optional[np.ndarray] = None,
                 inhibition_matrix: Optional[np.ndarray] = None,
                 signal_fn: Optional[SignalFunction] = None,
                 variable: str = "activation",
                 tier: TimeScaleTier = TimeScaleTier.WORKING_MEMORY):
        super().__init__(name, variable, tier, parameters.floor, parameters.ceiling)
        if size < 1:
            raise InvalidParameterError("size", size, ">= 1")
        self.size = size
        self.parameters = parameters
        self.input_fn = input_fn
        self.signal_fn = signal_fn or rectified
        self.excitation_matrix = self._check_matrix("excitation_matrix", excitation_matrix)
        self.inhibition_matrix = self._check_matrix("inhibition_matrix", inhibition_matrix)

    def _check_matrix(self, name: str, matrix: Optional[np.ndarray]) -> np.ndarray:
        if matrix is None:
            return np.zeros((self.size, self.size))
        M = np.array(matrix, dtype=float)
        if M.shape != (self.size, self.size):
            raise InvalidParameterError(name, M.shape, f"of shape ({self.size}, {self.size})")
        if np.any(M < 0) or not np.all(np.isfinite(M)):
            raise InvalidParameterError(name, "matrix", "finite and non-negative")
        M.setflags(write=False)
        return M

    @classmethod
    def from_parameters(cls, name: str, size: int, parameters: ShuntingParameters,
                        input_fn: Optional[InputFunction] = None, **kwargs) -> "ShuntingField":
        """Field with Gaussian lateral excitation and inhibition built from the parameters."""
        excitation = gaussian_interaction_matrix(size, parameters.excitatory_strength,
                                                 parameters.excitatory_range)
        inhibition = gaussian_interaction_matrix(size, parameters.inhibitory_strength,
                                                 parameters.inhibitory_range)
        return cls(name, size, parameters, input_fn=input_fn,
                   excitation_matrix=excitation, inhibition_matrix=inhibition, **kwargs)

    def initial_value(self) -> np.ndarray:
        return np.full(self.size, self.parameters.initial_activation)

    def external_input(self, state: DynamicsState) -> np.ndarray:
        if self.input_fn is None:
            return np.zeros(self.size)
        return np.broadcast_to(np.asarray(self.input_fn(state), dtype=float), (self.size,))

    def derivative(self, state: DynamicsState) -> np.ndarray:
        x = state[self.variable]
        signal = self.signal_fn(x)
        p = self.parameters
        return shunting_derivative(
            x, p.ceiling, p.floor,
            external_input=self.external_input(state),
            excitation=self.excitation_matrix @ signal,
            inhibition=self.inhibition_matrix @ signal,
            self_excitation=p.self_excitation,
            decay_rate=p.decay_rate,
        )

    def energy(self, state: DynamicsState) -> float:
        W = self.excitation_matrix - self.inhibition_matrix
        return lyapunov_energy(state[self.variable], W, self.parameters.decay_rate)

    def max_stable_step(self, bounds: Dict[str, Tuple[float, float]]) -> float:
        # External input is not known in advance; it is checked as the run goes.
        p = self.parameters
        peak = np.asarray(self.signal_fn(np.full(self.size, self.upper)), dtype=float)
        return max_stable_dt(p.decay_rate,
                             self.excitation_matrix @ peak + p.self_excitation * self.upper,
                             self.inhibition_matrix @ peak)


class TransmitterGate(DynamicsModule):
    """
    Habituative transmitter gates driven by another variable's signal.

    dz/dt = eps (1 - z) - z (lambda S + mu S^2),  S = max(signal, 0)
    """

    def __init__(self, name: str, size: int, parameters: TransmitterParameters,
                 signal_variable: str = "activation", variable: str = "transmitter",
                 tier: TimeScaleTier = TimeScaleTier.TRANSMITTER):
        super().__init__(name, variable, tier, 0.0, 1.0)
        self.size = size
        self.parameters = parameters
        self.signal_variable = signal_variable

    def initial_value(self) -> np.ndarray:
        return np.full(self.size, self.parameters.initial_level)

    def derivative(self, state: DynamicsState) -> np.ndarray:
        p = self.parameters
        signal = rectified(state[self.signal_variable])
        return transmitter_derivative(state[self.variable], p.recovery_rate, signal,
                                      p.linear_depletion, p.quadratic_depletion)

    def max_stable_step(self, bounds: Dict[str, Tuple[float, float]]) -> float:
        """1 / (eps + lambda S + mu S^2) at the largest signal; an unowned signal is taken as <= 1."""
        _, upper = bounds.get(self.signal_variable, (0.0, 1.0))
        return 1.0 / self.parameters.depletion_rate(max(upper, 0.0))


class InstarLearning(DynamicsModule):
    """
    Instar learning of template rows on the weight tier.

    dW_j/dt = r y_j (x - W_j)

    The presynaptic variable holds the pattern(s) each row tracks, one row
    per postsynaptic cell or a single shared row.
    """

    def __init__(self, name: str, learning_rate: float,
                 presynaptic_variable: str, postsynaptic_variable: str,
                 variable: str = "weights",
                 tier: TimeScaleTier = TimeScaleTier.WEIGHT):
        super().__init__(name, variable, tier, 0.0, 1.0)
        if not 0 < learning_rate <= 1.0:
            raise InvalidParameterError("learning_rate", learning_rate, "in (0, 1]")
        self.learning_rate = learning_rate
        self.presynaptic_variable = presynaptic_variable
        self.postsynaptic_variable = postsynaptic_variable

    def derivative(self, state: DynamicsState) -> np.ndarray:
        return instar_derivative(state[self.variable], state[self.presynaptic_variable],
                                 rectified(state[self.postsynaptic_variable]),
                                 self.learning_rate)

    def max_stable_step(self, bounds: Dict[str, Tuple[float, float]]) -> float:
        _, upper = bounds.get(self.postsynaptic_variable, (0.0, 1.0))
        peak = self.learning_rate * max(upper, 0.0)
        return 1.0 / peak if peak > 0 else float("inf")


class Scheduler:
    """Decides which tiers fire on a base step."""

    def __init__(self, time_scales: Optional[TimeScaleParameters] = None):
        self.time_scales = time_scales or TimeScaleParameters()

    def ratio(self, tier: TimeScaleTier) -> int:
        return self.time_scales.ratio(tier)

    def fires(self, tier: TimeScaleTier, step: int) -> bool:
        return step % self.ratio(tier) == 0

    def due(self, step: int) -> List[TimeScaleTier]:
        """Tiers firing on this base step, fast to slow."""
        return [tier for tier in TIER_ORDER if self.fires(tier, step)]

    def expected_counts(self, start_step: int, n_steps: int) -> Dict[TimeScaleTier, int]:
        """How often each tier fires over base steps [start_step, start_step + n_steps)."""
        counts = {}
        for tier in TIER_ORDER:
            r = self.ratio(tier)
            end = start_step + n_steps
            counts[tier] = (end + r - 1) // r - (start_step + r - 1) // r
        return counts


class IntegrationStatus(Enum):
    CONVERGED = "converged"
    STEP_BUDGET_EXHAUSTED = "step_budget_exhausted"


class Trajectory:
    """Recorded snapshots of a run, with the energy at each recorded point."""

    def __init__(self, states: Sequence[DynamicsState],
                 energies: Optional[Sequence[Optional[float]]] = None,
                 tier_counts: Optional[Dict[TimeScaleTier, int]] = None):
        self.tier_counts: Dict[TimeScaleTier, int] = dict(tier_counts or {})
        self.states: Tuple[DynamicsState, ...] = tuple(states)
        self.energies: Tuple[Optional[float], ...] = (
            tuple(energies) if energies is not None else (None,) * len(self.states)
        )

    def __len__(self) -> int:
        return len(self.states)

    def __iter__(self):
        return iter(self.states)

    def __getitem__(self, index: int) -> DynamicsState:
        return self.states[index]

    @property
    def initial(self) -> DynamicsState:
        return self.states[0]

    @property
    def final(self) -> DynamicsState:
        return self.states[-1]

    @property
    def times(self) -> np.ndarray:
        return np.array([s.time for s in self.states])

    def values(self, variable: str) -> np.ndarray:
        """Stack one variable over time: shape (len(self), *variable_shape)."""
        return np.stack([s[variable] for s in self.states])

    def energy_array(self) -> np.ndarray:
        """Energies as floats, NaN where none was computed."""
        return np.array([np.nan if e is None else e for e in self.energies], dtype=float)

    def extend(self, other: "Trajectory") -> "Trajectory":
        """Concatenate, dropping other's first snapshot when it repeats our last."""
        states, energies = list(other.states), list(other.energies)
        if states and self.states and states[0] is self.states[-1]:
            states, energies = states[1:], energies[1:]
        counts = {tier: self.tier_counts.get(tier, 0) + other.tier_counts.get(tier, 0)
                  for tier in set(self.tier_counts) | set(other.tier_counts)}
        return Trajectory(self.states + tuple(states), self.energies + tuple(energies), counts)


@dataclass
class IntegrationResult:
    """
    Outcome of Integrator.integrate().

    Attributes:
        status: CONVERGED or STEP_BUDGET_EXHAUSTED
        final_state: Last snapshot
        trajectory: Recorded snapshots
        steps: Base steps taken
        tier_counts: How often each tier fired
    """

    status: IntegrationStatus
    final_state: DynamicsState
    trajectory: Trajectory
    steps: int
    tier_counts: Dict[TimeScaleTier, int] = field(default_factory=dict)

    @property
    def converged(self) -> bool:
        return self.status is IntegrationStatus.CONVERGED


class Integrator:
    """
    Fixed-step forward Euler over a set of dynamics modules.

    Args:
        modules: Modules to integrate; each must own a distinct variable
        parameters: Step size, budget and convergence settings
        time_scales: Update ratio of each tier
    """

    def __init__(self, modules: Sequence[DynamicsModule],
                 parameters: Optional[IntegratorParameters] = None,
                 time_scales: Optional[TimeScaleParameters] = None):
        owners: Dict[str, str] = {}
        for module in modules:
            if module.variable in owners:
                raise InvalidParameterError(
                    "modules", module.name,
                    f"the only owner of '{module.variable}' (already owned by {owners[module.variable]})",
                )
            owners[module.variable] = module.name

        self.parameters = parameters or IntegratorParameters()
        self.scheduler = Scheduler(time_scales)
        self.modules: Tuple[DynamicsModule, ...] = tuple(
            sorted(modules, key=lambda m: TIER_ORDER.index(m.tier))
        )
        self._by_tier: Dict[TimeScaleTier, List[DynamicsModule]] = {t: [] for t in TIER_ORDER}
        for module in self.modules:
            self._by_tier[module.tier].append(module)

        measured = [m for m in self.modules if m.has_energy]
        self._energy_modules = measured
        self._energy_tiers = {m.tier for m in measured}

        self._bounds = {m.variable: (m.lower, m.upper) for m in self.modules}
        self.check_step_size(self.parameters.dt)

    def check_step_size(self, dt: float):
        """
        Fail fast when a tier's step dt * ratio exceeds its Euler stability limit.

        Raises:
            InvalidParameterError: some module would leave its bounds in one update
        """
        for module in self.modules:
            ratio = self.scheduler.ratio(module.tier)
            limit = module.max_stable_step(self._bounds)
            if dt * ratio > limit:
                raise InvalidParameterError(
                    "dt", dt,
                    f"<= {limit / ratio:.3g} so that {module.name} on the {module.tier.name} tier "
                    f"(step {dt * ratio:.3g}s, limit {limit:.3g}s) stays within its bounds",
                )

    def energy(self, state: DynamicsState) -> Optional[float]:
        """Total Lyapunov energy of the modules that define one."""
        if not self._energy_modules:
            return None
        return float(sum(m.energy(state) for m in self._energy_modules))

    def _enforce_bounds(self, module: DynamicsModule, values: np.ndarray, step: int) -> np.ndarray:
        magnitude, index = bound_violation(values, module.lower, module.upper)
        if magnitude == 0.0:
            return values
        if magnitude > self.parameters.bound_tolerance:
            raise NumericalInstabilityError(module.name, module.variable, step, magnitude, index)
        return clamp(values, module.lower, module.upper)

    def _advance_one(self, state: DynamicsState, dt: float) -> Tuple[DynamicsState, List[TimeScaleTier]]:
        current = state
        fired = []
        for tier in self.scheduler.due(state.step):
            modules = self._by_tier[tier]
            if not modules:
                continue
            tier_dt = dt * self.scheduler.ratio(tier)
            updates = {}
            for module in modules:
                derivative = module.derivative(current)
                updated = euler_step(current[module.variable], derivative, tier_dt)
                updates[module.variable] = self._enforce_bounds(module, updated, state.step)
            current = current.with_values(**updates)
            fired.append(tier)
        return current.with_values(time=state.time + dt, step=state.step + 1), fired

    def step(self, state: DynamicsState, dt: Optional[float] = None) -> DynamicsState:
        """
        Advance one base step. The input snapshot is left untouched.

        Raises:
            InvalidParameterError: dt is not positive or too large for a tier
            NumericalInstabilityError: a variable escaped its bounds
        """
        if dt is None:
            dt = self.parameters.dt
        elif not (np.isfinite(dt) and dt > 0):
            raise InvalidParameterError("dt", dt, "> 0")
        else:
            self.check_step_size(dt)
        new_state, _ = self._advance_one(state, dt)
        return new_state

    def advance(self, state: DynamicsState, n_steps: int,
                record_every: int = 1) -> Trajectory:
        """
        Run exactly n_steps base steps (e.g. one stimulus presentation).

        The returned trajectory starts with the input snapshot and always
        ends with the final one.
        """
        if n_steps < 0:
            raise InvalidParameterError("n_steps", n_steps, ">= 0")
        if record_every < 1:
            raise InvalidParameterError("record_every", record_every, ">= 1")

        dt = self.parameters.dt
        states = [state]
        energies = [self.energy(state)]
        counts = {tier: 0 for tier in TIER_ORDER}
        current = state
        for i in range(1, n_steps + 1):
            current, fired = self._advance_one(current, dt)
            for tier in fired:
                counts[tier] += 1
            if i % record_every == 0 or i == n_steps:
                states.append(current)
                energies.append(self.energy(current))
        return Trajectory(states, energies, counts)

    def integrate(self, state: DynamicsState, max_steps: Optional[int] = None,
                  record_every: int = 1) -> IntegrationResult:
        """
        Run until the energy settles or the step budget runs out.

        Without any energy-bearing module the distance between consecutive
        snapshots is used as the convergence measure instead.

        Returns:
            IntegrationResult: CONVERGED, or STEP_BUDGET_EXHAUSTED (not an error)
        """
        budget = self.parameters.max_steps if max_steps is None else max_steps
        if budget < 1:
            raise InvalidParameterError("max_steps", budget, ">= 1")
        if record_every < 1:
            raise InvalidParameterError("record_every", record_every, ">= 1")

        dt = self.parameters.dt
        eps = self.parameters.convergence_epsilon
        patience = self.parameters.patience
        use_energy = bool(self._energy_modules)

        counts = {tier: 0 for tier in TIER_ORDER}
        current = state
        previous_energy = self.energy(state)
        states = [state]
        energies = [previous_energy]
        settled = 0
        status = IntegrationStatus.STEP_BUDGET_EXHAUSTED
        steps = 0

        while steps < budget:
            previous = current
            current, fired = self._advance_one(current, dt)
            steps += 1
            for tier in fired:
                counts[tier] += 1

            energy = self.energy(current)
            if use_energy:
                checked = any(tier in self._energy_tiers for tier in fired)
                change = abs(energy - previous_energy) if checked else None
                previous_energy = energy
            else:
                checked = bool(fired)
                change = previous.distance_to(current) if checked else None

            if steps % record_every == 0:
                states.append(current)
                energies.append(energy)

            if change is not None:
                settled = settled + 1 if change < eps else 0
                if settled >= patience:
                    status = IntegrationStatus.CONVERGED
                    break

        if states[-1] is not current:
            states.append(current)
            energies.append(self.energy(current))

        if status is IntegrationStatus.CONVERGED:
            logger.debug("Converged after %d steps (t=%.4fs)", steps, current.time)
        else:
            logger.info("Step budget of %d exhausted without convergence", budget)

        return IntegrationResult(
            status=status,
            final_state=current,
            trajectory=Trajectory(states, energies, counts),
            steps=steps,
            tier_counts=counts,
        )

    def initial_state(self, time: float = 0.0, **overrides) -> DynamicsState:
        """Snapshot built from each module's initial_value(), with overrides."""
        values = {}
        for module in self.modules:
            init = getattr(module, "initial_value", None)
            if init is not None:
                values[module.variable] = init()
        values.update(overrides)
        return DynamicsState(values=values, time=time, step=0)
