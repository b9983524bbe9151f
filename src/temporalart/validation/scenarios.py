"""
Behavioural validation scenarios.

Each scenario reproduces a published phenomenon with the dynamics engine:

- miller_capacity: a nine-item list is held but at most 7 +- 2 items are
  recalled (Miller 1956)
- phone_number_chunking: ten digits are grouped into chunks of 3, 3 and 4
- list_interference: a second learned list gets its own sequence category and
  the first list is still recalled
- serial_position_primacy: early list items are stored more strongly
- transmitter_time_scales: little depletion after 50 ms, clear depletion
  after 500 ms, equilibrium after 5 s (Kazerounian & Grossberg 2014)
- convergence_to_rest: an unstimulated field decays to rest while its
  Lyapunov energy never increases
- deterministic_replay: identical inputs give identical trajectories
- time_scale_ratios: every tier fires exactly as often as its ratio says
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from temporalart.dynamics.equations import transmitter_trajectory
from temporalart.dynamics.kernels import uniform_interaction_matrix
from temporalart.integrator import (
    IntegrationStatus,
    Integrator,
    InstarLearning,
    ShuntingField,
    TransmitterGate,
)
from temporalart.memory.masking_field import MaskingField
from temporalart.memory.temporal_art import TemporalART
from temporalart.memory.working_memory import WorkingMemory
from temporalart.parameters import (
    IntegratorParameters,
    MaskingFieldParameters,
    ShuntingParameters,
    TimeScaleParameters,
    TimeScaleTier,
    TransmitterParameters,
    WorkingMemoryParameters,
)
from temporalart.state import DynamicsState


@dataclass
class ScenarioOutcome:
    """
    What a scenario run produced.

    Attributes:
        metrics: Named measurements handed to the scenario's check
        status: How the dynamics ended; fixed-duration presentations run
            their whole step budget and report STEP_BUDGET_EXHAUSTED
        energies: Energy after every step, for convergent scenarios
        energy_steps: Integration step of every entry of energies
        step: Last integration step of the run
    """

    metrics: Dict[str, float]
    status: IntegrationStatus = IntegrationStatus.STEP_BUDGET_EXHAUSTED
    energies: Optional[np.ndarray] = None
    energy_steps: Optional[np.ndarray] = None
    step: Optional[int] = None
    details: Dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckResult:
    """
    Verdict of a scenario check.

    A rejection carries how far the outcome is from what was expected and
    where: the integration step and, for vector quantities, the index of
    the offending element.
    """

    passed: bool
    reason: str
    magnitude: Optional[float] = None
    step: Optional[int] = None
    location: Optional[Tuple[int, ...]] = None

    @classmethod
    def accept(cls, reason: str) -> "CheckResult":
        return cls(True, reason)

    @classmethod
    def reject(cls, reason: str, magnitude: float, step: Optional[int] = None,
               location: Optional[Tuple[int, ...]] = None) -> "CheckResult":
        return cls(False, reason, float(magnitude), step, location)


Check = Callable[[ScenarioOutcome], CheckResult]


@dataclass(frozen=True)
class ValidationScenario:
    """
    A named phenomenon to reproduce.

    Attributes:
        name: Unique scenario name
        description: What the scenario demonstrates
        subsystem: Subsystem it exercises
        run: Produces the outcome
        check: Accepts or rejects the outcome with a CheckResult
        convergent: The run must converge with non-increasing energy
    """

    name: str
    description: str
    subsystem: str
    run: Callable[[], ScenarioOutcome]
    check: Check
    convergent: bool = False


def one_hot(index: int, size: int = 10) -> np.ndarray:
    v = np.zeros(size)
    v[index] = 1.0
    return v


def miller_capacity(integrator_parameters: Optional[IntegratorParameters] = None,
                    list_length: int = 9) -> ValidationScenario:
    def run() -> ScenarioOutcome:
        memory = WorkingMemory(WorkingMemoryParameters.paper_defaults(), integrator_parameters)
        result = memory.store_sequence([one_hot(i) for i in range(list_length)])
        recalled = result.retrieve()
        weights = np.asarray(recalled.weights)
        return ScenarioOutcome(metrics={
            "items_presented": list_length,
            "items_recalled": len(recalled),
            "weight_spread": float(weights.max() - weights.min()) if len(weights) else 0.0,
            "primacy_gradient": result.primacy_gradient_strength(),
        }, step=result.final_state.step)

    def check(outcome: ScenarioOutcome) -> CheckResult:
        n = outcome.metrics["items_recalled"]
        if not 5 <= n <= 9:
            return CheckResult.reject(f"recalled {n} items, outside 7 +- 2",
                                      magnitude=max(5 - n, n - 9), step=outcome.step)
        spread = outcome.metrics["weight_spread"]
        if spread <= 1e-6:
            return CheckResult.reject("all recalled items have the same weight",
                                      magnitude=1e-6 - spread, step=outcome.step)
        return CheckResult.accept(f"recalled {n} of {list_length} items")

    return ValidationScenario(
        name="miller_capacity",
        description="Working memory recalls 7 +- 2 items of a longer list",
        subsystem="working_memory",
        run=run,
        check=check,
    )


PHONE_NUMBER = (5, 5, 5, 1, 2, 3, 4, 5, 6, 7)
PHONE_NUMBER_GROUPING = (3, 3, 4)


def phone_number_chunking(integrator_parameters: Optional[IntegratorParameters] = None) -> ValidationScenario:
    def run() -> ScenarioOutcome:
        field_ = MaskingField(MaskingFieldParameters.phone_number_defaults(), integrator_parameters)
        result = field_.chunk_sequence([one_hot(d) for d in PHONE_NUMBER])
        converged = all(c.converged for c in result.competitions)
        return ScenarioOutcome(
            metrics={
                "chunks": result.statistics.total_chunks,
                "average_chunk_size": result.statistics.average_chunk_size,
                "chunking_efficiency": result.statistics.chunking_efficiency,
            },
            status=IntegrationStatus.CONVERGED if converged else IntegrationStatus.STEP_BUDGET_EXHAUSTED,
            step=sum(c.steps for c in result.competitions),
            details={"sizes": result.sizes, "competition_steps": [c.steps for c in result.competitions]},
        )

    def check(outcome: ScenarioOutcome) -> CheckResult:
        sizes = list(outcome.details["sizes"])
        expected = list(PHONE_NUMBER_GROUPING)
        if sizes != expected:
            length = max(len(sizes), len(expected))
            got = sizes + [0] * (length - len(sizes))
            want = expected + [0] * (length - len(expected))
            first = next(i for i in range(length) if got[i] != want[i])
            steps = outcome.details["competition_steps"]
            return CheckResult.reject(
                f"chunk sizes {sizes}, expected {expected}",
                magnitude=max(abs(a - b) for a, b in zip(got, want)),
                step=steps[first] if first < len(steps) else None,
                location=(first,),
            )
        return CheckResult.accept(f"chunked into {sizes}")

    return ValidationScenario(
        name="phone_number_chunking",
        description="Ten digits are grouped into list chunks of sizes 3, 3 and 4, in that order",
        subsystem="masking_field",
        run=run,
        check=check,
    )


def list_interference(integrator_parameters: Optional[IntegratorParameters] = None,
                      seed: int = 42, list_length: int = 7, dim: int = 20) -> ValidationScenario:
    def run() -> ScenarioOutcome:
        model = TemporalART(integrator_parameters=integrator_parameters)
        rng = np.random.default_rng(seed)
        lists = [list(rng.random((list_length, dim))) for _ in range(2)]
        first = model.process_sequence(lists[0])
        cross_match = model.recognize_sequence(lists[1]).match
        second = model.process_sequence(lists[1])
        learned = [first.category, second.category]
        recalled = [model.predict_sequence(items) for items in lists]
        return ScenarioOutcome(metrics={
            "categories": len(model.categories),
            "cross_match": cross_match,
            "vigilance": model.parameters.vigilance,
        }, step=second.memory.final_state.step, details={"learned": learned, "recalled": recalled})

    def check(outcome: ScenarioOutcome) -> CheckResult:
        learned = outcome.details["learned"]
        recalled = outcome.details["recalled"]
        if learned[0] == learned[1]:
            m = outcome.metrics
            return CheckResult.reject(f"both lists coded by category {learned[0]}",
                                      magnitude=m["cross_match"] - m["vigilance"],
                                      step=outcome.step, location=(1,))
        missed = [i for i in range(2) if learned[i] < 0 or recalled[i] != learned[i]]
        if missed:
            return CheckResult.reject(f"lists {missed} not recalled: learned {learned}, recalled {recalled}",
                                      magnitude=len(missed), step=outcome.step, location=(missed[0],))
        return CheckResult.accept(f"lists coded by categories {learned} and both recalled")

    return ValidationScenario(
        name="list_interference",
        description="Learning a second list leaves the first list's category recallable",
        subsystem="sequence_learning",
        run=run,
        check=check,
    )

def serial_position_primacy(integrator_parameters: Optional[IntegratorParameters] = None,
                            list_length: int = 6) -> ValidationScenario:
    def run() -> ScenarioOutcome:
        memory = WorkingMemory(integrator_parameters=integrator_parameters)
        result = memory.store_sequence([one_hot(i) for i in range(list_length)])
        x = result.activations()
        return ScenarioOutcome(metrics={
            "first_activation": float(x[0]),
            "last_activation": float(x[-1]),
            "primacy_gradient": result.primacy_gradient_strength(),
        }, step=result.final_state.step, details={"activations": x})

    def check(outcome: ScenarioOutcome) -> CheckResult:
        m = outcome.metrics
        if m["first_activation"] <= m["last_activation"]:
            return CheckResult.reject("first item is not stored more strongly than the last",
                                      magnitude=m["last_activation"] - m["first_activation"],
                                      step=outcome.step, location=(list_length - 1,))
        if m["primacy_gradient"] <= 0:
            return CheckResult.reject(f"primacy gradient strength {m['primacy_gradient']:.3f} <= 0",
                                      magnitude=-m["primacy_gradient"], step=outcome.step)
        return CheckResult.accept(f"primacy gradient strength {m['primacy_gradient']:.3f}")

    return ValidationScenario(
        name="serial_position_primacy",
        description="Earlier items are stored with higher activation",
        subsystem="working_memory",
        run=run,
        check=check,
    )


# Habituation checkpoints, in milliseconds.
HABITUATION_CHECKPOINTS = (50, 500, 5000)


def transmitter_time_scales(integrator_parameters: Optional[IntegratorParameters] = None,
                            signal: float = 1.0, tolerance: float = 0.01) -> ValidationScenario:
    params = integrator_parameters or IntegratorParameters()
    gate_parameters = TransmitterParameters()

    def run() -> ScenarioOutcome:
        gate = TransmitterGate("transmitter", 1, gate_parameters)
        integrator = Integrator([gate], params)
        state = DynamicsState.create(activation=np.array([signal]), transmitter=np.array([1.0]))
        steps = [int(round(ms / 1000.0 / params.dt)) for ms in HABITUATION_CHECKPOINTS]
        trajectory = integrator.advance(state, max(steps))
        metrics = {}
        for ms, n in zip(HABITUATION_CHECKPOINTS, steps):
            z = float(trajectory[n]["transmitter"][0])
            exact = transmitter_trajectory(1.0, n * params.dt, gate_parameters.recovery_rate, signal,
                                           gate_parameters.linear_depletion,
                                           gate_parameters.quadratic_depletion)
            metrics[f"level_{ms}ms"] = z
            metrics[f"error_{ms}ms"] = abs(z - exact)
        metrics["equilibrium"] = gate_parameters.equilibrium(signal)
        return ScenarioOutcome(metrics=metrics, step=trajectory.final.step,
                               details={"checkpoint_steps": dict(zip(HABITUATION_CHECKPOINTS, steps))})

    def check(outcome: ScenarioOutcome) -> CheckResult:
        m = outcome.metrics
        at = outcome.details["checkpoint_steps"]
        depleted = 1.0 - m["level_50ms"]
        if depleted >= 0.1:
            return CheckResult.reject(f"depleted {depleted:.3f} after 50 ms, expected < 0.1",
                                      magnitude=depleted - 0.1, step=at[50], location=(0,))
        depleted = 1.0 - m["level_500ms"]
        if depleted <= 0.2:
            return CheckResult.reject(f"depleted {depleted:.3f} after 500 ms, expected > 0.2",
                                      magnitude=0.2 - depleted, step=at[500], location=(0,))
        gap = abs(m["level_5000ms"] - m["equilibrium"])
        if gap >= 0.05:
            return CheckResult.reject(
                f"level {m['level_5000ms']:.3f} after 5 s is not near equilibrium {m['equilibrium']:.3f}",
                magnitude=gap, step=at[5000], location=(0,),
            )
        worst_ms = max(HABITUATION_CHECKPOINTS, key=lambda ms: m[f"error_{ms}ms"])
        worst = m[f"error_{worst_ms}ms"]
        if worst > tolerance:
            return CheckResult.reject(f"deviates {worst:.4f} from the exact solution at {worst_ms} ms",
                                      magnitude=worst, step=at[worst_ms], location=(0,))
        return CheckResult.accept("habituation follows the 50 ms / 500 ms / 5 s time scales")

    return ValidationScenario(
        name="transmitter_time_scales",
        description="Transmitter depletion on its characteristic time scales",
        subsystem="transmitter",
        run=run,
        check=check,
    )


def convergence_to_rest(integrator_parameters: Optional[IntegratorParameters] = None,
                        size: int = 8, seed: int = 42) -> ValidationScenario:
    params = integrator_parameters or IntegratorParameters()

    def run() -> ScenarioOutcome:
        rng = np.random.RandomState(seed)
        # Decay outweighs self-excitation (A > s B), so activity can only fall.
        field_parameters = ShuntingParameters(decay_rate=1.0, self_excitation=0.1)
        field_ = ShuntingField("rest_field", size, field_parameters,
                               inhibition_matrix=uniform_interaction_matrix(size, 0.2))
        integrator = Integrator([field_], params)
        state = DynamicsState.create(activation=rng.uniform(0.2, 0.9, size))
        result = integrator.integrate(state)
        final = result.final_state["activation"]
        return ScenarioOutcome(
            metrics={
                "steps": result.steps,
                "final_peak": float(np.max(final)),
                "initial_energy": float(result.trajectory.energies[0]),
                "final_energy": float(result.trajectory.energies[-1]),
            },
            status=result.status,
            energies=result.trajectory.energy_array(),
            energy_steps=np.array([s.step for s in result.trajectory]),
            step=result.final_state.step,
            details={"peak_unit": int(np.argmax(final))},
        )

    def check(outcome: ScenarioOutcome) -> CheckResult:
        peak = outcome.metrics["final_peak"]
        if peak > 1e-3:
            return CheckResult.reject(f"peak activation {peak:.3g} did not return to rest",
                                      magnitude=peak, step=outcome.step,
                                      location=(outcome.details["peak_unit"],))
        return CheckResult.accept(f"at rest after {outcome.metrics['steps']} steps")

    return ValidationScenario(
        name="convergence_to_rest",
        description="An unstimulated field settles to rest with non-increasing energy",
        subsystem="shunting",
        run=run,
        check=check,
        convergent=True,
    )


def deterministic_replay(integrator_parameters: Optional[IntegratorParameters] = None) -> ValidationScenario:
    def run() -> ScenarioOutcome:
        memory = WorkingMemory(integrator_parameters=integrator_parameters)
        patterns = [one_hot(i) for i in range(5)]
        first = memory.store_sequence(patterns)
        second = memory.store_sequence(patterns)
        a = np.stack([s.as_vector() for s in first.trajectory])
        b = np.stack([s.as_vector() for s in second.trajectory])
        if a.shape == b.shape:
            per_snapshot = np.max(np.abs(a - b), axis=1)
            difference = float(np.max(per_snapshot))
            diverged = int(np.argmax(per_snapshot > 0)) if difference > 0 else None
        else:
            difference, diverged = float("inf"), 0
        diverged_step = first.trajectory[diverged].step if diverged is not None else None

        start = first.trajectory.initial
        before = start.as_vector()
        memory.build_integrator().step(start)
        return ScenarioOutcome(
            metrics={
                "max_difference": difference,
                "input_changed": float(np.max(np.abs(start.as_vector() - before))),
            },
            step=first.final_state.step,
            details={"diverged_step": diverged_step, "start_step": start.step},
        )

    def check(outcome: ScenarioOutcome) -> CheckResult:
        difference = outcome.metrics["max_difference"]
        if difference != 0.0:
            return CheckResult.reject(f"replay differs by {difference:.3g}", magnitude=difference,
                                      step=outcome.details["diverged_step"])
        changed = outcome.metrics["input_changed"]
        if changed != 0.0:
            return CheckResult.reject("step() modified its input state", magnitude=changed,
                                      step=outcome.details["start_step"])
        return CheckResult.accept("bit-identical replay")

    return ValidationScenario(
        name="deterministic_replay",
        description="Identical inputs reproduce identical trajectories",
        subsystem="integrator",
        run=run,
        check=check,
    )


def time_scale_ratios(integrator_parameters: Optional[IntegratorParameters] = None,
                      time_scales: Optional[TimeScaleParameters] = None,
                      n_steps: int = 1000) -> ValidationScenario:
    scales = time_scales or TimeScaleParameters()

    def run() -> ScenarioOutcome:
        items = ShuntingField.from_parameters("items", 5, ShuntingParameters(),
                                              input_fn=lambda state: 0.5)
        chunks = ShuntingField("chunks", 3, ShuntingParameters(), variable="chunk_activation",
                               tier=TimeScaleTier.MASKING_FIELD)
        gates = TransmitterGate("gates", 5, TransmitterParameters())
        learning = InstarLearning("templates", 0.5, presynaptic_variable="activation",
                                  postsynaptic_variable="chunk_activation")
        integrator = Integrator([learning, gates, chunks, items], integrator_parameters, scales)
        state = integrator.initial_state(weights=np.full((3, 5), 0.5))
        trajectory = integrator.advance(state, n_steps, record_every=n_steps)
        expected = integrator.scheduler.expected_counts(0, n_steps)
        metrics = {f"{tier.value}_updates": trajectory.tier_counts[tier] for tier in TimeScaleTier}
        metrics["count_errors"] = sum(abs(trajectory.tier_counts[t] - expected[t]) for t in TimeScaleTier)
        metrics["wm_to_weight_ratio"] = (trajectory.tier_counts[TimeScaleTier.WORKING_MEMORY]
                                         / max(trajectory.tier_counts[TimeScaleTier.WEIGHT], 1))
        return ScenarioOutcome(metrics=metrics, step=trajectory.final.step)

    def check(outcome: ScenarioOutcome) -> CheckResult:
        errors = outcome.metrics["count_errors"]
        if errors != 0:
            return CheckResult.reject("tier update counts differ from the configured ratios",
                                      magnitude=errors, step=outcome.step)
        ratio = outcome.metrics["wm_to_weight_ratio"]
        if not 100 <= ratio <= 1000:
            return CheckResult.reject(
                f"weights update {ratio:.0f}x slower than working memory, expected 100-1000x",
                magnitude=max(100 - ratio, ratio - 1000), step=outcome.step,
            )
        return CheckResult.accept(f"weights update {ratio:.0f}x slower than working memory")

    return ValidationScenario(
        name="time_scale_ratios",
        description="Each tier is updated exactly at its configured rate",
        subsystem="integrator",
        run=run,
        check=check,
    )


def canonical_scenarios(integrator_parameters: Optional[IntegratorParameters] = None,
                        seed: int = 42) -> List[ValidationScenario]:
    """The standard scenario suite, in reporting order."""
    return [
        miller_capacity(integrator_parameters),
        phone_number_chunking(integrator_parameters),
        list_interference(integrator_parameters, seed=seed),
        serial_position_primacy(integrator_parameters),
        transmitter_time_scales(integrator_parameters),
        convergence_to_rest(integrator_parameters, seed=seed),
        deterministic_replay(integrator_parameters),
        time_scale_ratios(integrator_parameters),
    ]
