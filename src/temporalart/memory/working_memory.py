"""
STORE 2 item-order working memory (Kazerounian & Grossberg 2014).

Each list position owns one slot of a shunting field. While item k is being
presented its slot receives the input pulse

    I_k = input_gain * w(k) * strength(pattern_k)

where w(k) is the primacy gradient, so earlier items are stored more
strongly. All slots inhibit each other uniformly, and habituative
transmitter gates on the slow tier track how much each slot has been used.
Items are read out in order of their gated activity x_k z_k (competitive
queuing): the strongest item is recalled first, and at most `capacity`
items are recalled at all.

store_sequence() never changes the WorkingMemory instance; everything a run
produces is returned in a WorkingMemoryResult.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from temporalart.dynamics.equations import gated_signal, primacy_gradient
from temporalart.dynamics.kernels import uniform_interaction_matrix
from temporalart.errors import InvalidParameterError
from temporalart.integrator import Integrator, ShuntingField, Trajectory, TransmitterGate
from temporalart.parameters import (
    IntegratorParameters,
    ShuntingParameters,
    TimeScaleParameters,
    WorkingMemoryParameters,
)
from temporalart.state import DynamicsState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class MemoryItem:
    """An item held in a working-memory slot."""

    pattern: np.ndarray
    position: int
    onset: float
    strength: float


@dataclass(frozen=True, eq=False)
class TemporalPattern:
    """Retrieved items with their gated weights, in recall order."""

    items: Tuple[MemoryItem, ...]
    weights: Tuple[float, ...]
    primacy_gradient: float

    def __len__(self) -> int:
        return len(self.items)

    @property
    def positions(self) -> List[int]:
        return [item.position for item in self.items]

    def combined_pattern(self) -> np.ndarray:
        """Weight-averaged pattern of the recalled items."""
        if not self.items:
            return np.zeros(0)
        patterns = np.stack([item.pattern for item in self.items])
        w = np.asarray(self.weights)
        total = w.sum()
        if total <= 0:
            return np.zeros(patterns.shape[1])
        return (w[:, None] * patterns).sum(axis=0) / total


@dataclass
class WorkingMemoryResult:
    """
    Everything produced by storing one sequence.

    Attributes:
        parameters: Parameters the memory ran with
        items: Items currently held, by position
        trajectory: Snapshots of activation and transmitter over time
        dropped: Items that were ignored or lost to an overflow reset
        resets: Number of overflow resets
    """

    parameters: WorkingMemoryParameters
    items: Tuple[MemoryItem, ...]
    trajectory: Trajectory
    dropped: int = 0
    resets: int = 0

    @property
    def final_state(self) -> DynamicsState:
        return self.trajectory.final

    @property
    def n_items(self) -> int:
        return len(self.items)

    def activations(self) -> np.ndarray:
        return np.array(self.final_state["activation"][: self.n_items])

    def transmitters(self) -> np.ndarray:
        return np.array(self.final_state["transmitter"][: self.n_items])

    def retrieval_weights(self) -> np.ndarray:
        """Gated activity x_k z_k of every stored item."""
        return np.asarray(gated_signal(self.activations(), self.transmitters()), dtype=float)

    def retrieve(self) -> TemporalPattern:
        """
        Competitive-queuing readout.

        Items whose gated activity reaches the retrieval threshold are
        recalled strongest first; at most `capacity` of them.
        """
        weights = self.retrieval_weights()
        order = sorted(range(len(weights)), key=lambda i: (-weights[i], i))
        recalled = [i for i in order if weights[i] >= self.parameters.retrieval_threshold]
        recalled = recalled[: self.parameters.capacity]
        return TemporalPattern(
            items=tuple(self.items[i] for i in recalled),
            weights=tuple(float(weights[i]) for i in recalled),
            primacy_gradient=self.primacy_gradient_strength(),
        )

    def primacy_gradient_strength(self) -> float:
        """
        Relative difference between the mean activity of the first and the
        second half of the list; positive when early items dominate.
        """
        x = self.activations()
        if len(x) < 2:
            return 0.0
        midpoint = len(x) // 2
        early = float(np.mean(x[:midpoint]))
        late = float(np.mean(x[midpoint:]))
        return (early - late) / (early + late + 1e-10)

    def utilization(self) -> float:
        """Fraction of slots in use."""
        return self.n_items / self.parameters.max_items

    def should_reset(self, threshold: float = 0.3) -> bool:
        """True once the stored items have used up most of their transmitter."""
        if self.n_items == 0:
            return False
        return float(np.mean(self.transmitters())) < threshold


def input_strength(pattern: np.ndarray) -> float:
    """Peak magnitude of an item pattern; 0.0 for an empty or silent pattern."""
    if pattern.size == 0:
        return 0.0
    return float(np.max(np.abs(pattern)))


class WorkingMemory:
    """
    Item-order working memory driven by a shunting field.

    Args:
        parameters: STORE 2 parameters (paper defaults if None)
        integrator_parameters: Step size and budget (1 ms steps by default)
        time_scales: Tier ratios; activity is on the working-memory tier and
            transmitters on the transmitter tier
    """

    def __init__(self, parameters: Optional[WorkingMemoryParameters] = None,
                 integrator_parameters: Optional[IntegratorParameters] = None,
                 time_scales: Optional[TimeScaleParameters] = None):
        self.parameters = parameters or WorkingMemoryParameters.paper_defaults()
        self.integrator_parameters = integrator_parameters or IntegratorParameters()
        self.time_scales = time_scales or TimeScaleParameters()
        self.field_parameters = ShuntingParameters(
            decay_rate=self.parameters.decay_rate,
            ceiling=self.parameters.max_activation,
            floor=0.0,
            self_excitation=self.parameters.self_excitation,
            excitatory_strength=0.0,
            inhibitory_strength=self.parameters.lateral_inhibition,
        )
        self.inhibition = uniform_interaction_matrix(self.parameters.max_items,
                                                     self.parameters.lateral_inhibition)

    @property
    def steps_per_item(self) -> int:
        return self.steps_for(self.parameters.item_duration)

    def steps_for(self, duration: float) -> int:
        return max(1, int(round(duration / self.integrator_parameters.dt)))

    def item_weight(self, position: int) -> float:
        """Primacy-gradient weight of a list position during online storage."""
        p = self.parameters
        return primacy_gradient(position, p.primacy_strength, p.primacy_decay_rate, p.recency_boost)

    def build_integrator(self, pulses: Optional[np.ndarray] = None, start_step: int = 0) -> Integrator:
        """
        Integrator whose input presents pulses[k] to slot k during the k-th
        item window after start_step.
        """
        n = self.parameters.max_items
        window = self.steps_per_item

        def presented(state: DynamicsState) -> np.ndarray:
            I = np.zeros(n)
            if pulses is None:
                return I
            k = (state.step - start_step) // window
            if 0 <= k < len(pulses):
                I[k] = pulses[k]
            return I

        field_module = ShuntingField(
            "working_memory", n, self.field_parameters,
            input_fn=presented, inhibition_matrix=self.inhibition,
        )
        gates = TransmitterGate("wm_transmitter", n, self.parameters.transmitter_parameters())
        return Integrator([field_module, gates], self.integrator_parameters, self.time_scales)

    def initial_state(self, time: float = 0.0, step: int = 0) -> DynamicsState:
        n = self.parameters.max_items
        return DynamicsState.create(time=time, step=step,
                                    activation=np.zeros(n), transmitter=np.ones(n))

    @staticmethod
    def _validate_patterns(patterns: Sequence) -> List[np.ndarray]:
        checked = []
        for i, pattern in enumerate(patterns):
            arr = np.array(pattern, dtype=float)
            if arr.ndim != 1 or not np.all(np.isfinite(arr)):
                raise InvalidParameterError(f"patterns[{i}]", pattern, "a finite one-dimensional vector")
            checked.append(arr)
        return checked

    def _present(self, state: DynamicsState, patterns: List[np.ndarray]) -> Tuple[Trajectory, List[MemoryItem]]:
        p = self.parameters
        strengths = [input_strength(pattern) for pattern in patterns]
        pulses = np.array([p.input_gain * self.item_weight(k) * s for k, s in enumerate(strengths)])
        integrator = self.build_integrator(pulses, start_step=state.step)
        trajectory = integrator.advance(state, len(patterns) * self.steps_per_item)
        items = [
            MemoryItem(pattern=pattern, position=k,
                       onset=state.time + k * p.item_duration, strength=strengths[k])
            for k, pattern in enumerate(patterns)
        ]
        return trajectory, items

    def store_sequence(self, patterns: Sequence) -> WorkingMemoryResult:
        """
        Present a list of item patterns one after another.

        When the list is longer than max_items the memory either resets and
        continues in slot 0 (overflow_reset) or ignores the surplus items.

        Args:
            patterns: Item vectors, presented in order for item_duration each

        Returns:
            WorkingMemoryResult with the stored items and the full trajectory
        """
        checked = self._validate_patterns(patterns)
        p = self.parameters
        dropped = 0
        resets = 0

        if len(checked) <= p.max_items:
            segments = [checked]
        elif p.overflow_reset:
            segments = [checked[i:i + p.max_items] for i in range(0, len(checked), p.max_items)]
            resets = len(segments) - 1
            dropped = len(checked) - len(segments[-1])
        else:
            segments = [checked[: p.max_items]]
            dropped = len(checked) - p.max_items

        if dropped:
            logger.debug("Working memory overflow: %d items dropped, %d resets", dropped, resets)

        state = self.initial_state()
        trajectory = Trajectory([state])
        items: List[MemoryItem] = []
        for segment in segments:
            if len(trajectory) > 1:
                state = self.initial_state(time=trajectory.final.time, step=trajectory.final.step)
                trajectory = Trajectory(trajectory.states + (state,), trajectory.energies + (None,),
                                        trajectory.tier_counts)
            segment_trajectory, items = self._present(state, segment)
            trajectory = trajectory.extend(segment_trajectory)

        return WorkingMemoryResult(
            parameters=p,
            items=tuple(items),
            trajectory=trajectory,
            dropped=dropped,
            resets=resets,
        )

    def rest(self, result: WorkingMemoryResult, duration: float) -> WorkingMemoryResult:
        """Let the stored pattern evolve without input for `duration` seconds."""
        if duration < 0:
            raise InvalidParameterError("duration", duration, ">= 0")
        integrator = self.build_integrator()
        continuation = integrator.advance(result.final_state, self.steps_for(duration) if duration else 0)
        return WorkingMemoryResult(
            parameters=result.parameters,
            items=result.items,
            trajectory=result.trajectory.extend(continuation),
            dropped=result.dropped,
            resets=result.resets,
        )
