"""
Parameter records for the temporal ART subsystems.

Every record is an immutable dataclass validated at construction time. An
out-of-range value raises InvalidParameterError immediately, so a record that
exists is always usable and can be shared read-only between any number of
dynamics modules.

Defaults follow Kazerounian & Grossberg (2014) and Grossberg & Kazerounian
(2016), rescaled so that all rates are per second and the base time step is
1 ms:

- Working memory: 10-100 ms
- Masking field: 50-500 ms
- Transmitter gates: 500-5000 ms
- Weight adaptation: 1000-10000 ms
"""

import math
import numbers
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Dict

from temporalart.errors import InvalidParameterError


def _require(name: str, value, ok: bool, constraint: str):
    if not ok:
        raise InvalidParameterError(name, value, constraint)


def _is_real(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _is_integer(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _finite(name: str, value):
    _require(name, value, _is_real(value) and math.isfinite(value), "a finite number")


class _ParameterRecord:
    """Shared helpers for the frozen parameter dataclasses."""

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    def with_parameter(self, name: str, value):
        """Return a new, re-validated record with one field replaced."""
        names = {f.name for f in fields(self)}
        if name not in names:
            raise InvalidParameterError(name, value, f"one of {sorted(names)}")
        return replace(self, **{name: value})


@dataclass(frozen=True)
class ShuntingParameters(_ParameterRecord):
    """
    Parameters of a shunting on-center off-surround field.

    dx/dt = -A x + (B - x)(I + E + s x) - (x - D) J

    Attributes:
        decay_rate: Passive decay A
        ceiling: Upper bound B
        floor: Lower bound D (the resting level 0 must lie inside [D, B])
        self_excitation: Recurrent self-excitation s
        excitatory_strength: Peak of the Gaussian lateral excitation kernel
        inhibitory_strength: Peak of the Gaussian lateral inhibition kernel
        excitatory_range: Width of the excitation kernel (in units)
        inhibitory_range: Width of the inhibition kernel (in units)
        initial_activation: Activation every unit starts from
    """

    decay_rate: float = 0.1
    ceiling: float = 1.0
    floor: float = 0.0
    self_excitation: float = 0.05
    excitatory_strength: float = 0.3
    inhibitory_strength: float = 0.3
    excitatory_range: float = 2.0
    inhibitory_range: float = 5.0
    initial_activation: float = 0.0

    def __post_init__(self):
        for f in fields(self):
            _finite(f.name, getattr(self, f.name))
        _require("decay_rate", self.decay_rate, self.decay_rate > 0, "> 0")
        _require("ceiling", self.ceiling, self.ceiling > 0, "> 0")
        _require("floor", self.floor, self.floor <= 0, "<= 0")
        _require("self_excitation", self.self_excitation, self.self_excitation >= 0, ">= 0")
        _require("excitatory_strength", self.excitatory_strength,
                 self.excitatory_strength >= 0, ">= 0")
        _require("inhibitory_strength", self.inhibitory_strength,
                 self.inhibitory_strength >= 0, ">= 0")
        _require("excitatory_range", self.excitatory_range, self.excitatory_range > 0, "> 0")
        _require("inhibitory_range", self.inhibitory_range, self.inhibitory_range > 0, "> 0")
        _require("initial_activation", self.initial_activation,
                 self.floor <= self.initial_activation <= self.ceiling,
                 f"within [{self.floor}, {self.ceiling}]")


@dataclass(frozen=True)
class TransmitterParameters(_ParameterRecord):
    """
    Habituative transmitter gate, Kazerounian & Grossberg (2014) Eq. 7.

    dz/dt = eps (1 - z) - z (lambda S + mu S^2)
    """

    recovery_rate: float = 0.05
    linear_depletion: float = 0.5
    quadratic_depletion: float = 0.25
    initial_level: float = 1.0

    def __post_init__(self):
        for f in fields(self):
            _finite(f.name, getattr(self, f.name))
        _require("recovery_rate", self.recovery_rate, 0 < self.recovery_rate <= 1.0, "in (0, 1]")
        _require("linear_depletion", self.linear_depletion,
                 0 <= self.linear_depletion <= 1.0, "in [0, 1]")
        _require("quadratic_depletion", self.quadratic_depletion,
                 0 <= self.quadratic_depletion <= 1.0, "in [0, 1]")
        _require("initial_level", self.initial_level, 0 < self.initial_level <= 1.0, "in (0, 1]")

    def depletion_rate(self, signal: float) -> float:
        return self.recovery_rate + self.linear_depletion * signal + self.quadratic_depletion * signal ** 2

    def equilibrium(self, signal: float) -> float:
        """Steady-state transmitter level under a constant signal."""
        return self.recovery_rate / self.depletion_rate(signal)

    @property
    def time_constant(self) -> float:
        """Recovery time constant 1/eps, in seconds."""
        return 1.0 / self.recovery_rate


@dataclass(frozen=True)
class WorkingMemoryParameters(_ParameterRecord):
    """
    STORE 2 item-order working memory.

    Attributes:
        capacity: Retrieval span (Miller's 7 +- 2), in [3, 15]
        max_items: Number of positional slots in the field
        decay_rate: Passive decay A of item activations
        max_activation: Activation ceiling B
        self_excitation: Recurrent self-excitation
        lateral_inhibition: Uniform off-surround between item slots
        input_gain: Gain applied to the primacy-weighted input pulse
        primacy_strength: gamma of the primacy gradient
        primacy_decay_rate: delta of the primacy gradient, in [0, 1]
        recency_boost: Recency term of the primacy gradient
        transmitter_recovery_rate: eps
        transmitter_depletion_linear: lambda
        transmitter_depletion_quadratic: mu
        retrieval_threshold: Minimum gated activation for retrieval
        item_duration: Presentation time per item, in seconds
        overflow_reset: Reset when max_items is exceeded (otherwise ignore new items)
    """

    capacity: int = 7
    max_items: int = 20
    decay_rate: float = 0.2
    max_activation: float = 1.0
    self_excitation: float = 0.1
    lateral_inhibition: float = 0.05
    input_gain: float = 10.0
    primacy_strength: float = 1.0
    primacy_decay_rate: float = 0.15
    recency_boost: float = 0.1
    transmitter_recovery_rate: float = 0.05
    transmitter_depletion_linear: float = 0.5
    transmitter_depletion_quadratic: float = 0.25
    retrieval_threshold: float = 0.1
    item_duration: float = 0.1
    overflow_reset: bool = True

    def __post_init__(self):
        _require("capacity", self.capacity,
                 _is_integer(self.capacity) and 3 <= self.capacity <= 15,
                 "an integer in [3, 15] (Miller's 7 +- 2)")
        _require("max_items", self.max_items,
                 _is_integer(self.max_items) and self.capacity <= self.max_items <= 100,
                 f"an integer in [{self.capacity}, 100]")
        for f in fields(self):
            if f.name not in ("capacity", "max_items", "overflow_reset"):
                _finite(f.name, getattr(self, f.name))
        _require("decay_rate", self.decay_rate, 0 < self.decay_rate <= 10.0, "in (0, 10]")
        _require("max_activation", self.max_activation, self.max_activation > 0, "> 0")
        _require("self_excitation", self.self_excitation, self.self_excitation >= 0, ">= 0")
        _require("lateral_inhibition", self.lateral_inhibition, self.lateral_inhibition >= 0, ">= 0")
        _require("input_gain", self.input_gain, self.input_gain > 0, "> 0")
        _require("primacy_strength", self.primacy_strength, self.primacy_strength > 0, "> 0")
        _require("primacy_decay_rate", self.primacy_decay_rate,
                 0 <= self.primacy_decay_rate <= 1.0, "in [0, 1]")
        _require("recency_boost", self.recency_boost, self.recency_boost >= 0, ">= 0")
        self.transmitter_parameters()
        _require("retrieval_threshold", self.retrieval_threshold,
                 0 <= self.retrieval_threshold <= 1.0, "in [0, 1]")
        _require("item_duration", self.item_duration, 0 < self.item_duration <= 10.0, "in (0, 10]")

    def transmitter_parameters(self) -> TransmitterParameters:
        return TransmitterParameters(
            recovery_rate=self.transmitter_recovery_rate,
            linear_depletion=self.transmitter_depletion_linear,
            quadratic_depletion=self.transmitter_depletion_quadratic,
        )

    @classmethod
    def paper_defaults(cls) -> "WorkingMemoryParameters":
        return cls()

    @classmethod
    def cowans_capacity(cls) -> "WorkingMemoryParameters":
        """Cowan's 4 +- 1 focus of attention."""
        return cls().with_parameter("capacity", 4)

    @classmethod
    def extended_capacity(cls) -> "WorkingMemoryParameters":
        """Nine-item span: faster decay and a steeper gradient to compensate."""
        return cls(
            capacity=9,
            decay_rate=0.3,
            primacy_decay_rate=0.2,
            self_excitation=0.08,
            lateral_inhibition=0.08,
            transmitter_recovery_rate=0.03,
            retrieval_threshold=0.15,
        )


@dataclass(frozen=True)
class MaskingFieldParameters(_ParameterRecord):
    """
    Multi-scale masking field (LIST PARSE list chunks).

    Defaults are the phone-number preset: list chunks of 3 or 4 items.

    Attributes:
        min_chunk_size: Smallest list-chunk cell
        max_chunk_size: Largest list-chunk cell
        max_chunks: Most chunk categories kept in long-term memory
        decay_rate: Passive decay of chunk-cell activity
        max_activation: Chunk-cell ceiling
        self_excitation: Recurrent self-excitation of chunk cells
        masking_inhibition: Base off-surround; scaled by the size of the inhibiting cell
        input_gain: Gain of the bottom-up input from working memory
        size_exponent: Self-similar normalisation, input = gain * sum / size**exponent
        learning_rate: Instar learning rate of chunk templates
        vigilance: ART match threshold for reusing a stored chunk category
        reset_decay_factor: Activity kept by consumed items after a chunk forms
    """

    min_chunk_size: int = 3
    max_chunk_size: int = 4
    max_chunks: int = 10
    decay_rate: float = 1.0
    max_activation: float = 1.0
    self_excitation: float = 0.0
    masking_inhibition: float = 2.0
    input_gain: float = 5.0
    size_exponent: float = 0.5
    learning_rate: float = 0.5
    vigilance: float = 0.9
    reset_decay_factor: float = 0.3

    def __post_init__(self):
        _require("min_chunk_size", self.min_chunk_size,
                 _is_integer(self.min_chunk_size) and self.min_chunk_size >= 1,
                 "an integer >= 1")
        _require("max_chunk_size", self.max_chunk_size,
                 _is_integer(self.max_chunk_size)
                 and self.min_chunk_size <= self.max_chunk_size <= 20,
                 f"an integer in [{self.min_chunk_size}, 20]")
        _require("max_chunks", self.max_chunks,
                 _is_integer(self.max_chunks) and self.max_chunks >= 1, "an integer >= 1")
        for f in fields(self)[3:]:
            _finite(f.name, getattr(self, f.name))
        _require("decay_rate", self.decay_rate, self.decay_rate > 0, "> 0")
        _require("max_activation", self.max_activation, self.max_activation > 0, "> 0")
        _require("self_excitation", self.self_excitation, self.self_excitation >= 0, ">= 0")
        _require("masking_inhibition", self.masking_inhibition, self.masking_inhibition >= 0, ">= 0")
        _require("input_gain", self.input_gain, self.input_gain > 0, "> 0")
        _require("size_exponent", self.size_exponent, 0 <= self.size_exponent <= 1.0, "in [0, 1]")
        _require("learning_rate", self.learning_rate, 0 < self.learning_rate <= 1.0, "in (0, 1]")
        _require("vigilance", self.vigilance, 0 <= self.vigilance <= 1.0, "in [0, 1]")
        _require("reset_decay_factor", self.reset_decay_factor,
                 0 <= self.reset_decay_factor <= 1.0, "in [0, 1]")

    @classmethod
    def phone_number_defaults(cls) -> "MaskingFieldParameters":
        return cls()

    @classmethod
    def list_learning_defaults(cls) -> "MaskingFieldParameters":
        """General list learning: chunks of 2 up to Miller's 7."""
        return cls(min_chunk_size=2, max_chunk_size=7)


@dataclass(frozen=True)
class TemporalARTParameters(_ParameterRecord):
    """
    Sequence categories built on top of working memory and the masking field.

    Attributes:
        vigilance: Match a stored sequence category needs to resonate
        learning_rate: Weight of the new sequence when a category is refined
        max_categories: Most sequence categories; further sequences stay uncoded
        working_memory: Parameters of the item-order working memory
        masking_field: Parameters of the list-chunk masking field
    """

    vigilance: float = 0.9
    learning_rate: float = 0.5
    max_categories: int = 100
    working_memory: WorkingMemoryParameters = field(default_factory=WorkingMemoryParameters)
    masking_field: MaskingFieldParameters = field(
        default_factory=MaskingFieldParameters.list_learning_defaults)

    def __post_init__(self):
        _finite("vigilance", self.vigilance)
        _require("vigilance", self.vigilance, 0 < self.vigilance <= 1.0, "in (0, 1]")
        _finite("learning_rate", self.learning_rate)
        _require("learning_rate", self.learning_rate, 0 < self.learning_rate <= 1.0, "in (0, 1]")
        _require("max_categories", self.max_categories,
                 _is_integer(self.max_categories) and self.max_categories >= 1, "an integer >= 1")
        _require("working_memory", self.working_memory,
                 isinstance(self.working_memory, WorkingMemoryParameters), "WorkingMemoryParameters")
        _require("masking_field", self.masking_field,
                 isinstance(self.masking_field, MaskingFieldParameters), "MaskingFieldParameters")

    @classmethod
    def list_learning_defaults(cls) -> "TemporalARTParameters":
        return cls()

    @classmethod
    def phone_number_defaults(cls) -> "TemporalARTParameters":
        """Ten-digit lists parsed into chunks of 3 and 4."""
        return cls(working_memory=WorkingMemoryParameters.extended_capacity(),
                   masking_field=MaskingFieldParameters.phone_number_defaults())


# Largest base step, in seconds.
MAX_BASE_STEP = 0.001


class TimeScaleTier(Enum):
    """Logical update groups, ordered fast to slow."""

    WORKING_MEMORY = "working_memory"
    MASKING_FIELD = "masking_field"
    TRANSMITTER = "transmitter"
    WEIGHT = "weight"


@dataclass(frozen=True)
class TimeScaleParameters(_ParameterRecord):
    """
    Update-rate ratio of each tier relative to the base (working-memory) step.

    A tier with ratio r is integrated once every r base steps with step
    size r * dt.
    """

    working_memory_ratio: int = 1
    masking_field_ratio: int = 5
    transmitter_ratio: int = 50
    weight_ratio: int = 250

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            _require(f.name, value, _is_integer(value) and value >= 1, "an integer >= 1")
        wm, mf, tr, w = (self.working_memory_ratio, self.masking_field_ratio,
                         self.transmitter_ratio, self.weight_ratio)
        _require("masking_field_ratio", mf, 3 <= mf / wm <= 10,
                 "3-10x the working-memory ratio")
        _require("transmitter_ratio", tr, 5 <= tr / mf <= 20,
                 "5-20x the masking-field ratio")
        _require("weight_ratio", w, 2 <= w / tr <= 10,
                 "2-10x the transmitter ratio")
        _require("weight_ratio", w, 100 <= w / wm <= 1000,
                 "100-1000x the working-memory ratio")

    def ratio(self, tier: TimeScaleTier) -> int:
        return getattr(self, f"{tier.value}_ratio")

    def ratios(self) -> Dict[TimeScaleTier, int]:
        return {tier: self.ratio(tier) for tier in TimeScaleTier}


@dataclass(frozen=True)
class IntegratorParameters(_ParameterRecord):
    """
    Fixed-step forward Euler settings.

    The base step is at most 1 ms, so at the default ratios a transmitter
    step is at most 50 ms and, for signals up to 1, every valid rate keeps
    the slow tiers within their Euler stability limits. Other ratios are
    checked when the Integrator is built.

    Attributes:
        dt: Base time step in seconds
        max_steps: Step budget for integrate()
        convergence_epsilon: |delta E| below which a step counts as settled
        patience: Consecutive settled steps needed to report convergence
        bound_tolerance: Overshoot that is clamped silently; larger is instability
    """

    dt: float = 0.001
    max_steps: int = 20000
    convergence_epsilon: float = 1e-9
    patience: int = 20
    bound_tolerance: float = 1e-9

    def __post_init__(self):
        _finite("dt", self.dt)
        _require("dt", self.dt, 0 < self.dt <= MAX_BASE_STEP, f"in (0, {MAX_BASE_STEP}]")
        _require("max_steps", self.max_steps,
                 _is_integer(self.max_steps) and self.max_steps > 0, "an integer > 0")
        _finite("convergence_epsilon", self.convergence_epsilon)
        _require("convergence_epsilon", self.convergence_epsilon,
                 self.convergence_epsilon > 0, "> 0")
        _require("patience", self.patience,
                 _is_integer(self.patience) and self.patience >= 1, "an integer >= 1")
        _finite("bound_tolerance", self.bound_tolerance)
        _require("bound_tolerance", self.bound_tolerance, self.bound_tolerance >= 0, ">= 0")
