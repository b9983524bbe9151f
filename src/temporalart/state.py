"""
Immutable snapshots of dynamics state.

A DynamicsState maps variable names (activation, transmitter, weights, ...)
to numpy arrays together with the simulated time and the base step index.
The arrays are copied and flagged read-only on construction, so a snapshot
handed to the integrator, the harness or a plot can never change under
anyone's feet; every update produces a new snapshot.

States of the same layout (same variable names and shapes) support three
geometric capabilities: distance_to, interpolate and vector_to. The derived
quantities importance, readiness and normalize are free functions on top of
those.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

import numpy as np

from temporalart.errors import InvalidParameterError


def _frozen_copy(values) -> np.ndarray:
    # Arrays frozen by an earlier snapshot can be shared as they are.
    if (isinstance(values, np.ndarray) and values.dtype == np.float64
            and not values.flags.writeable and values.base is None):
        return values
    arr = np.array(values, dtype=float, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class DynamicsState:
    """
    Snapshot of every state variable at one point in simulated time.

    Attributes:
        values: Read-only mapping of variable name to read-only array
        time: Simulated time in seconds
        step: Base integration step that produced this snapshot
    """

    values: Mapping[str, np.ndarray]
    time: float = 0.0
    step: int = 0
    _names: Tuple[str, ...] = field(init=False, repr=False)

    def __post_init__(self):
        frozen = {name: _frozen_copy(v) for name, v in self.values.items()}
        object.__setattr__(self, "values", MappingProxyType(frozen))
        object.__setattr__(self, "_names", tuple(sorted(frozen)))

    @classmethod
    def create(cls, time: float = 0.0, step: int = 0, **values) -> "DynamicsState":
        """Build a snapshot from keyword arrays, e.g. create(activation=x)."""
        return cls(values=values, time=time, step=step)

    def __getitem__(self, name: str) -> np.ndarray:
        return self.values[name]

    def __contains__(self, name: str) -> bool:
        return name in self.values

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    def with_values(self, time: Optional[float] = None, step: Optional[int] = None,
                    **updates) -> "DynamicsState":
        """New snapshot with some variables replaced; the rest are shared."""
        merged: Dict[str, np.ndarray] = dict(self.values)
        merged.update(updates)
        return DynamicsState(
            values=merged,
            time=self.time if time is None else time,
            step=self.step if step is None else step,
        )

    def as_vector(self) -> np.ndarray:
        """All variables flattened into one vector, in name order."""
        if not self._names:
            return np.zeros(0)
        return np.concatenate([self.values[name].ravel() for name in self._names])

    def _check_layout(self, other: "DynamicsState"):
        if self._names != other._names:
            raise InvalidParameterError("other", other.names, f"a state with variables {self.names}")
        for name in self._names:
            if self.values[name].shape != other.values[name].shape:
                raise InvalidParameterError(
                    name, other.values[name].shape, f"of shape {self.values[name].shape}"
                )

    def vector_to(self, other: "DynamicsState") -> np.ndarray:
        """Displacement other - self as one flat vector."""
        self._check_layout(other)
        return other.as_vector() - self.as_vector()

    def distance_to(self, other: "DynamicsState") -> float:
        """Euclidean distance between two states of the same layout."""
        return float(np.linalg.norm(self.vector_to(other)))

    def interpolate(self, other: "DynamicsState", fraction: float) -> "DynamicsState":
        """
        Linear interpolation between two states.

        Args:
            other: Target state (same layout)
            fraction: 0 gives self, 1 gives other

        Returns:
            DynamicsState: Interpolated snapshot; time is interpolated too
        """
        if not 0.0 <= fraction <= 1.0:
            raise InvalidParameterError("fraction", fraction, "in [0, 1]")
        self._check_layout(other)
        blended = {
            name: (1.0 - fraction) * self.values[name] + fraction * other.values[name]
            for name in self._names
        }
        time = (1.0 - fraction) * self.time + fraction * other.time
        step = self.step if fraction < 0.5 else other.step
        return DynamicsState(values=blended, time=time, step=step)


@dataclass(frozen=True, eq=False)
class NormalizedState:
    """
    Unit-norm view of a state.

    Attributes:
        vector: Flattened state divided by its norm (zeros for a zero state)
        norm: Euclidean norm of the original state
        names: Variables that were flattened, in order
    """

    vector: np.ndarray
    norm: float
    names: Tuple[str, ...]

    @property
    def is_zero(self) -> bool:
        return self.norm == 0.0


def _primary(state: DynamicsState, variable: Optional[str]) -> np.ndarray:
    if variable is not None:
        return state[variable]
    if "activation" in state:
        return state["activation"]
    return state.as_vector()


def importance(state: DynamicsState, variable: Optional[str] = None) -> float:
    """
    Mean absolute activity; 0.0 for an empty state.

    Uses the activation variable when present, otherwise every variable.
    """
    values = _primary(state, variable)
    if values.size == 0:
        return 0.0
    return float(np.mean(np.abs(values)))


def readiness(state: DynamicsState, threshold: float = 0.5,
              variable: Optional[str] = None) -> float:
    """Fraction of units whose activity exceeds the threshold."""
    values = _primary(state, variable)
    if values.size == 0:
        return 0.0
    return float(np.mean(values > threshold))


def normalize(state: DynamicsState, min_norm: float = 1e-12) -> NormalizedState:
    """
    Normalise a state to unit length.

    A state whose norm is below min_norm normalises to the zero vector with
    norm 0.0 rather than being divided by zero.
    """
    vector = state.as_vector()
    norm = float(np.linalg.norm(vector))
    if norm < min_norm:
        unit = np.zeros_like(vector)
        norm = 0.0
    else:
        unit = vector / norm
    unit.setflags(write=False)
    return NormalizedState(vector=unit, norm=norm, names=state.names)
