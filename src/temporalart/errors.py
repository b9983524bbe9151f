"""
Error kinds for the temporal ART toolkit.

Construction-time problems raise immediately. Run-time numerical problems
are raised by the integrator and captured by the validation harness, which
turns them into structured results instead of letting them end a suite run.
Convergence failure and validation mismatch are result states, not
exceptions (see temporalart.validation.results).
"""

from typing import Optional


class TemporalARTError(Exception):
    """Base class for all toolkit errors."""


class InvalidParameterError(TemporalARTError, ValueError):
    """A parameter or equation argument is outside its valid range."""

    def __init__(self, name: str, value, constraint: str):
        self.name = name
        self.value = value
        self.constraint = constraint
        super().__init__(f"Invalid parameter '{name}'={value!r}: must be {constraint}")


class NumericalInstabilityError(TemporalARTError, ArithmeticError):
    """
    A state variable escaped its bounds (or became non-finite) mid-integration.

    Attributes:
        subsystem: Name of the dynamics module that produced the value
        variable: State variable that escaped
        step: Base integration step at which it happened
        magnitude: Largest distance outside the bounds (inf for NaN/inf)
        index: Flat index of the offending unit, if known
    """

    def __init__(self, subsystem: str, variable: str, step: int,
                 magnitude: float, index: Optional[int] = None):
        self.subsystem = subsystem
        self.variable = variable
        self.step = step
        self.magnitude = magnitude
        self.index = index
        where = f" at unit {index}" if index is not None else ""
        super().__init__(
            f"{subsystem}: '{variable}' left its bounds by {magnitude:.3g}{where} "
            f"at step {step}"
        )
