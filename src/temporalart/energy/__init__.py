"""Lyapunov energy used for convergence checks."""

from temporalart.energy.functions import energy_change, lyapunov_energy

__all__ = [
    "lyapunov_energy",
    "energy_change",
]
