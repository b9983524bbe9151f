"""
Utility functions for the temporal ART toolkit.

Includes logging setup and trajectory metrics used by the experiments and
the plots.
"""

import logging
import sys
from typing import Dict, Optional, Tuple, Union

import colorlog
import numpy as np

from temporalart.integrator import Trajectory

CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(levelname)-8s]%(reset)s %(name)s: %(message)s"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def setup_logging(level: Union[str, int] = "INFO", stream=None) -> logging.Logger:
    """
    Install a coloured console handler on the package logger.

    Calling it again replaces the handler instead of adding a second one.

    Args:
        level: Logging level name or number
        stream: Output stream; stdout by default

    Returns:
        logging.Logger: The configured `temporalart` logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    handler = colorlog.StreamHandler(stream or sys.stdout)
    handler.setFormatter(colorlog.ColoredFormatter(
        CONSOLE_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS,
    ))
    handler.setLevel(level)

    logger = logging.getLogger("temporalart")
    for old in list(logger.handlers):
        if getattr(old, "_temporalart_console", False):
            logger.removeHandler(old)
    handler._temporalart_console = True
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def compute_trajectory_metrics(trajectory: Trajectory, variable: str = "activation") -> Dict[str, float]:
    """
    Summary statistics of one variable over a run.

    Metrics:
    - duration: simulated seconds covered
    - final_mean / final_max: activity at the end
    - peak: largest value reached at any recorded point
    - total_change: distance between first and last snapshot
    - energy_drop: first minus last recorded energy (NaN without energy)
    - settling_time: see settling_time() (NaN while still moving)

    Args:
        trajectory: Recorded run
        variable: State variable to summarise

    Returns:
        dict: Computed metrics
    """
    values = trajectory.values(variable)
    energies = trajectory.energy_array()
    finite = energies[np.isfinite(energies)]

    metrics = {
        "duration": float(trajectory.final.time - trajectory.initial.time),
        "final_mean": float(np.mean(values[-1])) if values[-1].size else 0.0,
        "final_max": float(np.max(values[-1])) if values[-1].size else 0.0,
        "peak": float(np.max(values)) if values.size else 0.0,
        "total_change": trajectory.initial.distance_to(trajectory.final),
        "energy_drop": float(finite[0] - finite[-1]) if finite.size else float("nan"),
    }
    settled = settling_time(trajectory, variable)
    metrics["settling_time"] = float("nan") if settled is None else settled
    return metrics


def settling_time(trajectory: Trajectory, variable: str = "activation",
                  tolerance: float = 1e-3) -> Optional[float]:
    """
    First time after which the variable stays within `tolerance` of its
    final value, or None if it is still moving at the last recorded
    snapshot before the end of the run.
    """
    values = trajectory.values(variable).reshape(len(trajectory), -1)
    distance = np.max(np.abs(values - values[-1]), axis=1)
    outside = np.nonzero(distance > tolerance)[0]
    if outside.size == 0:
        return float(trajectory.times[0])
    last = int(outside[-1])
    if last + 1 >= len(trajectory) - 1:
        return None
    return float(trajectory.times[last + 1])


def largest_energy_increase(energies: Optional[np.ndarray],
                            steps: Optional[np.ndarray] = None) -> Tuple[float, Optional[int]]:
    """
    Largest rise between consecutive finite energies and where it ended.

    Args:
        energies: Recorded energies, NaN where none was computed
        steps: Integration step of every entry; entry indices if None

    Returns:
        Tuple of (increase, step). The step is None when fewer than two
        finite energies were recorded.
    """
    if energies is None:
        return 0.0, None
    e = np.asarray(energies, dtype=float)
    idx = np.nonzero(np.isfinite(e))[0]
    if idx.size < 2:
        return 0.0, None
    rises = np.diff(e[idx])
    worst = int(np.argmax(rises))
    at = idx[worst + 1]
    step = int(steps[at]) if steps is not None else int(at)
    return float(rises[worst]), step


def last_energy_change(energies: Optional[np.ndarray]) -> float:
    """|delta E| between the last two finite energies; inf if unknown."""
    if energies is None:
        return float("inf")
    e = np.asarray(energies, dtype=float)
    e = e[np.isfinite(e)]
    if e.size < 2:
        return float("inf")
    return float(abs(e[-1] - e[-2]))
