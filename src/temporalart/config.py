"""
Harness configuration.

Settings come from TEMPORALART_* environment variables, optionally loaded
from a .env file first:

    TEMPORALART_TOLERANCE=1e-6
    TEMPORALART_DT=0.001
    TEMPORALART_MAX_STEPS=20000
    TEMPORALART_CONVERGENCE_EPSILON=1e-9
    TEMPORALART_PATIENCE=20
    TEMPORALART_MAX_WORKERS=1
    TEMPORALART_SEED=42
    TEMPORALART_LOG_LEVEL=INFO
"""

import logging
import numbers
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Union

from dotenv import find_dotenv, load_dotenv

from temporalart.errors import InvalidParameterError
from temporalart.parameters import IntegratorParameters

ENV_PREFIX = "TEMPORALART_"


def _env(name: str, default, cast):
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise InvalidParameterError(ENV_PREFIX + name, raw, f"a valid {cast.__name__}") from None


@dataclass(frozen=True)
class HarnessConfig:
    """
    Settings of a validation run.

    Attributes:
        tolerance: Absolute tolerance of equation checks
        dt: Base integration step in seconds
        max_steps: Step budget per integration
        convergence_epsilon: Energy change that counts as settled
        patience: Consecutive settled checks needed to converge
        max_workers: Threads used to run scenarios (1 runs them in order)
        seed: Seed for scenarios that draw random initial states
        log_level: Logging level name
    """

    tolerance: float = 1e-6
    dt: float = 0.001
    max_steps: int = 20000
    convergence_epsilon: float = 1e-9
    patience: int = 20
    max_workers: int = 1
    seed: int = 42
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.tolerance > 0:
            raise InvalidParameterError("tolerance", self.tolerance, "> 0")
        if not (isinstance(self.max_workers, numbers.Integral)
                and not isinstance(self.max_workers, bool) and self.max_workers >= 1):
            raise InvalidParameterError("max_workers", self.max_workers, "an integer >= 1")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise InvalidParameterError("log_level", self.log_level, "a logging level name")
        # Range checks of the integrator settings live in IntegratorParameters.
        self.integrator_parameters()

    def integrator_parameters(self) -> IntegratorParameters:
        return IntegratorParameters(
            dt=self.dt,
            max_steps=self.max_steps,
            convergence_epsilon=self.convergence_epsilon,
            patience=self.patience,
        )

    def with_overrides(self, **overrides) -> "HarnessConfig":
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "HarnessConfig":
        """
        Build a config from the environment.

        Args:
            env_file: .env file to load first; the default search finds a
                .env in the working directory or its parents. Variables that
                are already set are not overridden.
        """
        if env_file is not None:
            load_dotenv(dotenv_path=env_file)
        else:
            load_dotenv(find_dotenv(usecwd=True))
        defaults = cls()
        return cls(
            tolerance=_env("TOLERANCE", defaults.tolerance, float),
            dt=_env("DT", defaults.dt, float),
            max_steps=_env("MAX_STEPS", defaults.max_steps, int),
            convergence_epsilon=_env("CONVERGENCE_EPSILON", defaults.convergence_epsilon, float),
            patience=_env("PATIENCE", defaults.patience, int),
            max_workers=_env("MAX_WORKERS", defaults.max_workers, int),
            seed=_env("SEED", defaults.seed, int),
            log_level=_env("LOG_LEVEL", defaults.log_level, str).upper(),
        )
