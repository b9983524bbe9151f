"""
Unit tests for harness configuration.
"""

import dataclasses

import numpy as np
import pytest
from temporalart.config import HarnessConfig
from temporalart.errors import InvalidParameterError

ENV_NAMES = [
    "TEMPORALART_TOLERANCE",
    "TEMPORALART_DT",
    "TEMPORALART_MAX_STEPS",
    "TEMPORALART_CONVERGENCE_EPSILON",
    "TEMPORALART_PATIENCE",
    "TEMPORALART_MAX_WORKERS",
    "TEMPORALART_SEED",
    "TEMPORALART_LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No TEMPORALART_* variables, and no .env to find in the working directory."""
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestHarnessConfig:
    """Test defaults and validation."""

    def test_defaults(self):
        config = HarnessConfig()
        assert config.tolerance == 1e-6
        assert config.dt == 0.001
        assert config.max_workers == 1

    def test_integrator_parameters(self):
        params = HarnessConfig(dt=0.0005, patience=5).integrator_parameters()
        assert params.dt == 0.0005
        assert params.patience == 5

    @pytest.mark.parametrize("kwargs", [
        dict(tolerance=0.0),
        dict(max_workers=0),
        dict(max_workers=True),
        dict(log_level="LOUD"),
        dict(dt=1.0),
        dict(dt=0.1),
        dict(patience=0),
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidParameterError):
            HarnessConfig(**kwargs)

    def test_numpy_worker_count(self):
        assert HarnessConfig(max_workers=np.int64(4)).max_workers == 4

    def test_with_overrides(self):
        config = HarnessConfig()
        changed = config.with_overrides(max_workers=4)
        assert changed.max_workers == 4
        assert config.max_workers == 1

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            HarnessConfig().seed = 1


class TestFromEnv:
    """Test loading settings from the environment."""

    def test_no_environment(self, clean_env):
        assert HarnessConfig.from_env() == HarnessConfig()

    def test_environment_variables(self, clean_env):
        clean_env.setenv("TEMPORALART_TOLERANCE", "1e-4")
        clean_env.setenv("TEMPORALART_MAX_WORKERS", "3")
        clean_env.setenv("TEMPORALART_LOG_LEVEL", "debug")
        config = HarnessConfig.from_env()
        assert config.tolerance == 1e-4
        assert config.max_workers == 3
        assert config.log_level == "DEBUG"

    def test_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / "harness.env"
        env_file.write_text("TEMPORALART_SEED=7\nTEMPORALART_DT=0.0005\n")
        # load_dotenv writes into os.environ; register the names for cleanup.
        clean_env.setenv("TEMPORALART_SEED", "")
        clean_env.setenv("TEMPORALART_DT", "")
        clean_env.delenv("TEMPORALART_SEED")
        clean_env.delenv("TEMPORALART_DT")
        config = HarnessConfig.from_env(env_file)
        assert config.seed == 7
        assert config.dt == 0.0005

    def test_environment_wins_over_file(self, clean_env, tmp_path):
        env_file = tmp_path / "harness.env"
        env_file.write_text("TEMPORALART_SEED=7\n")
        clean_env.setenv("TEMPORALART_SEED", "11")
        assert HarnessConfig.from_env(env_file).seed == 11

    def test_bad_value(self, clean_env):
        clean_env.setenv("TEMPORALART_MAX_STEPS", "many")
        with pytest.raises(InvalidParameterError, match="TEMPORALART_MAX_STEPS"):
            HarnessConfig.from_env()
