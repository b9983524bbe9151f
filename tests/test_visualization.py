"""
Smoke tests for the plotting helpers.

Figures are drawn on the non-interactive Agg backend and saved to a
temporary directory.
"""

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import plotly.graph_objects as go
import pytest
from temporalart.memory.masking_field import MaskingField
from temporalart.memory.working_memory import WorkingMemory
from temporalart.validation import EquationCase, ValidationHarness
from visualization import (
    plot_chunks,
    plot_energy_change,
    plot_energy_evolution,
    plot_energy_interactive,
    plot_serial_position,
    plot_trajectory,
    plot_trajectory_interactive,
    plot_validation_report,
)


def one_hot(index, size=10):
    v = np.zeros(size)
    v[index] = 1.0
    return v


@pytest.fixture(scope="module")
def stored():
    return WorkingMemory().store_sequence([one_hot(i) for i in range(5)])


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


class TestEnergyPlots:
    """Test energy figures."""

    def test_evolution_from_trajectory(self, stored, tmp_path):
        path = tmp_path / "energy.png"
        fig = plot_energy_evolution(stored.trajectory, save_path=str(path))
        assert fig is not None
        assert path.exists()

    def test_evolution_from_values(self):
        fig = plot_energy_evolution([1.0, 0.5, 0.25, 0.2])
        assert len(fig.axes) == 1

    def test_change(self):
        fig = plot_energy_change(np.array([1.0, 0.5, 0.5, 0.4]), epsilon=1e-9)
        assert fig.axes[0].get_yscale() == "log"

    def test_interactive(self, tmp_path):
        path = tmp_path / "energy.html"
        fig = plot_energy_interactive([1.0, 0.5, 0.25], save_path=str(path))
        assert isinstance(fig, go.Figure)
        assert path.exists()

    def test_trajectory_interactive(self, stored):
        fig = plot_trajectory_interactive(stored.trajectory)
        # One line per unit of both variables, plus the energy.
        n = stored.parameters.max_items
        assert len(fig.data) == 2 * n + 1


class TestDynamicsPlots:
    """Test dynamics figures."""

    def test_trajectory(self, stored):
        fig = plot_trajectory(stored.trajectory, units=5)
        assert len(fig.axes[0].lines) == 5

    def test_serial_position(self, stored):
        assert plot_serial_position(stored) is not None

    def test_chunks(self):
        result = MaskingField().chunk_sequence([one_hot(d) for d in (5, 5, 5, 1, 2, 3, 4, 5, 6, 7)])
        assert plot_chunks(result) is not None

    def test_validation_report(self):
        cases = [EquationCase("good", lambda: (1.0, 1.0)), EquationCase("bad", lambda: (1.0, 2.0))]
        report = ValidationHarness(cases=cases, scenarios=[]).run_equation_suite()
        fig = plot_validation_report(report)
        assert len(fig.axes) == 2
