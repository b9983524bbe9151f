"""
Visualization tools for the temporal ART toolkit.

Static (matplotlib) and interactive (plotly) views of trajectories, energy,
working-memory contents, list chunks and validation reports.
"""

# Energy visualizations
from visualization.energy_plots import (
    plot_energy_evolution,
    plot_energy_change,
    plot_energy_interactive,
    plot_trajectory_interactive
)

# Dynamics visualizations
from visualization.dynamics_plots import (
    plot_trajectory,
    plot_serial_position,
    plot_chunks,
    plot_validation_report
)

__all__ = [
    'plot_energy_evolution',
    'plot_energy_change',
    'plot_energy_interactive',
    'plot_trajectory_interactive',
    'plot_trajectory',
    'plot_serial_position',
    'plot_chunks',
    'plot_validation_report',
]
