"""
Energy visualization for the temporal ART dynamics.

Plots the Lyapunov energy of a run and its step-to-step change, as static
matplotlib figures or interactive plotly figures.
"""

import numpy as np
import matplotlib.pyplot as plt
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from typing import Optional, Sequence

from temporalart.integrator import Trajectory


def _energies(source) -> np.ndarray:
    if isinstance(source, Trajectory):
        return source.energy_array()
    return np.asarray(source, dtype=float)


def plot_energy_evolution(energies,
                          title: str = "Lyapunov Energy",
                          figsize: tuple = (10, 6),
                          save_path: Optional[str] = None):
    """
    Plot energy over time (matplotlib).

    Args:
        energies: Trajectory or sequence of energy values
        title: Plot title
        figsize: Figure size
        save_path: Optional path to save figure
    """
    E = _energies(energies)
    times = energies.times if isinstance(energies, Trajectory) else np.arange(len(E))
    xlabel = 'Time (s)' if isinstance(energies, Trajectory) else 'Step'

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(times, E, linewidth=2, color='#2E86AB')
    ax.set_xlabel(xlabel, fontsize=12)
    ax.set_ylabel('Energy $E$', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.grid(True, alpha=0.3)

    finite = np.isfinite(E)
    if finite.any():
        first, last = np.argmax(finite), len(E) - 1 - np.argmax(finite[::-1])
        ax.annotate(f'Initial: {E[first]:.4f}', xy=(times[first], E[first]),
                    xytext=(10, 10), textcoords='offset points', fontsize=10, color='green',
                    bbox=dict(boxstyle='round,pad=0.5', facecolor='white', alpha=0.8))
        ax.annotate(f'Final: {E[last]:.4f}', xy=(times[last], E[last]),
                    xytext=(-80, -20), textcoords='offset points', fontsize=10, color='red',
                    bbox=dict(boxstyle='round,pad=0.5', facecolor='white', alpha=0.8))

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')

    return fig


def plot_energy_change(energies,
                       epsilon: Optional[float] = None,
                       title: str = "Energy Change per Step",
                       figsize: tuple = (10, 5),
                       save_path: Optional[str] = None):
    """
    Plot |delta E| on a log scale, with the convergence threshold if given.
    """
    E = _energies(energies)
    E = E[np.isfinite(E)]
    changes = np.abs(np.diff(E)) if E.size > 1 else np.zeros(0)

    fig, ax = plt.subplots(figsize=figsize)
    # Exact zeros cannot be drawn on a log axis.
    ax.semilogy(np.arange(1, len(changes) + 1), np.maximum(changes, 1e-300),
                linewidth=1.5, color='#C73E1D')
    if epsilon is not None:
        ax.axhline(epsilon, linestyle='--', color='gray', label=f'epsilon = {epsilon:g}')
        ax.legend(loc='best', fontsize=10)
    ax.set_xlabel('Step', fontsize=12)
    ax.set_ylabel('$|\\Delta E|$', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.grid(True, alpha=0.3, which='both')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')

    return fig


def plot_energy_interactive(energies,
                            title: str = "Lyapunov Energy (Interactive)",
                            save_path: Optional[str] = None):
    """
    Interactive energy plot (plotly).

    Args:
        energies: Trajectory or sequence of energy values
        title: Plot title
        save_path: Optional path to save HTML
    """
    E = _energies(energies)
    times = energies.times if isinstance(energies, Trajectory) else np.arange(len(E))

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=times, y=E,
        mode='lines',
        name='E',
        line=dict(color='#2E86AB', width=2),
        hovertemplate='t=%{x}<br>E=%{y:.6f}<extra></extra>'
    ))
    fig.update_layout(
        title=title,
        xaxis_title='Time',
        yaxis_title='Energy',
        hovermode='x unified',
        template='plotly_white'
    )

    if save_path:
        fig.write_html(save_path)

    return fig


def plot_trajectory_interactive(trajectory: Trajectory,
                                variables: Sequence[str] = ("activation", "transmitter"),
                                title: str = "Dynamics (Interactive)",
                                save_path: Optional[str] = None):
    """
    One subplot per state variable with a line per unit, plus the energy.
    """
    present = [v for v in variables if v in trajectory.final]
    rows = len(present) + 1
    fig = make_subplots(rows=rows, cols=1, shared_xaxes=True,
                        subplot_titles=[*present, 'energy'])
    times = trajectory.times

    for row, variable in enumerate(present, start=1):
        values = trajectory.values(variable).reshape(len(trajectory), -1)
        for unit in range(values.shape[1]):
            fig.add_trace(go.Scatter(x=times, y=values[:, unit], mode='lines',
                                     name=f'{variable}[{unit}]', showlegend=False),
                          row=row, col=1)

    fig.add_trace(go.Scatter(x=times, y=trajectory.energy_array(), mode='lines',
                             name='E', line=dict(color='#2E86AB')), row=rows, col=1)
    fig.update_layout(title=title, height=300 * rows, template='plotly_white')
    fig.update_xaxes(title_text='Time (s)', row=rows, col=1)

    if save_path:
        fig.write_html(save_path)

    return fig
