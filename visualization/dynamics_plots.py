"""
Plots of working-memory and masking-field dynamics.
"""

import numpy as np
import matplotlib.pyplot as plt
from typing import Optional

from temporalart.integrator import Trajectory
from temporalart.memory.masking_field import ChunkingResult
from temporalart.memory.working_memory import WorkingMemoryResult
from temporalart.validation.results import ValidationReport


def plot_trajectory(trajectory: Trajectory,
                    variable: str = "activation",
                    units: Optional[int] = None,
                    title: Optional[str] = None,
                    figsize: tuple = (10, 6),
                    save_path: Optional[str] = None):
    """
    Plot every unit of one state variable against time.

    Args:
        trajectory: Recorded run
        variable: State variable to plot
        units: Only plot the first `units` units
        title: Plot title (defaults to the variable name)
        figsize: Figure size
        save_path: Optional path to save figure
    """
    values = trajectory.values(variable).reshape(len(trajectory), -1)
    if units is not None:
        values = values[:, :units]
    times = trajectory.times

    fig, ax = plt.subplots(figsize=figsize)
    colors = plt.cm.viridis(np.linspace(0, 1, max(values.shape[1], 1)))
    for unit in range(values.shape[1]):
        ax.plot(times, values[:, unit], linewidth=1.5, color=colors[unit], label=f'{unit}')

    ax.set_xlabel('Time (s)', fontsize=12)
    ax.set_ylabel(variable, fontsize=12)
    ax.set_title(title or variable.replace('_', ' ').title(), fontsize=14, fontweight='bold')
    ax.grid(True, alpha=0.3)
    if 0 < values.shape[1] <= 12:
        ax.legend(loc='best', fontsize=8, ncol=2)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')

    return fig


def plot_serial_position(result: WorkingMemoryResult,
                         title: str = "Serial Position Curve",
                         figsize: tuple = (10, 5),
                         save_path: Optional[str] = None):
    """
    Stored activation, transmitter level and retrieval weight per list position.

    Recalled items are marked with their recall rank.
    """
    positions = np.arange(result.n_items)
    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(positions, result.activations(), 'o-', linewidth=2, color='#2E86AB', label='activation $x$')
    ax.plot(positions, result.transmitters(), 's--', linewidth=1.5, color='#6A994E', label='transmitter $z$')
    ax.bar(positions, result.retrieval_weights(), alpha=0.3, color='#F18F01', label='weight $xz$')
    ax.axhline(result.parameters.retrieval_threshold, linestyle=':', color='gray', label='threshold')

    recalled = result.retrieve()
    for rank, item in enumerate(recalled.items, start=1):
        ax.annotate(str(rank), xy=(item.position, recalled.weights[rank - 1]),
                    xytext=(0, 6), textcoords='offset points', ha='center', fontsize=9)

    ax.set_xlabel('List position', fontsize=12)
    ax.set_ylabel('Level', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.set_xticks(positions)
    ax.legend(loc='best', fontsize=10)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')

    return fig


def plot_chunks(result: ChunkingResult,
                labels=None,
                title: str = "List Chunks",
                figsize: tuple = (10, 2.5),
                save_path: Optional[str] = None):
    """
    Segmentation of a sequence into list chunks as a horizontal bar.

    Args:
        result: Masking-field parse
        labels: Optional label per item (e.g. the digits)
    """
    fig, ax = plt.subplots(figsize=figsize)
    palette = ['#2E86AB', '#F18F01', '#C73E1D', '#6A994E', '#8E7DBE']

    for i, chunk in enumerate(result.chunks):
        color = palette[chunk.category % len(palette)]
        ax.barh(0, chunk.size, left=chunk.start, color=color, edgecolor='black',
                hatch='' if chunk.resonant else '//')
        ax.text(chunk.start + chunk.size / 2, 0, f'c{chunk.category}',
                ha='center', va='center', fontsize=11, color='white', fontweight='bold')
    for position in result.unchunked:
        ax.barh(0, 1, left=position, color='lightgray', edgecolor='black')

    total = result.statistics.total_items
    if labels is not None:
        ax.set_xticks(np.arange(total) + 0.5)
        ax.set_xticklabels([str(label) for label in labels])
    ax.set_xlim(0, max(total, 1))
    ax.set_yticks([])
    ax.set_title(title, fontsize=14, fontweight='bold')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')

    return fig


def plot_validation_report(report: ValidationReport,
                           figsize: tuple = (10, 5),
                           save_path: Optional[str] = None):
    """
    Pass/fail overview: equation deltas against tolerance and scenario outcomes.
    """
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=figsize)

    eq = report.equation_results
    if eq:
        names = [r.name for r in eq]
        deltas = [max(r.delta, 1e-18) if np.isfinite(r.delta) else 1.0 for r in eq]
        colors = ['#6A994E' if r.passed else '#C73E1D' for r in eq]
        ax1.barh(names, deltas, color=colors)
        ax1.set_xscale('log')
        ax1.set_xlabel('|computed - expected|', fontsize=10)
    ax1.set_title('Equations', fontsize=12, fontweight='bold')

    sc = report.scenario_results
    if sc:
        names = [r.name for r in sc]
        colors = ['#6A994E' if r.passed else '#C73E1D' for r in sc]
        ax2.barh(names, [1] * len(sc), color=colors)
        ax2.set_xticks([])
    ax2.set_title('Scenarios', fontsize=12, fontweight='bold')

    fig.suptitle(report.title, fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')

    return fig
