"""Genotype and allele-frequency trajectories.

Every function:
  - Accepts SimulationResult(s) as input
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (saves PNG when given)
  - Uses the shared dark theme from ``flypoly.viz.style``
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, TYPE_CHECKING, Union

import matplotlib.pyplot as plt
import numpy as np

from flypoly.viz.style import (
    GENOTYPE_COLORS,
    REPLICATE_COLORS,
    TEXT_COLOR,
    dark_figure,
    save_figure,
    style_legend,
)

if TYPE_CHECKING:
    from flypoly.model import SimulationResult

PathLike = Union[str, Path]


def _finish(fig, save_path: Optional[PathLike]):
    if save_path is not None:
        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        # save_figure closes the figure; the returned object stays usable
        save_figure(fig, str(save_path))
    return fig


def plot_genotype_trajectories(
    result: 'SimulationResult',
    save_path: Optional[PathLike] = None,
) -> plt.Figure:
    """Egg-stage (dashed) and adult-stage (solid) genotype proportions.

    Args:
        result: SimulationResult with egg/adult proportion arrays.
        save_path: Path to save figure.

    Returns:
        matplotlib Figure.
    """
    generations = np.arange(1, result.n_generations + 1)
    fig, ax = dark_figure()

    for col, name in enumerate(('AA', 'AB', 'BB')):
        color = GENOTYPE_COLORS[name]
        ax.plot(generations, result.adult_proportions[:, col], color=color,
                linewidth=2.0, marker='o', markersize=3, label=f'{name} adult')
        ax.plot(generations, result.egg_proportions[:, col], color=color,
                linewidth=1.2, linestyle='--', alpha=0.7, label=f'{name} egg')

    if result.terminated_early:
        ax.axvline(result.generations_run, color=TEXT_COLOR, linestyle=':',
                   linewidth=1.0, alpha=0.6)
        ax.annotate(result.reason.value, xy=(result.generations_run, 1.02),
                    color=TEXT_COLOR, fontsize=9, ha='center')

    ax.set_xlabel('Generation')
    ax.set_ylabel('Proportion')
    ax.set_ylim(-0.02, 1.08)
    ax.set_title('Genotype proportions')
    style_legend(ax)
    return _finish(fig, save_path)


def plot_allele_frequency(
    results: Sequence['SimulationResult'],
    save_path: Optional[PathLike] = None,
) -> plt.Figure:
    """B-allele frequency among mature adults, one line per replicate.

    Args:
        results: One SimulationResult per replicate.
        save_path: Path to save figure.

    Returns:
        matplotlib Figure.
    """
    fig, ax = dark_figure()
    for i, result in enumerate(results):
        generations = np.arange(1, result.n_generations + 1)
        color = REPLICATE_COLORS[i % len(REPLICATE_COLORS)]
        ax.plot(generations, result.adult_b_frequency(), color=color,
                linewidth=1.5, alpha=0.85, label=f'rep {i}')

    ax.set_xlabel('Generation')
    ax.set_ylabel('Frequency of B')
    ax.set_ylim(-0.02, 1.02)
    ax.set_title('B-allele frequency (mature adults)')
    if 0 < len(results) <= len(REPLICATE_COLORS):
        style_legend(ax)
    return _finish(fig, save_path)
