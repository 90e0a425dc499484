"""
visualization.py - Random-guess figure for attribute disclosure risk results.
"""

import logging
from typing import List, Optional, Sequence, Tuple
from pathlib import Path

import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns

from .runner import RiskSet

logger = logging.getLogger(__name__)

STYLE_CONFIG = {
    'font.size': 10,
    'axes.spines.top': False,
    'axes.spines.right': False,
}

COLORS = {
    'density': '#2E86AB',
    'random_guess': '#E94F37',
}


class Visualizer:
    """
    Plots how likely an intruder is to guess each record's true values.

    One figure is held at a time; ``save`` writes it and ``close`` releases it.
    """

    def __init__(
        self,
        output_dir: str = "results/figures",
        figsize: Tuple[float, float] = (7, 5),
        dpi: int = 300
    ):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.figsize = figsize
        self.dpi = dpi
        self.figure: Optional[plt.Figure] = None

    def plot_random_guess(
        self,
        risk_set: RiskSet,
        custom_palette: Optional[Sequence[str]] = None,
        title: Optional[str] = None
    ) -> plt.Figure:
        """
        Density of true-value probabilities with the random-guess line.

        The vertical line marks 1/N, the chance of picking the true
        combination uniformly among the N guess combinations of the first
        record. With a custom palette, the first color draws the density and
        the last the line.
        """
        if len(risk_set) == 0:
            raise ValueError("Cannot plot an empty RiskSet")

        probs = np.abs(risk_set.true_value_probs())
        n_combinations = risk_set[0].full_prob.size

        density_color = COLORS['density']
        line_color = COLORS['random_guess']
        if custom_palette:
            density_color = custom_palette[0]
            line_color = custom_palette[-1]

        self.close()
        with plt.rc_context(STYLE_CONFIG):
            fig, ax = plt.subplots(figsize=self.figsize)

            # A KDE needs spread; fall back to a histogram for constant data
            if len(probs) > 1 and np.ptp(probs) > 0:
                sns.kdeplot(x=probs, ax=ax, color=density_color, linewidth=2, label='density')
            else:
                sns.histplot(x=probs, ax=ax, color=density_color, stat='density', label='density')

            ax.axvline(x=1.0 / n_combinations, color=line_color, linewidth=2,
                       label=f'random guess (1/{n_combinations})')

            ax.set_xlabel('Probability of guessing correctly')
            ax.set_ylabel('Density')
            if title:
                ax.set_title(title)
            ax.legend(loc='upper right')
            fig.tight_layout()

        self.figure = fig
        return fig

    def save(self, name: str = "random_guess", formats: Sequence[str] = ('pdf', 'png')) -> List[str]:
        """Write the current figure in each format. Returns the saved paths."""
        if self.figure is None:
            raise ValueError("No figure to save; call plot_random_guess first")

        saved_paths = []
        for fmt in formats:
            filepath = self.output_dir / f"{name}.{fmt}"
            self.figure.savefig(filepath, format=fmt, dpi=self.dpi, bbox_inches='tight')
            saved_paths.append(str(filepath))
            logger.info(f"Saved figure: {filepath}")
        return saved_paths

    def close(self) -> None:
        if self.figure is not None:
            plt.close(self.figure)
            self.figure = None


def create_risk_figures(
    risk_set: RiskSet,
    output_dir: str = "results/figures",
    custom_palette: Optional[Sequence[str]] = None,
    formats: Sequence[str] = ('pdf', 'png')
) -> List[str]:
    """Plot and save the random-guess figure. Returns the saved paths."""
    viz = Visualizer(output_dir=output_dir)
    viz.plot_random_guess(risk_set, custom_palette=custom_palette)
    paths = viz.save(formats=formats)
    viz.close()
    return paths
