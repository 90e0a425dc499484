#!/usr/bin/env python3
"""
Smoke tests for the random-guess figure.
"""

import matplotlib
matplotlib.use("Agg")

import pytest
import matplotlib.pyplot as plt
from matplotlib.colors import to_hex
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from attrisk.config import RiskConfig
from attrisk.runner import AttributeRiskRunner, RiskSet
from attrisk.visualization import Visualizer, create_risk_figures


@pytest.fixture
def risks(two_step_scenario):
    steps, confidential, synthetic = two_step_scenario
    config = RiskConfig(iterations=2, guess_count=[3, 2], additive_bounds=(1.0, 1.0))
    return AttributeRiskRunner(steps, confidential, synthetic, config).run(show_progress=False)


class TestVisualizer:

    def test_random_guess_line(self, risks, tmp_path):
        viz = Visualizer(output_dir=str(tmp_path))
        fig = viz.plot_random_guess(risks)

        ax = fig.axes[0]
        vlines = [line for line in ax.get_lines() if len(set(line.get_xdata())) == 1]
        assert vlines
        assert vlines[-1].get_xdata()[0] == pytest.approx(1 / 6)
        assert ax.get_xlabel() == "Probability of guessing correctly"

        viz.close()

    def test_custom_palette(self, risks, tmp_path):
        viz = Visualizer(output_dir=str(tmp_path))
        fig = viz.plot_random_guess(risks, custom_palette=["#000000", "#00ff00"])

        line = fig.axes[0].get_lines()[-1]
        assert to_hex(line.get_color()) == "#00ff00"

        viz.close()

    def test_save_and_close(self, risks, tmp_path):
        viz = Visualizer(output_dir=str(tmp_path))
        viz.plot_random_guess(risks)

        paths = viz.save(formats=["png"])

        assert [Path(p).name for p in paths] == ["random_guess.png"]
        assert Path(paths[0]).exists()
        viz.close()
        assert viz.figure is None
        assert plt.get_fignums() == []

    def test_save_without_figure(self, tmp_path):
        with pytest.raises(ValueError):
            Visualizer(output_dir=str(tmp_path)).save()

    def test_single_record_falls_back_to_histogram(self, risks, tmp_path):
        single = RiskSet([risks[0]], risks.outcomes)
        paths = create_risk_figures(single, output_dir=str(tmp_path))
        assert len(paths) == 2
        assert all(Path(p).exists() for p in paths)

    def test_empty_risk_set(self, tmp_path):
        viz = Visualizer(output_dir=str(tmp_path))
        with pytest.raises(ValueError):
            viz.plot_random_guess(RiskSet([], ["x"]))


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
