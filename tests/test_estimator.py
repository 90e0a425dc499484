#!/usr/bin/env python3
"""
Tests for per-record risk estimates.

Covers the properties every estimate must satisfy (normalization, marginal
consistency, rank ordering) and a handful of scenarios with known answers.
"""

import numpy as np
import pandas as pd
import pytest
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from attrisk.config import RiskConfig
from attrisk.errors import NumericDegeneracy
from attrisk.estimator import RecordRiskEstimator, estimate_record_risk
from attrisk.steps import SynthesisStep
from attrisk.tensor import ProbabilityTensor


def check_properties(risk):
    """Invariants shared by every RiskRecord."""
    tensor = risk.full_prob

    # Normalization
    assert tensor.total() == pytest.approx(1.0, abs=1e-9)
    assert np.all(tensor.values >= 0)

    # The joint cell is part of every marginal that contains it
    assert len(risk.true_marginals) == tensor.ndim
    for marginal in risk.true_marginals:
        assert risk.true_value_prob <= marginal + 1e-12 <= 1.0 + 1e-9

    # Rank ordering
    probs = risk.ranks["prob"].to_numpy()
    assert np.all(np.diff(probs) <= 1e-15)
    assert list(risk.ranks["rank"]) == list(range(1, tensor.size + 1))
    assert risk.rank_true["prob"] == pytest.approx(risk.true_value_prob)
    assert risk.rank_highest["prob"] == pytest.approx(probs.max())


class TestTwoStepEstimate:
    """Sequential synthesis with a substituted predictor."""

    @pytest.fixture
    def estimator(self, two_step_scenario):
        steps, confidential, synthetic = two_step_scenario
        config = RiskConfig(iterations=2, guess_count=[3, 2], additive_bounds=(1.0, 1.0))
        return RecordRiskEstimator(steps, confidential, synthetic, config)

    @pytest.fixture
    def risk(self, estimator):
        return estimator.estimate(1)

    def test_shape_and_labels(self, risk):
        assert isinstance(risk.full_prob, ProbabilityTensor)
        assert risk.full_prob.shape == (3, 2)
        assert risk.outcomes == ["x", "y"]
        assert risk.record_id == "b"
        np.testing.assert_allclose(risk.full_prob.labels[0], [0.0, 1.0, 2.0])
        np.testing.assert_allclose(risk.full_prob.labels[1], [2.0, 3.0])

    def test_properties(self, risk):
        check_properties(risk)

    def test_marginals_match_tensor(self, risk):
        values = risk.full_prob.values
        # True indices: x = 1.0 at position 1, y = 2.0 at position 0
        assert risk.true_marginals[0] == pytest.approx(values[1, :].sum(), abs=1e-15)
        assert risk.true_marginals[1] == pytest.approx(values[:, 0].sum(), abs=1e-15)
        assert risk.true_value_prob == pytest.approx(values[1, 0])

    def test_rank_table_cells(self, risk):
        ranks = risk.ranks
        assert len(ranks) == 6
        assert list(ranks.columns) == ["rank", "prob", "x", "y"]
        for _, row in ranks.iterrows():
            ix = [0.0, 1.0, 2.0].index(row["x"])
            iy = [2.0, 3.0].index(row["y"])
            assert row["prob"] == pytest.approx(risk.full_prob.values[ix, iy])

    def test_true_rank(self, risk):
        flat = risk.full_prob.flat()
        true_prob = risk.true_value_prob
        # Stable ordering: ties with earlier cells rank first
        true_flat = 1
        expected = int(np.sum(flat > true_prob) + np.sum(flat[:true_flat] == true_prob)) + 1
        assert risk.true_rank == expected

    def test_abs_diffs(self, risk):
        tensor = risk.full_prob
        best_x = [0.0, 1.0, 2.0][int(np.argmax(tensor.marginal(0)))]
        best_y = [2.0, 3.0][int(np.argmax(tensor.marginal(1)))]
        np.testing.assert_allclose(risk.marginal_abs_diffs, [abs(1.0 - best_x), abs(2.0 - best_y)])

    def test_to_dict(self, risk):
        d = risk.to_dict()
        assert d["record_id"] == "b"
        assert d["n_combinations"] == 6
        assert d["random_guess_prob"] == pytest.approx(1 / 6)
        assert d["marginal_x"] == pytest.approx(risk.true_marginals[0])
        assert "abs_diff_y" in d

    def test_every_record(self, estimator):
        for position in range(3):
            check_properties(estimator.estimate(position))


class TestThreeStepEstimate:
    """x -> y -> z chain over an uneven 3 x 2 x 3 grid."""

    X_LABELS = [0.0, 1.0, 2.0]
    Y_LABELS = [2.0, 3.0]
    Z_LABELS = [3.0, 4.0, 5.0]

    @pytest.fixture
    def risk(self):
        confidential = pd.DataFrame(
            {"x": [0.0, 1.0, 2.0], "y": [1.0, 2.0, 3.0], "z": [2.0, 4.0, 6.0]},
            index=["a", "b", "c"],
        )
        synthetic = [pd.DataFrame({"x": [0.5, 1.5], "y": [1.5, 2.5], "z": [3.0, 5.0]})]
        draws_x = pd.DataFrame({"(Intercept)": [0.5, 1.0, 1.5], "sigma": [1.0, 1.0, 1.0]})
        draws_y = pd.DataFrame({
            "(Intercept)": [1.0, 0.9, 1.1],
            "x": [1.0, 1.0, 0.9],
            "sigma": [0.5, 0.5, 0.5],
        })
        draws_z = pd.DataFrame({
            "(Intercept)": [0.0, 0.1, -0.1],
            "y": [2.0, 1.9, 2.1],
            "sigma": [0.5, 0.5, 0.5],
        })
        steps = [
            SynthesisStep.from_formula("x ~ 1", "normal", draws_x),
            SynthesisStep.from_formula("y ~ x", "normal", draws_y),
            SynthesisStep.from_formula("z ~ y", "normal", draws_z),
        ]
        config = RiskConfig(iterations=2, guess_count=[3, 2, 3], additive_bounds=(1.0, 1.0))
        return estimate_record_risk(steps, confidential, synthetic, 1, config)

    def test_shape_and_labels(self, risk):
        assert risk.full_prob.shape == (3, 2, 3)
        assert risk.outcomes == ["x", "y", "z"]
        np.testing.assert_allclose(risk.full_prob.labels[0], self.X_LABELS)
        np.testing.assert_allclose(risk.full_prob.labels[1], self.Y_LABELS)
        np.testing.assert_allclose(risk.full_prob.labels[2], self.Z_LABELS)

    def test_properties(self, risk):
        check_properties(risk)

    def test_marginals_match_tensor(self, risk):
        values = risk.full_prob.values
        # True indices: x at 1, y at 0, z at 1
        assert risk.true_marginals[0] == pytest.approx(values[1, :, :].sum(), abs=1e-15)
        assert risk.true_marginals[1] == pytest.approx(values[:, 0, :].sum(), abs=1e-15)
        assert risk.true_marginals[2] == pytest.approx(values[:, :, 1].sum(), abs=1e-15)
        assert risk.true_value_prob == pytest.approx(values[1, 0, 1])

    def test_flat_order_first_axis_fastest(self, risk):
        tensor = risk.full_prob
        for ix in range(3):
            for iy in range(2):
                for iz in range(3):
                    flat = ix + 3 * iy + 6 * iz
                    assert tensor.flat()[flat] == tensor.values[ix, iy, iz]

    def test_rank_table_cells(self, risk):
        ranks = risk.ranks
        assert len(ranks) == 18
        assert list(ranks.columns) == ["rank", "prob", "x", "y", "z"]
        for _, row in ranks.iterrows():
            cell = (
                self.X_LABELS.index(row["x"]),
                self.Y_LABELS.index(row["y"]),
                self.Z_LABELS.index(row["z"]),
            )
            assert row["prob"] == pytest.approx(risk.full_prob.values[cell])

    def test_true_rank(self, risk):
        row = risk.rank_true
        assert (row["x"], row["y"], row["z"]) == (1.0, 2.0, 4.0)
        assert row["prob"] == pytest.approx(risk.true_value_prob)


class TestSingleStepNormal:
    """One normal step, D = 3 guesses {true - d, true, true + d}."""

    def test_single_draw_truth_among_most_likely(self, single_draw_scenario):
        steps, confidential, synthetic = single_draw_scenario
        config = RiskConfig(iterations=1, guess_count=3, additive_bounds=(0.5, 0.5))

        risk = estimate_record_risk(steps, confidential, synthetic, 1, config)

        check_properties(risk)
        assert risk.true_value_prob == pytest.approx(risk.full_prob.values.max())
        # One draw: self-normalization cancels every density ratio
        np.testing.assert_allclose(risk.full_prob.values, 1 / 3)

    def test_varied_draws_favour_truth(self, normal_scenario):
        steps, confidential, synthetic = normal_scenario
        config = RiskConfig(iterations=3, guess_count=3, additive_bounds=(0.5, 0.5))

        risk = estimate_record_risk(steps, confidential, synthetic, 1, config)

        check_properties(risk)
        others = np.delete(risk.full_prob.values, risk.full_prob.values.argmax())
        assert risk.true_rank == 1
        assert risk.true_value_prob > others.max()
        assert risk.marginal_abs_diffs[0] == 0.0


class TestBinomialDegenerate:
    """Posterior mass concentrated on the observed class."""

    def test_truth_near_certain(self, binomial_scenario):
        steps, confidential, synthetic = binomial_scenario
        config = RiskConfig(iterations=2)

        risk = estimate_record_risk(steps, confidential, synthetic, 0, config)

        check_properties(risk)
        assert risk.full_prob.shape == (2,)
        assert risk.true_value_prob == pytest.approx(1.0, abs=1e-6)
        assert risk.true_rank == 1
        assert risk.marginal_abs_diffs[0] == 0.0


class TestAllCombinationsImpossible:
    """A synthetic replicate no draw can produce leaves nothing to normalize."""

    def test_raises_numeric_degeneracy(self):
        confidential = pd.DataFrame({"z": ["a", "b", "a"]})
        draws = pd.DataFrame({"p_a": [1.0, 1.0], "p_b": [0.0, 0.0]})
        steps = [SynthesisStep.from_formula("z ~ 1", "multinomial", draws)]
        synthetic = [pd.DataFrame({"z": ["b", "a"]})]

        with pytest.raises(NumericDegeneracy):
            estimate_record_risk(steps, confidential, synthetic, 0, RiskConfig(iterations=2))


class TestPriorInfluence:
    """A simple prior lifts the truth above a flat estimate."""

    def test_prior_beats_random_guess(self, single_draw_scenario):
        steps, confidential, synthetic = single_draw_scenario
        config = RiskConfig(iterations=1, guess_count=3, additive_bounds=(0.5, 0.5),
                            simple_prior=5.0)

        risk = estimate_record_risk(steps, confidential, synthetic, 1, config)

        check_properties(risk)
        assert risk.true_value_prob > 1 / 3
        # Flat base estimate: only the prior terms 5/7 and 1/7 differ
        expected = np.exp(5 / 7) / (np.exp(5 / 7) + 2 * np.exp(1 / 7))
        assert risk.true_value_prob == pytest.approx(expected)
        assert risk.true_rank == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
