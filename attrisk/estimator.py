# =============================================================================
# estimator.py
# =============================================================================
# Per-record attribute disclosure risk.
#
# For one confidential record, every combination of guesses across the
# synthesized variables is scored with the ImportanceSampler, the scores are
# normalized into a joint probability tensor, and the tensor is summarized:
#   - Marginal probability of the true value of each variable
#   - Joint probability of the true combination
#   - Rank table of every combination (rank 1 = most probable)
#   - Absolute difference between each true value and its most probable guess
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.special import softmax

from .config import RiskConfig
from .errors import NumericDegeneracy
from .guesses import GuessSet, build_guess_set
from .indexing import MixedRadixIndexer
from .sampler import ImportanceSampler, PreparedStep, prepare_steps, synthetic_log_likelihood
from .steps import SynthesisStep
from .tensor import ProbabilityTensor

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class RiskRecord:
    """
    Container for single-record risk estimates.

    Attributes:
        record_id: Index label of the confidential record
        full_prob: Joint probability tensor over the guess grid
        true_marginals: Marginal probability of each step's true value
        true_value_prob: Joint probability of the all-true combination
        ranks: Rank table with columns rank, prob and one per outcome
        marginal_abs_diffs: |true value - most probable marginal guess| per step
        true_rank: Rank of the all-true combination in ``ranks``
    """
    record_id: Any
    full_prob: ProbabilityTensor
    true_marginals: np.ndarray
    true_value_prob: float
    ranks: pd.DataFrame
    marginal_abs_diffs: np.ndarray
    true_rank: int

    @property
    def outcomes(self) -> List[str]:
        return list(self.full_prob.names)

    @property
    def rank_highest(self) -> pd.Series:
        """Rank-table row of the most probable combination."""
        return self.ranks.iloc[0]

    @property
    def rank_true(self) -> pd.Series:
        """Rank-table row of the all-true combination."""
        return self.ranks.iloc[self.true_rank - 1]

    def to_dict(self) -> Dict:
        """Convert to dictionary for DataFrame creation."""
        result = {
            'record_id': self.record_id,
            'true_value_prob': self.true_value_prob,
            'true_rank': self.true_rank,
            'n_combinations': self.full_prob.size,
            'random_guess_prob': 1.0 / self.full_prob.size,
            'top_prob': float(self.rank_highest['prob']),
        }
        for name, marginal in zip(self.outcomes, self.true_marginals):
            result[f'marginal_{name}'] = float(marginal)
        for name, diff in zip(self.outcomes, self.marginal_abs_diffs):
            result[f'abs_diff_{name}'] = float(diff)
        return result


class RecordRiskEstimator:
    """
    Estimates attribute disclosure risk for individual confidential records.

    Steps are resolved and synthetic log-likelihoods computed once at
    construction; ``estimate`` then only does per-record work.

    Single impossible combinations get probability 0. A record whose every
    combination is impossible has no distribution to normalize, so
    ``estimate`` raises NumericDegeneracy for it; inside a batch run this
    aborts the batch like any other record error.

    Attributes:
        steps (List[SynthesisStep]): Synthesis steps in synthesis order
        confidential (pd.DataFrame): Confidential dataset
        synthetic (List[pd.DataFrame]): Synthetic replicates
        config (RiskConfig): Estimator configuration

    Example:
        >>> estimator = RecordRiskEstimator(steps, confidential, [synthetic], RiskConfig(iterations=20))
        >>> risk = estimator.estimate(0)
        >>> print(f"P(true) = {risk.true_value_prob:.3f}")
    """

    def __init__(
        self,
        steps: Sequence[SynthesisStep],
        confidential: pd.DataFrame,
        synthetic: Sequence[pd.DataFrame],
        config: Optional[RiskConfig] = None,
        prepared: Optional[List[PreparedStep]] = None,
        synthetic_log_liks: Optional[List[np.ndarray]] = None
    ):
        self.steps = list(steps)
        self.confidential = confidential
        self.synthetic = [synthetic] if isinstance(synthetic, pd.DataFrame) else list(synthetic)
        self.config = config or RiskConfig()

        if prepared is None:
            self.config.validate(len(self.steps))
            prepared = prepare_steps(self.steps, confidential, self.config)
        self.prepared = prepared

        if synthetic_log_liks is None:
            synthetic_log_liks = [
                synthetic_log_likelihood(self.prepared, syn, self.config.iterations)
                for syn in self.synthetic
            ]
        self.synthetic_log_liks = synthetic_log_liks

    def guess_sets(self, record: pd.Series) -> List[GuessSet]:
        """Build the guess set of every step for one record."""
        config = self.config
        guess_sets = []
        for ps in self.prepared:
            explicit = config.guesses[ps.position] if config.guesses is not None else None
            guess_sets.append(build_guess_set(
                outcome=ps.outcome,
                true_value=record[ps.outcome],
                column=self.confidential[ps.outcome],
                categorical=ps.categorical,
                n_guesses=config.n_guesses(ps.position),
                guesses=explicit,
                additive_bounds=config.additive_bounds,
                bounds=config.bounds,
                percent_bounds=config.effective_percent_bounds(),
            ))
        return guess_sets

    def log_masses(self, sampler: ImportanceSampler, indexer: MixedRadixIndexer) -> np.ndarray:
        """Unnormalized log mass of every combination, in flat order."""
        log_mass = np.empty(len(indexer))
        for flat, combination in enumerate(indexer):
            log_mass[flat] = sampler.total_log_mass(combination, self.synthetic_log_liks)
        return log_mass

    def estimate(self, position: int) -> RiskRecord:
        """
        Estimate disclosure risk for the record at row ``position``.

        Args:
            position: 0-based row position in the confidential dataset

        Returns:
            RiskRecord for this record

        Raises:
            NumericDegeneracy: If every guess combination has zero mass
        """
        record = self.confidential.iloc[position]
        record_id = self.confidential.index[position]

        guess_sets = self.guess_sets(record)
        indexer = MixedRadixIndexer([len(gs) for gs in guess_sets])
        sampler = ImportanceSampler(
            self.prepared, record, guess_sets,
            n_iterations=self.config.iterations,
            simple_prior=self.config.simple_prior,
        )

        log_mass = self.log_masses(sampler, indexer)
        if not np.any(np.isfinite(log_mass)):
            raise NumericDegeneracy(
                f"Every one of the {len(indexer)} guess combinations for record "
                f"{record_id!r} has zero posterior-predictive mass"
            )

        tensor = ProbabilityTensor(softmax(log_mass), guess_sets)
        true_indices = [gs.true_index for gs in guess_sets]

        logger.debug(f"Record {record_id!r}: {len(indexer)} combinations, "
                     f"P(true) = {tensor[true_indices]:.4g}")

        return RiskRecord(
            record_id=record_id,
            full_prob=tensor,
            true_marginals=true_marginals(tensor, guess_sets),
            true_value_prob=tensor[true_indices],
            ranks=rank_table(tensor),
            marginal_abs_diffs=marginal_abs_diffs(tensor, guess_sets),
            true_rank=int(tensor.ranks()[indexer.ravel(true_indices)]),
        )


def true_marginals(tensor: ProbabilityTensor, guess_sets: Sequence[GuessSet]) -> np.ndarray:
    """Marginal probability of each step's true value."""
    return np.array([
        tensor.sum_except(axis, gs.true_index) for axis, gs in enumerate(guess_sets)
    ])


def rank_table(tensor: ProbabilityTensor) -> pd.DataFrame:
    """
    Every grid cell sorted by descending probability.

    Ties keep enumeration order. Columns: rank (1..N), prob, and one column
    per outcome holding that cell's guess values.
    """
    frame = tensor.to_frame().iloc[tensor.rank_order()].reset_index(drop=True)
    frame.insert(0, 'rank', np.arange(1, len(frame) + 1))
    return frame


def marginal_abs_diffs(tensor: ProbabilityTensor, guess_sets: Sequence[GuessSet]) -> np.ndarray:
    """
    Distance between each true value and its most probable marginal guess.

    The first guess wins ties. Non-numeric categorical levels are compared
    by level position.
    """
    diffs = []
    for axis, gs in enumerate(guess_sets):
        best = int(np.argmax(tensor.marginal(axis)))
        numeric = gs.numeric_values()
        diffs.append(abs(numeric[gs.true_index] - numeric[best]))
    return np.asarray(diffs, dtype=float)


def estimate_record_risk(
    steps: Sequence[SynthesisStep],
    confidential: pd.DataFrame,
    synthetic: Sequence[pd.DataFrame],
    position: int,
    config: Optional[RiskConfig] = None
) -> RiskRecord:
    """
    Convenience function to estimate a single record's risk.

    Note: For many records, instantiate RecordRiskEstimator once and reuse it
    (or use AttributeRiskRunner), since step preparation and synthetic
    likelihoods are shared across records.
    """
    estimator = RecordRiskEstimator(steps, confidential, synthetic, config)
    return estimator.estimate(position)
