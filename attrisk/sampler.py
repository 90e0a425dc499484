# =============================================================================
# sampler.py
# =============================================================================
# Self-normalized importance sampling over posterior draws.
#
# For a fixed confidential record and a fixed combination of guesses (one
# guessed value per synthesized variable), the posterior-predictive mass of
# the combination relative to the truth is estimated as
#
#     log sum_h exp( log p_h + log q_h )
#
# where, for posterior draw h,
#   - p_h is the likelihood of a synthetic replicate under draw h
#   - q_h is the density ratio of the guesses vs. the true values under
#     draw h, normalized by the same ratio summed over all available draws
#
# Sequential synthesis means later models may use earlier synthesized
# variables as predictors; when guessing, those predictors take the guessed
# values of the earlier steps.
#
# All products of densities are accumulated as sums of log densities and
# aggregated with log-sum-exp, so draws with vanishing density yield -inf
# rather than underflowing the whole estimate.
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.special import logsumexp

from .config import RiskConfig
from .design import DesignTransform, observed_levels
from .errors import InvalidConfiguration
from .guesses import GuessSet
from .steps import SynthesisStep

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PreparedStep:
    """
    A synthesis step resolved against the confidential data.

    Everything here is shared read-only by every record of a batch.

    Attributes:
        position: 0-based position in the synthesis sequence
        step: The underlying SynthesisStep
        categorical: Whether the outcome is coded by level
        levels: Observed outcome levels (categorical steps only)
        transform: Design transform (None for families without a linear predictor)
        coefficients: H' x P coefficient draws aligned with ``transform``
        scale: H' scale draws (normal family only)
        probabilities: H' x C category probabilities (multinomial only)
        substitutions: Positions of earlier steps whose outcomes are predictors
    """
    position: int
    step: SynthesisStep
    categorical: bool
    levels: Optional[List[Any]]
    transform: Optional[DesignTransform]
    coefficients: Optional[np.ndarray]
    scale: Optional[np.ndarray]
    probabilities: Optional[np.ndarray]
    substitutions: Tuple[int, ...]

    @property
    def outcome(self) -> str:
        return self.step.outcome

    @property
    def family(self):
        return self.step.family

    def encode(self, values) -> np.ndarray:
        """
        Code outcome values for density evaluation.

        Categorical outcomes become 0-based level codes (-1 for levels never
        seen in the confidential data); other outcomes are used as floats.
        """
        if not self.categorical:
            return np.asarray(values, dtype=float)
        lookup = {level: code for code, level in enumerate(self.levels)}
        return np.asarray(
            [lookup.get(value, -1) for value in np.asarray(values, dtype=object)], dtype=int
        )

    def log_density(self, value, row: Mapping[str, Any], draws: slice = slice(None)) -> np.ndarray:
        """
        Log density of one coded value under every draw in ``draws``.

        Args:
            value: Coded outcome value
            row: Record whose predictors define the linear predictor
            draws: Slice of posterior draws to use

        Returns:
            Array with one log density per draw
        """
        eta = None
        if self.transform is not None:
            eta = self.coefficients[draws] @ self.transform.row(row)
        scale = None if self.scale is None else self.scale[draws]
        probs = None if self.probabilities is None else self.probabilities[draws]
        return self.family.log_density(value, eta, scale, probs)


def prepare_steps(
    steps: Sequence[SynthesisStep],
    confidential: pd.DataFrame,
    config: RiskConfig
) -> List[PreparedStep]:
    """
    Resolve synthesis steps against the confidential data and validate them.

    Args:
        steps: Synthesis steps in synthesis order
        confidential: Confidential dataset
        config: Estimator configuration

    Returns:
        List of PreparedStep, one per step

    Raises:
        InvalidConfiguration: On missing columns, mismatched draw counts,
                              too many iterations or misaligned coefficients
    """
    if not steps:
        raise InvalidConfiguration("At least one synthesis step is required")

    n_draws = {step.outcome: step.n_draws for step in steps}
    if len(set(n_draws.values())) > 1:
        raise InvalidConfiguration(f"All steps need the same number of posterior draws, got {n_draws}")

    available = steps[0].n_draws
    if config.iterations > available:
        raise InvalidConfiguration(
            f"iterations ({config.iterations}) exceeds the {available} available posterior draws"
        )

    prepared = []
    for position, step in enumerate(steps):
        step.validate(confidential)
        column = confidential[step.outcome]

        categorical = (
            step.categorical
            or step.family.categorical_outcome
            or config.is_categorical(position)
            or isinstance(column.dtype, pd.CategoricalDtype)
        )
        levels = observed_levels(column) if categorical else None

        transform = coefficients = None
        if step.family.uses_linear_predictor:
            transform = DesignTransform(step.predictors, confidential)
            coefficients = step.coefficients(transform)

        probabilities = step.probabilities
        if probabilities is not None and levels is not None and probabilities.shape[1] != len(levels):
            raise InvalidConfiguration(
                f"Step '{step.outcome}' has {probabilities.shape[1]} probability columns "
                f"but {len(levels)} observed levels"
            )

        substitutions = tuple(
            earlier for earlier in range(position)
            if step.predictors.references(steps[earlier].outcome)
        )

        prepared.append(PreparedStep(
            position=position,
            step=step,
            categorical=categorical,
            levels=levels,
            transform=transform,
            coefficients=coefficients,
            scale=step.scale,
            probabilities=probabilities,
            substitutions=substitutions,
        ))

        logger.debug(f"Prepared {step!r} (categorical={categorical}, "
                     f"substitutes={[steps[e].outcome for e in substitutions]})")

    return prepared


def synthetic_log_likelihood(
    prepared: Sequence[PreparedStep],
    synthetic: pd.DataFrame,
    n_iterations: int
) -> np.ndarray:
    """
    Log-likelihood of one synthetic replicate under each of the first H draws.

    This is log p_h: the sum over steps and synthetic rows of the log density
    of the synthetic values. It depends neither on the record nor on the
    guesses, so a batch computes it once per replicate.

    Args:
        prepared: Prepared synthesis steps
        synthetic: One synthetic replicate
        n_iterations: Number of draws H

    Returns:
        Array of shape (H,)
    """
    draws = slice(0, n_iterations)
    total = np.zeros(n_iterations)

    for ps in prepared:
        if ps.outcome not in synthetic.columns:
            raise InvalidConfiguration(f"Synthetic data has no column '{ps.outcome}'")

        values = ps.encode(synthetic[ps.outcome])
        eta = None
        if ps.transform is not None:
            eta = ps.transform.matrix(synthetic) @ ps.coefficients[draws].T
        scale = None if ps.scale is None else ps.scale[draws]
        probs = None if ps.probabilities is None else ps.probabilities[draws]

        total += ps.family.log_density_grid(values, eta, scale, probs).sum(axis=0)

    return total


class ImportanceSampler:
    """
    Importance-sampling estimator of guess-combination mass for one record.

    Attributes:
        prepared (List[PreparedStep]): Prepared synthesis steps
        record (Dict): The record's confidential values
        guess_sets (List[GuessSet]): Guess set of each step
        n_iterations (int): Number of posterior draws H used per estimate
        simple_prior (Optional[float]): Weight of the all-true combination
        n_combinations (int): Size of the guess grid

    Example:
        >>> sampler = ImportanceSampler(prepared, record, guess_sets, n_iterations=50)
        >>> log_mass = sampler.combination_log_mass((0, 2), log_p)
    """

    def __init__(
        self,
        prepared: Sequence[PreparedStep],
        record: Mapping[str, Any],
        guess_sets: Sequence[GuessSet],
        n_iterations: int,
        simple_prior: Optional[float] = None
    ):
        self.prepared = list(prepared)
        self.record = dict(record)
        self.guess_sets = list(guess_sets)
        self.n_iterations = int(n_iterations)
        self.simple_prior = simple_prior

        self.n_combinations = int(np.prod([len(gs) for gs in self.guess_sets]))
        self.true_indices = tuple(gs.true_index for gs in self.guess_sets)

        # log f_l(y_l | x_l(y)) over all available draws
        self._true_log_density = [
            ps.log_density(ps.encode([gs.true_value])[0], self.record)
            for ps, gs in zip(self.prepared, self.guess_sets)
        ]
        self._step_cache: Dict[Tuple, np.ndarray] = {}

    def guessed_row(self, position: int, combination: Sequence[int]) -> Dict[str, Any]:
        """Record with earlier-step predictors replaced by their guesses."""
        row = self.record
        substitutions = self.prepared[position].substitutions
        if substitutions:
            row = dict(self.record)
            for earlier in substitutions:
                row[self.guess_sets[earlier].outcome] = self.guess_sets[earlier][combination[earlier]]
        return row

    def _step_log_ratio(self, position: int, combination: Sequence[int]) -> np.ndarray:
        ps = self.prepared[position]
        key = (position, combination[position]) + tuple(combination[e] for e in ps.substitutions)
        if key not in self._step_cache:
            gs = self.guess_sets[position]
            guess = ps.encode([gs[combination[position]]])[0]
            guess_log_density = ps.log_density(guess, self.guessed_row(position, combination))
            true_log_density = self._true_log_density[position]

            # Draws under which the truth is impossible carry no weight
            with np.errstate(invalid="ignore"):
                self._step_cache[key] = np.where(
                    np.isneginf(true_log_density), -np.inf, guess_log_density - true_log_density
                )
        return self._step_cache[key]

    def log_weight_ratio(self, combination: Sequence[int]) -> np.ndarray:
        """
        Log density ratio of guesses vs. truth under every available draw.

        Returns:
            Array of shape (H',): sum over steps of
            log f(guess | guessed predictors) - log f(truth | true predictors)
        """
        total = np.zeros_like(self._true_log_density[0], dtype=float)
        for position in range(len(self.prepared)):
            total = total + self._step_log_ratio(position, combination)
        return total

    def log_importance_weights(self, combination: Sequence[int]) -> np.ndarray:
        """
        Self-normalized log importance weights log q_h for the first H draws.

        The normalizing denominator sums the density ratio over all available
        draws H', not only the H used for the estimate.
        """
        log_ratio = self.log_weight_ratio(combination)
        with np.errstate(divide="ignore"):
            log_denominator = logsumexp(log_ratio)

        if np.isneginf(log_denominator):
            return np.full(self.n_iterations, -np.inf)
        return log_ratio[:self.n_iterations] - log_denominator

    def prior_adjustment(self, combination: Sequence[int]) -> float:
        """
        Additive prior term for a combination.

        ``w / (N + w - 1)`` for the combination matching every true value,
        ``1 / (N + w - 1)`` otherwise; 0 without a simple prior.
        """
        if self.simple_prior is None:
            return 0.0

        weight = float(self.simple_prior)
        denominator = self.n_combinations + weight - 1
        if denominator <= 0:
            return 0.0
        if tuple(combination) == self.true_indices:
            return weight / denominator
        return 1.0 / denominator

    def combination_log_mass(self, combination: Sequence[int], log_p: np.ndarray) -> float:
        """
        Unnormalized log mass of a combination for one synthetic replicate.

        Args:
            combination: One guess index per step
            log_p: Synthetic log-likelihood per draw (see synthetic_log_likelihood)

        Returns:
            log-sum-exp over draws of log p_h + log q_h, plus the prior term
        """
        return self._aggregate(self.log_importance_weights(combination), log_p) \
            + self.prior_adjustment(combination)

    def total_log_mass(self, combination: Sequence[int], log_ps: Sequence[np.ndarray]) -> float:
        """``combination_log_mass`` summed over every synthetic replicate."""
        log_q = self.log_importance_weights(combination)
        prior = self.prior_adjustment(combination)
        return float(sum(self._aggregate(log_q, log_p) + prior for log_p in log_ps))

    def _aggregate(self, log_q: np.ndarray, log_p: np.ndarray) -> float:
        log_pq = np.asarray(log_p)[:self.n_iterations] + log_q
        with np.errstate(divide="ignore", invalid="ignore"):
            return float(logsumexp(log_pq))
