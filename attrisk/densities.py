"""
Density families used by the synthesis models.

Each supported family evaluates the density (or mass) of an outcome given a
linear predictor and, where relevant, a scale or a vector of category
probabilities:
  - Normal: Gaussian with mean = linear predictor, sd = scale
  - Binomial: Bernoulli with p = logistic(linear predictor)
  - Poisson: Poisson with rate = exp(linear predictor)
  - Multinomial: direct lookup in supplied category probabilities
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Union

import numpy as np
from scipy import stats

from .errors import InvalidFamily

# Configure logging
logger = logging.getLogger(__name__)

ArrayLike = Union[float, int, np.ndarray]


class DensityFamily(ABC):
    """
    Abstract base class for synthesis model families.

    Subclasses implement ``log_density``; everything else (plain densities,
    evaluation of many synthetic rows under many posterior draws) is derived
    from it. Arguments broadcast with numpy rules, so a scalar value against a
    vector of per-draw linear predictors yields one density per draw.

    Attributes:
        name (str): Canonical family name
        aliases (tuple): Alternative names accepted by ``get_family``
        uses_linear_predictor (bool): Whether the family consumes X @ beta
        uses_scale (bool): Whether the family needs a sigma column
        categorical_outcome (bool): Whether values are always category codes
    """

    name: str = ""
    aliases: tuple = ()
    uses_linear_predictor: bool = True
    uses_scale: bool = False
    categorical_outcome: bool = False

    @abstractmethod
    def log_density(
        self,
        value: ArrayLike,
        linear_predictor: Optional[ArrayLike] = None,
        scale: Optional[ArrayLike] = None,
        probabilities: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Evaluate the log density of ``value``.

        Args:
            value: Outcome value(s)
            linear_predictor: Linear predictor(s), one per draw or per row
            scale: Scale parameter(s) for continuous families
            probabilities: Category probabilities for the multinomial family

        Returns:
            Array of log densities (``-inf`` where the mass is zero)
        """
        pass

    def density(
        self,
        value: ArrayLike,
        linear_predictor: Optional[ArrayLike] = None,
        scale: Optional[ArrayLike] = None,
        probabilities: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """Evaluate the density of ``value`` (see ``log_density``)."""
        return np.exp(self.log_density(value, linear_predictor, scale, probabilities))

    def log_density_grid(
        self,
        values: np.ndarray,
        linear_predictor: Optional[np.ndarray] = None,
        scale: Optional[np.ndarray] = None,
        probabilities: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Evaluate n observed values under H posterior draws at once.

        Args:
            values: Array of shape (n,)
            linear_predictor: Array of shape (n, H)
            scale: Array of shape (H,)
            probabilities: Array of shape (H, C)

        Returns:
            Array of shape (n, H)
        """
        values = np.asarray(values)[:, None]
        if scale is not None:
            scale = np.asarray(scale)[None, :]
        return self.log_density(values, linear_predictor, scale, probabilities)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


class NormalFamily(DensityFamily):
    """Gaussian outcome with mean = linear predictor and sd = sigma."""

    name = "normal"
    aliases = ("norm", "gaussian")
    uses_scale = True

    def log_density(self, value, linear_predictor=None, scale=None, probabilities=None):
        return stats.norm.logpdf(value, loc=linear_predictor, scale=scale)


class BinomialFamily(DensityFamily):
    """
    Bernoulli outcome with logit link.

    Values must already be coded 0/1; anything else has zero mass. The log
    mass is computed as ``-log(1 + exp(-eta))`` / ``-log(1 + exp(eta))`` so
    that large linear predictors do not round the probability to exactly 0
    or 1.
    """

    name = "binomial"
    aliases = ("binom", "bernoulli", "logistic")

    def log_density(self, value, linear_predictor=None, scale=None, probabilities=None):
        value = np.asarray(value, dtype=float)
        eta = np.asarray(linear_predictor, dtype=float)
        log_p = -np.logaddexp(0.0, -eta)
        log_1mp = -np.logaddexp(0.0, eta)
        return np.where(value == 1, log_p, np.where(value == 0, log_1mp, -np.inf))


class PoissonFamily(DensityFamily):
    """Count outcome with log link."""

    name = "poisson"
    aliases = ("pois",)

    def log_density(self, value, linear_predictor=None, scale=None, probabilities=None):
        return stats.poisson.logpmf(value, np.exp(linear_predictor))


class MultinomialFamily(DensityFamily):
    """
    Categorical outcome whose draws carry the category probabilities.

    The value is a 0-based category code used to index the last axis of the
    probability vector (one draw) or matrix (draws x categories). No linear
    predictor transform is applied and no sigma exists for this family.
    Negative codes mark levels never seen in the confidential data.
    """

    name = "multinomial"
    aliases = ("multinom", "categorical")
    uses_linear_predictor = False
    categorical_outcome = True

    def log_density(self, value, linear_predictor=None, scale=None, probabilities=None):
        if probabilities is None:
            raise ValueError("Multinomial density requires category probabilities")

        probs = np.asarray(probabilities, dtype=float)
        codes = np.asarray(value, dtype=int)
        looked_up = np.take(probs, np.clip(codes, 0, None), axis=-1)

        with np.errstate(divide="ignore"):
            log_probs = np.log(looked_up)
        return np.where(codes < 0, -np.inf, log_probs)

    def log_density_grid(self, values, linear_predictor=None, scale=None, probabilities=None):
        # (H, n) lookup transposed to the (n, H) layout of the other families
        return self.log_density(np.asarray(values), probabilities=probabilities).T


FAMILIES: List[DensityFamily] = [
    NormalFamily(),
    BinomialFamily(),
    PoissonFamily(),
    MultinomialFamily(),
]

_FAMILY_LOOKUP: Dict[str, DensityFamily] = {}
for _family in FAMILIES:
    _FAMILY_LOOKUP[_family.name] = _family
    for _alias in _family.aliases:
        _FAMILY_LOOKUP[_alias] = _family


def get_family(family: Union[str, DensityFamily]) -> DensityFamily:
    """
    Resolve a family name (or pass through a family instance).

    Args:
        family: One of 'normal', 'binomial', 'poisson', 'multinomial', one of
                their aliases ('norm', 'binom', 'pois', 'multinom'), or a
                DensityFamily instance

    Returns:
        DensityFamily instance

    Raises:
        InvalidFamily: If the name is not a supported family
    """
    if isinstance(family, DensityFamily):
        return family

    key = str(family).strip().lower()
    if key not in _FAMILY_LOOKUP:
        raise InvalidFamily(family, supported=[f.name for f in FAMILIES])

    return _FAMILY_LOOKUP[key]


def log_density(
    value: ArrayLike,
    family: Union[str, DensityFamily],
    linear_predictor: Optional[ArrayLike] = None,
    scale: Optional[ArrayLike] = None,
    auxiliary: Optional[np.ndarray] = None
) -> np.ndarray:
    """Log density of ``value`` under ``family``; see ``density``."""
    return get_family(family).log_density(value, linear_predictor, scale, auxiliary)


def density(
    value: ArrayLike,
    family: Union[str, DensityFamily],
    linear_predictor: Optional[ArrayLike] = None,
    scale: Optional[ArrayLike] = None,
    auxiliary: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Evaluate a density or mass value for one of the supported families.

    Args:
        value: Outcome value(s); category codes for multinomial, 0/1 for binomial
        family: Family name or instance
        linear_predictor: Linear predictor(s)
        scale: Standard deviation(s) for the normal family
        auxiliary: Category probabilities for the multinomial family

    Returns:
        Non-negative density value(s)

    Example:
        >>> round(float(density(0.0, 'normal', linear_predictor=0.0, scale=1.0)), 4)
        0.3989
    """
    return get_family(family).density(value, linear_predictor, scale, auxiliary)
