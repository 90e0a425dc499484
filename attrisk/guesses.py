# =============================================================================
# guesses.py
# =============================================================================
# Candidate ("guessed") values for each synthesized variable of a record.
#
# Categorical variables are guessed over every level observed in the
# confidential data. Continuous variables are guessed over an evenly spaced
# grid built from one of (in priority order):
#   1. An explicit guess list
#   2. Additive bounds     [true - low, true + high]
#   3. Absolute bounds     [low, high]
#   4. Percent bounds      [true * (1 - low), true * (1 + high)]   (default)
#
# Invariant: the true confidential value appears exactly once in every guess
# set. Grids that miss it get their median element replaced by it.
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .design import observed_levels
from .errors import InvalidConfiguration, MissingTrueValue

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class GuessSet:
    """
    Ordered candidate values for one step of one record.

    Attributes:
        outcome: Name of the synthesized column
        values: Candidate values (numeric grid or categorical levels)
        true_value: The record's confidential value
        true_index: 0-based position of the true value in ``values``
        categorical: Whether ``values`` are categorical levels
    """
    outcome: str
    values: np.ndarray
    true_value: Any
    true_index: int
    categorical: bool = False

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, index: int) -> Any:
        return self.values[index]

    def is_true(self, index: int) -> bool:
        return index == self.true_index

    def codes(self) -> np.ndarray:
        """0-based position of each guess, used as its category code."""
        return np.arange(len(self.values))

    def numeric_values(self) -> np.ndarray:
        """
        Guess values as floats for distance computations.

        Non-numeric categorical levels fall back to their level positions.
        """
        try:
            return np.asarray(self.values, dtype=float)
        except (TypeError, ValueError):
            return self.codes().astype(float)


def _linspace(low: float, high: float, n_guesses: int) -> np.ndarray:
    return np.linspace(float(low), float(high), int(n_guesses))


def continuous_grid(
    true_value: float,
    n_guesses: int,
    guesses: Optional[Sequence[float]] = None,
    additive_bounds: Optional[Tuple[float, float]] = None,
    bounds: Optional[Tuple[float, float]] = None,
    percent_bounds: Tuple[float, float] = (0.1, 0.1)
) -> np.ndarray:
    """
    Build the guess grid for a continuous variable.

    Args:
        true_value: Confidential value of the record
        n_guesses: Number of evenly spaced guesses for bounds-derived grids
        guesses: Explicit guesses (takes precedence over any bounds)
        additive_bounds: (low, high) amounts around the true value
        bounds: Absolute (low, high) range
        percent_bounds: (low, high) fractions around the true value

    Returns:
        Array of guesses (before true-value substitution)
    """
    if guesses is not None:
        return np.asarray(guesses, dtype=float).copy()
    if additive_bounds is not None:
        low, high = additive_bounds
        return _linspace(true_value - low, true_value + high, n_guesses)
    if bounds is not None:
        low, high = bounds
        return _linspace(low, high, n_guesses)

    low, high = percent_bounds
    return _linspace(true_value * (1 - low), true_value * (1 + high), n_guesses)


def ensure_true_value(
    outcome: str,
    values: np.ndarray,
    true_value: Any,
    allow_duplicates: bool = True
) -> Tuple[np.ndarray, int]:
    """
    Make sure ``true_value`` is in ``values`` and return its position.

    When absent, the element nearest the median of ``values`` (the first
    one on ties) is replaced by the true value and a warning is logged.
    Bounds-derived grids can collapse onto the true value (a true value of
    0 under percent bounds gives all zeros); with ``allow_duplicates`` the
    first match is used and a warning is logged.

    Returns:
        Tuple of (values, true_index)

    Raises:
        MissingTrueValue: If the value is still absent after substitution
        InvalidConfiguration: If the value appears more than once and
                              ``allow_duplicates`` is False
    """
    matches = np.flatnonzero(values == true_value)

    if len(matches) == 0:
        values = values.copy()
        replace_at = int(np.argmin(np.abs(values - np.median(values))))
        logger.warning(
            f"Replaced median value {values[replace_at]!r} in guess range for "
            f"'{outcome}' with true value {true_value!r}"
        )
        values[replace_at] = true_value
        matches = np.flatnonzero(values == true_value)

    if len(matches) == 0:
        raise MissingTrueValue(outcome, true_value)
    if len(matches) > 1:
        if not allow_duplicates:
            raise InvalidConfiguration(
                f"Guesses for '{outcome}' contain the true value {true_value!r} {len(matches)} times"
            )
        logger.warning(
            f"Guess range for '{outcome}' contains the true value {true_value!r} "
            f"{len(matches)} times, using position {int(matches[0])}"
        )

    return values, int(matches[0])


def build_guess_set(
    outcome: str,
    true_value: Any,
    column: pd.Series,
    categorical: bool,
    n_guesses: int,
    guesses: Optional[Sequence[float]] = None,
    additive_bounds: Optional[Tuple[float, float]] = None,
    bounds: Optional[Tuple[float, float]] = None,
    percent_bounds: Tuple[float, float] = (0.1, 0.1)
) -> GuessSet:
    """
    Build the GuessSet of one step for one record.

    Args:
        outcome: Name of the synthesized column
        true_value: The record's confidential value
        column: Full confidential column (source of categorical levels)
        categorical: Treat the variable as categorical
        n_guesses: Guess count for continuous grids
        guesses, additive_bounds, bounds, percent_bounds: Guess-range policy

    Returns:
        GuessSet containing the true value exactly once

    Example:
        >>> gs = build_guess_set('income', 100.0, df['income'], False, 3,
        ...                      additive_bounds=(5, 5))
        >>> gs.values, gs.true_index
        (array([ 95., 100., 105.]), 1)
    """
    if categorical or isinstance(column.dtype, pd.CategoricalDtype):
        dtype = float if pd.api.types.is_numeric_dtype(column) else object
        values = np.asarray(observed_levels(column), dtype=dtype)
        index = np.flatnonzero(values == true_value)
        if len(index) != 1:
            raise MissingTrueValue(outcome, true_value)
        return GuessSet(outcome, values, true_value, int(index[0]), categorical=True)

    true_value = float(true_value)
    values = continuous_grid(true_value, n_guesses, guesses, additive_bounds, bounds, percent_bounds)
    values, true_index = ensure_true_value(
        outcome, values, true_value, allow_duplicates=guesses is None
    )

    return GuessSet(outcome, values, true_value, true_index, categorical=False)
