# =============================================================================
# design.py
# =============================================================================
# Design rows for the per-step synthesis models.
#
# Each synthesis step is a regression of its outcome on a set of predictor
# columns (possibly including outcomes synthesized earlier in the sequence).
# This module turns a predictor specification plus a row of data into the
# numeric row vector that is multiplied with a posterior coefficient draw.
#
# Coding rules (R model.matrix treatment contrasts):
#   - Intercept column named "(Intercept)" unless suppressed
#   - Numeric / boolean terms contribute one column named after the term
#   - Categorical terms contribute one indicator per non-reference level,
#     named "<term><level>"
# =============================================================================

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .errors import InvalidConfiguration

# Configure logging
logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"


@dataclass(frozen=True)
class PredictorSpec:
    """
    Predictor specification for one synthesis model.

    Attributes:
        terms: Predictor column names, in design-column order
        intercept: Whether an intercept column is prepended
    """
    terms: Tuple[str, ...] = field(default_factory=tuple)
    intercept: bool = True

    def __post_init__(self):
        object.__setattr__(self, "terms", tuple(self.terms))

    def references(self, column: str) -> bool:
        """Whether ``column`` is used as a predictor."""
        return column in self.terms


def parse_formula(formula: str) -> Tuple[str, PredictorSpec]:
    """
    Parse an R-style model formula into an outcome name and PredictorSpec.

    Only additive main effects are supported: ``y ~ a + b``. ``- 1`` or
    ``+ 0`` removes the intercept, ``y ~ 1`` is an intercept-only model.

    Args:
        formula: Formula string

    Returns:
        Tuple of (outcome, PredictorSpec)

    Example:
        >>> parse_formula("income ~ age + sex")
        ('income', PredictorSpec(terms=('age', 'sex'), intercept=True))
    """
    if formula.count("~") != 1:
        raise InvalidConfiguration(f"Formula must contain exactly one '~': {formula!r}")

    lhs, rhs = (part.strip() for part in formula.split("~"))
    if not lhs:
        raise InvalidConfiguration(f"Formula has no outcome: {formula!r}")

    terms: List[str] = []
    intercept = True

    # Split on + / - while keeping the sign of each term
    for sign, term in re.findall(r"([+-]?)\s*([^+-]+)", rhs):
        term = term.strip()
        if not term:
            continue
        if term in ("0", "1"):
            if sign == "-" or term == "0":
                intercept = False
            continue
        if sign == "-":
            raise InvalidConfiguration(f"Removing term '{term}' is not supported: {formula!r}")
        if term not in terms:
            terms.append(term)

    return lhs, PredictorSpec(terms=tuple(terms), intercept=intercept)


def is_categorical_column(series: pd.Series) -> bool:
    """Whether a column is coded with indicator columns (non-numeric, non-bool)."""
    if isinstance(series.dtype, pd.CategoricalDtype):
        return True
    return not (pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series))


def observed_levels(series: pd.Series) -> List[Any]:
    """
    Ordered distinct levels of a column.

    Declared categories are used as-is for pandas categoricals; otherwise the
    sorted distinct non-null values are returned.
    """
    if isinstance(series.dtype, pd.CategoricalDtype):
        return list(series.cat.categories)

    values = pd.unique(series.dropna())
    try:
        return sorted(values.tolist())
    except TypeError:
        # Mixed types: keep order of first appearance
        return values.tolist()


class DesignTransform:
    """
    Maps a predictor specification and a data row to a numeric design row.

    Categorical levels are fixed from a reference frame (the confidential
    data) at construction, so confidential, synthetic and guessed rows all
    share the same column layout.

    Attributes:
        spec (PredictorSpec): Predictor specification
        levels (Dict[str, List]): Levels of each categorical term
        column_names (List[str]): Names of the design columns

    Example:
        >>> transform = DesignTransform(PredictorSpec(('age', 'sex')), confidential)
        >>> transform.column_names
        ['(Intercept)', 'age', 'sexM']
        >>> transform.row({'age': 40, 'sex': 'M'})
        array([ 1., 40.,  1.])
    """

    def __init__(self, spec: PredictorSpec, reference: pd.DataFrame):
        self.spec = spec
        self.levels: Dict[str, List[Any]] = {}

        missing = [t for t in spec.terms if t not in reference.columns]
        if missing:
            raise InvalidConfiguration(f"Predictor columns not found in data: {missing}")

        self.column_names: List[str] = [INTERCEPT] if spec.intercept else []
        for term in spec.terms:
            if is_categorical_column(reference[term]):
                levels = observed_levels(reference[term])
                self.levels[term] = levels
                self.column_names.extend(f"{term}{level}" for level in levels[1:])
            else:
                self.column_names.append(term)

    @property
    def width(self) -> int:
        return len(self.column_names)

    def row(self, record: Mapping[str, Any]) -> np.ndarray:
        """Design row for a single record (dict-like or pd.Series)."""
        out = [1.0] if self.spec.intercept else []
        for term in self.spec.terms:
            value = record[term]
            if term in self.levels:
                out.extend(1.0 if value == level else 0.0 for level in self.levels[term][1:])
            else:
                out.append(float(value))
        return np.asarray(out, dtype=float)

    def matrix(self, frame: pd.DataFrame) -> np.ndarray:
        """Design matrix (n x width) for every row of ``frame``."""
        blocks = [np.ones((len(frame), 1))] if self.spec.intercept else []
        for term in self.spec.terms:
            column = frame[term]
            if term in self.levels:
                values = column.to_numpy(dtype=object)
                for level in self.levels[term][1:]:
                    blocks.append((values == level).astype(float)[:, None])
            else:
                blocks.append(column.to_numpy(dtype=float)[:, None])

        if not blocks:
            return np.empty((len(frame), 0))
        return np.hstack(blocks)

    def __repr__(self) -> str:
        return f"DesignTransform(columns={self.column_names})"
