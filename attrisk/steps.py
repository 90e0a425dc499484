"""
Synthesis step descriptors.

A SynthesisStep bundles everything known about one sequentially synthesized
variable: the outcome column, its predictors, the model family and the
posterior draws of the fitted model.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

import numpy as np
import pandas as pd

from .densities import DensityFamily, get_family
from .design import DesignTransform, PredictorSpec, parse_formula
from .errors import InvalidConfiguration

# Configure logging
logger = logging.getLogger(__name__)

SCALE_COLUMN = "sigma"


@dataclass(frozen=True, eq=False)
class SynthesisStep:
    """
    One variable of the sequential synthesis, in synthesis order.

    Attributes:
        outcome: Name of the synthesized column
        predictors: Predictor specification of the synthesis model
        family: Density family (name or instance; names are resolved)
        draws: Posterior draws, one row per draw. Columns are the
               coefficients (plus ``sigma`` for the normal family); for the
               multinomial family, one probability column per category.
        categorical: Whether guesses are the observed levels of the outcome
        scale_column: Name of the scale column in ``draws``
    """
    outcome: str
    predictors: PredictorSpec
    family: DensityFamily
    draws: pd.DataFrame
    categorical: bool = False
    scale_column: str = SCALE_COLUMN

    def __post_init__(self):
        object.__setattr__(self, "family", get_family(self.family))
        draws = self.draws
        if not isinstance(draws, pd.DataFrame):
            draws = pd.DataFrame(np.asarray(draws, dtype=float))
        object.__setattr__(self, "draws", draws)

    @classmethod
    def from_formula(
        cls,
        formula: str,
        family: Union[str, DensityFamily],
        draws: pd.DataFrame,
        categorical: bool = False,
        scale_column: str = SCALE_COLUMN
    ) -> "SynthesisStep":
        """
        Build a step from an R-style formula such as ``"income ~ age + sex"``.

        Example:
            >>> step = SynthesisStep.from_formula("income ~ age", "normal", draws)
        """
        outcome, predictors = parse_formula(formula)
        return cls(outcome, predictors, family, draws, categorical, scale_column)

    @property
    def n_draws(self) -> int:
        """Number of available posterior draws (H')."""
        return len(self.draws)

    @property
    def scale(self) -> Optional[np.ndarray]:
        """Per-draw scale vector, or None for families without one."""
        if not self.family.uses_scale:
            return None
        if self.scale_column not in self.draws.columns:
            raise InvalidConfiguration(
                f"Step '{self.outcome}' ({self.family.name}) needs a '{self.scale_column}' "
                f"column in its posterior draws"
            )
        return self.draws[self.scale_column].to_numpy(dtype=float)

    @property
    def probabilities(self) -> Optional[np.ndarray]:
        """Draws x categories probability matrix for the multinomial family."""
        if self.family.uses_linear_predictor:
            return None
        return self.draws.to_numpy(dtype=float)

    def coefficient_columns(self) -> List[str]:
        """Draw columns holding regression coefficients."""
        return [c for c in self.draws.columns if c != self.scale_column]

    def coefficients(self, transform: DesignTransform) -> Optional[np.ndarray]:
        """
        Coefficient matrix (H' x P) aligned with the design columns.

        Draw columns are matched to design columns by name when every design
        column is present among them, otherwise by position.

        Raises:
            InvalidConfiguration: If the widths do not match
        """
        if not self.family.uses_linear_predictor:
            return None

        columns = self.coefficient_columns()
        names = transform.column_names
        if all(name in columns for name in names):
            return self.draws[names].to_numpy(dtype=float)

        if len(columns) != len(names):
            raise InvalidConfiguration(
                f"Step '{self.outcome}' has {len(columns)} coefficient columns "
                f"but its design has {len(names)}: {names}"
            )
        return self.draws[columns].to_numpy(dtype=float)

    def validate(self, confidential: pd.DataFrame) -> None:
        """Check the step against the confidential data."""
        if self.outcome not in confidential.columns:
            raise InvalidConfiguration(f"Outcome column '{self.outcome}' not found in data")
        if self.n_draws < 1:
            raise InvalidConfiguration(f"Step '{self.outcome}' has no posterior draws")
        if self.family.uses_scale and self.scale_column not in self.draws.columns:
            raise InvalidConfiguration(
                f"Step '{self.outcome}' ({self.family.name}) needs a '{self.scale_column}' "
                f"column in its posterior draws"
            )

    def __repr__(self) -> str:
        terms = " + ".join(self.predictors.terms) or "1"
        return (f"SynthesisStep({self.outcome} ~ {terms}, family='{self.family.name}', "
                f"draws={self.n_draws})")
