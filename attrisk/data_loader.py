# =============================================================================
# data_loader.py
# =============================================================================
# Module for loading confidential data, synthetic replicates and posterior
# draws from CSV files, and for building the synthesis steps described in an
# analysis configuration.
#
# This module handles:
#   - Loading the confidential and synthetic CSV files
#   - Casting declared categorical columns to a shared pandas category dtype
#   - Loading the per-step posterior draw CSVs
#   - Building SynthesisStep objects from the 'steps' block of a config
#
# Expected configuration layout (YAML):
#
#   data:
#     confidential: confidential.csv
#     synthetic: [synthetic_1.csv, synthetic_2.csv]
#     categorical_columns: [sex]
#   steps:
#     - formula: "sex ~ 1"
#       family: binomial
#       draws: draws_sex.csv
#       categorical: true
#     - formula: "income ~ age + sex"
#       family: normal
#       draws: draws_income.csv
#   risk:
#     iterations: 50
#     guess_count: 11
# =============================================================================

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd

from .design import observed_levels
from .errors import InvalidConfiguration
from .steps import SCALE_COLUMN, SynthesisStep

# Configure logging
logger = logging.getLogger(__name__)


class DataLoader:
    """
    Loads datasets and posterior draws for attribute risk analysis.

    Relative paths are resolved against ``data_dir``.

    Attributes:
        data_dir (Path): Base directory of the input files
        categorical_columns (List[str]): Columns cast to a category dtype

    Example:
        >>> loader = DataLoader("/path/to/inputs", categorical_columns=["sex"])
        >>> confidential, synthetic, steps = loader.load_all(config)
        >>> print(f"Loaded {len(confidential)} records")
    """

    def __init__(
        self,
        data_dir: str,
        categorical_columns: Optional[List[str]] = None
    ):
        """
        Initialize the DataLoader.

        Args:
            data_dir: Directory containing the CSV inputs
            categorical_columns: Columns to treat as categorical in every dataset
        """
        self.data_dir = Path(data_dir)
        self.categorical_columns = list(categorical_columns or [])

        # Validate data directory exists
        if not self.data_dir.exists():
            raise FileNotFoundError(f"Data directory not found: {self.data_dir}")

        # Cache for loaded DataFrames
        self._cache: Dict[str, pd.DataFrame] = {}
        self._levels: Dict[str, List[Any]] = {}

        logger.info(f"DataLoader initialized with data_dir: {self.data_dir}")

    def _resolve(self, filename: Union[str, Path]) -> Path:
        path = Path(filename)
        if not path.is_absolute():
            path = self.data_dir / path
        if not path.exists():
            raise FileNotFoundError(f"Input file not found: {path}")
        return path

    def _read_csv(self, filename: Union[str, Path]) -> pd.DataFrame:
        path = self._resolve(filename)
        key = str(path)
        if key not in self._cache:
            logger.info(f"Loading {path}")
            self._cache[key] = pd.read_csv(path, low_memory=False)
        return self._cache[key].copy()

    def _cast_categoricals(self, df: pd.DataFrame, name: str) -> pd.DataFrame:
        for col in self.categorical_columns:
            if col not in df.columns:
                continue
            if col not in self._levels:
                # Levels are fixed by the first dataset loaded (the confidential one)
                self._levels[col] = observed_levels(df[col])
            unseen = set(df[col].dropna().unique()) - set(self._levels[col])
            if unseen:
                logger.warning(f"{name}: column '{col}' has levels not in the confidential "
                               f"data: {sorted(map(str, unseen))}")
            df[col] = pd.Categorical(df[col], categories=self._levels[col])
        return df

    def load_confidential(self, filename: Union[str, Path]) -> pd.DataFrame:
        """
        Load the confidential dataset.

        Returns:
            DataFrame with one row per confidential record
        """
        df = self._cast_categoricals(self._read_csv(filename), "confidential")
        logger.info(f"Loaded {len(df)} confidential records")
        return df

    def load_synthetic(self, filenames: Union[str, List[str]]) -> List[pd.DataFrame]:
        """
        Load one or more synthetic replicates.

        Must be called after ``load_confidential`` so categorical levels match.

        Returns:
            List of DataFrames, one per replicate
        """
        if isinstance(filenames, (str, Path)):
            filenames = [filenames]

        replicates = []
        for m, filename in enumerate(filenames, 1):
            df = self._cast_categoricals(self._read_csv(filename), f"synthetic replicate {m}")
            replicates.append(df)

        logger.info(f"Loaded {len(replicates)} synthetic replicates")
        return replicates

    def load_draws(self, filename: Union[str, Path]) -> pd.DataFrame:
        """
        Load posterior draws (one row per draw, one column per parameter).
        """
        df = self._read_csv(filename)
        logger.info(f"Loaded {len(df)} posterior draws with columns {df.columns.tolist()}")
        return df

    def build_steps(self, step_specs: List[Dict[str, Any]]) -> List[SynthesisStep]:
        """
        Build synthesis steps from the 'steps' block of a configuration.

        Each entry needs 'formula', 'family' and 'draws' (a CSV path); optional
        keys are 'categorical' and 'scale_column'.
        """
        if not step_specs:
            raise InvalidConfiguration("Configuration has no synthesis steps")

        steps = []
        for spec in step_specs:
            missing = [k for k in ("formula", "family", "draws") if k not in spec]
            if missing:
                raise InvalidConfiguration(f"Step {spec} is missing keys: {missing}")

            steps.append(SynthesisStep.from_formula(
                spec["formula"],
                spec["family"],
                self.load_draws(spec["draws"]),
                categorical=bool(spec.get("categorical", False)),
                scale_column=spec.get("scale_column", SCALE_COLUMN),
            ))

        logger.info(f"Built {len(steps)} synthesis steps: {[s.outcome for s in steps]}")
        return steps

    def load_all(
        self,
        config: Dict[str, Any]
    ) -> Tuple[pd.DataFrame, List[pd.DataFrame], List[SynthesisStep]]:
        """
        Load everything an analysis configuration refers to.

        Args:
            config: Parsed analysis configuration

        Returns:
            Tuple of (confidential, synthetic replicates, synthesis steps)
        """
        data = config.get("data") or {}
        if "confidential" not in data or "synthetic" not in data:
            raise InvalidConfiguration("Config 'data' needs 'confidential' and 'synthetic' entries")

        confidential = self.load_confidential(data["confidential"])
        synthetic = self.load_synthetic(data["synthetic"])
        steps = self.build_steps(config.get("steps") or [])

        return confidential, synthetic, steps


def load_inputs(
    config: Dict[str, Any],
    data_dir: Optional[str] = None
) -> Tuple[pd.DataFrame, List[pd.DataFrame], List[SynthesisStep]]:
    """
    Convenience function to load every input of an analysis configuration.

    Args:
        config: Parsed configuration (see module header for the layout)
        data_dir: Base directory; defaults to 'data.base_dir' or the
                  directory of the config file

    Returns:
        Tuple of (confidential, synthetic replicates, synthesis steps)
    """
    data = config.get("data") or {}
    base_dir = data_dir or data.get("base_dir") or config.get("_base_dir", ".")
    loader = DataLoader(base_dir, categorical_columns=data.get("categorical_columns"))
    return loader.load_all(config)
