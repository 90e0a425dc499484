"""
Configuration for attribute risk estimation.

Holds the iteration count, guess counts and the guess-range policy, and
validates them once before any record is processed.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import yaml

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)

DEFAULT_PERCENT_BOUNDS = (0.1, 0.1)

GUESS_POLICIES = ("guesses", "additive_bounds", "bounds", "percent_bounds")


@dataclass
class RiskConfig:
    """
    Estimator configuration.

    Exactly one guess-range policy applies to continuous steps; when none of
    ``guesses``, ``additive_bounds``, ``bounds`` or ``percent_bounds`` is set,
    percent bounds of (0.1, 0.1) are used.

    Attributes:
        iterations: Number of posterior draws H used per estimate
        guess_count: Guesses per continuous step (scalar, or one per step)
        percent_bounds: (low, high) fractions below/above the true value
        additive_bounds: (low, high) amounts subtracted from/added to the true value
        bounds: Absolute (low, high) guess range
        guesses: Explicit guess sequences, one per step (None entries allowed
                 for categorical steps)
        simple_prior: Relative weight of the true-value combination
        categorical: Per-step flags forcing categorical guesses
    """
    iterations: int = 50
    guess_count: Union[int, List[int]] = 11
    percent_bounds: Optional[Tuple[float, float]] = None
    additive_bounds: Optional[Tuple[float, float]] = None
    bounds: Optional[Tuple[float, float]] = None
    guesses: Optional[List[Optional[Sequence[float]]]] = None
    simple_prior: Optional[float] = None
    categorical: Optional[List[bool]] = None

    def guess_policy(self) -> str:
        """Name of the active guess-range policy (priority order)."""
        for policy in GUESS_POLICIES:
            if getattr(self, policy) is not None:
                return policy
        return "percent_bounds"

    def effective_percent_bounds(self) -> Tuple[float, float]:
        if self.percent_bounds is None:
            return DEFAULT_PERCENT_BOUNDS
        return tuple(self.percent_bounds)

    def n_guesses(self, step: int) -> int:
        """Guess count for a continuous step (0-based step position)."""
        if isinstance(self.guess_count, (list, tuple)):
            return int(self.guess_count[step])
        return int(self.guess_count)

    def is_categorical(self, step: int) -> bool:
        return bool(self.categorical[step]) if self.categorical is not None else False

    def validate(self, n_steps: Optional[int] = None) -> None:
        """
        Validate the configuration.

        Args:
            n_steps: Number of synthesis steps, for per-step list lengths

        Raises:
            InvalidConfiguration: On any inconsistency
        """
        if int(self.iterations) < 1:
            raise InvalidConfiguration(f"iterations must be >= 1, got {self.iterations}")

        supplied = [p for p in GUESS_POLICIES if getattr(self, p) is not None]
        if len(supplied) > 1:
            raise InvalidConfiguration(
                f"Only one guess-range policy may be supplied, got {supplied}"
            )

        for name in ("percent_bounds", "additive_bounds", "bounds"):
            pair = getattr(self, name)
            if pair is not None and len(pair) != 2:
                raise InvalidConfiguration(f"{name} must be a (low, high) pair, got {pair}")

        counts = self.guess_count if isinstance(self.guess_count, (list, tuple)) else [self.guess_count]
        if any(int(c) < 1 for c in counts):
            raise InvalidConfiguration(f"guess_count must be >= 1, got {self.guess_count}")

        if self.simple_prior is not None and self.simple_prior < 0:
            raise InvalidConfiguration(f"simple_prior must be >= 0, got {self.simple_prior}")

        if n_steps is None:
            return

        per_step = {
            "guess_count": self.guess_count if isinstance(self.guess_count, (list, tuple)) else None,
            "guesses": self.guesses,
            "categorical": self.categorical,
        }
        for name, values in per_step.items():
            if values is not None and len(values) != n_steps:
                raise InvalidConfiguration(
                    f"{name} has {len(values)} entries but there are {n_steps} synthesis steps"
                )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RiskConfig":
        """Build a config from a plain mapping (e.g. the 'risk' block of a YAML file)."""
        d = dict(d or {})
        unknown = set(d) - set(cls.__dataclass_fields__)
        if unknown:
            raise InvalidConfiguration(f"Unknown risk settings: {sorted(unknown)}")

        for name in ("percent_bounds", "additive_bounds", "bounds"):
            if d.get(name) is not None:
                d[name] = tuple(float(v) for v in d[name])
        return cls(**d)

    def to_dict(self) -> Dict[str, Any]:
        return {
            name: (list(value) if isinstance(value, tuple) else value)
            for name, value in self.__dict__.items()
        }


def load_config(config_path: str) -> dict:
    """Load an analysis configuration from a YAML file."""
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    if not isinstance(config, dict):
        raise InvalidConfiguration(
            f"Config file must contain a mapping, got {type(config).__name__}"
        )
    config.setdefault("_base_dir", str(Path(config_path).resolve().parent))
    return config
