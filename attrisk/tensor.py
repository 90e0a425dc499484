"""
Labeled joint probability tensor over a record's guess grid.
"""

from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from .guesses import GuessSet
from .indexing import MixedRadixIndexer


class ProbabilityTensor:
    """
    Normalized joint probabilities, one axis per synthesis step.

    Axis ``k`` has length D_k and is labeled by the guess values of step k.
    Cells follow the mixed-radix convention of ``MixedRadixIndexer`` so the
    flat enumeration index of a guess combination addresses the same cell.

    Attributes:
        values (np.ndarray): Array of shape (D_1, ..., D_k)
        names (List[str]): Outcome name of each axis
        labels (List[np.ndarray]): Guess values along each axis
    """

    def __init__(self, flat_probs: np.ndarray, guess_sets: Sequence[GuessSet]):
        self.indexer = MixedRadixIndexer([len(gs) for gs in guess_sets])
        flat_probs = np.asarray(flat_probs, dtype=float)
        if flat_probs.size != len(self.indexer):
            raise ValueError(
                f"Expected {len(self.indexer)} probabilities, got {flat_probs.size}"
            )
        self.values = self.indexer.reshape(flat_probs)
        self.names: List[str] = [gs.outcome for gs in guess_sets]
        self.labels: List[np.ndarray] = [gs.values for gs in guess_sets]

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.values.shape

    @property
    def ndim(self) -> int:
        return self.values.ndim

    @property
    def size(self) -> int:
        return self.values.size

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, indices: Sequence[int]) -> float:
        return float(self.values[tuple(indices)])

    def total(self) -> float:
        return float(self.values.sum())

    def marginal(self, axis: int) -> np.ndarray:
        """Probabilities of axis ``axis`` summed over every other axis."""
        other_axes = tuple(a for a in range(self.ndim) if a != axis)
        return self.values.sum(axis=other_axes)

    def sum_except(self, axis: int, index: int) -> float:
        """Sum over all axes except ``axis``, with ``axis`` fixed at ``index``."""
        return float(np.take(self.values, index, axis=axis).sum())

    def flat(self) -> np.ndarray:
        """Cell probabilities in enumeration order."""
        return self.values.reshape(-1, order="F")

    def to_frame(self) -> pd.DataFrame:
        """One row per cell in enumeration order: prob plus one column per axis."""
        data = {"prob": self.flat()}
        for axis, name in enumerate(self.names):
            positions = [combo[axis] for combo in self.indexer]
            data[name] = np.asarray(self.labels[axis], dtype=object)[positions]
        frame = pd.DataFrame(data)
        for name, labels in zip(self.names, self.labels):
            if labels.dtype != object:
                frame[name] = frame[name].astype(labels.dtype)
        return frame

    def rank_order(self) -> np.ndarray:
        """Flat cell indices sorted by descending probability (stable on ties)."""
        return np.argsort(-self.flat(), kind="stable")

    def ranks(self) -> np.ndarray:
        """1-based rank of every flat cell."""
        order = self.rank_order()
        ranks = np.empty(self.size, dtype=int)
        ranks[order] = np.arange(1, self.size + 1)
        return ranks

    def __repr__(self) -> str:
        axes = ", ".join(f"{n}[{len(l)}]" for n, l in zip(self.names, self.labels))
        return f"ProbabilityTensor({axes})"
