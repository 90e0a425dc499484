"""
Mixed-radix indexing of the guess grid.

A record's guess grid is the cross product of its per-step guess sets. The
grid is never materialized; instead each cell is addressed by a flat index
and decoded into one guess index per step on demand. The first step varies
fastest, which is numpy's Fortran ("F") order, so a flat vector filled in
enumeration order reshapes with ``order="F"`` onto the same cells.
"""

from typing import Iterator, Sequence, Tuple

import numpy as np


class MixedRadixIndexer:
    """
    Bidirectional mapping between flat indices and per-step index tuples.

    All indices are 0-based: flat indices run over ``range(len(indexer))``.

    Attributes:
        dims (Tuple[int, ...]): Number of guesses per step
        strides (Tuple[int, ...]): Flat-index weight of each axis

    Example:
        >>> indexer = MixedRadixIndexer((2, 3))
        >>> indexer.decode(3)
        (1, 1)
        >>> indexer.ravel((1, 1))
        3
    """

    def __init__(self, dims: Sequence[int]):
        self.dims: Tuple[int, ...] = tuple(int(d) for d in dims)
        if not self.dims or any(d < 1 for d in self.dims):
            raise ValueError(f"All dimensions must be >= 1, got {self.dims}")

        strides = []
        stride = 1
        for d in self.dims:
            strides.append(stride)
            stride *= d
        self.strides: Tuple[int, ...] = tuple(strides)
        self.size = stride

    def __len__(self) -> int:
        return self.size

    def __iter__(self) -> Iterator[Tuple[int, ...]]:
        for flat in range(self.size):
            yield self.decode(flat)

    def decode(self, flat: int) -> Tuple[int, ...]:
        """Per-step indices of flat index ``flat``."""
        if not 0 <= flat < self.size:
            raise IndexError(f"Flat index {flat} out of range for grid of size {self.size}")
        return tuple((flat // stride) % dim for stride, dim in zip(self.strides, self.dims))

    def encode(self, index: int, axis: int) -> int:
        """Contribution of ``index`` on ``axis`` to the flat index."""
        if not 0 <= index < self.dims[axis]:
            raise IndexError(f"Index {index} out of range for axis {axis} of size {self.dims[axis]}")
        return index * self.strides[axis]

    def ravel(self, indices: Sequence[int]) -> int:
        """Flat index of a per-step index tuple."""
        if len(indices) != len(self.dims):
            raise IndexError(f"Expected {len(self.dims)} indices, got {len(indices)}")
        return sum(self.encode(index, axis) for axis, index in enumerate(indices))

    def reshape(self, flat_values: np.ndarray) -> np.ndarray:
        """Reshape a vector in enumeration order onto the grid."""
        return np.asarray(flat_values).reshape(self.dims, order="F")

    def __repr__(self) -> str:
        return f"MixedRadixIndexer(dims={self.dims})"
