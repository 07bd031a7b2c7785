from __future__ import annotations

import numpy as np


class KdTreeError(Exception):
    """Base class for errors raised by kdknn."""


class PointNotFoundError(KdTreeError, KeyError):
    """Raised when a point is looked up but not stored in the tree."""

    def __init__(self, point):
        super().__init__(f"Point not found in the KD-Tree: {np.asarray(point).tolist()}")
        self.point = point

    def __str__(self) -> str:
        # KeyError quotes its argument, keep the plain message.
        return str(self.args[0])


class EmptyQueueError(KdTreeError, IndexError):
    """Raised when dequeuing from an empty bounded priority queue."""


class DimensionMismatchError(KdTreeError, ValueError):
    """Raised when a point doesn't have the expected dimension."""


class DatasetError(KdTreeError, ValueError):
    """Raised when a dataset file can't be parsed."""
