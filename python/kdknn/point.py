from __future__ import annotations

from typing import Iterable

import numpy as np
import numpy.typing as npt

from kdknn.errors import DimensionMismatchError

# Point is a read-only, one dimensional float64 array.
Point = npt.NDArray[np.float64]


def make_point(coords: Iterable[float] | npt.ArrayLike, dimension: int | None = None) -> Point:
    """Create point from coordinates.

    The coordinates are always copied, so mutating the source afterwards doesn't change the point.

    Args:
        coords: Coordinates of the point.
        dimension: Expected dimension. If None, any length is accepted.

    Returns:
        Read-only float64 array.
    """
    point = np.array(coords, dtype=np.float64)

    if point.ndim != 1:
        raise DimensionMismatchError(f"Point must be one dimensional, but shape is {point.shape}")

    if dimension is not None and point.shape[0] != dimension:
        raise DimensionMismatchError(f"Point has {point.shape[0]} dimensions, expected {dimension}")

    point.setflags(write=False)
    return point


def points_equal(one: Point, two: Point) -> bool:
    """Check if two points are exactly equal element by element."""
    return bool(np.array_equal(one, two))


def squared_distance(one: Point, two: Point) -> float:
    """Returns the squared euclidean distance between two points.

    The square root is never taken, since comparison by squared distance gives the same order.
    """
    delta = one - two
    return float(np.dot(delta, delta))
