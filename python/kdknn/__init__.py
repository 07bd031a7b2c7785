from kdknn.bounded_pqueue import BoundedPriorityQueue
from kdknn.errors import (
    DatasetError,
    DimensionMismatchError,
    EmptyQueueError,
    KdTreeError,
    PointNotFoundError,
)
from kdknn.kdtree import KdTree, LabelHandle, Neighbor
from kdknn.point import Point, make_point, points_equal, squared_distance

__all__ = [
    "BoundedPriorityQueue",
    "DatasetError",
    "DimensionMismatchError",
    "EmptyQueueError",
    "KdTree",
    "KdTreeError",
    "LabelHandle",
    "Neighbor",
    "Point",
    "PointNotFoundError",
    "make_point",
    "points_equal",
    "squared_distance",
]
