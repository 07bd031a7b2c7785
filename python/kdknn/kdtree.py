from __future__ import annotations

import copy
import logging
from collections import Counter
from typing import Any, Callable, Iterable, Iterator, NamedTuple

import numpy as np
import numpy.typing as npt

from kdknn.bounded_pqueue import BoundedPriorityQueue
from kdknn.errors import DimensionMismatchError, PointNotFoundError
from kdknn.kdtree_node import KdTreeNode
from kdknn.point import Point, make_point, points_equal, squared_distance

logger = logging.getLogger(__name__)

# Marks that no default label is passed to get_or_insert. None is a valid label.
_NO_DEFAULT = object()


class Neighbor(NamedTuple):
    point: Point
    label: Any
    distance2: float


class LabelHandle:
    """Handle to read and write the label bound to a point in the tree.

    The handle refers to the node directly. It stays valid after other insertions,
    since nodes are never moved or deleted individually.
    """

    __slots__ = ("_node",)

    def __init__(self, node: KdTreeNode):
        self._node = node

    @property
    def point(self) -> Point:
        return self._node.point

    @property
    def value(self) -> Any:
        return self._node.label

    @value.setter
    def value(self, label: Any):
        self._node.label = label

    def __repr__(self) -> str:
        return f"LabelHandle(point={self._node.point.tolist()}, value={self._node.label!r})"


class KdTree:
    """KD-Tree which maps fixed dimension points to labels.

    The tree is balanced when it's built from a set of points at once.
    Points inserted one by one afterwards are attached as leaves without rebalancing.
    """

    def __init__(
        self,
        dimension: int,
        points: Iterable[tuple[npt.ArrayLike, Any]] | None = None,
        default_label: Any = None,
    ):
        """Initialize KD-Tree.

        Args:
            dimension: Dimension of the points to be stored.
            points: Pairs of point and label to build the tree from. If None, the tree is empty.
            default_label: Label returned by kNN query on an empty tree,
                           and bound to points inserted by get_or_insert without default.
        """
        if dimension < 1:
            raise ValueError(f"dimension must be positive: {dimension}")

        self._dimension = dimension
        self._root: KdTreeNode | None = None
        self._size = 0
        self.default_label = default_label

        if points is not None:
            self.build(points)

    @property
    def dimension(self) -> int:
        return self._dimension

    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    def empty(self) -> bool:
        return self._size == 0

    def build(self, points: Iterable[tuple[npt.ArrayLike, Any]]):
        """Build balanced tree from pairs of point and label.

        Existing nodes are discarded. If the same point appears more than once,
        the label of the last one is kept.

        Args:
            points: Pairs of point and label.
        """
        # Coordinates tuple as key. 0.0 and -0.0 are the same key, as in points_equal.
        unique: dict[tuple[float, ...], tuple[Point, Any]] = {}
        count = 0
        for coords, label in points:
            point = make_point(coords, self._dimension)
            unique[tuple(point.tolist())] = (point, label)
            count += 1

        pairs = list(unique.values())

        if len(pairs) > 0:
            coords_table = np.vstack([point for point, _ in pairs])
        else:
            coords_table = np.empty((0, self._dimension), dtype=np.float64)

        self._root = KdTree._create(pairs, coords_table, self._dimension)
        self._size = len(pairs)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Built KD-Tree: %d points, %d duplicated points merged, height %d",
                self._size,
                count - self._size,
                self.height(),
            )

    @staticmethod
    def _split(
        coords_table: npt.NDArray[np.float64],
        indices: npt.NDArray[np.intp],
        axis: int,
    ) -> tuple[npt.NDArray[np.intp], int, npt.NDArray[np.intp]]:
        """Split indices around the median along the axis.

        Args:
            coords_table: Coordinates of all points. Each row is a point.
            indices: Indices of points in coords_table to be split.
            axis: Axis to split.

        Returns:
            Indices of left side, index of pivot and indices of right side.
            All points in left side are strictly less than pivot along the axis.
        """
        values = coords_table[indices, axis]
        median = len(indices) // 2

        # Linear time selection. Values before median are not greater than the median value.
        order = np.argpartition(values, median)
        indices = indices[order]
        values = values[order]

        # Move pivot left so that all values equal to the median go to the right side.
        # The tree is still balanced unless many points share the same value along the axis.
        lower = indices[:median]
        is_less = values[:median] < values[median]
        indices = np.concatenate((lower[is_less], lower[~is_less], indices[median:]))
        median = int(np.count_nonzero(is_less))

        return indices[:median], int(indices[median]), indices[median + 1 :]

    @staticmethod
    def _create(
        pairs: list[tuple[Point, Any]],
        coords_table: npt.NDArray[np.float64],
        dimension: int,
    ) -> KdTreeNode | None:
        root: KdTreeNode | None = None

        # Build with explicit stack. Points sharing values along many axes make deep trees.
        # (indices, level, parent, is_left)
        stack: list[tuple[npt.NDArray[np.intp], int, KdTreeNode | None, bool]] = [
            (np.arange(len(pairs)), 0, None, False)
        ]

        while stack:
            indices, level, parent, is_left = stack.pop()
            if len(indices) == 0:
                continue

            left, pivot, right = KdTree._split(coords_table, indices, level % dimension)

            point, label = pairs[pivot]
            node = KdTreeNode(point=point, label=label, level=level)

            if parent is None:
                root = node
            elif is_left:
                parent.left = node
            else:
                parent.right = node

            stack.append((right, level + 1, node, False))
            stack.append((left, level + 1, node, True))

        return root

    def _locate(self, node: KdTreeNode | None, point: Point) -> KdTreeNode | None:
        """Find node which has the point, or the node to be parent of the point.

        Args:
            node: Root of subtree to search.
            point: Point to find.

        Returns:
            Node which has the point if it's in the subtree.
            Otherwise, the node below which the point should be inserted.
            None if the subtree is empty.
        """
        if node is None:
            return None

        while not points_equal(node.point, point):
            axis = node.axis(self._dimension)
            child = node.left if point[axis] < node.point[axis] else node.right
            if child is None:
                break
            node = child

        return node

    def _find(self, point: Point) -> KdTreeNode | None:
        node = self._locate(self._root, point)
        if node is None or not points_equal(node.point, point):
            return None
        return node

    def contains(self, point: npt.ArrayLike) -> bool:
        """Check if the point is stored in the tree."""
        return self._find(make_point(point, self._dimension)) is not None

    def __contains__(self, point: npt.ArrayLike) -> bool:
        return self.contains(point)

    def _insert(self, point: Point, label: Any) -> KdTreeNode:
        parent = self._locate(self._root, point)

        if parent is None:
            # Tree is empty.
            self._root = KdTreeNode(point=point, label=label, level=0)
            self._size = 1
            return self._root

        if points_equal(parent.point, point):
            parent.label = label
            return parent

        node = KdTreeNode(point=point, label=label, level=parent.level + 1)
        axis = parent.axis(self._dimension)
        if point[axis] < parent.point[axis]:
            parent.left = node
        else:
            parent.right = node
        self._size += 1
        return node

    def insert(self, point: npt.ArrayLike, label: Any):
        """Insert the point with the label.

        If the point is already in the tree, only its label is overwritten.

        Args:
            point: Point to be inserted.
            label: Label to be bound to the point.
        """
        self._insert(make_point(point, self._dimension), label)

    def __setitem__(self, point: npt.ArrayLike, label: Any):
        self.insert(point, label)

    def at(self, point: npt.ArrayLike) -> Any:
        """Returns the label bound to the point.

        Raises:
            PointNotFoundError: If the point is not in the tree.
        """
        point = make_point(point, self._dimension)
        node = self._find(point)
        if node is None:
            raise PointNotFoundError(point)
        return node.label

    def __getitem__(self, point: npt.ArrayLike) -> Any:
        return self.at(point)

    def get_or_insert(self, point: npt.ArrayLike, default: Any = _NO_DEFAULT) -> LabelHandle:
        """Returns handle to the label bound to the point.

        If the point is not in the tree, it's inserted with the default label first.

        Args:
            point: Point to look up.
            default: Label for the newly inserted point. If omitted, default_label of the tree is used.

        Returns:
            Handle whose value reads and writes the label in the tree.
        """
        point = make_point(point, self._dimension)
        node = self._find(point)
        if node is None:
            node = self._insert(point, self.default_label if default is _NO_DEFAULT else default)
        return LabelHandle(node)

    def _search(self, query: Point, queue: BoundedPriorityQueue[KdTreeNode]):
        if self._root is None:
            return

        # Explicit stack instead of recursion, since insertions may make the tree deep.
        # Entry with gap2 None is always visited. Otherwise, it's the far side of its parent
        # and gap2 is squared distance from query to the splitting plane of the parent.
        # The near side is pushed last, so it's searched entirely before the far side is checked.
        stack: list[tuple[KdTreeNode, float | None]] = [(self._root, None)]

        while stack:
            node, gap2 = stack.pop()

            # Far side can't have closer point than the current k-th best.
            if gap2 is not None and queue.full() and not gap2 < queue.worst():
                continue

            queue.enqueue(node, squared_distance(node.point, query))

            axis = node.axis(self._dimension)
            delta = float(query[axis] - node.point[axis])

            if delta < 0:
                near, far = node.left, node.right
            else:
                near, far = node.right, node.left

            if far is not None:
                stack.append((far, delta * delta))
            if near is not None:
                stack.append((near, None))

    def nearest(self, query: npt.ArrayLike, k: int) -> list[Neighbor]:
        """Find k nearest points to the query.

        Args:
            query: Query point.
            k: Number of neighbors.

        Returns:
            Up to k neighbors, nearest first.
        """
        if k < 1:
            raise ValueError(f"k must be a positive integer: {k}")

        query = make_point(query, self._dimension)

        queue: BoundedPriorityQueue[KdTreeNode] = BoundedPriorityQueue(k)
        self._search(query, queue)

        neighbors: list[Neighbor] = []
        while not queue.empty():
            node = queue.dequeue_min()
            neighbors.append(Neighbor(node.point, node.label, squared_distance(node.point, query)))
        return neighbors

    def knn_value(self, query: npt.ArrayLike, k: int) -> Any:
        """Returns the most common label among k nearest points to the query.

        If some labels are equally common, one of them is returned.
        If the tree is empty, default_label is returned.

        Args:
            query: Query point.
            k: Number of neighbors to vote.

        Returns:
            Majority label.
        """
        neighbors = self.nearest(query, k)
        if len(neighbors) == 0:
            return self.default_label

        counter = Counter(neighbor.label for neighbor in neighbors)
        label, _ = counter.most_common(1)[0]
        return label

    def items(self) -> Iterator[tuple[Point, Any]]:
        """Iterate pairs of point and label in pre-order."""
        stack = [self._root] if self._root is not None else []
        while stack:
            node = stack.pop()
            yield node.point, node.label
            if node.right is not None:
                stack.append(node.right)
            if node.left is not None:
                stack.append(node.left)

    def __iter__(self) -> Iterator[Point]:
        for point, _ in self.items():
            yield point

    def height(self) -> int:
        """Returns the number of levels of the tree. 0 for an empty tree."""
        height = 0
        stack = [self._root] if self._root is not None else []
        while stack:
            node = stack.pop()
            height = max(height, node.level + 1)
            stack.extend(child for child in (node.left, node.right) if child is not None)
        return height

    @staticmethod
    def _copy_nodes(
        root: KdTreeNode | None,
        copy_label: Callable[[Any], Any],
    ) -> KdTreeNode | None:
        if root is None:
            return None

        def clone(node: KdTreeNode) -> KdTreeNode:
            # Points are read-only, so they can be shared.
            return KdTreeNode(point=node.point, label=copy_label(node.label), level=node.level)

        new_root = clone(root)
        stack = [(root, new_root)]
        while stack:
            src, dst = stack.pop()
            if src.left is not None:
                dst.left = clone(src.left)
                stack.append((src.left, dst.left))
            if src.right is not None:
                dst.right = clone(src.right)
                stack.append((src.right, dst.right))
        return new_root

    def copy(self) -> KdTree:
        """Returns a tree with its own copy of every node. Labels are shared."""
        tree = KdTree(self._dimension, default_label=self.default_label)
        tree._root = KdTree._copy_nodes(self._root, lambda label: label)
        tree._size = self._size
        return tree

    def __copy__(self) -> KdTree:
        return self.copy()

    def __deepcopy__(self, memo: dict) -> KdTree:
        tree = KdTree(self._dimension, default_label=copy.deepcopy(self.default_label, memo))
        memo[id(self)] = tree
        tree._root = KdTree._copy_nodes(self._root, lambda label: copy.deepcopy(label, memo))
        tree._size = self._size
        return tree

    def assign(self, other: KdTree) -> KdTree:
        """Replace contents of this tree with a copy of the other tree.

        Args:
            other: Tree to copy from.

        Returns:
            This tree.
        """
        if other is self:
            return self

        if other.dimension != self._dimension:
            raise DimensionMismatchError(
                f"Can't assign {other.dimension} dimensional tree to {self._dimension} dimensional tree"
            )

        # Release existing nodes first.
        self._root = None
        self._size = 0

        self._root = KdTree._copy_nodes(other._root, lambda label: label)
        self._size = other._size
        self.default_label = other.default_label

        logger.debug("Assigned KD-Tree with %d points", self._size)
        return self

    def __repr__(self) -> str:
        return f"KdTree(dimension={self._dimension}, size={self._size})"
