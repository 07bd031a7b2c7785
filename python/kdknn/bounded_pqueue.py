from __future__ import annotations

import itertools
import math
from heapq import heapify, heappop, heappush
from typing import Generic, TypeVar

from kdknn.errors import EmptyQueueError

T = TypeVar("T")

# Number of dead entries a heap may hold beyond twice the live ones before it's rebuilt.
COMPACT_SLACK = 16


class BoundedPriorityQueue(Generic[T]):
    """Priority queue which holds a limited number of elements.

    Every element is tagged with a real valued priority, and the element with the smallest
    priority is dequeued first. When an enqueue makes the size exceed the maximum, the element
    with the largest priority is ejected. It may be the element which was just enqueued.

    Elements are kept in two heaps, one ordered by smallest priority and one by largest.
    An element removed from one heap is only marked as dead and dropped from the other one
    lazily, when it reaches the top or when dead entries outnumber live ones.
    """

    def __init__(self, max_size: int):
        """Initialize queue.

        Args:
            max_size: Maximum number of elements to be stored.
        """
        if max_size < 0:
            raise ValueError(f"max_size must not be negative: {max_size}")

        self._max_size = max_size

        # Entries are (priority, sequence, value) in the min heap and (-priority, -sequence, value)
        # in the max heap. Sequence is unique, so values are never compared.
        self._min_heap: list[tuple[float, int, T]] = []
        self._max_heap: list[tuple[float, int, T]] = []
        self._alive: set[int] = set()
        self._sequence = itertools.count()

    @property
    def max_size(self) -> int:
        return self._max_size

    def size(self) -> int:
        return len(self._alive)

    def __len__(self) -> int:
        return len(self._alive)

    def empty(self) -> bool:
        return len(self._alive) == 0

    def full(self) -> bool:
        return len(self._alive) >= self._max_size

    def enqueue(self, value: T, priority: float):
        """Enqueue value with priority.

        If the queue overflows, the element with the largest priority is removed.
        Among the elements with the same largest priority, the latest enqueued one is removed.

        Args:
            value: Value to be enqueued.
            priority: Priority of the value. Smaller is better.
        """
        sequence = next(self._sequence)
        heappush(self._min_heap, (priority, sequence, value))
        heappush(self._max_heap, (-priority, -sequence, value))
        self._alive.add(sequence)

        if len(self._alive) > self._max_size:
            self._prune(self._max_heap, negated=True)
            _, neg_sequence, _ = heappop(self._max_heap)
            self._alive.discard(-neg_sequence)

            # Evicted entries stay in the min heap until they reach the top.
            self._min_heap = self._compact(self._min_heap, negated=False)

    def dequeue_min(self) -> T:
        """Remove and return the value with the smallest priority.

        Returns:
            Value with the smallest priority.
        """
        if self.empty():
            raise EmptyQueueError("dequeue_min from empty BoundedPriorityQueue")

        self._prune(self._min_heap, negated=False)
        _, sequence, value = heappop(self._min_heap)
        self._alive.discard(sequence)

        # Dequeued entries have the smallest priorities, so they sink to the bottom of the max heap.
        self._max_heap = self._compact(self._max_heap, negated=True)
        return value

    def best(self) -> float:
        """Returns the smallest priority in the queue, or infinity if the queue is empty."""
        if self.empty():
            return math.inf
        self._prune(self._min_heap, negated=False)
        return self._min_heap[0][0]

    def worst(self) -> float:
        """Returns the largest priority in the queue, or infinity if the queue is empty."""
        if self.empty():
            return math.inf
        self._prune(self._max_heap, negated=True)
        return -self._max_heap[0][0]

    def _compact(
        self,
        heap: list[tuple[float, int, T]],
        negated: bool,
    ) -> list[tuple[float, int, T]]:
        # Rebuild the heap once dead entries dominate, so that it doesn't grow beyond max_size.
        if len(heap) <= 2 * len(self._alive) + COMPACT_SLACK:
            return heap
        heap = [entry for entry in heap if (-entry[1] if negated else entry[1]) in self._alive]
        heapify(heap)
        return heap

    def _prune(self, heap: list[tuple[float, int, T]], negated: bool):
        # Drop entries which were already removed through the other heap.
        while heap:
            sequence = -heap[0][1] if negated else heap[0][1]
            if sequence in self._alive:
                break
            heappop(heap)

    def __repr__(self) -> str:
        return f"BoundedPriorityQueue(max_size={self._max_size}, size={len(self)})"
