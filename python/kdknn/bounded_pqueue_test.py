import math
import unittest

import numpy as np

from kdknn.bounded_pqueue import BoundedPriorityQueue
from kdknn.errors import EmptyQueueError


class TestBoundedPriorityQueue(unittest.TestCase):
    def test_empty_queue(self):
        queue = BoundedPriorityQueue(3)
        self.assertTrue(queue.empty())
        self.assertEqual(queue.size(), 0)
        self.assertEqual(queue.max_size, 3)
        self.assertEqual(queue.best(), math.inf)
        self.assertEqual(queue.worst(), math.inf)
        with self.assertRaises(EmptyQueueError):
            queue.dequeue_min()

    def test_dequeue_in_priority_order(self):
        queue = BoundedPriorityQueue(5)
        for value, priority in [("c", 3.0), ("a", 1.0), ("e", 5.0), ("b", 2.0), ("d", 4.0)]:
            queue.enqueue(value, priority)

        self.assertTrue(queue.full())
        self.assertEqual(queue.best(), 1.0)
        self.assertEqual(queue.worst(), 5.0)
        self.assertEqual([queue.dequeue_min() for _ in range(len(queue))], ["a", "b", "c", "d", "e"])
        self.assertTrue(queue.empty())

    def test_overflow_evicts_largest_priority(self):
        queue = BoundedPriorityQueue(2)
        queue.enqueue("a", 1.0)
        queue.enqueue("b", 3.0)
        queue.enqueue("c", 2.0)
        self.assertEqual(len(queue), 2)
        self.assertEqual(queue.worst(), 2.0)

        # Newly enqueued value is evicted immediately if it's the worst.
        queue.enqueue("d", 10.0)
        self.assertEqual(len(queue), 2)
        self.assertEqual(queue.worst(), 2.0)

        self.assertEqual(queue.dequeue_min(), "a")
        self.assertEqual(queue.dequeue_min(), "c")

    def test_equal_priorities(self):
        queue = BoundedPriorityQueue(1)
        queue.enqueue("first", 1.0)
        queue.enqueue("second", 1.0)
        self.assertEqual(len(queue), 1)
        self.assertEqual(queue.dequeue_min(), "first")

    def test_zero_max_size(self):
        queue = BoundedPriorityQueue(0)
        queue.enqueue("a", 1.0)
        self.assertTrue(queue.empty())
        self.assertTrue(queue.full())

    def test_negative_max_size(self):
        with self.assertRaises(ValueError):
            BoundedPriorityQueue(-1)

    def test_keeps_smallest_priorities(self):
        np.random.seed(0)
        priorities = np.random.rand(1000)

        queue = BoundedPriorityQueue(10)
        for i, priority in enumerate(priorities):
            queue.enqueue(i, float(priority))
            self.assertEqual(queue.worst(), max(sorted(priorities[: i + 1])[:10]))

        expected = list(np.argsort(priorities)[:10])
        self.assertEqual(queue.best(), priorities[expected[0]])
        result = []
        while not queue.empty():
            result.append(queue.dequeue_min())
        self.assertEqual(result, expected)

    def test_interleaved_dequeue(self):
        queue = BoundedPriorityQueue(3)
        queue.enqueue("a", 1.0)
        queue.enqueue("b", 2.0)
        self.assertEqual(queue.dequeue_min(), "a")
        queue.enqueue("c", 0.5)
        queue.enqueue("d", 3.0)
        queue.enqueue("e", 4.0)
        self.assertEqual(len(queue), 3)
        self.assertEqual(queue.best(), 0.5)
        self.assertEqual(queue.worst(), 3.0)
        self.assertEqual([queue.dequeue_min() for _ in range(3)], ["c", "b", "d"])

    def test_memory_is_bounded_with_interleaved_dequeue(self):
        queue = BoundedPriorityQueue(100)
        for i in range(100000):
            queue.enqueue(i, float(i))
            self.assertEqual(queue.dequeue_min(), i)

        self.assertTrue(queue.empty())
        self.assertLessEqual(len(queue._min_heap), 2 * queue.max_size + 16)
        self.assertLessEqual(len(queue._max_heap), 2 * queue.max_size + 16)

    def test_memory_is_bounded_with_overflow(self):
        queue = BoundedPriorityQueue(5)
        for i in range(10000):
            queue.enqueue(i, float(10000 - i))
            if i % 3 == 0:
                queue.dequeue_min()

        self.assertLessEqual(len(queue), 5)
        self.assertLessEqual(len(queue._min_heap), 2 * queue.max_size + 16)
        self.assertLessEqual(len(queue._max_heap), 2 * queue.max_size + 16)


if __name__ == "__main__":
    unittest.main()
