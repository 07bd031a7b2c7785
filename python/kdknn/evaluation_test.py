import unittest

import numpy as np

from kdknn.evaluation import EvaluationResult, count_correct, evaluate
from kdknn.kdtree import KdTree


class TestEvaluation(unittest.TestCase):
    def setUp(self):
        np.random.seed(0)  # for reproducible tests

        # Two clusters which are well separated.
        train_points = np.vstack((np.random.rand(100, 2), np.random.rand(100, 2) + 5.0))
        train_labels = [0] * 100 + [1] * 100
        self.tree = KdTree(2, zip(train_points, train_labels))

        test_points = np.vstack((np.random.rand(40, 2), np.random.rand(40, 2) + 5.0))
        test_labels = [0] * 40 + [1] * 40
        # Wrong ground truth for a few samples.
        test_labels[0] = 1
        test_labels[79] = 0
        self.samples = list(zip(test_points, test_labels))

    def test_evaluate(self):
        result = evaluate(self.tree, self.samples, k=3)
        self.assertEqual(result.total, 80)
        self.assertEqual(result.correct, 78)
        self.assertEqual(result.k, 3)
        self.assertAlmostEqual(result.accuracy, 97.5)
        self.assertGreaterEqual(result.elapsed, 0.0)

    def test_workers_give_same_result(self):
        expected = count_correct(self.tree, self.samples, 5)
        for workers in (1, 2, 4, 16):
            result = evaluate(self.tree, self.samples, k=5, workers=workers, progress_interval=0)
            self.assertEqual(result.correct, expected)
            self.assertEqual(result.total, len(self.samples))

    def test_progress_log(self):
        with self.assertLogs("kdknn.evaluation", level="INFO") as logs:
            evaluate(self.tree, self.samples, k=1, workers=2, progress_interval=20)
        self.assertGreaterEqual(len(logs.output), 1)
        self.assertIn("80 / 80", logs.output[-1])

    def test_training_samples_are_classified_correctly(self):
        samples = list(self.tree.items())
        result = evaluate(self.tree, samples, k=1, workers=3)
        self.assertEqual(result.accuracy, 100.0)

    def test_no_samples(self):
        result = evaluate(self.tree, [], k=1)
        self.assertEqual(result.total, 0)
        self.assertEqual(result.accuracy, 0.0)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            evaluate(self.tree, self.samples, k=0)
        with self.assertRaises(ValueError):
            evaluate(self.tree, self.samples, workers=0)

    def test_accuracy(self):
        self.assertEqual(EvaluationResult(total=4, correct=1, k=1, elapsed=0.0).accuracy, 25.0)


if __name__ == "__main__":
    unittest.main()
