from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Sequence

from kdknn.kdtree import KdTree
from kdknn.point import Point

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_INTERVAL = 500

CHUNKS_PER_WORKER = 4


@dataclass
class EvaluationResult:
    total: int
    correct: int
    k: int
    elapsed: float

    @property
    def accuracy(self) -> float:
        """Percentage of correct predictions."""
        if self.total == 0:
            return 0.0
        return self.correct * 100.0 / self.total


def count_correct(tree: KdTree, samples: Sequence[tuple[Point, Any]], k: int) -> int:
    """Count samples whose label is predicted correctly by kNN.

    Only reads the tree, so it can run in several threads at once.
    """
    correct = 0
    for point, label in samples:
        if tree.knn_value(point, k) == label:
            correct += 1
    return correct


def evaluate(
    tree: KdTree,
    samples: Sequence[tuple[Point, Any]],
    k: int = 1,
    workers: int = 1,
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
) -> EvaluationResult:
    """Classify samples by kNN and count correct predictions.

    Samples are split into chunks, and each chunk is classified by one of the worker threads.
    Each worker returns its own count, and the counts are summed in order of chunks.
    The tree must not be modified during evaluation.

    Args:
        tree: Tree to classify with.
        samples: Pairs of point and ground truth label.
        k: Number of neighbors to vote.
        workers: Number of worker threads.
        progress_interval: Interval of samples to log progress. 0 disables progress log.

    Returns:
        Result of evaluation.
    """
    if k < 1:
        raise ValueError(f"k must be a positive integer: {k}")
    if workers < 1:
        raise ValueError(f"workers must be a positive integer: {workers}")

    # Several chunks per worker keep workers busy when some chunks are slower than others.
    chunk_size = max(1, math.ceil(len(samples) / (workers * CHUNKS_PER_WORKER)))
    chunks = [samples[i : i + chunk_size] for i in range(0, len(samples), chunk_size)]

    start = time.perf_counter()

    correct = 0
    done = 0
    reported = 0
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(count_correct, tree, chunk, k) for chunk in chunks]

        for chunk, future in zip(chunks, futures):
            correct += future.result()
            done += len(chunk)
            # Progress is reported at chunk boundaries.
            if progress_interval > 0 and done // progress_interval > reported:
                reported = done // progress_interval
                logger.info("%d / %d", done, len(samples))

    elapsed = time.perf_counter() - start

    return EvaluationResult(total=len(samples), correct=correct, k=k, elapsed=elapsed)
