from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Sequence

import matplotlib.patches as patches
import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt

from kdknn.dataset import dataset_dimension, load_csv, load_idx
from kdknn.errors import KdTreeError
from kdknn.evaluation import DEFAULT_PROGRESS_INTERVAL, evaluate
from kdknn.kdtree import KdTree, Neighbor
from kdknn.point import Point

logger = logging.getLogger(__name__)


def load_samples(args: argparse.Namespace, kind: str) -> list[tuple[Point, Any]]:
    """Load train or test samples specified in command line.

    Args:
        args: Parsed arguments.
        kind: "train" or "test".

    Returns:
        Pairs of point and label.
    """
    csv_path = getattr(args, f"{kind}_csv")
    if csv_path is not None:
        return load_csv(csv_path, skip_header=args.skip_header)

    images_path = getattr(args, f"{kind}_images")
    labels_path = getattr(args, f"{kind}_labels")
    if images_path is None or labels_path is None:
        raise KdTreeError(f"Specify --{kind}-csv, or both --{kind}-images and --{kind}-labels")

    return load_idx(images_path, labels_path, normalize=args.normalize)


def run_evaluate(args: argparse.Namespace) -> int:
    train_data = load_samples(args, "train")
    test_data = load_samples(args, "test")

    if args.limit is not None:
        test_data = test_data[: args.limit]

    print("Finished loading data from disk!")
    print(f"Training set size: {len(train_data)}")
    print(f"Test set size: {len(test_data)}")

    tree = KdTree(dataset_dimension(train_data), train_data)
    print("Finished building KD-Tree!")
    logger.debug("KD-Tree dimension %d, height %d", tree.dimension, tree.height())

    print(f"Start evaluating kNN performance on the test set (k = {args.k})")
    result = evaluate(
        tree,
        test_data,
        k=args.k,
        workers=args.workers,
        progress_interval=args.progress_interval,
    )

    print(f"Test set accuracy: {result.accuracy}")
    print(f"Time elapsed in s: {result.elapsed}")
    return 0


def plot_with_matplotlib(
    points: npt.NDArray,
    labels: npt.NDArray,
    query: Point,
    neighbors: list[Neighbor],
    output: str | None,
):
    """Plot points, query and its neighbors.

    Args:
        points: Points in the tree.
        labels: Labels of points.
        query: Query point.
        neighbors: Neighbors of query.
        output: Path to save figure. If None, show window.
    """
    ax = plt.axes()

    # Circle which includes all neighbors.
    radius = np.sqrt(neighbors[-1].distance2) if neighbors else 0.0
    c = patches.Circle(
        (query[0], query[1]),
        radius=radius,
        edgecolor="green",
        facecolor="none",
        linewidth=1,
    )
    ax.add_patch(c)

    ax.scatter(points[:, 0], points[:, 1], c=labels, cmap="tab10")
    ax.scatter(
        [n.point[0] for n in neighbors],
        [n.point[1] for n in neighbors],
        facecolors="none",
        edgecolors="black",
        s=120,
    )
    ax.scatter(query[0], query[1], color="red", marker="x")
    ax.set_aspect("equal")

    if output is not None:
        plt.savefig(output)
    else:
        plt.show()
    plt.close()


def log_to_rerun(
    points: npt.NDArray,
    labels: npt.NDArray,
    query: Point,
    neighbors: list[Neighbor],
):
    # rerun is needed only for this viewer.
    import rerun as rr

    rr.init("knn", spawn=True)
    rr.log("points", rr.Points2D(points, class_ids=labels, radii=0.02))
    rr.log(
        "neighbors",
        rr.Points2D([n.point for n in neighbors], colors=[0, 255, 0], radii=0.03),
    )
    rr.log("query", rr.Points2D([query], colors=[255, 0, 0], radii=0.03))


def run_demo(args: argparse.Namespace) -> int:
    np.random.seed(args.seed)

    points = np.random.random_sample((args.count, 2))
    labels = np.random.randint(args.classes, size=args.count)

    tree = KdTree(2, zip(points, labels.tolist()))

    query = np.array(args.query, dtype=np.float64)
    neighbors = tree.nearest(query, args.k)

    for neighbor in neighbors:
        print(f"{neighbor.point.tolist()} label={neighbor.label} distance2={neighbor.distance2:.6f}")
    print(f"Predicted label: {tree.knn_value(query, args.k)}")

    if args.viewer == "matplotlib":
        plot_with_matplotlib(points, labels, query, neighbors, args.output)
    elif args.viewer == "rerun":
        log_to_rerun(points, labels, query, neighbors)

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="kNN classification with KD-Tree")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Output debug log",
        default=False,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # NOTE:
    # e.g.
    # kdknn evaluate --train-images train-images-idx3-ubyte --train-labels train-labels-idx1-ubyte --test-images t10k-images-idx3-ubyte --test-labels t10k-labels-idx1-ubyte -k 1 -w 4  # noqa: E501
    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate kNN accuracy on test set")
    for kind in ("train", "test"):
        evaluate_parser.add_argument(
            f"--{kind}-images",
            type=str,
            help=f"IDX images file for {kind} set",
            default=None,
        )
        evaluate_parser.add_argument(
            f"--{kind}-labels",
            type=str,
            help=f"IDX labels file for {kind} set",
            default=None,
        )
        evaluate_parser.add_argument(
            f"--{kind}-csv",
            type=str,
            help=f"CSV file for {kind} set",
            default=None,
        )
    evaluate_parser.add_argument("-k", type=int, help="Number of neighbors", default=1)
    evaluate_parser.add_argument(
        "-w",
        "--workers",
        type=int,
        help="Number of worker threads",
        default=1,
    )
    evaluate_parser.add_argument(
        "--limit",
        type=int,
        help="Max number of test samples",
        default=None,
    )
    evaluate_parser.add_argument(
        "--normalize",
        action="store_true",
        help="Scale IDX pixel values to [0, 1]",
        default=False,
    )
    evaluate_parser.add_argument(
        "--skip-header",
        action="store_true",
        help="Skip first row of CSV files",
        default=False,
    )
    evaluate_parser.add_argument(
        "--progress-interval",
        type=int,
        help="Interval of samples to report progress. 0 disables it",
        default=DEFAULT_PROGRESS_INTERVAL,
    )
    evaluate_parser.set_defaults(func=run_evaluate)

    demo_parser = subparsers.add_parser("demo", help="Classify a point among random 2D points")
    demo_parser.add_argument("-n", "--count", type=int, help="Number of points", default=50)
    demo_parser.add_argument("-c", "--classes", type=int, help="Number of labels", default=3)
    demo_parser.add_argument("-s", "--seed", type=int, help="Random seed", default=19)
    demo_parser.add_argument(
        "-q",
        "--query",
        type=float,
        nargs=2,
        help="Query point",
        default=[0.5, 0.5],
    )
    demo_parser.add_argument("-k", type=int, help="Number of neighbors", default=5)
    demo_parser.add_argument(
        "--viewer",
        choices=["matplotlib", "rerun", "none"],
        help="How to show the result",
        default="matplotlib",
    )
    demo_parser.add_argument(
        "-o",
        "--output",
        type=str,
        help="File to save matplotlib figure",
        default=None,
    )
    demo_parser.set_defaults(func=run_demo)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except (KdTreeError, OSError, ValueError) as err:
        print(f"{err}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
