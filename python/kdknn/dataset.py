from __future__ import annotations

import gzip
import logging
import os
from typing import Any, Sequence

import numpy as np
import numpy.typing as npt

from kdknn.errors import DatasetError
from kdknn.point import Point, make_point

logger = logging.getLogger(__name__)

# NOTE:
# IDX file format. http://yann.lecun.com/exdb/mnist/
# magic number is 0x00, 0x00, data type, number of dimensions.
# Then, size of each dimension as big endian 32bit integer, then data.
IDX_DATA_TYPES = {
    0x08: np.dtype(np.uint8),
    0x09: np.dtype(np.int8),
    0x0B: np.dtype(">i2"),
    0x0C: np.dtype(">i4"),
    0x0D: np.dtype(">f4"),
    0x0E: np.dtype(">f8"),
}

# Max value of pixel in MNIST images.
PIXEL_MAX = 255.0


def _read_file(path: str | os.PathLike) -> bytes:
    if os.fspath(path).endswith(".gz"):
        with gzip.open(path, mode="rb") as f:
            return f.read()
    with open(path, mode="rb") as f:
        return f.read()


def read_idx(path: str | os.PathLike) -> npt.NDArray:
    """Read IDX file.

    Args:
        path: Path to IDX file. If it ends with ".gz", it's decompressed.

    Returns:
        Array whose shape is specified in the file.
    """
    data = _read_file(path)

    if len(data) < 4 or data[0] != 0 or data[1] != 0:
        raise DatasetError(f"{path} is not IDX file")

    data_type = IDX_DATA_TYPES.get(data[2])
    if data_type is None:
        raise DatasetError(f"{path} has unknown data type 0x{data[2]:02x}")

    ndim = data[3]
    header_size = 4 + 4 * ndim
    if len(data) < header_size:
        raise DatasetError(f"{path} is truncated in header")

    shape = tuple(int(v) for v in np.frombuffer(data, dtype=">u4", count=ndim, offset=4))
    count = int(np.prod(shape, dtype=np.int64))

    if len(data) - header_size < count * data_type.itemsize:
        raise DatasetError(f"{path} is truncated. Expected {count} items of shape {shape}")

    values = np.frombuffer(data, dtype=data_type, count=count, offset=header_size)
    return values.reshape(shape)


def load_idx(
    images_path: str | os.PathLike,
    labels_path: str | os.PathLike,
    normalize: bool = False,
) -> list[tuple[Point, int]]:
    """Load pairs of image and label from IDX files like MNIST.

    Args:
        images_path: Path to IDX file for images.
        labels_path: Path to IDX file for labels.
        normalize: If True, pixel values are scaled to [0, 1].

    Returns:
        Pairs of point and label. Each image is flattened to one point in row-major order.
    """
    images = read_idx(images_path)
    labels = read_idx(labels_path)

    # Magic number is 2051 for images and 2049 for labels, both unsigned byte.
    if images.dtype != np.uint8 or images.ndim != 3:
        raise DatasetError(
            f"{images_path} doesn't have images. Type is {images.dtype}, shape is {images.shape}"
        )

    if labels.dtype != np.uint8 or labels.ndim != 1:
        raise DatasetError(
            f"{labels_path} doesn't have labels. Type is {labels.dtype}, shape is {labels.shape}"
        )

    if images.shape[0] != labels.shape[0]:
        raise DatasetError(
            f"Number of images ({images.shape[0]}) and labels ({labels.shape[0]}) are mismatched"
        )

    points = images.reshape(images.shape[0], -1).astype(np.float64)
    if normalize:
        points /= PIXEL_MAX

    logger.debug("Loaded %d samples from %s", len(labels), images_path)

    return [(make_point(point), int(label)) for point, label in zip(points, labels)]


def _parse_label(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        return value


def load_csv(
    path: str | os.PathLike,
    label_column: int = -1,
    delimiter: str = ",",
    skip_header: bool = False,
) -> list[tuple[Point, Any]]:
    """Load pairs of point and label from CSV file.

    Each row has coordinates of a point and one label.

    Args:
        path: Path to CSV file.
        label_column: Column index of label. Negative value counts from the end.
        delimiter: Delimiter of columns.
        skip_header: If True, the first row is skipped.

    Returns:
        Pairs of point and label. Labels which look like integers are converted to int.
    """
    try:
        table = np.loadtxt(
            path,
            dtype=str,
            delimiter=delimiter,
            skiprows=1 if skip_header else 0,
            ndmin=2,
        )
    except ValueError as err:
        raise DatasetError(f"{path} can't be parsed: {err}") from err

    if table.size == 0:
        return []

    columns = table.shape[1]
    if columns < 2:
        raise DatasetError(f"{path} needs at least one coordinate and label column")

    if not -columns <= label_column < columns:
        raise DatasetError(f"label column {label_column} is out of range for {columns} columns")

    coords_columns = [i for i in range(columns) if i != label_column % columns]

    try:
        coords = np.char.strip(table[:, coords_columns]).astype(np.float64)
    except ValueError as err:
        raise DatasetError(f"{path} has non numeric coordinate: {err}") from err

    labels = [_parse_label(value.strip()) for value in table[:, label_column]]

    logger.debug("Loaded %d samples from %s", len(labels), path)

    return [(make_point(point), label) for point, label in zip(coords, labels)]


def dataset_dimension(pairs: Sequence[tuple[Point, Any]]) -> int:
    """Returns dimension of points in dataset."""
    if len(pairs) == 0:
        raise DatasetError("Dataset is empty")
    return len(pairs[0][0])
