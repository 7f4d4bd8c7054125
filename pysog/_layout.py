"""
Raster geometry shared by the encoder and the decoder.
"""

import math
from typing import Callable, Tuple
import numpy as np


# Maps positions in the sorted splat sequence to raster cells
Layout = Callable[[np.ndarray, int], np.ndarray]


def texture_size(count: int) -> Tuple[int, int]:
    """Raster dimensions for `count` splats.

    Both dimensions are multiples of 4 and width * height >= count.

    Args:
        count: Number of splats

    Returns:
        (width, height) tuple
    """
    if count < 1:
        raise ValueError(f"Splat count must be positive, got {count}")
    width = int(math.ceil(math.sqrt(count) / 4)) * 4
    height = int(math.ceil(count / width / 4)) * 4
    return width, height


def identity_layout(indices: np.ndarray, width: int) -> np.ndarray:
    """Write splat i to cell i, rows filled left to right, top to bottom."""
    return np.asarray(indices, dtype=np.int64)


def _cells(layout: Layout, count: int, width: int, height: int) -> np.ndarray:
    cells = np.asarray(layout(np.arange(count, dtype=np.int64), width), dtype=np.int64)
    if cells.shape != (count,):
        raise ValueError(f"Layout returned {cells.shape} cells for {count} splats")
    if count and (cells.min() < 0 or cells.max() >= width * height):
        raise ValueError(f"Layout returned cells outside the {width}x{height} raster")
    return cells


def write_cells(values: np.ndarray, width: int, height: int,
                layout: Layout = identity_layout) -> np.ndarray:
    """Place per-splat RGBA values into a raster.

    Args:
        values: (N, 4) uint8 values, row i belongs to the i-th sorted splat
        width: Raster width
        height: Raster height
        layout: Cell layout strategy

    Returns:
        (height, width, 4) uint8 raster, unused cells are zero
    """
    cells = _cells(layout, len(values), width, height)
    raster = np.zeros((width * height, 4), dtype=np.uint8)
    raster[cells] = values
    return raster.reshape(height, width, 4)


def read_cells(raster: np.ndarray, count: int,
               layout: Layout = identity_layout) -> np.ndarray:
    """Inverse of write_cells(): (count, 4) values in sorted splat order."""
    height, width = raster.shape[:2]
    cells = _cells(layout, count, width, height)
    return raster.reshape(-1, 4)[cells]
