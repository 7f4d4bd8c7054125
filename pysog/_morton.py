"""
Morton (Z-order) reordering of splats.

Splats are sorted along a 3D Z-order curve computed on a 1024^3 grid that
spans the bounding box of the cloud. Runs of more than 256 splats that end
up in the same grid cell are sorted again on a grid spanning only their own
bounding box, so dense clusters keep being subdivided instead of staying in
input order.
"""

import logging
from typing import List, Tuple
import numpy as np


logger = logging.getLogger(__name__)

# Grid resolution per axis (10 bits)
GRID_SIZE = 1024

# Runs of equal codes longer than this are sorted again
MAX_BUCKET_SIZE = 256


class NonFiniteExtentError(ValueError):
    """The bounding box of the points has a non-finite extent."""


def part1by2(v: np.ndarray) -> np.ndarray:
    """Spread the lower 10 bits of each value so that two zero bits follow each bit.

    Args:
        v: Integer array with values in [0, 1023]

    Returns:
        uint32 array with the bits of v at positions 0, 3, 6, ..., 27
    """
    r = np.asarray(v, dtype=np.uint32) & np.uint32(0x000003FF)
    r = (r ^ (r << np.uint32(16))) & np.uint32(0xFF0000FF)
    r = (r ^ (r << np.uint32(8))) & np.uint32(0x0300F00F)
    r = (r ^ (r << np.uint32(4))) & np.uint32(0x030C30C3)
    r = (r ^ (r << np.uint32(2))) & np.uint32(0x09249249)
    return r


def encode_morton3(ix: np.ndarray, iy: np.ndarray, iz: np.ndarray) -> np.ndarray:
    """Interleave three 10-bit grid coordinates into 30-bit Morton codes."""
    return (part1by2(iz) << np.uint32(2)) | (part1by2(iy) << np.uint32(1)) | part1by2(ix)


def morton_order(x: np.ndarray, y: np.ndarray, z: np.ndarray) -> np.ndarray:
    """Compute the Morton order of a set of points.

    Args:
        x: (N,) x coordinates
        y: (N,) y coordinates
        z: (N,) z coordinates

    Returns:
        (N,) int64 permutation of [0, N). Element i is the index of the
        point that goes to position i.

    Raises:
        NonFiniteExtentError: If the extent of the points along any axis
            is not finite
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    z = np.asarray(z, dtype=np.float64)
    n = len(x)
    if len(y) != n or len(z) != n:
        raise ValueError(f"Coordinate arrays differ in length: {n}, {len(y)}, {len(z)}")

    indices = np.arange(n, dtype=np.int64)

    # Ranges of `indices` that still have to be sorted
    pending = [(0, n)]
    while pending:
        start, end = pending.pop()
        pending.extend(_sort_range(indices, start, end, x, y, z))

    return indices


def _sort_range(indices: np.ndarray, start: int, end: int,
                x: np.ndarray, y: np.ndarray, z: np.ndarray) -> List[Tuple[int, int]]:
    """Sort indices[start:end] in place by Morton code.

    Returns:
        The sub-ranges that consist of more than MAX_BUCKET_SIZE elements
        with the same Morton code and have to be sorted again
    """
    if end <= start:
        return []

    current = indices[start:end]
    px = x[current]
    py = y[current]
    pz = z[current]

    mins = np.array([px.min(), py.min(), pz.min()])
    maxs = np.array([px.max(), py.max(), pz.max()])
    with np.errstate(invalid='ignore', over='ignore'):
        lengths = maxs - mins

    if not np.all(np.isfinite(lengths)):
        raise NonFiniteExtentError(
            f"Invalid extents: {lengths[0]} {lengths[1]} {lengths[2]}"
        )

    # All points are identical
    if np.all(lengths == 0.0):
        return []

    safe_lengths = np.where(lengths == 0.0, 1.0, lengths)
    muls = np.where(lengths == 0.0, 0.0, GRID_SIZE / safe_lengths)

    ix = np.minimum(GRID_SIZE - 1, np.floor((px - mins[0]) * muls[0])).astype(np.uint32)
    iy = np.minimum(GRID_SIZE - 1, np.floor((py - mins[1]) * muls[1])).astype(np.uint32)
    iz = np.minimum(GRID_SIZE - 1, np.floor((pz - mins[2]) * muls[2])).astype(np.uint32)
    codes = encode_morton3(ix, iy, iz)

    order = np.argsort(codes, kind='stable')
    indices[start:end] = current[order]
    codes = codes[order]

    # Boundaries of runs of equal codes
    boundaries = np.flatnonzero(np.diff(codes)) + 1
    run_starts = np.concatenate(([0], boundaries))
    run_ends = np.concatenate((boundaries, [len(codes)]))

    result = []
    for run_start, run_end in zip(run_starts, run_ends):
        if run_end - run_start > MAX_BUCKET_SIZE:
            logger.debug("Sorting bucket of %d splats", run_end - run_start)
            result.append((start + int(run_start), start + int(run_end)))
    return result
