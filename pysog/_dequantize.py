"""
Dequantization functions for the SOG format.

This module contains vectorized functions that turn the RGBA values read
from the SOG rasters back into splat attributes: 16-bit log-encoded
positions, smallest-three quaternions, codebook labels, opacities and
palette-compressed higher-order spherical harmonics.
"""

import math
import numpy as np

from ._errors import DataError
from ._splats import alpha_to_opacity


# Index of each scalar-last component (x, y, z, w) in wire order (w, x, y, z)
SCALAR_LAST_ORDER = [1, 2, 3, 0]

_KEPT_COMPONENTS = np.array([[1, 2, 3], [0, 2, 3], [0, 1, 3], [0, 1, 2]])


def decode_means(low: np.ndarray, high: np.ndarray,
                 mins: np.ndarray, maxs: np.ndarray) -> np.ndarray:
    """Decode 16-bit log-encoded positions.

    Args:
        low: (N, 4) RGBA values of the means_l raster
        high: (N, 4) RGBA values of the means_u raster
        mins: (3,) per-axis minimum of the log-transformed positions
        maxs: (3,) per-axis maximum of the log-transformed positions

    Returns:
        (N, 3) float32 array of XYZ positions
    """
    q = (high[:, :3].astype(np.uint32) << 8) | low[:, :3].astype(np.uint32)
    mins = np.asarray(mins, dtype=np.float64)
    maxs = np.asarray(maxs, dtype=np.float64)

    t = mins + (maxs - mins) * (q.astype(np.float64) / 65535.0)
    positions = np.sign(t) * np.expm1(np.abs(t))

    return positions.astype(np.float32)


def decode_quats(values: np.ndarray) -> np.ndarray:
    """Decode smallest-three quaternions.

    Args:
        values: (N, 4) RGBA values of the quats raster. RGB hold the three
            kept components, alpha is 252 + index of the omitted one.

    Returns:
        (N, 4) float32 array of scalar-last quaternions (x, y, z, w)
    """
    mode = values[:, 3].astype(np.int64) - 252
    if np.any((mode < 0) | (mode > 3)):
        bad = values[:, 3][(mode < 0) | (mode > 3)][0]
        raise DataError(f"Invalid quaternion mode in alpha channel: {bad}, must be 252-255")

    # Normalize to [-1/sqrt(2), 1/sqrt(2)]
    kept = (values[:, :3].astype(np.float64) / 255.0 - 0.5) * (2.0 / math.sqrt(2.0))

    # The omitted component follows from the unit length
    omitted = np.sqrt(np.maximum(0.0, 1.0 - np.sum(kept ** 2, axis=1)))

    rows = np.arange(len(values))
    wire = np.empty((len(values), 4), dtype=np.float64)
    wire[rows, mode] = omitted
    wire[rows[:, None], _KEPT_COMPONENTS[mode]] = kept

    return wire[:, SCALAR_LAST_ORDER].astype(np.float32)


def decode_codebook_labels(values: np.ndarray, codebook: np.ndarray) -> np.ndarray:
    """Look up RGB byte labels in a 256-entry codebook.

    Args:
        values: (N, 4) RGBA values
        codebook: (256,) codebook

    Returns:
        (N, 3) float32 array
    """
    codebook = np.asarray(codebook, dtype=np.float32)
    if codebook.shape != (256,):
        raise DataError(f"Codebook must have 256 entries, got {codebook.shape[0]}")
    return codebook[values[:, :3]]


def decode_opacity(values: np.ndarray) -> np.ndarray:
    """Decode logit opacities from the alpha channel.

    Returns:
        (N,) float32 array, alpha 0 and 255 map to -37 and +37
    """
    return alpha_to_opacity(values[:, 3].astype(np.float64) / 255.0).astype(np.float32)


def decode_shn(labels: np.ndarray, centroids: np.ndarray, codebook: np.ndarray,
               palette_count: int, coeffs: int) -> np.ndarray:
    """Decode palette-compressed higher-order spherical harmonics.

    Args:
        labels: (N, 4) RGBA values of the shN_labels raster
        centroids: (rows, 64 * coeffs, 4) shN_centroids raster
        codebook: (256,) shared coefficient codebook
        palette_count: Number of palette entries
        coeffs: Coefficients per color axis (3, 8 or 15)

    Returns:
        (N, coeffs, 3) float32 array of coefficients, without the DC term
    """
    codebook = np.asarray(codebook, dtype=np.float32)
    if codebook.shape != (256,):
        raise DataError(f"Codebook must have 256 entries, got {codebook.shape[0]}")

    index = labels[:, 0].astype(np.int64) | (labels[:, 1].astype(np.int64) << 8)
    if len(index) and index.max() >= palette_count:
        raise DataError(f"Palette index {index.max()} out of range, palette has {palette_count} entries")

    row = index // 64
    column = (index % 64) * coeffs
    # (N, coeffs) centroid raster cells of every splat
    cells_x = column[:, None] + np.arange(coeffs)[None, :]
    rgb = centroids[row[:, None], cells_x, :3]

    return codebook[rgb]
