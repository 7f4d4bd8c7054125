"""
Channel generators: quantize splat attributes into RGBA rasters.

Every generator takes splats that are already in Morton order and returns
the manifest section of its channel plus the rasters it produced, keyed by
entry name. Row i of every attribute array is written to raster cell
layout(i).
"""

import logging
import math
from typing import Dict, Tuple
import numpy as np

from ._clustering import Clusterer, cluster_1d
from ._errors import DataError
from ._layout import Layout, identity_layout, write_cells
from ._meta import COEFFS_PER_BAND, Means, Quats, Scales, Sh0, ShN
from ._splats import opacity_to_alpha


logger = logging.getLogger(__name__)

Rasters = Dict[str, np.ndarray]

# Index of each wire order component (w, x, y, z) in scalar-last (x, y, z, w)
WIRE_ORDER = [3, 0, 1, 2]

# Components written to RGB for each choice of the omitted (largest) component
_KEPT_COMPONENTS = np.array([[1, 2, 3], [0, 2, 3], [0, 1, 3], [0, 1, 2]])

# Palette entries per row of the shN centroid raster
PALETTE_ROW = 64


def _pixels(rgb: np.ndarray, alpha) -> np.ndarray:
    """Stack (N, 3) RGB bytes and an alpha value or (N,) alpha bytes."""
    values = np.empty((len(rgb), 4), dtype=np.uint8)
    values[:, :3] = rgb
    values[:, 3] = alpha
    return values


def log_transform(v: np.ndarray) -> np.ndarray:
    """Symmetric log transform sign(v) * ln(|v| + 1)."""
    return np.sign(v) * np.log1p(np.abs(v))


def encode_means(positions: np.ndarray, width: int, height: int,
                 layout: Layout = identity_layout) -> Tuple[Means, Rasters]:
    """Quantize positions to 16 bits per axis, split over two rasters.

    Args:
        positions: (N, 3) positions in Morton order
        width: Raster width
        height: Raster height
        layout: Cell layout strategy

    Returns:
        The means manifest section and the means_l / means_u rasters
    """
    positions = np.asarray(positions, dtype=np.float64)
    if not np.all(np.isfinite(positions)):
        raise DataError("Positions contain non-finite values")

    t = log_transform(positions)
    mins = t.min(axis=0)
    maxs = t.max(axis=0)
    lengths = maxs - mins

    # A zero length axis encodes every value as 0
    safe_lengths = np.where(lengths > 0.0, lengths, 1.0)
    q = np.where(lengths > 0.0, np.round(65535.0 * (t - mins) / safe_lengths), 0.0)
    q = np.clip(q, 0, 65535).astype(np.uint16)

    low = (q & 0xFF).astype(np.uint8)
    high = (q >> 8).astype(np.uint8)

    means = Means(mins=mins.tolist(), maxs=maxs.tolist(), files=['means_l.webp', 'means_u.webp'])
    rasters = {
        'means_l.webp': write_cells(_pixels(low, 255), width, height, layout),
        'means_u.webp': write_cells(_pixels(high, 255), width, height, layout),
    }
    return means, rasters


def encode_quats(rotations: np.ndarray, width: int, height: int,
                 layout: Layout = identity_layout) -> Tuple[Quats, Rasters]:
    """Encode rotations with the smallest-three scheme.

    The quaternion is stored in (w, x, y, z) order. The largest component
    is omitted and its index is stored as 252 + index in the alpha channel.

    Args:
        rotations: (N, 4) scalar-last quaternions in Morton order
        width: Raster width
        height: Raster height
        layout: Cell layout strategy

    Returns:
        The quats manifest section and the quats raster
    """
    q = np.asarray(rotations, dtype=np.float64)[:, WIRE_ORDER]

    norms = np.linalg.norm(q, axis=1, keepdims=True)
    valid = np.isfinite(norms[:, 0]) & (norms[:, 0] > 0.0)
    q = np.where(valid[:, None], q / np.where(valid, norms[:, 0], 1.0)[:, None], 0.0)
    # Degenerate rotations become the identity
    q[~valid, 0] = 1.0

    rows = np.arange(len(q))
    largest = np.argmax(np.abs(q), axis=1)
    sign = np.where(q[rows, largest] < 0.0, -1.0, 1.0)
    q = q * (sign * math.sqrt(2.0))[:, None]

    kept = np.take_along_axis(q, _KEPT_COMPONENTS[largest], axis=1)
    rgb = np.clip(np.round(255.0 * (kept * 0.5 + 0.5)), 0, 255).astype(np.uint8)
    alpha = (252 + largest).astype(np.uint8)

    return Quats(files=['quats.webp']), {
        'quats.webp': write_cells(_pixels(rgb, alpha), width, height, layout),
    }


def encode_scales(scales: np.ndarray, clusterer: Clusterer, width: int, height: int,
                  layout: Layout = identity_layout) -> Tuple[Scales, Rasters]:
    """Quantize the log scales of all three axes with one shared codebook."""
    quantized = cluster_1d(scales, clusterer)
    return Scales(codebook=quantized.codebook.tolist(), files=['scales.webp']), {
        'scales.webp': write_cells(_pixels(quantized.labels, 255), width, height, layout),
    }


def encode_sh0(colors: np.ndarray, opacities: np.ndarray, clusterer: Clusterer,
               width: int, height: int,
               layout: Layout = identity_layout) -> Tuple[Sh0, Rasters]:
    """Quantize base colors with a shared codebook and store alpha directly.

    Args:
        colors: (N, 3) DC spherical harmonics coefficients in Morton order
        opacities: (N,) logit opacities in Morton order
        clusterer: The clustering oracle
        width: Raster width
        height: Raster height
        layout: Cell layout strategy

    Returns:
        The sh0 manifest section and the sh0 raster
    """
    quantized = cluster_1d(colors, clusterer)
    alpha = np.clip(np.round(255.0 * opacity_to_alpha(opacities)), 0, 255).astype(np.uint8)
    return Sh0(codebook=quantized.codebook.tolist(), files=['sh0.webp']), {
        'sh0.webp': write_cells(_pixels(quantized.labels, alpha), width, height, layout),
    }


def palette_size(count: int) -> int:
    """Number of shN palette entries for a cloud of `count` splats."""
    size = min(64.0, 2.0 ** math.floor(math.log2(count / 1024))) * 1024
    return max(1, min(int(size), count))


def sh_feature_columns(coeffs: int, order: str = 'planar') -> np.ndarray:
    """Feature column of every (coefficient, axis) pair.

    Args:
        coeffs: Coefficients per color axis
        order: 'planar' (x0..xn, y0..yn, z0..zn) or 'interleaved'
            (x0, y0, z0, x1, ...)

    Returns:
        (coeffs, 3) integer array
    """
    j = np.arange(coeffs)[:, None]
    axis = np.arange(3)[None, :]
    if order == 'planar':
        return axis * coeffs + j
    if order == 'interleaved':
        return j * 3 + axis
    raise ValueError(f"Invalid SH coefficient order: {order!r}")


def encode_shn(sh: np.ndarray, clusterer: Clusterer, width: int, height: int,
               layout: Layout = identity_layout,
               order: str = 'planar') -> Tuple[ShN, Rasters]:
    """Quantize the higher-order SH coefficients with a palette.

    Every splat's coefficient vector is clustered into a palette, then the
    palette entries are quantized with one shared 1D codebook. The centroid
    raster holds 64 palette entries per row, one pixel per coefficient with
    the x/y/z codebook labels in RGB. The label raster holds each splat's
    16-bit palette index, low byte in R and high byte in G.

    Args:
        sh: (N, K, 3) spherical harmonics in Morton order, K > 1
        clusterer: The clustering oracle
        width: Width of the per-splat rasters
        height: Height of the per-splat rasters
        layout: Cell layout strategy
        order: Feature order used for clustering, see sh_feature_columns()

    Returns:
        The shN manifest section and the shN_centroids / shN_labels rasters
    """
    sh = np.asarray(sh, dtype=np.float64)
    count = len(sh)
    bands = {4: 1, 9: 2, 16: 3}.get(sh.shape[1])
    if bands is None:
        raise ValueError(f"Higher-order SH need 4, 9 or 16 dimensions, got {sh.shape[1]}")
    coeffs = COEFFS_PER_BAND[bands]

    columns = sh_feature_columns(coeffs, order)
    features = np.empty((count, 3 * coeffs), dtype=np.float64)
    features[:, columns.reshape(-1)] = sh[:, 1:, :].reshape(count, 3 * coeffs)

    size = palette_size(count)
    logger.debug("Clustering %d SH vectors into a palette of %d", count, size)
    palette = clusterer.cluster(features, size)
    centroids = np.asarray(palette.centroids, dtype=np.float64)
    labels = np.asarray(palette.labels, dtype=np.int64)
    entries = len(centroids)
    if centroids.shape != (entries, 3 * coeffs) or not 1 <= entries <= size:
        raise ValueError(f"Palette clustering returned centroids of shape {centroids.shape}")
    if labels.shape != (count,) or labels.min() < 0 or labels.max() >= entries:
        raise ValueError("Palette clustering returned labels that are not valid centroid indices")

    quantized = cluster_1d(centroids, clusterer)

    # Centroid raster: entry p, coefficient j at (p // 64, (p % 64) * coeffs + j)
    centroid_rows = int(math.ceil(entries / PALETTE_ROW))
    centroid_raster = np.zeros((centroid_rows, PALETTE_ROW * coeffs, 4), dtype=np.uint8)
    p = np.arange(entries)
    for j in range(coeffs):
        cell_x = (p % PALETTE_ROW) * coeffs + j
        centroid_raster[p // PALETTE_ROW, cell_x, :3] = quantized.labels[:, columns[j]]
        centroid_raster[p // PALETTE_ROW, cell_x, 3] = 255

    rgb = np.zeros((count, 3), dtype=np.uint8)
    rgb[:, 0] = labels & 0xFF
    rgb[:, 1] = labels >> 8

    # Small or repetitive clouds yield fewer entries than palette_size()
    sh_n = ShN(count=entries, bands=bands, codebook=quantized.codebook.tolist(),
               files=['shN_centroids.webp', 'shN_labels.webp'])
    return sh_n, {
        'shN_centroids.webp': centroid_raster,
        'shN_labels.webp': write_cells(_pixels(rgb, 255), width, height, layout),
    }
