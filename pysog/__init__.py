"""
PySog - Python library for reading and writing SOG (3D Gaussian Splatting) files.

SOG ("Self-Organizing Gaussians") stores a splat cloud as a zip archive of
lossless WebP rasters plus a meta.json manifest. Splats are sorted along a
Morton curve, positions are stored as 16-bit log-encoded values, rotations
with the smallest-three scheme and scales, colors and higher-order
spherical harmonics through 256-entry codebooks.

The main entry points are `save()`/`encode()` for writing and
`load()`/`decode()` for reading. Splat data is exchanged as a `SplatCloud`
of NumPy arrays.
"""

import logging
import os
from typing import BinaryIO, Optional, Union

from . import _core
from ._clustering import (
    Clusterer,
    ClusteringResult,
    Codebook1D,
    KMeansClusterer,
    cluster_1d,
)
from ._config import SogConfig
from ._errors import ArchiveError, DataError, FormatError, SogError
from ._layout import Layout, identity_layout, texture_size
from ._meta import Meta
from ._morton import NonFiniteExtentError, morton_order
from ._splats import SplatCloud, alpha_to_opacity, opacity_to_alpha

__version__ = "0.1.0"
__all__ = [
    "encode",
    "decode",
    "save",
    "save_unbundled",
    "load",
    "SplatCloud",
    "SogConfig",
    "Meta",
    "morton_order",
    "cluster_1d",
    "Clusterer",
    "ClusteringResult",
    "Codebook1D",
    "KMeansClusterer",
    "Layout",
    "identity_layout",
    "texture_size",
    "opacity_to_alpha",
    "alpha_to_opacity",
    "SogError",
    "FormatError",
    "DataError",
    "ArchiveError",
    "NonFiniteExtentError",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())


def encode(cloud: SplatCloud, config: Optional[SogConfig] = None,
           clusterer: Optional[Clusterer] = None,
           layout: Layout = identity_layout) -> bytes:
    """
    Encode a splat cloud into a SOG archive.

    Args:
        cloud: The splats to encode. Must contain at least one splat.
        config: Encoder settings, defaults to SogConfig()
        clusterer: Clustering used for the codebooks, defaults to a
            KMeansClusterer configured from `config`
        layout: Mapping from sorted splat position to raster cell

    Returns:
        The zip archive as bytes

    Raises:
        ValueError: If the cloud is empty
        DataError: If the positions contain non-finite values
        ArchiveError: If an image cannot be encoded

    Example:
        >>> import pysog
        >>> cloud = pysog.SplatCloud.empty(100)
        >>> data = pysog.encode(cloud)
    """
    return _core.encode(cloud, config, clusterer, layout)


def decode(data: bytes, layout: Layout = identity_layout) -> SplatCloud:
    """
    Decode a SOG archive.

    Splats come back in the order they are stored in the archive, which is
    the Morton order computed by the encoder, not the original input order.

    Args:
        data: The zip archive as bytes
        layout: Mapping from sorted splat position to raster cell, must be
            the one used for encoding

    Returns:
        The decoded splat cloud

    Raises:
        FormatError: If meta.json is missing, malformed or has an
            unsupported version
        DataError: If the rasters do not match the manifest
        ArchiveError: If the archive or an image is corrupt
    """
    return _core.decode(data, layout)


def save(cloud: SplatCloud, target: Union[str, os.PathLike, BinaryIO],
         config: Optional[SogConfig] = None, clusterer: Optional[Clusterer] = None,
         layout: Layout = identity_layout) -> None:
    """
    Write a splat cloud to a .sog file.

    Args:
        cloud: The splats to encode
        target: Path of the .sog file or a writable binary file-like object
        config: Encoder settings
        clusterer: Clustering used for the codebooks
        layout: Mapping from sorted splat position to raster cell

    Example:
        >>> import pysog
        >>> pysog.save(cloud, "scene.sog")
    """
    _core.save(cloud, target, config, clusterer, layout)


def save_unbundled(cloud: SplatCloud, directory: Union[str, os.PathLike],
                   config: Optional[SogConfig] = None, clusterer: Optional[Clusterer] = None,
                   layout: Layout = identity_layout) -> None:
    """
    Write a splat cloud as loose files (meta.json and the WebP rasters).

    Args:
        cloud: The splats to encode
        directory: Output directory, created if it does not exist
        config: Encoder settings
        clusterer: Clustering used for the codebooks
        layout: Mapping from sorted splat position to raster cell
    """
    _core.save_unbundled(cloud, directory, config, clusterer, layout)


def load(source: Union[str, os.PathLike, BinaryIO],
         layout: Layout = identity_layout) -> SplatCloud:
    """
    Load a splat cloud from SOG data.

    Args:
        source: Path to a .sog file, path to a directory containing
            meta.json and the rasters, or a binary file-like object.
            Streams that cannot seek are buffered in a temporary file.
        layout: Mapping from sorted splat position to raster cell

    Returns:
        SplatCloud with the decoded splats:
        - positions: (N, 3) float32, XYZ coordinates
        - scales: (N, 3) float32, log scales
        - rotations: (N, 4) float32, quaternions (x, y, z, w)
        - opacities: (N,) float32, logit opacities
        - sh: (N, K, 3) float32, spherical harmonics, sh[:, 0] is the base color

    Raises:
        FormatError: If the manifest is invalid or has an unsupported version
        DataError: If the rasters do not match the manifest
        ArchiveError: If the archive or an image is corrupt

    Example:
        >>> import pysog
        >>> cloud = pysog.load("scene.sog")
        >>> print(f"Loaded {cloud.count} Gaussians")
    """
    return _core.load(source, layout)
