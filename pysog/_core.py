"""
Core functionality for reading and writing SOG containers.

A SOG container is a zip archive (or a plain directory) holding meta.json
and one lossless WebP raster per channel. This module runs the encoding
pipeline (reorder, quantize, pack) and its inverse (unpack, validate,
dequantize).
"""

import io
import logging
import os
import shutil
import tempfile
import zipfile
import zlib
from typing import BinaryIO, Dict, Optional, Union
import numpy as np

from ._clustering import Clusterer, KMeansClusterer
from ._config import SogConfig
from ._dequantize import (
    decode_codebook_labels,
    decode_means,
    decode_opacity,
    decode_quats,
    decode_shn,
)
from ._errors import ArchiveError, DataError, FormatError
from ._images import decode_rgba, encode_rgba, ensure_webp_available
from ._layout import Layout, identity_layout, read_cells, texture_size
from ._meta import SOG_VERSION, Asset, Meta
from ._morton import NonFiniteExtentError, morton_order
from ._quantize import encode_means, encode_quats, encode_scales, encode_sh0, encode_shn
from ._splats import SplatCloud

logger = logging.getLogger(__name__)

META_NAME = 'meta.json'

PathLike = Union[str, os.PathLike]


def _reorder(cloud: SplatCloud) -> np.ndarray:
    """Morton order of the cloud, or identity order if it has no finite extent."""
    positions = cloud.positions
    try:
        return morton_order(positions[:, 0], positions[:, 1], positions[:, 2])
    except NonFiniteExtentError as e:
        logger.warning("Could not reorder splats, keeping input order: %s", e)
        return np.arange(cloud.count, dtype=np.int64)


def _check_finite(cloud: SplatCloud) -> None:
    # Positions are checked by the means generator after reordering
    for name in ('scales', 'rotations', 'opacities', 'sh'):
        if not np.all(np.isfinite(getattr(cloud, name))):
            raise DataError(f"Splat {name} contain non-finite values")


def encode_entries(cloud: SplatCloud, config: Optional[SogConfig] = None,
                   clusterer: Optional[Clusterer] = None,
                   layout: Layout = identity_layout) -> Dict[str, bytes]:
    """Encode a cloud into the named entries of a SOG container.

    Returns:
        Dictionary mapping entry names to file contents, meta.json first
    """
    config = config or SogConfig()
    if clusterer is None:
        clusterer = KMeansClusterer(iterations=config.iterations, init=config.init,
                                    seed=config.seed)
    if cloud.count == 0:
        raise ValueError("Cannot encode an empty splat cloud")
    _check_finite(cloud)
    ensure_webp_available()

    logger.debug("Reordering %d splats", cloud.count)
    ordered = cloud.subset(_reorder(cloud))
    width, height = texture_size(ordered.count)

    logger.debug("Generating SOG means")
    means, rasters = encode_means(ordered.positions, width, height, layout)
    logger.debug("Generating SOG quats")
    quats, quat_rasters = encode_quats(ordered.rotations, width, height, layout)
    rasters.update(quat_rasters)
    logger.debug("Generating SOG scales")
    scales, scale_rasters = encode_scales(ordered.scales, clusterer, width, height, layout)
    rasters.update(scale_rasters)
    logger.debug("Generating SOG sh0")
    sh0, sh0_rasters = encode_sh0(ordered.colors, ordered.opacities, clusterer,
                                  width, height, layout)
    rasters.update(sh0_rasters)

    sh_n = None
    if ordered.sh_degree > 0:
        logger.debug("Generating SOG shN")
        sh_n, shn_rasters = encode_shn(ordered.sh, clusterer, width, height, layout,
                                       order=config.sh_coefficient_order)
        rasters.update(shn_rasters)

    meta = Meta(
        version=SOG_VERSION,
        count=ordered.count,
        antialias=bool(ordered.antialias),
        asset=Asset(generator=config.generator),
        means=means,
        scales=scales,
        quats=quats,
        sh0=sh0,
        sh_n=sh_n,
    )

    entries = {META_NAME: meta.to_json().encode('utf-8')}
    for name in meta.files:
        entries[name] = encode_rgba(rasters[name], name, method=config.webp_method)
    return entries


def encode(cloud: SplatCloud, config: Optional[SogConfig] = None,
           clusterer: Optional[Clusterer] = None,
           layout: Layout = identity_layout) -> bytes:
    """Encode a cloud into the bytes of a SOG zip archive."""
    entries = encode_entries(cloud, config, clusterer, layout)
    with io.BytesIO() as bio:
        _write_zip(bio, entries)
        return bio.getvalue()


def _write_zip(stream: BinaryIO, entries: Dict[str, bytes]) -> None:
    with zipfile.ZipFile(stream, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)


def save(cloud: SplatCloud, target: Union[PathLike, BinaryIO],
         config: Optional[SogConfig] = None, clusterer: Optional[Clusterer] = None,
         layout: Layout = identity_layout) -> None:
    """Write a cloud as a SOG archive to a path or a binary stream."""
    entries = encode_entries(cloud, config, clusterer, layout)
    if isinstance(target, (str, os.PathLike)):
        with open(target, 'wb') as f:
            _write_zip(f, entries)
    else:
        _write_zip(target, entries)


def save_unbundled(cloud: SplatCloud, directory: PathLike,
                   config: Optional[SogConfig] = None, clusterer: Optional[Clusterer] = None,
                   layout: Layout = identity_layout) -> None:
    """Write the container entries as individual files into a directory."""
    entries = encode_entries(cloud, config, clusterer, layout)
    os.makedirs(directory, exist_ok=True)
    for name, data in entries.items():
        with open(os.path.join(directory, name), 'wb') as f:
            f.write(data)


class _ZipEntries:
    """Named entry access to a zip archive."""

    def __init__(self, zf: zipfile.ZipFile):
        self._zf = zf

    def read(self, name: str) -> bytes:
        try:
            return self._zf.read(name)
        except KeyError:
            raise FormatError(f"Missing entry '{name}'") from None
        except (zipfile.BadZipFile, zlib.error, OSError, EOFError) as e:
            raise ArchiveError(f"Failed to read entry '{name}': {e}") from e


class _DirectoryEntries:
    """Named entry access to an unbundled container directory."""

    def __init__(self, directory: PathLike):
        self._directory = directory

    def read(self, name: str) -> bytes:
        path = os.path.join(self._directory, name)
        if not os.path.isfile(path):
            raise FormatError(f"Missing entry '{name}'")
        try:
            with open(path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise ArchiveError(f"Failed to read entry '{name}': {e}") from e


def _open_zip(stream: BinaryIO) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(stream, 'r')
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"Corrupt SOG archive: {e}") from e


def decode(data: bytes, layout: Layout = identity_layout) -> SplatCloud:
    """Decode the bytes of a SOG zip archive.

    The splats are returned in the order they are stored in the rasters.
    """
    with _open_zip(io.BytesIO(data)) as zf:
        return _decode_entries(_ZipEntries(zf), layout)


def load(source: Union[PathLike, BinaryIO], layout: Layout = identity_layout) -> SplatCloud:
    """
    Load a splat cloud from a SOG archive, an unbundled directory or a stream.

    Non-seekable streams are copied to a temporary file first, because zip
    archives need random access.
    """
    if isinstance(source, (str, os.PathLike)):
        if os.path.isdir(source):
            return _decode_entries(_DirectoryEntries(source), layout)
        with open(source, 'rb') as f:
            return _load_from_stream(f, layout)
    return _load_from_stream(source, layout)


def _is_seekable(stream: BinaryIO) -> bool:
    seekable = getattr(stream, 'seekable', None)
    return bool(seekable and seekable())


def _load_from_stream(stream: BinaryIO, layout: Layout) -> SplatCloud:
    if _is_seekable(stream):
        with _open_zip(stream) as zf:
            return _decode_entries(_ZipEntries(zf), layout)

    logger.debug("Copying non-seekable stream to a temporary file")
    # TemporaryFile is removed when closed, on success and on error
    with tempfile.TemporaryFile(suffix='.sog') as tmp:
        shutil.copyfileobj(stream, tmp)
        tmp.seek(0)
        with _open_zip(tmp) as zf:
            return _decode_entries(_ZipEntries(zf), layout)


def _check_shape(raster: np.ndarray, width: int, height: int, name: str) -> None:
    if raster.shape != (height, width, 4):
        raise DataError(
            f"Raster '{name}' is {raster.shape[1]}x{raster.shape[0]}, expected {width}x{height}"
        )


def _decode_entries(entries, layout: Layout) -> SplatCloud:
    """Read, validate and dequantize all entries of a container."""
    meta = Meta.from_json(entries.read(META_NAME))
    logger.debug("Decoding %s", meta)

    rasters = {}
    for name in meta.files:
        rasters[name] = decode_rgba(entries.read(name), name)

    # Check all rasters before any splat is produced
    main_files = meta.means.files + meta.quats.files + meta.scales.files + meta.sh0.files
    if meta.sh_n is not None:
        main_files = main_files + meta.sh_n.files[1:]
    height, width = rasters[main_files[0]].shape[:2]
    for name in main_files:
        _check_shape(rasters[name], width, height, name)
    if width % 4 or height % 4:
        raise DataError(f"Rasters of {width}x{height} are not a multiple of 4 in size")
    if width * height < meta.count:
        raise DataError(f"Rasters of {width}x{height} cannot hold {meta.count} splats")

    if meta.sh_n is not None:
        centroid_name = meta.sh_n.files[0]
        coeffs = meta.sh_n.coeffs
        rows = (meta.sh_n.count + 63) // 64
        _check_shape(rasters[centroid_name], 64 * coeffs, rows, centroid_name)

    count = meta.count
    means_l = read_cells(rasters[meta.means.files[0]], count, layout)
    means_u = read_cells(rasters[meta.means.files[1]], count, layout)
    quats = read_cells(rasters[meta.quats.files[0]], count, layout)
    scales = read_cells(rasters[meta.scales.files[0]], count, layout)
    sh0 = read_cells(rasters[meta.sh0.files[0]], count, layout)

    positions = decode_means(means_l, means_u, np.array(meta.means.mins), np.array(meta.means.maxs))
    rotations = decode_quats(quats)
    scale_values = decode_codebook_labels(scales, np.array(meta.scales.codebook))
    colors = decode_codebook_labels(sh0, np.array(meta.sh0.codebook))
    opacities = decode_opacity(sh0)

    if meta.sh_n is not None:
        labels = read_cells(rasters[meta.sh_n.files[1]], count, layout)
        rest = decode_shn(labels, rasters[meta.sh_n.files[0]], np.array(meta.sh_n.codebook),
                          meta.sh_n.count, meta.sh_n.coeffs)
        sh = np.concatenate([colors[:, None, :], rest], axis=1)
    else:
        sh = colors[:, None, :]

    return SplatCloud(
        positions=positions,
        scales=scale_values,
        rotations=rotations,
        opacities=opacities,
        sh=sh,
        antialias=meta.antialias,
    )
