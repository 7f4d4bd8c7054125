"""
Lossless RGBA WebP encoding and decoding of data rasters.

The rasters hold quantized data rather than pictures, so every byte must
survive the round trip, including RGB values under a zero alpha.
"""

import io
import numpy as np
from PIL import Image, features

from ._errors import ArchiveError


def ensure_webp_available() -> None:
    """Raise ArchiveError if Pillow was built without WebP support."""
    if not features.check("webp"):
        raise ArchiveError("Pillow was built without WebP support")


def encode_rgba(raster: np.ndarray, name: str, method: int = 6) -> bytes:
    """Encode a raster as a lossless WebP image.

    Args:
        raster: (height, width, 4) uint8 RGBA array
        name: Entry name, used in error messages
        method: WebP encoder effort, 0-6

    Returns:
        The WebP file contents
    """
    raster = np.ascontiguousarray(raster, dtype=np.uint8)
    if raster.ndim != 3 or raster.shape[2] != 4:
        raise ValueError(f"{name}: expected a (height, width, 4) raster, got {raster.shape}")

    try:
        img = Image.fromarray(raster)
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        with io.BytesIO() as bio:
            # exact keeps RGB under transparent pixels
            img.save(bio, format="WEBP", lossless=True, quality=100, method=method, exact=True)
            return bio.getvalue()
    except (OSError, ValueError) as e:
        raise ArchiveError(f"Failed to encode {name}: {e}") from e


def decode_rgba(data: bytes, name: str) -> np.ndarray:
    """Decode a WebP image into a (height, width, 4) uint8 RGBA array."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format != "WEBP":
                raise ArchiveError(f"{name} is not a WebP image (format {img.format})")
            return np.array(img.convert("RGBA"), dtype=np.uint8)
    except ArchiveError:
        raise
    except (OSError, ValueError) as e:
        raise ArchiveError(f"Failed to decode {name}: {e}") from e
