"""
Encoder configuration.
"""

from dataclasses import dataclass
from typing import Optional


DEFAULT_GENERATOR = "pysog 0.1.0"

KMEANS_INITS = ('k-means++', 'random')

SH_COEFFICIENT_ORDERS = ('planar', 'interleaved')


@dataclass
class SogConfig:
    """Settings for encoding a splat cloud.

    Attributes:
        iterations: Maximum k-means iterations per clustering
        init: k-means initialization, 'k-means++' or 'random'
        seed: k-means random state, None for a fresh one per call
        sh_coefficient_order: Order of the higher-order SH features fed to
            the palette clustering. 'planar' is x0..xn, y0..yn, z0..zn and
            'interleaved' is x0, y0, z0, x1, ... The container layout is the
            same either way.
        generator: Value written to asset.generator in meta.json
        webp_method: WebP encoder effort, 0 (fast) to 6 (small)
    """
    iterations: int = 10
    init: str = 'k-means++'
    seed: Optional[int] = None
    sh_coefficient_order: str = 'planar'
    generator: str = DEFAULT_GENERATOR
    webp_method: int = 6

    def __post_init__(self):
        """Validate the settings."""
        if self.iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {self.iterations}")
        if self.init not in KMEANS_INITS:
            raise ValueError(f"Invalid init: {self.init!r}, must be one of {KMEANS_INITS}")
        if self.sh_coefficient_order not in SH_COEFFICIENT_ORDERS:
            raise ValueError(
                f"Invalid sh_coefficient_order: {self.sh_coefficient_order!r}, "
                f"must be one of {SH_COEFFICIENT_ORDERS}"
            )
        if not 0 <= self.webp_method <= 6:
            raise ValueError(f"Invalid webp_method: {self.webp_method}, must be 0-6")
        if not isinstance(self.generator, str):
            raise ValueError(f"generator must be a string, got {type(self.generator).__name__}")
