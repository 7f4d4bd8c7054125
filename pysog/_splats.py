"""
In-memory representation of a Gaussian splat cloud.

The SOG encoder consumes a SplatCloud and the decoder produces one. All
per-splat attributes are stored as NumPy arrays in the "raw" training
domain: scales are logarithmic, opacities are logits and colors are
spherical harmonics coefficients.
"""

from dataclasses import dataclass
from typing import Dict
import numpy as np


# Opacity returned for alpha values of exactly 0 or 1 instead of +/-inf.
# sigmoid(37) rounds to 1.0 in float32, so it survives another encode.
OPACITY_SATURATION = 37.0

_DIMENSIONS_TO_DEGREE = {1: 0, 4: 1, 9: 2, 16: 3}


def dimensions_for_degree(degree: int) -> int:
    """Number of SH dimensions (RGB triples) for the given degree."""
    if not 0 <= degree <= 3:
        raise ValueError(f"Invalid sh_degree: {degree}, must be 0-3")
    return (degree + 1) * (degree + 1)


def degree_for_dimensions(dimensions: int) -> int:
    """Inverse of dimensions_for_degree()."""
    try:
        return _DIMENSIONS_TO_DEGREE[dimensions]
    except KeyError:
        raise ValueError(
            f"Invalid number of SH dimensions: {dimensions}, must be 1, 4, 9 or 16"
        ) from None


def opacity_to_alpha(opacity: np.ndarray) -> np.ndarray:
    """Convert logit opacities into alpha values in [0, 1]."""
    opacity = np.asarray(opacity, dtype=np.float64)
    # exp() of large negative logits overflows harmlessly to inf -> alpha 0
    with np.errstate(over='ignore'):
        alpha = 1.0 / (1.0 + np.exp(-opacity))
    return np.clip(alpha, 0.0, 1.0)


def alpha_to_opacity(alpha: np.ndarray) -> np.ndarray:
    """Convert alpha values in [0, 1] into logit opacities.

    Exact 0 and 1 map to -OPACITY_SATURATION and +OPACITY_SATURATION
    rather than infinities.
    """
    alpha = np.asarray(alpha, dtype=np.float64)
    with np.errstate(divide='ignore'):
        opacity = -np.log(1.0 / alpha - 1.0)
    opacity = np.where(alpha <= 0.0, -OPACITY_SATURATION, opacity)
    opacity = np.where(alpha >= 1.0, OPACITY_SATURATION, opacity)
    return opacity


@dataclass
class SplatCloud:
    """A collection of 3D Gaussian splats sharing one SH degree.

    Attributes:
        positions: (N, 3) splat centers in world units
        scales: (N, 3) per-axis scales, log domain
        rotations: (N, 4) unit quaternions, scalar-last (x, y, z, w)
        opacities: (N,) opacities, logit domain
        sh: (N, K, 3) spherical harmonics RGB triples, K = (degree + 1)^2.
            sh[:, 0] is the DC term (base color).
        antialias: True if the scene was trained with antialiasing
    """
    positions: np.ndarray
    scales: np.ndarray
    rotations: np.ndarray
    opacities: np.ndarray
    sh: np.ndarray
    antialias: bool = False

    def __post_init__(self):
        """Validate array shapes and convert everything to float32."""
        self.positions = np.asarray(self.positions, dtype=np.float32)
        self.scales = np.asarray(self.scales, dtype=np.float32)
        self.rotations = np.asarray(self.rotations, dtype=np.float32)
        self.opacities = np.asarray(self.opacities, dtype=np.float32)
        self.sh = np.asarray(self.sh, dtype=np.float32)

        if self.positions.ndim != 2 or self.positions.shape[1] != 3:
            raise ValueError(f"positions must be (N, 3), got {self.positions.shape}")
        n = len(self.positions)

        if self.scales.shape != (n, 3):
            raise ValueError(f"scales must be ({n}, 3), got {self.scales.shape}")
        if self.rotations.shape != (n, 4):
            raise ValueError(f"rotations must be ({n}, 4), got {self.rotations.shape}")
        if self.opacities.shape != (n,):
            raise ValueError(f"opacities must be ({n},), got {self.opacities.shape}")
        if self.sh.ndim != 3 or self.sh.shape[0] != n or self.sh.shape[2] != 3:
            raise ValueError(f"sh must be ({n}, K, 3), got {self.sh.shape}")

        # Raises for K not in (1, 4, 9, 16)
        degree_for_dimensions(self.sh.shape[1])

    @property
    def count(self) -> int:
        """Number of splats."""
        return len(self.positions)

    @property
    def sh_degree(self) -> int:
        """Spherical harmonics degree (0-3)."""
        return degree_for_dimensions(self.sh.shape[1])

    @property
    def colors(self) -> np.ndarray:
        """(N, 3) DC spherical harmonics coefficients."""
        return self.sh[:, 0, :]

    def subset(self, indices: np.ndarray) -> 'SplatCloud':
        """Create a new cloud from the splats at the given indices."""
        return SplatCloud(
            positions=self.positions[indices],
            scales=self.scales[indices],
            rotations=self.rotations[indices],
            opacities=self.opacities[indices],
            sh=self.sh[indices],
            antialias=self.antialias,
        )

    def to_dict(self) -> Dict[str, np.ndarray]:
        """Convert to a dictionary of arrays."""
        return {
            'positions': self.positions,
            'scales': self.scales,
            'rotations': self.rotations,
            'opacities': self.opacities,
            'sh': self.sh,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, np.ndarray], antialias: bool = False) -> 'SplatCloud':
        """Create from a dictionary as returned by to_dict()."""
        return cls(
            positions=data['positions'],
            scales=data['scales'],
            rotations=data['rotations'],
            opacities=data['opacities'],
            sh=data['sh'],
            antialias=antialias,
        )

    @classmethod
    def empty(cls, count: int, sh_degree: int = 0,
              antialias: bool = False) -> 'SplatCloud':
        """Create a cloud of `count` splats at the origin with identity rotations."""
        rotations = np.zeros((count, 4), dtype=np.float32)
        rotations[:, 3] = 1.0
        return cls(
            positions=np.zeros((count, 3), dtype=np.float32),
            scales=np.zeros((count, 3), dtype=np.float32),
            rotations=rotations,
            opacities=np.zeros(count, dtype=np.float32),
            sh=np.zeros((count, dimensions_for_degree(sh_degree), 3), dtype=np.float32),
            antialias=bool(antialias),
        )

    def __str__(self) -> str:
        """String representation of the cloud."""
        return f"SplatCloud(count={self.count}, sh_degree={self.sh_degree})"
