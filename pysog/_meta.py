"""
The meta.json manifest of a SOG container.

The manifest records the splat count, the per-channel dequantization
parameters (position ranges and codebooks) and the names of the raster
entries holding each channel.
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ._errors import DataError, FormatError


SOG_VERSION = 2

CODEBOOK_LENGTH = 256

# Number of higher-order SH coefficients per color axis for bands 1-3
COEFFS_PER_BAND = {1: 3, 2: 8, 3: 15}


def _field(data: Dict[str, Any], key: str, path: str) -> Any:
    if not isinstance(data, dict):
        raise FormatError(f"Field '{path}' must be an object, got {type(data).__name__}")
    if key not in data:
        raise FormatError(f"Missing field '{path}.{key}'" if path else f"Missing field '{key}'")
    return data[key]


def _int(value: Any, name: str) -> int:
    # bool is a subclass of int but never a valid count
    if isinstance(value, bool) or not isinstance(value, int):
        raise FormatError(f"Field '{name}' must be an integer, got {value!r}")
    return value


def _floats(value: Any, name: str, length: Optional[int] = None) -> List[float]:
    if not isinstance(value, list):
        raise FormatError(f"Field '{name}' must be an array, got {type(value).__name__}")
    if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in value):
        raise FormatError(f"Field '{name}' must only contain numbers")
    if length is not None and len(value) != length:
        raise FormatError(f"Field '{name}' must have {length} entries, got {len(value)}")
    try:
        floats = [float(v) for v in value]
    except OverflowError:
        floats = [math.inf]
    # json.loads accepts NaN and Infinity literals
    if not all(math.isfinite(v) for v in floats):
        raise FormatError(f"Field '{name}' must only contain finite numbers")
    return floats


def _codebook(value: Any, name: str) -> List[float]:
    codebook = _floats(value, name)
    if len(codebook) != CODEBOOK_LENGTH:
        raise DataError(f"Codebook '{name}' must have {CODEBOOK_LENGTH} entries, got {len(codebook)}")
    return codebook


def _files(value: Any, name: str, length: int) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise FormatError(f"Field '{name}' must be an array of file names")
    if len(value) != length:
        raise FormatError(f"Field '{name}' must name {length} files, got {len(value)}")
    return list(value)


@dataclass
class Asset:
    generator: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Asset':
        generator = _field(data, 'generator', 'asset')
        if not isinstance(generator, str):
            raise FormatError(f"Field 'asset.generator' must be a string, got {generator!r}")
        return cls(generator=generator)

    def to_dict(self) -> Dict[str, Any]:
        return {'generator': self.generator}


@dataclass
class Means:
    """Position channel: per-axis ranges of the log-transformed positions."""
    mins: List[float]
    maxs: List[float]
    files: List[str]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Means':
        return cls(
            mins=_floats(_field(data, 'mins', 'means'), 'means.mins', 3),
            maxs=_floats(_field(data, 'maxs', 'means'), 'means.maxs', 3),
            files=_files(_field(data, 'files', 'means'), 'means.files', 2),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'mins': list(self.mins), 'maxs': list(self.maxs), 'files': list(self.files)}


@dataclass
class Quats:
    files: List[str]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Quats':
        return cls(files=_files(_field(data, 'files', 'quats'), 'quats.files', 1))

    def to_dict(self) -> Dict[str, Any]:
        return {'files': list(self.files)}


@dataclass
class Scales:
    codebook: List[float]
    files: List[str]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Scales':
        return cls(
            codebook=_codebook(_field(data, 'codebook', 'scales'), 'scales.codebook'),
            files=_files(_field(data, 'files', 'scales'), 'scales.files', 1),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'codebook': list(self.codebook), 'files': list(self.files)}


@dataclass
class Sh0:
    """Base color channel. Opacity lives in the alpha channel of the same raster."""
    codebook: List[float]
    files: List[str]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Sh0':
        return cls(
            codebook=_codebook(_field(data, 'codebook', 'sh0'), 'sh0.codebook'),
            files=_files(_field(data, 'files', 'sh0'), 'sh0.files', 1),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'codebook': list(self.codebook), 'files': list(self.files)}


@dataclass
class ShN:
    """Higher-order SH channel.

    Attributes:
        count: Number of palette entries
        bands: SH degree (1-3)
        codebook: Shared codebook of all palette coefficients
        files: Centroid raster and label raster names
    """
    count: int
    bands: int
    codebook: List[float]
    files: List[str]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShN':
        count = _int(_field(data, 'count', 'shN'), 'shN.count')
        if not 1 <= count <= 65536:
            raise FormatError(f"Invalid shN.count: {count}, must be 1-65536")
        bands = _int(_field(data, 'bands', 'shN'), 'shN.bands')
        if bands not in COEFFS_PER_BAND:
            raise FormatError(f"Invalid shN.bands: {bands}, must be 1-3")
        return cls(
            count=count,
            bands=bands,
            codebook=_codebook(_field(data, 'codebook', 'shN'), 'shN.codebook'),
            files=_files(_field(data, 'files', 'shN'), 'shN.files', 2),
        )

    @property
    def coeffs(self) -> int:
        """Number of coefficients per color axis."""
        return COEFFS_PER_BAND[self.bands]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'count': self.count,
            'bands': self.bands,
            'codebook': list(self.codebook),
            'files': list(self.files),
        }


@dataclass
class Meta:
    """Contents of meta.json.

    Attributes:
        version: Container format version, always 2
        count: Number of splats
        antialias: True if the scene was trained with antialiasing
        asset: Information about the producing tool
        means: Position channel
        scales: Scale channel
        quats: Rotation channel
        sh0: Base color and opacity channel
        sh_n: Higher-order SH channel, None for degree 0 clouds
    """
    version: int
    count: int
    antialias: bool
    asset: Asset
    means: Means
    scales: Scales
    quats: Quats
    sh0: Sh0
    sh_n: Optional[ShN] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Meta':
        """Build and validate a manifest from a parsed meta.json object.

        Args:
            data: The decoded JSON object

        Returns:
            Parsed Meta object

        Raises:
            FormatError: If the version is not supported or a field is
                missing or has the wrong type or length
            DataError: If a codebook does not have 256 entries
        """
        # Version first, a newer layout may not have any of the other fields
        version = _int(_field(data, 'version', ''), 'version')
        if version != SOG_VERSION:
            raise FormatError(f"Unsupported SOG version: {version}, supported version: {SOG_VERSION}")

        count = _int(_field(data, 'count', ''), 'count')
        if count < 1:
            raise FormatError(f"Invalid count: {count}, must be positive")

        antialias = data.get('antialias', False)
        if not isinstance(antialias, bool):
            raise FormatError(f"Field 'antialias' must be a boolean, got {antialias!r}")

        sh_n = None
        if data.get('shN') is not None:
            sh_n = ShN.from_dict(data['shN'])

        return cls(
            version=version,
            count=count,
            antialias=antialias,
            asset=Asset.from_dict(_field(data, 'asset', '')),
            means=Means.from_dict(_field(data, 'means', '')),
            scales=Scales.from_dict(_field(data, 'scales', '')),
            quats=Quats.from_dict(_field(data, 'quats', '')),
            sh0=Sh0.from_dict(_field(data, 'sh0', '')),
            sh_n=sh_n,
        )

    @classmethod
    def from_json(cls, text: Union[str, bytes]) -> 'Meta':
        """Parse meta.json contents."""
        try:
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise FormatError(f"Malformed meta.json: {e}") from e
        if not isinstance(data, dict):
            raise FormatError(f"meta.json must contain an object, got {type(data).__name__}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'version': self.version,
            'count': self.count,
            'antialias': self.antialias,
            'asset': self.asset.to_dict(),
            'means': self.means.to_dict(),
            'scales': self.scales.to_dict(),
            'quats': self.quats.to_dict(),
            'sh0': self.sh0.to_dict(),
        }
        if self.sh_n is not None:
            result['shN'] = self.sh_n.to_dict()
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @property
    def files(self) -> List[str]:
        """Names of all raster entries referenced by the manifest."""
        names = self.means.files + self.scales.files + self.quats.files + self.sh0.files
        if self.sh_n is not None:
            names = names + self.sh_n.files
        return names

    def __str__(self) -> str:
        """String representation of the manifest."""
        bands = self.sh_n.bands if self.sh_n is not None else 0
        return (f"Meta(version={self.version}, count={self.count}, "
                f"bands={bands}, antialias={self.antialias})")
