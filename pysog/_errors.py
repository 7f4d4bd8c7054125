"""
Exception types raised while encoding and decoding SOG containers.

Format and data problems derive from ValueError, so callers that only
care about "this input is bad" can keep catching ValueError. Archive and
image codec failures derive from OSError and always carry the name of the
entry that failed.
"""


class SogError(Exception):
    """Base class for all SOG errors."""


class FormatError(SogError, ValueError):
    """The manifest is missing, malformed or declares an unsupported version."""


class DataError(SogError, ValueError):
    """Manifest and raster contents are inconsistent with each other."""


class ArchiveError(SogError, OSError):
    """An archive entry could not be read, written or decoded."""
