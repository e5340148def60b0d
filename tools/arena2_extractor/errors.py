"""Error types for ARENA2 readers.

I/O failures (missing file, permissions) surface as the builtin
``FileNotFoundError`` / ``OSError``. Everything raised by the readers
themselves derives from ``Arena2Error`` so callers can tell a bad file
apart from a bad request.
"""


class Arena2Error(Exception):
    """Base class for all ARENA2 reader errors."""


class TruncatedReadError(Arena2Error, EOFError):
    """A read or seek went past the end of the data."""


# Format errors also subclass ValueError.

class FormatError(Arena2Error, ValueError):
    """Source data does not match the expected layout."""


class RecordNotFoundError(FormatError):
    """No record matches the requested name or id."""


class PakFormatError(FormatError):
    """Malformed run-length raster data."""


class MeshFormatError(FormatError):
    """Malformed ARCH3D mesh record."""


class DegenerateFaceError(MeshFormatError):
    """UV reconstruction failed because the face has no usable 2D basis."""

    def __init__(self, message: str, plane_index: int = -1):
        super().__init__(message)
        self.plane_index = plane_index


class MalformedBitfieldError(FormatError):
    """Dungeon block descriptor decodes to an unknown block type."""


# Policy violations are raised before any I/O is attempted.

class PolicyError(Arena2Error):
    """Request is invalid for the current source or archive."""


class RecordIndexError(PolicyError, IndexError):
    """Record index is outside the archive."""


class ReadOnlyError(PolicyError, PermissionError):
    """Write attempted on a source opened read-only."""


class UsageError(PolicyError, ValueError):
    """Unsupported file usage mode."""
