"""Texture dimensions from TEXTURE.nnn files.

Only the size of a texture is read, which is all the mesh decoder needs to
normalize UVs. Image data is not decoded.

TEXTURE.nnn layout (little-endian):
    int16   record_count
    char[24] name
    Record headers from offset 26, 20 bytes each:
        int16   unknown
        int32   record_offset
        ...
    At record_offset:
        int16   x_offset
        int16   y_offset
        int16   width
        int16   height
"""
import logging
from pathlib import Path
from typing import Dict, Tuple, Union

from .errors import Arena2Error, RecordIndexError
from .file_proxy import FileProxy, FileUsage

logger = logging.getLogger(__name__)

RECORD_HEADER_START = 26
RECORD_HEADER_SIZE = 20


def texture_file_name(archive: int) -> str:
    """TEXTURE file name for a texture archive number, e.g. 'TEXTURE.210'."""
    return f"TEXTURE.{archive:03d}"


def quick_size(path: Union[str, Path], record: int) -> Tuple[int, int]:
    """Read (width, height) of one record without decoding the image.

    Raises:
        FileNotFoundError: If the file does not exist
        RecordIndexError: If record is out of range
    """
    with FileProxy.open(path, FileUsage.USE_DISK) as proxy:
        reader = proxy.get_reader()
        count = reader.read_int16()
        if not 0 <= record < count:
            raise RecordIndexError(f"{proxy.file_name} has {count} records, requested {record}")

        reader.seek(RECORD_HEADER_START + RECORD_HEADER_SIZE * record + 2)
        offset = reader.read_int32()
        reader.seek(offset + 4)
        width = reader.read_int16()
        height = reader.read_int16()
    return width, height


class TextureSizeCache:
    """Texture sizes for one ARENA2 folder, keyed by (archive, record).

    Pass it to the mesh decoder to normalize UVs. Sizes can also be set
    directly, which is how callers without the texture files supply them.
    """

    def __init__(self, arena2_path: Union[str, Path, None] = None):
        self.arena2_path = Path(arena2_path) if arena2_path is not None else None
        self._sizes: Dict[Tuple[int, int], Tuple[int, int]] = {}

    def __contains__(self, key: Tuple[int, int]) -> bool:
        return key in self._sizes

    def __setitem__(self, key: Tuple[int, int], size: Tuple[int, int]):
        self._sizes[key] = size

    def get(self, key: Tuple[int, int], default=None):
        """Size for (archive, record), reading it from disk on first use."""
        if key not in self._sizes:
            if self.arena2_path is None:
                return default
            archive, record = key
            path = self.arena2_path / texture_file_name(archive)
            try:
                self._sizes[key] = quick_size(path, record)
            except (OSError, Arena2Error) as e:
                logger.warning("No size for texture %d/%d: %s", archive, record, e)
                return default
        return self._sizes[key]

    def __getitem__(self, key: Tuple[int, int]) -> Tuple[int, int]:
        size = self.get(key)
        if size is None:
            raise KeyError(key)
        return size
