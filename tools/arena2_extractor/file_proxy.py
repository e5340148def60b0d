"""Binary file access for ARENA2 data files.

A FileProxy wraps one opened resource, either kept on disk behind a file
handle or loaded whole into a memory buffer. All ARENA2 readers go through
it so they never care which one they were handed.

Readers and writers returned by get_reader()/get_writer() each keep their
own cursor, so several can walk the same source at once (the mesh reader
follows point, normal and plane lists in parallel).

All multi-byte values are little-endian. The be_read_* helpers are only for
the few fields stored big-endian.

String policies:
    read_cstring(0)           Null-terminated. Consumes the terminator.
    read_cstring(n)           Exactly n bytes, every null byte dropped.
                              Returns "" when fewer than n bytes remain.
    read_cstring_skip(n, s)   read_cstring(n), then cursor = start + s.
                              With n == 0 the result is cut to s chars.

Usage:
    with FileProxy.open("ARENA2/DAGGER.SND", FileUsage.USE_MEMORY) as proxy:
        reader = proxy.get_reader()
        count = reader.read_int16()
"""
import logging
import os
import struct
from enum import IntEnum
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .errors import ReadOnlyError, TruncatedReadError, UsageError

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "utf-8"

# Bytes fetched per step when scanning a disk file for a terminator
SCAN_CHUNK_SIZE = 64


class FileUsage(IntEnum):
    """How a file is held once opened."""
    UNDEFINED = 0
    USE_MEMORY = 1   # Whole file read into a bytearray
    USE_DISK = 2     # File handle kept open, read on demand


class FileProxy:
    """Disk or memory backed binary source."""

    def __init__(self, data: Optional[bytes] = None, name: str = "", read_only: bool = False):
        """Create an empty proxy, or a memory-backed one from ``data``.

        Args:
            data: Optional contents. When given, no disk I/O takes place.
            name: Logical name reported as the file path.
            read_only: Reject writers on the memory buffer.
        """
        self._path: str = ""
        self._usage = FileUsage.UNDEFINED
        self._read_only = True
        self._buffer: Optional[bytearray] = None
        self._stream: Optional[BinaryIO] = None

        if data is not None:
            self._buffer = bytearray(data)
            self._path = name
            self._usage = FileUsage.USE_MEMORY
            self._read_only = read_only

    @classmethod
    def open(cls, path: Union[str, Path], usage: FileUsage = FileUsage.USE_DISK,
             read_only: bool = True) -> "FileProxy":
        """Open a file and return the proxy.

        Args:
            path: File to open
            usage: USE_DISK keeps a handle, USE_MEMORY reads everything
            read_only: Open without write access

        Raises:
            FileNotFoundError: If the file does not exist
            UsageError: If usage is UNDEFINED
        """
        proxy = cls()
        proxy.load(path, usage, read_only)
        return proxy

    def load(self, path: Union[str, Path], usage: FileUsage = FileUsage.USE_DISK,
             read_only: bool = True) -> None:
        """Open ``path``, closing whatever this proxy held before."""
        if usage not in (FileUsage.USE_MEMORY, FileUsage.USE_DISK):
            raise UsageError(f"Unsupported file usage: {usage!r}")

        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        self.close()
        if usage == FileUsage.USE_MEMORY:
            self._buffer = bytearray(path.read_bytes())
        else:
            self._stream = open(path, "rb" if read_only else "r+b")

        self._path = str(path)
        self._usage = usage
        self._read_only = read_only
        logger.debug("Opened %s (%s, read_only=%s)", path, usage.name, read_only)

    def close(self):
        """Release the file handle or drop the buffer. Safe to call twice."""
        if self._stream is not None:
            self._stream.close()
        self._stream = None
        self._buffer = None
        self._path = ""
        self._usage = FileUsage.UNDEFINED

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self):
        return f"FileProxy({self._path!r}, {self._usage.name}, length={self.length})"

    @property
    def usage(self) -> FileUsage:
        return self._usage

    @property
    def read_only(self) -> bool:
        return self._read_only

    @property
    def file_path(self) -> str:
        return self._path

    @property
    def file_name(self) -> str:
        return os.path.basename(self._path)

    @property
    def directory(self) -> str:
        return os.path.dirname(self._path)

    @property
    def is_open(self) -> bool:
        return self._buffer is not None or self._stream is not None

    @property
    def length(self) -> int:
        """Total size in bytes, 0 when nothing is open."""
        if self._buffer is not None:
            return len(self._buffer)
        if self._stream is not None:
            return os.fstat(self._stream.fileno()).st_size
        return 0

    def get_reader(self, position: int = 0) -> "BinaryReader":
        """Get a reader positioned at ``position``.

        Raises:
            TruncatedReadError: If position is past the end of the data
        """
        if position > self.length:
            raise TruncatedReadError(
                f"Reader position {position} beyond end of {self._path} ({self.length} bytes)"
            )
        return BinaryReader(self, position)

    def get_writer(self, position: int = 0) -> "BinaryWriter":
        """Get a writer positioned at ``position``.

        Raises:
            ReadOnlyError: If the source was opened read-only
        """
        if self._read_only:
            raise ReadOnlyError(f"{self._path or 'source'} is read-only")
        if position > self.length:
            raise TruncatedReadError(
                f"Writer position {position} beyond end of {self._path} ({self.length} bytes)"
            )
        return BinaryWriter(self, position)

    def read_all(self) -> bytes:
        """Return the full contents."""
        return self.read_at(0, self.length)

    def read_cstring(self, position: int, length: int = 0) -> str:
        """Read a string at ``position`` using the read_cstring policy."""
        return self.get_reader(position).read_cstring(length)

    def replace_contents(self, data: bytes):
        """Overwrite the whole source with ``data``, truncating the rest.

        Raises:
            ReadOnlyError: If the source was opened read-only
        """
        if self._read_only:
            raise ReadOnlyError(f"{self._path or 'source'} is read-only")
        if self._buffer is not None:
            self._buffer = bytearray(data)
        elif self._stream is not None:
            self._stream.seek(0)
            self._stream.write(data)
            self._stream.truncate()
            self._stream.flush()

    def read_at(self, position: int, size: int) -> bytes:
        """Read exactly ``size`` bytes at ``position``.

        Raises:
            TruncatedReadError: If fewer than ``size`` bytes are available
        """
        if position < 0 or size < 0 or position + size > self.length:
            raise TruncatedReadError(
                f"Read of {size} bytes at {position} exceeds {self._path or 'source'} "
                f"({self.length} bytes)"
            )
        if self._buffer is not None:
            return bytes(self._buffer[position:position + size])
        self._stream.seek(position)
        data = self._stream.read(size)
        if len(data) < size:
            raise TruncatedReadError(f"Short read at {position} in {self._path}")
        return data

    def write_at(self, position: int, data: bytes):
        """Write ``data`` at ``position``.

        Memory buffers have a fixed size; disk files grow as needed.
        """
        if self._read_only:
            raise ReadOnlyError(f"{self._path or 'source'} is read-only")
        if self._buffer is not None:
            if position + len(data) > len(self._buffer):
                raise TruncatedReadError(
                    f"Write of {len(data)} bytes at {position} exceeds buffer ({len(self._buffer)} bytes)"
                )
            self._buffer[position:position + len(data)] = data
        elif self._stream is not None:
            self._stream.seek(position)
            self._stream.write(data)
        else:
            raise TruncatedReadError("Write to a closed source")

    def find_byte(self, position: int, value: int = 0) -> int:
        """Offset of the first ``value`` byte at or after ``position``, -1 if none."""
        if self._buffer is not None:
            return self._buffer.find(bytes([value]), position)

        length = self.length
        while position < length:
            chunk = self.read_at(position, min(SCAN_CHUNK_SIZE, length - position))
            found = chunk.find(bytes([value]))
            if found >= 0:
                return position + found
            position += len(chunk)
        return -1


class BinaryReader:
    """Little-endian reader over a FileProxy with its own cursor."""

    def __init__(self, proxy: FileProxy, position: int = 0, encoding: str = DEFAULT_ENCODING):
        self._proxy = proxy
        self.position = position
        self.encoding = encoding

    @property
    def length(self) -> int:
        return self._proxy.length

    def seek(self, position: int):
        self.position = position

    def skip(self, count: int):
        """Advance the cursor, failing if that leaves the data."""
        if self.position + count > self.length:
            raise TruncatedReadError(
                f"Skip of {count} bytes at {self.position} exceeds {self.length} bytes"
            )
        self.position += count

    def read_bytes(self, count: int) -> bytes:
        data = self._proxy.read_at(self.position, count)
        self.position += count
        return data

    def _unpack(self, fmt: str):
        size = struct.calcsize(fmt)
        return struct.unpack(fmt, self.read_bytes(size))[0]

    def read_int8(self) -> int:
        return self._unpack("<b")

    def read_uint8(self) -> int:
        return self._unpack("<B")

    def read_int16(self) -> int:
        return self._unpack("<h")

    def read_uint16(self) -> int:
        return self._unpack("<H")

    def read_int32(self) -> int:
        return self._unpack("<i")

    def read_uint32(self) -> int:
        return self._unpack("<I")

    def read_int64(self) -> int:
        return self._unpack("<q")

    def read_uint64(self) -> int:
        return self._unpack("<Q")

    def be_read_int16(self) -> int:
        return self._unpack(">h")

    def be_read_uint16(self) -> int:
        return self._unpack(">H")

    def be_read_int32(self) -> int:
        return self._unpack(">i")

    def be_read_uint32(self) -> int:
        return self._unpack(">I")

    def read_cstring(self, length: int = 0) -> str:
        """Read a string.

        Args:
            length: 0 for null-terminated, otherwise a fixed byte count
                    from which null bytes are dropped

        Returns:
            Decoded string, or "" if the data runs out or cannot be decoded
        """
        if length > 0:
            if self.position + length > self.length:
                return ""
            raw = self.read_bytes(length).replace(b"\x00", b"")
        else:
            end = self._proxy.find_byte(self.position, 0)
            if end < 0:
                logger.warning(
                    "Unterminated string at offset %d in %s",
                    self.position, self._proxy.file_path or "memory",
                )
                return ""
            raw = self.read_bytes(end - self.position)
            self.position += 1

        try:
            return raw.decode(self.encoding)
        except UnicodeDecodeError as e:
            logger.warning("Could not decode string in %s: %s", self._proxy.file_path or "memory", e)
            return ""

    def read_cstring_skip(self, length: int, skip: int) -> str:
        """Read a string then move to ``skip`` bytes past where it started."""
        start = self.position
        text = self.read_cstring(length)
        self.position = start + skip
        if length == 0 and len(text) >= skip:
            text = text[:skip]
        return text


class BinaryWriter:
    """Little-endian writer over a FileProxy with its own cursor."""

    def __init__(self, proxy: FileProxy, position: int = 0, encoding: str = DEFAULT_ENCODING):
        self._proxy = proxy
        self.position = position
        self.encoding = encoding

    def seek(self, position: int):
        self.position = position

    def write_bytes(self, data: bytes):
        self._proxy.write_at(self.position, data)
        self.position += len(data)

    def _pack(self, fmt: str, value: int):
        self.write_bytes(struct.pack(fmt, value))

    def write_int8(self, value: int):
        self._pack("<b", value)

    def write_uint8(self, value: int):
        self._pack("<B", value)

    def write_int16(self, value: int):
        self._pack("<h", value)

    def write_uint16(self, value: int):
        self._pack("<H", value)

    def write_int32(self, value: int):
        self._pack("<i", value)

    def write_uint32(self, value: int):
        self._pack("<I", value)

    def write_cstring(self, text: str, length: int = 0):
        """Write ``text`` null-terminated, or null-padded to ``length`` bytes."""
        raw = text.encode(self.encoding)
        if length > 0:
            raw = raw[:length].ljust(length, b"\x00")
        else:
            raw += b"\x00"
        self.write_bytes(raw)
