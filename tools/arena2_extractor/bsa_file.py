"""BSA Archive Reader

Reads and rewrites records in Daggerfall .BSA containers (ARCH3D.BSA,
MAPS.BSA, BLOCKS.BSA, MONSTER.BSA, DAGGER.SND, ...).

BSA Format (little-endian):
- Header (4 bytes):
    int16   record_count
    uint16  directory_type   0x0100 = name records, 0x0200 = number records
- Record data, concatenated in index order starting at offset 4
- Directory at the very end of the file, one entry per record:
    name records   (18 bytes): char[14] name (null padded), int32 size
    number records (8 bytes):  uint32 id, int32 size

Offsets are not stored. Record i starts at 4 + the sizes of records 0..i-1.

Rewriting a record with a different length rebuilds the file: the header
and every directory entry are kept byte for byte, only the rewritten
entry's size changes and the following records move.

Usage:
    python -m arena2_extractor.bsa_file <ARCH3D.BSA> --list
    python -m arena2_extractor.bsa_file <MAPS.BSA> --list "MAPDITEM.*"
    python -m arena2_extractor.bsa_file <MAPS.BSA> --info MAPDITEM.000
    python -m arena2_extractor.bsa_file <MAPS.BSA> --extract "MAPDITEM.*" -o ./output
"""
import argparse
import fnmatch
import logging
import struct
import sys
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .errors import (
    Arena2Error,
    FormatError,
    ReadOnlyError,
    RecordIndexError,
    RecordNotFoundError,
    TruncatedReadError,
)
from .file_proxy import FileProxy, FileUsage

logger = logging.getLogger(__name__)


class DirectoryType(IntEnum):
    """Kind of directory stored at the end of the archive."""
    NAME_RECORD = 0x0100
    NUMBER_RECORD = 0x0200


@dataclass
class BsaRecord:
    """Directory entry for one record."""
    index: int
    name: str
    size: int                        # 4 bytes in directory
    position: int                    # derived, not stored
    record_id: Optional[int] = None  # number records only


class BsaFile:
    """Reader for BSA archives."""

    HEADER_SIZE = 4
    NAME_LENGTH = 14
    NAME_ENTRY_SIZE = 18
    NUMBER_ENTRY_SIZE = 8

    def __init__(self, path: Optional[Union[str, Path]] = None,
                 usage: FileUsage = FileUsage.USE_DISK, read_only: bool = True):
        """Initialize, optionally loading ``path`` straight away.

        Args:
            path: Path to .BSA file
            usage: Keep the file on disk or read it into memory
            read_only: Open without write access (required for rewrite_record)
        """
        self._proxy = FileProxy()
        self.directory_type: Optional[DirectoryType] = None
        self.records: List[BsaRecord] = []
        self._header = b""
        self._directory = b""
        self._name_lookup: Dict[str, int] = {}
        self._id_lookup: Dict[int, int] = {}

        if path is not None:
            self.load(path, usage, read_only)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "", read_only: bool = False) -> "BsaFile":
        """Open an archive held in memory."""
        archive = cls()
        archive._proxy = FileProxy(data, name, read_only=read_only)
        archive._read_directory()
        return archive

    def load(self, path: Union[str, Path], usage: FileUsage = FileUsage.USE_DISK,
             read_only: bool = True):
        """Open archive and read its directory.

        Raises:
            FileNotFoundError: If the archive does not exist
            FormatError: If the header or directory is invalid
        """
        self._proxy.load(path, usage, read_only)
        try:
            self._read_directory()
        except Exception:
            self.close()
            raise

    def close(self):
        """Close the archive."""
        self._proxy.close()
        self.records = []
        self._name_lookup = {}
        self._id_lookup = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def file_path(self) -> str:
        return self._proxy.file_path

    @property
    def read_only(self) -> bool:
        return self._proxy.read_only

    def _entry_size(self) -> int:
        if self.directory_type == DirectoryType.NAME_RECORD:
            return self.NAME_ENTRY_SIZE
        return self.NUMBER_ENTRY_SIZE

    def _read_directory(self):
        """Parse header and footer directory."""
        length = self._proxy.length
        if length < self.HEADER_SIZE:
            raise FormatError(f"File too small for BSA header: {length} bytes")

        reader = self._proxy.get_reader()
        self._header = self._proxy.read_at(0, self.HEADER_SIZE)
        count = reader.read_int16()
        directory_type = reader.read_uint16()

        if count < 0:
            raise FormatError(f"Invalid BSA record count: {count}")
        try:
            self.directory_type = DirectoryType(directory_type)
        except ValueError:
            raise FormatError(f"Unknown BSA directory type: {directory_type:#06x}") from None

        entry_size = self._entry_size()
        directory_start = length - entry_size * count
        if directory_start < self.HEADER_SIZE:
            raise FormatError(f"BSA directory of {count} records does not fit in {length} bytes")
        self._directory = self._proxy.read_at(directory_start, entry_size * count)

        records = []
        position = self.HEADER_SIZE
        for index in range(count):
            reader.seek(directory_start + index * entry_size)
            record_id = None
            if self.directory_type == DirectoryType.NAME_RECORD:
                # Names fill the field without a terminator at 14 characters
                raw_name = reader.read_bytes(self.NAME_LENGTH).split(b"\x00", 1)[0]
                name = raw_name.decode("ascii", errors="replace")
                size = reader.read_int32()
            else:
                record_id = reader.read_uint32()
                size = reader.read_int32()
                name = str(record_id)

            if size < 0 or position + size > directory_start:
                raise FormatError(f"BSA record {index} ({name}) has invalid size {size}")

            records.append(BsaRecord(index=index, name=name, size=size,
                                     position=position, record_id=record_id))
            position += size

        self.records = records
        self._name_lookup = {}
        self._id_lookup = {}
        for record in records:
            self._name_lookup.setdefault(record.name.upper(), record.index)
            if record.record_id is not None:
                self._id_lookup.setdefault(record.record_id, record.index)

        logger.debug("Read %d %s entries from %s", count, self.directory_type.name,
                     self._proxy.file_path or "memory")

    def _check_index(self, index: int):
        if not 0 <= index < len(self.records):
            raise RecordIndexError(f"Record index {index} out of range (0..{len(self.records) - 1})")

    def get_record_index(self, name: str) -> int:
        """Find record index by name (case-insensitive).

        Raises:
            RecordNotFoundError: If no record has that name
        """
        index = self._name_lookup.get(name.upper())
        if index is None:
            raise RecordNotFoundError(f"Record not found: {name}")
        return index

    def get_record_index_by_id(self, record_id: int) -> int:
        """Find record index by numeric id (number-record archives)."""
        index = self._id_lookup.get(record_id)
        if index is None:
            raise RecordNotFoundError(f"Record id not found: {record_id}")
        return index

    def get_record_name(self, index: int) -> str:
        self._check_index(index)
        return self.records[index].name

    def get_record_id(self, index: int) -> Optional[int]:
        """Numeric id of a record, None in name-record archives."""
        self._check_index(index)
        return self.records[index].record_id

    def get_record_length(self, index: int) -> int:
        self._check_index(index)
        return self.records[index].size

    def get_record_bytes(self, index: int) -> bytes:
        """Read one record's content.

        Raises:
            RecordIndexError: If index is out of range
        """
        self._check_index(index)
        record = self.records[index]
        return self._proxy.read_at(record.position, record.size)

    def get_record_proxy(self, index: int) -> FileProxy:
        """Get a record as its own memory-backed FileProxy named after the record."""
        data = self.get_record_bytes(index)
        return FileProxy(data, self.records[index].name)

    def list_records(self, pattern: str = "*") -> List[BsaRecord]:
        """List records whose name matches a glob pattern."""
        pattern_upper = pattern.upper()
        return [r for r in self.records if fnmatch.fnmatch(r.name.upper(), pattern_upper)]

    def rewrite_record(self, index: int, data: bytes):
        """Replace a record's content.

        Same-length data is patched in place. Otherwise the file is rebuilt
        and the directory entry's size updated. Indices, names and ids of
        every record are unchanged afterwards.

        Raises:
            RecordIndexError: If index is out of range
            ReadOnlyError: If the archive was opened read-only
        """
        self._check_index(index)
        if self._proxy.read_only:
            raise ReadOnlyError(f"Archive {self._proxy.file_path or 'memory'} is read-only")

        record = self.records[index]
        if len(data) == record.size:
            self._proxy.write_at(record.position, data)
            return

        payloads = [data if r.index == index else self.get_record_bytes(r.index) for r in self.records]

        entry_size = self._entry_size()
        size_offset = index * entry_size + entry_size - 4
        directory = bytearray(self._directory)
        directory[size_offset:size_offset + 4] = struct.pack("<i", len(data))

        self._proxy.replace_contents(self._header + b"".join(payloads) + bytes(directory))
        self._read_directory()
        logger.debug("Rebuilt archive after resizing record %d (%d -> %d bytes)",
                     index, record.size, len(data))

    def patch_record(self, index: int, position: int, data: bytes):
        """Overwrite bytes inside a record, keeping its length.

        Args:
            index: Record index
            position: Offset within the record
            data: Replacement bytes

        Raises:
            RecordIndexError: If index is out of range
            TruncatedReadError: If the patch does not fit inside the record
            ReadOnlyError: If the archive was opened read-only
        """
        self._check_index(index)
        record = self.records[index]
        if position < 0 or position + len(data) > record.size:
            raise TruncatedReadError(
                f"Patch of {len(data)} bytes at {position} exceeds record {record.name} "
                f"({record.size} bytes)"
            )
        content = bytearray(self.get_record_bytes(index))
        content[position:position + len(data)] = data
        self.rewrite_record(index, bytes(content))

    def extract_to_file(self, index: int, output_path: Union[str, Path]) -> bool:
        """Write a record to disk."""
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(self.get_record_bytes(index))
        return True


def pack_bsa(records: Sequence[Tuple[Union[str, int], bytes]],
             directory_type: DirectoryType = DirectoryType.NAME_RECORD) -> bytes:
    """Build a BSA container.

    Args:
        records: (name, data) pairs, or (id, data) for number records
        directory_type: Directory flavour to write

    Returns:
        Complete archive bytes
    """
    header = struct.pack("<hH", len(records), int(directory_type))
    directory = b""
    for key, data in records:
        if directory_type == DirectoryType.NAME_RECORD:
            name = str(key).encode("ascii")
            if len(name) > BsaFile.NAME_LENGTH:
                raise ValueError(f"Record name too long: {key}")
            directory += name.ljust(BsaFile.NAME_LENGTH, b"\x00")
            directory += struct.pack("<i", len(data))
        else:
            directory += struct.pack("<Ii", int(key), len(data))
    return header + b"".join(data for _, data in records) + directory


def main():
    parser = argparse.ArgumentParser(
        description="List and extract records from Daggerfall BSA archives"
    )
    parser.add_argument("archive", help="Path to .BSA file")
    parser.add_argument("--list", "-l", metavar="PATTERN", nargs="?", const="*",
                        help="List records matching pattern (default: *)")
    parser.add_argument("--extract", "-e", metavar="PATTERN",
                        help="Extract records matching pattern")
    parser.add_argument("--output", "-o", default="./output",
                        help="Output directory (default: ./output)")
    parser.add_argument("--info", "-i", metavar="NAME",
                        help="Show info for a record")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Verbose output")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        with BsaFile(args.archive) as archive:
            if args.list is not None:
                records = archive.list_records(args.list)
                print(f"{archive.directory_type.name} archive, {archive.count} records")
                print(f"Found {len(records)} records matching '{args.list}':")
                for record in records[:100]:
                    print(f"  [{record.index}] {record.name} ({record.size:,} bytes)")
                if len(records) > 100:
                    print(f"  ... and {len(records) - 100} more")

            elif args.info:
                record = archive.records[archive.get_record_index(args.info)]
                print(f"Record: {record.name}")
                print(f"  Index: {record.index}")
                print(f"  Offset: {record.position:,}")
                print(f"  Size: {record.size:,}")
                if record.record_id is not None:
                    print(f"  Id: {record.record_id}")

            elif args.extract:
                records = archive.list_records(args.extract)
                print(f"Extracting {len(records)} records...")
                for record in records:
                    archive.extract_to_file(record.index, Path(args.output) / record.name)
                print(f"Extracted {len(records)} records to {args.output}")

            else:
                parser.print_help()

    except (OSError, Arena2Error) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
