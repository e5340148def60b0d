"""Dungeon layouts from MAPS.BSA.

MAPS.BSA holds four records per region: MAPPITEM.nnn, MAPDITEM.nnn,
MAPTABLE.nnn and MAPNAMES.nnn. Dungeons live in MAPDITEM.

MAPDITEM Format (little-endian):
- uint32 dungeon_count
- dungeon_count offset entries (8 bytes):
    uint32  offset               Relative to the end of this table
    uint16  is_dungeon
    uint16  exterior_location_id
- Per dungeon, at 4 + dungeon_count * 8 + offset:
    Location record element:
        uint32 door_count, door_count x 6-byte doors
        71-byte header (x, y, location ids, flags)
        char[32] location name, 9 unknown bytes
    Dungeon header (17 bytes), uint16 block_count at +10
    block_count block descriptors (4 bytes):
        int8    x
        int8    z
        uint16  bitfield

Block descriptor bitfield:
    bits 0-9    block number
    bit  10     starting block
    bits 11-15  block index into RDB_BLOCK_LETTERS

Block file name: letter + 7-digit block number + ".RDB", e.g. "N0000005.RDB".

Usage:
    python -m arena2_extractor.maps_file <MAPS.BSA> 17
    python -m arena2_extractor.maps_file <MAPS.BSA> 17 1234
"""
import argparse
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .bsa_file import BsaFile
from .errors import Arena2Error, MalformedBitfieldError, RecordIndexError, RecordNotFoundError
from .file_proxy import BinaryReader, FileProxy, FileUsage

logger = logging.getLogger(__name__)

RDB_BLOCK_LETTERS = ("N", "W", "L", "S", "B", "M")

BLOCK_NUMBER_MASK = 0x3FF
STARTING_BLOCK_BIT = 0x400
BLOCK_INDEX_SHIFT = 11

RECORDS_PER_REGION = 4
MAPDITEM_OFFSET = 1  # MAPPITEM, MAPDITEM, MAPTABLE, MAPNAMES


class RdbType(Enum):
    """Dungeon block type, from the block name prefix."""
    UNKNOWN = "unknown"
    START = "start"
    BORDER = "border"
    WET = "wet"
    QUEST = "quest"
    MAUSOLEUM = "mausoleum"
    NORMAL = "normal"


_RDB_TYPE_BY_LETTER = {
    "B": RdbType.BORDER,
    "W": RdbType.WET,
    "S": RdbType.QUEST,
    "M": RdbType.MAUSOLEUM,
    "N": RdbType.NORMAL,
}


def decode_block_bitfield(bitfield: int) -> Tuple[int, bool, int]:
    """Split a descriptor bitfield into (block_number, is_starting_block, block_index)."""
    bitfield &= 0xFFFF
    return (
        bitfield & BLOCK_NUMBER_MASK,
        bool(bitfield & STARTING_BLOCK_BIT),
        bitfield >> BLOCK_INDEX_SHIFT,
    )


def encode_block_bitfield(block_number: int, is_starting_block: bool, block_index: int) -> int:
    """Pack fields back into a descriptor bitfield."""
    return (
        (block_number & BLOCK_NUMBER_MASK)
        | (STARTING_BLOCK_BIT if is_starting_block else 0)
        | ((block_index & 0x1F) << BLOCK_INDEX_SHIFT)
    )


@dataclass
class DungeonBlock:
    """One dungeon block descriptor."""
    x: int
    z: int
    bitfield: int
    block_number: int
    is_starting_block: bool
    block_index: int

    @classmethod
    def from_bitfield(cls, x: int, z: int, bitfield: int, force_start: bool = False) -> "DungeonBlock":
        """Decode a descriptor.

        Args:
            x: Relative grid x
            z: Relative grid z
            bitfield: Packed 16-bit field
            force_start: Record-level starting flag, overrides the bit
        """
        number, start, index = decode_block_bitfield(bitfield)
        return cls(x=x, z=z, bitfield=bitfield & 0xFFFF, block_number=number,
                   is_starting_block=start or force_start, block_index=index)

    @property
    def block_name(self) -> str:
        """RDB file name for this block.

        Raises:
            MalformedBitfieldError: If block_index has no block letter
        """
        if self.block_index >= len(RDB_BLOCK_LETTERS):
            raise MalformedBitfieldError(
                f"Block index {self.block_index} in bitfield {self.bitfield:#06x} has no block letter"
            )
        return f"{RDB_BLOCK_LETTERS[self.block_index]}{self.block_number:07d}.RDB"

    @property
    def rdb_type(self) -> RdbType:
        if self.is_starting_block:
            return RdbType.START
        if self.block_index >= len(RDB_BLOCK_LETTERS):
            return RdbType.UNKNOWN
        return _RDB_TYPE_BY_LETTER.get(RDB_BLOCK_LETTERS[self.block_index], RdbType.UNKNOWN)


@dataclass
class DungeonLayout:
    """Dense grid of dungeon blocks.

    grid[row][col] holds the block at x = min_x + col, z = min_z + row.
    """
    blocks: List[DungeonBlock] = field(default_factory=list)
    min_x: int = 0
    min_z: int = 0
    width: int = 0
    height: int = 0
    grid: List[List[Optional[DungeonBlock]]] = field(default_factory=list)

    def cell(self, x: int, z: int) -> Optional[DungeonBlock]:
        """Block at relative (x, z), None if empty or outside the layout."""
        col = x - self.min_x
        row = z - self.min_z
        if not (0 <= col < self.width and 0 <= row < self.height):
            return None
        return self.grid[row][col]

    def to_bitmap(self) -> List[List[bool]]:
        """Occupancy bitmap, same orientation as grid."""
        return [[block is not None for block in row] for row in self.grid]

    @property
    def starting_block(self) -> Optional[DungeonBlock]:
        return next((b for b in self.blocks if b.is_starting_block), None)

    def render(self) -> str:
        """ASCII view, highest z first. '#' block, 'S' start, '.' empty."""
        lines = []
        for row in reversed(self.grid):
            chars = []
            for block in row:
                if block is None:
                    chars.append(".")
                elif block.is_starting_block:
                    chars.append("S")
                else:
                    chars.append("#")
            lines.append("".join(chars))
        return "\n".join(lines)


def build_dungeon_layout(blocks: List[DungeonBlock]) -> DungeonLayout:
    """Place blocks on a grid with the lowest x and z at the origin."""
    if not blocks:
        return DungeonLayout()

    min_x = min(b.x for b in blocks)
    min_z = min(b.z for b in blocks)
    width = max(b.x for b in blocks) - min_x + 1
    height = max(b.z for b in blocks) - min_z + 1

    grid: List[List[Optional[DungeonBlock]]] = [[None] * width for _ in range(height)]
    for block in blocks:
        row = block.z - min_z
        col = block.x - min_x
        if grid[row][col] is not None:
            logger.warning("Two dungeon blocks at (%d, %d), keeping the last", block.x, block.z)
        grid[row][col] = block

    return DungeonLayout(blocks=list(blocks), min_x=min_x, min_z=min_z,
                         width=width, height=height, grid=grid)


@dataclass
class LocationDoor:
    building_data_index: int  # 2 bytes
    null_value: int           # 1 byte
    mask: int                 # 1 byte
    unknown1: int             # 1 byte
    unknown2: int             # 1 byte


@dataclass
class LocationRecordElement:
    """Location record shared by exterior and dungeon records."""
    doors: List[LocationDoor]
    x: int
    y: int
    is_exterior: int
    location_id: int
    is_interior: int
    exterior_location_id: int
    name: str

    @classmethod
    def read(cls, reader: BinaryReader) -> "LocationRecordElement":
        door_count = reader.read_uint32()
        doors = []
        for _ in range(door_count):
            doors.append(LocationDoor(
                building_data_index=reader.read_uint16(),
                null_value=reader.read_uint8(),
                mask=reader.read_uint8(),
                unknown1=reader.read_uint8(),
                unknown2=reader.read_uint8(),
            ))

        reader.skip(4 + 2 + 1)  # always one, nulls
        x = reader.read_int32()
        reader.skip(4)
        y = reader.read_int32()
        is_exterior = reader.read_uint16()
        reader.skip(2 + 4 + 4 + 2)
        location_id = reader.read_uint16()
        reader.skip(4)
        is_interior = reader.read_uint16()
        exterior_location_id = reader.read_uint32()
        reader.skip(26)
        name = reader.read_cstring_skip(0, 32)
        reader.skip(9)

        return cls(doors=doors, x=x, y=y, is_exterior=is_exterior, location_id=location_id,
                   is_interior=is_interior, exterior_location_id=exterior_location_id, name=name)


@dataclass
class DungeonRecord:
    """Raw dungeon entry from a MAPDITEM record."""
    location: LocationRecordElement
    descriptors: List[Tuple[int, int, int]]  # (x, z, bitfield)

    @property
    def name(self) -> str:
        return self.location.name


def list_dungeon_ids(source: Union[FileProxy, bytes]) -> List[int]:
    """Exterior location ids of every dungeon in a MAPDITEM record."""
    if not isinstance(source, FileProxy):
        source = FileProxy(source, "MAPDITEM")
    if source.length == 0:
        return []
    reader = source.get_reader()
    count = reader.read_uint32()
    ids = []
    for _ in range(count):
        reader.skip(4 + 2)
        ids.append(reader.read_uint16())
    return ids


def read_dungeon_record(source: Union[FileProxy, bytes], location_id: int) -> DungeonRecord:
    """Read the dungeon belonging to ``location_id`` from a MAPDITEM record.

    Args:
        source: MAPDITEM record as FileProxy or bytes
        location_id: Exterior location id to look up

    Raises:
        RecordNotFoundError: If no dungeon matches the location id
        TruncatedReadError: If the record is cut short
    """
    if not isinstance(source, FileProxy):
        source = FileProxy(source, "MAPDITEM")
    if source.length == 0:
        raise RecordNotFoundError(f"No dungeons in {source.file_path or 'record'}")

    reader = source.get_reader()
    count = reader.read_uint32()
    offset = None
    for _ in range(count):
        entry_offset = reader.read_uint32()
        reader.read_uint16()  # is_dungeon
        exterior_location_id = reader.read_uint16()
        if exterior_location_id == location_id:
            offset = entry_offset
            break

    if offset is None:
        raise RecordNotFoundError(f"No dungeon for location id {location_id}")

    reader.seek(4 + count * 8 + offset)
    location = LocationRecordElement.read(reader)

    reader.skip(2 + 4 + 4)
    block_count = reader.read_uint16()
    reader.skip(5)

    descriptors = []
    for _ in range(block_count):
        x = reader.read_int8()
        z = reader.read_int8()
        bitfield = reader.read_uint16()
        descriptors.append((x, z, bitfield))

    return DungeonRecord(location=location, descriptors=descriptors)


def decode_dungeon_layout(record: DungeonRecord, strict: bool = False) -> DungeonLayout:
    """Decode every block descriptor of a dungeon and lay them out.

    Args:
        record: Dungeon read by read_dungeon_record
        strict: Raise on a malformed descriptor instead of skipping it

    Raises:
        MalformedBitfieldError: In strict mode, if a descriptor is malformed
    """
    blocks = []
    for x, z, bitfield in record.descriptors:
        block = DungeonBlock.from_bitfield(x, z, bitfield)
        try:
            block_name = block.block_name
        except MalformedBitfieldError as e:
            if strict:
                raise
            logger.warning("Skipping block (%d, %d) of %s: %s", x, z, record.name, e)
            continue
        logger.debug("Block %s at (%d, %d)", block_name, x, z)
        blocks.append(block)
    return build_dungeon_layout(blocks)


class MapsFile:
    """Reader for dungeon data in MAPS.BSA."""

    def __init__(self, path: Union[str, Path, None] = None,
                 usage: FileUsage = FileUsage.USE_MEMORY, read_only: bool = True):
        self._archive = BsaFile()
        if path is not None:
            self.load(path, usage, read_only)

    def load(self, path: Union[str, Path], usage: FileUsage = FileUsage.USE_MEMORY,
             read_only: bool = True):
        self._archive.load(path, usage, read_only)

    def close(self):
        self._archive.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def region_count(self) -> int:
        return self._archive.count // RECORDS_PER_REGION

    def get_dungeon_items(self, region: int) -> FileProxy:
        """MAPDITEM record of a region.

        Raises:
            RecordIndexError: If region is out of range
        """
        if not 0 <= region < self.region_count:
            raise RecordIndexError(f"Region {region} out of range (0..{self.region_count - 1})")
        return self._archive.get_record_proxy(region * RECORDS_PER_REGION + MAPDITEM_OFFSET)

    def get_dungeon(self, region: int, location_id: int) -> DungeonRecord:
        return read_dungeon_record(self.get_dungeon_items(region), location_id)

    def get_dungeon_layout(self, region: int, location_id: int, strict: bool = False) -> DungeonLayout:
        return decode_dungeon_layout(self.get_dungeon(region, location_id), strict=strict)


def main():
    parser = argparse.ArgumentParser(
        description="Show dungeon block layouts from MAPS.BSA"
    )
    parser.add_argument("input", help="Path to MAPS.BSA")
    parser.add_argument("region", type=int, help="Region index")
    parser.add_argument("location_id", type=int, nargs="?",
                        help="Exterior location id (default: list dungeons)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Verbose output")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        with MapsFile(args.input) as maps:
            if args.location_id is None:
                ids = list_dungeon_ids(maps.get_dungeon_items(args.region))
                print(f"Region {args.region}: {len(ids)} dungeons")
                for location_id in ids:
                    record = maps.get_dungeon(args.region, location_id)
                    print(f"  {location_id}: {record.name} ({len(record.descriptors)} blocks)")
                return 0

            record = maps.get_dungeon(args.region, args.location_id)
            layout = decode_dungeon_layout(record)
            print(f"{record.name}: {len(layout.blocks)} blocks, {layout.width}x{layout.height}")
            for block in layout.blocks:
                print(f"  ({block.x:3d}, {block.z:3d}) {block.block_name} {block.rdb_type.value}")
            print()
            print(layout.render())

    except (OSError, Arena2Error) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
