"""PAK raster codec.

CLIMATE.PAK and POLITIC.PAK hold one 1001x500 indexed raster each, one
byte per map pixel, run-length encoded per scanline.

PAK Format (little-endian):
- Row offset table: 500 x uint32, absolute offset of each row's first run.
  The table is 2000 bytes, so the first row starts at 2000.
- Runs, 3 bytes each:
    uint16  count   Number of pixels
    uint8   value   Pixel value

Runs never cross a row boundary. Each row ends with a run that completes
exactly 1001 pixels.

Usage:
    python -m arena2_extractor.pak_file <CLIMATE.PAK> -o climate.png
    python -m arena2_extractor.pak_file <POLITIC.PAK> --value 500 250
    python -m arena2_extractor.pak_file <CLIMATE.PAK> --write CLIMATE.PAK
"""
import argparse
import logging
import struct
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from .errors import Arena2Error, PakFormatError
from .file_proxy import FileProxy, FileUsage

logger = logging.getLogger(__name__)

PAK_WIDTH = 1001
PAK_HEIGHT = 500
PAK_RUN_SIZE = 3
PAK_OFFSET_BASE = PAK_HEIGHT * 4  # Size of the row offset table


@dataclass
class PakRun:
    """One run of identical pixels."""
    count: int  # 2 bytes
    value: int  # 1 byte


@dataclass
class PakRaster:
    """Decoded PAK raster, row-major, PAK_WIDTH x PAK_HEIGHT bytes."""
    data: bytes

    width = PAK_WIDTH
    height = PAK_HEIGHT

    def __post_init__(self):
        if len(self.data) != PAK_WIDTH * PAK_HEIGHT:
            raise PakFormatError(
                f"PAK raster must be {PAK_WIDTH}x{PAK_HEIGHT} bytes, got {len(self.data)}"
            )

    def get_value(self, x: int, y: int) -> int:
        """Pixel value at (x, y), or -1 outside the raster."""
        if not (0 <= x < PAK_WIDTH and 0 <= y < PAK_HEIGHT):
            return -1
        return self.data[y * PAK_WIDTH + x]

    def row(self, y: int) -> bytes:
        return self.data[y * PAK_WIDTH:(y + 1) * PAK_WIDTH]


def encode_row(row: bytes) -> List[PakRun]:
    """Split one scanline into runs."""
    runs = []
    current = row[0]
    count = 0
    for value in row:
        if value != current:
            runs.append(PakRun(count, current))
            current = value
            count = 0
        count += 1
    runs.append(PakRun(count, current))
    return runs


def encode_pak(raster: Union[PakRaster, bytes]) -> bytes:
    """Encode a raster to PAK bytes.

    Args:
        raster: PakRaster or raw PAK_WIDTH x PAK_HEIGHT bytes

    Returns:
        Row offset table followed by runs
    """
    if not isinstance(raster, PakRaster):
        raster = PakRaster(bytes(raster))

    offsets = []
    body = bytearray()
    offset = PAK_OFFSET_BASE
    for y in range(PAK_HEIGHT):
        offsets.append(offset)
        for run in encode_row(raster.row(y)):
            body += struct.pack("<HB", run.count, run.value)
            offset += PAK_RUN_SIZE

    return struct.pack(f"<{PAK_HEIGHT}I", *offsets) + bytes(body)


def decode_pak(data: bytes) -> PakRaster:
    """Decode PAK bytes into a raster.

    Raises:
        PakFormatError: If the offset table or runs are malformed
    """
    if len(data) < PAK_OFFSET_BASE:
        raise PakFormatError(f"PAK data too small for row table: {len(data)} bytes")

    offsets = struct.unpack_from(f"<{PAK_HEIGHT}I", data, 0)
    pixels = bytearray(PAK_WIDTH * PAK_HEIGHT)
    for y, offset in enumerate(offsets):
        x = 0
        pos = offset
        while x < PAK_WIDTH:
            if pos + PAK_RUN_SIZE > len(data):
                raise PakFormatError(f"PAK row {y} truncated at offset {pos}")
            count, value = struct.unpack_from("<HB", data, pos)
            pos += PAK_RUN_SIZE
            if count == 0 or x + count > PAK_WIDTH:
                raise PakFormatError(f"PAK row {y} has bad run of {count} at column {x}")
            start = y * PAK_WIDTH + x
            pixels[start:start + count] = bytes([value]) * count
            x += count

    return PakRaster(bytes(pixels))


def write_pak(raster: Union[PakRaster, bytes], path: Union[str, Path]) -> Path:
    """Encode a raster and write it as a PAK file.

    Raises:
        PakFormatError: If the raster is not PAK_WIDTH x PAK_HEIGHT bytes
    """
    data = encode_pak(raster)
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    logger.debug("Wrote %s: %d bytes", output, len(data))
    return output


class PakFile:
    """Reader for CLIMATE.PAK and POLITIC.PAK."""

    VALID_NAMES = ("CLIMATE.PAK", "POLITIC.PAK")

    def __init__(self, path: Union[str, Path, None] = None):
        self.file_path = ""
        self.raster = None
        if path is not None:
            self.load(path)

    def load(self, path: Union[str, Path]):
        """Load and decode a PAK file.

        Raises:
            FileNotFoundError: If the file does not exist
            PakFormatError: If the file is malformed
        """
        with FileProxy.open(path, FileUsage.USE_MEMORY) as proxy:
            if proxy.file_name.upper() not in self.VALID_NAMES:
                logger.warning("Unexpected PAK file name: %s", proxy.file_name)
            self.raster = decode_pak(proxy.read_all())
            self.file_path = proxy.file_path

    @property
    def width(self) -> int:
        return PAK_WIDTH

    @property
    def height(self) -> int:
        return PAK_HEIGHT

    def get_value(self, x: int, y: int) -> int:
        """Pixel value at (x, y), or -1 outside the raster or if nothing is loaded."""
        if self.raster is None:
            return -1
        return self.raster.get_value(x, y)

    def save(self, path: Union[str, Path]) -> bool:
        """Write the loaded raster back out as a PAK file."""
        if self.raster is None:
            return False
        write_pak(self.raster, path)
        return True

    def to_png(self, output_path: Union[str, Path]) -> bool:
        """Export the raster as an 8-bit grayscale PNG.

        Args:
            output_path: Path for output PNG file

        Returns:
            True if successful
        """
        from PIL import Image

        if self.raster is None:
            return False

        img = Image.frombytes("L", (PAK_WIDTH, PAK_HEIGHT), self.raster.data)
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        img.save(output, "PNG")
        return True


def main():
    parser = argparse.ArgumentParser(
        description="Decode Daggerfall PAK rasters"
    )
    parser.add_argument("input", help="Path to CLIMATE.PAK or POLITIC.PAK")
    parser.add_argument("--output", "-o", help="Write raster as PNG")
    parser.add_argument("--write", "-w", help="Re-encode the raster to a PAK file")
    parser.add_argument("--value", nargs=2, type=int, metavar=("X", "Y"),
                        help="Print the value at X Y")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Verbose output")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        pak = PakFile(args.input)
    except (OSError, Arena2Error) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"{pak.file_path}: {pak.width}x{pak.height}")
    if args.value:
        x, y = args.value
        print(f"Value at ({x}, {y}): {pak.get_value(x, y)}")
    if args.output:
        pak.to_png(args.output)
        print(f"Saved: {args.output}")
    if args.write:
        pak.save(args.write)
        print(f"Saved: {args.write}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
