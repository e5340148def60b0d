"""Tests for PAK raster codec."""
import logging
import os
import random
import struct
import subprocess
import sys
import tempfile

import pytest

TOOLS_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, TOOLS_DIR)

from arena2_extractor.errors import PakFormatError
from arena2_extractor.pak_file import (
    PAK_HEIGHT,
    PAK_OFFSET_BASE,
    PAK_WIDTH,
    PakFile,
    PakRaster,
    PakRun,
    decode_pak,
    encode_pak,
    encode_row,
    write_pak,
)


def create_random_raster(seed=1):
    """Raster built from short runs of random values."""
    rng = random.Random(seed)
    data = bytearray()
    for _ in range(PAK_HEIGHT):
        row = bytearray()
        while len(row) < PAK_WIDTH:
            count = min(rng.randint(1, 40), PAK_WIDTH - len(row))
            row += bytes([rng.randint(0, 255)]) * count
        data += row
    return bytes(data)


def test_round_trip_random_raster():
    """Should decode exactly the raster that was encoded."""
    data = create_random_raster()

    assert decode_pak(encode_pak(data)).data == data


def test_zero_raster_layout():
    """Should write one run per row for a uniform raster."""
    encoded = encode_pak(bytes(PAK_WIDTH * PAK_HEIGHT))

    assert len(encoded) == PAK_OFFSET_BASE + PAK_HEIGHT * 3
    offsets = struct.unpack_from(f"<{PAK_HEIGHT}I", encoded, 0)
    assert offsets[0] == 2000
    assert offsets[1] == 2003
    assert offsets[-1] == 2000 + 3 * (PAK_HEIGHT - 1)
    assert encoded[2000:2003] == struct.pack("<HB", PAK_WIDTH, 0)


def test_encode_row_splits_at_value_change():
    """Should end a row with a run that completes the width."""
    row = bytes([7]) * 1000 + bytes([9])

    assert encode_row(row) == [PakRun(1000, 7), PakRun(1, 9)]


def test_runs_stay_inside_rows():
    """Should not merge equal values across a row boundary."""
    encoded = encode_pak(bytes([5]) * (PAK_WIDTH * PAK_HEIGHT))
    raster = decode_pak(encoded)

    assert len(encoded) == PAK_OFFSET_BASE + PAK_HEIGHT * 3
    assert raster.get_value(PAK_WIDTH - 1, 0) == 5
    assert raster.get_value(0, 1) == 5


def test_decode_short_table():
    """Should reject data smaller than the row table."""
    with pytest.raises(PakFormatError):
        decode_pak(b"\x00" * 100)


def test_decode_truncated_row():
    """Should reject a row that runs past the data."""
    encoded = encode_pak(bytes(PAK_WIDTH * PAK_HEIGHT))

    with pytest.raises(PakFormatError, match="truncated"):
        decode_pak(encoded[:-2])


def test_decode_overflowing_run():
    """Should reject a run that goes past the row width."""
    encoded = bytearray(encode_pak(bytes(PAK_WIDTH * PAK_HEIGHT)))
    encoded[2000:2003] = struct.pack("<HB", PAK_WIDTH + 1, 0)

    with pytest.raises(PakFormatError):
        decode_pak(bytes(encoded))


def test_decode_zero_run():
    """Should reject a run of zero pixels."""
    encoded = bytearray(encode_pak(bytes(PAK_WIDTH * PAK_HEIGHT)))
    encoded[2000:2003] = struct.pack("<HB", 0, 0)

    with pytest.raises(PakFormatError):
        decode_pak(bytes(encoded))


def test_raster_size_checked():
    """Should refuse a raster of the wrong size."""
    with pytest.raises(PakFormatError):
        PakRaster(b"\x00" * 10)


def test_get_value_out_of_range():
    """Should return -1 outside the raster."""
    raster = PakRaster(bytes(PAK_WIDTH * PAK_HEIGHT))

    assert raster.get_value(0, 0) == 0
    assert raster.get_value(-1, 0) == -1
    assert raster.get_value(PAK_WIDTH, 0) == -1
    assert raster.get_value(0, PAK_HEIGHT) == -1


def test_pak_file_load_and_png():
    """Should load a PAK from disk and export it as grayscale PNG."""
    from PIL import Image

    data = create_random_raster(seed=7)
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "CLIMATE.PAK")
        with open(path, "wb") as f:
            f.write(encode_pak(data))

        pak = PakFile(path)
        assert pak.width == PAK_WIDTH
        assert pak.height == PAK_HEIGHT
        assert pak.get_value(3, 2) == data[2 * PAK_WIDTH + 3]

        png_path = os.path.join(tmpdir, "climate.png")
        assert pak.to_png(png_path)

        with Image.open(png_path) as img:
            assert img.size == (PAK_WIDTH, PAK_HEIGHT)
            assert img.mode == "L"
            assert img.getpixel((3, 2)) == data[2 * PAK_WIDTH + 3]


def test_unexpected_file_name_warns(caplog):
    """Should still decode but warn about an unknown file name."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "OTHER.PAK")
        with open(path, "wb") as f:
            f.write(encode_pak(bytes(PAK_WIDTH * PAK_HEIGHT)))

        with caplog.at_level(logging.WARNING):
            pak = PakFile(path)

    assert pak.get_value(0, 0) == 0
    assert "Unexpected PAK file name" in caplog.text


def test_empty_pak_file():
    """Should report -1 before anything is loaded."""
    pak = PakFile()

    assert pak.get_value(0, 0) == -1
    assert not pak.to_png("unused.png")
    assert not pak.save("unused.pak")


def test_write_pak_round_trip():
    """Should write a PAK file that loads back to the same raster."""
    data = create_random_raster(seed=3)
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_pak(data, os.path.join(tmpdir, "maps", "POLITIC.PAK"))

        assert path.read_bytes() == encode_pak(data)
        pak = PakFile(path)
        assert pak.raster.data == data

        copy_path = os.path.join(tmpdir, "CLIMATE.PAK")
        assert pak.save(copy_path)
        assert PakFile(copy_path).raster == pak.raster


def test_write_pak_wrong_size():
    """Should refuse to write a raster of the wrong size."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "CLIMATE.PAK")

        with pytest.raises(PakFormatError):
            write_pak(b"\x00" * 500500 + b"\x00", path)
        assert not os.path.exists(path)


def test_cli_write():
    """CLI should re-encode a PAK file."""
    data = create_random_raster(seed=5)
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_pak(data, os.path.join(tmpdir, "CLIMATE.PAK"))
        out_path = os.path.join(tmpdir, "out", "CLIMATE.PAK")

        result = subprocess.run(
            [sys.executable, "-m", "arena2_extractor.pak_file", str(path), "--write", out_path],
            capture_output=True,
            text=True,
            cwd=TOOLS_DIR,
        )

        assert result.returncode == 0
        assert "Saved" in result.stdout
        with open(out_path, "rb") as f:
            assert f.read() == encode_pak(data)
