"""Tests for texture size lookup."""
import os
import struct
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from arena2_extractor.errors import RecordIndexError
from arena2_extractor.texture_file import (
    TextureSizeCache,
    quick_size,
    texture_file_name,
)


def create_texture_file(sizes):
    """TEXTURE.nnn with one header per (width, height), no image data."""
    count = len(sizes)
    data_start = 26 + 20 * count
    data = struct.pack("<h24s", count, b"Test textures")
    for i in range(count):
        data += struct.pack("<hi14s", 0, data_start + i * 8, b"")
    for width, height in sizes:
        data += struct.pack("<hhhh", 0, 0, width, height)
    return data


def write_texture_file(tmpdir, archive, sizes):
    path = os.path.join(tmpdir, texture_file_name(archive))
    with open(path, "wb") as f:
        f.write(create_texture_file(sizes))
    return path


def test_texture_file_name():
    """Should zero-pad the archive number."""
    assert texture_file_name(210) == "TEXTURE.210"
    assert texture_file_name(7) == "TEXTURE.007"


def test_quick_size():
    """Should read width and height of each record."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_texture_file(tmpdir, 210, [(64, 64), (128, 32)])

        assert quick_size(path, 0) == (64, 64)
        assert quick_size(path, 1) == (128, 32)


def test_quick_size_bad_record():
    """Should raise RecordIndexError for a missing record."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_texture_file(tmpdir, 210, [(64, 64)])

        with pytest.raises(RecordIndexError):
            quick_size(path, 1)


def test_cache_reads_from_folder():
    """Should read sizes lazily and keep them."""
    with tempfile.TemporaryDirectory() as tmpdir:
        write_texture_file(tmpdir, 210, [(64, 64), (128, 32)])
        cache = TextureSizeCache(tmpdir)

        assert (210, 1) not in cache
        assert cache[(210, 1)] == (128, 32)
        assert (210, 1) in cache


def test_cache_miss_returns_default():
    """Should return the default when a texture cannot be read."""
    with tempfile.TemporaryDirectory() as tmpdir:
        write_texture_file(tmpdir, 210, [(64, 64)])
        cache = TextureSizeCache(tmpdir)

        assert cache.get((211, 0)) is None
        assert cache.get((210, 5), (1, 1)) == (1, 1)
        with pytest.raises(KeyError):
            cache[(211, 0)]


def test_cache_without_folder():
    """Should only return sizes that were set directly."""
    cache = TextureSizeCache()
    cache[(1, 2)] = (32, 16)

    assert cache[(1, 2)] == (32, 16)
    assert cache.get((1, 3)) is None
