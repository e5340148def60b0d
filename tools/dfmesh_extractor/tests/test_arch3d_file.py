"""Tests for ARCH3D.BSA mesh access."""
import os
import struct
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from arena2_extractor.bsa_file import BsaFile, DirectoryType, pack_bsa
from arena2_extractor.errors import (
    MeshFormatError,
    ReadOnlyError,
    RecordIndexError,
    RecordNotFoundError,
    UsageError,
)
from arena2_extractor.file_proxy import FileUsage
from dfmesh_extractor.arch3d_file import Arch3dFile


def create_triangle_record(size=1.0, texture=(1 << 7) | 2):
    """Single-triangle ARCH3D record."""
    points = [(0, 0, 0), (size, 0, 0), (0, size, 0)]
    header = struct.pack(
        "<4siiIQiiiIQiiIi",
        b"v2.7", 3, 1, 0, 0, 0, 0, 0, 0, 0, 64, 64 + 36, 0, 64 + 48,
    )
    data = header
    for x, y, z in points:
        data += struct.pack("<iii", int(x * 256), int(y * 256), int(z * 256))
    data += struct.pack("<iii", 0, 0, 256)
    data += struct.pack("<BBHI", 3, 0, texture, 0)
    for i, (u, v) in enumerate([(0, 0), (32, 0), (-32, 32)]):
        data += struct.pack("<ihh", i * 12, u * 16, v * 16)
    return data


def create_arch3d_archive():
    return pack_bsa([
        (456, create_triangle_record(1.0)),
        (1000, create_triangle_record(2.0)),
        (1001, b"not a mesh"),
    ], DirectoryType.NUMBER_RECORD)


def create_arch3d():
    return Arch3dFile.from_archive(BsaFile.from_bytes(create_arch3d_archive()))


def test_decode_mesh_by_id():
    """Should find a mesh by object id and build it."""
    arch3d = create_arch3d()
    output = arch3d.decode_mesh(1000)

    assert len(output.vertices) == 3
    assert output.indices == [0, 2, 1]
    assert output.vertices[2].position == (0.0, -2.0, -0.0)
    assert output.submeshes[0].texture_archive == 1
    assert output.submeshes[0].texture_record == 2


def test_decode_mesh_normalizes_uv():
    """Should divide UVs by the supplied texture size."""
    output = create_arch3d().decode_mesh(456, {(1, 2): (32, 32)})

    assert output.vertices[1].uv == pytest.approx((1.0, 0.0))
    assert output.vertices[2].uv == pytest.approx((0.0, 1.0))


def test_object_ids():
    """Should map object ids to record indices."""
    arch3d = create_arch3d()

    assert arch3d.count == 3
    assert arch3d.get_record_index(1000) == 1
    assert arch3d.get_object_id(0) == 456


def test_unknown_object_id():
    """Should raise RecordNotFoundError for an unknown id."""
    with pytest.raises(RecordNotFoundError):
        create_arch3d().decode_mesh(9999)


def test_invalid_mesh_record():
    """Should raise MeshFormatError for a record that is not a mesh."""
    with pytest.raises(MeshFormatError):
        create_arch3d().decode_mesh(1001)


def test_auto_discard_keeps_one_mesh():
    """Should only keep the last parsed mesh with auto_discard on."""
    arch3d = create_arch3d()

    first = arch3d.get_mesh(0)
    assert arch3d.get_mesh(0) is first
    arch3d.get_mesh(1)

    assert arch3d.last_record == 1
    assert not arch3d.is_loaded(0)
    assert arch3d.is_loaded(1)


def test_auto_discard_off_keeps_meshes():
    """Should keep every parsed mesh with auto_discard off."""
    arch3d = create_arch3d()
    arch3d.auto_discard = False

    first = arch3d.get_mesh(0)
    arch3d.get_mesh(1)

    assert arch3d.is_loaded(0)
    assert arch3d.get_mesh(0) is first

    arch3d.discard_all_records()
    assert not arch3d.is_loaded(1)
    assert arch3d.last_record == -1


def test_load_from_disk():
    """Should open ARCH3D.BSA from disk."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "ARCH3D.BSA")
        with open(path, "wb") as f:
            f.write(create_arch3d_archive())

        with Arch3dFile(path) as arch3d:
            assert arch3d.get_mesh(0).object_id == 456
            assert arch3d.get_mesh(0).plane_count == 1


def test_set_plane_texture_on_disk():
    """Should rewrite one plane's texture and leave other meshes alone."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "ARCH3D.BSA")
        with open(path, "wb") as f:
            f.write(create_arch3d_archive())

        with Arch3dFile(path, FileUsage.USE_DISK, read_only=False) as arch3d:
            arch3d.get_mesh(1)
            arch3d.set_plane_texture(1000, 0, 210, 3)

            assert not arch3d.is_loaded(1)
            output = arch3d.decode_mesh(1000)
            assert (output.submeshes[0].texture_archive, output.submeshes[0].texture_record) == (210, 3)

        with Arch3dFile(path) as arch3d:
            assert arch3d.parser.list_textures(arch3d.get_mesh(1)) == [(210, 3)]
            assert arch3d.parser.list_textures(arch3d.get_mesh(0)) == [(1, 2)]
            assert arch3d.archive.get_record_bytes(2) == b"not a mesh"
            assert len(arch3d.get_mesh(1).submeshes[0].planes[0].points) == 3


def test_set_plane_texture_invalid():
    """Should reject an unknown plane or an out-of-range texture."""
    arch3d = create_arch3d()

    with pytest.raises(RecordIndexError):
        arch3d.set_plane_texture(456, 1, 1, 2)
    with pytest.raises(UsageError):
        arch3d.set_plane_texture(456, 0, 512, 0)
    with pytest.raises(UsageError):
        arch3d.set_plane_texture(456, 0, 1, 128)
    with pytest.raises(RecordNotFoundError):
        arch3d.set_plane_texture(999, 0, 1, 2)

    assert arch3d.parser.list_textures(arch3d.get_mesh(0)) == [(1, 2)]


def test_set_plane_texture_read_only():
    """Should refuse to change a read-only archive."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "ARCH3D.BSA")
        with open(path, "wb") as f:
            f.write(create_arch3d_archive())

        with Arch3dFile(path) as arch3d:
            with pytest.raises(ReadOnlyError):
                arch3d.set_plane_texture(456, 0, 3, 4)
