"""Tests for ARCH3D mesh record parsing."""
import os
import struct
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from arena2_extractor.errors import MeshFormatError, TruncatedReadError
from dfmesh_extractor.arch3d_parser import Arch3dParser
from dfmesh_extractor.dfmesh_types import Arch3dHeader


def create_mesh_record(points, planes, version=b"v2.7"):
    """Build an ARCH3D record.

    Args:
        points: (x, y, z) in native units
        planes: (texture, normal, [(point_index, u, v), ...]) per plane
        version: Record version
    """
    point_stride = 4 if version == b"v2.5" else 12
    point_off = 64
    normal_off = point_off + 12 * len(points)
    plane_list_off = normal_off + 12 * len(planes)

    plane_list = b""
    for texture, _, plane_points in planes:
        plane_list += struct.pack("<BBHI", len(plane_points), 0, texture, 0)
        for index, u, v in plane_points:
            plane_list += struct.pack("<ihh", index * point_stride, int(u * 16), int(v * 16))
    plane_data_off = plane_list_off + len(plane_list)

    header = struct.pack(
        "<4siiIQiiiIQiiIi",
        version, len(points), len(planes), 0, 0, plane_data_off, 0, 0, 0, 0,
        point_off, normal_off, 0, plane_list_off,
    )
    data = header
    for x, y, z in points:
        data += struct.pack("<iii", int(x * 256), int(y * 256), int(z * 256))
    for _, (nx, ny, nz), _ in planes:
        data += struct.pack("<iii", int(nx * 256), int(ny * 256), int(nz * 256))
    data += plane_list
    for i in range(len(planes)):
        data += bytes([i]) * 24
    return data


SQUARE = [(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0), (2, 0, 0)]


def texture(archive, record):
    return (archive << 7) | record


def create_sample_record(version=b"v2.7"):
    """Three planes, two textures, second texture first seen in plane 1."""
    return create_mesh_record(SQUARE, [
        (texture(210, 3), (0, 0, 1), [(0, 1.5, 2.0), (1, 16.0, 0), (2, 0, 16.0), (3, -16.0, 0)]),
        (texture(19, 0), (0, 0, -1), [(0, 0, 0), (1, 8.0, 0), (4, 8.0, 0)]),
        (texture(210, 3), (1, 0, 0), [(0, 0, 0), (2, 4.0, 4.0), (3, 0, 4.0)]),
    ], version)


def test_header_size():
    """Should read a 64-byte header."""
    assert Arch3dHeader.STRUCT_SIZE == 64


def test_parse_header():
    """Should read version and counts."""
    header = Arch3dParser().parse_header(create_sample_record())

    assert header.version == "v2.7"
    assert header.point_count == 5
    assert header.plane_count == 3
    assert header.point_list_offset == 64


def test_groups_planes_by_texture():
    """Should group planes by texture in first-seen order."""
    mesh = Arch3dParser().parse(create_sample_record(), object_id=456)

    assert mesh.object_id == 456
    assert mesh.version == "v2.7"
    assert [(sm.texture_archive, sm.texture_record) for sm in mesh.submeshes] == [(210, 3), (19, 0)]
    assert [p.index for p in mesh.submeshes[0].planes] == [0, 2]
    assert [p.index for p in mesh.submeshes[1].planes] == [1]
    assert mesh.plane_count == 3
    assert mesh.total_vertices == 10
    assert mesh.total_triangles == 4


def test_fixed_point_values():
    """Should divide positions and normals by 256 and UV by 16."""
    mesh = Arch3dParser().parse(create_sample_record())
    plane = mesh.submeshes[0].planes[0]

    assert plane.points[2].position == (1.0, 1.0, 0.0)
    assert (plane.points[0].u, plane.points[0].v) == (1.5, 2.0)
    assert (plane.points[3].u, plane.points[3].v) == (-16.0, 0.0)
    assert (plane.points[0].nx, plane.points[0].ny, plane.points[0].nz) == (0.0, 0.0, 1.0)


def test_one_normal_per_plane():
    """Should give every point of a plane the plane's normal."""
    mesh = Arch3dParser().parse(create_sample_record())
    plane = mesh.submeshes[0].planes[1]

    assert all((p.nx, p.ny, p.nz) == (1.0, 0.0, 0.0) for p in plane.points)


def test_plane_data():
    """Should keep the 24 bytes of plane data."""
    mesh = Arch3dParser().parse(create_sample_record())

    assert mesh.submeshes[1].planes[0].plane_data == b"\x01" * 24


def test_v25_point_offsets():
    """Should scale v2.5 point offsets to bytes."""
    parser = Arch3dParser()
    v25 = parser.parse(create_sample_record(b"v2.5"))
    v27 = parser.parse(create_sample_record(b"v2.7"))

    assert v25.version == "v2.5"
    for sm25, sm27 in zip(v25.submeshes, v27.submeshes):
        for p25, p27 in zip(sm25.planes, sm27.planes):
            assert [p.position for p in p25.points] == [p.position for p in p27.points]


def test_list_textures():
    """Should list (archive, record) per submesh."""
    parser = Arch3dParser()
    mesh = parser.parse(create_sample_record())

    assert parser.list_textures(mesh) == [(210, 3), (19, 0)]


def test_bad_version():
    """Should reject an unknown version."""
    data = create_sample_record(b"v9.9")

    with pytest.raises(MeshFormatError, match="version"):
        Arch3dParser().parse(data)


def test_short_record():
    """Should reject a record shorter than the header."""
    with pytest.raises(MeshFormatError):
        Arch3dParser().parse(b"v2.7")


def test_offset_outside_record():
    """Should raise when a point offset leaves the record."""
    data = create_mesh_record(SQUARE[:3], [
        (texture(1, 1), (0, 0, 1), [(0, 0, 0), (1, 0, 0), (400, 0, 0)]),
    ])

    with pytest.raises(TruncatedReadError):
        Arch3dParser().parse(data)


def test_two_point_plane_decodes_without_it():
    """Should parse a two-point plane and leave it out of the built mesh."""
    from dfmesh_extractor.mesh_builder import build_output_mesh

    data = create_mesh_record(SQUARE, [
        (texture(1, 0), (0, 0, 1), [(0, 0, 0), (1, 16.0, 0), (2, 0, 16.0), (3, -16.0, 0)]),
        (texture(1, 0), (0, 0, 1), [(0, 0, 0), (4, 8.0, 0)]),
    ])
    mesh = Arch3dParser().parse(data, object_id=7)

    assert len(mesh.submeshes[0].planes[1].points) == 2
    output = build_output_mesh(mesh)
    assert output.skipped_planes == [1]
    assert len(output.indices) == 6


def test_plane_header_positions():
    """Should record where each plane header starts in the record."""
    data = create_sample_record()
    mesh = Arch3dParser().parse(data)
    planes = {p.index: p for sm in mesh.submeshes for p in sm.planes}

    assert [planes[i].header_position for i in range(3)] == [160, 200, 232]
    for i, expected in enumerate([texture(210, 3), texture(19, 0), texture(210, 3)]):
        assert struct.unpack_from("<H", data, planes[i].header_position + 2)[0] == expected
