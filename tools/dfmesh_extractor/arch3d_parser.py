"""Parser for ARCH3D.BSA mesh records.

Record layout (little-endian):
- 64-byte header (see Arch3dHeader)
- Plane list at plane_list_offset, one entry per plane:
    uint8   point_count
    uint8   unknown
    uint16  texture          archive = texture >> 7, record = texture & 0x7f
    uint32  unknown
    point_count x 8 bytes:
        int32   point_offset
        int16   u            Absolute on point 0, delta afterwards
        int16   v
- Point list at point_list_offset: int32 x, y, z per point.
  v2.6/v2.7 point offsets are byte offsets; v2.5 offsets count ints.
- Normal list at normal_list_offset: int32 nx, ny, nz per plane.
- Plane data at plane_data_offset: 24 bytes per plane.

Positions and normals are fixed point (divide by 256), UV by 16.
"""
import logging
from typing import Dict, List, Tuple

from arena2_extractor.errors import MeshFormatError
from arena2_extractor.file_proxy import FileProxy

from .dfmesh_types import (
    Arch3dHeader,
    DFMesh,
    NativePlane,
    NativePoint,
    NativeSubMesh,
)

logger = logging.getLogger(__name__)


class Arch3dParser:
    """Parses ARCH3D mesh records into native submeshes."""

    VALID_VERSIONS = ("v2.5", "v2.6", "v2.7")
    POINT_DIVISOR = 256.0
    TEXTURE_DIVISOR = 16.0
    PLANE_DATA_SIZE = 24

    def parse_header(self, data: bytes) -> Arch3dHeader:
        """Parse the record header.

        Raises:
            MeshFormatError: If the record is too short or the version unknown
        """
        if len(data) < Arch3dHeader.STRUCT_SIZE:
            raise MeshFormatError(f"Mesh record too short for header: {len(data)} bytes")

        header = Arch3dHeader.from_bytes(data)
        if header.version not in self.VALID_VERSIONS:
            raise MeshFormatError(f"Unsupported mesh version: {header.version!r}")
        if header.plane_count < 0 or header.point_count < 0:
            raise MeshFormatError(
                f"Invalid counts: {header.point_count} points, {header.plane_count} planes"
            )
        return header

    def parse(self, data: bytes, object_id: int = -1) -> DFMesh:
        """Parse a mesh record.

        Args:
            data: Raw record bytes
            object_id: Record id, kept on the result

        Returns:
            DFMesh with planes grouped by texture in first-seen order

        Raises:
            MeshFormatError: If the header is invalid
            TruncatedReadError: If an offset points outside the record
        """
        header = self.parse_header(data)
        proxy = FileProxy(data, f"ARCH3D {object_id}", read_only=True)

        point_scale = 3 if header.version == "v2.5" else 1
        plane_reader = proxy.get_reader(header.plane_list_offset)
        normal_reader = proxy.get_reader(header.normal_list_offset)

        submeshes: Dict[Tuple[int, int], NativeSubMesh] = {}
        for plane_index in range(header.plane_count):
            header_position = plane_reader.position
            point_count = plane_reader.read_uint8()
            plane_reader.read_uint8()
            texture = plane_reader.read_uint16()
            plane_reader.read_uint32()

            archive = texture >> 7
            record = texture & 0x7F

            nx = normal_reader.read_int32() / self.POINT_DIVISOR
            ny = normal_reader.read_int32() / self.POINT_DIVISOR
            nz = normal_reader.read_int32() / self.POINT_DIVISOR

            plane = NativePlane(index=plane_index, texture_archive=archive, texture_record=record,
                                header_position=header_position)
            for _ in range(point_count):
                point_offset = plane_reader.read_int32()
                u = plane_reader.read_int16() / self.TEXTURE_DIVISOR
                v = plane_reader.read_int16() / self.TEXTURE_DIVISOR

                point_reader = proxy.get_reader(header.point_list_offset + point_offset * point_scale)
                x = point_reader.read_int32() / self.POINT_DIVISOR
                y = point_reader.read_int32() / self.POINT_DIVISOR
                z = point_reader.read_int32() / self.POINT_DIVISOR
                plane.points.append(NativePoint(x, y, z, nx, ny, nz, u, v))

            plane_data_start = header.plane_data_offset + plane_index * self.PLANE_DATA_SIZE
            if header.plane_data_offset > 0 and plane_data_start + self.PLANE_DATA_SIZE <= len(data):
                plane.plane_data = data[plane_data_start:plane_data_start + self.PLANE_DATA_SIZE]

            key = (archive, record)
            if key not in submeshes:
                submeshes[key] = NativeSubMesh(texture_archive=archive, texture_record=record)
            submeshes[key].planes.append(plane)

        mesh = DFMesh(object_id=object_id, version=header.version, submeshes=list(submeshes.values()))
        logger.debug("Parsed mesh %d (%s): %d planes, %d submeshes",
                     object_id, header.version, mesh.plane_count, len(mesh.submeshes))
        return mesh

    def list_textures(self, mesh: DFMesh) -> List[Tuple[int, int]]:
        """(archive, record) of each submesh."""
        return [(sm.texture_archive, sm.texture_record) for sm in mesh.submeshes]
