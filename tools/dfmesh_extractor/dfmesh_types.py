"""Type definitions for ARCH3D mesh records and decoded meshes."""
import struct
from dataclasses import dataclass, field
from typing import List, Tuple

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]


@dataclass
class Arch3dHeader:
    """ARCH3D record header (64 bytes)."""

    version: str             # 4 bytes: "v2.5", "v2.6" or "v2.7"
    point_count: int         # 4 bytes
    plane_count: int         # 4 bytes
    unknown1: int            # 4 bytes
    null1: int               # 8 bytes
    plane_data_offset: int   # 4 bytes: 24 bytes per plane
    object_data_offset: int  # 4 bytes
    object_data_count: int   # 4 bytes
    unknown2: int            # 4 bytes
    null2: int               # 8 bytes
    point_list_offset: int   # 4 bytes
    normal_list_offset: int  # 4 bytes: one normal per plane
    unknown3: int            # 4 bytes
    plane_list_offset: int   # 4 bytes

    STRUCT_FORMAT = "<4siiIQiiiIQiiIi"
    STRUCT_SIZE = struct.calcsize(STRUCT_FORMAT)  # 64

    @classmethod
    def from_bytes(cls, data: bytes) -> "Arch3dHeader":
        values = struct.unpack_from(cls.STRUCT_FORMAT, data, 0)
        version = values[0].split(b"\x00", 1)[0].decode("ascii", errors="replace")
        return cls(version, *values[1:])


@dataclass
class NativePoint:
    """Mesh point in native axes. u/v are deltas except on point 0."""

    x: float
    y: float
    z: float
    nx: float
    ny: float
    nz: float
    u: float
    v: float

    @property
    def position(self) -> Vec3:
        return (self.x, self.y, self.z)


@dataclass
class NativePlane:
    """Convex polygon, triangulated as a fan from point 0."""

    index: int
    texture_archive: int
    texture_record: int
    points: List[NativePoint] = field(default_factory=list)
    plane_data: bytes = b""  # 24 bytes, purpose unknown
    header_position: int = -1  # Offset of the plane header in its record


@dataclass
class NativeSubMesh:
    """Planes sharing one texture."""

    texture_archive: int
    texture_record: int
    planes: List[NativePlane] = field(default_factory=list)


@dataclass
class DFMesh:
    """Native mesh as read from ARCH3D.BSA."""

    object_id: int
    version: str
    submeshes: List[NativeSubMesh] = field(default_factory=list)

    @property
    def plane_count(self) -> int:
        return sum(len(sm.planes) for sm in self.submeshes)

    @property
    def total_vertices(self) -> int:
        return sum(len(p.points) for sm in self.submeshes for p in sm.planes)

    @property
    def total_triangles(self) -> int:
        return sum(len(p.points) - 2 for sm in self.submeshes for p in sm.planes)


@dataclass
class OutputVertex:
    """Renderable vertex."""

    position: Vec3
    normal: Vec3
    uv: Vec2


@dataclass
class OutputSubMesh:
    """Index range of one texture within OutputMesh.indices."""

    texture_archive: int
    texture_record: int
    start_index: int
    primitive_count: int

    @property
    def index_count(self) -> int:
        return self.primitive_count * 3


@dataclass
class OutputMesh:
    """Indexed triangle list ready for export."""

    vertices: List[OutputVertex] = field(default_factory=list)
    indices: List[int] = field(default_factory=list)
    submeshes: List[OutputSubMesh] = field(default_factory=list)
    skipped_planes: List[int] = field(default_factory=list)
