"""Builds renderable meshes from native ARCH3D meshes.

Each plane becomes a triangle fan around point 0. Native axes are
converted by negating Y and Z on positions and normals. The flip mirrors
the geometry, so triangle k of a plane is emitted as
(apex, apex + k + 2, apex + k + 1) to keep front faces front:

    quad P0..P3  ->  [0, 2, 1,  0, 3, 2]

UVs are reconstructed with face_uv and, when the texture size is known,
normalized to 0..1 by that submesh's own texture width and height. A plane
with fewer than three points or no usable UV basis is degenerate: it is
skipped and reported, or raised as DegenerateFaceError when strict.
"""
import logging
from typing import List, Mapping, Optional, Tuple

from arena2_extractor.errors import DegenerateFaceError, MeshFormatError

from .dfmesh_types import DFMesh, NativePlane, OutputMesh, OutputSubMesh, OutputVertex, Vec2
from .face_uv import compute_face_uv, cumulative_uvs

logger = logging.getLogger(__name__)

TextureSizes = Mapping[Tuple[int, int], Tuple[int, int]]


def expand_fan(point_count: int, base: int = 0) -> List[int]:
    """Triangle indices for a fan of ``point_count`` points starting at ``base``."""
    indices = []
    for k in range(point_count - 2):
        indices.extend((base, base + k + 2, base + k + 1))
    return indices


def plane_uvs(plane: NativePlane) -> List[Vec2]:
    """Absolute UV for a plane, in texels.

    Triangles only need the summed deltas. Larger planes go through the
    UV solve, which raises DegenerateFaceError on collinear points.
    """
    if len(plane.points) == 3:
        return cumulative_uvs(plane.points)
    return compute_face_uv(plane.points)


def build_output_mesh(mesh: DFMesh, texture_sizes: Optional[TextureSizes] = None,
                      strict: bool = False) -> OutputMesh:
    """Convert a native mesh to an indexed triangle list.

    Args:
        mesh: Parsed native mesh
        texture_sizes: (archive, record) -> (width, height); UVs stay in
                       texels for textures without a size
        strict: Raise on a degenerate plane instead of skipping it

    Returns:
        OutputMesh with one index range per submesh

    Raises:
        DegenerateFaceError: In strict mode, if a plane has fewer than three
                             points or its UVs cannot be solved
    """
    output = OutputMesh()

    for submesh in mesh.submeshes:
        size = None
        if texture_sizes is not None:
            size = texture_sizes.get((submesh.texture_archive, submesh.texture_record))
        width, height = size if size and size[0] > 0 and size[1] > 0 else (1, 1)

        start_index = len(output.indices)
        for plane in submesh.planes:
            try:
                uvs = plane_uvs(plane)
            except MeshFormatError as e:
                if strict:
                    raise DegenerateFaceError(
                        f"Mesh {mesh.object_id} plane {plane.index}: {e}", plane.index
                    ) from e
                logger.warning("Skipping plane %d of mesh %d: %s", plane.index, mesh.object_id, e)
                output.skipped_planes.append(plane.index)
                continue

            apex = len(output.vertices)
            for point, (u, v) in zip(plane.points, uvs):
                output.vertices.append(OutputVertex(
                    position=(point.x, -point.y, -point.z),
                    normal=(point.nx, -point.ny, -point.nz),
                    uv=(u / width, v / height),
                ))
            output.indices.extend(expand_fan(len(plane.points), apex))

        output.submeshes.append(OutputSubMesh(
            texture_archive=submesh.texture_archive,
            texture_record=submesh.texture_record,
            start_index=start_index,
            primitive_count=(len(output.indices) - start_index) // 3,
        ))

    return output
