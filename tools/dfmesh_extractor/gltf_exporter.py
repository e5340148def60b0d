"""glTF exporter for decoded ARCH3D meshes."""
import struct
from pathlib import Path
from typing import List, Tuple, Union

from pygltflib import (
    GLTF2,
    Accessor,
    Asset,
    Attributes,
    Buffer,
    BufferView,
    Material,
    Mesh,
    Node,
    Primitive,
    Scene,
)

from arena2_extractor.texture_file import texture_file_name

from .dfmesh_types import OutputMesh, Vec3

ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963
FLOAT = 5126
UNSIGNED_INT = 5125
TRIANGLES = 4


def material_name(texture_archive: int, texture_record: int) -> str:
    """Material name for a texture, e.g. 'TEXTURE.210_3'."""
    return f"{texture_file_name(texture_archive)}_{texture_record}"


class GLTFExporter:
    """Exports an OutputMesh to glTF/GLB format."""

    def __init__(self, mesh: OutputMesh, name: str = "mesh"):
        """Initialize exporter with a decoded mesh.

        Args:
            mesh: Mesh built by build_output_mesh
            name: Node and mesh name
        """
        self.mesh = mesh
        self.name = name

    def _compute_bounds(self, positions: List[Vec3]) -> Tuple[List[float], List[float]]:
        """Compute min/max bounds for vertices."""
        if not positions:
            return [0, 0, 0], [0, 0, 0]

        min_bounds = [float("inf")] * 3
        max_bounds = [float("-inf")] * 3

        for p in positions:
            for i in range(3):
                min_bounds[i] = min(min_bounds[i], p[i])
                max_bounds[i] = max(max_bounds[i], p[i])

        return min_bounds, max_bounds

    def export(self, output_path: Union[str, Path]):
        """Export mesh to a GLB file.

        Raises:
            ValueError: If the mesh has no triangles
        """
        vertices = self.mesh.vertices
        submeshes = [sm for sm in self.mesh.submeshes if sm.primitive_count > 0]
        if not vertices or not submeshes:
            raise ValueError("No mesh data to export")

        positions = [v.position for v in vertices]
        position_data = b"".join(struct.pack("<fff", *p) for p in positions)
        normal_data = b"".join(struct.pack("<fff", *v.normal) for v in vertices)
        uv_data = b"".join(struct.pack("<ff", *v.uv) for v in vertices)
        index_data = struct.pack(f"<{len(self.mesh.indices)}I", *self.mesh.indices)

        views = [
            (position_data, ARRAY_BUFFER),
            (normal_data, ARRAY_BUFFER),
            (uv_data, ARRAY_BUFFER),
            (index_data, ELEMENT_ARRAY_BUFFER),
        ]

        gltf = GLTF2()
        gltf.asset = Asset(version="2.0", generator="ARCH3D Extractor")

        buffer_data = b""
        gltf.bufferViews = []
        for data, target in views:
            gltf.bufferViews.append(BufferView(
                buffer=0,
                byteOffset=len(buffer_data),
                byteLength=len(data),
                target=target,
            ))
            buffer_data += data
        gltf.buffers = [Buffer(byteLength=len(buffer_data))]

        min_bounds, max_bounds = self._compute_bounds(positions)
        gltf.accessors = [
            Accessor(bufferView=0, componentType=FLOAT, count=len(vertices),
                     type="VEC3", max=max_bounds, min=min_bounds),
            Accessor(bufferView=1, componentType=FLOAT, count=len(vertices), type="VEC3"),
            Accessor(bufferView=2, componentType=FLOAT, count=len(vertices), type="VEC2"),
        ]

        primitives = []
        gltf.materials = []
        for submesh in submeshes:
            gltf.accessors.append(Accessor(
                bufferView=3,
                byteOffset=submesh.start_index * 4,
                componentType=UNSIGNED_INT,
                count=submesh.index_count,
                type="SCALAR",
            ))
            gltf.materials.append(Material(
                name=material_name(submesh.texture_archive, submesh.texture_record),
            ))
            primitives.append(Primitive(
                attributes=Attributes(POSITION=0, NORMAL=1, TEXCOORD_0=2),
                indices=len(gltf.accessors) - 1,
                material=len(gltf.materials) - 1,
                mode=TRIANGLES,
            ))

        gltf.meshes = [Mesh(name=self.name, primitives=primitives)]
        gltf.nodes = [Node(mesh=0, name=self.name)]
        gltf.scenes = [Scene(nodes=[0])]
        gltf.scene = 0

        gltf.set_binary_blob(buffer_data)
        gltf.save(str(output_path))
