"""Mesh access for ARCH3D.BSA.

ARCH3D.BSA is a number-record BSA archive; each record id is a mesh
object id. Parsed meshes are cached per record. With auto_discard on
(the default) only the last loaded mesh is kept.
"""
import logging
import struct
from pathlib import Path
from typing import Dict, Optional, Union

from arena2_extractor.bsa_file import BsaFile
from arena2_extractor.errors import RecordIndexError, UsageError
from arena2_extractor.file_proxy import FileUsage

from .arch3d_parser import Arch3dParser
from .dfmesh_types import DFMesh, OutputMesh
from .mesh_builder import TextureSizes, build_output_mesh

logger = logging.getLogger(__name__)


class Arch3dFile:
    """Reader for ARCH3D.BSA."""

    def __init__(self, path: Union[str, Path, None] = None,
                 usage: FileUsage = FileUsage.USE_MEMORY, read_only: bool = True):
        """Initialize, optionally loading ``path``.

        Args:
            path: Path to ARCH3D.BSA
            usage: Keep the file on disk or read it into memory
            read_only: Open without write access
        """
        self.auto_discard = True
        self.last_record = -1
        self.parser = Arch3dParser()
        self._archive = BsaFile()
        self._meshes: Dict[int, DFMesh] = {}
        if path is not None:
            self.load(path, usage, read_only)

    @classmethod
    def from_archive(cls, archive: BsaFile) -> "Arch3dFile":
        """Wrap an already opened mesh archive."""
        arch3d = cls()
        arch3d._archive = archive
        return arch3d

    def load(self, path: Union[str, Path], usage: FileUsage = FileUsage.USE_MEMORY,
             read_only: bool = True):
        self.discard_all_records()
        self._archive.load(path, usage, read_only)

    def close(self):
        self.discard_all_records()
        self._archive.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def archive(self) -> BsaFile:
        return self._archive

    @property
    def count(self) -> int:
        return self._archive.count

    def get_record_index(self, object_id: int) -> int:
        """Record index of a mesh object id.

        Raises:
            RecordNotFoundError: If no record has that id
        """
        return self._archive.get_record_index_by_id(object_id)

    def get_object_id(self, index: int) -> Optional[int]:
        return self._archive.get_record_id(index)

    def is_loaded(self, index: int) -> bool:
        return index in self._meshes

    def get_mesh(self, index: int) -> DFMesh:
        """Parsed native mesh for a record index.

        Raises:
            RecordIndexError: If index is out of range
            MeshFormatError: If the record is not a valid mesh
        """
        mesh = self._meshes.get(index)
        if mesh is not None:
            self.last_record = index
            return mesh

        if self.auto_discard and self.last_record != -1 and self.last_record != index:
            self.discard_record(self.last_record)

        data = self._archive.get_record_bytes(index)
        object_id = self._archive.get_record_id(index)
        mesh = self.parser.parse(data, -1 if object_id is None else object_id)

        self._meshes[index] = mesh
        self.last_record = index
        return mesh

    def decode_mesh(self, object_id: int, texture_sizes: Optional[TextureSizes] = None,
                    strict: bool = False) -> OutputMesh:
        """Decode a mesh by object id into an indexed triangle list.

        Args:
            object_id: Mesh id in ARCH3D.BSA
            texture_sizes: (archive, record) -> (width, height) for UV normalization
            strict: Fail on a degenerate plane instead of skipping it
        """
        mesh = self.get_mesh(self.get_record_index(object_id))
        output = build_output_mesh(mesh, texture_sizes, strict=strict)
        logger.debug("Decoded mesh %d: %d vertices, %d triangles",
                     object_id, len(output.vertices), len(output.indices) // 3)
        return output

    def set_plane_texture(self, object_id: int, plane_index: int,
                          texture_archive: int, texture_record: int):
        """Point one plane of a mesh at a different texture.

        The 16-bit texture field in the plane header is patched in place and
        the archive is rewritten, so the file must be open for writing.

        Args:
            object_id: Mesh id in ARCH3D.BSA
            plane_index: Plane index within the mesh
            texture_archive: TEXTURE.xxx number, 0..511
            texture_record: Record within that texture archive, 0..127

        Raises:
            RecordNotFoundError: If no record has that id
            RecordIndexError: If the mesh has no such plane
            UsageError: If the texture does not fit the 16-bit field
            ReadOnlyError: If the archive was opened read-only
        """
        if not (0 <= texture_archive < 512 and 0 <= texture_record < 128):
            raise UsageError(f"Texture {texture_archive}:{texture_record} out of range")

        index = self.get_record_index(object_id)
        mesh = self.get_mesh(index)
        plane = next((p for sm in mesh.submeshes for p in sm.planes if p.index == plane_index), None)
        if plane is None:
            raise RecordIndexError(f"Mesh {object_id} has no plane {plane_index}")

        texture = (texture_archive << 7) | texture_record
        self._archive.patch_record(index, plane.header_position + 2, struct.pack("<H", texture))
        self.discard_record(index)
        logger.info("Mesh %d plane %d now uses texture %d:%d",
                    object_id, plane_index, texture_archive, texture_record)

    def discard_record(self, index: int):
        self._meshes.pop(index, None)
        if self.last_record == index:
            self.last_record = -1

    def discard_all_records(self):
        self._meshes.clear()
        self.last_record = -1
