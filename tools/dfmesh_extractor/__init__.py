"""Daggerfall ARCH3D Mesh Extractor Package."""
from .arch3d_file import Arch3dFile
from .arch3d_parser import Arch3dParser
from .dfmesh_types import (
    DFMesh,
    NativePlane,
    NativePoint,
    NativeSubMesh,
    OutputMesh,
    OutputSubMesh,
    OutputVertex,
)
from .face_uv import compute_face_uv, solve_face_uv
from .gltf_exporter import GLTFExporter
from .mesh_builder import build_output_mesh, expand_fan

__all__ = [
    "Arch3dFile",
    "Arch3dParser",
    "DFMesh",
    "GLTFExporter",
    "NativePlane",
    "NativePoint",
    "NativeSubMesh",
    "OutputMesh",
    "OutputSubMesh",
    "OutputVertex",
    "build_output_mesh",
    "compute_face_uv",
    "expand_fan",
    "solve_face_uv",
]
