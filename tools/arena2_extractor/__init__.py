"""Daggerfall ARENA2 Extractor Package."""
from .bsa_file import BsaFile, BsaRecord, DirectoryType, pack_bsa
from .file_proxy import BinaryReader, BinaryWriter, FileProxy, FileUsage
from .maps_file import (
    DungeonBlock,
    DungeonLayout,
    MapsFile,
    build_dungeon_layout,
    decode_dungeon_layout,
    read_dungeon_record,
)
from .pak_file import PakFile, PakRaster, decode_pak, encode_pak, write_pak
from .snd_file import DFSound, SndFile
from .texture_file import TextureSizeCache, quick_size

__all__ = [
    "BinaryReader",
    "BinaryWriter",
    "BsaFile",
    "BsaRecord",
    "DFSound",
    "DirectoryType",
    "DungeonBlock",
    "DungeonLayout",
    "FileProxy",
    "FileUsage",
    "MapsFile",
    "PakFile",
    "PakRaster",
    "SndFile",
    "TextureSizeCache",
    "build_dungeon_layout",
    "decode_dungeon_layout",
    "decode_pak",
    "encode_pak",
    "pack_bsa",
    "quick_size",
    "read_dungeon_record",
    "write_pak",
]
