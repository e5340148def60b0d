#!/usr/bin/env python3
"""Extract Daggerfall ARCH3D meshes to glTF format.

Usage:
    python -m dfmesh_extractor.extract_models <ARCH3D.BSA> [--id ID ...] [-o <output>]

Examples:
    # Extract one mesh
    python -m dfmesh_extractor.extract_models ARENA2/ARCH3D.BSA --id 456 -o ./output

    # Extract every mesh, normalizing UVs with sizes from ARENA2/TEXTURE.*
    python -m dfmesh_extractor.extract_models ARENA2/ARCH3D.BSA -o ./output

    # Keep UVs in texels
    python -m dfmesh_extractor.extract_models ARENA2/ARCH3D.BSA --no-normalize -o ./output
"""
import argparse
import logging
import os
import sys
from pathlib import Path

from arena2_extractor.errors import Arena2Error
from arena2_extractor.texture_file import TextureSizeCache

from .arch3d_file import Arch3dFile
from .gltf_exporter import GLTFExporter


def main():
    parser = argparse.ArgumentParser(
        description="Extract Daggerfall ARCH3D meshes to glTF format"
    )
    parser.add_argument(
        "input",
        help="Path to ARCH3D.BSA",
    )
    parser.add_argument(
        "--id",
        type=int,
        action="append",
        dest="ids",
        metavar="ID",
        help="Mesh object id to extract (repeatable, default: all)",
    )
    parser.add_argument(
        "-o", "--output",
        default="./output",
        help="Output directory for glTF files (default: ./output)",
    )
    parser.add_argument(
        "--arena2",
        help="Folder with TEXTURE.* files for UV normalization (default: input folder)",
    )
    parser.add_argument(
        "--no-normalize",
        action="store_true",
        help="Keep UVs in texels",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail a mesh on the first degenerate plane instead of skipping it",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Input not found: {args.input}", file=sys.stderr)
        return 1

    os.makedirs(args.output, exist_ok=True)

    texture_sizes = None
    if not args.no_normalize:
        texture_sizes = TextureSizeCache(args.arena2 or input_path.parent)

    success_count = 0
    fail_count = 0

    try:
        arch3d = Arch3dFile(input_path)
    except (OSError, Arena2Error) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with arch3d:
        if args.ids:
            object_ids = args.ids
        else:
            object_ids = [arch3d.get_object_id(i) for i in range(arch3d.count)]

        for object_id in object_ids:
            output_file = Path(args.output) / f"{object_id}.glb"
            try:
                mesh = arch3d.decode_mesh(object_id, texture_sizes, strict=args.strict)
                GLTFExporter(mesh, name=str(object_id)).export(output_file)
                if args.verbose:
                    print(f"Exported: {object_id} -> {output_file}")
                if mesh.skipped_planes:
                    print(f"Warning: {object_id} skipped planes {mesh.skipped_planes}", file=sys.stderr)
                success_count += 1
            except (OSError, ValueError, Arena2Error) as e:
                print(f"Failed: {object_id} - {e}", file=sys.stderr)
                fail_count += 1

    # Summary
    total = success_count + fail_count
    print(f"\nExtracted {success_count}/{total} meshes to {args.output}")

    return 0 if fail_count == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
