"""
MeshPaint - triangle paint selection for 3D meshes

Main entry point
"""

import sys
import logging
import math
from pathlib import Path

# Ensure repository root is on sys.path so "meshpaint" is importable.
ROOT_DIR = Path(__file__).resolve().parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from meshpaint.core.runtime_defaults import DEFAULTS
from meshpaint import __version__

_LOGGER = logging.getLogger(__name__)
DEFAULT_MESH_UNIT = "mm"
PROJECT_SUFFIX = ".mpp"


def run_cli():
    """Run the command line interface."""
    try:
        from meshpaint.core.logging_utils import setup_logging

        setup_logging()
    except Exception as e:
        _LOGGER.debug("Failed to initialize logging: %s", e, exc_info=True)

    if len(sys.argv) < 2:
        print_help()
        return

    cmd = sys.argv[1]
    args = sys.argv[2:]

    if cmd == '--help' or cmd == '-h':
        print_help()
        return

    if cmd == '--info' and len(args) >= 1:
        show_file_info(args[0])
        return

    if cmd == '--fill' and len(args) >= 2:
        fill_mesh(
            args[0],
            args[1],
            angle_deg=args[2] if len(args) > 2 else None,
            label=args[3] if len(args) > 3 else None,
            output_path=args[4] if len(args) > 4 else None,
            mode="smart",
        )
        return

    if cmd == '--bucket' and len(args) >= 2:
        fill_mesh(
            args[0],
            args[1],
            angle_deg=None,
            label=args[2] if len(args) > 2 else None,
            output_path=args[3] if len(args) > 3 else None,
            mode="bucket",
        )
        return

    if cmd == '--paint' and len(args) >= 5:
        paint_mesh(
            args[0],
            args[1:4],
            args[4],
            label=args[5] if len(args) > 5 else None,
            output_path=args[6] if len(args) > 6 else None,
        )
        return

    if cmd == '--patches' and len(args) >= 2:
        report_patches(args[0], args[1], gap_area=args[2] if len(args) > 2 else None)
        return

    print(f"Error: Unknown command or missing arguments: {cmd}")
    print("Use --help for usage information")


def print_help():
    """Print usage."""
    from meshpaint.core.mesh_loader import MeshLoader

    print("=" * 60)
    print(f"MeshPaint {__version__} - triangle paint selection")
    print("=" * 60)
    print()
    print("Usage:")
    print("  python main.py --info <mesh_file>")
    print("  python main.py --fill <mesh_file> <facet> [angle_deg] [label] [output.mpp]")
    print("  python main.py --bucket <mesh_file> <facet> [label] [output.mpp]")
    print("  python main.py --paint <mesh_file> <x> <y> <z> <radius> [label] [output.mpp]")
    print("  python main.py --patches <mesh_file> <project.mpp> [gap_area]")
    print()
    print(f"Supported formats: {list(MeshLoader.SUPPORTED_FORMATS.keys())}")
    print()
    print("Examples:")
    print("  python main.py --fill bracket.stl 12 30 1 bracket.mpp")
    print("  python main.py --patches bracket.stl bracket.mpp 0.5")


def _load_mesh(filepath: str):
    from meshpaint.core.mesh_loader import MeshLoader

    loader = MeshLoader(default_unit=DEFAULT_MESH_UNIT)
    return loader.load(filepath)


def _default_output(filepath: str) -> Path:
    return Path(filepath).with_suffix(PROJECT_SUFFIX)


def _parse_label(value: str | None) -> int:
    from meshpaint.core.labels import PaintLabel, coerce_label

    if value is None:
        return int(PaintLabel.ENFORCER)
    text = str(value).strip().upper()
    if text in PaintLabel.__members__:
        return int(PaintLabel[text])
    lab = coerce_label(int(text))
    if lab is None:
        raise ValueError(f"Invalid label: {value!r}")
    return lab


def _save(filepath: str, selector, output_path: str | None) -> None:
    from meshpaint.core.project_file import save_paint_project

    out = Path(output_path) if output_path else _default_output(filepath)
    key = Path(filepath).name
    saved = save_paint_project(
        out,
        {key: selector.snapshot()},
        meta={"app": "MeshPaint", "version": __version__, "mesh": str(filepath)},
    )
    print(f"  Saved: {saved}")


def show_file_info(filepath: str):
    """Show mesh info."""
    from meshpaint.core.triangle_selector import build_root_adjacency

    print(f"\nFile Info: {filepath}")
    print("-" * 40)

    try:
        mesh = _load_mesh(filepath)
        adjacency = build_root_adjacency(mesh.faces)
        print(f"  Vertices: {mesh.n_vertices:,}")
        print(f"  Faces: {mesh.n_faces:,}")
        print(f"  Boundary edges: {int((adjacency < 0).sum()):,}")
        print(f"  Surface Area: {mesh.surface_area:,.2f} {mesh.unit}^2")
        print(f"  Size: {mesh.extents[0]:.1f} x {mesh.extents[1]:.1f} x {mesh.extents[2]:.1f} {mesh.unit}")
    except Exception as e:
        print(f"  Error: {e}")


def fill_mesh(
    filepath: str,
    facet: str,
    *,
    angle_deg: str | None,
    label: str | None,
    output_path: str | None,
    mode: str,
):
    """Bucket or smart fill from a seed facet and save the paint data."""
    from meshpaint.core.triangle_selector import TriangleSelector

    print(f"\nFill ({mode}): {filepath}")
    print("-" * 40)

    try:
        mesh = _load_mesh(filepath)
        selector = TriangleSelector(mesh)
        seed = int(facet)
        lab = _parse_label(label)
        if angle_deg is None:
            angle = math.radians(DEFAULTS.smart_fill_angle_deg) if mode == "smart" else None
        else:
            angle = math.radians(float(angle_deg))

        if mode == "smart":
            changed = selector.smart_fill(seed, lab, angle)
        else:
            changed = selector.bucket_fill(seed, lab, angle)

        print(f"  Loaded: {mesh.n_vertices:,} vertices, {mesh.n_faces:,} faces")
        print(f"  Changed triangles: {changed:,}")
        print(f"  Labeled area: {selector.labeled_area(lab):,.2f} {mesh.unit}^2")
        _save(filepath, selector, output_path)
    except Exception as e:
        print(f"Error: {e}")
        import traceback
        traceback.print_exc()


def paint_mesh(filepath: str, center: list[str], radius: str, *, label: str | None, output_path: str | None):
    """Paint a sphere brush dab at a mesh-space point and save the paint data."""
    import numpy as np

    from meshpaint.core.cursor import Cursor
    from meshpaint.core.triangle_selector import TriangleSelector

    print(f"\nPaint: {filepath}")
    print("-" * 40)

    try:
        mesh = _load_mesh(filepath)
        selector = TriangleSelector(mesh)
        lab = _parse_label(label)
        cursor = Cursor.sphere(np.array([float(c) for c in center]), float(radius))
        changed = selector.select_patch(cursor, lab)

        print(f"  Changed triangles: {changed:,}")
        print(f"  Leaves: {selector.n_leaves:,} ({selector.n_level0:,} level-0)")
        print(f"  Labeled area: {selector.labeled_area(lab):,.2f} {mesh.unit}^2")
        _save(filepath, selector, output_path)
    except Exception as e:
        print(f"Error: {e}")
        import traceback
        traceback.print_exc()


def report_patches(filepath: str, project_path: str, *, gap_area: str | None):
    """Print the patch partition of saved paint data."""
    from meshpaint.core.patches import PatchAggregator
    from meshpaint.core.project_file import load_paint_project
    from meshpaint.core.triangle_selector import TriangleSelector

    print(f"\nPatches: {filepath}")
    print("-" * 40)

    try:
        mesh = _load_mesh(filepath)
        snapshots, meta = load_paint_project(project_path)
        key = Path(filepath).name
        snap = snapshots.get(key)
        if snap is None:
            if len(snapshots) != 1:
                print(f"  Error: no paint data for {key!r} in {project_path}")
                return
            snap = next(iter(snapshots.values()))

        selector = TriangleSelector(mesh)
        selector.restore(snap)
        gap = DEFAULTS.gap_area if gap_area is None else float(gap_area)
        patch_set = PatchAggregator(selector, gap_area=gap).build()

        print(f"  Saved by: {meta.get('app', '?')} {meta.get('version', '')}")
        print(f"  Leaves: {selector.n_leaves:,}")
        print(f"  Patches: {len(patch_set.patches):,} (gap area {gap:g})")
        for i, patch in enumerate(patch_set.patches):
            suffix = f" -> {patch.effective_label}" if patch.is_fragment else ""
            print(
                f"    [{i}] label {patch.label}{suffix}: "
                f"{patch.n_triangles:,} triangles, area {patch.area:,.3f}"
            )
        print(f"  Contour edges: {patch_set.contour_edges().shape[0]:,}")
    except Exception as e:
        print(f"Error: {e}")
        import traceback
        traceback.print_exc()


if __name__ == '__main__':
    run_cli()
