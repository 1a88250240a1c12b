"""
MeshPaint project file I/O (.mpp)

The project format is a zip container with a JSON manifest. Each painted
object stores its snapshot document under a user-chosen key (usually the
object or mesh file name), so one project can carry paint data for several
mesh instances.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any
import zipfile

from .serialization import PaintSnapshot, SnapshotFormatError


PROJECT_FORMAT = "meshpaint_project"
PROJECT_VERSION = 1
MANIFEST_NAME = "project.json"


class ProjectFormatError(RuntimeError):
    pass


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def save_paint_project(
    path: str | Path,
    snapshots: dict[str, PaintSnapshot],
    *,
    meta: dict[str, Any] | None = None,
) -> str:
    """
    Save paint snapshots to a project file.

    Args:
        path: destination path (usually ends with .mpp)
        snapshots: object key -> paint snapshot
        meta: optional metadata (e.g., app version, source mesh paths)
    """
    out_path = Path(path)
    doc: dict[str, Any] = {
        "format": PROJECT_FORMAT,
        "version": PROJECT_VERSION,
        "saved_at": _utc_now_iso(),
        "meta": dict(meta or {}),
        "objects": {str(key): snap.to_dict() for key, snap in snapshots.items()},
    }

    data = json.dumps(doc, ensure_ascii=False, indent=2)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(MANIFEST_NAME, data.encode("utf-8"))
    return str(out_path)


def _read_document(in_path: Path) -> dict[str, Any]:
    raw: str
    if zipfile.is_zipfile(in_path):
        with zipfile.ZipFile(in_path, "r") as zf:
            try:
                raw_bytes = zf.read(MANIFEST_NAME)
            except KeyError as e:
                raise ProjectFormatError(f"Missing {MANIFEST_NAME} in project file") from e
        raw = raw_bytes.decode("utf-8", errors="replace")
    else:
        # Developer-friendly fallback: allow plain JSON for debugging.
        raw = in_path.read_text(encoding="utf-8", errors="replace")

    try:
        doc = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProjectFormatError(f"Invalid JSON: {e}") from e

    if not isinstance(doc, dict):
        raise ProjectFormatError("Invalid project document (expected JSON object)")
    return doc


def load_paint_project(path: str | Path) -> tuple[dict[str, PaintSnapshot], dict[str, Any]]:
    """
    Load a project file.

    Returns:
        (snapshots, meta) where snapshots maps object key -> PaintSnapshot

    Raises:
        FileNotFoundError: path does not exist
        ProjectFormatError: wrong format/version or a corrupt object entry
    """
    in_path = Path(path)
    if not in_path.exists():
        raise FileNotFoundError(str(in_path))

    doc = _read_document(in_path)

    fmt = str(doc.get("format", "")).strip()
    ver = doc.get("version", None)
    if fmt != PROJECT_FORMAT:
        raise ProjectFormatError(f"Unsupported project format: {fmt!r}")
    if ver != PROJECT_VERSION:
        raise ProjectFormatError(f"Unsupported project version: {ver!r}")

    objects = doc.get("objects", None)
    if not isinstance(objects, dict):
        raise ProjectFormatError("Invalid project document: missing 'objects' object")

    snapshots: dict[str, PaintSnapshot] = {}
    for key, entry in objects.items():
        try:
            snapshots[str(key)] = PaintSnapshot.from_dict(entry)
        except SnapshotFormatError as e:
            raise ProjectFormatError(f"Invalid paint data for {key!r}: {e}") from e

    meta = doc.get("meta", {})
    if meta is None:
        meta = {}
    elif not isinstance(meta, dict):
        meta = {"_raw": meta}

    return snapshots, meta
