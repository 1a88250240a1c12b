"""
Paint snapshot encoding.

A snapshot records, for every level-0 triangle that is split or painted, a
pre-order token stream of its subdivision tree: a leaf emits its label, a
split triangle emits SPLIT_TOKEN followed by its four children. Replaying the
stream with the same quad-split pattern rebuilds subdivision and labels
exactly.

The byte form is private to this module apart from the format name and
version tag, which let future readers reject or migrate older blobs.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any
import zlib

from .labels import is_valid_label


SNAPSHOT_FORMAT = "meshpaint_snapshot"
SNAPSHOT_VERSION = 1
SPLIT_TOKEN = -1


class SnapshotFormatError(RuntimeError):
    """Persisted paint data is corrupt or written by an unsupported version."""


@dataclass(frozen=True)
class PaintSnapshot:
    """
    Immutable label-state snapshot.

    Attributes:
        n_triangles: level-0 triangle count of the mesh it was taken from
        roots: level-0 ids that carry a stream (unsplit NONE triangles are omitted)
        stream: concatenated pre-order token streams, one per root, in root order
        version: snapshot format version
    """

    n_triangles: int
    roots: tuple[int, ...] = ()
    stream: tuple[int, ...] = ()
    version: int = SNAPSHOT_VERSION

    @property
    def is_empty(self) -> bool:
        return len(self.roots) == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": SNAPSHOT_FORMAT,
            "version": int(self.version),
            "n_triangles": int(self.n_triangles),
            "roots": [int(r) for r in self.roots],
            "stream": [int(t) for t in self.stream],
        }

    @classmethod
    def from_dict(cls, doc: Any) -> "PaintSnapshot":
        if not isinstance(doc, dict):
            raise SnapshotFormatError("Invalid snapshot document (expected JSON object)")

        fmt = str(doc.get("format", "")).strip()
        ver = doc.get("version", None)
        if fmt != SNAPSHOT_FORMAT:
            raise SnapshotFormatError(f"Unsupported snapshot format: {fmt!r}")
        if ver != SNAPSHOT_VERSION:
            raise SnapshotFormatError(f"Unsupported snapshot version: {ver!r}")

        n_triangles = doc.get("n_triangles", None)
        roots = doc.get("roots", None)
        stream = doc.get("stream", None)
        if not isinstance(n_triangles, int) or isinstance(n_triangles, bool) or n_triangles < 0:
            raise SnapshotFormatError("Invalid snapshot: bad 'n_triangles'")
        if not isinstance(roots, list) or not isinstance(stream, list):
            raise SnapshotFormatError("Invalid snapshot: 'roots' and 'stream' must be lists")
        if not all(isinstance(r, int) and not isinstance(r, bool) for r in roots):
            raise SnapshotFormatError("Invalid snapshot: non-integer root id")
        for tok in stream:
            if isinstance(tok, bool) or not isinstance(tok, int):
                raise SnapshotFormatError("Invalid snapshot: non-integer token")
            if tok != SPLIT_TOKEN and not is_valid_label(tok):
                raise SnapshotFormatError(f"Invalid snapshot: unknown label token {tok!r}")

        return cls(n_triangles=n_triangles, roots=tuple(roots), stream=tuple(stream), version=ver)

    def to_bytes(self) -> bytes:
        data = json.dumps(self.to_dict(), separators=(",", ":"))
        return zlib.compress(data.encode("utf-8"))

    @classmethod
    def from_bytes(cls, blob: bytes) -> "PaintSnapshot":
        try:
            raw = zlib.decompress(bytes(blob))
        except (zlib.error, TypeError) as e:
            raise SnapshotFormatError(f"Corrupt snapshot data: {e}") from e
        try:
            doc = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SnapshotFormatError(f"Invalid snapshot JSON: {e}") from e
        return cls.from_dict(doc)
