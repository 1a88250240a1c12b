"""
Triangle Selector Module
Per-triangle paint state with adaptive subdivision.

The selector owns an arena of triangles addressed by stable integer ids. Ids
0..N-1 are the level-0 mesh faces; subdivision appends children after them.
A split triangle carries no paint of its own, only its leaves do.

Subdivision is a midpoint quad split. For a parent (v0, v1, v2) with edge
midpoints m01, m12, m20 the children are

    0: (v0,  m01, m20)    corner at v0
    1: (m01, v1,  m12)    corner at v1
    2: (m20, m12, v2 )    corner at v2
    3: (m01, m12, m20)    center

so that parent edge k is covered by edge k of children k and (k + 1) % 3.
Midpoints are shared through a cache keyed by the sorted vertex pair, which
lets neighbors be matched by vertex identity at any depth.

Instances are not thread-safe; callers own an instance exclusively for the
duration of each call.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import logging
import math
from typing import Callable, Iterator, Optional, Union

import numpy as np
import trimesh

from .cursor import ClippingPlane, Cursor, LocalCursor
from .geometry import (
    MeshTransform,
    point_triangle_distance,
    resolve_transform,
    triangle_area,
)
from .labels import PaintLabel, coerce_label
from .logging_utils import log_once
from .mesh_loader import MeshData
from .runtime_defaults import DEFAULTS
from .serialization import (
    SNAPSHOT_VERSION,
    SPLIT_TOKEN,
    PaintSnapshot,
    SnapshotFormatError,
)

_LOGGER = logging.getLogger(__name__)

# (child slot, edge) -> sibling slot sharing that interior edge
_INTERIOR_EDGES = {
    (0, 1): 3,
    (1, 2): 3,
    (2, 0): 3,
    (3, 0): 1,
    (3, 1): 2,
    (3, 2): 0,
}

_ANGLE_EPS = 1e-6
_MAX_RESTORE_DEPTH = 32


class InternalConsistencyError(RuntimeError):
    """Selector bookkeeping is broken (programming error, not user input)."""


@dataclass
class Triangle:
    """
    Arena entry.

    Attributes:
        verts: three vertex indices (counter-clockwise, same winding as the source face)
        source: level-0 triangle this one descends from
        parent: parent id, -1 for level-0 triangles
        depth: subdivision depth, 0 for level-0 triangles
        label: paint label (meaningful on leaves only)
        children: four child ids when split, empty otherwise
    """
    verts: tuple[int, int, int]
    source: int
    parent: int = -1
    depth: int = 0
    label: int = int(PaintLabel.NONE)
    children: tuple[int, ...] = ()

    @property
    def is_split(self) -> bool:
        return len(self.children) > 0

    def edge(self, k: int) -> tuple[int, int]:
        return self.verts[k], self.verts[(k + 1) % 3]

    def edge_index(self, a: int, b: int) -> Optional[int]:
        for k in range(3):
            u, v = self.edge(k)
            if (u == a and v == b) or (u == b and v == a):
                return k
        return None


def build_root_adjacency(faces: np.ndarray) -> np.ndarray:
    """
    (M, 3) neighbor table of level-0 faces; column k is the face across edge
    (v_k, v_{k+1}), -1 on a boundary. Non-manifold edges pair the first two
    faces found.
    """
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    n_faces = int(faces.shape[0])
    neighbors = np.full((n_faces, 3), -1, dtype=np.int64)
    if n_faces == 0:
        return neighbors

    e01 = faces[:, [0, 1]]
    e12 = faces[:, [1, 2]]
    e20 = faces[:, [2, 0]]
    edges = np.vstack([e01, e12, e20])
    edges.sort(axis=1)
    # Rows are stacked as [all e01, all e12, all e20].
    face_ids = np.tile(np.arange(n_faces, dtype=np.int64), 3)
    edge_slots = np.repeat(np.arange(3, dtype=np.int64), n_faces)

    order = np.lexsort((edges[:, 1], edges[:, 0]))
    edges_s = edges[order]
    face_s = face_ids[order]
    slot_s = edge_slots[order]

    is_new = np.empty((edges_s.shape[0],), dtype=bool)
    is_new[0] = True
    is_new[1:] = np.any(edges_s[1:] != edges_s[:-1], axis=1)
    starts = np.flatnonzero(is_new)
    counts = np.diff(np.append(starts, edges_s.shape[0]))

    paired = starts[counts >= 2]
    f0 = face_s[paired]
    f1 = face_s[paired + 1]
    k0 = slot_s[paired]
    k1 = slot_s[paired + 1]
    # A face glued to itself (degenerate input) stays a boundary.
    ok = f0 != f1
    neighbors[f0[ok], k0[ok]] = f1[ok]
    neighbors[f1[ok], k1[ok]] = f0[ok]
    return neighbors


class TriangleSelector:
    """
    Paint-state core for one mesh instance.

    Rendering concerns live in `patches.RenderPatchLayer`, which subscribes to
    the change notification exposed by `add_listener` and to seed-fill
    mark changes through `add_mark_listener`.
    """

    def __init__(
        self,
        mesh: Union[MeshData, "trimesh.Trimesh"],
        *,
        min_edge_length: Optional[float] = None,
        max_depth: Optional[int] = None,
        strict: Optional[bool] = None,
    ):
        """
        Args:
            mesh: level-0 mesh (read-only afterwards); coincident vertices are welded
            min_edge_length: split requests below this edge length are ignored
            max_depth: maximum subdivision depth
            strict: raise on internal consistency failures instead of resetting
        """
        if isinstance(mesh, trimesh.Trimesh):
            mesh = MeshData.from_trimesh(mesh)
        self._mesh = mesh.welded()
        self._mesh.compute_normals()

        self.min_edge_length = float(DEFAULTS.min_edge_length if min_edge_length is None else min_edge_length)
        self.max_depth = int(DEFAULTS.max_split_depth if max_depth is None else max_depth)
        self.strict = bool(DEFAULTS.strict_checks if strict is None else strict)

        faces = self._mesh.faces
        self._n_roots = int(faces.shape[0])
        self._root_normals = np.asarray(self._mesh.face_normals, dtype=np.float64)
        self._root_neighbors = build_root_adjacency(faces)
        if self._n_roots > 0:
            corners = self._mesh.vertices[faces]
            self._root_box_min = corners.min(axis=1)
            self._root_box_max = corners.max(axis=1)
        else:
            self._root_box_min = np.zeros((0, 3), dtype=np.float64)
            self._root_box_max = np.zeros((0, 3), dtype=np.float64)

        self._listeners: list[Callable[[], None]] = []
        self._mark_listeners: list[Callable[[], None]] = []
        self.generation = 0
        self._vertices: list[np.ndarray] = []
        self._triangles: list[Triangle] = []
        self._midpoints: dict[tuple[int, int], int] = {}
        self._seed_marked: set[int] = set()
        self._reset_arena()

    # ------------------------------------------------------------------
    # Arena bookkeeping
    # ------------------------------------------------------------------

    def _reset_arena(self) -> None:
        self._vertices = [np.array(v, dtype=np.float64) for v in self._mesh.vertices]
        self._triangles = [
            Triangle(verts=(int(f[0]), int(f[1]), int(f[2])), source=i)
            for i, f in enumerate(self._mesh.faces)
        ]
        self._midpoints = {}
        self._seed_marked = set()
        self.generation += 1

    def reset(self) -> None:
        """Drop all subdivision and paint (back to an unpainted level-0 mesh)."""
        self._reset_arena()
        self._notify_changed()

    @property
    def mesh(self) -> MeshData:
        return self._mesh

    @property
    def n_level0(self) -> int:
        return self._n_roots

    @property
    def n_triangles(self) -> int:
        return len(self._triangles)

    @property
    def n_vertices(self) -> int:
        return len(self._vertices)

    def vertex_array(self) -> np.ndarray:
        if not self._vertices:
            return np.zeros((0, 3), dtype=np.float64)
        return np.asarray(self._vertices, dtype=np.float64)

    def is_valid_id(self, tid) -> bool:
        try:
            t = int(tid)
        except (TypeError, ValueError):
            return False
        return 0 <= t < len(self._triangles)

    def triangle(self, tid: int) -> Triangle:
        return self._triangles[int(tid)]

    def triangle_vertices(self, tid: int) -> np.ndarray:
        tri = self._triangles[int(tid)]
        return np.asarray([self._vertices[v] for v in tri.verts], dtype=np.float64)

    def triangle_area(self, tid: int) -> float:
        a, b, c = self.triangle_vertices(tid)
        return triangle_area(a, b, c)

    def normal_of(self, tid: int) -> np.ndarray:
        """Unit normal; children are coplanar with their level-0 source."""
        return self._root_normals[self._triangles[int(tid)].source]

    def leaves(self) -> Iterator[int]:
        for tid, tri in enumerate(self._triangles):
            if not tri.is_split:
                yield tid

    @property
    def n_leaves(self) -> int:
        return sum(1 for _ in self.leaves())

    def leaves_of(self, tid: int) -> list[int]:
        out: list[int] = []
        stack = [int(tid)]
        while stack:
            x = stack.pop()
            tri = self._triangles[x]
            if tri.is_split:
                stack.extend(reversed(tri.children))
            else:
                out.append(x)
        return out

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def add_mark_listener(self, callback: Callable[[], None]) -> None:
        """Subscribe to seed-fill mark changes (fill previews); labels are untouched by these."""
        if callback not in self._mark_listeners:
            self._mark_listeners.append(callback)

    def remove_mark_listener(self, callback: Callable[[], None]) -> None:
        if callback in self._mark_listeners:
            self._mark_listeners.remove(callback)

    def _notify_changed(self) -> None:
        for cb in list(self._listeners):
            cb()

    def _notify_marks_changed(self) -> None:
        for cb in list(self._mark_listeners):
            cb()

    # ------------------------------------------------------------------
    # Subdivision
    # ------------------------------------------------------------------

    def _midpoint(self, a: int, b: int) -> int:
        key = (a, b) if a < b else (b, a)
        idx = self._midpoints.get(key)
        if idx is None:
            idx = len(self._vertices)
            self._vertices.append((self._vertices[a] + self._vertices[b]) * 0.5)
            self._midpoints[key] = idx
        return idx

    def _longest_edge(self, tri: Triangle) -> float:
        p = [self._vertices[v] for v in tri.verts]
        return max(
            float(np.linalg.norm(p[1] - p[0])),
            float(np.linalg.norm(p[2] - p[1])),
            float(np.linalg.norm(p[0] - p[2])),
        )

    def _split_unchecked(self, tid: int) -> None:
        tri = self._triangles[tid]
        v0, v1, v2 = tri.verts
        m01 = self._midpoint(v0, v1)
        m12 = self._midpoint(v1, v2)
        m20 = self._midpoint(v2, v0)
        base = len(self._triangles)
        for verts in ((v0, m01, m20), (m01, v1, m12), (m20, m12, v2), (m01, m12, m20)):
            self._triangles.append(
                Triangle(
                    verts=verts,
                    source=tri.source,
                    parent=tid,
                    depth=tri.depth + 1,
                    label=tri.label,
                )
            )
        tri.children = (base, base + 1, base + 2, base + 3)

    def can_split(self, tid: int, edge_limit: float) -> bool:
        if not self.is_valid_id(tid):
            return False
        tri = self._triangles[int(tid)]
        if tri.is_split or tri.depth >= self.max_depth:
            return False
        limit = max(float(edge_limit), self.min_edge_length)
        return self._longest_edge(tri) > limit

    def split(self, tid: int, edge_limit: float) -> bool:
        """
        Quad-split a leaf whose longest edge exceeds `edge_limit`.

        Requests on split triangles, at the depth bound, or below the minimum
        edge length are ignored. Returns True when the triangle was split.
        """
        if not self.can_split(tid, edge_limit):
            return False
        self._split_unchecked(int(tid))
        self._notify_changed()
        return True

    # ------------------------------------------------------------------
    # Adjacency
    # ------------------------------------------------------------------

    def _neighbor(self, tid: int, k: int) -> Optional[int]:
        tri = self._triangles[tid]
        if tri.parent < 0:
            nb = int(self._root_neighbors[tid, k])
            return None if nb < 0 else nb

        parent = self._triangles[tri.parent]
        slot = parent.children.index(tid)
        sibling = _INTERIOR_EDGES.get((slot, k))
        if sibling is not None:
            return parent.children[sibling]

        # Exterior edge: lies on parent edge k.
        outer = self._neighbor(tri.parent, k)
        if outer is None:
            return None
        o = self._triangles[outer]
        if not o.is_split:
            return outer
        a, b = tri.edge(k)
        for child in o.children:
            if self._triangles[child].edge_index(a, b) is not None:
                return child
        log_once(
            _LOGGER,
            "triangle_selector:neighbor_mismatch",
            logging.WARNING,
            "Neighbor of triangle %d across edge %d has no matching child edge",
            tid,
            k,
        )
        return None

    def neighbors(self, tid: int) -> tuple[Optional[int], Optional[int], Optional[int]]:
        """
        Triangle of the same or coarser depth across each edge, None at a
        mesh boundary. The entry may itself be split; use `edge_leaves` or
        `touching_triangles` for leaf-level adjacency.
        """
        t = int(tid)
        return self._neighbor(t, 0), self._neighbor(t, 1), self._neighbor(t, 2)

    def edge_leaves(self, tid: int, k: int) -> list[int]:
        """Leaf triangles sharing (part of) edge k of `tid`."""
        t = int(tid)
        nb = self._neighbor(t, k)
        if nb is None:
            return []
        n_tri = self._triangles[nb]
        if not n_tri.is_split:
            return [nb]

        a, b = self._triangles[t].edge(k)
        j = n_tri.edge_index(a, b)
        if j is None:
            return []
        out: list[int] = []
        stack = [nb]
        while stack:
            x = stack.pop()
            x_tri = self._triangles[x]
            if not x_tri.is_split:
                out.append(x)
                continue
            stack.append(x_tri.children[(j + 1) % 3])
            stack.append(x_tri.children[j])
        return out

    def touching_triangles(self, tid: int) -> list[int]:
        """All leaves sharing an edge segment with `tid` (any depth)."""
        out: list[int] = []
        seen: set[int] = set()
        for k in range(3):
            for x in self.edge_leaves(tid, k):
                if x not in seen:
                    seen.add(x)
                    out.append(x)
        return out

    # ------------------------------------------------------------------
    # Labels and queries
    # ------------------------------------------------------------------

    def label_of(self, tid: int) -> Optional[int]:
        """
        Label of a triangle. Split triangles report the common label of their
        leaves, or None when the leaves disagree.
        """
        if not self.is_valid_id(tid):
            return None
        labels = {self._triangles[x].label for x in self.leaves_of(int(tid))}
        if len(labels) == 1:
            return next(iter(labels))
        return None

    def leaf_at(self, tid: int, point: np.ndarray) -> int:
        """Descend from `tid` to the leaf closest to a mesh-local point."""
        p = np.asarray(point, dtype=np.float64).reshape(3)
        x = int(tid)
        while self._triangles[x].is_split:
            children = self._triangles[x].children
            dists = [point_triangle_distance(p, *self.triangle_vertices(c)) for c in children]
            x = children[int(np.argmin(dists))]
        return x

    def nearest_triangle(self, point: np.ndarray) -> Optional[int]:
        """Level-0 triangle closest to a mesh-local point."""
        if self._n_roots == 0:
            return None
        p = np.asarray(point, dtype=np.float64).reshape(3)
        if not np.all(np.isfinite(p)):
            return None
        tris = self._mesh.vertices[self._mesh.faces]
        closest = trimesh.triangles.closest_point(tris, np.tile(p, (self._n_roots, 1)))
        dist = np.linalg.norm(closest - p, axis=1)
        return int(np.argmin(dist))

    def label_at(self, point: np.ndarray, facet: Optional[int] = None) -> Optional[int]:
        """Label of the leaf under a mesh-local point (optionally hinted by its level-0 facet)."""
        if facet is None or not self.is_valid_id(facet):
            facet = self.nearest_triangle(point)
            if facet is None:
                return None
        leaf = self.leaf_at(int(facet), point)
        return self._triangles[leaf].label

    def is_seed_marked(self, tid: int) -> bool:
        return int(tid) in self._seed_marked

    @property
    def seed_marked(self) -> frozenset[int]:
        return frozenset(self._seed_marked)

    def _set_leaf_label(self, tid: int, label: int) -> int:
        tri = self._triangles[tid]
        if tri.label == label:
            return 0
        tri.label = label
        return 1

    def _set_label_recursive(self, tid: int, label: int) -> int:
        return sum(self._set_leaf_label(x, label) for x in self.leaves_of(tid))

    def apply_labels(self, mapping: dict[int, int]) -> int:
        """
        Explicitly overwrite leaf labels (merge/finalize step). Unknown ids,
        split triangles and invalid labels are skipped.
        """
        changed = 0
        for tid, label in mapping.items():
            lab = coerce_label(label)
            if lab is None or not self.is_valid_id(tid):
                continue
            if self._triangles[int(tid)].is_split:
                continue
            changed += self._set_leaf_label(int(tid), lab)
        if changed:
            self._notify_changed()
        return changed

    def labeled_area(self, label: int) -> float:
        return float(sum(self.triangle_area(t) for t in self.leaves() if self._triangles[t].label == label))

    def has_facets(self, label: int) -> bool:
        return any(self._triangles[t].label == label for t in self.leaves())

    def label_counts(self) -> dict[int, int]:
        counts: dict[int, int] = {}
        for t in self.leaves():
            lab = self._triangles[t].label
            counts[lab] = counts.get(lab, 0) + 1
        return counts

    def get_facets(self, label: int) -> MeshData:
        """Leaves carrying `label` as a compact mesh (for slicing/export)."""
        ids = [t for t in self.leaves() if self._triangles[t].label == label]
        arena = MeshData(
            vertices=self.vertex_array(),
            faces=np.asarray([tri.verts for tri in self._triangles], dtype=np.int64),
            unit=self._mesh.unit,
        )
        return arena.extract_submesh(np.asarray(ids, dtype=np.int64))

    # ------------------------------------------------------------------
    # Brush painting
    # ------------------------------------------------------------------

    def _overhang_filter(self, transform: MeshTransform, angle_deg: Optional[float]) -> Optional[np.ndarray]:
        if angle_deg is None or not np.isfinite(angle_deg) or angle_deg <= 0.0:
            return None
        down_local = transform.direction_to_local(np.array([0.0, 0.0, -1.0]))
        cos_limit = math.cos(math.radians(min(float(angle_deg), 180.0)))
        return (self._root_normals @ down_local) >= cos_limit - _ANGLE_EPS

    def select_patch(
        self,
        cursor: Union[Cursor, LocalCursor],
        label: int,
        *,
        transform: Optional[MeshTransform] = None,
        facet_start: Optional[int] = None,
        edge_limit: Optional[float] = None,
        triangle_splitting: bool = True,
        overhang_angle_deg: Optional[float] = None,
    ) -> int:
        """
        Paint every triangle under the cursor footprint with `label`.

        Triangles fully inside the footprint are labeled as a whole; triangles
        crossing its boundary are split down to `edge_limit` and the smallest
        pieces take the label when their centroid is inside. With
        `facet_start`, painting only spreads to level-0 triangles connected to
        that facet through the footprint.

        Returns:
            Number of leaves whose label changed.
        """
        lab = coerce_label(label)
        if lab is None:
            _LOGGER.debug("select_patch: ignoring invalid label %r", label)
            return 0

        trafo = resolve_transform(transform)
        local = cursor.to_local(trafo) if isinstance(cursor, Cursor) else cursor
        if not local.is_valid:
            _LOGGER.debug("select_patch: ignoring degenerate cursor %s", local.kind)
            return 0
        if self._n_roots == 0:
            return 0

        limit = local.edge_limit(DEFAULTS.edge_limit_ratio) if edge_limit is None else float(edge_limit)
        if not triangle_splitting:
            limit = math.inf
        allowed = self._overhang_filter(trafo, overhang_angle_deg)

        candidates = local.overlaps_boxes(self._root_box_min, self._root_box_max)
        if allowed is not None:
            candidates &= allowed

        if facet_start is not None and self.is_valid_id(facet_start):
            roots = self._roots_connected_under_cursor(self._triangles[int(facet_start)].source, local, candidates)
        else:
            roots = [int(r) for r in np.flatnonzero(candidates)]

        changed = 0
        for root in roots:
            changed += self._paint_triangle(root, local, lab, limit)

        if changed:
            self._notify_changed()
        return changed

    def _roots_connected_under_cursor(self, start: int, cursor: LocalCursor, candidates: np.ndarray) -> list[int]:
        if not candidates[start]:
            return []
        out: list[int] = []
        visited = {start}
        queue = deque([start])
        while queue:
            r = queue.popleft()
            a, b, c = self.triangle_vertices(r)
            if not cursor.touches_triangle(a, b, c):
                continue
            out.append(r)
            for nb in self._root_neighbors[r]:
                nb = int(nb)
                if nb >= 0 and nb not in visited and candidates[nb]:
                    visited.add(nb)
                    queue.append(nb)
        return out

    def _paint_triangle(self, tid: int, cursor: LocalCursor, label: int, edge_limit: float) -> int:
        a, b, c = self.triangle_vertices(tid)
        if not cursor.touches_triangle(a, b, c):
            return 0
        if cursor.contains_triangle(a, b, c):
            return self._set_label_recursive(tid, label)

        tri = self._triangles[tid]
        if not tri.is_split and self.can_split(tid, edge_limit):
            self._split_unchecked(tid)
        if tri.is_split:
            return sum(self._paint_triangle(ch, cursor, label, edge_limit) for ch in tri.children)

        if cursor.contains_point((a + b + c) / 3.0):
            return self._set_leaf_label(tid, label)
        return 0

    # ------------------------------------------------------------------
    # Seed fill (bucket / smart fill)
    # ------------------------------------------------------------------

    def seed_fill_select(
        self,
        seed: int,
        *,
        angle_threshold: Optional[float] = math.pi,
        mode: str = "smart",
        point: Optional[np.ndarray] = None,
        clipping_plane: Optional[ClippingPlane] = None,
        transform: Optional[MeshTransform] = None,
    ) -> int:
        """
        Mark the region grown from `seed` (first phase of a fill).

        Args:
            seed: triangle id; split triangles descend to the leaf under `point`
                (or under their centroid)
            angle_threshold: max angle in radians between the normals of a
                growing triangle and its neighbor. 0 keeps to coplanar
                triangles, >= pi or None is unconstrained.
            mode: "smart" grows over any label, "bucket" only over leaves that
                share the seed's current label
            point: mesh-local hit point used to pick the seed leaf
            clipping_plane: world-space clip; fully clipped triangles are skipped
            transform: mesh transform used to map the clipping plane

        Returns:
            Number of marked leaves.
        """
        self._seed_marked = set()
        m = str(mode or "smart").strip().lower()
        if m not in {"smart", "bucket"}:
            _LOGGER.debug("seed_fill_select: unknown mode %r", mode)
            self._notify_marks_changed()
            return 0
        if not self.is_valid_id(seed):
            _LOGGER.debug("seed_fill_select: invalid seed %r", seed)
            self._notify_marks_changed()
            return 0

        cos_limit: Optional[float] = None
        if angle_threshold is not None:
            ang = float(angle_threshold)
            if not np.isfinite(ang) or ang < 0.0:
                _LOGGER.debug("seed_fill_select: invalid angle %r", angle_threshold)
                self._notify_marks_changed()
                return 0
            if ang < math.pi:
                cos_limit = math.cos(ang) - _ANGLE_EPS

        clip = None
        if clipping_plane is not None:
            clip = clipping_plane.to_local(resolve_transform(transform))

        seed_id = int(seed)
        if self._triangles[seed_id].is_split:
            if point is None:
                point = self.triangle_vertices(seed_id).mean(axis=0)
            seed_id = self.leaf_at(seed_id, point)

        if clip is not None and self._is_clipped(seed_id, clip):
            self._notify_marks_changed()
            return 0

        seed_label = self._triangles[seed_id].label
        visited = {seed_id}
        queue = deque([seed_id])
        while queue:
            cur = queue.popleft()
            self._seed_marked.add(cur)
            n_cur = self.normal_of(cur)
            for nb in self.touching_triangles(cur):
                if nb in visited:
                    continue
                if m == "bucket" and self._triangles[nb].label != seed_label:
                    continue
                if cos_limit is not None and float(np.dot(n_cur, self.normal_of(nb))) < cos_limit:
                    continue
                if clip is not None and self._is_clipped(nb, clip):
                    continue
                visited.add(nb)
                queue.append(nb)

        self._notify_marks_changed()
        return len(self._seed_marked)

    def _is_clipped(self, tid: int, clip: ClippingPlane) -> bool:
        a, b, c = self.triangle_vertices(tid)
        return clip.is_clipped(a) and clip.is_clipped(b) and clip.is_clipped(c)

    def seed_fill_apply(self, label: int) -> int:
        """Apply `label` to all marked leaves and clear the marks."""
        lab = coerce_label(label)
        if lab is None:
            _LOGGER.debug("seed_fill_apply: ignoring invalid label %r", label)
            return 0
        changed = 0
        for tid in sorted(self._seed_marked):
            if not self._triangles[tid].is_split:
                changed += self._set_leaf_label(tid, lab)
        had_marks = bool(self._seed_marked)
        self._seed_marked = set()
        if changed:
            self._notify_changed()
        if had_marks:
            self._notify_marks_changed()
        return changed

    def seed_fill_unselect_all(self) -> None:
        if self._seed_marked:
            self._seed_marked = set()
            self._notify_marks_changed()

    def smart_fill(self, seed: int, label: int, angle_threshold: float, **kwargs) -> int:
        if coerce_label(label) is None:
            return 0
        self.seed_fill_select(seed, angle_threshold=angle_threshold, mode="smart", **kwargs)
        return self.seed_fill_apply(label)

    def bucket_fill(self, seed: int, label: int, angle_threshold: Optional[float] = None, **kwargs) -> int:
        if coerce_label(label) is None:
            return 0
        self.seed_fill_select(seed, angle_threshold=angle_threshold, mode="bucket", **kwargs)
        return self.seed_fill_apply(label)

    # ------------------------------------------------------------------
    # Snapshot / restore
    # ------------------------------------------------------------------

    def snapshot(self) -> PaintSnapshot:
        roots: list[int] = []
        stream: list[int] = []
        for root in range(self._n_roots):
            tri = self._triangles[root]
            if not tri.is_split and tri.label == int(PaintLabel.NONE):
                continue
            roots.append(root)
            stack = [root]
            while stack:
                x = self._triangles[stack.pop()]
                if x.is_split:
                    stream.append(SPLIT_TOKEN)
                    stack.extend(reversed(x.children))
                else:
                    stream.append(int(x.label))
        return PaintSnapshot(n_triangles=self._n_roots, roots=tuple(roots), stream=tuple(stream))

    def restore(self, snapshot: PaintSnapshot) -> None:
        """
        Rebuild subdivision and labels from a snapshot.

        Raises:
            SnapshotFormatError: version or mesh mismatch (checked before the
                arena is touched, so current paint is kept), or a corrupt
                stream (the selector is left unpainted).
        """
        if snapshot.version != SNAPSHOT_VERSION:
            raise SnapshotFormatError(f"Unsupported snapshot version: {snapshot.version!r}")
        if snapshot.n_triangles != self._n_roots:
            raise SnapshotFormatError(
                f"Snapshot was taken on a mesh with {snapshot.n_triangles} triangles, "
                f"this mesh has {self._n_roots}"
            )

        self._reset_arena()
        try:
            self._replay(snapshot)
        except SnapshotFormatError:
            self._reset_arena()
            self._notify_changed()
            raise
        self._notify_changed()

    def _replay(self, snapshot: PaintSnapshot) -> None:
        stream = snapshot.stream
        pos = 0
        seen: set[int] = set()
        for root in snapshot.roots:
            if not (0 <= root < self._n_roots) or root in seen:
                raise SnapshotFormatError(f"Invalid snapshot root id: {root!r}")
            seen.add(root)
            stack = [root]
            while stack:
                x = stack.pop()
                if pos >= len(stream):
                    raise SnapshotFormatError("Truncated snapshot stream")
                tok = stream[pos]
                pos += 1
                if tok == SPLIT_TOKEN:
                    if self._triangles[x].depth >= _MAX_RESTORE_DEPTH:
                        raise SnapshotFormatError("Snapshot subdivision is too deep")
                    self._split_unchecked(x)
                    stack.extend(reversed(self._triangles[x].children))
                else:
                    lab = coerce_label(tok)
                    if lab is None:
                        raise SnapshotFormatError(f"Invalid label token: {tok!r}")
                    self._triangles[x].label = lab
        if pos != len(stream):
            raise SnapshotFormatError("Trailing data in snapshot stream")

    # ------------------------------------------------------------------
    # Consistency checks
    # ------------------------------------------------------------------

    def validate(self, *, check_adjacency: bool = True, rel_tol: float = 1e-6) -> list[str]:
        """Return a list of consistency violations (empty when consistent)."""
        problems: list[str] = []
        for tid, tri in enumerate(self._triangles):
            if tri.is_split:
                if len(tri.children) != 4:
                    problems.append(f"triangle {tid}: {len(tri.children)} children")
                    continue
                if any(self._triangles[c].parent != tid for c in tri.children):
                    problems.append(f"triangle {tid}: child parent link mismatch")
                parent_area = self.triangle_area(tid)
                child_area = sum(self.triangle_area(c) for c in tri.children)
                if abs(parent_area - child_area) > rel_tol * max(1.0, parent_area):
                    problems.append(f"triangle {tid}: children cover {child_area} of {parent_area}")
            elif coerce_label(tri.label) is None:
                problems.append(f"triangle {tid}: invalid label {tri.label!r}")

        if check_adjacency:
            for tid in self.leaves():
                for nb in self.touching_triangles(tid):
                    if tid not in self.touching_triangles(nb):
                        problems.append(f"adjacency not symmetric: {tid} -> {nb}")
        return problems

    def report_inconsistency(self, message: str) -> None:
        """
        Internal consistency failure: raise in strict mode, otherwise log once
        and fall back to an unpainted mesh.
        """
        if self.strict:
            raise InternalConsistencyError(message)
        log_once(
            _LOGGER,
            f"triangle_selector:inconsistent:{message}",
            logging.ERROR,
            "Paint state inconsistent (%s); resetting to unpainted",
            message,
        )
        self.reset()

    def check_consistency(self, *, check_adjacency: bool = False) -> bool:
        problems = self.validate(check_adjacency=check_adjacency)
        if problems:
            self.report_inconsistency("; ".join(problems[:5]))
            return False
        return True

