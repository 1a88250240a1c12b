"""
Patch Aggregator Module
Connected same-label regions, gap fill and render buffers.

A patch is a maximal set of edge-connected leaves sharing one label. Patches
smaller than the gap area that touch a strictly larger patch are "fragments":
for display they take the label of their largest such neighbor. A patch is
never absorbed into a smaller or equal one, so two small patches cannot trade
labels. Literal per-triangle labels only change through
`RenderPatchLayer.finalize_gap_fill`.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import logging
import math
from typing import Optional

import numpy as np

from .geometry import triangle_area
from .runtime_defaults import DEFAULTS, GAP_AREA_MAX, GAP_AREA_MIN, GAP_AREA_STEP
from .triangle_selector import TriangleSelector

_LOGGER = logging.getLogger(__name__)


@dataclass
class TrianglePatch:
    """
    One connected same-label region.

    Attributes:
        label: literal label shared by all members
        triangle_ids: member leaf ids in flood order
        neighbor_labels: labels of leaves touching the patch boundary
        neighbor_patches: indices of touching patches in the owning PatchSet
        area: surface area; a lower bound when `area_capped` is set
        area_capped: area summation stopped at the aggregator's ceiling
        is_fragment: area below the gap threshold and absorbed by a larger touching patch
        effective_label: label used for display/finalization
        vertices: (V, 3) float32 compact vertex buffer
        indices: (T, 3) uint32 triangle indices into `vertices`
        contour_edges: (E, 2) global vertex ids of edges bordering another effective label
    """
    label: int
    triangle_ids: list[int]
    neighbor_labels: set[int] = field(default_factory=set)
    neighbor_patches: set[int] = field(default_factory=set)
    area: float = 0.0
    area_capped: bool = False
    is_fragment: bool = False
    effective_label: int = 0
    vertices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.float32), repr=False)
    indices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.uint32), repr=False)
    contour_edges: np.ndarray = field(default_factory=lambda: np.zeros((0, 2), dtype=np.int64), repr=False)

    @property
    def n_triangles(self) -> int:
        return len(self.triangle_ids)


@dataclass
class PatchSet:
    """All patches of a selector at one point in time."""
    patches: list[TrianglePatch]
    patch_of: dict[int, int]
    generation: int
    gap_area: float

    def effective_label_of(self, tid: int) -> Optional[int]:
        idx = self.patch_of.get(int(tid))
        if idx is None:
            return None
        return self.patches[idx].effective_label

    def absorbed_triangle_count(self) -> int:
        return sum(p.n_triangles for p in self.patches if p.is_fragment)

    def contour_edges(self) -> np.ndarray:
        parts = [p.contour_edges for p in self.patches if p.contour_edges.size]
        if not parts:
            return np.zeros((0, 2), dtype=np.int64)
        return np.vstack(parts)


@dataclass
class SeedFillPreview:
    """Leaves marked by a pending bucket/smart fill, drawn in their own colour."""
    triangle_ids: list[int]
    vertices: np.ndarray
    indices: np.ndarray

    @property
    def is_empty(self) -> bool:
        return len(self.triangle_ids) == 0


def leaf_buffers(selector: TriangleSelector, triangle_ids, vertex_array: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Compact float32 vertex / uint32 index buffers for a set of leaves."""
    ids = list(triangle_ids)
    if not ids:
        return np.zeros((0, 3), dtype=np.float32), np.zeros((0, 3), dtype=np.uint32)
    faces = np.asarray([selector.triangle(t).verts for t in ids], dtype=np.int64)
    unique_verts, inverse = np.unique(faces.reshape(-1), return_inverse=True)
    vertices = vertex_array[unique_verts].astype(np.float32)
    indices = np.asarray(inverse).reshape(-1, 3).astype(np.uint32)
    return vertices, indices


class PatchAggregator:
    """
    Builds a PatchSet from the current selector state.

    Args:
        selector: paint-state core
        gap_area: fragments are patches with area strictly below this
        area_ceiling: stop summing a patch's area once it reaches this value
            (None computes exact areas)
        build_buffers: also produce render buffers and contour edges
    """

    def __init__(
        self,
        selector: TriangleSelector,
        *,
        gap_area: Optional[float] = None,
        area_ceiling: Optional[float] = None,
        build_buffers: bool = True,
    ):
        self.selector = selector
        self.gap_area = float(DEFAULTS.gap_area if gap_area is None else gap_area)
        self.area_ceiling = area_ceiling
        self.build_buffers = bool(build_buffers)

    def build(self, *, _retry: bool = True) -> PatchSet:
        sel = self.selector
        edge_cache: dict[int, list[list[int]]] = {}

        def edge_leaves(tid: int) -> list[list[int]]:
            cached = edge_cache.get(tid)
            if cached is None:
                cached = [sel.edge_leaves(tid, k) for k in range(3)]
                edge_cache[tid] = cached
            return cached

        leaves = list(sel.leaves())
        patches: list[TrianglePatch] = []
        patch_of: dict[int, int] = {}

        for start in leaves:
            if start in patch_of:
                continue
            label = sel.triangle(start).label
            idx = len(patches)
            patch = TrianglePatch(label=label, triangle_ids=[], effective_label=label)
            patch_of[start] = idx
            queue = deque([start])
            while queue:
                cur = queue.popleft()
                patch.triangle_ids.append(cur)
                for per_edge in edge_leaves(cur):
                    for nb in per_edge:
                        nb_label = sel.triangle(nb).label
                        if nb_label != label:
                            patch.neighbor_labels.add(nb_label)
                            continue
                        if nb not in patch_of:
                            patch_of[nb] = idx
                            queue.append(nb)
            patch.area, patch.area_capped = self._patch_area(patch.triangle_ids)
            patches.append(patch)

        n_members = sum(p.n_triangles for p in patches)
        if n_members != len(leaves) or len(patch_of) != len(leaves):
            sel.report_inconsistency(
                f"patch bookkeeping mismatch: {n_members} members for {len(leaves)} leaves"
            )
            # Non-strict fallback reset the selector to unpainted.
            if _retry:
                return self.build(_retry=False)
            return PatchSet(patches=[], patch_of={}, generation=sel.generation, gap_area=self.gap_area)

        for idx, patch in enumerate(patches):
            for tid in patch.triangle_ids:
                for per_edge in edge_leaves(tid):
                    for nb in per_edge:
                        other = patch_of[nb]
                        if other != idx:
                            patch.neighbor_patches.add(other)

        self._apply_gap_fill(patches)

        if self.build_buffers:
            vertex_array = sel.vertex_array()
            for patch in patches:
                self._fill_buffers(patch, vertex_array)
                patch.contour_edges = self._contour_edges(patch, patches, patch_of, edge_leaves)

        return PatchSet(patches=patches, patch_of=patch_of, generation=sel.generation, gap_area=self.gap_area)

    def _patch_area(self, triangle_ids: list[int]) -> tuple[float, bool]:
        ceiling = self.area_ceiling
        total = 0.0
        for tid in triangle_ids:
            a, b, c = self.selector.triangle_vertices(tid)
            total += triangle_area(a, b, c)
            if ceiling is not None and total >= ceiling:
                return total, True
        return total, False

    def _apply_gap_fill(self, patches: list[TrianglePatch]) -> None:
        # Targets are strictly larger, so resolving largest-first sees every
        # target's final label and chains of small patches cannot cycle.
        order = sorted(range(len(patches)), key=lambda i: patches[i].area, reverse=True)
        for idx in order:
            patch = patches[idx]
            patch.is_fragment = False
            patch.effective_label = patch.label
            if not patch.neighbor_labels or patch.area >= self.gap_area:
                continue
            larger = [i for i in patch.neighbor_patches if patches[i].area > patch.area]
            if not larger:
                continue
            # Largest touching patch wins; ties go to the smaller label.
            best = max(larger, key=lambda i: (patches[i].area, -patches[i].label))
            patch.is_fragment = True
            patch.effective_label = patches[best].effective_label

    def _fill_buffers(self, patch: TrianglePatch, vertex_array: np.ndarray) -> None:
        patch.vertices, patch.indices = leaf_buffers(self.selector, patch.triangle_ids, vertex_array)

    def _contour_edges(self, patch, patches, patch_of, edge_leaves) -> np.ndarray:
        edges: list[tuple[int, int]] = []
        own = patch.effective_label
        for tid in patch.triangle_ids:
            tri = self.selector.triangle(tid)
            for k, per_edge in enumerate(edge_leaves(tid)):
                if any(patches[patch_of[nb]].effective_label != own for nb in per_edge):
                    edges.append(tri.edge(k))
        if not edges:
            return np.zeros((0, 2), dtype=np.int64)
        return np.asarray(edges, dtype=np.int64)


class RenderPatchLayer:
    """
    Render capability layered on a TriangleSelector.

    Listens for the selector's change notification and rebuilds patches
    lazily, so a drag gesture that touches many triangles pays for a single
    rebuild before the next draw. Seed-fill marks only refresh the preview
    buffer, never the patches.
    """

    def __init__(self, selector: TriangleSelector, *, gap_area: Optional[float] = None):
        self.selector = selector
        self._gap_area = self._clamp_gap_area(DEFAULTS.gap_area if gap_area is None else gap_area)
        self._patch_set: Optional[PatchSet] = None
        self._preview: Optional[SeedFillPreview] = None
        self._dirty = True
        self.rebuild_count = 0
        selector.add_listener(self._on_patches_changed)
        selector.add_mark_listener(self._on_marks_changed)

    @staticmethod
    def _clamp_gap_area(value: float) -> float:
        v = float(value)
        if not math.isfinite(v):
            return GAP_AREA_MIN
        return min(GAP_AREA_MAX, max(GAP_AREA_MIN, v))

    def _on_patches_changed(self) -> None:
        self._dirty = True
        self._preview = None

    def _on_marks_changed(self) -> None:
        self._preview = None

    def close(self) -> None:
        self.selector.remove_listener(self._on_patches_changed)
        self.selector.remove_mark_listener(self._on_marks_changed)
        self._patch_set = None
        self._preview = None

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def gap_area(self) -> float:
        return self._gap_area

    @gap_area.setter
    def gap_area(self, value: float) -> None:
        v = self._clamp_gap_area(value)
        if v != self._gap_area:
            self._gap_area = v
            self._dirty = True

    def adjust_gap_area(self, steps: int) -> float:
        self.gap_area = self._gap_area + GAP_AREA_STEP * int(steps)
        return self._gap_area

    def patch_set(self) -> PatchSet:
        ps = self._patch_set
        if self._dirty or ps is None or ps.generation != self.selector.generation:
            ps = PatchAggregator(
                self.selector,
                gap_area=self._gap_area,
                area_ceiling=max(GAP_AREA_MAX, self._gap_area),
            ).build()
            self._patch_set = ps
            self._dirty = False
            self.rebuild_count += 1
            _LOGGER.debug("Rebuilt %d render patches (gap_area=%.3f)", len(ps.patches), self._gap_area)
        return ps

    def render_patches(self) -> list[TrianglePatch]:
        return self.patch_set().patches

    def seed_fill_preview(self) -> SeedFillPreview:
        """Buffers of the leaves a pending fill would paint."""
        if self._preview is None:
            ids = sorted(self.selector.seed_marked)
            vertices, indices = leaf_buffers(self.selector, ids, self.selector.vertex_array())
            self._preview = SeedFillPreview(triangle_ids=ids, vertices=vertices, indices=indices)
        return self._preview

    def effective_label_of(self, tid: int) -> Optional[int]:
        return self.patch_set().effective_label_of(tid)

    def contour_edges(self) -> np.ndarray:
        return self.patch_set().contour_edges()

    def finalize_gap_fill(self) -> int:
        """Write effective labels of fragments back into the selector."""
        mapping: dict[int, int] = {}
        for patch in self.patch_set().patches:
            if patch.is_fragment:
                for tid in patch.triangle_ids:
                    mapping[tid] = patch.effective_label
        if not mapping:
            return 0
        return self.selector.apply_labels(mapping)
