"""
Cursor Module
Paint tool footprints and triangle hit testing.

Cursors are described in world space (what the gesture layer delivers) and
mapped to mesh-local coordinates with `Cursor.to_local` before they are tested
against triangles. The mesh transform only carries a uniform scale, so world
distances map to local distances by a single factor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .geometry import (
    MeshTransform,
    point_segment_distance,
    point_triangle_distance,
    resolve_transform,
    segment_triangle_distance,
)


class CursorType(str, Enum):
    SPHERE = "sphere"
    CIRCLE = "circle"
    HEIGHT_RANGE = "height_range"
    POINTER = "pointer"


@dataclass(frozen=True)
class ClippingPlane:
    """
    Half-space clip: points with dot(normal, p) > offset are clipped away.
    """

    normal: np.ndarray
    offset: float

    def __post_init__(self):
        n = np.asarray(self.normal, dtype=np.float64).reshape(3)
        norm = float(np.linalg.norm(n))
        if norm > 0.0:
            n = n / norm
        object.__setattr__(self, "normal", n)
        object.__setattr__(self, "offset", float(self.offset))

    @property
    def is_active(self) -> bool:
        return bool(np.any(self.normal != 0.0)) and bool(np.isfinite(self.offset))

    def is_clipped(self, p: np.ndarray) -> bool:
        if not self.is_active:
            return False
        return float(np.dot(self.normal, p)) > self.offset

    def to_local(self, transform: MeshTransform) -> "ClippingPlane":
        n_local = transform.rotation_matrix.T @ self.normal
        offset_local = (self.offset - float(np.dot(self.normal, transform.translation))) / transform.scale
        return ClippingPlane(normal=n_local, offset=offset_local)


@dataclass(frozen=True)
class Cursor:
    """World-space cursor as delivered by the gesture layer."""

    kind: CursorType
    center: Optional[np.ndarray] = None
    radius: float = 0.0
    previous_center: Optional[np.ndarray] = None
    direction: Optional[np.ndarray] = None
    height_range: Optional[tuple[float, float]] = None
    clipping_plane: Optional[ClippingPlane] = None

    @classmethod
    def sphere(cls, center, radius: float, *, previous_center=None,
               clipping_plane: Optional[ClippingPlane] = None) -> "Cursor":
        return cls(
            kind=CursorType.SPHERE,
            center=np.asarray(center, dtype=np.float64).reshape(3),
            radius=float(radius),
            previous_center=None if previous_center is None else np.asarray(previous_center, dtype=np.float64).reshape(3),
            clipping_plane=clipping_plane,
        )

    @classmethod
    def circle(cls, center, radius: float, direction, *, previous_center=None,
               clipping_plane: Optional[ClippingPlane] = None) -> "Cursor":
        return cls(
            kind=CursorType.CIRCLE,
            center=np.asarray(center, dtype=np.float64).reshape(3),
            radius=float(radius),
            previous_center=None if previous_center is None else np.asarray(previous_center, dtype=np.float64).reshape(3),
            direction=np.asarray(direction, dtype=np.float64).reshape(3),
            clipping_plane=clipping_plane,
        )

    @classmethod
    def height(cls, low: float, high: float, *,
               clipping_plane: Optional[ClippingPlane] = None) -> "Cursor":
        return cls(
            kind=CursorType.HEIGHT_RANGE,
            height_range=(float(low), float(high)),
            clipping_plane=clipping_plane,
        )

    def to_local(self, transform: Optional[MeshTransform] = None) -> "LocalCursor":
        trafo = resolve_transform(transform)
        clip = self.clipping_plane.to_local(trafo) if self.clipping_plane is not None else None

        if self.kind == CursorType.HEIGHT_RANGE:
            low, high = self.height_range if self.height_range is not None else (0.0, 0.0)
            # World z of a local point p is scale * dot(R[2], p) + t_z.
            axis = trafo.rotation_matrix[2, :].copy()
            tz = float(trafo.translation[2])
            return LocalCursor(
                kind=self.kind,
                radius=0.0,
                axis=axis,
                low=(float(low) - tz) / trafo.scale,
                high=(float(high) - tz) / trafo.scale,
                clipping_plane=clip,
            )

        center = None
        if self.center is not None:
            center = trafo.world_to_local(self.center.reshape(1, 3))[0]
        prev = None
        if self.previous_center is not None:
            prev = trafo.world_to_local(self.previous_center.reshape(1, 3))[0]
        direction = None
        if self.direction is not None:
            direction = trafo.direction_to_local(self.direction)

        return LocalCursor(
            kind=self.kind,
            center=center,
            previous_center=prev,
            radius=trafo.length_to_local(self.radius) if np.isfinite(self.radius) else 0.0,
            axis=direction,
            clipping_plane=clip,
        )


@dataclass(frozen=True)
class LocalCursor:
    """Cursor in mesh-local coordinates; all hit tests live here."""

    kind: CursorType
    center: Optional[np.ndarray] = None
    previous_center: Optional[np.ndarray] = None
    radius: float = 0.0
    # Camera direction for CIRCLE, world-up expressed locally for HEIGHT_RANGE.
    axis: Optional[np.ndarray] = None
    low: float = 0.0
    high: float = 0.0
    clipping_plane: Optional[ClippingPlane] = None

    @property
    def is_valid(self) -> bool:
        if self.kind == CursorType.HEIGHT_RANGE:
            return bool(self.axis is not None and np.isfinite(self.low) and np.isfinite(self.high) and self.low < self.high)
        if self.kind == CursorType.POINTER:
            return False
        if self.center is None or not np.all(np.isfinite(self.center)):
            return False
        if not (np.isfinite(self.radius) and self.radius > 0.0):
            return False
        if self.kind == CursorType.CIRCLE:
            return self.axis is not None and float(np.linalg.norm(self.axis)) > 0.0
        return True

    @property
    def is_swept(self) -> bool:
        return self.previous_center is not None and not np.allclose(self.previous_center, self.center)

    def edge_limit(self, ratio: float) -> float:
        """Target edge length for subdivision near this cursor's boundary."""
        if self.kind == CursorType.HEIGHT_RANGE:
            return float(self.high - self.low) * float(ratio)
        return float(self.radius) * float(ratio)

    def _project(self, p: np.ndarray) -> np.ndarray:
        if self.kind == CursorType.CIRCLE and self.axis is not None:
            return p - float(np.dot(p, self.axis)) * self.axis
        return p

    def _height(self, p: np.ndarray) -> float:
        return float(np.dot(self.axis, p))

    def is_clipped(self, p: np.ndarray) -> bool:
        return self.clipping_plane is not None and self.clipping_plane.is_clipped(p)

    def is_triangle_clipped(self, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> bool:
        """True when every vertex lies beyond the clipping plane."""
        if self.clipping_plane is None:
            return False
        return self.is_clipped(a) and self.is_clipped(b) and self.is_clipped(c)

    def contains_point(self, p: np.ndarray) -> bool:
        if self.is_clipped(p):
            return False
        if self.kind == CursorType.HEIGHT_RANGE:
            h = self._height(p)
            return self.low <= h < self.high

        q = self._project(p)
        c = self._project(self.center)
        if self.is_swept:
            d = point_segment_distance(q, self._project(self.previous_center), c)
        else:
            d = float(np.linalg.norm(q - c))
        return d <= self.radius

    def contains_triangle(self, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> bool:
        # Every footprint is convex, so containing the corners means containing the triangle.
        return self.contains_point(a) and self.contains_point(b) and self.contains_point(c)

    def touches_triangle(self, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> bool:
        if self.is_triangle_clipped(a, b, c):
            return False
        if self.kind == CursorType.HEIGHT_RANGE:
            hs = (self._height(a), self._height(b), self._height(c))
            return min(hs) < self.high and max(hs) >= self.low

        pa, pb, pc = self._project(a), self._project(b), self._project(c)
        center = self._project(self.center)
        if self.is_swept:
            d = segment_triangle_distance(self._project(self.previous_center), center, pa, pb, pc)
        else:
            d = point_triangle_distance(center, pa, pb, pc)
        return d <= self.radius

    def bounds(self) -> Optional[np.ndarray]:
        """Local AABB of the footprint, or None when unbounded."""
        if self.kind != CursorType.SPHERE or self.center is None:
            return None
        pts = [self.center]
        if self.previous_center is not None:
            pts.append(self.previous_center)
        pts_arr = np.asarray(pts, dtype=np.float64)
        return np.array([pts_arr.min(axis=0) - self.radius, pts_arr.max(axis=0) + self.radius])

    def overlaps_boxes(self, box_min: np.ndarray, box_max: np.ndarray) -> np.ndarray:
        """Vectorized prefilter over (K, 3) triangle boxes."""
        n = int(box_min.shape[0])
        if self.kind == CursorType.HEIGHT_RANGE and self.axis is not None:
            # Project each box onto the height axis.
            center = (box_min + box_max) * 0.5
            half = (box_max - box_min) * 0.5
            mid = center @ self.axis
            reach = half @ np.abs(self.axis)
            return (mid - reach < self.high) & (mid + reach >= self.low)

        bounds = self.bounds()
        if bounds is None:
            return np.ones((n,), dtype=bool)
        return np.all((box_max >= bounds[0]) & (box_min <= bounds[1]), axis=1)
