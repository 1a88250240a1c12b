"""
Geometry helpers shared by the cursor, selector and patch modules.

Scalar routines operate on single (3,) points; they are called from the
recursive subdivision code where the working set is a handful of triangles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from scipy.spatial.transform import Rotation as R

_EPS = 1e-12


def triangle_area(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    return float(np.linalg.norm(np.cross(b - a, c - a)) * 0.5)


def triangle_normal(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    n = np.cross(b - a, c - a)
    norm = float(np.linalg.norm(n))
    if norm <= _EPS:
        return np.zeros((3,), dtype=np.float64)
    return n / norm


def closest_point_on_segment(p: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    ab = b - a
    denom = float(np.dot(ab, ab))
    if denom <= _EPS:
        return a.copy()
    t = float(np.dot(p - a, ab)) / denom
    t = min(1.0, max(0.0, t))
    return a + t * ab


def closest_point_on_triangle(p: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    """Closest point to `p` on triangle abc (Voronoi region walk)."""
    ab = b - a
    ac = c - a
    if float(np.linalg.norm(np.cross(ab, ac))) <= _EPS:
        # Degenerate (or edge-on after projection): closest of the three edges.
        candidates = (
            closest_point_on_segment(p, a, b),
            closest_point_on_segment(p, b, c),
            closest_point_on_segment(p, c, a),
        )
        return min(candidates, key=lambda q: float(np.dot(q - p, q - p)))

    ap = p - a
    d1 = float(np.dot(ab, ap))
    d2 = float(np.dot(ac, ap))
    if d1 <= 0.0 and d2 <= 0.0:
        return a.copy()

    bp = p - b
    d3 = float(np.dot(ab, bp))
    d4 = float(np.dot(ac, bp))
    if d3 >= 0.0 and d4 <= d3:
        return b.copy()

    vc = d1 * d4 - d3 * d2
    if vc <= 0.0 and d1 >= 0.0 and d3 <= 0.0:
        v = d1 / (d1 - d3)
        return a + v * ab

    cp = p - c
    d5 = float(np.dot(ab, cp))
    d6 = float(np.dot(ac, cp))
    if d6 >= 0.0 and d5 <= d6:
        return c.copy()

    vb = d5 * d2 - d1 * d6
    if vb <= 0.0 and d2 >= 0.0 and d6 <= 0.0:
        w = d2 / (d2 - d6)
        return a + w * ac

    va = d3 * d6 - d5 * d4
    if va <= 0.0 and (d4 - d3) >= 0.0 and (d5 - d6) >= 0.0:
        w = (d4 - d3) / ((d4 - d3) + (d5 - d6))
        return b + w * (c - b)

    denom = 1.0 / (va + vb + vc)
    v = vb * denom
    w = vc * denom
    return a + ab * v + ac * w


def point_triangle_distance(p: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    q = closest_point_on_triangle(p, a, b, c)
    return float(np.linalg.norm(q - p))


def segment_segment_distance(p1: np.ndarray, q1: np.ndarray, p2: np.ndarray, q2: np.ndarray) -> float:
    d1 = q1 - p1
    d2 = q2 - p2
    r = p1 - p2
    a = float(np.dot(d1, d1))
    e = float(np.dot(d2, d2))
    f = float(np.dot(d2, r))

    if a <= _EPS and e <= _EPS:
        return float(np.linalg.norm(p1 - p2))
    if a <= _EPS:
        s = 0.0
        t = min(1.0, max(0.0, f / e))
    else:
        c = float(np.dot(d1, r))
        if e <= _EPS:
            t = 0.0
            s = min(1.0, max(0.0, -c / a))
        else:
            b = float(np.dot(d1, d2))
            denom = a * e - b * b
            if denom > _EPS:
                s = min(1.0, max(0.0, (b * f - c * e) / denom))
            else:
                s = 0.0
            t = (b * s + f) / e
            if t < 0.0:
                t = 0.0
                s = min(1.0, max(0.0, -c / a))
            elif t > 1.0:
                t = 1.0
                s = min(1.0, max(0.0, (b - c) / a))

    c1 = p1 + d1 * s
    c2 = p2 + d2 * t
    return float(np.linalg.norm(c1 - c2))


def segment_intersects_triangle(p: np.ndarray, q: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> bool:
    """Segment pq crosses the interior of triangle abc (non-coplanar case)."""
    d = q - p
    e1 = b - a
    e2 = c - a
    h = np.cross(d, e2)
    det = float(np.dot(e1, h))
    if abs(det) <= _EPS:
        return False
    inv = 1.0 / det
    s = p - a
    u = inv * float(np.dot(s, h))
    if u < 0.0 or u > 1.0:
        return False
    qv = np.cross(s, e1)
    v = inv * float(np.dot(d, qv))
    if v < 0.0 or u + v > 1.0:
        return False
    t = inv * float(np.dot(e2, qv))
    return 0.0 <= t <= 1.0


def segment_triangle_distance(p: np.ndarray, q: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    if segment_intersects_triangle(p, q, a, b, c):
        return 0.0
    return min(
        point_triangle_distance(p, a, b, c),
        point_triangle_distance(q, a, b, c),
        segment_segment_distance(p, q, a, b),
        segment_segment_distance(p, q, b, c),
        segment_segment_distance(p, q, c, a),
    )


def point_segment_distance(p: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(closest_point_on_segment(p, a, b) - p))


@dataclass(frozen=True)
class MeshTransform:
    """
    Mesh-to-world transform: uniform scale, then xyz Euler rotation (degrees),
    then translation.
    """

    translation: np.ndarray = field(default_factory=lambda: np.zeros((3,), dtype=np.float64))
    rotation_deg: np.ndarray = field(default_factory=lambda: np.zeros((3,), dtype=np.float64))
    scale: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "translation", np.asarray(self.translation, dtype=np.float64).reshape(3))
        object.__setattr__(self, "rotation_deg", np.asarray(self.rotation_deg, dtype=np.float64).reshape(3))
        s = float(self.scale)
        if not np.isfinite(s) or s <= 0.0:
            raise ValueError(f"Transform scale must be positive, got {self.scale!r}")
        object.__setattr__(self, "scale", s)

    @classmethod
    def identity(cls) -> "MeshTransform":
        return cls()

    @property
    def rotation_matrix(self) -> np.ndarray:
        return R.from_euler('xyz', self.rotation_deg, degrees=True).as_matrix()

    @property
    def matrix(self) -> np.ndarray:
        """4x4 homogeneous mesh-to-world matrix."""
        m = np.eye(4, dtype=np.float64)
        m[:3, :3] = self.rotation_matrix * self.scale
        m[:3, 3] = self.translation
        return m

    def local_to_world(self, pts_local: np.ndarray) -> np.ndarray:
        pts = np.asarray(pts_local, dtype=np.float64)
        return (self.rotation_matrix @ (pts * self.scale).T).T + self.translation

    def world_to_local(self, pts_world: np.ndarray) -> np.ndarray:
        pts = np.asarray(pts_world, dtype=np.float64)
        inv_rot = self.rotation_matrix.T
        return (inv_rot @ (pts - self.translation).T).T / self.scale

    def direction_to_local(self, v_world: np.ndarray) -> np.ndarray:
        v = self.rotation_matrix.T @ np.asarray(v_world, dtype=np.float64).reshape(3)
        norm = float(np.linalg.norm(v))
        return v / norm if norm > _EPS else v

    def direction_to_world(self, v_local: np.ndarray) -> np.ndarray:
        v = self.rotation_matrix @ np.asarray(v_local, dtype=np.float64).reshape(3)
        norm = float(np.linalg.norm(v))
        return v / norm if norm > _EPS else v

    def length_to_local(self, length: float) -> float:
        return float(length) / self.scale


def resolve_transform(transform: Optional[MeshTransform]) -> MeshTransform:
    return transform if transform is not None else MeshTransform.identity()
