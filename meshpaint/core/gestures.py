"""
Gesture Session Module
Maps gesture events from the host's input layer onto selector calls.

The host translates raw device input into `GestureEvent`s carrying world-space
positions; the session turns them into cursors, brackets strokes for undo,
and adjusts tool parameters on wheel events.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import math
from typing import Callable, Optional

import numpy as np

from .cursor import ClippingPlane, Cursor, CursorType
from .geometry import MeshTransform
from .history import PaintHistory
from .labels import PaintLabel, coerce_label
from .patches import RenderPatchLayer
from .runtime_defaults import (
    CURSOR_RADIUS_MAX,
    CURSOR_RADIUS_MIN,
    CURSOR_RADIUS_STEP,
    DEFAULTS,
    SMART_FILL_ANGLE_MAX,
    SMART_FILL_ANGLE_MIN,
    SMART_FILL_ANGLE_STEP,
)
from .serialization import PaintSnapshot, SnapshotFormatError
from .triangle_selector import TriangleSelector

_LOGGER = logging.getLogger(__name__)

TransformProvider = Callable[[], MeshTransform]


class GestureKind(str, Enum):
    PRESS = "press"
    DRAG = "drag"
    RELEASE = "release"
    HOVER = "hover"
    WHEEL = "wheel"
    CURSOR_SWITCH = "cursor_switch"
    CANCEL = "cancel"


class ToolType(str, Enum):
    BRUSH = "brush"
    BUCKET_FILL = "bucket_fill"
    SMART_FILL = "smart_fill"


class WheelTarget(str, Enum):
    CURSOR_RADIUS = "cursor_radius"
    SMART_FILL_ANGLE = "smart_fill_angle"
    GAP_AREA = "gap_area"


@dataclass(frozen=True)
class GestureEvent:
    """
    One translated input event. Fields left as None keep the session's
    current setting.
    """
    kind: GestureKind
    position: Optional[np.ndarray] = None
    facet: Optional[int] = None
    label: Optional[int] = None
    tool: Optional[ToolType] = None
    cursor_type: Optional[CursorType] = None
    radius: Optional[float] = None
    angle_deg: Optional[float] = None
    camera_direction: Optional[np.ndarray] = None
    height_range: Optional[tuple[float, float]] = None
    clipping_plane: Optional[ClippingPlane] = None
    wheel_target: Optional[WheelTarget] = None
    wheel_steps: int = 0


class PaintSession:
    """
    Gesture-driven painting on one selector.

    Args:
        selector: paint-state core
        transform_provider: returns the current mesh-to-world transform
        render_layer: optional render capability (gap area wheel target)
        history: undo/redo stack (created when omitted)
    """

    def __init__(
        self,
        selector: TriangleSelector,
        *,
        transform_provider: Optional[TransformProvider] = None,
        render_layer: Optional[RenderPatchLayer] = None,
        history: Optional[PaintHistory] = None,
    ):
        self.selector = selector
        self.transform_provider = transform_provider or MeshTransform.identity
        self.render_layer = render_layer
        self.history = history if history is not None else PaintHistory(selector)

        self.tool = ToolType.BRUSH
        self.cursor_type = CursorType.SPHERE
        self.label = int(PaintLabel.ENFORCER)
        self.cursor_radius = float(DEFAULTS.cursor_radius)
        self.smart_fill_angle_deg = float(DEFAULTS.smart_fill_angle_deg)
        self.camera_direction = np.array([0.0, 0.0, -1.0])
        self.clipping_plane: Optional[ClippingPlane] = None
        self.height_range: Optional[tuple[float, float]] = None
        self.overhang_angle_deg: Optional[float] = None
        self.triangle_splitting = True

        self._last_position: Optional[np.ndarray] = None

    # ------------------------------------------------------------------

    def handle(self, event: GestureEvent) -> bool:
        """Process one event. Returns True when paint state changed."""
        kind = GestureKind(event.kind)
        if kind == GestureKind.WHEEL:
            self._on_wheel(event)
            return False
        if kind == GestureKind.CURSOR_SWITCH:
            self._apply_settings(event)
            return False

        if kind == GestureKind.PRESS:
            self._apply_settings(event)
            self.history.begin_stroke()
            self._last_position = None
            return self._paint_at(event)
        if kind == GestureKind.DRAG:
            if not self.history.in_stroke:
                return False
            return self._paint_at(event)
        if kind == GestureKind.RELEASE:
            self._last_position = None
            self.selector.seed_fill_unselect_all()
            return self.history.commit_stroke()
        if kind == GestureKind.HOVER:
            return self._preview_fill(event)
        if kind == GestureKind.CANCEL:
            self._last_position = None
            return self.history.abort_stroke()
        return False

    def _apply_settings(self, event: GestureEvent) -> None:
        if event.tool is not None:
            self.tool = ToolType(event.tool)
        if event.cursor_type is not None:
            self.cursor_type = CursorType(event.cursor_type)
        if event.label is not None:
            lab = coerce_label(event.label)
            if lab is None:
                _LOGGER.debug("Ignoring out-of-range label %r", event.label)
            else:
                self.label = lab
        if event.radius is not None and math.isfinite(float(event.radius)):
            self.cursor_radius = float(event.radius)
        if event.angle_deg is not None and math.isfinite(float(event.angle_deg)):
            self.smart_fill_angle_deg = float(event.angle_deg)
        if event.camera_direction is not None:
            self.camera_direction = np.asarray(event.camera_direction, dtype=np.float64).reshape(3)
        if event.clipping_plane is not None:
            self.clipping_plane = event.clipping_plane
        if event.height_range is not None:
            low, high = (float(v) for v in event.height_range)
            self.height_range = (low, high)

    def _on_wheel(self, event: GestureEvent) -> None:
        steps = int(event.wheel_steps)
        target = WheelTarget(event.wheel_target) if event.wheel_target is not None else None
        if target is None:
            target = WheelTarget.CURSOR_RADIUS if self.tool == ToolType.BRUSH else WheelTarget.SMART_FILL_ANGLE

        if target == WheelTarget.CURSOR_RADIUS:
            r = self.cursor_radius + CURSOR_RADIUS_STEP * steps
            self.cursor_radius = min(CURSOR_RADIUS_MAX, max(CURSOR_RADIUS_MIN, r))
        elif target == WheelTarget.SMART_FILL_ANGLE:
            a = self.smart_fill_angle_deg + SMART_FILL_ANGLE_STEP * steps
            self.smart_fill_angle_deg = min(SMART_FILL_ANGLE_MAX, max(SMART_FILL_ANGLE_MIN, a))
            if self.selector.seed_marked and event.facet is not None:
                self._preview_fill(event)
        elif target == WheelTarget.GAP_AREA and self.render_layer is not None:
            self.render_layer.adjust_gap_area(steps)

    # ------------------------------------------------------------------

    def _local_point(self, position: np.ndarray) -> np.ndarray:
        trafo = self.transform_provider()
        return trafo.world_to_local(np.asarray(position, dtype=np.float64).reshape(1, 3))[0]

    def _resolve_facet(self, event: GestureEvent) -> Optional[int]:
        if event.facet is not None and self.selector.is_valid_id(event.facet):
            return int(event.facet)
        if event.position is None:
            return None
        return self.selector.nearest_triangle(self._local_point(event.position))

    def _make_cursor(self, position: np.ndarray) -> Cursor:
        if self.cursor_type == CursorType.HEIGHT_RANGE:
            if self.height_range is not None:
                low, high = self.height_range
            else:
                # Band one cursor radius tall, centred on the hit height.
                z = float(position[2])
                low, high = z - 0.5 * self.cursor_radius, z + 0.5 * self.cursor_radius
            return Cursor.height(low, high, clipping_plane=self.clipping_plane)
        if self.cursor_type == CursorType.CIRCLE:
            return Cursor.circle(
                position,
                self.cursor_radius,
                self.camera_direction,
                previous_center=self._last_position,
                clipping_plane=self.clipping_plane,
            )
        return Cursor.sphere(
            position,
            self.cursor_radius,
            previous_center=self._last_position,
            clipping_plane=self.clipping_plane,
        )

    def _paint_at(self, event: GestureEvent) -> bool:
        if event.position is None:
            return False
        position = np.asarray(event.position, dtype=np.float64).reshape(3)
        if not np.all(np.isfinite(position)):
            return False

        if self.tool == ToolType.BRUSH and self.cursor_type != CursorType.POINTER:
            cursor = self._make_cursor(position)
            changed = self.selector.select_patch(
                cursor,
                self.label,
                transform=self.transform_provider(),
                facet_start=event.facet,
                triangle_splitting=self.triangle_splitting,
                overhang_angle_deg=self.overhang_angle_deg,
            )
            self._last_position = position
            return changed > 0

        facet = self._resolve_facet(event)
        if facet is None:
            return False
        point = self._local_point(position)
        if self.tool == ToolType.SMART_FILL:
            self.selector.seed_fill_select(
                facet,
                angle_threshold=math.radians(self.smart_fill_angle_deg),
                mode="smart",
                point=point,
                clipping_plane=self.clipping_plane,
                transform=self.transform_provider(),
            )
        else:
            # Bucket fill and the pointer brush grow over the seed's label only.
            angle = math.radians(self.smart_fill_angle_deg) if self.tool == ToolType.BUCKET_FILL else None
            self.selector.seed_fill_select(
                facet,
                angle_threshold=angle,
                mode="bucket",
                point=point,
                clipping_plane=self.clipping_plane,
                transform=self.transform_provider(),
            )
        return self.selector.seed_fill_apply(self.label) > 0

    def _preview_fill(self, event: GestureEvent) -> bool:
        if self.tool == ToolType.BRUSH and self.cursor_type != CursorType.POINTER:
            return False
        facet = self._resolve_facet(event)
        if facet is None:
            self.selector.seed_fill_unselect_all()
            return False
        point = self._local_point(event.position) if event.position is not None else None
        mode = "smart" if self.tool == ToolType.SMART_FILL else "bucket"
        angle = None
        if self.tool != ToolType.BRUSH:
            angle = math.radians(self.smart_fill_angle_deg)
        self.selector.seed_fill_select(
            facet,
            angle_threshold=angle,
            mode=mode,
            point=point,
            clipping_plane=self.clipping_plane,
            transform=self.transform_provider(),
        )
        return False

    # ------------------------------------------------------------------
    # Persistence / history passthroughs
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    def save_bytes(self) -> bytes:
        return self.selector.snapshot().to_bytes()

    def load_bytes(self, blob: bytes) -> bool:
        """
        Restore paint data. Corrupt or mismatched data leaves the mesh
        unpainted and returns False.
        """
        try:
            snap = PaintSnapshot.from_bytes(blob)
            self.selector.restore(snap)
        except SnapshotFormatError as e:
            _LOGGER.warning("Discarding paint data: %s", e)
            self.selector.reset()
            self.history.clear()
            return False
        self.history.clear()
        return True
