import math
import unittest

import numpy as np

from meshpaint.core.cursor import CursorType
from meshpaint.core.geometry import MeshTransform
from meshpaint.core.gestures import GestureEvent, GestureKind, PaintSession, ToolType, WheelTarget
from meshpaint.core.patches import RenderPatchLayer
from meshpaint.core.runtime_defaults import (
    CURSOR_RADIUS_MAX,
    CURSOR_RADIUS_MIN,
    SMART_FILL_ANGLE_MAX,
)
from meshpaint.core.triangle_selector import TriangleSelector
from tests.mesh_samples import make_fold, make_square


def _press(x, y, z=0.0, **kwargs):
    return GestureEvent(kind=GestureKind.PRESS, position=np.array([x, y, z]), **kwargs)


def _drag(x, y, z=0.0, **kwargs):
    return GestureEvent(kind=GestureKind.DRAG, position=np.array([x, y, z]), **kwargs)


RELEASE = GestureEvent(kind=GestureKind.RELEASE)
CANCEL = GestureEvent(kind=GestureKind.CANCEL)


class TestBrushGestures(unittest.TestCase):
    def setUp(self):
        self.sel = TriangleSelector(make_square(4.0), strict=True)
        self.session = PaintSession(self.sel)

    def test_press_drag_release_is_one_undo_step(self):
        self.assertTrue(self.session.handle(_press(1.0, 0.5, radius=0.3, label=1)))
        self.assertTrue(self.session.handle(_drag(3.0, 0.5)))
        self.assertTrue(self.session.handle(RELEASE))

        # The drag swept the segment between the two positions.
        self.assertEqual(self.sel.label_at(np.array([2.0, 0.5, 0.0])), 1)

        self.assertTrue(self.session.undo())
        self.assertFalse(self.sel.has_facets(1))
        self.assertFalse(self.session.undo())
        self.assertTrue(self.session.redo())
        self.assertTrue(self.sel.has_facets(1))

    def test_drag_without_press_is_ignored(self):
        self.assertFalse(self.session.handle(_drag(2.0, 0.5)))
        self.assertEqual(self.sel.n_triangles, 2)

    def test_cancel_aborts_stroke(self):
        self.session.handle(_press(2.0, 0.5, radius=0.3))
        self.assertTrue(self.sel.has_facets(1))
        self.assertTrue(self.session.handle(CANCEL))
        self.assertFalse(self.sel.has_facets(1))
        self.assertEqual(self.sel.n_triangles, 2)
        self.assertFalse(self.session.history.can_undo)

    def test_invalid_event_data_is_a_no_op(self):
        self.assertFalse(self.session.handle(_press(np.nan, 0.5)))
        self.session.handle(RELEASE)
        self.session.handle(_press(2.0, 0.5, label=99, radius=0.3))
        self.session.handle(RELEASE)
        # The out-of-range label was ignored; the default label painted.
        self.assertEqual(set(self.sel.label_counts()), {0, 1})
        self.assertFalse(self.session.handle(GestureEvent(kind=GestureKind.PRESS)))

    def test_world_transform_is_applied(self):
        trafo = MeshTransform(translation=[100.0, 0.0, 0.0])
        session = PaintSession(self.sel, transform_provider=lambda: trafo)
        session.handle(_press(102.0, 0.5, radius=0.3, label=2))
        session.handle(RELEASE)
        self.assertEqual(self.sel.label_at(np.array([2.0, 0.5, 0.0])), 2)

    def test_height_range_cursor(self):
        fold = TriangleSelector(make_fold(), strict=True)
        session = PaintSession(fold)
        session.handle(
            _press(
                0.0, 0.5, 0.5,
                cursor_type=CursorType.HEIGHT_RANGE,
                height_range=(0.5, 2.0),
                label=2,
            )
        )
        session.handle(RELEASE)
        self.assertEqual(fold.label_at(np.array([0.0, 0.5, 0.9])), 2)
        self.assertEqual(fold.label_at(np.array([0.0, 0.5, 0.1])), 0)
        self.assertFalse(any(fold.triangle(t).label == 2 for t in fold.leaves_of(0)))


class TestWheel(unittest.TestCase):
    def test_radius_and_angle_are_clamped(self):
        sel = TriangleSelector(make_square(), strict=True)
        session = PaintSession(sel)

        session.handle(GestureEvent(kind=GestureKind.WHEEL, wheel_steps=1000))
        self.assertEqual(session.cursor_radius, CURSOR_RADIUS_MAX)
        session.handle(GestureEvent(kind=GestureKind.WHEEL, wheel_steps=-1000))
        self.assertEqual(session.cursor_radius, CURSOR_RADIUS_MIN)

        session.handle(GestureEvent(kind=GestureKind.CURSOR_SWITCH, tool=ToolType.SMART_FILL))
        session.handle(GestureEvent(kind=GestureKind.WHEEL, wheel_steps=1000))
        self.assertEqual(session.smart_fill_angle_deg, SMART_FILL_ANGLE_MAX)

    def test_gap_area_target(self):
        sel = TriangleSelector(make_square(), strict=True)
        layer = RenderPatchLayer(sel, gap_area=0.0)
        session = PaintSession(sel, render_layer=layer)
        session.handle(GestureEvent(kind=GestureKind.WHEEL, wheel_target=WheelTarget.GAP_AREA, wheel_steps=5))
        self.assertAlmostEqual(layer.gap_area, 0.5)


class TestFillTools(unittest.TestCase):
    def test_smart_fill_tool_stops_at_fold(self):
        sel = TriangleSelector(make_fold(), strict=True)
        session = PaintSession(sel)
        session.handle(
            _press(0.7, 0.2, facet=0, tool=ToolType.SMART_FILL, angle_deg=30.0, label=3)
        )
        session.handle(RELEASE)
        self.assertEqual(sel.label_counts(), {3: 2, 0: 2})
        self.assertTrue(session.history.can_undo)

    def test_bucket_tool_without_facet_hint_uses_nearest_triangle(self):
        sel = TriangleSelector(make_fold(), strict=True)
        sel.apply_labels({1: 2})
        session = PaintSession(sel)
        session.handle(_press(0.0, 0.5, 0.5, tool=ToolType.BUCKET_FILL, angle_deg=90.0, label=1))
        session.handle(RELEASE)
        # The hit lies on the wall; face 1 blocks the way to the rest of the floor.
        self.assertEqual(sel.label_of(2), 1)
        self.assertEqual(sel.label_of(3), 1)
        self.assertEqual(sel.label_of(0), 0)
        self.assertEqual(sel.label_of(1), 2)

    def test_hover_previews_without_painting(self):
        sel = TriangleSelector(make_fold(), strict=True)
        session = PaintSession(sel)
        session.handle(GestureEvent(kind=GestureKind.CURSOR_SWITCH, tool=ToolType.SMART_FILL, angle_deg=10.0))
        self.assertFalse(session.handle(GestureEvent(kind=GestureKind.HOVER, position=np.array([0.7, 0.2, 0.0]))))
        self.assertEqual(sel.seed_marked, frozenset({0, 1}))
        self.assertEqual(sel.label_counts(), {0: 4})

        # Widening the angle with the wheel refreshes the preview.
        session.handle(GestureEvent(kind=GestureKind.WHEEL, wheel_steps=20, facet=0))
        self.assertTrue(math.isclose(session.smart_fill_angle_deg, 90.0))
        self.assertEqual(len(sel.seed_marked), 4)


class TestSessionPersistence(unittest.TestCase):
    def test_save_and_load_bytes(self):
        sel = TriangleSelector(make_square(4.0), strict=True)
        session = PaintSession(sel)
        session.handle(_press(2.0, 0.5, radius=0.3))
        session.handle(RELEASE)
        blob = session.save_bytes()

        other = PaintSession(TriangleSelector(make_square(4.0), strict=True))
        self.assertTrue(other.load_bytes(blob))
        self.assertEqual(other.selector.snapshot(), sel.snapshot())

    def test_corrupt_bytes_fall_back_to_unpainted(self):
        sel = TriangleSelector(make_square(4.0), strict=True)
        session = PaintSession(sel)
        session.handle(_press(2.0, 0.5, radius=0.3))
        session.handle(RELEASE)

        with self.assertLogs("meshpaint.core.gestures", level="WARNING"):
            self.assertFalse(session.load_bytes(b"\x00garbage"))
        self.assertEqual(sel.n_triangles, 2)
        self.assertFalse(sel.has_facets(1))
        self.assertFalse(session.history.can_undo)


if __name__ == "__main__":
    unittest.main()
