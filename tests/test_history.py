import unittest

from meshpaint.core.cursor import Cursor
from meshpaint.core.history import PaintHistory
from meshpaint.core.triangle_selector import TriangleSelector
from tests.mesh_samples import make_square


def _dab(sel: TriangleSelector, label: int = 1, x: float = 2.5) -> int:
    return sel.select_patch(Cursor.sphere([x, 1.0, 0.0], 0.5), label, edge_limit=0.25)


class TestPaintHistory(unittest.TestCase):
    def setUp(self):
        self.sel = TriangleSelector(make_square(4.0), strict=True)
        self.history = PaintHistory(self.sel, limit=3)

    def test_undo_redo_stroke(self):
        empty = self.sel.snapshot()
        with self.history.stroke():
            _dab(self.sel)
        painted = self.sel.snapshot()

        self.assertTrue(self.history.can_undo)
        self.assertTrue(self.history.undo())
        self.assertEqual(self.sel.snapshot(), empty)
        self.assertEqual(self.sel.n_triangles, 2)

        self.assertTrue(self.history.can_redo)
        self.assertTrue(self.history.redo())
        self.assertEqual(self.sel.snapshot(), painted)
        self.assertFalse(self.history.redo())

    def test_unchanged_stroke_is_not_recorded(self):
        self.history.begin_stroke()
        self.assertTrue(self.history.in_stroke)
        self.assertFalse(self.history.commit_stroke())
        self.assertFalse(self.history.can_undo)
        self.assertFalse(self.history.commit_stroke())

    def test_abort_restores_pre_stroke_state(self):
        with self.history.stroke():
            _dab(self.sel, 1)
        before = self.sel.snapshot()

        self.history.begin_stroke()
        _dab(self.sel, 2)
        self.assertTrue(self.history.abort_stroke())
        self.assertEqual(self.sel.snapshot(), before)
        self.assertFalse(self.history.in_stroke)
        self.assertFalse(self.history.abort_stroke())

    def test_exception_inside_stroke_aborts(self):
        before = self.sel.snapshot()
        with self.assertRaises(RuntimeError):
            with self.history.stroke():
                _dab(self.sel)
                raise RuntimeError("boom")
        self.assertEqual(self.sel.snapshot(), before)
        self.assertFalse(self.history.can_undo)

    def test_new_stroke_clears_redo_and_limit_trims(self):
        for x in (0.8, 1.6, 2.4, 3.2):
            with self.history.stroke():
                _dab(self.sel, 1, x)
        # Limit 3: the oldest step is gone.
        self.assertTrue(self.history.undo())
        self.assertTrue(self.history.undo())
        self.assertTrue(self.history.undo())
        self.assertFalse(self.history.undo())
        self.assertTrue(self.sel.has_facets(1))

        self.assertTrue(self.history.can_redo)
        with self.history.stroke():
            _dab(self.sel, 2)
        self.assertFalse(self.history.can_redo)

    def test_undo_during_stroke_discards_it(self):
        with self.history.stroke():
            _dab(self.sel, 1)
        after_first = self.sel.snapshot()
        self.history.begin_stroke()
        _dab(self.sel, 2, 1.5)
        self.assertTrue(self.history.undo())
        self.assertFalse(self.history.in_stroke)
        self.assertNotEqual(self.sel.snapshot(), after_first)
        self.assertTrue(self.sel.snapshot().is_empty)


if __name__ == "__main__":
    unittest.main()
