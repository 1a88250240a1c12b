import unittest

import numpy as np

from meshpaint.core.cursor import Cursor
from meshpaint.core.patches import PatchAggregator, RenderPatchLayer
from meshpaint.core.runtime_defaults import GAP_AREA_MAX
from meshpaint.core.triangle_selector import TriangleSelector
from tests.mesh_samples import make_fold, make_sphere, make_square, make_square_with_sliver, make_strip


def _sliver_selector() -> TriangleSelector:
    sel = TriangleSelector(make_square_with_sliver(), strict=True)
    sel.apply_labels({0: 1, 1: 1, 2: 2})
    return sel


class TestPatchAggregator(unittest.TestCase):
    def test_unpainted_mesh_is_one_patch(self):
        sel = TriangleSelector(make_square(), strict=True)
        ps = PatchAggregator(sel, gap_area=0.0).build()
        self.assertEqual(len(ps.patches), 1)
        patch = ps.patches[0]
        self.assertEqual(patch.label, 0)
        self.assertEqual(sorted(patch.triangle_ids), [0, 1])
        self.assertEqual(patch.neighbor_labels, set())
        self.assertFalse(patch.is_fragment)
        self.assertAlmostEqual(patch.area, 1.0)
        self.assertEqual(ps.contour_edges().shape, (0, 2))

    def test_two_labels_two_patches(self):
        sel = TriangleSelector(make_square(), strict=True)
        sel.apply_labels({0: 1})
        ps = PatchAggregator(sel, gap_area=0.0).build()

        self.assertEqual(len(ps.patches), 2)
        a = ps.patches[ps.patch_of[0]]
        b = ps.patches[ps.patch_of[1]]
        self.assertEqual((a.label, b.label), (1, 0))
        self.assertEqual(a.neighbor_labels, {0})
        self.assertEqual(a.neighbor_patches, {ps.patch_of[1]})

        self.assertEqual(a.vertices.dtype, np.float32)
        self.assertEqual(a.indices.dtype, np.uint32)
        self.assertEqual(a.vertices.shape, (3, 3))
        self.assertEqual(a.indices.shape, (1, 3))

        # The shared diagonal is a contour edge of both patches.
        self.assertEqual(a.contour_edges.shape, (1, 2))
        self.assertEqual(set(a.contour_edges[0].tolist()), {0, 2})
        self.assertEqual(ps.contour_edges().shape, (2, 2))

    def test_patch_areas_sum_to_label_areas(self):
        sel = TriangleSelector(make_square(4.0), strict=True)
        sel.select_patch(Cursor.sphere([2.5, 1.0, 0.0], 0.6), 1, edge_limit=0.2)
        sel.select_patch(Cursor.sphere([1.0, 3.0, 0.0], 0.5), 2, edge_limit=0.2)
        ps = PatchAggregator(sel, gap_area=0.0).build()

        self.assertEqual(sum(p.n_triangles for p in ps.patches), sel.n_leaves)
        members = [t for p in ps.patches for t in p.triangle_ids]
        self.assertEqual(len(members), len(set(members)))
        for label in (0, 1, 2):
            total = sum(p.area for p in ps.patches if p.label == label)
            self.assertAlmostEqual(total, sel.labeled_area(label), places=9)
        self.assertAlmostEqual(sum(p.area for p in ps.patches), 16.0, places=9)

    def test_area_ceiling_stops_early(self):
        sel = TriangleSelector(make_square(10.0), strict=True)
        ps = PatchAggregator(sel, gap_area=1.0, area_ceiling=GAP_AREA_MAX).build()
        patch = ps.patches[0]
        self.assertTrue(patch.area_capped)
        self.assertGreaterEqual(patch.area, GAP_AREA_MAX)
        self.assertFalse(patch.is_fragment)


class TestGapFill(unittest.TestCase):
    def test_small_patch_takes_large_neighbor_label(self):
        sel = _sliver_selector()
        ps = PatchAggregator(sel, gap_area=5.0).build()

        small = ps.patches[ps.patch_of[2]]
        large = ps.patches[ps.patch_of[0]]
        self.assertAlmostEqual(small.area, 2.0)
        self.assertAlmostEqual(large.area, 100.0)
        self.assertTrue(small.is_fragment)
        self.assertEqual(small.effective_label, 1)
        self.assertFalse(large.is_fragment)
        self.assertEqual(ps.effective_label_of(2), 1)
        self.assertEqual(ps.absorbed_triangle_count(), 1)

        # Literal labels are untouched.
        self.assertEqual(sel.label_of(2), 2)
        # No contour remains between equal effective labels.
        self.assertEqual(ps.contour_edges().shape, (0, 2))

    def test_fragments_grow_monotonically_with_gap_area(self):
        sel = _sliver_selector()
        previous: set[int] = set()
        for gap in (0.0, 1.0, 2.0, 2.5, 5.0, 50.0, 150.0):
            ps = PatchAggregator(sel, gap_area=gap).build()
            fragments = {t for p in ps.patches if p.is_fragment for t in p.triangle_ids}
            self.assertTrue(previous <= fragments, f"gap_area={gap}")
            previous = fragments
        self.assertEqual(previous, {2})

    def test_large_patch_is_never_absorbed(self):
        sel = _sliver_selector()
        ps = PatchAggregator(sel, gap_area=150.0).build()
        large = ps.patches[ps.patch_of[0]]
        self.assertFalse(large.is_fragment)
        self.assertEqual(large.effective_label, 1)
        self.assertEqual(ps.effective_label_of(2), 1)

    def test_equal_small_patches_do_not_trade_labels(self):
        sel = TriangleSelector(make_square(), strict=True)
        sel.apply_labels({0: 1, 1: 2})
        ps = PatchAggregator(sel, gap_area=5.0).build()
        self.assertEqual((ps.effective_label_of(0), ps.effective_label_of(1)), (1, 2))
        self.assertEqual(ps.absorbed_triangle_count(), 0)

    def test_finalize_never_permutes_labels(self):
        # Faces 0 and 1 (area 50 each) stay put; only the sliver moves.
        sel = TriangleSelector(make_square_with_sliver(), strict=True)
        sel.apply_labels({0: 1, 1: 2, 2: 3})
        layer = RenderPatchLayer(sel, gap_area=GAP_AREA_MAX)
        self.assertEqual(layer.finalize_gap_fill(), 1)
        self.assertEqual([sel.label_of(t) for t in range(3)], [1, 2, 1])

    def test_chain_of_small_patches_resolves_to_largest(self):
        # Face 0 (area 1) only touches face 1 (area 2), which is itself a
        # fragment of face 2 (area 9).
        sel = TriangleSelector(make_strip(), strict=True)
        sel.apply_labels({0: 1, 1: 2, 2: 3})
        ps = PatchAggregator(sel, gap_area=5.0).build()
        self.assertEqual([ps.effective_label_of(t) for t in range(3)], [3, 3, 3])
        self.assertEqual(ps.absorbed_triangle_count(), 2)

        layer = RenderPatchLayer(sel, gap_area=5.0)
        self.assertEqual(layer.finalize_gap_fill(), 2)
        self.assertEqual(sel.label_counts(), {3: 3})

    def test_isolated_patch_is_never_a_fragment(self):
        sel = TriangleSelector(make_square(), strict=True)
        ps = PatchAggregator(sel, gap_area=100.0).build()
        self.assertFalse(ps.patches[0].is_fragment)

    def test_tie_goes_to_smaller_label(self):
        # Corner child 0 of floor face 1 touches face 0 (label 2) and the wall
        # face 2 (label 1), both of area 0.5.
        sel = TriangleSelector(make_fold(), strict=True)
        sel.split(1, 0.0)
        c0, c1, c2, c3 = sel.triangle(1).children
        sel.apply_labels({0: 2, 2: 1, 3: 4, c0: 3, c1: 5, c2: 5, c3: 5})
        ps = PatchAggregator(sel, gap_area=0.2).build()
        self.assertTrue(ps.patches[ps.patch_of[c0]].is_fragment)
        self.assertEqual(ps.effective_label_of(c0), 1)
        self.assertFalse(ps.patches[ps.patch_of[c3]].is_fragment)


class TestRenderPatchLayer(unittest.TestCase):
    def test_lazy_rebuild(self):
        sel = TriangleSelector(make_square(4.0), strict=True)
        layer = RenderPatchLayer(sel, gap_area=0.0)
        self.assertTrue(layer.is_dirty)

        layer.render_patches()
        layer.render_patches()
        self.assertEqual(layer.rebuild_count, 1)
        self.assertFalse(layer.is_dirty)

        # Many notifications, one rebuild.
        sel.select_patch(Cursor.sphere([2.5, 1.0, 0.0], 0.6), 1, edge_limit=0.2)
        sel.apply_labels({1: 2})
        self.assertTrue(layer.is_dirty)
        self.assertEqual({p.label for p in layer.render_patches()}, {0, 1, 2})
        self.assertEqual(layer.rebuild_count, 2)

        layer.close()
        sel.apply_labels({1: 0})
        self.assertFalse(layer.is_dirty)

    def test_gap_area_is_clamped_and_marks_dirty(self):
        sel = _sliver_selector()
        layer = RenderPatchLayer(sel, gap_area=0.0)
        self.assertEqual(layer.effective_label_of(2), 2)

        layer.adjust_gap_area(30)
        self.assertAlmostEqual(layer.gap_area, 3.0)
        self.assertTrue(layer.is_dirty)
        self.assertEqual(layer.effective_label_of(2), 1)

        layer.gap_area = 1e9
        self.assertEqual(layer.gap_area, GAP_AREA_MAX)
        layer.gap_area = -1.0
        self.assertEqual(layer.gap_area, 0.0)

    def test_finalize_writes_effective_labels(self):
        sel = _sliver_selector()
        layer = RenderPatchLayer(sel, gap_area=5.0)
        self.assertEqual(sel.label_of(2), 2)

        self.assertEqual(layer.finalize_gap_fill(), 1)

        self.assertEqual(sel.label_of(2), 1)
        self.assertEqual(len(layer.render_patches()), 1)
        self.assertEqual(layer.finalize_gap_fill(), 0)

    def test_reset_invalidates_patches(self):
        sel = _sliver_selector()
        layer = RenderPatchLayer(sel, gap_area=0.0)
        self.assertEqual(len(layer.render_patches()), 2)
        sel.reset()
        self.assertEqual(len(layer.render_patches()), 1)
        self.assertEqual(layer.patch_set().generation, sel.generation)

    def test_fill_preview_does_not_rebuild_patches(self):
        sel = TriangleSelector(make_sphere(subdivisions=1), strict=True)
        layer = RenderPatchLayer(sel, gap_area=0.0)
        layer.render_patches()
        self.assertTrue(layer.seed_fill_preview().is_empty)

        for seed in range(5):
            sel.seed_fill_select(seed, angle_threshold=0.0)
        self.assertFalse(layer.is_dirty)
        self.assertEqual(layer.rebuild_count, 1)

        preview = layer.seed_fill_preview()
        self.assertEqual(preview.triangle_ids, [4])
        self.assertEqual(preview.vertices.dtype, np.float32)
        self.assertEqual(preview.indices.shape, (1, 3))
        self.assertIs(layer.seed_fill_preview(), preview)

        sel.seed_fill_select(0, angle_threshold=np.pi)
        self.assertEqual(len(layer.seed_fill_preview().triangle_ids), 80)
        sel.seed_fill_unselect_all()
        self.assertTrue(layer.seed_fill_preview().is_empty)

        sel.seed_fill_select(3)
        sel.seed_fill_apply(1)
        self.assertTrue(layer.is_dirty)
        self.assertTrue(layer.seed_fill_preview().is_empty)
        self.assertEqual({p.label for p in layer.render_patches()}, {1})


if __name__ == "__main__":
    unittest.main()
