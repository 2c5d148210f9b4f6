import unittest

from idphoto.config import MAX_SCALE, MIN_SCALE, get_spec
from idphoto.geometry import (
    FilterState, TransformState, clamp_filter, fit_scale, fit_transform,
    mm_to_pixel, pan, preview_frame_size, reproject, wheel_zoom_factor,
    zoom_around_point, zoom_to_center,
)


class TestFit(unittest.TestCase):
    def test_fit_covers_frame_and_centres(self):
        t = fit_transform(400, 514, 1000, 800)
        self.assertGreaterEqual(1000 * t.scale, 400)
        self.assertGreaterEqual(800 * t.scale, 514)
        self.assertAlmostEqual(t.offset_x, (400 - 1000 * t.scale) / 2)
        self.assertAlmostEqual(t.offset_y, (514 - 800 * t.scale) / 2)

    def test_fit_adds_overscan(self):
        self.assertAlmostEqual(fit_scale(400, 400, 200, 100), 4.4)

    def test_fit_rejects_empty_image(self):
        with self.assertRaises(ValueError):
            fit_scale(400, 400, 0, 100)


class TestPanZoom(unittest.TestCase):
    def test_pan_is_unbounded(self):
        t = pan(TransformState(1.0, 0, 0), -5000, 7000)
        self.assertEqual((t.offset_x, t.offset_y), (-5000, 7000))
        self.assertEqual(t.scale, 1.0)

    def test_zoom_keeps_pivot_point_fixed(self):
        state = TransformState(2.0, -30, 12)
        pivot = (150, 90)
        before = ((pivot[0] - state.offset_x) / state.scale, (pivot[1] - state.offset_y) / state.scale)
        zoomed = zoom_around_point(state, 1.1, *pivot)
        after = ((pivot[0] - zoomed.offset_x) / zoomed.scale, (pivot[1] - zoomed.offset_y) / zoomed.scale)
        self.assertAlmostEqual(before[0], after[0])
        self.assertAlmostEqual(before[1], after[1])

    def test_zoom_in_then_out_restores_state(self):
        state = TransformState(1.0, -30, 12)
        back = zoom_to_center(zoom_to_center(state, 1.1, 400, 400), 1 / 1.1, 400, 400)
        self.assertAlmostEqual(back.scale, state.scale)
        self.assertAlmostEqual(back.offset_x, state.offset_x)
        self.assertAlmostEqual(back.offset_y, state.offset_y)

    def test_zoom_clamps_scale_and_offsets_follow(self):
        state = TransformState(4.9, 0, 0)
        zoomed = zoom_to_center(state, 1.1, 400, 400)
        self.assertEqual(zoomed.scale, MAX_SCALE)
        change = MAX_SCALE / 4.9
        self.assertAlmostEqual(zoomed.offset_x, 200 - 200 * change)

        low = zoom_to_center(TransformState(MIN_SCALE, 10, 10), 0.5, 400, 400)
        self.assertEqual(low, TransformState(MIN_SCALE, 10, 10))

    def test_wheel_direction(self):
        self.assertEqual(wheel_zoom_factor(120), 0.9)
        self.assertEqual(wheel_zoom_factor(-120), 1.1)
        self.assertEqual(wheel_zoom_factor(0), 1.1)

    def test_non_positive_scale_rejected(self):
        with self.assertRaises(ValueError):
            TransformState(0, 0, 0)


class TestFilters(unittest.TestCase):
    def test_range_enforced(self):
        with self.assertRaises(ValueError):
            FilterState(brightness=49)
        with self.assertRaises(ValueError):
            FilterState(contrast=151)
        self.assertTrue(FilterState().is_identity)
        self.assertFalse(FilterState(brightness=120).is_identity)

    def test_clamp(self):
        self.assertEqual(clamp_filter(200), 150)
        self.assertEqual(clamp_filter(10), 50)
        self.assertEqual(clamp_filter(75), 75)


class TestUnits(unittest.TestCase):
    def test_mm_to_pixel_at_300_dpi(self):
        self.assertEqual(mm_to_pixel(25.4), 300)
        self.assertEqual(mm_to_pixel(101.6), 1200)
        self.assertEqual(mm_to_pixel(152.4), 1800)
        self.assertEqual(mm_to_pixel(35), 413)
        self.assertEqual(mm_to_pixel(45), 531)
        self.assertEqual(mm_to_pixel(2), 24)

    def test_preview_frame_follows_aspect(self):
        self.assertEqual(preview_frame_size(get_spec('usa')), (400, 400))
        self.assertEqual(preview_frame_size(get_spec('india')), (400, 514))

    def test_reproject_scales_axes_independently(self):
        sx, sy, ox, oy = reproject(TransformState(2.0, -10, 20), (400, 500), (800, 1500))
        self.assertEqual((sx, sy, ox, oy), (4.0, 6.0, -20.0, 60.0))


if __name__ == "__main__":
    unittest.main()
