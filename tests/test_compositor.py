import io
import unittest

from PIL import Image

from idphoto.compositor import (
    apply_filters, check_file_size, encode_jpeg, export_filename,
    face_guide_box, render, render_export, render_preview,
)
from idphoto.config import PAPER_SIZES, DocumentSpec, get_spec
from idphoto.geometry import FilterState, TransformState, fit_transform, preview_frame_size

from tests._fixtures import BLUE, RED, WHITE, solid


def _halves(size=(200, 100)):
    """Left half red, right half blue."""
    img = solid(size, RED)
    img.paste(BLUE, (size[0] // 2, 0, size[0], size[1]))
    return img


class TestRender(unittest.TestCase):
    def test_background_fills_uncovered_area(self):
        out = render((40, 40), solid((10, 10), RED), TransformState(1.0, 5, 5), FilterState(), BLUE)
        self.assertEqual(out.size, (40, 40))
        self.assertEqual(out.getpixel((0, 0)), BLUE)
        self.assertEqual(out.getpixel((30, 30)), BLUE)
        self.assertEqual(out.getpixel((10, 10)), RED)

    def test_render_leaves_source_untouched(self):
        src = solid((10, 10), (100, 100, 100))
        render((20, 20), src, TransformState(1.5, 0, 0), FilterState(brightness=150), WHITE)
        self.assertEqual(src.getpixel((5, 5)), (100, 100, 100))

    def test_preview_and_export_show_same_region(self):
        src = _halves()
        for spec_id in ('usa', 'india'):
            spec = get_spec(spec_id)
            frame = preview_frame_size(spec)
            t = fit_transform(frame[0], frame[1], src.width, src.height)
            preview = render(frame, src, t, FilterState(), spec.background_rgb)
            export = render_export(src, t, FilterState(), spec, frame)
            for rx in (0.25, 0.75):
                px = preview.getpixel((int(frame[0] * rx), frame[1] // 2))
                ex = export.getpixel((int(export.width * rx), export.height // 2))
                self.assertEqual(px, ex)
            self.assertEqual(preview.getpixel((int(frame[0] * 0.25), frame[1] // 2)), RED)
            self.assertEqual(preview.getpixel((int(frame[0] * 0.75), frame[1] // 2)), BLUE)

    def test_export_always_has_digital_size(self):
        src = solid((640, 480), RED)
        for spec_id in ('usa', 'uk', 'china', 'singapore'):
            spec = get_spec(spec_id)
            for frame in ((400, 400), preview_frame_size(spec), (300, 500)):
                t = fit_transform(frame[0], frame[1], src.width, src.height)
                out = render_export(src, t, FilterState(), spec, frame)
                self.assertEqual(out.size, (spec.digital_width, spec.digital_height))
                self.assertIn('icc_profile', out.info)

    def test_image_dragged_out_of_frame_exports_background(self):
        spec = get_spec('uk')
        out = render_export(solid((100, 100), RED), TransformState(1.0, 5000, 5000), FilterState(), spec)
        self.assertEqual(out.getextrema(), ((245, 245), (245, 245), (245, 245)))


class TestFilters(unittest.TestCase):
    def test_brightness_then_contrast(self):
        src = solid((20, 20), (100, 100, 100))
        out = apply_filters(src, FilterState(brightness=120, contrast=150))
        # brightness: 100 -> 120, then contrast: (120 - 128) * 1.5 + 128 = 116
        self.assertAlmostEqual(out.getpixel((10, 10))[0], 116, delta=1)

    def test_contrast_only(self):
        out = apply_filters(solid((4, 4), (100, 200, 128)), FilterState(contrast=150))
        self.assertEqual(out.getpixel((0, 0)), (86, 236, 128))

    def test_identity_returns_copy(self):
        src = solid((4, 4), RED)
        out = apply_filters(src, FilterState())
        self.assertIsNot(out, src)
        self.assertEqual(out.getpixel((0, 0)), RED)

    def test_alpha_preserved(self):
        src = Image.new('RGBA', (4, 4), (100, 100, 100, 128))
        out = apply_filters(src, FilterState(brightness=150))
        self.assertEqual(out.mode, 'RGBA')
        self.assertEqual(out.getchannel('A').getextrema(), (128, 128))


class TestFaceGuide(unittest.TestCase):
    def test_guide_box_geometry(self):
        box = face_guide_box(400, 400, get_spec('usa'))
        self.assertAlmostEqual(box.height, 238)
        self.assertAlmostEqual(box.width, 178.5)
        self.assertAlmostEqual(box.x, 110.75)
        self.assertAlmostEqual(box.y, 61)
        self.assertAlmostEqual(box.eye_level, 61 + 238 * 0.35)
        self.assertAlmostEqual(box.center_x, 200)

    def test_guide_box_top_clamped(self):
        tall = DocumentSpec(
            id='tall', country='Test', name='Tall face', width_mm=35, height_mm=45,
            face_min_percent=95, face_max_percent=100, digital_width=350, digital_height=450,
            file_size_min_kb=1, file_size_max_kb=100,
        )
        self.assertEqual(face_guide_box(100, 100, tall).y, 0)

    def test_preview_dims_outside_guide(self):
        spec = get_spec('usa')
        src = solid((800, 800), WHITE)
        t = fit_transform(400, 400, 800, 800)
        preview = render_preview(src, t, FilterState(), spec)
        self.assertEqual(preview.size, (400, 400))
        self.assertAlmostEqual(preview.getpixel((0, 0))[0], 153, delta=1)
        self.assertEqual(preview.getpixel((250, 260)), WHITE)


class TestExport(unittest.TestCase):
    def test_jpeg_carries_dpi_and_profile(self):
        data = encode_jpeg(solid((60, 60), RED))
        with Image.open(io.BytesIO(data)) as img:
            self.assertEqual(img.format, 'JPEG')
            self.assertEqual(tuple(round(v) for v in img.info['dpi']), (300, 300))
            self.assertIn('icc_profile', img.info)

    def test_file_size_bounds(self):
        spec = DocumentSpec(
            id='t', country='Test', name='T', width_mm=35, height_mm=45,
            face_min_percent=50, face_max_percent=70, digital_width=350, digital_height=450,
            file_size_min_kb=10, file_size_max_kb=20,
        )
        self.assertFalse(check_file_size(b'x' * 5 * 1024, spec).within_bounds)
        self.assertTrue(check_file_size(b'x' * 15 * 1024, spec).within_bounds)
        too_big = check_file_size(b'x' * 25 * 1024, spec)
        self.assertFalse(too_big.within_bounds)
        self.assertAlmostEqual(too_big.size_kb, 25)
        self.assertIn('maximum', too_big.message)

    def test_filenames(self):
        spec = get_spec('usa')
        self.assertEqual(export_filename(spec), 'passport-photo-united-states-usa.jpg')
        self.assertEqual(export_filename(spec, PAPER_SIZES['4x6']),
                         'passport-photos-united-states-usa-4x6.jpg')


if __name__ == "__main__":
    unittest.main()
