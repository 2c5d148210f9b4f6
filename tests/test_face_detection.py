import importlib.util
import unittest
from types import SimpleNamespace

from tests._fixtures import solid

HAS_DETECTOR_DEPS = all(importlib.util.find_spec(m) is not None for m in ('cv2', 'mediapipe'))


@unittest.skipIf(not HAS_DETECTOR_DEPS, "cv2/mediapipe not installed")
class TestMediaPipeFaceDetector(unittest.TestCase):
    def setUp(self):
        from idphoto.face_detection import DETECTION_MAX_EDGE, MediaPipeFaceDetector
        self.detector_cls = MediaPipeFaceDetector
        self.max_edge = DETECTION_MAX_EDGE

    def test_prepare_downscales_large_images(self):
        rgb, scale = self.detector_cls._prepare(solid((2560, 1280)))
        self.assertEqual(rgb.shape[:2], (640, 1280))
        self.assertAlmostEqual(scale, self.max_edge / 2560)

    def test_prepare_keeps_small_images(self):
        rgb, scale = self.detector_cls._prepare(solid((300, 200)))
        self.assertEqual(rgb.shape, (200, 300, 3))
        self.assertEqual(scale, 1.0)

    def test_box_mapped_back_to_source_pixels(self):
        landmarks = [SimpleNamespace(x=0.25, y=0.2), SimpleNamespace(x=0.75, y=0.6)]
        box = self.detector_cls._box_from_landmarks(landmarks, 640, 480, 0.5)
        self.assertAlmostEqual(box.x, 320)
        self.assertAlmostEqual(box.y, 192)
        self.assertAlmostEqual(box.width, 640)
        self.assertAlmostEqual(box.height, 384)

    def test_box_clipped_to_image(self):
        landmarks = [SimpleNamespace(x=-0.1, y=0.5), SimpleNamespace(x=1.2, y=0.9)]
        box = self.detector_cls._box_from_landmarks(landmarks, 100, 100, 1.0)
        self.assertEqual((box.x, box.width), (0.0, 100.0))


if __name__ == "__main__":
    unittest.main()
