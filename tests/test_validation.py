import unittest

from idphoto.validation import (
    INCONCLUSIVE_MESSAGE, NO_FACE_MESSAGE, ONE_FACE_MESSAGE, FaceBox, FaceValidator,
    judge_faces, validate_sync,
)

from tests._fixtures import FakeDetector, solid

FACE = FaceBox(x=40, y=30, width=20, height=26, confidence=0.9)


class TestJudgeFaces(unittest.TestCase):
    def test_no_face(self):
        check = judge_faces([])
        self.assertEqual(check.face_count, 0)
        self.assertFalse(check.is_valid)
        self.assertEqual(check.message, NO_FACE_MESSAGE)

    def test_one_face(self):
        check = judge_faces([FACE])
        self.assertTrue(check.is_valid)
        self.assertEqual(check.message, ONE_FACE_MESSAGE)
        self.assertEqual(check.boxes, [FACE])

    def test_several_faces(self):
        check = judge_faces([FACE, FACE, FACE])
        self.assertEqual(check.face_count, 3)
        self.assertFalse(check.is_valid)
        self.assertTrue(check.message.startswith('3 faces detected'))


class TestFaceValidator(unittest.IsolatedAsyncioTestCase):
    async def test_uses_detector_boxes(self):
        check = await FaceValidator(FakeDetector([FACE])).validate(solid())
        self.assertTrue(check.is_valid)
        self.assertFalse(check.inconclusive)
        self.assertEqual(check.to_dict()['boxes'][0]['width'], 20)

    async def test_detector_failure_fails_open(self):
        check = await FaceValidator(FakeDetector(error=RuntimeError('model missing'))).validate(solid())
        self.assertEqual(check.face_count, -1)
        self.assertTrue(check.is_valid)
        self.assertTrue(check.inconclusive)
        self.assertEqual(check.message, INCONCLUSIVE_MESSAGE)


class TestValidateSync(unittest.TestCase):
    def test_runs_outside_event_loop(self):
        check = validate_sync(FaceValidator(FakeDetector([FACE, FACE])), solid())
        self.assertFalse(check.is_valid)
        self.assertIsNone(validate_sync(None, solid()))


if __name__ == "__main__":
    unittest.main()
