import io
import unittest

from PIL import Image

from idphoto import web
from idphoto.background import ProviderId, RemovalOrchestrator
from idphoto.validation import FaceBox, FaceValidator

from tests._fixtures import RED, FakeDetector, FakeProvider, png_bytes, solid


def _upload(data=None, filename='photo.png', **fields):
    form = {'file': (io.BytesIO(data if data is not None else png_bytes(solid((200, 200), RED))), filename)}
    form.update(fields)
    return form


class TestWebApi(unittest.TestCase):
    def setUp(self):
        web.configure(
            orchestrator=RemovalOrchestrator([FakeProvider(ProviderId.REMBG)]),
            validator=FaceValidator(FakeDetector([FaceBox(10, 10, 50, 60)])),
        )
        self.client = web.app.test_client()

    def tearDown(self):
        web.configure(None, None)

    def test_specs(self):
        resp = self.client.get('/api/specs')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.get_json()), 15)

        detail = self.client.get('/api/specs/india').get_json()
        self.assertEqual(detail['preview_frame'], [400, 514])
        self.assertEqual(self.client.get('/api/specs/atlantis').status_code, 404)

    def test_papers_with_capacity(self):
        papers = {p['key']: p for p in self.client.get('/api/papers?spec=india').get_json()}
        self.assertEqual((papers['4x6']['columns'], papers['4x6']['rows'], papers['4x6']['total']), (2, 3, 6))

    def test_export(self):
        resp = self.client.post('/api/export', data=_upload(spec='usa'), content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.mimetype, 'image/jpeg')
        self.assertIn('passport-photo-united-states-usa.jpg', resp.headers['Content-Disposition'])
        self.assertIn(resp.headers['X-File-Size-OK'], ('true', 'false'))
        self.assertEqual(Image.open(io.BytesIO(resp.data)).size, (600, 600))

    def test_export_invalid_requests(self):
        resp = self.client.post('/api/export', data=_upload(spec='atlantis'), content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['error_type'], 'validation_error')

        resp = self.client.post('/api/export', data=_upload(b'not an image'), content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['error_type'], 'image_load_error')

        resp = self.client.post('/api/export', data=_upload(filename='photo.gif'), content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 400)

        resp = self.client.post('/api/export', data=_upload(scale='-1'), content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 400)

    def test_validate(self):
        resp = self.client.post('/api/validate', data=_upload(), content_type='multipart/form-data')
        body = resp.get_json()
        self.assertEqual(body['face_count'], 1)
        self.assertTrue(body['is_valid'])

    def test_remove_background(self):
        resp = self.client.post('/api/remove-background', data=_upload(spec='uk'),
                                content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers['X-Removal-Method'], 'rembg')
        img = Image.open(io.BytesIO(resp.data))
        self.assertEqual(img.convert('RGB').getpixel((2, 2)), (245, 245, 245))

    def test_remove_background_failure(self):
        web.configure(orchestrator=RemovalOrchestrator([
            FakeProvider(ProviderId.REMBG, error=RuntimeError('segmentation crashed')),
            FakeProvider(ProviderId.TRANSFORMERS, error=RuntimeError('segmentation crashed')),
        ]))
        resp = self.client.post('/api/remove-background', data=_upload(), content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 502)
        body = resp.get_json()
        self.assertEqual(body['method'], 'transformers')
        self.assertEqual(sorted(body['retry_methods']), ['rembg', 'transformers'])

    def test_remove_background_unknown_method(self):
        resp = self.client.post('/api/remove-background', data=_upload(method='imgly'),
                                content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 400)

    def test_sheet(self):
        resp = self.client.post('/api/sheet', data=_upload(spec='india', paper='4x6', count='10'),
                                content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 200)
        self.assertIn('passport-photos-india-india-4x6.jpg', resp.headers['Content-Disposition'])
        self.assertEqual(Image.open(io.BytesIO(resp.data)).size, (1200, 1800))

    def test_print(self):
        resp = self.client.post('/api/print', data=_upload(spec='india', paper='4x6'),
                                content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.mimetype, 'text/html')
        self.assertIn(b'@page { size: 101.6mm 152.4mm', resp.data)

    def test_health(self):
        body = self.client.get('/api/health').get_json()
        self.assertEqual(body['status'], 'ok')
        self.assertEqual(body['providers'], ['rembg'])


if __name__ == "__main__":
    unittest.main()
