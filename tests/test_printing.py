import base64
import unittest

from idphoto.config import PAPER_SIZES
from idphoto.printing import print_markup


class TestPrintMarkup(unittest.TestCase):
    def test_page_matches_paper(self):
        html = print_markup(b'\xff\xd8fake', PAPER_SIZES['4x6'])
        self.assertIn('@page { size: 101.6mm 152.4mm; margin: 0; }', html)
        self.assertIn('width: 101.6mm; height: 152.4mm;', html)
        self.assertIn('window.print()', html)

    def test_sheet_embedded_as_data_uri(self):
        data = b'\xff\xd8jpeg-bytes'
        html = print_markup(data, PAPER_SIZES['A4'])
        self.assertIn('data:image/jpeg;base64,' + base64.b64encode(data).decode('ascii'), html)
        self.assertIn('size: 210mm 297mm', html)

    def test_title_escaped(self):
        html = print_markup(b'x', PAPER_SIZES['letter'], title='<script>')
        self.assertNotIn('<script>', html)
        self.assertIn('&lt;script&gt;', html)


if __name__ == "__main__":
    unittest.main()
