"""
Standalone print document for a rendered sheet.

The sheet image is embedded and sized in millimetres so the browser prints
it at actual size; the page box matches the paper with no margins.
"""

import base64

from jinja2 import Environment, select_autoescape

from .config import PaperSize

_env = Environment(autoescape=select_autoescape(default=True))

PRINT_TEMPLATE = _env.from_string("""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>{{ title }}</title>
    <style>
      @page { size: {{ width_mm }}mm {{ height_mm }}mm; margin: 0; }
      html, body { margin: 0; padding: 0; }
      img { display: block; width: {{ width_mm }}mm; height: {{ height_mm }}mm; }
    </style>
  </head>
  <body>
    <img src="{{ data_uri }}" alt="{{ title }}" onload="window.print();" />
  </body>
</html>
""")


def print_markup(jpeg_bytes: bytes, paper: PaperSize, title: str = 'Print Passport Photos') -> str:
    data_uri = 'data:image/jpeg;base64,' + base64.b64encode(jpeg_bytes).decode('ascii')
    return PRINT_TEMPLATE.render(
        title=title,
        width_mm=f"{paper.width_mm:g}",
        height_mm=f"{paper.height_mm:g}",
        data_uri=data_uri,
    )
