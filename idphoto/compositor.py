"""
Compositor — renders the transformed, filtered source onto an output raster.

Filter pipeline (applied to the source bitmap before placement, in order):
    1. brightness: every channel multiplied by brightness/100
    2. contrast:   every channel mapped to (v - 128) * contrast/100 + 128
Both steps clip to [0, 255] and leave alpha untouched.

Placement is one affine resample from output space back into source space,
so the preview frame and the export raster (with independent per-axis
factors) show exactly the same region of the source.
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageEnhance

from .config import (
    DPI, EXPORT_QUALITY, DocumentSpec, PaperSize,
    GUIDE_COLOR, GUIDE_DIM_ALPHA, GUIDE_DASH, FACE_ASPECT, GUIDE_VERTICAL_BIAS, EYE_LEVEL,
)
from .geometry import FilterState, TransformState, preview_frame_size, reproject
from .utils import SRGB_ICC_BYTES, draw_dashed_rect

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]


@dataclass(frozen=True)
class FaceGuideBox:
    """Where the face should sit inside a frame, in frame pixels."""
    x: float
    y: float
    width: float
    height: float

    @property
    def eye_level(self) -> float:
        return self.y + self.height * EYE_LEVEL

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2


@dataclass(frozen=True)
class FileSizeCheck:
    size_kb: float
    within_bounds: bool
    message: str


# =============================================================================
# FILTERS
# =============================================================================

def _contrast_lut(contrast: float):
    factor = contrast / 100
    return [max(0, min(255, int(round((v - 128) * factor + 128)))) for v in range(256)]


def apply_filters(source: Image.Image, filters: FilterState) -> Image.Image:
    """Apply brightness then contrast; returns a new image."""
    if filters.is_identity:
        return source.copy()

    alpha = source.getchannel('A') if 'A' in source.getbands() else None
    rgb = source.convert('RGB')

    if filters.brightness != 100:
        rgb = ImageEnhance.Brightness(rgb).enhance(filters.brightness / 100)
    if filters.contrast != 100:
        rgb = rgb.point(_contrast_lut(filters.contrast) * 3)

    if alpha is not None:
        rgb.putalpha(alpha)
    return rgb


# =============================================================================
# RENDER
# =============================================================================

def _draw(
    size: Tuple[int, int],
    source: Image.Image,
    scale_x: float,
    scale_y: float,
    offset_x: float,
    offset_y: float,
    filters: FilterState,
    background: Color,
) -> Image.Image:
    filtered = apply_filters(source, filters).convert('RGBA')
    # Output (x, y) samples source ((x - ox) / sx, (y - oy) / sy)
    coeffs = (
        1 / scale_x, 0, -offset_x / scale_x,
        0, 1 / scale_y, -offset_y / scale_y,
    )
    layer = filtered.transform(
        size, Image.AFFINE, coeffs, resample=Image.BICUBIC, fillcolor=(0, 0, 0, 0),
    )
    canvas = Image.new('RGBA', size, tuple(background) + (255,))
    canvas.alpha_composite(layer)
    return canvas.convert('RGB')


def render(
    size: Tuple[int, int],
    source: Image.Image,
    transform: TransformState,
    filters: FilterState,
    background: Color,
) -> Image.Image:
    """Fill `size` with `background` and draw the filtered, transformed source.

    Pure: neither the source nor the states are modified.
    """
    return _draw(
        size, source,
        transform.scale, transform.scale,
        transform.offset_x, transform.offset_y,
        filters, background,
    )


# =============================================================================
# FACE GUIDE
# =============================================================================

def face_guide_box(frame_w: float, frame_h: float, spec: DocumentSpec) -> FaceGuideBox:
    face_height = frame_h * spec.face_mid_percent / 100
    face_width = face_height * FACE_ASPECT
    top = (frame_h - face_height) / 2 - frame_h * GUIDE_VERTICAL_BIAS
    return FaceGuideBox(
        x=(frame_w - face_width) / 2,
        y=max(0, top),
        width=face_width,
        height=face_height,
    )


def draw_face_guide(image: Image.Image, spec: DocumentSpec) -> Image.Image:
    """Return a copy of `image` with the face-positioning overlay drawn on it."""
    w, h = image.size
    box = face_guide_box(w, h, spec)
    x0, y0 = int(round(box.x)), int(round(box.y))
    x1, y1 = int(round(box.x + box.width)), int(round(box.y + box.height))

    overlay = Image.new('RGBA', (w, h), (0, 0, 0, 0))
    dim = (0, 0, 0, GUIDE_DIM_ALPHA)
    for region in (
        (0, 0, w, y0),          # top
        (0, y1, w, h),          # bottom
        (0, y0, x0, y1),        # left
        (x1, y0, w, y1),        # right
    ):
        if region[2] > region[0] and region[3] > region[1]:
            overlay.paste(dim, region)

    canvas = image.convert('RGBA')
    canvas.alpha_composite(overlay)

    draw = ImageDraw.Draw(canvas, 'RGBA')
    draw_dashed_rect(draw, (x0, y0, x1, y1), GUIDE_DASH, fill=GUIDE_COLOR + (255,), width=2)

    cx, cy = box.center_x, box.eye_level
    cross = GUIDE_COLOR + (153,)
    draw.line([(cx - 20, cy), (cx + 20, cy)], fill=cross, width=1)
    draw.line([(cx, cy - 10), (cx, cy + 10)], fill=cross, width=1)

    label = (255, 255, 255, 230)
    draw.text((box.x + 5, box.y + 6), 'Position face in this area', fill=label)
    draw.text((box.x + 5, cy + 15), 'Eyes on crosshair', fill=label)

    return canvas.convert('RGB')


def render_preview(
    source: Image.Image,
    transform: TransformState,
    filters: FilterState,
    spec: DocumentSpec,
    frame: Optional[Tuple[int, int]] = None,
    background: Optional[Color] = None,
) -> Image.Image:
    """Editing preview: frame-sized render with the face guide on top."""
    frame = frame or preview_frame_size(spec)
    bg = background or spec.background_rgb
    return draw_face_guide(render(frame, source, transform, filters, bg), spec)


# =============================================================================
# EXPORT
# =============================================================================

def render_export(
    source: Image.Image,
    transform: TransformState,
    filters: FilterState,
    spec: DocumentSpec,
    frame: Optional[Tuple[int, int]] = None,
) -> Image.Image:
    """Render the crop seen in the preview frame at the document's digital size."""
    frame = frame or preview_frame_size(spec)
    output = (spec.digital_width, spec.digital_height)
    sx, sy, ox, oy = reproject(transform, frame, output)
    logger.info(
        f"Exporting {spec.id}: frame {frame[0]}x{frame[1]} -> "
        f"{output[0]}x{output[1]} (scale {sx:.4f}/{sy:.4f})"
    )
    photo = _draw(output, source, sx, sy, ox, oy, filters, spec.background_rgb)
    photo.info['icc_profile'] = SRGB_ICC_BYTES
    return photo


def encode_jpeg(image: Image.Image, quality: int = EXPORT_QUALITY) -> bytes:
    """Encode as JPEG with an embedded sRGB profile at print DPI."""
    buf = io.BytesIO()
    image.convert('RGB').save(
        buf, 'JPEG', quality=quality, dpi=(DPI, DPI), icc_profile=SRGB_ICC_BYTES,
    )
    return buf.getvalue()


def check_file_size(data: bytes, spec: DocumentSpec) -> FileSizeCheck:
    size_kb = len(data) / 1024
    if size_kb < spec.file_size_min_kb:
        return FileSizeCheck(size_kb, False,
                             f"File is {size_kb:.0f}KB, below the {spec.file_size_min_kb}KB minimum")
    if size_kb > spec.file_size_max_kb:
        return FileSizeCheck(size_kb, False,
                             f"File is {size_kb:.0f}KB, above the {spec.file_size_max_kb}KB maximum")
    return FileSizeCheck(size_kb, True, f"File size {size_kb:.0f}KB is within limits")


def export_filename(spec: DocumentSpec, paper: Optional[PaperSize] = None) -> str:
    if paper is None:
        return f"passport-photo-{spec.slug}-{spec.id}.jpg"
    return f"passport-photos-{spec.slug}-{spec.id}-{paper.key}.jpg"
