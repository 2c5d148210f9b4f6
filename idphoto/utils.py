"""
Utility functions
"""

import io
import logging
from typing import Dict, Sequence, Tuple, Union

from PIL import Image, ImageDraw, ImageOps
from PIL.ImageCms import createProfile, ImageCmsProfile

from .config import MAX_UPLOAD_MB

logger = logging.getLogger(__name__)

# Build the sRGB ICC profile once (bytes), for embedding in saved images
_srgb_profile = ImageCmsProfile(createProfile('sRGB'))
SRGB_ICC_BYTES = _srgb_profile.tobytes()

ImageSource = Union[Image.Image, bytes, bytearray, str]


class ImageLoadError(Exception):
    """Source or mask image could not be decoded"""
    pass


# =============================================================================
# IMAGE LOADING
# =============================================================================

def load_image(source: ImageSource, max_mb: float = MAX_UPLOAD_MB) -> Image.Image:
    """Decode an upload into an EXIF-oriented PIL Image.

    Accepts encoded bytes, a file path or an already decoded image.

    Raises:
        ImageLoadError: If the data cannot be decoded or exceeds the size cap.
    """
    if isinstance(source, Image.Image):
        return source

    if isinstance(source, (bytes, bytearray)):
        if len(source) > max_mb * 1024 * 1024:
            raise ImageLoadError(f"Image exceeds {max_mb}MB upload limit")
        fp = io.BytesIO(source)
    else:
        fp = source

    try:
        img = Image.open(fp)
        img.load()
        img = ImageOps.exif_transpose(img)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageLoadError(f"Failed to decode image: {e}") from e

    if img.mode not in ('RGB', 'RGBA'):
        img = img.convert('RGBA' if 'A' in img.getbands() or 'transparency' in img.info else 'RGB')
    logger.debug(f"Loaded image {img.size} mode={img.mode}")
    return img


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format='PNG', optimize=True)
    return buf.getvalue()


# =============================================================================
# DRAWING
# =============================================================================

def draw_dashed_rect(
    draw: ImageDraw.ImageDraw,
    box: Tuple[float, float, float, float],
    dash: Sequence[int],
    fill,
    width: int = 1,
) -> None:
    """Stroke a rectangle outline with an on/off dash pattern.

    `box` is (x0, y0, x1, y1); the pattern restarts on each edge.
    """
    x0, y0, x1, y1 = box
    edges = [
        ((x0, y0), (x1, y0)),
        ((x1, y0), (x1, y1)),
        ((x0, y1), (x1, y1)),
        ((x0, y0), (x0, y1)),
    ]
    on, off = dash
    for (ax, ay), (bx, by) in edges:
        length = abs(bx - ax) + abs(by - ay)
        horizontal = ay == by
        pos = 0.0
        while pos < length:
            end = min(pos + on, length)
            if horizontal:
                seg = [(ax + pos, ay), (ax + end, ay)]
            else:
                seg = [(ax, ay + pos), (ax, ay + end)]
            draw.line(seg, fill=fill, width=width)
            pos += on + off


# =============================================================================
# GPU
# =============================================================================

class GPUInfo:
    """GPU information and diagnostics."""

    @staticmethod
    def is_available() -> bool:
        try:
            import torch
        except ImportError:
            return False
        return torch.cuda.is_available()

    @staticmethod
    def get_info() -> Dict:
        """Return GPU info as a dict."""
        if not GPUInfo.is_available():
            return {'available': False, 'device': 'CPU'}

        import torch
        props = torch.cuda.get_device_properties(0)
        info = {
            'available': True,
            'device': 'CUDA',
            'name': torch.cuda.get_device_name(0),
            'vram_total_gb': round(props.total_memory / 1024**3, 1),
            'vram_allocated_gb': round(torch.cuda.memory_allocated(0) / 1024**3, 2),
        }
        try:
            free_mem = torch.cuda.mem_get_info()[0]
            info['vram_free_gb'] = round(free_mem / 1024**3, 1)
        except RuntimeError as e:
            logger.debug(f"Could not query free VRAM: {e}")
        return info

    @staticmethod
    def log_info() -> None:
        info = GPUInfo.get_info()
        if info['available']:
            logger.info(f"GPU: {info['name']} ({info['vram_total_gb']} GB)")
        else:
            logger.info("No CUDA GPU detected, running on CPU")
