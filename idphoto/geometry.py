"""
Geometry model — pan/zoom transform math and unit conversion.

All functions here are pure. A TransformState places the source bitmap's
top-left corner at (offset_x, offset_y) inside a fixed-size editing frame,
drawn at `scale` frame pixels per source pixel.
"""

import math
from dataclasses import dataclass, replace
from typing import Tuple

from .config import (
    DPI, MM_PER_INCH, PREVIEW_FRAME_WIDTH,
    FIT_OVERSCAN, MIN_SCALE, MAX_SCALE, WHEEL_ZOOM_IN, WHEEL_ZOOM_OUT,
    FILTER_MIN, FILTER_MAX, FILTER_DEFAULT,
    DocumentSpec,
)


@dataclass(frozen=True)
class TransformState:
    """Position and scale of the source bitmap inside the editing frame."""
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    def __post_init__(self):
        if not self.scale > 0:
            raise ValueError(f"Scale must be positive, got {self.scale}")


@dataclass(frozen=True)
class FilterState:
    """Brightness/contrast in percent, 100 meaning unchanged."""
    brightness: float = FILTER_DEFAULT
    contrast: float = FILTER_DEFAULT

    def __post_init__(self):
        for name in ('brightness', 'contrast'):
            value = getattr(self, name)
            if not FILTER_MIN <= value <= FILTER_MAX:
                raise ValueError(f"{name} must be in [{FILTER_MIN}, {FILTER_MAX}], got {value}")

    @property
    def is_identity(self) -> bool:
        return self.brightness == FILTER_DEFAULT and self.contrast == FILTER_DEFAULT


def clamp_filter(value: float) -> float:
    return max(FILTER_MIN, min(FILTER_MAX, value))


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


# =============================================================================
# FIT
# =============================================================================

def fit_scale(frame_w: float, frame_h: float, img_w: float, img_h: float) -> float:
    """Scale at which the image covers the whole frame, plus a crop margin."""
    if img_w <= 0 or img_h <= 0:
        raise ValueError(f"Invalid image size: {img_w}x{img_h}")
    return max(frame_w / img_w, frame_h / img_h) * FIT_OVERSCAN


def fit_transform(frame_w: float, frame_h: float, img_w: float, img_h: float) -> TransformState:
    """Initial transform: covering scale, centred on both axes."""
    scale = fit_scale(frame_w, frame_h, img_w, img_h)
    return TransformState(
        scale=scale,
        offset_x=(frame_w - img_w * scale) / 2,
        offset_y=(frame_h - img_h * scale) / 2,
    )


# =============================================================================
# PAN / ZOOM
# =============================================================================

def pan(state: TransformState, dx: float, dy: float) -> TransformState:
    # Unbounded: the image may be dragged fully out of frame.
    return replace(state, offset_x=state.offset_x + dx, offset_y=state.offset_y + dy)


def zoom_around_point(
    state: TransformState, factor: float, pivot_x: float, pivot_y: float,
) -> TransformState:
    """Zoom by `factor`, keeping the image point under the pivot fixed.

    The resulting scale is clamped to [MIN_SCALE, MAX_SCALE]; the offsets
    follow the clamped scale, not the requested one.
    """
    new_scale = clamp_scale(state.scale * factor)
    change = new_scale / state.scale
    return TransformState(
        scale=new_scale,
        offset_x=pivot_x - (pivot_x - state.offset_x) * change,
        offset_y=pivot_y - (pivot_y - state.offset_y) * change,
    )


def zoom_to_center(
    state: TransformState, factor: float, frame_w: float, frame_h: float,
) -> TransformState:
    return zoom_around_point(state, factor, frame_w / 2, frame_h / 2)


def wheel_zoom_factor(delta_y: float) -> float:
    """Scrolling down zooms out, anything else zooms in."""
    return WHEEL_ZOOM_OUT if delta_y > 0 else WHEEL_ZOOM_IN


# =============================================================================
# UNITS
# =============================================================================

def mm_to_pixel(mm: float, dpi: int = DPI) -> int:
    """Millimetres to whole pixels, rounding halves up."""
    return int(math.floor(mm / MM_PER_INCH * dpi + 0.5))


def preview_frame_size(spec: DocumentSpec, width: int = PREVIEW_FRAME_WIDTH) -> Tuple[int, int]:
    """Editing frame size: fixed width, height from the document aspect ratio."""
    return width, int(math.floor(width / spec.aspect_ratio + 0.5))


def reproject(
    state: TransformState,
    frame: Tuple[float, float],
    output: Tuple[float, float],
) -> Tuple[float, float, float, float]:
    """Map a frame-space transform onto an output raster of another size.

    Returns (scale_x, scale_y, offset_x, offset_y). The two axes are scaled
    independently so a digital size whose aspect differs from the frame
    still shows exactly the region visible in the frame.
    """
    fx = output[0] / frame[0]
    fy = output[1] / frame[1]
    return state.scale * fx, state.scale * fy, state.offset_x * fx, state.offset_y * fy
