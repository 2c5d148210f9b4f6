"""
Print sheet planning and rendering module
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Tuple

from PIL import Image, ImageDraw

from .config import (
    DPI, DEFAULT_GAP_MM, DEFAULT_MARGIN_MM, CUT_GUIDE_DASH_MM,
    DocumentSpec, PaperSize,
)
from .geometry import mm_to_pixel
from .utils import SRGB_ICC_BYTES, draw_dashed_rect

logger = logging.getLogger(__name__)

BORDER_COLOR = (224, 224, 224)
CUT_GUIDE_COLOR = (204, 204, 204)


@dataclass(frozen=True)
class GridPlan:
    """Maximum tiling of one photo size on one paper size."""
    columns: int
    rows: int

    @property
    def total(self) -> int:
        return self.columns * self.rows


def plan_grid(
    paper_width_mm: float,
    paper_height_mm: float,
    photo_width_mm: float,
    photo_height_mm: float,
    gap_mm: float = DEFAULT_GAP_MM,
    margin_mm: float = DEFAULT_MARGIN_MM,
) -> GridPlan:
    """How many photos fit inside the paper's margins with `gap_mm` between them."""
    usable_w = paper_width_mm - 2 * margin_mm
    usable_h = paper_height_mm - 2 * margin_mm
    columns = math.floor((usable_w + gap_mm) / (photo_width_mm + gap_mm))
    rows = math.floor((usable_h + gap_mm) / (photo_height_mm + gap_mm))
    return GridPlan(columns=max(0, columns), rows=max(0, rows))


def plan_for(paper: PaperSize, spec: DocumentSpec, gap_mm: float = DEFAULT_GAP_MM) -> GridPlan:
    return plan_grid(paper.width_mm, paper.height_mm, spec.width_mm, spec.height_mm, gap_mm=gap_mm)


def clamp_photo_count(requested: int, total: int) -> int:
    """Bring a requested copy count into [1, total] (0 when nothing fits)."""
    if total <= 0:
        return 0
    return max(1, min(int(requested), total))


def layout_positions(
    plan: GridPlan,
    count: int,
    paper_width_mm: float,
    paper_height_mm: float,
    photo_width_mm: float,
    photo_height_mm: float,
    gap_mm: float = DEFAULT_GAP_MM,
) -> List[Tuple[float, float]]:
    """Top-left corners (mm) of `count` photos, the occupied block centred.

    Raises:
        ValueError: If `count` is negative or exceeds the plan's total;
            callers clamp with `clamp_photo_count` first.
    """
    if count < 0 or count > plan.total:
        raise ValueError(f"Photo count {count} outside [0, {plan.total}]")
    if count == 0:
        return []

    cols = min(plan.columns, math.ceil(math.sqrt(count)))
    rows = math.ceil(count / cols)
    if rows > plan.rows:
        # Wide, short plans: spread across more columns so rows stay on the paper
        cols = math.ceil(count / plan.rows)
        rows = math.ceil(count / cols)

    block_w = cols * photo_width_mm + (cols - 1) * gap_mm
    block_h = rows * photo_height_mm + (rows - 1) * gap_mm
    start_x = (paper_width_mm - block_w) / 2
    start_y = (paper_height_mm - block_h) / 2

    positions = []
    for i in range(count):
        row, col = divmod(i, cols)
        positions.append((
            start_x + col * (photo_width_mm + gap_mm),
            start_y + row * (photo_height_mm + gap_mm),
        ))
    return positions


class SheetGenerator:
    """Renders printable photo sheets at print resolution."""

    def __init__(self, dpi: int = DPI, gap_mm: float = DEFAULT_GAP_MM):
        self._dpi = dpi
        self._gap_mm = gap_mm

    def sheet_size(self, paper: PaperSize) -> Tuple[int, int]:
        return mm_to_pixel(paper.width_mm, self._dpi), mm_to_pixel(paper.height_mm, self._dpi)

    def create_sheet(
        self,
        photo: Image.Image,
        spec: DocumentSpec,
        paper: PaperSize,
        count: int,
    ) -> Image.Image:
        """Tile `count` copies of `photo` on `paper`.

        Args:
            photo: The exported document photo.
            spec: DocumentSpec giving the physical photo size.
            paper: Target paper.
            count: Number of copies, already clamped to the plan total.

        Returns:
            PIL Image of the print sheet.
        """
        plan = plan_for(paper, spec, self._gap_mm)
        positions = layout_positions(
            plan, count, paper.width_mm, paper.height_mm,
            spec.width_mm, spec.height_mm, self._gap_mm,
        )

        to_px = lambda mm: mm_to_pixel(mm, self._dpi)  # noqa: E731
        sheet_size = self.sheet_size(paper)
        photo_size = (to_px(spec.width_mm), to_px(spec.height_mm))

        logger.info(
            f"Creating {spec.name} sheet on {paper.name}: {count}/{plan.total} photos "
            f"({plan.columns}x{plan.rows} max), {sheet_size[0]}x{sheet_size[1]}px @ {self._dpi} DPI"
        )

        sheet = Image.new('RGB', sheet_size, 'white')
        photo_resized = photo.convert('RGB').resize(photo_size, Image.LANCZOS)
        draw = ImageDraw.Draw(sheet)
        pixel_positions = [(to_px(x), to_px(y)) for x, y in positions]

        for x, y in pixel_positions:
            draw.rectangle(
                [x - 1, y - 1, x + photo_size[0], y + photo_size[1]],
                outline=BORDER_COLOR, width=1,
            )
            sheet.paste(photo_resized, (x, y))

        dash = (to_px(CUT_GUIDE_DASH_MM), to_px(CUT_GUIDE_DASH_MM))
        for x, y in pixel_positions:
            draw_dashed_rect(
                draw, (x, y, x + photo_size[0] - 1, y + photo_size[1] - 1),
                dash, fill=CUT_GUIDE_COLOR, width=1,
            )

        sheet.info['icc_profile'] = SRGB_ICC_BYTES
        return sheet
