"""
Configuration settings for idphoto - Document Photo Studio
"""

import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from PIL import ImageColor


# =============================================================================
# GENERAL CONFIG
# =============================================================================

DPI = 300
MM_PER_INCH = 25.4

OUTPUT_BASE = os.environ.get('IDPHOTO_OUTPUT_DIR', 'outputs/idphoto')

# Editing frame
PREVIEW_FRAME_WIDTH = 400
FIT_OVERSCAN = 1.1
MIN_SCALE = 0.1
MAX_SCALE = 5.0
WHEEL_ZOOM_IN = 1.1
WHEEL_ZOOM_OUT = 0.9

# Filters (percent)
FILTER_MIN = 50
FILTER_MAX = 150
FILTER_DEFAULT = 100

# Export
EXPORT_QUALITY = 95
MAX_UPLOAD_MB = int(os.environ.get('IDPHOTO_MAX_UPLOAD_MB', '10'))

# Print sheet
DEFAULT_GAP_MM = 3
DEFAULT_MARGIN_MM = 5
CUT_GUIDE_DASH_MM = 2
DEFAULT_PHOTO_COUNT = 6
DEFAULT_PAPER = '4x6'

# Face guide overlay
GUIDE_COLOR = (45, 150, 140)
GUIDE_DIM_ALPHA = 102  # 40% black
GUIDE_DASH = (6, 4)
FACE_ASPECT = 0.75
GUIDE_VERTICAL_BIAS = 0.05
EYE_LEVEL = 0.35


# =============================================================================
# SEGMENTATION PROVIDERS
# =============================================================================

REMBG_MODEL = os.environ.get('IDPHOTO_REMBG_MODEL', 'birefnet-general')
TRANSFORMERS_MODEL = os.environ.get('IDPHOTO_TRANSFORMERS_MODEL', 'briaai/RMBG-1.4')


# =============================================================================
# FACE DETECTION
# =============================================================================

MIN_DETECTION_CONFIDENCE = 0.5
MAX_FACES = 5
FACE_LANDMARKER_MODEL = os.environ.get('IDPHOTO_FACE_MODEL', 'models/face_landmarker.task')
FACE_LANDMARKER_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
    "face_landmarker/float16/1/face_landmarker.task"
)


# =============================================================================
# DOCUMENT SPEC DATACLASS & REGISTRY
# =============================================================================

@dataclass(frozen=True)
class DocumentSpec:
    """Immutable per-country specification for a document photo."""
    id: str
    country: str
    name: str
    width_mm: float
    height_mm: float
    face_min_percent: float
    face_max_percent: float
    digital_width: int
    digital_height: int
    file_size_min_kb: int
    file_size_max_kb: int
    background_color: str = '#FFFFFF'
    background_color_name: str = 'White'
    official_url: str = ''
    requirements: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not 0 < self.face_min_percent <= self.face_max_percent <= 100:
            raise ValueError(
                f"Invalid face range for {self.id}: "
                f"{self.face_min_percent}-{self.face_max_percent}%"
            )
        if self.width_mm <= 0 or self.height_mm <= 0:
            raise ValueError(f"Invalid physical size for {self.id}")
        if self.digital_width <= 0 or self.digital_height <= 0:
            raise ValueError(f"Invalid digital size for {self.id}")
        if self.file_size_min_kb > self.file_size_max_kb:
            raise ValueError(f"Invalid file size bounds for {self.id}")

    @property
    def aspect_ratio(self) -> float:
        return self.width_mm / self.height_mm

    @property
    def background_rgb(self) -> Tuple[int, int, int]:
        return ImageColor.getrgb(self.background_color)[:3]

    @property
    def face_mid_percent(self) -> float:
        return (self.face_min_percent + self.face_max_percent) / 2

    @property
    def slug(self) -> str:
        return re.sub(r'[^a-z0-9]+', '-', self.country.lower()).strip('-')

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'country': self.country,
            'name': self.name,
            'width_mm': self.width_mm,
            'height_mm': self.height_mm,
            'face_min_percent': self.face_min_percent,
            'face_max_percent': self.face_max_percent,
            'digital_width': self.digital_width,
            'digital_height': self.digital_height,
            'file_size_min_kb': self.file_size_min_kb,
            'file_size_max_kb': self.file_size_max_kb,
            'background_color': self.background_color,
            'background_color_name': self.background_color_name,
            'official_url': self.official_url,
            'requirements': list(self.requirements),
        }


class DocumentSpecRegistry:
    """Registry of all available document specifications."""

    def __init__(self):
        self._specs: Dict[str, DocumentSpec] = {}

    def register(self, spec: DocumentSpec) -> None:
        self._specs[spec.id] = spec

    def get(self, spec_id: str) -> Optional[DocumentSpec]:
        return self._specs.get(spec_id)

    def list_all(self) -> List[DocumentSpec]:
        return list(self._specs.values())

    def keys(self) -> List[str]:
        return list(self._specs.keys())

    def __contains__(self, spec_id: str) -> bool:
        return spec_id in self._specs

    def __iter__(self):
        return iter(self._specs.items())

    def __len__(self) -> int:
        return len(self._specs)


_COMMON_REQUIREMENTS = (
    'Photo must be in color',
    'Front-facing with neutral expression',
    'Eyes open and clearly visible',
    'No glasses',
    'No head covering (except for religious reasons)',
    'No shadows on face or background',
)


# =============================================================================
# GLOBAL REGISTRY — single source of truth
# =============================================================================

REGISTRY = DocumentSpecRegistry()

REGISTRY.register(DocumentSpec(
    id='india', country='India', name='Indian Passport (Standard)',
    width_mm=35, height_mm=45, face_min_percent=70, face_max_percent=85,
    digital_width=630, digital_height=810, file_size_min_kb=20, file_size_max_kb=100,
    requirements=_COMMON_REQUIREMENTS + (
        'Plain white or off-white background',
        'Face must be clearly visible from chin to forehead',
        'Photo should be recent (taken within last 3 months)',
    ),
))

REGISTRY.register(DocumentSpec(
    id='india-2x2', country='India', name='Indian Passport (2x2 inch)',
    width_mm=51, height_mm=51, face_min_percent=70, face_max_percent=80,
    digital_width=600, digital_height=600, file_size_min_kb=20, file_size_max_kb=100,
    requirements=_COMMON_REQUIREMENTS + (
        'Plain white or off-white background',
        'Face centered in the frame',
    ),
))

REGISTRY.register(DocumentSpec(
    id='usa', country='United States', name='US Passport',
    width_mm=51, height_mm=51, face_min_percent=50, face_max_percent=69,
    digital_width=600, digital_height=600, file_size_min_kb=54, file_size_max_kb=240,
    official_url='https://travel.state.gov/content/travel/en/passports/how-apply/photos.html',
    requirements=(
        'Photo must be in color',
        'Plain white or off-white background',
        'Taken within the last 6 months',
        'Full face, front view with eyes open',
        'Neutral facial expression or natural smile',
        'Head must be between 1 inch and 1 3/8 inches (25mm - 35mm)',
        'No glasses',
        'No head coverings (except for religious reasons)',
        'No uniforms (except religious attire)',
    ),
))

REGISTRY.register(DocumentSpec(
    id='uk', country='United Kingdom', name='UK Passport',
    width_mm=35, height_mm=45, face_min_percent=70, face_max_percent=80,
    digital_width=600, digital_height=750, file_size_min_kb=50, file_size_max_kb=10000,
    background_color='#F5F5F5', background_color_name='Light Grey',
    requirements=_COMMON_REQUIREMENTS + ('Plain cream or light grey background',),
))

REGISTRY.register(DocumentSpec(
    id='canada', country='Canada', name='Canadian Passport',
    width_mm=50, height_mm=70, face_min_percent=45, face_max_percent=55,
    digital_width=420, digital_height=540, file_size_min_kb=60, file_size_max_kb=240,
    requirements=_COMMON_REQUIREMENTS + ('Plain white or light-coloured background',),
))

REGISTRY.register(DocumentSpec(
    id='australia', country='Australia', name='Australian Passport',
    width_mm=35, height_mm=45, face_min_percent=64, face_max_percent=80,
    digital_width=600, digital_height=800, file_size_min_kb=70, file_size_max_kb=3500,
    requirements=_COMMON_REQUIREMENTS + ('Plain white or light grey background',),
))

REGISTRY.register(DocumentSpec(
    id='schengen', country='Schengen/EU', name='Schengen Visa / EU',
    width_mm=35, height_mm=45, face_min_percent=70, face_max_percent=80,
    digital_width=600, digital_height=800, file_size_min_kb=50, file_size_max_kb=500,
    background_color_name='White or Light Grey',
    requirements=_COMMON_REQUIREMENTS,
))

REGISTRY.register(DocumentSpec(
    id='china', country='China', name='Chinese Passport',
    width_mm=33, height_mm=48, face_min_percent=58, face_max_percent=75,
    digital_width=390, digital_height=567, file_size_min_kb=40, file_size_max_kb=120,
    requirements=_COMMON_REQUIREMENTS + ('Ears must be visible',),
))

REGISTRY.register(DocumentSpec(
    id='japan', country='Japan', name='Japanese Passport',
    width_mm=35, height_mm=45, face_min_percent=70, face_max_percent=80,
    digital_width=600, digital_height=800, file_size_min_kb=50, file_size_max_kb=500,
    background_color_name='White or Light Blue',
    requirements=_COMMON_REQUIREMENTS,
))

REGISTRY.register(DocumentSpec(
    id='germany', country='Germany', name='German Passport',
    width_mm=35, height_mm=45, face_min_percent=70, face_max_percent=80,
    digital_width=600, digital_height=800, file_size_min_kb=50, file_size_max_kb=500,
    background_color='#E8E8E8', background_color_name='Light Grey',
    requirements=_COMMON_REQUIREMENTS,
))

REGISTRY.register(DocumentSpec(
    id='france', country='France', name='French Passport',
    width_mm=35, height_mm=45, face_min_percent=70, face_max_percent=80,
    digital_width=600, digital_height=800, file_size_min_kb=50, file_size_max_kb=500,
    background_color='#E0E0E0', background_color_name='Light Grey or Blue',
    requirements=_COMMON_REQUIREMENTS + ('White background is not accepted',),
))

REGISTRY.register(DocumentSpec(
    id='uae', country='UAE', name='UAE Passport / Visa',
    width_mm=43, height_mm=55, face_min_percent=70, face_max_percent=80,
    digital_width=600, digital_height=800, file_size_min_kb=40, file_size_max_kb=200,
    requirements=_COMMON_REQUIREMENTS,
))

REGISTRY.register(DocumentSpec(
    id='saudi', country='Saudi Arabia', name='Saudi Arabia Visa',
    width_mm=40, height_mm=60, face_min_percent=70, face_max_percent=80,
    digital_width=400, digital_height=600, file_size_min_kb=40, file_size_max_kb=200,
    requirements=_COMMON_REQUIREMENTS,
))

REGISTRY.register(DocumentSpec(
    id='singapore', country='Singapore', name='Singapore Passport',
    width_mm=35, height_mm=45, face_min_percent=70, face_max_percent=80,
    digital_width=400, digital_height=514, file_size_min_kb=10, file_size_max_kb=60,
    requirements=_COMMON_REQUIREMENTS,
))

REGISTRY.register(DocumentSpec(
    id='malaysia', country='Malaysia', name='Malaysian Passport',
    width_mm=35, height_mm=50, face_min_percent=70, face_max_percent=80,
    digital_width=600, digital_height=800, file_size_min_kb=50, file_size_max_kb=300,
    requirements=(
        'Plain white background',
        'Taken within the last 6 months',
        'Color photograph',
        'Face centered, looking straight',
        'Neutral expression',
        'Eyes open',
        'No glasses',
        'Head coverings allowed for religious reasons',
        'No shadows',
    ),
))


# =============================================================================
# PAPER SIZES
# =============================================================================

@dataclass(frozen=True)
class PaperSize:
    """Printable sheet size in millimetres."""
    key: str
    name: str
    width_mm: float
    height_mm: float


PAPER_SIZES: Dict[str, PaperSize] = {
    '4x6': PaperSize('4x6', '4" x 6"', 101.6, 152.4),
    '5x7': PaperSize('5x7', '5" x 7"', 127, 177.8),
    'A4': PaperSize('A4', 'A4', 210, 297),
    'letter': PaperSize('letter', 'Letter', 215.9, 279.4),
}


# =============================================================================
# HELPERS — for web.py list APIs
# =============================================================================

def get_spec(spec_id: str) -> Optional[DocumentSpec]:
    return REGISTRY.get(spec_id)


def get_paper(key: str) -> Optional[PaperSize]:
    return PAPER_SIZES.get(key)


def get_spec_list() -> List[dict]:
    return [spec.to_dict() for spec in REGISTRY.list_all()]


def specs_by_country() -> Dict[str, List[DocumentSpec]]:
    """Group specs by country, preserving registration order."""
    grouped: Dict[str, List[DocumentSpec]] = {}
    for spec in REGISTRY.list_all():
        grouped.setdefault(spec.country, []).append(spec)
    return grouped
