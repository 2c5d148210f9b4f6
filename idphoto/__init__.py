"""
idphoto - Document Photo Studio

Crop, colour-correct, background-replace and tile a portrait photo into a
document-compliant image, then lay copies out on a printable sheet.

Supported documents include US, UK, Canadian, Australian, Schengen, Chinese,
Japanese, German, French, UAE, Saudi, Singaporean, Malaysian and Indian
passport and visa photos (see config.REGISTRY).

Usage:
    from idphoto import EditorSession, RemovalOrchestrator, REGISTRY, default_providers
    session = EditorSession(REGISTRY.get('usa'), RemovalOrchestrator(default_providers()))
    session.load_image("input/photo.jpg")
    session.zoom(1.1)
    await session.remove_background()
    session.export_photo().save("output/photo.jpg", quality=95)
"""

# Core classes
from .config import DocumentSpec, DocumentSpecRegistry, REGISTRY, PAPER_SIZES, PaperSize, DPI
from .config import get_spec, get_paper, get_spec_list, specs_by_country
from .geometry import TransformState, FilterState, fit_scale, fit_transform, zoom_around_point
from .geometry import zoom_to_center, pan, mm_to_pixel, preview_frame_size
from .compositor import FaceGuideBox, render, render_preview, render_export, face_guide_box
from .compositor import encode_jpeg, check_file_size, export_filename
from .background import RemovalOrchestrator, RemovalProgress, RemovalResult, ProviderId, fill_background
from .background import (
    BackgroundRemovalError,
    ProviderUnavailable,
    ProviderFailed,
    ProviderMemoryError,
    EmptySegmentationResult,
)
from .providers import RembgProvider, TransformersProvider, default_providers
from .sheet import GridPlan, SheetGenerator, plan_grid, layout_positions, clamp_photo_count
from .validation import FaceBox, FaceCheck, FaceValidator
from .printing import print_markup
from .session import EditorSession
from .utils import GPUInfo, ImageLoadError, load_image
