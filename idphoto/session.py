"""
EditorSession — state of one editing session for one document spec.

Holds the original upload, the current working image, the pan/zoom
transform and the filters, and coordinates the two long-running
operations (face validation and background removal) with them.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from PIL import Image

from .background import (
    BackgroundRemovalError, ProgressCallback, ProviderId, RemovalOrchestrator,
    RemovalProgress, RemovalResult,
)
from .compositor import encode_jpeg, render_export, render_preview
from .config import DocumentSpec
from .geometry import (
    FilterState, TransformState, clamp_filter, fit_transform, pan,
    preview_frame_size, wheel_zoom_factor, zoom_around_point, zoom_to_center,
)
from .utils import ImageSource, load_image
from .validation import FaceCheck, FaceValidator

logger = logging.getLogger(__name__)


class EditorSession:
    """Interactive editing state.

    Usage:
        session = EditorSession(REGISTRY.get('usa'), RemovalOrchestrator(default_providers()))
        session.load_image(data)
        session.zoom(1.1)
        await session.remove_background()
        jpeg = session.export_jpeg()
    """

    def __init__(
        self,
        spec: DocumentSpec,
        orchestrator: Optional[RemovalOrchestrator] = None,
        validator: Optional[FaceValidator] = None,
        frame: Optional[Tuple[int, int]] = None,
    ):
        self.spec = spec
        self.frame = frame or preview_frame_size(spec)
        self._orchestrator = orchestrator
        self._validator = validator

        self.original: Optional[Image.Image] = None
        self.working: Optional[Image.Image] = None
        self.transform = TransformState()
        self.filters = FilterState()

        self.face_check: Optional[FaceCheck] = None
        self.method_used: Optional[ProviderId] = None
        self.last_error: Optional[BackgroundRemovalError] = None

        self._removal_task: Optional[asyncio.Future] = None
        self._generation = 0

    # -----------------------------------------------------------------
    # Image lifecycle
    # -----------------------------------------------------------------

    @property
    def has_image(self) -> bool:
        return self.working is not None

    @property
    def background_removed(self) -> bool:
        return self.method_used is not None

    @property
    def removal_in_progress(self) -> bool:
        return self._removal_task is not None and not self._removal_task.done()

    @property
    def retry_methods(self) -> List[ProviderId]:
        """Providers the user can retry individually after a failure."""
        return list(ProviderId) if self.last_error is not None else []

    def load_image(self, source: ImageSource) -> Image.Image:
        """Start over with a new source photo.

        Raises:
            ImageLoadError: The data cannot be decoded; the session is unchanged.
        """
        img = load_image(source)
        self._cancel_removal()
        self.original = img
        self.working = img
        self.face_check = None
        self.method_used = None
        self.last_error = None
        self.reset()
        logger.info(f"Loaded source image {img.size} for {self.spec.id}")
        return img

    def _require_image(self) -> Image.Image:
        if self.working is None:
            raise RuntimeError("No image loaded")
        return self.working

    # -----------------------------------------------------------------
    # Transform & filters
    # -----------------------------------------------------------------

    def reset_transform(self) -> None:
        img = self._require_image()
        self.transform = fit_transform(self.frame[0], self.frame[1], img.width, img.height)

    def reset_adjustments(self) -> None:
        self.filters = FilterState()

    def reset(self) -> None:
        self.reset_transform()
        self.reset_adjustments()

    def pan(self, dx: float, dy: float) -> TransformState:
        self.transform = pan(self.transform, dx, dy)
        return self.transform

    def zoom(self, factor: float) -> TransformState:
        self.transform = zoom_to_center(self.transform, factor, *self.frame)
        return self.transform

    def zoom_at(self, factor: float, x: float, y: float) -> TransformState:
        self.transform = zoom_around_point(self.transform, factor, x, y)
        return self.transform

    def wheel(self, delta_y: float, x: Optional[float] = None, y: Optional[float] = None) -> TransformState:
        factor = wheel_zoom_factor(delta_y)
        if x is None or y is None:
            return self.zoom(factor)
        return self.zoom_at(factor, x, y)

    def set_brightness(self, value: float) -> FilterState:
        self.filters = FilterState(brightness=clamp_filter(value), contrast=self.filters.contrast)
        return self.filters

    def set_contrast(self, value: float) -> FilterState:
        self.filters = FilterState(brightness=self.filters.brightness, contrast=clamp_filter(value))
        return self.filters

    # -----------------------------------------------------------------
    # Rendering
    # -----------------------------------------------------------------

    def render_preview(self) -> Image.Image:
        return render_preview(self._require_image(), self.transform, self.filters, self.spec, self.frame)

    def export_photo(self) -> Image.Image:
        return render_export(self._require_image(), self.transform, self.filters, self.spec, self.frame)

    def export_jpeg(self) -> bytes:
        return encode_jpeg(self.export_photo())

    # -----------------------------------------------------------------
    # Long-running operations
    # -----------------------------------------------------------------

    async def validate_face(self) -> Optional[FaceCheck]:
        """Check the original upload for exactly one face.

        A result that arrives after another image was loaded is discarded.
        """
        if self._validator is None or self.original is None:
            return None
        image = self.original
        check = await self._validator.validate(image)
        if self.original is image:
            self.face_check = check
        return check

    def _cancel_removal(self) -> None:
        self._generation += 1
        if self.removal_in_progress:
            logger.info("Cancelling in-flight background removal")
            self._removal_task.cancel()
        self._removal_task = None

    async def remove_background(
        self,
        preferred: Optional[ProviderId] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RemovalResult:
        """Replace the working image's background with the document colour.

        A newer request (or a new image) cancels this one: its awaiter gets
        CancelledError and its remaining progress updates are dropped. On
        failure the working image is kept and `last_error` is set.
        """
        if self._orchestrator is None:
            raise BackgroundRemovalError("Background removal is not configured")
        source = self._require_image()

        self._cancel_removal()
        generation = self._generation

        def forward(progress: RemovalProgress) -> None:
            if generation == self._generation and on_progress is not None:
                on_progress(progress)

        task = asyncio.ensure_future(self._orchestrator.remove_background(
            source, self.spec.background_rgb, forward, preferred,
        ))
        self._removal_task = task
        self.last_error = None

        try:
            result = await task
        except BackgroundRemovalError as e:
            if generation == self._generation:
                self.last_error = e
            raise
        finally:
            if self._removal_task is task:
                self._removal_task = None

        if generation != self._generation:
            raise asyncio.CancelledError()

        self.working = result.image
        self.method_used = result.method_used
        logger.info(f"Working image replaced (background removed with {result.method_used.value})")
        return result

    def reset_background(self) -> None:
        """Discard the removal result and go back to the original upload."""
        self._cancel_removal()
        self.working = self.original
        self.method_used = None
        self.last_error = None
