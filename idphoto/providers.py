"""
Concrete segmentation providers: rembg sessions and Hugging Face transformers.

Both load their model lazily on the first request and run the blocking
inference in a worker thread so the event loop keeps serving progress
updates and renders.
"""

import asyncio
import gc
import logging
import traceback
from typing import List, Optional

from PIL import Image

from . import config
from .background import (
    ProviderId, ProviderReport, ProviderUnavailable, ProviderFailed,
    ProviderMemoryError, EmptySegmentationResult, SEGMENTED_STATUS, is_memory_error,
)
from .utils import GPUInfo

logger = logging.getLogger(__name__)


def clear_gpu_memory() -> None:
    gc.collect()
    try:
        import torch
    except ImportError:
        return
    if torch.cuda.is_available():
        torch.cuda.empty_cache()
        torch.cuda.synchronize()
        logger.info("GPU memory cleared")


# =============================================================================
# REMBG
# =============================================================================

class RembgProvider:
    """Segmentation through a rembg session (CUDA first, then CPU)."""

    provider_id = ProviderId.REMBG

    def __init__(self, model_name: str = config.REMBG_MODEL, force_cpu: bool = False, max_retries: int = 2):
        self._model_name = model_name
        self._force_cpu = force_cpu
        self._max_retries = max_retries
        self._session = None
        self._init_count = 0

    @property
    def session(self):
        return self._session

    @property
    def init_count(self) -> int:
        return self._init_count

    def _init_session(self) -> None:
        try:
            from rembg import new_session
        except ImportError as e:
            raise ProviderUnavailable(f"rembg is not installed: {e}", provider=self.provider_id)

        logger.info(f"Initializing rembg session ({self._model_name})...")
        self._init_count += 1

        if not self._force_cpu and GPUInfo.is_available():
            try:
                self._session = new_session(
                    model_name=self._model_name,
                    providers=[
                        ('CUDAExecutionProvider', {
                            'device_id': 0,
                            'arena_extend_strategy': 'kNextPowerOfTwo',
                            'cudnn_conv_algo_search': 'EXHAUSTIVE',
                        }),
                        'CPUExecutionProvider',
                    ],
                )
                logger.info(f"Rembg session initialized with CUDA ({self._model_name})")
                return
            except Exception as e:
                logger.warning(f"CUDA initialization failed: {e}")
                logger.info("Falling back to CPU...")

        try:
            self._session = new_session(model_name=self._model_name)
            logger.info(f"Rembg session initialized with CPU ({self._model_name})")
        except Exception as e:
            logger.error(f"Failed to initialize rembg session: {e}")
            logger.debug(traceback.format_exc())
            raise ProviderUnavailable(f"Cannot initialize rembg session: {e}", provider=self.provider_id)

    def reinitialize(self, force_cpu: bool = False) -> None:
        """Re-create the session (e.g. after memory error)."""
        logger.warning("Reinitializing rembg session...")
        self._session = None
        self._force_cpu = force_cpu or (self._init_count >= 3)
        if self._force_cpu:
            logger.warning("Multiple failures detected, forcing CPU mode...")
        self._init_session()

    def _remove_sync(self, img: Image.Image) -> Image.Image:
        from rembg import remove

        if self._session is None:
            self._init_session()

        logger.info(f"Removing background with rembg (image size: {img.size})")
        for attempt in range(self._max_retries + 1):
            try:
                return remove(
                    img,
                    session=self._session,
                    alpha_matting=True,
                    alpha_matting_foreground_threshold=240,
                    alpha_matting_background_threshold=10,
                    alpha_matting_erode_size=10,
                )
            except Exception as e:
                logger.error(f"rembg failed (attempt {attempt + 1}/{self._max_retries + 1}): {e}")
                logger.debug(traceback.format_exc())
                if not is_memory_error(e):
                    raise ProviderFailed(f"rembg failed: {e}", provider=self.provider_id)
                logger.warning("Memory error detected, clearing GPU memory...")
                clear_gpu_memory()
                if attempt == self._max_retries:
                    raise ProviderMemoryError(
                        f"Memory error after {self._max_retries + 1} attempts: {e}",
                        provider=self.provider_id,
                    )
                # Fresh session for the retry; CPU from the second retry on
                self.reinitialize(force_cpu=attempt > 0)
        raise ProviderFailed("rembg produced no output", provider=self.provider_id)

    async def segment(self, image: Image.Image, on_progress: ProviderReport) -> Image.Image:
        on_progress(0, 'Loading background removal...')
        if self._session is None:
            await asyncio.to_thread(self._init_session)
        on_progress(10, 'Processing image...')
        result = await asyncio.to_thread(self._remove_sync, image.convert('RGB'))
        on_progress(100, SEGMENTED_STATUS)
        return result

    def close(self) -> None:
        """Release resources."""
        self._session = None
        clear_gpu_memory()


# =============================================================================
# TRANSFORMERS
# =============================================================================

def _extract_mask(output) -> Optional[Image.Image]:
    """Pull the mask out of an image-segmentation pipeline result.

    RMBG's custom pipeline returns the mask image itself when asked with
    `return_mask=True`; stock pipelines return a list of {label, mask} dicts.
    """
    if isinstance(output, Image.Image):
        return output
    if isinstance(output, list) and output:
        first = output[0]
        if isinstance(first, dict):
            return first.get('mask')
    return None


class TransformersProvider:
    """Segmentation through a transformers image-segmentation pipeline."""

    provider_id = ProviderId.TRANSFORMERS

    def __init__(self, model_name: str = config.TRANSFORMERS_MODEL):
        self._model_name = model_name
        self._pipeline = None

    def _load_pipeline(self):
        if self._pipeline is not None:
            return self._pipeline
        try:
            from transformers import pipeline
        except ImportError as e:
            raise ProviderUnavailable(f"transformers is not installed: {e}", provider=self.provider_id)

        device = 0 if GPUInfo.is_available() else -1
        logger.info(f"Loading {self._model_name} segmentation pipeline (device={device})...")
        try:
            self._pipeline = pipeline(
                'image-segmentation', model=self._model_name,
                trust_remote_code=True, device=device,
            )
        except Exception as e:
            logger.error(f"Failed to load {self._model_name}: {e}")
            logger.debug(traceback.format_exc())
            raise ProviderUnavailable(f"Cannot load {self._model_name}: {e}", provider=self.provider_id)
        return self._pipeline

    def _segment_sync(self, image: Image.Image) -> Image.Image:
        rgb = image.convert('RGB')
        try:
            output = self._pipeline(rgb, return_mask=True)
        except Exception as e:
            if is_memory_error(e):
                clear_gpu_memory()
                raise ProviderMemoryError(f"GPU memory error: {e}", provider=self.provider_id)
            raise ProviderFailed(f"Segmentation failed: {e}", provider=self.provider_id)

        mask = _extract_mask(output)
        if mask is None:
            raise EmptySegmentationResult("No segmentation result returned", provider=self.provider_id)

        # Keep the source only where the mask is opaque
        cutout = rgb.convert('RGBA')
        cutout.putalpha(mask.convert('L').resize(rgb.size, Image.BILINEAR))
        return cutout

    async def segment(self, image: Image.Image, on_progress: ProviderReport) -> Image.Image:
        on_progress(0, 'Loading AI model...')
        if self._pipeline is None:
            on_progress(10, 'Initializing pipeline...')
            await asyncio.to_thread(self._load_pipeline)
        on_progress(50, 'Processing image...')
        cutout = await asyncio.to_thread(self._segment_sync, image)
        on_progress(80, 'Generating output...')
        on_progress(100, SEGMENTED_STATUS)
        return cutout

    def close(self) -> None:
        if self._pipeline is not None:
            logger.info("Releasing segmentation pipeline...")
            self._pipeline = None
            clear_gpu_memory()


# =============================================================================
# FACTORY
# =============================================================================

def default_providers(force_cpu: bool = False) -> List:
    return [RembgProvider(force_cpu=force_cpu), TransformersProvider()]
