"""
Background removal orchestration and filling module
"""

import asyncio
import logging
import re
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from PIL import Image

from .utils import ImageSource, load_image

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class BackgroundRemovalError(Exception):
    """Base exception for background removal failures"""

    def __init__(self, message: str, provider: Optional['ProviderId'] = None):
        super().__init__(message)
        self.provider = provider


class ProviderUnavailable(BackgroundRemovalError):
    """Provider could not be loaded (missing package, model download, network)"""
    pass


class ProviderFailed(BackgroundRemovalError):
    """Provider raised during segmentation"""
    pass


class ProviderMemoryError(ProviderFailed):
    """Memory-related errors (CUDA OOM, system memory)"""
    pass


class EmptySegmentationResult(ProviderFailed):
    """Provider finished but produced no usable mask"""
    pass


_MEMORY_INDICATORS = (
    'out of memory', 'cuda error', 'cudnn',
    'memory allocation', 'cannot allocate',
    'memory limit', 'insufficient memory', 'ran out of memory',
    'memory exhausted',
)

_UNAVAILABLE_TYPES = (ImportError, ConnectionError, TimeoutError)


def is_memory_error(error: BaseException) -> bool:
    if isinstance(error, MemoryError):
        return True
    error_str = str(error).lower()
    if re.search(r'\boom\b', error_str):
        return True
    return any(ind in error_str for ind in _MEMORY_INDICATORS)


def classify_error(method: 'ProviderId', error: Exception) -> BackgroundRemovalError:
    """Wrap an arbitrary provider exception into the removal taxonomy."""
    if isinstance(error, BackgroundRemovalError):
        if error.provider is None:
            error.provider = method
        return error
    if isinstance(error, _UNAVAILABLE_TYPES):
        return ProviderUnavailable(f"{method.value} unavailable: {error}", provider=method)
    if is_memory_error(error):
        return ProviderMemoryError(f"{method.value} ran out of memory: {error}", provider=method)
    return ProviderFailed(f"{method.value} failed: {error}", provider=method)


# =============================================================================
# TYPES
# =============================================================================

class ProviderId(str, Enum):
    """Identifiers of the interchangeable segmentation providers."""
    TRANSFORMERS = 'transformers'
    REMBG = 'rembg'

    @classmethod
    def parse(cls, value: str) -> 'ProviderId':
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown removal method: {value}. Available: {[p.value for p in cls]}")


COMPLETE_STATUS = 'Complete!'
# Provider-level end of work; only the orchestrator reports COMPLETE_STATUS
SEGMENTED_STATUS = 'Segmentation finished'

# rembg first: it is the more reliable baseline
DEFAULT_ORDER: Tuple[ProviderId, ...] = (ProviderId.REMBG, ProviderId.TRANSFORMERS)


@dataclass(frozen=True)
class RemovalProgress:
    method: ProviderId
    progress: int
    status: str


@dataclass
class RemovalResult:
    """Flat-background image produced by a successful removal."""
    image: Image.Image
    method_used: ProviderId


@dataclass
class RemovalOutcome:
    """Tagged result of one orchestration run."""
    ok: bool
    result: Optional[RemovalResult] = None
    last_error: Optional[BackgroundRemovalError] = None
    attempts: List[ProviderId] = field(default_factory=list)


ProgressCallback = Callable[[RemovalProgress], None]
ProviderReport = Callable[[int, str], None]


class SegmentationProvider(Protocol):
    """Capability every segmentation backend offers.

    `segment` resolves to an RGBA image of the subject with the background
    made transparent, calling `on_progress(percent, status)` zero or more
    times on the way.
    """
    provider_id: ProviderId

    async def segment(self, image: Image.Image, on_progress: ProviderReport) -> Image.Image:
        ...


# =============================================================================
# FILL
# =============================================================================

def fill_background(img_with_alpha: Image.Image, color: Tuple[int, int, int]) -> Image.Image:
    """Opaque `color` fill with the subject pasted through its own alpha."""
    bg = Image.new('RGB', img_with_alpha.size, tuple(color))
    bg.paste(img_with_alpha, (0, 0), img_with_alpha)
    return bg


def check_cutout(cutout: Optional[Image.Image], size: Tuple[int, int]) -> Image.Image:
    """Validate a provider's output and bring it to the source size.

    Raises:
        EmptySegmentationResult: No image, no alpha channel, or nothing opaque.
    """
    if cutout is None:
        raise EmptySegmentationResult("No segmentation result returned")
    if 'A' not in cutout.getbands():
        raise EmptySegmentationResult("Segmentation result has no alpha mask")
    if cutout.mode != 'RGBA':
        cutout = cutout.convert('RGBA')
    if cutout.getchannel('A').getextrema()[1] == 0:
        raise EmptySegmentationResult("Segmentation mask is empty")
    if cutout.size != size:
        cutout = cutout.resize(size, Image.LANCZOS)
    return cutout


def _monotonic_reporter(method: ProviderId, on_progress: Optional[ProgressCallback]) -> ProviderReport:
    last = 0

    def report(progress: int, status: str) -> None:
        nonlocal last
        last = max(last, min(100, int(progress)))
        if on_progress is not None:
            on_progress(RemovalProgress(method, last, status))

    return report


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class RemovalOrchestrator:
    """Runs segmentation providers in priority order with fallback.

    Each call tries every provider at most once; the first success wins.
    When all of them fail the error of the last attempt is raised.
    """

    PROVIDER_SHARE = 0.9

    def __init__(self, providers: Iterable[SegmentationProvider]):
        self._providers: Dict[ProviderId, SegmentationProvider] = {
            p.provider_id: p for p in providers
        }
        self._lock = asyncio.Lock()

    @property
    def provider_ids(self) -> List[ProviderId]:
        return list(self._providers.keys())

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def close(self) -> None:
        """Release every provider's model and GPU memory."""
        for provider in self._providers.values():
            close = getattr(provider, 'close', None)
            if close is not None:
                close()

    @staticmethod
    def order(preferred: Optional[ProviderId] = None) -> List[ProviderId]:
        if preferred is None:
            return list(DEFAULT_ORDER)
        return [preferred] + [p for p in DEFAULT_ORDER if p != preferred]

    async def remove_background(
        self,
        image: ImageSource,
        background: Tuple[int, int, int],
        on_progress: Optional[ProgressCallback] = None,
        preferred: Optional[ProviderId] = None,
    ) -> RemovalResult:
        """Replace the background of `image` with a flat `background` colour.

        Raises:
            ImageLoadError: The source cannot be decoded (no provider is tried).
            BackgroundRemovalError: Every provider failed; the last error.
        """
        source = load_image(image)
        async with self._lock:
            outcome = await self.attempt_all(source, background, on_progress, preferred)
        if outcome.ok:
            return outcome.result
        raise outcome.last_error

    async def attempt_all(
        self,
        source: Image.Image,
        background: Tuple[int, int, int],
        on_progress: Optional[ProgressCallback] = None,
        preferred: Optional[ProviderId] = None,
    ) -> RemovalOutcome:
        methods = self.order(preferred)
        outcome = RemovalOutcome(ok=False)

        for index, method in enumerate(methods):
            outcome.attempts.append(method)
            report = _monotonic_reporter(method, on_progress)
            logger.info(f"Trying background removal with: {method.value}")
            try:
                result = await self._attempt(method, source, background, report)
                logger.info(f"Background removed successfully with {method.value}")
                outcome.ok = True
                outcome.result = result
                outcome.last_error = None
                return outcome
            except Exception as e:
                error = classify_error(method, e)
                logger.debug(traceback.format_exc())

            outcome.last_error = error
            logger.error(f"Background removal with {method.value} failed: {error}")

            if index < len(methods) - 1:
                nxt = methods[index + 1]
                logger.warning(f"Falling back to {nxt.value}...")
                if on_progress is not None:
                    on_progress(RemovalProgress(nxt, 0, f"{method.value} failed, trying {nxt.value}..."))

        if outcome.last_error is None:
            outcome.last_error = BackgroundRemovalError("All background removal methods failed")
        return outcome

    async def _attempt(
        self,
        method: ProviderId,
        source: Image.Image,
        background: Tuple[int, int, int],
        report: ProviderReport,
    ) -> RemovalResult:
        provider = self._providers.get(method)
        if provider is None:
            raise ProviderUnavailable(f"{method.value} is not configured", provider=method)

        share = self.PROVIDER_SHARE

        def provider_report(progress: int, status: str) -> None:
            if status == COMPLETE_STATUS:
                status = SEGMENTED_STATUS
            report(round(max(0, min(100, progress)) * share), status)

        cutout = await provider.segment(source, provider_report)
        cutout = check_cutout(cutout, source.size)

        report(95, 'Adding background color...')
        image = fill_background(cutout, background)
        report(100, COMPLETE_STATUS)
        return RemovalResult(image=image, method_used=method)
