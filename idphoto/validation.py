"""
Face presence validation policy.

The detector itself is pluggable; this module only turns a list of face
boxes into an accept/reject decision, failing open when detection breaks.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from PIL import Image

logger = logging.getLogger(__name__)

NO_FACE_MESSAGE = "No face detected. Please upload a clear photo of your face."
MULTIPLE_FACES_MESSAGE = (
    "{count} faces detected. Passport photos must contain only one person. "
    "Please upload a photo with just yourself."
)
ONE_FACE_MESSAGE = "Face detected successfully."
INCONCLUSIVE_MESSAGE = (
    "Could not verify face. Please ensure your photo shows a clear front-facing view."
)


@dataclass(frozen=True)
class FaceBox:
    x: float
    y: float
    width: float
    height: float
    confidence: float = 1.0

    def to_dict(self) -> dict:
        return {'x': self.x, 'y': self.y, 'width': self.width,
                'height': self.height, 'confidence': self.confidence}


@dataclass(frozen=True)
class FaceCheck:
    """Outcome of validating one source image.

    `face_count` is -1 when the detector failed and the check was skipped.
    """
    face_count: int
    is_valid: bool
    message: str
    boxes: List[FaceBox] = field(default_factory=list)

    @property
    def inconclusive(self) -> bool:
        return self.face_count < 0

    def to_dict(self) -> dict:
        return {
            'face_count': self.face_count,
            'is_valid': self.is_valid,
            'inconclusive': self.inconclusive,
            'message': self.message,
            'boxes': [b.to_dict() for b in self.boxes],
        }


class FaceDetectorBackend(Protocol):
    def detect_faces(self, image: Image.Image) -> List[FaceBox]:
        ...


def judge_faces(boxes: List[FaceBox]) -> FaceCheck:
    count = len(boxes)
    if count == 0:
        return FaceCheck(0, False, NO_FACE_MESSAGE, [])
    if count > 1:
        return FaceCheck(count, False, MULTIPLE_FACES_MESSAGE.format(count=count), list(boxes))
    return FaceCheck(1, True, ONE_FACE_MESSAGE, list(boxes))


class FaceValidator:
    """Accepts exactly one face; detector failures degrade to a warning."""

    def __init__(self, detector: FaceDetectorBackend):
        self._detector = detector

    async def validate(self, image: Image.Image) -> FaceCheck:
        try:
            boxes = await asyncio.to_thread(self._detector.detect_faces, image)
        except Exception as e:
            logger.warning(f"Face detection failed, accepting photo with warning: {e}")
            return FaceCheck(-1, True, INCONCLUSIVE_MESSAGE, [])

        check = judge_faces(boxes)
        logger.info(f"Face validation: {check.face_count} face(s), valid={check.is_valid}")
        return check


def validate_sync(validator: Optional[FaceValidator], image: Image.Image) -> Optional[FaceCheck]:
    """Run a validation from synchronous code (CLI, Flask views)."""
    if validator is None:
        return None
    return asyncio.run(validator.validate(image))
