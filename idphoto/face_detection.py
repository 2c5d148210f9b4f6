"""
Face detection module using MediaPipe
"""

import logging
import os
import urllib.request
from typing import List

import cv2
import mediapipe as mp
import numpy as np
from PIL import Image

from .config import (
    MIN_DETECTION_CONFIDENCE, MAX_FACES, FACE_LANDMARKER_MODEL, FACE_LANDMARKER_URL,
)
from .validation import FaceBox

logger = logging.getLogger(__name__)

DETECTION_MAX_EDGE = 1280


class MediaPipeFaceDetector:
    """Counts faces and their bounding boxes with the MediaPipe Face Landmarker."""

    def __init__(
        self,
        min_confidence: float = MIN_DETECTION_CONFIDENCE,
        max_faces: int = MAX_FACES,
        landmarker_model: str = FACE_LANDMARKER_MODEL,
    ):
        self._min_confidence = min_confidence
        self._max_faces = max_faces
        self._landmarker_model = landmarker_model

    def _ensure_landmarker_model(self) -> None:
        if not os.path.exists(self._landmarker_model):
            logger.info(f"Face landmarker model not found at {self._landmarker_model}, downloading...")
            os.makedirs(os.path.dirname(self._landmarker_model) or "models", exist_ok=True)
            urllib.request.urlretrieve(FACE_LANDMARKER_URL, self._landmarker_model)
            logger.info(f"Model downloaded to {self._landmarker_model}")

    @staticmethod
    def _prepare(image: Image.Image):
        """RGB array for detection, downscaled so the long edge fits DETECTION_MAX_EDGE."""
        rgb = np.asarray(image.convert('RGB'))
        height, width = rgb.shape[:2]
        scale = min(1.0, DETECTION_MAX_EDGE / max(width, height))
        if scale < 1.0:
            size = (max(1, int(width * scale)), max(1, int(height * scale)))
            rgb = cv2.resize(rgb, size, interpolation=cv2.INTER_AREA)
        return np.ascontiguousarray(rgb), scale

    def detect_faces(self, image: Image.Image) -> List[FaceBox]:
        """Detect up to `max_faces` faces.

        Returns:
            One FaceBox per face, in source image pixels.
        """
        rgb, scale = self._prepare(image)
        img_height, img_width = rgb.shape[:2]
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)

        self._ensure_landmarker_model()

        base_options = mp.tasks.BaseOptions(model_asset_path=self._landmarker_model)
        options = mp.tasks.vision.FaceLandmarkerOptions(
            base_options=base_options,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
            num_faces=self._max_faces,
            min_face_detection_confidence=self._min_confidence,
            min_face_presence_confidence=self._min_confidence,
            min_tracking_confidence=self._min_confidence,
        )

        landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
        try:
            result = landmarker.detect(mp_image)
        finally:
            landmarker.close()

        boxes = [
            self._box_from_landmarks(face_lms, img_width, img_height, scale)
            for face_lms in result.face_landmarks
        ]
        logger.info(f"Detected {len(boxes)} face(s)")
        return boxes

    @staticmethod
    def _box_from_landmarks(face_lms, img_width: int, img_height: int, scale: float) -> FaceBox:
        xs = [lm.x * img_width for lm in face_lms]
        ys = [lm.y * img_height for lm in face_lms]
        x0, y0 = max(0.0, min(xs)), max(0.0, min(ys))
        x1, y1 = min(float(img_width), max(xs)), min(float(img_height), max(ys))
        return FaceBox(
            x=x0 / scale, y=y0 / scale,
            width=(x1 - x0) / scale, height=(y1 - y0) / scale,
        )
