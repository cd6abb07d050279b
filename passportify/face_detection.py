"""
Face detection module using OpenCV Haar cascades
"""

import os
import logging
from typing import Optional

import cv2
import numpy as np

from .config import FACE_CASCADE_PATH
from .imaging import Rect, ensure_image

logger = logging.getLogger(__name__)


class FaceLocator:
    """Locates the most salient face; falls back to a centered rectangle."""

    FALLBACK_FRACTION = 0.25

    def __init__(
        self,
        cascade_path: str = FACE_CASCADE_PATH,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_size: int = 30,
    ):
        self._cascade_path = cascade_path
        self._scale_factor = scale_factor
        self._min_neighbors = min_neighbors
        self._min_size = (min_size, min_size)
        self._cascade = self._load_cascade(cascade_path)

    @staticmethod
    def _load_cascade(cascade_path: str) -> Optional[cv2.CascadeClassifier]:
        if not cascade_path or not os.path.exists(cascade_path):
            logger.warning(f"Face cascade not found at {cascade_path}, using centered fallback")
            return None
        cascade = cv2.CascadeClassifier(cascade_path)
        if cascade.empty():
            logger.warning(f"Failed to load face cascade from {cascade_path}, using centered fallback")
            return None
        logger.info(f"Loaded face cascade: {cascade_path}")
        return cascade

    @property
    def available(self) -> bool:
        return self._cascade is not None

    def detect(self, image: np.ndarray) -> Optional[Rect]:
        """Return the highest-confidence face, or None if none was found."""
        ensure_image(image, stage="face_detection")
        if self._cascade is None:
            return None

        if image.shape[2] == 4:
            gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        else:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        gray = cv2.equalizeHist(gray)

        try:
            faces, _, weights = self._cascade.detectMultiScale3(
                gray,
                scaleFactor=self._scale_factor,
                minNeighbors=self._min_neighbors,
                flags=0,
                minSize=self._min_size,
                outputRejectLevels=True,
            )
        except cv2.error as e:
            logger.error(f"Error in face detection: {e}")
            return None

        if len(faces) == 0:
            logger.info("No face detected")
            return None

        weights = np.asarray(weights, dtype=np.float64).ravel()
        best = 0
        for i in range(1, len(faces)):
            # strict comparison keeps the first-found face on ties
            if i < len(weights) and weights[i] > weights[best]:
                best = i

        x, y, w, h = (int(v) for v in faces[best])
        confidence = weights[best] if len(weights) else float('nan')
        logger.info(f"Selected face at ({x}, {y}, {w}, {h}) with confidence {confidence:.2f} "
                    f"out of {len(faces)} candidate(s)")
        return Rect(x, y, w, h).clamp(image.shape[1], image.shape[0])

    def locate(self, image: np.ndarray) -> Rect:
        """Never fails: detected face or a centered 25% x 25% rectangle."""
        face = self.detect(image)
        if face is not None:
            return face
        img_height, img_width = image.shape[:2]
        fallback = Rect.centered(img_width, img_height, self.FALLBACK_FRACTION, self.FALLBACK_FRACTION)
        logger.info(f"Using centered fallback face rectangle: {fallback.as_tuple()}")
        return fallback
