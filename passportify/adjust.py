"""
Brightness, contrast and saturation adjustments
"""

import logging

import cv2
import numpy as np

from .exceptions import InvalidInput
from .imaging import ensure_image

logger = logging.getLogger(__name__)


class Adjuster:
    """Linear color adjustments that leave the alpha channel untouched."""

    def apply(
        self,
        image: np.ndarray,
        brightness: float = 0,
        contrast: float = 1.0,
        saturation: float = 1.0,
    ) -> np.ndarray:
        """out = in * contrast + brightness, then saturation scaled in HSV.

        Args:
            image: BGR or BGRA image.
            brightness: Pixel offset, -100 to 100.
            contrast: Contrast multiplier (1.0 = no change).
            saturation: Saturation multiplier (1.0 = no change).
        """
        ensure_image(image, stage="adjust")
        if not -100 <= brightness <= 100:
            raise InvalidInput(f"Brightness must be within [-100, 100], got {brightness}", stage="adjust")
        if contrast < 0 or saturation < 0:
            raise InvalidInput(
                f"Contrast and saturation must not be negative, got {contrast}, {saturation}",
                stage="adjust",
            )

        alpha = image[:, :, 3] if image.shape[2] == 4 else None
        bgr = np.ascontiguousarray(image[:, :, :3])

        adjusted = bgr.astype(np.float32) * contrast + brightness
        adjusted = np.clip(np.round(adjusted), 0, 255).astype(np.uint8)

        if saturation != 1.0:
            hsv = cv2.cvtColor(adjusted, cv2.COLOR_BGR2HSV)
            s = hsv[:, :, 1].astype(np.float32) * saturation
            hsv[:, :, 1] = np.clip(s, 0, 255).astype(np.uint8)
            adjusted = cv2.cvtColor(hsv, cv2.COLOR_HSV2BGR)

        logger.info(f"Adjusted image: brightness={brightness}, contrast={contrast}, saturation={saturation}")
        if alpha is None:
            return adjusted
        return cv2.merge([adjusted[:, :, 0], adjusted[:, :, 1], adjusted[:, :, 2], alpha])
