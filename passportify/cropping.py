"""
Face-anchored cropping to an exact passport photo size
"""

import logging
from typing import Tuple

import cv2
import numpy as np

from .config import PhotoFormatSpec
from .exceptions import GeometryError, InvalidInput
from .imaging import Rect, ensure_image

logger = logging.getLogger(__name__)


class PassportCropper:
    """Crops around a face so the result matches a physical photo format."""

    WIDTH_FACTOR = 2.5
    MIN_HEIGHT_FACTOR = 2.0

    @staticmethod
    def target_pixel_size(spec: PhotoFormatSpec) -> Tuple[int, int]:
        return spec.pixel_size

    def compute_crop_rect(
        self,
        image_shape: Tuple[int, ...],
        face_rect: Rect,
        aspect: float,
    ) -> Rect:
        """Crop rectangle around the face center with the given width/height ratio.

        Width is 2.5x the face width; height follows from `aspect` but never
        less than 2x the face height. The rectangle is clamped to the image,
        shrinking the other dimension so the ratio survives.
        """
        img_height, img_width = image_shape[:2]
        if aspect <= 0:
            raise InvalidInput(f"Aspect ratio must be positive, got {aspect}", stage="crop")
        face = face_rect.clamp(img_width, img_height)

        crop_width = int(face.width * self.WIDTH_FACTOR)
        crop_height = int(crop_width / aspect)
        if crop_height < face.height * self.MIN_HEIGHT_FACTOR:
            crop_height = int(face.height * self.MIN_HEIGHT_FACTOR)
            crop_width = int(crop_height * aspect)

        cx, cy = face.center
        crop_x = max(0, cx - crop_width // 2)
        crop_y = max(0, cy - crop_height // 2)

        if crop_x + crop_width > img_width:
            crop_width = img_width - crop_x
            crop_height = int(crop_width / aspect)
        if crop_y + crop_height > img_height:
            crop_height = img_height - crop_y
            crop_width = int(crop_height * aspect)

        crop_width = min(crop_width, img_width - crop_x)
        crop_height = min(crop_height, img_height - crop_y)

        if crop_width <= 0 or crop_height <= 0:
            raise GeometryError(
                f"Cannot fit a {aspect:.3f} crop around face {face.as_tuple()} "
                f"in a {img_width}x{img_height} image",
                stage="crop",
            )
        return Rect(crop_x, crop_y, crop_width, crop_height)

    def rect_for(self, image_shape: Tuple[int, ...], face_rect: Rect, spec: PhotoFormatSpec) -> Rect:
        target_width, target_height = self.target_pixel_size(spec)
        return self.compute_crop_rect(image_shape, face_rect, target_width / target_height)

    def crop(self, image: np.ndarray, face_rect: Rect, spec: PhotoFormatSpec) -> np.ndarray:
        """Cut the face-anchored region and resize it to the format's pixel size."""
        ensure_image(image, stage="crop")
        return self.crop_to_rect(image, self.rect_for(image.shape, face_rect, spec), spec)

    def crop_to_rect(self, image: np.ndarray, rect: Rect, spec: PhotoFormatSpec) -> np.ndarray:
        """Cut an already computed crop rectangle and resize it to the format's pixel size."""
        ensure_image(image, stage="crop")
        if not rect.is_within(image.shape[1], image.shape[0]):
            raise GeometryError(f"Crop {rect.as_tuple()} lies outside the image", stage="crop")
        target_width, target_height = self.target_pixel_size(spec)
        logger.info(f"Target dimensions: {target_width}x{target_height} px ({spec.description} @ {spec.dpi} DPI)")
        logger.info(f"Cropping: {rect.as_tuple()} from {image.shape[1]}x{image.shape[0]}")

        region = image[rect.y:rect.bottom, rect.x:rect.right]
        return cv2.resize(region, (target_width, target_height), interpolation=cv2.INTER_CUBIC)

    @staticmethod
    def draw_face_marker(image: np.ndarray, face_rect: Rect) -> np.ndarray:
        """Copy of the image with the face rectangle outlined in green."""
        ensure_image(image, stage="crop")
        marked = image.copy()
        color = (0, 255, 0, 255) if marked.shape[2] == 4 else (0, 255, 0)
        cv2.rectangle(marked, (face_rect.x, face_rect.y), (face_rect.right, face_rect.bottom), color, 2)
        return marked
