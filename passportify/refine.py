"""
Mask refinement: binarisation, morphology cleanup and alpha matte creation
"""

import logging
from typing import Optional

import cv2
import numpy as np

from .config import RefineParams
from .imaging import ensure_image, ensure_mask
from .utils import DebugArtifacts, NO_DEBUG

logger = logging.getLogger(__name__)


class MaskRefiner:
    """Turns a raw segmentation mask into a clean mask and an alpha matte."""

    def __init__(self, params: Optional[RefineParams] = None, debug: DebugArtifacts = NO_DEBUG):
        self.params = params or RefineParams()
        self._debug = debug
        self._morph_kernel = cv2.getStructuringElement(
            cv2.MORPH_ELLIPSE, (self.params.morph_kernel, self.params.morph_kernel),
        )
        self._band_kernel = cv2.getStructuringElement(
            cv2.MORPH_ELLIPSE, (self.params.edge_band_kernel, self.params.edge_band_kernel),
        )

    def _binary(self, mask: np.ndarray) -> np.ndarray:
        _, binary = cv2.threshold(mask, self.params.threshold, 255, cv2.THRESH_BINARY)
        return binary

    def refine(self, image: np.ndarray, raw_mask: np.ndarray) -> np.ndarray:
        """Threshold, close then open; optionally soften only the boundary band.

        The result always matches the image dimensions.
        """
        ensure_image(image, stage="refine")
        mask = ensure_mask(raw_mask, stage="refine")
        img_height, img_width = image.shape[:2]
        if mask.shape != (img_height, img_width):
            logger.info(f"Resizing mask {mask.shape[1]}x{mask.shape[0]} to {img_width}x{img_height}")
            mask = cv2.resize(mask, (img_width, img_height), interpolation=cv2.INTER_LINEAR)

        binary = self._binary(mask)
        binary = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, self._morph_kernel)
        binary = cv2.morphologyEx(binary, cv2.MORPH_OPEN, self._morph_kernel)

        if not self.params.smooth_edges:
            return binary

        band = cv2.subtract(
            cv2.dilate(binary, self._band_kernel),
            cv2.erode(binary, self._band_kernel),
        )
        k = self.params.edge_blur_kernel
        blurred = cv2.GaussianBlur(binary, (k, k), 0)
        smoothed = np.where(band > 0, blurred, binary).astype(np.uint8)
        self._debug.save("refined_edges", band)
        return smoothed

    def to_alpha_matte(self, mask: np.ndarray) -> np.ndarray:
        """Hard policy: binary alpha. Soft policy: gradient-weighted feathering.

        With `smooth_edges` the mask is taken to come from `refine`, so its
        fractional boundary band is already feathered and is kept as is.
        """
        mask = ensure_mask(mask, stage="refine")
        binary = self._binary(mask)
        pre_feathered = None
        if self.params.smooth_edges:
            pre_feathered = (mask > 0) & (mask < 255)

        if self.params.alpha_policy == 'hard':
            if pre_feathered is not None:
                return np.where(pre_feathered, mask, binary).astype(np.uint8)
            return binary

        # Feather where the mask changes, keep flat regions untouched
        gradient = np.abs(cv2.Laplacian(binary, cv2.CV_64F))
        peak = gradient.max()
        weight = gradient / peak if peak > 0 else np.zeros_like(gradient)
        weight = np.clip(weight, 0.0, 1.0)

        k = self.params.soft_blur_kernel
        blurred = cv2.GaussianBlur(binary, (k, k), 0).astype(np.float64)
        feathered = binary * (1.0 - weight) + blurred * weight

        w = self.params.soft_weight
        matte = w * feathered + (1.0 - w) * binary
        matte = np.clip(np.round(matte), 0, 255).astype(np.uint8)
        if pre_feathered is not None:
            matte = np.where(pre_feathered, mask, matte).astype(np.uint8)
        self._debug.save("alpha_matte", matte)
        return matte
