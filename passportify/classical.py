"""
Classical background segmentation: color heuristics, edges and GrabCut.

No model files are needed, so this strategy always constructs and is the
last resort of every fallback chain.
"""

import logging
import warnings
from typing import Optional

import cv2
import numpy as np

from .exceptions import SegmentationDegraded
from .face_detection import FaceLocator
from .grabcut import (
    seed_labels, sample_counts, mark_probable_foreground, grabcut_with_retry,
    refine_with_grabcut, body_rect, face_anchored_rect, BORDER_BAND,
)
from .imaging import Rect, ensure_image, to_bgr
from .utils import DebugArtifacts, NO_DEBUG

logger = logging.getLogger(__name__)

MIN_SAMPLES = 100


def _ellipse(size: int) -> np.ndarray:
    return cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))


# =============================================================================
# COLOR HEURISTICS
# =============================================================================

def detect_skin_hsv(hsv: np.ndarray) -> np.ndarray:
    """Skin tones in HSV, three ranges covering light to dark skin."""
    lighter = cv2.inRange(hsv, (0, 20, 70), (50, 170, 255))
    mid = cv2.inRange(hsv, (10, 50, 70), (30, 200, 255))
    darker = cv2.inRange(hsv, (0, 10, 40), (25, 150, 200))
    skin = cv2.bitwise_or(cv2.bitwise_or(lighter, mid), darker)
    return cv2.morphologyEx(skin, cv2.MORPH_CLOSE, _ellipse(5))


def detect_skin_ycrcb(ycrcb: np.ndarray) -> np.ndarray:
    skin = cv2.inRange(ycrcb, (0, 133, 77), (255, 173, 127))
    return cv2.morphologyEx(skin, cv2.MORPH_CLOSE, _ellipse(5))


def detect_clothing(lab: np.ndarray, bgr: np.ndarray) -> np.ndarray:
    """Clothing likelihood from LAB ranges plus adaptive intensity threshold."""
    dark = cv2.inRange(lab, (0, 0, 0), (80, 135, 135))
    light = cv2.inRange(lab, (130, 0, 0), (255, 140, 140))
    blue = cv2.inRange(lab, (100, 120, 130), (200, 140, 150))
    colored = cv2.inRange(lab, (20, 110, 110), (230, 250, 250))

    clothing = cv2.bitwise_or(dark, light)
    clothing = cv2.bitwise_or(clothing, blue)
    clothing = cv2.bitwise_or(clothing, colored)

    gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    adaptive = cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 15, 5,
    )
    clothing = cv2.bitwise_or(clothing, adaptive)

    kernel = _ellipse(7)
    clothing = cv2.morphologyEx(clothing, cv2.MORPH_CLOSE, kernel)
    return cv2.dilate(clothing, kernel, iterations=2)


def detect_background_colors(hsv: np.ndarray) -> np.ndarray:
    """Studio backdrop colors: blue, green, white, gray and red."""
    blue = cv2.inRange(hsv, (100, 50, 50), (140, 255, 255))
    green = cv2.inRange(hsv, (40, 50, 50), (80, 255, 255))
    white = cv2.inRange(hsv, (0, 0, 200), (180, 30, 255))
    gray = cv2.inRange(hsv, (0, 0, 100), (180, 30, 180))
    red = cv2.bitwise_or(
        cv2.inRange(hsv, (0, 50, 50), (10, 255, 255)),
        cv2.inRange(hsv, (170, 50, 50), (180, 255, 255)),
    )

    background = cv2.bitwise_or(blue, green)
    for m in (white, gray, red):
        background = cv2.bitwise_or(background, m)
    return background


# =============================================================================
# CLASSICAL SEGMENTER
# =============================================================================

class ClassicalSegmenter:
    """Heuristic foreground estimate refined by GrabCut."""

    name = 'opencv'

    def __init__(
        self,
        face_locator: Optional[FaceLocator] = None,
        portrait_mode: bool = True,
        iterations: int = 8,
        debug: DebugArtifacts = NO_DEBUG,
    ):
        self._face_locator = face_locator
        self._portrait_mode = portrait_mode
        self._iterations = iterations
        self._debug = debug
        logger.info("Classical segmenter ready")

    def segment(self, image: np.ndarray) -> np.ndarray:
        ensure_image(image, stage="segment")
        bgr = to_bgr(image)
        img_height, img_width = bgr.shape[:2]

        face = self._face_locator.detect(bgr) if self._face_locator else None
        heuristic = np.zeros((img_height, img_width), dtype=np.uint8)

        if face is not None:
            # Face plus padding is definite foreground, color cues add the rest
            padding = max(face.width, face.height)
            expanded = face.expand(padding, img_width, img_height)
            heuristic[expanded.y:expanded.bottom, expanded.x:expanded.right] = 255
            heuristic = cv2.bitwise_or(heuristic, self._color_mask(bgr))
        else:
            heuristic = cv2.bitwise_or(heuristic, self._color_mask(bgr))
            gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
            edges = cv2.Canny(gray, 50, 150)
            dilated = cv2.dilate(edges, cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3)))
            heuristic = cv2.bitwise_or(heuristic, dilated)
            self._debug.save("edges", edges)
            expanded = None

        self._debug.save("initial_mask", heuristic)
        mask = self._apply_grabcut(bgr, heuristic, face, expanded)

        if not self._portrait_mode:
            rect = face_anchored_rect(face, img_width, img_height) if face else None
            mask = refine_with_grabcut(bgr, mask, rect)
        return mask

    def _color_mask(self, bgr: np.ndarray) -> np.ndarray:
        hsv = cv2.cvtColor(bgr, cv2.COLOR_BGR2HSV)
        ycrcb = cv2.cvtColor(bgr, cv2.COLOR_BGR2YCrCb)
        lab = cv2.cvtColor(bgr, cv2.COLOR_BGR2Lab)

        skin = cv2.bitwise_or(detect_skin_hsv(hsv), detect_skin_ycrcb(ycrcb))
        human = cv2.bitwise_or(skin, detect_clothing(lab, bgr))
        foreground = cv2.bitwise_not(detect_background_colors(hsv))

        combined = cv2.bitwise_or(human, foreground)
        combined = cv2.morphologyEx(combined, cv2.MORPH_CLOSE, _ellipse(5))

        self._debug.save("skin", skin)
        self._debug.save("human", human)
        self._debug.save("fg_mask", foreground)
        return combined

    def _apply_grabcut(
        self,
        bgr: np.ndarray,
        heuristic: np.ndarray,
        face: Optional[Rect],
        face_region: Optional[Rect],
    ) -> np.ndarray:
        img_height, img_width = bgr.shape[:2]
        labels = seed_labels(heuristic, fg_threshold=180, probable_threshold=120, bg_threshold=50)

        if face is not None:
            mark_probable_foreground(labels, body_rect(face, img_width, img_height))
            band = min(BORDER_BAND, max(1, img_width // 4))
            labels[:, :band] = cv2.GC_BGD
            labels[:, -band:] = cv2.GC_BGD
            rect = face_anchored_rect(face, img_width, img_height)
        else:
            # Center of the frame, positioned higher to account for the head
            width = max(1, int(img_width * 0.6))
            height = max(1, int(img_height * 0.8))
            rect = Rect(img_width // 2 - width // 2, img_height // 2 - height // 3, width, height)
            rect = rect.clamp(img_width, img_height)
            mark_probable_foreground(labels, rect)

        fg_count, bg_count = sample_counts(labels)
        if bg_count < MIN_SAMPLES:
            logger.warning(f"Not enough samples for GrabCut. FG: {fg_count}, BG: {bg_count}")
            margin = min(20, max(1, img_width // 4))
            labels[:, :margin] = cv2.GC_BGD

        mask = grabcut_with_retry(bgr, labels, rect, self._iterations)
        if mask is None:
            logger.warning("GrabCut failed, using heuristic mask")
            warnings.warn(SegmentationDegraded("GrabCut failed, classical mask is heuristic only"))
            mask = np.where(heuristic > 127, 255, 0).astype(np.uint8)
            if face_region is not None:
                mask[face_region.y:face_region.bottom, face_region.x:face_region.right] = 255

        # Connect disconnected body parts
        return cv2.morphologyEx(mask, cv2.MORPH_CLOSE, _ellipse(9), iterations=3)

    def close(self) -> None:
        self._face_locator = None
