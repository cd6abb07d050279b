"""
GrabCut seeding and refinement shared by the segmentation strategies
"""

import logging
import warnings
from typing import Optional, Tuple

import cv2
import numpy as np

from .exceptions import SegmentationDegraded
from .imaging import Rect, to_bgr

logger = logging.getLogger(__name__)

BORDER_BAND = 10
CENTER_BLOCK = 50


def seed_labels(
    mask: np.ndarray,
    fg_threshold: int = 200,
    probable_threshold: int = 100,
    bg_threshold: int = 30,
) -> np.ndarray:
    """Map mask confidence to GrabCut labels; everything else is probable background."""
    labels = np.full(mask.shape[:2], cv2.GC_PR_BGD, dtype=np.uint8)
    labels[mask > probable_threshold] = cv2.GC_PR_FGD
    labels[mask > fg_threshold] = cv2.GC_FGD
    labels[mask < bg_threshold] = cv2.GC_BGD
    return labels


def sample_counts(labels: np.ndarray) -> Tuple[int, int]:
    fg = int(np.count_nonzero((labels == cv2.GC_FGD) | (labels == cv2.GC_PR_FGD)))
    bg = int(np.count_nonzero(labels == cv2.GC_BGD))
    return fg, bg


def inject_samples(labels: np.ndarray, foreground: bool = True, background: bool = True) -> None:
    """Force a center block to foreground and a border band to background, in place."""
    height, width = labels.shape[:2]
    if foreground:
        size = min(CENTER_BLOCK, min(width, height) // 4)
        size = max(size, 1)
        cx, cy = width // 2, height // 2
        labels[max(0, cy - size):cy + size, max(0, cx - size):cx + size] = cv2.GC_FGD
        logger.info("Added forced foreground samples in center")
    if background:
        band = min(BORDER_BAND, max(1, min(width, height) // 4))
        labels[:band, :] = cv2.GC_BGD
        labels[-band:, :] = cv2.GC_BGD
        labels[:, :band] = cv2.GC_BGD
        labels[:, -band:] = cv2.GC_BGD
        logger.info("Added forced background samples at edges")


def mark_probable_foreground(labels: np.ndarray, rect: Rect) -> None:
    """Mark `rect` as probable foreground without demoting definite foreground."""
    region = labels[rect.y:rect.bottom, rect.x:rect.right]
    region[region != cv2.GC_FGD] = cv2.GC_PR_FGD


def foreground_from_labels(labels: np.ndarray) -> np.ndarray:
    """Union of definite and probable foreground as a 0/255 mask."""
    return np.where((labels == cv2.GC_FGD) | (labels == cv2.GC_PR_FGD), 255, 0).astype(np.uint8)


def run_grabcut(
    image: np.ndarray,
    labels: np.ndarray,
    rect: Optional[Rect] = None,
    iterations: int = 3,
) -> np.ndarray:
    """Run GrabCut initialised from `labels`; returns the updated labels.

    Raises cv2.error when the model cannot be estimated.
    """
    bgd_model = np.zeros((1, 65), np.float64)
    fgd_model = np.zeros((1, 65), np.float64)
    result = labels.copy()
    cv2.grabCut(
        to_bgr(image), result, rect.as_tuple() if rect else None,
        bgd_model, fgd_model, iterations, cv2.GC_INIT_WITH_MASK,
    )
    return result


def grabcut_with_retry(
    image: np.ndarray,
    labels: np.ndarray,
    rect: Optional[Rect] = None,
    iterations: int = 3,
) -> Optional[np.ndarray]:
    """Run GrabCut, injecting synthetic samples and retrying once on failure.

    Returns the 0/255 foreground mask, or None when both attempts failed.
    """
    labels = labels.copy()
    fg_count, bg_count = sample_counts(labels)
    if fg_count == 0 or bg_count == 0:
        logger.info(f"Not enough samples for GrabCut: foreground={fg_count}, background={bg_count}")
        inject_samples(labels, foreground=fg_count == 0, background=bg_count == 0)

    for attempt in range(2):
        try:
            result = run_grabcut(image, labels, rect, iterations)
            logger.info("GrabCut completed successfully")
            return foreground_from_labels(result)
        except cv2.error as e:
            logger.warning(f"GrabCut error (attempt {attempt + 1}/2): {e}")
            if attempt == 0:
                inject_samples(labels)
    return None


def refine_with_grabcut(
    image: np.ndarray,
    mask: np.ndarray,
    rect: Optional[Rect] = None,
    iterations: int = 3,
) -> np.ndarray:
    """Secondary refinement pass over a raw mask.

    `rect` (face-anchored or centered) is marked probable foreground.
    Falls back to a copy of `mask` and warns SegmentationDegraded if
    GrabCut cannot run.
    """
    img_height, img_width = image.shape[:2]
    if rect is None:
        rect = Rect.centered(img_width, img_height, 0.6, 0.8)

    labels = seed_labels(mask)
    mark_probable_foreground(labels, rect)

    refined = grabcut_with_retry(image, labels, rect, iterations)
    if refined is None:
        logger.warning("Returning original mask due to GrabCut failure")
        warnings.warn(SegmentationDegraded("GrabCut refinement failed, using unrefined mask"))
        return mask.copy()
    return refined


def body_rect(face: Rect, img_width: int, img_height: int) -> Rect:
    """Probable body area: wide and tall, starting at the middle of the face."""
    body_width = int(face.width * 3.5)
    body_height = int(face.height * 4.5)
    cx = face.x + face.width // 2
    return Rect(
        cx - body_width // 2,
        face.y + face.height // 2,
        body_width, body_height,
    ).clamp(img_width, img_height)


def face_anchored_rect(face: Rect, img_width: int, img_height: int) -> Rect:
    """Head-and-shoulders region around a face, used to initialise GrabCut."""
    x = max(0, face.x - face.width * 2)
    y = max(0, face.y - face.height)
    return Rect(x, y, face.width * 5, face.height * 6).clamp(img_width, img_height)
