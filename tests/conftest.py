"""
Shared fixtures: synthetic portraits and fake segmentation engines.

Nothing here downloads or loads a real model.
"""

import os
import sys

import cv2
import numpy as np
import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class FakeEngine:
    """Segmentation engine stand-in with a predictable elliptical mask."""

    def __init__(self, name='fake', error=None, fill=None):
        self.name = name
        self.error = error
        self.fill = fill
        self.calls = 0
        self.closed = False

    def segment(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        height, width = image.shape[:2]
        if self.fill is not None:
            return np.full((height, width), self.fill, dtype=np.uint8)
        mask = np.zeros((height, width), dtype=np.uint8)
        cv2.ellipse(mask, (width // 2, height // 2), (width // 3, height // 3), 0, 0, 360, 255, -1)
        return mask

    def close(self):
        self.closed = True


@pytest.fixture
def fake_engine():
    return FakeEngine


@pytest.fixture
def portrait():
    """240x300 BGR portrait: skin-toned head and dark shoulders on a blue backdrop."""
    img = np.full((300, 240, 3), (200, 120, 40), dtype=np.uint8)
    cv2.ellipse(img, (120, 110), (45, 58), 0, 0, 360, (140, 170, 215), -1)
    cv2.rectangle(img, (50, 190), (190, 300), (60, 60, 60), -1)
    return img


@pytest.fixture
def portrait_bgra(portrait):
    alpha = np.full(portrait.shape[:2], 255, dtype=np.uint8)
    return np.dstack([portrait, alpha])


@pytest.fixture
def square_mask():
    """100x100 mask with a filled 50x50 square in the middle."""
    mask = np.zeros((100, 100), dtype=np.uint8)
    mask[25:75, 25:75] = 255
    return mask
