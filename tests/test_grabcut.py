"""
Tests for GrabCut seeding, sample injection and the single retry
"""

import cv2
import numpy as np
import pytest

from passportify.exceptions import SegmentationDegraded
from passportify.grabcut import (
    body_rect, face_anchored_rect, foreground_from_labels, grabcut_with_retry,
    inject_samples, refine_with_grabcut, sample_counts, seed_labels,
)
from passportify.imaging import Rect


class GrabCutRecorder:
    """Replaces cv2.grabCut; fails a given number of times, then leaves labels as-is."""

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0
        self.labels_seen = []

    def __call__(self, image, mask, rect, bgd, fgd, iterations, mode):
        self.calls += 1
        self.labels_seen.append(mask.copy())
        if self.calls <= self.failures:
            raise cv2.error("not enough samples")
        return mask, bgd, fgd


class TestSeeding:
    """Mask confidence to GrabCut labels"""

    def test_thresholds(self):
        mask = np.array([[0, 50, 150, 250]], dtype=np.uint8)
        labels = seed_labels(mask)
        assert list(labels[0]) == [cv2.GC_BGD, cv2.GC_PR_BGD, cv2.GC_PR_FGD, cv2.GC_FGD]

    def test_foreground_union(self):
        labels = np.array([[cv2.GC_BGD, cv2.GC_PR_BGD, cv2.GC_PR_FGD, cv2.GC_FGD]], dtype=np.uint8)
        assert list(foreground_from_labels(labels)[0]) == [0, 0, 255, 255]

    def test_inject_samples(self):
        labels = np.full((100, 100), cv2.GC_PR_BGD, dtype=np.uint8)
        inject_samples(labels)
        fg, bg = sample_counts(labels)
        assert fg > 0 and bg > 0
        assert labels[50, 50] == cv2.GC_FGD
        assert labels[0, 0] == cv2.GC_BGD

    def test_inject_samples_tiny_image(self):
        labels = np.full((3, 3), cv2.GC_PR_BGD, dtype=np.uint8)
        inject_samples(labels)
        fg, bg = sample_counts(labels)
        assert fg + bg > 0


class TestRetry:
    """Sample injection and the bounded retry"""

    def test_retry_once_then_succeed(self, monkeypatch, portrait):
        recorder = GrabCutRecorder(failures=1)
        monkeypatch.setattr(cv2, "grabCut", recorder)
        labels = seed_labels(np.full(portrait.shape[:2], 150, dtype=np.uint8))
        labels[:5, :] = cv2.GC_BGD

        mask = grabcut_with_retry(portrait, labels)
        assert recorder.calls == 2
        assert mask is not None
        # second attempt ran with injected samples
        assert recorder.labels_seen[1][150, 120] == cv2.GC_FGD

    def test_gives_up_after_two_attempts(self, monkeypatch, portrait):
        recorder = GrabCutRecorder(failures=10)
        monkeypatch.setattr(cv2, "grabCut", recorder)
        labels = seed_labels(np.full(portrait.shape[:2], 150, dtype=np.uint8))
        assert grabcut_with_retry(portrait, labels) is None
        assert recorder.calls == 2

    def test_refine_degrades_to_input(self, monkeypatch, portrait):
        monkeypatch.setattr(cv2, "grabCut", GrabCutRecorder(failures=10))
        mask = np.zeros(portrait.shape[:2], dtype=np.uint8)
        mask[50:250, 50:190] = 255
        with pytest.warns(SegmentationDegraded):
            refined = refine_with_grabcut(portrait, mask)
        assert np.array_equal(refined, mask)
        assert refined is not mask

    def test_refine_real_grabcut(self, portrait):
        mask = np.zeros(portrait.shape[:2], dtype=np.uint8)
        mask[60:280, 60:180] = 255
        refined = refine_with_grabcut(portrait, mask)
        assert refined.shape == mask.shape
        assert set(np.unique(refined)) <= {0, 255}


class TestRectangles:
    """Face-derived rectangles"""

    @pytest.mark.parametrize("face", [Rect(100, 80, 40, 50), Rect(0, 0, 40, 50), Rect(200, 250, 40, 50)])
    def test_within_bounds(self, face):
        assert body_rect(face, 240, 300).is_within(240, 300)
        assert face_anchored_rect(face, 240, 300).is_within(240, 300)
