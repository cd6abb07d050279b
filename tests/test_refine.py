"""
Tests for mask refinement and alpha matte creation
"""

import numpy as np
import pytest

from passportify.config import RefineParams
from passportify.refine import MaskRefiner


@pytest.fixture
def image():
    return np.full((100, 100, 3), 128, dtype=np.uint8)


class TestRefine:
    """Binarisation and morphology"""

    @pytest.mark.parametrize("policy", ['hard', 'soft'])
    def test_all_foreground(self, image, policy):
        refiner = MaskRefiner(RefineParams(alpha_policy=policy))
        mask = np.full((100, 100), 255, dtype=np.uint8)
        matte = refiner.to_alpha_matte(refiner.refine(image, mask))
        assert matte.min() >= 250

    @pytest.mark.parametrize("policy", ['hard', 'soft'])
    def test_all_background(self, image, policy):
        refiner = MaskRefiner(RefineParams(alpha_policy=policy))
        mask = np.zeros((100, 100), dtype=np.uint8)
        matte = refiner.to_alpha_matte(refiner.refine(image, mask))
        assert matte.max() == 0

    def test_fills_small_hole(self, image, square_mask):
        square_mask[50, 50] = 0
        refined = MaskRefiner().refine(image, square_mask)
        assert refined[50, 50] == 255

    def test_removes_speck(self, image, square_mask):
        square_mask[5, 5] = 255
        refined = MaskRefiner().refine(image, square_mask)
        assert refined[5, 5] == 0

    def test_resizes_to_image(self, square_mask):
        image = np.zeros((200, 150, 3), dtype=np.uint8)
        refined = MaskRefiner().refine(image, square_mask)
        assert refined.shape == (200, 150)

    def test_smooth_edges_only_touch_boundary(self, image, square_mask):
        refined = MaskRefiner(RefineParams(smooth_edges=True)).refine(image, square_mask)
        assert refined[50, 50] == 255
        assert refined[5, 5] == 0
        fractional = (refined > 0) & (refined < 255)
        assert fractional.any()
        ys, xs = np.nonzero(fractional)
        assert ys.min() >= 20 and ys.max() <= 80
        assert xs.min() >= 20 and xs.max() <= 80


class TestAlphaMatte:
    """Hard and soft alpha policies"""

    def test_hard_is_binary(self, square_mask):
        square_mask[40:60, 40:60] = 200
        matte = MaskRefiner(RefineParams(alpha_policy='hard')).to_alpha_matte(square_mask)
        assert set(np.unique(matte)) <= {0, 255}

    def test_soft_feathers_edges(self, square_mask):
        matte = MaskRefiner(RefineParams(alpha_policy='soft')).to_alpha_matte(square_mask)
        assert matte[50, 50] == 255
        assert matte[5, 5] == 0
        assert ((matte > 0) & (matte < 255)).any()

    @pytest.mark.parametrize("policy", ['hard', 'soft'])
    def test_smoothed_edges_survive_matte(self, image, square_mask, policy):
        smooth = MaskRefiner(RefineParams(smooth_edges=True, alpha_policy=policy))
        plain = MaskRefiner(RefineParams(alpha_policy=policy))

        refined = smooth.refine(image, square_mask)
        matte = smooth.to_alpha_matte(refined)
        band = (refined > 0) & (refined < 255)
        assert np.array_equal(matte[band], refined[band])
        assert matte[50, 50] == 255
        assert matte[5, 5] == 0
        assert not np.array_equal(matte, plain.to_alpha_matte(plain.refine(image, square_mask)))
